"""
revIsion RSC v1.0 — Session State

One state object per active revision session. Every helper here returns a
NEW state and never mutates its input, so callers can keep the previous
turn's state for logging or rollback.

Persistence Rules:
- attempts / correct_streak: reset on topic change, never on phase change.
- phase: changed ONLY by apply_decision. No other helper touches it.
- credited_answer_values: cleared whenever the open question changes.
- curriculum_position_confirmed: once True, never reset within a session.
"""

from dataclasses import dataclass, field, replace
from typing import Optional

from revision_tutor import config
from revision_tutor.tutor.types import (
    ActionType,
    AgentPhase,
    Decision,
    EvaluationResult,
    InvalidTransitionError,
    TEACHING_PHASES,
)


@dataclass
class SessionState:
    """Complete per-session state. Serialised by the caller between turns."""
    # ─── Identity ────────────────────────────────────────────────────────────
    session_id: str
    student_id: str
    topic_id: Optional[str] = None
    topic_name: Optional[str] = None

    # ─── Progress on the current topic ───────────────────────────────────────
    attempts: int = 0
    correct_streak: int = 0
    last_evaluation: Optional[EvaluationResult] = None

    # ─── FSM ─────────────────────────────────────────────────────────────────
    phase: AgentPhase = AgentPhase.GREETING
    last_action: Optional[ActionType] = None

    # ─── Open question ───────────────────────────────────────────────────────
    current_question: Optional[str] = None
    expected_answer_hint: Optional[str] = None
    credited_answer_values: list[str] = field(default_factory=list)

    # ─── Curriculum diagnostic gate ──────────────────────────────────────────
    curriculum_position_confirmed: bool = False
    diagnostic_questions_asked: int = 0

    @property
    def has_open_question(self) -> bool:
        return self.current_question is not None

    def to_dict(self) -> dict:
        """Serialize to a JSON-safe dictionary for storage/logging."""
        return {
            "session_id": self.session_id,
            "student_id": self.student_id,
            "topic_id": self.topic_id,
            "topic_name": self.topic_name,
            "attempts": self.attempts,
            "correct_streak": self.correct_streak,
            "last_evaluation": self.last_evaluation.value if self.last_evaluation else None,
            "phase": self.phase.value,
            "last_action": self.last_action.value if self.last_action else None,
            "current_question": self.current_question,
            "expected_answer_hint": self.expected_answer_hint,
            "credited_answer_values": list(self.credited_answer_values),
            "curriculum_position_confirmed": self.curriculum_position_confirmed,
            "diagnostic_questions_asked": self.diagnostic_questions_asked,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SessionState":
        """Deserialize from dictionary. Unknown phase/action strings raise ValueError."""
        last_evaluation = data.get("last_evaluation")
        last_action = data.get("last_action")
        return cls(
            session_id=data["session_id"],
            student_id=data["student_id"],
            topic_id=data.get("topic_id"),
            topic_name=data.get("topic_name"),
            attempts=data.get("attempts", 0),
            correct_streak=data.get("correct_streak", 0),
            last_evaluation=EvaluationResult(last_evaluation) if last_evaluation else None,
            phase=AgentPhase(data.get("phase", AgentPhase.GREETING.value)),
            last_action=ActionType(last_action) if last_action else None,
            current_question=data.get("current_question"),
            expected_answer_hint=data.get("expected_answer_hint"),
            credited_answer_values=list(data.get("credited_answer_values", [])),
            curriculum_position_confirmed=data.get("curriculum_position_confirmed", False),
            diagnostic_questions_asked=data.get("diagnostic_questions_asked", 0),
        )


# ─── Transitions ─────────────────────────────────────────────────────────────

def create_initial_state(
    session_id: str,
    student_id: str,
    topic_id: Optional[str] = None,
    topic_name: Optional[str] = None,
) -> SessionState:
    return SessionState(
        session_id=session_id,
        student_id=student_id,
        topic_id=topic_id,
        topic_name=topic_name,
    )


def update_state_from_evaluation(
    state: SessionState,
    result: EvaluationResult,
) -> SessionState:
    """
    Count a graded answer. The only helper that moves attempts and streak.

    unknown is not an attempt: the state comes back unchanged (as a copy).
    """
    if result == EvaluationResult.UNKNOWN:
        return replace(state, credited_answer_values=list(state.credited_answer_values))

    streak = state.correct_streak + 1 if result == EvaluationResult.CORRECT else 0
    return replace(
        state,
        attempts=state.attempts + 1,
        correct_streak=streak,
        last_evaluation=result,
        credited_answer_values=list(state.credited_answer_values),
    )


def apply_decision(state: SessionState, decision: Decision) -> SessionState:
    """
    Record the decision and move to its phase.

    Raises InvalidTransitionError if the decision would enter a teaching
    phase before the curriculum position has been confirmed.
    """
    if decision.next_phase in TEACHING_PHASES and not state.curriculum_position_confirmed:
        raise InvalidTransitionError(
            f"{decision.action.value} cannot enter {decision.next_phase.value} "
            f"before the curriculum diagnostic is complete"
        )
    return replace(
        state,
        last_action=decision.action,
        phase=decision.next_phase,
        credited_answer_values=list(state.credited_answer_values),
    )


def update_state_with_topic(
    state: SessionState,
    topic_id: str,
    topic_name: str,
) -> SessionState:
    """Switch topic. Topic progress and the open question are cleared."""
    return replace(
        reset_topic_progress(state),
        topic_id=topic_id,
        topic_name=topic_name,
    )


def update_state_with_question(
    state: SessionState,
    question: str,
    expected_answer_hint: Optional[str] = None,
) -> SessionState:
    """Open a question. Credited values carry over only if it is the same question."""
    credited = list(state.credited_answer_values) if question == state.current_question else []
    return replace(
        state,
        current_question=question,
        expected_answer_hint=expected_answer_hint,
        credited_answer_values=credited,
    )


def update_state_with_credited_values(
    state: SessionState,
    values: set[str] | list[str],
) -> SessionState:
    return replace(state, credited_answer_values=sorted(values))


def clear_open_question(state: SessionState) -> SessionState:
    return replace(
        state,
        current_question=None,
        expected_answer_hint=None,
        credited_answer_values=[],
    )


def skip_open_question(state: SessionState) -> SessionState:
    """Student moved on: drop the question and its attempt count. Streak is kept."""
    return replace(clear_open_question(state), attempts=0)


def reset_topic_progress(state: SessionState) -> SessionState:
    """Reset counters when advancing to a new topic."""
    return replace(
        clear_open_question(state),
        attempts=0,
        correct_streak=0,
        last_evaluation=None,
    )


def increment_diagnostic_count(state: SessionState) -> SessionState:
    return replace(
        state,
        diagnostic_questions_asked=state.diagnostic_questions_asked + 1,
        credited_answer_values=list(state.credited_answer_values),
    )


def confirm_curriculum_position(state: SessionState) -> SessionState:
    """Close the diagnostic gate. Phase is left to the decision that follows."""
    return replace(
        state,
        curriculum_position_confirmed=True,
        credited_answer_values=list(state.credited_answer_values),
    )


# ─── Predicates ──────────────────────────────────────────────────────────────

def has_demonstrated_mastery(state: SessionState, mastery_streak: int = config.MASTERY_STREAK) -> bool:
    return (
        state.correct_streak >= mastery_streak
        and state.last_evaluation == EvaluationResult.CORRECT
    )


def is_struggling(state: SessionState, recovery_attempts: int = config.RECOVERY_ATTEMPTS) -> bool:
    return state.attempts >= recovery_attempts and state.correct_streak == 0


def is_first_attempt(state: SessionState) -> bool:
    return state.attempts == 0


def requires_diagnostic(state: SessionState) -> bool:
    return not state.curriculum_position_confirmed


def is_diagnostic_complete(state: SessionState, question_count: int = config.DIAGNOSTIC_QUESTION_COUNT) -> bool:
    return state.diagnostic_questions_asked >= question_count
