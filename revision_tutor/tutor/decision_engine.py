"""
revIsion RSC v1.0 — Decision Engine

The heart of the Revision Session Controller. Given the session state and
the evaluation of the latest answer, picks exactly one (action, phase).

Pure logic: no I/O, no LLM, never mutates its inputs.

Rule priority:
    1. completion trigger       → RUN_COMPLETION_REVIEW
    2. terminal phases          → AWAIT_RESPONSE / session_close
    3. curriculum diagnostic gate
    4. unknown / no evaluation
    5. correct
    6. partial
    7. incorrect
"""

import logging
from dataclasses import dataclass
from typing import Optional

from revision_tutor import config
from revision_tutor.state.session import SessionState
from revision_tutor.tutor.types import (
    ActionType,
    AgentPhase,
    Decision,
    ErrorType,
    Evaluation,
    EvaluationResult,
    InvalidTransitionError,
    TERMINAL_PHASES,
)

logger = logging.getLogger("revision.decision_engine")


@dataclass(frozen=True)
class DecisionPolicy:
    """Thresholds the rules compare against."""
    diagnostic_question_count: int = 3
    mastery_streak: int = 2
    recovery_attempts: int = 3
    guessing_recovery_attempts: int = 2


DEFAULT_POLICY = DecisionPolicy(
    diagnostic_question_count=config.DIAGNOSTIC_QUESTION_COUNT,
    mastery_streak=config.MASTERY_STREAK,
    recovery_attempts=config.RECOVERY_ATTEMPTS,
    guessing_recovery_attempts=config.GUESSING_RECOVERY_ATTEMPTS,
)


# ─── Rules ───────────────────────────────────────────────────────────────────

def determine_next_action(
    state: SessionState,
    evaluation: Optional[Evaluation],
    completion_trigger: bool = False,
    policy: DecisionPolicy = DEFAULT_POLICY,
) -> Decision:
    """
    Pick the next action for this turn.

    Args:
        state: Session state AFTER the evaluation has been counted
        evaluation: Evaluation of the latest message, or None
        completion_trigger: All topics secure, or the student asked to be tested
        policy: Thresholds for the diagnostic, mastery and recovery rules

    Returns:
        Decision(action, next_phase)
    """
    if completion_trigger and state.phase not in TERMINAL_PHASES:
        return Decision(ActionType.RUN_COMPLETION_REVIEW, AgentPhase.COMPLETION_REVIEW)

    if state.phase in TERMINAL_PHASES:
        return Decision(ActionType.AWAIT_RESPONSE, AgentPhase.SESSION_CLOSE)

    # No revision until the diagnostic has located the student
    if not state.curriculum_position_confirmed:
        if state.diagnostic_questions_asked < policy.diagnostic_question_count:
            return Decision(ActionType.DIAGNOSTIC_QUESTION, AgentPhase.CURRICULUM_DIAGNOSTIC)
        return Decision(ActionType.INITIAL_QUESTION, AgentPhase.KNOWLEDGE_INGESTION)

    if evaluation is None:
        return _handle_unknown(state)

    match evaluation.result:
        case EvaluationResult.UNKNOWN:
            return _handle_unknown(state)
        case EvaluationResult.CORRECT:
            return _handle_correct(state, policy)
        case EvaluationResult.PARTIAL:
            return _handle_partial(evaluation)
        case EvaluationResult.INCORRECT:
            return _handle_incorrect(state, evaluation, policy)
        case _:
            raise ValueError(f"Unhandled evaluation result: {evaluation.result!r}")


def _handle_unknown(state: SessionState) -> Decision:
    if state.current_question is None:
        return Decision(ActionType.INITIAL_QUESTION, AgentPhase.KNOWLEDGE_INGESTION)
    # Wait for a real answer
    return Decision(ActionType.AWAIT_RESPONSE, state.phase)


def _handle_correct(state: SessionState, policy: DecisionPolicy) -> Decision:
    if state.correct_streak >= policy.mastery_streak:
        return Decision(ActionType.CONFIRM_MASTERY, AgentPhase.RECALL_CHECK)
    return Decision(ActionType.EXTEND_DIFFICULTY, AgentPhase.ACTIVE_REVISION)


def _handle_partial(evaluation: Evaluation) -> Decision:
    match evaluation.error_type:
        case ErrorType.EXAM_TECHNIQUE:
            # Structure issue: same question, focus on technique
            return Decision(ActionType.RETRY_WITH_HINT, AgentPhase.ACTIVE_REVISION)
        case ErrorType.CONFUSION:
            return Decision(ActionType.REPHRASE_SIMPLER, AgentPhase.MISCONCEPTION_REPAIR)
        case _:
            return Decision(ActionType.REPHRASE_SIMPLER, AgentPhase.ACTIVE_REVISION)


def _handle_incorrect(
    state: SessionState,
    evaluation: Evaluation,
    policy: DecisionPolicy,
) -> Decision:
    # Repeated failure overrides error type
    if state.attempts >= policy.recovery_attempts:
        return Decision(ActionType.RECOVER_CONFIDENCE, AgentPhase.PANIC_RECOVERY)

    match evaluation.error_type:
        case ErrorType.GUESSING:
            if state.attempts >= policy.guessing_recovery_attempts:
                return Decision(ActionType.RECOVER_CONFIDENCE, AgentPhase.PANIC_RECOVERY)
            return Decision(ActionType.REPHRASE_SIMPLER, AgentPhase.ACTIVE_REVISION)
        case ErrorType.CONCEPT_GAP | ErrorType.CONFUSION:
            return Decision(ActionType.REPHRASE_SIMPLER, AgentPhase.MISCONCEPTION_REPAIR)
        case _:
            return Decision(ActionType.RETRY_WITH_HINT, AgentPhase.ACTIVE_REVISION)


def topic_advance_decision() -> Decision:
    """The only route to ADVANCE_TOPIC. Used by the controller's advance_topic."""
    return Decision(ActionType.ADVANCE_TOPIC, AgentPhase.KNOWLEDGE_INGESTION)


# ─── Phase Mapping ───────────────────────────────────────────────────────────

def get_phase_for_action(action: ActionType, current_phase: AgentPhase) -> AgentPhase:
    """Phase an action normally leads to. The LLM cannot override this."""
    match action:
        case ActionType.DIAGNOSTIC_QUESTION:
            return AgentPhase.CURRICULUM_DIAGNOSTIC
        case ActionType.INITIAL_QUESTION | ActionType.ADVANCE_TOPIC:
            return AgentPhase.KNOWLEDGE_INGESTION
        case ActionType.EXTEND_DIFFICULTY | ActionType.RETRY_WITH_HINT | ActionType.REPHRASE_SIMPLER:
            return AgentPhase.ACTIVE_REVISION
        case ActionType.CONFIRM_MASTERY:
            return AgentPhase.RECALL_CHECK
        case ActionType.RECOVER_CONFIDENCE:
            return AgentPhase.PANIC_RECOVERY
        case ActionType.RUN_COMPLETION_REVIEW:
            return AgentPhase.COMPLETION_REVIEW
        case ActionType.AWAIT_RESPONSE:
            return current_phase
        case _:
            raise ValueError(f"Unhandled action: {action!r}")


# ─── Allowed Actions ─────────────────────────────────────────────────────────
# Which actions may be emitted INTO each phase. Every phase has an entry.

ALLOWED_ACTIONS: dict[AgentPhase, frozenset[ActionType]] = {
    AgentPhase.GREETING: frozenset({ActionType.AWAIT_RESPONSE}),
    AgentPhase.TOPIC_SELECTION: frozenset({ActionType.AWAIT_RESPONSE}),
    AgentPhase.CURRICULUM_DIAGNOSTIC: frozenset({
        ActionType.DIAGNOSTIC_QUESTION,
        ActionType.AWAIT_RESPONSE,
    }),
    AgentPhase.KNOWLEDGE_INGESTION: frozenset({
        ActionType.INITIAL_QUESTION,
        ActionType.ADVANCE_TOPIC,
        ActionType.AWAIT_RESPONSE,
    }),
    AgentPhase.ACTIVE_REVISION: frozenset({
        ActionType.EXTEND_DIFFICULTY,
        ActionType.RETRY_WITH_HINT,
        ActionType.REPHRASE_SIMPLER,
        ActionType.AWAIT_RESPONSE,
    }),
    AgentPhase.RECALL_CHECK: frozenset({
        ActionType.CONFIRM_MASTERY,
        ActionType.AWAIT_RESPONSE,
    }),
    AgentPhase.MISCONCEPTION_REPAIR: frozenset({
        ActionType.REPHRASE_SIMPLER,
        ActionType.RETRY_WITH_HINT,
        ActionType.AWAIT_RESPONSE,
    }),
    AgentPhase.PANIC_RECOVERY: frozenset({
        ActionType.RECOVER_CONFIDENCE,
        ActionType.AWAIT_RESPONSE,
    }),
    AgentPhase.COMPLETION_REVIEW: frozenset({ActionType.RUN_COMPLETION_REVIEW}),
    AgentPhase.SESSION_CLOSE: frozenset({ActionType.AWAIT_RESPONSE}),
}


def is_action_allowed_in_phase(action: ActionType, phase: AgentPhase) -> bool:
    return action in ALLOWED_ACTIONS[phase]


def assert_action_allowed(decision: Decision) -> None:
    """Raise InvalidTransitionError if the decision's action may not enter its phase."""
    if not is_action_allowed_in_phase(decision.action, decision.next_phase):
        logger.error(
            f"Blocked transition: {decision.action.value} → {decision.next_phase.value}"
        )
        raise InvalidTransitionError(
            f"{decision.action.value} is not allowed in phase {decision.next_phase.value}"
        )


def validate_allowed_actions_completeness() -> bool:
    """
    Verify that every phase has an entry and every action is reachable.

    Returns True if complete, raises AssertionError if not.
    """
    missing_phases = [p.value for p in AgentPhase if p not in ALLOWED_ACTIONS]
    if missing_phases:
        raise AssertionError(f"Missing phases: {missing_phases}")

    reachable = set().union(*ALLOWED_ACTIONS.values())
    unreachable = [a.value for a in ActionType if a not in reachable]
    if unreachable:
        raise AssertionError(f"Actions allowed in no phase: {unreachable}")

    return True


# ─── Topic & Completion ──────────────────────────────────────────────────────

def should_advance_topic(state: SessionState, policy: DecisionPolicy = DEFAULT_POLICY) -> bool:
    """Mastery confirmed in recall_check: streak at threshold and last answer correct."""
    return (
        state.phase == AgentPhase.RECALL_CHECK
        and state.correct_streak >= policy.mastery_streak
        and state.last_evaluation == EvaluationResult.CORRECT
    )


def should_trigger_completion(all_topics_secure: bool, user_requested: bool) -> bool:
    return all_topics_secure or user_requested
