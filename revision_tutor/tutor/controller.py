"""
revIsion RSC v1.0 — Revision Session Controller

The controller decides WHAT happens next.
The LLM decides HOW it is said.

If the LLM is allowed to decide both, revision collapses.

One turn, strictly in order:
    Student message
       ↓ classify intent
       ↓ evaluate (solution + open question + diagnostic complete only)
       ↓ update attempts / streak
       ↓ decide (decision engine)
       ↓ check and apply the decision (only place phase changes)
       ↓ render constrained instructions
    TurnResult (caller generates, persists, records the next question)
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from revision_tutor.content.diagnostic_questions import get_next_diagnostic_question
from revision_tutor.state.session import (
    SessionState,
    apply_decision,
    clear_open_question,
    confirm_curriculum_position,
    create_initial_state,
    increment_diagnostic_count,
    skip_open_question,
    update_state_from_evaluation,
    update_state_with_credited_values,
    update_state_with_question,
    update_state_with_topic,
)
from revision_tutor.tutor.answer_evaluator import evaluate_answer_detailed
from revision_tutor.tutor.decision_engine import (
    DEFAULT_POLICY,
    DecisionPolicy,
    assert_action_allowed,
    determine_next_action,
    should_advance_topic,
    should_trigger_completion,
    topic_advance_decision,
)
from revision_tutor.tutor.enforcer import ANSWER_MARKER_RE, strip_answer_marker
from revision_tutor.tutor.generation import GenerateFn
from revision_tutor.tutor.input_classifier import classify_intent, is_completion_request
from revision_tutor.tutor.instruction_builder import (
    QUESTION_OPENING_ACTIONS,
    build_constrained_system_prompt,
    build_instructions,
)
from revision_tutor.tutor.types import (
    ActionType,
    AgentPhase,
    Decision,
    ErrorType,
    Evaluation,
    EvaluationConfidence,
    InvalidTransitionError,
    LearningStyle,
    StudentIntent,
)

logger = logging.getLogger("revision.controller")


@dataclass
class TurnResult:
    action: ActionType
    instructions: str
    updated_state: SessionState
    updated_phase: AgentPhase
    evaluation: Optional[Evaluation]
    intent: Optional[StudentIntent]

    @property
    def decision(self) -> Decision:
        return Decision(self.action, self.updated_phase)


@dataclass(frozen=True)
class ExtractedQuestion:
    question: Optional[str]
    answer_hint: Optional[str]


# ─── Intent → Evaluation ─────────────────────────────────────────────────────

def synthesise_evaluation(intent: StudentIntent) -> Evaluation:
    """Ungraded evaluation for messages that are not answer attempts."""
    match intent:
        case StudentIntent.UNCERTAINTY:
            return Evaluation.unknown(EvaluationConfidence.LOW, ErrorType.RECALL_GAP)
        case StudentIntent.EXPLANATION:
            # Never mark shown working as wrong
            return Evaluation.unknown(EvaluationConfidence.MEDIUM)
        case StudentIntent.SOLUTION | StudentIntent.QUESTION | StudentIntent.SKIP | StudentIntent.META:
            return Evaluation.unknown(EvaluationConfidence.HIGH, ErrorType.OFF_TOPIC)
        case _:
            raise ValueError(f"Unhandled intent: {intent!r}")


# ─── Decision Bookkeeping ────────────────────────────────────────────────────

def apply_turn_decision(
    state: SessionState,
    decision: Decision,
    subject_code: Optional[str] = None,
    policy: DecisionPolicy = DEFAULT_POLICY,
) -> tuple[SessionState, Optional[str]]:
    """
    Check the decision, do the diagnostic bookkeeping, then apply it.

    Returns the new state and, for DIAGNOSTIC_QUESTION, the bank question
    that is now open. Raises InvalidTransitionError for a disallowed action.
    """
    assert_action_allowed(decision)
    diagnostic_question = None

    if decision.action == ActionType.DIAGNOSTIC_QUESTION:
        diagnostic_question = get_next_diagnostic_question(
            subject_code,
            state.diagnostic_questions_asked,
            seed=state.session_id,
            count=policy.diagnostic_question_count,
        )
        state = update_state_with_question(state, diagnostic_question, None)
        state = increment_diagnostic_count(state)
    elif decision.action == ActionType.INITIAL_QUESTION and not state.curriculum_position_confirmed:
        # Gate closes: diagnostic answers are discarded, revision starts fresh
        state = clear_open_question(confirm_curriculum_position(state))

    return apply_decision(state, decision), diagnostic_question


# ─── Main Turn ───────────────────────────────────────────────────────────────

async def process_turn(
    student_message: str,
    session_state: SessionState,
    modality_profile: Optional[LearningStyle],
    subject_name: Optional[str],
    *,
    llm_call_func: GenerateFn,
    subject_code: Optional[str] = None,
    all_topics_secure: bool = False,
    policy: DecisionPolicy = DEFAULT_POLICY,
) -> TurnResult:
    """
    Run one revision turn.

    Args:
        student_message: Raw student text
        session_state: State after the previous turn (not mutated)
        modality_profile: Learner's modality profile, or None
        subject_name: Display name for the directive
        llm_call_func: Injected generator, used only by the evaluator
        subject_code: Diagnostic bank key ("MATHS", "BIOLOGY", ...)
        all_topics_secure: Progress layer reports every topic secure
        policy: Decision thresholds

    Returns:
        TurnResult. The caller generates the reply with
        get_constrained_system_prompt(result.instructions), persists
        result.updated_state and calls record_generated_response.
    """
    state = session_state
    intent = classify_intent(student_message)
    completion_requested = is_completion_request(student_message)

    # ─── 1. Evaluate ─────────────────────────────────────────────────────────
    if not state.curriculum_position_confirmed:
        # Diagnostic answers are never graded
        evaluation = Evaluation.unknown()
    elif completion_requested:
        # A request to be tested is not an answer
        evaluation = Evaluation.unknown(EvaluationConfidence.HIGH, ErrorType.OFF_TOPIC)
    elif intent == StudentIntent.SOLUTION and state.current_question is not None:
        outcome = await evaluate_answer_detailed(
            student_message,
            state.current_question,
            state.expected_answer_hint,
            state.topic_name,
            llm_call_func,
            previous_values=set(state.credited_answer_values),
        )
        evaluation = outcome.evaluation
        state = update_state_with_credited_values(state, outcome.credited_values)
    elif intent == StudentIntent.SOLUTION:
        evaluation = Evaluation.unknown()
    else:
        evaluation = synthesise_evaluation(intent)

    # ─── 2. Update counters ──────────────────────────────────────────────────
    state = update_state_from_evaluation(state, evaluation.result)
    if intent == StudentIntent.SKIP:
        state = skip_open_question(state)

    # ─── 3. Decide ───────────────────────────────────────────────────────────
    completion_trigger = should_trigger_completion(all_topics_secure, completion_requested)
    decision = determine_next_action(state, evaluation, completion_trigger, policy)

    # ─── 4. Apply ────────────────────────────────────────────────────────────
    state, diagnostic_question = apply_turn_decision(state, decision, subject_code, policy)

    # ─── 5. Instructions ─────────────────────────────────────────────────────
    instructions = build_instructions(
        decision,
        state,
        evaluation,
        modality_profile,
        subject_name,
        intent=intent,
        diagnostic_question=diagnostic_question,
    )

    logger.info(
        f"[{state.session_id}] '{student_message[:40]}' intent={intent.value} "
        f"eval={evaluation.result.value} → {decision.action.value} / {decision.next_phase.value}"
    )

    return TurnResult(
        action=decision.action,
        instructions=instructions,
        updated_state=state,
        updated_phase=decision.next_phase,
        evaluation=evaluation,
        intent=intent,
    )


# ─── Session Helpers ─────────────────────────────────────────────────────────

def initialize_session(
    session_id: str,
    student_id: str,
    topic_id: Optional[str] = None,
    topic_name: Optional[str] = None,
) -> SessionState:
    """New session in greeting. The topic is only set when both id and name are given."""
    if topic_id and topic_name:
        return create_initial_state(session_id, student_id, topic_id, topic_name)
    return create_initial_state(session_id, student_id)


def get_constrained_system_prompt(instructions: str) -> str:
    return build_constrained_system_prompt(instructions)


_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+|\n+")


def extract_next_question(generated_text: str) -> ExtractedQuestion:
    """
    Pull the question the student should answer next from a tutor message.

    The question is the last sentence ending in "?". A trailing
    "[answer: ...]" marker, if present, becomes the answer hint.
    """
    answer_hint = None
    marker = ANSWER_MARKER_RE.search(generated_text)
    if marker:
        answer_hint = marker.group(1).strip() or None
        generated_text = generated_text[:marker.start()]

    sentences = [s.strip() for s in _SENTENCE_SPLIT_RE.split(generated_text) if s.strip()]
    questions = [s for s in sentences if s.endswith("?")]
    if not questions:
        return ExtractedQuestion(question=None, answer_hint=None)
    return ExtractedQuestion(question=questions[-1], answer_hint=answer_hint)


def visible_message(generated_text: str) -> str:
    """Tutor message as shown to the student (answer marker removed)."""
    return strip_answer_marker(generated_text)


def record_generated_response(state: SessionState, generated_text: str) -> SessionState:
    """
    Store the question the tutor just asked as the open question.

    Retries, restatements and diagnostic prompts keep the question already
    open; only actions that ask something new replace it.
    """
    opens_new_question = (
        state.current_question is None
        or (
            state.last_action in QUESTION_OPENING_ACTIONS
            and state.last_action != ActionType.RETRY_WITH_HINT
        )
    )
    if not opens_new_question or state.phase in (AgentPhase.COMPLETION_REVIEW, AgentPhase.SESSION_CLOSE):
        return state

    extracted = extract_next_question(generated_text)
    if extracted.question is None:
        logger.warning(f"[{state.session_id}] No question found in tutor response")
        return state
    return update_state_with_question(state, extracted.question, extracted.answer_hint)


def advance_topic(
    state: SessionState,
    topic_id: str,
    topic_name: str,
    modality_profile: Optional[LearningStyle],
    subject_name: Optional[str],
    policy: DecisionPolicy = DEFAULT_POLICY,
) -> TurnResult:
    """
    Move to the next topic after confirmed mastery.

    Raises InvalidTransitionError unless should_advance_topic(state) holds.
    """
    if not should_advance_topic(state, policy):
        raise InvalidTransitionError(
            f"Cannot advance topic from {state.phase.value} "
            f"(streak={state.correct_streak}, last={state.last_evaluation})"
        )

    decision = topic_advance_decision()
    assert_action_allowed(decision)
    new_state = apply_decision(update_state_with_topic(state, topic_id, topic_name), decision)
    instructions = build_instructions(decision, new_state, None, modality_profile, subject_name)

    logger.info(f"[{state.session_id}] Topic advanced: {state.topic_id} → {topic_id}")

    return TurnResult(
        action=decision.action,
        instructions=instructions,
        updated_state=new_state,
        updated_phase=decision.next_phase,
        evaluation=None,
        intent=None,
    )
