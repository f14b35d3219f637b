"""
revIsion RSC v1.0 — Combined Evaluation + Tutor Agent

One LLM call does BOTH jobs:
1. Answer evaluation (machine-readable)
2. The tutor's next message (student-facing)

Output format:
    <EVALUATION>
    {"evaluation": "...", "confidence": "...", "error_type": "..."}
    </EVALUATION>
    <TUTOR>
    [Student-facing message]
    </TUTOR>

The model's evaluation is used; its idea of what it did is not. The action
is recomputed here by the decision engine from the parsed evaluation.

Diagnostic mode (run_diagnostic_agent) asks the curriculum diagnostic
questions: neutral acknowledgement plus the next bank question, nothing else.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from pydantic import ValidationError

from revision_tutor import config
from revision_tutor.content.diagnostic_questions import FALLBACK_QUESTION
from revision_tutor.state.session import (
    SessionState,
    skip_open_question,
    update_state_from_evaluation,
)
from revision_tutor.tutor.controller import apply_turn_decision, record_generated_response
from revision_tutor.tutor.decision_engine import (
    DEFAULT_POLICY,
    DecisionPolicy,
    determine_next_action,
    should_trigger_completion,
)
from revision_tutor.tutor.delivery_techniques import (
    build_technique_instructions,
    get_allowed_techniques,
)
from revision_tutor.tutor.enforcer import (
    DEFAULT_FALLBACK,
    diagnostic_fallback,
    enforce,
    get_safe_fallback,
    strip_answer_marker,
)
from revision_tutor.tutor.generation import GenerateFn, generate_with_retry, strip_markdown_fences
from revision_tutor.tutor.input_classifier import classify_intent, is_completion_request, is_meta_response
from revision_tutor.tutor.instruction_builder import (
    ANSWER_MARKER_RULE,
    build_constrained_system_prompt,
    build_instructions,
)
from revision_tutor.tutor.types import (
    ActionType,
    Decision,
    ErrorType,
    Evaluation,
    EvaluationConfidence,
    GenerationOutputError,
    InvalidTransitionError,
    LearningStyle,
    StudentIntent,
)

logger = logging.getLogger("revision.combined_agent")


@dataclass
class CombinedAgentInput:
    student_answer: str
    session_state: SessionState
    modality_profile: Optional[LearningStyle] = None
    subject_name: Optional[str] = None
    mark_scheme: Optional[str] = None
    message_history: list[dict] = field(default_factory=list)
    all_topics_secure: bool = False


@dataclass
class CombinedAgentResult:
    evaluation: Evaluation
    tutor_message: str
    decision: Decision
    updated_state: SessionState


@dataclass
class DiagnosticAgentInput:
    student_message: str
    session_state: SessionState
    subject_name: Optional[str] = None
    subject_code: Optional[str] = None
    message_history: list[dict] = field(default_factory=list)


@dataclass
class DiagnosticAgentResult:
    tutor_message: str
    decision: Decision
    updated_state: SessionState


# ─── Combined Prompt ─────────────────────────────────────────────────────────

RULE = "═" * 59

COMBINED_PROMPT = f"""You are operating as TWO STRICTLY SEPARATED sub-agents inside a GCSE revision system:

1. Answer Evaluation Agent
2. Revision Tutor Agent

You must perform BOTH tasks in this order:
1. Evaluate the student's answer (machine-readable)
2. Produce the tutor's next response (student-facing)

{RULE}
PART 1 — ANSWER EVALUATION AGENT (FIRST)
{RULE}

You are NOT a tutor here. You do NOT explain. You ONLY evaluate.

Classify the response as:
- correct: Answer demonstrates understanding, minor phrasing issues OK
- partial: Shows some understanding but incomplete or has minor errors
- incorrect: Wrong or shows fundamental misunderstanding

Assess confidence based on wording: high, medium or low.

If not fully correct, identify the PRIMARY error type:
- recall_gap: Missing facts or definitions
- concept_gap: Misunderstanding the idea
- confusion: Mixing concepts
- exam_technique: Poor structure, vague wording
- guessing: Clearly uncertain or speculative

If correct, error_type must be null. Otherwise it must NOT be null.

GCSE Mark-Scheme Logic:
- Missing key terms → partial
- Incorrect definitions → incorrect
- Correct idea but weak explanation → partial
- Several values (roots, solutions) are compared as a SET: order and phrasing do not matter
- If unsure between grades, choose the lower one

REQUIRED OUTPUT FORMAT:
<EVALUATION>
{{"evaluation": "correct | partial | incorrect", "confidence": "high | medium | low", "error_type": "recall_gap | concept_gap | confusion | exam_technique | guessing | null"}}
</EVALUATION>

{RULE}
PART 2 — REVISION TUTOR AGENT (SECOND)
{RULE}

Respond according to your evaluation:

correct (first time)    → briefly acknowledge, ask a HARDER question on the same concept
correct (streak of {config.MASTERY_STREAK}+)  → acknowledge progress, ask ONE application question
partial                 → rephrase more simply with an analogy, ask a simpler question
incorrect               → ask the SAME question again with ONE small hint, do not explain
incorrect after {config.RECOVERY_ATTEMPTS}+ attempts → no judgement, explain from basics, ask a very easy question
no attempt              → guide without giving the answer, restate the question
skip request            → do not revisit the old question, ask a NEW question on the same topic

TUTOR RULES (NON-NEGOTIABLE):
- You MUST end with a question
- You MUST NOT advance the topic
- You MUST NOT explain fully unless the student is struggling
- Keep it under {config.MAX_RESPONSE_WORDS} words
- {ANSWER_MARKER_RULE}

REQUIRED OUTPUT FORMAT:
<TUTOR>
[Student-facing message: NO emojis, NO markdown, NO meta language]
</TUTOR>

{RULE}
FINAL RULES (ABSOLUTE)
{RULE}

- Output BOTH sections every time
- <EVALUATION> comes FIRST, <TUTOR> comes SECOND
- Do not merge roles. Do not omit tags."""

_EVALUATION_SECTION_RE = re.compile(r"<EVALUATION>\s*(.*?)\s*</EVALUATION>", re.DOTALL | re.IGNORECASE)
_TUTOR_SECTION_RE = re.compile(r"<TUTOR>\s*(.*?)\s*</TUTOR>", re.DOTALL | re.IGNORECASE)


def build_combined_system_prompt(modality_profile: Optional[LearningStyle]) -> str:
    techniques = build_technique_instructions(get_allowed_techniques(modality_profile))
    return f"{COMBINED_PROMPT}\n\n{techniques}"


def build_combined_user_prompt(agent_input: CombinedAgentInput) -> str:
    state = agent_input.session_state
    lines = ["REVISION SESSION CONTEXT:", ""]
    if agent_input.subject_name:
        lines.append(f"Subject: {agent_input.subject_name}")
    if state.topic_name:
        lines.append(f"Topic: {state.topic_name}")
    lines.append(f"Attempts on current question: {state.attempts}")
    lines.append(f"Correct streak: {state.correct_streak}")
    lines.append("")
    if state.current_question:
        lines += ["QUESTION ASKED:", state.current_question]
    else:
        lines.append("QUESTION ASKED: None yet - this is the start of the topic")
    if agent_input.mark_scheme:
        lines += ["", "MARK SCHEME / SUCCESS CRITERIA:", agent_input.mark_scheme]
    elif state.expected_answer_hint:
        lines += ["", "EXPECTED ANSWER:", state.expected_answer_hint]
    lines += ["", "STUDENT'S RESPONSE:", agent_input.student_answer, ""]
    lines.append("Now produce your <EVALUATION> and <TUTOR> sections.")
    return "\n".join(lines)


# ─── Section Parsing ─────────────────────────────────────────────────────────

def parse_evaluation_section(raw: str) -> Evaluation:
    """Raises GenerationOutputError if the section is missing or invalid."""
    match = _EVALUATION_SECTION_RE.search(raw)
    if not match:
        raise GenerationOutputError("missing <EVALUATION> section")
    try:
        data = json.loads(strip_markdown_fences(match.group(1)))
        evaluation = Evaluation.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as e:
        raise GenerationOutputError(f"invalid <EVALUATION> section: {e}") from e
    if not evaluation.is_graded:
        raise GenerationOutputError("ungraded <EVALUATION> section")
    return evaluation


def parse_tutor_section(raw: str) -> str:
    """Raises GenerationOutputError if the section is missing or does not end with a question."""
    match = _TUTOR_SECTION_RE.search(raw)
    if not match or not match.group(1).strip():
        raise GenerationOutputError("missing <TUTOR> section")
    message = match.group(1).strip()
    if not strip_answer_marker(message).endswith("?"):
        raise GenerationOutputError("<TUTOR> section does not end with a question")
    return message


def _parse_sections(raw: str) -> tuple[Optional[Evaluation], Optional[str]]:
    """Parse both sections independently. A failed section comes back as None."""
    evaluation = tutor_message = None
    try:
        evaluation = parse_evaluation_section(raw)
    except GenerationOutputError as e:
        logger.warning(f"combined_agent: {e}")
    try:
        tutor_message = parse_tutor_section(raw)
    except GenerationOutputError as e:
        logger.warning(f"combined_agent: {e}")
    return evaluation, tutor_message


# ─── Combined Agent ──────────────────────────────────────────────────────────

async def run_combined_agent(
    agent_input: CombinedAgentInput,
    llm_call_func: GenerateFn,
    policy: DecisionPolicy = DEFAULT_POLICY,
) -> CombinedAgentResult:
    """
    Evaluate and respond in one call, then decide locally.

    Raises InvalidTransitionError if the curriculum diagnostic is still open:
    diagnostic turns go through run_diagnostic_agent.
    """
    state = agent_input.session_state
    if not state.curriculum_position_confirmed:
        raise InvalidTransitionError("combined agent cannot run before the curriculum diagnostic is complete")

    system_prompt = build_combined_system_prompt(agent_input.modality_profile)
    context = [
        *agent_input.message_history[-config.HISTORY_TURNS:],
        {"role": "user", "content": build_combined_user_prompt(agent_input)},
    ]

    evaluation = tutor_message = None
    for attempt in range(1, config.GENERATION_MAX_RETRIES + 2):
        try:
            raw = await llm_call_func(system_prompt, context)
        except Exception as e:
            logger.error(f"combined_agent: generation raised on attempt {attempt}: {e}")
            continue
        parsed_evaluation, parsed_message = _parse_sections(raw)
        # Each section keeps the first attempt that produced it
        if evaluation is None:
            evaluation = parsed_evaluation
        if tutor_message is None:
            tutor_message = parsed_message
        if evaluation is not None and tutor_message is not None:
            break

    answer = agent_input.student_answer
    intent = classify_intent(answer)
    completion_requested = is_completion_request(answer)

    if state.current_question is None:
        # Nothing was asked, so nothing can be graded
        evaluation = Evaluation.unknown()
    elif intent == StudentIntent.SKIP or completion_requested or is_meta_response(answer):
        evaluation = Evaluation.unknown(EvaluationConfidence.HIGH, ErrorType.OFF_TOPIC)
    elif evaluation is None:
        logger.warning("combined_agent: evaluation missing after retry, using unknown")
        evaluation = Evaluation.unknown()

    generated = tutor_message is not None
    if not generated:
        logger.warning("combined_agent: tutor message missing after retry, using fallback")
        tutor_message = DEFAULT_FALLBACK

    state = update_state_from_evaluation(state, evaluation.result)
    if intent == StudentIntent.SKIP:
        state = skip_open_question(state)
    completion_trigger = should_trigger_completion(agent_input.all_topics_secure, completion_requested)
    decision = determine_next_action(state, evaluation, completion_trigger, policy)
    state, _ = apply_turn_decision(state, decision, policy=policy)
    if generated:
        state = record_generated_response(state, tutor_message)

    logger.info(
        f"[{state.session_id}] combined: '{answer[:40]}' "
        f"eval={evaluation.result.value} → {decision.action.value} / {decision.next_phase.value}"
    )

    return CombinedAgentResult(
        evaluation=evaluation,
        tutor_message=strip_answer_marker(tutor_message),
        decision=decision,
        updated_state=state,
    )


# ─── Diagnostic Mode ─────────────────────────────────────────────────────────

def build_diagnostic_directive(next_question: str, subject_name: Optional[str]) -> str:
    subject = subject_name or "this subject"
    return f"""You are running a short curriculum diagnostic for {subject}.
This is NOT revision. You are only finding out where the student is.

RULES (ABSOLUTE):
- Do NOT teach, explain, hint or correct
- Do NOT say whether the previous answer was right or wrong
- Do NOT praise or judge the answer
- A neutral acknowledgement only, such as "Thanks." or "Got it."
- Then ask exactly this question, word for word:
{next_question}
- Your message MUST end with that question
- Under {config.DIAGNOSTIC_MAX_WORDS} words in total
- No emojis, no markdown"""


def _enforced(phase, diagnostic_mode=False, expected_question=None):
    """Parser for generate_with_retry: accept only output that passes the enforcer."""
    def parse(raw: str) -> str:
        result = enforce(raw, phase, diagnostic_mode=diagnostic_mode, expected_question=expected_question)
        if not result.passed:
            raise GenerationOutputError(f"enforcer violations: {result.violations}")
        return result.text
    return parse


async def run_diagnostic_agent(
    agent_input: DiagnosticAgentInput,
    llm_call_func: GenerateFn,
    policy: DecisionPolicy = DEFAULT_POLICY,
) -> DiagnosticAgentResult:
    """
    One turn of the curriculum diagnostic.

    Diagnostic answers are never graded. The engine decides whether to ask
    the next bank question or close the gate with an INITIAL_QUESTION.
    """
    state = agent_input.session_state
    evaluation = Evaluation.unknown()
    completion_trigger = should_trigger_completion(False, is_completion_request(agent_input.student_message))
    decision = determine_next_action(state, evaluation, completion_trigger, policy)
    state, next_question = apply_turn_decision(state, decision, agent_input.subject_code, policy)
    history = agent_input.message_history[-config.HISTORY_TURNS:]

    if decision.action == ActionType.DIAGNOSTIC_QUESTION:
        next_question = next_question or FALLBACK_QUESTION
        context = [*history, {"role": "user", "content": agent_input.student_message}]
        message = await generate_with_retry(
            llm_call_func,
            build_diagnostic_directive(next_question, agent_input.subject_name),
            context,
            _enforced(decision.next_phase, diagnostic_mode=True, expected_question=next_question),
            label="diagnostic_agent",
        )
        if message is None:
            logger.warning(f"[{state.session_id}] Diagnostic generation failed, using template")
            message = diagnostic_fallback(next_question)
    else:
        instructions = build_instructions(
            decision, state, evaluation, None, agent_input.subject_name,
        )
        context = [*history, {"role": "user", "content": agent_input.student_message}]
        raw = await generate_with_retry(
            llm_call_func,
            build_constrained_system_prompt(instructions),
            context,
            _enforced(decision.next_phase),
            label="diagnostic_agent",
        )
        if raw is None:
            logger.warning(f"[{state.session_id}] Generation failed, using safe fallback")
            message = get_safe_fallback(decision.next_phase)
        else:
            state = record_generated_response(state, raw)
            message = strip_answer_marker(raw)

    logger.info(
        f"[{state.session_id}] diagnostic: {decision.action.value} "
        f"(asked {state.diagnostic_questions_asked}, confirmed={state.curriculum_position_confirmed})"
    )

    return DiagnosticAgentResult(tutor_message=message, decision=decision, updated_state=state)
