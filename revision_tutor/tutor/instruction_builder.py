"""
revIsion RSC v1.0 — Instruction Builder

Turns the controller's decision into a tight, scoped directive for the LLM.
The controller sends explicit instructions, not vague goals: the LLM decides
HOW to say it, never WHAT happens next.

Every directive carries:
1. Session context (subject, topic, phase, attempts, streak)
2. Action instructions (one builder per ActionType)
3. Constraints (base + per-action)
4. The delivery technique whitelist
5. Intent guidance for non-answer messages
"""

from typing import Callable, Optional

from revision_tutor import config
from revision_tutor.state.session import SessionState
from revision_tutor.tutor.delivery_techniques import (
    build_technique_instructions,
    get_allowed_techniques,
)
from revision_tutor.tutor.input_classifier import get_intent_guidance
from revision_tutor.tutor.types import (
    ActionType,
    AgentPhase,
    Decision,
    ErrorType,
    Evaluation,
    LearningStyle,
    StudentIntent,
)

SECTION_RULE = "═" * 59

TUTOR_BASE = "You are a GCSE revision tutor. Be encouraging but focused."

# Appended after any new question so the controller can grade it next turn
ANSWER_MARKER_RULE = (
    "After your final question, add one line of the form [answer: <expected answer>]. "
    "It is hidden from the student and used for marking."
)

BASE_CONSTRAINTS = [
    "You MUST end your response with a question for the student to answer",
    "You may NOT introduce a new topic unless instructed",
    "You may NOT give full worked solutions unless in RECOVER_CONFIDENCE mode",
    "You may NOT skip ahead in the curriculum",
    f"Keep responses focused and concise (under {config.MAX_RESPONSE_WORDS} words)",
]

ACTION_CONSTRAINTS: dict[ActionType, list[str]] = {
    ActionType.DIAGNOSTIC_QUESTION: [
        "Do NOT teach, explain, hint or correct",
        "Neutral acknowledgement only (e.g. 'Thanks.')",
        f"Under {config.DIAGNOSTIC_MAX_WORDS} words",
    ],
    ActionType.INITIAL_QUESTION: [
        "Ask only ONE question",
        "Do not provide the answer",
    ],
    ActionType.RETRY_WITH_HINT: [
        "Give only ONE hint",
        "Do NOT reveal the answer",
        "The hint must make them think, not tell them",
    ],
    ActionType.REPHRASE_SIMPLER: [
        "Use simpler language than before",
        "Include an analogy or example",
        "The new question must be easier",
    ],
    ActionType.EXTEND_DIFFICULTY: [
        "Do NOT repeat the same question",
        "The new question must be harder",
        "Keep to the same concept/topic",
    ],
    ActionType.CONFIRM_MASTERY: [
        "This is an application question, not recall",
        "One question only",
    ],
    ActionType.ADVANCE_TOPIC: [
        "Brief congratulations only",
        "Focus on the new topic",
    ],
    ActionType.RECOVER_CONFIDENCE: [
        "No judgement or pressure",
        "Explain basics clearly",
        "The question must be easy enough to succeed",
    ],
    ActionType.AWAIT_RESPONSE: [
        "Address their specific request",
        "Redirect to the revision task",
    ],
    ActionType.RUN_COMPLETION_REVIEW: [
        "Do NOT teach or introduce new content",
        "Do NOT ask a revision question",
    ],
}

# Actions whose response opens a new question
QUESTION_OPENING_ACTIONS = frozenset({
    ActionType.INITIAL_QUESTION,
    ActionType.RETRY_WITH_HINT,
    ActionType.REPHRASE_SIMPLER,
    ActionType.EXTEND_DIFFICULTY,
    ActionType.CONFIRM_MASTERY,
    ActionType.ADVANCE_TOPIC,
    ActionType.RECOVER_CONFIDENCE,
})


# ─── Action Builders ─────────────────────────────────────────────────────────
# Each takes (state, evaluation, diagnostic_question) and returns the
# mandatory instruction block for its action.

def _build_diagnostic_question(state, ev, dq):
    question = dq or "What would you like to focus on in this subject?"
    return f"""This is a curriculum diagnostic, NOT revision.
If the student answered a previous diagnostic question, acknowledge it neutrally in a few words.
Do NOT say whether it was right or wrong. Do NOT explain anything.
Then ask exactly this question:
{question}
MUST end with that question."""


def _build_initial_question(state, ev, dq):
    return f"""Ask an initial question about {state.topic_name or "the topic"}.
Start with a foundational concept to assess understanding.
Make the question clear and specific.
GCSE level difficulty.
MUST end with a direct question."""


def _build_retry_with_hint(state, ev, dq):
    return f"""The student's answer was not complete.
Ask the SAME question again:
{state.current_question or "(the previous question)"}
Provide ONE hint only. Do not give away the answer.
The hint should guide thinking, not provide the solution.
Be encouraging: mistakes are normal.
MUST end with the question again."""


_REPHRASE_NOTES = {
    ErrorType.CONFUSION: "They seem to be mixing up concepts.",
    ErrorType.CONCEPT_GAP: "There may be a gap in understanding.",
    ErrorType.RECALL_GAP: "They may be missing some key facts.",
    ErrorType.GUESSING: "They appear to be guessing.",
}


def _build_rephrase_simpler(state, ev, dq):
    note = _REPHRASE_NOTES.get(ev.error_type, "") if ev else ""
    return f"""The student's answer was partially correct or showed confusion.
{note}
Rephrase the concept more simply.
Use an analogy or everyday example.
Then ask a simpler version of the question.
MUST end with a question.""".replace("\n\n", "\n")


def _build_extend_difficulty(state, ev, dq):
    return """The student answered correctly.
Briefly acknowledge their correct answer (1 sentence).
Now ask a HARDER version of the same concept.
Use exam-style phrasing if appropriate.
Increase complexity slightly.
MUST end with the new question."""


def _build_confirm_mastery(state, ev, dq):
    return f"""The student has shown consistent understanding ({state.correct_streak} correct in a row).
Acknowledge their progress.
Ask ONE final recall question to confirm mastery.
This should test if they can apply the concept, not just recall it.
MUST end with the confirmation question."""


def _build_advance_topic(state, ev, dq):
    return f"""The student has demonstrated mastery of the previous topic.
Congratulate them genuinely (1-2 sentences).
Introduce the next topic briefly: {state.topic_name or "the next topic"}.
Ask an initial question on the new topic.
MUST end with a question about the new topic."""


def _build_recover_confidence(state, ev, dq):
    return f"""The student is struggling ({state.attempts} attempts without success).
DO NOT make them feel bad: this is completely normal.
Step back and explain the concept from basics.
Use the simplest possible language.
Use a concrete example or analogy.
Then ask a very simple question to rebuild confidence.
MUST end with an easy question they can succeed at."""


def _build_await_response(state, ev, dq):
    if state.phase == AgentPhase.SESSION_CLOSE:
        return """The revision session is complete.
Thank the student briefly. Do not teach or ask revision questions.
MUST end by asking whether they would like to start another session."""
    return f"""The student sent a message that wasn't an answer attempt.
Respond helpfully to their request.
If they asked for help, provide guidance without giving the answer.
If they're confused, clarify the question.
Then redirect them back to answering.
Current question: {state.current_question or "(none)"}
MUST end by restating the question or asking if they want to try."""


def _build_run_completion_review(state, ev, dq):
    return """The student is moving to the completion review.
Tell them in one or two sentences that a summary of what they know and some exam-style questions follow.
MUST end by asking if they are ready to see the review."""


_BUILDERS: dict[ActionType, Callable[[SessionState, Optional[Evaluation], Optional[str]], str]] = {
    ActionType.DIAGNOSTIC_QUESTION: _build_diagnostic_question,
    ActionType.INITIAL_QUESTION: _build_initial_question,
    ActionType.RETRY_WITH_HINT: _build_retry_with_hint,
    ActionType.REPHRASE_SIMPLER: _build_rephrase_simpler,
    ActionType.EXTEND_DIFFICULTY: _build_extend_difficulty,
    ActionType.CONFIRM_MASTERY: _build_confirm_mastery,
    ActionType.ADVANCE_TOPIC: _build_advance_topic,
    ActionType.RECOVER_CONFIDENCE: _build_recover_confidence,
    ActionType.AWAIT_RESPONSE: _build_await_response,
    ActionType.RUN_COMPLETION_REVIEW: _build_run_completion_review,
}


# ─── Sections ────────────────────────────────────────────────────────────────

def _section(title: str, body: str) -> str:
    return f"{SECTION_RULE}\n{title}\n{SECTION_RULE}\n{body}"


def _build_base_context(state: SessionState, subject_name: Optional[str]) -> str:
    lines = [TUTOR_BASE, ""]
    if subject_name:
        lines.append(f"Subject: {subject_name}")
    lines.append(f"Topic: {state.topic_name}" if state.topic_name else "Topic: To be selected")
    if state.attempts > 0:
        lines.append(f"Attempts on current topic: {state.attempts}")
    if state.correct_streak > 0:
        lines.append(f"Correct streak: {state.correct_streak}")
    lines.append("")
    lines.append(f"Current phase: {state.phase.value}")
    return "\n".join(lines)


def _build_constraints(action: ActionType) -> str:
    constraints = BASE_CONSTRAINTS + ACTION_CONSTRAINTS[action]
    return "\n".join(f"- {c}" for c in constraints)


def build_instructions(
    decision: Decision,
    state: SessionState,
    evaluation: Optional[Evaluation],
    modality_profile: Optional[LearningStyle],
    subject_name: Optional[str],
    intent: Optional[StudentIntent] = None,
    diagnostic_question: Optional[str] = None,
) -> str:
    """
    Build the full directive for one turn.

    These are CONSTRAINTS, not suggestions. The diagnostic directive carries
    no technique whitelist: diagnostic mode does not teach.
    """
    action = decision.action
    action_block = _BUILDERS[action](state, evaluation, diagnostic_question)
    if action in QUESTION_OPENING_ACTIONS:
        action_block = f"{action_block}\n{ANSWER_MARKER_RULE}"

    parts = [
        _build_base_context(state, subject_name),
        _section("YOUR INSTRUCTIONS (MANDATORY)", f"Action: {action.value}\n{action_block}"),
        _section("CONSTRAINTS (DO NOT VIOLATE)", _build_constraints(action)),
    ]

    if intent is not None and intent != StudentIntent.SOLUTION and action != ActionType.DIAGNOSTIC_QUESTION:
        parts.append(_section("STUDENT MESSAGE", get_intent_guidance(intent).instruction))

    if action != ActionType.DIAGNOSTIC_QUESTION:
        techniques = get_allowed_techniques(modality_profile)
        parts.append(_section("DELIVERY", build_technique_instructions(techniques)))

    return "\n\n".join(parts)


def build_constrained_system_prompt(instructions: str) -> str:
    """Wrap instructions in the system prompt used for constrained generation."""
    return f"""You are revIsion, a GCSE revision tutor.

Your responses are CONTROLLED by a revision session controller.
You must follow the instructions below EXACTLY.

{instructions}

RESPONSE VALIDATION:
Before sending your response, verify:
1. Does it end with a question? (REQUIRED)
2. Does it follow the action instructions? (REQUIRED)
3. Does it violate any constraints? (MUST NOT)

If any validation fails, revise your response."""
