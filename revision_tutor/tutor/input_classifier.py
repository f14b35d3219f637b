"""
revIsion RSC v1.0 — Input Classifier

Classifies a student message BEFORE any grading so that explanations,
questions and "I don't know" are never marked as wrong answers.

Pattern-based and content-agnostic. Priority order:
    uncertainty → skip → question → meta → explanation → solution
"""

import logging
import re
from dataclasses import dataclass

from revision_tutor.tutor.types import StudentIntent

logger = logging.getLogger("revision.input_classifier")


def _compile(patterns: list[str]) -> list[re.Pattern]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


# ─── Intent Patterns ─────────────────────────────────────────────────────────

UNCERTAINTY_PATTERNS = _compile([
    r"^i\s*(don'?t|do\s*not)\s*know",
    r"^idk$",
    r"^no\s*idea",
    r"^not\s*sure",
    r"^i('m|\s*am)\s*not\s*sure",
    r"^i\s*(have\s*)?no\s*(idea|clue)",
    r"^(i\s*)?(can'?t|cannot)\s*(remember|recall)",
    r"^i\s*(forgot|forget)",
    r"^pass$",
    r"^\?+$",
])

SKIP_PATTERNS = _compile([
    r"^(skip|next|move\s*on)\b",
    r"can\s*we\s*(skip|move\s*on)",
    r"let'?s\s*(skip|move\s*on)",
    r"i\s*want\s*to\s*(skip|move\s*on)",
    r"different\s*(question|topic|one)",
    r"try\s*(something|another|a\s*different)",
    r"can\s*we\s*try\s*something\s*else",
])

QUESTION_PATTERNS = _compile([
    r"^what\s+(do\s+you\s+mean|does\s+that\s+mean|is\s+that)",
    r"^(can|could)\s+you\s+(explain|clarify|help)",
    r"^how\s+(do|does|should|would)",
    r"^why\s+(do|does|is|are|should)",
    r"^i\s*don'?t\s*understand",
    r"^what'?s\s+(a|an|the)",
])

EXPLANATION_MARKERS = _compile([
    r"\b(because|since|therefore|so\s+that|which\s+means)\b",
    r"\b(if\s+you|when\s+you|first\s+you|then\s+you)\b",
    r"\b(by\s+using|by\s+substitut|by\s+factor|by\s+expand)",
    r"\b(the\s+reason|this\s+means|this\s+shows|this\s+gives)\b",
    r"\b(i\s+would|you\s+would|we\s+would)\s+(start|begin|first)",
    r"\b(step\s+1|step\s+one|first\s+step|to\s+solve\s+this)\b",
    r"\b(working|method|approach|process)\b",
    r"\b(substitute|factorise|factorize|expand|simplify|rearrange)\b",
])

META_PATTERNS = _compile([
    r"^(hi|hello|hey|hiya)\b",
    r"^(thanks|thank\s*you|cheers|ta)\b",
    r"^(ok|okay|sure|yes|no|yep|nope|yeah|nah)$",
    r"^(good|great|cool|nice|awesome)$",
    r"^(bye|goodbye|see\s*you|later)\b",
])

# Answer-shaped input: "5?" or "x = 3?" is still a solution attempt
ANSWER_PATTERNS = _compile([
    r"^-?\d+(\.\d+)?$",
    r"^[a-z]\s*=\s*-?\d+",
    r"^-?\d+\s*(,|or|and)\s*-?\d+",
    r"^[a-z]\s*=\s*-?\d+\s*(,|or|and)",
    r"^\(?[a-z]\s*[+\-]\s*\d+\)?\s*\(?[a-z]",
    r"^(true|false)$",
    r"^[a-e]$",
    r"^(yes|no)$",
])

# Short explanation-marked messages are still treated as answers
EXPLANATION_MIN_LENGTH = 20


def _matches(patterns: list[re.Pattern], text: str) -> bool:
    return any(p.search(text) for p in patterns)


def classify_intent(message: str) -> StudentIntent:
    """Classify one student message. Empty input counts as uncertainty."""
    trimmed = message.strip()
    lower = trimmed.lower()

    if not trimmed:
        return StudentIntent.UNCERTAINTY

    if _matches(UNCERTAINTY_PATTERNS, lower):
        return StudentIntent.UNCERTAINTY

    if _matches(SKIP_PATTERNS, lower):
        return StudentIntent.SKIP

    if trimmed.endswith("?"):
        if _matches(QUESTION_PATTERNS, lower):
            return StudentIntent.QUESTION
        if not _matches(ANSWER_PATTERNS, lower.rstrip("?").strip()):
            return StudentIntent.QUESTION

    if _matches(META_PATTERNS, lower):
        return StudentIntent.META

    if (
        _matches(EXPLANATION_MARKERS, lower)
        and not _matches(ANSWER_PATTERNS, lower)
        and len(trimmed) > EXPLANATION_MIN_LENGTH
    ):
        return StudentIntent.EXPLANATION

    return StudentIntent.SOLUTION


# ─── Intent Guidance ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class IntentGuidance:
    should_validate: bool
    response_action: str
    instruction: str


INTENT_GUIDANCE = {
    StudentIntent.SOLUTION: IntentGuidance(
        True, "VALIDATE_AND_RESPOND",
        "The student attempted an answer. Respond to the evaluation result.",
    ),
    StudentIntent.EXPLANATION: IntentGuidance(
        False, "ACKNOWLEDGE_REASONING",
        "The student is showing their reasoning. Acknowledge it briefly, "
        "then ask for their final answer.",
    ),
    StudentIntent.UNCERTAINTY: IntentGuidance(
        False, "PROVIDE_SCAFFOLDING",
        "The student does not know. Offer a small scaffold or first step. "
        "Do not give the answer.",
    ),
    StudentIntent.QUESTION: IntentGuidance(
        False, "ANSWER_QUESTION",
        "The student asked for clarification. Clarify the question only, "
        "then ask them to try again.",
    ),
    StudentIntent.SKIP: IntentGuidance(
        False, "SKIP_TO_NEXT",
        "The student wants to move on. Do not revisit the previous question. "
        "Ask a new question.",
    ),
    StudentIntent.META: IntentGuidance(
        False, "BRIEF_ACKNOWLEDGE",
        "The message is not an answer. Acknowledge briefly and restate the "
        "current question.",
    ),
}


def get_intent_guidance(intent: StudentIntent) -> IntentGuidance:
    return INTENT_GUIDANCE[intent]


def needs_final_answer(intent: StudentIntent) -> bool:
    return intent in (StudentIntent.EXPLANATION, StudentIntent.QUESTION, StudentIntent.META)


# ─── Request Detectors ───────────────────────────────────────────────────────

HELP_PATTERNS = _compile([
    r"^(help|hint|clue)\b",
    r"can (you|i) (get|have) (a )?hint",
    r"give me a hint",
    r"i('m| am) (stuck|confused)",
    r"i don'?t (understand|get it)",
    r"what (do you mean|does that mean)",
    r"can you explain",
    r"explain (it|this|that)",
])

SKIP_REQUEST_PATTERNS = _compile([
    r"^(skip|next|move on)\b",
    r"can we (skip|move on)",
    r"let'?s (skip|move on)",
    r"i want to (skip|move on)",
    r"different (question|topic)",
])

# Completion requests must be the whole message, so an answer that merely
# contains "test me" or "I'm done" is never read as one
_REQUEST_LEAD = r"^(?:(?:ok(?:ay)?|right|so|please|now|yes)[,.!]?\s+)*"
_REQUEST_TAIL = r"(?:\s+(?:now|please|then))*[\s.!?]*$"
_EXAM = r"(?:mock\s+)?(?:tests?|exams?|quiz(?:zes)?|(?:exam\s+)?questions)"


def _request(body: str) -> str:
    return _REQUEST_LEAD + body + _REQUEST_TAIL


COMPLETION_PATTERNS = _compile([
    _request(r"(?:(?:can|could|will)\s+you\s+)?(?:please\s+)?(?:finish\s+(?:and\s+)?)?(?:test|check|quiz|exam)\s+me"
             r"(?:\s+on\s+(?:this|it|everything|what\s+i'?ve\s+(?:done|revised|learn(?:ed|t))))?"),
    _request(r"am\s+i\s+ready(?:\s+(?:for|to\s+(?:take|sit|do))\s+(?:the\s+|my\s+|a\s+)?(?:tests?|exams?|mocks?|gcses?))?"),
    _request(r"(?:i'?m|i\s+am)\s+(?:all\s+)?(?:done|finished)(?:\s+(?:revising|with\s+(?:revision|this\s+topic|everything)))?"
             r"(?:[,.]?\s+(?:(?:can|could)\s+you\s+)?(?:test|check|quiz)\s+me)?"),
    _request(r"(?:i'?m\s+|i\s+am\s+)?ready\s+(?:for|to\s+(?:take|sit|do))\s+(?:the\s+|my\s+|a\s+)?(?:tests?|exams?|mocks?)"),
    _request(r"(?:can|could)\s+i\s+(?:have|get|do|try)\s+(?:a\s+|some\s+)?" + _EXAM),
    _request(r"(?:give|show)\s+me\s+(?:a\s+|some\s+)?" + _EXAM),
    _request(r"check\s+my\s+(?:progress|knowledge|understanding)"),
    _request(r"(?:a\s+)?mock\s+(?:exams?|tests?|questions)"),
])

# Not an answer attempt at all: evaluator short-circuits these
META_RESPONSE_PATTERNS = _compile([
    r"^(hi|hello|hey|hiya)\b",
    r"^(thanks|thank you|cheers)\b",
    r"^(ok|okay|sure|yes|no|yep|nope)$",
    r"^(what|how|why|can you|could you|please)\s+(do|explain|help|tell)",
    r"^(help|hint|clue)\b",
    r"^(skip|next|move on)\b",
    r"^i\s*(don'?t|do not)\s*know",
    r"^idk$",
    r"^no\s*idea",
    r"\?$",
])


def is_help_request(message: str) -> bool:
    return _matches(HELP_PATTERNS, message.lower().strip())


def is_skip_request(message: str) -> bool:
    return _matches(SKIP_REQUEST_PATTERNS, message.lower().strip())


def is_completion_request(message: str) -> bool:
    """Explicit request to finish and be tested ("test me", "am I ready", "mock exam")."""
    return _matches(COMPLETION_PATTERNS, message.lower().strip())


def is_meta_response(message: str) -> bool:
    """Greetings, acknowledgements, help/skip requests and question-shaped messages."""
    lower = message.lower().strip()
    if lower.endswith("?") and _matches(ANSWER_PATTERNS, lower.rstrip("?").strip()):
        # Tentative answer ("5?") is still an attempt
        return False
    return _matches(META_RESPONSE_PATTERNS, lower)
