"""
revIsion RSC v1.0 — Response Enforcer

Every generated tutor message passes through here BEFORE reaching the student.

This is a PURE FUNCTION module: no API calls, no side effects.
If enforcement still fails after the retry, callers use a pre-written safe
fallback for the phase.

Rules:
1. LENGTH             — word budget (200, or 40 in diagnostic mode)
2. NO_QUESTION        — must end with a question
3. TEACHING_LANGUAGE  — diagnostic mode only: no explaining, grading or hinting
4. WRONG_QUESTION     — diagnostic mode only: must end with the bank question
"""

import re
from dataclasses import dataclass, field
from typing import Optional

from revision_tutor import config
from revision_tutor.tutor.types import AgentPhase


@dataclass
class EnforceResult:
    """Result of enforcement check."""
    passed: bool
    text: str  # Cleaned text (may be truncated)
    violations: list[str] = field(default_factory=list)


# ─── Teaching Language ───────────────────────────────────────────────────────
# Diagnostic answers are never explained or graded

TEACHING_PHRASES = [
    "because", "that's right", "that is right", "correct", "incorrect",
    "wrong", "well done", "great job", "good job", "excellent", "perfect",
    "not quite", "actually", "remember", "the answer is", "this means",
    "for example", "hint", "let me explain", "in other words", "spot on",
]

_TEACHING_RE = re.compile(
    r"\b(" + "|".join(re.escape(p) for p in TEACHING_PHRASES) + r")\b",
    re.IGNORECASE,
)

# Hidden marker the tutor appends after a new question
ANSWER_MARKER_RE = re.compile(r"\s*\[answer:\s*(.*?)\]\s*$", re.IGNORECASE | re.DOTALL)


# ─── Safe Fallback Responses ─────────────────────────────────────────────────
# Used when generation fails twice: never leave the student without a prompt.

SAFE_FALLBACKS = {
    AgentPhase.GREETING: "Hi! Which topic would you like to revise today?",
    AgentPhase.TOPIC_SELECTION: "Which topic would you like to revise?",
    AgentPhase.CURRICULUM_DIAGNOSTIC: "Thanks. What would you like to focus on in this subject?",
    AgentPhase.KNOWLEDGE_INGESTION: "Let's start with the basics. What do you already know about this topic?",
    AgentPhase.ACTIVE_REVISION: "Let's try that again. Can you give it another go?",
    AgentPhase.RECALL_CHECK: "Can you explain that idea again in your own words?",
    AgentPhase.MISCONCEPTION_REPAIR: "Let's look at this a different way. What do you think the key idea is?",
    AgentPhase.PANIC_RECOVERY: "This is a common sticking point. Shall we take it one small step at a time?",
    AgentPhase.COMPLETION_REVIEW: "Your review is being prepared. Are you ready to see it?",
    AgentPhase.SESSION_CLOSE: "That's the end of this session. Would you like to start another one?",
}

DEFAULT_FALLBACK = "Let's try that again. Can you give it another go?"


def strip_answer_marker(text: str) -> str:
    return ANSWER_MARKER_RE.sub("", text).strip()


def _normalise_for_compare(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip().lower()


# ─── Enforcement Rules ───────────────────────────────────────────────────────

def _check_length(text: str, max_words: int) -> tuple[bool, str]:
    """Rule 1: word budget. Truncate at the last complete sentence within it."""
    words = text.split()
    if len(words) <= max_words:
        return True, text

    sentences = re.findall(r"[^.!?]+[.!?]*", text)
    truncated = []
    word_count = 0
    for sentence in sentences:
        s_words = sentence.split()
        if word_count + len(s_words) > max_words:
            break
        truncated.append(sentence.strip())
        word_count += len(s_words)

    if truncated:
        return False, " ".join(truncated)
    # No sentence boundary found, hard cut at the word limit
    return False, " ".join(words[:max_words])


def _check_ends_with_question(text: str) -> bool:
    """Rule 2."""
    return strip_answer_marker(text).rstrip().endswith("?")


def _check_no_teaching(text: str) -> bool:
    """Rule 3: diagnostic mode only."""
    return _TEACHING_RE.search(text) is None


def _check_expected_question(text: str, expected_question: str) -> bool:
    """Rule 4: diagnostic mode must end with the bank question verbatim."""
    return _normalise_for_compare(strip_answer_marker(text)).endswith(
        _normalise_for_compare(expected_question)
    )


# ─── Main Enforcement Function ───────────────────────────────────────────────

def enforce(
    text: str,
    phase: AgentPhase,
    diagnostic_mode: bool = False,
    expected_question: Optional[str] = None,
    max_words: Optional[int] = None,
) -> EnforceResult:
    """
    Run the enforcement rules on a generated tutor message.

    Args:
        text: Raw generated message
        phase: Phase the message is delivered in
        diagnostic_mode: Apply the no-teaching and exact-question rules
        expected_question: The diagnostic question the message must end with
        max_words: Override the word budget

    Returns:
        EnforceResult with passed flag, cleaned text, and violation list
    """
    if max_words is None:
        max_words = config.DIAGNOSTIC_MAX_WORDS if diagnostic_mode else config.MAX_RESPONSE_WORDS

    violations = []
    current_text = text.strip()

    if not current_text:
        return EnforceResult(passed=False, text="", violations=["EMPTY"])

    passed, current_text = _check_length(current_text, max_words)
    if not passed:
        violations.append("LENGTH")

    if not _check_ends_with_question(current_text):
        violations.append("NO_QUESTION")

    if diagnostic_mode:
        if not _check_no_teaching(current_text):
            violations.append("TEACHING_LANGUAGE")
        if expected_question and not _check_expected_question(current_text, expected_question):
            violations.append("WRONG_QUESTION")

    return EnforceResult(
        passed=len(violations) == 0,
        text=current_text,
        violations=violations,
    )


def get_safe_fallback(phase: AgentPhase) -> str:
    """Pre-written safe response for a phase."""
    return SAFE_FALLBACKS.get(phase, DEFAULT_FALLBACK)


def diagnostic_fallback(next_question: str) -> str:
    """Neutral template used when diagnostic generation fails twice."""
    return f"Thanks. {next_question}"
