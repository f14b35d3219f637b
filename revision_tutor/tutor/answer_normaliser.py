"""
revIsion RSC v1.0 — Answer Normaliser

Turns a free-text answer into an unordered set of canonical values so that
"x = 2 or x = 4", "4, 2" and "I think it's 2 and 4" all compare equal.

Content-agnostic: works for algebra roots, numeric answers and short
key-term answers alike. Pure functions, no LLM.
"""

import math
import re
from typing import Literal, Optional

Verdict = Literal["correct", "partial", "incorrect"]


# ─── Filler Patterns ─────────────────────────────────────────────────────────

FILLER_PREFIXES = [
    r"^(i\s+think|i\s+believe|i\s+guess|maybe|probably)\b\s*",
    r"^(the\s+answer\s+is|it'?s|that'?s|it\s+would\s+be|it\s+is)\b\s*",
    r"^(so|well|um|uh|like|okay|ok)\b[\s,]*",
    r"^(my\s+answer\s+is|i\s+would\s+say|i'?d\s+say)\b\s*",
]

FILLER_SUFFIXES = [
    r"\s*\b(i\s+think|right|correct|yeah|yes|no)\s*\??$",
    r"\s*\b(isn'?t\s+it|is\s+it|right)\s*\??$",
]

_PREFIX_RES = [re.compile(p, re.IGNORECASE) for p in FILLER_PREFIXES]
_SUFFIX_RES = [re.compile(p, re.IGNORECASE) for p in FILLER_SUFFIXES]

# Separators that split one answer into several values
_SEPARATOR_RE = re.compile(r"\s*(?:,|;|\band\b|\bor\b|\bwith\b|&)\s*", re.IGNORECASE)

_ASSIGNMENT_RE = re.compile(r"^[a-z]\s*=\s*(.+)$", re.IGNORECASE)
_FRACTION_RE = re.compile(r"^(-?\d+)\s*/\s*(\d+)$")
_NUMBER_RE = re.compile(r"^-?\d+(?:\.\d+)?$")

_MATH_PATTERNS = [
    re.compile(r"[a-z]\s*=\s*-?\d", re.IGNORECASE),  # variable assignment
    re.compile(r"\d\s*[+\-*/^]\s*\d"),                # arithmetic
    re.compile(r"\(\s*[a-z]\s*[+\-]", re.IGNORECASE), # factored form
    re.compile(r"\d\s*/\s*\d"),                       # fraction
    re.compile(r"\bsqrt\b|\broot\b", re.IGNORECASE),  # square root
    re.compile(r"\^\s*\d"),                           # exponent
]


# ─── Helpers ─────────────────────────────────────────────────────────────────

def _remove_filler(answer: str) -> str:
    cleaned = answer.strip()
    previous = None
    # Fillers stack ("so I think it's 5"), strip until nothing changes
    while cleaned != previous:
        previous = cleaned
        for pattern in _PREFIX_RES:
            cleaned = pattern.sub("", cleaned).strip()
        for pattern in _SUFFIX_RES:
            cleaned = pattern.sub("", cleaned).strip()
    return cleaned


def _canonical_number(value: float) -> Optional[str]:
    """Shortest decimal form, or None when the value is not finite."""
    if not math.isfinite(value):
        return None
    if value == int(value):
        return str(int(value))
    return f"{value:.10g}"


def _normalise_value(value: str) -> str:
    normalised = _remove_filler(value).lower()
    normalised = normalised.strip("\"'").strip()

    match = _ASSIGNMENT_RE.match(normalised)
    while match:
        normalised = match.group(1).strip()
        match = _ASSIGNMENT_RE.match(normalised)

    fraction = _FRACTION_RE.match(normalised)
    if fraction:
        try:
            numerator, denominator = int(fraction.group(1)), int(fraction.group(2))
            quotient = numerator / denominator if denominator else None
        except (OverflowError, ValueError):
            # Too large for a float, or past the int digit limit
            quotient = math.inf
        if quotient is not None:
            normalised = _canonical_number(quotient) or normalised

    normalised = re.sub(r"\s+", " ", normalised).strip()

    if _NUMBER_RE.match(normalised):
        canonical = _canonical_number(float(normalised))
        # Exponent form (huge values) and overflow keep the literal token
        if canonical is not None and "e" not in canonical:
            normalised = canonical

    return normalised


def parse_number(value: str) -> Optional[float]:
    """Float value of a canonical token, or None for non-numeric or out-of-range tokens."""
    if _NUMBER_RE.match(value.strip()):
        number = float(value)
        if math.isfinite(number):
            return number
    return None


def is_numeric_set(values: set[str]) -> bool:
    """True when every value in a non-empty set is a plain number."""
    return bool(values) and all(parse_number(v) is not None for v in values)


# ─── Public API ──────────────────────────────────────────────────────────────

def normalise_to_set(answer: str) -> set[str]:
    """
    Normalise an answer to an order-independent set of values.

    "x = 2 or x = 4"   → {"2", "4"}
    "I think it's 2, 4" → {"2", "4"}
    "the answer is 5"  → {"5"}
    """
    if not answer:
        return set()
    cleaned = _remove_filler(answer)
    tokens = [t.strip() for t in _SEPARATOR_RE.split(cleaned)]
    values = {_normalise_value(t) for t in tokens if t}
    return {v for v in values if v}


def compare_value_sets(student: set[str], expected: set[str]) -> Verdict:
    """Set comparison behind validate_normalised_answer. Extra values are allowed."""
    if not student or not expected:
        return "incorrect"
    if student == expected:
        return "correct"
    overlap = student & expected
    if not overlap:
        return "incorrect"
    if len(overlap) == len(expected):
        return "correct"
    return "partial"


def validate_normalised_answer(student_answer: str, expected_answer: str) -> Verdict:
    """
    Validate a student answer against the expected answer by set comparison.

    correct:   every expected value present (extras are fine)
    partial:   some but not all expected values present
    incorrect: nothing in common, or either side empty
    """
    return compare_value_sets(
        normalise_to_set(student_answer),
        normalise_to_set(expected_answer),
    )


def matching_values(
    student: set[str],
    expected: set[str],
    tolerance: float = 0.001,
) -> set[str]:
    """Student values equal to, or numerically within tolerance of, an expected value."""
    expected_numbers = [n for n in map(parse_number, expected) if n is not None]
    matched = set()
    for value in student:
        if value in expected:
            matched.add(value)
            continue
        number = parse_number(value)
        if number is not None and any(abs(number - e) <= tolerance for e in expected_numbers):
            matched.add(value)
    return matched


def compare_with_tolerance(
    student: set[str],
    expected: set[str],
    tolerance: float = 0.001,
) -> Verdict:
    """compare_value_sets, with numeric values matched within an absolute tolerance."""
    if not student or not expected:
        return "incorrect"

    student_numbers = [n for n in map(parse_number, student) if n is not None]
    expected_numbers = [n for n in map(parse_number, expected) if n is not None]

    if student_numbers and expected_numbers:
        matched = sum(
            1 for e in expected_numbers
            if any(abs(s - e) <= tolerance for s in student_numbers)
        )
        if matched == len(expected_numbers):
            return "correct"
        if matched > 0:
            return "partial"

    return compare_value_sets(student, expected)


def validate_with_tolerance(
    student_answer: str,
    expected_answer: str,
    tolerance: float = 0.001,
) -> Verdict:
    """Numeric comparison within an absolute tolerance, falling back to set comparison."""
    return compare_with_tolerance(
        normalise_to_set(student_answer),
        normalise_to_set(expected_answer),
        tolerance,
    )


def contains_math_expression(answer: str) -> bool:
    """True if the answer looks like maths (assignment, arithmetic, fraction, root, power)."""
    return any(p.search(answer) for p in _MATH_PATTERNS)


def normalise_text_answer(answer: str) -> str:
    """Key-term form of a prose answer: no filler, articles or punctuation."""
    normalised = _remove_filler(answer).lower()
    normalised = re.sub(r"\b(a|an|the)\b", "", normalised)
    normalised = re.sub(r"[.,!;:'\"]", "", normalised)
    return re.sub(r"\s+", " ", normalised).strip()
