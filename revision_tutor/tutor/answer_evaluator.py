"""
revIsion RSC v1.0 — Answer Evaluator

Sole responsibility: classify a student answer as a structured Evaluation.
NOT a tutor. NOT an encourager. ONLY an evaluator.

Pipeline:
1. No open question           → unknown/low, no LLM call
2. Meta message (hi, ok, ?)   → unknown/high/off_topic, no LLM call
3. Numeric expected answer    → deterministic set check first
4. Otherwise                  → one constrained LLM call, strict decode,
                                one identical retry, then unknown/low

Nothing is raised to the caller.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Optional

from pydantic import ValidationError

from revision_tutor import config
from revision_tutor.tutor.answer_normaliser import (
    compare_with_tolerance,
    contains_math_expression,
    is_numeric_set,
    matching_values,
    normalise_to_set,
)
from revision_tutor.tutor.generation import GenerateFn, generate_with_retry, strip_markdown_fences
from revision_tutor.tutor.input_classifier import (
    is_help_request,
    is_meta_response,
    is_skip_request,
)
from revision_tutor.tutor.types import (
    ErrorType,
    Evaluation,
    EvaluationConfidence,
    EvaluationResult,
    GenerationOutputError,
)

logger = logging.getLogger("revision.evaluator")

__all__ = [
    "EVALUATION_PROMPT",
    "EvaluationOutcome",
    "build_evaluation_request",
    "evaluate_answer",
    "evaluate_answer_detailed",
    "is_help_request",
    "is_skip_request",
    "parse_evaluation",
]

EVALUATION_PROMPT = """You are an Answer Evaluation Agent inside an AI-powered GCSE revision system.

Your sole responsibility is to evaluate a student's response to a revision question and return a strictly structured JSON assessment.

You are NOT a tutor.
You do NOT explain concepts.
You do NOT encourage or motivate.
You do NOT teach.

You ONLY evaluate.

## Your Task

1. Determine whether the student's answer is:
   - correct
   - partial
   - incorrect

2. Assess the student's confidence level based on wording:
   - high
   - medium
   - low

3. If the answer is not fully correct, identify the primary error type:
   - recall_gap (missing facts or definitions)
   - concept_gap (misunderstanding the idea)
   - confusion (mixing concepts)
   - exam_technique (poor structure, vague wording)
   - guessing (clearly uncertain or speculative)

If the answer is fully correct, set error_type to null.
If the answer is partial or incorrect, error_type must NOT be null.

## Output Rules (ABSOLUTE)

You must return ONLY valid JSON.
No prose.
No markdown.
No commentary.
No emojis.

The response MUST match this schema exactly:

{
  "evaluation": "correct | partial | incorrect",
  "confidence": "high | medium | low",
  "error_type": "recall_gap | concept_gap | confusion | exam_technique | guessing | null"
}

## Evaluation Guidelines

- Be strict but fair
- GCSE mark-scheme logic applies:
  - Missing key terms → partial
  - Incorrect definitions → incorrect
  - Correct idea but weak explanation → partial
- Do NOT reward confidence if the answer is wrong
- Do NOT penalise spelling unless meaning is unclear
- If unsure between two grades, choose the lower one
- Answers with several values (roots, solutions, factors) are compared as a SET:
  order and phrasing do not matter ("x = 3 or x = 2" equals "2, 3")

## Failure Handling

If the student response is empty or a non-attempt, return:
{
  "evaluation": "incorrect",
  "confidence": "low",
  "error_type": "recall_gap"
}

## Final Rule

If you cannot confidently evaluate the answer, still return the closest valid classification.
You may NEVER refuse.
You may NEVER return free text.

Your output feeds a control system.
Precision matters more than kindness."""


@dataclass
class EvaluationOutcome:
    """Evaluation plus the answer values credited so far for the open question."""
    evaluation: Evaluation
    credited_values: set[str] = field(default_factory=set)
    deterministic: bool = False


def build_evaluation_request(
    student_answer: str,
    current_question: str,
    expected_answer_hint: Optional[str],
    topic_name: Optional[str],
    mark_scheme: Optional[str] = None,
    difficulty_level: Optional[str] = None,
) -> str:
    """Render the user-side evaluation request."""
    lines = ["## Evaluation Request", "", f"**Topic:** {topic_name or 'General GCSE'}"]
    if difficulty_level:
        lines.append(f"**Difficulty:** {difficulty_level}")
    lines += ["", "**Question asked:**", current_question]
    if mark_scheme:
        lines += ["", "**Mark scheme / Success criteria:**", mark_scheme]
    elif expected_answer_hint:
        lines += ["", "**Expected answer should include:**", expected_answer_hint]
    lines += ["", "**Student's response:**", student_answer]
    lines += ["", "---", "Evaluate this response. Return ONLY the JSON object."]
    return "\n".join(lines)


def parse_evaluation(raw: str) -> Evaluation:
    """
    Strictly decode a graded evaluation.

    Raises GenerationOutputError on bad JSON, a missing or out-of-enum
    field, an error_type that contradicts the result, or an "unknown" grade.
    """
    text = strip_markdown_fences(raw)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise GenerationOutputError(f"evaluation is not JSON: {text[:200]!r}") from e
    if not isinstance(data, dict):
        raise GenerationOutputError(f"evaluation is not an object: {text[:200]!r}")
    try:
        evaluation = Evaluation.model_validate(data)
    except ValidationError as e:
        raise GenerationOutputError(f"evaluation failed validation: {e}") from e
    if not evaluation.is_graded:
        raise GenerationOutputError("model returned an ungraded evaluation")
    return evaluation


def _deterministic_check(
    student_answer: str,
    expected_answer_hint: Optional[str],
    previous_values: set[str],
) -> Optional[EvaluationOutcome]:
    """
    Set-equivalence check for numeric answers. Returns None when the LLM
    should decide: non-numeric expectation, non-numeric answer, or no overlap.
    """
    if not expected_answer_hint:
        return None
    expected = normalise_to_set(expected_answer_hint)
    if not is_numeric_set(expected):
        return None

    student = normalise_to_set(student_answer)
    if not (is_numeric_set(student) or contains_math_expression(student_answer)):
        return None

    merged = student | previous_values
    verdict = compare_with_tolerance(merged, expected, config.NUMERIC_TOLERANCE)
    credited = matching_values(merged, expected, config.NUMERIC_TOLERANCE)

    if verdict == "correct":
        return EvaluationOutcome(
            Evaluation(result=EvaluationResult.CORRECT, confidence=EvaluationConfidence.HIGH),
            credited_values=credited,
            deterministic=True,
        )
    if verdict == "partial":
        # Incomplete answer: retry the same question with a hint
        return EvaluationOutcome(
            Evaluation(
                result=EvaluationResult.PARTIAL,
                confidence=EvaluationConfidence.MEDIUM,
                error_type=ErrorType.EXAM_TECHNIQUE,
            ),
            credited_values=credited,
            deterministic=True,
        )
    return None


async def evaluate_answer_detailed(
    student_answer: str,
    current_question: Optional[str],
    expected_answer_hint: Optional[str],
    topic_name: Optional[str],
    llm_call_func: GenerateFn,
    *,
    mark_scheme: Optional[str] = None,
    difficulty_level: Optional[str] = None,
    previous_values: Optional[set[str]] = None,
) -> EvaluationOutcome:
    """
    Full evaluation pipeline.

    Args:
        student_answer: What the student typed
        current_question: The open question, or None
        expected_answer_hint: Expected answer / key points, if known
        topic_name: Topic for context
        llm_call_func: Injected async generator (system_directive, context) -> text
        mark_scheme: Success criteria, preferred over the hint in the request
        difficulty_level: Optional difficulty label for context
        previous_values: Values already credited for this question

    Returns:
        EvaluationOutcome. Never raises.
    """
    previous = set(previous_values or ())

    if current_question is None:
        return EvaluationOutcome(Evaluation.unknown(), previous)

    if is_meta_response(student_answer):
        logger.info(f"Meta response, not graded: '{student_answer[:40]}'")
        return EvaluationOutcome(
            Evaluation.unknown(EvaluationConfidence.HIGH, ErrorType.OFF_TOPIC),
            previous,
        )

    outcome = _deterministic_check(student_answer, expected_answer_hint, previous)
    if outcome is not None:
        logger.info(
            f"Answer eval (set check): '{student_answer[:40]}' -> "
            f"{outcome.evaluation.result.value} (credited: {sorted(outcome.credited_values)})"
        )
        return outcome

    request = build_evaluation_request(
        student_answer, current_question, expected_answer_hint,
        topic_name, mark_scheme, difficulty_level,
    )
    evaluation = await generate_with_retry(
        llm_call_func,
        EVALUATION_PROMPT,
        [{"role": "user", "content": request}],
        parse_evaluation,
        label="evaluator",
    )

    if evaluation is None:
        logger.warning("Evaluation failed after retry, using unknown")
        return EvaluationOutcome(Evaluation.unknown(), previous)

    logger.info(
        f"Answer eval: '{student_answer[:40]}' -> {evaluation.result.value} "
        f"({evaluation.confidence.value}, {evaluation.error_type.value if evaluation.error_type else None})"
    )
    return EvaluationOutcome(evaluation, previous)


async def evaluate_answer(
    student_answer: str,
    current_question: Optional[str],
    expected_answer_hint: Optional[str],
    topic_name: Optional[str],
    llm_call_func: GenerateFn,
    *,
    mark_scheme: Optional[str] = None,
    difficulty_level: Optional[str] = None,
    previous_values: Optional[set[str]] = None,
) -> Evaluation:
    """Evaluate one answer. See evaluate_answer_detailed."""
    outcome = await evaluate_answer_detailed(
        student_answer,
        current_question,
        expected_answer_hint,
        topic_name,
        llm_call_func,
        mark_scheme=mark_scheme,
        difficulty_level=difficulty_level,
        previous_values=previous_values,
    )
    return outcome.evaluation
