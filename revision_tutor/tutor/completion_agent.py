"""
revIsion RSC v1.0 — Completion & Exam Readiness Agent

Runs ONLY in completion_review, once the learner has finished revising.

It does NOT teach. It does NOT revise. It does NOT give hints.

It:
- Summarises what the learner now demonstrably knows (secure topics only)
- Relates that knowledge to GCSE exam expectations
- Generates 5-10 mock exam questions in past-paper style
- Signals readiness honestly and conservatively

READ-ONLY: it never changes session state or progress.
"""

import json
import logging
from collections import Counter
from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError

from revision_tutor.tutor.generation import GenerateFn, generate_with_retry, strip_markdown_fences
from revision_tutor.tutor.input_classifier import is_completion_request
from revision_tutor.tutor.types import ErrorType, EvaluationResult, GenerationOutputError

logger = logging.getLogger("revision.completion_agent")

__all__ = [
    "COMPLETION_PROMPT",
    "CompletionInput",
    "CompletionOutput",
    "EvaluationSummary",
    "MockQuestion",
    "TopicProgress",
    "build_completion_request",
    "build_fallback_output",
    "is_completion_request",
    "parse_completion_output",
    "run_completion_agent",
]

ReadinessSignal = Literal[
    "Ready to progress",
    "One more practice round recommended",
    "Specific topic review recommended",
]
UnderstandingState = Literal["building", "strengthening", "secure"]

MIN_MOCK_QUESTIONS = 5
MAX_MOCK_QUESTIONS = 10
FALLBACK_TOPIC_LIMIT = 5


# ─── Models ──────────────────────────────────────────────────────────────────

class TopicProgress(BaseModel):
    topic_id: Optional[str] = None
    attempts: int = 0
    correct_count: int = 0
    incorrect_count: int = 0
    partial_count: int = 0
    last_evaluation: Optional[EvaluationResult] = None
    understanding_state: UnderstandingState = "building"


class EvaluationSummary(BaseModel):
    topic_id: str
    topic_name: str
    total_attempts: int = 0
    correct_count: int = 0
    error_types: list[Optional[ErrorType]] = Field(default_factory=list)


class CompletionInput(BaseModel):
    student_id: str
    session_id: str
    subject_id: str
    subject_name: str
    exam_board: Optional[str] = None
    completed_topics: list[str] = Field(default_factory=list)
    revision_progress: list[TopicProgress] = Field(default_factory=list)
    evaluation_summary: list[EvaluationSummary] = Field(default_factory=list)


class MockQuestion(BaseModel):
    question: str
    marks: int
    command_word: str
    topic: str


class CompletionOutput(BaseModel):
    knowledge_summary: list[str]
    exam_mapping: str
    mock_questions: list[MockQuestion]
    readiness_signal: ReadinessSignal


# ─── Prompt ──────────────────────────────────────────────────────────────────

COMPLETION_PROMPT = f"""You are a Completion & Exam Readiness Agent inside an AI-powered GCSE revision system.

You run ONLY when a learner has completed a revision module for a subject.

You do NOT teach.
You do NOT revise.
You do NOT introduce new content.
You do NOT give hints.

## Output Format (JSON)

Return ONLY valid JSON matching this schema exactly:

{{
  "knowledge_summary": ["bullet point 1", "bullet point 2"],
  "exam_mapping": "Text explaining how topics appear in GCSE exams",
  "mock_questions": [
    {{
      "question": "Question text [X marks]",
      "marks": X,
      "command_word": "Calculate|Explain|Describe|etc",
      "topic": "Topic name"
    }}
  ],
  "readiness_signal": "Ready to progress" | "One more practice round recommended" | "Specific topic review recommended"
}}

## Knowledge Summary Rules
- Only include topics with understanding_state = "secure"
- Mention topics that required the most attempts
- No encouragement, praise or teaching language
- Tone: "You now consistently demonstrate understanding of..."

## Exam Mapping Rules
- Explain typical question formats for these topics
- Include common mark ranges (e.g. "typically 2-4 marks")
- Be factual. No advice, no revision tips, no scare language

## Mock Questions Rules
- Generate {MIN_MOCK_QUESTIONS}-{MAX_MOCK_QUESTIONS} GCSE-style exam questions
- Use correct command words: Calculate, Explain, Describe, Compare, Evaluate, State, Define, Outline
- Include mark values in brackets: [3 marks]
- Draw ONLY from the completed topics provided
- Do NOT include answers or worked solutions

## Readiness Signal Rules
Return EXACTLY one of:
- "Ready to progress": all topics secure with minimal errors
- "One more practice round recommended": topics secure but error trends suggest gaps
- "Specific topic review recommended": any topic had excessive attempts or persistent error patterns
Be conservative: if evidence is insufficient, recommend more practice.

## Absolute Output Rules
- No markdown, no emojis, no motivational language
- Return ONLY the JSON object, nothing else"""


def build_completion_request(completion_input: CompletionInput) -> str:
    """Render the user-side review request from progress data."""
    topic_names = {s.topic_id: s.topic_name for s in completion_input.evaluation_summary}

    lines = ["## Completion Review Request", "", f"**Subject:** {completion_input.subject_name}"]
    if completion_input.exam_board:
        lines.append(f"**Exam Board:** {completion_input.exam_board}")

    lines += ["", "**Completed Topics:**"]
    lines += [f"- {topic}" for topic in completion_input.completed_topics]

    lines += ["", "**Revision Progress Data:**"]
    for progress in completion_input.revision_progress:
        name = topic_names.get(progress.topic_id) or progress.topic_id or "Unknown Topic"
        lines += [
            "",
            f"Topic: {name}",
            f"- Understanding State: {progress.understanding_state}",
            f"- Total Attempts: {progress.attempts}",
            f"- Correct: {progress.correct_count}",
            f"- Incorrect: {progress.incorrect_count}",
            f"- Partial: {progress.partial_count}",
        ]

    lines += ["", "**Evaluation Summary (Error Trends):**"]
    for summary in completion_input.evaluation_summary:
        lines += [
            "",
            f"Topic: {summary.topic_name}",
            f"- Total Attempts: {summary.total_attempts}",
            f"- Correct Count: {summary.correct_count}",
        ]
        error_counts = Counter(e.value for e in summary.error_types if e is not None)
        if error_counts:
            lines.append(f"- Error Types: {json.dumps(dict(error_counts))}")

    lines += [
        "",
        "---",
        "Generate the completion review. Return ONLY the JSON object.",
        "Remember: ONLY generate questions from the completed topics listed above.",
    ]
    return "\n".join(lines)


def parse_completion_output(raw: str) -> CompletionOutput:
    """
    Strictly decode the review.

    Raises GenerationOutputError on bad JSON, a schema mismatch, an unknown
    readiness signal, or a mock question count outside 5-10.
    """
    text = strip_markdown_fences(raw)
    try:
        output = CompletionOutput.model_validate(json.loads(text))
    except json.JSONDecodeError as e:
        raise GenerationOutputError(f"completion output is not JSON: {text[:200]!r}") from e
    except ValidationError as e:
        raise GenerationOutputError(f"completion output failed validation: {e}") from e

    count = len(output.mock_questions)
    if not MIN_MOCK_QUESTIONS <= count <= MAX_MOCK_QUESTIONS:
        raise GenerationOutputError(f"expected {MIN_MOCK_QUESTIONS}-{MAX_MOCK_QUESTIONS} mock questions, got {count}")
    return output


# ─── Fallback ────────────────────────────────────────────────────────────────

def _fallback_questions(topics: list[str]) -> list[MockQuestion]:
    questions = []
    for topic in topics[:FALLBACK_TOPIC_LIMIT]:
        questions.append(MockQuestion(
            question=f"Define the key terms related to {topic}. [2 marks]",
            marks=2,
            command_word="Define",
            topic=topic,
        ))
        questions.append(MockQuestion(
            question=f"Explain one application of {topic} in a real-world context. [4 marks]",
            marks=4,
            command_word="Explain",
            topic=topic,
        ))
    return questions[:MAX_MOCK_QUESTIONS]


def build_fallback_output(completion_input: CompletionInput) -> CompletionOutput:
    """Conservative review used when generation fails: always recommends more practice."""
    topic_names = {s.topic_id: s.topic_name for s in completion_input.evaluation_summary}
    secure_topics = [
        topic_names.get(p.topic_id, "Completed topic")
        for p in completion_input.revision_progress
        if p.understanding_state == "secure"
    ]

    summary = [f"Understanding demonstrated in: {topic}" for topic in secure_topics]
    return CompletionOutput(
        knowledge_summary=summary or ["Revision session completed"],
        exam_mapping=(
            "These topics typically appear as short answer and extended response questions "
            "in GCSE examinations. Question formats vary by exam board."
        ),
        mock_questions=_fallback_questions(completion_input.completed_topics),
        readiness_signal="One more practice round recommended",
    )


# ─── Main Entry ──────────────────────────────────────────────────────────────

async def run_completion_agent(
    completion_input: CompletionInput,
    llm_call_func: GenerateFn,
) -> CompletionOutput:
    """
    Generate the completion review. Never raises: after one failed retry
    the conservative fallback is returned.
    """
    output = await generate_with_retry(
        llm_call_func,
        COMPLETION_PROMPT,
        [{"role": "user", "content": build_completion_request(completion_input)}],
        parse_completion_output,
        label="completion_agent",
    )

    if output is None:
        logger.warning(f"[{completion_input.session_id}] Completion agent failed after retry, using fallback")
        return build_fallback_output(completion_input)

    logger.info(
        f"[{completion_input.session_id}] Completion review: {len(output.mock_questions)} questions, "
        f"readiness='{output.readiness_signal}'"
    )
    return output
