"""
revIsion RSC v1.0 — Core Types

The controller decides WHAT happens next.
The LLM decides HOW it is said.

Every action, phase and evaluation field is a closed enum. Anything the LLM
emits is validated against these before it can influence the session.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ─── Errors ──────────────────────────────────────────────────────────────────

class RevisionError(Exception):
    """Base class for errors raised by the revision core."""


class GenerationOutputError(RevisionError):
    """LLM output could not be decoded or failed enum validation."""


class InvalidTransitionError(RevisionError):
    """An action was emitted into a phase that does not permit it."""


# ─── Actions & Phases ────────────────────────────────────────────────────────

class ActionType(str, Enum):
    """What the tutor does next. Chosen by the decision engine only."""
    DIAGNOSTIC_QUESTION = "DIAGNOSTIC_QUESTION"
    RETRY_WITH_HINT = "RETRY_WITH_HINT"
    REPHRASE_SIMPLER = "REPHRASE_SIMPLER"
    EXTEND_DIFFICULTY = "EXTEND_DIFFICULTY"
    CONFIRM_MASTERY = "CONFIRM_MASTERY"
    ADVANCE_TOPIC = "ADVANCE_TOPIC"
    RECOVER_CONFIDENCE = "RECOVER_CONFIDENCE"
    INITIAL_QUESTION = "INITIAL_QUESTION"
    AWAIT_RESPONSE = "AWAIT_RESPONSE"
    RUN_COMPLETION_REVIEW = "RUN_COMPLETION_REVIEW"


class AgentPhase(str, Enum):
    """Position in the tutoring state machine."""
    GREETING = "greeting"
    TOPIC_SELECTION = "topic_selection"
    CURRICULUM_DIAGNOSTIC = "curriculum_diagnostic"
    KNOWLEDGE_INGESTION = "knowledge_ingestion"
    ACTIVE_REVISION = "active_revision"
    RECALL_CHECK = "recall_check"
    MISCONCEPTION_REPAIR = "misconception_repair"
    PANIC_RECOVERY = "panic_recovery"
    COMPLETION_REVIEW = "completion_review"
    SESSION_CLOSE = "session_close"


# Phases that may only be entered after the curriculum diagnostic
TEACHING_PHASES = frozenset({
    AgentPhase.KNOWLEDGE_INGESTION,
    AgentPhase.ACTIVE_REVISION,
    AgentPhase.RECALL_CHECK,
    AgentPhase.MISCONCEPTION_REPAIR,
    AgentPhase.PANIC_RECOVERY,
})

TERMINAL_PHASES = frozenset({
    AgentPhase.COMPLETION_REVIEW,
    AgentPhase.SESSION_CLOSE,
})


@dataclass(frozen=True)
class Decision:
    """The sole output of the decision engine and the only thing that moves phase."""
    action: ActionType
    next_phase: AgentPhase


# ─── Evaluation ──────────────────────────────────────────────────────────────

class EvaluationResult(str, Enum):
    CORRECT = "correct"
    PARTIAL = "partial"
    INCORRECT = "incorrect"
    UNKNOWN = "unknown"


class EvaluationConfidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ErrorType(str, Enum):
    RECALL_GAP = "recall_gap"          # Missing facts or definitions
    CONCEPT_GAP = "concept_gap"        # Misunderstanding the idea
    CONFUSION = "confusion"            # Mixing concepts
    EXAM_TECHNIQUE = "exam_technique"  # Poor structure, vague wording
    GUESSING = "guessing"              # Clearly uncertain or speculative
    OFF_TOPIC = "off_topic"            # Not an answer attempt (unknown only)


class Evaluation(BaseModel):
    """
    Structured classification of one student answer.

    The wire format uses "evaluation" as the key for the result, matching
    what the evaluator prompt asks the model to emit.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    result: EvaluationResult = Field(alias="evaluation")
    confidence: EvaluationConfidence
    error_type: Optional[ErrorType] = None

    @field_validator("error_type", mode="before")
    @classmethod
    def _null_string(cls, value):
        if isinstance(value, str) and value.strip().lower() in ("null", "none", ""):
            return None
        return value

    @model_validator(mode="after")
    def _error_type_matches_result(self):
        if self.result == EvaluationResult.UNKNOWN:
            return self
        if self.result == EvaluationResult.CORRECT:
            if self.error_type is not None:
                raise ValueError("correct evaluations carry no error_type")
        elif self.error_type is None or self.error_type == ErrorType.OFF_TOPIC:
            raise ValueError(f"{self.result.value} evaluations need a graded error_type")
        return self

    @property
    def is_graded(self) -> bool:
        return self.result != EvaluationResult.UNKNOWN

    @classmethod
    def unknown(
        cls,
        confidence: EvaluationConfidence = EvaluationConfidence.LOW,
        error_type: Optional[ErrorType] = None,
    ) -> "Evaluation":
        return cls(result=EvaluationResult.UNKNOWN, confidence=confidence, error_type=error_type)

    def to_dict(self) -> dict:
        return {
            "evaluation": self.result.value,
            "confidence": self.confidence.value,
            "error_type": self.error_type.value if self.error_type else None,
        }


# Fail-safe default for missing context and malformed output
SAFE_EVALUATION = Evaluation.unknown()


# ─── Student Intent ──────────────────────────────────────────────────────────

class StudentIntent(str, Enum):
    SOLUTION = "solution"        # Direct answer attempt
    EXPLANATION = "explanation"  # Showing working/reasoning
    UNCERTAINTY = "uncertainty"  # Don't know
    QUESTION = "question"        # Asking for clarification
    SKIP = "skip"                # Wants to move on
    META = "meta"                # Off-topic/greeting


# ─── Learning Style (modality profile) ───────────────────────────────────────

_STYLE_ALIASES = {
    "visual": "visual",
    "auditory": "auditory",
    "aural": "auditory",
    "read_write": "read_write",
    "read-write": "read_write",
    "readwrite": "read_write",
    "reading": "read_write",
    "kinesthetic": "kinesthetic",
    "kinaesthetic": "kinesthetic",
}


def normalise_style_label(label: str) -> Optional[str]:
    """Map 'readWrite', 'read-write' etc. onto the canonical modality key."""
    key = label.strip().lower().replace(" ", "")
    return _STYLE_ALIASES.get(key)


@dataclass
class LearningStyle:
    """Learner's VARK preference weights. Read-only input to the core."""
    visual: float = 0.0
    auditory: float = 0.0
    read_write: float = 0.0
    kinesthetic: float = 0.0
    primary_styles: list[str] = field(default_factory=list)
    is_multimodal: bool = False

    def __post_init__(self):
        canonical = []
        for label in self.primary_styles:
            style = normalise_style_label(label)
            if style and style not in canonical:
                canonical.append(style)
        self.primary_styles = canonical

    @classmethod
    def from_dict(cls, data: dict) -> "LearningStyle":
        """Accepts both snake_case and the camelCase keys used by the web layer."""
        return cls(
            visual=float(data.get("visual", 0) or 0),
            auditory=float(data.get("auditory", 0) or 0),
            read_write=float(data.get("read_write", data.get("readWrite", 0)) or 0),
            kinesthetic=float(data.get("kinesthetic", 0) or 0),
            primary_styles=list(data.get("primary_styles", data.get("primaryStyles", [])) or []),
            is_multimodal=bool(data.get("is_multimodal", data.get("isMultimodal", False))),
        )
