"""
revIsion RSC v1.0 — Revision Session Controller

Deterministic decision layer between student input and a language model.
The controller decides WHAT happens next; the model only decides HOW it is said.
"""
from revision_tutor.state.session import SessionState
from revision_tutor.tutor.answer_evaluator import evaluate_answer
from revision_tutor.tutor.answer_normaliser import (
    compare_value_sets,
    normalise_to_set,
    validate_normalised_answer,
    validate_with_tolerance,
)
from revision_tutor.tutor.combined_agent import (
    CombinedAgentInput,
    CombinedAgentResult,
    DiagnosticAgentInput,
    DiagnosticAgentResult,
    run_combined_agent,
    run_diagnostic_agent,
)
from revision_tutor.tutor.completion_agent import (
    CompletionInput,
    CompletionOutput,
    run_completion_agent,
)
from revision_tutor.tutor.controller import (
    ExtractedQuestion,
    TurnResult,
    advance_topic,
    extract_next_question,
    get_constrained_system_prompt,
    initialize_session,
    process_turn,
    record_generated_response,
)
from revision_tutor.tutor.decision_engine import (
    ALLOWED_ACTIONS,
    DecisionPolicy,
    determine_next_action,
    get_phase_for_action,
    is_action_allowed_in_phase,
    should_advance_topic,
    should_trigger_completion,
)
from revision_tutor.tutor.delivery_techniques import (
    Technique,
    build_technique_instructions,
    detect_used_techniques,
    get_allowed_techniques,
)
from revision_tutor.tutor.generation import GenerateFn
from revision_tutor.tutor.types import (
    ActionType,
    AgentPhase,
    Decision,
    ErrorType,
    Evaluation,
    EvaluationConfidence,
    EvaluationResult,
    GenerationOutputError,
    InvalidTransitionError,
    LearningStyle,
    RevisionError,
    StudentIntent,
)

__all__ = [
    "ALLOWED_ACTIONS",
    "ActionType",
    "AgentPhase",
    "CombinedAgentInput",
    "CombinedAgentResult",
    "CompletionInput",
    "CompletionOutput",
    "Decision",
    "DecisionPolicy",
    "DiagnosticAgentInput",
    "DiagnosticAgentResult",
    "ErrorType",
    "Evaluation",
    "EvaluationConfidence",
    "EvaluationResult",
    "ExtractedQuestion",
    "GenerateFn",
    "GenerationOutputError",
    "InvalidTransitionError",
    "LearningStyle",
    "RevisionError",
    "SessionState",
    "StudentIntent",
    "Technique",
    "TurnResult",
    "advance_topic",
    "build_technique_instructions",
    "compare_value_sets",
    "detect_used_techniques",
    "determine_next_action",
    "evaluate_answer",
    "extract_next_question",
    "get_allowed_techniques",
    "get_constrained_system_prompt",
    "get_phase_for_action",
    "initialize_session",
    "is_action_allowed_in_phase",
    "normalise_to_set",
    "process_turn",
    "record_generated_response",
    "run_combined_agent",
    "run_completion_agent",
    "run_diagnostic_agent",
    "should_advance_topic",
    "should_trigger_completion",
    "validate_normalised_answer",
    "validate_with_tolerance",
]
