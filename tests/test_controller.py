"""
Tests for controller.py — full turns through classify → evaluate → decide → apply.

The scripted generator is only reached when a numeric set check cannot
decide an answer; most turns here never call it.
"""

from dataclasses import replace

import pytest

from revision_tutor.content.diagnostic_questions import get_next_diagnostic_question
from revision_tutor.tutor.controller import (
    advance_topic,
    apply_turn_decision,
    extract_next_question,
    initialize_session,
    process_turn,
    record_generated_response,
    synthesise_evaluation,
    visible_message,
)
from revision_tutor.tutor.decision_engine import DecisionPolicy
from revision_tutor.tutor.types import (
    ActionType,
    AgentPhase,
    Decision,
    ErrorType,
    EvaluationConfidence,
    EvaluationResult,
    InvalidTransitionError,
    LearningStyle,
    StudentIntent,
    TEACHING_PHASES,
)

FIRST_QUESTION_REPLY = (
    "Let's start with quadratics. Solve x² - 5x + 6 = 0. What are the roots? "
    "[answer: x = 2 or x = 3]"
)


async def _turn(message, state, generator, **kwargs):
    return await process_turn(
        message, state, None, "Maths",
        llm_call_func=generator, subject_code="MATHS", **kwargs,
    )


class TestSynthesiseEvaluation:
    def test_uncertainty_is_recall_gap(self):
        ev = synthesise_evaluation(StudentIntent.UNCERTAINTY)
        assert ev.result == EvaluationResult.UNKNOWN
        assert ev.confidence == EvaluationConfidence.LOW
        assert ev.error_type == ErrorType.RECALL_GAP

    def test_explanation_has_no_error(self):
        ev = synthesise_evaluation(StudentIntent.EXPLANATION)
        assert ev.result == EvaluationResult.UNKNOWN
        assert ev.error_type is None

    @pytest.mark.parametrize("intent", [StudentIntent.QUESTION, StudentIntent.SKIP, StudentIntent.META])
    def test_non_attempts_are_off_topic(self, intent):
        ev = synthesise_evaluation(intent)
        assert ev.confidence == EvaluationConfidence.HIGH
        assert ev.error_type == ErrorType.OFF_TOPIC


class TestDiagnosticGate:
    @pytest.mark.asyncio
    async def test_full_diagnostic_then_revision(self, scripted):
        gen = scripted()
        state = initialize_session("sess-1", "stu-1", "quadratics", "Quadratic equations")
        assert state.phase == AgentPhase.GREETING

        messages = ["hello", "x = 4", "I don't know"]
        for index, message in enumerate(messages):
            result = await _turn(message, state, gen)
            assert result.action == ActionType.DIAGNOSTIC_QUESTION
            assert result.updated_phase == AgentPhase.CURRICULUM_DIAGNOSTIC
            assert result.evaluation.result == EvaluationResult.UNKNOWN
            assert result.updated_state.diagnostic_questions_asked == index + 1
            assert result.updated_state.current_question == get_next_diagnostic_question(
                "MATHS", index, seed="sess-1"
            )
            assert not result.updated_state.curriculum_position_confirmed
            state = result.updated_state

        result = await _turn("x = 5", state, gen)
        assert result.action == ActionType.INITIAL_QUESTION
        assert result.updated_phase == AgentPhase.KNOWLEDGE_INGESTION
        assert result.updated_state.curriculum_position_confirmed
        assert result.updated_state.current_question is None
        assert result.updated_state.attempts == 0
        # Diagnostic answers never reach the evaluator
        assert gen.call_count == 0

    @pytest.mark.asyncio
    async def test_diagnostic_question_in_instructions(self, scripted):
        state = initialize_session("sess-1", "stu-1")
        result = await _turn("hi", state, scripted())
        expected = get_next_diagnostic_question("MATHS", 0, seed="sess-1")
        assert expected in result.instructions
        assert "DELIVERY" not in result.instructions

    @pytest.mark.asyncio
    async def test_never_enters_teaching_phase_unconfirmed(self, scripted, make_state):
        state = make_state(phase=AgentPhase.CURRICULUM_DIAGNOSTIC, diagnostic_questions_asked=1)
        for message in ["2", "x = 3", "no idea", "can you explain?", "skip"]:
            result = await _turn(message, state, scripted())
            if not result.updated_state.curriculum_position_confirmed:
                assert result.updated_phase not in TEACHING_PHASES
            state = result.updated_state

    @pytest.mark.asyncio
    async def test_custom_diagnostic_length(self, scripted):
        policy = DecisionPolicy(diagnostic_question_count=1)
        state = initialize_session("sess-1", "stu-1")
        first = await _turn("hi", state, scripted(), policy=policy)
        assert first.action == ActionType.DIAGNOSTIC_QUESTION
        second = await _turn("4", first.updated_state, scripted(), policy=policy)
        assert second.action == ActionType.INITIAL_QUESTION

    @pytest.mark.asyncio
    async def test_unknown_subject_uses_default_bank(self, scripted):
        state = initialize_session("sess-1", "stu-1")
        result = await process_turn("hi", state, None, None, llm_call_func=scripted())
        assert result.updated_state.current_question == get_next_diagnostic_question(None, 0, seed="sess-1")


class TestRevisionTurns:
    @pytest.mark.asyncio
    async def test_partial_then_complete(self, scripted, revising_state):
        gen = scripted()

        first = await _turn("x = 2", revising_state, gen)
        assert first.evaluation.result == EvaluationResult.PARTIAL
        assert first.action == ActionType.RETRY_WITH_HINT
        assert first.updated_phase == AgentPhase.ACTIVE_REVISION
        assert first.updated_state.credited_answer_values == ["2"]
        assert first.updated_state.attempts == 1

        # The retry restates the same question, credited values survive
        state = record_generated_response(
            first.updated_state,
            "Nearly. Try factorising. What are the roots of x² - 5x + 6 = 0?",
        )
        assert state.current_question == revising_state.current_question
        assert state.credited_answer_values == ["2"]

        second = await _turn("x = 3", state, gen)
        assert second.evaluation.result == EvaluationResult.CORRECT
        assert second.action == ActionType.EXTEND_DIFFICULTY
        assert second.updated_state.correct_streak == 1
        assert gen.call_count == 0

    @pytest.mark.asyncio
    async def test_correct_twice_confirms_mastery(self, scripted, revising_state):
        state = revising_state
        first = await _turn("2 and 3", state, scripted())
        assert first.action == ActionType.EXTEND_DIFFICULTY

        state = record_generated_response(
            first.updated_state,
            "Well done. Now solve x² - 7x + 12 = 0. What are the roots? [answer: 3, 4]",
        )
        assert state.current_question == "What are the roots?"
        assert state.expected_answer_hint == "3, 4"

        second = await _turn("x = 4 or x = 3", state, scripted())
        assert second.action == ActionType.CONFIRM_MASTERY
        assert second.updated_phase == AgentPhase.RECALL_CHECK

    @pytest.mark.asyncio
    async def test_model_graded_incorrect(self, scripted, revising_state):
        gen = scripted('{"evaluation": "incorrect", "confidence": "high", "error_type": "concept_gap"}')
        result = await _turn("x = 7", revising_state, gen)
        assert gen.call_count == 1
        assert result.action == ActionType.REPHRASE_SIMPLER
        assert result.updated_phase == AgentPhase.MISCONCEPTION_REPAIR
        assert result.updated_state.correct_streak == 0

    @pytest.mark.asyncio
    async def test_failed_evaluation_waits(self, scripted, revising_state):
        gen = scripted("nonsense", "still nonsense")
        result = await _turn("x = 7", revising_state, gen)
        assert result.evaluation.result == EvaluationResult.UNKNOWN
        assert result.action == ActionType.AWAIT_RESPONSE
        assert result.updated_state.attempts == 0

    @pytest.mark.asyncio
    async def test_repeated_failure_recovers_confidence(self, scripted, revising_state):
        state = revising_state
        verdict = '{"evaluation": "incorrect", "confidence": "high", "error_type": "recall_gap"}'
        actions = []
        for _ in range(3):
            result = await _turn("x = 9", state, scripted(verdict))
            actions.append(result.action)
            state = result.updated_state
        assert actions == [
            ActionType.RETRY_WITH_HINT,
            ActionType.RETRY_WITH_HINT,
            ActionType.RECOVER_CONFIDENCE,
        ]
        assert state.phase == AgentPhase.PANIC_RECOVERY

    @pytest.mark.asyncio
    async def test_huge_number_is_graded_not_raised(self, scripted, revising_state):
        gen = scripted('{"evaluation": "incorrect", "confidence": "high", "error_type": "recall_gap"}')
        result = await _turn("9" * 400, revising_state, gen)
        assert gen.call_count == 1
        assert result.evaluation.result == EvaluationResult.INCORRECT
        assert result.action == ActionType.RETRY_WITH_HINT

    @pytest.mark.asyncio
    async def test_meta_message_awaits(self, scripted, revising_state):
        result = await _turn("thanks", revising_state, scripted())
        assert result.intent == StudentIntent.META
        assert result.action == ActionType.AWAIT_RESPONSE
        assert result.updated_phase == revising_state.phase
        assert result.updated_state.current_question == revising_state.current_question

    @pytest.mark.asyncio
    async def test_uncertainty_is_not_an_attempt(self, scripted, revising_state):
        result = await _turn("I don't know", revising_state, scripted())
        assert result.updated_state.attempts == 0
        assert result.action == ActionType.AWAIT_RESPONSE
        assert "STUDENT MESSAGE" in result.instructions

    @pytest.mark.asyncio
    async def test_skip_asks_new_question(self, scripted, revising_state):
        result = await _turn("can we skip this one", revising_state, scripted())
        assert result.intent == StudentIntent.SKIP
        assert result.action == ActionType.INITIAL_QUESTION
        assert result.updated_state.current_question is None
        assert result.updated_state.attempts == 0

    @pytest.mark.asyncio
    async def test_solution_without_question(self, scripted, revising_state):
        state = replace(revising_state, current_question=None, expected_answer_hint=None)
        result = await _turn("x = 2", state, scripted())
        assert result.evaluation.result == EvaluationResult.UNKNOWN
        assert result.action == ActionType.INITIAL_QUESTION

    @pytest.mark.asyncio
    async def test_input_state_not_mutated(self, scripted, revising_state):
        before = revising_state.to_dict()
        await _turn("x = 2", revising_state, scripted())
        assert revising_state.to_dict() == before

    @pytest.mark.asyncio
    async def test_modality_techniques_in_instructions(self, scripted, revising_state):
        result = await process_turn(
            "x = 2", revising_state, LearningStyle(visual=0.7, primary_styles=["visual"]), "Maths",
            llm_call_func=scripted(), subject_code="MATHS",
        )
        assert "DELIVERY" in result.instructions


class TestCompletion:
    @pytest.mark.asyncio
    async def test_answer_containing_request_words_is_graded(self, scripted, make_state):
        state = make_state(
            topic_id="evolution",
            topic_name="Natural selection",
            phase=AgentPhase.ACTIVE_REVISION,
            curriculum_position_confirmed=True,
            diagnostic_questions_asked=3,
            current_question="What does survival of the fittest mean?",
        )
        gen = scripted('{"evaluation": "correct", "confidence": "high", "error_type": null}')
        result = await _turn(
            "Survival of the fittest means the best adapted organisms survive and reproduce", state, gen
        )
        assert result.evaluation.result == EvaluationResult.CORRECT
        assert result.action == ActionType.EXTEND_DIFFICULTY
        assert result.updated_phase == AgentPhase.ACTIVE_REVISION

    @pytest.mark.asyncio
    async def test_request_is_not_graded(self, scripted, revising_state):
        gen = scripted()
        result = await _turn("test me now", revising_state, gen)
        assert gen.call_count == 0
        assert result.evaluation.error_type == ErrorType.OFF_TOPIC
        assert result.updated_state.attempts == 0
        assert result.action == ActionType.RUN_COMPLETION_REVIEW

    @pytest.mark.asyncio
    async def test_request_triggers_review(self, scripted, revising_state):
        result = await _turn("am I ready for the exam?", revising_state, scripted())
        assert result.action == ActionType.RUN_COMPLETION_REVIEW
        assert result.updated_phase == AgentPhase.COMPLETION_REVIEW

    @pytest.mark.asyncio
    async def test_all_topics_secure(self, scripted, revising_state):
        result = await _turn("ok", revising_state, scripted(), all_topics_secure=True)
        assert result.action == ActionType.RUN_COMPLETION_REVIEW

    @pytest.mark.asyncio
    async def test_completion_overrides_gate(self, scripted):
        state = initialize_session("sess-1", "stu-1")
        result = await _turn("test me please", state, scripted())
        assert result.action == ActionType.RUN_COMPLETION_REVIEW
        assert not result.updated_state.curriculum_position_confirmed

    @pytest.mark.asyncio
    async def test_after_review_session_closes(self, scripted, revising_state):
        first = await _turn("can I have a mock exam?", revising_state, scripted())
        second = await _turn("thanks", first.updated_state, scripted())
        assert second.action == ActionType.AWAIT_RESPONSE
        assert second.updated_phase == AgentPhase.SESSION_CLOSE


class TestApplyTurnDecision:
    def test_blocked_action_raises(self, revising_state):
        with pytest.raises(InvalidTransitionError):
            apply_turn_decision(
                revising_state,
                Decision(ActionType.EXTEND_DIFFICULTY, AgentPhase.RECALL_CHECK),
            )

    def test_teaching_phase_while_unconfirmed_raises(self, make_state):
        with pytest.raises(InvalidTransitionError):
            apply_turn_decision(
                make_state(),
                Decision(ActionType.EXTEND_DIFFICULTY, AgentPhase.ACTIVE_REVISION),
            )

    def test_diagnostic_returns_question(self, make_state):
        state, question = apply_turn_decision(
            make_state(),
            Decision(ActionType.DIAGNOSTIC_QUESTION, AgentPhase.CURRICULUM_DIAGNOSTIC),
            "BIOLOGY",
        )
        assert question == get_next_diagnostic_question("BIOLOGY", 0, seed="sess-1")
        assert state.current_question == question
        assert state.expected_answer_hint is None
        assert state.diagnostic_questions_asked == 1
        assert state.last_action == ActionType.DIAGNOSTIC_QUESTION


class TestExtractNextQuestion:
    def test_last_question_wins(self):
        extracted = extract_next_question("Is it odd? Good try. What is 3 + 4?")
        assert extracted.question == "What is 3 + 4?"
        assert extracted.answer_hint is None

    def test_marker_becomes_hint(self):
        extracted = extract_next_question(FIRST_QUESTION_REPLY)
        assert extracted.question == "What are the roots?"
        assert extracted.answer_hint == "x = 2 or x = 3"

    def test_multiline(self):
        extracted = extract_next_question("Nice work.\nWhat is the formula for density?\n")
        assert extracted.question == "What is the formula for density?"

    def test_no_question(self):
        extracted = extract_next_question("Well done. [answer: 5]")
        assert extracted.question is None
        assert extracted.answer_hint is None

    def test_visible_message_hides_marker(self):
        assert visible_message(FIRST_QUESTION_REPLY).endswith("What are the roots?")


class TestRecordGeneratedResponse:
    def test_opens_first_question(self, make_state):
        state = make_state(
            phase=AgentPhase.KNOWLEDGE_INGESTION,
            curriculum_position_confirmed=True,
            last_action=ActionType.INITIAL_QUESTION,
        )
        updated = record_generated_response(state, FIRST_QUESTION_REPLY)
        assert updated.current_question == "What are the roots?"
        assert updated.expected_answer_hint == "x = 2 or x = 3"

    def test_new_question_replaces_open_one(self, revising_state):
        state = replace(revising_state, last_action=ActionType.EXTEND_DIFFICULTY, credited_answer_values=["2"])
        updated = record_generated_response(state, "Harder now. What is 2³? [answer: 8]")
        assert updated.current_question == "What is 2³?"
        assert updated.credited_answer_values == []

    @pytest.mark.parametrize("action", [ActionType.AWAIT_RESPONSE, ActionType.RETRY_WITH_HINT])
    def test_restatement_keeps_question(self, revising_state, action):
        state = replace(revising_state, last_action=action)
        updated = record_generated_response(state, "No problem. What is 10 ÷ 2?")
        assert updated.current_question == revising_state.current_question
        assert updated.expected_answer_hint == revising_state.expected_answer_hint

    def test_terminal_phase_ignored(self, revising_state):
        state = replace(revising_state, phase=AgentPhase.COMPLETION_REVIEW,
                        last_action=ActionType.RUN_COMPLETION_REVIEW, current_question=None)
        updated = record_generated_response(state, "Ready for your review?")
        assert updated.current_question is None

    def test_no_question_found(self, make_state):
        state = make_state(last_action=ActionType.INITIAL_QUESTION)
        assert record_generated_response(state, "Let's begin.") == state


class TestAdvanceTopic:
    def test_requires_mastery(self, revising_state):
        with pytest.raises(InvalidTransitionError):
            advance_topic(revising_state, "surds", "Surds", None, "Maths")

    def test_advances_after_confirmed_mastery(self, revising_state):
        state = replace(
            revising_state,
            phase=AgentPhase.RECALL_CHECK,
            correct_streak=3,
            attempts=4,
            last_evaluation=EvaluationResult.CORRECT,
        )
        result = advance_topic(state, "surds", "Surds", None, "Maths")
        assert result.action == ActionType.ADVANCE_TOPIC
        assert result.updated_phase == AgentPhase.KNOWLEDGE_INGESTION
        assert result.updated_state.topic_id == "surds"
        assert result.updated_state.attempts == 0
        assert result.updated_state.correct_streak == 0
        assert result.updated_state.current_question is None
        assert "Surds" in result.instructions


class TestInitializeSession:
    def test_with_topic(self):
        state = initialize_session("s", "u", "cells", "Cell biology")
        assert state.topic_name == "Cell biology"
        assert state.phase == AgentPhase.GREETING
        assert not state.curriculum_position_confirmed

    def test_partial_topic_ignored(self):
        state = initialize_session("s", "u", "cells")
        assert state.topic_id is None
