"""
Tests for combined_agent.py — single-call evaluate + respond, and diagnostic mode.
"""

from dataclasses import replace

import pytest

from revision_tutor.content.diagnostic_questions import get_next_diagnostic_question
from revision_tutor.tutor.combined_agent import (
    CombinedAgentInput,
    DiagnosticAgentInput,
    build_combined_user_prompt,
    parse_evaluation_section,
    parse_tutor_section,
    run_combined_agent,
    run_diagnostic_agent,
)
from revision_tutor.tutor.enforcer import DEFAULT_FALLBACK, get_safe_fallback
from revision_tutor.tutor.types import (
    ActionType,
    AgentPhase,
    ErrorType,
    EvaluationConfidence,
    EvaluationResult,
    GenerationOutputError,
    InvalidTransitionError,
)


def combined_output(evaluation_json: str, tutor: str) -> str:
    return f"<EVALUATION>\n{evaluation_json}\n</EVALUATION>\n<TUTOR>\n{tutor}\n</TUTOR>"


CORRECT_JSON = '{"evaluation": "correct", "confidence": "high", "error_type": null}'
INCORRECT_JSON = '{"evaluation": "incorrect", "confidence": "medium", "error_type": "recall_gap"}'
HARDER = "Good. Now what are the roots of x² - 7x + 12 = 0? [answer: 3, 4]"


class TestSectionParsing:
    def test_evaluation_section(self):
        ev = parse_evaluation_section(combined_output(CORRECT_JSON, "Next?"))
        assert ev.result == EvaluationResult.CORRECT
        assert ev.error_type is None

    def test_fenced_evaluation(self):
        ev = parse_evaluation_section(combined_output(f"```json\n{INCORRECT_JSON}\n```", "Next?"))
        assert ev.error_type == ErrorType.RECALL_GAP

    @pytest.mark.parametrize("raw", [
        "<TUTOR>Hi?</TUTOR>",
        combined_output("not json", "Hi?"),
        combined_output('{"evaluation": "correct", "confidence": "sure"}', "Hi?"),
        combined_output('{"evaluation": "unknown", "confidence": "low"}', "Hi?"),
        combined_output('{"evaluation": "partial", "confidence": "low", "error_type": null}', "Hi?"),
    ])
    def test_invalid_evaluation(self, raw):
        with pytest.raises(GenerationOutputError):
            parse_evaluation_section(raw)

    def test_tutor_section_keeps_marker(self):
        assert parse_tutor_section(combined_output(CORRECT_JSON, HARDER)) == HARDER

    @pytest.mark.parametrize("raw", [
        f"<EVALUATION>{CORRECT_JSON}</EVALUATION>",
        combined_output(CORRECT_JSON, "   "),
        combined_output(CORRECT_JSON, "Well done, that is right."),
    ])
    def test_invalid_tutor_section(self, raw):
        with pytest.raises(GenerationOutputError):
            parse_tutor_section(raw)


class TestCombinedAgent:
    @pytest.mark.asyncio
    async def test_correct_answer(self, scripted, revising_state):
        gen = scripted(combined_output(CORRECT_JSON, HARDER))
        result = await run_combined_agent(CombinedAgentInput("x = 2 and x = 3", revising_state), gen)

        assert result.evaluation.result == EvaluationResult.CORRECT
        assert result.decision.action == ActionType.EXTEND_DIFFICULTY
        assert result.decision.next_phase == AgentPhase.ACTIVE_REVISION
        assert result.tutor_message == "Good. Now what are the roots of x² - 7x + 12 = 0?"
        assert result.updated_state.current_question == "Now what are the roots of x² - 7x + 12 = 0?"
        assert result.updated_state.expected_answer_hint == "3, 4"
        assert result.updated_state.correct_streak == 1
        assert gen.call_count == 1

    @pytest.mark.asyncio
    async def test_decision_comes_from_engine(self, scripted, revising_state):
        state = replace(revising_state, correct_streak=1, attempts=1, last_evaluation=EvaluationResult.CORRECT)
        gen = scripted(combined_output(CORRECT_JSON, HARDER))
        result = await run_combined_agent(CombinedAgentInput("x = 2 and x = 3", state), gen)
        assert result.decision.action == ActionType.CONFIRM_MASTERY
        assert result.updated_state.phase == AgentPhase.RECALL_CHECK

    @pytest.mark.asyncio
    async def test_incorrect_answer_keeps_question(self, scripted, revising_state):
        state = replace(revising_state, last_action=ActionType.INITIAL_QUESTION)
        tutor = "Not yet. Try factorising first. What are the roots of x² - 5x + 6 = 0?"
        gen = scripted(combined_output(INCORRECT_JSON, tutor))
        result = await run_combined_agent(CombinedAgentInput("x = 1", state), gen)
        assert result.decision.action == ActionType.RETRY_WITH_HINT
        assert result.updated_state.current_question == revising_state.current_question
        assert result.updated_state.attempts == 1

    @pytest.mark.asyncio
    async def test_identical_retry(self, scripted, revising_state):
        gen = scripted("I think they got it right!", combined_output(CORRECT_JSON, HARDER))
        result = await run_combined_agent(CombinedAgentInput("2, 3", revising_state), gen)
        assert gen.call_count == 2
        assert gen.calls[0] == gen.calls[1]
        assert result.evaluation.result == EvaluationResult.CORRECT

    @pytest.mark.asyncio
    async def test_generator_error_then_success(self, scripted, revising_state):
        gen = scripted(TimeoutError("slow"), combined_output(CORRECT_JSON, HARDER))
        result = await run_combined_agent(CombinedAgentInput("2, 3", revising_state), gen)
        assert result.evaluation.result == EvaluationResult.CORRECT

    @pytest.mark.asyncio
    async def test_both_attempts_fail(self, scripted, revising_state):
        gen = scripted("garbage", "more garbage")
        result = await run_combined_agent(CombinedAgentInput("x = 2", revising_state), gen)

        assert result.evaluation.result == EvaluationResult.UNKNOWN
        assert result.evaluation.confidence == EvaluationConfidence.LOW
        assert result.evaluation.error_type is None
        assert result.tutor_message == DEFAULT_FALLBACK
        assert result.decision.action == ActionType.AWAIT_RESPONSE
        assert result.updated_state.attempts == 0
        assert result.updated_state.current_question == revising_state.current_question

    @pytest.mark.asyncio
    async def test_missing_tutor_section_not_recorded(self, scripted, revising_state):
        bad = combined_output(CORRECT_JSON, "Well done.")
        gen = scripted(bad, bad)
        result = await run_combined_agent(CombinedAgentInput("2 and 3", revising_state), gen)
        assert result.evaluation.result == EvaluationResult.CORRECT
        assert result.tutor_message == DEFAULT_FALLBACK
        assert result.updated_state.current_question == revising_state.current_question

    @pytest.mark.asyncio
    async def test_no_open_question_forces_unknown(self, scripted, revising_state):
        state = replace(revising_state, current_question=None, expected_answer_hint=None)
        tutor = "Let's begin. What is the discriminant of x² + 2x + 1? [answer: 0]"
        gen = scripted(combined_output(CORRECT_JSON, tutor))
        result = await run_combined_agent(CombinedAgentInput("hello there", state), gen)

        assert result.evaluation.result == EvaluationResult.UNKNOWN
        assert result.decision.action == ActionType.INITIAL_QUESTION
        assert result.updated_state.attempts == 0
        assert result.updated_state.current_question == "What is the discriminant of x² + 2x + 1?"

    @pytest.mark.asyncio
    async def test_meta_message_never_graded(self, scripted, revising_state):
        tutor = "You're welcome. What are the roots of x² - 5x + 6 = 0?"
        gen = scripted(combined_output(INCORRECT_JSON, tutor))
        result = await run_combined_agent(CombinedAgentInput("thanks", revising_state), gen)
        assert result.evaluation.result == EvaluationResult.UNKNOWN
        assert result.evaluation.error_type == ErrorType.OFF_TOPIC
        assert result.decision.action == ActionType.AWAIT_RESPONSE
        assert result.updated_state.attempts == 0

    @pytest.mark.asyncio
    async def test_completion_request(self, scripted, revising_state):
        tutor = "Great. Shall we look at your review now?"
        gen = scripted(combined_output(INCORRECT_JSON, tutor))
        result = await run_combined_agent(CombinedAgentInput("test me now", revising_state), gen)
        assert result.evaluation.result == EvaluationResult.UNKNOWN
        assert result.evaluation.error_type == ErrorType.OFF_TOPIC
        assert result.updated_state.attempts == 0
        assert result.decision.action == ActionType.RUN_COMPLETION_REVIEW
        assert result.updated_state.phase == AgentPhase.COMPLETION_REVIEW
        assert result.updated_state.current_question == revising_state.current_question

    @pytest.mark.asyncio
    async def test_answer_mentioning_test_me_is_graded(self, scripted, revising_state):
        tutor = "Not yet. What are the roots of x² - 5x + 6 = 0?"
        gen = scripted(combined_output(INCORRECT_JSON, tutor))
        result = await run_combined_agent(CombinedAgentInput("x = 9, test me now", revising_state), gen)
        assert result.evaluation.result == EvaluationResult.INCORRECT
        assert result.decision.action == ActionType.RETRY_WITH_HINT
        assert result.updated_state.phase == AgentPhase.ACTIVE_REVISION

    @pytest.mark.asyncio
    async def test_retry_keeps_first_evaluation(self, scripted, revising_state):
        tutor = "Try again. What are the roots of x² - 5x + 6 = 0?"
        gen = scripted(
            combined_output(INCORRECT_JSON, "Not quite."),
            combined_output("not json", tutor),
        )
        result = await run_combined_agent(CombinedAgentInput("x = 1", revising_state), gen)
        assert gen.call_count == 2
        assert result.evaluation.result == EvaluationResult.INCORRECT
        assert result.evaluation.error_type == ErrorType.RECALL_GAP
        assert result.tutor_message == tutor
        assert result.decision.action == ActionType.RETRY_WITH_HINT
        assert result.updated_state.attempts == 1

    @pytest.mark.asyncio
    async def test_skip_moves_to_new_question(self, scripted, revising_state):
        state = replace(revising_state, attempts=1, last_evaluation=EvaluationResult.INCORRECT)
        tutor = "No problem. What is the discriminant of x² + 4x + 4? [answer: 0]"
        gen = scripted(combined_output(INCORRECT_JSON, tutor))
        result = await run_combined_agent(CombinedAgentInput("can we skip this one", state), gen)
        assert result.evaluation.result == EvaluationResult.UNKNOWN
        assert result.evaluation.error_type == ErrorType.OFF_TOPIC
        assert result.decision.action == ActionType.INITIAL_QUESTION
        assert result.updated_state.attempts == 0
        assert result.updated_state.current_question == "What is the discriminant of x² + 4x + 4?"
        assert result.updated_state.expected_answer_hint == "0"

    @pytest.mark.asyncio
    async def test_history_is_trimmed(self, scripted, revising_state):
        history = [{"role": "user" if i % 2 else "assistant", "content": f"m{i}"} for i in range(6)]
        gen = scripted(combined_output(CORRECT_JSON, HARDER))
        await run_combined_agent(
            CombinedAgentInput("2, 3", revising_state, message_history=history), gen
        )
        _, context = gen.calls[0]
        assert context[:-1] == history[-4:]
        assert context[-1]["role"] == "user"
        assert "STUDENT'S RESPONSE:\n2, 3" in context[-1]["content"]

    @pytest.mark.asyncio
    async def test_refuses_before_diagnostic(self, scripted, make_state):
        gen = scripted()
        with pytest.raises(InvalidTransitionError):
            await run_combined_agent(CombinedAgentInput("5", make_state()), gen)
        assert gen.call_count == 0

    def test_user_prompt_prefers_mark_scheme(self, revising_state):
        prompt = build_combined_user_prompt(
            CombinedAgentInput("2, 3", revising_state, subject_name="Maths", mark_scheme="B1 each root")
        )
        assert "MARK SCHEME / SUCCESS CRITERIA:\nB1 each root" in prompt
        assert "EXPECTED ANSWER" not in prompt
        assert "Subject: Maths" in prompt


class TestDiagnosticAgent:
    @pytest.mark.asyncio
    async def test_asks_bank_question(self, scripted, make_state):
        question = get_next_diagnostic_question("MATHS", 0, seed="sess-1")
        gen = scripted(f"Thanks. {question}")
        result = await run_diagnostic_agent(
            DiagnosticAgentInput("hi", make_state(), "Maths", "MATHS"), gen
        )
        assert result.tutor_message == f"Thanks. {question}"
        assert result.decision.action == ActionType.DIAGNOSTIC_QUESTION
        assert result.updated_state.phase == AgentPhase.CURRICULUM_DIAGNOSTIC
        assert result.updated_state.current_question == question
        assert result.updated_state.diagnostic_questions_asked == 1
        system, _ = gen.calls[0]
        assert question in system

    @pytest.mark.asyncio
    async def test_teaching_language_retried(self, scripted, make_state):
        state = make_state(phase=AgentPhase.CURRICULUM_DIAGNOSTIC, diagnostic_questions_asked=1)
        question = get_next_diagnostic_question("MATHS", 1, seed="sess-1")
        gen = scripted(f"Correct, well done! {question}", f"Got it. {question}")
        result = await run_diagnostic_agent(DiagnosticAgentInput("x = 4", state, "Maths", "MATHS"), gen)
        assert gen.call_count == 2
        assert result.tutor_message == f"Got it. {question}"

    @pytest.mark.asyncio
    async def test_template_fallback(self, scripted, make_state):
        question = get_next_diagnostic_question("MATHS", 0, seed="sess-1")
        gen = scripted("Thanks. What is your favourite topic?", RuntimeError("down"))
        result = await run_diagnostic_agent(DiagnosticAgentInput("hi", make_state(), "Maths", "MATHS"), gen)
        assert result.tutor_message == f"Thanks. {question}"
        assert result.updated_state.current_question == question

    @pytest.mark.asyncio
    async def test_gate_closes_after_last_question(self, scripted, make_state):
        state = make_state(
            phase=AgentPhase.CURRICULUM_DIAGNOSTIC,
            diagnostic_questions_asked=3,
            current_question="What is 15% of 80?",
        )
        gen = scripted("Thanks, let's begin. What is a prime number? [answer: a number with exactly two factors]")
        result = await run_diagnostic_agent(DiagnosticAgentInput("12", state, "Maths", "MATHS"), gen)

        assert result.decision.action == ActionType.INITIAL_QUESTION
        assert result.updated_state.curriculum_position_confirmed
        assert result.updated_state.phase == AgentPhase.KNOWLEDGE_INGESTION
        assert result.updated_state.current_question == "What is a prime number?"
        assert result.updated_state.expected_answer_hint == "a number with exactly two factors"
        assert result.tutor_message == "Thanks, let's begin. What is a prime number?"

    @pytest.mark.asyncio
    async def test_gate_close_fallback(self, scripted, make_state):
        state = make_state(phase=AgentPhase.CURRICULUM_DIAGNOSTIC, diagnostic_questions_asked=3)
        gen = scripted("Let's begin.", "Let's begin.")
        result = await run_diagnostic_agent(DiagnosticAgentInput("12", state), gen)
        assert result.tutor_message == get_safe_fallback(AgentPhase.KNOWLEDGE_INGESTION)
        assert result.updated_state.current_question is None
        assert result.updated_state.curriculum_position_confirmed
