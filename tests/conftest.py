"""
Shared fixtures: a scripted stand-in for the LLM and session state builders.
"""

import pytest

from revision_tutor.state.session import SessionState
from revision_tutor.tutor.types import AgentPhase


class ScriptedGenerator:
    """
    Async GenerateFn fake. Returns the scripted outputs in order and records
    every call. An Exception in the script is raised instead of returned.
    """

    def __init__(self, *outputs):
        self.outputs = list(outputs)
        self.calls = []

    async def __call__(self, system_directive: str, context: list[dict]) -> str:
        self.calls.append((system_directive, context))
        if not self.outputs:
            raise AssertionError("generator called more times than scripted")
        output = self.outputs.pop(0)
        if isinstance(output, Exception):
            raise output
        return output

    @property
    def call_count(self) -> int:
        return len(self.calls)


@pytest.fixture
def scripted():
    """Factory: scripted("out1", "out2") -> ScriptedGenerator."""
    return ScriptedGenerator


@pytest.fixture
def make_state():
    """Factory for SessionState with sensible test defaults."""
    def _make(**overrides) -> SessionState:
        fields = {"session_id": "sess-1", "student_id": "stu-1"}
        fields.update(overrides)
        return SessionState(**fields)
    return _make


@pytest.fixture
def revising_state(make_state):
    """Diagnostic done, topic chosen, one question open."""
    return make_state(
        topic_id="quadratics",
        topic_name="Quadratic equations",
        phase=AgentPhase.KNOWLEDGE_INGESTION,
        curriculum_position_confirmed=True,
        diagnostic_questions_asked=3,
        current_question="Solve x² - 5x + 6 = 0. What are the roots?",
        expected_answer_hint="x = 2 or x = 3",
    )
