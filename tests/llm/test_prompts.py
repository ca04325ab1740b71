"""
Tests for Prompt Versioning System.

Tests the prompt registries and the v1 intent and answer prompts.
"""

import pytest

from groundql.llm.prompts import (
    AnswerMode,
    AnswerPromptRegistry,
    BaseAnswerPrompt,
    BaseIntentPrompt,
    IntentPromptRegistry,
    PromptRegistry,
)
from groundql.llm.prompts.answer.versions.v1 import AnswerPromptV1
from groundql.llm.prompts.intent.versions.v1 import IntentPromptV1


class TestPromptRegistry:
    """Tests for the versioned registries."""

    def test_v1_is_registered(self) -> None:
        assert "v1" in IntentPromptRegistry.list_versions()
        assert "v1" in AnswerPromptRegistry.list_versions()

    def test_registries_are_separate(self) -> None:
        assert isinstance(IntentPromptRegistry.get("v1"), IntentPromptV1)
        assert isinstance(AnswerPromptRegistry.get("v1"), AnswerPromptV1)

    def test_get_latest(self) -> None:
        assert isinstance(IntentPromptRegistry.get("latest"), BaseIntentPrompt)
        assert isinstance(AnswerPromptRegistry.get(), BaseAnswerPrompt)

    def test_unknown_version_raises_error(self) -> None:
        with pytest.raises(ValueError) as exc_info:
            IntentPromptRegistry.get("v999")
        assert "Unknown prompt version" in str(exc_info.value)

    def test_version_ordering(self) -> None:
        class ScratchRegistry(PromptRegistry):
            pass

        for name in ("v10", "v2", "v1"):
            ScratchRegistry.register(type(f"P{name}", (), {"version": name}))

        assert ScratchRegistry.list_versions() == ["v1", "v2", "v10"]
        assert ScratchRegistry.get().version == "v10"

    def test_empty_registry(self) -> None:
        class EmptyRegistry(PromptRegistry):
            pass

        with pytest.raises(ValueError):
            EmptyRegistry.get()


class TestIntentPromptV1:
    """Tests for the intent classification prompt."""

    def test_build_binds_everything(self) -> None:
        prompt = IntentPromptV1().build(
            question="How many leads?",
            schema_context="TABLES AND COLUMNS:\n  leads:",
        )
        assert prompt.input_variables == []

        system, human = prompt.format_messages()
        assert "TABLES AND COLUMNS:" in system.content
        assert 'Question: "How many leads?"' in human.content
        assert "User Context:" not in human.content

    def test_user_context_included(self) -> None:
        prompt = IntentPromptV1().build(
            question="q",
            schema_context="schema",
            user_context='{"role": "admin"}',
        )
        human = prompt.format_messages()[1]
        assert "User Context:" in human.content
        assert '{"role": "admin"}' in human.content

    def test_braces_in_question_are_literal(self) -> None:
        prompt = IntentPromptV1().build(question="what is {x}?", schema_context="schema")
        assert "{x}" in prompt.format_messages()[1].content


class TestAnswerPromptV1:
    """Tests for the answer generation prompt."""

    def build(self, **overrides):
        kwargs = {
            "question": "How many leads?",
            "context": "Result: 4",
            "mode": AnswerMode.QUERY,
            "user_name": "Priya",
            "user_role": "manager",
        }
        kwargs.update(overrides)
        return AnswerPromptV1().build(**kwargs).format_messages()

    def test_query_mode_persona(self) -> None:
        system, human = self.build()
        assert "precise CRM data analyst" in system.content
        assert "Name: Priya" in system.content
        assert "Result: 4" in human.content

    def test_coach_mode_persona_and_stats(self) -> None:
        system, human = self.build(mode="COACH", user_stats='{"totalLeads": 4}')
        assert "sales coach" in system.content
        assert 'Recent Activity: {"totalLeads": 4}' in system.content
        assert "coaching advice" in human.content

    def test_history_section_only_when_given(self) -> None:
        _, without = self.build()
        _, with_history = self.build(conversation_history="User: hi")

        assert "Previous Conversation:" not in without.content
        assert "Previous Conversation:\nUser: hi" in with_history.content
