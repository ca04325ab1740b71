"""
Tests for settings-driven construction.

Each setting is read from the environment and must change the behavior
of the component that consumes it.
"""

from datetime import timedelta

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from groundql.config import get_settings
from groundql.core.cache import SmartQueryCache
from groundql.core.conversation import ConversationMemory, InMemoryConversationStore, SessionManager
from groundql.llm import AnswerGenerator, IntentClassifier


@pytest.fixture
def env(monkeypatch: pytest.MonkeyPatch):
    """Set environment variables and rebuild the cached settings."""

    def apply(**values: str) -> None:
        for key, value in values.items():
            monkeypatch.setenv(key, value)
        get_settings.cache_clear()

    get_settings.cache_clear()
    yield apply
    get_settings.cache_clear()


def llm() -> FakeListChatModel:
    return FakeListChatModel(responses=["ok"])


class TestSettings:
    """Tests for the Settings model itself."""

    def test_defaults(self, env) -> None:
        env()
        settings = get_settings()

        assert settings.session_expiry_minutes == 30
        assert settings.memory_max_turns == 10
        assert settings.intent_prompt_version == "latest"

    def test_environment_overrides(self, env) -> None:
        env(SESSION_EXPIRY_MINUTES="12", REDIS_URL="redis://cache:6379/1")
        settings = get_settings()

        assert settings.session_expiry_minutes == 12
        assert settings.redis_url == "redis://cache:6379/1"


class TestCacheFromSettings:
    """Tests for SmartQueryCache.from_settings."""

    def test_memory_only_without_redis_url(self, env, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("REDIS_URL", raising=False)
        env(CACHE_SWEEP_INTERVAL_SECONDS="7.5")

        cache = SmartQueryCache.from_settings()

        assert cache._redis is None
        assert cache._sweep_interval == 7.5

    def test_redis_tier_from_url(self, env) -> None:
        env(REDIS_URL="redis://localhost:6379/0")

        cache = SmartQueryCache.from_settings()

        assert cache._redis is not None


class TestConversationFromSettings:
    """Tests for session manager and memory construction."""

    def test_session_timings(self, env) -> None:
        env(SESSION_EXPIRY_MINUTES="10", SESSION_SWEEP_INTERVAL_MINUTES="2")

        manager = SessionManager.from_settings(InMemoryConversationStore())

        assert manager.expiry == timedelta(minutes=10)
        assert manager._sweep_interval == timedelta(minutes=2)

    @pytest.mark.asyncio
    async def test_memory_ring_size(self, env) -> None:
        env(MEMORY_MAX_TURNS="2")
        store = InMemoryConversationStore()
        memory = ConversationMemory.from_settings(store, SessionManager(store))

        for i in range(3):
            turn = await memory.save_turn("u1", f"q{i}")

        assert [t.message for t in memory.recent_turns(turn.session_id)] == ["q1", "q2"]


class TestLLMFromSettings:
    """Tests for classifier and generator construction."""

    def test_prompt_versions(self, env) -> None:
        env(INTENT_PROMPT_VERSION="v1", ANSWER_PROMPT_VERSION="v1")

        assert IntentClassifier.from_settings(llm()).prompt_version == "v1"
        assert AnswerGenerator.from_settings(llm()).prompt_version == "v1"

    def test_unknown_prompt_version_rejected(self, env) -> None:
        env(ANSWER_PROMPT_VERSION="v99")

        with pytest.raises(ValueError):
            AnswerGenerator.from_settings(llm())

    def test_history_window(self, env) -> None:
        env(HISTORY_WINDOW="1")
        generator = AnswerGenerator.from_settings(llm())
        history = [
            {"role": "user", "content": "q1"},
            {"role": "assistant", "content": "a1"},
        ]

        assert generator._format_history(history) == "Assistant: a1"

    def test_zero_history_window_sends_nothing(self, env) -> None:
        env(HISTORY_WINDOW="0")
        generator = AnswerGenerator.from_settings(llm())

        assert generator._format_history([{"role": "user", "content": "q1"}]) is None
