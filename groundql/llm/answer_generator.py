"""Answer generator for turning grounded query context into natural language."""

import json
import logging
import time
from collections.abc import AsyncIterator

from langchain_core.language_models import BaseChatModel

from groundql.config import get_settings
from groundql.core.query_builder.models import UserContext
from groundql.llm.factory import LLMFactory
from groundql.llm.prompts.answer import AnswerMode, AnswerPromptRegistry
from groundql.llm.tracing import (
    extract_usage,
    format_messages,
    log_llm_request,
    log_llm_response,
    model_name,
    normalize_content,
)

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_WINDOW = 5


class AnswerGenerationError(Exception):
    """Raised when the model fails to produce an answer."""

    pass


class AnswerGenerator:
    """
    Generates answers grounded in formatted query results.

    Only the last few history messages are sent to the model.
    """

    def __init__(
        self,
        llm: BaseChatModel | None = None,
        prompt_version: str = "latest",
        history_window: int = DEFAULT_HISTORY_WINDOW,
    ):
        """
        Initialize the answer generator.

        Args:
            llm: LangChain chat model to use.
                Uses LLMFactory.create_from_settings() if not provided.
            prompt_version: Version of the prompt to use (e.g., "v1", "latest").
            history_window: How many prior messages to include.
        """
        self._llm = llm or LLMFactory.create_from_settings()
        self._prompt = AnswerPromptRegistry.get(prompt_version)
        self._history_window = history_window

    @classmethod
    def from_settings(cls, llm: BaseChatModel | None = None) -> "AnswerGenerator":
        """Create a generator from Settings.answer_prompt_version and history_window."""
        settings = get_settings()
        return cls(
            llm=llm,
            prompt_version=settings.answer_prompt_version,
            history_window=settings.history_window,
        )

    @property
    def prompt_version(self) -> str:
        return self._prompt.version

    async def generate(
        self,
        question: str,
        context: str,
        mode: AnswerMode | str = AnswerMode.QUERY,
        user_context: UserContext | None = None,
        history: list[dict] | None = None,
    ) -> str:
        """
        Generate a complete answer.

        Args:
            question: The user's question.
            context: Grounding context for the model.
            mode: QUERY or COACH.
            user_context: The asking user, for the persona header.
            history: Prior chat messages ({"role", "content"} dicts).

        Returns:
            The answer text.

        Raises:
            AnswerGenerationError: If the call fails or returns nothing.
        """
        try:
            messages = self._build_messages(question, context, mode, user_context, history)
            model = model_name(self._llm)

            start_time = time.time()
            prompt_tokens_est = log_llm_request(
                "ANSWER", model, self.prompt_version, format_messages(messages), start_time
            )

            response = await self._llm.ainvoke(messages)
            answer = self._strip_code_fence(normalize_content(response.content))

            log_llm_response(
                "ANSWER",
                model,
                answer,
                prompt_tokens_est,
                start_time,
                time.time(),
                extract_usage(response),
            )
        except Exception as e:
            raise AnswerGenerationError(f"Answer generation failed: {type(e).__name__}: {e}") from e

        if not answer:
            raise AnswerGenerationError("Model returned an empty answer")

        logger.info("Generated %s answer for '%s...' (%d chars)", AnswerMode(mode).value, question[:50], len(answer))
        return answer

    async def astream(
        self,
        question: str,
        context: str,
        mode: AnswerMode | str = AnswerMode.QUERY,
        user_context: UserContext | None = None,
        history: list[dict] | None = None,
    ) -> AsyncIterator[str]:
        """
        Stream the answer as text chunks.

        Raises:
            AnswerGenerationError: If the stream fails at any point.
        """
        try:
            messages = self._build_messages(question, context, mode, user_context, history)
            async for chunk in self._llm.astream(messages):
                text = normalize_content(chunk.content)
                if text:
                    yield text
        except Exception as e:
            raise AnswerGenerationError(f"Answer streaming failed: {type(e).__name__}: {e}") from e

    # -------------------------
    # Helpers
    # -------------------------

    def _build_messages(
        self,
        question: str,
        context: str,
        mode: AnswerMode | str,
        user_context: UserContext | None,
        history: list[dict] | None,
    ) -> list:
        user_context = user_context or UserContext()
        prompt = self._prompt.build(
            question=question,
            context=context,
            mode=AnswerMode(mode),
            user_name=user_context.name or (str(user_context.user_id) if user_context.has_identity else "there"),
            user_role=user_context.role or "user",
            user_stats=json.dumps(user_context.stats, default=str) if user_context.stats else None,
            conversation_history=self._format_history(history),
        )
        return prompt.format_messages()

    def _format_history(self, history: list[dict] | None) -> str | None:
        if not history or self._history_window <= 0:
            return None

        lines = []
        for msg in history[-self._history_window:]:
            content = str(msg.get("content", "")).strip()
            if content:
                role_label = "User" if msg.get("role") == "user" else "Assistant"
                lines.append(f"{role_label}: {content}")
        return "\n\n".join(lines) or None

    @staticmethod
    def _strip_code_fence(content: str) -> str:
        """Unwrap an answer the model wrapped entirely in a code block."""
        content = content.strip()
        if content.startswith("```") and content.endswith("```"):
            lines = content.split("\n")
            if len(lines) > 2:
                content = "\n".join(lines[1:-1])
        return content.strip()
