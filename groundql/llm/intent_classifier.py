"""
Intent Classifier for GroundQL.

Asks the language model to classify a question into a QueryIntent and
runs the reply through the intent contract guard.
"""

import json
import logging
import re
import time
from typing import Any

from langchain_core.language_models import BaseChatModel

from groundql.config import get_settings
from groundql.core.intent import IntentClassification, coerce_classification
from groundql.core.query_builder.models import UserContext
from groundql.core.schema_registry import SchemaRegistry, get_default_registry
from groundql.llm.factory import LLMFactory
from groundql.llm.prompts.intent import IntentPromptRegistry
from groundql.llm.tracing import (
    extract_usage,
    format_messages,
    log_llm_request,
    log_llm_response,
    model_name,
    normalize_content,
)

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


# -----------------------------
# Errors
# -----------------------------


class IntentClassificationError(Exception):
    """Raised when a question cannot be classified."""

    pass


def extract_json_object(text: str) -> Any:
    """
    Parse the JSON object in a model reply.

    Tolerates markdown code fences and prose around the object.

    Raises:
        ValueError: If no JSON object can be parsed.
    """
    fenced = _FENCED_JSON.search(text)
    if fenced:
        text = fenced.group(1)

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("No JSON object in model response")
    return json.loads(text[start : end + 1])


# -----------------------------
# Classifier
# -----------------------------


class IntentClassifier:
    """
    Classifies natural language questions into validated intents.

    Example:
        classifier = IntentClassifier(llm=chat_model)
        result = await classifier.classify("How many leads came in this week?")
        result.intent.category  # IntentCategory.AGGREGATION_QUERY
    """

    def __init__(
        self,
        llm: BaseChatModel | None = None,
        registry: SchemaRegistry | None = None,
        prompt_version: str = "latest",
    ):
        """
        Initialize the classifier.

        Args:
            llm: LangChain chat model to use.
                Uses LLMFactory.create_from_settings() if not provided.
            registry: Schema registry described to the model.
            prompt_version: Version of the prompt to use (e.g., "v1", "latest").
        """
        self._llm = llm or LLMFactory.create_from_settings()
        self._registry = registry or get_default_registry()
        self._prompt = IntentPromptRegistry.get(prompt_version)

    @classmethod
    def from_settings(
        cls,
        llm: BaseChatModel | None = None,
        registry: SchemaRegistry | None = None,
    ) -> "IntentClassifier":
        """Create a classifier using Settings.intent_prompt_version."""
        return cls(llm=llm, registry=registry, prompt_version=get_settings().intent_prompt_version)

    @property
    def prompt_version(self) -> str:
        return self._prompt.version

    async def classify(
        self,
        question: str,
        user_context: UserContext | None = None,
    ) -> IntentClassification:
        """
        Classify a question.

        Raises:
            IntentClassificationError: If the model call fails or its
                reply is not a usable intent.
        """
        classification, _ = await self.classify_with_raw(question, user_context)
        return classification

    async def classify_with_raw(
        self,
        question: str,
        user_context: UserContext | None = None,
    ) -> tuple[IntentClassification, str]:
        """Classify a question and also return the raw model reply."""
        try:
            prompt = self._prompt.build(
                question=question,
                schema_context=self._registry.describe(),
                user_context=self._describe_user(user_context),
            )
            messages = prompt.format_messages()
            model = model_name(self._llm)

            start_time = time.time()
            prompt_tokens_est = log_llm_request(
                "INTENT", model, self.prompt_version, format_messages(messages), start_time
            )

            response = await self._llm.ainvoke(messages)
            raw_content = normalize_content(response.content).strip()

            log_llm_response(
                "INTENT",
                model,
                raw_content,
                prompt_tokens_est,
                start_time,
                time.time(),
                extract_usage(response),
            )

            classification = coerce_classification(extract_json_object(raw_content))
        except Exception as e:
            raise IntentClassificationError(str(e) or type(e).__name__) from e

        logger.info(
            "Classified question as %s on %s (confidence=%.2f)",
            classification.intent.category.value,
            classification.intent.tables,
            classification.confidence,
        )
        return classification, raw_content

    @staticmethod
    def _describe_user(user_context: UserContext | None) -> str | None:
        if user_context is None:
            return None
        return json.dumps(
            {
                "userId": user_context.user_id,
                "role": user_context.role,
                "permissions": user_context.permissions,
            },
            indent=2,
            default=str,
        )
