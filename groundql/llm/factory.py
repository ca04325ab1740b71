"""
LLM Factory for GroundQL.

Creates LangChain chat models for the configured provider. Provider
packages are optional extras and are imported only when selected.
"""

import importlib
import logging
from dataclasses import dataclass

from langchain_core.language_models import BaseChatModel

logger = logging.getLogger(__name__)


# -----------------------------
# Errors
# -----------------------------


class LLMProviderError(Exception):
    """Raised when LLM provider configuration is invalid."""

    pass


# -----------------------------
# Provider table
# -----------------------------


@dataclass(frozen=True)
class ProviderSpec:
    """Where a provider's chat model lives and how it takes its key."""

    module: str
    class_name: str
    api_key_arg: str
    package: str
    default_model: str


PROVIDERS: dict[str, ProviderSpec] = {
    "gemini": ProviderSpec(
        module="langchain_google_genai",
        class_name="ChatGoogleGenerativeAI",
        api_key_arg="google_api_key",
        package="langchain-google-genai",
        default_model="gemini-2.0-flash",
    ),
    "openai": ProviderSpec(
        module="langchain_openai",
        class_name="ChatOpenAI",
        api_key_arg="api_key",
        package="langchain-openai",
        default_model="gpt-4o-mini",
    ),
    "anthropic": ProviderSpec(
        module="langchain_anthropic",
        class_name="ChatAnthropic",
        api_key_arg="api_key",
        package="langchain-anthropic",
        default_model="claude-3-5-sonnet-latest",
    ),
}


class LLMFactory:
    """
    Factory for creating chat models from supported providers.

    Supports gemini (default), openai and anthropic.
    """

    @classmethod
    def create(
        cls,
        provider: str,
        model: str | None = None,
        temperature: float = 0.0,
        api_key: str | None = None,
        **kwargs,
    ) -> BaseChatModel:
        """
        Create a chat model for a provider.

        Args:
            provider: "gemini", "openai" or "anthropic" (case-insensitive).
            model: Model name. Uses the provider default if not specified.
            temperature: Sampling temperature.
            api_key: Provider API key. The provider's env var is used if omitted.
            **kwargs: Extra provider-specific constructor arguments.

        Returns:
            A LangChain BaseChatModel instance.

        Raises:
            LLMProviderError: If the provider is unknown or its package is missing.
        """
        key = provider.strip().lower()
        spec = PROVIDERS.get(key)
        if spec is None:
            raise LLMProviderError(
                f"Unknown provider: {provider}. "
                f"Supported: {', '.join(PROVIDERS)}"
            )

        chat_class = cls._load_class(spec)

        init_kwargs = {
            "model": model or spec.default_model,
            "temperature": temperature,
            **kwargs,
        }
        if api_key:
            init_kwargs[spec.api_key_arg] = api_key

        logger.info("Creating %s chat model %s", key, init_kwargs["model"])
        return chat_class(**init_kwargs)

    @classmethod
    def create_from_settings(cls) -> BaseChatModel:
        """Create a chat model from LLMSettings (environment / .env)."""
        from groundql.config import get_llm_settings

        settings = get_llm_settings()
        return cls.create(
            provider=settings.llm_provider,
            model=settings.llm_model,
            temperature=settings.llm_temperature,
            api_key=settings.get_api_key(),
        )

    @staticmethod
    def _load_class(spec: ProviderSpec) -> type[BaseChatModel]:
        try:
            module = importlib.import_module(spec.module)
        except ImportError as e:
            raise LLMProviderError(
                f"{spec.package} is not installed. Run: pip install {spec.package}"
            ) from e
        return getattr(module, spec.class_name)
