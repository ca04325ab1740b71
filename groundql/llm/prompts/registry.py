"""Versioned prompt registry shared by the intent and answer prompts."""

from typing import Any, ClassVar


class PromptRegistry:
    """
    Registry of prompt versions.

    Each subclass keeps its own table, so intent and answer prompts can
    both have a "v1". Supports "latest" as an alias for the highest
    registered version.

    Usage:
        @IntentPromptRegistry.register
        class IntentPromptV1(BaseIntentPrompt):
            version = "v1"
    """

    _prompts: ClassVar[dict[str, type]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls._prompts = {}

    @classmethod
    def register(cls, prompt_class: type) -> type:
        cls._prompts[prompt_class.version] = prompt_class
        return prompt_class

    @classmethod
    def get(cls, version: str = "latest") -> Any:
        """
        Instantiate a prompt by version.

        Raises:
            ValueError: If nothing is registered or the version is unknown.
        """
        if not cls._prompts:
            raise ValueError(f"No prompts registered in {cls.__name__}")

        if version == "latest":
            version = cls.list_versions()[-1]

        if version not in cls._prompts:
            available = ", ".join(cls.list_versions())
            raise ValueError(f"Unknown prompt version: {version}. Available: {available}")

        return cls._prompts[version]()

    @classmethod
    def list_versions(cls) -> list[str]:
        return sorted(cls._prompts, key=cls._version_sort_key)

    @staticmethod
    def _version_sort_key(version: str) -> tuple:
        # "v2" < "v10"
        if version.startswith("v") and version[1:].isdigit():
            return (0, int(version[1:]))
        return (1, version)

    @classmethod
    def clear(cls) -> None:
        """Clear all registered prompts. Useful for testing."""
        cls._prompts.clear()
