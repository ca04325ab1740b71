"""Registry of intent classification prompt versions."""

from groundql.llm.prompts.registry import PromptRegistry


class IntentPromptRegistry(PromptRegistry):
    """Intent prompt versions; ``get()`` returns a BaseIntentPrompt."""
