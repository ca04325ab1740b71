"""Registry of answer generation prompt versions."""

from groundql.llm.prompts.registry import PromptRegistry


class AnswerPromptRegistry(PromptRegistry):
    """Answer prompt versions; ``get()`` returns a BaseAnswerPrompt."""
