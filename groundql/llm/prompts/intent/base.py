"""Base prompt interface for intent classification."""

from abc import ABC, abstractmethod

from langchain_core.prompts import ChatPromptTemplate


class BaseIntentPrompt(ABC):
    """
    Abstract base class for intent classification prompts.

    All prompt versions must inherit from this class and implement
    the build method.
    """

    # Version identifier (e.g., "v1", "v2")
    version: str

    # Human-readable description of this prompt version
    description: str

    @abstractmethod
    def build(
        self,
        question: str,
        schema_context: str,
        user_context: str | None = None,
    ) -> ChatPromptTemplate:
        """
        Build the prompt template.

        Args:
            question: The user's natural language question.
            schema_context: Description of tables, columns and relationships.
            user_context: Optional JSON description of the asking user.

        Returns:
            A fully-bound ChatPromptTemplate (no remaining input variables).
        """
        pass

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} version={self.version}>"
