"""Base prompt interface for answer generation."""

from abc import ABC, abstractmethod
from enum import Enum

from langchain_core.prompts import ChatPromptTemplate


class AnswerMode(str, Enum):
    """How the answer should be voiced."""

    QUERY = "QUERY"  # precise, citation-grounded analyst
    COACH = "COACH"  # strategic, encouraging sales coach


class BaseAnswerPrompt(ABC):
    """
    Abstract base class for answer generation prompts.

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
        context: str,
        mode: AnswerMode,
        user_name: str,
        user_role: str,
        user_stats: str | None = None,
        conversation_history: str | None = None,
    ) -> ChatPromptTemplate:
        """
        Build the prompt template.

        Args:
            question: The user's question.
            context: Grounding context (user context plus formatted rows).
            mode: QUERY or COACH.
            user_name: Display name (or id) of the asking user.
            user_role: Role of the asking user.
            user_stats: Optional JSON of recent activity stats.
            conversation_history: Optional formatted prior messages.

        Returns:
            A fully-bound ChatPromptTemplate (no remaining input variables).
        """
        pass

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} version={self.version}>"
