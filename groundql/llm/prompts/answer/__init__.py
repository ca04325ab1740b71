"""Prompt management for GroundQL answer generation."""

from .base import AnswerMode, BaseAnswerPrompt
from .registry import AnswerPromptRegistry

# Import versions to register them
from . import versions  # noqa: F401

__all__ = [
    "AnswerMode",
    "AnswerPromptRegistry",
    "BaseAnswerPrompt",
]
