"""Versioned prompts for GroundQL."""

from .answer import AnswerMode, AnswerPromptRegistry, BaseAnswerPrompt
from .intent import BaseIntentPrompt, IntentPromptRegistry
from .registry import PromptRegistry

__all__ = [
    "AnswerMode",
    "AnswerPromptRegistry",
    "BaseAnswerPrompt",
    "BaseIntentPrompt",
    "IntentPromptRegistry",
    "PromptRegistry",
]
