"""Prompt management for GroundQL intent classification."""

from .base import BaseIntentPrompt
from .registry import IntentPromptRegistry

# Import versions to register them
from . import versions  # noqa: F401

__all__ = [
    "BaseIntentPrompt",
    "IntentPromptRegistry",
]
