"""LLM collaborators for GroundQL: model factory, prompts, classifier, generator."""

from groundql.llm.answer_generator import AnswerGenerationError, AnswerGenerator
from groundql.llm.factory import LLMFactory, LLMProviderError
from groundql.llm.intent_classifier import IntentClassificationError, IntentClassifier
from groundql.llm.prompts import AnswerMode

__all__ = [
    "AnswerGenerationError",
    "AnswerGenerator",
    "AnswerMode",
    "IntentClassificationError",
    "IntentClassifier",
    "LLMFactory",
    "LLMProviderError",
]
