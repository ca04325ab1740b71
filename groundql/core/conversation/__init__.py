"""Conversation sessions and memory for GroundQL."""

from groundql.core.conversation.memory import ConversationMemory, MemoryStats
from groundql.core.conversation.session_manager import SessionManager, SessionStats
from groundql.core.conversation.store import (
    ConversationStore,
    ConversationStoreError,
    InMemoryConversationStore,
    SessionRecord,
    TurnRecord,
)

__all__ = [
    "ConversationMemory",
    "ConversationStore",
    "ConversationStoreError",
    "InMemoryConversationStore",
    "MemoryStats",
    "SessionManager",
    "SessionRecord",
    "SessionStats",
    "TurnRecord",
]
