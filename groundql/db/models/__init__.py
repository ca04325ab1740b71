"""SQLAlchemy models."""

from groundql.db.models.ai_session import AISession
from groundql.db.models.conversation_turn import ConversationTurn
from groundql.db.models.operation_log import OperationLog

__all__ = [
    "AISession",
    "ConversationTurn",
    "OperationLog",
]
