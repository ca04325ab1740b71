"""Conversation turn model for durable chat history."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groundql.db.base import Base


class ConversationTurn(Base):
    """One question and its answer, appended to a session's history."""

    __tablename__ = "ai_conversation_history"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    session_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("ai_sessions.session_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )

    # ── Exchange ─────────────────────────────
    message: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    response: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    mode: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default="QUERY",
    )
    intent: Mapped[dict[str, Any] | None] = mapped_column(
        JSON,
        nullable=True,
        comment="Intent snapshot (category, tables, filters, ...)",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    # Relationships
    session: Mapped["AISession"] = relationship(
        "AISession",
        back_populates="turns",
    )

    def __repr__(self) -> str:
        return f"<ConversationTurn {self.id} session={self.session_id}>"
