"""OperationLog model for pipeline observability."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from groundql.db.base import Base


class OperationLog(Base):
    """
    Audit row for every answer-pipeline stage.

    One row per classification, execution, response, cache lookup or
    error. Used for monitoring dashboards and debugging.
    """

    __tablename__ = "ai_operation_logs"

    # ── Primary key ──────────────────────────
    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    # ── Operation ────────────────────────────
    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )
    operation_type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        index=True,
    )
    success: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )
    error_message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    execution_time_ms: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )

    # ── Stage details ────────────────────────
    question: Mapped[str | None] = mapped_column(Text, nullable=True)
    answer: Mapped[str | None] = mapped_column(Text, nullable=True)
    sql_query: Mapped[str | None] = mapped_column(Text, nullable=True)
    intent_category: Mapped[str | None] = mapped_column(String(32), nullable=True)
    intent_tables: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    mode: Mapped[str | None] = mapped_column(String(16), nullable=True)
    confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    row_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    meta: Mapped[dict[str, Any] | None] = mapped_column(
        JSON,
        nullable=True,
        comment="Any other stage details",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<OperationLog {self.id} {self.operation_type} success={self.success}>"
