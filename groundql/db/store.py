"""
SQLAlchemy-backed conversation store.

Implements the ConversationStore protocol over ``ai_sessions`` and
``ai_conversation_history``. Every database error is re-raised as
ConversationStoreError so callers never see driver exceptions.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from groundql.core.conversation.store import (
    ConversationStoreError,
    SessionRecord,
    TurnRecord,
)
from groundql.db.models import AISession, ConversationTurn

logger = logging.getLogger(__name__)


def _as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops the offset)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _to_session_record(row: AISession) -> SessionRecord:
    return SessionRecord(
        session_id=row.session_id,
        user_id=row.user_id,
        started_at=_as_utc(row.started_at),
        last_activity_at=_as_utc(row.last_activity_at),
        ended_at=_as_utc(row.ended_at),
    )


def _to_turn_record(row: ConversationTurn) -> TurnRecord:
    return TurnRecord(
        id=row.id,
        session_id=row.session_id,
        user_id=row.user_id,
        message=row.message,
        response=row.response,
        mode=row.mode,
        intent=row.intent,
        created_at=_as_utc(row.created_at),
    )


class SQLAlchemyConversationStore:
    """Durable conversation store on an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise ConversationStoreError(
                    f"{operation} failed: {type(e).__name__}"
                ) from e

    # -------------------------
    # Sessions
    # -------------------------

    async def create_session(self, record: SessionRecord) -> None:
        async with self._session("create_session") as session:
            session.add(
                AISession(
                    session_id=record.session_id,
                    user_id=record.user_id,
                    started_at=record.started_at,
                    last_activity_at=record.last_activity_at,
                    ended_at=record.ended_at,
                )
            )

    async def get_session(self, session_id: str) -> SessionRecord | None:
        async with self._session("get_session") as session:
            row = await session.get(AISession, session_id)
            return _to_session_record(row) if row else None

    async def get_latest_open_session(self, user_id: str) -> SessionRecord | None:
        stmt = (
            select(AISession)
            .where(AISession.user_id == user_id, AISession.ended_at.is_(None))
            .order_by(AISession.last_activity_at.desc())
            .limit(1)
        )
        async with self._session("get_latest_open_session") as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _to_session_record(row) if row else None

    async def get_latest_session(self, user_id: str) -> SessionRecord | None:
        stmt = (
            select(AISession)
            .where(AISession.user_id == user_id)
            .order_by(AISession.last_activity_at.desc())
            .limit(1)
        )
        async with self._session("get_latest_session") as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _to_session_record(row) if row else None

    async def touch_session(self, session_id: str, at: datetime) -> None:
        stmt = (
            update(AISession)
            .where(AISession.session_id == session_id)
            .values(last_activity_at=at)
        )
        async with self._session("touch_session") as session:
            await session.execute(stmt)

    async def end_session(self, session_id: str, at: datetime) -> bool:
        """Set ended_at only where it is still NULL; True if a row changed."""
        stmt = (
            update(AISession)
            .where(AISession.session_id == session_id, AISession.ended_at.is_(None))
            .values(ended_at=at)
        )
        async with self._session("end_session") as session:
            result = await session.execute(stmt)
            return result.rowcount == 1

    # -------------------------
    # Turns
    # -------------------------

    async def append_turn(self, turn: TurnRecord) -> None:
        async with self._session("append_turn") as session:
            session.add(
                ConversationTurn(
                    session_id=turn.session_id,
                    user_id=turn.user_id,
                    message=turn.message,
                    response=turn.response,
                    mode=turn.mode,
                    intent=turn.intent,
                    created_at=turn.created_at,
                )
            )

    async def list_turns(self, session_id: str, limit: int = 10) -> list[TurnRecord]:
        """Most recent ``limit`` turns of a session, oldest first."""
        stmt = (
            select(ConversationTurn)
            .where(ConversationTurn.session_id == session_id)
            .order_by(ConversationTurn.id.desc())
            .limit(limit)
        )
        async with self._session("list_turns") as session:
            rows = list((await session.execute(stmt)).scalars().all())
        rows.reverse()  # oldest first
        return [_to_turn_record(row) for row in rows]

    async def delete_turns_before(self, cutoff: datetime) -> int:
        stmt = delete(ConversationTurn).where(ConversationTurn.created_at < cutoff)
        async with self._session("delete_turns_before") as session:
            result = await session.execute(stmt)
            removed = result.rowcount or 0
        logger.info("Deleted %d conversation turns before %s", removed, cutoff.isoformat())
        return removed
