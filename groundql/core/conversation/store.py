"""
Conversation store contract for GroundQL.

The durable store is the authority for sessions and turns; in-process
state in the session manager and memory is only a fast path in front of
it. ``SQLAlchemyConversationStore`` (groundql.db.store) is the production
implementation; ``InMemoryConversationStore`` backs single-process use.
"""

import asyncio
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol


# -----------------------------
# Errors
# -----------------------------


class ConversationStoreError(Exception):
    """Raised when the durable conversation store fails."""

    pass


# -----------------------------
# Records
# -----------------------------


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SessionRecord:
    """A conversation session; open while ``ended_at`` is None."""

    session_id: str
    user_id: str
    started_at: datetime
    last_activity_at: datetime
    ended_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    def is_expired(self, now: datetime, expiry: timedelta) -> bool:
        return now - self.last_activity_at > expiry


@dataclass
class TurnRecord:
    """One question/answer exchange."""

    session_id: str
    user_id: str
    message: str
    response: str | None = None
    mode: str = "QUERY"
    intent: dict[str, Any] | None = None
    created_at: datetime = field(default_factory=utcnow)
    id: int | None = None


# -----------------------------
# Store protocol
# -----------------------------


class ConversationStore(Protocol):
    """Durable, append-only storage for sessions and turns."""

    async def create_session(self, session: SessionRecord) -> None: ...

    async def get_session(self, session_id: str) -> SessionRecord | None: ...

    async def get_latest_open_session(self, user_id: str) -> SessionRecord | None: ...

    async def get_latest_session(self, user_id: str) -> SessionRecord | None: ...

    async def touch_session(self, session_id: str, at: datetime) -> None: ...

    async def end_session(self, session_id: str, at: datetime) -> bool:
        """Set ``ended_at`` if still open; return True only when this call ended it."""
        ...

    async def append_turn(self, turn: TurnRecord) -> None: ...

    async def list_turns(self, session_id: str, limit: int = 10) -> list[TurnRecord]:
        """Most recent ``limit`` turns of a session, oldest first."""
        ...

    async def delete_turns_before(self, cutoff: datetime) -> int: ...


# -----------------------------
# In-memory implementation
# -----------------------------


class InMemoryConversationStore:
    """Process-local store with the same semantics as the SQL store."""

    def __init__(self) -> None:
        self._sessions: dict[str, SessionRecord] = {}
        self._turns: list[TurnRecord] = []
        self._next_turn_id = 1
        self._lock = asyncio.Lock()

    async def create_session(self, session: SessionRecord) -> None:
        async with self._lock:
            self._sessions[session.session_id] = replace(session)

    async def get_session(self, session_id: str) -> SessionRecord | None:
        async with self._lock:
            record = self._sessions.get(session_id)
            return replace(record) if record else None

    async def get_latest_open_session(self, user_id: str) -> SessionRecord | None:
        async with self._lock:
            candidates = [
                s for s in self._sessions.values() if s.user_id == user_id and s.is_open
            ]
            return replace(self._latest(candidates)) if candidates else None

    async def get_latest_session(self, user_id: str) -> SessionRecord | None:
        async with self._lock:
            candidates = [s for s in self._sessions.values() if s.user_id == user_id]
            return replace(self._latest(candidates)) if candidates else None

    async def touch_session(self, session_id: str, at: datetime) -> None:
        async with self._lock:
            record = self._sessions.get(session_id)
            if record is not None:
                record.last_activity_at = at

    async def end_session(self, session_id: str, at: datetime) -> bool:
        async with self._lock:
            record = self._sessions.get(session_id)
            if record is None or record.ended_at is not None:
                return False
            record.ended_at = at
            return True

    async def append_turn(self, turn: TurnRecord) -> None:
        async with self._lock:
            self._turns.append(replace(turn, id=self._next_turn_id))
            self._next_turn_id += 1

    async def list_turns(self, session_id: str, limit: int = 10) -> list[TurnRecord]:
        async with self._lock:
            turns = [t for t in self._turns if t.session_id == session_id]
            return [replace(t) for t in turns[-limit:]] if limit > 0 else []

    async def delete_turns_before(self, cutoff: datetime) -> int:
        async with self._lock:
            kept = [t for t in self._turns if t.created_at >= cutoff]
            removed = len(self._turns) - len(kept)
            self._turns = kept
            return removed

    @staticmethod
    def _latest(sessions: list[SessionRecord]) -> SessionRecord:
        return max(sessions, key=lambda s: s.last_activity_at)
