"""
Conversation Memory for GroundQL.

Persists every question/answer turn to the durable store and keeps a
small ring of recent turns per active session for prompt context.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from groundql.config import get_settings
from groundql.core.conversation.session_manager import SessionManager
from groundql.core.conversation.store import ConversationStore, TurnRecord, utcnow

logger = logging.getLogger(__name__)

DEFAULT_MAX_TURNS = 10


@dataclass(frozen=True)
class MemoryStats:
    sessions: int
    total_turns: int


class ConversationMemory:
    """
    Durable turn history with an in-process ring per session.

    The store is always written. The ring only mirrors turns of the
    user's currently active session, so it never holds stale context:
    a session's ring is dropped as soon as the session manager ends it.
    """

    def __init__(
        self,
        store: ConversationStore,
        session_manager: SessionManager,
        max_turns: int = DEFAULT_MAX_TURNS,
    ):
        self._store = store
        self._sessions = session_manager
        self._max_turns = max_turns
        self._rings: dict[str, deque[TurnRecord]] = {}
        self._lock = threading.Lock()
        session_manager.add_end_listener(self.clear_memory)

    @classmethod
    def from_settings(
        cls,
        store: ConversationStore,
        session_manager: SessionManager,
    ) -> "ConversationMemory":
        """Create memory with the ring size from Settings.memory_max_turns."""
        return cls(store, session_manager, max_turns=get_settings().memory_max_turns)

    @property
    def session_manager(self) -> SessionManager:
        return self._sessions

    async def save_turn(
        self,
        user_id: str,
        message: str,
        response: str | None = None,
        mode: str = "QUERY",
        intent: dict[str, Any] | None = None,
        session_id: str | None = None,
    ) -> TurnRecord:
        """
        Record a turn.

        Args:
            user_id: Asking user.
            message: The user's question.
            response: The generated answer, if any.
            mode: Answer mode the turn ran in.
            intent: JSON-safe intent snapshot.
            session_id: Session to attach to; resolved via the session
                manager when omitted.

        Returns:
            The stored turn.

        Raises:
            ConversationStoreError: If the durable write fails.
        """
        user_id = str(user_id)
        if session_id is None:
            session = await self._sessions.get_or_create_session(user_id)
            session_id = session.session_id
            is_active = True
        else:
            active = await self._sessions.get_active_session(user_id)
            is_active = active is not None and active.session_id == session_id

        turn = TurnRecord(
            session_id=session_id,
            user_id=user_id,
            message=message,
            response=response,
            mode=mode,
            intent=intent,
            created_at=utcnow(),
        )
        await self._store.append_turn(turn)

        # The session may have ended while the write was in flight
        if is_active and self._sessions.is_indexed(session_id):
            with self._lock:
                ring = self._rings.setdefault(session_id, deque(maxlen=self._max_turns))
                ring.append(turn)

        logger.debug("Saved turn for user %s in session %s", user_id, session_id)
        return turn

    async def load_history(
        self,
        user_id: str,
        session_id: str | None = None,
        limit: int = DEFAULT_MAX_TURNS,
    ) -> list[dict[str, str]]:
        """
        Load recent turns as chat messages, oldest first.

        Falls back to the user's most recent session when no session is
        given. Each turn yields a user message and, when answered, an
        assistant message.
        """
        if session_id is None:
            latest = await self._store.get_latest_session(str(user_id))
            if latest is None:
                return []
            session_id = latest.session_id

        turns = await self._store.list_turns(session_id, limit)

        messages: list[dict[str, str]] = []
        for turn in turns:
            messages.append({"role": "user", "content": turn.message})
            if turn.response:
                messages.append({"role": "assistant", "content": turn.response})
        return messages

    def recent_turns(self, session_id: str) -> list[TurnRecord]:
        with self._lock:
            return list(self._rings.get(session_id, ()))

    def clear_memory(self, session_id: str | None = None) -> None:
        """Drop in-process turns for one session, or for all sessions."""
        with self._lock:
            if session_id is None:
                self._rings.clear()
            else:
                self._rings.pop(session_id, None)

    def format_memory_context(self, session_id: str) -> str:
        turns = self.recent_turns(session_id)
        if not turns:
            return ""
        return "Conversation Context:\n" + "\n".join(f"• {t.message}" for t in turns)

    def memory_stats(self) -> MemoryStats:
        with self._lock:
            return MemoryStats(
                sessions=len(self._rings),
                total_turns=sum(len(ring) for ring in self._rings.values()),
            )

    async def clear_old_conversations(self, days_old: int = 30) -> int:
        """Delete durable turns older than ``days_old`` days."""
        cutoff = utcnow() - timedelta(days=days_old)
        removed = await self._store.delete_turns_before(cutoff)
        logger.info("Deleted %d conversation turns older than %d days", removed, days_old)
        return removed
