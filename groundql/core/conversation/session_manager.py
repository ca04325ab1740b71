"""
Session Manager for GroundQL.

Tracks one active conversation session per user. A session expires
after a period of inactivity; expired sessions are ended in the durable
store and replaced on the next request.

The in-process index is only a fast path: the store stays authoritative,
and a store outage degrades to process-local sessions instead of failing
the request.

Requests for the same user are serialized; different users never wait
on each other, and store I/O never runs under the shared index lock.
"""

import asyncio
import logging
import threading
import uuid
import weakref
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from groundql.config import get_settings
from groundql.core.conversation.store import (
    ConversationStore,
    ConversationStoreError,
    SessionRecord,
    utcnow,
)

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY = timedelta(minutes=30)
DEFAULT_SWEEP_INTERVAL = timedelta(minutes=5)

SessionEndListener = Callable[[str], None]


@dataclass(frozen=True)
class SessionStats:
    active_sessions: int
    active_users: int


class SessionManager:
    """
    Owns the session lifecycle: create, reuse, expire, end.

    Example:
        manager = SessionManager(store)
        await manager.start()
        session = await manager.get_or_create_session("u1")
        ...
        await manager.stop()
    """

    def __init__(
        self,
        store: ConversationStore,
        expiry: timedelta = DEFAULT_EXPIRY,
        sweep_interval: timedelta = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._expiry = expiry
        self._sweep_interval = sweep_interval
        self._clock = clock

        # session_id -> record, user_id -> session_id
        self._sessions: dict[str, SessionRecord] = {}
        self._user_sessions: dict[str, str] = {}

        # A user's lock lives only while some request holds or awaits it
        self._user_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._index_lock = threading.Lock()
        self._end_listeners: list[SessionEndListener] = []
        self._sweep_task: asyncio.Task | None = None

    @classmethod
    def from_settings(cls, store: ConversationStore) -> "SessionManager":
        """Create a manager with expiry and sweep interval from Settings."""
        settings = get_settings()
        return cls(
            store,
            expiry=timedelta(minutes=settings.session_expiry_minutes),
            sweep_interval=timedelta(minutes=settings.session_sweep_interval_minutes),
        )

    @property
    def expiry(self) -> timedelta:
        return self._expiry

    def add_end_listener(self, listener: SessionEndListener) -> None:
        """Register a callback invoked with the id of every session this manager ends."""
        self._end_listeners.append(listener)

    # -------------------------
    # Public API
    # -------------------------

    async def get_or_create_session(self, user_id: str) -> SessionRecord:
        """
        Return the user's live session, creating one if needed.

        Order: in-process session (touched), then the user's latest open
        session in the store if still inside the window, then a new one.
        Expired sessions found on the way are ended.
        """
        user_id = str(user_id)
        async with self._user_lock(user_id):
            now = self._clock()

            current, expired_id = self._claim(user_id, now)
            if current is not None:
                await self._store_call("touch_session", current.session_id, now)
                return current
            if expired_id is not None:
                logger.info("Session %s expired for user %s", expired_id, user_id)
                await self._end_unindexed(expired_id)

            stored = await self._store_call("get_latest_open_session", user_id)
            if stored is not None:
                if not stored.is_expired(now, self._expiry):
                    stored.last_activity_at = now
                    self._index(stored)
                    await self._store_call("touch_session", stored.session_id, now)
                    logger.debug("Resumed session %s for user %s", stored.session_id, user_id)
                    return stored
                await self._end_unindexed(stored.session_id)

            return await self._create(user_id, now)

    async def get_active_session(self, user_id: str) -> SessionRecord | None:
        """
        Return the user's live session without creating one.

        An expired session is ended (once) and None is returned.
        """
        user_id = str(user_id)
        async with self._user_lock(user_id):
            now = self._clock()

            with self._index_lock:
                session = self._indexed(user_id)
            if session is None:
                session = await self._store_call("get_latest_open_session", user_id)
                if session is None:
                    return None
                if not session.is_expired(now, self._expiry):
                    self._index(session)
                    return session
                await self._end_unindexed(session.session_id)
                return None

            if session.is_expired(now, self._expiry):
                await self.end_session(session.session_id)
                return None
            return session

    async def end_session(self, session_id: str) -> bool:
        """End a session. Safe to call repeatedly; returns True if this call ended it."""
        with self._index_lock:
            self._unindex(session_id)
        return await self._end_unindexed(session_id)

    async def start_new_session(self, user_id: str) -> SessionRecord:
        """End the user's current session (history is kept) and open a new one."""
        user_id = str(user_id)
        async with self._user_lock(user_id):
            with self._index_lock:
                current = self._indexed(user_id)
                if current is not None:
                    self._unindex(current.session_id)
            if current is not None:
                await self._end_unindexed(current.session_id)
            return await self._create(user_id, self._clock())

    async def touch(self, session_id: str) -> None:
        now = self._clock()
        with self._index_lock:
            session = self._sessions.get(session_id)
            if session is not None:
                session.last_activity_at = now
        await self._store_call("touch_session", session_id, now)

    async def cleanup_expired(self) -> int:
        """
        End every in-process session past its expiry; returns the count.

        Expired sessions leave the index first, so requests proceed while
        the store round-trips run.
        """
        now = self._clock()
        with self._index_lock:
            expired = [
                sid
                for sid, session in self._sessions.items()
                if session.is_expired(now, self._expiry)
            ]
            for session_id in expired:
                self._unindex(session_id)

        for session_id in expired:
            await self._end_unindexed(session_id)

        if expired:
            logger.info("Cleaned up %d expired sessions", len(expired))
        return len(expired)

    def is_indexed(self, session_id: str) -> bool:
        """True while the session is this process's live session for its user."""
        with self._index_lock:
            return session_id in self._sessions

    def stats(self) -> SessionStats:
        with self._index_lock:
            return SessionStats(
                active_sessions=len(self._sessions),
                active_users=len(self._user_sessions),
            )

    # -------------------------
    # Lifecycle
    # -------------------------

    async def start(self) -> None:
        """Start the periodic expiry sweep. Calling twice is a no-op."""
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval.total_seconds())
            await self.cleanup_expired()

    # -------------------------
    # Helpers
    # -------------------------

    def _user_lock(self, user_id: str) -> asyncio.Lock:
        with self._index_lock:
            lock = self._user_locks.get(user_id)
            if lock is None:
                lock = asyncio.Lock()
                self._user_locks[user_id] = lock
            return lock

    def _claim(self, user_id: str, now: datetime) -> tuple[SessionRecord | None, str | None]:
        """
        Touch the user's indexed session if live, else unindex it.

        Returns (live session, None) or (None, expired session id or None).
        Runs under the index lock so the sweep cannot end a session that
        is being touched.
        """
        with self._index_lock:
            current = self._indexed(user_id)
            if current is None:
                return None, None
            if current.is_expired(now, self._expiry):
                self._unindex(current.session_id)
                return None, current.session_id
            current.last_activity_at = now
            return current, None

    def _indexed(self, user_id: str) -> SessionRecord | None:
        # caller holds self._index_lock
        session_id = self._user_sessions.get(user_id)
        return self._sessions.get(session_id) if session_id else None

    def _unindex(self, session_id: str) -> None:
        # caller holds self._index_lock
        session = self._sessions.pop(session_id, None)
        if session is not None and self._user_sessions.get(session.user_id) == session_id:
            del self._user_sessions[session.user_id]

    def _index(self, session: SessionRecord) -> None:
        with self._index_lock:
            self._sessions[session.session_id] = session
            self._user_sessions[session.user_id] = session.session_id

    async def _create(self, user_id: str, now: datetime) -> SessionRecord:
        session = SessionRecord(
            session_id=str(uuid.uuid4()),
            user_id=user_id,
            started_at=now,
            last_activity_at=now,
        )
        self._index(session)
        await self._store_call("create_session", session)
        logger.info("Created session %s for user %s", session.session_id, user_id)
        return session

    async def _end_unindexed(self, session_id: str) -> bool:
        """End a session that is no longer in the index, then notify listeners."""
        ended = await self._store_call("end_session", session_id, self._clock())
        if ended:
            logger.info("Ended session %s", session_id)
        for listener in self._end_listeners:
            listener(session_id)
        return bool(ended)

    async def _store_call(self, method: str, *args):
        """Invoke a store method; store failures are logged and yield None."""
        try:
            return await getattr(self._store, method)(*args)
        except ConversationStoreError as e:
            logger.error("Conversation store %s failed: %s", method, e, exc_info=True)
            return None
