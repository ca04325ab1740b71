"""
User context lookup for the answer pipeline.

The pipeline never enforces authorization itself; it only needs to know
who is asking so the query builder can scope rows and the answer can be
personalized. Providers return a UserContext; the pipeline falls back to
a minimal one when a provider raises.
"""

import logging
from datetime import timedelta
from typing import Any, Protocol

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from groundql.core.conversation.store import utcnow
from groundql.core.query_builder.models import UserContext

logger = logging.getLogger(__name__)

STATS_WINDOW_DAYS = 30

_ROLE_PERMISSIONS: dict[str, list[str]] = {
    "admin": ["read", "write", "delete", "admin"],
    "manager": ["read", "write"],
}


def permissions_for_role(role: str | None) -> list[str]:
    """Permissions implied by a role name (case-insensitive)."""
    if not role:
        return ["read"]
    return list(_ROLE_PERMISSIONS.get(role.lower(), ["read"]))


def minimal_user_context(user_id: Any) -> UserContext:
    return UserContext(user_id=user_id, role="user", permissions=permissions_for_role("user"))


class UserContextProvider(Protocol):
    """Resolves a user id to the context queries run under."""

    async def fetch(self, user_id: Any) -> UserContext: ...


class StaticUserContextProvider:
    """
    Serves user contexts from a fixed mapping.

    Unknown users get the minimal context. Useful when the caller already
    knows who is asking.
    """

    def __init__(self, users: dict[str, UserContext] | None = None):
        self._users = {str(k): v for k, v in (users or {}).items()}

    async def fetch(self, user_id: Any) -> UserContext:
        return self._users.get(str(user_id)) or minimal_user_context(user_id)


class SQLAlchemyUserContextProvider:
    """Looks users up in the ``users`` table and gathers recent activity stats."""

    _USER_SQL = text("SELECT id, name, email, role FROM users WHERE id = :user_id")

    # (stat key, SQL); each takes :user_id and :since
    _STATS_SQL: tuple[tuple[str, Any], ...] = (
        (
            "totalActivities",
            text(
                "SELECT COUNT(*) FROM activities "
                "WHERE created_by = :user_id AND created_at >= :since"
            ),
        ),
        ("totalAccounts", text("SELECT COUNT(*) FROM accounts WHERE assigned_to = :user_id")),
        ("totalLeads", text("SELECT COUNT(*) FROM leads WHERE assigned_to = :user_id")),
    )

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def fetch(self, user_id: Any) -> UserContext:
        """
        Fetch a user's context.

        Returns the minimal context when the user does not exist. Stats are
        best-effort and omitted when they cannot be computed.

        Raises:
            SQLAlchemyError: If the user lookup itself fails.
        """
        async with self._session_factory() as session:
            row = (await session.execute(self._USER_SQL, {"user_id": user_id})).mappings().first()

        if row is None:
            logger.warning("User %s not found, using minimal context", user_id)
            return minimal_user_context(user_id)

        role = row["role"] or "user"
        return UserContext(
            user_id=row["id"],
            role=role,
            permissions=permissions_for_role(role),
            name=row["name"],
            email=row["email"],
            stats=await self._fetch_stats(row["id"]),
        )

    async def _fetch_stats(self, user_id: Any) -> dict[str, int] | None:
        since = utcnow() - timedelta(days=STATS_WINDOW_DAYS)
        stats: dict[str, int] = {}
        try:
            async with self._session_factory() as session:
                for key, stmt in self._STATS_SQL:
                    result = await session.execute(stmt, {"user_id": user_id, "since": since})
                    stats[key] = result.scalar() or 0
        except SQLAlchemyError as e:
            logger.warning("Could not load stats for user %s: %s", user_id, type(e).__name__)
            return None
        return stats
