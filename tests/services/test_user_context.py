"""Tests for user context providers."""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import text

from groundql.core.query_builder import UserContext
from groundql.db import create_engine_and_sessionmaker
from groundql.services.answer_pipeline import (
    SQLAlchemyUserContextProvider,
    StaticUserContextProvider,
    minimal_user_context,
    permissions_for_role,
)


class TestPermissions:
    """Tests for role-derived permissions."""

    def test_roles(self) -> None:
        assert permissions_for_role("Admin") == ["read", "write", "delete", "admin"]
        assert permissions_for_role("manager") == ["read", "write"]
        assert permissions_for_role("sales") == ["read"]
        assert permissions_for_role(None) == ["read"]

    def test_minimal_context(self) -> None:
        context = minimal_user_context("u1")
        assert context.user_id == "u1"
        assert context.role == "user"
        assert context.permissions == ["read"]


class TestStaticProvider:
    """Tests for the mapping-backed provider."""

    @pytest.mark.asyncio
    async def test_known_and_unknown_users(self) -> None:
        admin = UserContext(user_id=1, role="admin")
        provider = StaticUserContextProvider({1: admin})

        assert await provider.fetch("1") is admin
        assert (await provider.fetch("2")).role == "user"


@pytest_asyncio.fixture
async def crm(tmp_path):
    engine, factory = create_engine_and_sessionmaker(f"sqlite+aiosqlite:///{tmp_path / 'crm.db'}")
    recent = (datetime.now(timezone.utc) - timedelta(days=2)).isoformat()
    old = (datetime.now(timezone.utc) - timedelta(days=90)).isoformat()

    async with engine.begin() as conn:
        await conn.execute(text("CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT, email TEXT, role TEXT)"))
        await conn.execute(text("CREATE TABLE accounts (id INTEGER PRIMARY KEY, assigned_to INTEGER)"))
        await conn.execute(text("CREATE TABLE leads (id INTEGER PRIMARY KEY, assigned_to INTEGER)"))
        await conn.execute(
            text("CREATE TABLE activities (id INTEGER PRIMARY KEY, created_by INTEGER, created_at TEXT)")
        )
        await conn.execute(
            text("INSERT INTO users VALUES (7, 'Priya', 'priya@example.com', 'Manager'), (8, 'Sam', NULL, NULL)")
        )
        await conn.execute(text("INSERT INTO accounts (assigned_to) VALUES (7), (7), (8)"))
        await conn.execute(text("INSERT INTO leads (assigned_to) VALUES (7)"))
        await conn.execute(
            text("INSERT INTO activities (created_by, created_at) VALUES (7, :recent), (7, :old)"),
            {"recent": recent, "old": old},
        )
    yield engine, factory
    await engine.dispose()


class TestSQLAlchemyProvider:
    """Tests for the database-backed provider."""

    @pytest.mark.asyncio
    async def test_user_with_stats(self, crm) -> None:
        _, factory = crm
        context = await SQLAlchemyUserContextProvider(factory).fetch(7)

        assert context.name == "Priya"
        assert context.email == "priya@example.com"
        assert context.permissions == ["read", "write"]
        assert context.stats == {"totalActivities": 1, "totalAccounts": 2, "totalLeads": 1}

    @pytest.mark.asyncio
    async def test_missing_role_defaults_to_user(self, crm) -> None:
        _, factory = crm
        context = await SQLAlchemyUserContextProvider(factory).fetch(8)

        assert context.role == "user"
        assert context.stats["totalLeads"] == 0

    @pytest.mark.asyncio
    async def test_unknown_user_gets_minimal_context(self, crm) -> None:
        _, factory = crm
        context = await SQLAlchemyUserContextProvider(factory).fetch(99)

        assert context.user_id == 99
        assert context.stats is None

    @pytest.mark.asyncio
    async def test_stats_failure_is_tolerated(self, crm) -> None:
        engine, factory = crm
        async with engine.begin() as conn:
            await conn.execute(text("DROP TABLE leads"))

        context = await SQLAlchemyUserContextProvider(factory).fetch(7)

        assert context.name == "Priya"
        assert context.stats is None
