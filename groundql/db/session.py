"""Async engine and session factory."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from groundql.config import get_settings
from groundql.db.base import Base


def create_engine_and_sessionmaker(
    database_url: str | None = None,
    echo: bool | None = None,
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """
    Create the async engine and its session factory.

    Args:
        database_url: SQLAlchemy URL. Defaults to Settings.database_url.
        echo: Log SQL statements. Defaults to Settings.database_echo.

    Returns:
        Tuple of (engine, session factory).
    """
    settings = get_settings()
    url = database_url or settings.database_url

    engine_kwargs = {"echo": settings.database_echo if echo is None else echo}
    if not url.startswith("sqlite"):
        engine_kwargs["pool_pre_ping"] = True

    engine = create_async_engine(url, **engine_kwargs)
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return engine, session_factory


async def create_tables(engine: AsyncEngine) -> None:
    """Create GroundQL's tables if they do not exist."""
    # Register the models on Base.metadata
    from groundql.db import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
