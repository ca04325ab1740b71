"""Tests for operation-log summaries."""

from datetime import date, datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy import text

from groundql.db import (
    MonitoringError,
    OperationMonitor,
    create_engine_and_sessionmaker,
    create_tables,
)
from groundql.db.models import OperationLog

DAY = date(2024, 5, 10)


def at(hour: int, day: int = 10) -> datetime:
    return datetime(2024, 5, day, hour, tzinfo=timezone.utc)


def log(operation_type: str, created_at: datetime, **columns) -> OperationLog:
    columns.setdefault("success", operation_type != "ERROR")
    return OperationLog(user_id="u1", operation_type=operation_type, created_at=created_at, **columns)


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine, factory = create_engine_and_sessionmaker(f"sqlite+aiosqlite:///{tmp_path / 'monitor.db'}")
    await create_tables(engine)
    yield factory
    await engine.dispose()


async def insert(session_factory, *rows: OperationLog) -> None:
    async with session_factory() as session:
        session.add_all(rows)
        await session.commit()


class TestDailySummary:
    """Tests for per-day rollups."""

    @pytest.mark.asyncio
    async def test_rolls_up_one_day(self, session_factory) -> None:
        await insert(
            session_factory,
            log("INTENT_CLASSIFICATION", at(9), confidence=0.9, execution_time_ms=100),
            log("INTENT_CLASSIFICATION", at(10), confidence=0.6, execution_time_ms=120),
            log("QUERY_EXECUTION", at(9), execution_time_ms=30),
            log("QUERY_EXECUTION", at(11), execution_time_ms=45),
            log("AI_RESPONSE", at(12), execution_time_ms=900),
            log("CACHE_HIT", at(9)),
            log("CACHE_MISS", at(10)),
            log("CACHE_MISS", at(11)),
            log("ERROR", at(13), error_message="boom"),
            log("ERROR", at(23)),
            # Outside the day
            log("ERROR", at(1, day=11)),
            log("QUERY_EXECUTION", at(23, day=9), execution_time_ms=5000),
        )
        monitor = OperationMonitor(session_factory)

        summary = await monitor.daily_summary(DAY)

        assert summary.date == "2024-05-10"
        assert summary.total_operations == 10
        assert summary.intent_classifications == 2
        assert summary.query_executions == 2
        assert summary.ai_responses == 1
        assert summary.errors == 2
        assert summary.average_intent_confidence == 0.75
        assert summary.average_query_time == 37.5
        assert summary.average_response_time == 900.0
        assert summary.error_rate == 20.0
        assert summary.cache_hit_rate == 33.33
        assert summary.total_queries == 3

    @pytest.mark.asyncio
    async def test_empty_day_is_all_zeros(self, session_factory) -> None:
        summary = await OperationMonitor(session_factory).daily_summary(DAY)

        assert summary.total_operations == 0
        assert summary.error_rate == 0.0
        assert summary.cache_hit_rate == 0.0
        assert summary.average_intent_confidence == 0.0


class TestPerformanceMetrics:
    """Tests for latency percentiles and outcome rates."""

    @pytest.mark.asyncio
    async def test_percentiles_over_timed_rows(self, session_factory) -> None:
        rows = [log("QUERY_EXECUTION", at(9), execution_time_ms=ms) for ms in range(10, 110, 10)]
        rows[0].success = False
        rows.append(log("CACHE_HIT", at(9)))  # untimed, ignored
        await insert(session_factory, *rows)
        monitor = OperationMonitor(session_factory)

        metrics = await monitor.performance_metrics(at(0), at(23))

        assert metrics.period == "2024-05-10 to 2024-05-10"
        assert metrics.total_operations == 10
        assert metrics.average_execution_time == 55.0
        assert metrics.p50_execution_time == 60.0
        assert metrics.p95_execution_time == 100.0
        assert metrics.p99_execution_time == 100.0
        assert metrics.error_rate == 10.0
        assert metrics.success_rate == 90.0

    @pytest.mark.asyncio
    async def test_empty_period(self, session_factory) -> None:
        metrics = await OperationMonitor(session_factory).performance_metrics(at(0), at(1, day=12))

        assert metrics.period == "2024-05-10 to 2024-05-12"
        assert metrics.total_operations == 0
        assert metrics.success_rate == 100.0


class TestErrors:
    """Tests for error rate and listings."""

    @pytest.mark.asyncio
    async def test_error_rate(self, session_factory) -> None:
        await insert(
            session_factory,
            log("QUERY_EXECUTION", at(9)),
            log("QUERY_EXECUTION", at(10), success=False),
            log("AI_RESPONSE", at(11)),
            log("ERROR", at(12)),
        )
        monitor = OperationMonitor(session_factory)

        assert await monitor.error_rate(at(0), at(23)) == 50.0
        assert await monitor.error_rate(at(0, day=1), at(1, day=1)) == 0.0

    @pytest.mark.asyncio
    async def test_recent_errors_newest_first(self, session_factory) -> None:
        await insert(
            session_factory,
            log("ERROR", at(9), error_message="first"),
            log("QUERY_EXECUTION", at(10), success=False, error_message="not an error row"),
            log("ERROR", at(11), error_message="second"),
            log("ERROR", at(12), error_message="third"),
        )
        monitor = OperationMonitor(session_factory)

        errors = await monitor.recent_errors(limit=2)

        assert [e.error_message for e in errors] == ["third", "second"]


class TestCleanup:
    """Tests for log retention."""

    @pytest.mark.asyncio
    async def test_deletes_rows_past_retention(self, session_factory) -> None:
        await insert(
            session_factory,
            log("CACHE_HIT", datetime(2024, 1, 1, tzinfo=timezone.utc)),
            log("CACHE_HIT", datetime(2024, 2, 1, tzinfo=timezone.utc)),
            log("CACHE_HIT", at(9)),
        )
        monitor = OperationMonitor(session_factory, clock=lambda: at(12))

        assert await monitor.cleanup_old_logs(days_to_keep=90) == 2
        assert (await monitor.daily_summary(DAY)).total_operations == 1


class TestFailures:
    """Tests for database errors."""

    @pytest.mark.asyncio
    async def test_missing_table_raises_monitoring_error(self, session_factory) -> None:
        async with session_factory() as session:
            await session.execute(text("DROP TABLE ai_operation_logs"))
            await session.commit()

        with pytest.raises(MonitoringError, match="daily_summary failed"):
            await OperationMonitor(session_factory).daily_summary(DAY)
