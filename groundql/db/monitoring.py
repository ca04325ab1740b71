"""
Read side of ``ai_operation_logs``.

Rolls the rows written by SQLAlchemyEventSink up into daily totals,
latency percentiles and error listings for an admin monitoring view.
Rates are percentages rounded to two decimals.
"""

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from groundql.core.conversation.store import utcnow
from groundql.db.models import OperationLog
from groundql.services.answer_pipeline.observability import OperationType

logger = logging.getLogger(__name__)


class MonitoringError(Exception):
    """Raised when operation logs cannot be read or pruned."""

    pass


# -----------------------------
# Result types
# -----------------------------


@dataclass(frozen=True)
class DailySummary:
    """Totals for one UTC day."""

    date: str
    total_operations: int = 0
    intent_classifications: int = 0
    query_executions: int = 0
    ai_responses: int = 0
    errors: int = 0
    average_intent_confidence: float = 0.0
    average_query_time: float = 0.0
    average_response_time: float = 0.0
    error_rate: float = 0.0
    cache_hit_rate: float = 0.0
    total_cache_hits: int = 0
    total_cache_misses: int = 0

    @property
    def total_queries(self) -> int:
        """Cache lookups, hit or miss."""
        return self.total_cache_hits + self.total_cache_misses


@dataclass(frozen=True)
class PerformanceMetrics:
    """Latency and outcome figures over timed operations in a period."""

    period: str
    total_operations: int = 0
    average_execution_time: float = 0.0
    p50_execution_time: float = 0.0
    p95_execution_time: float = 0.0
    p99_execution_time: float = 0.0
    error_rate: float = 0.0
    success_rate: float = 100.0


def _rate(part: int, whole: int) -> float:
    return part / whole * 100 if whole else 0.0


def _percentile(sorted_times: list[int], q: float) -> float:
    return float(sorted_times[int(len(sorted_times) * q)])


def _utc_date(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.date().isoformat()


class OperationMonitor:
    """
    Aggregate queries over the operation log.

    Example:
        monitor = OperationMonitor(session_factory)
        summary = await monitor.daily_summary(date.today())
        print(summary.cache_hit_rate)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._clock = clock

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise MonitoringError(f"{operation} failed: {type(e).__name__}") from e

    # -------------------------
    # Summaries
    # -------------------------

    async def daily_summary(self, day: date) -> DailySummary:
        """
        Summarize one UTC day of operations.

        Args:
            day: The calendar day to summarize.

        Returns:
            Per-type counts, average intent confidence, average query and
            response times, error rate over all operations and cache hit
            rate over cache lookups. All zeros for a day without rows.

        Raises:
            MonitoringError: If the log table cannot be read.
        """
        start = datetime.combine(day, time.min, tzinfo=timezone.utc)
        stmt = (
            select(
                OperationLog.operation_type,
                func.count(OperationLog.id),
                func.avg(OperationLog.confidence),
                func.avg(OperationLog.execution_time_ms),
            )
            .where(OperationLog.created_at >= start)
            .where(OperationLog.created_at < start + timedelta(days=1))
            .group_by(OperationLog.operation_type)
        )
        async with self._session("daily_summary") as session:
            rows = (await session.execute(stmt)).all()

        counts = {op_type: n for op_type, n, _, _ in rows}
        confidences = {op_type: avg for op_type, _, avg, _ in rows}
        times = {op_type: avg for op_type, _, _, avg in rows}
        total = sum(counts.values())

        def count(op: OperationType) -> int:
            return counts.get(op.value, 0)

        def average(values: dict, op: OperationType) -> float:
            return round(float(values.get(op.value) or 0.0), 2)

        hits = count(OperationType.CACHE_HIT)
        misses = count(OperationType.CACHE_MISS)
        return DailySummary(
            date=day.isoformat(),
            total_operations=total,
            intent_classifications=count(OperationType.INTENT_CLASSIFICATION),
            query_executions=count(OperationType.QUERY_EXECUTION),
            ai_responses=count(OperationType.AI_RESPONSE),
            errors=count(OperationType.ERROR),
            average_intent_confidence=average(confidences, OperationType.INTENT_CLASSIFICATION),
            average_query_time=average(times, OperationType.QUERY_EXECUTION),
            average_response_time=average(times, OperationType.AI_RESPONSE),
            error_rate=round(_rate(count(OperationType.ERROR), total), 2),
            cache_hit_rate=round(_rate(hits, hits + misses), 2),
            total_cache_hits=hits,
            total_cache_misses=misses,
        )

    async def performance_metrics(self, start: datetime, end: datetime) -> PerformanceMetrics:
        """
        Latency percentiles over operations that recorded a duration.

        Percentile p is the sorted duration at index floor(n * p).
        Both bounds are inclusive.

        Raises:
            MonitoringError: If the log table cannot be read.
        """
        stmt = (
            select(OperationLog.execution_time_ms, OperationLog.success)
            .where(OperationLog.created_at >= start)
            .where(OperationLog.created_at <= end)
            .where(OperationLog.execution_time_ms.is_not(None))
        )
        async with self._session("performance_metrics") as session:
            rows = (await session.execute(stmt)).all()

        period = f"{_utc_date(start)} to {_utc_date(end)}"
        if not rows:
            return PerformanceMetrics(period=period)

        times = sorted(duration for duration, _ in rows)
        error_rate = _rate(sum(1 for _, success in rows if not success), len(rows))
        return PerformanceMetrics(
            period=period,
            total_operations=len(rows),
            average_execution_time=round(sum(times) / len(times), 2),
            p50_execution_time=_percentile(times, 0.5),
            p95_execution_time=_percentile(times, 0.95),
            p99_execution_time=_percentile(times, 0.99),
            error_rate=round(error_rate, 2),
            success_rate=round(100 - error_rate, 2),
        )

    async def error_rate(self, start: datetime, end: datetime) -> float:
        """Percentage of failed operations between two instants, inclusive."""
        stmt = (
            select(func.count(OperationLog.id), OperationLog.success)
            .where(OperationLog.created_at >= start)
            .where(OperationLog.created_at <= end)
            .group_by(OperationLog.success)
        )
        async with self._session("error_rate") as session:
            counts = {success: n for n, success in (await session.execute(stmt)).all()}

        return round(_rate(counts.get(False, 0), sum(counts.values())), 2)

    async def recent_errors(self, limit: int = 50) -> list[OperationLog]:
        """ERROR rows, newest first."""
        stmt = (
            select(OperationLog)
            .where(OperationLog.operation_type == OperationType.ERROR.value)
            .order_by(OperationLog.created_at.desc(), OperationLog.id.desc())
            .limit(limit)
        )
        async with self._session("recent_errors") as session:
            return list((await session.execute(stmt)).scalars().all())

    # -------------------------
    # Retention
    # -------------------------

    async def cleanup_old_logs(self, days_to_keep: int = 90) -> int:
        """Delete rows older than ``days_to_keep`` days; returns the count."""
        cutoff = self._clock() - timedelta(days=days_to_keep)
        stmt = delete(OperationLog).where(OperationLog.created_at < cutoff)
        async with self._session("cleanup_old_logs") as session:
            removed = (await session.execute(stmt)).rowcount or 0

        logger.info("Deleted %d operation logs older than %d days", removed, days_to_keep)
        return removed
