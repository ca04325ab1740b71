"""
Pipeline observability for GroundQL.

Every pipeline stage reports a PipelineEvent. Events go to an injected
EventSink through an EventEmitter that schedules delivery as a background
task: the caller never waits on the sink and a failing sink is only
logged.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class OperationType(str, Enum):
    """Kinds of pipeline operations that are reported."""

    USER_CONTEXT = "USER_CONTEXT"
    INTENT_CLASSIFICATION = "INTENT_CLASSIFICATION"
    QUERY_BUILD = "QUERY_BUILD"
    QUERY_EXECUTION = "QUERY_EXECUTION"
    CONTEXT_FORMAT = "CONTEXT_FORMAT"
    AI_RESPONSE = "AI_RESPONSE"
    ERROR = "ERROR"
    CACHE_HIT = "CACHE_HIT"
    CACHE_MISS = "CACHE_MISS"


@dataclass(frozen=True)
class PipelineEvent:
    """One reported pipeline operation."""

    operation: OperationType
    success: bool
    duration_ms: int | None = None
    user_id: str | None = None
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


class EventSink(Protocol):
    async def record(self, event: PipelineEvent) -> None: ...


class LoggingEventSink:
    """Writes events to the ``groundql.events`` logger."""

    def __init__(self, logger_name: str = "groundql.events"):
        self._logger = logging.getLogger(logger_name)

    async def record(self, event: PipelineEvent) -> None:
        if event.success:
            self._logger.info(
                "%s user=%s duration_ms=%s details=%s",
                event.operation.value,
                event.user_id,
                event.duration_ms,
                event.details,
            )
        else:
            self._logger.warning(
                "%s failed user=%s duration_ms=%s error=%s",
                event.operation.value,
                event.user_id,
                event.duration_ms,
                event.error,
            )


class EventEmitter:
    """
    Fire-and-forget delivery of events to a sink.

    Pending deliveries are held in a set until done so they are not
    garbage collected mid-flight.
    """

    def __init__(self, sink: EventSink | None = None):
        self._sink = sink or LoggingEventSink()
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def emit(self, event: PipelineEvent) -> None:
        """Schedule delivery of an event. Never raises."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop, dropping %s event", event.operation.value)
            return

        task = loop.create_task(self._deliver(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for every scheduled delivery to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _deliver(self, event: PipelineEvent) -> None:
        try:
            await self._sink.record(event)
        except Exception as e:
            logger.warning(
                "Event sink failed for %s: %s: %s",
                event.operation.value,
                type(e).__name__,
                e,
            )
