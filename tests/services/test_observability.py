"""Tests for pipeline event delivery."""

import logging

import pytest

from groundql.services.answer_pipeline import (
    EventEmitter,
    LoggingEventSink,
    OperationType,
    PipelineEvent,
)


class ListSink:
    def __init__(self) -> None:
        self.events: list[PipelineEvent] = []

    async def record(self, event: PipelineEvent) -> None:
        self.events.append(event)


class ExplodingSink:
    async def record(self, event: PipelineEvent) -> None:
        raise ValueError("bad row")


def event(operation: OperationType = OperationType.CACHE_HIT, success: bool = True) -> PipelineEvent:
    return PipelineEvent(operation=operation, success=success, user_id="u1", details={"sql_query": "SELECT 1"})


class TestEventEmitter:
    """Tests for fire-and-forget emission."""

    @pytest.mark.asyncio
    async def test_delivers_in_order(self) -> None:
        sink = ListSink()
        emitter = EventEmitter(sink)

        emitter.emit(event(OperationType.CACHE_MISS))
        emitter.emit(event(OperationType.QUERY_EXECUTION))
        await emitter.drain()

        assert [e.operation for e in sink.events] == [
            OperationType.CACHE_MISS,
            OperationType.QUERY_EXECUTION,
        ]
        assert emitter.pending == 0

    @pytest.mark.asyncio
    async def test_emit_does_not_wait(self) -> None:
        sink = ListSink()
        emitter = EventEmitter(sink)

        emitter.emit(event())

        assert sink.events == []
        assert emitter.pending == 1
        await emitter.drain()

    @pytest.mark.asyncio
    async def test_failing_sink_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        emitter = EventEmitter(ExplodingSink())

        with caplog.at_level(logging.WARNING):
            emitter.emit(event())
            await emitter.drain()

        assert "Event sink failed for CACHE_HIT" in caplog.text

    def test_no_running_loop_drops_event(self) -> None:
        emitter = EventEmitter(ListSink())
        emitter.emit(event())
        assert emitter.pending == 0


class TestLoggingEventSink:
    """Tests for the default sink."""

    @pytest.mark.asyncio
    async def test_success_and_failure_levels(self, caplog: pytest.LogCaptureFixture) -> None:
        sink = LoggingEventSink()

        with caplog.at_level(logging.INFO, logger="groundql.events"):
            await sink.record(event(OperationType.AI_RESPONSE))
            await sink.record(event(OperationType.ERROR, success=False))

        levels = [(r.levelno, r.getMessage().split()[0]) for r in caplog.records]
        assert levels == [(logging.INFO, "AI_RESPONSE"), (logging.WARNING, "ERROR")]
