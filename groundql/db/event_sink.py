"""Event sink that persists pipeline events to ``ai_operation_logs``."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from groundql.db.models import OperationLog
from groundql.services.answer_pipeline.observability import PipelineEvent

logger = logging.getLogger(__name__)

# Event detail keys that map onto dedicated columns
_COLUMN_DETAILS = (
    "question",
    "answer",
    "sql_query",
    "intent_category",
    "intent_tables",
    "mode",
    "confidence",
    "row_count",
)


class SQLAlchemyEventSink:
    """Writes one OperationLog row per event."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def record(self, event: PipelineEvent) -> None:
        details = dict(event.details)
        columns = {key: details.pop(key) for key in _COLUMN_DETAILS if key in details}

        row = OperationLog(
            user_id=str(event.user_id or "anonymous"),
            operation_type=event.operation.value,
            success=event.success,
            error_message=event.error,
            execution_time_ms=event.duration_ms,
            meta=details or None,
            **columns,
        )

        async with self._session_factory() as session:
            session.add(row)
            await session.commit()

        logger.debug("Logged %s operation for user %s", event.operation.value, row.user_id)
