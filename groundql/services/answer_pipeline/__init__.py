"""Grounded answer pipeline: classify, build, execute, format, generate."""

from groundql.services.answer_pipeline.execution import (
    QueryExecutionError,
    QueryExecutor,
    SQLAlchemyQueryExecutor,
    render_literal,
    substitute_params,
)
from groundql.services.answer_pipeline.formatter import (
    ContextFormattingError,
    format_column_name,
    format_no_results,
    format_query_results,
    format_user_context,
    format_value,
)
from groundql.services.answer_pipeline.observability import (
    EventEmitter,
    EventSink,
    LoggingEventSink,
    OperationType,
    PipelineEvent,
)
from groundql.services.answer_pipeline.pipeline import (
    AnswerPipeline,
    AnswerResponse,
    StreamEvent,
    StreamEventType,
)
from groundql.services.answer_pipeline.user_context import (
    SQLAlchemyUserContextProvider,
    StaticUserContextProvider,
    UserContextProvider,
    minimal_user_context,
    permissions_for_role,
)
from groundql.services.answer_pipeline.validator import validate_answer

__all__ = [
    # Pipeline
    "AnswerPipeline",
    "AnswerResponse",
    "StreamEvent",
    "StreamEventType",
    # Execution
    "QueryExecutionError",
    "QueryExecutor",
    "SQLAlchemyQueryExecutor",
    "render_literal",
    "substitute_params",
    # Formatting
    "ContextFormattingError",
    "format_column_name",
    "format_no_results",
    "format_query_results",
    "format_user_context",
    "format_value",
    "validate_answer",
    # User context
    "SQLAlchemyUserContextProvider",
    "StaticUserContextProvider",
    "UserContextProvider",
    "minimal_user_context",
    "permissions_for_role",
    # Observability
    "EventEmitter",
    "EventSink",
    "LoggingEventSink",
    "OperationType",
    "PipelineEvent",
]
