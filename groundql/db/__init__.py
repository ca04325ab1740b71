"""Persistence for GroundQL: models, engine factory, stores and sinks."""

from groundql.db.base import Base
from groundql.db.event_sink import SQLAlchemyEventSink
from groundql.db.monitoring import (
    DailySummary,
    MonitoringError,
    OperationMonitor,
    PerformanceMetrics,
)
from groundql.db.session import create_engine_and_sessionmaker, create_tables
from groundql.db.store import SQLAlchemyConversationStore

__all__ = [
    "Base",
    "DailySummary",
    "MonitoringError",
    "OperationMonitor",
    "PerformanceMetrics",
    "SQLAlchemyConversationStore",
    "SQLAlchemyEventSink",
    "create_engine_and_sessionmaker",
    "create_tables",
]
