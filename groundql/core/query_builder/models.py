"""
Query builder data structures for GroundQL.

Inputs (user context, options, heuristics) and the builder result.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from groundql.core.intent.models import AggregationType


# -----------------------------
# Inputs
# -----------------------------


@dataclass
class UserContext:
    """
    Identity and role of the asking user.

    Produced upstream by authentication; this core only reads it.
    """

    user_id: str | int | None = None
    role: str = "user"
    permissions: list[str] = field(default_factory=list)
    name: str | None = None
    email: str | None = None
    stats: dict[str, Any] | None = None

    @property
    def is_admin(self) -> bool:
        return (self.role or "").strip().lower() == "admin"

    @property
    def has_identity(self) -> bool:
        return self.user_id is not None and str(self.user_id) != ""


class OrderDirection(str, Enum):
    """Sort direction for ORDER BY clauses."""

    ASC = "ASC"
    DESC = "DESC"


@dataclass(frozen=True)
class OrderBy:
    """Represents an ORDER BY term."""

    field: str
    direction: OrderDirection = OrderDirection.DESC


@dataclass(frozen=True)
class QueryOptions:
    """Caller-supplied shaping options."""

    limit: int | None = None
    offset: int | None = None
    order_by: tuple[OrderBy, ...] = ()
    group_by: tuple[str, ...] = ()


# -----------------------------
# Heuristics
# -----------------------------

DEFAULT_AGGREGATION_FIELDS: dict[AggregationType, tuple[str, ...]] = {
    AggregationType.SUM: ("total_price", "price", "value", "amount", "cost"),
    AggregationType.AVG: ("engagement_score", "score", "value", "price", "rating"),
    AggregationType.MAX: ("engagement_score", "score", "value", "price", "created_at"),
    AggregationType.MIN: ("engagement_score", "score", "value", "price", "created_at"),
}


@dataclass(frozen=True)
class HeuristicConfig:
    """
    Keyword lookup tables behind the builder's best-effort guesses.

    None of these lists claims to be complete; they are tuned for the
    default CRM schema and can be replaced per deployment.
    """

    aggregation_fields: dict[AggregationType, tuple[str, ...]] = field(
        default_factory=lambda: dict(DEFAULT_AGGREGATION_FIELDS)
    )
    numeric_name_hints: tuple[str, ...] = ("price", "value", "score", "amount")
    having_patterns: tuple[str, ...] = (
        "count", "sum", "avg", "average", "min", "max", "total",
    )
    group_by_columns: tuple[str, ...] = (
        "type", "status", "assigned_employee_id", "assigned_to", "created_by", "source",
    )
    assigned_columns: tuple[str, ...] = (
        "assigned_to", "assigned_employee_id", "assigned_employee",
    )
    creator_columns: tuple[str, ...] = ("created_by", "created_by_id")
    timestamp_hints: tuple[str, ...] = ("date", "timestamp")


# -----------------------------
# Result
# -----------------------------


@dataclass
class QueryBuilderResult:
    """
    Parameterized SQL produced from an intent.

    ``params`` is positional and corresponds 1:1 with the ``$n``
    placeholders in ``sql``. ``warnings`` lists every place where the
    builder fell back to a default instead of failing.
    """

    sql: str
    params: list[Any]
    explanation: str
    affected_tables: list[str]
    warnings: list[str] = field(default_factory=list)
