"""Dynamic SQL building and join resolution for GroundQL."""

from groundql.core.query_builder.builder import QueryBuilder, QueryBuildError
from groundql.core.query_builder.join_resolver import (
    JoinPlan,
    JoinResolver,
    JoinStep,
    JoinType,
)
from groundql.core.query_builder.models import (
    DEFAULT_AGGREGATION_FIELDS,
    HeuristicConfig,
    OrderBy,
    OrderDirection,
    QueryBuilderResult,
    QueryOptions,
    UserContext,
)
from groundql.core.query_builder.time_range import compile_relative, is_absolute_date

__all__ = [
    "DEFAULT_AGGREGATION_FIELDS",
    "HeuristicConfig",
    "JoinPlan",
    "JoinResolver",
    "JoinStep",
    "JoinType",
    "OrderBy",
    "OrderDirection",
    "QueryBuildError",
    "QueryBuilder",
    "QueryBuilderResult",
    "QueryOptions",
    "UserContext",
    "compile_relative",
    "is_absolute_date",
]
