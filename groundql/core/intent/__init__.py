"""Intent contract for GroundQL - closed-shape intents and the coercion guard."""

from .contract import (
    DEFAULT_CATEGORY,
    DEFAULT_TABLES,
    IntentContractError,
    coerce_classification,
    coerce_intent,
    normalize_operator,
    parse_filters,
)
from .models import (
    AggregationType,
    ComparisonFilter,
    FilterOperator,
    IntentCategory,
    IntentClassification,
    IntentFilter,
    ListFilter,
    NullFilter,
    QueryIntent,
    RangeFilter,
    TimeRange,
)

__all__ = [
    # Models
    "AggregationType",
    "ComparisonFilter",
    "FilterOperator",
    "IntentCategory",
    "IntentClassification",
    "IntentFilter",
    "ListFilter",
    "NullFilter",
    "QueryIntent",
    "RangeFilter",
    "TimeRange",
    # Guard
    "DEFAULT_CATEGORY",
    "DEFAULT_TABLES",
    "IntentContractError",
    "coerce_classification",
    "coerce_intent",
    "normalize_operator",
    "parse_filters",
]
