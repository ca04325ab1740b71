"""
Intent Contract Guard for GroundQL.

Validates and defaults the output of the external classification call
into a closed-shape QueryIntent. The language model is treated as
fallible: unknown categories, missing tables, out-of-range confidence
and odd filter shapes are coerced rather than rejected. Only output that
is not an object at all is refused.
"""

import logging
import math
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

from groundql.core.intent.models import (
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

logger = logging.getLogger(__name__)


# -----------------------------
# Errors
# -----------------------------


class IntentContractError(ValueError):
    """Raised when classifier output cannot be read as an intent at all."""

    pass


# -----------------------------
# Defaults
# -----------------------------

DEFAULT_CATEGORY = IntentCategory.CONTACT_QUERY
DEFAULT_TABLES: tuple[str, ...] = ("contacts",)
DEFAULT_CONFIDENCE = 0.5
DEFAULT_EXPLANATION = "Intent classified based on question analysis"

# Spellings accepted for each operator (lowercased before lookup)
_OPERATOR_ALIASES: dict[str, FilterOperator] = {
    "=": FilterOperator.EQ,
    "==": FilterOperator.EQ,
    "eq": FilterOperator.EQ,
    "$eq": FilterOperator.EQ,
    "!=": FilterOperator.NOT_EQ,
    "<>": FilterOperator.NOT_EQ,
    "ne": FilterOperator.NOT_EQ,
    "$ne": FilterOperator.NOT_EQ,
    ">": FilterOperator.GT,
    "gt": FilterOperator.GT,
    "$gt": FilterOperator.GT,
    ">=": FilterOperator.GTE,
    "gte": FilterOperator.GTE,
    "$gte": FilterOperator.GTE,
    "<": FilterOperator.LT,
    "lt": FilterOperator.LT,
    "$lt": FilterOperator.LT,
    "<=": FilterOperator.LTE,
    "lte": FilterOperator.LTE,
    "$lte": FilterOperator.LTE,
    "like": FilterOperator.LIKE,
    "$like": FilterOperator.LIKE,
    "in": FilterOperator.IN,
    "$in": FilterOperator.IN,
    "not in": FilterOperator.NOT_IN,
    "not_in": FilterOperator.NOT_IN,
    "nin": FilterOperator.NOT_IN,
    "$nin": FilterOperator.NOT_IN,
    "is null": FilterOperator.IS_NULL,
    "is_null": FilterOperator.IS_NULL,
    "null": FilterOperator.IS_NULL,
    "$null": FilterOperator.IS_NULL,
    "is not null": FilterOperator.IS_NOT_NULL,
    "is_not_null": FilterOperator.IS_NOT_NULL,
    "not_null": FilterOperator.IS_NOT_NULL,
    "notnull": FilterOperator.IS_NOT_NULL,
    "$notnull": FilterOperator.IS_NOT_NULL,
    "between": FilterOperator.BETWEEN,
    "$between": FilterOperator.BETWEEN,
}

_AGGREGATION_ALIASES: dict[str, AggregationType] = {
    "AVERAGE": AggregationType.AVG,
    "MEAN": AggregationType.AVG,
    "TOTAL": AggregationType.SUM,
    "MINIMUM": AggregationType.MIN,
    "MAXIMUM": AggregationType.MAX,
}

_EMPTY_MARKERS = {"", "none", "null", "n/a"}


def normalize_operator(op: Any) -> FilterOperator | None:
    """Map any accepted operator spelling to a FilterOperator."""
    if isinstance(op, FilterOperator):
        return op
    if not isinstance(op, str):
        return None
    key = " ".join(op.strip().lower().split())
    return _OPERATOR_ALIASES.get(key)


# -----------------------------
# Filter Parsing
# -----------------------------


def parse_filters(raw: Any) -> tuple[list[IntentFilter], list[str]]:
    """
    Parse loose filter input into the closed filter union.

    Accepted shapes:
        {"status": "active"}                        -> status = 'active'
        {"status": ["a", "b"]}                      -> status IN (...)
        {"score": {"$gt": 70}} / {"score": {"gt": 70}} / {"score": {">": 70}}
        {"score": {"operator": ">", "value": 70}}
        [{"field": "score", "operator": ">", "value": 70}, ...]

    Args:
        raw: Filter payload from the classifier or a caller.

    Returns:
        Tuple of (parsed filters, warnings for anything dropped).
    """
    filters: list[IntentFilter] = []
    warnings: list[str] = []

    if raw is None:
        return filters, warnings

    if isinstance(raw, Mapping):
        for field, value in raw.items():
            _parse_field_entry(str(field), value, filters, warnings)
    elif isinstance(raw, (list, tuple)):
        for entry in raw:
            if not isinstance(entry, Mapping) or "field" not in entry:
                warnings.append(f"Ignored malformed filter entry: {entry!r}")
                continue
            _append_filter(
                str(entry["field"]),
                entry.get("operator", "="),
                entry.get("value"),
                filters,
                warnings,
            )
    else:
        warnings.append(f"Ignored filters of unsupported type {type(raw).__name__}")

    for warning in warnings:
        logger.warning("Filter parsing: %s", warning)

    return filters, warnings


def _parse_field_entry(
    field: str,
    value: Any,
    filters: list[IntentFilter],
    warnings: list[str],
) -> None:
    """Parse one ``field: value`` pair of the mapping shape."""
    if value is None:
        return

    if isinstance(value, Mapping):
        if "operator" in value:
            _append_filter(field, value["operator"], value.get("value"), filters, warnings)
            return
        for op, op_value in value.items():
            _append_filter(field, op, op_value, filters, warnings)
        return

    if isinstance(value, (list, tuple, set)):
        _append_filter(field, FilterOperator.IN, list(value), filters, warnings)
        return

    _append_filter(field, FilterOperator.EQ, value, filters, warnings)


def _append_filter(
    field: str,
    op: Any,
    value: Any,
    filters: list[IntentFilter],
    warnings: list[str],
) -> None:
    """Build a single filter variant, recording a warning when it is unusable."""
    operator = normalize_operator(op)
    if operator is None:
        warnings.append(f"Unknown operator {op!r} on field '{field}'")
        return

    match operator:
        case FilterOperator.IS_NULL | FilterOperator.IS_NOT_NULL:
            negated = operator == FilterOperator.IS_NOT_NULL
            # {"$null": false} means the column must be present
            if value is False:
                negated = not negated
            filters.append(NullFilter(field=field, negated=negated))

        case FilterOperator.IN | FilterOperator.NOT_IN:
            if not isinstance(value, (list, tuple, set)) or not value:
                warnings.append(f"{operator.value} on '{field}' needs a non-empty list")
                return
            filters.append(ListFilter(field=field, operator=operator, values=tuple(value)))

        case FilterOperator.BETWEEN:
            if not isinstance(value, (list, tuple)) or len(value) != 2:
                warnings.append(f"BETWEEN on '{field}' needs exactly two values")
                return
            filters.append(RangeFilter(field=field, low=value[0], high=value[1]))

        case _:
            if value is None or isinstance(value, (Mapping, list, tuple, set)):
                warnings.append(
                    f"{operator.value} on '{field}' needs a single value, got {value!r}"
                )
                return
            filters.append(ComparisonFilter(field=field, operator=operator, value=value))


# -----------------------------
# Field Coercion
# -----------------------------


def coerce_category(value: Any) -> IntentCategory:
    """Coerce any value into the fixed category enum."""
    if isinstance(value, IntentCategory):
        return value
    if isinstance(value, str):
        try:
            return IntentCategory(value.strip().upper())
        except ValueError:
            pass
    logger.warning("Unknown intent category %r, defaulting to %s", value, DEFAULT_CATEGORY.value)
    return DEFAULT_CATEGORY


def coerce_tables(value: Any) -> list[str]:
    """Normalize table names, falling back to the default table."""
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return list(DEFAULT_TABLES)

    tables: list[str] = []
    for item in value:
        if not isinstance(item, str):
            continue
        name = item.strip().lower()
        if name and name not in tables:
            tables.append(name)

    return tables or list(DEFAULT_TABLES)


def coerce_aggregation(value: Any) -> AggregationType | None:
    """Normalize an aggregation name; 'none' and unknowns become None."""
    if value is None:
        return None
    if isinstance(value, AggregationType):
        return value

    key = str(value).strip().upper()
    if key.lower() in _EMPTY_MARKERS:
        return None
    key = _AGGREGATION_ALIASES.get(key, key)
    try:
        return AggregationType(key)
    except ValueError:
        logger.warning("Unknown aggregation type %r, ignoring", value)
        return None


def _coerce_bound(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    text = str(value).strip()
    return None if text.lower() in _EMPTY_MARKERS else text


def coerce_time_range(value: Any) -> TimeRange | None:
    """Normalize a time range; a bare string is treated as the start."""
    if value is None:
        return None
    if isinstance(value, TimeRange):
        return value
    if isinstance(value, str):
        start = _coerce_bound(value)
        return TimeRange(start=start) if start else None
    if not isinstance(value, Mapping):
        return None

    start = _coerce_bound(value.get("start"))
    end = _coerce_bound(value.get("end"))
    if start is None and end is None:
        return None
    return TimeRange(start=start, end=end)


def coerce_confidence(value: Any) -> float:
    """Clamp confidence into [0, 1]; non-numeric values get the default."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_CONFIDENCE
    if math.isnan(value):
        return DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, float(value)))


# -----------------------------
# Guard Entry Points
# -----------------------------


def coerce_intent(raw: Mapping[str, Any]) -> QueryIntent:
    """
    Coerce a loose intent mapping into a QueryIntent.

    Accepts both snake_case and camelCase keys for the aggregation
    and time range.
    """
    if not isinstance(raw, Mapping):
        raise IntentContractError(
            f"Intent must be an object, got {type(raw).__name__}"
        )

    filters, warnings = parse_filters(raw.get("filters"))

    aggregation_raw = raw.get("aggregation_type", raw.get("aggregationType"))
    time_range_raw = raw.get("time_range", raw.get("timeRange"))

    return QueryIntent(
        category=coerce_category(raw.get("category")),
        tables=coerce_tables(raw.get("tables")),
        filters=filters,
        aggregation_type=coerce_aggregation(aggregation_raw),
        time_range=coerce_time_range(time_range_raw),
        warnings=warnings,
    )


def coerce_classification(raw: Any) -> IntentClassification:
    """
    Validate and default raw classifier output.

    Args:
        raw: Parsed JSON from the language model. Either
            ``{"intent": {...}, "confidence": .., "explanation": ..}``
            or a flat intent object.

    Returns:
        A fully-populated IntentClassification.

    Raises:
        IntentContractError: If the output is not an object or holds no intent.
    """
    if not isinstance(raw, Mapping):
        raise IntentContractError(
            f"Classifier output must be a JSON object, got {type(raw).__name__}"
        )

    intent_raw = raw.get("intent")
    if intent_raw is None and ("category" in raw or "tables" in raw):
        intent_raw = raw
    if not isinstance(intent_raw, Mapping):
        raise IntentContractError("Invalid response from intent classifier: missing intent")

    explanation = raw.get("explanation")
    if not isinstance(explanation, str) or not explanation.strip():
        explanation = DEFAULT_EXPLANATION

    return IntentClassification(
        intent=coerce_intent(intent_raw),
        confidence=coerce_confidence(raw.get("confidence")),
        explanation=explanation.strip(),
    )
