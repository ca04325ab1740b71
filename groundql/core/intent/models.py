"""
Intent models for GroundQL.

These models define the closed shape that an external classification
call is coerced into before anything downstream sees it.

Filters are a tagged union: the loose operator-object shapes emitted by
the language model are parsed once (see ``contract.parse_filters``) and
never re-inspected by the query builder.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# -----------------------------
# Enums (restrict AI output)
# -----------------------------


class IntentCategory(str, Enum):
    """The fixed set of question categories."""

    CONTACT_QUERY = "CONTACT_QUERY"
    ACCOUNT_QUERY = "ACCOUNT_QUERY"
    ACTIVITY_QUERY = "ACTIVITY_QUERY"
    QUOTATION_QUERY = "QUOTATION_QUERY"
    LEAD_QUERY = "LEAD_QUERY"
    PERFORMANCE_QUERY = "PERFORMANCE_QUERY"
    AGGREGATION_QUERY = "AGGREGATION_QUERY"
    COMPARISON_QUERY = "COMPARISON_QUERY"
    TREND_QUERY = "TREND_QUERY"
    PREDICTION_QUERY = "PREDICTION_QUERY"


class AggregationType(str, Enum):
    """Supported aggregate functions."""

    COUNT = "COUNT"
    SUM = "SUM"
    AVG = "AVG"
    MIN = "MIN"
    MAX = "MAX"


class FilterOperator(str, Enum):
    """Supported filter operators, rendered verbatim into SQL."""

    EQ = "="
    NOT_EQ = "!="
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    LIKE = "LIKE"
    IN = "IN"
    NOT_IN = "NOT IN"
    IS_NULL = "IS NULL"
    IS_NOT_NULL = "IS NOT NULL"
    BETWEEN = "BETWEEN"


COMPARISON_OPERATORS = frozenset({
    FilterOperator.EQ,
    FilterOperator.NOT_EQ,
    FilterOperator.GT,
    FilterOperator.GTE,
    FilterOperator.LT,
    FilterOperator.LTE,
    FilterOperator.LIKE,
})

LIST_OPERATORS = frozenset({FilterOperator.IN, FilterOperator.NOT_IN})


# -----------------------------
# Filter Variants
# -----------------------------


class ComparisonFilter(BaseModel):
    """
    A single-value comparison.

    Examples:
        engagement_score > 70
        name LIKE '%acme%'
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["comparison"] = "comparison"
    field: str
    operator: FilterOperator
    value: Any

    @field_validator("operator")
    @classmethod
    def must_be_comparison(cls, v: FilterOperator) -> FilterOperator:
        if v not in COMPARISON_OPERATORS:
            raise ValueError(f"{v.value} is not a comparison operator")
        return v

    def describe(self) -> str:
        return f"{self.field} {self.operator.value} {self.value}"


class ListFilter(BaseModel):
    """A membership test: IN or NOT IN."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["list"] = "list"
    field: str
    operator: FilterOperator = FilterOperator.IN
    values: tuple[Any, ...] = Field(..., min_length=1)

    @field_validator("operator")
    @classmethod
    def must_be_membership(cls, v: FilterOperator) -> FilterOperator:
        if v not in LIST_OPERATORS:
            raise ValueError(f"{v.value} is not a membership operator")
        return v

    def describe(self) -> str:
        joined = ", ".join(str(v) for v in self.values)
        return f"{self.field} {self.operator.value} ({joined})"


class RangeFilter(BaseModel):
    """An inclusive BETWEEN range."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["range"] = "range"
    field: str
    low: Any
    high: Any

    @property
    def operator(self) -> FilterOperator:
        return FilterOperator.BETWEEN

    def describe(self) -> str:
        return f"{self.field} BETWEEN {self.low} AND {self.high}"


class NullFilter(BaseModel):
    """IS NULL, or IS NOT NULL when negated."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["null"] = "null"
    field: str
    negated: bool = False

    @property
    def operator(self) -> FilterOperator:
        return FilterOperator.IS_NOT_NULL if self.negated else FilterOperator.IS_NULL

    def describe(self) -> str:
        return f"{self.field} {self.operator.value}"


IntentFilter = Annotated[
    Union[ComparisonFilter, ListFilter, RangeFilter, NullFilter],
    Field(discriminator="kind"),
]


# -----------------------------
# Root Intent
# -----------------------------


class TimeRange(BaseModel):
    """
    A time window for the question.

    Each bound is either a relative phrase ("this month", "last 30 days")
    or an absolute ISO date string.
    """

    model_config = ConfigDict(frozen=True)

    start: str | None = None
    end: str | None = None


class QueryIntent(BaseModel):
    """
    Structured interpretation of a question.

    Produced by the intent contract guard and consumed by the query builder.
    """

    category: IntentCategory = Field(
        default=IntentCategory.CONTACT_QUERY,
        description="Question category",
    )

    tables: list[str] = Field(
        ...,
        min_length=1,
        description="Relevant tables; the first is the primary table",
    )

    filters: list[IntentFilter] = Field(
        default_factory=list,
        description="Parsed filter conditions",
    )

    aggregation_type: AggregationType | None = Field(
        default=None,
        description="Aggregate function, if any",
    )

    time_range: TimeRange | None = None

    warnings: list[str] = Field(
        default_factory=list,
        exclude=True,
        description="Notes about input that was dropped while parsing",
    )

    @property
    def primary_table(self) -> str:
        return self.tables[0]

    @property
    def is_aggregation(self) -> bool:
        return (
            self.category == IntentCategory.AGGREGATION_QUERY
            or self.aggregation_type is not None
        )

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> "QueryIntent":
        """Coerce a loose intent mapping into a QueryIntent."""
        from groundql.core.intent.contract import coerce_intent

        return coerce_intent(raw)

    def snapshot(self) -> dict[str, Any]:
        """JSON-safe summary for logging and conversation history."""
        return {
            "category": self.category.value,
            "tables": list(self.tables),
            "filters": [f.describe() for f in self.filters],
            "aggregationType": self.aggregation_type.value if self.aggregation_type else None,
            "timeRange": self.time_range.model_dump() if self.time_range else None,
        }


class IntentClassification(BaseModel):
    """Validated output of the classification call."""

    intent: QueryIntent
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    explanation: str = "Intent classified based on question analysis"
