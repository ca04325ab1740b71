"""
Dynamic Query Builder for GroundQL.

Turns a validated QueryIntent (plus user context and options) into a
parameterized PostgreSQL statement with sequential ``$n`` placeholders.

Every literal coming from the intent or the user context is bound as a
parameter. Identifiers are either taken from the schema registry or
checked against a strict identifier pattern before being emitted.
"""

import logging
import re
from collections.abc import Mapping
from typing import Any

from groundql.core.intent.contract import coerce_intent
from groundql.core.intent.models import (
    AggregationType,
    ComparisonFilter,
    FilterOperator,
    IntentFilter,
    ListFilter,
    NullFilter,
    QueryIntent,
    RangeFilter,
)
from groundql.core.query_builder.join_resolver import JoinPlan, JoinResolver
from groundql.core.query_builder.models import (
    HeuristicConfig,
    OrderDirection,
    QueryBuilderResult,
    QueryOptions,
    UserContext,
)
from groundql.core.query_builder.time_range import compile_relative, is_absolute_date
from groundql.core.schema_registry.registry import (
    SchemaRegistry,
    TableSchema,
    get_default_registry,
)

logger = logging.getLogger(__name__)

_FIELD_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")
_TABLE_PATTERN = re.compile(r"^[a-z_][a-z0-9_]*$")
_PLACEHOLDER = re.compile(r"\$(\d+)")

# Alias used when the aggregate has no concrete column
_BARE_ALIASES: dict[AggregationType, str] = {
    AggregationType.COUNT: "count",
    AggregationType.SUM: "total",
    AggregationType.AVG: "average",
    AggregationType.MIN: "min_value",
    AggregationType.MAX: "max_value",
}


# -----------------------------
# Errors
# -----------------------------


class QueryBuildError(Exception):
    """Raised when the builder reaches an invalid internal state."""

    pass


# -----------------------------
# Parameter binding
# -----------------------------


class _ParamBinder:
    """Hands out sequential placeholders; one instance per build."""

    def __init__(self) -> None:
        self.params: list[Any] = []

    def bind(self, value: Any) -> str:
        self.params.append(value)
        return f"${len(self.params)}"


# -----------------------------
# Builder
# -----------------------------


class QueryBuilder:
    """
    Builds parameterized SQL from a QueryIntent.

    Pure and deterministic over the registry: the same intent, context
    and options always produce the same SQL and parameters.
    """

    def __init__(
        self,
        registry: SchemaRegistry | None = None,
        heuristics: HeuristicConfig | None = None,
    ):
        """
        Initialize the builder.

        Args:
            registry: Schema registry for table and column lookups.
                     Uses default registry if not provided.
            heuristics: Keyword tables for aggregation, grouping,
                       HAVING and ownership guesses.
        """
        self._registry = registry or get_default_registry()
        self._heuristics = heuristics or HeuristicConfig()
        self._join_resolver = JoinResolver(self._registry)

    @property
    def registry(self) -> SchemaRegistry:
        return self._registry

    def build_query(
        self,
        intent: QueryIntent | Mapping[str, Any],
        user_context: UserContext | None = None,
        options: QueryOptions | None = None,
    ) -> QueryBuilderResult:
        """
        Build a parameterized query for an intent.

        Args:
            intent: Validated intent, or a raw mapping that is coerced first.
            user_context: The asking user; non-admins get row scoping.
            options: Optional LIMIT / OFFSET / ORDER BY / GROUP BY.

        Returns:
            QueryBuilderResult with SQL, positional params, an explanation
            and warnings for everything that was degraded.

        Raises:
            QueryBuildError: If no usable table remains or the placeholder
                count does not match the bound parameters.
        """
        if isinstance(intent, Mapping):
            intent = coerce_intent(intent)
        options = options or QueryOptions()

        warnings: list[str] = list(intent.warnings)
        binder = _ParamBinder()

        tables = self._valid_tables(intent.tables, warnings)
        if not tables:
            raise QueryBuildError("Intent does not name any usable table")

        primary = tables[0]
        schema = self._registry.get_table(primary)

        # 1. Joins (only when the primary table is known)
        if schema is None:
            warnings.append(f"Unknown table '{primary}'; selecting all columns")
            join_plan = JoinPlan(base_table=primary)
        else:
            join_plan = self._join_resolver.resolve(tables)
            for table in join_plan.unresolved:
                warnings.append(f"No join path from '{primary}' to '{table}'; skipped")
        in_query = join_plan.joined_tables

        # 2. Split filters between WHERE and HAVING
        where_filters, having_filters = self._split_filters(intent)

        # 3. WHERE: intent filters, user scope, time range
        where_parts: list[str] = []
        for f in where_filters:
            column = self._resolve_field(f.field, in_query, warnings)
            if column is not None:
                where_parts.append(self._render_filter(f, column, binder))

        where_parts.extend(self._user_scope(in_query, user_context, binder))

        if schema is not None:
            where_parts.extend(
                self._time_range_filters(intent, schema, binder, warnings)
            )

        # 4. GROUP BY and SELECT
        group_fields = self._group_fields(intent, schema, options, in_query, warnings)
        select_clause = self._select_clause(intent, schema, primary, group_fields, warnings)

        # 5. HAVING
        having_parts: list[str] = []
        for f in having_filters:
            if not _FIELD_PATTERN.match(f.field):
                warnings.append(f"Dropped filter on invalid field name {f.field!r}")
                continue
            having_parts.append(self._render_filter(f, f.field, binder))

        # 6. Assemble
        sql_parts = [select_clause]
        if join_plan.joins:
            sql_parts.append(join_plan.to_sql())
        if where_parts:
            sql_parts.append("WHERE " + " AND ".join(where_parts))
        if group_fields:
            sql_parts.append("GROUP BY " + ", ".join(group_fields))
        if having_parts:
            sql_parts.append("HAVING " + " AND ".join(having_parts))

        order_terms = self._order_terms(options, in_query, warnings)
        if order_terms:
            sql_parts.append("ORDER BY " + ", ".join(order_terms))
        if options.limit is not None and options.limit > 0:
            sql_parts.append(f"LIMIT {int(options.limit)}")
        if options.offset is not None and options.offset > 0:
            sql_parts.append(f"OFFSET {int(options.offset)}")

        sql = " ".join(sql_parts)
        self._check_placeholders(sql, binder.params)

        for warning in warnings:
            logger.warning("Query builder: %s", warning)

        explanation = self._explain(
            intent, tables, where_filters, having_filters, user_context
        )
        logger.debug("Built query: %s | params=%s", sql, binder.params)

        return QueryBuilderResult(
            sql=sql,
            params=binder.params,
            explanation=explanation,
            affected_tables=tables,
            warnings=warnings,
        )

    # -------------------------
    # Tables and fields
    # -------------------------

    def _valid_tables(self, tables: list[str], warnings: list[str]) -> list[str]:
        valid: list[str] = []
        for table in tables:
            name = table.strip().lower()
            if not _TABLE_PATTERN.match(name):
                warnings.append(f"Dropped invalid table name {table!r}")
                continue
            if name not in valid:
                valid.append(name)
        return valid

    def _resolve_field(
        self,
        field: str,
        in_query: list[str],
        warnings: list[str],
    ) -> str | None:
        """
        Qualify a filter field with the table that declares it.

        Dotted fields are kept as given. Bare fields are qualified with the
        first table in the query (primary first) that declares the column,
        else used verbatim. Names failing the identifier pattern are dropped.
        """
        if not _FIELD_PATTERN.match(field):
            warnings.append(f"Dropped filter on invalid field name {field!r}")
            return None
        if "." in field:
            return field

        for table in in_query:
            if self._registry.get_column(table, field) is not None:
                return f"{table}.{field}"

        warnings.append(f"Field '{field}' not found on {', '.join(in_query)}; used as given")
        return field

    # -------------------------
    # Filters
    # -------------------------

    def _split_filters(
        self, intent: QueryIntent
    ) -> tuple[list[IntentFilter], list[IntentFilter]]:
        """Route aggregate-looking fields to HAVING on aggregation queries."""
        if not intent.is_aggregation:
            return list(intent.filters), []

        where: list[IntentFilter] = []
        having: list[IntentFilter] = []
        for f in intent.filters:
            name = f.field.lower()
            if any(pattern in name for pattern in self._heuristics.having_patterns):
                having.append(f)
            else:
                where.append(f)
        return where, having

    def _render_filter(self, f: IntentFilter, column: str, binder: _ParamBinder) -> str:
        match f:
            case ComparisonFilter(operator=FilterOperator.LIKE):
                value = str(f.value)
                if "%" not in value:
                    value = f"%{value}%"
                return f"{column} LIKE {binder.bind(value)}"
            case ComparisonFilter():
                return f"{column} {f.operator.value} {binder.bind(f.value)}"
            case ListFilter():
                placeholders = ", ".join(binder.bind(v) for v in f.values)
                return f"{column} {f.operator.value} ({placeholders})"
            case RangeFilter():
                return f"{column} BETWEEN {binder.bind(f.low)} AND {binder.bind(f.high)}"
            case NullFilter():
                return f"{column} {f.operator.value}"
            case _:
                raise QueryBuildError(f"Unsupported filter variant: {type(f).__name__}")

    def _user_scope(
        self,
        in_query: list[str],
        user_context: UserContext | None,
        binder: _ParamBinder,
    ) -> list[str]:
        """
        Restrict non-admin users to rows they own.

        Each table in the query contributes one condition: an equality on
        its assigned-like and/or creator-like column, OR-ed when both exist.
        """
        if user_context is None or not user_context.has_identity or user_context.is_admin:
            return []

        conditions: list[str] = []
        for table in in_query:
            schema = self._registry.get_table(table)
            if schema is None:
                continue

            owner_columns = [
                col
                for col in (
                    self._first_present(schema, self._heuristics.assigned_columns),
                    self._first_present(schema, self._heuristics.creator_columns),
                )
                if col is not None
            ]
            equalities = [
                f"{table}.{col} = {binder.bind(user_context.user_id)}"
                for col in owner_columns
            ]

            if len(equalities) > 1:
                conditions.append("(" + " OR ".join(equalities) + ")")
            elif equalities:
                conditions.append(equalities[0])

        return conditions

    def _time_range_filters(
        self,
        intent: QueryIntent,
        schema: TableSchema,
        binder: _ParamBinder,
        warnings: list[str],
    ) -> list[str]:
        time_range = intent.time_range
        if time_range is None:
            return []

        column_name = self._timestamp_column(schema)
        if column_name is None:
            warnings.append(f"No timestamp column on '{schema.name}'; time range ignored")
            return []
        column = f"{schema.name}.{column_name}"

        parts: list[str] = []
        if time_range.start:
            if is_absolute_date(time_range.start):
                parts.append(f"{column} >= {binder.bind(time_range.start)}")
            else:
                compiled = compile_relative(time_range.start, column)
                if compiled is not None:
                    if time_range.end:
                        warnings.append(
                            f"Relative start '{time_range.start}' covers the whole range; "
                            f"end '{time_range.end}' ignored"
                        )
                    return [compiled]
                warnings.append(f"Unrecognized time expression '{time_range.start}'")

        if time_range.end:
            if is_absolute_date(time_range.end):
                parts.append(f"{column} <= {binder.bind(time_range.end)}")
            else:
                compiled = compile_relative(time_range.end, column, end_only=True)
                if compiled is not None:
                    parts.append(compiled)
                else:
                    warnings.append(f"Unrecognized time expression '{time_range.end}'")

        return parts

    def _timestamp_column(self, schema: TableSchema) -> str | None:
        for column in schema.columns:
            name = column.name.lower()
            if name == "created_at" or any(h in name for h in self._heuristics.timestamp_hints):
                return column.name
        return None

    # -------------------------
    # SELECT / GROUP BY / ORDER BY
    # -------------------------

    def _group_fields(
        self,
        intent: QueryIntent,
        schema: TableSchema | None,
        options: QueryOptions,
        in_query: list[str],
        warnings: list[str],
    ) -> list[str]:
        if options.group_by:
            fields: list[str] = []
            for field in options.group_by:
                column = self._resolve_field(field, in_query, warnings)
                if column is not None and column not in fields:
                    fields.append(column)
            return fields

        if schema is None or not intent.is_aggregation:
            return []

        filter_fields = [f.field.split(".")[-1].lower() for f in intent.filters]
        return [
            f"{schema.name}.{col}"
            for col in self._heuristics.group_by_columns
            if schema.has_column(col) and any(col in name for name in filter_fields)
        ]

    def _select_clause(
        self,
        intent: QueryIntent,
        schema: TableSchema | None,
        primary: str,
        group_fields: list[str],
        warnings: list[str],
    ) -> str:
        if schema is None:
            return f"SELECT * FROM {primary}"

        columns: list[str] = []
        if intent.aggregation_type is not None:
            columns.append(self._aggregate_expression(intent.aggregation_type, schema, warnings))
        elif intent.is_aggregation:
            columns.append(self._aggregate_expression(AggregationType.COUNT, schema, warnings))

        for field in group_fields:
            if not any(field in column for column in columns):
                columns.append(field)

        if not columns:
            columns = [f"{primary}.{name}" for name in schema.column_names]

        return f"SELECT {', '.join(columns)} FROM {primary}"

    def _aggregate_expression(
        self,
        aggregation: AggregationType,
        schema: TableSchema,
        warnings: list[str],
    ) -> str:
        """Render ``FUNC(expr) as alias`` for the primary table."""
        if aggregation == AggregationType.COUNT:
            return f"COUNT(*) as {_BARE_ALIASES[aggregation]}"

        column = self._aggregation_column(aggregation, schema)
        if column is None:
            warnings.append(
                f"No column to {aggregation.value} on '{schema.name}'; counting rows instead"
            )
            return f"COUNT(*) as {_BARE_ALIASES[AggregationType.COUNT]}"

        alias = f"{aggregation.value.lower()}_{column}"
        return f"{aggregation.value}({schema.name}.{column}) as {alias}"

    def _aggregation_column(
        self, aggregation: AggregationType, schema: TableSchema
    ) -> str | None:
        preferred = self._heuristics.aggregation_fields.get(aggregation, ())
        found = self._first_present(schema, preferred)
        if found is not None:
            return found

        for column in schema.columns:
            name = column.name.lower()
            if column.is_numeric or any(h in name for h in self._heuristics.numeric_name_hints):
                return column.name
        return None

    def _order_terms(
        self,
        options: QueryOptions,
        in_query: list[str],
        warnings: list[str],
    ) -> list[str]:
        terms: list[str] = []
        for order in options.order_by:
            direction = order.direction
            if not isinstance(direction, OrderDirection):
                try:
                    direction = OrderDirection(str(direction).strip().upper())
                except ValueError:
                    warnings.append(f"Invalid sort direction {direction!r}; using DESC")
                    direction = OrderDirection.DESC

            column = self._resolve_order_field(order.field, in_query, warnings)
            if column is not None:
                terms.append(f"{column} {direction.value}")
        return terms

    def _resolve_order_field(
        self,
        field: str,
        in_query: list[str],
        warnings: list[str],
    ) -> str | None:
        # Aggregate aliases are valid sort keys but are not table columns
        if not _FIELD_PATTERN.match(field):
            warnings.append(f"Dropped ORDER BY on invalid field name {field!r}")
            return None
        if "." in field:
            return field
        for table in in_query:
            if self._registry.get_column(table, field) is not None:
                return f"{table}.{field}"
        return field

    # -------------------------
    # Helpers
    # -------------------------

    @staticmethod
    def _first_present(schema: TableSchema, candidates: tuple[str, ...]) -> str | None:
        for name in candidates:
            if schema.has_column(name):
                return name
        return None

    @staticmethod
    def _check_placeholders(sql: str, params: list[Any]) -> None:
        numbers = [int(n) for n in _PLACEHOLDER.findall(sql)]
        if sorted(set(numbers)) != list(range(1, len(params) + 1)):
            raise QueryBuildError(
                f"Placeholder mismatch: {len(set(numbers))} placeholders "
                f"for {len(params)} params"
            )

    def _explain(
        self,
        intent: QueryIntent,
        tables: list[str],
        where_filters: list[IntentFilter],
        having_filters: list[IntentFilter],
        user_context: UserContext | None,
    ) -> str:
        parts = [f"Querying {', '.join(tables)}"]

        if intent.aggregation_type is not None:
            parts.append(f"with {intent.aggregation_type.value} aggregation")
        if where_filters:
            parts.append("filtered by: " + ", ".join(f.describe() for f in where_filters))
        if having_filters:
            parts.append(
                "with post-aggregation filters: "
                + ", ".join(f.describe() for f in having_filters)
            )
        if intent.time_range is not None:
            start = intent.time_range.start or "start"
            end = intent.time_range.end or "end"
            parts.append(f"for time range: {start} to {end}")
        if user_context is not None and user_context.has_identity and not user_context.is_admin:
            parts.append("(scoped to current user)")

        return " ".join(parts)
