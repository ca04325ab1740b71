"""
Tests for the dynamic Query Builder.

Tests that intents compile to parameterized SQL with contiguous
placeholders, user row scoping, joins, HAVING routing and time ranges.
"""

import re

import pytest

from groundql.core.intent import coerce_intent
from groundql.core.query_builder import (
    HeuristicConfig,
    OrderBy,
    OrderDirection,
    QueryBuilder,
    QueryBuildError,
    QueryOptions,
    UserContext,
)
from groundql.core.schema_registry import (
    Column,
    SchemaRegistry,
    TableSchema,
)

ACCOUNT_COLUMNS = (
    "accounts.id, accounts.name, accounts.industry, accounts.potential_value, "
    "accounts.engagement_score, accounts.assigned_to, accounts.created_at"
)


def placeholders(sql: str) -> list[int]:
    return [int(n) for n in re.findall(r"\$(\d+)", sql)]


# -----------------------------
# Fixtures
# -----------------------------


@pytest.fixture
def builder() -> QueryBuilder:
    """Create a builder with the default registry."""
    return QueryBuilder()


@pytest.fixture
def member() -> UserContext:
    return UserContext(user_id="u1", role="user")


@pytest.fixture
def admin() -> UserContext:
    return UserContext(user_id="boss", role="Admin")


# -----------------------------
# Basic SELECT
# -----------------------------


class TestBasicSelect:
    """Tests for single-table queries without filters."""

    def test_single_table_no_filters(self, builder: QueryBuilder) -> None:
        result = builder.build_query({"category": "ACCOUNT_QUERY", "tables": ["accounts"]})

        assert result.sql == f"SELECT {ACCOUNT_COLUMNS} FROM accounts"
        assert result.params == []
        assert "WHERE" not in result.sql
        assert "JOIN" not in result.sql

    def test_every_column_appears_once(self, builder: QueryBuilder) -> None:
        result = builder.build_query({"tables": ["leads"]})
        select_list = result.sql.split(" FROM ")[0].removeprefix("SELECT ").split(", ")

        assert len(select_list) == len(set(select_list))
        assert len(select_list) == len(builder.registry.get_table("leads").columns)

    def test_unknown_table_selects_star(self, builder: QueryBuilder) -> None:
        result = builder.build_query({"tables": ["widgets"]})

        assert result.sql == "SELECT * FROM widgets"
        assert any("widgets" in w for w in result.warnings)

    def test_affected_tables(self, builder: QueryBuilder) -> None:
        result = builder.build_query({"tables": ["contacts", "accounts"]})
        assert result.affected_tables == ["contacts", "accounts"]


# -----------------------------
# Filters
# -----------------------------


class TestFilters:
    """Tests for WHERE rendering of each filter variant."""

    def test_comparison_filter_binds_param(self, builder: QueryBuilder) -> None:
        result = builder.build_query(
            {"tables": ["accounts"], "filters": [{"field": "x", "operator": ">", "value": 5}]}
        )

        assert "WHERE x > $1" in result.sql
        assert result.params == [5]
        assert placeholders(result.sql) == [1]

    def test_known_field_is_qualified(self, builder: QueryBuilder) -> None:
        result = builder.build_query({"tables": ["leads"], "filters": {"status": "New"}})

        assert result.sql.endswith("WHERE leads.status = $1")
        assert result.params == ["New"]

    def test_field_qualified_with_joined_table(self, builder: QueryBuilder) -> None:
        result = builder.build_query({"tables": ["contacts", "accounts"], "filters": {"industry": "Steel"}})
        assert "WHERE accounts.industry = $1" in result.sql

    def test_like_wraps_value(self, builder: QueryBuilder) -> None:
        result = builder.build_query({"tables": ["accounts"], "filters": {"name": {"$like": "acme"}}})

        assert "accounts.name LIKE $1" in result.sql
        assert result.params == ["%acme%"]

    def test_like_keeps_explicit_wildcards(self, builder: QueryBuilder) -> None:
        result = builder.build_query({"tables": ["accounts"], "filters": {"name": {"$like": "acme%"}}})
        assert result.params == ["acme%"]

    def test_in_list(self, builder: QueryBuilder) -> None:
        result = builder.build_query({"tables": ["leads"], "filters": {"status": ["New", "Lost"]}})

        assert "leads.status IN ($1, $2)" in result.sql
        assert result.params == ["New", "Lost"]

    def test_not_in_list(self, builder: QueryBuilder) -> None:
        result = builder.build_query({"tables": ["leads"], "filters": {"status": {"$nin": ["Lost"]}}})
        assert "leads.status NOT IN ($1)" in result.sql

    def test_between(self, builder: QueryBuilder) -> None:
        result = builder.build_query({"tables": ["leads"], "filters": {"score": {"$between": [10, 20]}}})

        assert "leads.score BETWEEN $1 AND $2" in result.sql
        assert result.params == [10, 20]

    def test_null_checks_bind_nothing(self, builder: QueryBuilder) -> None:
        result = builder.build_query(
            {"tables": ["contacts"], "filters": {"email": {"$null": True}, "phone": {"$notNull": True}}}
        )

        assert "contacts.email IS NULL AND contacts.phone IS NOT NULL" in result.sql
        assert result.params == []

    def test_invalid_field_name_dropped(self, builder: QueryBuilder) -> None:
        result = builder.build_query({"tables": ["leads"], "filters": {"status; DROP TABLE leads": "x"}})

        assert "DROP" not in result.sql
        assert result.params == []
        assert any("invalid field" in w for w in result.warnings)

    def test_values_never_inlined(self, builder: QueryBuilder) -> None:
        result = builder.build_query({"tables": ["leads"], "filters": {"name": "O'Brien'; --"}})

        assert "O'Brien" not in result.sql
        assert result.params == ["O'Brien'; --"]


# -----------------------------
# Row Scoping
# -----------------------------


class TestUserScoping:
    """Tests for non-admin ownership filters."""

    def test_engagement_scenario(self, builder: QueryBuilder, member: UserContext) -> None:
        intent = coerce_intent(
            {
                "category": "ACCOUNT_QUERY",
                "tables": ["accounts"],
                "filters": [{"field": "engagement_score", "operator": ">", "value": 70}],
            }
        )
        result = builder.build_query(intent, member)

        assert result.sql == (
            f"SELECT {ACCOUNT_COLUMNS} FROM accounts "
            "WHERE accounts.engagement_score > $1 AND accounts.assigned_to = $2"
        )
        assert result.params == [70, "u1"]
        assert "(scoped to current user)" in result.explanation

    def test_admin_is_not_scoped(self, builder: QueryBuilder, admin: UserContext) -> None:
        result = builder.build_query({"tables": ["accounts"]}, admin)

        assert "WHERE" not in result.sql
        assert result.params == []

    def test_creator_column_scoping(self, builder: QueryBuilder, member: UserContext) -> None:
        result = builder.build_query({"tables": ["activities"]}, member)

        assert result.sql.endswith("WHERE activities.created_by = $1")
        assert result.params == ["u1"]

    def test_or_group_when_both_columns_exist(self, member: UserContext) -> None:
        registry = SchemaRegistry(
            tables={
                "tasks": TableSchema(
                    name="tasks",
                    columns=(
                        Column("id", "integer", False),
                        Column("assigned_to", "integer"),
                        Column("created_by", "integer"),
                    ),
                )
            },
            relationships=[],
        )
        result = QueryBuilder(registry).build_query({"tables": ["tasks"]}, member)

        assert result.sql.endswith("WHERE (tasks.assigned_to = $1 OR tasks.created_by = $2)")
        assert result.params == ["u1", "u1"]

    def test_each_joined_table_is_scoped(self, builder: QueryBuilder, member: UserContext) -> None:
        result = builder.build_query({"tables": ["activities", "leads"]}, member)

        assert "activities.created_by = $1" in result.sql
        assert "leads.assigned_to = $2" in result.sql
        assert result.params == ["u1", "u1"]

    def test_unresolved_table_is_not_scoped(self, member: UserContext) -> None:
        id_col = Column("id", "integer", False)
        registry = SchemaRegistry(
            tables={
                "a": TableSchema(name="a", columns=(id_col, Column("created_by", "integer"))),
                "b": TableSchema(name="b", columns=(id_col, Column("assigned_to", "integer"))),
            },
            relationships=[],
        )
        result = QueryBuilder(registry).build_query({"tables": ["a", "b"]}, member)

        assert "b.assigned_to" not in result.sql
        assert any("No join path" in w for w in result.warnings)

    def test_anonymous_context_is_not_scoped(self, builder: QueryBuilder) -> None:
        result = builder.build_query({"tables": ["accounts"]}, UserContext())
        assert "WHERE" not in result.sql

    def test_custom_owner_columns(self, member: UserContext) -> None:
        heuristics = HeuristicConfig(assigned_columns=("industry",), creator_columns=())
        result = QueryBuilder(heuristics=heuristics).build_query({"tables": ["accounts"]}, member)
        assert result.sql.endswith("WHERE accounts.industry = $1")


# -----------------------------
# Joins
# -----------------------------


class TestJoins:
    """Tests for join emission in built queries."""

    def test_intermediate_join(self, builder: QueryBuilder) -> None:
        result = builder.build_query({"tables": ["contacts", "activities"]})

        assert result.sql.count("JOIN") == 2
        assert "LEFT JOIN sub_accounts ON contacts.sub_account_id = sub_accounts.id" in result.sql

    def test_intermediate_columns_not_selected(self, builder: QueryBuilder) -> None:
        result = builder.build_query({"tables": ["contacts", "activities"]})
        select_list = result.sql.split(" FROM ")[0]

        assert "sub_accounts." not in select_list
        assert "activities." not in select_list
        assert "contacts.name" in select_list


# -----------------------------
# Aggregation
# -----------------------------


class TestAggregation:
    """Tests for aggregate SELECT, GROUP BY and HAVING."""

    def test_count(self, builder: QueryBuilder) -> None:
        result = builder.build_query(
            {"category": "AGGREGATION_QUERY", "tables": ["leads"], "aggregationType": "count"}
        )
        assert result.sql == "SELECT COUNT(*) as count FROM leads"

    def test_aggregation_category_defaults_to_count(self, builder: QueryBuilder) -> None:
        result = builder.build_query({"category": "AGGREGATION_QUERY", "tables": ["leads"]})
        assert result.sql == "SELECT COUNT(*) as count FROM leads"

    def test_sum_prefers_price_column(self, builder: QueryBuilder) -> None:
        result = builder.build_query({"tables": ["quotes_mbcb"], "aggregationType": "sum"})
        assert result.sql == "SELECT SUM(quotes_mbcb.total_price) as sum_total_price FROM quotes_mbcb"

    def test_avg_prefers_score(self, builder: QueryBuilder) -> None:
        result = builder.build_query({"tables": ["accounts"], "aggregationType": "average"})
        assert result.sql.startswith("SELECT AVG(accounts.engagement_score) as avg_engagement_score")

    def test_aggregate_without_column_counts_rows(self) -> None:
        registry = SchemaRegistry(
            tables={"notes": TableSchema(name="notes", columns=(Column("body", "text"),))},
            relationships=[],
        )
        result = QueryBuilder(registry).build_query({"tables": ["notes"], "aggregationType": "sum"})

        assert result.sql == "SELECT COUNT(*) as count FROM notes"
        assert any("counting rows" in w for w in result.warnings)

    def test_having_routing(self, builder: QueryBuilder) -> None:
        result = builder.build_query(
            {
                "category": "AGGREGATION_QUERY",
                "tables": ["leads"],
                "aggregationType": "count",
                "filters": {"status": "New", "total_count": {"$gt": 10}},
            }
        )

        assert result.sql == (
            "SELECT COUNT(*) as count, leads.status FROM leads "
            "WHERE leads.status = $1 GROUP BY leads.status HAVING total_count > $2"
        )
        assert result.params == ["New", 10]

    def test_aggregate_names_stay_in_where_without_aggregation(self, builder: QueryBuilder) -> None:
        result = builder.build_query({"tables": ["leads"], "filters": {"total_count": {"$gt": 10}}})

        assert "HAVING" not in result.sql
        assert "WHERE total_count > $1" in result.sql

    def test_no_group_by_without_aggregation(self, builder: QueryBuilder) -> None:
        result = builder.build_query({"tables": ["leads"], "filters": {"status": "New"}})
        assert "GROUP BY" not in result.sql


# -----------------------------
# Time Ranges
# -----------------------------


class TestTimeRange:
    """Tests for time range compilation inside built queries."""

    def test_this_month_scenario(self, builder: QueryBuilder) -> None:
        result = builder.build_query(
            {"category": "ACTIVITY_QUERY", "tables": ["activities"], "timeRange": {"start": "this month"}}
        )

        assert "date_trunc('month', current_date)" in result.sql
        assert (
            "WHERE activities.created_at >= date_trunc('month', current_date) "
            "AND activities.created_at < date_trunc('month', current_date) + interval '1 month'"
        ) in result.sql
        assert result.params == []

    def test_absolute_dates_are_bound(self, builder: QueryBuilder) -> None:
        result = builder.build_query(
            {"tables": ["leads"], "timeRange": {"start": "2024-01-01", "end": "2024-01-31"}}
        )

        assert result.sql.endswith("WHERE leads.created_at >= $1 AND leads.created_at <= $2")
        assert result.params == ["2024-01-01", "2024-01-31"]

    def test_relative_start_ignores_end(self, builder: QueryBuilder) -> None:
        result = builder.build_query(
            {"tables": ["leads"], "timeRange": {"start": "last week", "end": "2024-01-31"}}
        )

        assert result.params == []
        assert any("ignored" in w for w in result.warnings)

    def test_date_column_used_when_no_created_at(self, builder: QueryBuilder) -> None:
        result = builder.build_query({"tables": ["follow_ups"], "timeRange": {"start": "today"}})
        assert "follow_ups.due_date >= current_date" in result.sql

    def test_unrecognized_phrase_warns(self, builder: QueryBuilder) -> None:
        result = builder.build_query({"tables": ["leads"], "timeRange": {"start": "since the dawn of time"}})

        assert "WHERE" not in result.sql
        assert any("Unrecognized time expression" in w for w in result.warnings)

    def test_table_without_timestamp_warns(self, builder: QueryBuilder) -> None:
        result = builder.build_query({"tables": ["users"], "timeRange": {"start": "today"}})

        assert "WHERE" not in result.sql
        assert any("No timestamp column" in w for w in result.warnings)

    def test_params_follow_filter_then_scope_then_time(
        self, builder: QueryBuilder, member: UserContext
    ) -> None:
        result = builder.build_query(
            {"tables": ["leads"], "filters": {"status": "New"}, "timeRange": {"start": "2024-01-01"}},
            member,
        )

        assert result.params == ["New", "u1", "2024-01-01"]
        assert placeholders(result.sql) == [1, 2, 3]


# -----------------------------
# Options
# -----------------------------


class TestOptions:
    """Tests for LIMIT, OFFSET, ORDER BY and explicit GROUP BY."""

    def test_limit_offset_order(self, builder: QueryBuilder) -> None:
        options = QueryOptions(
            limit=10,
            offset=20,
            order_by=(OrderBy("engagement_score", OrderDirection.DESC), OrderBy("name", OrderDirection.ASC)),
        )
        result = builder.build_query({"tables": ["accounts"]}, options=options)

        assert result.sql.endswith(
            "ORDER BY accounts.engagement_score DESC, accounts.name ASC LIMIT 10 OFFSET 20"
        )

    def test_invalid_direction_falls_back_to_desc(self, builder: QueryBuilder) -> None:
        options = QueryOptions(order_by=(OrderBy("name", "sideways"),))  # type: ignore[arg-type]
        result = builder.build_query({"tables": ["accounts"]}, options=options)

        assert result.sql.endswith("ORDER BY accounts.name DESC")
        assert any("sort direction" in w for w in result.warnings)

    def test_order_by_alias(self, builder: QueryBuilder) -> None:
        options = QueryOptions(order_by=(OrderBy("count"),))
        result = builder.build_query({"tables": ["leads"], "aggregationType": "count"}, options=options)
        assert result.sql.endswith("ORDER BY count DESC")

    def test_explicit_group_by(self, builder: QueryBuilder) -> None:
        options = QueryOptions(group_by=("source",))
        result = builder.build_query({"tables": ["leads"], "aggregationType": "count"}, options=options)

        assert result.sql == "SELECT COUNT(*) as count, leads.source FROM leads GROUP BY leads.source"

    def test_non_positive_limit_ignored(self, builder: QueryBuilder) -> None:
        result = builder.build_query({"tables": ["leads"]}, options=QueryOptions(limit=0))
        assert "LIMIT" not in result.sql


# -----------------------------
# Invariants
# -----------------------------


class TestInvariants:
    """Tests for determinism and failure modes."""

    def test_builder_is_idempotent(self, builder: QueryBuilder, member: UserContext) -> None:
        intent = coerce_intent(
            {
                "tables": ["contacts", "activities"],
                "filters": {"name": {"$like": "a"}, "account_id": [1, 2]},
                "timeRange": {"start": "last 30 days"},
            }
        )
        first = builder.build_query(intent, member)
        second = builder.build_query(intent, member)

        assert first.sql == second.sql
        assert first.params == second.params

    def test_placeholders_contiguous(self, builder: QueryBuilder, member: UserContext) -> None:
        result = builder.build_query(
            {
                "tables": ["leads"],
                "filters": {"status": ["New", "Lost"], "score": {"$between": [1, 9]}, "source": "web"},
            },
            member,
        )

        assert sorted(set(placeholders(result.sql))) == list(range(1, len(result.params) + 1))

    def test_all_tables_invalid_raises(self, builder: QueryBuilder) -> None:
        intent = coerce_intent({"tables": ["drop table x", "1bad"]})
        with pytest.raises(QueryBuildError):
            builder.build_query(intent)

    def test_invalid_table_dropped(self, builder: QueryBuilder) -> None:
        result = builder.build_query({"tables": ["leads", "users;--"]})

        assert result.affected_tables == ["leads"]
        assert any("invalid table" in w for w in result.warnings)
