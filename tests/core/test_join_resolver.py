"""
Tests for Join Resolver.

Tests that join plans are correctly generated for requested table lists.
"""

import pytest

from groundql.core.query_builder import JoinPlan, JoinResolver, JoinStep, JoinType
from groundql.core.schema_registry import (
    Column,
    SchemaRegistry,
    TableRelationship,
    TableSchema,
    get_default_registry,
)


# -----------------------------
# Fixtures
# -----------------------------


@pytest.fixture
def resolver() -> JoinResolver:
    """Create a resolver with the default registry."""
    return JoinResolver(registry=get_default_registry())


# -----------------------------
# Single Table Tests
# -----------------------------


class TestSingleTable:
    """Tests for requests that need no joins."""

    def test_single_table_no_joins(self, resolver: JoinResolver) -> None:
        plan = resolver.resolve(["accounts"])

        assert plan.base_table == "accounts"
        assert plan.joins == ()
        assert plan.unresolved == ()
        assert plan.to_sql() == ""

    def test_joined_tables_is_base_only(self, resolver: JoinResolver) -> None:
        assert resolver.resolve(["leads"]).joined_tables == ["leads"]


# -----------------------------
# Direct Join Tests
# -----------------------------


class TestDirectJoins:
    """Tests for requested tables linked by one relationship."""

    def test_contacts_to_accounts(self, resolver: JoinResolver) -> None:
        plan = resolver.resolve(["contacts", "accounts"])

        assert len(plan.joins) == 1
        join = plan.joins[0]
        assert join.table == "accounts"
        assert join.owner_table == "contacts"
        assert join.foreign_key == "account_id"
        assert join.join_type == JoinType.LEFT
        assert join.to_sql() == "LEFT JOIN accounts ON contacts.account_id = accounts.id"

    def test_reverse_direction_keeps_owner_condition(self, resolver: JoinResolver) -> None:
        """Joining contacts onto accounts still reads contacts.fk = accounts.id."""
        plan = resolver.resolve(["accounts", "contacts"])

        assert plan.joins[0].table == "contacts"
        assert plan.joins[0].condition == "contacts.account_id = accounts.id"

    def test_non_nullable_fk_is_inner(self, resolver: JoinResolver) -> None:
        plan = resolver.resolve(["activities", "users"])

        join = plan.joins[0]
        assert join.join_type == JoinType.INNER
        assert join.to_sql() == "INNER JOIN users ON activities.created_by = users.id"


# -----------------------------
# Multi-hop Join Tests
# -----------------------------


class TestIntermediateJoins:
    """Tests for paths through tables that were not requested."""

    def test_path_through_intermediate(self, resolver: JoinResolver) -> None:
        plan = resolver.resolve(["contacts", "activities"])

        assert [step.table for step in plan.joins] == ["sub_accounts", "activities"]
        assert plan.to_sql() == (
            "LEFT JOIN sub_accounts ON contacts.sub_account_id = sub_accounts.id "
            "LEFT JOIN activities ON activities.sub_account_id = sub_accounts.id"
        )
        assert plan.unresolved == ()

    def test_intermediate_with_mixed_join_types(self, resolver: JoinResolver) -> None:
        plan = resolver.resolve(["activities", "leads"])

        assert [step.table for step in plan.joins] == ["users", "leads"]
        assert plan.joins[0].join_type == JoinType.INNER
        assert plan.joins[1].join_type == JoinType.LEFT
        assert plan.joins[1].condition == "leads.assigned_to = users.id"

    def test_each_table_joined_once(self, resolver: JoinResolver) -> None:
        plan = resolver.resolve(["contacts", "accounts", "sub_accounts", "activities"])

        tables = [step.table for step in plan.joins]
        assert sorted(tables) == ["accounts", "activities", "sub_accounts"]
        assert len(tables) == len(set(tables))


# -----------------------------
# Unreachable Table Tests
# -----------------------------


class TestUnresolved:
    """Tests for tables with no join path."""

    @pytest.fixture
    def split_registry(self) -> SchemaRegistry:
        id_col = Column("id", "integer", False)
        return SchemaRegistry(
            tables={
                "a": TableSchema(name="a", columns=(id_col, Column("b_id", "integer"))),
                "b": TableSchema(name="b", columns=(id_col,)),
                "lonely": TableSchema(name="lonely", columns=(id_col,)),
            },
            relationships=[TableRelationship("a", "b", "b_id")],
        )

    def test_unreachable_table_reported(self, split_registry: SchemaRegistry) -> None:
        plan = JoinResolver(split_registry).resolve(["a", "lonely", "b"])

        assert [step.table for step in plan.joins] == ["b"]
        assert plan.unresolved == ("lonely",)
        assert plan.joined_tables == ["a", "b"]

    def test_unknown_table_is_unresolved(self, resolver: JoinResolver) -> None:
        plan = resolver.resolve(["accounts", "spaceships"])
        assert plan.unresolved == ("spaceships",)


class TestJoinStructures:
    """Tests for the plan value objects."""

    def test_plan_is_hashable(self) -> None:
        step = JoinStep(table="b", owner_table="a", foreign_key="b_id", referenced_table="b")
        plan = JoinPlan(base_table="a", joins=(step,))
        assert hash(plan) == hash(JoinPlan(base_table="a", joins=(step,)))

    def test_default_join_is_left(self) -> None:
        step = JoinStep(table="b", owner_table="a", foreign_key="b_id", referenced_table="b")
        assert step.to_sql() == "LEFT JOIN b ON a.b_id = b.id"
