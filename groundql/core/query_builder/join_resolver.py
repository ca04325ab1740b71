"""
Join Resolver for GroundQL.

Determines the join steps needed to bring every requested table into
a query, walking the schema registry's relationship graph.
"""

from collections import deque
from dataclasses import dataclass
from enum import Enum

from groundql.core.schema_registry.registry import (
    Edge,
    SchemaRegistry,
    TableRelationship,
    get_default_registry,
)


# -----------------------------
# Data structures
# -----------------------------


class JoinType(str, Enum):
    """Supported SQL join types."""

    INNER = "INNER"
    LEFT = "LEFT"


@dataclass(frozen=True)
class JoinStep:
    """
    Represents a single join operation.

    The condition always reads ``owner.foreign_key = referenced.key``,
    whichever side the traversal came from.
    """

    table: str  # table brought in by this join
    owner_table: str  # table holding the foreign key
    foreign_key: str
    referenced_table: str
    referenced_key: str = "id"
    join_type: JoinType = JoinType.LEFT

    @property
    def condition(self) -> str:
        return (
            f"{self.owner_table}.{self.foreign_key} = "
            f"{self.referenced_table}.{self.referenced_key}"
        )

    def to_sql(self) -> str:
        return f"{self.join_type.value} JOIN {self.table} ON {self.condition}"


@dataclass(frozen=True)
class JoinPlan:
    """
    Complete join plan for a query.

    Contains the base table, the ordered joins to execute, and any
    requested tables that no path could reach.
    """

    base_table: str
    joins: tuple[JoinStep, ...] = ()  # Use tuple for immutability
    unresolved: tuple[str, ...] = ()

    @property
    def joined_tables(self) -> list[str]:
        return [self.base_table, *(step.table for step in self.joins)]

    def to_sql(self) -> str:
        return " ".join(step.to_sql() for step in self.joins)


# -----------------------------
# Resolver
# -----------------------------


class JoinResolver:
    """
    Resolves the joins for a list of requested tables.

    The graph contains every relationship touching a requested table,
    including ones whose far end was not requested, so joins can pass
    through intermediate tables.
    """

    def __init__(self, registry: SchemaRegistry | None = None):
        """
        Initialize the resolver.

        Args:
            registry: Schema registry to use for lookups.
                     Uses default registry if not provided.
        """
        self._registry = registry or get_default_registry()

    def resolve(self, tables: list[str]) -> JoinPlan:
        """
        Build the join plan for ``tables``; the first entry is the base table.

        Requested tables reachable from the base are joined breadth-first.
        Anything left over is reached by the shortest path over the graph,
        joining each intermediate table on the way. Tables with no path
        are reported in ``unresolved`` instead of raising.

        Args:
            tables: Requested tables, primary first.

        Returns:
            JoinPlan with base table, join steps, and unresolved tables.
        """
        base_table = tables[0]
        if len(tables) <= 1:
            return JoinPlan(base_table=base_table)

        requested = set(tables)
        graph = self._registry.subgraph(tables)
        joined = {base_table}
        joins: list[JoinStep] = []

        # Phase 1: breadth-first over requested tables only
        queue = deque([base_table])
        while queue:
            current = queue.popleft()
            for edge in graph.get(current, ()):
                if edge.target in joined or edge.target not in requested:
                    continue
                joins.append(self._build_step(edge.relationship, edge.target))
                joined.add(edge.target)
                queue.append(edge.target)

        # Phase 2: shortest paths through intermediate tables
        unresolved: list[str] = []
        for table in tables:
            if table in joined:
                continue

            path = self._shortest_path(base_table, table, graph)
            if path is None:
                unresolved.append(table)
                continue

            for edge in path:
                if edge.target in joined:
                    continue
                joins.append(self._build_step(edge.relationship, edge.target))
                joined.add(edge.target)

        return JoinPlan(
            base_table=base_table,
            joins=tuple(joins),
            unresolved=tuple(unresolved),
        )

    # -------------------------
    # Helpers
    # -------------------------

    def _shortest_path(
        self,
        start: str,
        end: str,
        graph: dict[str, list[Edge]],
    ) -> list[Edge] | None:
        """Breadth-first search for the fewest-hop edge path from start to end."""
        queue: deque[tuple[str, list[Edge]]] = deque([(start, [])])
        visited = {start}

        while queue:
            table, path = queue.popleft()
            for edge in graph.get(table, ()):
                if edge.target == end:
                    return [*path, edge]
                if edge.target not in visited:
                    visited.add(edge.target)
                    queue.append((edge.target, [*path, edge]))

        return None

    def _build_step(self, relationship: TableRelationship, target: str) -> JoinStep:
        """
        Create the join step that brings ``target`` into the query.

        INNER when the owning foreign key is declared NOT NULL, otherwise
        LEFT (including when the owner or column is unknown).
        """
        owner = relationship.from_table
        referenced = relationship.to_table

        fk_column = self._registry.get_column(owner, relationship.foreign_key)
        join_type = (
            JoinType.INNER
            if fk_column is not None and not fk_column.nullable
            else JoinType.LEFT
        )

        referenced_schema = self._registry.get_table(referenced)
        referenced_key = referenced_schema.primary_key if referenced_schema else "id"

        return JoinStep(
            table=target,
            owner_table=owner,
            foreign_key=relationship.foreign_key,
            referenced_table=referenced,
            referenced_key=referenced_key,
            join_type=join_type,
        )
