"""
Schema Registry for GroundQL.

This module defines:
- Which tables exist and their ordered columns
- Declared foreign-key relationships between tables
- A bidirectional adjacency over those relationships

The registry is loaded once and is immutable afterwards, so the
relationship graph is precomputed here rather than per query.
"""

from dataclasses import dataclass, field


# -----------------------------
# Column & Table Metadata
# -----------------------------

NUMERIC_TYPES = frozenset({"number", "numeric", "integer", "decimal", "float"})


@dataclass(frozen=True)
class Column:
    """Metadata for a single column."""

    name: str
    type: str  # logical type (e.g. "string", "number", "timestamp")
    nullable: bool = True
    description: str = ""

    @property
    def is_numeric(self) -> bool:
        return self.type.lower() in NUMERIC_TYPES


@dataclass(frozen=True)
class TableSchema:
    """Metadata for a database table."""

    name: str
    columns: tuple[Column, ...] = ()
    primary_key: str = "id"
    description: str = ""

    def get_column(self, name: str) -> Column | None:
        """Get column metadata by name."""
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def has_column(self, name: str) -> bool:
        return self.get_column(name) is not None

    @property
    def column_names(self) -> list[str]:
        return [column.name for column in self.columns]


# -----------------------------
# Relationship Metadata
# -----------------------------


@dataclass(frozen=True)
class TableRelationship:
    """
    A declared foreign key.

    ``foreign_key`` is a column on ``from_table`` referencing ``to_table.id``.
    """

    from_table: str
    to_table: str
    foreign_key: str
    description: str = ""

    def other(self, table: str) -> str:
        """Return the table on the opposite end of this relationship."""
        return self.to_table if table == self.from_table else self.from_table

    def touches(self, tables: set[str]) -> bool:
        return self.from_table in tables or self.to_table in tables


@dataclass(frozen=True)
class Edge:
    """One direction of a relationship in the adjacency."""

    target: str
    relationship: TableRelationship


# -----------------------------
# Schema Registry Class
# -----------------------------


class SchemaRegistry:
    """
    Central registry for schema metadata.

    Provides lookup methods for tables and columns, and exposes the
    relationship graph used by the join resolver.
    """

    def __init__(
        self,
        tables: dict[str, TableSchema],
        relationships: list[TableRelationship],
    ):
        self._tables = {name.lower(): table for name, table in tables.items()}
        self._relationships = tuple(relationships)

        # Build bidirectional adjacency in declaration order
        self._adjacency: dict[str, list[Edge]] = {}
        for rel in self._relationships:
            self._adjacency.setdefault(rel.from_table, []).append(
                Edge(target=rel.to_table, relationship=rel)
            )
            self._adjacency.setdefault(rel.to_table, []).append(
                Edge(target=rel.from_table, relationship=rel)
            )

    # -------------------------
    # Lookup Methods
    # -------------------------

    def get_table(self, table_name: str) -> TableSchema | None:
        """Get table metadata by name (case-insensitive)."""
        return self._tables.get(table_name.lower().strip())

    def get_column(self, table_name: str, column_name: str) -> Column | None:
        """Get column metadata for a table, if both exist."""
        table = self.get_table(table_name)
        return table.get_column(column_name) if table else None

    def has_table(self, table_name: str) -> bool:
        return self.get_table(table_name) is not None

    def list_tables(self) -> list[str]:
        """List all available table names."""
        return list(self._tables.keys())

    @property
    def relationships(self) -> tuple[TableRelationship, ...]:
        return self._relationships

    # -------------------------
    # Graph Methods
    # -------------------------

    def neighbors(self, table_name: str) -> list[Edge]:
        """Get edges leaving a table in the full relationship graph."""
        return list(self._adjacency.get(table_name, ()))

    def subgraph(self, tables: list[str]) -> dict[str, list[Edge]]:
        """
        Get the adjacency restricted to relationships touching any of ``tables``.

        Relationships whose far end is not requested are kept, so paths
        can pass through intermediate tables.
        """
        requested = set(tables)
        graph: dict[str, list[Edge]] = {}
        for table, edges in self._adjacency.items():
            kept = [edge for edge in edges if edge.relationship.touches(requested)]
            if kept:
                graph[table] = kept
        return graph

    def find_relationship(self, table_a: str, table_b: str) -> TableRelationship | None:
        """Find the first relationship linking two tables, in either direction."""
        for edge in self._adjacency.get(table_a, ()):
            if edge.target == table_b:
                return edge.relationship
        return None

    def describe(self) -> str:
        """Human-readable schema summary for LLM prompts."""
        lines = ["TABLES AND COLUMNS:"]
        for table in self._tables.values():
            lines.append(f"  {table.name}:")
            for column in table.columns:
                null_str = "" if column.nullable else ", required"
                desc_str = f" - {column.description}" if column.description else ""
                lines.append(f"    - {column.name} ({column.type}{null_str}){desc_str}")

        if self._relationships:
            lines.append("\nRELATIONSHIPS:")
            for rel in self._relationships:
                lines.append(
                    f"  - {rel.from_table}.{rel.foreign_key} -> {rel.to_table}.id"
                )

        return "\n".join(lines)


# -----------------------------
# Default Registry Definition
# -----------------------------


def _cols(*specs: tuple) -> tuple[Column, ...]:
    return tuple(Column(*spec) for spec in specs)


_QUOTE_COLUMNS = _cols(
    ("id", "integer", False, "Primary key"),
    ("sub_account_id", "integer", True, "Foreign key to sub_accounts"),
    ("total_price", "number", False, "Total quote price"),
    ("status", "string", False, "Quote status (draft, sent, accepted, rejected)"),
    ("ai_suggested_price_per_unit", "number", True, "AI-suggested price per unit"),
    ("ai_win_probability", "number", True, "AI-calculated win probability (0-100)"),
    ("created_at", "timestamp", False, "Quote creation timestamp"),
)

_DEFAULT_TABLES: dict[str, TableSchema] = {
    "contacts": TableSchema(
        name="contacts",
        description="People at customer accounts",
        columns=_cols(
            ("id", "integer", False, "Primary key"),
            ("name", "string", False, "Contact full name"),
            ("email", "string", True, "Contact email address"),
            ("phone", "string", True, "Contact phone number"),
            ("account_id", "integer", True, "Foreign key to accounts"),
            ("sub_account_id", "integer", True, "Foreign key to sub_accounts"),
            ("created_at", "timestamp", False, "Record creation timestamp"),
        ),
    ),
    "sub_accounts": TableSchema(
        name="sub_accounts",
        description="Branches or divisions of an account",
        columns=_cols(
            ("id", "integer", False, "Primary key"),
            ("name", "string", False, "Sub-account name"),
            ("engagement_score", "number", True, "AI-calculated engagement score (0-100)"),
            ("ai_insights", "jsonb", True, "AI-generated insights and tips"),
            ("assigned_employee_id", "integer", True, "Foreign key to users (assigned employee)"),
        ),
    ),
    "accounts": TableSchema(
        name="accounts",
        description="Customer companies",
        columns=_cols(
            ("id", "integer", False, "Primary key"),
            ("name", "string", False, "Account name"),
            ("industry", "string", True, "Industry classification"),
            ("potential_value", "number", True, "Estimated potential revenue value"),
            ("engagement_score", "number", True, "Engagement score (0-100)"),
            ("assigned_to", "integer", True, "Foreign key to users (owning employee)"),
            ("created_at", "timestamp", False, "Record creation timestamp"),
        ),
    ),
    "activities": TableSchema(
        name="activities",
        description="Calls, meetings, emails and other logged interactions",
        columns=_cols(
            ("id", "integer", False, "Primary key"),
            ("type", "string", False, "Activity type (call, meeting, email, etc.)"),
            ("description", "text", True, "Activity description/notes"),
            ("sub_account_id", "integer", True, "Foreign key to sub_accounts"),
            ("created_by", "integer", False, "Foreign key to users (creator)"),
            ("created_at", "timestamp", False, "Activity timestamp"),
        ),
    ),
    "follow_ups": TableSchema(
        name="follow_ups",
        description="Scheduled follow-up tasks",
        columns=_cols(
            ("id", "integer", False, "Primary key"),
            ("title", "string", False, "Follow-up title/description"),
            ("due_date", "date", False, "Due date for follow-up"),
            ("status", "string", False, "Follow-up status (pending, completed, cancelled)"),
            ("sub_account_id", "integer", True, "Foreign key to sub_accounts"),
            ("assigned_to", "integer", False, "Foreign key to users (assigned employee)"),
        ),
    ),
    "quotes_mbcb": TableSchema(name="quotes_mbcb", description="MBCB quotations", columns=_QUOTE_COLUMNS),
    "quotes_signages": TableSchema(name="quotes_signages", description="Signage quotations", columns=_QUOTE_COLUMNS),
    "quotes_paint": TableSchema(name="quotes_paint", description="Paint quotations", columns=_QUOTE_COLUMNS),
    "leads": TableSchema(
        name="leads",
        description="Sales leads",
        columns=_cols(
            ("id", "integer", False, "Primary key"),
            ("name", "string", False, "Lead name/company"),
            ("status", "string", False, "Lead status (New, In Progress, Follow-up, Quotation Sent, Converted, Lost)"),
            ("score", "number", True, "Lead score/quality rating"),
            ("source", "string", True, "Lead source (website, referral, cold call, etc.)"),
            ("assigned_to", "integer", True, "Foreign key to users (assigned employee)"),
            ("created_at", "timestamp", False, "Lead creation timestamp"),
        ),
    ),
    "users": TableSchema(
        name="users",
        description="Employees using the CRM",
        columns=_cols(
            ("id", "integer", False, "Primary key"),
            ("name", "string", False, "User full name"),
            ("email", "string", False, "User email address"),
            ("role", "string", False, "User role (admin, sales, manager, etc.)"),
        ),
    ),
}

_DEFAULT_RELATIONSHIPS: list[TableRelationship] = [
    TableRelationship("contacts", "accounts", "account_id", "Many contacts belong to one account"),
    TableRelationship("contacts", "sub_accounts", "sub_account_id", "Many contacts belong to one sub-account"),
    TableRelationship("sub_accounts", "users", "assigned_employee_id", "Sub-accounts are assigned to an employee"),
    TableRelationship("activities", "sub_accounts", "sub_account_id", "Activities are logged against a sub-account"),
    TableRelationship("activities", "users", "created_by", "Activities are created by a user"),
    TableRelationship("follow_ups", "sub_accounts", "sub_account_id", "Follow-ups relate to a sub-account"),
    TableRelationship("follow_ups", "users", "assigned_to", "Follow-ups are assigned to a user"),
    TableRelationship("quotes_mbcb", "sub_accounts", "sub_account_id", "MBCB quotes relate to a sub-account"),
    TableRelationship("quotes_signages", "sub_accounts", "sub_account_id", "Signage quotes relate to a sub-account"),
    TableRelationship("quotes_paint", "sub_accounts", "sub_account_id", "Paint quotes relate to a sub-account"),
    TableRelationship("leads", "users", "assigned_to", "Leads are assigned to a user"),
]


def get_default_registry() -> SchemaRegistry:
    """Get the default CRM schema registry instance."""
    return SchemaRegistry(
        tables=_DEFAULT_TABLES,
        relationships=_DEFAULT_RELATIONSHIPS,
    )
