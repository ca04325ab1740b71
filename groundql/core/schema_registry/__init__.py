"""Schema Registry for GroundQL - defines tables, columns, and relationships."""

from .registry import (
    Column,
    Edge,
    SchemaRegistry,
    TableRelationship,
    TableSchema,
    get_default_registry,
)

__all__ = [
    "Column",
    "Edge",
    "SchemaRegistry",
    "TableRelationship",
    "TableSchema",
    "get_default_registry",
]
