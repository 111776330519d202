"""Data models for graph ingestion."""

from src.common.models.graph import (
    RELATIONSHIP_SCHEMA,
    GraphOperation,
    NodeKey,
    NodeRecord,
    NodeType,
    RelationshipKey,
    RelationshipRecord,
    RelationshipType,
    TypedValue,
)
from src.common.models.row import NULL_SENTINEL, ParticipantRow

__all__ = [
    # Graph
    "RELATIONSHIP_SCHEMA",
    "GraphOperation",
    "NodeKey",
    "NodeRecord",
    "NodeType",
    "RelationshipKey",
    "RelationshipRecord",
    "RelationshipType",
    "TypedValue",
    # Rows
    "NULL_SENTINEL",
    "ParticipantRow",
]
