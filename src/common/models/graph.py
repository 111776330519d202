"""Graph records: node and relationship upserts produced by extraction."""

from __future__ import annotations

from enum import Enum
from typing import Union

from pydantic import BaseModel, ConfigDict, Field

# Property values a node may carry. ``None`` stores an explicit null.
TypedValue = Union[str, int, float, bool, list[float], None]


class NodeType(str, Enum):
    """Label of a graph node."""

    MOVIE = "Movie"
    PERSON = "Person"
    GENRE = "Genre"
    PROFESSION = "Profession"


class RelationshipType(str, Enum):
    """Label of a graph relationship."""

    IN_GENRE = "IN_GENRE"
    RELATED_TO = "RELATED_TO"
    KNOWN_FOR = "KNOWN_FOR"
    HAS_PROFESSION = "HAS_PROFESSION"

    @property
    def source_type(self) -> NodeType:
        return RELATIONSHIP_SCHEMA[self][0]

    @property
    def target_type(self) -> NodeType:
        return RELATIONSHIP_SCHEMA[self][1]


# label -> (source type, target type)
RELATIONSHIP_SCHEMA: dict[RelationshipType, tuple[NodeType, NodeType]] = {
    RelationshipType.IN_GENRE: (NodeType.MOVIE, NodeType.GENRE),
    RelationshipType.RELATED_TO: (NodeType.PERSON, NodeType.MOVIE),
    RelationshipType.KNOWN_FOR: (NodeType.PERSON, NodeType.MOVIE),
    RelationshipType.HAS_PROFESSION: (NodeType.PERSON, NodeType.PROFESSION),
}

NodeKey = tuple[str, str]
RelationshipKey = tuple[str, str, str, str, str]


class NodeRecord(BaseModel):
    """A node upsert.

    ``properties`` is a sparse patch: keys that are absent are left alone on
    merge, keys mapped to ``None`` are stored as null.
    """

    model_config = ConfigDict(frozen=True)

    node_type: NodeType
    identifier: str = Field(min_length=1)
    properties: dict[str, TypedValue] = Field(default_factory=dict)

    @property
    def key(self) -> NodeKey:
        return (self.node_type.value, self.identifier)


class RelationshipRecord(BaseModel):
    """A relationship upsert between two nodes identified by type and id."""

    model_config = ConfigDict(frozen=True)

    rel_type: RelationshipType
    source_id: str = Field(min_length=1)
    target_id: str = Field(min_length=1)
    # The target node is created by some other row; the edge may dangle until then.
    deferred_target: bool = False

    @property
    def label(self) -> str:
        return self.rel_type.value

    @property
    def source_type(self) -> NodeType:
        return self.rel_type.source_type

    @property
    def target_type(self) -> NodeType:
        return self.rel_type.target_type

    @property
    def source_key(self) -> NodeKey:
        return (self.source_type.value, self.source_id)

    @property
    def target_key(self) -> NodeKey:
        return (self.target_type.value, self.target_id)

    @property
    def key(self) -> RelationshipKey:
        return (
            self.label,
            self.source_type.value,
            self.source_id,
            self.target_type.value,
            self.target_id,
        )


GraphOperation = Union[NodeRecord, RelationshipRecord]
