"""Entity extraction: one joined row to an ordered list of graph operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from src.common.models import (
    GraphOperation,
    NodeRecord,
    NodeType,
    ParticipantRow,
    RelationshipRecord,
    RelationshipType,
    TypedValue,
)
from src.ingestion.normalizer import (
    optional_text,
    parse_flag,
    parse_float,
    parse_int,
    parse_text,
    required_identifier,
    split_tokens,
)


@dataclass(frozen=True)
class ExtractionPlan:
    """Operations for one row, in the order they must be executed."""

    movie_id: str
    person_id: str
    operations: tuple[GraphOperation, ...] = field(default_factory=tuple)

    @property
    def nodes(self) -> list[NodeRecord]:
        return [op for op in self.operations if isinstance(op, NodeRecord)]

    @property
    def relationships(self) -> list[RelationshipRecord]:
        return [op for op in self.operations if isinstance(op, RelationshipRecord)]


def movie_properties(row: ParticipantRow) -> dict[str, TypedValue]:
    properties: dict[str, TypedValue] = {
        "title": parse_text(row.primaryTitle),
        "isAdult": parse_flag(row.isAdult),
        "startYear": parse_int(row.startYear),
        "endYear": parse_int(row.endYear),
        "runtimeMinutes": parse_int(row.runtimeMinutes),
        "averageRating": parse_float(row.averageRating),
        "numVotes": parse_int(row.numVotes),
    }
    # A missing plot must not erase a summary stored by an earlier row.
    summary = optional_text(row.Plot)
    if summary is not None:
        properties["summary"] = summary
    return properties


def person_properties(row: ParticipantRow) -> dict[str, TypedValue]:
    return {
        "name": parse_text(row.primaryName),
        "primaryProfession": parse_text(row.primaryProfession),
        "birthYear": parse_int(row.birthYear),
        "deathYear": parse_int(row.deathYear),
    }


def extract(row: ParticipantRow) -> ExtractionPlan:
    """Derive the node and relationship upserts for one row.

    Every relationship is preceded by the node operations for its endpoints,
    except ``KNOWN_FOR`` whose target title is left to that title's own row.

    Raises:
        MissingRequiredIdentifierError: if ``tconst`` or ``nconst`` is unusable.
    """
    movie_id = required_identifier(row.tconst, "tconst")
    person_id = required_identifier(row.nconst, "nconst")

    ops: list[GraphOperation] = [
        NodeRecord(
            node_type=NodeType.MOVIE,
            identifier=movie_id,
            properties=movie_properties(row),
        )
    ]

    for genre in split_tokens(row.genres):
        ops.append(NodeRecord(node_type=NodeType.GENRE, identifier=genre))
        ops.append(
            RelationshipRecord(
                rel_type=RelationshipType.IN_GENRE,
                source_id=movie_id,
                target_id=genre,
            )
        )

    ops.append(
        NodeRecord(
            node_type=NodeType.PERSON,
            identifier=person_id,
            properties=person_properties(row),
        )
    )
    ops.append(
        RelationshipRecord(
            rel_type=RelationshipType.RELATED_TO,
            source_id=person_id,
            target_id=movie_id,
        )
    )

    for title_id in split_tokens(row.knownForTitles):
        ops.append(
            RelationshipRecord(
                rel_type=RelationshipType.KNOWN_FOR,
                source_id=person_id,
                target_id=title_id,
                deferred_target=True,
            )
        )

    for profession in split_tokens(row.primaryProfession):
        ops.append(NodeRecord(node_type=NodeType.PROFESSION, identifier=profession))
        ops.append(
            RelationshipRecord(
                rel_type=RelationshipType.HAS_PROFESSION,
                source_id=person_id,
                target_id=profession,
            )
        )

    return ExtractionPlan(
        movie_id=movie_id,
        person_id=person_id,
        operations=tuple(ops),
    )


def validate_ordering(operations: Iterable[GraphOperation]) -> None:
    """Check that every relationship follows the nodes it connects.

    Deferred targets are exempt; their source must still come first.

    Raises:
        ValueError: on the first relationship whose endpoint was not emitted earlier.
    """
    seen: set[tuple[str, str]] = set()
    for position, op in enumerate(operations):
        if isinstance(op, NodeRecord):
            seen.add(op.key)
            continue
        if op.source_key not in seen:
            raise ValueError(
                f"{op.label} at position {position} precedes its source node {op.source_key}"
            )
        if not op.deferred_target and op.target_key not in seen:
            raise ValueError(
                f"{op.label} at position {position} precedes its target node {op.target_key}"
            )
