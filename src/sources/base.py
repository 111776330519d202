"""Row source interface and an in-memory implementation."""

from __future__ import annotations

from typing import Any, Iterable, Iterator, Protocol

from src.common.models import ParticipantRow


class RowSource(Protocol):
    """Produces the joined rows for one participant.

    Each call to ``iter_rows`` starts a fresh query, so the sequence can be
    restarted by calling it again.
    """

    def iter_rows(self, participant_name: str) -> Iterator[ParticipantRow]:
        """Yield rows whose person name equals ``participant_name``."""
        ...


class InMemoryRowSource:
    """Row source over a list of column mappings."""

    def __init__(self, rows: Iterable[dict[str, Any] | ParticipantRow]):
        self._rows = [
            row if isinstance(row, ParticipantRow) else ParticipantRow.from_mapping(row)
            for row in rows
        ]

    def iter_rows(self, participant_name: str) -> Iterator[ParticipantRow]:
        for row in self._rows:
            if row.primaryName == participant_name:
                yield row
