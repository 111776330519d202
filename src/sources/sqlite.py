"""Row source backed by the IMDb SQLite database."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from src.common.errors import RowSourceUnavailableError
from src.common.logging import get_logger
from src.common.models import ParticipantRow

logger = get_logger(__name__)

SELECT_TITLES_BY_PARTICIPANT = """
SELECT * FROM titles
    INNER JOIN principals ON titles.tconst = principals.tconst
    INNER JOIN ratings ON ratings.tconst = titles.tconst
    INNER JOIN names ON principals.nconst = names.nconst
    LEFT JOIN plots ON titles.primaryTitle = plots.Title
        AND titles.startYear = plots."Release Year"
WHERE names.primaryName = ?
"""


@dataclass
class SqliteRowSource:
    """Read-only access to ``titles``, ``principals``, ``ratings``, ``names`` and ``plots``."""

    path: str
    query: str = SELECT_TITLES_BY_PARTICIPANT

    def connect(self) -> sqlite3.Connection:
        db_path = Path(self.path)
        if not db_path.is_file():
            raise RowSourceUnavailableError(f"IMDb database not found: {self.path}")
        try:
            return sqlite3.connect(
                f"{db_path.resolve().as_uri()}?mode=ro",
                uri=True,
                # rows are pulled from a worker thread
                check_same_thread=False,
            )
        except sqlite3.Error as e:
            raise RowSourceUnavailableError(f"Cannot open {self.path}: {e}") from e

    def iter_rows(self, participant_name: str) -> Iterator[ParticipantRow]:
        """Yield joined rows lazily; the connection lives as long as the iterator."""
        con = self.connect()
        try:
            try:
                cursor = con.execute(self.query, (participant_name,))
            except sqlite3.Error as e:
                raise RowSourceUnavailableError(
                    f"Participant query failed on {self.path}: {e}"
                ) from e
            columns = [col[0] for col in cursor.description]
            logger.debug("participant_query_started", participant=participant_name)
            while True:
                try:
                    record = cursor.fetchone()
                except sqlite3.Error as e:
                    raise RowSourceUnavailableError(
                        f"Reading rows from {self.path} failed: {e}"
                    ) from e
                if record is None:
                    break
                yield ParticipantRow.from_mapping(dict(zip(columns, record)))
        finally:
            con.close()

    def count_rows(self, participant_name: str) -> int:
        """Number of joined rows for ``participant_name``."""
        return sum(1 for _ in self.iter_rows(participant_name))
