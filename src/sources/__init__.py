"""Row sources producing joined IMDb rows."""

from src.sources.base import InMemoryRowSource, RowSource
from src.sources.sqlite import SELECT_TITLES_BY_PARTICIPANT, SqliteRowSource

__all__ = [
    "InMemoryRowSource",
    "RowSource",
    "SELECT_TITLES_BY_PARTICIPANT",
    "SqliteRowSource",
]
