"""Pytest configuration and fixtures."""

import sqlite3

import pytest

from src.knowledge_graph import InMemoryGraphStore


IMDB_TABLES = """
CREATE TABLE titles (
    tconst TEXT PRIMARY KEY, titleType TEXT, primaryTitle TEXT, originalTitle TEXT,
    isAdult TEXT, startYear TEXT, endYear TEXT, runtimeMinutes TEXT, genres TEXT
);
CREATE TABLE principals (
    tconst TEXT, ordering TEXT, nconst TEXT, category TEXT, job TEXT, characters TEXT
);
CREATE TABLE ratings (tconst TEXT PRIMARY KEY, averageRating TEXT, numVotes TEXT);
CREATE TABLE names (
    nconst TEXT PRIMARY KEY, primaryName TEXT, birthYear TEXT, deathYear TEXT,
    primaryProfession TEXT, knownForTitles TEXT
);
CREATE TABLE plots (
    "Release Year" TEXT, Title TEXT, "Origin/Ethnicity" TEXT, Director TEXT,
    Cast TEXT, Genre TEXT, "Wiki Page" TEXT, Plot TEXT
);
"""


def make_row(**overrides):
    """A joined row for Terry Gilliam directing Brazil."""
    row = {
        "tconst": "tt001",
        "titleType": "movie",
        "primaryTitle": "Brazil",
        "originalTitle": "Brazil",
        "isAdult": "0",
        "startYear": "1985",
        "endYear": "\\N",
        "runtimeMinutes": "132",
        "genres": "Comedy,Sci-Fi",
        "ordering": "1",
        "category": "director",
        "job": "\\N",
        "characters": "\\N",
        "nconst": "nm001",
        "primaryName": "Terry Gilliam",
        "birthYear": "1940",
        "deathYear": "\\N",
        "primaryProfession": "director",
        "knownForTitles": "tt001,tt002",
        "averageRating": "7.9",
        "numVotes": "210000",
        "Plot": None,
    }
    row.update(overrides)
    return row


@pytest.fixture
def brazil_row():
    """The joined row from the end-to-end example."""
    return make_row()


@pytest.fixture
def memory_store():
    """An empty in-memory graph store."""
    return InMemoryGraphStore()


@pytest.fixture
def imdb_db(tmp_path):
    """A small IMDb SQLite database with Terry Gilliam's titles."""
    path = tmp_path / "im.db"
    con = sqlite3.connect(path)
    con.executescript(IMDB_TABLES)
    con.executemany(
        "INSERT INTO titles VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
        [
            ("tt001", "movie", "Brazil", "Brazil", "0", "1985", "\\N", "132", "Comedy,Sci-Fi"),
            ("tt002", "movie", "12 Monkeys", "Twelve Monkeys", "0", "1995", "\\N", "129", "Mystery,Sci-Fi,Thriller"),
            ("tt003", "movie", "Jabberwocky", "Jabberwocky", "0", "1977", "\\N", "105", "Adventure,Comedy,Fantasy"),
        ],
    )
    con.executemany(
        "INSERT INTO principals VALUES (?, ?, ?, ?, ?, ?)",
        [
            ("tt001", "1", "nm001", "director", "\\N", "\\N"),
            ("tt002", "1", "nm001", "director", "\\N", "\\N"),
            ("tt001", "2", "nm002", "actor", "\\N", '["Sam Lowry"]'),
        ],
    )
    # tt003 has no rating, so the inner join drops it
    con.executemany(
        "INSERT INTO ratings VALUES (?, ?, ?)",
        [("tt001", "7.9", "210000"), ("tt002", "8.0", "640000")],
    )
    con.executemany(
        "INSERT INTO names VALUES (?, ?, ?, ?, ?, ?)",
        [
            ("nm001", "Terry Gilliam", "1940", "\\N", "director,writer,actor", "tt001,tt002"),
            ("nm002", "Jonathan Pryce", "1947", "\\N", "actor", "tt001"),
        ],
    )
    con.execute(
        "INSERT INTO plots VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        ("1985", "Brazil", "British", "Terry Gilliam", "Jonathan Pryce", "science fiction",
         "https://en.wikipedia.org/wiki/Brazil_(1985_film)",
         "A low-level bureaucrat dreams of escape."),
    )
    con.commit()
    con.close()
    return path


@pytest.fixture
def row_factory():
    """Build joined rows from the Brazil row with overrides."""
    return make_row
