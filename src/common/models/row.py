"""Joined IMDb row as returned by the participant query."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

NULL_SENTINEL = "\\N"


class ParticipantRow(BaseModel):
    """One row of titles ⋈ principals ⋈ ratings ⋈ names ⟕ plots.

    Every column is a string using ``\\N`` for NULL. ``None`` shows up for the
    plot columns when the left join finds no plot.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="ignore",
    )

    # titles
    tconst: str | None = None
    titleType: str | None = None
    primaryTitle: str | None = None
    originalTitle: str | None = None
    isAdult: str | None = None
    startYear: str | None = None
    endYear: str | None = None
    runtimeMinutes: str | None = None
    genres: str | None = None

    # principals
    ordering: str | None = None
    category: str | None = None
    job: str | None = None
    characters: str | None = None

    # names
    nconst: str | None = None
    primaryName: str | None = None
    birthYear: str | None = None
    deathYear: str | None = None
    primaryProfession: str | None = None
    knownForTitles: str | None = None

    # ratings
    averageRating: str | None = None
    numVotes: str | None = None

    # plots
    Plot: str | None = None
    Director: str | None = None
    Title: str | None = None
    Cast: str | None = None
    Genre: str | None = None
    release_year: str | None = Field(default=None, alias="Release Year")
    origin_ethnicity: str | None = Field(default=None, alias="Origin/Ethnicity")
    wiki_page: str | None = Field(default=None, alias="Wiki Page")

    @field_validator("*", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        """SQLite hands back numbers for numeric-looking columns."""
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, bytes):
            return value.decode("utf-8", errors="replace")
        return str(value)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "ParticipantRow":
        """Create a row from a column-name mapping."""
        return cls.model_validate(data)

    def label(self) -> str:
        """Short description used in log lines."""
        return f"{self.primaryTitle} ({self.startYear})"
