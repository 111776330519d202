"""Field normalization: raw row strings to typed graph property values.

Every function here is pure and lenient. Malformed numbers become zero,
relational NULL (``\\N`` or a missing column) becomes ``None``, and only
identifiers are allowed to fail.
"""

from __future__ import annotations

import re

from src.common.errors import MissingRequiredIdentifierError
from src.common.models import NULL_SENTINEL

DELIMITER = ","

_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")
_FLOAT_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def is_null(value: str | None) -> bool:
    """True for the relational NULL sentinel or a missing column."""
    return value is None or value == NULL_SENTINEL


def parse_int(value: str | None) -> int | None:
    """Parse an integer field, keeping the longest numeric prefix."""
    if is_null(value):
        return None
    match = _INT_PREFIX.match(value)
    return int(match.group(1)) if match else 0


def parse_float(value: str | None) -> float | None:
    """Parse a double field, keeping the longest numeric prefix."""
    if is_null(value):
        return None
    match = _FLOAT_PREFIX.match(value)
    return float(match.group(1)) if match else 0.0


def parse_flag(value: str | None) -> bool:
    """Only the literal "1" is true."""
    return value == "1"


def parse_text(value: str | None) -> str | None:
    if is_null(value):
        return None
    return value


def optional_text(value: str | None) -> str | None:
    """Like ``parse_text`` but empty strings also count as absent.

    Callers omit the property entirely when this returns ``None``.
    """
    if is_null(value) or value == "":
        return None
    return value


def split_tokens(value: str | None, delimiter: str = DELIMITER) -> list[str]:
    """Split a delimited multi-value field into unique, trimmed tokens.

    Order of first appearance is kept. NULL and blank input yield no tokens.
    """
    if is_null(value):
        return []
    tokens = (token.strip() for token in value.split(delimiter))
    return list(dict.fromkeys(t for t in tokens if t and t != NULL_SENTINEL))


def required_identifier(value: str | None, field: str) -> str:
    """Return a usable identifier or raise ``MissingRequiredIdentifierError``."""
    if is_null(value) or not value.strip():
        raise MissingRequiredIdentifierError(field, value)
    return value.strip()
