"""Common utilities and shared components."""

from src.common.config import Settings, get_settings
from src.common.errors import (
    IngestionError,
    MissingRequiredIdentifierError,
    RowSourceUnavailableError,
    StoreUnavailableError,
    UnitOfWorkFailedError,
)
from src.common.logging import get_logger, setup_logging

__all__ = [
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
    # Errors
    "IngestionError",
    "MissingRequiredIdentifierError",
    "RowSourceUnavailableError",
    "StoreUnavailableError",
    "UnitOfWorkFailedError",
]
