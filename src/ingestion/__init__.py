"""Relational-to-graph ingestion: normalize, extract, merge, drive."""

from src.ingestion.normalizer import (
    DELIMITER,
    is_null,
    optional_text,
    parse_flag,
    parse_float,
    parse_int,
    parse_text,
    required_identifier,
    split_tokens,
)
from src.ingestion.extractor import (
    ExtractionPlan,
    extract,
    movie_properties,
    person_properties,
    validate_ordering,
)
from src.ingestion.orchestrator import MergeOrchestrator, MergeResult
from src.ingestion.driver import (
    BatchDriver,
    DriverState,
    IngestionConfig,
    IngestionSummary,
    RowFailure,
)

__all__ = [
    # Normalizer
    "DELIMITER",
    "is_null",
    "optional_text",
    "parse_flag",
    "parse_float",
    "parse_int",
    "parse_text",
    "required_identifier",
    "split_tokens",
    # Extractor
    "ExtractionPlan",
    "extract",
    "movie_properties",
    "person_properties",
    "validate_ordering",
    # Orchestrator
    "MergeOrchestrator",
    "MergeResult",
    # Driver
    "BatchDriver",
    "DriverState",
    "IngestionConfig",
    "IngestionSummary",
    "RowFailure",
]
