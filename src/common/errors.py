"""Exception hierarchy for ingestion.

Field-level problems never show up here: the normalizer coerces malformed
values instead of raising. Row-level errors are ``recoverable`` and only
cost the batch one row; the rest stop the batch.
"""


class IngestionError(Exception):
    """Base exception for ingestion errors."""

    def __init__(self, message: str, recoverable: bool = True):
        super().__init__(message)
        self.recoverable = recoverable


class MissingRequiredIdentifierError(IngestionError):
    """Raised when a row has no usable title or person identifier."""

    def __init__(self, field: str, value: str | None = None):
        super().__init__(
            f"Row is missing required identifier '{field}' (got {value!r})",
            recoverable=True,
        )
        self.field = field
        self.value = value


class UnitOfWorkFailedError(IngestionError):
    """Raised when a row's unit of work was discarded."""

    def __init__(self, message: str):
        super().__init__(message, recoverable=True)


class StoreUnavailableError(IngestionError):
    """Raised on transport or authentication failure from the graph store."""

    def __init__(self, message: str):
        super().__init__(message, recoverable=False)


class RowSourceUnavailableError(IngestionError):
    """Raised when the row source cannot be opened or queried."""

    def __init__(self, message: str):
        super().__init__(message, recoverable=False)
