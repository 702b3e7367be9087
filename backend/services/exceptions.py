"""Typed exception hierarchy for CSV import errors.

Only failures at the import boundary are raised. Insufficient lots, invalid
rows and holding drift are ordinary results and never surface here.
"""


class LedgerImportError(Exception):
    """Base exception for all import pipeline errors."""

    status_code = 400


class CsvParseError(LedgerImportError):
    """Empty, malformed or oversized upload. No state is created."""

    def __init__(self, message: str, line_number: int | None = None):
        self.line_number = line_number
        super().__init__(message)


class ColumnMappingError(LedgerImportError):
    """A required field is unmapped or mapped to a column that isn't there."""

    def __init__(self, message: str, missing_fields: list[str] | None = None):
        self.missing_fields = missing_fields or []
        super().__init__(message)


class ImportStateError(LedgerImportError):
    """Operation not allowed in the pipeline's current state."""

    status_code = 409


class PersistenceError(LedgerImportError):
    """The database rejected even the row-by-row retry."""

    status_code = 500
