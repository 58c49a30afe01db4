"""Errors raised while selecting or running a query builder."""

from __future__ import annotations


class UnresolvedDialectError(Exception):
    """The database type or query builder for a data source could not be determined."""

    def __init__(self, data_source: str, db_type: str | None = None, reason: str | None = None) -> None:
        self.data_source = data_source
        self.db_type = db_type
        message = f"Can't find dialect for '{data_source}' data source"
        if db_type is not None:
            message += f": {db_type}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class UnsupportedDatabaseError(Exception):
    """Raised when no query builder is registered for a database type."""

    def __init__(self, db_type: str, available: list[str]) -> None:
        self.db_type = db_type
        self.available = available
        super().__init__(f"Unsupported database type '{db_type}'. Available: {', '.join(available)}")


class QueryValidationError(ValueError):
    """The query cannot be built against the compiled schema."""
