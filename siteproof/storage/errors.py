"""Storage-layer error types."""

from __future__ import annotations


class StorageError(Exception):
    """Base class for storage-layer errors."""


class TimezoneAwareRequiredError(StorageError, ValueError):
    """Raised when a naive datetime is bound to a UTC column."""

    def __init__(self, column: str) -> None:
        """Record the offending column in the message."""
        self.column = column
        super().__init__(f"{column} must be timezone aware")


class StoragePermissionDeniedError(StorageError):
    """Raised when the database's own row policy vetoes a statement.

    PostgreSQL reports this as SQLSTATE ``42501``
    (``insufficient_privilege``). It is distinct from a statement that
    simply matched zero rows.
    """

    def __init__(self, operation: str, report_id: str) -> None:
        """Record the vetoed operation and target row."""
        self.operation = operation
        self.report_id = report_id
        super().__init__(f"{operation} on report {report_id} denied by row policy")
