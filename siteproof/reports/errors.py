"""Errors raised by report queue operations.

Every caller-facing failure is a :class:`ReportQueueError` carrying a
:class:`ReportErrorKind`. The API layer maps kinds to HTTP statuses; the
message is short and safe to show to the caller. Raw storage errors never
escape: they are logged and re-raised as :class:`UnexpectedReportError`.
"""

from __future__ import annotations

import enum
import typing as typ

if typ.TYPE_CHECKING:
    from siteproof.storage.models import ReportStatus


class ReportErrorKind(enum.StrEnum):
    """Structured failure kinds returned by report operations."""

    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    INVALID_STATE = "invalid_state"
    RETRY_EXHAUSTED = "retry_exhausted"
    UNAVAILABLE = "unavailable"
    DISPATCH_FAILED = "dispatch_failed"
    INVALID_INPUT = "invalid_input"
    UNEXPECTED = "unexpected"


class ReportQueueError(Exception):
    """Base class for report queue failures."""

    kind: typ.ClassVar[ReportErrorKind] = ReportErrorKind.UNEXPECTED
    default_message: typ.ClassVar[str] = "Internal server error"

    def __init__(
        self,
        message: str | None = None,
        *,
        report_id: str | None = None,
    ) -> None:
        """Initialise with an optional caller-facing message and report ID."""
        self.message = message or self.default_message
        self.report_id = report_id
        super().__init__(self.message)


class ReportNotFoundError(ReportQueueError):
    """The report is absent or owned by an organization the caller cannot see."""

    kind = ReportErrorKind.NOT_FOUND
    default_message = "Report not found"


class ReportForbiddenError(ReportQueueError):
    """The report is visible but the caller may not perform the operation."""

    kind = ReportErrorKind.FORBIDDEN
    default_message = "Insufficient permissions"


class InvalidReportStateError(ReportQueueError):
    """The report's status does not allow the requested operation."""

    kind = ReportErrorKind.INVALID_STATE
    default_message = "Report is in an invalid state for this operation"


class InvalidTransitionError(InvalidReportStateError):
    """Raised by the state machine for a transition it does not define."""

    def __init__(
        self,
        current: ReportStatus | None,
        target: ReportStatus,
        *,
        report_id: str | None = None,
    ) -> None:
        """Record the attempted transition."""
        self.current = current
        self.target = target
        source = current.value if current is not None else "none"
        super().__init__(
            f"Cannot move report from {source} to {target.value}",
            report_id=report_id,
        )


class RetryLimitReachedError(ReportQueueError):
    """The report has already used every permitted retry."""

    kind = ReportErrorKind.RETRY_EXHAUSTED
    default_message = "Maximum retry limit reached"


class InvalidReportRequestError(ReportQueueError):
    """The request is well-formed but cannot be resolved as given."""

    kind = ReportErrorKind.INVALID_INPUT
    default_message = "Invalid report request"


class ReportFileUnavailableError(ReportQueueError):
    """A completed report has no file reference."""

    kind = ReportErrorKind.UNAVAILABLE
    default_message = "Report file not available"


class ReportDispatchError(ReportQueueError):
    """The worker could not be notified; the row was marked failed."""

    kind = ReportErrorKind.DISPATCH_FAILED
    default_message = "Report dispatch failed"


class UnexpectedReportError(ReportQueueError):
    """An internal failure, reported generically to the caller."""

    kind = ReportErrorKind.UNEXPECTED
    default_message = "Internal server error"


class UnsupportedFormatError(Exception):
    """Raised by a renderer asked for a format it cannot produce."""

    def __init__(self, report_format: str) -> None:
        """Record the unsupported format."""
        self.report_format = report_format
        super().__init__(f"Rendering {report_format} reports is not supported")


__all__ = [
    "InvalidReportRequestError",
    "InvalidReportStateError",
    "InvalidTransitionError",
    "ReportDispatchError",
    "ReportErrorKind",
    "ReportFileUnavailableError",
    "ReportForbiddenError",
    "ReportNotFoundError",
    "ReportQueueError",
    "RetryLimitReachedError",
    "UnexpectedReportError",
    "UnsupportedFormatError",
]
