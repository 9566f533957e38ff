"""State machine for report queue entries.

The transition table is the single source of truth for which status changes
are legal. The ``*_values`` builders return the complete set of column
assignments for one transition so that callers can apply them as a single
conditional ``UPDATE`` (``WHERE status = <expected>``) rather than mutating
loaded objects field by field.

Transitions::

    (none)      -> queued       intake
    queued      -> processing   worker starts
    processing  -> completed    worker succeeds
    processing  -> failed       worker fails
    queued      -> failed       dispatch rollback, or worker cannot start
    failed      -> queued       retry controller only

``completed`` has no outgoing transition.
"""

from __future__ import annotations

import datetime as dt
import typing as typ

from siteproof.reports.errors import InvalidTransitionError
from siteproof.storage.models import ReportStatus

TRANSITIONS: typ.Final[dict[ReportStatus | None, frozenset[ReportStatus]]] = {
    None: frozenset({ReportStatus.QUEUED}),
    ReportStatus.QUEUED: frozenset({ReportStatus.PROCESSING, ReportStatus.FAILED}),
    ReportStatus.PROCESSING: frozenset({ReportStatus.COMPLETED, ReportStatus.FAILED}),
    ReportStatus.FAILED: frozenset({ReportStatus.QUEUED}),
    ReportStatus.COMPLETED: frozenset(),
}

DEFAULT_FAILURE_MESSAGE = "Report generation failed"

_MIN_PROGRESS = 0
_MAX_PROGRESS = 100


class EntryLike(typ.Protocol):
    """Attributes of a report entry inspected by invariant checks."""

    status: ReportStatus
    progress: int
    error_message: str | None
    retry_count: int
    max_retries: int
    file_url: str | None
    queued_at: dt.datetime | None
    started_at: dt.datetime | None
    completed_at: dt.datetime | None
    failed_at: dt.datetime | None


def can_transition(current: ReportStatus | None, target: ReportStatus) -> bool:
    """Return True when the table allows ``current -> target``."""
    return target in TRANSITIONS.get(current, frozenset())


def ensure_transition(
    current: ReportStatus | None,
    target: ReportStatus,
    *,
    report_id: str | None = None,
) -> None:
    """Raise :class:`InvalidTransitionError` unless ``current -> target`` is legal."""
    if not can_transition(current, target):
        raise InvalidTransitionError(current, target, report_id=report_id)


def clamp_progress(progress: int) -> int:
    """Clamp an advisory progress value into 0..100."""
    return max(_MIN_PROGRESS, min(_MAX_PROGRESS, progress))


def queued_values(
    *,
    now: dt.datetime,
    max_retries: int,
    retention: dt.timedelta | None,
) -> dict[str, typ.Any]:
    """Column values for a freshly created entry."""
    if max_retries < 0:
        msg = f"max_retries must not be negative, got {max_retries}"
        raise ValueError(msg)
    return {
        "status": ReportStatus.QUEUED,
        "queued_at": now,
        "retry_count": 0,
        "max_retries": max_retries,
        "progress": 0,
        "expires_at": now + retention if retention is not None else None,
    }


def processing_values(
    *,
    now: dt.datetime,
    progress: int = 0,
    current_step: str | None = None,
) -> dict[str, typ.Any]:
    """Column values for ``queued -> processing``."""
    return {
        "status": ReportStatus.PROCESSING,
        "started_at": now,
        "progress": clamp_progress(progress),
        "current_step": current_step,
    }


def progress_values(progress: int, current_step: str | None) -> dict[str, typ.Any]:
    """Column values for an advisory progress update (no status change)."""
    return {"progress": clamp_progress(progress), "current_step": current_step}


def completed_values(
    *,
    now: dt.datetime,
    file_url: str,
    file_size_bytes: int | None,
    file_name: str | None = None,
    mime_type: str | None = None,
) -> dict[str, typ.Any]:
    """Column values for ``processing -> completed``.

    Raises
    ------
    ValueError
        If *file_url* is empty; a completed report must always carry one.

    """
    if not file_url:
        msg = "completed reports require a non-empty file_url"
        raise ValueError(msg)
    return {
        "status": ReportStatus.COMPLETED,
        "completed_at": now,
        "progress": _MAX_PROGRESS,
        "current_step": "Completed",
        "file_url": file_url,
        "file_size_bytes": file_size_bytes,
        "file_name": file_name,
        "mime_type": mime_type,
        "error_message": None,
    }


def failed_values(
    *,
    now: dt.datetime,
    error_message: str | None,
) -> dict[str, typ.Any]:
    """Column values for ``processing -> failed`` and ``queued -> failed``."""
    return {
        "status": ReportStatus.FAILED,
        "failed_at": now,
        "error_message": error_message or DEFAULT_FAILURE_MESSAGE,
        "file_url": None,
        "file_size_bytes": None,
    }


def requeue_values(*, now: dt.datetime, retry_count: int) -> dict[str, typ.Any]:
    """Column values for ``failed -> queued`` given the current retry count."""
    return {
        "status": ReportStatus.QUEUED,
        "queued_at": now,
        "retry_count": retry_count + 1,
        "started_at": None,
        "completed_at": None,
        "failed_at": None,
        "error_message": None,
        "progress": 0,
        "current_step": None,
        "file_url": None,
        "file_size_bytes": None,
        "file_name": None,
        "mime_type": None,
    }


def _timestamp_violations(entry: EntryLike) -> list[str]:
    status = ReportStatus(entry.status)
    violations: list[str] = []
    if entry.queued_at is None:
        violations.append("queued_at must always be set")

    expected: dict[ReportStatus, tuple[set[str], set[str]]] = {
        ReportStatus.QUEUED: (set(), {"started_at", "completed_at", "failed_at"}),
        ReportStatus.PROCESSING: ({"started_at"}, {"completed_at", "failed_at"}),
        ReportStatus.COMPLETED: ({"started_at", "completed_at"}, {"failed_at"}),
        ReportStatus.FAILED: ({"failed_at"}, {"completed_at"}),
    }
    required, forbidden = expected[status]
    violations.extend(
        f"{name} must be set when status is {status.value}"
        for name in sorted(required)
        if getattr(entry, name) is None
    )
    violations.extend(
        f"{name} must be empty when status is {status.value}"
        for name in sorted(forbidden)
        if getattr(entry, name) is not None
    )
    return violations


def invariant_violations(entry: EntryLike) -> list[str]:
    """Return every data-model invariant *entry* breaks (empty when valid)."""
    violations: list[str] = []
    if not 0 <= entry.retry_count <= entry.max_retries:
        violations.append("retry_count must stay within 0..max_retries")
    if not _MIN_PROGRESS <= entry.progress <= _MAX_PROGRESS:
        violations.append("progress must stay within 0..100")

    completed = entry.status == ReportStatus.COMPLETED
    if completed and not entry.file_url:
        violations.append("completed reports must have a file_url")
    if not completed and entry.file_url:
        violations.append("only completed reports may have a file_url")
    if entry.error_message and entry.status != ReportStatus.FAILED:
        violations.append("only failed reports may have an error_message")

    violations.extend(_timestamp_violations(entry))
    return violations


__all__ = [
    "DEFAULT_FAILURE_MESSAGE",
    "TRANSITIONS",
    "EntryLike",
    "can_transition",
    "clamp_progress",
    "completed_values",
    "ensure_transition",
    "failed_values",
    "invariant_violations",
    "processing_values",
    "progress_values",
    "queued_values",
    "requeue_values",
]
