"""Wire and result structures for report queue operations."""

from __future__ import annotations

import datetime as dt  # noqa: TC003
import typing as typ

import msgspec

from siteproof.storage.models import (
    ReportFormat,
    ReportQueueEntry,
    ReportStatus,
    ReportType,
)

ReportName = typ.Annotated[str, msgspec.Meta(min_length=1, max_length=255)]


class ReportRequest(
    msgspec.Struct, kw_only=True, frozen=True, forbid_unknown_fields=True
):
    """Body of a report generation request.

    ``format`` is required. ``parameters`` is passed to the worker
    verbatim; the queue never interprets it. ``organization_id`` may be
    omitted when the caller belongs to exactly one organization.
    """

    report_type: ReportType
    report_name: ReportName
    format: ReportFormat
    description: str | None = None
    organization_id: str | None = None
    parameters: dict[str, typ.Any] = msgspec.field(default_factory=dict)


class ReportDispatch(msgspec.Struct, kw_only=True, frozen=True):
    """Message sent to the report worker.

    ``requested_by`` is always the original requester, including when the
    dispatch follows a retry by someone else.
    """

    report_id: str
    report_type: ReportType
    format: ReportFormat
    parameters: dict[str, typ.Any]
    organization_id: str
    requested_by: str

    @classmethod
    def for_entry(cls, entry: ReportQueueEntry) -> ReportDispatch:
        """Build the dispatch message for a persisted entry."""
        return cls(
            report_id=entry.id,
            report_type=ReportType(entry.report_type),
            format=ReportFormat(entry.format),
            parameters=dict(entry.parameters or {}),
            organization_id=entry.organization_id,
            requested_by=entry.requested_by,
        )

    def to_message(self) -> dict[str, typ.Any]:
        """Return a JSON-compatible payload for the broker."""
        return msgspec.to_builtins(self)


class RetryOutcome(msgspec.Struct, kw_only=True, frozen=True):
    """Result of a successful retry."""

    report_id: str
    status: ReportStatus
    retry_count: int
    max_retries: int


class DeletionOutcome(msgspec.Struct, kw_only=True, frozen=True):
    """Result of a delete; ``deleted_count`` is 0 when the row was already gone."""

    report_id: str
    deleted_count: int

    @property
    def already_gone(self) -> bool:
        """Return True when another actor removed the row first."""
        return self.deleted_count == 0


class DownloadInfo(msgspec.Struct, kw_only=True, frozen=True):
    """Where and what to fetch for a completed report."""

    report_id: str
    file_url: str
    report_name: str
    format: ReportFormat
    mime_type: str
    file_size_bytes: int | None
    completed_at: dt.datetime | None


class ReportView(msgspec.Struct, kw_only=True, frozen=True):
    """Caller-facing snapshot of a queue entry."""

    report_id: str
    organization_id: str
    requested_by: str
    report_type: ReportType
    report_name: str
    description: str | None
    format: ReportFormat
    parameters: dict[str, typ.Any]
    status: ReportStatus
    progress: int
    current_step: str | None
    error_message: str | None
    retry_count: int
    max_retries: int
    file_size_bytes: int | None
    queued_at: dt.datetime
    started_at: dt.datetime | None
    completed_at: dt.datetime | None
    failed_at: dt.datetime | None
    expires_at: dt.datetime | None

    @classmethod
    def from_entry(cls, entry: ReportQueueEntry) -> ReportView:
        """Snapshot *entry*; the file URL is only handed out by download."""
        return cls(
            report_id=entry.id,
            organization_id=entry.organization_id,
            requested_by=entry.requested_by,
            report_type=ReportType(entry.report_type),
            report_name=entry.report_name,
            description=entry.description,
            format=ReportFormat(entry.format),
            parameters=dict(entry.parameters or {}),
            status=ReportStatus(entry.status),
            progress=entry.progress,
            current_step=entry.current_step,
            error_message=entry.error_message,
            retry_count=entry.retry_count,
            max_retries=entry.max_retries,
            file_size_bytes=entry.file_size_bytes,
            queued_at=entry.queued_at,
            started_at=entry.started_at,
            completed_at=entry.completed_at,
            failed_at=entry.failed_at,
            expires_at=entry.expires_at,
        )


__all__ = [
    "DeletionOutcome",
    "DownloadInfo",
    "ReportDispatch",
    "ReportRequest",
    "ReportView",
    "RetryOutcome",
]
