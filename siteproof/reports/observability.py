"""Emit structured observability events for the report queue.

Every report lifecycle change produces one ``[event] key=value`` line so an
operator can follow a single ``report_id`` from intake through the worker to
download or deletion.

Usage
-----
>>> event_logger = ReportQueueEventLogger()
>>> event_logger.log_report_queued(
...     report_id="r-1",
...     organization_id="org-1",
...     requested_by="user-1",
...     report_type="ncr_report",
...     report_format="pdf",
... )

"""

from __future__ import annotations

import enum

from siteproof.logging import get_logger, log_event

logger = get_logger(__name__)


class ReportQueueEventType(enum.StrEnum):
    """Structured log event types for report queue operations."""

    REPORT_QUEUED = "reports.report.queued"
    REPORT_RETRIED = "reports.report.retried"
    REPORT_DELETED = "reports.report.deleted"
    REPORT_DOWNLOADED = "reports.report.downloaded"
    REPORT_STARTED = "reports.report.started"
    REPORT_COMPLETED = "reports.report.completed"
    REPORT_FAILED = "reports.report.failed"
    DISPATCH_FAILED = "reports.dispatch.failed"
    DELETE_VETOED = "reports.delete.vetoed"


class ReportQueueEventLogger:
    """Emit report queue events via femtologging."""

    def log_report_queued(
        self,
        *,
        report_id: str,
        organization_id: str,
        requested_by: str,
        report_type: str,
        report_format: str,
    ) -> None:
        """Log a newly inserted entry."""
        log_event(
            logger,
            ReportQueueEventType.REPORT_QUEUED,
            report_id=report_id,
            organization_id=organization_id,
            requested_by=requested_by,
            report_type=report_type,
            format=report_format,
        )

    def log_report_retried(
        self,
        *,
        report_id: str,
        retried_by: str,
        retry_count: int,
        max_retries: int,
    ) -> None:
        """Log a ``failed -> queued`` transition made by the retry controller."""
        log_event(
            logger,
            ReportQueueEventType.REPORT_RETRIED,
            report_id=report_id,
            retried_by=retried_by,
            retry_count=retry_count,
            max_retries=max_retries,
        )

    def log_report_deleted(
        self,
        *,
        report_id: str,
        deleted_by: str,
        deleted_count: int,
    ) -> None:
        """Log a delete, including idempotent ones that removed nothing."""
        log_event(
            logger,
            ReportQueueEventType.REPORT_DELETED,
            report_id=report_id,
            deleted_by=deleted_by,
            deleted_count=deleted_count,
        )

    def log_report_downloaded(
        self,
        *,
        report_id: str,
        organization_id: str,
        downloaded_by: str,
        file_url: str,
    ) -> None:
        """Write the download audit record.

        Parameters
        ----------
        report_id
            Report whose file URL was handed out.
        organization_id
            Owning organization of the report.
        downloaded_by
            User who resolved the download.
        file_url
            URL returned to the caller.

        """
        log_event(
            logger,
            ReportQueueEventType.REPORT_DOWNLOADED,
            report_id=report_id,
            organization_id=organization_id,
            downloaded_by=downloaded_by,
            file_url=file_url,
        )

    def log_report_started(self, *, report_id: str, report_type: str) -> None:
        """Log the worker picking up an entry."""
        log_event(
            logger,
            ReportQueueEventType.REPORT_STARTED,
            report_id=report_id,
            report_type=report_type,
        )

    def log_report_completed(
        self,
        *,
        report_id: str,
        file_url: str,
        file_size_bytes: int,
    ) -> None:
        """Log a successfully stored artifact."""
        log_event(
            logger,
            ReportQueueEventType.REPORT_COMPLETED,
            report_id=report_id,
            file_url=file_url,
            file_size_bytes=file_size_bytes,
        )

    def log_report_failed(self, *, report_id: str, error: BaseException) -> None:
        """Log a generation failure with the exception attached."""
        log_event(
            logger,
            ReportQueueEventType.REPORT_FAILED,
            level="ERROR",
            exc_info=error,
            report_id=report_id,
            error_type=type(error).__name__,
            error_message=str(error),
        )

    def log_dispatch_failed(
        self,
        *,
        report_id: str,
        error: BaseException,
        rolled_back: bool,
    ) -> None:
        """Log a worker notification that could not be sent."""
        log_event(
            logger,
            ReportQueueEventType.DISPATCH_FAILED,
            level="ERROR",
            exc_info=error,
            report_id=report_id,
            error_type=type(error).__name__,
            rolled_back=rolled_back,
        )

    def log_delete_vetoed(self, *, report_id: str, user_id: str) -> None:
        """Log a delete refused by the database row policy."""
        log_event(
            logger,
            ReportQueueEventType.DELETE_VETOED,
            level="WARNING",
            report_id=report_id,
            user_id=user_id,
        )


__all__ = ["ReportQueueEventLogger", "ReportQueueEventType"]
