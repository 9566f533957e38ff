"""Report queue service: intake, retry, deletion and download resolution.

The service is the only writer of caller-driven transitions. Every operation
loads the caller's memberships first and resolves visibility against the
organization that owns the report, so a report in another tenant always
looks absent. Storage faults are logged and surface as
:class:`~siteproof.reports.errors.UnexpectedReportError`; nothing raw from
SQLAlchemy reaches the caller.

Usage
-----
>>> from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
>>> from siteproof.reports import (
...     DramatiqReportDispatcher,
...     ReportQueueService,
...     ReportQueueServiceDependencies,
... )
>>>
>>> url = "sqlite+aiosqlite:///siteproof.db"
>>> session_factory = async_sessionmaker(
...     create_async_engine(url), expire_on_commit=False
... )
>>> service = ReportQueueService(
...     ReportQueueServiceDependencies(
...         session_factory=session_factory,
...         dispatcher=DramatiqReportDispatcher(url),
...     )
... )
>>> outcome = await service.retry_report(report_id, user_id="user-1")

"""

from __future__ import annotations

import contextlib
import dataclasses as dc
import typing as typ

from sqlalchemy.exc import SQLAlchemyError

from siteproof.common.time import utcnow
from siteproof.logging import get_logger, log_exception, log_info
from siteproof.reports import state
from siteproof.reports.config import ReportQueueConfig
from siteproof.reports.errors import (
    InvalidReportRequestError,
    InvalidReportStateError,
    ReportDispatchError,
    ReportFileUnavailableError,
    ReportForbiddenError,
    ReportNotFoundError,
    RetryLimitReachedError,
    UnexpectedReportError,
)
from siteproof.reports.models import (
    DeletionOutcome,
    DownloadInfo,
    ReportDispatch,
    ReportView,
    RetryOutcome,
)
from siteproof.reports.observability import ReportQueueEventLogger
from siteproof.reports.permissions import (
    AuthorizationContext,
    can_delete,
    can_request,
    can_retry,
    can_view,
)
from siteproof.reports.store import ReportQueueStore
from siteproof.storage.errors import StoragePermissionDeniedError
from siteproof.storage.models import ReportFormat, ReportStatus
from siteproof.storage.policies import bind_current_user

if typ.TYPE_CHECKING:
    import datetime as dt

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from siteproof.reports.dispatch import ReportDispatcher
    from siteproof.reports.models import ReportRequest
    from siteproof.reports.permissions import OwnedReport
    from siteproof.storage.models import ReportQueueEntry

logger = get_logger(__name__)

DISPATCH_FAILURE_MESSAGE = "Report dispatch failed"
MAX_LIST_LIMIT = 200


@dc.dataclass(frozen=True, slots=True)
class ReportQueueServiceDependencies:
    """Core dependencies for :class:`ReportQueueService`.

    Attributes
    ----------
    session_factory
        Async session factory for database access.
    dispatcher
        Sends generation requests to the report worker.

    """

    session_factory: async_sessionmaker[AsyncSession]
    dispatcher: ReportDispatcher


def _resolve_organization(ctx: AuthorizationContext, request: ReportRequest) -> str:
    """Pick the organization a new report belongs to."""
    if request.organization_id is not None:
        if not ctx.is_member(request.organization_id):
            msg = "Organization not found"
            raise ReportNotFoundError(msg)
        return request.organization_id

    organization_ids = sorted(ctx.organization_ids)
    if not organization_ids:
        msg = "Organization not found"
        raise ReportNotFoundError(msg)
    if len(organization_ids) > 1:
        msg = "organization_id is required when you belong to several organizations"
        raise InvalidReportRequestError(msg)
    return organization_ids[0]


def _ensure_retryable(ctx: AuthorizationContext, entry: ReportQueueEntry) -> None:
    """Apply the retry preconditions after visibility, first failure wins."""
    if not can_retry(ctx, entry):
        msg = "Insufficient permissions to retry this report"
        raise ReportForbiddenError(msg, report_id=entry.id)
    if entry.status != ReportStatus.FAILED:
        msg = "Only failed reports can be retried"
        raise InvalidReportStateError(msg, report_id=entry.id)
    if entry.retry_count >= entry.max_retries:
        raise RetryLimitReachedError(report_id=entry.id)


class ReportQueueService:
    """Caller-facing operations on the report queue."""

    def __init__(
        self,
        dependencies: ReportQueueServiceDependencies,
        config: ReportQueueConfig | None = None,
        event_logger: ReportQueueEventLogger | None = None,
    ) -> None:
        """Configure the service.

        Parameters
        ----------
        dependencies
            Session factory and dispatcher.
        config
            Queue settings; defaults are used when omitted.
        event_logger
            Structured event sink; a femtologging-backed logger by default.

        """
        self._session_factory = dependencies.session_factory
        self._dispatcher = dependencies.dispatcher
        self._config = config or ReportQueueConfig()
        self._events = event_logger or ReportQueueEventLogger()

    @contextlib.asynccontextmanager
    async def _transaction(
        self, operation: str, user_id: str | None = None
    ) -> typ.AsyncIterator[ReportQueueStore]:
        """Yield a store inside one committed transaction.

        On PostgreSQL the acting user is exposed to the row policies for the
        duration of the transaction.
        """
        try:
            async with self._session_factory() as session, session.begin():
                if user_id is not None:
                    await bind_current_user(session, user_id)
                yield ReportQueueStore(session)
        except SQLAlchemyError as exc:
            log_exception(
                logger, f"Report queue storage failure during {operation}", exc
            )
            raise UnexpectedReportError from exc

    @staticmethod
    async def _visible_entry(
        store: ReportQueueStore,
        ctx: AuthorizationContext,
        report_id: str,
    ) -> ReportQueueEntry:
        entry = await store.get(report_id)
        if entry is None or not can_view(ctx, entry):
            raise ReportNotFoundError(report_id=report_id)
        return entry

    async def request_report(
        self, user_id: str, request: ReportRequest
    ) -> ReportQueueEntry:
        """Queue a new report and notify the worker.

        Parameters
        ----------
        user_id
            Authenticated caller; recorded as the requester.
        request
            Decoded request body.

        Returns
        -------
        ReportQueueEntry
            The persisted entry. Its status is ``queued``.

        Raises
        ------
        ReportNotFoundError
            If the requested organization is not one of the caller's.
        InvalidReportRequestError
            If no organization was given and the caller belongs to several.
        ReportForbiddenError
            If the caller's role cannot request this report type.
        ReportDispatchError
            If the worker could not be notified. The entry is left ``failed``
            so it can be retried.

        """
        async with self._transaction("request", user_id) as store:
            ctx = await store.authorization_context(user_id)
            organization_id = _resolve_organization(ctx, request)
            if not can_request(ctx, organization_id, request.report_type):
                msg = "Insufficient permissions to request this report type"
                raise ReportForbiddenError(msg)

            state.ensure_transition(None, ReportStatus.QUEUED)
            entry = await store.insert(
                organization_id=organization_id,
                requested_by=user_id,
                report_type=request.report_type,
                report_name=request.report_name,
                description=request.description,
                format=request.format,
                parameters=dict(request.parameters),
                **state.queued_values(
                    now=utcnow(),
                    max_retries=self._config.max_retries,
                    retention=self._config.retention,
                ),
            )

        self._events.log_report_queued(
            report_id=entry.id,
            organization_id=entry.organization_id,
            requested_by=user_id,
            report_type=str(entry.report_type),
            report_format=str(entry.format),
        )
        await self._dispatch_or_rollback(entry, restore_retry_count=None)
        return entry

    async def retry_report(self, report_id: str, user_id: str) -> RetryOutcome:
        """Move a failed report back to ``queued`` and re-dispatch it.

        The dispatch always carries the original requester, not *user_id*.

        Raises
        ------
        ReportNotFoundError
            If the report is absent or not visible to the caller.
        ReportForbiddenError
            If the caller is neither requester nor owner/admin.
        InvalidReportStateError
            If the report is not ``failed``.
        RetryLimitReachedError
            If ``retry_count`` already equals ``max_retries``.
        ReportDispatchError
            If the worker could not be notified; the entry is restored to
            ``failed`` with its previous retry count.

        """
        async with self._transaction("retry", user_id) as store:
            ctx = await store.authorization_context(user_id)
            entry = await self._visible_entry(store, ctx, report_id)
            _ensure_retryable(ctx, entry)

            observed = entry.retry_count
            requeued = await store.transition(
                report_id,
                expected=ReportStatus.FAILED,
                values=state.requeue_values(now=utcnow(), retry_count=observed),
                retry_count=observed,
            )
            if not requeued:
                # Lost a race; report whichever precondition now fails.
                current = await self._visible_entry(store, ctx, report_id)
                _ensure_retryable(ctx, current)
                msg = "Report was modified concurrently"
                raise InvalidReportStateError(msg, report_id=report_id)

            entry = await self._visible_entry(store, ctx, report_id)

        self._events.log_report_retried(
            report_id=entry.id,
            retried_by=user_id,
            retry_count=entry.retry_count,
            max_retries=entry.max_retries,
        )
        await self._dispatch_or_rollback(entry, restore_retry_count=observed)
        return RetryOutcome(
            report_id=entry.id,
            status=ReportStatus(entry.status),
            retry_count=entry.retry_count,
            max_retries=entry.max_retries,
        )

    async def _dispatch_or_rollback(
        self,
        entry: ReportQueueEntry,
        *,
        restore_retry_count: int | None,
    ) -> None:
        """Send *entry* to the worker, marking it failed if the send fails."""
        try:
            await self._dispatcher.dispatch(ReportDispatch.for_entry(entry))
        except ReportDispatchError as exc:
            rolled_back = await self._rollback_dispatch(
                entry, restore_retry_count=restore_retry_count
            )
            self._events.log_dispatch_failed(
                report_id=entry.id, error=exc, rolled_back=rolled_back
            )
            raise

    async def _rollback_dispatch(
        self,
        entry: ReportQueueEntry,
        *,
        restore_retry_count: int | None,
    ) -> bool:
        """Return the undispatched entry to ``failed``.

        Only applies while the row is still the one this call queued; a
        worker that somehow picked it up, or a concurrent delete, wins.
        """
        state.ensure_transition(
            ReportStatus.QUEUED, ReportStatus.FAILED, report_id=entry.id
        )
        values = state.failed_values(
            now=utcnow(), error_message=DISPATCH_FAILURE_MESSAGE
        )
        if restore_retry_count is not None:
            values["retry_count"] = restore_retry_count
        async with self._transaction("dispatch rollback") as store:
            return await store.transition(
                entry.id,
                expected=ReportStatus.QUEUED,
                values=values,
                retry_count=entry.retry_count,
            )

    async def delete_report(self, report_id: str, user_id: str) -> DeletionOutcome:
        """Delete a report in any status.

        Deleting a report that is already gone succeeds with
        ``deleted_count == 0`` for callers who could have deleted it.

        Raises
        ------
        ReportNotFoundError
            If the report is absent, or not visible to the caller.
        ReportForbiddenError
            If the caller lacks delete rights, or the database row policy
            vetoes the statement.

        """
        async with self._transaction("delete", user_id) as store:
            ctx = await store.authorization_context(user_id)
            entry = await store.get(report_id)
            owned: OwnedReport | None = (
                entry
                if entry is not None
                else await store.find_tombstone(report_id)
            )
            if owned is None or not can_view(ctx, owned):
                raise ReportNotFoundError(report_id=report_id)
            if not can_delete(ctx, owned):
                msg = "Insufficient permissions to delete this report"
                raise ReportForbiddenError(msg, report_id=report_id)
            deleted_count = (
                0 if entry is None else await self._delete_row(store, entry, user_id)
            )

        self._events.log_report_deleted(
            report_id=report_id, deleted_by=user_id, deleted_count=deleted_count
        )
        return DeletionOutcome(report_id=report_id, deleted_count=deleted_count)

    async def _delete_row(
        self,
        store: ReportQueueStore,
        entry: ReportQueueEntry,
        user_id: str,
    ) -> int:
        try:
            deleted_count = await store.delete(entry.id)
        except StoragePermissionDeniedError as exc:
            self._events.log_delete_vetoed(report_id=entry.id, user_id=user_id)
            msg = "You do not have permission to delete this report"
            raise ReportForbiddenError(msg, report_id=entry.id) from exc
        if deleted_count:
            await store.record_deletion(entry, deleted_by=user_id)
        return deleted_count

    async def resolve_download(self, report_id: str, user_id: str) -> DownloadInfo:
        """Return the file reference of a completed report.

        Raises
        ------
        ReportNotFoundError
            If the report is absent or not visible to the caller.
        InvalidReportStateError
            If the report is not ``completed``.
        ReportFileUnavailableError
            If a completed report has no file URL.

        """
        async with self._transaction("download", user_id) as store:
            ctx = await store.authorization_context(user_id)
            entry = await self._visible_entry(store, ctx, report_id)

        if entry.status != ReportStatus.COMPLETED:
            msg = "Report is not ready for download"
            raise InvalidReportStateError(msg, report_id=report_id)
        if not entry.file_url:
            raise ReportFileUnavailableError(report_id=report_id)

        report_format = ReportFormat(entry.format)
        self._events.log_report_downloaded(
            report_id=entry.id,
            organization_id=entry.organization_id,
            downloaded_by=user_id,
            file_url=entry.file_url,
        )
        return DownloadInfo(
            report_id=entry.id,
            file_url=entry.file_url,
            report_name=entry.report_name,
            format=report_format,
            mime_type=entry.mime_type or report_format.mime_type,
            file_size_bytes=entry.file_size_bytes,
            completed_at=entry.completed_at,
        )

    async def get_report(self, report_id: str, user_id: str) -> ReportView:
        """Return one visible report with its progress."""
        async with self._transaction("get", user_id) as store:
            ctx = await store.authorization_context(user_id)
            entry = await self._visible_entry(store, ctx, report_id)
        return ReportView.from_entry(entry)

    async def list_reports(
        self,
        user_id: str,
        *,
        status: ReportStatus | None = None,
        limit: int = 50,
    ) -> list[ReportView]:
        """List reports from every organization the caller belongs to."""
        bounded = max(1, min(limit, MAX_LIST_LIMIT))
        async with self._transaction("list", user_id) as store:
            ctx = await store.authorization_context(user_id)
            entries = await store.list_for_organizations(
                ctx.organization_ids, status=status, limit=bounded
            )
        return [ReportView.from_entry(entry) for entry in entries]

    async def purge_expired(self, now: dt.datetime | None = None) -> int:
        """Delete entries past their ``expires_at`` and return how many.

        Deletion tombstones older than the retention period go in the same
        transaction; they are not included in the returned count.
        """
        cutoff = now or utcnow()
        async with self._transaction("purge") as store:
            purged = await store.delete_expired(cutoff)
            pruned = await store.delete_tombstones_before(
                cutoff - self._config.retention
            )
        log_info(
            logger,
            "Purged %d expired report(s) and %d tombstone(s) as of %s",
            purged,
            pruned,
            cutoff,
        )
        return purged


__all__ = [
    "DISPATCH_FAILURE_MESSAGE",
    "ReportQueueService",
    "ReportQueueServiceDependencies",
]
