"""Report worker: drives ``queued -> processing -> completed | failed``.

The worker is the only writer of worker-side transitions. Each step is a
conditional update against the status it expects, so a report deleted while
queued, or a duplicate delivery of the same dispatch, is skipped rather than
resurrected.
"""

from __future__ import annotations

import contextlib
import dataclasses as dc
import typing as typ

from siteproof.common.time import utcnow
from siteproof.logging import get_logger, log_info, log_warning
from siteproof.reports import state
from siteproof.reports.observability import ReportQueueEventLogger
from siteproof.reports.store import ReportQueueStore
from siteproof.storage.models import ReportStatus, ReportType

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from siteproof.reports.artifacts import ReportArtifactStore
    from siteproof.reports.models import ReportDispatch
    from siteproof.reports.renderer import ReportRenderer

logger = get_logger(__name__)

INITIALIZING_STEP = "Initializing report generation"
STARTED_PROGRESS = 10
GENERATING_PROGRESS = 30
STORING_PROGRESS = 80

GENERATION_STEPS: typ.Final[dict[ReportType, str]] = {
    ReportType.PROJECT_SUMMARY: "Generating project summary",
    ReportType.DAILY_DIARY_EXPORT: "Exporting daily diaries",
    ReportType.INSPECTION_SUMMARY: "Summarising inspections",
    ReportType.NCR_REPORT: "Compiling non-conformance reports",
    ReportType.FINANCIAL_SUMMARY: "Generating financial summary",
    ReportType.SAFETY_REPORT: "Compiling safety report",
    ReportType.QUALITY_REPORT: "Compiling quality report",
    ReportType.ITP_REPORT: "Compiling inspection and test plans",
    ReportType.CUSTOM: "Generating custom report",
}


class ArtifactStorageNotConfiguredError(RuntimeError):
    """Raised when the worker has nowhere to write artifacts."""

    def __init__(self) -> None:
        """Set the fixed message."""
        super().__init__("Report artifact storage is not configured")


@dc.dataclass(frozen=True, slots=True)
class ReportWorkerDependencies:
    """Collaborators for :class:`ReportWorker`.

    Attributes
    ----------
    session_factory
        Async session factory for database access.
    renderer
        Produces artifact bytes for an entry.
    artifact_store
        Persists artifacts. ``None`` makes every generation fail.

    """

    session_factory: async_sessionmaker[AsyncSession]
    renderer: ReportRenderer
    artifact_store: ReportArtifactStore | None


class ReportWorker:
    """Generate one report per dispatch."""

    def __init__(
        self,
        dependencies: ReportWorkerDependencies,
        event_logger: ReportQueueEventLogger | None = None,
    ) -> None:
        """Configure the worker with its collaborators."""
        self._session_factory = dependencies.session_factory
        self._renderer = dependencies.renderer
        self._artifact_store = dependencies.artifact_store
        self._events = event_logger or ReportQueueEventLogger()

    @contextlib.asynccontextmanager
    async def _transaction(self) -> typ.AsyncIterator[ReportQueueStore]:
        async with self._session_factory() as session, session.begin():
            yield ReportQueueStore(session)

    async def run(self, dispatch: ReportDispatch) -> ReportStatus | None:
        """Process *dispatch* and return the status the entry ended in.

        Returns ``None`` when the entry disappeared or was already taken by
        another delivery.
        """
        report_id = dispatch.report_id
        if not await self._start(report_id):
            return None
        self._events.log_report_started(
            report_id=report_id, report_type=str(dispatch.report_type)
        )

        step = GENERATION_STEPS.get(dispatch.report_type, "Generating report")
        try:
            if not await self._advance(report_id, GENERATING_PROGRESS, step):
                return None
            return await self._generate(report_id)
        except Exception as exc:  # noqa: BLE001 - recorded on the row
            self._events.log_report_failed(report_id=report_id, error=exc)
            return await self._fail(report_id, str(exc) or type(exc).__name__)

    async def _start(self, report_id: str) -> bool:
        async with self._transaction() as store:
            entry = await store.get(report_id)
            if entry is None:
                log_warning(
                    logger, "Skipping report %s: deleted before processing", report_id
                )
                return False
            if entry.status != ReportStatus.QUEUED:
                log_info(
                    logger,
                    "Skipping report %s: status is %s, expected queued",
                    report_id,
                    entry.status,
                )
                return False
            state.ensure_transition(
                ReportStatus(entry.status),
                ReportStatus.PROCESSING,
                report_id=report_id,
            )
            return await store.transition(
                report_id,
                expected=ReportStatus.QUEUED,
                values=state.processing_values(
                    now=utcnow(),
                    progress=STARTED_PROGRESS,
                    current_step=INITIALIZING_STEP,
                ),
            )

    async def _advance(self, report_id: str, progress: int, step: str) -> bool:
        async with self._transaction() as store:
            advanced = await store.transition(
                report_id,
                expected=ReportStatus.PROCESSING,
                values=state.progress_values(progress, step),
            )
        if not advanced:
            log_warning(
                logger, "Report %s left processing during generation", report_id
            )
        return advanced

    async def _generate(self, report_id: str) -> ReportStatus | None:
        async with self._transaction() as store:
            entry = await store.get(report_id)
        if entry is None:
            log_warning(logger, "Report %s deleted during generation", report_id)
            return None

        rendered = self._renderer.render(entry, generated_at=utcnow())
        if self._artifact_store is None:
            raise ArtifactStorageNotConfiguredError
        if not await self._advance(report_id, STORING_PROGRESS, "Storing report"):
            return None
        artifact = await self._artifact_store.store(
            organization_id=entry.organization_id,
            report_id=report_id,
            rendered=rendered,
        )

        async with self._transaction() as store:
            completed = await store.transition(
                report_id,
                expected=ReportStatus.PROCESSING,
                values=state.completed_values(
                    now=utcnow(),
                    file_url=artifact.url,
                    file_size_bytes=artifact.size_bytes,
                    file_name=rendered.file_name,
                    mime_type=rendered.mime_type,
                ),
            )
        if not completed:
            log_warning(
                logger, "Report %s left processing before completion", report_id
            )
            await self._artifact_store.remove(
                organization_id=entry.organization_id,
                report_id=report_id,
                file_name=rendered.file_name,
            )
            return None
        self._events.log_report_completed(
            report_id=report_id,
            file_url=artifact.url,
            file_size_bytes=artifact.size_bytes,
        )
        return ReportStatus.COMPLETED

    async def _fail(self, report_id: str, error_message: str) -> ReportStatus | None:
        async with self._transaction() as store:
            failed = await store.transition(
                report_id,
                expected=ReportStatus.PROCESSING,
                values=state.failed_values(now=utcnow(), error_message=error_message),
            )
        return ReportStatus.FAILED if failed else None


__all__ = [
    "GENERATION_STEPS",
    "INITIALIZING_STEP",
    "ArtifactStorageNotConfiguredError",
    "ReportWorker",
    "ReportWorkerDependencies",
]
