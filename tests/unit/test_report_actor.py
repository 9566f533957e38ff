"""Unit tests for the report queue Dramatiq actors."""

from __future__ import annotations

import asyncio
import datetime as dt
import typing as typ

import msgspec
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from siteproof.reports import actor
from siteproof.reports.artifacts import FilesystemArtifactStore
from siteproof.reports.config import ReportQueueConfig
from siteproof.reports.models import ReportDispatch
from siteproof.storage import init_storage
from siteproof.storage.models import ReportFormat, ReportStatus, ReportType
from tests.helpers.report_queue import QUEUED_AT, add_entry, load_entry

if typ.TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncSession

PAYLOAD = {
    "report_id": "r-1",
    "report_type": "ncr_report",
    "format": "json",
    "parameters": {"project_id": "p-1"},
    "organization_id": "org-a",
    "requested_by": "u-1",
}


class _RecordingWorker:
    def __init__(self, status: ReportStatus | None) -> None:
        self.status = status
        self.dispatches: list[ReportDispatch] = []

    async def run(self, dispatch: ReportDispatch) -> ReportStatus | None:
        self.dispatches.append(dispatch)
        return self.status


@pytest.fixture
def sync_session_factory(
    tmp_path: Path,
) -> typ.Iterator[async_sessionmaker[AsyncSession]]:
    """Session factory usable from several ``asyncio.run`` loops."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'actor.db'}", poolclass=NullPool
    )
    asyncio.run(init_storage(engine))
    yield async_sessionmaker(engine, expire_on_commit=False)
    asyncio.run(engine.dispose())


class TestGenerateReportJob:
    """Tests for the generate_report_job Dramatiq actor."""

    @pytest.mark.parametrize(
        ("status", "expected"),
        [(ReportStatus.COMPLETED, "completed"), (None, None)],
    )
    def test_runs_worker_and_returns_status(
        self,
        monkeypatch: pytest.MonkeyPatch,
        status: ReportStatus | None,
        expected: str | None,
    ) -> None:
        """The payload is decoded and handed to the cached worker."""
        worker = _RecordingWorker(status)
        monkeypatch.setattr(actor, "_get_or_create_worker", lambda _url: worker)

        result = actor.generate_report_job("sqlite+aiosqlite://", PAYLOAD)

        assert result == expected
        assert worker.dispatches == [
            ReportDispatch(
                report_id="r-1",
                report_type=ReportType.NCR_REPORT,
                format=ReportFormat.JSON,
                parameters={"project_id": "p-1"},
                organization_id="org-a",
                requested_by="u-1",
            )
        ]

    def test_rejects_malformed_payload(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Payloads that are not dispatch messages fail before any work."""
        worker = _RecordingWorker(None)
        monkeypatch.setattr(actor, "_get_or_create_worker", lambda _url: worker)

        with pytest.raises(msgspec.ValidationError):
            actor.generate_report_job("sqlite+aiosqlite://", {"report_id": "r-1"})

        assert worker.dispatches == []

    def test_is_not_redelivered(self) -> None:
        """Failures are retried through the retry controller only."""
        assert actor.generate_report_job.options.get("max_retries") == 0

    def test_end_to_end_against_sqlite(
        self,
        sync_session_factory: async_sessionmaker[AsyncSession],
        monkeypatch: pytest.MonkeyPatch,
        tmp_path: Path,
    ) -> None:
        """A queued JSON entry completes when the job runs."""
        entry = asyncio.run(add_entry(sync_session_factory, format=ReportFormat.JSON))
        worker = actor.build_worker(
            sync_session_factory, ReportQueueConfig(artifact_root=tmp_path / "out")
        )
        monkeypatch.setattr(actor, "_get_or_create_worker", lambda _url: worker)

        result = actor.generate_report_job(
            "sqlite+aiosqlite://", ReportDispatch.for_entry(entry).to_message()
        )

        assert result == "completed"
        stored = asyncio.run(load_entry(sync_session_factory, entry.id))
        assert stored is not None
        assert stored.file_url is not None
        assert stored.file_url.startswith("file://")


class TestBuildWorker:
    """Tests for assembling the worker from configuration."""

    def test_artifact_store_follows_config(self, tmp_path: Path) -> None:
        """Artifact storage exists only when a root is configured."""
        factory = async_sessionmaker(create_async_engine("sqlite+aiosqlite://"))
        configured = actor.build_worker(
            factory,
            ReportQueueConfig(
                artifact_root=tmp_path, artifact_base_url="https://files.test"
            ),
        )
        unconfigured = actor.build_worker(factory, ReportQueueConfig())

        assert isinstance(configured._artifact_store, FilesystemArtifactStore)
        assert unconfigured._artifact_store is None


class TestPurgeExpiredReportsJob:
    """Tests for the purge_expired_reports_job Dramatiq actor."""

    def test_purges_expired_entries(
        self,
        sync_session_factory: async_sessionmaker[AsyncSession],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Entries past their expiry are removed."""
        expired = asyncio.run(
            add_entry(
                sync_session_factory, expires_at=QUEUED_AT - dt.timedelta(days=1)
            )
        )
        kept = asyncio.run(
            add_entry(
                sync_session_factory,
                expires_at=dt.datetime.now(dt.UTC) + dt.timedelta(days=1),
            )
        )
        monkeypatch.setattr(
            actor, "_get_or_create_session_factory", lambda _url: sync_session_factory
        )

        assert actor.purge_expired_reports_job("sqlite+aiosqlite://") == 1
        assert asyncio.run(load_entry(sync_session_factory, expired.id)) is None
        assert asyncio.run(load_entry(sync_session_factory, kept.id)) is not None
