"""Dramatiq actors for report generation and expiry purges.

``generate_report_job`` is declared with ``max_retries=0``: a failed
generation is recorded on the report row and retried only through the
retry controller, never by redelivering the message.

Usage
-----
Send a generation request (normally done by
:class:`~siteproof.reports.dispatch.DramatiqReportDispatcher`):

>>> generate_report_job.send(
...     "postgresql+asyncpg://...",
...     ReportDispatch.for_entry(entry).to_message(),
... )

Purge expired reports on a schedule:

>>> purge_expired_reports_job.send("postgresql+asyncpg://...")

"""

from __future__ import annotations

import asyncio
import threading
import typing as typ

import dramatiq
import msgspec
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from siteproof.reports._broker import ensure_broker_configured
from siteproof.reports.artifacts import FilesystemArtifactStore
from siteproof.reports.config import ReportQueueConfig
from siteproof.reports.dispatch import DramatiqReportDispatcher
from siteproof.reports.models import ReportDispatch
from siteproof.reports.renderer import ManifestRenderer
from siteproof.reports.service import (
    ReportQueueService,
    ReportQueueServiceDependencies,
)
from siteproof.reports.worker import ReportWorker, ReportWorkerDependencies

SessionFactory: typ.TypeAlias = async_sessionmaker[AsyncSession]

# Reused across actor invocations within one worker process
_ENGINE_CACHE: dict[str, AsyncEngine] = {}
_SESSION_FACTORY_CACHE: dict[str, SessionFactory] = {}
_WORKER_CACHE: dict[str, ReportWorker] = {}
_CACHE_LOCK = threading.Lock()


def _ensure_session_factory_locked(database_url: str) -> SessionFactory:
    """Return the cached session factory for *database_url*.

    Precondition: the caller **must** hold ``_CACHE_LOCK``.
    """
    if database_url not in _SESSION_FACTORY_CACHE:
        if database_url not in _ENGINE_CACHE:
            _ENGINE_CACHE[database_url] = create_async_engine(database_url)
        _SESSION_FACTORY_CACHE[database_url] = async_sessionmaker(
            _ENGINE_CACHE[database_url], expire_on_commit=False
        )
    return _SESSION_FACTORY_CACHE[database_url]


def build_worker(
    session_factory: SessionFactory, config: ReportQueueConfig
) -> ReportWorker:
    """Assemble a worker from configuration."""
    artifact_store = None
    if config.artifact_root is not None:
        artifact_store = FilesystemArtifactStore(
            config.artifact_root, base_url=config.artifact_base_url
        )
    return ReportWorker(
        ReportWorkerDependencies(
            session_factory=session_factory,
            renderer=ManifestRenderer(),
            artifact_store=artifact_store,
        )
    )


def _get_or_create_worker(database_url: str) -> ReportWorker:
    """Get or create the worker for *database_url*.

    Thread-safe: Dramatiq runs actors on several worker threads.
    """
    with _CACHE_LOCK:
        if database_url not in _WORKER_CACHE:
            session_factory = _ensure_session_factory_locked(database_url)
            _WORKER_CACHE[database_url] = build_worker(
                session_factory, ReportQueueConfig.from_env()
            )
        return _WORKER_CACHE[database_url]


def _get_or_create_session_factory(database_url: str) -> SessionFactory:
    with _CACHE_LOCK:
        return _ensure_session_factory_locked(database_url)


@dramatiq.actor(max_retries=0)
def generate_report_job(
    database_url: str,
    dispatch: dict[str, typ.Any],
) -> str | None:
    """Generate the report described by *dispatch*.

    Parameters
    ----------
    database_url
        SQLAlchemy URL for the database.
    dispatch
        Payload produced by :meth:`ReportDispatch.to_message`.

    Returns
    -------
    str | None
        The status the entry ended in, or ``None`` when it was skipped.

    Raises
    ------
    msgspec.ValidationError
        If *dispatch* is not a valid dispatch payload.

    """
    ensure_broker_configured()
    message = msgspec.convert(dispatch, type=ReportDispatch)
    worker = _get_or_create_worker(database_url)
    status = asyncio.run(worker.run(message))
    return None if status is None else status.value


@dramatiq.actor(max_retries=0)
def purge_expired_reports_job(database_url: str) -> int:
    """Delete expired report entries and return how many were removed."""
    ensure_broker_configured()
    session_factory = _get_or_create_session_factory(database_url)
    service = ReportQueueService(
        ReportQueueServiceDependencies(
            session_factory=session_factory,
            dispatcher=DramatiqReportDispatcher(database_url),
        ),
        config=ReportQueueConfig.from_env(),
    )
    return asyncio.run(service.purge_expired())


__all__ = ["build_worker", "generate_report_job", "purge_expired_reports_job"]
