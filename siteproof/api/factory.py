"""Factory for building a ReportQueueService from environment configuration.

Usage
-----
Build a service for the API layer::

    from siteproof.api.factory import build_report_service

    service = build_report_service(session_factory, database_url)

"""

from __future__ import annotations

import typing as typ

from siteproof.reports.config import ReportQueueConfig
from siteproof.reports.dispatch import DramatiqReportDispatcher
from siteproof.reports.observability import ReportQueueEventLogger
from siteproof.reports.service import (
    ReportQueueService,
    ReportQueueServiceDependencies,
)

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

__all__ = ["build_report_service"]


def build_report_service(
    session_factory: async_sessionmaker[AsyncSession],
    database_url: str,
) -> ReportQueueService:
    """Build a ``ReportQueueService`` from environment configuration.

    Parameters
    ----------
    session_factory
        Async session factory for database access.
    database_url
        URL forwarded to the worker with every dispatch.

    Returns
    -------
    ReportQueueService
        Service wired to the Dramatiq dispatcher.

    """
    dependencies = ReportQueueServiceDependencies(
        session_factory=session_factory,
        dispatcher=DramatiqReportDispatcher(database_url),
    )
    return ReportQueueService(
        dependencies,
        config=ReportQueueConfig.from_env(),
        event_logger=ReportQueueEventLogger(),
    )
