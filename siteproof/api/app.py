"""Application factory for the siteproof Falcon ASGI application.

``create_app()`` always registers the health endpoints. When a session
factory and report service are supplied it also installs
:class:`~siteproof.api.middleware.IdentityMiddleware` and the report queue
routes.

Usage
-----
Create a health-only app (no database)::

    app = create_app()

Create a full app with report endpoints::

    from siteproof.api.app import AppDependencies, create_app

    deps = AppDependencies(
        session_factory=session_factory,
        report_service=report_service,
    )
    app = create_app(deps)

"""

from __future__ import annotations

import dataclasses as dc
import typing as typ

import falcon.asgi

from siteproof.api.errors import (
    InvalidInputError,
    handle_invalid_input,
    handle_report_queue_error,
)
from siteproof.api.health.resources import HealthResource, ReadyResource
from siteproof.api.middleware import DEFAULT_IDENTITY_HEADER, IdentityMiddleware
from siteproof.reports.errors import ReportQueueError

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from siteproof.reports.service import ReportQueueService

__all__ = ["AppDependencies", "create_app"]


@dc.dataclass(frozen=True, slots=True)
class AppDependencies:
    """Dependencies for the Falcon ASGI application.

    Attributes
    ----------
    session_factory
        Async session factory, used by the readiness probe.
    report_service
        Report queue service backing the domain endpoints.
    identity_header
        Header carrying the authenticated user ID.

    """

    session_factory: async_sessionmaker[AsyncSession] | None = None
    report_service: ReportQueueService | None = None
    identity_header: str = DEFAULT_IDENTITY_HEADER


def _add_report_routes(app: falcon.asgi.App, service: ReportQueueService) -> None:
    from siteproof.api.reports.resources import (
        ReportCollectionResource,
        ReportDownloadResource,
        ReportResource,
        ReportRetryResource,
    )

    app.add_route("/reports", ReportCollectionResource(service))
    app.add_route("/reports/{report_id}", ReportResource(service))
    app.add_route("/reports/{report_id}/retry", ReportRetryResource(service))
    app.add_route("/reports/{report_id}/download", ReportDownloadResource(service))


def create_app(
    dependencies: AppDependencies | None = None,
) -> falcon.asgi.App:
    """Create and configure the Falcon ASGI application.

    Parameters
    ----------
    dependencies
        Optional application dependencies. When ``None``, or when the
        report service is missing, only ``/health`` and ``/ready`` are
        available.

    Returns
    -------
    falcon.asgi.App
        Configured Falcon ASGI application.

    """
    deps = dependencies or AppDependencies()
    service = deps.report_service

    middleware: list[object] = []
    if service is not None:
        middleware.append(IdentityMiddleware(deps.identity_header))

    app = falcon.asgi.App(middleware=middleware)  # type: ignore[no-matching-overload]  # Falcon stubs

    app.add_route("/health", HealthResource())
    app.add_route("/ready", ReadyResource(deps.session_factory))

    if service is not None:
        _add_report_routes(app, service)

    app.add_error_handler(ReportQueueError, handle_report_queue_error)
    app.add_error_handler(InvalidInputError, handle_invalid_input)

    return app
