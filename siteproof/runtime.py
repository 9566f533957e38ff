"""Process entrypoint: Granian serving ``siteproof.runtime:create_app``.

Settings come from ``SITEPROOF_*`` environment variables (see
:class:`RuntimeSettings`). Without a database URL the app answers only the
probes; with one, ``main()`` prepares the schema and row policies once
before Granian forks its workers.

Run with ``python -m siteproof.runtime`` or the ``siteproof`` script.
"""

from __future__ import annotations

import asyncio
import dataclasses as dc
import os
import typing as typ

from siteproof.api.middleware import DEFAULT_IDENTITY_HEADER
from siteproof.logging import (
    configure_logging,
    get_logger,
    log_error,
    log_info,
    log_warning,
)

if typ.TYPE_CHECKING:
    import falcon.asgi

__all__ = ["RuntimeSettings", "create_app", "main"]

logger = get_logger(__name__)

_PORT_RANGE = range(1, 65536)
_DEFAULT_HOST = "0.0.0.0"  # noqa: S104 - containers bind every interface


def _parse_port(raw: str) -> int:
    """Return *raw* as a TCP port, exiting with status 1 when it is not one."""
    try:
        port = int(raw)
    except ValueError:
        port = 0
    if port not in _PORT_RANGE:
        log_error(logger, "SITEPROOF_PORT must be a port in 1-65535, got %r", raw)
        raise SystemExit(1)
    return port


@dc.dataclass(frozen=True, slots=True)
class RuntimeSettings:
    """Server and wiring settings read from the environment.

    Attributes
    ----------
    host
        ``SITEPROOF_HOST``, default ``0.0.0.0``.
    port
        ``SITEPROOF_PORT``, default ``8080``.
    log_level
        ``SITEPROOF_LOG_LEVEL``, default ``INFO``.
    database_url
        ``SITEPROOF_DATABASE_URL``; the report routes are mounted only when set.
    identity_header
        ``SITEPROOF_IDENTITY_HEADER``, default ``X-User-Id``.

    """

    host: str = _DEFAULT_HOST
    port: int = 8080
    log_level: str = "INFO"
    database_url: str | None = None
    identity_header: str = DEFAULT_IDENTITY_HEADER

    @classmethod
    def from_env(cls) -> RuntimeSettings:
        """Build settings from ``SITEPROOF_*`` variables."""
        env = os.environ
        return cls(
            host=env.get("SITEPROOF_HOST", _DEFAULT_HOST),
            port=_parse_port(env.get("SITEPROOF_PORT", "8080")),
            log_level=env.get("SITEPROOF_LOG_LEVEL", "INFO"),
            database_url=env.get("SITEPROOF_DATABASE_URL") or None,
            identity_header=(
                env.get("SITEPROOF_IDENTITY_HEADER", "").strip()
                or DEFAULT_IDENTITY_HEADER
            ),
        )


def create_app() -> falcon.asgi.App:
    """Granian factory: build the app for the current environment."""
    from siteproof.api.app import AppDependencies
    from siteproof.api.app import create_app as build_api

    settings = RuntimeSettings.from_env()
    if settings.database_url is None:
        return build_api()

    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

    from siteproof.api.factory import build_report_service

    session_factory = async_sessionmaker(
        create_async_engine(settings.database_url), expire_on_commit=False
    )
    return build_api(
        AppDependencies(
            session_factory=session_factory,
            report_service=build_report_service(
                session_factory, settings.database_url
            ),
            identity_header=settings.identity_header,
        )
    )


async def _prepare_storage(database_url: str) -> None:
    from sqlalchemy.ext.asyncio import create_async_engine

    from siteproof.storage import init_storage

    engine = create_async_engine(database_url)
    try:
        await init_storage(engine)
    finally:
        await engine.dispose()


def main() -> None:
    """Prepare storage and serve the API with Granian."""
    from granian import Granian
    from granian.constants import Interfaces

    settings = RuntimeSettings.from_env()
    level, invalid = configure_logging(settings.log_level)
    if invalid:
        log_warning(
            logger,
            "Unknown SITEPROOF_LOG_LEVEL %r; using %s",
            settings.log_level,
            level,
        )

    if settings.database_url is not None:
        asyncio.run(_prepare_storage(settings.database_url))
        log_info(logger, "Report queue schema and row policies are in place")

    log_info(
        logger,
        "Serving siteproof on %s:%d (log_level=%s)",
        settings.host,
        settings.port,
        level,
    )
    Granian(
        "siteproof.runtime:create_app",
        address=settings.host,
        port=settings.port,
        interface=Interfaces.ASGI,
        factory=True,
    ).serve()


if __name__ == "__main__":
    main()
