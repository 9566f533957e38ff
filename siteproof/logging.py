"""Logging helpers built on femtologging.

Siteproof emits pre-formatted messages: callers interpolate with
percent-style templates, and report lifecycle code emits ``[event]
key=value`` lines through :func:`log_event` so operators can grep for a
single event name across the API and the worker.

Example:
>>> from siteproof.logging import get_logger, log_event
>>> logger = get_logger(__name__)
>>> log_event(logger, "reports.report.queued", report_id="r-1", status="queued")

"""

from __future__ import annotations

import enum
import typing as typ

from femtologging import basicConfig, get_logger


class LogLevel(enum.StrEnum):
    """Log levels understood by femtologging."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class _SupportsLog(typ.Protocol):
    """Protocol for femtologging-compatible loggers."""

    def log(
        self,
        level: str,
        message: str,
        /,
        *,
        exc_info: object | None = None,
        stack_info: bool = False,
    ) -> str | None: ...


def normalize_log_level(level: str | None) -> tuple[str, bool]:
    """Return ``(level, invalid)`` for a raw level string.

    Unknown or empty values fall back to ``INFO`` with ``invalid`` set so the
    caller can warn about the misconfiguration once logging is up.
    """
    if not level:
        return ("INFO", True)

    candidate = level.strip().upper()
    if candidate in LogLevel.__members__:
        return (candidate, False)
    return ("INFO", True)


def configure_logging(level: str, *, force: bool = False) -> tuple[str, bool]:
    """Configure femtologging's root handler.

    Parameters
    ----------
    level : str
        Raw log level, typically read from ``SITEPROOF_LOG_LEVEL``.
    force : bool, optional
        Replace handlers that are already installed.

    Returns
    -------
    tuple[str, bool]
        The level actually applied and whether the input was invalid.

    """
    applied, invalid = normalize_log_level(level)
    basicConfig(level=applied, force=force)
    return (applied, invalid)


def _emit(
    logger: _SupportsLog,
    level: str,
    message: str,
    *,
    exc_info: object | None = None,
) -> None:
    logger.log(level, message, exc_info=exc_info, stack_info=False)


def log_info(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log ``template % args`` at INFO."""
    _emit(logger, "INFO", template % args, exc_info=exc_info)


def log_warning(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log ``template % args`` at WARNING."""
    _emit(logger, "WARNING", template % args, exc_info=exc_info)


def log_error(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log ``template % args`` at ERROR."""
    _emit(logger, "ERROR", template % args, exc_info=exc_info)


def log_exception(logger: _SupportsLog, message: str, exc: BaseException) -> None:
    """Log *message* at ERROR with *exc* attached as ``exc_info``."""
    _emit(logger, "ERROR", message, exc_info=exc)


def format_event(event: str, **fields: object) -> str:
    """Render a structured event line.

    Fields keep their keyword order so related events line up when read
    side by side.

    >>> format_event("reports.report.deleted", report_id="r-1", deleted_count=0)
    '[reports.report.deleted] report_id=r-1 deleted_count=0'

    """
    if not fields:
        return f"[{event}]"
    rendered = " ".join(f"{key}={value}" for key, value in fields.items())
    return f"[{event}] {rendered}"


def log_event(
    logger: _SupportsLog,
    event: str,
    *,
    level: str = "INFO",
    exc_info: object | None = None,
    **fields: object,
) -> None:
    """Log a structured ``[event] key=value`` line at *level*."""
    _emit(logger, level, format_event(event, **fields), exc_info=exc_info)


__all__ = [
    "LogLevel",
    "configure_logging",
    "format_event",
    "get_logger",
    "log_error",
    "log_event",
    "log_exception",
    "log_info",
    "log_warning",
    "normalize_log_level",
]
