"""Worker dispatch: the one-way notification that a report needs generating.

Dispatch is at-most-once and carries no reply. Implementations raise
:class:`~siteproof.reports.errors.ReportDispatchError` when the message
could not be handed over; the service then rolls the entry back so the row
never claims work that nobody will do.
"""

from __future__ import annotations

import asyncio
import typing as typ

from dramatiq.errors import DramatiqError

from siteproof.reports._broker import ensure_broker_configured
from siteproof.reports.errors import ReportDispatchError

if typ.TYPE_CHECKING:
    import dramatiq

    from siteproof.reports.models import ReportDispatch


class ReportDispatcher(typ.Protocol):
    """Sends report generation requests to the worker."""

    async def dispatch(self, message: ReportDispatch) -> None:
        """Send *message*, raising ``ReportDispatchError`` on failure."""
        ...


class DramatiqReportDispatcher:
    """Dispatch through the ``generate_report_job`` Dramatiq actor.

    Parameters
    ----------
    database_url
        Database the worker process should connect to; forwarded with
        every message.
    actor
        Actor to send to. Defaults to
        :func:`siteproof.reports.actor.generate_report_job`.

    """

    def __init__(
        self,
        database_url: str,
        *,
        actor: dramatiq.Actor[..., typ.Any] | None = None,
    ) -> None:
        """Store the database URL and resolve the target actor."""
        if actor is None:
            from siteproof.reports.actor import generate_report_job

            actor = generate_report_job
        self._database_url = database_url
        self._actor = actor

    async def dispatch(self, message: ReportDispatch) -> None:
        """Enqueue *message* on the broker.

        Raises
        ------
        ReportDispatchError
            If the broker rejects the message or cannot be reached.

        """
        try:
            ensure_broker_configured()
            await asyncio.to_thread(
                self._actor.send,
                self._database_url,
                message.to_message(),
            )
        except (DramatiqError, OSError, RuntimeError) as exc:
            raise ReportDispatchError(report_id=message.report_id) from exc


__all__ = ["DramatiqReportDispatcher", "ReportDispatcher"]
