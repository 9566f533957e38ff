"""Report queue API resources.

Routes
------
``POST /reports``
    Queue a new report (202).
``GET /reports``
    List reports across the caller's organizations.
``GET /reports/{report_id}`` and ``DELETE /reports/{report_id}``
    Status of, or deletion of, one report.
``POST /reports/{report_id}/retry``
    Re-queue a failed report (202).
``GET /reports/{report_id}/download``
    Resolve the file URL of a completed report.

The caller is identified by ``req.context.user_id``, set by
:class:`~siteproof.api.middleware.IdentityMiddleware`.
"""

from __future__ import annotations

import typing as typ

import falcon
import msgspec

from siteproof.api.errors import InvalidInputError
from siteproof.reports.models import ReportRequest
from siteproof.storage.models import ReportStatus

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from siteproof.reports.service import ReportQueueService

__all__ = [
    "NO_CACHE_HEADERS",
    "ReportCollectionResource",
    "ReportDownloadResource",
    "ReportResource",
    "ReportRetryResource",
]

NO_CACHE_HEADERS: typ.Final[dict[str, str]] = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}

_MAX_LIMIT = 200


def _user_id(req: Request) -> str:
    user_id: str | None = getattr(req.context, "user_id", None)
    if not user_id:
        raise falcon.HTTPUnauthorized(title="Authentication required")
    return user_id


def _parse_status(raw: str | None) -> ReportStatus | None:
    if raw is None:
        return None
    try:
        return ReportStatus(raw)
    except ValueError as exc:
        allowed = ", ".join(status.value for status in ReportStatus)
        msg = f"must be one of: {allowed}"
        raise InvalidInputError(msg, field="status") from exc


async def _decode_request(req: Request) -> ReportRequest:
    body = await req.stream.read()
    try:
        return msgspec.json.decode(body, type=ReportRequest)
    except msgspec.ValidationError as exc:
        raise InvalidInputError(str(exc)) from exc
    except msgspec.DecodeError as exc:
        msg = "request body must be a JSON object"
        raise InvalidInputError(msg) from exc


class _ServiceResource:
    def __init__(self, report_service: ReportQueueService) -> None:
        """Configure the resource with the report queue service."""
        self._service = report_service


class ReportCollectionResource(_ServiceResource):
    """``/reports``: intake and listing."""

    async def on_post(self, req: Request, resp: Response) -> None:
        """Queue a report generation request.

        Parameters
        ----------
        req
            Falcon request whose JSON body decodes to ``ReportRequest``.
        resp
            Falcon response; 202 with the new report ID.

        """
        request = await _decode_request(req)
        entry = await self._service.request_report(_user_id(req), request)
        resp.status = falcon.HTTP_202
        resp.media = {
            "report_id": entry.id,
            "status": ReportStatus(entry.status).value,
            "message": "Report generation queued",
        }

    async def on_get(self, req: Request, resp: Response) -> None:
        """List the caller's reports, optionally filtered by ``status``."""
        status = _parse_status(req.get_param("status"))
        limit = req.get_param_as_int(
            "limit", min_value=1, max_value=_MAX_LIMIT, default=50
        )
        views = await self._service.list_reports(
            _user_id(req), status=status, limit=limit
        )
        resp.media = {"reports": msgspec.to_builtins(views)}


class ReportResource(_ServiceResource):
    """``/reports/{report_id}``: status and deletion."""

    async def on_get(self, req: Request, resp: Response, *, report_id: str) -> None:
        """Return the report's status and progress."""
        view = await self._service.get_report(report_id, _user_id(req))
        resp.media = msgspec.to_builtins(view)

    async def on_delete(
        self, req: Request, resp: Response, *, report_id: str
    ) -> None:
        """Delete the report; repeating the call succeeds with a zero count."""
        outcome = await self._service.delete_report(report_id, _user_id(req))
        resp.set_headers(NO_CACHE_HEADERS)
        resp.status = falcon.HTTP_200
        resp.media = {
            "report_id": outcome.report_id,
            "deleted_count": outcome.deleted_count,
            "message": (
                "Report was already deleted"
                if outcome.already_gone
                else "Report deleted successfully"
            ),
        }


class ReportRetryResource(_ServiceResource):
    """``/reports/{report_id}/retry``."""

    async def on_post(self, req: Request, resp: Response, *, report_id: str) -> None:
        """Re-queue a failed report."""
        outcome = await self._service.retry_report(report_id, _user_id(req))
        resp.status = falcon.HTTP_202
        resp.media = msgspec.to_builtins(outcome)


class ReportDownloadResource(_ServiceResource):
    """``/reports/{report_id}/download``."""

    async def on_get(self, req: Request, resp: Response, *, report_id: str) -> None:
        """Return the file reference of a completed report."""
        info = await self._service.resolve_download(report_id, _user_id(req))
        resp.set_headers(NO_CACHE_HEADERS)
        resp.media = msgspec.to_builtins(info)
