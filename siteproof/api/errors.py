"""Falcon error handlers translating domain failures into HTTP responses.

Every error body has the shape ``{"title", "description", "kind"}``. The
``description`` is the caller-safe message carried by the exception; raw
storage errors never reach this layer.

Usage
-----
Register error handlers on the Falcon app::

    from siteproof.api.errors import (
        InvalidInputError,
        handle_invalid_input,
        handle_report_queue_error,
    )
    from siteproof.reports.errors import ReportQueueError

    app.add_error_handler(ReportQueueError, handle_report_queue_error)
    app.add_error_handler(InvalidInputError, handle_invalid_input)

"""

from __future__ import annotations

import typing as typ

import falcon

from siteproof.reports.errors import ReportErrorKind, ReportQueueError

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

__all__ = [
    "STATUS_BY_KIND",
    "InvalidInputError",
    "handle_invalid_input",
    "handle_report_queue_error",
]

STATUS_BY_KIND: typ.Final[dict[ReportErrorKind, str]] = {
    ReportErrorKind.NOT_FOUND: falcon.HTTP_404,
    ReportErrorKind.FORBIDDEN: falcon.HTTP_403,
    ReportErrorKind.INVALID_STATE: falcon.HTTP_409,
    ReportErrorKind.RETRY_EXHAUSTED: falcon.HTTP_409,
    ReportErrorKind.UNAVAILABLE: falcon.HTTP_404,
    ReportErrorKind.INVALID_INPUT: falcon.HTTP_400,
    ReportErrorKind.DISPATCH_FAILED: falcon.HTTP_503,
    ReportErrorKind.UNEXPECTED: falcon.HTTP_500,
}

_TITLE_BY_KIND: typ.Final[dict[ReportErrorKind, str]] = {
    ReportErrorKind.NOT_FOUND: "Not found",
    ReportErrorKind.FORBIDDEN: "Forbidden",
    ReportErrorKind.INVALID_STATE: "Invalid report state",
    ReportErrorKind.RETRY_EXHAUSTED: "Retry limit reached",
    ReportErrorKind.UNAVAILABLE: "Report file unavailable",
    ReportErrorKind.INVALID_INPUT: "Invalid input",
    ReportErrorKind.DISPATCH_FAILED: "Report dispatch failed",
    ReportErrorKind.UNEXPECTED: "Internal server error",
}


class InvalidInputError(Exception):
    """Raised for client validation errors that should map to HTTP 400.

    Attributes
    ----------
    reason
        Human-readable description of the validation failure.
    field
        Optional name of the input field that failed validation.

    """

    def __init__(self, reason: str, *, field: str | None = None) -> None:
        """Initialize with a validation reason and optional field name."""
        self.reason = reason
        self.field = field
        message = f"{field}: {reason}" if field is not None else reason
        super().__init__(message)


async def handle_report_queue_error(
    _req: Request,
    resp: Response,
    ex: ReportQueueError,
    _params: dict[str, typ.Any],
) -> None:
    """Map a ``ReportQueueError`` to its HTTP status and JSON body.

    Parameters
    ----------
    _req
        Falcon request (unused).
    resp
        Falcon response whose status and media are set.
    ex
        The domain exception carrying kind and message.
    _params
        URI template parameters (unused).

    """
    resp.status = STATUS_BY_KIND.get(ex.kind, falcon.HTTP_500)
    resp.media = {
        "title": _TITLE_BY_KIND.get(ex.kind, "Internal server error"),
        "description": ex.message,
        "kind": ex.kind.value,
    }


async def handle_invalid_input(
    _req: Request,
    resp: Response,
    ex: InvalidInputError,
    _params: dict[str, typ.Any],
) -> None:
    """Map ``InvalidInputError`` to an HTTP 400 JSON response."""
    resp.status = falcon.HTTP_400
    media: dict[str, str] = {
        "title": "Invalid input",
        "description": ex.reason,
        "kind": ReportErrorKind.INVALID_INPUT.value,
    }
    if ex.field is not None:
        media["field"] = ex.field
    resp.media = media
