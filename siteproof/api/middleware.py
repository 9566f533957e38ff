"""Caller identity middleware for the Falcon ASGI application.

Authentication is performed upstream by the identity provider, which
forwards the authenticated user ID in a request header. This middleware
copies it to ``req.context.user_id`` and rejects domain requests that arrive
without one.

Usage
-----
Register the middleware when creating the Falcon app::

    from siteproof.api.middleware import IdentityMiddleware

    app = falcon.asgi.App(middleware=[IdentityMiddleware("X-User-Id")])

"""

from __future__ import annotations

import typing as typ

import falcon

from siteproof.logging import get_logger, log_warning

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from falcon.asgi import Request, Response

__all__ = ["DEFAULT_IDENTITY_HEADER", "IdentityMiddleware"]

logger = get_logger(__name__)

DEFAULT_IDENTITY_HEADER = "X-User-Id"
_EXEMPT_PATHS = frozenset({"/health", "/ready"})


class IdentityMiddleware:
    """Attach the authenticated user ID to each request.

    Parameters
    ----------
    header_name
        Header carrying the user ID.
    exempt_paths
        Paths served without an identity, such as health probes.

    """

    def __init__(
        self,
        header_name: str = DEFAULT_IDENTITY_HEADER,
        *,
        exempt_paths: cabc.Iterable[str] = _EXEMPT_PATHS,
    ) -> None:
        """Initialize the middleware with the identity header name."""
        self._header_name = header_name
        self._exempt_paths = frozenset(exempt_paths)

    async def process_request(self, req: Request, _resp: Response) -> None:
        """Set ``req.context.user_id`` or reject the request with 401.

        Raises
        ------
        falcon.HTTPUnauthorized
            If a non-exempt request carries no identity header.

        """
        req.context.user_id = None
        if req.path in self._exempt_paths:
            return

        user_id = (req.get_header(self._header_name) or "").strip()
        if not user_id:
            log_warning(
                logger, "Rejected %s %s: no caller identity", req.method, req.path
            )
            raise falcon.HTTPUnauthorized(
                title="Authentication required",
                description=f"Missing {self._header_name} header",
            )
        req.context.user_id = user_id
