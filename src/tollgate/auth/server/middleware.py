"""Starlette integration for the authentication chain.

Runs the ``FilterChain`` for every request, exposes the resulting
``SecurityContext`` on ``request.state``, turns unauthenticated requests to
protected paths into a uniform 401, and hands refreshed session tokens back
in the ``X-Session-Token`` response header.
"""

from __future__ import annotations

import functools
import logging
from typing import Awaitable, Callable, Sequence

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from tollgate.auth.models.identity import to_authorities
from tollgate.auth.server.filters import (
    SESSION_TOKEN_HEADER,
    FilterChain,
    RequestCredentials,
)
from tollgate.auth.server.models.context import SecurityContext

logger = logging.getLogger(__name__)

AUTH_ENDPOINT_PREFIX = "/api/auth/"

Endpoint = Callable[[Request], Awaitable[Response]]


def unauthorized_response() -> JSONResponse:
    return JSONResponse(
        {"error": "Unauthorized", "message": "Authentication required"},
        status_code=401,
    )


def forbidden_response() -> JSONResponse:
    return JSONResponse(
        {"error": "Forbidden", "message": "Access denied"},
        status_code=403,
    )


def get_security_context(request: Request) -> SecurityContext:
    """Return the request's security context (unauthenticated if none ran)."""
    context = getattr(request.state, "security_context", None)
    if context is None:
        context = SecurityContext()
        request.state.security_context = context
    return context


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """Authenticates requests and gates protected paths."""

    def __init__(
        self,
        app: ASGIApp,
        chain: FilterChain,
        protected_prefix: str = "/api/",
        permitted_prefixes: Sequence[str] = (AUTH_ENDPOINT_PREFIX,),
    ):
        super().__init__(app)
        self.chain = chain
        self.protected_prefix = protected_prefix
        self.permitted_prefixes = tuple(permitted_prefixes)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        credentials = RequestCredentials(
            path=path,
            authorization=request.headers.get("Authorization"),
            session_header=request.headers.get(SESSION_TOKEN_HEADER),
        )

        context = await self.chain.run(credentials)
        request.state.security_context = context

        if not context.is_authenticated and self._requires_authentication(path):
            logger.debug(f"Rejecting unauthenticated request to {path}")
            return unauthorized_response()

        response = await call_next(request)

        # Endpoints that issue their own session token take precedence
        if (
            context.refreshed_session_token
            and SESSION_TOKEN_HEADER not in response.headers
        ):
            response.headers[SESSION_TOKEN_HEADER] = context.refreshed_session_token

        return response

    def _requires_authentication(self, path: str) -> bool:
        if self.chain.is_public(path):
            return False
        if path.startswith(self.permitted_prefixes):
            return False
        return path.startswith(self.protected_prefix)


def requires_role(*roles: str) -> Callable[[Endpoint], Endpoint]:
    """Restrict an endpoint to users holding at least one of ``roles``.

    Unauthenticated requests get the uniform 401, authenticated requests
    without a matching role the uniform 403.
    """
    required = set(to_authorities(roles))

    def decorator(endpoint: Endpoint) -> Endpoint:
        @functools.wraps(endpoint)
        async def wrapper(request: Request) -> Response:
            context = get_security_context(request)
            if not context.is_authenticated:
                return unauthorized_response()
            if not required.intersection(context.authorities):
                return forbidden_response()
            return await endpoint(request)

        return wrapper

    return decorator
