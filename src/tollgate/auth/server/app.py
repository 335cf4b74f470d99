"""Resource server application.

Wires the session token service, the opaque token validator and the
authentication chain into a Starlette app exposing the session endpoints,
and provides the ``tollgate`` console entry point.
"""

from __future__ import annotations

import contextlib
import json
import logging
from typing import AsyncIterator

import uvicorn
from dotenv import load_dotenv
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.routing import Route

from tollgate.auth.models.errors import SessionTokenError, TokenValidationError
from tollgate.auth.models.identity import UserIdentity
from tollgate.auth.server.filters import (
    SESSION_TOKEN_HEADER,
    FilterChain,
    bearer_token,
)
from tollgate.auth.server.middleware import (
    AuthenticationMiddleware,
    get_security_context,
)
from tollgate.auth.server.models.api import (
    AuthResponse,
    SessionRefreshResponse,
    TokenExchangeRequest,
    UserResponse,
)
from tollgate.auth.server.models.context import current_user_id
from tollgate.auth.server.services.introspection import OpaqueTokenValidator
from tollgate.auth.server.services.sessions import SessionTokenService
from tollgate.settings import IntrospectionSettings, ServerSettings, SessionSettings

logger = logging.getLogger(__name__)


def _user_response(identity: UserIdentity) -> UserResponse:
    return UserResponse(
        user_id=identity.user_id,
        email=identity.email,
        display_name=identity.display_name,
        roles=list(identity.roles),
    )


class AuthEndpoints:
    """Handlers for the ``/api/auth`` routes."""

    def __init__(
        self, sessions: SessionTokenService, validator: OpaqueTokenValidator
    ):
        self.sessions = sessions
        self.validator = validator

    def routes(self) -> list[Route]:
        return [
            Route(
                "/api/auth/token-exchange",
                self._handle_token_exchange,
                methods=["POST"],
            ),
            Route(
                "/api/auth/refresh-session",
                self._handle_refresh_session,
                methods=["POST"],
            ),
            Route("/api/auth/health", self._handle_health, methods=["GET"]),
            Route("/api/auth/me", self._handle_me, methods=["GET"]),
        ]

    async def _handle_token_exchange(self, request: Request) -> Response:
        """Validate an opaque access token and mint a session token."""
        try:
            body = TokenExchangeRequest.model_validate(await request.json())
        except (json.JSONDecodeError, ValidationError):
            return JSONResponse(AuthResponse().to_json(), status_code=400)

        try:
            identity = await self.validator.validate(body.access_token)
            session_token = self.sessions.issue(identity)
        except TokenValidationError as e:
            logger.warning(f"Token exchange rejected: {e}")
            return JSONResponse(AuthResponse().to_json(), status_code=401)
        except Exception as e:
            logger.error(f"Unexpected error during token exchange: {e}")
            return JSONResponse(AuthResponse().to_json(), status_code=500)

        logger.info(f"Issued session token for {identity.user_id}")
        response = AuthResponse(
            session_token=session_token,
            user=_user_response(identity),
            expires_in=self.sessions.inactivity_timeout,
        )
        return JSONResponse(
            response.to_json(), headers={SESSION_TOKEN_HEADER: session_token}
        )

    async def _handle_refresh_session(self, request: Request) -> Response:
        """Slide the inactivity window of the presented session token."""
        token = bearer_token(request.headers.get("Authorization"))
        if not token:
            return JSONResponse(SessionRefreshResponse().to_json(), status_code=401)

        try:
            session_token = self.sessions.touch(token)
        except SessionTokenError as e:
            logger.warning(f"Session refresh rejected: {e.category}")
            return JSONResponse(SessionRefreshResponse().to_json(), status_code=401)

        response = SessionRefreshResponse(
            session_token=session_token,
            expires_in=self.sessions.inactivity_timeout,
        )
        return JSONResponse(
            response.to_json(), headers={SESSION_TOKEN_HEADER: session_token}
        )

    async def _handle_health(self, request: Request) -> Response:
        return PlainTextResponse("Authentication service is healthy")

    async def _handle_me(self, request: Request) -> Response:
        context = get_security_context(request)
        if context.identity is None:
            return JSONResponse({"userId": current_user_id(context)})
        user = _user_response(context.identity)
        return JSONResponse(user.model_dump(by_alias=True))


def create_app(
    sessions: SessionTokenService,
    validator: OpaqueTokenValidator,
    settings: ServerSettings | None = None,
    routes: list[Route] | None = None,
) -> Starlette:
    """Build the resource server application.

    Args:
        sessions: Session token service
        validator: Opaque token validator
        settings: Server settings; environment defaults if omitted
        routes: Additional application routes, protected by the same chain

    Returns:
        Configured Starlette application
    """
    settings = settings or ServerSettings()
    chain = FilterChain.build(sessions, validator, settings.public_paths)
    endpoints = AuthEndpoints(sessions, validator)

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        yield
        await validator.close()

    middleware = [
        # Outermost, so preflight requests never reach the auth gate
        Middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allowed_origins,
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["*"],
            allow_credentials=True,
            expose_headers=[SESSION_TOKEN_HEADER],
        ),
        Middleware(
            AuthenticationMiddleware,
            chain=chain,
            protected_prefix=settings.protected_prefix,
        ),
    ]

    return Starlette(
        routes=endpoints.routes() + list(routes or []),
        middleware=middleware,
        lifespan=lifespan,
    )


def main() -> None:
    """Run the resource server with settings from the environment."""
    load_dotenv()
    settings = ServerSettings()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    sessions = SessionTokenService.from_settings(SessionSettings())
    validator = OpaqueTokenValidator.from_settings(IntrospectionSettings())
    app = create_app(sessions, validator, settings)

    logger.info(f"Starting tollgate on {settings.host}:{settings.port}")
    uvicorn.run(
        app, host=settings.host, port=settings.port, log_level=settings.log_level
    )


if __name__ == "__main__":
    main()
