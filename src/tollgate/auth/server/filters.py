"""Credential classification and the per-request authentication chain.

Two stages run in a fixed order: session tokens first, then opaque access
tokens. A stage never rejects a request; it either authenticates the
``SecurityContext`` or leaves it untouched, and a later authorization gate
decides what an unauthenticated request may reach.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, Sequence

from tollgate.auth.models.errors import SessionTokenError, TokenValidationError
from tollgate.auth.server.models.context import SecurityContext
from tollgate.auth.server.services.introspection import OpaqueTokenValidator
from tollgate.auth.server.services.sessions import SessionTokenService

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "
SESSION_TOKEN_HEADER = "X-Session-Token"


class CredentialKind(Enum):
    SESSION_TOKEN = "session_token"
    OPAQUE_TOKEN = "opaque_token"


def classify_credential(credential: str) -> CredentialKind:
    """Guess the credential type from its shape.

    Any credential containing a dot is taken for a signed session token;
    opaque tokens carry no dots in practice. This is a heuristic: a damaged
    session token without a dot is routed to introspection and rejected there.
    """
    if "." in credential:
        return CredentialKind.SESSION_TOKEN
    return CredentialKind.OPAQUE_TOKEN


def bearer_token(authorization: str | None) -> str | None:
    """Extract the credential from an ``Authorization: Bearer`` header value."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None


@dataclass(frozen=True)
class RequestCredentials:
    """The parts of an incoming request the chain looks at."""

    path: str
    authorization: str | None = None
    session_header: str | None = None

    @property
    def bearer(self) -> str | None:
        return bearer_token(self.authorization)


class FilterStage(Protocol):
    async def apply(
        self, credentials: RequestCredentials, context: SecurityContext
    ) -> None: ...


class SessionTokenStage:
    """Authenticates session tokens and slides their inactivity window.

    The ``X-Session-Token`` header is preferred; otherwise a bearer token
    that looks like a session token is used.
    """

    def __init__(self, sessions: SessionTokenService):
        self.sessions = sessions

    async def apply(
        self, credentials: RequestCredentials, context: SecurityContext
    ) -> None:
        token = credentials.session_header
        if not token:
            bearer = credentials.bearer
            if bearer and classify_credential(bearer) is CredentialKind.SESSION_TOKEN:
                token = bearer
        if not token:
            return

        try:
            refreshed, claims = self.sessions.renew(token)
        except SessionTokenError as e:
            logger.warning(
                f"Session token rejected on {credentials.path}: {e.category}"
            )
            return

        context.authenticate(claims.identity, refreshed, claims)
        logger.debug(f"Authenticated session for {claims.subject}")


class OpaqueTokenStage:
    """Exchanges a bearer opaque token for a freshly minted session."""

    def __init__(
        self, validator: OpaqueTokenValidator, sessions: SessionTokenService
    ):
        self.validator = validator
        self.sessions = sessions

    async def apply(
        self, credentials: RequestCredentials, context: SecurityContext
    ) -> None:
        bearer = credentials.bearer
        if not bearer:
            return
        if classify_credential(bearer) is not CredentialKind.OPAQUE_TOKEN:
            return

        try:
            identity = await self.validator.validate(bearer)
        except TokenValidationError as e:
            logger.warning(f"Opaque token rejected on {credentials.path}: {e}")
            return

        context.authenticate(identity, self.sessions.issue(identity))
        logger.info(f"Minted session from opaque token for {identity.user_id}")


class FilterChain:
    """Runs the stages in order against one request's context."""

    def __init__(
        self, stages: Sequence[FilterStage], public_paths: Sequence[str] = ()
    ):
        self.stages = tuple(stages)
        self.public_paths = tuple(public_paths)

    @classmethod
    def build(
        cls,
        sessions: SessionTokenService,
        validator: OpaqueTokenValidator,
        public_paths: Sequence[str] = (),
    ) -> FilterChain:
        """Build the standard chain: session stage before opaque stage."""
        return cls(
            [SessionTokenStage(sessions), OpaqueTokenStage(validator, sessions)],
            public_paths,
        )

    def is_public(self, path: str) -> bool:
        # Entries ending in "/" match the bare path and everything below it
        for public in self.public_paths:
            if public.endswith("/"):
                if path == public[:-1] or path.startswith(public):
                    return True
            elif path == public:
                return True
        return False

    async def run(self, credentials: RequestCredentials) -> SecurityContext:
        context = SecurityContext()
        if self.is_public(credentials.path):
            return context

        for stage in self.stages:
            if context.is_authenticated:
                break
            try:
                await stage.apply(credentials, context)
            except Exception:
                # A stage fault must not fail the request; the gate decides
                logger.exception(
                    f"{type(stage).__name__} failed on {credentials.path}"
                )

        return context
