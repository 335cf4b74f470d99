"""Session token service.

Issues and validates self-contained HS256 session tokens that carry the
user's identity and two independent expiry timers:

- a sliding inactivity window (``exp``), pushed forward on every accepted
  request by re-issuing the token
- an absolute ceiling measured from ``sessionStart``, which re-issuance
  never moves

There is no server-side session store; every decision is a pure function
of the presented token and the clock.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

import jwt

from tollgate.auth.models.errors import (
    DurationExpiredError,
    InactivityExpiredError,
    MalformedTokenError,
    SessionTokenError,
    SignatureInvalidError,
)
from tollgate.auth.models.identity import UserIdentity
from tollgate.auth.server.models.session import (
    REQUIRED_CLAIMS,
    SessionClaims,
    SessionState,
)
from tollgate.settings import MIN_SECRET_LENGTH, SessionSettings

logger = logging.getLogger(__name__)

DEFAULT_INACTIVITY_TIMEOUT = 1200  # 20 minutes
DEFAULT_MAX_SESSION_DURATION = 86400  # 24 hours


class SessionTokenService:
    """Issues, validates and slides session tokens."""

    def __init__(
        self,
        secret: str,
        inactivity_timeout: int = DEFAULT_INACTIVITY_TIMEOUT,
        max_session_duration: int = DEFAULT_MAX_SESSION_DURATION,
        algorithm: str = "HS256",
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the service.

        Args:
            secret: HMAC signing key, at least 32 characters
            inactivity_timeout: Sliding window in seconds
            max_session_duration: Absolute session ceiling in seconds
            algorithm: JWS algorithm
            clock: Source of the current epoch time
        """
        if len(secret) < MIN_SECRET_LENGTH:
            raise ValueError(
                f"Session secret must be at least {MIN_SECRET_LENGTH} characters"
            )
        if inactivity_timeout <= 0 or max_session_duration <= 0:
            raise ValueError("Session timeouts must be positive")

        self._secret = secret
        self.algorithm = algorithm
        self.inactivity_timeout = inactivity_timeout
        self.max_session_duration = max_session_duration
        self._clock = clock

    @classmethod
    def from_settings(
        cls, settings: SessionSettings, clock: Callable[[], float] = time.time
    ) -> SessionTokenService:
        return cls(
            secret=settings.secret,
            inactivity_timeout=settings.inactivity_timeout,
            max_session_duration=settings.max_session_duration,
            algorithm=settings.algorithm,
            clock=clock,
        )

    def now(self) -> int:
        return int(self._clock())

    def issue(self, identity: UserIdentity) -> str:
        """Mint a token for a new session."""
        if not identity.user_id:
            raise ValueError("Cannot issue a session token without a subject")

        now = self.now()
        claims = SessionClaims(
            subject=identity.user_id,
            email=identity.email,
            display_name=identity.display_name,
            roles=identity.roles,
            issued_at=now,
            expires_at=now + self.inactivity_timeout,
            last_activity_at=now,
            session_start_at=now,
        )

        logger.debug(f"Issued session token for {identity.user_id}")
        return self._encode(claims)

    def validate(self, token: str) -> SessionClaims:
        """Verify a token and both of its timers.

        Integrity is checked first; timers are only evaluated on a token
        whose signature verifies.

        Raises:
            MalformedTokenError: If the token cannot be decoded
            SignatureInvalidError: If the signature does not verify
            DurationExpiredError: If the absolute ceiling has passed
            InactivityExpiredError: If the inactivity window has passed
        """
        claims = self._decode(token)

        state = self._state_of(claims, self.now())
        if state is SessionState.DURATION_EXPIRED:
            raise DurationExpiredError(
                f"Session for {claims.subject} exceeded maximum duration"
            )
        if state is SessionState.INACTIVITY_EXPIRED:
            raise InactivityExpiredError(
                f"Session for {claims.subject} expired due to inactivity"
            )

        return claims

    def touch(self, token: str) -> str:
        """Validate a token and re-issue it with a fresh inactivity window.

        Identity, ``iat`` and ``sessionStart`` are carried over unchanged.

        Raises:
            SessionTokenError: Any error ``validate`` raises
        """
        return self.renew(token)[0]

    def renew(self, token: str) -> tuple[str, SessionClaims]:
        """Like ``touch``, also returning the claims of the re-issued token."""
        claims = self.validate(token)
        now = self.now()

        refreshed = SessionClaims(
            subject=claims.subject,
            email=claims.email,
            display_name=claims.display_name,
            roles=claims.roles,
            issued_at=claims.issued_at,
            expires_at=now + self.inactivity_timeout,
            last_activity_at=now,
            session_start_at=claims.session_start_at,
        )
        return self._encode(refreshed), refreshed

    def state(self, token: str) -> SessionState:
        """Return the lifecycle state of a token whose signature verifies.

        Raises:
            MalformedTokenError: If the token cannot be decoded
            SignatureInvalidError: If the signature does not verify
        """
        return self._state_of(self._decode(token), self.now())

    def peek_subject(self, token: str) -> str | None:
        """Diagnostics only: the subject, or None if the token does not verify."""
        try:
            return self._decode(token).subject
        except SessionTokenError:
            return None

    def is_expired(self, token: str) -> bool:
        """Diagnostics only: True for expired or unverifiable tokens."""
        try:
            self.validate(token)
        except SessionTokenError:
            return True
        return False

    def _state_of(self, claims: SessionClaims, now: int) -> SessionState:
        # Both timers use the configured limits; strict comparison on each.
        # A token whose exp falls earlier than the window also expires then.
        if now - claims.session_start_at > self.max_session_duration:
            return SessionState.DURATION_EXPIRED
        if (
            now - claims.last_activity_at > self.inactivity_timeout
            or now > claims.expires_at
        ):
            return SessionState.INACTIVITY_EXPIRED
        return SessionState.ACTIVE

    def _encode(self, claims: SessionClaims) -> str:
        return jwt.encode(claims.to_payload(), self._secret, algorithm=self.algorithm)

    def _decode(self, token: str) -> SessionClaims:
        if not token:
            raise MalformedTokenError("Empty session token")

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                # Timers are evaluated against the injected clock
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "require": REQUIRED_CLAIMS,
                },
            )
        except jwt.InvalidSignatureError as e:
            raise SignatureInvalidError("Session token signature is invalid") from e
        except jwt.MissingRequiredClaimError as e:
            raise MalformedTokenError(f"Session token missing claim: {e.claim}") from e
        except jwt.InvalidTokenError as e:
            raise MalformedTokenError(f"Session token is malformed: {e}") from e

        try:
            return SessionClaims.from_payload(payload)
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedTokenError(
                f"Session token has invalid claims: {e}"
            ) from e
