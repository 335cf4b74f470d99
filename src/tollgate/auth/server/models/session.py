"""Session token claim models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from tollgate.auth.models.identity import UserIdentity

# Registered JWT claim names and the custom claims carried by session tokens
SUBJECT_CLAIM = "sub"
EMAIL_CLAIM = "email"
NAME_CLAIM = "name"
ROLES_CLAIM = "roles"
ISSUED_AT_CLAIM = "iat"
EXPIRES_AT_CLAIM = "exp"
LAST_ACTIVITY_CLAIM = "lastActivity"
SESSION_START_CLAIM = "sessionStart"

REQUIRED_CLAIMS = [
    SUBJECT_CLAIM,
    ISSUED_AT_CLAIM,
    EXPIRES_AT_CLAIM,
    LAST_ACTIVITY_CLAIM,
    SESSION_START_CLAIM,
]


class SessionState(Enum):
    """Derived lifecycle state of a session token at a given instant."""

    FRESH = "fresh"
    ACTIVE = "active"
    INACTIVITY_EXPIRED = "inactivity_expired"
    DURATION_EXPIRED = "duration_expired"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.INACTIVITY_EXPIRED, SessionState.DURATION_EXPIRED)


@dataclass(frozen=True)
class SessionClaims:
    """Decoded contents of a session token.

    Timestamps are integer epoch seconds. ``session_start_at`` is fixed when
    the session is minted; re-issuance rewrites only ``last_activity_at``
    and ``expires_at``.
    """

    subject: str
    email: str | None
    display_name: str | None
    roles: tuple[str, ...]
    issued_at: int
    expires_at: int
    last_activity_at: int
    session_start_at: int

    @property
    def identity(self) -> UserIdentity:
        return UserIdentity(
            user_id=self.subject,
            email=self.email,
            display_name=self.display_name,
            roles=self.roles,
        )

    def to_payload(self) -> dict[str, object]:
        """Serialize to the JWT payload shape."""
        payload: dict[str, object] = {
            SUBJECT_CLAIM: self.subject,
            ROLES_CLAIM: list(self.roles),
            ISSUED_AT_CLAIM: self.issued_at,
            EXPIRES_AT_CLAIM: self.expires_at,
            LAST_ACTIVITY_CLAIM: self.last_activity_at,
            SESSION_START_CLAIM: self.session_start_at,
        }
        if self.email is not None:
            payload[EMAIL_CLAIM] = self.email
        if self.display_name is not None:
            payload[NAME_CLAIM] = self.display_name
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, object]) -> SessionClaims:
        """Build claims from a decoded payload.

        Raises:
            KeyError: If a required claim is missing
            TypeError, ValueError: If a claim has the wrong shape
        """
        roles = payload.get(ROLES_CLAIM) or []
        if isinstance(roles, str):
            roles = [roles]
        if not isinstance(roles, list):
            raise TypeError("roles claim must be a list")

        subject = payload[SUBJECT_CLAIM]
        if not isinstance(subject, str) or not subject:
            raise ValueError("sub claim must be a non-empty string")

        return cls(
            subject=subject,
            email=payload.get(EMAIL_CLAIM),
            display_name=payload.get(NAME_CLAIM),
            roles=tuple(str(role) for role in roles),
            issued_at=int(payload[ISSUED_AT_CLAIM]),
            expires_at=int(payload[EXPIRES_AT_CLAIM]),
            last_activity_at=int(payload[LAST_ACTIVITY_CLAIM]),
            session_start_at=int(payload[SESSION_START_CLAIM]),
        )
