"""Per-request security context.

The context is an explicit object created for each request and handed to
every filter stage and downstream handler; nothing is kept in globals.
"""

from __future__ import annotations

from dataclasses import dataclass

from tollgate.auth.models.identity import UserIdentity
from tollgate.auth.server.models.session import SessionClaims

ANONYMOUS_USER_ID = "anonymous"


@dataclass
class SecurityContext:
    """Authentication outcome for a single request."""

    identity: UserIdentity | None = None
    session_claims: SessionClaims | None = None
    # Session token to hand back to the caller via X-Session-Token
    refreshed_session_token: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None

    @property
    def authorities(self) -> tuple[str, ...]:
        if self.identity is None:
            return ()
        return self.identity.authorities

    def authenticate(
        self,
        identity: UserIdentity,
        session_token: str,
        session_claims: SessionClaims | None = None,
    ) -> None:
        self.identity = identity
        self.session_claims = session_claims
        self.refreshed_session_token = session_token


def current_user_id(context: SecurityContext | None) -> str:
    """Return the authenticated user's id, or ``"anonymous"``."""
    if context is None or context.identity is None:
        return ANONYMOUS_USER_ID
    return context.identity.user_id
