"""Security-related models for the authorization code flow.

Contains PKCE parameters and the per-attempt request context that must
survive the browser round trip.
"""

from __future__ import annotations

from dataclasses import dataclass, field

CODE_VERIFIER_LENGTH = 128
STATE_LENGTH = 32
NONCE_LENGTH = 32


@dataclass(frozen=True)
class PKCEParameters:
    """PKCE (Proof Key for Code Exchange) parameters (RFC 7636).

    Immutable parameters generated for each authorization flow to prevent
    authorization code interception attacks.
    """

    code_verifier: str = field()
    code_challenge: str = field()
    code_challenge_method: str = field(default="S256")

    def __post_init__(self) -> None:
        """Validate PKCE parameters meet RFC 7636 requirements."""
        if not (43 <= len(self.code_verifier) <= 128):
            raise ValueError("code_verifier must be 43-128 characters")
        if not (43 <= len(self.code_challenge) <= 128):
            raise ValueError("code_challenge must be 43-128 characters")
        if self.code_challenge_method != "S256":
            raise ValueError("Only S256 code challenge method is supported")
        if self.code_challenge == self.code_verifier:
            raise ValueError("code_challenge must be derived, not the verifier")


@dataclass(frozen=True)
class AuthorizationRequestContext:
    """Values persisted between ``begin_login`` and ``complete_login``."""

    state: str
    nonce: str
    code_verifier: str

    def __post_init__(self) -> None:
        if len(self.state) != STATE_LENGTH:
            raise ValueError(f"state must be {STATE_LENGTH} characters")
        if len(self.nonce) != NONCE_LENGTH:
            raise ValueError(f"nonce must be {NONCE_LENGTH} characters")
