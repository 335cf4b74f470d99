"""Token state and lifecycle models.

Contains mutable token state management and token endpoint request/response
handling.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from pydantic import BaseModel


@dataclass
class TokenState:
    """Mutable token state with lifecycle management.

    Represents the tokens currently cached for the signed-in user.
    Mutable to allow refresh without recreating the client.
    """

    access_token: str | None = None
    refresh_token: str | None = None
    id_token: str | None = None
    token_type: str = "Bearer"
    expires_at: float | None = None  # Unix timestamp
    scope: str | None = None

    def is_valid(self, buffer_seconds: float = 30.0) -> bool:
        """Check if access token is valid with optional buffer.

        Args:
            buffer_seconds: Treat the token as expired this many seconds early
        """
        if not self.access_token:
            return False

        if self.expires_at is None:
            return True  # No expiry means token doesn't expire

        return time.time() < (self.expires_at - buffer_seconds)

    def clear(self) -> None:
        """Clear all token data."""
        self.access_token = None
        self.refresh_token = None
        self.id_token = None
        self.expires_at = None
        self.scope = None

    def update_from_response(self, token_response: TokenResponse) -> None:
        """Update token state from a successful token response.

        Refresh and ID tokens are kept when the response omits them, since
        refresh grants commonly return only a new access token.
        """
        self.access_token = token_response.access_token
        self.token_type = token_response.token_type
        self.scope = token_response.scope or self.scope
        self.expires_at = token_response.calculate_expires_at()

        if token_response.refresh_token:
            self.refresh_token = token_response.refresh_token
        if token_response.id_token:
            self.id_token = token_response.id_token


@dataclass(frozen=True)
class TokenRequest:
    """Authorization code exchange request parameters (RFC 6749 Section 4.1.3).

    Includes the PKCE code_verifier (RFC 7636).
    """

    token_endpoint: str
    code: str
    redirect_uri: str
    client_id: str
    code_verifier: str

    grant_type: str = "authorization_code"

    def to_form_data(self) -> dict[str, str]:
        """Convert to form data for application/x-www-form-urlencoded request.

        Token requests must use form encoding, not JSON (RFC 6749 Section 4.1.3).
        """
        return {
            "grant_type": self.grant_type,
            "code": self.code,
            "redirect_uri": self.redirect_uri,
            "client_id": self.client_id,
            "code_verifier": self.code_verifier,
        }


@dataclass(frozen=True)
class RefreshTokenRequest:
    """Refresh token request parameters (RFC 6749 Section 6)."""

    token_endpoint: str
    refresh_token: str
    client_id: str

    grant_type: str = "refresh_token"
    scope: str | None = None

    def to_form_data(self) -> dict[str, str]:
        """Convert to form data for application/x-www-form-urlencoded request."""
        data = {
            "grant_type": self.grant_type,
            "refresh_token": self.refresh_token,
            "client_id": self.client_id,
        }

        if self.scope:
            data["scope"] = self.scope

        return data


class TokenResponse(BaseModel):
    """Token endpoint response (RFC 6749 Section 5).

    Represents both successful responses (Section 5.1) and error responses
    (Section 5.2). The access token is opaque and never parsed locally.
    """

    # Success response fields
    access_token: str | None = None
    token_type: str = "Bearer"
    expires_in: int | None = None  # Seconds until expiry
    refresh_token: str | None = None
    id_token: str | None = None
    scope: str | None = None

    # Error response fields
    error: str | None = None
    error_description: str | None = None
    error_uri: str | None = None

    def is_success(self) -> bool:
        """Check if token response indicates success."""
        return self.error is None and self.access_token is not None

    def is_error(self) -> bool:
        """Check if token response indicates an error."""
        return self.error is not None

    def calculate_expires_at(self) -> float | None:
        """Calculate absolute expiry timestamp from expires_in.

        Returns:
            Unix timestamp when token expires, or None if no expiry
        """
        if self.expires_in is None:
            return None
        return time.time() + self.expires_in
