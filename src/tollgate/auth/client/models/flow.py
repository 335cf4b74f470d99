"""Authorization flow models.

Contains models for authorization requests, callback handling and
end-session (logout) redirects.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlencode


@dataclass(frozen=True)
class AuthorizationRequest:
    """Authorization request parameters for the OIDC code flow."""

    authorization_endpoint: str
    client_id: str
    redirect_uri: str
    scope: str
    state: str
    nonce: str
    code_challenge: str
    code_challenge_method: str = "S256"

    def build_authorization_url(self) -> str:
        """Build the complete authorization URL."""
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": self.scope,
            "state": self.state,
            "nonce": self.nonce,
            "code_challenge": self.code_challenge,
            "code_challenge_method": self.code_challenge_method,
        }

        separator = "&" if "?" in self.authorization_endpoint else "?"
        return f"{self.authorization_endpoint}{separator}{urlencode(params)}"


@dataclass(frozen=True)
class AuthorizationResponse:
    code: str | None = None
    state: str | None = None
    error: str | None = None
    error_description: str | None = None
    error_uri: str | None = None

    def is_error(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class EndSessionRequest:
    """RP-initiated logout request (OpenID Connect RP-Initiated Logout 1.0)."""

    end_session_endpoint: str
    post_logout_redirect_uri: str
    id_token_hint: str | None = None

    def build_logout_url(self) -> str:
        params = {"post_logout_redirect_uri": self.post_logout_redirect_uri}
        if self.id_token_hint:
            params["id_token_hint"] = self.id_token_hint

        separator = "&" if "?" in self.end_session_endpoint else "?"
        return f"{self.end_session_endpoint}{separator}{urlencode(params)}"
