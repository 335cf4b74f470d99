"""Resource server session exchange service.

Trades a provider access token for a resource server session token, keeps
that session token current from rotated ``X-Session-Token`` headers, and
calls the session refresh endpoint.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from tollgate.auth.client.models.session import SESSION_TOKEN_HEADER, SessionGrant
from tollgate.auth.models.errors import (
    ReauthenticationRequiredError,
    TokenError,
    TokenExchangeError,
)

logger = logging.getLogger(__name__)

TOKEN_EXCHANGE_PATH = "/api/auth/token-exchange"
REFRESH_SESSION_PATH = "/api/auth/refresh-session"


class SessionExchangeClient:
    """Client for the resource server's session endpoints.

    Holds the current session token. Every response that carries an
    ``X-Session-Token`` header replaces it, which is how the sliding
    inactivity window is kept open.
    """

    def __init__(self, base_url: str, timeout: float = 10.0):
        """Initialize session exchange client.

        Args:
            base_url: Resource server base URL
            timeout: HTTP request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.session_token: str | None = None
        self._http_client = httpx.AsyncClient(timeout=timeout)

    async def exchange_access_token(self, access_token: str) -> SessionGrant:
        """Exchange an opaque access token for a session token.

        Raises:
            TokenExchangeError: If the resource server rejects the token
            TokenError: On network or response format errors
        """
        response = await self._post(
            TOKEN_EXCHANGE_PATH, json={"accessToken": access_token}
        )

        if response.status_code != 200:
            raise TokenExchangeError(
                f"Session token exchange failed with status {response.status_code}"
            )

        grant = self._parse_grant(response)
        self.session_token = grant.session_token
        logger.info("Exchanged access token for session token")
        return grant

    async def refresh_session(self) -> SessionGrant:
        """Refresh the current session token.

        Raises:
            ReauthenticationRequiredError: If there is no session or the
                resource server refuses to refresh it. The stored session
                token is discarded.
        """
        if not self.session_token:
            raise ReauthenticationRequiredError("No session token to refresh")

        response = await self._post(
            REFRESH_SESSION_PATH,
            headers={"Authorization": f"Bearer {self.session_token}"},
        )

        if response.status_code != 200:
            self.session_token = None
            raise ReauthenticationRequiredError(
                f"Session refresh failed with status {response.status_code}"
            )

        grant = self._parse_grant(response)
        self.session_token = grant.session_token
        return grant

    async def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send an authenticated request and pick up a rotated session token."""
        headers = dict(kwargs.pop("headers", None) or {})
        if self.session_token:
            headers["Authorization"] = f"Bearer {self.session_token}"

        try:
            response = await self._http_client.request(
                method, f"{self.base_url}{path}", headers=headers, **kwargs
            )
        except httpx.HTTPError as e:
            raise TokenError(f"HTTP error calling {path}: {e}") from e

        self.remember(response)
        return response

    def remember(self, response: httpx.Response) -> None:
        """Store a refreshed session token from the response headers, if any."""
        rotated = response.headers.get(SESSION_TOKEN_HEADER)
        if rotated:
            self.session_token = rotated

    def clear(self) -> None:
        self.session_token = None

    async def _post(self, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._http_client.post(f"{self.base_url}{path}", **kwargs)
        except httpx.HTTPError as e:
            raise TokenError(f"HTTP error calling {path}: {e}") from e

    def _parse_grant(self, response: httpx.Response) -> SessionGrant:
        try:
            return SessionGrant.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise TokenError(f"Invalid session response format: {e}") from e

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self._http_client.aclose()
