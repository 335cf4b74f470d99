"""Token endpoint exchange service.

Implements RFC 6749 token endpoint interactions with PKCE (RFC 7636):
authorization code exchange and refresh.
"""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from tollgate.auth.client.models.tokens import (
    RefreshTokenRequest,
    TokenRequest,
    TokenResponse,
)
from tollgate.auth.models.errors import TokenError

logger = logging.getLogger(__name__)

FORM_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Accept": "application/json",
}


class OAuth2TokenManager:
    """Manages token exchange and refresh operations.

    Handles the token endpoint interactions including:
    - Authorization code to access token exchange (RFC 6749 Section 4.1.3)
    - Access token refresh (RFC 6749 Section 6)
    - PKCE code verification (RFC 7636)

    Uses application/x-www-form-urlencoded encoding as required by RFC 6749.
    """

    def __init__(self, timeout: float = 10.0):
        """Initialize token manager.

        Args:
            timeout: HTTP request timeout in seconds
        """
        self.timeout = timeout
        self._http_client = httpx.AsyncClient(timeout=timeout)

    async def exchange_code_for_token(
        self, token_request: TokenRequest
    ) -> TokenResponse:
        """Exchange authorization code for tokens.

        Args:
            token_request: Token exchange request parameters

        Returns:
            TokenResponse: Token response (success or error)

        Raises:
            TokenError: If token exchange fails due to network/parsing issues
        """
        logger.debug(f"Exchanging authorization code at {token_request.token_endpoint}")

        form_data = token_request.to_form_data()

        # Log request details (without sensitive data)
        logger.debug(
            f"Token request: grant_type={form_data['grant_type']}, "
            f"client_id={form_data['client_id']}"
        )

        try:
            response = await self._http_client.post(
                token_request.token_endpoint,
                data=form_data,
                headers=FORM_HEADERS,
            )
        except httpx.HTTPError as e:
            raise TokenError(f"HTTP error during token exchange: {e}") from e

        return self._parse_token_response(response)

    async def refresh_access_token(
        self, refresh_request: RefreshTokenRequest
    ) -> TokenResponse:
        """Refresh an access token using a refresh token.

        Args:
            refresh_request: Refresh token request parameters

        Returns:
            TokenResponse: New token response (success or error)

        Raises:
            TokenError: If token refresh fails due to network/parsing issues
        """
        logger.debug(f"Refreshing access token at {refresh_request.token_endpoint}")

        try:
            response = await self._http_client.post(
                refresh_request.token_endpoint,
                data=refresh_request.to_form_data(),
                headers=FORM_HEADERS,
            )
        except httpx.HTTPError as e:
            raise TokenError(f"HTTP error during token refresh: {e}") from e

        return self._parse_token_response(response)

    def _parse_token_response(self, response: httpx.Response) -> TokenResponse:
        """Parse token endpoint response into TokenResponse.

        Handles both successful responses (200) and error responses (400+)
        according to RFC 6749 Section 5.

        Raises:
            TokenError: If response cannot be parsed
        """
        try:
            response_data = response.json()
        except ValueError as e:
            raise TokenError(
                f"Token endpoint returned non-JSON response ({response.status_code})"
            ) from e

        if not isinstance(response_data, dict):
            raise TokenError("Token endpoint returned an unexpected payload")

        if response.status_code == 200 and "access_token" not in response_data:
            raise TokenError("Token response missing required access_token")

        if response.status_code != 200:
            # Error response (RFC 6749 Section 5.2)
            response_data.setdefault("error", "unknown_error")
            logger.warning(
                f"Token request failed with {response.status_code}: "
                f"{response_data['error']} - "
                f"{response_data.get('error_description', 'No description provided')}"
            )

        try:
            return TokenResponse(**response_data)
        except ValidationError as e:
            raise TokenError(f"Invalid token response format: {e}") from e

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self._http_client.aclose()
