"""Authorization code flow orchestration service.

Builds authorization URLs and interprets callbacks, including provider
errors, state (CSRF) validation and authorization code extraction.
"""

from __future__ import annotations

import logging
from urllib.parse import parse_qs, urlparse

from tollgate.auth.client.models.discovery import ProviderMetadata
from tollgate.auth.client.models.flow import AuthorizationRequest, AuthorizationResponse
from tollgate.auth.client.models.security import (
    AuthorizationRequestContext,
    PKCEParameters,
)
from tollgate.auth.client.services.security import validate_state
from tollgate.auth.models.errors import (
    AuthorizationCallbackError,
    AuthorizationDeniedError,
)

logger = logging.getLogger(__name__)


class OAuth2FlowManager:
    """Builds authorization requests and validates authorization callbacks.

    Handles:
    - Authorization URL construction (PKCE challenge, state, nonce)
    - Callback URL parsing
    - Provider error reporting
    - State parameter security (CSRF protection)
    """

    def build_authorization_url(
        self,
        metadata: ProviderMetadata,
        client_id: str,
        redirect_uri: str,
        scope: str,
        pkce: PKCEParameters,
        context: AuthorizationRequestContext,
    ) -> str:
        """Build the URL the user agent is redirected to.

        Args:
            metadata: Discovered provider metadata
            client_id: Registered client identifier
            redirect_uri: URI the provider redirects back to
            scope: Space-separated scope string
            pkce: PKCE parameters for this attempt
            context: State and nonce for this attempt

        Returns:
            Fully-formed authorization URL
        """
        auth_request = AuthorizationRequest(
            authorization_endpoint=metadata.authorization_endpoint,
            client_id=client_id,
            redirect_uri=redirect_uri,
            scope=scope,
            state=context.state,
            nonce=context.nonce,
            code_challenge=pkce.code_challenge,
            code_challenge_method=pkce.code_challenge_method,
        )

        logger.info(f"Generated authorization URL for client {client_id}")
        return auth_request.build_authorization_url()

    def handle_authorization_callback(
        self, callback_url: str, expected_state: str | None
    ) -> str:
        """Validate an authorization callback and return the authorization code.

        Provider errors are reported first: a denial is terminal and the
        user should see it. Otherwise the state must match bit-for-bit
        before the code is released.

        Args:
            callback_url: Full callback URL received from the provider
            expected_state: State stored for the in-flight login, if any

        Returns:
            The authorization code

        Raises:
            AuthorizationDeniedError: If the provider returned an error
            ForgeryDetectedError: If the state is missing or does not match
            AuthorizationCallbackError: If the callback has no code
        """
        auth_response = self._parse_callback_url(callback_url)

        if auth_response.is_error():
            logger.warning(
                f"Authorization callback contained error: {auth_response.error} - "
                f"{auth_response.error_description}"
            )
            raise AuthorizationDeniedError(
                auth_response.error,
                auth_response.error_description,
                auth_response.error_uri,
            )

        validate_state(expected_state, auth_response.state)

        if auth_response.code is None:
            raise AuthorizationCallbackError("Missing authorization code")

        logger.info("Authorization callback successful - received authorization code")
        return auth_response.code

    def _parse_callback_url(self, callback_url: str) -> AuthorizationResponse:
        """Parse callback URL into AuthorizationResponse.

        Raises:
            AuthorizationCallbackError: If URL is malformed
        """
        try:
            parsed = urlparse(callback_url)
            query_params = parse_qs(parsed.query)

            # Extract single values from query parameter lists
            def get_single_param(key: str) -> str | None:
                values = query_params.get(key, [])
                return values[0] if values else None

            return AuthorizationResponse(
                code=get_single_param("code"),
                state=get_single_param("state"),
                error=get_single_param("error"),
                error_description=get_single_param("error_description"),
                error_uri=get_single_param("error_uri"),
            )

        except (TypeError, ValueError) as e:
            raise AuthorizationCallbackError(
                f"Failed to parse callback URL: {e}"
            ) from e
