"""OpenID Connect authorization code + PKCE client.

Coordinates discovery, PKCE generation, flow storage and token exchange to
provide the browser-side half of the login lifecycle: begin, complete,
refresh and logout.
"""

from __future__ import annotations

import logging

from tollgate.auth.audit import audit
from tollgate.auth.client.models.discovery import ProviderMetadata
from tollgate.auth.client.models.flow import EndSessionRequest
from tollgate.auth.client.models.tokens import (
    RefreshTokenRequest,
    TokenRequest,
    TokenResponse,
    TokenState,
)
from tollgate.auth.client.primitives.discovery import DiscoveryCache, OIDCDiscovery
from tollgate.auth.client.primitives.pkce import PKCEManager
from tollgate.auth.client.services.flow import OAuth2FlowManager
from tollgate.auth.client.services.storage import (
    CODE_VERIFIER_KEY,
    STATE_KEY,
    FlowStorage,
    MemoryFlowStorage,
    clear_request_context,
    save_request_context,
)
from tollgate.auth.client.services.tokens import OAuth2TokenManager
from tollgate.auth.models.errors import (
    FlowStateError,
    ForgeryDetectedError,
    ReauthenticationRequiredError,
    TokenError,
    TokenExchangeError,
)
from tollgate.settings import ClientSettings, origin_of

logger = logging.getLogger(__name__)


class OIDCClient:
    """Authorization code + PKCE client for a single authority.

    Token state is cached on the instance; flow state (verifier, state,
    nonce) lives in the injected ``FlowStorage`` and only for the duration
    of one login attempt.
    """

    def __init__(
        self,
        authority: str,
        client_id: str,
        redirect_uri: str,
        scope: str = "openid profile email",
        post_logout_redirect_uri: str | None = None,
        flow_storage: FlowStorage | None = None,
        discovery_cache: DiscoveryCache | None = None,
        timeout: float = 10.0,
    ):
        """Initialize the client.

        Args:
            authority: Issuer URL of the authorization server
            client_id: Registered public client identifier
            redirect_uri: Callback URI registered with the provider
            scope: Space-separated scopes to request
            post_logout_redirect_uri: Where the provider sends the user after
                logout; defaults to the application origin
            flow_storage: Per-origin storage for in-flight login state
            discovery_cache: Shared metadata cache; one is created if omitted
            timeout: HTTP request timeout in seconds
        """
        self.authority = authority
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.scope = scope
        self.post_logout_redirect_uri = post_logout_redirect_uri or origin_of(
            redirect_uri
        )

        self.flow_storage = (
            flow_storage if flow_storage is not None else MemoryFlowStorage()
        )
        self.token_state = TokenState()

        self.discovery_cache = discovery_cache or DiscoveryCache(
            OIDCDiscovery(timeout=timeout)
        )
        self.pkce_manager = PKCEManager()
        self.flow_manager = OAuth2FlowManager()
        self.token_manager = OAuth2TokenManager(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: ClientSettings, **kwargs) -> OIDCClient:
        return cls(
            authority=settings.authority,
            client_id=settings.client_id,
            redirect_uri=settings.redirect_uri,
            scope=settings.scope,
            post_logout_redirect_uri=settings.post_logout_redirect_uri,
            timeout=settings.timeout,
            **kwargs,
        )

    async def begin_login(self) -> str:
        """Start a login attempt and return the authorization URL.

        Any previous in-flight attempt is overwritten.

        Raises:
            DiscoveryUnavailableError: If provider metadata cannot be fetched
        """
        metadata = await self._metadata()

        pkce = self.pkce_manager.generate_parameters()
        context = self.pkce_manager.generate_request_context(pkce)
        save_request_context(self.flow_storage, context)

        logger.debug("Starting authorization code flow")
        return self.flow_manager.build_authorization_url(
            metadata,
            self.client_id,
            self.redirect_uri,
            self.scope,
            pkce,
            context,
        )

    async def complete_login(self, callback_url: str) -> TokenResponse:
        """Finish a login attempt from the provider's callback URL.

        The callback is fully checked before any network call. Flow state is
        cleared whatever the outcome, so a callback can never be replayed.

        Raises:
            AuthorizationDeniedError: If the provider reported an error
            ForgeryDetectedError: If the state does not match the stored one
            AuthorizationCallbackError: If the callback carries no code
            FlowStateError: If no verifier is stored for this attempt
            DiscoveryUnavailableError: If provider metadata cannot be fetched
            TokenExchangeError: If the token endpoint rejects the code
        """
        try:
            expected_state = self.flow_storage.get(STATE_KEY)
            code_verifier = self.flow_storage.get(CODE_VERIFIER_KEY)

            try:
                code = self.flow_manager.handle_authorization_callback(
                    callback_url, expected_state
                )
            except ForgeryDetectedError as e:
                audit(
                    "forgery_detected",
                    client_id=self.client_id,
                    authority=self.authority,
                    reason=str(e),
                )
                raise

            if not code_verifier:
                raise FlowStateError("No code verifier stored for this login attempt")

            metadata = await self._metadata()
            token_request = TokenRequest(
                token_endpoint=metadata.token_endpoint,
                code=code,
                redirect_uri=self.redirect_uri,
                client_id=self.client_id,
                code_verifier=code_verifier,
            )

            token_response = await self.token_manager.exchange_code_for_token(
                token_request
            )
            if not token_response.is_success():
                raise TokenExchangeError(
                    f"Token exchange failed: {token_response.error}",
                    token_response.error,
                )

            self.token_state.update_from_response(token_response)
            logger.info(f"Completed login for client {self.client_id}")
            return token_response

        finally:
            clear_request_context(self.flow_storage)

    async def refresh(self, refresh_token: str | None = None) -> TokenResponse:
        """Exchange a refresh token for a new token set.

        Args:
            refresh_token: Token to use; defaults to the cached one

        Raises:
            ReauthenticationRequiredError: On any failure. Cached tokens are
                discarded first; the caller must start a new login.
        """
        refresh_token = refresh_token or self.token_state.refresh_token
        if not refresh_token:
            self.token_state.clear()
            raise ReauthenticationRequiredError("No refresh token available")

        try:
            metadata = await self._metadata()
            token_response = await self.token_manager.refresh_access_token(
                RefreshTokenRequest(
                    token_endpoint=metadata.token_endpoint,
                    refresh_token=refresh_token,
                    client_id=self.client_id,
                )
            )
            if not token_response.is_success():
                raise TokenError(f"Token refresh failed: {token_response.error}")

        except Exception as e:
            logger.warning(f"Token refresh failed, clearing cached tokens: {e}")
            self.token_state.clear()
            raise ReauthenticationRequiredError(
                "Refresh failed - re-authentication required"
            ) from e

        self.token_state.update_from_response(token_response)
        logger.info("Successfully refreshed access token")
        return token_response

    async def get_access_token(self) -> str | None:
        """Return a usable access token, refreshing it when close to expiry.

        Returns None when no login has completed.

        Raises:
            ReauthenticationRequiredError: If a needed refresh fails
        """
        if self.token_state.is_valid():
            return self.token_state.access_token

        if not self.token_state.access_token:
            return None

        await self.refresh()
        return self.token_state.access_token

    async def logout(self, id_token_hint: str | None = None) -> str:
        """Clear local state and return the URL to send the user to.

        Local cleanup happens before anything that can fail.

        Args:
            id_token_hint: ID token to pass to the end-session endpoint;
                defaults to the cached one

        Raises:
            DiscoveryUnavailableError: If provider metadata cannot be fetched
        """
        id_token_hint = id_token_hint or self.token_state.id_token
        self.token_state.clear()
        clear_request_context(self.flow_storage)

        metadata = await self._metadata()
        if not metadata.end_session_endpoint:
            logger.debug("Provider has no end-session endpoint")
            return self.post_logout_redirect_uri

        return EndSessionRequest(
            end_session_endpoint=metadata.end_session_endpoint,
            post_logout_redirect_uri=self.post_logout_redirect_uri,
            id_token_hint=id_token_hint,
        ).build_logout_url()

    async def _metadata(self) -> ProviderMetadata:
        return await self.discovery_cache.get(self.authority)

    async def close(self) -> None:
        """Close all service connections."""
        await self.discovery_cache.close()
        await self.token_manager.close()
