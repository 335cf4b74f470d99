"""Opaque access token validation via RFC 7662 introspection.

Opaque tokens carry no verifiable structure, so every trust decision is
delegated to the issuer's introspection endpoint. Any failure (transport,
timeout, non-2xx, inactive token, no subject) is a validation failure.
"""

from __future__ import annotations

import logging

import httpx

from tollgate.auth.client.primitives.discovery import DiscoveryCache
from tollgate.auth.models.errors import (
    DiscoveryUnavailableError,
    TokenValidationError,
)
from tollgate.auth.models.identity import UserIdentity
from tollgate.auth.server.services.claims import identity_from_claims
from tollgate.settings import IntrospectionSettings

logger = logging.getLogger(__name__)


class OpaqueTokenValidator:
    """Validates opaque tokens against an introspection endpoint.

    The endpoint is either configured directly or resolved from the
    issuer's discovery document on first use.
    """

    def __init__(
        self,
        introspection_uri: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        issuer: str | None = None,
        discovery_cache: DiscoveryCache | None = None,
        timeout: float = 10.0,
    ):
        """Initialize validator.

        Args:
            introspection_uri: Introspection endpoint URL
            client_id: Resource server client id for endpoint authentication
            client_secret: Resource server client secret
            issuer: Issuer used to discover the endpoint when no URI is given
            discovery_cache: Shared metadata cache for endpoint discovery
            timeout: HTTP request timeout in seconds
        """
        if not introspection_uri and not issuer:
            raise ValueError("Either introspection_uri or issuer must be configured")

        self.introspection_uri = introspection_uri
        self.issuer = issuer
        self.timeout = timeout
        self._auth = (client_id, client_secret or "") if client_id else None
        self._discovery_cache = discovery_cache
        self._owns_discovery_cache = False
        self._http_client = httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(
        cls,
        settings: IntrospectionSettings,
        discovery_cache: DiscoveryCache | None = None,
    ) -> OpaqueTokenValidator:
        return cls(
            introspection_uri=settings.introspection_uri,
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            issuer=settings.issuer,
            discovery_cache=discovery_cache,
            timeout=settings.timeout,
        )

    async def validate(self, opaque_token: str) -> UserIdentity:
        """Introspect a token and normalize its attributes.

        Args:
            opaque_token: Access token issued by the authorization server

        Returns:
            Canonical identity of the token's subject

        Raises:
            TokenValidationError: If the token is not valid for any reason
        """
        if not opaque_token:
            raise TokenValidationError("Empty access token")

        endpoint = await self._resolve_endpoint()

        try:
            response = await self._http_client.post(
                endpoint,
                data={"token": opaque_token, "token_type_hint": "access_token"},
                headers={"Accept": "application/json"},
                auth=self._auth,
            )
        except httpx.TimeoutException as e:
            raise TokenValidationError("Token introspection timed out") from e
        except httpx.HTTPError as e:
            raise TokenValidationError(f"Token introspection failed: {e}") from e

        if not 200 <= response.status_code < 300:
            # Provider bodies stay server-side
            logger.warning(
                f"Introspection endpoint returned status {response.status_code}"
            )
            raise TokenValidationError(
                f"Introspection endpoint returned status {response.status_code}"
            )

        try:
            attributes = response.json()
        except ValueError as e:
            raise TokenValidationError("Introspection response is not JSON") from e

        if not isinstance(attributes, dict) or attributes.get("active") is not True:
            raise TokenValidationError("Token is not active")

        try:
            identity = identity_from_claims(attributes)
        except ValueError as e:
            raise TokenValidationError(str(e)) from e

        logger.debug(f"Introspected token for subject {identity.user_id}")
        return identity

    async def _resolve_endpoint(self) -> str:
        if self.introspection_uri:
            return self.introspection_uri

        if self._discovery_cache is None:
            self._discovery_cache = DiscoveryCache()
            self._owns_discovery_cache = True

        try:
            metadata = await self._discovery_cache.get(self.issuer)
        except DiscoveryUnavailableError as e:
            raise TokenValidationError(
                "Introspection endpoint could not be discovered"
            ) from e

        if not metadata.introspection_endpoint:
            raise TokenValidationError(
                f"Issuer {self.issuer} does not advertise an introspection endpoint"
            )

        self.introspection_uri = metadata.introspection_endpoint
        return self.introspection_uri

    async def close(self) -> None:
        """Close the HTTP client and a discovery cache created here.

        A cache passed in by the caller is shared and left open.
        """
        await self._http_client.aclose()
        if self._owns_discovery_cache:
            await self._discovery_cache.close()
