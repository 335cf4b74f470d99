"""Provider metadata discovery primitive.

Implements OpenID Connect Discovery 1.0 and RFC 8414 (Authorization Server
Metadata) lookups, plus a process-lifetime cache that fetches each
authority's metadata at most once even under concurrent first access.
"""

from __future__ import annotations

import asyncio
import logging
from urllib.parse import urljoin, urlparse

import httpx
from pydantic import ValidationError

from tollgate.auth.client.models.discovery import ProviderMetadata
from tollgate.auth.models.errors import DiscoveryUnavailableError

logger = logging.getLogger(__name__)


class OIDCDiscovery:
    """Fetches provider metadata from well-known endpoints.

    Tries the OpenID Connect configuration document first, then the RFC 8414
    authorization server document, each in path-aware then root form. Every
    candidate is a well-known document of the configured authority; no
    endpoint is ever guessed.
    """

    def __init__(self, timeout: float = 10.0):
        """Initialize discovery.

        Args:
            timeout: HTTP request timeout in seconds
        """
        self.timeout = timeout
        self._http_client = httpx.AsyncClient(timeout=timeout)

    async def fetch_provider_metadata(self, authority: str) -> ProviderMetadata:
        """Fetch and parse provider metadata for an authority.

        Args:
            authority: Issuer URL of the authorization server

        Returns:
            Parsed provider metadata

        Raises:
            DiscoveryUnavailableError: If no candidate document could be used
        """
        discovery_urls = self._build_discovery_urls(authority)
        last_error: Exception | None = None

        for url in discovery_urls:
            try:
                logger.debug(f"Trying provider metadata discovery: {url}")
                response = await self._http_client.get(
                    url, headers={"Accept": "application/json"}
                )

                if response.status_code == 200:
                    metadata = ProviderMetadata.model_validate_json(response.text)
                    logger.debug(f"Discovered provider metadata from: {url}")
                    return metadata
                elif response.status_code >= 500:
                    # Server error - don't try other URLs
                    logger.warning(
                        f"Provider metadata endpoint {url} returned "
                        f"{response.status_code}"
                    )
                    break

            except ValidationError as e:
                # Invalid metadata - try next URL
                last_error = e
                continue
            except httpx.RequestError as e:
                # Network error or timeout - try next URL
                last_error = e
                continue

        raise DiscoveryUnavailableError(
            f"Failed to discover provider metadata for {authority}. "
            f"Tried URLs: {discovery_urls}"
        ) from last_error

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._http_client.aclose()

    def _build_discovery_urls(self, authority: str) -> list[str]:
        """Build ordered list of discovery URLs to try.

        OIDC Discovery appends the well-known suffix to the issuer path;
        RFC 8414 Section 3 inserts it between host and path. Both are tried
        before falling back to the root documents.

        Args:
            authority: Authorization server URL

        Returns:
            Ordered list of URLs to try for discovery
        """
        parsed = urlparse(authority)
        base_url = f"{parsed.scheme}://{parsed.netloc}"
        path = parsed.path.rstrip("/")
        urls = []

        if path:
            urls.append(f"{base_url}{path}/.well-known/openid-configuration")
            urls.append(
                urljoin(base_url, f"/.well-known/oauth-authorization-server{path}")
            )

        urls.append(urljoin(base_url, "/.well-known/openid-configuration"))
        urls.append(urljoin(base_url, "/.well-known/oauth-authorization-server"))

        return urls


class DiscoveryCache:
    """Memoizes provider metadata per authority for the process lifetime.

    Concurrent first requests for the same authority share one in-flight
    fetch. A failed fetch is not cached, so a later call performs a fresh
    attempt; retry policy belongs to the caller.
    """

    def __init__(self, discovery: OIDCDiscovery | None = None):
        self._discovery = discovery or OIDCDiscovery()
        self._metadata: dict[str, ProviderMetadata] = {}
        self._inflight: dict[str, asyncio.Task[ProviderMetadata]] = {}

    async def get(self, authority: str) -> ProviderMetadata:
        """Return cached metadata, fetching it once if needed.

        Raises:
            DiscoveryUnavailableError: If the fetch fails
        """
        key = self._normalize(authority)

        cached = self._metadata.get(key)
        if cached is not None:
            return cached

        # No await between lookup and insert, so only one task is created.
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(key))
            self._inflight[key] = task

        # Shield so one cancelled waiter does not cancel the shared fetch.
        return await asyncio.shield(task)

    def get_cached(self, authority: str) -> ProviderMetadata | None:
        return self._metadata.get(self._normalize(authority))

    def invalidate(self, authority: str) -> None:
        self._metadata.pop(self._normalize(authority), None)

    async def close(self) -> None:
        await self._discovery.close()

    async def _load(self, key: str) -> ProviderMetadata:
        try:
            metadata = await self._discovery.fetch_provider_metadata(key)
            self._metadata[key] = metadata
            logger.info(f"Cached provider metadata for {key}")
            return metadata
        finally:
            self._inflight.pop(key, None)

    @staticmethod
    def _normalize(authority: str) -> str:
        parsed = urlparse(authority)
        normalized = f"{parsed.scheme.lower()}://{parsed.netloc.lower()}"
        if parsed.path and parsed.path != "/":
            normalized += parsed.path.rstrip("/")
        return normalized
