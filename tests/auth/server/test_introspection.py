"""Tests for opaque token validation via introspection.

High-impact tests covering:
- Active token normalization into a user identity
- Fail-closed handling of inactive tokens, errors and timeouts
- Endpoint resolution from issuer discovery
"""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from tollgate.auth.client.models.discovery import ProviderMetadata
from tollgate.auth.client.primitives.discovery import DiscoveryCache
from tollgate.auth.models.errors import (
    DiscoveryUnavailableError,
    TokenValidationError,
)
from tollgate.auth.server.services.introspection import OpaqueTokenValidator

INTROSPECTION_URI = "https://auth.example.com/introspect"


def make_response(status_code: int, body) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    return response


class TestOpaqueTokenValidator:
    def setup_method(self):
        # Arrange
        self.validator = OpaqueTokenValidator(
            introspection_uri=INTROSPECTION_URI,
            client_id="resource-server",
            client_secret="s3cret",
        )
        self.validator._http_client = AsyncMock()

    async def test_active_token_yields_identity(self):
        # Arrange
        self.validator._http_client.post.return_value = make_response(
            200,
            {
                "active": True,
                "sub": "user123",
                "email": "user@example.com",
                "given_name": "Jane",
                "family_name": "Doe",
                "groups": ["staff", "admins"],
            },
        )

        # Act
        identity = await self.validator.validate("opaque-token")

        # Assert
        assert identity.user_id == "user123"
        assert identity.display_name == "Jane Doe"
        assert identity.roles == ("staff", "admins")

        call_args = self.validator._http_client.post.call_args
        assert call_args[0][0] == INTROSPECTION_URI
        assert call_args[1]["data"] == {
            "token": "opaque-token",
            "token_type_hint": "access_token",
        }
        assert call_args[1]["auth"] == ("resource-server", "s3cret")

    async def test_absent_roles_yield_single_default_role(self):
        # Arrange
        self.validator._http_client.post.return_value = make_response(
            200, {"active": True, "sub": "u1"}
        )

        # Act
        identity = await self.validator.validate("opaque-token")

        # Assert
        assert identity.roles == ("USER",)

    async def test_comma_separated_roles(self):
        # Arrange
        self.validator._http_client.post.return_value = make_response(
            200, {"active": True, "sub": "u1", "roles": "a,b,c"}
        )

        # Act
        identity = await self.validator.validate("opaque-token")

        # Assert
        assert identity.roles == ("a", "b", "c")

    @pytest.mark.parametrize(
        "body",
        [
            {"active": False},
            {"sub": "u1"},
            {"active": "true", "sub": "u1"},
            ["active"],
        ],
    )
    async def test_inactive_token_is_rejected(self, body):
        # Arrange
        self.validator._http_client.post.return_value = make_response(200, body)

        # Act & Assert
        with pytest.raises(TokenValidationError, match="not active"):
            await self.validator.validate("opaque-token")

    async def test_active_token_without_subject_is_rejected(self):
        # Arrange
        self.validator._http_client.post.return_value = make_response(
            200, {"active": True, "email": "x@example.com"}
        )

        # Act & Assert
        with pytest.raises(TokenValidationError, match="subject"):
            await self.validator.validate("opaque-token")

    async def test_error_status_is_rejected_without_leaking_body(self):
        # Arrange
        self.validator._http_client.post.return_value = make_response(
            500, {"trace": "provider internals"}
        )

        # Act & Assert
        with pytest.raises(TokenValidationError) as exc_info:
            await self.validator.validate("opaque-token")
        assert "provider internals" not in str(exc_info.value)

    async def test_timeout_fails_closed(self):
        # Arrange
        self.validator._http_client.post.side_effect = httpx.ReadTimeout("slow")

        # Act & Assert
        with pytest.raises(TokenValidationError, match="timed out") as exc_info:
            await self.validator.validate("opaque-token")
        assert isinstance(exc_info.value.__cause__, httpx.ReadTimeout)

    async def test_transport_error_is_wrapped(self):
        # Arrange
        self.validator._http_client.post.side_effect = httpx.ConnectError("refused")

        # Act & Assert
        with pytest.raises(TokenValidationError):
            await self.validator.validate("opaque-token")

    async def test_empty_token_is_rejected_without_network_call(self):
        with pytest.raises(TokenValidationError):
            await self.validator.validate("")
        self.validator._http_client.post.assert_not_called()


class TestIntrospectionEndpointDiscovery:
    def setup_method(self):
        self.discovery_cache = MagicMock(spec=DiscoveryCache)
        self.validator = OpaqueTokenValidator(
            issuer="https://auth.example.com",
            client_id="resource-server",
            discovery_cache=self.discovery_cache,
        )
        self.validator._http_client = AsyncMock()
        self.validator._http_client.post.return_value = make_response(
            200, {"active": True, "sub": "u1"}
        )

    async def test_endpoint_resolved_from_issuer_metadata(self):
        # Arrange
        self.discovery_cache.get = AsyncMock(
            return_value=ProviderMetadata(
                issuer="https://auth.example.com",
                authorization_endpoint="https://auth.example.com/authorize",
                token_endpoint="https://auth.example.com/token",
                introspection_endpoint=INTROSPECTION_URI,
            )
        )

        # Act
        await self.validator.validate("opaque-token")
        await self.validator.validate("opaque-token")

        # Assert
        assert self.validator._http_client.post.call_args[0][0] == INTROSPECTION_URI
        self.discovery_cache.get.assert_awaited_once_with("https://auth.example.com")

    async def test_discovery_failure_is_validation_failure(self):
        # Arrange
        self.discovery_cache.get = AsyncMock(
            side_effect=DiscoveryUnavailableError("down")
        )

        # Act & Assert
        with pytest.raises(TokenValidationError):
            await self.validator.validate("opaque-token")
        self.validator._http_client.post.assert_not_called()

    async def test_issuer_without_introspection_endpoint(self):
        # Arrange
        self.discovery_cache.get = AsyncMock(
            return_value=ProviderMetadata(
                issuer="https://auth.example.com",
                authorization_endpoint="https://auth.example.com/authorize",
                token_endpoint="https://auth.example.com/token",
            )
        )

        # Act & Assert
        with pytest.raises(TokenValidationError, match="introspection endpoint"):
            await self.validator.validate("opaque-token")

    def test_requires_endpoint_or_issuer(self):
        with pytest.raises(ValueError):
            OpaqueTokenValidator()

    async def test_close_leaves_shared_cache_open(self):
        # Arrange
        self.discovery_cache.close = AsyncMock()

        # Act
        await self.validator.close()

        # Assert
        self.validator._http_client.aclose.assert_awaited_once()
        self.discovery_cache.close.assert_not_called()

    async def test_close_releases_cache_created_for_issuer(self, monkeypatch):
        # Arrange
        created = MagicMock(spec=DiscoveryCache)
        created.get = AsyncMock(
            return_value=ProviderMetadata(
                issuer="https://auth.example.com",
                authorization_endpoint="https://auth.example.com/authorize",
                token_endpoint="https://auth.example.com/token",
                introspection_endpoint=INTROSPECTION_URI,
            )
        )
        created.close = AsyncMock()
        monkeypatch.setattr(
            "tollgate.auth.server.services.introspection.DiscoveryCache",
            MagicMock(return_value=created),
        )
        validator = OpaqueTokenValidator(issuer="https://auth.example.com")
        validator._http_client = AsyncMock()
        validator._http_client.post.return_value = make_response(
            200, {"active": True, "sub": "u1"}
        )
        await validator.validate("opaque-token")

        # Act
        await validator.close()

        # Assert
        created.close.assert_awaited_once()
