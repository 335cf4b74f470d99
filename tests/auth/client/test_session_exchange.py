from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from tollgate.auth.client.services.session import SessionExchangeClient
from tollgate.auth.models.errors import (
    ReauthenticationRequiredError,
    TokenError,
    TokenExchangeError,
)


def make_response(status_code: int, body=None, headers=None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body or {}
    response.headers = httpx.Headers(headers or {})
    return response


class TestSessionExchangeClient:
    def setup_method(self):
        # Arrange
        self.client = SessionExchangeClient("https://api.example.com/")
        self.client._http_client = AsyncMock()

    async def test_exchange_stores_session_token(self):
        # Arrange
        self.client._http_client.post.return_value = make_response(
            200,
            {
                "sessionToken": "a.b.c",
                "expiresIn": 1200,
                "user": {
                    "userId": "u1",
                    "email": "u1@example.com",
                    "displayName": "User One",
                    "roles": ["USER"],
                },
            },
        )

        # Act
        grant = await self.client.exchange_access_token("opaque-token")

        # Assert
        assert grant.session_token == "a.b.c"
        assert grant.expires_in == 1200
        assert grant.user.user_id == "u1"
        assert self.client.session_token == "a.b.c"
        call_args = self.client._http_client.post.call_args
        assert call_args[0][0] == "https://api.example.com/api/auth/token-exchange"
        assert call_args[1]["json"] == {"accessToken": "opaque-token"}

    async def test_rejected_exchange_raises(self):
        # Arrange
        self.client._http_client.post.return_value = make_response(
            401, {"sessionToken": None, "user": None, "expiresIn": None}
        )

        # Act & Assert
        with pytest.raises(TokenExchangeError, match="401"):
            await self.client.exchange_access_token("opaque-token")
        assert self.client.session_token is None

    async def test_malformed_body_raises_token_error(self):
        # Arrange
        self.client._http_client.post.return_value = make_response(200, {"x": 1})

        # Act & Assert
        with pytest.raises(TokenError):
            await self.client.exchange_access_token("opaque-token")

    async def test_refresh_sends_bearer_session_token(self):
        # Arrange
        self.client.session_token = "a.b.c"
        self.client._http_client.post.return_value = make_response(
            200, {"sessionToken": "d.e.f", "expiresIn": 1200}
        )

        # Act
        grant = await self.client.refresh_session()

        # Assert
        assert grant.session_token == "d.e.f"
        assert self.client.session_token == "d.e.f"
        headers = self.client._http_client.post.call_args[1]["headers"]
        assert headers == {"Authorization": "Bearer a.b.c"}

    async def test_failed_refresh_discards_session(self):
        # Arrange
        self.client.session_token = "a.b.c"
        self.client._http_client.post.return_value = make_response(401)

        # Act & Assert
        with pytest.raises(ReauthenticationRequiredError):
            await self.client.refresh_session()
        assert self.client.session_token is None

    async def test_request_picks_up_rotated_session_token(self):
        # Arrange
        self.client.session_token = "a.b.c"
        self.client._http_client.request.return_value = make_response(
            200, headers={"X-Session-Token": "g.h.i"}
        )

        # Act
        await self.client.request("GET", "/api/tasks")

        # Assert
        call_args = self.client._http_client.request.call_args
        assert call_args[0] == ("GET", "https://api.example.com/api/tasks")
        assert call_args[1]["headers"]["Authorization"] == "Bearer a.b.c"
        assert self.client.session_token == "g.h.i"
