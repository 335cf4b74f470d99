import pytest
from pydantic import ValidationError

from tollgate.settings import (
    ClientSettings,
    IntrospectionSettings,
    ServerSettings,
    SessionSettings,
    origin_of,
)


class TestSettings:
    def test_session_defaults(self, monkeypatch):
        # Arrange
        monkeypatch.setenv("SESSION_SECRET", "s" * 32)

        # Act
        settings = SessionSettings()

        # Assert
        assert settings.inactivity_timeout == 1200
        assert settings.max_session_duration == 86400
        assert settings.algorithm == "HS256"

    def test_short_session_secret_is_rejected(self, monkeypatch):
        monkeypatch.setenv("SESSION_SECRET", "short")
        with pytest.raises(ValidationError):
            SessionSettings()

    def test_introspection_from_environment(self, monkeypatch):
        # Arrange
        monkeypatch.setenv("OIDC_ISSUER", "https://auth.example.com")
        monkeypatch.setenv("OIDC_CLIENT_ID", "resource-server")

        # Act
        settings = IntrospectionSettings()

        # Assert
        assert settings.issuer == "https://auth.example.com"
        assert settings.client_id == "resource-server"
        assert settings.introspection_uri is None
        assert settings.timeout == 10.0

    def test_client_application_origin(self):
        settings = ClientSettings(
            authority="https://auth.example.com",
            client_id="spa",
            redirect_uri="https://app.example.com:8443/callback?x=1",
        )
        assert settings.application_origin == "https://app.example.com:8443"
        assert settings.scope == "openid profile email"

    def test_server_log_level_is_normalized(self):
        assert ServerSettings(log_level="DEBUG").log_level == "debug"
        with pytest.raises(ValidationError):
            ServerSettings(log_level="verbose")

    def test_server_public_paths_include_auth_health(self):
        assert "/api/auth/health" in ServerSettings().public_paths

    def test_origin_of(self):
        assert origin_of("http://localhost:3000/a/b") == "http://localhost:3000"
