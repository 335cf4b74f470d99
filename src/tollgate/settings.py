"""Application settings via Pydantic Settings.

Values come from the environment (and a ``.env`` file loaded by ``main``).
"""

from __future__ import annotations

from urllib.parse import urlparse

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MIN_SECRET_LENGTH = 32


def origin_of(url: str) -> str:
    """Return the ``scheme://host[:port]`` origin of a URL."""
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


class SessionSettings(BaseSettings):
    """Session token signing and timeout policy."""

    model_config = SettingsConfigDict(env_prefix="SESSION_")

    secret: str = Field(min_length=MIN_SECRET_LENGTH)
    algorithm: str = "HS256"
    inactivity_timeout: int = Field(default=1200, gt=0)  # 20 minutes
    max_session_duration: int = Field(default=86400, gt=0)  # 24 hours


class IntrospectionSettings(BaseSettings):
    """Opaque token introspection (RFC 7662) settings."""

    model_config = SettingsConfigDict(env_prefix="OIDC_")

    introspection_uri: str | None = None
    issuer: str | None = None  # Used to discover the endpoint when no URI is set
    client_id: str | None = None
    client_secret: str | None = None
    timeout: float = Field(default=10.0, gt=0)


class ClientSettings(BaseSettings):
    """Authorization code + PKCE client settings."""

    model_config = SettingsConfigDict(env_prefix="OIDC_CLIENT_")

    authority: str
    client_id: str
    redirect_uri: str
    scope: str = "openid profile email"
    post_logout_redirect_uri: str | None = None
    timeout: float = Field(default=10.0, gt=0)

    @property
    def application_origin(self) -> str:
        """Origin of the redirect URI, used as the default post-logout target."""
        return origin_of(self.redirect_uri)


class ServerSettings(BaseSettings):
    """HTTP server settings for the resource server."""

    model_config = SettingsConfigDict(env_prefix="TOLLGATE_")

    host: str = "127.0.0.1"
    port: int = 8080
    log_level: str = "info"
    cors_allowed_origins: list[str] = Field(default=["http://localhost:3000"])
    protected_prefix: str = "/api/"
    public_paths: list[str] = Field(
        default=[
            "/health/",
            "/info/",
            "/docs/",
            "/openapi.json",
            "/.well-known/",
            "/api/auth/health",
        ]
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.lower()
        if v not in {"critical", "error", "warning", "info", "debug"}:
            raise ValueError(f"Unsupported log level: {v}")
        return v
