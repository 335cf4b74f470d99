"""Discovery-related models for OpenID Provider / OAuth server metadata.

Contains the provider metadata model (OpenID Connect Discovery 1.0 and
RFC 8414) used to locate authorization, token, end-session and
introspection endpoints.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProviderMetadata(BaseModel):
    """Authorization server metadata.

    Only the fields the login, logout and introspection flows rely on are
    modelled; anything else the provider publishes is preserved as extra.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    issuer: str
    authorization_endpoint: str
    token_endpoint: str

    # PKCE support
    code_challenge_methods_supported: list[str] = Field(default=["S256"])

    # Optional but commonly used
    end_session_endpoint: str | None = None
    introspection_endpoint: str | None = None

    @field_validator("code_challenge_methods_supported")
    @classmethod
    def validate_pkce_support(cls, v: list[str]) -> list[str]:
        if "S256" not in v:
            raise ValueError("Authorization server must support S256 PKCE method")
        return v
