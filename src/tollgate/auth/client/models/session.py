"""Backend session exchange response models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

SESSION_TOKEN_HEADER = "X-Session-Token"


class SessionUser(BaseModel):
    """User record returned by the token-exchange endpoint."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    user_id: str = Field(alias="userId")
    email: str | None = None
    display_name: str | None = Field(default=None, alias="displayName")
    roles: list[str] = Field(default_factory=list)


class SessionGrant(BaseModel):
    """Session token issued by the resource server.

    ``user`` is only present on token exchange; refresh returns the token
    and its lifetime alone.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    session_token: str = Field(alias="sessionToken")
    expires_in: int = Field(alias="expiresIn")
    user: SessionUser | None = None
