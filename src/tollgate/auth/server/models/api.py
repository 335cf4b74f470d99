"""Request and response bodies of the session endpoints.

Field names are camelCase on the wire; failures reuse the success shape
with every field null.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class TokenExchangeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(alias="accessToken", min_length=1)


class UserResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    email: str | None = None
    display_name: str | None = Field(default=None, alias="displayName")
    roles: list[str] = Field(default_factory=list)


class AuthResponse(BaseModel):
    """Token exchange response."""

    model_config = ConfigDict(populate_by_name=True)

    session_token: str | None = Field(default=None, alias="sessionToken")
    user: UserResponse | None = None
    expires_in: int | None = Field(default=None, alias="expiresIn")

    def to_json(self) -> dict[str, object]:
        return self.model_dump(by_alias=True)


class SessionRefreshResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_token: str | None = Field(default=None, alias="sessionToken")
    expires_in: int | None = Field(default=None, alias="expiresIn")

    def to_json(self) -> dict[str, object]:
        return self.model_dump(by_alias=True)
