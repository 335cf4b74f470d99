"""Canonical user identity shared by the validator, session service and filters."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

DEFAULT_ROLE = "USER"
AUTHORITY_PREFIX = "ROLE_"


@dataclass(frozen=True)
class UserIdentity:
    """Provider-independent view of an authenticated user.

    Roles are always a non-empty tuple; an empty input becomes ``("USER",)``.
    """

    user_id: str
    email: str | None = None
    display_name: str | None = None
    roles: tuple[str, ...] = field(default=(DEFAULT_ROLE,))

    def __post_init__(self) -> None:
        if not self.user_id:
            raise ValueError("user_id must be a non-empty string")
        if not isinstance(self.roles, tuple):
            object.__setattr__(self, "roles", tuple(self.roles))
        if not self.roles:
            object.__setattr__(self, "roles", (DEFAULT_ROLE,))

    @property
    def authorities(self) -> tuple[str, ...]:
        """Roles in authority form, e.g. ``ROLE_ADMIN``."""
        return to_authorities(self.roles)


def to_authorities(roles: Iterable[str]) -> tuple[str, ...]:
    return tuple(f"{AUTHORITY_PREFIX}{role}" for role in roles)
