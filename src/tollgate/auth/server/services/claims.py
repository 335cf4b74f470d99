"""Normalization of provider claims into a ``UserIdentity``.

Providers disagree on claim names and shapes: roles may arrive under
several names, as a list, as a comma-separated string, or not at all. The
helpers here accept all of those and never raise on an unexpected shape;
only a missing subject is fatal.
"""

from __future__ import annotations

from typing import Any, Mapping

from tollgate.auth.models.identity import DEFAULT_ROLE, UserIdentity

SUBJECT_CLAIMS = ("sub", "username", "preferred_username")
# Priority order; a dotted name is a nested lookup
ROLE_CLAIMS = ("roles", "authorities", "groups", "realm_access.roles")


def lookup_claim(claims: Mapping[str, Any], path: str) -> Any:
    """Return the value at a dotted claim path, or None if any step is missing."""
    value: Any = claims
    for part in path.split("."):
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
    return value


def parse_roles(value: Any) -> list[str]:
    """Parse one role claim value.

    Handles the three shapes a provider may send:
    - absent (None) -> no roles
    - comma-separated string -> split and trimmed
    - list (or tuple/set) -> each non-empty entry as a string

    Anything else yields no roles.
    """
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple, set, frozenset)):
        entries = (str(item).strip() for item in value if item is not None)
        return [entry for entry in entries if entry]
    return []


def extract_roles(claims: Mapping[str, Any]) -> tuple[str, ...]:
    """Return the roles from the first role claim that yields any.

    Duplicates are dropped keeping first occurrence. Falls back to the
    single default role so the result is never empty.
    """
    for path in ROLE_CLAIMS:
        roles = parse_roles(lookup_claim(claims, path))
        if roles:
            return tuple(dict.fromkeys(roles))
    return (DEFAULT_ROLE,)


def extract_subject(claims: Mapping[str, Any]) -> str | None:
    for name in SUBJECT_CLAIMS:
        value = claims.get(name)
        if isinstance(value, str) and value:
            return value
    return None


def extract_display_name(claims: Mapping[str, Any]) -> str | None:
    """``name``, else ``given_name family_name`` or whichever part exists."""
    name = _string_claim(claims, "name")
    if name:
        return name

    given_name = _string_claim(claims, "given_name")
    family_name = _string_claim(claims, "family_name")
    if given_name and family_name:
        return f"{given_name} {family_name}"
    return given_name or family_name


def identity_from_claims(claims: Mapping[str, Any]) -> UserIdentity:
    """Build a canonical identity from introspection attributes.

    Raises:
        ValueError: If no subject can be found
    """
    subject = extract_subject(claims)
    if subject is None:
        raise ValueError("No subject claim in token attributes")

    return UserIdentity(
        user_id=subject,
        email=_string_claim(claims, "email"),
        display_name=extract_display_name(claims),
        roles=extract_roles(claims),
    )


def _string_claim(claims: Mapping[str, Any], name: str) -> str | None:
    value = claims.get(name)
    if value is None:
        return None
    value = str(value)
    return value or None
