"""Security utilities for the authorization code flow.

Provides cryptographically secure parameter generation and validation
for the state (CSRF) and nonce (replay) parameters.
"""

from __future__ import annotations

import secrets
import string

from tollgate.auth.client.models.security import NONCE_LENGTH, STATE_LENGTH
from tollgate.auth.models.errors import ForgeryDetectedError

# RFC 3986 unreserved characters
UNRESERVED_ALPHABET = string.ascii_letters + string.digits + "-._~"


def generate_random_string(length: int, alphabet: str = UNRESERVED_ALPHABET) -> str:
    """Generate a random string using a CSPRNG.

    ``secrets.choice`` avoids the modulo bias of mapping random bytes onto
    a 66-character alphabet.
    """
    return "".join(secrets.choice(alphabet) for _ in range(length))


def generate_state() -> str:
    """Generate cryptographically secure state parameter.

    Returns:
        Random state string (32 characters)
    """
    return generate_random_string(STATE_LENGTH)


def generate_nonce() -> str:
    """Generate cryptographically secure nonce for ID token replay protection."""
    return generate_random_string(NONCE_LENGTH)


def validate_state(expected: str | None, actual: str | None) -> None:
    """Validate state parameter matches expected value bit-for-bit.

    Args:
        expected: State parameter from the in-flight authorization request
        actual: State parameter from callback URL

    Raises:
        ForgeryDetectedError: If either value is missing or they differ
    """
    if not expected or not actual:
        raise ForgeryDetectedError("State parameter missing - possible CSRF attack")
    if not secrets.compare_digest(expected.encode(), actual.encode()):
        raise ForgeryDetectedError("State parameter mismatch - possible CSRF attack")
