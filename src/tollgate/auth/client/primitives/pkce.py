"""PKCE (Proof Key for Code Exchange) manager.

Implements RFC 7636 parameter generation to prevent authorization code
interception attacks, plus the per-attempt request context (state, nonce)
that accompanies every login.
"""

from __future__ import annotations

import base64
import hashlib

from tollgate.auth.client.models.security import (
    CODE_VERIFIER_LENGTH,
    AuthorizationRequestContext,
    PKCEParameters,
)
from tollgate.auth.client.services.security import (
    generate_nonce,
    generate_random_string,
    generate_state,
)
from tollgate.auth.models.errors import PKCEError


class PKCEManager:
    """Generates PKCE parameters and login request contexts.

    This implementation follows RFC 7636 requirements:
    - Uses S256 code challenge method (SHA256 + base64url)
    - Generates 128-character verifiers from the unreserved alphabet
    - Pairs each verifier with fresh state and nonce values
    """

    def generate_parameters(self) -> PKCEParameters:
        """Generate new PKCE parameters for an authorization flow.

        Returns:
            PKCEParameters: Immutable parameters for the authorization flow

        Raises:
            PKCEError: If parameter generation fails
        """
        try:
            code_verifier = self._generate_code_verifier()
            code_challenge = self._generate_code_challenge(code_verifier)

            return PKCEParameters(
                code_verifier=code_verifier,
                code_challenge=code_challenge,
                code_challenge_method="S256",
            )

        except Exception as e:
            raise PKCEError(f"Failed to generate PKCE parameters: {e}") from e

    def generate_request_context(
        self, pkce: PKCEParameters
    ) -> AuthorizationRequestContext:
        """Bind a PKCE verifier to fresh anti-CSRF state and nonce values."""
        return AuthorizationRequestContext(
            state=generate_state(),
            nonce=generate_nonce(),
            code_verifier=pkce.code_verifier,
        )

    def _generate_code_verifier(self) -> str:
        """Generate a cryptographically secure code verifier.

        RFC 7636 Section 4.1: code verifier must be 43-128 characters long
        and use only unreserved characters:
            [A-Z] / [a-z] / [0-9] / "-" / "." / "_" / "~"

        Returns:
            A 128-character code verifier (maximum length for best security)
        """
        return generate_random_string(CODE_VERIFIER_LENGTH)

    @staticmethod
    def _generate_code_challenge(code_verifier: str) -> str:
        """Generate code challenge from code verifier using S256 method.

        RFC 7636 Section 4.2: For S256, the code challenge is:
        BASE64URL-ENCODE(SHA256(ASCII(code_verifier)))
        """
        digest = hashlib.sha256(code_verifier.encode("ascii")).digest()

        return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
