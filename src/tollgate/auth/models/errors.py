"""Exception hierarchy for authentication and session errors.

Provides specific exception types for different failure modes to enable
precise error handling and recovery strategies. Every error carries a
``category`` that is safe to return to clients; messages may contain
diagnostic detail and stay server-side.
"""

from __future__ import annotations


class TollgateError(Exception):
    """Base exception for all authentication related errors."""

    category = "authentication_error"


# Authorization flow (client side)


class OAuth2Error(TollgateError):
    """Base exception for OAuth 2.1 / OIDC client flow errors."""

    category = "oauth_error"


class DiscoveryUnavailableError(OAuth2Error):
    """Raised when provider metadata cannot be fetched or parsed.

    Transient: callers may retry with backoff.
    """

    category = "discovery_unavailable"


class AuthorizationDeniedError(OAuth2Error):
    """Raised when the user or provider declined the authorization request."""

    category = "authorization_denied"

    def __init__(
        self,
        error: str,
        error_description: str | None = None,
        error_uri: str | None = None,
    ):
        self.error = error
        self.error_description = error_description
        self.error_uri = error_uri
        message = f"Authorization failed: {error}"
        if error_description:
            message += f" ({error_description})"
        super().__init__(message)


class ForgeryDetectedError(OAuth2Error):
    """Raised when the callback state does not match the in-flight login.

    Treated as a forgery attempt: the flow is aborted and nothing from the
    callback may be used.
    """

    category = "forgery_detected"


class AuthorizationCallbackError(OAuth2Error):
    """Raised when authorization server callback data is malformed or invalid."""

    category = "invalid_callback"


class FlowStateError(OAuth2Error):
    """Raised when no usable in-flight login context exists."""

    category = "flow_state_missing"


class PKCEError(OAuth2Error):
    """Raised when PKCE parameter generation fails."""

    category = "pkce_error"


class TokenError(OAuth2Error):
    """Raised when token endpoint operations fail."""

    category = "token_error"


class TokenExchangeError(TokenError):
    """Raised when authorization code to token exchange fails."""

    category = "token_exchange_failed"

    def __init__(self, message: str, error: str | None = None):
        self.error = error
        super().__init__(message)


class ReauthenticationRequiredError(TokenError):
    """Raised when a refresh fails; cached tokens have been discarded."""

    category = "reauthentication_required"


# Resource server side


class TokenValidationError(TollgateError):
    """Raised when an opaque token is rejected by (or cannot reach) introspection."""

    category = "token_validation_failed"


class SessionTokenError(TollgateError):
    """Base exception for session token failures. Always means re-authenticate."""

    category = "invalid_session"


class MalformedTokenError(SessionTokenError):
    """Raised when a session token cannot be decoded or lacks required claims."""

    category = "malformed_session_token"


class SignatureInvalidError(SessionTokenError):
    """Raised when a session token signature does not verify."""

    category = "invalid_session_signature"


class SessionExpiredError(SessionTokenError):
    """Base exception for session timeouts."""

    category = "session_expired"


class InactivityExpiredError(SessionExpiredError):
    """Raised when the sliding inactivity window has elapsed."""

    category = "session_inactive"


class DurationExpiredError(SessionExpiredError):
    """Raised when the absolute session ceiling has elapsed."""

    category = "session_duration_exceeded"
