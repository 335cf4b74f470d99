"""Tests for credential classification and the filter chain.

High-impact tests covering:
- Dot-sniffing classification, including its known misrouting case
- Fixed stage order and skipping once authenticated
- Public path bypass
- Failures leaving the request unauthenticated instead of raising
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from tollgate.auth.models.errors import TokenValidationError
from tollgate.auth.models.identity import UserIdentity
from tollgate.auth.server.filters import (
    CredentialKind,
    FilterChain,
    RequestCredentials,
    bearer_token,
    classify_credential,
)
from tollgate.auth.server.models.context import SecurityContext, current_user_id
from tollgate.auth.server.services.introspection import OpaqueTokenValidator
from tollgate.auth.server.services.sessions import SessionTokenService
from tollgate.settings import ServerSettings

SECRET = "0123456789abcdef0123456789abcdef"
PUBLIC_PATHS = ["/health", "/.well-known/", "/api/auth/health"]


class TestClassification:
    @pytest.mark.parametrize(
        "credential,kind",
        [
            ("eyJhbGciOi.eyJzdWIiOi.c2lnbmF0dXJl", CredentialKind.SESSION_TOKEN),
            ("2YotnFZFEjr1zCsicMWpAA", CredentialKind.OPAQUE_TOKEN),
            # Known edge: a damaged session token without dots looks opaque
            ("eyJhbGciOieyJzdWIiOi", CredentialKind.OPAQUE_TOKEN),
        ],
    )
    def test_classify_credential(self, credential, kind):
        assert classify_credential(credential) is kind

    @pytest.mark.parametrize(
        "header,expected",
        [
            ("Bearer abc", "abc"),
            ("Bearer   abc  ", "abc"),
            ("Bearer ", None),
            ("Basic abc", None),
            (None, None),
        ],
    )
    def test_bearer_token(self, header, expected):
        assert bearer_token(header) == expected


class TestFilterChain:
    def setup_method(self):
        # Arrange
        self.sessions = SessionTokenService(SECRET)
        self.validator = MagicMock(spec=OpaqueTokenValidator)
        self.validator.validate = AsyncMock(
            return_value=UserIdentity(user_id="opaque-user", roles=("ADMIN",))
        )
        self.chain = FilterChain.build(self.sessions, self.validator, PUBLIC_PATHS)
        self.session_token = self.sessions.issue(UserIdentity(user_id="session-user"))

    async def test_session_token_in_authorization_header(self):
        # Act
        context = await self.chain.run(
            RequestCredentials(
                path="/api/tasks", authorization=f"Bearer {self.session_token}"
            )
        )

        # Assert
        assert context.is_authenticated
        assert context.identity.user_id == "session-user"
        assert context.authorities == ("ROLE_USER",)
        assert context.refreshed_session_token
        assert context.session_claims.subject == "session-user"
        self.validator.validate.assert_not_called()

    async def test_context_claims_describe_the_refreshed_token(self):
        # Act
        context = await self.chain.run(
            RequestCredentials(path="/api/tasks", session_header=self.session_token)
        )

        # Assert
        refreshed = self.sessions.validate(context.refreshed_session_token)
        assert context.session_claims == refreshed

    async def test_session_header_preferred_over_authorization(self):
        # Act
        context = await self.chain.run(
            RequestCredentials(
                path="/api/tasks",
                authorization="Bearer opaque123",
                session_header=self.session_token,
            )
        )

        # Assert
        assert context.identity.user_id == "session-user"
        self.validator.validate.assert_not_called()

    async def test_opaque_token_mints_session(self):
        # Act
        context = await self.chain.run(
            RequestCredentials(path="/api/tasks", authorization="Bearer opaque123")
        )

        # Assert
        assert context.identity.user_id == "opaque-user"
        assert context.authorities == ("ROLE_ADMIN",)
        minted = self.sessions.validate(context.refreshed_session_token)
        assert minted.subject == "opaque-user"
        self.validator.validate.assert_awaited_once_with("opaque123")

    async def test_session_token_is_never_sent_to_introspection(self):
        # Arrange
        forged = SessionTokenService("f" * 32).issue(UserIdentity(user_id="x"))

        # Act
        context = await self.chain.run(
            RequestCredentials(path="/api/tasks", authorization=f"Bearer {forged}")
        )

        # Assert
        assert not context.is_authenticated
        self.validator.validate.assert_not_called()

    async def test_rejected_opaque_token_leaves_request_unauthenticated(self):
        # Arrange
        self.validator.validate.side_effect = TokenValidationError("inactive")

        # Act
        context = await self.chain.run(
            RequestCredentials(path="/api/tasks", authorization="Bearer opaque123")
        )

        # Assert
        assert not context.is_authenticated
        assert context.refreshed_session_token is None
        assert current_user_id(context) == "anonymous"

    async def test_unexpected_stage_error_does_not_escape(self):
        # Arrange
        self.validator.validate.side_effect = RuntimeError("boom")

        # Act
        context = await self.chain.run(
            RequestCredentials(path="/api/tasks", authorization="Bearer opaque123")
        )

        # Assert
        assert not context.is_authenticated

    @pytest.mark.parametrize(
        "path", ["/health", "/.well-known/openid-configuration", "/api/auth/health"]
    )
    async def test_public_paths_bypass_both_stages(self, path):
        # Act
        context = await self.chain.run(
            RequestCredentials(path=path, authorization="Bearer opaque123")
        )

        # Assert
        assert not context.is_authenticated
        self.validator.validate.assert_not_called()

    def test_public_path_matching(self):
        assert self.chain.is_public("/health")
        assert not self.chain.is_public("/healthz")
        assert self.chain.is_public("/.well-known/anything")

    def test_default_doc_paths_match_below_the_prefix(self):
        # Arrange
        chain = FilterChain.build(
            self.sessions, self.validator, ServerSettings().public_paths
        )

        # Assert
        assert chain.is_public("/docs")
        assert chain.is_public("/docs/oauth2-redirect")
        assert chain.is_public("/health/liveness")
        assert not chain.is_public("/docsx")
        assert not chain.is_public("/api/tasks")

    async def test_later_stage_skipped_once_authenticated(self):
        # Arrange
        calls = []

        class RecordingStage:
            def __init__(self, name, authenticate):
                self.name = name
                self.authenticate = authenticate

            async def apply(self, credentials, context):
                calls.append(self.name)
                if self.authenticate:
                    context.authenticate(UserIdentity(user_id=self.name), "t.o.k")

        chain = FilterChain(
            [RecordingStage("first", True), RecordingStage("second", True)]
        )

        # Act
        context = await chain.run(RequestCredentials(path="/api/tasks"))

        # Assert
        assert calls == ["first"]
        assert context.identity.user_id == "first"


class TestSecurityContext:
    def test_unauthenticated_context(self):
        context = SecurityContext()
        assert not context.is_authenticated
        assert context.authorities == ()
        assert current_user_id(context) == "anonymous"
        assert current_user_id(None) == "anonymous"
