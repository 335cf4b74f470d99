"""Ephemeral storage for in-flight login state.

The verifier, state and nonce of a login attempt live only here, between
``begin_login`` and ``complete_login``. One storage instance corresponds to
one origin/user agent; it is never shared between users.
"""

from __future__ import annotations

from typing import Protocol

from tollgate.auth.client.models.security import AuthorizationRequestContext

CODE_VERIFIER_KEY = "pkce_code_verifier"
STATE_KEY = "oidc_state"
NONCE_KEY = "oidc_nonce"

FLOW_KEYS = (CODE_VERIFIER_KEY, STATE_KEY, NONCE_KEY)


class FlowStorage(Protocol):
    """Key/value storage scoped to a single user agent."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryFlowStorage:
    """In-process ``FlowStorage`` backed by a dict."""

    def __init__(self):
        self._items: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove(self, key: str) -> None:
        self._items.pop(key, None)

    def __len__(self) -> int:
        return len(self._items)


def save_request_context(
    storage: FlowStorage, context: AuthorizationRequestContext
) -> None:
    """Persist a login context, replacing any prior in-flight attempt."""
    storage.set(CODE_VERIFIER_KEY, context.code_verifier)
    storage.set(STATE_KEY, context.state)
    storage.set(NONCE_KEY, context.nonce)


def clear_request_context(storage: FlowStorage) -> None:
    for key in FLOW_KEYS:
        storage.remove(key)
