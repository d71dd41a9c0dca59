"""Mock auth client for testing and local development.

Implements AuthClientProtocol without calling Stytch. Any email can sign
in; provider IDs are derived from the email exactly as given, so two
differently-cased spellings of one address look like two provider
accounts, as they can with real providers.
"""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING
from urllib.parse import urlencode

from teamboard.auth.models import AuthResult, OAuthStartResult, RawIdentity

if TYPE_CHECKING:
    from teamboard.auth.protocol import SessionCallback, Unsubscribe

MOCK_VALID_OAUTH_TOKEN = "mock-valid-oauth-token"
MOCK_OAUTH_EMAIL = "oauth-user@example.com"
MOCK_TOKEN_PREFIX = "mock-token-"


def _email_to_member_id(email: str) -> str:
    """Generate a deterministic provider member ID from an email."""
    return f"mock-member-{hashlib.md5(email.encode()).hexdigest()[:8]}"


def _email_to_session_token(email: str) -> str:
    """Generate a deterministic session token from an email."""
    return f"mock-session-{hashlib.md5(email.encode()).hexdigest()[:12]}"


class MockAuthClient:
    """Mock implementation of AuthClientProtocol.

    Token Formats:
        - "mock-valid-oauth-token" - signs in as MOCK_OAUTH_EMAIL
        - "mock-token-{email}" - signs in as that email

    Test helpers ``sign_in_as`` and ``emit`` push session changes straight
    to subscribers, e.g. to simulate a token refresh.
    """

    def __init__(self) -> None:
        self._subscribers: list[SessionCallback] = []
        self._current: RawIdentity | None = None
        self._session_token: str | None = None
        self.sign_out_calls = 0

    def subscribe(self, callback: SessionCallback) -> Unsubscribe:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def get_session(self) -> RawIdentity | None:
        return self._current

    async def sign_out(self) -> None:
        self.sign_out_calls += 1
        self._current = None
        self._session_token = None
        self.emit(None)

    def get_oauth_start_url(
        self,
        provider: str,
        public_token: str,
        callback_url: str,
    ) -> OAuthStartResult:
        """Return a mock redirect URL that tests can recognise."""
        params = {
            "public_token": public_token,
            "discovery_redirect_url": callback_url,
        }
        redirect_url = (
            f"https://mock.stytch.com/v1/b2b/public/oauth/{provider}/discovery/start"
            f"?{urlencode(params)}"
        )
        return OAuthStartResult(success=True, redirect_url=redirect_url)

    async def authenticate_oauth(self, token: str) -> AuthResult:
        """Sign in for a recognised mock token, else fail with invalid_token."""
        if token == MOCK_VALID_OAUTH_TOKEN:
            email = MOCK_OAUTH_EMAIL
        elif token.startswith(MOCK_TOKEN_PREFIX):
            email = token[len(MOCK_TOKEN_PREFIX) :]
        else:
            return AuthResult(success=False, error="invalid_token")

        identity = self.sign_in_as(email)
        return AuthResult(
            success=True,
            identity=identity,
            session_token=self._session_token,
        )

    # Test helper methods

    def sign_in_as(self, email: str, *, verified: bool = True) -> RawIdentity:
        """Start a session for *email* and announce it."""
        identity = RawIdentity(
            id=_email_to_member_id(email),
            email=email,
            email_verified=verified,
        )
        self._current = identity
        self._session_token = _email_to_session_token(email)
        self.emit(identity)
        return identity

    def set_current(self, identity: RawIdentity | None) -> None:
        """Set the session returned by ``get_session`` without announcing it."""
        self._current = identity

    def emit(self, identity: RawIdentity | None) -> None:
        """Deliver a session change to every subscriber."""
        for callback in list(self._subscribers):
            callback(identity)
