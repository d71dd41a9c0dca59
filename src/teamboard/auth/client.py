"""Stytch B2B client wrapper for authentication.

This module wraps the Stytch B2B SDK in the AuthClientProtocol interface:
OAuth sign-in, session restore, sign-out, and session-change notification
for the session binder.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

from stytch import B2BClient
from stytch.core.response_base import StytchError

from teamboard.auth.models import AuthResult, OAuthStartResult, RawIdentity

if TYPE_CHECKING:
    from teamboard.auth.protocol import SessionCallback, Unsubscribe

logger = logging.getLogger(__name__)

# Stytch API base URLs
STYTCH_TEST_API = "https://test.stytch.com"
STYTCH_LIVE_API = "https://api.stytch.com"

SESSION_DURATION_MINUTES = 60 * 24 * 7  # 1 week


def _member_to_identity(member: Any) -> RawIdentity:
    """Build a RawIdentity from a Stytch member object."""
    return RawIdentity(
        id=member.member_id,
        email=member.email_address or None,
        email_verified=bool(getattr(member, "email_address_verified", False)),
    )


class StytchB2BClient:
    """Wrapper around Stytch B2BClient for OAuth sign-in and sessions.

    Holds the current session token and announces every session change to
    subscribers, in the order the changes happen.
    """

    def __init__(
        self,
        project_id: str,
        secret: str,
        *,
        environment: str = "test",
    ) -> None:
        """Initialize the Stytch client.

        Args:
            project_id: Stytch project ID.
            secret: Stytch secret key.
            environment: Either "test" or "live".
        """
        self._client = B2BClient(
            project_id=project_id,
            secret=secret,
            environment=environment,
        )
        self._environment = environment
        self._session_token: str | None = None
        self._subscribers: list[SessionCallback] = []

    def subscribe(self, callback: SessionCallback) -> Unsubscribe:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def _notify(self, identity: RawIdentity | None) -> None:
        for callback in list(self._subscribers):
            callback(identity)

    async def restore_session(self, session_token: str) -> RawIdentity | None:
        """Adopt a stored session token (e.g. from a cookie) and announce it.

        Args:
            session_token: The session token saved at sign-in.

        Returns:
            The identity if the token is still valid, None otherwise.
        """
        self._session_token = session_token
        identity = await self.get_session()
        self._notify(identity)
        return identity

    async def get_session(self) -> RawIdentity | None:
        """Validate the held session token.

        Returns:
            The session's identity, or None if there is no valid session.
        """
        if self._session_token is None:
            return None
        try:
            response = await self._client.sessions.authenticate_async(
                session_token=self._session_token,
            )
        except StytchError as e:
            logger.debug(
                "Session validation failed",
                extra={"error_type": e.details.error_type},
            )
            self._session_token = None
            return None
        return _member_to_identity(response.member)

    async def sign_out(self) -> None:
        """Revoke the held session and announce the sign-out."""
        token = self._session_token
        self._session_token = None
        try:
            if token is not None:
                await self._client.sessions.revoke_async(session_token=token)
        except StytchError as e:
            logger.warning(
                "Session revoke failed",
                extra={"error_type": e.details.error_type},
            )
        finally:
            self._notify(None)

    def get_oauth_start_url(
        self,
        provider: str,
        public_token: str,
        callback_url: str,
    ) -> OAuthStartResult:
        """Generate the URL to start an OAuth discovery flow.

        Args:
            provider: The OAuth provider (e.g., "google").
            public_token: The Stytch public token.
            callback_url: URL to redirect to after OAuth completes.

        Returns:
            OAuthStartResult with the redirect URL.
        """
        if not public_token:
            return OAuthStartResult(success=False, error="missing_public_token")
        base_url = STYTCH_TEST_API if self._environment == "test" else STYTCH_LIVE_API
        params = {
            "public_token": public_token,
            "discovery_redirect_url": callback_url,
        }
        redirect_url = (
            f"{base_url}/v1/b2b/public/oauth/{provider}/discovery/start"
            f"?{urlencode(params)}"
        )
        return OAuthStartResult(success=True, redirect_url=redirect_url)

    async def authenticate_oauth(self, token: str) -> AuthResult:
        """Authenticate an OAuth token from the provider callback.

        On success the session token is kept and the new identity is
        announced to subscribers.

        Args:
            token: The OAuth token from the callback URL.

        Returns:
            AuthResult with the identity if successful.
        """
        try:
            response = await self._client.oauth.authenticate_async(
                oauth_token=token,
                session_duration_minutes=SESSION_DURATION_MINUTES,
            )
        except StytchError as e:
            logger.warning(
                "OAuth auth failed",
                extra={"error_type": e.details.error_type},
            )
            return AuthResult(success=False, error=e.details.error_type)

        if not response.member_authenticated:
            logger.info("MFA required for OAuth member %s", response.member_id)
            return AuthResult(success=False, error="mfa_required")

        identity = _member_to_identity(response.member)
        self._session_token = response.session_token
        self._notify(identity)
        return AuthResult(
            success=True,
            identity=identity,
            session_token=response.session_token,
        )
