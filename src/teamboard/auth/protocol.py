"""Protocols for the identity core's collaborators.

``AuthClientProtocol`` is implemented by both StytchB2BClient and
MockAuthClient, so they can be used interchangeably by the session binder.
``ProfileStoreProtocol`` is implemented by SqlProfileStore; tests supply an
in-memory version.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from teamboard.auth.models import AuthResult, OAuthStartResult, RawIdentity
    from teamboard.db.models import Profile

type SessionCallback = Callable[[RawIdentity | None], None]
type Unsubscribe = Callable[[], None]


class AuthClientProtocol(Protocol):
    """Protocol for authentication clients.

    Session changes are delivered to subscribers synchronously and in the
    order they happen; subscribers must not block.
    """

    async def get_session(self) -> RawIdentity | None:
        """Return the identity for the current session, or None.

        Returns:
            The signed-in identity, or None when there is no valid session.
        """
        ...

    def subscribe(self, callback: SessionCallback) -> Unsubscribe:
        """Register *callback* for session changes.

        Args:
            callback: Called with the new identity, or None on sign-out.

        Returns:
            A function that removes the subscription.
        """
        ...

    async def sign_out(self) -> None:
        """End the current session and notify subscribers with None."""
        ...

    def get_oauth_start_url(
        self,
        provider: str,
        public_token: str,
        callback_url: str,
    ) -> OAuthStartResult:
        """Generate the URL to start an OAuth sign-in redirect.

        Args:
            provider: The OAuth provider (e.g., "google").
            public_token: The Stytch public token.
            callback_url: URL to redirect to after OAuth completes.

        Returns:
            OAuthStartResult with the redirect URL.
        """
        ...

    async def authenticate_oauth(self, token: str) -> AuthResult:
        """Authenticate an OAuth token from the provider callback.

        On success the new session is announced to subscribers.

        Args:
            token: The OAuth token from the callback URL.

        Returns:
            AuthResult with the identity if successful.
        """
        ...


class ProfileStoreProtocol(Protocol):
    """Row storage for profiles keyed by anon-id.

    Writes are last-write-wins; ``id`` is the primary key.
    """

    async def select_by_id(self, anon_id: str) -> Profile | None:
        """Return the profile for *anon_id*, or None if there is no row.

        Raises:
            ProfileFetchError: If the read fails.
        """
        ...

    async def upsert(self, anon_id: str, **fields: Any) -> Profile:
        """Insert the row, or update only *fields* on an existing row.

        Raises:
            ProfileWriteError: If the write fails.
        """
        ...

    async def update_by_id(self, anon_id: str, **fields: Any) -> Profile | None:
        """Update *fields* on an existing row; None if there is no row.

        Raises:
            ProfileWriteError: If the write fails.
        """
        ...

    async def nickname_taken(self, nickname: str, exclude_id: str) -> bool:
        """Whether a profile other than *exclude_id* already uses *nickname*.

        Raises:
            ProfileFetchError: If the read fails.
        """
        ...
