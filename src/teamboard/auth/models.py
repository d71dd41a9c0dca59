"""Data models for authentication and identity results.

These dataclasses represent the outcomes of auth provider calls and of the
identity operations exposed by the session binder, giving the real Stytch
client, the mock client and callers one consistent interface.
"""

from __future__ import annotations

from dataclasses import dataclass

# Nickname shown on content of users who have withdrawn
WITHDRAWN_NICKNAME = "탈퇴한 사용자"


@dataclass(frozen=True)
class RawIdentity:
    """Authentication provider user record.

    Owned by the provider and read-only here. Content is never keyed on
    ``id``; the binder derives an anon-id from ``email`` instead.

    Attributes:
        id: Provider-side user/member ID.
        email: The user's email address, as the provider reports it.
        email_verified: Whether the provider has verified the address.
    """

    id: str
    email: str | None = None
    email_verified: bool = False


@dataclass(frozen=True)
class AuthResult:
    """Result of authenticating an OAuth callback token.

    Attributes:
        success: Whether authentication succeeded.
        identity: The signed-in identity (if successful).
        session_token: The session token for subsequent requests.
        error: Error type if authentication failed.
    """

    success: bool
    identity: RawIdentity | None = None
    session_token: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class OAuthStartResult:
    """Result of starting an OAuth flow.

    Attributes:
        success: Whether the OAuth URL was generated.
        redirect_url: The URL to redirect the user to for OAuth.
        error: Error type if the operation failed.
    """

    success: bool
    redirect_url: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class ActionResult:
    """Result of an identity-mutating operation on the session binder.

    Failures are reported here rather than raised so the caller can show
    an inline message and leave the user where they were.

    Attributes:
        success: Whether the operation was applied.
        error: Error type (e.g. ``"not_authenticated"``) if it was not.
        message: Human-readable detail for display.
    """

    success: bool
    error: str | None = None
    message: str | None = None

    @classmethod
    def ok(cls) -> ActionResult:
        return cls(success=True)

    @classmethod
    def failed(cls, error: str, message: str | None = None) -> ActionResult:
        return cls(success=False, error=error, message=message)
