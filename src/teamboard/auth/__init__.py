"""Identity module for TeamBoard.

Turns authenticated sessions into pseudonymous board identities:
- Anon-id derivation (HMAC-SHA256 of the verified email)
- Session binder keeping identity and profile in step with the session
- Stytch B2B OAuth client, plus a mock client for testing

Usage:
    from teamboard.auth import SessionIdentityBinder, get_auth_client
    from teamboard.db.profiles import SqlProfileStore

    binder = SessionIdentityBinder.from_settings(
        get_auth_client(), SqlProfileStore()
    )
    await binder.start()
    await binder.wait_until_loaded()

    # Every content write uses the anon-id, never the provider user ID
    author_id = require_member(binder.state)
"""

from __future__ import annotations

from teamboard.auth.anon_id import (
    AnonIdDeriver,
    ConfigurationError,
    derive_anon_id,
    hash_withdrawn_email,
    is_anon_id,
)
from teamboard.auth.binder import (
    IdentityState,
    Phase,
    ProfileAbsent,
    ProfilePending,
    ProfileResolved,
    SessionIdentityBinder,
    require_member,
)
from teamboard.auth.errors import (
    NotAuthenticatedError,
    OnboardingRequiredError,
    ProfileFetchError,
    ProfileWriteError,
)
from teamboard.auth.factory import (
    clear_config_cache,
    get_auth_client,
    start_oauth_sign_in,
)
from teamboard.auth.models import (
    WITHDRAWN_NICKNAME,
    ActionResult,
    AuthResult,
    OAuthStartResult,
    RawIdentity,
)
from teamboard.auth.protocol import AuthClientProtocol, ProfileStoreProtocol


def can_moderate(state: IdentityState) -> bool:
    """Check if the signed-in user may moderate other users' content.

    Withdrawn or signed-out users never can; the flag comes only from the
    resolved profile row.
    """
    return state.anon_id is not None and state.is_admin


__all__ = [
    "WITHDRAWN_NICKNAME",
    "ActionResult",
    "AnonIdDeriver",
    "AuthClientProtocol",
    "AuthResult",
    "ConfigurationError",
    "IdentityState",
    "NotAuthenticatedError",
    "OAuthStartResult",
    "OnboardingRequiredError",
    "Phase",
    "ProfileAbsent",
    "ProfileFetchError",
    "ProfilePending",
    "ProfileResolved",
    "ProfileStoreProtocol",
    "ProfileWriteError",
    "RawIdentity",
    "SessionIdentityBinder",
    "can_moderate",
    "clear_config_cache",
    "derive_anon_id",
    "get_auth_client",
    "hash_withdrawn_email",
    "is_anon_id",
    "require_member",
    "start_oauth_sign_in",
]
