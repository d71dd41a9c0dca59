"""Configured entry points into the auth provider.

``get_auth_client()`` picks the client the board signs in with: Stytch B2B,
or the in-process mock when ``DEV__AUTH_MOCK`` is set. The mock is kept for
the life of the process so that ``sign_in_as`` in one place is visible to
every binder subscribed to it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from teamboard.config import get_settings

if TYPE_CHECKING:
    from teamboard.auth.models import OAuthStartResult
    from teamboard.auth.protocol import AuthClientProtocol


_mock_client_instance: AuthClientProtocol | None = None


def get_auth_client() -> AuthClientProtocol:
    """Return the sign-in client for the current settings.

    Raises:
        ValueError: If STYTCH__PROJECT_ID is empty and the mock is disabled.
    """
    global _mock_client_instance  # noqa: PLW0603
    settings = get_settings()

    if settings.dev.auth_mock:
        if _mock_client_instance is None:
            from teamboard.auth.mock import MockAuthClient

            _mock_client_instance = MockAuthClient()
        return _mock_client_instance

    stytch = settings.stytch
    if not stytch.project_id:
        msg = (
            "STYTCH__PROJECT_ID is required when DEV__AUTH_MOCK is not enabled. "
            "Set STYTCH__PROJECT_ID and STYTCH__SECRET in your .env file."
        )
        raise ValueError(msg)

    from teamboard.auth.client import StytchB2BClient

    return StytchB2BClient(
        project_id=stytch.project_id,
        secret=stytch.secret.get_secret_value(),
        environment=stytch.environment,
    )


def start_oauth_sign_in(
    client: AuthClientProtocol | None = None,
) -> OAuthStartResult:
    """Build the redirect that begins sign-in with the configured provider.

    Uses ``STYTCH__OAUTH_PROVIDER``, ``STYTCH__PUBLIC_TOKEN`` and the
    ``/auth/callback`` route under ``APP__BASE_URL``.
    """
    settings = get_settings()
    if client is None:
        client = get_auth_client()
    return client.get_oauth_start_url(
        provider=settings.stytch.oauth_provider,
        public_token=settings.stytch.public_token,
        callback_url=settings.app.oauth_callback_url,
    )


def clear_config_cache() -> None:
    """Forget cached settings and the shared mock client."""
    global _mock_client_instance  # noqa: PLW0603
    get_settings.cache_clear()
    _mock_client_instance = None
