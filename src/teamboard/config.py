"""Centralised application configuration using pydantic-settings.

All environment variables are read through the Settings class.
Consumers call ``get_settings()`` to obtain a cached, validated instance.
Tests construct ``Settings(_env_file=None, ...)`` directly for isolation.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# src/teamboard/config.py  ->  parent x3  ->  project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


# ---------------------------------------------------------------------------
# Sub-models (one per configuration domain)
# ---------------------------------------------------------------------------
class StytchConfig(BaseModel):
    """Stytch authentication provider credentials."""

    project_id: str = ""
    secret: SecretStr = SecretStr("")
    public_token: str = ""
    environment: str = "test"
    oauth_provider: str = "google"

    @model_validator(mode="after")
    def environment_is_known(self) -> StytchConfig:
        if self.environment not in ("test", "live"):
            msg = "STYTCH__ENVIRONMENT must be 'test' or 'live'"
            raise ValueError(msg)
        return self


class DatabaseConfig(BaseModel):
    """Database connection and pool configuration."""

    url: str | None = None
    pool_size: int = Field(default=5, ge=1)
    max_overflow: int = Field(default=10, ge=0)
    connect_timeout_seconds: float = Field(default=10.0, gt=0)


class IdentityConfig(BaseModel):
    """Pseudonymous identity derivation.

    ``anon_salt`` is the HMAC key for anon-id derivation. It is left empty
    by default so that a missing value fails loudly when the deriver is
    built rather than producing ids from a guessable key.
    """

    anon_salt: SecretStr = SecretStr("")
    nickname_min_length: int = Field(default=2, ge=1)
    nickname_max_length: int = Field(default=20, ge=1, le=100)


class AppConfig(BaseModel):
    """Application runtime configuration."""

    base_url: str = "http://localhost:8080"
    log_dir: Path = Path("logs")
    loading_timeout_seconds: float = Field(default=5.0, gt=0)

    @property
    def oauth_callback_url(self) -> str:
        """URL the OAuth provider redirects back to."""
        return f"{self.base_url}/auth/callback"


class DevConfig(BaseModel):
    """Development and testing toggles."""

    auth_mock: bool = False
    database_echo: bool = False
    test_database_url: str | None = None


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------
class Settings(BaseSettings):
    """Application settings with automatic .env loading and type validation.

    Environment variables use double-underscore delimiter for nesting:
    ``STYTCH__PROJECT_ID``, ``DATABASE__URL``, ``IDENTITY__ANON_SALT``, etc.
    """

    model_config = SettingsConfigDict(
        env_file=_PROJECT_ROOT / ".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    stytch: StytchConfig = StytchConfig()
    database: DatabaseConfig = DatabaseConfig()
    identity: IdentityConfig = IdentityConfig()
    app: AppConfig = AppConfig()
    dev: DevConfig = DevConfig()


# ---------------------------------------------------------------------------
# Singleton access
# ---------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Call ``get_settings.cache_clear()`` in tests to reset.
    """
    settings = Settings()

    env_file = settings.model_config.get("env_file")
    if env_file is not None and Path(str(env_file)).is_file():
        logger.info("Settings loaded .env from: %s", env_file)
    else:
        logger.info("Settings: no .env file found, using env vars and defaults")

    return settings
