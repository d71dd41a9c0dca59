"""Deterministic pseudonymous identifiers derived from verified emails.

An anon-id is HMAC-SHA256 over the lowercased email, keyed with the
server-held salt, truncated to 128 bits and printed in the 8-4-4-4-12
UUID shape. The shape is only a storage convention: the value carries no
UUID version or variant bits.

The same salt and the same (case-folded) email always give the same id, on
every device and in every process. Nothing here touches the network,
storage, or the log.
"""

from __future__ import annotations

import hashlib
import hmac
import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from teamboard.config import Settings

ANON_ID_LENGTH = 36
_GROUPS = (8, 4, 4, 4, 12)
_ANON_ID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"
)


class ConfigurationError(RuntimeError):
    """The anon-id salt is not configured; derivation cannot run."""


def normalise_email(email: str) -> str:
    """Case-fold an email for hashing.

    Only lowercasing is applied; surrounding whitespace is kept, so
    ``" a@x.io"`` and ``"a@x.io"`` derive different ids.
    """
    if not email:
        msg = "email must be a non-empty string"
        raise ValueError(msg)
    return email.lower()


def _format_digest(hex_digest: str) -> str:
    parts = []
    start = 0
    for size in _GROUPS:
        parts.append(hex_digest[start : start + size])
        start += size
    return "-".join(parts)


def derive_anon_id(email: str, salt: str) -> str:
    """Derive the anon-id for *email* under *salt*.

    Args:
        email: Verified email address, any case.
        salt: The HMAC key. Must be non-empty.

    Returns:
        36-character lowercase hex string grouped 8-4-4-4-12.

    Raises:
        ConfigurationError: If *salt* is empty.
        ValueError: If *email* is empty.
    """
    if not salt:
        msg = "IDENTITY__ANON_SALT is not configured; refusing to derive anon ids"
        raise ConfigurationError(msg)
    digest = hmac.new(
        salt.encode("utf-8"),
        normalise_email(email).encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return _format_digest(digest[:32])


def hash_withdrawn_email(email: str) -> str:
    """One-way SHA-256 hex of the case-folded email.

    Stored on withdrawn profiles so a re-registration with the same address
    can be recognised without keeping the address itself.
    """
    return hashlib.sha256(normalise_email(email).encode("utf-8")).hexdigest()


def is_anon_id(value: str) -> bool:
    """Return True if *value* has the anon-id shape."""
    return bool(_ANON_ID_RE.match(value))


class AnonIdDeriver:
    """Holds the salt and derives anon-ids.

    Construction fails with ``ConfigurationError`` when the salt is empty,
    so a misconfigured process stops at startup instead of at first login.
    """

    def __init__(self, salt: str) -> None:
        if not salt:
            msg = "IDENTITY__ANON_SALT is not configured; refusing to derive anon ids"
            raise ConfigurationError(msg)
        self._salt = salt

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> AnonIdDeriver:
        """Build a deriver from ``identity.anon_salt``."""
        if settings is None:
            from teamboard.config import get_settings

            settings = get_settings()
        return cls(settings.identity.anon_salt.get_secret_value())

    def derive(self, email: str) -> str:
        """Derive the anon-id for *email*."""
        return derive_anon_id(email, self._salt)

    def __repr__(self) -> str:
        return "AnonIdDeriver(salt=***)"
