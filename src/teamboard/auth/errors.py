"""Exceptions raised by the identity core and the storage layer."""

from __future__ import annotations


class NotAuthenticatedError(Exception):
    """An identity or content operation needs a resolved anon-id."""

    def __init__(self, message: str = "로그인이 필요합니다") -> None:
        super().__init__(message)


class OnboardingRequiredError(Exception):
    """The user is signed in but has not set a nickname or agreed to terms."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Onboarding incomplete: missing {', '.join(missing)}")


class ProfileStoreError(Exception):
    """Base class for profile store failures."""

    def __init__(self, anon_id: str, message: str) -> None:
        self.anon_id = anon_id
        super().__init__(message)


class ProfileFetchError(ProfileStoreError):
    """Reading a profile row failed."""


class ProfileWriteError(ProfileStoreError):
    """Upserting or updating a profile row failed."""


class AdminDeletionError(Exception):
    """Admin profiles cannot be deleted."""

    def __init__(self, anon_id: str) -> None:
        self.anon_id = anon_id
        super().__init__(f"Refusing to delete admin profile {anon_id}")
