"""Shared fixtures for unit tests."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import pytest

from teamboard.auth.anon_id import AnonIdDeriver
from teamboard.auth.binder import SessionIdentityBinder
from teamboard.auth.errors import ProfileFetchError, ProfileWriteError
from teamboard.auth.mock import MockAuthClient
from teamboard.db.models import Profile

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

TEST_ANON_SALT = "test-salt-do-not-use-in-production"
SAMPLE_EMAIL = "alice@example.com"
SAMPLE_OTHER_EMAIL = "bob@example.com"
SAMPLE_NOW = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


def _copy(row: Profile) -> Profile:
    return Profile(**row.model_dump())


class InMemoryProfileStore:
    """ProfileStoreProtocol backed by a dict.

    Failure knobs:
        fail_reads / fail_writes: raise the store's error types.
        gates: anon-id -> Event; reads for that id return the row as it was
            when the read began, once the event is set.
        write_gates: anon-id -> Event; upserts for that id wait likewise.
        hang_reads: every read waits forever.
    """

    def __init__(self) -> None:
        self.rows: dict[str, Profile] = {}
        self.fail_reads = False
        self.fail_writes = False
        self.hang_reads = False
        self.gates: dict[str, asyncio.Event] = {}
        self.write_gates: dict[str, asyncio.Event] = {}
        self.upserts: list[tuple[str, dict[str, Any]]] = []

    async def select_by_id(self, anon_id: str) -> Profile | None:
        if self.hang_reads:
            await asyncio.Event().wait()
        row = self.rows.get(anon_id)
        snapshot = _copy(row) if row is not None else None
        gate = self.gates.get(anon_id)
        if gate is not None:
            await gate.wait()
        if self.fail_reads:
            raise ProfileFetchError(anon_id, "connection refused")
        return snapshot

    async def upsert(self, anon_id: str, **fields: Any) -> Profile:
        gate = self.write_gates.get(anon_id)
        if gate is not None:
            await gate.wait()
        if self.fail_writes:
            raise ProfileWriteError(anon_id, "connection refused")
        self.upserts.append((anon_id, fields))
        row = self.rows.get(anon_id)
        if row is None:
            row = Profile(id=anon_id, created_at=SAMPLE_NOW)
            self.rows[anon_id] = row
        for name, value in fields.items():
            setattr(row, name, value)
        return _copy(row)

    async def update_by_id(self, anon_id: str, **fields: Any) -> Profile | None:
        if self.fail_writes:
            raise ProfileWriteError(anon_id, "connection refused")
        row = self.rows.get(anon_id)
        if row is None:
            return None
        for name, value in fields.items():
            setattr(row, name, value)
        return _copy(row)

    async def nickname_taken(self, nickname: str, exclude_id: str) -> bool:
        if self.fail_reads:
            raise ProfileFetchError(exclude_id, "connection refused")
        return any(
            row.nickname == nickname and anon_id != exclude_id
            for anon_id, row in self.rows.items()
        )


@pytest.fixture
def deriver() -> AnonIdDeriver:
    return AnonIdDeriver(TEST_ANON_SALT)


@pytest.fixture
def auth_client() -> MockAuthClient:
    return MockAuthClient()


@pytest.fixture
def profile_store() -> InMemoryProfileStore:
    return InMemoryProfileStore()


@pytest.fixture
def make_binder(
    auth_client: MockAuthClient,
    profile_store: InMemoryProfileStore,
    deriver: AnonIdDeriver,
) -> Callable[..., SessionIdentityBinder]:
    """Factory for binders wired to the mock client and in-memory store."""

    def _make(**kwargs: Any) -> SessionIdentityBinder:
        kwargs.setdefault("clock", lambda: SAMPLE_NOW)
        return SessionIdentityBinder(auth_client, profile_store, deriver, **kwargs)

    return _make


@pytest.fixture
async def binder(
    make_binder: Callable[..., SessionIdentityBinder],
) -> AsyncIterator[SessionIdentityBinder]:
    """A started binder with no initial session."""
    b = make_binder()
    await b.start()
    await b.wait_until_loaded()
    yield b
    await b.stop()


def onboarded_profile(anon_id: str, *, is_admin: bool = False) -> Profile:
    return Profile(
        id=anon_id,
        nickname="alice",
        is_admin=is_admin,
        terms_agreed_at=SAMPLE_NOW,
        created_at=SAMPLE_NOW,
    )
