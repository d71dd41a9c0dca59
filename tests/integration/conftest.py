"""Fixtures for integration tests against a real PostgreSQL database.

Set DEV__TEST_DATABASE_URL to a disposable database; tables are created on
first use and rows are isolated per test by random emails.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import uuid4

import pytest

from teamboard.auth.anon_id import AnonIdDeriver
from teamboard.auth.binder import IdentityState, ProfileResolved
from teamboard.auth.models import RawIdentity
from teamboard.config import get_settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

TEST_ANON_SALT = "integration-salt"


@pytest.fixture
async def db_engine() -> AsyncIterator[None]:
    """Initialize the engine on the test database for each test."""
    from teamboard.db.bootstrap import create_schema
    from teamboard.db.engine import close_db, get_engine, init_db

    await init_db(get_settings().dev.test_database_url)
    await create_schema(get_engine())
    yield
    await close_db()


@pytest.fixture
def deriver() -> AnonIdDeriver:
    return AnonIdDeriver(TEST_ANON_SALT)


def unique_email() -> str:
    return f"user-{uuid4().hex[:12]}@example.com"


async def make_member(
    deriver: AnonIdDeriver,
    *,
    nickname: str = "member",
    is_admin: bool = False,
) -> IdentityState:
    """Create an onboarded profile row and return its identity state."""
    from datetime import UTC, datetime

    from teamboard.db.profiles import SqlProfileStore

    email = unique_email()
    anon_id = deriver.derive(email)
    profile = await SqlProfileStore().upsert(
        anon_id,
        nickname=nickname,
        is_admin=is_admin,
        terms_agreed_at=datetime.now(UTC),
    )
    return IdentityState(
        raw_user=RawIdentity(
            id=f"member-{anon_id[:8]}", email=email, email_verified=True
        ),
        anon_id=anon_id,
        profile=ProfileResolved(profile),
        loading=False,
    )
