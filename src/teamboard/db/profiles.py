"""Profile storage keyed by anon-id.

``SqlProfileStore`` is the PostgreSQL implementation of
``ProfileStoreProtocol`` used by the session binder. Database errors are
wrapped in ``ProfileFetchError`` / ``ProfileWriteError`` so the binder can
tell a missing row apart from a failed read.

The module-level functions below it are the admin moderation operations.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col, select

from teamboard.auth.errors import (
    AdminDeletionError,
    ProfileFetchError,
    ProfileWriteError,
)
from teamboard.db.engine import get_session
from teamboard.db.models import Profile

logger = logging.getLogger(__name__)

_WRITABLE_FIELDS = frozenset(
    {
        "nickname",
        "is_admin",
        "terms_agreed_at",
        "deleted_at",
        "withdrawn_email_hash",
    }
)


def _check_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - _WRITABLE_FIELDS
    if unknown:
        msg = f"Unknown profile fields: {', '.join(sorted(unknown))}"
        raise ValueError(msg)


class SqlProfileStore:
    """Profile rows in PostgreSQL, last-write-wins."""

    async def select_by_id(self, anon_id: str) -> Profile | None:
        """Get a profile by anon-id.

        Raises:
            ProfileFetchError: On any database error.
        """
        try:
            async with get_session() as session:
                return await session.get(Profile, anon_id)
        except SQLAlchemyError as e:
            raise ProfileFetchError(anon_id, f"Profile read failed: {e}") from e

    async def upsert(self, anon_id: str, **fields: Any) -> Profile:
        """Insert a profile, or update only *fields* if it already exists.

        Columns not named in *fields* keep their stored values on conflict.

        Raises:
            ProfileWriteError: On any database error.
        """
        _check_fields(fields)
        stmt = insert(Profile).values(
            id=anon_id, created_at=datetime.now(UTC), **fields
        )
        if fields:
            stmt = stmt.on_conflict_do_update(
                index_elements=[Profile.id],
                set_={name: stmt.excluded[name] for name in fields},
            )
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=[Profile.id])
        try:
            async with get_session() as session:
                await session.execute(stmt)
                profile = await session.get(Profile, anon_id, populate_existing=True)
        except SQLAlchemyError as e:
            raise ProfileWriteError(anon_id, f"Profile upsert failed: {e}") from e
        assert profile is not None
        logger.debug("Upserted profile %s fields=%s", anon_id[:8], sorted(fields))
        return profile

    async def update_by_id(self, anon_id: str, **fields: Any) -> Profile | None:
        """Update *fields* on an existing profile.

        Returns:
            The updated Profile, or None if no row exists.

        Raises:
            ProfileWriteError: On any database error.
        """
        _check_fields(fields)
        try:
            async with get_session() as session:
                profile = await session.get(Profile, anon_id)
                if not profile:
                    return None
                for name, value in fields.items():
                    setattr(profile, name, value)
                session.add(profile)
                await session.flush()
                await session.refresh(profile)
                return profile
        except SQLAlchemyError as e:
            raise ProfileWriteError(anon_id, f"Profile update failed: {e}") from e

    async def nickname_taken(self, nickname: str, exclude_id: str) -> bool:
        """Check whether another profile already uses *nickname*.

        Raises:
            ProfileFetchError: On any database error.
        """
        query = (
            select(Profile.id)
            .where(Profile.nickname == nickname)
            .where(Profile.id != exclude_id)
            .limit(1)
        )
        try:
            async with get_session() as session:
                result = await session.exec(query)
                return result.first() is not None
        except SQLAlchemyError as e:
            raise ProfileFetchError(exclude_id, f"Nickname lookup failed: {e}") from e


async def list_profiles(*, include_withdrawn: bool = False) -> list[Profile]:
    """List profiles, newest first.

    Args:
        include_withdrawn: If False, skip profiles with ``deleted_at`` set.
    """
    async with get_session() as session:
        query = select(Profile).order_by(col(Profile.created_at).desc())
        if not include_withdrawn:
            query = query.where(Profile.deleted_at == None)  # noqa: E711
        result = await session.exec(query)
        return list(result.all())


async def set_admin(anon_id: str, is_admin: bool) -> Profile | None:
    """Set or remove admin status.

    Returns:
        The updated Profile or None if not found.
    """
    async with get_session() as session:
        profile = await session.get(Profile, anon_id)
        if not profile:
            return None
        profile.is_admin = is_admin
        session.add(profile)
        await session.flush()
        await session.refresh(profile)
        logger.info("Admin flag for %s set to %s", anon_id[:8], is_admin)
        return profile


async def delete_profile(anon_id: str) -> bool:
    """Hard-delete a profile; its posts, comments, reactions, reports and
    blocks go with it via ON DELETE CASCADE.

    Returns:
        True if a row was deleted, False if none existed.

    Raises:
        AdminDeletionError: If the profile is an admin.
    """
    async with get_session() as session:
        profile = await session.get(Profile, anon_id)
        if not profile:
            return False
        if profile.is_admin:
            raise AdminDeletionError(anon_id)
        await session.delete(profile)
        logger.warning("Deleted profile %s and its content", anon_id[:8])
        return True
