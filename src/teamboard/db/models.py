"""SQLModel database models for TeamBoard.

Profiles are keyed by anon-id. Every actor column in the content tables
(author, reactor, reporter, blocker) references ``profiles.id`` and never a
provider user ID or email.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

import sqlalchemy as sa
from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlmodel import Field, SQLModel


class ReactionType(StrEnum):
    LIKE = "LIKE"
    DISLIKE = "DISLIKE"


class ReportReason(StrEnum):
    SPAM = "SPAM"
    ABUSE = "ABUSE"
    INAPPROPRIATE = "INAPPROPRIATE"
    OTHER = "OTHER"


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


def _timestamptz_column(*, nullable: bool = False) -> Any:
    """Create a TIMESTAMP WITH TIME ZONE column for PostgreSQL."""
    return Column(DateTime(timezone=True), nullable=nullable)


def _anon_id_fk_column(*, nullable: bool = False) -> Any:
    """Create an anon-id foreign key to profiles with CASCADE DELETE."""
    return Column(
        String(36),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=nullable,
        index=True,
    )


def _cascade_int_fk_column(target: str, *, nullable: bool = False) -> Any:
    """Create an integer foreign key column with CASCADE DELETE."""
    return Column(
        Integer, ForeignKey(target, ondelete="CASCADE"), nullable=nullable
    )


class Profile(SQLModel, table=True):
    """Per-user profile, created lazily on first nickname or terms write.

    Attributes:
        id: The anon-id (primary key).
        nickname: Display name; None until onboarding sets it.
        is_admin: Whether the user can moderate.
        terms_agreed_at: When the user accepted the terms of service.
        deleted_at: Set on withdrawal; the row itself is kept.
        withdrawn_email_hash: SHA-256 of the email, set on withdrawal.
        created_at: When the row was first written.
    """

    __tablename__ = "profiles"

    id: str = Field(sa_column=Column(String(36), primary_key=True, nullable=False))
    nickname: str | None = Field(default=None, max_length=100)
    is_admin: bool = Field(
        default=False,
        sa_column=Column(sa.Boolean, nullable=False, server_default="false"),
    )
    terms_agreed_at: datetime | None = Field(
        default=None, sa_column=_timestamptz_column(nullable=True)
    )
    deleted_at: datetime | None = Field(
        default=None, sa_column=_timestamptz_column(nullable=True)
    )
    withdrawn_email_hash: str | None = Field(default=None, max_length=64)
    created_at: datetime = Field(
        default_factory=_utcnow, sa_column=_timestamptz_column()
    )

    @property
    def is_withdrawn(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_onboarded(self) -> bool:
        """Nickname set and terms accepted: allowed to create content."""
        return self.nickname is not None and self.terms_agreed_at is not None


class Post(SQLModel, table=True):
    """A board post."""

    __tablename__ = "posts"

    id: int | None = Field(default=None, primary_key=True)
    author_id: str = Field(sa_column=_anon_id_fk_column())
    title: str = Field(max_length=200)
    content: str
    category: str = Field(max_length=50)
    created_at: datetime = Field(
        default_factory=_utcnow, sa_column=_timestamptz_column()
    )


class Comment(SQLModel, table=True):
    """A comment or reply on a post; deleted comments are kept as tombstones."""

    __tablename__ = "comments"

    id: int | None = Field(default=None, primary_key=True)
    post_id: int = Field(sa_column=_cascade_int_fk_column("posts.id"))
    parent_id: int | None = Field(
        default=None,
        sa_column=_cascade_int_fk_column("comments.id", nullable=True),
    )
    author_id: str = Field(sa_column=_anon_id_fk_column())
    content: str
    is_deleted: bool = Field(default=False)
    created_at: datetime = Field(
        default_factory=_utcnow, sa_column=_timestamptz_column()
    )


class PostReaction(SQLModel, table=True):
    """One reaction per user per post."""

    __tablename__ = "post_reactions"

    post_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("posts.id", ondelete="CASCADE"),
            primary_key=True,
        )
    )
    user_id: str = Field(
        sa_column=Column(
            String(36),
            ForeignKey("profiles.id", ondelete="CASCADE"),
            primary_key=True,
        )
    )
    reaction: ReactionType = Field(sa_column=Column(String(10), nullable=False))

    __table_args__ = (
        CheckConstraint(
            "reaction IN ('LIKE', 'DISLIKE')", name="ck_post_reactions_reaction"
        ),
    )


class PostView(SQLModel, table=True):
    """One view per signed-in user per post; repeat views are not counted."""

    __tablename__ = "post_views"

    post_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("posts.id", ondelete="CASCADE"),
            primary_key=True,
        )
    )
    user_id: str = Field(
        sa_column=Column(
            String(36),
            ForeignKey("profiles.id", ondelete="CASCADE"),
            primary_key=True,
        )
    )
    created_at: datetime = Field(
        default_factory=_utcnow, sa_column=_timestamptz_column()
    )


class Report(SQLModel, table=True):
    """An abuse report against exactly one post or comment."""

    __tablename__ = "reports"

    id: int | None = Field(default=None, primary_key=True)
    reporter_id: str = Field(sa_column=_anon_id_fk_column())
    post_id: int | None = Field(
        default=None, sa_column=_cascade_int_fk_column("posts.id", nullable=True)
    )
    comment_id: int | None = Field(
        default=None,
        sa_column=_cascade_int_fk_column("comments.id", nullable=True),
    )
    reason: ReportReason = Field(sa_column=Column(String(20), nullable=False))
    detail: str | None = None
    created_at: datetime = Field(
        default_factory=_utcnow, sa_column=_timestamptz_column()
    )

    __table_args__ = (
        UniqueConstraint("reporter_id", "post_id", name="uq_reports_reporter_post"),
        UniqueConstraint(
            "reporter_id", "comment_id", name="uq_reports_reporter_comment"
        ),
        CheckConstraint(
            "(post_id IS NULL) <> (comment_id IS NULL)",
            name="ck_reports_single_target",
        ),
    )


class Block(SQLModel, table=True):
    """A user hiding another user's content from themselves."""

    __tablename__ = "blocks"

    id: int | None = Field(default=None, primary_key=True)
    blocker_id: str = Field(sa_column=_anon_id_fk_column())
    blocked_id: str = Field(sa_column=_anon_id_fk_column())
    created_at: datetime = Field(
        default_factory=_utcnow, sa_column=_timestamptz_column()
    )

    __table_args__ = (
        UniqueConstraint("blocker_id", "blocked_id", name="uq_blocks_pair"),
        CheckConstraint("blocker_id <> blocked_id", name="ck_blocks_not_self"),
    )
