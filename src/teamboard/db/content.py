"""Board content operations bound to anon-ids.

Every function takes the acting user's ``IdentityState`` and stores its
anon-id as the actor reference. Creation requires an onboarded member
(nickname and terms agreement); see ``require_member``.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import IntegrityError
from sqlmodel import col, select

from teamboard.auth import can_moderate, require_member
from teamboard.db.engine import get_session
from teamboard.db.models import (
    Block,
    Comment,
    Post,
    PostReaction,
    PostView,
    Profile,
    ReactionType,
    Report,
    ReportReason,
)

if TYPE_CHECKING:
    from teamboard.auth import IdentityState

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200


class ContentNotFoundError(Exception):
    """Raised when the target post, comment or profile does not exist."""

    def __init__(self, kind: str, content_id: int | str) -> None:
        self.kind = kind
        self.content_id = content_id
        super().__init__(f"{kind} {content_id} not found")


class PermissionDeniedError(Exception):
    """Raised when the actor may not change the content."""


class DuplicateReportError(Exception):
    """Raised when a user reports the same post or comment twice."""

    def __init__(self, reporter_id: str, target: str) -> None:
        self.reporter_id = reporter_id
        self.target = target
        super().__init__(f"{target} was already reported by this user")


class DuplicateBlockError(Exception):
    """Raised when a user blocks someone they already block."""

    def __init__(self, blocker_id: str, blocked_id: str) -> None:
        self.blocker_id = blocker_id
        self.blocked_id = blocked_id
        super().__init__("User is already blocked")


def _require_text(value: str, field_name: str) -> str:
    stripped = value.strip()
    if not stripped:
        msg = f"{field_name} must not be empty"
        raise ValueError(msg)
    return stripped


def _require_title(title: str) -> str:
    title = _require_text(title, "title")
    if len(title) > MAX_TITLE_LENGTH:
        msg = f"title must be at most {MAX_TITLE_LENGTH} characters"
        raise ValueError(msg)
    return title


# ---------------------------------------------------------------------------
# Posts and comments
# ---------------------------------------------------------------------------
async def create_post(
    actor: IdentityState,
    title: str,
    content: str,
    category: str,
) -> Post:
    """Create a post authored by the actor's anon-id.

    Raises:
        NotAuthenticatedError: If signed out.
        OnboardingRequiredError: If nickname or terms agreement is missing.
        ValueError: If title or content is empty, or the title is too long.
    """
    author_id = require_member(actor)
    title = _require_title(title)

    async with get_session() as session:
        post = Post(
            author_id=author_id,
            title=title,
            content=_require_text(content, "content"),
            category=category,
        )
        session.add(post)
        await session.flush()
        await session.refresh(post)
        return post


async def update_post(
    actor: IdentityState,
    post_id: int,
    title: str,
    content: str,
    category: str,
) -> Post:
    """Edit a post. Only its author may do this; admins can only delete.

    Raises:
        ContentNotFoundError: If the post does not exist.
        PermissionDeniedError: If the actor is not the author.
        ValueError: If title or content is empty, or the title is too long.
    """
    anon_id = require_member(actor)
    title = _require_title(title)
    content = _require_text(content, "content")

    async with get_session() as session:
        post = await session.get(Post, post_id)
        if post is None:
            raise ContentNotFoundError("post", post_id)
        if post.author_id != anon_id:
            raise PermissionDeniedError("Only the author can edit a post")
        post.title = title
        post.content = content
        post.category = category
        session.add(post)
        await session.flush()
        await session.refresh(post)
        return post


async def delete_post(actor: IdentityState, post_id: int) -> None:
    """Delete a post (and its comments, reactions and reports).

    Raises:
        ContentNotFoundError: If the post does not exist.
        PermissionDeniedError: If the actor is neither author nor admin.
    """
    anon_id = require_member(actor)
    async with get_session() as session:
        post = await session.get(Post, post_id)
        if post is None:
            raise ContentNotFoundError("post", post_id)
        if post.author_id != anon_id and not can_moderate(actor):
            raise PermissionDeniedError("Only the author or an admin can delete")
        await session.delete(post)


async def create_comment(
    actor: IdentityState,
    post_id: int,
    content: str,
    *,
    parent_id: int | None = None,
) -> Comment:
    """Add a comment, or a reply when *parent_id* is given.

    Raises:
        ContentNotFoundError: If the post or parent comment does not exist,
            or the parent belongs to another post.
    """
    author_id = require_member(actor)
    content = _require_text(content, "content")

    async with get_session() as session:
        if await session.get(Post, post_id) is None:
            raise ContentNotFoundError("post", post_id)
        if parent_id is not None:
            parent = await session.get(Comment, parent_id)
            if parent is None or parent.post_id != post_id:
                raise ContentNotFoundError("comment", parent_id)

        comment = Comment(
            post_id=post_id,
            parent_id=parent_id,
            author_id=author_id,
            content=content,
        )
        session.add(comment)
        await session.flush()
        await session.refresh(comment)
        return comment


async def delete_comment(actor: IdentityState, comment_id: int) -> Comment:
    """Soft-delete a comment so replies keep their thread.

    Raises:
        ContentNotFoundError: If the comment does not exist.
        PermissionDeniedError: If the actor is neither author nor admin.
    """
    anon_id = require_member(actor)
    async with get_session() as session:
        comment = await session.get(Comment, comment_id)
        if comment is None:
            raise ContentNotFoundError("comment", comment_id)
        if comment.author_id != anon_id and not can_moderate(actor):
            raise PermissionDeniedError("Only the author or an admin can delete")
        comment.is_deleted = True
        session.add(comment)
        await session.flush()
        await session.refresh(comment)
        return comment


async def list_comments(post_id: int) -> list[Comment]:
    """List a post's comments in creation order, tombstones included."""
    async with get_session() as session:
        result = await session.exec(
            select(Comment)
            .where(Comment.post_id == post_id)
            .order_by(col(Comment.created_at), col(Comment.id))
        )
        return list(result.all())


# ---------------------------------------------------------------------------
# Reactions
# ---------------------------------------------------------------------------
async def toggle_reaction(
    actor: IdentityState,
    post_id: int,
    reaction: ReactionType,
) -> ReactionType | None:
    """Apply a like/dislike with toggle semantics.

    Sending the reaction already held removes it; sending the other one
    replaces it.

    Returns:
        The reaction now held, or None if it was removed.
    """
    user_id = require_member(actor)
    reaction = ReactionType(reaction)

    async with get_session() as session:
        if await session.get(Post, post_id) is None:
            raise ContentNotFoundError("post", post_id)
        existing = await session.get(PostReaction, (post_id, user_id))
        if existing is not None and existing.reaction == reaction:
            await session.delete(existing)
            return None
        if existing is not None:
            existing.reaction = reaction
            session.add(existing)
        else:
            session.add(
                PostReaction(post_id=post_id, user_id=user_id, reaction=reaction)
            )
        return reaction


async def count_reactions(post_id: int) -> dict[ReactionType, int]:
    """Count likes and dislikes on a post."""
    async with get_session() as session:
        result = await session.exec(
            select(PostReaction).where(PostReaction.post_id == post_id)
        )
        counts = dict.fromkeys(ReactionType, 0)
        for row in result.all():
            counts[ReactionType(row.reaction)] += 1
        return counts


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------
async def record_view(actor: IdentityState, post_id: int) -> bool:
    """Count the actor's view of a post once.

    Signed-out readers and readers without a profile row are not recorded.
    Onboarding is not required.

    Returns:
        True if this was the actor's first view of the post.

    Raises:
        ContentNotFoundError: If the post does not exist.
    """
    if actor.anon_id is None:
        return False
    stmt = (
        insert(PostView)
        .values(post_id=post_id, user_id=actor.anon_id, created_at=datetime.now(UTC))
        .on_conflict_do_nothing(index_elements=["post_id", "user_id"])
    )
    async with get_session() as session:
        if await session.get(Post, post_id) is None:
            raise ContentNotFoundError("post", post_id)
        if await session.get(Profile, actor.anon_id) is None:
            return False
        result = await session.execute(stmt)
        return result.rowcount == 1


async def count_views(post_id: int) -> int:
    """Number of distinct signed-in users who viewed the post."""
    async with get_session() as session:
        result = await session.exec(
            select(func.count())
            .select_from(PostView)
            .where(PostView.post_id == post_id)
        )
        return result.one()


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------
async def report_content(
    actor: IdentityState,
    reason: ReportReason,
    *,
    post_id: int | None = None,
    comment_id: int | None = None,
    detail: str | None = None,
) -> Report:
    """Report exactly one post or comment.

    Raises:
        ValueError: Unless exactly one of post_id / comment_id is given.
        ContentNotFoundError: If the post or comment does not exist.
        DuplicateReportError: If this user already reported the target.
    """
    reporter_id = require_member(actor)
    if (post_id is None) == (comment_id is None):
        msg = "Exactly one of post_id or comment_id must be given"
        raise ValueError(msg)
    target = f"post {post_id}" if post_id is not None else f"comment {comment_id}"

    async with get_session() as session:
        if post_id is not None and await session.get(Post, post_id) is None:
            raise ContentNotFoundError("post", post_id)
        if comment_id is not None and await session.get(Comment, comment_id) is None:
            raise ContentNotFoundError("comment", comment_id)

        query = select(Report).where(Report.reporter_id == reporter_id)
        if post_id is not None:
            query = query.where(Report.post_id == post_id)
        else:
            query = query.where(Report.comment_id == comment_id)
        existing = await session.exec(query)
        if existing.first():
            raise DuplicateReportError(reporter_id, target)

        report = Report(
            reporter_id=reporter_id,
            post_id=post_id,
            comment_id=comment_id,
            reason=ReportReason(reason),
            detail=detail.strip() if detail else None,
        )
        session.add(report)
        try:
            await session.flush()
        except IntegrityError as e:
            if "uq_reports_reporter" in str(e):
                raise DuplicateReportError(reporter_id, target) from e
            raise
        await session.refresh(report)
        logger.info("Report filed on %s reason=%s", target, report.reason)
        return report


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------
async def block_user(actor: IdentityState, blocked_id: str) -> Block:
    """Hide *blocked_id*'s content from the actor.

    Raises:
        ValueError: If the actor tries to block themselves.
        ContentNotFoundError: If *blocked_id* has no profile.
        DuplicateBlockError: If the pair already exists.
    """
    blocker_id = require_member(actor)
    if blocked_id == blocker_id:
        msg = "Cannot block yourself"
        raise ValueError(msg)

    async with get_session() as session:
        if await session.get(Profile, blocked_id) is None:
            raise ContentNotFoundError("profile", blocked_id)
        existing = await session.exec(
            select(Block)
            .where(Block.blocker_id == blocker_id)
            .where(Block.blocked_id == blocked_id)
        )
        if existing.first():
            raise DuplicateBlockError(blocker_id, blocked_id)

        block = Block(blocker_id=blocker_id, blocked_id=blocked_id)
        session.add(block)
        try:
            await session.flush()
        except IntegrityError as e:
            if "uq_blocks_pair" in str(e):
                raise DuplicateBlockError(blocker_id, blocked_id) from e
            raise
        await session.refresh(block)
        return block


async def unblock_user(actor: IdentityState, blocked_id: str) -> bool:
    """Remove a block. Returns False if there was none."""
    blocker_id = require_member(actor)
    async with get_session() as session:
        result = await session.exec(
            select(Block)
            .where(Block.blocker_id == blocker_id)
            .where(Block.blocked_id == blocked_id)
        )
        block = result.first()
        if block is None:
            return False
        await session.delete(block)
        return True


async def list_blocked_ids(actor: IdentityState) -> set[str]:
    """Anon-ids the actor has blocked; empty when signed out."""
    if actor.anon_id is None:
        return set()
    async with get_session() as session:
        result = await session.exec(
            select(Block.blocked_id).where(Block.blocker_id == actor.anon_id)
        )
        return set(result.all())
