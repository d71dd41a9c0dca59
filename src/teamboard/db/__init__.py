"""Database module for TeamBoard.

Provides async SQLModel operations with PostgreSQL.
"""

from __future__ import annotations

from teamboard.db.bootstrap import (
    create_schema,
    drop_schema,
    get_expected_tables,
    is_db_configured,
    verify_schema,
)
from teamboard.db.content import (
    ContentNotFoundError,
    DuplicateBlockError,
    DuplicateReportError,
    PermissionDeniedError,
    block_user,
    count_reactions,
    count_views,
    create_comment,
    create_post,
    delete_comment,
    delete_post,
    list_blocked_ids,
    list_comments,
    record_view,
    report_content,
    toggle_reaction,
    unblock_user,
    update_post,
)
from teamboard.db.engine import close_db, get_engine, get_session, init_db
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
from teamboard.db.profiles import (
    SqlProfileStore,
    delete_profile,
    list_profiles,
    set_admin,
)

__all__ = [
    # Models
    "Block",
    "Comment",
    "Post",
    "PostReaction",
    "PostView",
    "Profile",
    "ReactionType",
    "Report",
    "ReportReason",
    # Exceptions
    "ContentNotFoundError",
    "DuplicateBlockError",
    "DuplicateReportError",
    "PermissionDeniedError",
    # Engine
    "close_db",
    "get_engine",
    "get_session",
    "init_db",
    # Bootstrap
    "create_schema",
    "drop_schema",
    "get_expected_tables",
    "is_db_configured",
    "verify_schema",
    # Profiles
    "SqlProfileStore",
    "delete_profile",
    "list_profiles",
    "set_admin",
    # Content
    "block_user",
    "count_reactions",
    "count_views",
    "create_comment",
    "create_post",
    "delete_comment",
    "delete_post",
    "list_blocked_ids",
    "list_comments",
    "record_view",
    "report_content",
    "toggle_reaction",
    "unblock_user",
    "update_post",
]
