"""Async engine and sessions for the board database.

One engine per process, created by ``init_db()`` (the ``manage-users`` CLI
and the integration fixtures call it explicitly) or lazily by the first
``get_session()``. Both ``SqlProfileStore`` and the content operations go
through ``get_session()``, so a unit of work is one ``async with`` block.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlmodel.ext.asyncio.session import AsyncSession

from teamboard.config import get_settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncEngine
    from sqlalchemy.pool import _ConnectionRecord

logger = logging.getLogger(__name__)
_pool_logger = logging.getLogger(f"{__name__}.pool")


def _pool_status(pool: object) -> str:
    # QueuePool exposes these as methods; NullPool does not have them
    def _get(name: str) -> object:
        attr = getattr(pool, name, None)
        if attr is None:
            return "?"
        return attr() if callable(attr) else attr

    return (
        f"size={_get('size')} checked_out={_get('checkedout')}"
        f" overflow={_get('overflow')}"
    )


def _install_pool_listeners(engine: AsyncEngine) -> None:
    """Log new connections, checkouts and invalidations to ``<module>.pool``."""
    pool = engine.sync_engine.pool

    @event.listens_for(pool, "connect")
    def _on_connect(_dbapi_conn: object, _rec: _ConnectionRecord) -> None:
        _pool_logger.info("NEW_CONN %s", _pool_status(pool))

    @event.listens_for(pool, "checkout")
    def _on_checkout(
        _dbapi_conn: object, _rec: _ConnectionRecord, _proxy: object
    ) -> None:
        _pool_logger.debug("CHECKOUT %s", _pool_status(pool))

    @event.listens_for(pool, "invalidate")
    def _on_invalidate(
        _dbapi_conn: object,
        _rec: _ConnectionRecord,
        exception: BaseException | None,
    ) -> None:
        _pool_logger.warning(
            "INVALIDATE exception=%s %s",
            type(exception).__name__ if exception else None,
            _pool_status(pool),
        )


@dataclass
class _DatabaseState:
    engine: AsyncEngine | None = field(default=None)
    session_factory: async_sessionmaker[AsyncSession] | None = field(default=None)


_state = _DatabaseState()


def get_database_url() -> str:
    """Return ``DATABASE__URL``.

    Raises:
        ValueError: If it is not set.
    """
    url = get_settings().database.url
    if not url:
        msg = (
            "DATABASE__URL is not configured. "
            "Set it in your .env file or as an environment variable."
        )
        raise ValueError(msg)
    return url


def get_engine() -> AsyncEngine | None:
    """The engine, or None before ``init_db()``."""
    return _state.engine


async def init_db(url: str | None = None) -> None:
    """Create the engine and session factory.

    Args:
        url: Connection string; defaults to ``DATABASE__URL``. Integration
            tests pass ``DEV__TEST_DATABASE_URL`` here.
    """
    settings = get_settings()
    db = settings.database
    _state.engine = create_async_engine(
        url or get_database_url(),
        echo=settings.dev.database_echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
        connect_args={"timeout": db.connect_timeout_seconds},
    )
    _install_pool_listeners(_state.engine)
    _state.session_factory = async_sessionmaker(
        _state.engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    logger.info(
        "Database engine ready (pool_size=%d, max_overflow=%d)",
        db.pool_size,
        db.max_overflow,
    )


async def close_db() -> None:
    """Dispose of the engine; the next ``get_session()`` starts a new one."""
    if _state.engine:
        await _state.engine.dispose()
        _state.engine = None
        _state.session_factory = None


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    """Open a session that commits on exit and rolls back on error.

    Usage:
        async with get_session() as session:
            profile = await session.get(Profile, anon_id)

    Raises:
        ValueError: If the engine is not initialised and DATABASE__URL is
            not set.
    """
    if _state.session_factory is None:
        await init_db()

    session_factory = _state.session_factory
    assert session_factory is not None

    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError:
            logger.exception("Database session error, rolling back transaction")
            await session.rollback()
            raise
        except Exception:
            # Domain errors (not found, duplicates) roll back quietly
            await session.rollback()
            raise
