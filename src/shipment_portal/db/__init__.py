"""Database access for the shipment portal.

The async engine is built from DatabaseSettings on first use and disposed by
close_engine() at application shutdown. Request handlers get sessions through
get_async_session(). ORM models live in shipment_portal.db.models and the
schema is managed by the alembic scripts in shipment_portal/db/migrations.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from sqlalchemy.ext.asyncio import AsyncEngine

    from shipment_portal.core.config import DatabaseSettings

ASYNC_DRIVER = "postgresql+psycopg://"
LIKE_ESCAPE = "\\"

_engine: AsyncEngine | None = None
_sessionmaker: async_sessionmaker[AsyncSession] | None = None


def async_url(url: str) -> str:
    """Point a plain postgres URL at the psycopg driver."""
    for scheme in ("postgresql://", "postgres://"):
        if url.startswith(scheme):
            return ASYNC_DRIVER + url[len(scheme) :]
    return url


def escape_like(text: str) -> str:
    """Make % and _ in user input match literally; pair with escape=LIKE_ESCAPE."""
    for char in (LIKE_ESCAPE, "%", "_"):
        text = text.replace(char, LIKE_ESCAPE + char)
    return text


def _database_settings() -> DatabaseSettings:
    from shipment_portal.core.settings import get_settings

    return get_settings().database


def _get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    global _engine, _sessionmaker

    if _sessionmaker is None:
        db = _database_settings()
        _engine = create_async_engine(
            async_url(str(db.url)),
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
            pool_pre_ping=True,
            echo=db.echo,
        )
        # Services return ORM objects after commit, so keep them loaded
        _sessionmaker = async_sessionmaker(_engine, expire_on_commit=False)
    return _sessionmaker


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Open a session; roll back if the block raises.

    Services commit their own unit of work.
    """
    async with _get_sessionmaker()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def close_engine() -> None:
    """Dispose of the connection pool."""
    global _engine, _sessionmaker

    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _sessionmaker = None
