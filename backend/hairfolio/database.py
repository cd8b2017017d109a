"""
Hairfolio Backend: Database Engine Management
==============================================

What:  Async SQLAlchemy engine, session factory and declarative base for the
       remote designer store.
How:   A Database object owns one engine and one sessionmaker. It is built by
       the service container at startup and disposed explicitly at shutdown,
       so no engine exists at import time.
Who:   SqlRemoteStore (sessions), the health route (ping), Alembic (Base).

Connection Pooling Strategy:
    pool_size=20:      Persistent connections for normal load
    max_overflow=10:   Temporary connections for traffic spikes (total max = 30)
    pool_pre_ping:     Validates connections before use (catches stale connections)
    pool_recycle=3600: Recycles connections every hour

    Pool arguments only apply to server databases. SQLite (used by the test
    suite through aiosqlite) gets the driver's default pool.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Shares a single metadata object so Alembic and Database.create_all see
    every table.
    """
    pass


def _engine_kwargs(
    url: str,
    pool_size: int,
    max_overflow: int,
    pool_pre_ping: bool,
    echo: bool,
) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {"echo": echo}
    if url.startswith("sqlite"):
        return kwargs
    kwargs.update(
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_recycle=3600,
    )
    return kwargs


class Database:
    """
    Owner of the async engine and the session factory.

    Usage:
        db = Database(settings.database_url)
        async with db.session() as session:
            ...
        await db.dispose()
    """

    def __init__(
        self,
        url: str,
        pool_size: int = 20,
        max_overflow: int = 10,
        pool_pre_ping: bool = True,
        echo: bool = False,
    ):
        self.url = url
        self.engine: AsyncEngine = create_async_engine(
            url,
            **_engine_kwargs(url, pool_size, max_overflow, pool_pre_ping, echo),
        )
        # expire_on_commit=False: row attributes stay readable after commit
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Yields a session that commits on success and rolls back on error.

        Any exception raised inside the block is re-raised after rollback so
        the caller decides how to report it.
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def ping(self) -> None:
        """Runs SELECT 1. Raises whatever the driver raises when unreachable."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def create_all(self) -> None:
        """Creates every mapped table. Used by tests and local development."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        """Closes all pooled connections. Called on application shutdown."""
        await self.engine.dispose()
