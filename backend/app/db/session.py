# backend/app/db/session.py
"""
Async database session management for SQLAlchemy.

- asyncpg for PostgreSQL, aiosqlite for SQLite (local development and tests)
- SQLite gets no pooling, PostgreSQL a small pre-pinged pool
- transaction() is the only place multi-statement writes are committed
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, AsyncAdaptedQueuePool

from backend.app.core.config import settings


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine configured for the database behind ``database_url``.

    SQLite:
    - NullPool, a fresh connection per session
    - check_same_thread=False for aiosqlite

    PostgreSQL:
    - pool_size=5 / max_overflow=10
    - pool_pre_ping=True so dropped connections are replaced transparently
    - pool_recycle=300 for managed databases that close idle connections
    """
    if "sqlite" in database_url.lower():
        return create_async_engine(
            database_url,
            echo=echo,
            poolclass=NullPool,
            connect_args={"check_same_thread": False},
        )

    return create_async_engine(
        database_url,
        echo=echo,
        poolclass=AsyncAdaptedQueuePool,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=300,
    )


def build_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False: rows returned by a service stay readable after commit
    # autoflush=False: writes only hit the database when we flush/commit
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine: AsyncEngine = build_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)

AsyncSessionLocal: async_sessionmaker[AsyncSession] = build_sessionmaker(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency generator for database sessions.

    One session per request, closed when the request finishes.
    Nothing is committed automatically; writers use transaction().
    """
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Scope a unit of work on an existing session.

    Commits when the block exits normally and rolls back on any exception,
    so writes issued inside the block land together or not at all.

    Usage:
        async with transaction(db):
            await db.execute(stmt_a)
            await db.execute(stmt_b)
    """
    try:
        yield session
        await session.commit()
    except BaseException:
        await session.rollback()
        raise
