# =============================================================================
# Database Engine & Session Management
# =============================================================================
#
# Async SQLAlchemy engine on the asyncpg driver. All DB work in this service
# happens inside the event loop (FastAPI handlers, the ingest CLI), so there
# is no sync engine.
#
# The engine is NOT created at import time. `build_engine()` is called once
# by the service container during application startup and disposed of on
# shutdown; the resulting session factory is injected into PgVectorStore.
#
# SESSION LIFECYCLE (session_scope):
#   create → yield → commit (or rollback on error) → close
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ragchat.config import Settings
from ragchat.db.models import Base

logger = logging.getLogger(__name__)


def build_engine(settings: Settings) -> AsyncEngine:
    """
    Create the async engine for the configured database.

    echo follows `settings.debug` so SQL is logged during development.
    """
    return create_async_engine(
        settings.database_url,
        echo=settings.debug,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Create a session factory bound to `engine`.

    expire_on_commit=False: attribute access after commit must not trigger
    lazy loads, which fail outside a session in async code.
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """
    Provide a transactional session.

    Usage:
        async with session_scope(factory) as session:
            session.add_all(rows)
            # commits on exit, rolls back on exception
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(engine: AsyncEngine) -> None:
    """
    Install pgvector and create the chunk table with its indexes.

    Safe to run repeatedly: the extension and tables are created only if
    missing. Schema evolution beyond that belongs to a migration tool.
    """
    async with engine.begin() as conn:
        logger.info("Installing pgvector extension (if missing)")
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        logger.info("Creating tables and indexes (if missing)")
        await conn.run_sync(Base.metadata.create_all)
