"""Async SQLAlchemy engine and session factory.

Engine type is determined by the database URL scheme:
  - ``mysql+aiomysql://``     → pooled MySQL engine with multi-statement batches
  - ``sqlite+aiosqlite://``   → single-connection SQLite engine (local ledger)
  - anything else (e.g. ``postgresql+asyncpg://``, install the ``postgres`` extra) → pooled engine
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from pymysql.constants import CLIENT
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from procsync.state.sqlite_adapter import MEMORY, get_local_engine

logger = logging.getLogger(__name__)

# Cache of async_sessionmaker instances keyed by engine identity to avoid
# re-creating the factory on every get_session call.
_session_factories: dict[int, async_sessionmaker[AsyncSession]] = {}


def get_engine(
    database_url: str,
    pool_size: int = 10,
    max_overflow: int = 20,
) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    Parameters
    ----------
    database_url:
        Connection string (MySQL, SQLite or PostgreSQL scheme).
    pool_size:
        Number of persistent connections for pooled backends (ignored for SQLite).
    max_overflow:
        Maximum overflow connections for pooled backends (ignored for SQLite).

    Returns
    -------
    AsyncEngine
        A configured async engine ready for session creation.
    """
    if database_url.startswith("sqlite"):
        # Extract path from URL: sqlite+aiosqlite:///path/to/db
        db_path = database_url.split("///", 1)[-1] if "///" in database_url else MEMORY
        return get_local_engine(db_path or MEMORY)

    if database_url.startswith("mysql"):
        engine = create_async_engine(
            database_url,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            pool_recycle=3600,
            pool_timeout=10,
            echo=False,
            # DROP + CREATE must travel as one batch.  FOUND_ROWS is what the
            # MySQL dialect sets by default; connect_args replaces it wholesale.
            connect_args={"client_flag": CLIENT.MULTI_STATEMENTS | CLIENT.FOUND_ROWS},
        )
        logger.info(
            "Created MySQL engine pool_size=%d max_overflow=%d",
            pool_size,
            max_overflow,
        )
        return engine

    engine = create_async_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
        pool_timeout=10,
        echo=False,
    )
    logger.info(
        "Created async engine pool_size=%d max_overflow=%d",
        pool_size,
        max_overflow,
    )
    return engine


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Return the cached session factory for *engine*."""
    engine_key = id(engine)
    factory = _session_factories.get(engine_key)
    if factory is None:
        factory = async_sessionmaker(engine, expire_on_commit=False)
        _session_factories[engine_key] = factory
    return factory


@asynccontextmanager
async def get_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session with automatic commit/rollback semantics.

    On successful exit the session is committed.  If an exception propagates
    the session is rolled back before the error is re-raised.
    """
    session = get_session_factory(engine)()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def create_ledger_tables(engine: AsyncEngine) -> None:
    """Create the ledger table if it does not exist.

    Idempotent.  Run once by the bootstrap initializer (``procsync init``);
    the sync engine itself never creates schema.
    """
    from procsync.state.tables import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Ledger tables created/verified")


async def dispose_engine(engine: AsyncEngine) -> None:
    """Close every pooled connection and forget the cached session factory."""
    _session_factories.pop(id(engine), None)
    await engine.dispose()
