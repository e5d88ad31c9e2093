"""Database configuration and session management.

This module constructs an asynchronous SQLAlchemy engine and session
factory for the application.  ``DATABASE_URL`` selects the database;
PostgreSQL URLs are normalised to the async psycopg driver and SQLite
URLs to aiosqlite.  When no URL is provided a local SQLite database may
be used in development if ``DB_DEV_FALLBACK_SQLITE`` is enabled.

SQLite connections are configured so that SAVEPOINTs work (the item
registry relies on them to absorb uniqueness races) and foreign keys
are enforced, which keeps ``ON DELETE`` behaviour identical to
PostgreSQL.
"""

from __future__ import annotations

import logging
import os
from typing import AsyncGenerator, Dict, Any, Optional

from sqlalchemy import event
from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from item_ledger.core.config import settings

logger = logging.getLogger(__name__)

SQLITE_FALLBACK_URL = "sqlite+aiosqlite:///./item_ledger.db"

# Track whether we fell back to SQLite during init
USING_SQLITE_FALLBACK: bool = False
LAST_DB_INIT_ERROR: Optional[str] = None


def normalize_database_url(db_url: str) -> str:
    """Return ``db_url`` rewritten for an async driver.

    * ``sqlite://`` becomes ``sqlite+aiosqlite://``
    * ``postgres://``, ``postgresql://`` and the sync/asyncpg variants
      become ``postgresql+psycopg://`` with ``sslmode=require`` unless
      another mode was requested explicitly.
    """
    url_obj = make_url(db_url)
    driver = url_obj.drivername or ""
    if driver == "sqlite":
        url_obj = url_obj.set(drivername="sqlite+aiosqlite")
    elif driver in {"postgresql", "postgres", "postgresql+psycopg", "postgresql+psycopg2", "postgresql+asyncpg"}:
        q = dict(url_obj.query or {})
        if not q.get("sslmode"):
            q["sslmode"] = "require"
        url_obj = url_obj.set(drivername="postgresql+psycopg", query=q)
    return url_obj.render_as_string(hide_password=False)


def _configure_sqlite(engine: AsyncEngine) -> None:
    """Enable SAVEPOINT support and foreign keys for (aio)sqlite.

    The sqlite driver starts transactions lazily on its own, which breaks
    ``begin_nested()``.  Disabling that behaviour and emitting BEGIN from
    SQLAlchemy restores proper transactional semantics.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # pragma: no cover - driver hook
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):  # pragma: no cover - driver hook
        conn.exec_driver_sql("BEGIN")


def build_engine(db_url: str, **engine_kwargs: Any) -> AsyncEngine:
    """Create an async engine for ``db_url`` with dialect specific setup."""
    db_url = normalize_database_url(db_url)
    kwargs: dict[str, Any] = dict(echo=settings.SQL_ECHO, pool_pre_ping=True)
    kwargs.update(engine_kwargs)
    engine = create_async_engine(db_url, **kwargs)
    if engine.dialect.name == "sqlite":
        _configure_sqlite(engine)
    return engine


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# -----------------------------------------------------------------------------
# Determine the connection string to use.

db_url = settings.DATABASE_URL or os.getenv("DATABASE_URL")

if not db_url:
    # Fail fast when no DB URL is provided and fallback is disabled; otherwise
    # use a local SQLite database for development convenience.
    if not settings.DB_DEV_FALLBACK_SQLITE:
        raise RuntimeError(
            "No database URL provided via DATABASE_URL; with "
            "DB_DEV_FALLBACK_SQLITE=false, a database URL is required."
        )
    db_url = SQLITE_FALLBACK_URL
    USING_SQLITE_FALLBACK = True

engine = build_engine(db_url)
logger.info("Creating async engine with URL: %s", engine.url.render_as_string(hide_password=True))

# Create session factory
AsyncSessionLocal = build_sessionmaker(engine)

# Declarative base
Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that yields a database session.

    This function is intended for FastAPI dependency injection.  Each
    session is scoped to the request and closed after use.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db() -> None:
    """Create all tables defined on the declarative ``Base``.

    Typically called during application startup in development; production
    schemas are managed by the Alembic migrations in ``migrations/``.
    """
    global LAST_DB_INIT_ERROR
    try:
        async with engine.begin() as conn:
            # Import all models to ensure metadata is populated
            from item_ledger.models import tables  # noqa: F401
            await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        LAST_DB_INIT_ERROR = str(e)
        logger.error("DB init failed: %s", e)
        raise


def get_db_debug_info() -> Dict[str, Any]:
    """Return non-sensitive information about the current DB engine for debugging."""
    info: Dict[str, Any] = {
        "using_sqlite_fallback": USING_SQLITE_FALLBACK,
        "environment": (settings.ENVIRONMENT or "development"),
        "drivername": engine.url.drivername,
        "host": engine.url.host,
        "database": engine.url.database,
        "url": engine.url.render_as_string(hide_password=True),
    }
    if LAST_DB_INIT_ERROR:
        info["last_db_init_error"] = LAST_DB_INIT_ERROR
    return info
