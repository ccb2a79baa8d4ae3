"""Database configuration and session management.

This module constructs an asynchronous SQLAlchemy engine and session
factory for the application from ``DATABASE_URL``.  Postgres URLs are
normalised to the async ``psycopg`` driver and SQLite URLs to
``aiosqlite``.  A fallback to a local SQLite file is permitted in
development when ``DB_DEV_FALLBACK_SQLITE`` is set.

It also provides :func:`upsert`, a small helper that emits the dialect's
``INSERT ... ON CONFLICT`` so the same call works on Postgres and SQLite.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncGenerator, Dict, Iterable, Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine.url import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from app.core.config import settings, is_development

logger = logging.getLogger(__name__)

# Track whether we fell back to SQLite during init
USING_SQLITE_FALLBACK: bool = False
LAST_DB_INIT_ERROR: Optional[str] = None

_SQLITE_FALLBACK_URL = "sqlite+aiosqlite:///./subpirate.db"


def _normalise_url(raw: str) -> str:
    """Map sync driver names onto their async counterparts."""
    url_obj = make_url(raw)
    driver = url_obj.drivername or ""
    if driver == "sqlite":
        url_obj = url_obj.set(drivername="sqlite+aiosqlite")
    elif driver in {"postgresql", "postgres", "postgresql+psycopg2", "postgresql+asyncpg"}:
        q = dict(url_obj.query or {})
        # Hosted Postgres (Supabase) expects TLS
        if not q.get("sslmode") and url_obj.host not in (None, "localhost", "127.0.0.1"):
            q["sslmode"] = "require"
        url_obj = url_obj.set(drivername="postgresql+psycopg", query=q)
    return url_obj.render_as_string(hide_password=False)


db_url = settings.DATABASE_URL
if not db_url:
    if not settings.DB_DEV_FALLBACK_SQLITE:
        raise RuntimeError(
            "No database URL provided via DATABASE_URL; with "
            "DB_DEV_FALLBACK_SQLITE=false, a Postgres URL is required."
        )
    db_url = _SQLITE_FALLBACK_URL
    USING_SQLITE_FALLBACK = True

db_url = _normalise_url(db_url)

engine_kwargs: dict[str, Any] = dict(echo=False, pool_pre_ping=True)
engine = create_async_engine(db_url, **engine_kwargs)
logger.info("Creating async engine with URL: %s", make_url(db_url).render_as_string(hide_password=True))

# Create session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

# Declarative base
Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that yields a database session.

    Each session is scoped to the request and closed after use.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db() -> None:
    """Create all tables defined on the declarative ``Base``.

    When the primary connection fails in development and
    ``DB_DEV_FALLBACK_SQLITE`` is enabled, the engine is swapped for a
    local SQLite database.
    """
    global engine, AsyncSessionLocal, USING_SQLITE_FALLBACK, LAST_DB_INIT_ERROR
    from app.models import tables  # noqa: F401  (populate metadata)

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        LAST_DB_INIT_ERROR = str(e)
        if not (is_development() and settings.DB_DEV_FALLBACK_SQLITE):
            raise
        logger.warning("DB init failed (%s); falling back to SQLite for development", e)
        engine = create_async_engine(_SQLITE_FALLBACK_URL, **engine_kwargs)
        AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
        USING_SQLITE_FALLBACK = True
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)


async def upsert(
    db: AsyncSession,
    model: Any,
    values: Dict[str, Any],
    conflict_cols: Iterable[str],
    update_cols: Optional[Iterable[str]] = None,
) -> None:
    """Insert ``values`` or resolve a conflict on ``conflict_cols``.

    ``update_cols`` lists the columns overwritten on conflict; it defaults
    to every non-conflict key in ``values``.  An empty list means
    insert-if-absent (``DO NOTHING``).  The caller owns the commit.
    """
    conflict_cols = list(conflict_cols)
    dialect = db.get_bind().dialect.name
    insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
    stmt = insert(model).values(**values)
    if update_cols is None:
        update_cols = [k for k in values if k not in conflict_cols]
    update_cols = list(update_cols)
    if update_cols:
        stmt = stmt.on_conflict_do_update(
            index_elements=conflict_cols,
            set_={col: stmt.excluded[col] for col in update_cols},
        )
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=conflict_cols)
    await db.execute(stmt)


def get_db_debug_info() -> Dict[str, Any]:
    """Return non-sensitive information about the current DB engine."""
    info: Dict[str, Any] = {
        "using_sqlite_fallback": USING_SQLITE_FALLBACK,
        "environment": (settings.ENVIRONMENT or "development"),
    }
    if LAST_DB_INIT_ERROR:
        info["last_db_init_error"] = LAST_DB_INIT_ERROR
    url_obj = make_url(str(engine.url))
    info.update(
        {
            "drivername": url_obj.drivername,
            "host": url_obj.host,
            "port": url_obj.port,
            "database": url_obj.database,
            "url": url_obj.render_as_string(hide_password=True),
        }
    )
    return info
