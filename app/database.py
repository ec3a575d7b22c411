"""
Database Configuration

Async engine and session factory shared by the API and the feedback
pipeline. Echo follows ``settings.sqlalchemy_echo`` (never on in
production) and the connection string is never logged.
"""

import logging
import time

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from app.config import settings
from app.middleware.correlation import get_tenant_id

logger = logging.getLogger(__name__)


def engine_options(url: str) -> dict:
    """Pool settings for server databases. SQLite manages its own pool."""
    options = {"echo": settings.sqlalchemy_echo, "future": True}
    if not url.startswith("sqlite"):
        options.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_recycle=3600,
            pool_pre_ping=True,
        )
    return options


engine = create_async_engine(settings.DATABASE_URL, **engine_options(settings.DATABASE_URL))


@event.listens_for(engine.sync_engine, "before_cursor_execute")
def _start_timer(conn, cursor, statement, parameters, context, executemany):
    conn.info.setdefault("query_started", []).append(time.monotonic())


@event.listens_for(engine.sync_engine, "after_cursor_execute")
def _log_slow_query(conn, cursor, statement, parameters, context, executemany):
    started = conn.info.get("query_started")
    if not started:
        return
    elapsed_ms = (time.monotonic() - started.pop()) * 1000
    if elapsed_ms >= settings.DB_SLOW_QUERY_MS:
        # Statement only; bound parameters may hold survey text or contact details
        logger.warning(
            "Slow query for tenant %s (%.0fms): %.200s", get_tenant_id(), elapsed_ms, statement
        )


async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


async def get_db() -> AsyncSession:
    """Dependency to get database session.

    Stores and services commit their own writes; this dependency only
    provides the session and closes it.
    """
    session = async_session_maker()
    try:
        yield session
    finally:
        await session.close()


async def init_db():
    """Create any missing tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database ready (%d tables)", len(Base.metadata.tables))
