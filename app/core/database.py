"""
Async database engine and request-scoped sessions

Webhook handlers and API services share one session per request; the
session commits when the handler returns and rolls back on any error.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from typing import Any, AsyncGenerator, Dict
import logging

from .config import settings
from app.models.base import Base

logger = logging.getLogger(__name__)


def engine_options(url: str) -> Dict[str, Any]:
    """Pool settings for the configured backend"""
    options: Dict[str, Any] = {"echo": settings.DATABASE_ECHO}
    if url.startswith("sqlite"):
        # aiosqlite connections can't be shared across event loops
        options["poolclass"] = NullPool
    else:
        options.update(
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            pool_timeout=settings.DATABASE_POOL_TIMEOUT,
            pool_pre_ping=True,
        )
    return options


engine = create_async_engine(settings.database_url_async, **engine_options(settings.database_url_async))

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request session; committed on success, rolled back on error"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create missing tables"""
    # Every model module must be imported before create_all
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Database ready ({len(Base.metadata.tables)} tables)")


async def close_db() -> None:
    await engine.dispose()
    logger.info("Database connections closed")
