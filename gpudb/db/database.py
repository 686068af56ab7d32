"""Database engine construction and schema bootstrap."""

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import declarative_base

from gpudb.config import Settings

# Base class for models
Base = declarative_base()


def create_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine shared by one import run.

    The caller owns the engine and must ``await engine.dispose()`` when done.
    """
    if settings.database_url.startswith("sqlite"):
        # SQLite picks its own pool class; pool sizing does not apply
        return create_async_engine(settings.database_url, echo=False)

    # Always disable SQL echo - bulk inserts would flood the log
    return create_async_engine(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        echo=False,
        pool_pre_ping=True,  # Verify connections before use to avoid stale connections
        pool_recycle=300,    # Recycle connections after 5 minutes
    )


async def init_db(engine: AsyncEngine):
    """Create all tables that do not exist yet."""
    # Register models on Base.metadata
    from gpudb.db import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, checkfirst=True)
