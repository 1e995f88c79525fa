"""
Database Session Management

This module handles the database connection lifecycle.

Engines and session factories are created explicitly by whoever owns the
process (the FastAPI lifespan, a Celery task, the CLI) and handed to the
services that need them. Nothing here connects at import time.

Architecture Flow:
------------------
Process Start → create_engine() → create_session_factory(engine)
↓
Unit of work → repository_scope(factory) → queries → commit/rollback → close
↓
Process Shutdown → engine.dispose()

Learning Resources:
- SQLAlchemy Engine: https://docs.sqlalchemy.org/en/20/core/engines.html
- Async Sessions: https://docs.sqlalchemy.org/en/20/orm/extensions/asyncio.html
"""

from typing import Any, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool

from talkarchive.core.config import Settings, settings as default_settings
from talkarchive.core.logging import get_logger

logger = get_logger(__name__)


def get_engine_config(settings: Settings = default_settings) -> dict[str, Any]:
    """
    Configure the database engine based on environment.

    - development/production: AsyncAdaptedQueuePool with DB_POOL_SIZE
      connections plus DB_MAX_OVERFLOW extra under load
    - anything else (staging, CI): NullPool, one connection per session

    pool_pre_ping detects connections the server has dropped, and
    pool_recycle retires connections before Postgres idle timeouts.
    """
    config: dict[str, Any] = {
        "echo": settings.DB_ECHO,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
        "connect_args": {
            "server_settings": {
                "application_name": settings.APP_NAME,
            }
        },
    }

    if settings.is_development or settings.is_production:
        config.update({
            "poolclass": AsyncAdaptedQueuePool,
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
            "pool_timeout": 30,
        })
        if settings.is_production:
            config["pool_recycle"] = 7200
    else:
        config["poolclass"] = NullPool

    logger.info(
        "configuring_database_engine",
        environment=settings.APP_ENV,
        pool_size=config.get("pool_size", "NullPool"),
        max_overflow=config.get("max_overflow"),
    )
    return config


def create_engine(
    database_url: Optional[str] = None,
    settings: Settings = default_settings,
    **overrides: Any,
) -> AsyncEngine:
    """
    Create an async engine.

    Celery workers pass ``poolclass=NullPool`` because every task runs
    its own event loop and pooled asyncpg connections cannot cross loops.
    """
    engine_config = get_engine_config(settings)
    engine_config.update(overrides)
    if engine_config.get("poolclass") is NullPool:
        for key in ("pool_size", "max_overflow", "pool_timeout"):
            engine_config.pop(key, None)

    engine = create_async_engine(
        database_url or settings.DATABASE_URL,
        **engine_config
    )

    logger.info("database_engine_created", driver="asyncpg")
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Session factory bound to ``engine``.

    - autoflush=False: we flush explicitly before reading generated ids
    - expire_on_commit=False: ORM objects stay usable after commit, which
      the orchestrator relies on between steps
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """
    Create extensions and, in development, any missing tables.

    Production schemas are managed by Alembic migrations only.
    """
    from talkarchive.db.base import Base
    import talkarchive.models  # noqa: F401  (registers every table on Base.metadata)

    async with engine.begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        if default_settings.is_development:
            await conn.run_sync(Base.metadata.create_all)
            logger.info("database_tables_created")

    logger.info("database_initialized")


async def close_db(engine: AsyncEngine) -> None:
    await engine.dispose()
    logger.info("database_connections_closed")


async def check_db_health(engine: AsyncEngine) -> bool:
    """Run ``SELECT 1``; used by the /health endpoint."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e))
        return False
