"""
Database engine configuration for exStrat Alerts

Async SQLAlchemy 2.0 setup with connection pooling
"""

import logging

from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool

from config.config import DATABASE_URL, ENVIRONMENT

logger = logging.getLogger(__name__)


# Global engine and session maker
engine: AsyncEngine | None = None
AsyncSessionLocal: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """
    Create and configure async database engine

    Returns:
        Configured AsyncEngine instance
    """
    global engine

    if engine is None:
        is_production = ENVIRONMENT == "production"

        engine = create_async_engine(
            DATABASE_URL,
            # Connection pooling
            poolclass=AsyncAdaptedQueuePool,
            pool_size=10 if is_production else 5,
            max_overflow=20 if is_production else 10,
            pool_pre_ping=True,  # Verify connections before using
            pool_recycle=3600,  # Recycle connections every hour
            echo=False,
            echo_pool=False,
            connect_args={
                "statement_cache_size": 0,  # Disable prepared statement cache
                "server_settings": {
                    "application_name": "exstrat_alerts",
                    "jit": "off",
                },
            },
        )

        logger.info(
            f"Database engine created - Environment: {ENVIRONMENT}, "
            f"Pool size: {engine.pool.size()}, Max overflow: {engine.pool.overflow()}"
        )

    return engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """
    Create async session maker

    Returns:
        Configured async_sessionmaker instance
    """
    global AsyncSessionLocal

    if AsyncSessionLocal is None:
        eng = get_engine()
        AsyncSessionLocal = async_sessionmaker(
            eng,
            class_=AsyncSession,
            expire_on_commit=False,  # Important for async!
            autoflush=False,
        )

        logger.info("Session maker created")

    return AsyncSessionLocal


async def dispose_engine() -> None:
    """
    Dispose database engine and close all connections

    Call this on application shutdown
    """
    global engine, AsyncSessionLocal

    if engine is not None:
        await engine.dispose()
        logger.info("Database engine disposed")
        engine = None
        AsyncSessionLocal = None
