# missionhub/core/database.py
"""Database connection and session management using SQLAlchemy."""
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy import text
import logging

from .config import settings

logger = logging.getLogger(__name__)


def _engine_options(database_url: str) -> dict:
    """Pool and connection settings; the asyncpg tuning only applies to PostgreSQL."""
    options = {
        "pool_pre_ping": True,
        "echo": False,
    }
    if database_url.startswith("postgresql"):
        options.update({
            "pool_size": 15,
            "max_overflow": 25,
            "pool_timeout": 60,
            "pool_recycle": 1800,
            "connect_args": {
                "command_timeout": 300,
                "server_settings": {
                    "jit": "off",
                    "application_name": "missionhub_api",
                    "statement_timeout": "300s",
                    "idle_in_transaction_session_timeout": "60s",
                    "lock_timeout": "30s",  # Prevent long waits on roster row locks
                }
            },
        })
    return options


engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

AsyncSessionLocal = async_sessionmaker(
    engine,
    expire_on_commit=False,
    class_=AsyncSession,
    autoflush=False,  # Manual control over flushing
    autocommit=False,
)

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get database session for API requests with proper error handling"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            logger.error(f"Database session error: {e}")
            await session.rollback()
            raise
        finally:
            await session.close()

async def health_check_db() -> bool:
    """Fast health check"""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
            return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False

async def get_pool_status():
    """Get connection pool status for monitoring"""
    pool = engine.pool
    status = {"pool_class": type(pool).__name__}
    if hasattr(pool, "checkedout"):
        status.update({
            "pool_size": pool.size(),
            "checked_in": pool.checkedin(),
            "checked_out": pool.checkedout(),
        })
    return status

async def close_db_connections():
    """Properly close all database connections"""
    await engine.dispose()
    logger.info("Database connections closed")
