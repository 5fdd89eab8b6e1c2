"""
Database Connection and Session Management

SQLAlchemy async engine and session factory. PostgreSQL (asyncpg) in
production, SQLite (aiosqlite) for local runs and tests.
"""
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from sqlalchemy import text
import logging

from checkin.config import DATABASE_URL, DB_SCHEMA, DB_POOL_SIZE, DB_MAX_OVERFLOW

logger = logging.getLogger(__name__)

IS_SQLITE = DATABASE_URL.startswith("sqlite")


def _engine_options() -> dict:
    if IS_SQLITE:
        # aiosqlite connections are bound to the loop that opened them
        return {"poolclass": NullPool}
    return {
        "pool_size": DB_POOL_SIZE,
        "max_overflow": DB_MAX_OVERFLOW,
        "pool_pre_ping": True,
    }


# Create async engine
engine = create_async_engine(
    DATABASE_URL,
    echo=False,  # Set to True for SQL debugging
    **_engine_options()
)

# Session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

# Base class for ORM models
Base = declarative_base()


def table_ref(name: str) -> str:
    """Qualified table name for foreign keys."""
    return f"{DB_SCHEMA}.{name}" if DB_SCHEMA else name


async def init_db():
    """Verify connectivity and create missing tables."""
    # Register models on Base.metadata
    from checkin import models  # noqa: F401

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            if DB_SCHEMA and not IS_SQLITE:
                await conn.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{DB_SCHEMA}"'))
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database connection established successfully")
    except Exception as e:
        logger.error(f"Failed to connect to database: {e}")
        raise


async def close_db():
    """Close database connection pool."""
    await engine.dispose()
    logger.info("Database connection pool closed")
