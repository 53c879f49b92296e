"""Database configuration and connection management"""

import asyncio
from typing import Optional
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    async_sessionmaker,
    AsyncSession,
    AsyncEngine
)
from redis.asyncio import Redis, ConnectionPool
from app.core.config import settings

# Import Base from models (defined in models/base.py)
# This ensures all models are registered with the same Base
from app.models import Base

# SQL async engine
sql_engine: Optional[AsyncEngine] = None
async_session_factory: Optional[async_sessionmaker] = None

# Redis client
redis_client: Optional[Redis] = None
redis_pool: Optional[ConnectionPool] = None


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    SQLite URLs get no pool tuning; server databases get a bounded pool
    with pre-ping so stale connections are recycled.
    """
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=echo, future=True)

    return create_async_engine(
        url,
        echo=echo,
        pool_size=10,  # Maximum number of connections in the pool
        max_overflow=20,  # Maximum overflow connections beyond pool_size
        pool_timeout=30,  # Timeout for getting connection from pool
        pool_recycle=3600,  # Recycle connections after 1 hour
        pool_pre_ping=True,  # Verify connections before using
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_database(create_tables: bool = False) -> None:
    """Initialize the async engine and session factory"""
    global sql_engine, async_session_factory

    sql_engine = build_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
    async_session_factory = build_session_factory(sql_engine)

    if create_tables:
        async with sql_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)


async def close_database() -> None:
    """Close the engine and cleanup connections"""
    global sql_engine, async_session_factory
    if sql_engine:
        await sql_engine.dispose()
        sql_engine = None
        async_session_factory = None


def get_session_factory() -> async_sessionmaker:
    if async_session_factory is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return async_session_factory


async def check_database_connection() -> bool:
    """
    Check if the database connection is healthy.
    Used for health checks.
    """
    if sql_engine is None:
        return False

    try:
        async with sql_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False


# ============================================================================
# Redis Configuration
# ============================================================================

async def init_redis() -> None:
    """Initialize Redis async client when REDIS_URL is configured"""
    global redis_client, redis_pool

    if not settings.REDIS_URL:
        return

    redis_pool = ConnectionPool.from_url(
        settings.REDIS_URL,
        max_connections=50,  # Maximum connections in pool
        decode_responses=True,  # Automatically decode responses to strings
        socket_connect_timeout=5,  # Connection timeout
        socket_keepalive=True,  # Enable TCP keepalive
        retry_on_timeout=True,  # Retry on timeout
        health_check_interval=30,  # Health check every 30 seconds
    )

    redis_client = Redis(connection_pool=redis_pool)

    max_retries = 3
    retry_delay = 1  # seconds

    for attempt in range(max_retries):
        try:
            await redis_client.ping()
            break
        except Exception as e:
            if attempt == max_retries - 1:
                raise RuntimeError(f"Failed to connect to Redis after {max_retries} attempts: {e}")
            await asyncio.sleep(retry_delay * (attempt + 1))


async def close_redis() -> None:
    """Close Redis client and cleanup connections"""
    global redis_client, redis_pool
    if redis_client:
        await redis_client.aclose()
        redis_client = None
    if redis_pool:
        await redis_pool.disconnect()
        redis_pool = None


def get_redis() -> Optional[Redis]:
    """Get the Redis client, or None when no cache is configured"""
    return redis_client


async def check_redis_connection() -> Optional[bool]:
    """
    Check if Redis connection is healthy.

    Returns None when Redis is not configured.
    """
    if redis_client is None:
        return None

    try:
        await redis_client.ping()
        return True
    except Exception:
        return False
