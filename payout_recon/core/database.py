"""
Async PostgreSQL connection pool module.

This module provides an async PostgreSQL connection pool using asyncpg with a
module-level singleton. All PostgreSQL connections flow through this module,
providing a single point of configuration and management.

Key Components:
- Global connection pool singleton (_pool)
- init_db(): Initialize the connection pool at application startup
- get_db_pool(): Get the pool instance (initializes if needed)
- close_db(): Gracefully close the pool at application shutdown

Connection Pool Configuration:
- min_size: 2 (minimum idle connections kept in pool)
- max_size: 10 (maximum connections in pool)
- command_timeout: 60 seconds (query timeout)

Usage:
    # At application startup (in FastAPI lifespan)
    await init_db()

    # In services or endpoints
    pool = await get_db_pool()
    async with pool.acquire() as conn:
        async with conn.transaction():
            ...

    # At application shutdown
    await close_db()
"""

from typing import Optional

import asyncpg
from asyncpg import Pool

from payout_recon.core.config import get_settings


# =============================================================================
# Global Pool Singleton
# =============================================================================

# None until init_db() is called
_pool: Optional[Pool] = None


# =============================================================================
# Pool Lifecycle Functions
# =============================================================================

async def init_db() -> Pool:
    """
    Initialize the database connection pool.

    If the pool is already initialized, the existing pool is returned
    without creating a new one.

    Returns:
        Pool: The asyncpg connection pool instance.

    Raises:
        asyncpg.PostgresError: If connection to the database fails.
        OSError: If the database host is unreachable.
    """
    global _pool

    if _pool is None:
        settings = get_settings()
        _pool = await asyncpg.create_pool(
            dsn=settings.database_url,
            min_size=2,
            max_size=10,
            command_timeout=60,
        )

    return _pool


async def get_db_pool() -> Pool:
    """
    Get the database connection pool, initializing if needed.

    Returns:
        Pool: The asyncpg connection pool instance.
    """
    global _pool

    if _pool is None:
        await init_db()

    assert _pool is not None, "Pool should be initialized after init_db()"

    return _pool


async def close_db() -> None:
    """
    Close the database connection pool gracefully.

    Safe to call when the pool is not initialized. After closing, the next
    get_db_pool() call creates a fresh pool.
    """
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None

