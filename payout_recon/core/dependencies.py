"""
FastAPI dependency injection module for the payout reconciliation service.

Key Dependencies Provided:
- get_db_session: Async generator yielding database connections from the pool
- get_settings_dependency: Returns the cached Settings singleton
- SettingsDep: Type alias for injecting Settings into endpoints
- DBSessionDep: Type alias for injecting database connections into endpoints

Usage:
    @router.get("/calls")
    async def list_calls(db: DBSessionDep, settings: SettingsDep):
        rows = await db.fetch("SELECT * FROM lead_call_records LIMIT 10")
"""

from typing import Annotated, AsyncGenerator

from asyncpg import Connection
from fastapi import Depends

from payout_recon.core.config import Settings, get_settings
from payout_recon.core.database import get_db_pool


# =============================================================================
# Database Session Dependency
# =============================================================================

async def get_db_session() -> AsyncGenerator[Connection, None]:
    """
    Yield an async database connection from the pool.

    The connection is released back to the pool when the endpoint completes,
    regardless of whether the handler succeeded or raised.

    Yields:
        asyncpg.Connection: An active database connection from the pool.
    """
    pool = await get_db_pool()
    async with pool.acquire() as connection:
        yield connection


# =============================================================================
# Settings Dependency
# =============================================================================

def get_settings_dependency() -> Settings:
    """
    Return the Settings singleton instance.

    Thin wrapper around get_settings() so tests can use FastAPI's override
    mechanism:

        app.dependency_overrides[get_settings_dependency] = lambda: mock_settings
    """
    return get_settings()


# =============================================================================
# Type Aliases for Dependency Injection
# =============================================================================

SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]

DBSessionDep = Annotated[Connection, Depends(get_db_session)]
