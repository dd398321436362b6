"""
Core infrastructure package for the payout reconciliation service.

Provides:
- Configuration management via pydantic-settings
- Async PostgreSQL database connectivity via asyncpg
- FastAPI dependency injection utilities

Simplified imports:

    from payout_recon.core import get_settings, get_db_pool, DBSessionDep
"""

from payout_recon.core.config import Settings, get_settings
from payout_recon.core.database import init_db, close_db, get_db_pool
from payout_recon.core.dependencies import (
    get_db_session,
    get_settings_dependency,
    SettingsDep,
    DBSessionDep,
)


__all__ = [
    "Settings",
    "get_settings",
    "init_db",
    "close_db",
    "get_db_pool",
    "get_db_session",
    "get_settings_dependency",
    "SettingsDep",
    "DBSessionDep",
]
