"""
Enumeration definitions for the payout reconciliation service.

All enums inherit from both `str` and `Enum` so they serialize cleanly through
Pydantic models in API responses and bind directly as asyncpg text parameters.
"""

from enum import Enum


class Category(str, Enum):
    """
    Coarse traffic partition that must agree between a lead row and a routing
    leg before any caller, time or payout comparison is attempted.

    A routing target whose name contains "static" is STATIC, every other
    target is API. Lead rows without a category default to STATIC.
    """
    STATIC = "STATIC"
    API = "API"


class FailureKind(str, Enum):
    """
    Typed failure categories carried by Failure results and per-item run
    failures.

    - parse_error: caller id or timestamp could not be normalized
    - lookup_error: a routing platform call-log or leg-detail fetch failed
    - correction_apply_error: the payment override or void call failed
    - persistence_error: a database write failed
    """
    PARSE_ERROR = "parse_error"
    LOOKUP_ERROR = "lookup_error"
    CORRECTION_APPLY_ERROR = "correction_apply_error"
    PERSISTENCE_ERROR = "persistence_error"


class LegResolutionStep(str, Enum):
    """Multi-leg heuristics applied by the leg resolver, in configured order."""
    REROUTE = "reroute"
    ROOT = "root"
    CONNECTED_REVENUE = "connected_revenue"


class ItemOutcome(str, Enum):
    """Terminal outcome of one lead row within a reconciliation run."""
    MATCHED = "matched"
    CORRECTED = "corrected"
    UNMATCHED = "unmatched"
    SKIPPED_PRESERVED = "skipped_preserved"
    FAILED = "failed"
