"""
Package initialization file for payout_recon models.

Re-exports the enumerations, Pydantic schemas and result types so other
modules can import them from payout_recon.models directly:

    from payout_recon.models import CallRecord, Category, Success, Failure
"""

# =============================================================================
# Enums
# =============================================================================

from payout_recon.models.enums import (
    Category,
    FailureKind,
    ItemOutcome,
    LegResolutionStep,
)


# =============================================================================
# Schemas
# =============================================================================

from payout_recon.models.schemas import (
    CallRecord,
    RoutingCallLeg,
    UpsertSummary,
    LegUpsertSummary,
    RunRequest,
    ItemFailure,
    RunSummary,
    CallIngestRequest,
    CallIngestResponse,
    RoutingExportRequest,
    RoutingExportResponse,
    CallListResponse,
)


# =============================================================================
# Results
# =============================================================================

from payout_recon.models.results import Success, Failure, Result


__all__ = [
    "Category",
    "FailureKind",
    "ItemOutcome",
    "LegResolutionStep",
    "CallRecord",
    "RoutingCallLeg",
    "UpsertSummary",
    "LegUpsertSummary",
    "RunRequest",
    "ItemFailure",
    "RunSummary",
    "CallIngestRequest",
    "CallIngestResponse",
    "RoutingExportRequest",
    "RoutingExportResponse",
    "CallListResponse",
    "Success",
    "Failure",
    "Result",
]
