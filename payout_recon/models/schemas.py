"""
Pydantic schemas for the payout reconciliation service.

Covers the two persisted record types (lead-source call records and routing
platform call legs), the batch upsert summary, and the request and response
bodies of the reconciliation API.

Field names follow the camelCase wire format used by the API and by the lead
source feed. Persistence maps them to snake_case columns in services/store.py.
"""

from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from payout_recon.models.enums import Category, FailureKind


# =============================================================================
# Persisted Records
# =============================================================================

class CallRecord(BaseModel):
    """
    A call as recorded by the lead source.

    Exactly one row exists per (callerId, dateOfCall, category). The
    originalPayout, originalRevenue and linkedRoutingCallId fields form a
    write-once audit baseline captured at the first confident match.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        json_schema_extra={
            "example": {
                "callerId": "(555) 123-4567",
                "dateOfCall": "2025-11-20T13:31:01",
                "category": "API",
                "payout": 9.00
            }
        }
    )

    id: Optional[int] = Field(
        default=None,
        description="Surrogate key assigned by the store"
    )
    callerId: str = Field(
        ...,
        min_length=1,
        description="Caller phone number as delivered by the lead source"
    )
    dateOfCall: str = Field(
        ...,
        min_length=1,
        description="Call timestamp, canonical form YYYY-MM-DDTHH:MM:SS"
    )
    originalDateOfCall: Optional[str] = Field(
        default=None,
        description="Previous timestamp when a later pass corrected dateOfCall"
    )
    category: Category = Field(
        default=Category.STATIC,
        description="Traffic category (STATIC or API)"
    )
    payout: float = Field(
        default=0.0,
        ge=0,
        description="Payout recorded by the lead source"
    )
    originalPayout: Optional[float] = Field(
        default=None,
        description="Routing platform payout captured before correction"
    )
    originalRevenue: Optional[float] = Field(
        default=None,
        description="Routing platform revenue captured before correction"
    )
    linkedRoutingCallId: Optional[str] = Field(
        default=None,
        description="Routing leg this row was matched to"
    )
    unmatched: bool = Field(
        default=False,
        description="True when the last run found no routing leg for this row"
    )
    campaignPhone: Optional[str] = Field(default=None, description="Tracking number dialed")
    cityState: Optional[str] = Field(default=None, description="Caller city and state")
    zipCode: Optional[str] = Field(default=None, description="Caller ZIP code")
    totalDuration: Optional[int] = Field(default=None, ge=0, description="Call length in seconds")
    assessment: Optional[str] = Field(default=None, description="Lead source assessment")
    classification: Optional[str] = Field(default=None, description="Lead source classification")


class RoutingCallLeg(BaseModel):
    """
    One billing-relevant leg of a call on the routing platform.

    A physical call may span several legs through reroutes and transfers.
    Legs are unique by legId. Timestamps on persisted legs are US Eastern
    wall-clock time in canonical form so they compare directly with lead rows.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    legId: str = Field(..., min_length=1, description="Routing platform inbound call id")
    timestamp: Optional[str] = Field(default=None, description="Call start time")
    callerId: Optional[str] = Field(default=None, description="Raw caller id")
    callerIdE164: Optional[str] = Field(default=None, description="Caller id in E.164 form")
    payoutAmount: float = Field(default=0.0, description="Payout paid to the publisher")
    revenueAmount: float = Field(default=0.0, description="Revenue (conversion amount) earned")
    connected: bool = Field(default=False, description="Whether the leg connected")
    durationSeconds: int = Field(default=0, ge=0, description="Call length in seconds")
    reroutedFromLegId: Optional[str] = Field(default=None, description="Leg this one was rerouted from")
    rootLegId: Optional[str] = Field(default=None, description="Root leg of the call chain")
    targetId: Optional[str] = Field(default=None, description="Routing target id")
    targetName: Optional[str] = Field(default=None, description="Routing target name")
    campaignName: Optional[str] = Field(default=None, description="Routing campaign name")
    publisherName: Optional[str] = Field(default=None, description="Publisher name")


# =============================================================================
# Store Summaries
# =============================================================================

class UpsertSummary(BaseModel):
    """Counts produced by one batch upsert of lead-source rows."""
    inserted: int = Field(default=0, ge=0)
    updated: int = Field(default=0, ge=0)
    timestampCorrected: int = Field(
        default=0,
        ge=0,
        description="Rows whose dateOfCall was moved to a corrected timestamp"
    )
    skippedDuplicateCorrections: int = Field(
        default=0,
        ge=0,
        description="Timestamp corrections abandoned because the corrected key already existed"
    )


class LegUpsertSummary(BaseModel):
    """Counts produced by one batch upsert of routing legs."""
    inserted: int = Field(default=0, ge=0)
    updated: int = Field(default=0, ge=0)


# =============================================================================
# Reconciliation Run
# =============================================================================

class RunRequest(BaseModel):
    """Request body for triggering a reconciliation run."""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "startDate": "2025-11-20",
                "endDate": "2025-11-21",
                "category": "API",
                "dryRun": False
            }
        }
    )

    startDate: date = Field(..., description="First call date to reconcile (inclusive)")
    endDate: date = Field(..., description="Last call date to reconcile (inclusive)")
    category: Optional[Category] = Field(
        default=None,
        description="Restrict the run to one category"
    )
    dryRun: bool = Field(
        default=False,
        description="Match and resolve legs without applying corrections"
    )


class ItemFailure(BaseModel):
    """One failed lead row within a run."""
    success: bool = Field(default=False)
    id: Optional[int] = Field(default=None, description="Lead row id, if known")
    callerId: Optional[str] = Field(default=None)
    routingCallId: Optional[str] = Field(default=None)
    kind: FailureKind
    error: str


class RunSummary(BaseModel):
    """End-of-run totals and the per-item failure list."""
    startDate: date
    endDate: date
    category: Optional[Category] = None
    dryRun: bool = False
    leadRows: int = Field(default=0, ge=0, description="Lead rows loaded for the range")
    routingLegs: int = Field(default=0, ge=0, description="Routing legs fetched for the range")
    legsInserted: int = Field(default=0, ge=0)
    legsUpdated: int = Field(default=0, ge=0)
    processed: int = Field(default=0, ge=0)
    matched: int = Field(default=0, ge=0)
    unmatched: int = Field(default=0, ge=0)
    corrected: int = Field(default=0, ge=0)
    capturedOriginals: int = Field(default=0, ge=0)
    skippedPreserved: int = Field(
        default=0,
        ge=0,
        description="Rows whose original amounts were already captured and kept as they were"
    )
    failures: List[ItemFailure] = Field(default_factory=list)
    aborted: bool = False
    abortReason: Optional[str] = None

    @property
    def failed(self) -> int:
        return len(self.failures)


# =============================================================================
# API Bodies
# =============================================================================

class CallIngestRequest(BaseModel):
    """Lead-source rows to upsert, either as objects or as CSV text."""
    calls: List[CallRecord] = Field(default_factory=list)
    csvText: Optional[str] = Field(
        default=None,
        description="Lead-source CSV export; parsed in addition to calls"
    )


class CallIngestResponse(BaseModel):
    summary: UpsertSummary
    rejected: List[str] = Field(
        default_factory=list,
        description="Messages for rows that could not be parsed"
    )


class RoutingExportRequest(BaseModel):
    """Routing platform call-log CSV export to ingest."""
    csvText: str = Field(..., min_length=1)


class RoutingExportResponse(BaseModel):
    legs: LegUpsertSummary
    byCategory: Dict[str, int] = Field(
        default_factory=dict,
        description="Parsed legs per category"
    )
    convertedZeroValue: List[RoutingCallLeg] = Field(
        default_factory=list,
        description="Converted legs that carry neither payout nor revenue"
    )
    rejected: List[str] = Field(default_factory=list)


class CallListResponse(BaseModel):
    calls: List[CallRecord] = Field(default_factory=list)
    total: int = Field(default=0, ge=0)
