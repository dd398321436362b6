"""
FastAPI router module for payout reconciliation.

Implements:
- POST /reconciliation/run             run a reconciliation batch for a date range
- POST /reconciliation/calls           upsert lead-source rows (JSON objects or CSV text)
- GET  /reconciliation/calls           reconciled rows for reporting
- POST /reconciliation/routing-export  ingest a routing platform call-log CSV export
- GET  /reconciliation/routing-legs    persisted routing legs for a date range
"""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Body, HTTPException, Query

from payout_recon.core.dependencies import DBSessionDep, SettingsDep
from payout_recon.jobs.run_digest import send_run_digest
from payout_recon.models.enums import Category
from payout_recon.models.schemas import (
    CallIngestRequest,
    CallIngestResponse,
    CallListResponse,
    RoutingCallLeg,
    RoutingExportRequest,
    RoutingExportResponse,
    RunRequest,
    RunSummary,
)
from payout_recon.services.ingestion import (
    normalize_call_records,
    parse_lead_csv,
    parse_routing_export,
    summarize_by_category,
)
from payout_recon.services.reconciliation import ConfigurationError, run_reconciliation
from payout_recon.services.store import (
    fetch_reconciled_rows,
    fetch_routing_legs,
    upsert_call_records,
    upsert_routing_legs,
)


logger = logging.getLogger(__name__)


router = APIRouter(prefix="/reconciliation")


# =============================================================================
# Runs
# =============================================================================

@router.post("/run", response_model=RunSummary)
async def trigger_run(
    settings: SettingsDep,
    run_request: RunRequest = Body(...),
) -> RunSummary:
    """
    Reconcile lead rows against routing legs for a date range.

    Item-level failures are reported inside the summary rather than as HTTP
    errors. The summary is posted to Slack when a webhook is configured.

    Raises:
        HTTPException 400: Routing credentials missing or an inverted range.
        HTTPException 500: Unexpected failure.
    """
    try:
        summary = await run_reconciliation(
            start_date=run_request.startDate,
            end_date=run_request.endDate,
            category=run_request.category,
            dry_run=run_request.dryRun,
            settings=settings,
        )
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("Error running reconciliation")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to run reconciliation: {str(e)}"
        )

    digest = await send_run_digest(summary, settings.slack_webhook_url)
    if digest['status'] == 'error':
        logger.warning(f"Run digest not delivered: {digest['error']}")

    return summary


# =============================================================================
# Lead-source rows
# =============================================================================

@router.post("/calls", response_model=CallIngestResponse)
async def ingest_calls(
    db: DBSessionDep,
    ingest_request: CallIngestRequest = Body(...),
) -> CallIngestResponse:
    """
    Upsert lead-source rows.

    Rows may arrive as JSON objects, as CSV text, or both. Timestamps are
    canonicalized before writing; rows with unparseable timestamps are
    rejected and listed in the response.
    """
    records, rejected = normalize_call_records(ingest_request.calls)

    if ingest_request.csvText:
        csv_records, csv_rejected = parse_lead_csv(ingest_request.csvText)
        records.extend(csv_records)
        rejected.extend(csv_rejected)

    if not records and rejected:
        raise HTTPException(status_code=422, detail=rejected)

    try:
        summary = await upsert_call_records(db, records)
    except Exception as e:
        logger.exception("Error upserting call records")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to store call records: {str(e)}"
        )

    return CallIngestResponse(summary=summary, rejected=rejected)


@router.get("/calls", response_model=CallListResponse)
async def list_calls(
    db: DBSessionDep,
    startDate: date = Query(..., description="First call date (inclusive)"),
    endDate: date = Query(..., description="Last call date (inclusive)"),
    category: Optional[Category] = Query(default=None, description="Filter by category"),
    unmatched: Optional[bool] = Query(default=None, description="Filter by unmatched flag"),
) -> CallListResponse:
    """
    Reconciled rows with linkedRoutingCallId, originalPayout,
    originalRevenue and unmatched, newest first.
    """
    if endDate < startDate:
        raise HTTPException(status_code=400, detail="endDate must not be before startDate")

    try:
        calls = await fetch_reconciled_rows(db, startDate, endDate, category, unmatched)
    except Exception as e:
        logger.exception("Error listing reconciled calls")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to list calls: {str(e)}"
        )

    return CallListResponse(calls=calls, total=len(calls))


# =============================================================================
# Routing platform legs
# =============================================================================

@router.post("/routing-export", response_model=RoutingExportResponse)
async def ingest_routing_export(
    db: DBSessionDep,
    settings: SettingsDep,
    export_request: RoutingExportRequest = Body(...),
) -> RoutingExportResponse:
    """
    Ingest a routing platform call-log CSV export.

    Legs are upserted by leg id. Converted legs with $0 revenue and payout
    are returned so they can be reviewed.
    """
    export = parse_routing_export(export_request.csvText, settings.target_names)
    if not export.legs and export.rejected:
        raise HTTPException(status_code=422, detail=export.rejected)

    try:
        leg_summary = await upsert_routing_legs(db, export.legs)
    except Exception as e:
        logger.exception("Error upserting routing legs")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to store routing legs: {str(e)}"
        )

    return RoutingExportResponse(
        legs=leg_summary,
        byCategory=summarize_by_category(export.legs, settings.target_names),
        convertedZeroValue=export.converted_zero_value,
        rejected=export.rejected,
    )


@router.get("/routing-legs", response_model=List[RoutingCallLeg])
async def list_routing_legs(
    db: DBSessionDep,
    startDate: date = Query(..., description="First call date (inclusive)"),
    endDate: date = Query(..., description="Last call date (inclusive)"),
) -> List[RoutingCallLeg]:
    try:
        return await fetch_routing_legs(db, startDate, endDate)
    except Exception as e:
        logger.exception("Error listing routing legs")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to list routing legs: {str(e)}"
        )
