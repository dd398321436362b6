"""
Reconciliation Store

Duplicate-safe persistence for lead-source call records and routing legs.

Lead-source upsert contract:
1. A row carrying originalDateOfCall different from dateOfCall is a
   timestamp correction. If a row already sits at the corrected key
   (callerId, dateOfCall, category) the correction is abandoned, the original
   timestamp is kept, and the event is counted as a skipped duplicate
   correction. Otherwise the row found at the original key is moved to the
   corrected timestamp.
2. Any other row is updated in place at its key, or inserted.
3. Two rows never share (callerId, dateOfCall, category). A unique violation
   raised by the database during a timestamp move is absorbed inside a
   savepoint and handled like case 1.

The whole batch runs in one transaction. When called inside an outer
transaction (the reconciliation driver's batch), asyncpg turns the inner
block into a savepoint, so a failure still rolls back the entire batch.

Original amounts are captured at most once: capture_original() is a
conditional write that only succeeds while both stored originals are zero or
null, regardless of what the caller checked beforehand.

All functions take an asyncpg connection so callers control transaction
scope:

    pool = await get_db_pool()
    async with pool.acquire() as conn:
        summary = await upsert_call_records(conn, records)
"""

import logging
from datetime import date
from typing import Any, Iterable, List, Optional, Tuple

import asyncpg

from payout_recon.models.enums import Category
from payout_recon.models.schemas import (
    CallRecord,
    LegUpsertSummary,
    RoutingCallLeg,
    UpsertSummary,
)
from payout_recon.sql import (
    SCHEMA_STATEMENTS,
    SELECT_CALL_ID_BY_KEY,
    UPSERT_CALL_RECORD,
    UPDATE_CALL_RECORD_TIMESTAMP,
    UPDATE_CALL_RECORD,
    CAPTURE_ORIGINAL_AMOUNTS,
    MARK_MATCHED,
    MARK_UNMATCHED,
    SELECT_CALL_RECORDS_IN_RANGE,
    SELECT_RECONCILED_ROWS,
    UPSERT_ROUTING_LEG,
    SELECT_ROUTING_LEGS_IN_RANGE,
)


logger = logging.getLogger(__name__)


# =============================================================================
# SCHEMA
# =============================================================================

async def ensure_schema(conn: asyncpg.Connection) -> None:
    """Create the reconciliation tables and indexes if they do not exist."""
    async with conn.transaction():
        for statement in SCHEMA_STATEMENTS:
            await conn.execute(statement)
    logger.info("Reconciliation schema ensured")


# =============================================================================
# ROW MAPPING
# =============================================================================

def _optional_float(value: Any) -> Optional[float]:
    return float(value) if value is not None else None


def _descriptive_fields(record: CallRecord) -> Tuple[Any, ...]:
    return (
        record.campaignPhone,
        record.cityState,
        record.zipCode,
        record.totalDuration,
        record.assessment,
        record.classification,
    )


def record_from_row(row: Any) -> CallRecord:
    """Map a lead_call_records row to a CallRecord."""
    return CallRecord(
        id=row['id'],
        callerId=row['caller_id'],
        dateOfCall=row['date_of_call'],
        category=Category(row['category']),
        payout=float(row['payout'] or 0),
        originalPayout=_optional_float(row['original_payout']),
        originalRevenue=_optional_float(row['original_revenue']),
        linkedRoutingCallId=row['linked_routing_call_id'],
        unmatched=bool(row['unmatched']),
        campaignPhone=row['campaign_phone'],
        cityState=row['city_state'],
        zipCode=row['zip_code'],
        totalDuration=row['total_duration'],
        assessment=row['assessment'],
        classification=row['classification'],
    )


def leg_from_row(row: Any) -> RoutingCallLeg:
    """Map a routing_call_legs row to a RoutingCallLeg."""
    return RoutingCallLeg(
        legId=row['leg_id'],
        timestamp=row['call_date_time'],
        callerId=row['caller_id'],
        callerIdE164=row['caller_id_e164'],
        payoutAmount=float(row['payout_amount'] or 0),
        revenueAmount=float(row['revenue_amount'] or 0),
        connected=bool(row['connected']),
        durationSeconds=row['call_duration'] or 0,
        reroutedFromLegId=row['rerouted_from_leg_id'],
        rootLegId=row['root_leg_id'],
        targetId=row['target_id'],
        targetName=row['target_name'],
        campaignName=row['campaign_name'],
        publisherName=row['publisher_name'],
    )


# =============================================================================
# LEAD CALL RECORDS
# =============================================================================

async def _upsert_at(conn: asyncpg.Connection, record: CallRecord, date_of_call: str) -> bool:
    row = await conn.fetchrow(
        UPSERT_CALL_RECORD,
        record.callerId,
        date_of_call,
        record.category.value,
        float(record.payout),
        *_descriptive_fields(record),
    )
    return bool(row['inserted'])


async def _apply_timestamp_correction(
    conn: asyncpg.Connection,
    record: CallRecord,
    summary: UpsertSummary,
) -> None:
    category = record.category.value
    corrected = record.dateOfCall
    original = record.originalDateOfCall

    clash_id = await conn.fetchval(SELECT_CALL_ID_BY_KEY, record.callerId, corrected, category)
    existing_id = await conn.fetchval(SELECT_CALL_ID_BY_KEY, record.callerId, original, category)

    if clash_id is not None:
        logger.warning(
            f"Skipping timestamp correction for {record.callerId}: "
            f"{original} -> {corrected} would duplicate row {clash_id}"
        )
        summary.skippedDuplicateCorrections += 1
        if await _upsert_at(conn, record, original):
            summary.inserted += 1
        else:
            summary.updated += 1
        return

    if existing_id is None:
        if await _upsert_at(conn, record, corrected):
            summary.inserted += 1
        else:
            summary.updated += 1
        return

    try:
        async with conn.transaction():
            await conn.execute(
                UPDATE_CALL_RECORD_TIMESTAMP,
                existing_id,
                corrected,
                float(record.payout),
                *_descriptive_fields(record),
            )
        summary.timestampCorrected += 1
    except asyncpg.UniqueViolationError:
        logger.warning(
            f"Timestamp correction for row {existing_id} collided on write; "
            f"keeping {original}"
        )
        summary.skippedDuplicateCorrections += 1
        await conn.execute(
            UPDATE_CALL_RECORD,
            existing_id,
            float(record.payout),
            *_descriptive_fields(record),
        )
    summary.updated += 1


async def upsert_call_records(
    conn: asyncpg.Connection,
    records: Iterable[CallRecord],
) -> UpsertSummary:
    """
    Upsert a batch of lead-source rows in one transaction.

    Args:
        conn: Database connection.
        records: Rows to write. Timestamps should already be canonical.

    Returns:
        UpsertSummary with inserted, updated, timestampCorrected and
        skippedDuplicateCorrections counts.
    """
    summary = UpsertSummary()

    async with conn.transaction():
        for record in records:
            if record.originalDateOfCall and record.originalDateOfCall != record.dateOfCall:
                await _apply_timestamp_correction(conn, record, summary)
            elif await _upsert_at(conn, record, record.dateOfCall):
                summary.inserted += 1
            else:
                summary.updated += 1

    logger.info(
        f"Upserted call records: {summary.inserted} inserted, {summary.updated} updated, "
        f"{summary.timestampCorrected} timestamps corrected, "
        f"{summary.skippedDuplicateCorrections} corrections skipped"
    )
    return summary


async def capture_original(
    conn: asyncpg.Connection,
    row_id: int,
    original_payout: float,
    original_revenue: float,
    linked_routing_call_id: Optional[str] = None,
) -> bool:
    """
    Record pre-correction routing amounts, at most once per row.

    The write only happens while the stored original_payout and
    original_revenue are both zero or null. linked_routing_call_id is only
    filled when it is still null.

    Returns:
        True when the row was written, False when originals were already set.
    """
    written = await conn.fetchval(
        CAPTURE_ORIGINAL_AMOUNTS,
        row_id,
        float(original_payout),
        float(original_revenue),
        linked_routing_call_id,
    )
    return written is not None


async def mark_matched(conn: asyncpg.Connection, row_id: int, leg_id: str) -> None:
    await conn.execute(MARK_MATCHED, row_id, leg_id)


async def mark_unmatched(conn: asyncpg.Connection, row_id: int) -> None:
    await conn.execute(MARK_UNMATCHED, row_id)


async def fetch_call_records(
    conn: asyncpg.Connection,
    start_date: date,
    end_date: date,
    category: Optional[Category] = None,
) -> List[CallRecord]:
    """Load lead rows whose call date falls in [start_date, end_date]."""
    rows = await conn.fetch(
        SELECT_CALL_RECORDS_IN_RANGE,
        start_date.isoformat(),
        end_date.isoformat(),
        category.value if category else None,
    )
    return [record_from_row(row) for row in rows]


async def fetch_reconciled_rows(
    conn: asyncpg.Connection,
    start_date: date,
    end_date: date,
    category: Optional[Category] = None,
    unmatched: Optional[bool] = None,
) -> List[CallRecord]:
    """Read side for reporting: rows with their reconciliation fields, newest first."""
    rows = await conn.fetch(
        SELECT_RECONCILED_ROWS,
        start_date.isoformat(),
        end_date.isoformat(),
        category.value if category else None,
        unmatched,
    )
    return [record_from_row(row) for row in rows]


# =============================================================================
# ROUTING CALL LEGS
# =============================================================================

async def upsert_routing_legs(
    conn: asyncpg.Connection,
    legs: Iterable[RoutingCallLeg],
) -> LegUpsertSummary:
    """Upsert legs by leg id (last write wins). Safe to repeat."""
    summary = LegUpsertSummary()

    async with conn.transaction():
        for leg in legs:
            row = await conn.fetchrow(
                UPSERT_ROUTING_LEG,
                leg.legId,
                leg.timestamp,
                leg.callerId,
                leg.callerIdE164,
                float(leg.payoutAmount),
                float(leg.revenueAmount),
                leg.connected,
                leg.durationSeconds,
                leg.reroutedFromLegId,
                leg.rootLegId,
                leg.targetId,
                leg.targetName,
                leg.campaignName,
                leg.publisherName,
            )
            if row['inserted']:
                summary.inserted += 1
            else:
                summary.updated += 1

    logger.info(f"Upserted routing legs: {summary.inserted} inserted, {summary.updated} updated")
    return summary


async def fetch_routing_legs(
    conn: asyncpg.Connection,
    start_date: date,
    end_date: date,
) -> List[RoutingCallLeg]:
    """Load persisted legs whose (Eastern) call date falls in the range."""
    rows = await conn.fetch(
        SELECT_ROUTING_LEGS_IN_RANGE,
        start_date.isoformat(),
        end_date.isoformat(),
    )
    return [leg_from_row(row) for row in rows]
