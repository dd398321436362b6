"""
Reconciliation Driver

Runs one reconciliation batch for a date range:

1. Fetch routing legs per configured target from the routing platform,
   convert their times to Eastern, and persist them.
2. Load lead-source rows for the range from the store.
3. For each lead row, one at a time:
   a. Normalize the caller id and parse the call time. Either failing is a
      parse error and the row is marked unmatched.
   b. A row linked by an earlier run keeps its linked leg. Other rows gather
      legs with the same category and caller, drop legs already claimed by
      another row this run, and pick the best match. No match marks the row
      unmatched.
   c. Capture the routing amounts as the row's originals. Rows whose
      originals are already set keep them and count as skippedPreserved.
   d. If the leg's payout or revenue differs from the lead payout, resolve
      the payout and revenue legs and, unless they already carry the lead
      payout, apply the correction, pausing between successive correction
      calls. Failed corrections and later payout adjustments are therefore
      picked up by the next run.
   e. Mark the row matched and linked to the leg.
4. Return a RunSummary with totals and per-item failures.

A dry run performs steps 1 to 3 without capturing originals, marking rows
or sending corrections.

Failure handling:
- Missing routing credentials raise ConfigurationError before any work.
- A call-log fetch failure for one target is recorded and that target is
  skipped.
- Leg lookup and correction failures are recorded per item; the run continues.
- All store writes for the batch share one transaction. A database error
  rolls the batch back and the summary is returned with aborted=True.
  Corrections already sent to the routing platform are not undone.
"""

import asyncio
import logging
from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Awaitable, Callable, DefaultDict, Dict, List, Optional, Set, Tuple

import asyncpg

from payout_recon.core.config import Settings, get_settings
from payout_recon.core.database import get_db_pool
from payout_recon.models.enums import Category, FailureKind, ItemOutcome
from payout_recon.models.schemas import CallRecord, ItemFailure, RoutingCallLeg, RunSummary
from payout_recon.services.correction import PaymentCorrection, apply_correction, void_leg
from payout_recon.services.leg_resolver import LegResolutionPolicy, ResolvedLegs, resolve_payment_legs
from payout_recon.services.matcher import MatchCandidate, ScoringPolicy, select_best_candidate
from payout_recon.services.normalizer import (
    EASTERN,
    category_for_target,
    normalize_phone,
    parse_instant,
    routing_time_to_eastern,
)
from payout_recon.services.routing_client import RoutingClient
from payout_recon.services.store import (
    capture_original,
    fetch_call_records,
    mark_matched,
    mark_unmatched,
    upsert_routing_legs,
)


logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
LegIndex = Dict[Tuple[Category, str], List[RoutingCallLeg]]


class ConfigurationError(Exception):
    """Raised when a run cannot start because required settings are missing."""


# =============================================================================
# PACING
# =============================================================================

class CallPacer:
    """
    Enforces a fixed delay between successive outbound correction calls.

    The first call goes out immediately. Every later call waits delay_ms.
    """

    def __init__(self, delay_ms: int, sleep: Sleep = asyncio.sleep) -> None:
        self.delay_seconds = max(delay_ms, 0) / 1000.0
        self._sleep = sleep
        self._calls = 0

    async def wait(self) -> None:
        if self._calls and self.delay_seconds:
            await self._sleep(self.delay_seconds)
        self._calls += 1


# =============================================================================
# HELPERS
# =============================================================================

def _has_captured_originals(record: CallRecord) -> bool:
    return bool(record.originalPayout) or bool(record.originalRevenue)


def _report_window(start_date: date, end_date: date) -> Tuple[datetime, datetime]:
    # Eastern day boundaries in UTC, widened a day each side so adjacent-day
    # matches are still visible
    start = datetime.combine(start_date - timedelta(days=1), time.min, tzinfo=EASTERN)
    end = datetime.combine(end_date + timedelta(days=2), time.min, tzinfo=EASTERN)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def prepare_leg(leg: RoutingCallLeg, target_names: Dict[str, str]) -> RoutingCallLeg:
    """Convert a call-log leg to Eastern time and fill its E.164 caller and target name."""
    return leg.model_copy(update={
        'timestamp': routing_time_to_eastern(leg.timestamp),
        'callerIdE164': normalize_phone(leg.callerId),
        'targetName': leg.targetName or target_names.get(leg.targetId or ''),
    })


def build_leg_index(legs: List[RoutingCallLeg], target_names: Dict[str, str]) -> LegIndex:
    """Group legs by (category, E.164 caller). Anonymous callers are left out."""
    index: DefaultDict[Tuple[Category, str], List[RoutingCallLeg]] = defaultdict(list)
    for leg in legs:
        if not leg.callerIdE164:
            continue
        category = category_for_target(leg.targetId, target_names, leg.targetName)
        index[(category, leg.callerIdE164)].append(leg)
    return dict(index)


def plan_corrections(
    resolved: ResolvedLegs,
    amount: float,
    reason: str,
) -> List[PaymentCorrection]:
    """
    One override when payout and revenue share a leg, otherwise one per leg.

    The lead payout is the amount both payout and revenue should show.
    """
    if resolved.single_leg:
        return [PaymentCorrection(
            leg_id=resolved.payout_leg_id,
            reason=reason,
            new_payout=amount,
            new_revenue=amount,
        )]
    return [
        PaymentCorrection(leg_id=resolved.payout_leg_id, reason=reason, new_payout=amount),
        PaymentCorrection(leg_id=resolved.revenue_leg_id, reason=reason, new_revenue=amount),
    ]


def _failure(
    record: CallRecord,
    kind: FailureKind,
    error: str,
    leg_id: Optional[str] = None,
) -> ItemFailure:
    return ItemFailure(
        id=record.id,
        callerId=record.callerId,
        routingCallId=leg_id,
        kind=kind,
        error=error,
    )


# =============================================================================
# RECONCILER
# =============================================================================

class Reconciler:
    """
    Processes lead rows one at a time against an index of routing legs.

    Holds the per-run state: the leg index, the set of legs already claimed,
    the pacer and the summary being built.

    In a dry run nothing is written to the store, so a later real run still
    sees every row as uncaptured.
    """

    def __init__(
        self,
        conn: asyncpg.Connection,
        client: RoutingClient,
        settings: Settings,
        summary: RunSummary,
        leg_index: LegIndex,
        pacer: CallPacer,
    ) -> None:
        self.conn = conn
        self.client = client
        self.settings = settings
        self.summary = summary
        self.leg_index = leg_index
        self.pacer = pacer
        self.policy = LegResolutionPolicy.from_settings(settings)
        self.scoring = ScoringPolicy(
            exact_payout_multiplier=settings.exact_payout_score_multiplier,
            payout_diff_penalty=settings.payout_diff_penalty,
        )
        self.claimed: Set[str] = set()

    def claim_linked(self, records: List[CallRecord]) -> None:
        """Reserve legs already linked to rows so no other row can take them."""
        self.claimed.update(
            record.linkedRoutingCallId for record in records if record.linkedRoutingCallId
        )

    def find_match(self, record: CallRecord, caller: str) -> Optional[MatchCandidate]:
        legs = [
            leg for leg in self.leg_index.get((record.category, caller), [])
            if leg.legId not in self.claimed
        ]
        return select_best_candidate(
            record,
            legs,
            window_minutes=self.settings.match_window_minutes,
            payout_tolerance=self.settings.payout_tolerance,
            scoring=self.scoring,
        )

    async def _mark_matched(self, record: CallRecord, leg: RoutingCallLeg) -> None:
        if not self.summary.dryRun:
            await mark_matched(self.conn, record.id, leg.legId)

    async def _mark_unmatched(self, record: CallRecord) -> None:
        if not self.summary.dryRun:
            await mark_unmatched(self.conn, record.id)

    async def reconcile(self, record: CallRecord) -> ItemOutcome:
        """Run one lead row through match, capture and correction."""
        self.summary.processed += 1

        caller = normalize_phone(record.callerId)
        if caller is None:
            return await self._parse_failure(record, f"Unusable caller id {record.callerId!r}")
        if parse_instant(record.dateOfCall) is None:
            return await self._parse_failure(record, f"Unparseable dateOfCall {record.dateOfCall!r}")

        preserved = _has_captured_originals(record)
        if record.linkedRoutingCallId:
            leg = self.linked_leg(record, caller)
            if leg is None:
                # Linked leg not in this run's call logs; leave the row as it is
                logger.info(f"Row {record.id}: linked leg {record.linkedRoutingCallId} not fetched this run")
                if preserved:
                    self.summary.skippedPreserved += 1
                return ItemOutcome.SKIPPED_PRESERVED
        else:
            candidate = self.find_match(record, caller)
            if candidate is None:
                await self._mark_unmatched(record)
                self.summary.unmatched += 1
                return ItemOutcome.UNMATCHED
            leg = candidate.routing_leg

        self.claimed.add(leg.legId)
        self.summary.matched += 1

        if record.payout == 0 and leg.payoutAmount == 0 and leg.revenueAmount == 0:
            await self._mark_matched(record, leg)
            return ItemOutcome.MATCHED

        if preserved:
            self.summary.skippedPreserved += 1
        elif not self.summary.dryRun and await capture_original(
            self.conn, record.id, leg.payoutAmount, leg.revenueAmount, leg.legId
        ):
            self.summary.capturedOriginals += 1

        outcome = ItemOutcome.MATCHED
        if self._differs(leg.payoutAmount, record.payout) or self._differs(leg.revenueAmount, record.payout):
            outcome = await self.correct(record, leg)

        await self._mark_matched(record, leg)
        return outcome

    async def _parse_failure(self, record: CallRecord, error: str) -> ItemOutcome:
        logger.warning(f"Row {record.id}: {error}")
        self.summary.failures.append(_failure(record, FailureKind.PARSE_ERROR, error))
        await self._mark_unmatched(record)
        self.summary.unmatched += 1
        return ItemOutcome.UNMATCHED

    def _differs(self, routing_amount: float, lead_amount: float) -> bool:
        return abs(routing_amount - lead_amount) > self.settings.payout_tolerance

    def linked_leg(self, record: CallRecord, caller: str) -> Optional[RoutingCallLeg]:
        """The leg an earlier run linked to this row, if it was fetched this run."""
        for leg in self.leg_index.get((record.category, caller), []):
            if leg.legId == record.linkedRoutingCallId:
                return leg
        return None

    def _already_applied(self, resolved: ResolvedLegs, amount: float) -> bool:
        """True when the resolved legs already carry the lead payout."""
        by_id = {leg.legId: leg for leg in resolved.legs}
        payout_leg = by_id.get(resolved.payout_leg_id)
        revenue_leg = by_id.get(resolved.revenue_leg_id)
        if payout_leg is None or revenue_leg is None:
            return False
        return not (
            self._differs(payout_leg.payoutAmount, amount)
            or self._differs(revenue_leg.revenueAmount, amount)
        )

    async def correct(self, record: CallRecord, leg: RoutingCallLeg) -> ItemOutcome:
        resolved = await resolve_payment_legs(self.client, leg.legId, self.policy)
        if not resolved.ok:
            self.summary.failures.append(_failure(record, resolved.kind, resolved.error, leg.legId))
            return ItemOutcome.FAILED

        legs = resolved.value
        amount = record.payout
        if self._already_applied(legs, amount):
            return ItemOutcome.MATCHED

        if self.summary.dryRun:
            logger.info(
                f"[dry run] Row {record.id}: would set payout leg {legs.payout_leg_id} "
                f"and revenue leg {legs.revenue_leg_id} to {amount:.2f}"
            )
            return ItemOutcome.MATCHED

        reason = self.settings.correction_reason
        ok = True
        if amount == 0 and self.settings.void_zero_payout_calls:
            for leg_id in dict.fromkeys([legs.payout_leg_id, legs.revenue_leg_id]):
                await self.pacer.wait()
                result = await void_leg(self.client, leg_id, reason)
                if not result.ok:
                    ok = False
                    self.summary.failures.append(_failure(record, result.kind, result.error, leg_id))
        else:
            for correction in plan_corrections(legs, amount, reason):
                await self.pacer.wait()
                result = await apply_correction(self.client, correction)
                if not result.ok:
                    ok = False
                    self.summary.failures.append(
                        _failure(record, result.kind, result.error, correction.leg_id)
                    )

        if not ok:
            return ItemOutcome.FAILED
        self.summary.corrected += 1
        return ItemOutcome.CORRECTED


# =============================================================================
# ENTRY POINT
# =============================================================================

async def fetch_routing_legs_for_run(
    client: RoutingClient,
    settings: Settings,
    start_date: date,
    end_date: date,
    category: Optional[Category],
    summary: RunSummary,
) -> List[RoutingCallLeg]:
    """Fetch and prepare legs for every configured target in the category."""
    start, end = _report_window(start_date, end_date)
    legs: List[RoutingCallLeg] = []

    for target_id, target_name in settings.target_names.items():
        target_category = category_for_target(target_id, settings.target_names)
        if category is not None and target_category != category:
            continue

        result = await client.fetch_call_logs(start, end, target_id=target_id)
        if not result.ok:
            logger.error(f"Skipping target {target_name} ({target_id}): {result.error}")
            summary.failures.append(ItemFailure(
                routingCallId=None,
                kind=FailureKind.LOOKUP_ERROR,
                error=f"Call logs for target {target_id}: {result.error}",
            ))
            continue

        legs.extend(prepare_leg(leg, settings.target_names) for leg in result.value)

    return legs


async def run_reconciliation(
    start_date: date,
    end_date: date,
    category: Optional[Category] = None,
    dry_run: bool = False,
    settings: Optional[Settings] = None,
    client: Optional[RoutingClient] = None,
    sleep: Sleep = asyncio.sleep,
) -> RunSummary:
    """
    Reconcile lead rows against routing legs for [start_date, end_date].

    Args:
        start_date: First call date (Eastern), inclusive.
        end_date: Last call date (Eastern), inclusive.
        category: Restrict the run to one category.
        dry_run: Match and resolve legs but write no lead rows and send no
            corrections. Fetched legs are still persisted.
        settings: Settings override; defaults to get_settings().
        client: Routing client override; one is built from settings otherwise
            and closed when the run ends.
        sleep: Awaitable sleep used for pacing, replaceable in tests.

    Returns:
        RunSummary for the batch.

    Raises:
        ConfigurationError: Routing credentials are missing or the range is inverted.
    """
    settings = settings or get_settings()
    if not settings.routing_account_id or not settings.routing_api_token:
        raise ConfigurationError("ROUTING_ACCOUNT_ID and ROUTING_API_TOKEN must be set")
    if end_date < start_date:
        raise ConfigurationError(f"endDate {end_date} is before startDate {start_date}")

    summary = RunSummary(startDate=start_date, endDate=end_date, category=category, dryRun=dry_run)
    logger.info(
        f"Reconciliation run {start_date} to {end_date} "
        f"(category={category.value if category else 'all'}, dry_run={dry_run})"
    )

    owns_client = client is None
    client = client or RoutingClient.from_settings(settings)
    try:
        legs = await fetch_routing_legs_for_run(client, settings, start_date, end_date, category, summary)
        summary.routingLegs = len(legs)

        pool = await get_db_pool()
        async with pool.acquire() as conn:
            try:
                async with conn.transaction():
                    leg_counts = await upsert_routing_legs(conn, legs)
                    summary.legsInserted = leg_counts.inserted
                    summary.legsUpdated = leg_counts.updated

                    records = await fetch_call_records(conn, start_date, end_date, category)
                    summary.leadRows = len(records)

                    reconciler = Reconciler(
                        conn=conn,
                        client=client,
                        settings=settings,
                        summary=summary,
                        leg_index=build_leg_index(legs, settings.target_names),
                        pacer=CallPacer(settings.correction_delay_ms, sleep),
                    )
                    reconciler.claim_linked(records)
                    for record in records:
                        await reconciler.reconcile(record)
            except (asyncpg.PostgresError, OSError) as e:
                logger.exception("Reconciliation batch rolled back")
                summary.aborted = True
                summary.abortReason = f"{FailureKind.PERSISTENCE_ERROR.value}: {e}"
    finally:
        if owns_client:
            await client.aclose()

    logger.info(
        f"Reconciliation complete: processed={summary.processed} matched={summary.matched} "
        f"corrected={summary.corrected} unmatched={summary.unmatched} "
        f"preserved={summary.skippedPreserved} failed={summary.failed}"
    )
    return summary
