"""
Multi-Leg Payment Resolution

A single physical call can appear on the routing platform as several legs:
the original inbound leg, a rerouted leg, and a root leg at the head of a
transfer chain. Payout (what the publisher is paid) and revenue (the
conversion amount earned) do not always live on the same leg, so a correction
aimed at the leg we matched can land on the wrong record.

resolve_payment_legs() starts from the matched (seed) leg, walks the reroute
and root pointers, and decides which leg holds payout and which holds revenue.

Resolution steps, applied in policy order:
- reroute: fetch the leg the seed was rerouted from. Payout goes to the leg
  that alone carries payout, or else to the unconnected leg. Revenue goes to
  the connected leg with revenue. Ties default payout to the original leg and
  revenue to the seed.
- root: when the seed shows no payout and no revenue and points at a distinct
  root leg, fetch the root and let it take payout or revenue wherever it is
  non-zero and the current choice is zero.
- connected_revenue: when the revenue leg is neither connected nor carrying
  revenue, move revenue to any connected leg discovered.

Any failed fetch aborts resolution. Guessing a leg risks correcting the wrong
record, so a Failure is returned instead of partial results.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Tuple

from payout_recon.core.config import Settings
from payout_recon.models.enums import FailureKind, LegResolutionStep
from payout_recon.models.results import Failure, Result, Success
from payout_recon.models.schemas import RoutingCallLeg


logger = logging.getLogger(__name__)


class LegDetailSource(Protocol):
    async def get_call_detail(self, leg_id: str) -> Result[RoutingCallLeg]:
        ...


# =============================================================================
# DATA CLASSES
# =============================================================================

DEFAULT_STEPS: Tuple[LegResolutionStep, ...] = (
    LegResolutionStep.REROUTE,
    LegResolutionStep.ROOT,
    LegResolutionStep.CONNECTED_REVENUE,
)


@dataclass(frozen=True)
class LegResolutionPolicy:
    """
    Configurable multi-leg heuristics.

    Attributes:
        steps: Steps to apply, in order. Omitting a step disables it.
        tie_payout_to_original: When neither leg is clearly the payout leg,
            choose the original leg (True) or the seed (False).
    """
    steps: Tuple[LegResolutionStep, ...] = DEFAULT_STEPS
    tie_payout_to_original: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "LegResolutionPolicy":
        return cls(
            steps=tuple(LegResolutionStep(step) for step in settings.leg_resolution_steps),
            tie_payout_to_original=settings.tie_payout_to_original,
        )


@dataclass
class ResolvedLegs:
    payout_leg_id: str
    revenue_leg_id: str
    legs: List[RoutingCallLeg] = field(default_factory=list)

    @property
    def is_multi_leg(self) -> bool:
        return len(self.legs) > 1

    @property
    def single_leg(self) -> bool:
        return self.payout_leg_id == self.revenue_leg_id


# =============================================================================
# LEG CHOICE HELPERS
# =============================================================================

def choose_payout_leg(
    original: RoutingCallLeg,
    seed: RoutingCallLeg,
    tie_to_original: bool = True,
) -> RoutingCallLeg:
    if original.payoutAmount > 0 and seed.payoutAmount == 0:
        return original
    if seed.payoutAmount > 0 and original.payoutAmount == 0:
        return seed

    # Both or neither carry payout: the unconnected leg is the billing leg
    if not original.connected and seed.connected:
        return original
    if not seed.connected and original.connected:
        return seed

    return original if tie_to_original else seed


def choose_revenue_leg(original: RoutingCallLeg, seed: RoutingCallLeg) -> RoutingCallLeg:
    if seed.connected and seed.revenueAmount > 0:
        return seed
    if original.connected and original.revenueAmount > 0:
        return original
    if original.revenueAmount > 0 and seed.revenueAmount == 0:
        return original
    return seed


def _has_no_amounts(leg: RoutingCallLeg) -> bool:
    return leg.payoutAmount == 0 and leg.revenueAmount == 0


# =============================================================================
# RESOLUTION
# =============================================================================

async def _fetch(client: LegDetailSource, leg_id: str, role: str) -> Result[RoutingCallLeg]:
    result = await client.get_call_detail(leg_id)
    if not result.ok:
        logger.warning(f"Could not fetch {role} leg {leg_id}: {result.error}")
        return result.with_kind(FailureKind.LOOKUP_ERROR, f"{role} leg {leg_id}")
    return result


async def resolve_payment_legs(
    client: LegDetailSource,
    seed_leg_id: str,
    policy: Optional[LegResolutionPolicy] = None,
) -> Result[ResolvedLegs]:
    """
    Discover the legs of a call and pick the payout and revenue legs.

    Args:
        client: Anything exposing get_call_detail(leg_id) -> Result.
        seed_leg_id: The leg the matcher paired with a lead row.
        policy: Resolution policy; defaults to LegResolutionPolicy().

    Returns:
        Success(ResolvedLegs) or a lookup_error Failure. Fetches run one at a
        time because each depends on the previous leg's pointers.
    """
    policy = policy or LegResolutionPolicy()

    seed_result = await _fetch(client, seed_leg_id, 'seed')
    if not seed_result.ok:
        return seed_result
    seed = seed_result.value

    legs: List[RoutingCallLeg] = [seed]
    payout_leg = seed
    revenue_leg = seed

    for step in policy.steps:
        if step == LegResolutionStep.REROUTE and seed.reroutedFromLegId:
            fetched = await _fetch(client, seed.reroutedFromLegId, 'original')
            if not fetched.ok:
                return fetched
            original = fetched.value
            legs.append(original)
            payout_leg = choose_payout_leg(original, seed, policy.tie_payout_to_original)
            revenue_leg = choose_revenue_leg(original, seed)

        elif step == LegResolutionStep.ROOT:
            root_id = seed.rootLegId
            if not root_id or root_id == seed.legId or not _has_no_amounts(seed):
                continue
            root = next((leg for leg in legs if leg.legId == root_id), None)
            if root is None:
                fetched = await _fetch(client, root_id, 'root')
                if not fetched.ok:
                    return fetched
                root = fetched.value
                legs.append(root)
            if root.payoutAmount > 0 and payout_leg.payoutAmount == 0:
                payout_leg = root
            if root.revenueAmount > 0 and revenue_leg.revenueAmount == 0:
                revenue_leg = root

        elif step == LegResolutionStep.CONNECTED_REVENUE:
            if revenue_leg.connected or revenue_leg.revenueAmount > 0:
                continue
            connected = next((leg for leg in legs if leg.connected), None)
            if connected is not None:
                revenue_leg = connected

    resolved = ResolvedLegs(
        payout_leg_id=payout_leg.legId,
        revenue_leg_id=revenue_leg.legId,
        legs=legs,
    )
    if resolved.is_multi_leg:
        logger.info(
            f"Resolved {len(legs)} legs for {seed_leg_id}: "
            f"payout={resolved.payout_leg_id} revenue={resolved.revenue_leg_id}"
        )
    return Success(resolved)
