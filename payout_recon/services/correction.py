"""
Payment Correction Applier

Issues a single payment override (or void) to the routing platform. Each call
to apply_correction() or void_leg() performs exactly one network request and
changes no local state. Deciding whether a correction is needed and pacing
successive requests belong to the reconciliation driver.

Amounts are sent in fixed two-decimal form ("9.00"). Revenue is called
"conversion" on the wire.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from payout_recon.models.enums import FailureKind
from payout_recon.models.results import Failure, Result, Success


logger = logging.getLogger(__name__)


class CorrectionTarget(Protocol):
    async def override_payment(self, body: Dict[str, Any]) -> Result[Dict[str, Any]]:
        ...

    async def void_call(self, body: Dict[str, Any]) -> Result[Dict[str, Any]]:
        ...


@dataclass(frozen=True)
class PaymentCorrection:
    """
    A requested override for one routing leg.

    At least one of new_payout and new_revenue must be given, and neither may
    be negative. apply_correction() checks this and returns a Failure instead
    of sending an invalid request.
    """
    leg_id: str
    reason: str
    new_payout: Optional[float] = None
    new_revenue: Optional[float] = None

    def problem(self) -> Optional[str]:
        """Why this correction cannot be sent, or None when it is valid."""
        if not self.leg_id:
            return "Correction requires a leg id"
        if self.new_payout is None and self.new_revenue is None:
            return "Correction requires a new payout or revenue amount"
        for amount in (self.new_payout, self.new_revenue):
            if amount is not None and amount < 0:
                return f"Correction amounts must be non-negative, got {amount}"
        return None


def format_amount(amount: float) -> str:
    """Render an amount in fixed two-decimal form."""
    return f"{amount:.2f}"


def build_override_body(correction: PaymentCorrection) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        'inboundCallId': correction.leg_id,
        'reason': correction.reason,
        'adjustConversion': correction.new_revenue is not None,
        'adjustPayout': correction.new_payout is not None,
    }
    if correction.new_revenue is not None:
        body['newConversionAmount'] = format_amount(correction.new_revenue)
    if correction.new_payout is not None:
        body['newPayoutAmount'] = format_amount(correction.new_payout)
    return body


async def apply_correction(
    client: CorrectionTarget,
    correction: PaymentCorrection,
) -> Result[Dict[str, Any]]:
    """
    Apply one payment override.

    Returns:
        Success with the raw acknowledgement, or a correction_apply_error
        Failure carrying the remote error or why the correction is invalid.
    """
    problem = correction.problem()
    if problem is not None:
        logger.error(f"Invalid correction for {correction.leg_id!r}: {problem}")
        return Failure(kind=FailureKind.CORRECTION_APPLY_ERROR, error=problem)

    result = await client.override_payment(build_override_body(correction))
    if not result.ok:
        logger.error(f"Payment override failed for {correction.leg_id}: {result.error}")
        return result.with_kind(FailureKind.CORRECTION_APPLY_ERROR)

    logger.info(
        f"Payment override applied to {correction.leg_id} "
        f"(payout={correction.new_payout}, revenue={correction.new_revenue})"
    )
    return Success(result.value)


async def void_leg(client: CorrectionTarget, leg_id: str, reason: str) -> Result[Dict[str, Any]]:
    """Void a leg entirely. Same failure contract as apply_correction()."""
    if not leg_id:
        return Failure(kind=FailureKind.CORRECTION_APPLY_ERROR, error="Void requires a leg id")

    result = await client.void_call({'inboundCallId': leg_id, 'voidReason': reason})
    if not result.ok:
        logger.error(f"Void failed for {leg_id}: {result.error}")
        return result.with_kind(FailureKind.CORRECTION_APPLY_ERROR)

    logger.info(f"Voided {leg_id}")
    return Success(result.value)
