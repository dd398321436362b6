"""
Call Matching Service

Pairs a lead-source call record with candidate routing platform legs using
time proximity and payout similarity. This module is pure, with no I/O and
no state. The batch driver and any debugging tools share the same scoring.

Preconditions enforced by the caller:
- Category already agrees between the lead row and every candidate leg
- Caller ids already agree (both normalized to E.164)

Matching Rules:
1. Both timestamps must parse, otherwise no match
2. Calendar days more than 1 apart never match
3. Seconds are zeroed on both sides before computing the minute difference
4. Same-day pairs must fall within the configured window (default 120 min),
   adjacent-day pairs within 1440 minutes
5. Score:
   - both payouts positive and within tolerance: time_diff * 0.1
   - both payouts positive, outside tolerance:   time_diff + payout_diff * 10
   - either payout zero:                         time_diff
   Lower scores win and ties break on the smaller time difference.

Candidate Ranking:
Exact-payout matches always outrank non-exact matches regardless of time
proximity. Within each group candidates sort by payout difference, then time
difference, then score.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from payout_recon.models.schemas import CallRecord, RoutingCallLeg
from payout_recon.services.normalizer import parse_instant


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_WINDOW_MINUTES: int = 120
DEFAULT_PAYOUT_TOLERANCE: float = 0.01

# Window applied when the two calls fall on adjacent calendar days
ADJACENT_DAY_WINDOW_MINUTES: int = 1440


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class ScoringPolicy:
    """
    Scoring constants. The defaults reproduce the production behavior and
    can be tuned through settings.
    """
    exact_payout_multiplier: float = 0.1
    payout_diff_penalty: float = 10.0


@dataclass(frozen=True)
class MatchResult:
    """Outcome of comparing one lead row against one routing leg."""
    match_score: float
    time_diff_minutes: float
    payout_diff: float
    payout_match: bool


@dataclass(frozen=True)
class MatchCandidate:
    """A routing leg that matched a lead row, with its scoring detail."""
    lead_row: CallRecord
    routing_leg: RoutingCallLeg
    time_diff_minutes: float
    payout_diff: float
    score: float
    payout_match: bool


# =============================================================================
# MATCHING
# =============================================================================

def _truncate_seconds(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)


def match_call(
    lead_row: CallRecord,
    leg: RoutingCallLeg,
    window_minutes: int = DEFAULT_WINDOW_MINUTES,
    payout_tolerance: float = DEFAULT_PAYOUT_TOLERANCE,
    scoring: Optional[ScoringPolicy] = None,
) -> Optional[MatchResult]:
    """
    Compare a lead row against a single routing leg.

    Args:
        lead_row: Lead-source call record.
        leg: Routing leg whose timestamp is already in lead-source wall-clock time.
        window_minutes: Maximum minute difference for same-day calls.
        payout_tolerance: Maximum payout difference treated as an exact match.
        scoring: Scoring constants; defaults to ScoringPolicy().

    Returns:
        MatchResult, or None when the pair cannot match.
    """
    scoring = scoring or ScoringPolicy()

    lead_time = parse_instant(lead_row.dateOfCall)
    leg_time = parse_instant(leg.timestamp)
    if lead_time is None or leg_time is None:
        return None

    day_diff = abs((lead_time.date() - leg_time.date()).days)
    if day_diff > 1:
        return None

    delta = _truncate_seconds(lead_time) - _truncate_seconds(leg_time)
    time_diff = abs(delta.total_seconds()) / 60.0

    effective_window = window_minutes if day_diff == 0 else ADJACENT_DAY_WINDOW_MINUTES
    if time_diff > effective_window:
        return None

    lead_payout = lead_row.payout or 0.0
    leg_payout = leg.payoutAmount or 0.0
    payout_diff = round(abs(lead_payout - leg_payout), 2)

    if lead_payout > 0 and leg_payout > 0:
        payout_match = payout_diff <= payout_tolerance
        if payout_match:
            score = time_diff * scoring.exact_payout_multiplier
        else:
            score = time_diff + payout_diff * scoring.payout_diff_penalty
    else:
        payout_match = False
        score = time_diff

    return MatchResult(
        match_score=score,
        time_diff_minutes=time_diff,
        payout_diff=payout_diff,
        payout_match=payout_match,
    )


# =============================================================================
# RANKING
# =============================================================================

def score_sort_key(candidate: MatchCandidate) -> Tuple[float, float]:
    """Sort key for plain score ordering: lower score first, then smaller time."""
    return (candidate.score, candidate.time_diff_minutes)


def _rank_key(candidate: MatchCandidate) -> Tuple[bool, float, float, float]:
    return (
        not candidate.payout_match,
        candidate.payout_diff,
        candidate.time_diff_minutes,
        candidate.score,
    )


def rank_candidates(
    lead_row: CallRecord,
    legs: Iterable[RoutingCallLeg],
    window_minutes: int = DEFAULT_WINDOW_MINUTES,
    payout_tolerance: float = DEFAULT_PAYOUT_TOLERANCE,
    scoring: Optional[ScoringPolicy] = None,
) -> List[MatchCandidate]:
    """
    Match a lead row against every leg and return the matches best-first.

    Legs that cannot match are dropped. Exact-payout matches come first, then
    the remaining matches, each group ordered by payout difference, time
    difference and score.
    """
    candidates: List[MatchCandidate] = []
    for leg in legs:
        result = match_call(lead_row, leg, window_minutes, payout_tolerance, scoring)
        if result is None:
            continue
        candidates.append(MatchCandidate(
            lead_row=lead_row,
            routing_leg=leg,
            time_diff_minutes=result.time_diff_minutes,
            payout_diff=result.payout_diff,
            score=result.match_score,
            payout_match=result.payout_match,
        ))

    candidates.sort(key=_rank_key)
    return candidates


def select_best_candidate(
    lead_row: CallRecord,
    legs: Iterable[RoutingCallLeg],
    window_minutes: int = DEFAULT_WINDOW_MINUTES,
    payout_tolerance: float = DEFAULT_PAYOUT_TOLERANCE,
    scoring: Optional[ScoringPolicy] = None,
) -> Optional[MatchCandidate]:
    """Return the best-ranked candidate, or None when nothing matches."""
    ranked = rank_candidates(lead_row, legs, window_minutes, payout_tolerance, scoring)
    return ranked[0] if ranked else None
