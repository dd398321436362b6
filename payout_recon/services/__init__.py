"""
Reconciliation Services Module

Services:
- normalizer: phone and timestamp canonicalization, category lookup
- matcher: scoring and ranking of lead row / routing leg candidates
- routing_client: async HTTP client for the routing platform API
- leg_resolver: payout and revenue leg resolution across reroutes
- correction: payment override and void requests
- store: PostgreSQL persistence for lead rows and routing legs
- ingestion: CSV feed parsing (lead source and routing platform exports)
- reconciliation: batch driver tying the above together
"""

# =============================================================================
# Normalization and Matching
# =============================================================================

from payout_recon.services.normalizer import (
    canonical_timestamp,
    category_for_target,
    normalize_phone,
    parse_instant,
    routing_time_to_eastern,
)
from payout_recon.services.matcher import (
    MatchCandidate,
    MatchResult,
    ScoringPolicy,
    match_call,
    rank_candidates,
    score_sort_key,
    select_best_candidate,
)

# =============================================================================
# Routing Platform
# =============================================================================

from payout_recon.services.routing_client import RoutingClient
from payout_recon.services.leg_resolver import (
    LegResolutionPolicy,
    ResolvedLegs,
    resolve_payment_legs,
)
from payout_recon.services.correction import (
    PaymentCorrection,
    apply_correction,
    void_leg,
)

# =============================================================================
# Persistence, Ingestion and the Batch Driver
# =============================================================================

from payout_recon.services.store import (
    capture_original,
    ensure_schema,
    fetch_call_records,
    fetch_reconciled_rows,
    fetch_routing_legs,
    mark_matched,
    mark_unmatched,
    upsert_call_records,
    upsert_routing_legs,
)
from payout_recon.services.ingestion import (
    normalize_call_records,
    parse_lead_csv,
    parse_routing_export,
    summarize_by_category,
)
from payout_recon.services.reconciliation import (
    ConfigurationError,
    run_reconciliation,
)

__all__ = [
    # ----- Normalizer -----
    'canonical_timestamp',
    'category_for_target',
    'normalize_phone',
    'parse_instant',
    'routing_time_to_eastern',
    # ----- Matcher -----
    'MatchCandidate',
    'MatchResult',
    'ScoringPolicy',
    'match_call',
    'rank_candidates',
    'score_sort_key',
    'select_best_candidate',
    # ----- Routing Platform -----
    'RoutingClient',
    'LegResolutionPolicy',
    'ResolvedLegs',
    'resolve_payment_legs',
    'PaymentCorrection',
    'apply_correction',
    'void_leg',
    # ----- Store -----
    'capture_original',
    'ensure_schema',
    'fetch_call_records',
    'fetch_reconciled_rows',
    'fetch_routing_legs',
    'mark_matched',
    'mark_unmatched',
    'upsert_call_records',
    'upsert_routing_legs',
    # ----- Ingestion -----
    'normalize_call_records',
    'parse_lead_csv',
    'parse_routing_export',
    'summarize_by_category',
    # ----- Reconciliation -----
    'ConfigurationError',
    'run_reconciliation',
]
