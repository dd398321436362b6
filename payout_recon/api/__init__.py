"""
API package initialization.

Router modules:
- reconciliation: reconciliation runs, lead-source row ingestion and
  routing platform export ingestion
"""

from payout_recon.api.reconciliation import router as reconciliation_router

__all__ = [
    "reconciliation_router",
]
