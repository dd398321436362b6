"""
Notification jobs for reconciliation runs.

- run_digest: posts each run's summary to a Slack incoming webhook
  (SLACK_WEBHOOK_URL). Skipped when no webhook is configured.
"""

from payout_recon.jobs.run_digest import (
    format_fallback_text,
    format_run_summary_blocks,
    send_run_digest,
)

__all__ = [
    'format_fallback_text',
    'format_run_summary_blocks',
    'send_run_digest',
]
