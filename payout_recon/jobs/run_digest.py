"""
Slack run digest for reconciliation runs.

Posts the end-of-run summary (totals plus the first few per-item failures) to
a Slack incoming webhook using WebhookClient from slack-sdk.

Environment Requirements:
- SLACK_WEBHOOK_URL: Slack incoming webhook URL. When unset, the digest is
  skipped and send_run_digest() reports status 'skipped'.

Usage:
    summary = await run_reconciliation(start, end)
    result = await send_run_digest(summary)
    if result['status'] == 'error':
        logger.warning(result['error'])
"""

import logging
from typing import Any, Dict, List, Optional

from slack_sdk.webhook import WebhookClient

from payout_recon.core.config import get_settings
from payout_recon.models.schemas import RunSummary


logger = logging.getLogger(__name__)

# Failures listed individually in the message; the rest are counted
MAX_LISTED_FAILURES = 5


# =============================================================================
# Message Formatting
# =============================================================================

def format_run_summary_blocks(summary: RunSummary) -> List[Dict[str, Any]]:
    """
    Build Slack Block Kit blocks for a run summary.

    Layout:
    1. Header with the date range and dry-run marker
    2. Totals section (processed, matched, corrected, unmatched, preserved)
    3. Leg fetch section
    4. Failure list, when there are failures
    5. Abort notice, when the batch was rolled back
    """
    scope = summary.category.value if summary.category else 'all categories'
    title = f"Payout reconciliation {summary.startDate} to {summary.endDate} ({scope})"
    if summary.dryRun:
        title += " [dry run]"

    blocks: List[Dict[str, Any]] = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": title[:150]},
        },
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Processed:* {summary.processed}"},
                {"type": "mrkdwn", "text": f"*Matched:* {summary.matched}"},
                {"type": "mrkdwn", "text": f"*Corrected:* {summary.corrected}"},
                {"type": "mrkdwn", "text": f"*Unmatched:* {summary.unmatched}"},
                {"type": "mrkdwn", "text": f"*Originals preserved:* {summary.skippedPreserved}"},
                {"type": "mrkdwn", "text": f"*Failed:* {summary.failed}"},
            ],
        },
        {
            "type": "context",
            "elements": [{
                "type": "mrkdwn",
                "text": (
                    f"{summary.routingLegs} routing legs fetched "
                    f"({summary.legsInserted} new, {summary.legsUpdated} updated), "
                    f"{summary.leadRows} lead rows, "
                    f"{summary.capturedOriginals} originals captured"
                ),
            }],
        },
    ]

    if summary.failures:
        lines = []
        for failure in summary.failures[:MAX_LISTED_FAILURES]:
            subject = f"row {failure.id}" if failure.id is not None else "run"
            lines.append(f"• `{failure.kind.value}` {subject}: {failure.error}")
        remaining = len(summary.failures) - MAX_LISTED_FAILURES
        if remaining > 0:
            lines.append(f"_...and {remaining} more_")
        blocks.append({"type": "divider"})
        blocks.append({
            "type": "section",
            "text": {"type": "mrkdwn", "text": "*Failures*\n" + "\n".join(lines)},
        })

    if summary.aborted:
        blocks.append({
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": f":rotating_light: *Batch rolled back:* {summary.abortReason}",
            },
        })

    return blocks


def format_fallback_text(summary: RunSummary) -> str:
    """Plain-text notification fallback for clients that cannot render blocks."""
    return (
        f"Reconciliation {summary.startDate} to {summary.endDate}: "
        f"{summary.matched}/{summary.processed} matched, {summary.corrected} corrected, "
        f"{summary.failed} failed"
    )


# =============================================================================
# Sending
# =============================================================================

async def send_run_digest(
    summary: RunSummary,
    webhook_url: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Post a run summary to Slack.

    Args:
        summary: The completed run summary.
        webhook_url: Override for settings.slack_webhook_url.

    Returns:
        Dict with 'status' ('sent', 'skipped' or 'error') and, on error, 'error'.
        No exceptions are raised; delivery problems never fail the run.
    """
    url = webhook_url or get_settings().slack_webhook_url
    if not url:
        return {'status': 'skipped', 'reason': 'SLACK_WEBHOOK_URL not configured'}

    try:
        client = WebhookClient(url)
        response = client.send(
            text=format_fallback_text(summary),
            blocks=format_run_summary_blocks(summary),
        )
    except Exception as e:
        logger.exception("Slack run digest failed")
        return {'status': 'error', 'error': f'Failed to send Slack message: {e}'}

    if response.status_code == 200:
        logger.info("Slack run digest sent")
        return {'status': 'sent'}

    logger.warning(f"Slack returned status {response.status_code}: {response.body}")
    return {
        'status': 'error',
        'error': f'Slack API returned status {response.status_code}: {response.body}',
    }
