"""
Test Module for the Slack Run Digest.

Covers message formatting for run summaries and the delivery outcomes of
send_run_digest(): sent, skipped when no webhook is configured, and error
when Slack rejects the message or the client raises.
"""

from datetime import date
from unittest.mock import Mock, patch

import pytest

from payout_recon.core.config import Settings
from payout_recon.jobs.run_digest import (
    MAX_LISTED_FAILURES,
    format_fallback_text,
    format_run_summary_blocks,
    send_run_digest,
)
from payout_recon.models.enums import Category, FailureKind
from payout_recon.models.schemas import ItemFailure, RunSummary


def make_summary(**fields) -> RunSummary:
    values = dict(
        startDate=date(2025, 11, 20),
        endDate=date(2025, 11, 21),
        processed=10,
        matched=8,
        unmatched=2,
        corrected=3,
        routingLegs=14,
        legsInserted=12,
        legsUpdated=2,
        leadRows=10,
        capturedOriginals=3,
    )
    values.update(fields)
    return RunSummary(**values)


def block_texts(blocks) -> str:
    """Flatten every text in a block list for substring assertions."""
    parts = []
    for block in blocks:
        if 'text' in block:
            parts.append(block['text']['text'])
        for field in block.get('fields', []):
            parts.append(field['text'])
        for element in block.get('elements', []):
            parts.append(element['text'])
    return '\n'.join(parts)


# =============================================================================
# Formatting
# =============================================================================

class TestFormatRunSummaryBlocks:
    """Block Kit layout of a run summary."""

    def test_header_names_range_and_scope(self) -> None:
        blocks = format_run_summary_blocks(make_summary(category=Category.API))

        assert blocks[0]['type'] == 'header'
        assert blocks[0]['text']['text'] == 'Payout reconciliation 2025-11-20 to 2025-11-21 (API)'

    def test_dry_run_marker(self) -> None:
        blocks = format_run_summary_blocks(make_summary(dryRun=True))

        assert blocks[0]['text']['text'].endswith('(all categories) [dry run]')

    def test_totals_and_leg_counts(self) -> None:
        text = block_texts(format_run_summary_blocks(make_summary()))

        assert '*Matched:* 8' in text
        assert '*Corrected:* 3' in text
        assert '*Failed:* 0' in text
        assert '14 routing legs fetched (12 new, 2 updated)' in text

    def test_no_failure_section_when_clean(self) -> None:
        blocks = format_run_summary_blocks(make_summary())

        assert all(block['type'] != 'divider' for block in blocks)

    def test_lists_failures_and_counts_the_rest(self) -> None:
        failures = [
            ItemFailure(id=i, kind=FailureKind.CORRECTION_APPLY_ERROR, error='Call is locked')
            for i in range(MAX_LISTED_FAILURES + 2)
        ]
        failures.append(ItemFailure(kind=FailureKind.LOOKUP_ERROR, error='timeout'))

        text = block_texts(format_run_summary_blocks(make_summary(failures=failures)))

        assert '`correction_apply_error` row 0: Call is locked' in text
        assert f'row {MAX_LISTED_FAILURES}:' not in text
        assert '_...and 3 more_' in text

    def test_abort_notice(self) -> None:
        summary = make_summary(aborted=True, abortReason='connection reset')

        text = block_texts(format_run_summary_blocks(summary))

        assert 'Batch rolled back:* connection reset' in text


class TestFormatFallbackText:

    def test_fallback_text(self) -> None:
        failures = [ItemFailure(id=1, kind=FailureKind.PARSE_ERROR, error='bad date')]

        text = format_fallback_text(make_summary(failures=failures))

        assert text == 'Reconciliation 2025-11-20 to 2025-11-21: 8/10 matched, 3 corrected, 1 failed'


# =============================================================================
# Sending
# =============================================================================

@pytest.mark.asyncio
class TestSendRunDigest:
    """Delivery outcomes; nothing here may raise."""

    async def test_skipped_without_webhook(self, mock_settings: Settings) -> None:
        with patch('payout_recon.jobs.run_digest.WebhookClient') as client_cls:
            result = await send_run_digest(make_summary())

        assert result['status'] == 'skipped'
        assert 'SLACK_WEBHOOK_URL' in result['reason']
        client_cls.assert_not_called()

    async def test_sent(self, mock_settings: Settings, mock_slack_client: Mock) -> None:
        result = await send_run_digest(make_summary(), webhook_url='https://hooks.slack.test/T/B/X')

        assert result == {'status': 'sent'}
        mock_slack_client.send.assert_called_once()
        kwargs = mock_slack_client.send.call_args.kwargs
        assert kwargs['text'].startswith('Reconciliation 2025-11-20')
        assert kwargs['blocks'][0]['type'] == 'header'

    async def test_uses_configured_webhook(self, test_settings: Settings, mock_slack_client: Mock) -> None:
        settings = test_settings.model_copy(update={'slack_webhook_url': 'https://hooks.slack.test/T/B/Y'})

        with patch('payout_recon.jobs.run_digest.get_settings', return_value=settings):
            result = await send_run_digest(make_summary())

        assert result['status'] == 'sent'

    async def test_non_200_is_error(self, mock_settings: Settings, mock_slack_client: Mock) -> None:
        mock_slack_client.send.return_value.status_code = 404
        mock_slack_client.send.return_value.body = 'no_service'

        result = await send_run_digest(make_summary(), webhook_url='https://hooks.slack.test/T/B/X')

        assert result['status'] == 'error'
        assert '404' in result['error']
        assert 'no_service' in result['error']

    async def test_client_exception_is_error(self, mock_settings: Settings, mock_slack_client: Mock) -> None:
        mock_slack_client.send.side_effect = ConnectionError('network unreachable')

        result = await send_run_digest(make_summary(), webhook_url='https://hooks.slack.test/T/B/X')

        assert result['status'] == 'error'
        assert 'network unreachable' in result['error']
