"""
Routing Platform API Client

Thin async adapter over the routing platform's REST API, built on
httpx.AsyncClient. All endpoints live under {base_url}/{account_id} and
authenticate with an "Authorization: Token <token>" header.

Endpoints used:
- POST /calllogs                 paged call-log query (call legs for a target)
- POST /calllogs/detail          per-leg detail lookup
- POST /calls/payments/override  payment override (payout and/or conversion)
- POST /calls/void               void a call entirely

No method raises across the client boundary for remote or transport
failures. Every call returns a Success or a Failure (see models/results.py),
so the reconciliation driver can record the failure against one item and
move on to the next.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from payout_recon.core.config import Settings
from payout_recon.models.enums import FailureKind
from payout_recon.models.results import Failure, Result, Success
from payout_recon.models.schemas import RoutingCallLeg


logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

CALL_LOG_COLUMNS: List[str] = [
    'inboundCallId',
    'callDt',
    'callerId',
    'tag:InboundNumber:Number',
    'targetId',
    'targetName',
    'campaignName',
    'publisherName',
    'conversionAmount',
    'payoutAmount',
    'callLengthInSeconds',
    'hasConnected',
]

DETAIL_COLUMNS: List[str] = [
    'inboundCallId',
    'callDt',
    'conversionAmount',
    'payoutAmount',
    'connected',
    'callDuration',
    'reroutedFromInboundCallId',
    'rootInboundCallId',
]


# =============================================================================
# FIELD COERCION
# =============================================================================

def _to_float(value: Any) -> float:
    if value is None or value == '':
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).replace('$', '').replace(',', '').strip())
    except ValueError:
        return 0.0


def _to_int(value: Any) -> int:
    return int(_to_float(value))


def _to_bool(value: Any) -> Optional[bool]:
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('true', 'yes', '1')


def _blank_to_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _derive_connected(explicit: Optional[bool], duration: int, revenue: float) -> bool:
    # Explicit flag first, then a positive duration, then positive revenue
    if explicit is not None:
        return explicit
    if duration > 0:
        return True
    return revenue > 0


def leg_from_call_log(record: Dict[str, Any]) -> RoutingCallLeg:
    """Build a RoutingCallLeg from one call-log report record."""
    caller = record.get('callerId') or record.get('tag:InboundNumber:Number')
    duration = _to_int(record.get('callLengthInSeconds') or record.get('callDuration'))
    revenue = _to_float(record.get('conversionAmount'))
    return RoutingCallLeg(
        legId=str(record.get('inboundCallId')),
        timestamp=_blank_to_none(record.get('callDt')),
        callerId=_blank_to_none(caller),
        payoutAmount=_to_float(record.get('payoutAmount')),
        revenueAmount=revenue,
        connected=_derive_connected(
            _to_bool(record.get('hasConnected', record.get('connected'))),
            duration,
            revenue,
        ),
        durationSeconds=max(duration, 0),
        targetId=_blank_to_none(record.get('targetId')),
        targetName=_blank_to_none(record.get('targetName')),
        campaignName=_blank_to_none(record.get('campaignName')),
        publisherName=_blank_to_none(record.get('publisherName')),
    )


def leg_from_detail(leg_id: str, record: Dict[str, Any]) -> RoutingCallLeg:
    """Build a RoutingCallLeg from a call detail record."""
    duration = _to_int(record.get('callDuration') or record.get('callLengthInSeconds'))
    revenue = _to_float(record.get('conversionAmount'))
    return RoutingCallLeg(
        legId=str(record.get('inboundCallId') or leg_id),
        timestamp=_blank_to_none(record.get('callDt')),
        payoutAmount=_to_float(record.get('payoutAmount')),
        revenueAmount=revenue,
        connected=_derive_connected(_to_bool(record.get('connected')), duration, revenue),
        durationSeconds=max(duration, 0),
        reroutedFromLegId=_blank_to_none(record.get('reroutedFromInboundCallId')),
        rootLegId=_blank_to_none(record.get('rootInboundCallId')),
    )


# =============================================================================
# CLIENT
# =============================================================================

class RoutingClient:
    """
    Async client for the routing platform.

    Use as an async context manager so the underlying connection pool is
    closed when the run ends:

        async with RoutingClient.from_settings(settings) as client:
            result = await client.get_call_detail("RGB123")

    Args:
        account_id: Routing platform account id.
        api_token: API token sent as "Authorization: Token <token>".
        base_url: API root without the account id.
        timeout: Per-request timeout in seconds.
        page_size: Records per call-log page.
        transport: Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        account_id: str,
        api_token: str,
        base_url: str = 'https://api.ringba.com/v2',
        timeout: float = 30.0,
        page_size: int = 1000,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.account_id = account_id
        self.page_size = page_size
        self._client = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/{account_id}",
            headers={
                'Authorization': f'Token {api_token}',
                'Content-Type': 'application/json',
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "RoutingClient":
        return cls(
            account_id=settings.routing_account_id or '',
            api_token=settings.routing_api_token or '',
            base_url=settings.routing_base_url,
            timeout=settings.routing_timeout_seconds,
            page_size=settings.call_log_page_size,
            transport=transport,
        )

    async def __aenter__(self) -> "RoutingClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    async def _post(self, path: str, body: Dict[str, Any], kind: FailureKind) -> Result[Dict[str, Any]]:
        try:
            response = await self._client.post(path, json=body)
        except httpx.HTTPError as e:
            logger.error(f"Routing platform request {path} failed: {e}")
            return Failure(kind=kind, error=f"Request to {path} failed: {e}")

        if response.status_code >= 400:
            logger.error(f"Routing platform {path} returned {response.status_code}: {response.text}")
            return Failure(
                kind=kind,
                error=f"{path} returned status {response.status_code}",
                raw=response.text,
            )

        try:
            payload = response.json() if response.content else {}
        except ValueError:
            return Failure(kind=kind, error=f"{path} returned a non-JSON body", raw=response.text)

        if isinstance(payload, dict) and payload.get('isSuccessful') is False:
            message = payload.get('message') or payload.get('errors') or 'isSuccessful is false'
            return Failure(kind=kind, error=f"{path} rejected the request: {message}", raw=payload)

        return Success(payload if isinstance(payload, dict) else {'data': payload})

    # -------------------------------------------------------------------------
    # Call logs
    # -------------------------------------------------------------------------

    async def fetch_call_logs(
        self,
        start: datetime,
        end: datetime,
        target_id: Optional[str] = None,
        caller_id: Optional[str] = None,
    ) -> Result[List[RoutingCallLeg]]:
        """
        Fetch every call leg in [start, end], paging until a short page.

        Args:
            start: Report start (UTC).
            end: Report end (UTC).
            target_id: Optional routing target filter.
            caller_id: Optional caller id filter.

        Returns:
            Success with the legs, or a lookup_error Failure. A failure on any
            page fails the whole fetch; partial result sets are never returned.
        """
        filters: List[Dict[str, Any]] = []
        if target_id:
            filters.append({'anyConditionToMatch': [{
                'column': 'targetId',
                'comparisonType': 'EQUALS',
                'value': target_id,
                'isNegativeMatch': False,
            }]})
        if caller_id:
            filters.append({'anyConditionToMatch': [{
                'column': 'tag:InboundNumber:Number',
                'comparisonType': 'EQUALS',
                'value': caller_id,
                'isNegativeMatch': False,
            }]})

        legs: List[RoutingCallLeg] = []
        offset = 0
        while True:
            body: Dict[str, Any] = {
                'reportStart': start.isoformat(),
                'reportEnd': end.isoformat(),
                'offset': offset,
                'size': self.page_size,
                'formatDateTime': True,
                'orderByColumns': [{'column': 'callDt', 'direction': 'desc'}],
                'valueColumns': [{'column': column} for column in CALL_LOG_COLUMNS],
            }
            if filters:
                body['filters'] = filters

            result = await self._post('/calllogs', body, FailureKind.LOOKUP_ERROR)
            if not result.ok:
                return result

            records = (result.value.get('report') or {}).get('records') or []
            legs.extend(
                leg_from_call_log(record) for record in records
                if record.get('inboundCallId')
            )

            if len(records) < self.page_size:
                break
            offset += self.page_size

        logger.info(f"Fetched {len(legs)} call legs for target {target_id or 'all'}")
        return Success(legs)

    async def get_call_detail(self, leg_id: str) -> Result[RoutingCallLeg]:
        """Look up one leg's amounts, connection state and reroute pointers."""
        body = {'inboundCallIds': [leg_id], 'columns': DETAIL_COLUMNS}
        result = await self._post('/calllogs/detail', body, FailureKind.LOOKUP_ERROR)
        if not result.ok:
            return result

        payload = result.value
        records = (payload.get('report') or {}).get('records') or []
        if not records:
            records = (payload.get('callLog') or {}).get('data') or []
        if not records:
            return Failure(
                kind=FailureKind.LOOKUP_ERROR,
                error=f"No call detail returned for {leg_id}",
                raw=payload,
            )

        return Success(leg_from_detail(leg_id, records[0]))

    # -------------------------------------------------------------------------
    # Corrections
    # -------------------------------------------------------------------------

    async def override_payment(self, body: Dict[str, Any]) -> Result[Dict[str, Any]]:
        """POST a prepared payment override body."""
        return await self._post('/calls/payments/override', body, FailureKind.CORRECTION_APPLY_ERROR)

    async def void_call(self, body: Dict[str, Any]) -> Result[Dict[str, Any]]:
        """POST a prepared void body."""
        return await self._post('/calls/void', body, FailureKind.CORRECTION_APPLY_ERROR)
