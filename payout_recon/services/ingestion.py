"""
Feed Ingestion Service

Parses the two CSV feeds the reconciliation runs on, using pandas:

- Lead-source exports: one row per call with caller id, call time, payout and
  category, plus optional descriptive columns. Rows become CallRecord values
  with canonical timestamps, ready for store.upsert_call_records().
- Routing platform call-log exports: one row per leg. Rows become
  RoutingCallLeg values. Legs flagged Converted but carrying neither revenue
  nor payout are reported separately, since those are the calls most likely
  to need a correction.

Column headers are matched loosely: case, spaces and punctuation are ignored,
so "Caller ID", "caller_id" and "callerId" all map to the same field.

Rows that cannot be parsed are rejected with a message naming the CSV row
number; they never stop the rest of the file from loading.
"""

import io
import logging
import re
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Dict, List, Optional, Tuple, Union

import pandas as pd
from pydantic import ValidationError

from payout_recon.models.enums import Category
from payout_recon.models.schemas import CallRecord, RoutingCallLeg
from payout_recon.services.normalizer import (
    canonical_timestamp,
    category_for_target,
    normalize_phone,
    routing_time_to_eastern,
)


logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS - Column aliases (normalized header -> field)
# =============================================================================

LEAD_COLUMN_ALIASES: Dict[str, str] = {
    'callerid': 'callerId',
    'phone': 'callerId',
    'dateofcall': 'dateOfCall',
    'calldate': 'dateOfCall',
    'originaldateofcall': 'originalDateOfCall',
    'payout': 'payout',
    'category': 'category',
    'campaignphone': 'campaignPhone',
    'citystate': 'cityState',
    'zipcode': 'zipCode',
    'zip': 'zipCode',
    'totalduration': 'totalDuration',
    'duration': 'totalDuration',
    'assessment': 'assessment',
    'classification': 'classification',
}

LEAD_REQUIRED_FIELDS: List[str] = ['callerId', 'dateOfCall']

ROUTING_COLUMN_ALIASES: Dict[str, str] = {
    'inboundcallid': 'legId',
    'callid': 'legId',
    'legid': 'legId',
    'calldate': 'timestamp',
    'calldt': 'timestamp',
    'timestamp': 'timestamp',
    'callerid': 'callerId',
    'targetid': 'targetId',
    'target': 'targetName',
    'targetname': 'targetName',
    'campaign': 'campaignName',
    'campaignname': 'campaignName',
    'publisher': 'publisherName',
    'publishername': 'publisherName',
    'duration': 'durationSeconds',
    'calllengthinseconds': 'durationSeconds',
    'revenue': 'revenueAmount',
    'conversionamount': 'revenueAmount',
    'payout': 'payoutAmount',
    'payoutamount': 'payoutAmount',
    'converted': 'converted',
    'connected': 'connected',
    'hasconnected': 'connected',
}

ROUTING_REQUIRED_FIELDS: List[str] = ['legId', 'timestamp']

_HEADER_NOISE = re.compile(r'[^a-z0-9]')


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass
class RoutingExport:
    """Parsed routing platform export."""
    legs: List[RoutingCallLeg] = field(default_factory=list)
    converted_zero_value: List[RoutingCallLeg] = field(default_factory=list)
    rejected: List[str] = field(default_factory=list)


# =============================================================================
# CSV HELPERS
# =============================================================================

def _read_csv(source: Union[BinaryIO, str, bytes]) -> pd.DataFrame:
    if isinstance(source, bytes):
        source = io.BytesIO(source)
    elif isinstance(source, str):
        source = io.StringIO(source)
    # Everything as text; each field is coerced explicitly below
    return pd.read_csv(source, dtype=str, keep_default_na=False, skipinitialspace=True)


def _rename_columns(df: pd.DataFrame, aliases: Dict[str, str]) -> pd.DataFrame:
    mapping = {}
    for column in df.columns:
        key = _HEADER_NOISE.sub('', str(column).lower())
        if key in aliases and aliases[key] not in mapping.values():
            mapping[column] = aliases[key]
    return df.rename(columns=mapping)[list(mapping.values())]


def _blank(value: Any) -> Optional[str]:
    text = str(value).strip() if value is not None else ''
    return text or None


def _money(value: Any) -> float:
    text = _blank(value)
    if text is None:
        return 0.0
    return float(text.replace('$', '').replace(',', ''))


def _seconds(value: Any) -> Optional[int]:
    text = _blank(value)
    if text is None:
        return None
    if ':' in text:
        # h:mm:ss or mm:ss
        seconds = 0
        for part in text.split(':'):
            seconds = seconds * 60 + int(float(part))
        return seconds
    return int(float(text))


def _truthy(value: Any) -> bool:
    return (_blank(value) or '').lower() in ('true', 'yes', '1')


def _check_required(df: pd.DataFrame, required: List[str]) -> List[str]:
    return [name for name in required if name not in df.columns]


# =============================================================================
# LEAD SOURCE FEED
# =============================================================================

def normalize_call_records(records: List[CallRecord]) -> Tuple[List[CallRecord], List[str]]:
    """
    Canonicalize the caller ids and timestamps of incoming lead rows.

    Caller ids are stored in E.164 form so the same call arriving as
    "(555) 123-4567" and "5551234567" shares one row. Caller ids that cannot
    be normalized (such as "Anonymous") are kept as given.

    Returns:
        Tuple of (rows with canonical callerId, dateOfCall and originalDateOfCall,
        rejection messages for rows whose timestamps cannot be parsed).
    """
    normalized: List[CallRecord] = []
    rejected: List[str] = []

    for index, record in enumerate(records):
        date_of_call = canonical_timestamp(record.dateOfCall)
        if date_of_call is None:
            rejected.append(f"Call {index}: unparseable dateOfCall {record.dateOfCall!r}")
            continue

        original = record.originalDateOfCall
        if original:
            original = canonical_timestamp(original)
            if original is None:
                rejected.append(
                    f"Call {index}: unparseable originalDateOfCall {record.originalDateOfCall!r}"
                )
                continue

        normalized.append(record.model_copy(update={
            'callerId': normalize_phone(record.callerId) or record.callerId.strip(),
            'dateOfCall': date_of_call,
            'originalDateOfCall': original,
        }))

    return normalized, rejected


def parse_lead_csv(source: Union[BinaryIO, str, bytes]) -> Tuple[List[CallRecord], List[str]]:
    """
    Parse a lead-source CSV export.

    Args:
        source: File object, CSV text, or raw bytes.

    Returns:
        Tuple of (CallRecord list with canonical timestamps, rejection messages).
    """
    try:
        df = _read_csv(source)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        return [], [f"Failed to parse CSV file: {e}"]

    df = _rename_columns(df, LEAD_COLUMN_ALIASES)
    missing = _check_required(df, LEAD_REQUIRED_FIELDS)
    if missing:
        return [], [f"Missing required columns: {', '.join(missing)}"]

    logger.info(f"Parsed lead CSV with {len(df)} rows")

    records: List[CallRecord] = []
    rejected: List[str] = []

    # Row 1 is the header
    for row_number, row in enumerate(df.to_dict('records'), start=2):
        try:
            category = _blank(row.get('category'))
            records.append(CallRecord(
                callerId=row['callerId'],
                dateOfCall=row['dateOfCall'],
                originalDateOfCall=_blank(row.get('originalDateOfCall')),
                category=Category(category.upper()) if category else Category.STATIC,
                payout=_money(row.get('payout')),
                campaignPhone=_blank(row.get('campaignPhone')),
                cityState=_blank(row.get('cityState')),
                zipCode=_blank(row.get('zipCode')),
                totalDuration=_seconds(row.get('totalDuration')),
                assessment=_blank(row.get('assessment')),
                classification=_blank(row.get('classification')),
            ))
        except (ValueError, ValidationError) as e:
            rejected.append(f"Row {row_number}: {e}")

    normalized, timestamp_rejects = normalize_call_records(records)
    rejected.extend(timestamp_rejects)

    if rejected:
        logger.warning(f"Rejected {len(rejected)} lead CSV rows")
    return normalized, rejected


# =============================================================================
# ROUTING PLATFORM EXPORT
# =============================================================================

def parse_routing_export(
    source: Union[BinaryIO, str, bytes],
    target_names: Optional[Dict[str, str]] = None,
    times_are_utc: bool = False,
) -> RoutingExport:
    """
    Parse a routing platform call-log CSV export.

    Args:
        source: File object, CSV text, or raw bytes.
        target_names: Configured target id -> name map, used to fill target
            names missing from the export.
        times_are_utc: Convert "Call Date" from UTC to Eastern. UI exports are
            already in the account's Eastern wall-clock time.

    Returns:
        RoutingExport with legs, converted zero-value legs, and rejections.
    """
    target_names = target_names or {}
    export = RoutingExport()

    try:
        df = _read_csv(source)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        export.rejected.append(f"Failed to parse CSV file: {e}")
        return export

    df = _rename_columns(df, ROUTING_COLUMN_ALIASES)
    missing = _check_required(df, ROUTING_REQUIRED_FIELDS)
    if missing:
        export.rejected.append(f"Missing required columns: {', '.join(missing)}")
        return export

    logger.info(f"Parsed routing export with {len(df)} rows")

    for row_number, row in enumerate(df.to_dict('records'), start=2):
        raw_time = row.get('timestamp')
        timestamp = routing_time_to_eastern(raw_time) if times_are_utc else canonical_timestamp(raw_time)
        if timestamp is None:
            export.rejected.append(f"Row {row_number}: unparseable call date {raw_time!r}")
            continue

        try:
            revenue = _money(row.get('revenueAmount'))
            duration = _seconds(row.get('durationSeconds')) or 0
            connected_raw = _blank(row.get('connected'))
            target_id = _blank(row.get('targetId'))
            leg = RoutingCallLeg(
                legId=row['legId'],
                timestamp=timestamp,
                callerId=_blank(row.get('callerId')),
                callerIdE164=normalize_phone(row.get('callerId')),
                payoutAmount=_money(row.get('payoutAmount')),
                revenueAmount=revenue,
                connected=_truthy(connected_raw) if connected_raw else (duration > 0 or revenue > 0),
                durationSeconds=duration,
                targetId=target_id,
                targetName=_blank(row.get('targetName')) or target_names.get(target_id or ''),
                campaignName=_blank(row.get('campaignName')),
                publisherName=_blank(row.get('publisherName')),
            )
        except (ValueError, ValidationError) as e:
            export.rejected.append(f"Row {row_number}: {e}")
            continue

        export.legs.append(leg)
        if _truthy(row.get('converted')) and leg.revenueAmount == 0 and leg.payoutAmount == 0:
            export.converted_zero_value.append(leg)

    logger.info(
        f"Routing export: {len(export.legs)} legs, "
        f"{len(export.converted_zero_value)} converted with $0 revenue and payout"
    )
    return export


def summarize_by_category(legs: List[RoutingCallLeg], target_names: Dict[str, str]) -> Dict[str, int]:
    """Count legs per category, for logging and API responses."""
    counts: Dict[str, int] = {category.value: 0 for category in Category}
    for leg in legs:
        counts[category_for_target(leg.targetId, target_names, leg.targetName).value] += 1
    return counts
