"""
Phone, timestamp and category normalization.

The lead source and the routing platform disagree on nearly every surface
format: caller ids arrive as "(555) 123-4567", "15551234567" or "+15551234567",
and timestamps arrive as ISO 8601, 12-hour US dates or bare dates. Everything
downstream compares canonical values produced here:

- normalize_phone(): E.164 caller ids
- parse_instant(): naive wall-clock datetimes
- format_instant(): canonical storage text (YYYY-MM-DDTHH:MM:SS)
- routing_time_to_eastern(): routing platform UTC times as Eastern wall-clock
- category_for_target(): STATIC / API category of a routing target

Parse failures return None and are logged. They are never raised, and callers
must treat None as "no match possible" rather than a zero value.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Dict, Optional, Union
from zoneinfo import ZoneInfo

from payout_recon.models.enums import Category


logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

# Lead source timestamps are US Eastern wall-clock time
EASTERN = ZoneInfo("America/New_York")

CANONICAL_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Tried in order after the native ISO parse and before the bare-date formats
_TWELVE_HOUR_FORMAT = "%m/%d/%Y %I:%M:%S %p"
_BARE_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y")

_ISO_PREFIX = re.compile(r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})")
_NON_DIGITS = re.compile(r"\D")


# =============================================================================
# PHONE NUMBERS
# =============================================================================

def normalize_phone(raw: Optional[str]) -> Optional[str]:
    """
    Convert a raw caller id to E.164.

    Rules:
    - Already "+"-prefixed values pass through unchanged
    - 11 digits starting with 1 get a "+" prefix
    - 10 digits are treated as North American and get "+1"
    - Any other non-empty digit string gets a bare "+"
    - Empty, anonymous or digit-free input returns None

    The function is idempotent: normalize_phone(normalize_phone(x)) ==
    normalize_phone(x) for every x.

    Args:
        raw: Caller id as delivered by either system.

    Returns:
        E.164 string, or None when no phone number can be extracted.
    """
    if raw is None:
        return None

    value = str(raw).strip()
    if not value or "anonymous" in value.lower():
        return None

    if value.startswith("+"):
        return value if _NON_DIGITS.sub("", value) else None

    digits = _NON_DIGITS.sub("", value)
    if not digits:
        return None

    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    if len(digits) == 10:
        return f"+1{digits}"
    return f"+{digits}"


# =============================================================================
# TIMESTAMPS
# =============================================================================

def _naive(value: datetime) -> datetime:
    # Offset-aware values are moved to UTC before dropping the offset
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_instant(raw: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse a timestamp in any of the accepted formats.

    Formats are tried in order and the first success wins:
    1. ISO 8601 via datetime.fromisoformat
    2. "M/D/YYYY h:mm:ss AM/PM"
    3. "YYYY-MM-DDTHH:mm:ss" prefix, ignoring trailing text
    4. "YYYY-MM-DD"
    5. "M/D/YYYY"

    Returns:
        Naive datetime, or None when no format applies.
    """
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return _naive(raw)

    value = str(raw).strip()
    if not value:
        return None

    try:
        return _naive(datetime.fromisoformat(value))
    except ValueError:
        pass

    try:
        return datetime.strptime(value, _TWELVE_HOUR_FORMAT)
    except ValueError:
        pass

    match = _ISO_PREFIX.match(value)
    if match:
        try:
            return datetime(*(int(part) for part in match.groups()))
        except ValueError:
            pass

    for fmt in _BARE_DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue

    logger.warning(f"Unparseable timestamp: {value!r}")
    return None


def format_instant(value: datetime) -> str:
    """Render a datetime in canonical storage form (YYYY-MM-DDTHH:MM:SS)."""
    return _naive(value).strftime(CANONICAL_FORMAT)


def canonical_timestamp(raw: Optional[str]) -> Optional[str]:
    """Parse and re-render a timestamp, or None when it cannot be parsed."""
    parsed = parse_instant(raw)
    return format_instant(parsed) if parsed is not None else None


def routing_time_to_eastern(raw: Union[str, datetime, None]) -> Optional[str]:
    """
    Convert a routing platform timestamp to Eastern wall-clock time.

    The routing platform reports times in UTC while the lead source records
    Eastern time. Naive inputs are taken as UTC. Daylight saving transitions
    are handled by the tz database.

    Returns:
        Canonical Eastern timestamp, or None when the input cannot be parsed.
    """
    parsed = parse_instant(raw)
    if parsed is None:
        return None
    eastern = parsed.replace(tzinfo=timezone.utc).astimezone(EASTERN)
    return eastern.strftime(CANONICAL_FORMAT)


# =============================================================================
# CATEGORIES
# =============================================================================

def category_for_target(
    target_id: Optional[str],
    target_names: Dict[str, str],
    target_name: Optional[str] = None,
) -> Category:
    """
    Derive the category of a routing target.

    The configured target name takes precedence over the name reported on the
    leg. A name containing "static" (any case) is STATIC, everything else API.
    """
    name = target_names.get(target_id or "", target_name) or ""
    return Category.STATIC if "static" in name.lower() else Category.API
