"""
Centralized Timezone Utilities

Stored timestamps are UTC ISO-8601. Bar dates are calendar days in the
listing exchange's own timezone.
"""

import pytz
from datetime import datetime


UTC = pytz.utc


def utc_now() -> datetime:
    """Get current datetime in UTC."""
    return datetime.now(UTC)


def utc_isoformat() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    now = utc_now()
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def exchange_timezone(name: str = None):
    """Resolve an exchange timezone name, falling back to UTC."""
    if not name:
        return UTC
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        return UTC


def epoch_to_date(ts: int, tz_name: str = None) -> str:
    """Convert a unix timestamp to a YYYY-MM-DD date in the given timezone."""
    return datetime.fromtimestamp(ts, exchange_timezone(tz_name)).strftime("%Y-%m-%d")
