"""Timestamp parsing shared by the store and the sync engine.

Notion hands out ISO-8601 strings ("2024-01-02T10:00:00.000Z" or a bare
"2024-01-02" for date properties) while the store hands out datetimes,
naive ones meaning UTC.
"""

import re
from datetime import date, datetime, timezone
from typing import Any, Optional

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}")


def looks_like_iso_date(value: Any) -> bool:
    return isinstance(value, str) and bool(_ISO_DATE.match(value.strip()))


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a datetime, date or ISO string into an aware UTC datetime.

    Returns None for empty or unparseable input.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif looks_like_iso_date(value):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_naive_utc(value: Any) -> Optional[datetime]:
    """Convert to the naive UTC datetime the database columns store."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return None
    return parsed.replace(tzinfo=None)


def isoformat(value: Any) -> str:
    """Render a timestamp as an ISO string, or "" when there is none."""
    parsed = parse_timestamp(value)
    return parsed.isoformat() if parsed else ""


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)
