"""
Sale timestamps.

All datetimes are stored UTC-naive. Clients may send ISO-8601 (with or
without an offset) or the storefront's dd/mm/yyyy[ HH:MM] format.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

# dd/mm/yyyy or dd/mm/yyyy HH:MM
_DAY_MONTH_YEAR = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})(?:\s+(\d{1,2}):(\d{2}))?$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_sale_datetime(value) -> Optional[datetime]:
    """
    Parse a sale timestamp as sent by clients.

    Returns None for None or blank strings and raises ValueError when the
    value cannot be understood. Offsets are converted to UTC; naive values
    are taken as UTC already.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return _as_utc_naive(value)
    if not isinstance(value, str):
        raise ValueError(f"Unsupported datetime value: {value!r}")

    text = value.strip()
    if not text:
        return None

    match = _DAY_MONTH_YEAR.match(text)
    if match:
        day, month, year, hours, minutes = match.groups()
        return datetime(int(year), int(month), int(day), int(hours or 0), int(minutes or 0))

    if text[-1] in "zZ":
        text = text[:-1] + "+00:00"
    return _as_utc_naive(datetime.fromisoformat(text))


def end_of_day(dt: datetime) -> datetime:
    """Last instant of dt's calendar day, for inclusive date_to filters."""
    return dt.replace(hour=23, minute=59, second=59, microsecond=999999)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """ISO-8601 with a trailing 'Z', seconds precision. Naive input is UTC."""
    if dt is None:
        return None
    return _as_utc_naive(dt).replace(microsecond=0).isoformat() + "Z"
