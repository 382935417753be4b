"""
Timezone helpers.

Entities always carry timezone-aware UTC datetimes. Drivers do not agree on
this (SQLite drops tzinfo, pymongo returns naive UTC unless ``tz_aware`` is
set), so every value read from storage goes through ``to_utc``.
"""

import datetime
from typing import Optional


def now_utc() -> datetime.datetime:
    """Get current UTC datetime."""
    return datetime.datetime.now(datetime.timezone.utc)


def to_utc(dt: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    """Normalise ``dt`` to an aware UTC datetime; naive values are taken as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=datetime.timezone.utc)
    return dt.astimezone(datetime.timezone.utc)


def parse_datetime(value: Optional[str]) -> Optional[datetime.datetime]:
    """Parse an ISO 8601 string produced by ``datetime.isoformat``."""
    if value is None:
        return None
    return to_utc(datetime.datetime.fromisoformat(value))
