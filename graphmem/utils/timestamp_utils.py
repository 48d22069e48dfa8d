"""
Timestamp utilities for consistent time handling across the system.
"""

import time
from datetime import datetime, timezone
from typing import Optional


def to_iso_str(timestamp: Optional[float] = None) -> str:
    """Convert timestamp to an ISO-8601 UTC string with millisecond precision.

    Args:
        timestamp: Unix timestamp in seconds (optional, uses current time if None)

    Returns:
        ISO-8601 string, e.g. '2024-05-01T09:30:00.125+00:00'
    """
    if timestamp is None:
        timestamp = time.time()
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat(timespec='milliseconds')


def to_date_str(value: Optional[str]) -> str:
    """Reduce a stored timestamp to its YYYY-MM-DD day for display.

    Args:
        value: ISO-8601 date or datetime string (may be None)

    Returns:
        Day string, or 'never' when no timestamp is stored
    """
    if not value:
        return 'never'
    return value[:10]
