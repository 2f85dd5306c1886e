"""Datetime utilities for timezone-aware UTC timestamps.

Usage:
    from libs.common.datetime_utils import utc_now, parse_timestamp

    entry_time = utc_now()
    as_of = parse_timestamp(payload.get("asOf"))
"""

from datetime import datetime, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    """Return timezone-aware UTC datetime.

    Use this instead of datetime.utcnow(), which returns naive datetimes.
    """
    return datetime.now(timezone.utc)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp from the backend into an aware UTC datetime.

    Naive values are assumed to be UTC. A trailing "Z" is accepted.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
