"""
Timezone utilities for evaluating patrol schedules in the site's local time.
"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def to_site_time(utc_dt: datetime, tz: str) -> datetime:
    """
    Express a UTC instant as wall-clock time at the patrol site.

    Naive input is taken to be UTC.
    """
    if utc_dt.tzinfo is None:
        utc_dt = utc_dt.replace(tzinfo=timezone.utc)
    return utc_dt.astimezone(ZoneInfo(tz))


def get_current_time_in_tz(tz: str) -> datetime:
    return to_site_time(datetime.now(timezone.utc), tz)


def validate_timezone(tz: str) -> bool:
    """True if ``tz`` is a known IANA zone name such as 'Asia/Bangkok'."""
    try:
        ZoneInfo(tz)
        return True
    except (ZoneInfoNotFoundError, ValueError):
        return False
