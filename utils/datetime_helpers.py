from datetime import datetime, timezone
from typing import Optional, Union

MINUTES_PER_DAY = 24 * 60


def format_utc_datetime(dt: Optional[datetime]) -> Optional[str]:
    """
    Format a datetime object to an ISO 8601 string with 'Z' suffix.

    If the datetime is naive, it is assumed to be in UTC and is made aware.
    If it is timezone-aware, it is converted to UTC.

    Args:
        dt: A datetime object or None

    Returns:
        An ISO 8601 formatted string with 'Z' suffix, or None if the input is None.
    """
    if dt is None:
        return None

    # If the datetime is naive, assume it's UTC and make it timezone-aware.
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    # If it's already timezone-aware, ensure it's in UTC.
    else:
        dt = dt.astimezone(timezone.utc)

    # Format to ISO string and replace the +00:00 suffix with 'Z'.
    iso_string = dt.isoformat()

    if iso_string.endswith('+00:00'):
        return iso_string.replace('+00:00', 'Z')

    return iso_string


def to_epoch_millis(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def from_epoch_millis(millis: int) -> datetime:
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


def parse_remote_timestamp(value: Union[int, float, str, None]) -> Optional[int]:
    """
    Normalize a timestamp coming back from the remote sheet to epoch millis.

    The sheet echoes whatever was posted, so rows hold either epoch millis or
    an ISO 8601 string (Sheets turns numbers into dates on some locales).
    Returns None when the value cannot be interpreted.
    """
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value).strip()
    if text.isdigit():
        return int(text)
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return to_epoch_millis(parsed)


def parse_hhmm(value: str) -> int:
    """Parse an "HH:mm" time of day into minutes after midnight."""
    try:
        hours_str, minutes_str = value.split(":")
        hours, minutes = int(hours_str), int(minutes_str)
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid time of day '{value}', expected HH:mm")
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError(f"Invalid time of day '{value}', expected HH:mm")
    return hours * 60 + minutes


def minute_of_day(dt: datetime) -> int:
    return dt.hour * 60 + dt.minute
