from datetime import datetime
from typing import Protocol

from utils.timezone_helpers import get_current_time_in_tz, validate_timezone


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock in the patrol site's timezone."""

    def __init__(self, tz: str):
        if not validate_timezone(tz):
            raise ValueError(f"Invalid timezone '{tz}'")
        self.tz = tz

    def now(self) -> datetime:
        return get_current_time_in_tz(self.tz)
