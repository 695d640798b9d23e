"""
Schedule evaluation for checkpoint visiting windows.

All comparisons are done on local wall-clock time at minute resolution.
Fixed times are compared on a 24h circle, so a 23:55 slot with a 10 minute
tolerance accepts a scan at 00:03.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from models.schedule import ScheduleConfig, ScheduleType
from utils.datetime_helpers import MINUTES_PER_DAY, minute_of_day, parse_hhmm


@dataclass(frozen=True)
class ScheduleVerdict:
    passed: bool
    reason: str = ""


SCHEDULE_PASS = ScheduleVerdict(passed=True)


def minutes_between(a: int, b: int) -> int:
    """Shortest distance in minutes between two minute-of-day values."""
    diff = abs(a - b) % MINUTES_PER_DAY
    return min(diff, MINUTES_PER_DAY - diff)


def evaluate_fixed_time(schedule: ScheduleConfig, now: datetime) -> ScheduleVerdict:
    tolerance = schedule.effective_tolerance
    current = minute_of_day(now)

    for entry in schedule.fixed_times or []:
        if minutes_between(current, parse_hhmm(entry)) <= tolerance:
            return SCHEDULE_PASS

    times = ", ".join(schedule.fixed_times or [])
    return ScheduleVerdict(
        passed=False,
        reason=f"Wrong Time. Schedule: {times} (+/- {tolerance}m)",
    )


def evaluate_interval(
    schedule: ScheduleConfig,
    now: datetime,
    last_valid_visit: Optional[datetime],
) -> ScheduleVerdict:
    # First visit of a checkpoint is always in schedule
    if last_valid_visit is None or schedule.interval_minutes is None:
        return SCHEDULE_PASS

    elapsed_minutes = int((now - last_valid_visit).total_seconds() // 60)
    if elapsed_minutes >= schedule.interval_minutes:
        return SCHEDULE_PASS

    return ScheduleVerdict(
        passed=False,
        reason=(
            f"Too soon. Interval: {schedule.interval_minutes}m, "
            f"last visit {elapsed_minutes}m ago"
        ),
    )


def evaluate_schedule(
    schedule: Optional[ScheduleConfig],
    now: datetime,
    last_valid_visit: Optional[datetime] = None,
    enforce_interval: bool = False,
) -> ScheduleVerdict:
    """
    Decide whether ``now`` falls inside a checkpoint's visiting window.

    Args:
        schedule: The checkpoint schedule, or None for "any time".
        now: Local wall-clock time of the scan.
        last_valid_visit: Time of the previous VALID scan of the same
            checkpoint. Only consulted for INTERVAL schedules.
        enforce_interval: INTERVAL schedules pass through unless this is set.

    Returns:
        ScheduleVerdict with a human readable reason when it fails.
    """
    if schedule is None or schedule.type == ScheduleType.NONE:
        return SCHEDULE_PASS

    if schedule.type == ScheduleType.FIXED_TIME:
        return evaluate_fixed_time(schedule, now)

    if schedule.type == ScheduleType.INTERVAL and enforce_interval:
        return evaluate_interval(schedule, now, last_valid_visit)

    return SCHEDULE_PASS
