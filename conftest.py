from datetime import datetime
from functools import partial
from zoneinfo import ZoneInfo

import pytest
from sqlmodel import Session

from db.session import build_engine, create_db_and_tables

BANGKOK = ZoneInfo("Asia/Bangkok")


class FixedClock:
    def __init__(self, current: datetime):
        self.current = current

    def now(self) -> datetime:
        return self.current


@pytest.fixture
def db_engine():
    engine = build_engine("sqlite://")
    create_db_and_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return partial(Session, db_engine)


@pytest.fixture
def clock_at():
    """Clock frozen at a wall-clock time on 2025-06-07 in Bangkok."""

    def make(hour: int, minute: int) -> FixedClock:
        return FixedClock(datetime(2025, 6, 7, hour, minute, tzinfo=BANGKOK))

    return make


@pytest.fixture
def morning_clock(clock_at):
    # Five minutes after the 08:00 round at the main gate
    return clock_at(8, 5)
