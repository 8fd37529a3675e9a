"""
Shared fixtures: a record store with three teams on a Sunday-Thursday week.

Platform (team 1): three members, full days every working day.
Mobile (team 2): one member on full days, one on half days.
Data (team 3): one member without any schedule entries.
"""

import random
from datetime import date, datetime

import pytest

from capacity_engine.config import Config
from capacity_engine.collector import DataCollector
from capacity_engine.engine import CapacityAnalytics
from capacity_engine.hours import iter_working_days
from capacity_engine.integrations.records import (
    InMemoryRecordStore,
    Member,
    SprintDescriptor,
    Team
)


TODAY = date(2024, 3, 20)  # Wednesday
NOW = datetime(2024, 3, 20, 9, 0)
HISTORY_START = date(2023, 12, 31)  # Sunday, first day of sprint 1
CURRENT_SPRINT = SprintDescriptor(sprint_number=6, start_date=date(2024, 3, 10))


def fill(store: InMemoryRecordStore, member_id: int, start: date, end: date, value="1"):
    """Set the same value on every working day in [start, end]."""
    for day in iter_working_days(start, end):
        store.set_entry(member_id, day, value)


class Clock:
    """Settable clock for alert timestamps."""

    def __init__(self, current: datetime = NOW):
        self.current = current

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs):
        from datetime import timedelta
        self.current += timedelta(**kwargs)


@pytest.fixture
def store():
    store = InMemoryRecordStore(current_sprint=CURRENT_SPRINT)

    store.add_team(Team(id=1, name="Platform"))
    store.add_team(Team(id=2, name="Mobile"))
    store.add_team(Team(id=3, name="Data"))

    store.add_member(Member(id=10, name="Alice", team_id=1, is_manager=True))
    store.add_member(Member(id=11, name="Bob", team_id=1))
    store.add_member(Member(id=12, name="Carol", team_id=1))
    store.add_member(Member(id=20, name="Dan", team_id=2))
    store.add_member(Member(id=21, name="Eve", team_id=2))
    store.add_member(Member(id=30, name="Finn", team_id=3))

    for member_id in (10, 11, 12, 20):
        fill(store, member_id, HISTORY_START, TODAY, "1")
    fill(store, 21, HISTORY_START, TODAY, "0.5")

    return store


@pytest.fixture
def collector(store):
    return DataCollector(store, today=lambda: TODAY)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def analytics(store, clock):
    return CapacityAnalytics.from_config(
        Config(config_path="does-not-exist.yaml"),
        store=store,
        today=lambda: TODAY,
        now=clock,
        rng=random.Random(42)
    )
