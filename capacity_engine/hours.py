"""
Calendar and Hours Arithmetic

Converts schedule values into hours and counts working days on a
configurable work week. The default week runs Sunday through Thursday.
"""

import calendar
import math
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterable, Iterator, Optional, Union

from .errors import ValidationError
from .log import get_logger

logger = get_logger(__name__)


HOURS_PER_DAY = 7.0
WORK_DAYS_PER_WEEK = 5
MEMBER_WEEKLY_POTENTIAL = HOURS_PER_DAY * WORK_DAYS_PER_WEEK

# Indexed by date.weekday(): Monday is 0, Sunday is 6
WEEKDAY_NAMES = (
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"
)
DEFAULT_WORK_DAYS = frozenset({6, 0, 1, 2, 3})

DateLike = Union[date, datetime]


class ScheduleValue(Enum):
    """Per-day availability marker."""
    FULL = "1"
    HALF = "0.5"
    ABSENT = "X"

    @property
    def hours(self) -> float:
        return _VALUE_HOURS[self]

    @classmethod
    def parse(cls, raw) -> Optional["ScheduleValue"]:
        """
        Parse a raw schedule value.

        Accepts enum members, the tags "1", "0.5" and "X", the numbers
        1 and 0.5, and the names full/half/absent. Returns None for
        anything else.
        """
        if isinstance(raw, cls):
            return raw
        if raw is None or isinstance(raw, bool):
            return None
        if isinstance(raw, (int, float)):
            if raw == 1:
                return cls.FULL
            if raw == 0.5:
                return cls.HALF
            return None

        text = str(raw).strip()
        for value in cls:
            if text.upper() == value.value.upper() or text.lower() == value.name.lower():
                return value
        return None


_VALUE_HOURS = {
    ScheduleValue.FULL: HOURS_PER_DAY,
    ScheduleValue.HALF: HOURS_PER_DAY / 2,
    ScheduleValue.ABSENT: 0.0,
}


def hours_for_value(value) -> float:
    """Hours represented by a schedule value. Unknown values count as 0."""
    parsed = ScheduleValue.parse(value)
    if parsed is None:
        logger.warning("unknown_schedule_value", value=value)
        return 0.0
    return parsed.hours


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def working_days_between(
    start: DateLike,
    end: DateLike,
    work_days: Iterable[int] = DEFAULT_WORK_DAYS
) -> int:
    """
    Count working days in the inclusive range [start, end].

    Returns 0 when end is before start.
    """
    start, end = _as_date(start), _as_date(end)
    if end < start:
        return 0

    work_days = frozenset(work_days)
    total = (end - start).days + 1
    weeks, remainder = divmod(total, 7)
    first = start.weekday()

    count = weeks * len(work_days)
    count += sum(1 for offset in range(remainder) if (first + offset) % 7 in work_days)
    return count


def iter_working_days(
    start: DateLike,
    end: DateLike,
    work_days: Iterable[int] = DEFAULT_WORK_DAYS
) -> Iterator[date]:
    """Yield each working day in [start, end]."""
    start, end = _as_date(start), _as_date(end)
    work_days = frozenset(work_days)
    current = start
    while current <= end:
        if current.weekday() in work_days:
            yield current
        current += timedelta(days=1)


def add_working_days(
    start: DateLike,
    days: float,
    work_days: Iterable[int] = DEFAULT_WORK_DAYS
) -> date:
    """Calendar date on which the given number of working days after start is reached."""
    start = _as_date(start)
    work_days = frozenset(work_days)
    if not work_days:
        raise ValidationError("work week must contain at least one day")

    remaining = math.ceil(days)
    current = start
    while remaining > 0:
        current += timedelta(days=1)
        if current.weekday() in work_days:
            remaining -= 1
    return current


def potential_hours(
    member_count: int,
    start: DateLike,
    end: DateLike,
    work_days: Iterable[int] = DEFAULT_WORK_DAYS,
    hours_per_day: float = HOURS_PER_DAY
) -> float:
    """Hours available to member_count people working every working day in range."""
    if member_count <= 0:
        return 0.0
    return member_count * working_days_between(start, end, work_days) * hours_per_day


def sprint_end_date(start: DateLike, length_weeks: int = 2) -> date:
    return _as_date(start) + timedelta(days=length_weeks * 7 - 1)


def calculate_sprint_potential(
    member_count: int,
    sprint_start: DateLike,
    length_weeks: int = 2,
    work_days: Iterable[int] = DEFAULT_WORK_DAYS
) -> float:
    """Potential hours for a full sprint starting on sprint_start."""
    return potential_hours(
        member_count,
        sprint_start,
        sprint_end_date(sprint_start, length_weeks),
        work_days
    )


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_completion_percentage(actual: float, potential: float) -> int:
    """Actual over potential as a whole percentage, rounding halves up."""
    if potential <= 0:
        return 0
    return round_half_up(actual / potential * 100)


def months_before(day: DateLike, months: int) -> date:
    """Same day of month, the given number of months earlier (clamped to month end)."""
    day = _as_date(day)
    index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(index, 12)
    last_day = calendar.monthrange(year, month + 1)[1]
    return date(year, month + 1, min(day.day, last_day))


def parse_work_days(value) -> frozenset[int]:
    """
    Parse a work week definition.

    Accepts a comma separated string or an iterable of weekday names
    ("sunday") or date.weekday() numbers.
    """
    if isinstance(value, str):
        value = [part for part in value.split(",") if part.strip()]

    days = set()
    for item in value:
        if isinstance(item, int) and 0 <= item <= 6:
            days.add(item)
            continue
        name = str(item).strip().lower()
        if name not in WEEKDAY_NAMES:
            raise ValidationError(f"Unknown weekday: {item!r}")
        days.add(WEEKDAY_NAMES.index(name))

    if not days:
        raise ValidationError("work week must contain at least one day")
    return frozenset(days)
