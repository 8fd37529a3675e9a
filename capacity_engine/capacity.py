"""
Capacity Calculator

Potential vs actual hours for members, teams, the whole company and the
current sprint.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Callable, Iterable, Optional

from .cache import TTLCache
from .errors import NotFoundError
from .hours import (
    DEFAULT_WORK_DAYS,
    HOURS_PER_DAY,
    calculate_completion_percentage,
    iter_working_days,
    potential_hours,
    working_days_between
)
from .integrations.records import RecordStore, Schedule, SprintDescriptor
from .log import get_logger

logger = get_logger(__name__)


UNDER_CAPACITY_THRESHOLD = 80
OVER_CAPACITY_THRESHOLD = 100


class CapacityStatus(Enum):
    """Where utilization sits relative to the optimal band."""
    OVER = "over"
    OPTIMAL = "optimal"
    UNDER = "under"


def capacity_status(utilization: float) -> CapacityStatus:
    if utilization > OVER_CAPACITY_THRESHOLD:
        return CapacityStatus.OVER
    if utilization < UNDER_CAPACITY_THRESHOLD:
        return CapacityStatus.UNDER
    return CapacityStatus.OPTIMAL


class MissingDayPolicy(Enum):
    """How a working day without a schedule entry is counted."""
    ZERO = "zero"
    FULL_DAY = "full_day"  # projection of unknown future days only


def actual_hours(
    schedule: Schedule,
    member_ids: Iterable[int],
    start: date,
    end: date,
    policy: MissingDayPolicy = MissingDayPolicy.ZERO,
    work_days: Iterable[int] = DEFAULT_WORK_DAYS
) -> float:
    """Sum of entry hours in [start, end] for the given members."""
    work_days = frozenset(work_days)
    total = 0.0
    for member_id in member_ids:
        days = schedule.get(member_id, {})
        total += sum(entry.hours for day, entry in days.items() if start <= day <= end)
        if policy is MissingDayPolicy.FULL_DAY:
            missing = sum(1 for day in iter_working_days(start, end, work_days) if day not in days)
            total += missing * HOURS_PER_DAY
    return total


@dataclass
class CapacitySnapshot:
    """Potential vs actual hours for one entity over a date range."""
    entity_type: str  # "member", "team" or "company"
    entity_id: Optional[int]
    name: str
    start: date
    end: date
    member_count: int
    working_days: int
    potential_hours: float
    actual_hours: float

    @property
    def utilization_percent(self) -> float:
        if self.potential_hours <= 0:
            return 0.0
        return self.actual_hours / self.potential_hours * 100

    @property
    def completion_percentage(self) -> int:
        return calculate_completion_percentage(self.actual_hours, self.potential_hours)

    @property
    def capacity_gap(self) -> float:
        return self.potential_hours - self.actual_hours

    @property
    def capacity_status(self) -> CapacityStatus:
        return capacity_status(self.utilization_percent)

    def to_dict(self) -> dict:
        return {
            "entity": {
                "type": self.entity_type,
                "id": self.entity_id,
                "name": self.name
            },
            "period": {
                "start": self.start.isoformat(),
                "end": self.end.isoformat(),
                "working_days": self.working_days
            },
            "member_count": self.member_count,
            "potential_hours": round(self.potential_hours, 1),
            "actual_hours": round(self.actual_hours, 1),
            "utilization_percent": round(self.utilization_percent, 1),
            "completion_percentage": self.completion_percentage,
            "capacity_gap": round(self.capacity_gap, 1),
            "capacity_status": self.capacity_status.value
        }


@dataclass
class CompanyCapacity:
    """Company totals plus the per-team snapshots they were summed from."""
    snapshot: CapacitySnapshot
    teams: list[CapacitySnapshot] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "company": self.snapshot.to_dict(),
            "teams": [t.to_dict() for t in self.teams]
        }


@dataclass
class SprintProjection:
    """Sprint hours so far plus full-day projection of the remaining days."""
    sprint: SprintDescriptor
    to_date: CapacitySnapshot
    projected_hours: float
    sprint_potential: float

    @property
    def projected_utilization(self) -> float:
        if self.sprint_potential <= 0:
            return 0.0
        return self.projected_hours / self.sprint_potential * 100

    def to_dict(self) -> dict:
        return {
            "sprint": self.sprint.to_dict(),
            "to_date": self.to_date.to_dict(),
            "projected_hours": round(self.projected_hours, 1),
            "sprint_potential": round(self.sprint_potential, 1),
            "projected_utilization": round(self.projected_utilization, 1)
        }


class CapacityCalculator:
    """
    Computes capacity snapshots from the record store.

    Usage:
        calculator = CapacityCalculator(store)
        team = await calculator.team_capacity(1, date(2024, 1, 7), date(2024, 1, 20))
        print(team.utilization_percent, team.capacity_status)
    """

    def __init__(
        self,
        store: RecordStore,
        cache: Optional[TTLCache] = None,
        work_days: Iterable[int] = DEFAULT_WORK_DAYS,
        today: Callable[[], date] = date.today
    ):
        self.store = store
        self.cache = cache or TTLCache(ttl_seconds=120)
        self.work_days = frozenset(work_days)
        self._today = today

    def summarize(
        self,
        entity_type: str,
        entity_id: Optional[int],
        name: str,
        member_ids: list[int],
        schedule: Schedule,
        start: date,
        end: date,
        policy: MissingDayPolicy = MissingDayPolicy.ZERO
    ) -> CapacitySnapshot:
        return CapacitySnapshot(
            entity_type=entity_type,
            entity_id=entity_id,
            name=name,
            start=start,
            end=end,
            member_count=len(member_ids),
            working_days=working_days_between(start, end, self.work_days),
            potential_hours=potential_hours(len(member_ids), start, end, self.work_days),
            actual_hours=actual_hours(schedule, member_ids, start, end, policy, self.work_days)
        )

    async def member_capacity(
        self,
        member_id: int,
        start: date,
        end: date,
        policy: MissingDayPolicy = MissingDayPolicy.ZERO
    ) -> CapacitySnapshot:
        key = ("member", member_id, start, end, policy)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        member = next(
            (m for m in await self.store.get_team_members() if m.id == member_id),
            None
        )
        if member is None:
            raise NotFoundError("member", member_id)

        schedule = await self.store.get_schedule_entries(start, end, member.team_id)
        snapshot = self.summarize(
            "member", member.id, member.name, [member.id], schedule, start, end, policy
        )
        self.cache.set(key, snapshot)
        return snapshot

    async def team_capacity(
        self,
        team_id: int,
        start: date,
        end: date,
        policy: MissingDayPolicy = MissingDayPolicy.ZERO
    ) -> CapacitySnapshot:
        key = ("team", team_id, start, end, policy)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        team = next((t for t in await self.store.get_teams() if t.id == team_id), None)
        if team is None:
            raise NotFoundError("team", team_id)

        members = await self.store.get_team_members(team_id)
        schedule = await self.store.get_schedule_entries(start, end, team_id)
        snapshot = self.summarize(
            "team", team.id, team.name, [m.id for m in members], schedule, start, end, policy
        )
        self.cache.set(key, snapshot)
        return snapshot

    async def company_capacity(
        self,
        start: date,
        end: date,
        policy: MissingDayPolicy = MissingDayPolicy.ZERO
    ) -> CompanyCapacity:
        """Per-team snapshots gathered concurrently, then summed."""
        teams = await self.store.get_teams()
        snapshots = list(await asyncio.gather(
            *(self.team_capacity(team.id, start, end, policy) for team in teams)
        ))

        # Utilization is recomputed from the totals, not averaged per team
        company = CapacitySnapshot(
            entity_type="company",
            entity_id=None,
            name="company",
            start=start,
            end=end,
            member_count=sum(s.member_count for s in snapshots),
            working_days=working_days_between(start, end, self.work_days),
            potential_hours=sum(s.potential_hours for s in snapshots),
            actual_hours=sum(s.actual_hours for s in snapshots)
        )
        logger.debug(
            "company_capacity_calculated",
            teams=len(snapshots),
            start=start.isoformat(),
            end=end.isoformat(),
            utilization=round(company.utilization_percent, 1)
        )
        return CompanyCapacity(snapshot=company, teams=snapshots)

    async def current_sprint(self) -> SprintDescriptor:
        sprint = await self.store.get_current_sprint()
        if sprint is None:
            raise NotFoundError("sprint", "current")
        return sprint

    async def sprint_to_date(self, team_id: Optional[int] = None) -> CapacitySnapshot:
        """Capacity from the sprint start through today (or sprint end if earlier)."""
        sprint = await self.current_sprint()
        end = min(self._today(), sprint.end_date)
        if team_id is None:
            return (await self.company_capacity(sprint.start_date, end)).snapshot
        return await self.team_capacity(team_id, sprint.start_date, end)

    async def project_sprint_total(self, team_id: int) -> SprintProjection:
        """Hours to date plus remaining working days counted as full days unless scheduled otherwise."""
        sprint = await self.current_sprint()
        today = self._today()
        to_date = await self.team_capacity(
            team_id, sprint.start_date, min(today, sprint.end_date)
        )

        projected = to_date.actual_hours
        remaining_start = max(sprint.start_date, today + timedelta(days=1))
        if remaining_start <= sprint.end_date:
            remaining = await self.team_capacity(
                team_id, remaining_start, sprint.end_date, MissingDayPolicy.FULL_DAY
            )
            projected += remaining.actual_hours

        return SprintProjection(
            sprint=sprint,
            to_date=to_date,
            projected_hours=projected,
            sprint_potential=potential_hours(
                to_date.member_count, sprint.start_date, sprint.end_date, self.work_days
            )
        )
