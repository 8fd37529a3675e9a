"""
Historical Data Collector

Turns schedule records into per-member, per-sprint planned vs actual
hours, cleans the result, scores its quality and derives team features.
"""

import asyncio
import math
from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import Callable, Iterable, Optional, Sequence

from .cache import TTLCache
from .errors import NotFoundError
from .hours import (
    DEFAULT_WORK_DAYS,
    HOURS_PER_DAY,
    months_before,
    working_days_between
)
from .integrations.records import Member, RecordStore, Schedule, Team
from .log import get_logger
from .stat_models import linear_slope, mean, std_dev, variance

logger = get_logger(__name__)


MAX_UTILIZATION = 300.0
UTILIZATION_CAP = 200.0
DEFAULT_SPRINT_DAYS = 14


@dataclass(frozen=True)
class HistoricalDataPoint:
    """One member's planned and actual hours for one sprint."""
    date: date
    team_id: int
    member_id: int
    planned_hours: Optional[float]
    actual_hours: Optional[float]
    utilization: Optional[float]
    sprint_number: int

    @classmethod
    def from_hours(
        cls,
        day: date,
        team_id: int,
        member_id: int,
        planned_hours: float,
        actual_hours: float,
        sprint_number: int
    ) -> "HistoricalDataPoint":
        utilization = actual_hours / planned_hours * 100 if planned_hours > 0 else 0.0
        return cls(
            date=day,
            team_id=team_id,
            member_id=member_id,
            planned_hours=planned_hours,
            actual_hours=actual_hours,
            utilization=max(0.0, min(MAX_UTILIZATION, utilization)),
            sprint_number=sprint_number
        )

    @property
    def is_complete(self) -> bool:
        return all(
            _is_number(v)
            for v in (self.planned_hours, self.actual_hours, self.utilization)
        )

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "team_id": self.team_id,
            "member_id": self.member_id,
            "planned_hours": self.planned_hours,
            "actual_hours": self.actual_hours,
            "utilization": self.utilization,
            "sprint_number": self.sprint_number
        }


def _is_number(value) -> bool:
    return value is not None and not (isinstance(value, float) and math.isnan(value))


@dataclass
class SprintWindow:
    """A sprint's date range as seen by the collector."""
    sprint_number: int
    start: date
    end: date


@dataclass
class DataQualityMetrics:
    """Quality scores in [0, 1]."""
    completeness: float = 0.0
    consistency: float = 0.0
    timeliness: float = 0.0
    accuracy: float = 0.0

    @property
    def overall(self) -> float:
        return (self.completeness + self.consistency + self.timeliness + self.accuracy) / 4

    def to_dict(self) -> dict:
        return {
            "completeness": round(self.completeness, 3),
            "consistency": round(self.consistency, 3),
            "timeliness": round(self.timeliness, 3),
            "accuracy": round(self.accuracy, 3),
            "overall": round(self.overall, 3)
        }


@dataclass
class SeasonalPattern:
    """Average utilization by weekday or by month."""
    period: str  # "weekly" or "monthly"
    pattern: list[float]
    confidence: float

    def to_dict(self) -> dict:
        return {
            "period": self.period,
            "pattern": [round(v, 2) for v in self.pattern],
            "confidence": round(self.confidence, 3)
        }


@dataclass
class ProcessedTeamData:
    """Cleaned history for one team plus derived summaries."""
    team_id: int
    team_name: str
    historical_data: list[HistoricalDataPoint]
    member_count: int
    avg_utilization: float
    velocity_trend: list[float]
    seasonal_patterns: list[SeasonalPattern] = field(default_factory=list)
    data_quality: DataQualityMetrics = field(default_factory=DataQualityMetrics)

    def to_dict(self) -> dict:
        return {
            "team_id": self.team_id,
            "team_name": self.team_name,
            "member_count": self.member_count,
            "avg_utilization": round(self.avg_utilization, 2),
            "velocity_trend": [round(v, 2) for v in self.velocity_trend],
            "seasonal_patterns": [p.to_dict() for p in self.seasonal_patterns],
            "data_quality": self.data_quality.to_dict(),
            "data_points": len(self.historical_data)
        }


@dataclass
class FeatureVector:
    """Numeric team features consumed by the risk and anomaly models."""
    team_id: int
    avg_utilization: float
    utilization_std_dev: float
    velocity_trend: float
    team_stability: float
    workload_variability: float
    seasonal_index: float
    historical_accuracy: float
    member_turnover: float

    def numeric_features(self) -> dict[str, float]:
        return {
            "avg_utilization": self.avg_utilization,
            "utilization_std_dev": self.utilization_std_dev,
            "velocity_trend": self.velocity_trend,
            "team_stability": self.team_stability,
            "workload_variability": self.workload_variability,
            "seasonal_index": self.seasonal_index,
            "historical_accuracy": self.historical_accuracy,
            "member_turnover": self.member_turnover,
        }

    def to_dict(self) -> dict:
        data = {k: round(v, 4) for k, v in self.numeric_features().items()}
        data["team_id"] = self.team_id
        return data


def group_by_sprint(
    points: Iterable[HistoricalDataPoint]
) -> dict[int, list[HistoricalDataPoint]]:
    """Points grouped by sprint number, in ascending sprint order."""
    groups: dict[int, list[HistoricalDataPoint]] = defaultdict(list)
    for point in points:
        groups[point.sprint_number].append(point)
    return {number: groups[number] for number in sorted(groups)}


def sprint_capacities(points: Iterable[HistoricalDataPoint]) -> list[float]:
    """Total actual hours per sprint, oldest first."""
    return [
        sum(p.actual_hours for p in sprint)
        for sprint in group_by_sprint(points).values()
    ]


def sprint_utilizations(points: Iterable[HistoricalDataPoint]) -> list[float]:
    """Mean member utilization per sprint, oldest first."""
    return [
        mean([p.utilization for p in sprint])
        for sprint in group_by_sprint(points).values()
    ]


def team_stability(points: Sequence[HistoricalDataPoint]) -> float:
    """Mean share of the overall roster present in each sprint. 1 for a single sprint."""
    sprints = group_by_sprint(points)
    if len(sprints) <= 1:
        return 1.0

    all_members = {p.member_id for p in points}
    return mean([
        len({p.member_id for p in sprint}) / len(all_members)
        for sprint in sprints.values()
    ])


def member_turnover(points: Sequence[HistoricalDataPoint]) -> float:
    """Mean fraction of the previous sprint's members missing from the next."""
    rosters = [{p.member_id for p in sprint} for sprint in group_by_sprint(points).values()]
    if len(rosters) <= 1:
        return 0.0

    rates = []
    for previous, current in zip(rosters, rosters[1:]):
        leavers = previous - current
        rates.append(len(leavers) / len(previous))
    return mean(rates)


class DataCollector:
    """
    Collects and cleans historical capacity data from the record store.

    Usage:
        collector = DataCollector(store)
        points = await collector.collect_historical_data(team_id=1)
        teams = await collector.process_all_teams()
    """

    def __init__(
        self,
        store: RecordStore,
        cache: Optional[TTLCache] = None,
        work_days: Iterable[int] = DEFAULT_WORK_DAYS,
        today: Callable[[], date] = date.today
    ):
        self.store = store
        self.cache = cache or TTLCache(ttl_seconds=300)
        self.work_days = frozenset(work_days)
        self._today = today

    async def get_team(self, team_id: int) -> Team:
        for team in await self.store.get_teams():
            if team.id == team_id:
                return team
        raise NotFoundError("team", team_id)

    async def get_member(self, member_id: int) -> Member:
        for member in await self.store.get_team_members():
            if member.id == member_id:
                return member
        raise NotFoundError("member", member_id)

    async def sprint_windows(self, months_back: int = 6) -> list[SprintWindow]:
        """
        Sprint windows covering the last `months_back` months, oldest first.

        Windows are aligned backwards from the current sprint. Without a
        current sprint, two-week windows ending today are used. The
        current window is clipped to today.
        """
        today = self._today()
        cutoff = months_before(today, months_back)
        sprint = await self.store.get_current_sprint()

        if sprint is None:
            length = DEFAULT_SPRINT_DAYS
            anchor = today - timedelta(days=length - 1)
            anchor_number = None
        else:
            length = sprint.length_weeks * 7
            anchor = sprint.start_date
            anchor_number = sprint.sprint_number

        spans = []
        offset = 0
        while True:
            start = anchor - timedelta(days=offset * length)
            end = start + timedelta(days=length - 1)
            if end < cutoff:
                break
            if anchor_number is not None and anchor_number - offset < 1:
                break
            if start <= today:
                spans.append((offset, start, min(end, today)))
            offset += 1

        spans.reverse()
        return [
            SprintWindow(
                sprint_number=anchor_number - offset if anchor_number is not None else index + 1,
                start=start,
                end=end
            )
            for index, (offset, start, end) in enumerate(spans)
        ]

    async def collect_historical_data(
        self,
        team_id: int,
        months_back: int = 6
    ) -> list[HistoricalDataPoint]:
        """
        Per-member, per-sprint planned vs actual hours for a team.

        A member with no schedule entries inside a window is treated as
        not being on the team for that sprint.
        """
        key = ("history", team_id, months_back)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        await self.get_team(team_id)
        members = await self.store.get_team_members(team_id)
        windows = await self.sprint_windows(months_back)

        points: list[HistoricalDataPoint] = []
        if members and windows:
            schedule = await self.store.get_schedule_entries(
                windows[0].start, windows[-1].end, team_id
            )
            points = self._build_points(team_id, members, windows, schedule)

        logger.debug(
            "historical_data_collected",
            team_id=team_id,
            sprints=len(windows),
            points=len(points)
        )
        self.cache.set(key, points)
        return points

    def _build_points(
        self,
        team_id: int,
        members: list[Member],
        windows: list[SprintWindow],
        schedule: Schedule
    ) -> list[HistoricalDataPoint]:
        points = []
        for window in windows:
            planned = working_days_between(window.start, window.end, self.work_days) * HOURS_PER_DAY
            for member in members:
                entries = [
                    entry for day, entry in schedule.get(member.id, {}).items()
                    if window.start <= day <= window.end
                ]
                if not entries:
                    continue

                actual = sum(
                    entry.hours for entry in entries
                    if entry.date.weekday() in self.work_days
                )
                points.append(HistoricalDataPoint.from_hours(
                    day=window.start,
                    team_id=team_id,
                    member_id=member.id,
                    planned_hours=planned,
                    actual_hours=actual,
                    sprint_number=window.sprint_number
                ))
        return points

    async def collect_member_history(
        self,
        member_id: int,
        months_back: int = 3
    ) -> list[HistoricalDataPoint]:
        """Cleaned history of a single member."""
        member = await self.get_member(member_id)
        points = await self.collect_historical_data(member.team_id, months_back)
        return self.clean_data([p for p in points if p.member_id == member_id])

    def clean_data(self, points: Iterable[HistoricalDataPoint]) -> list[HistoricalDataPoint]:
        """Drop incomplete or out-of-range points and cap utilization at 200."""
        cleaned = []
        dropped = 0
        for point in points:
            if not point.is_complete or not 0 <= point.utilization <= MAX_UTILIZATION:
                dropped += 1
                continue
            if point.utilization > UTILIZATION_CAP:
                point = replace(point, utilization=UTILIZATION_CAP)
            cleaned.append(point)

        if dropped:
            logger.debug("historical_points_dropped", dropped=dropped, kept=len(cleaned))
        return cleaned

    def assess_data_quality(self, points: Sequence[HistoricalDataPoint]) -> DataQualityMetrics:
        if not points:
            return DataQualityMetrics()

        total = len(points)
        complete = [p for p in points if p.is_complete]
        consistent = [
            p for p in complete
            if 0 <= p.utilization <= MAX_UTILIZATION
            and p.planned_hours >= 0
            and p.actual_hours >= 0
        ]

        days_since_latest = (self._today() - max(p.date for p in points)).days
        timeliness = max(0.0, 1 - max(0, days_since_latest) / 30)

        utilizations = [p.utilization for p in complete]
        accuracy = max(0.0, 1 - variance(utilizations) / 10000)

        return DataQualityMetrics(
            completeness=len(complete) / total,
            consistency=len(consistent) / total,
            timeliness=timeliness,
            accuracy=accuracy
        )

    def detect_seasonal_patterns(
        self,
        points: Sequence[HistoricalDataPoint]
    ) -> list[SeasonalPattern]:
        """Weekday and month utilization patterns with confidence above 0.6."""
        if not points:
            return []

        weekly: list[list[float]] = [[] for _ in range(7)]
        monthly: list[list[float]] = [[] for _ in range(12)]
        for point in points:
            weekly[point.date.weekday()].append(point.utilization)
            monthly[point.date.month - 1].append(point.utilization)

        candidates = [
            SeasonalPattern(
                period="weekly",
                pattern=[mean(values) for values in weekly],
                confidence=min(1.0, sum(len(v) for v in weekly) / (len(points) * 0.7))
            ),
            SeasonalPattern(
                period="monthly",
                pattern=[mean(values) for values in monthly],
                confidence=min(1.0, sum(len(v) for v in monthly) / (len(points) * 0.5))
            ),
        ]
        return [p for p in candidates if p.confidence > 0.6]

    async def process_team(self, team: Team, months_back: int = 6) -> Optional[ProcessedTeamData]:
        """Cleaned history and summaries for a team, or None without usable data."""
        key = ("processed", team.id, months_back)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        raw = await self.collect_historical_data(team.id, months_back)
        cleaned = self.clean_data(raw)
        if not cleaned:
            return None

        processed = ProcessedTeamData(
            team_id=team.id,
            team_name=team.name,
            historical_data=cleaned,
            member_count=len({p.member_id for p in cleaned}),
            avg_utilization=mean([p.utilization for p in cleaned]),
            velocity_trend=sprint_capacities(cleaned),
            seasonal_patterns=self.detect_seasonal_patterns(cleaned),
            data_quality=self.assess_data_quality(raw)
        )
        self.cache.set(key, processed)
        return processed

    async def get_processed_team(
        self,
        team_id: int,
        months_back: int = 6
    ) -> Optional[ProcessedTeamData]:
        team = await self.get_team(team_id)
        return await self.process_team(team, months_back)

    async def process_all_teams(self, months_back: int = 6) -> list[ProcessedTeamData]:
        teams = await self.store.get_teams()
        results = await asyncio.gather(
            *(self.process_team(team, months_back) for team in teams)
        )
        return [r for r in results if r is not None]

    def generate_feature_vector(self, processed: ProcessedTeamData) -> FeatureVector:
        points = processed.historical_data
        utilizations = [p.utilization for p in points]
        avg = mean(utilizations)
        spread = std_dev(utilizations)

        seasonal_index = mean([p.confidence for p in processed.seasonal_patterns])

        return FeatureVector(
            team_id=processed.team_id,
            avg_utilization=avg,
            utilization_std_dev=spread,
            velocity_trend=linear_slope(processed.velocity_trend),
            team_stability=team_stability(points),
            workload_variability=spread / avg if avg else 0.0,
            seasonal_index=seasonal_index,
            historical_accuracy=processed.data_quality.accuracy,
            member_turnover=member_turnover(points)
        )

    async def generate_feature_vectors(self, months_back: int = 6) -> list[FeatureVector]:
        return [
            self.generate_feature_vector(processed)
            for processed in await self.process_all_teams(months_back)
        ]
