"""
Record Store Integration

Read access to teams, members, per-day schedule entries and the
current sprint. Persistence lives outside the engine; this module only
reads.
"""

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

import httpx

from ..errors import ValidationError
from ..hours import ScheduleValue, hours_for_value
from ..log import get_logger

logger = get_logger(__name__)


def _parse_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _parse_datetime(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass
class Team:
    """A team of members."""
    id: int
    name: str
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Team":
        return cls(
            id=int(data["id"]),
            name=data["name"],
            description=data.get("description")
        )

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "description": self.description}


@dataclass
class Member:
    """A team member."""
    id: int
    name: str
    team_id: int
    is_manager: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "Member":
        return cls(
            id=int(data["id"]),
            name=data["name"],
            team_id=int(data["team_id"]),
            is_manager=bool(data.get("is_manager", False))
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "team_id": self.team_id,
            "is_manager": self.is_manager
        }


@dataclass
class ScheduleEntry:
    """One member's availability on one day."""
    member_id: int
    date: date
    value: str  # "1", "0.5" or "X"
    reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def schedule_value(self) -> Optional[ScheduleValue]:
        return ScheduleValue.parse(self.value)

    @property
    def hours(self) -> float:
        return hours_for_value(self.value)

    @classmethod
    def from_dict(cls, data: dict) -> "ScheduleEntry":
        """Build an entry from a record row, rejecting malformed rows."""
        try:
            member_id = int(data["member_id"])
            day = _parse_date(data["date"])
            created_at = _parse_datetime(data.get("created_at"))
            updated_at = _parse_datetime(data.get("updated_at"))
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Malformed schedule entry: {data!r}") from e

        value = ScheduleValue.parse(data.get("value"))
        if value is None:
            raise ValidationError(f"Schedule value out of range: {data.get('value')!r}")

        return cls(
            member_id=member_id,
            date=day,
            value=value.value,
            reason=data.get("reason"),
            created_at=created_at,
            updated_at=updated_at
        )

    def to_dict(self) -> dict:
        return {
            "member_id": self.member_id,
            "date": self.date.isoformat(),
            "value": self.value,
            "reason": self.reason,
            "hours": self.hours
        }


@dataclass
class SprintDescriptor:
    """The active sprint: its number, start day and length."""
    sprint_number: int
    start_date: date
    length_weeks: int = 2

    @property
    def end_date(self) -> date:
        return self.start_date + timedelta(days=self.length_weeks * 7 - 1)

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    @classmethod
    def from_dict(cls, data: dict) -> "SprintDescriptor":
        return cls(
            sprint_number=int(data["sprint_number"]),
            start_date=_parse_date(data["start_date"]),
            length_weeks=int(data.get("length_weeks", 2))
        )

    def to_dict(self) -> dict:
        return {
            "sprint_number": self.sprint_number,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "length_weeks": self.length_weeks
        }


# member_id -> date -> entry
Schedule = dict[int, dict[date, ScheduleEntry]]


class RecordStore(ABC):
    """Abstract read interface over the roster and schedule records."""

    @abstractmethod
    async def get_teams(self) -> list[Team]:
        pass

    @abstractmethod
    async def get_team_members(self, team_id: Optional[int] = None) -> list[Member]:
        """Members of one team, or every member when team_id is None."""
        pass

    @abstractmethod
    async def get_schedule_entries(
        self,
        start: date,
        end: date,
        team_id: Optional[int] = None
    ) -> Schedule:
        """Entries in [start, end] keyed by member id then date."""
        pass

    @abstractmethod
    async def get_current_sprint(self) -> Optional[SprintDescriptor]:
        pass


class InMemoryRecordStore(RecordStore):
    """
    Record store held in process memory.

    Usage:
        store = InMemoryRecordStore()
        store.add_team(Team(id=1, name="Platform"))
        store.add_member(Member(id=10, name="Dana", team_id=1))
        store.set_entry(10, date(2024, 1, 7), "1")
    """

    def __init__(self, current_sprint: Optional[SprintDescriptor] = None):
        self.teams: dict[int, Team] = {}
        self.members: dict[int, Member] = {}
        self.entries: Schedule = {}
        self.current_sprint = current_sprint

    def add_team(self, team: Team) -> Team:
        self.teams[team.id] = team
        return team

    def add_member(self, member: Member) -> Member:
        self.members[member.id] = member
        return member

    def set_entry(
        self,
        member_id: int,
        day: date,
        value,
        reason: Optional[str] = None
    ) -> ScheduleEntry:
        if isinstance(value, ScheduleValue):
            value = value.value
        entry = ScheduleEntry(member_id=member_id, date=day, value=value, reason=reason)
        self.entries.setdefault(member_id, {})[day] = entry
        return entry

    async def get_teams(self) -> list[Team]:
        return list(self.teams.values())

    async def get_team_members(self, team_id: Optional[int] = None) -> list[Member]:
        return [
            m for m in self.members.values()
            if team_id is None or m.team_id == team_id
        ]

    async def get_schedule_entries(
        self,
        start: date,
        end: date,
        team_id: Optional[int] = None
    ) -> Schedule:
        member_ids = {m.id for m in await self.get_team_members(team_id)}
        schedule: Schedule = {}
        for member_id, days in self.entries.items():
            if member_id not in member_ids:
                continue
            in_range = {d: e for d, e in days.items() if start <= d <= end}
            if in_range:
                schedule[member_id] = in_range
        return schedule

    async def get_current_sprint(self) -> Optional[SprintDescriptor]:
        return self.current_sprint


class HTTPRecordStore(RecordStore):
    """
    Record store backed by a REST record service.

    Usage:
        store = HTTPRecordStore(base_url="https://records.example.com/api")
        teams = await store.get_teams()
        schedule = await store.get_schedule_entries(start, end, team_id=1)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or os.getenv("RECORD_STORE_URL", "")).rstrip("/")
        self.token = token or os.getenv("RECORD_STORE_TOKEN")
        self.timeout = timeout
        self._transport = transport

        if not self.base_url:
            raise ValueError(
                "Record store URL required. Set RECORD_STORE_URL env var "
                "or pass base_url."
            )

        self.headers = {"Accept": "application/json"}
        if self.token:
            self.headers["Authorization"] = f"Bearer {self.token}"

    async def _request(
        self,
        endpoint: str,
        params: Optional[dict] = None
    ):
        """Make authenticated request to the record service."""
        async with httpx.AsyncClient(transport=self._transport) as client:
            response = await client.get(
                f"{self.base_url}{endpoint}",
                headers=self.headers,
                params=params,
                timeout=self.timeout
            )
            if response.status_code == 404:
                return None
            response.raise_for_status()
            return response.json() if response.content else None

    @staticmethod
    def _rows(result, key: str) -> list[dict]:
        if result is None:
            return []
        if isinstance(result, dict):
            return result.get(key, [])
        return result

    async def get_teams(self) -> list[Team]:
        result = await self._request("/teams")
        return [Team.from_dict(row) for row in self._rows(result, "teams")]

    async def get_team_members(self, team_id: Optional[int] = None) -> list[Member]:
        params = {"team_id": team_id} if team_id is not None else None
        result = await self._request("/members", params)
        return [Member.from_dict(row) for row in self._rows(result, "members")]

    async def get_schedule_entries(
        self,
        start: date,
        end: date,
        team_id: Optional[int] = None
    ) -> Schedule:
        params = {"start": start.isoformat(), "end": end.isoformat()}
        if team_id is not None:
            params["team_id"] = team_id

        result = await self._request("/schedule", params)

        schedule: Schedule = {}
        dropped = 0
        for row in self._rows(result, "entries"):
            try:
                entry = ScheduleEntry.from_dict(row)
            except ValidationError as e:
                dropped += 1
                logger.debug("schedule_entry_dropped", reason=str(e))
                continue
            schedule.setdefault(entry.member_id, {})[entry.date] = entry

        if dropped:
            logger.warning("malformed_schedule_entries", dropped=dropped, team_id=team_id)
        return schedule

    async def get_current_sprint(self) -> Optional[SprintDescriptor]:
        result = await self._request("/sprints/current")
        if not result:
            return None
        return SprintDescriptor.from_dict(result)
