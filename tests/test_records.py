"""
Tests for the record store integrations.
"""

import pytest
import httpx
from datetime import date

from capacity_engine.errors import ValidationError
from capacity_engine.integrations.records import (
    HTTPRecordStore,
    InMemoryRecordStore,
    Member,
    ScheduleEntry,
    SprintDescriptor,
    Team
)


BASE_URL = "https://records.test/api"


def make_store(routes: dict, seen: list = None) -> HTTPRecordStore:
    """HTTP store answering from a path -> (status, json) mapping."""
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        path = request.url.path[len("/api"):]
        status, payload = routes.get(path, (404, None))
        return httpx.Response(status, json=payload)

    return HTTPRecordStore(
        base_url=BASE_URL,
        token="test-token",
        transport=httpx.MockTransport(handler)
    )


class TestScheduleEntry:
    """Tests for schedule entry parsing."""

    def test_from_dict(self):
        """Test a well formed row."""
        entry = ScheduleEntry.from_dict({
            "member_id": "10",
            "date": "2024-01-07T00:00:00Z",
            "value": 0.5,
            "reason": "appointment"
        })

        assert entry.member_id == 10
        assert entry.date == date(2024, 1, 7)
        assert entry.value == "0.5"
        assert entry.hours == 3.5
        assert entry.reason == "appointment"

    def test_rejects_bad_value(self):
        """Test values outside 1, 0.5 and X are rejected."""
        with pytest.raises(ValidationError):
            ScheduleEntry.from_dict({"member_id": 1, "date": "2024-01-07", "value": "3"})

    def test_rejects_missing_fields(self):
        """Test rows without a date are rejected."""
        with pytest.raises(ValidationError):
            ScheduleEntry.from_dict({"member_id": 1, "value": "1"})


class TestSprintDescriptor:
    """Tests for sprint descriptors."""

    def test_end_date_and_contains(self):
        """Test a two week sprint spans 14 calendar days."""
        sprint = SprintDescriptor(sprint_number=3, start_date=date(2024, 1, 7))

        assert sprint.end_date == date(2024, 1, 20)
        assert sprint.contains(date(2024, 1, 20))
        assert not sprint.contains(date(2024, 1, 21))


class TestInMemoryRecordStore:
    """Tests for the in-memory store."""

    @pytest.mark.asyncio
    async def test_filters_by_team_and_range(self):
        """Test schedule lookups honour team and date range."""
        store = InMemoryRecordStore()
        store.add_team(Team(id=1, name="Platform"))
        store.add_team(Team(id=2, name="Mobile"))
        store.add_member(Member(id=10, name="Alice", team_id=1))
        store.add_member(Member(id=20, name="Dan", team_id=2))
        store.set_entry(10, date(2024, 1, 7), "1")
        store.set_entry(10, date(2024, 2, 7), "1")
        store.set_entry(20, date(2024, 1, 8), "X")

        schedule = await store.get_schedule_entries(date(2024, 1, 1), date(2024, 1, 31), team_id=1)

        assert list(schedule) == [10]
        assert list(schedule[10]) == [date(2024, 1, 7)]
        assert len(await store.get_team_members()) == 2
        assert [m.id for m in await store.get_team_members(2)] == [20]


class TestHTTPRecordStore:
    """Tests for the REST-backed store."""

    def test_requires_url(self, monkeypatch):
        """Test a missing URL is a configuration error."""
        monkeypatch.delenv("RECORD_STORE_URL", raising=False)
        with pytest.raises(ValueError):
            HTTPRecordStore()

    @pytest.mark.asyncio
    async def test_get_teams_sends_token(self):
        """Test teams are parsed and the bearer token is sent."""
        seen = []
        store = make_store({"/teams": (200, {"teams": [{"id": 1, "name": "Platform"}]})}, seen)

        teams = await store.get_teams()

        assert teams == [Team(id=1, name="Platform")]
        assert seen[0].headers["Authorization"] == "Bearer test-token"

    @pytest.mark.asyncio
    async def test_get_members_passes_team_filter(self):
        """Test the team id is sent as a query parameter."""
        seen = []
        store = make_store({"/members": (200, [
            {"id": 10, "name": "Alice", "team_id": 1, "is_manager": True}
        ])}, seen)

        members = await store.get_team_members(1)

        assert members[0].is_manager is True
        assert seen[0].url.params["team_id"] == "1"

    @pytest.mark.asyncio
    async def test_schedule_drops_malformed_rows(self):
        """Test malformed rows are skipped and valid ones kept."""
        store = make_store({"/schedule": (200, {"entries": [
            {"member_id": 10, "date": "2024-01-07", "value": "1"},
            {"member_id": 10, "date": "2024-01-08", "value": "banana"},
            {"member_id": 11, "date": "not-a-date", "value": "1"},
            {"member_id": 11, "date": "2024-01-08", "value": "X"},
        ]})})

        schedule = await store.get_schedule_entries(date(2024, 1, 7), date(2024, 1, 20))

        assert set(schedule) == {10, 11}
        assert list(schedule[10]) == [date(2024, 1, 7)]
        assert schedule[11][date(2024, 1, 8)].hours == 0

    @pytest.mark.asyncio
    async def test_current_sprint(self):
        """Test the current sprint descriptor."""
        store = make_store({"/sprints/current": (200, {
            "sprint_number": 6, "start_date": "2024-03-10"
        })})

        sprint = await store.get_current_sprint()

        assert sprint.sprint_number == 6
        assert sprint.end_date == date(2024, 3, 23)

    @pytest.mark.asyncio
    async def test_current_sprint_missing(self):
        """Test a 404 means there is no current sprint."""
        store = make_store({})
        assert await store.get_current_sprint() is None
        assert await store.get_teams() == []

    @pytest.mark.asyncio
    async def test_server_error_propagates(self):
        """Test non-404 errors are raised."""
        store = make_store({"/teams": (500, {"error": "boom"})})
        with pytest.raises(httpx.HTTPStatusError):
            await store.get_teams()
