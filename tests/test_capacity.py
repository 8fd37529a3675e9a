"""
Tests for the capacity calculator.
"""

import pytest
from datetime import date

from capacity_engine.capacity import (
    CapacityCalculator,
    CapacityStatus,
    MissingDayPolicy,
    actual_hours,
    capacity_status
)
from capacity_engine.errors import NotFoundError
from capacity_engine.integrations.records import InMemoryRecordStore

from conftest import TODAY


SPRINT_START = date(2024, 1, 7)
SPRINT_END = date(2024, 1, 20)


@pytest.fixture
def calculator(store):
    return CapacityCalculator(store, today=lambda: TODAY)


class TestCapacityStatus:
    """Tests for the status bands."""

    def test_bands(self):
        """Test under, optimal and over boundaries."""
        assert capacity_status(79.9) is CapacityStatus.UNDER
        assert capacity_status(80) is CapacityStatus.OPTIMAL
        assert capacity_status(100) is CapacityStatus.OPTIMAL
        assert capacity_status(100.1) is CapacityStatus.OVER


class TestActualHours:
    """Tests for summing schedule hours."""

    @pytest.mark.asyncio
    async def test_full_day_policy_fills_missing_days(self, store):
        """Test missing working days count as full days under FULL_DAY."""
        schedule = await store.get_schedule_entries(date(2024, 3, 21), date(2024, 3, 23), 1)

        assert actual_hours(schedule, [10], date(2024, 3, 21), date(2024, 3, 23)) == 0
        assert actual_hours(
            schedule, [10], date(2024, 3, 21), date(2024, 3, 23), MissingDayPolicy.FULL_DAY
        ) == 7


class TestCapacityCalculator:
    """Tests for member, team and company snapshots."""

    @pytest.mark.asyncio
    async def test_team_capacity_full(self, calculator):
        """Test a fully staffed team is at 100%."""
        snapshot = await calculator.team_capacity(1, SPRINT_START, SPRINT_END)

        assert snapshot.member_count == 3
        assert snapshot.working_days == 10
        assert snapshot.potential_hours == 210
        assert snapshot.actual_hours == 210
        assert snapshot.completion_percentage == 100
        assert snapshot.capacity_status is CapacityStatus.OPTIMAL

    @pytest.mark.asyncio
    async def test_team_capacity_half_time_member(self, calculator):
        """Test a half-time member pulls the team below optimal."""
        snapshot = await calculator.team_capacity(2, SPRINT_START, SPRINT_END)

        assert snapshot.potential_hours == 140
        assert snapshot.actual_hours == 105
        assert snapshot.utilization_percent == 75
        assert snapshot.capacity_gap == 35
        assert snapshot.capacity_status is CapacityStatus.UNDER

    @pytest.mark.asyncio
    async def test_absences_reduce_actual(self, store, calculator):
        """Test X entries count as zero hours."""
        store.set_entry(10, date(2024, 1, 8), "X")
        store.set_entry(11, date(2024, 1, 9), "0.5")

        snapshot = await calculator.team_capacity(1, SPRINT_START, SPRINT_END)

        assert snapshot.actual_hours == 210 - 7 - 3.5

    @pytest.mark.asyncio
    async def test_member_capacity(self, calculator):
        """Test a single member's snapshot."""
        snapshot = await calculator.member_capacity(21, SPRINT_START, SPRINT_END)

        assert snapshot.entity_type == "member"
        assert snapshot.name == "Eve"
        assert snapshot.potential_hours == 70
        assert snapshot.actual_hours == 35
        assert snapshot.completion_percentage == 50

    @pytest.mark.asyncio
    async def test_company_capacity_sums_teams(self, calculator):
        """Test company totals are summed, not averaged."""
        company = await calculator.company_capacity(SPRINT_START, SPRINT_END)

        assert company.snapshot.member_count == 6
        assert company.snapshot.potential_hours == 420
        assert company.snapshot.actual_hours == 315
        assert company.snapshot.utilization_percent == 75
        assert [t.entity_id for t in company.teams] == [1, 2, 3]
        assert company.teams[2].actual_hours == 0

    @pytest.mark.asyncio
    async def test_unknown_entities(self, calculator):
        """Test unknown ids raise NotFoundError."""
        with pytest.raises(NotFoundError):
            await calculator.team_capacity(99, SPRINT_START, SPRINT_END)
        with pytest.raises(NotFoundError):
            await calculator.member_capacity(99, SPRINT_START, SPRINT_END)

    @pytest.mark.asyncio
    async def test_to_dict(self, calculator):
        """Test the serialized snapshot."""
        data = (await calculator.team_capacity(2, SPRINT_START, SPRINT_END)).to_dict()

        assert data["entity"] == {"type": "team", "id": 2, "name": "Mobile"}
        assert data["period"]["working_days"] == 10
        assert data["utilization_percent"] == 75.0
        assert data["capacity_status"] == "under"


class TestCurrentSprint:
    """Tests for sprint-to-date and projections."""

    @pytest.mark.asyncio
    async def test_sprint_to_date(self, calculator):
        """Test the sprint so far runs from its start to today."""
        snapshot = await calculator.sprint_to_date(1)

        assert snapshot.start == date(2024, 3, 10)
        assert snapshot.end == TODAY
        assert snapshot.working_days == 9
        assert snapshot.actual_hours == 189
        assert snapshot.potential_hours == 189

    @pytest.mark.asyncio
    async def test_sprint_to_date_company(self, calculator):
        """Test the company view of the current sprint."""
        snapshot = await calculator.sprint_to_date()

        assert snapshot.entity_type == "company"
        assert snapshot.potential_hours == 6 * 63

    @pytest.mark.asyncio
    async def test_project_sprint_total(self, calculator):
        """Test remaining days are projected as full days."""
        projection = await calculator.project_sprint_total(1)

        # Only Thursday 2024-03-21 remains in the sprint
        assert projection.projected_hours == 189 + 21
        assert projection.sprint_potential == 210
        assert projection.projected_utilization == 100

    @pytest.mark.asyncio
    async def test_projection_respects_known_absences(self, store, calculator):
        """Test scheduled absences on remaining days are not filled."""
        store.set_entry(10, date(2024, 3, 21), "X")

        projection = await calculator.project_sprint_total(1)

        assert projection.projected_hours == 189 + 14

    @pytest.mark.asyncio
    async def test_no_current_sprint(self):
        """Test a missing sprint is reported."""
        calculator = CapacityCalculator(InMemoryRecordStore(), today=lambda: TODAY)
        with pytest.raises(NotFoundError):
            await calculator.sprint_to_date(1)
