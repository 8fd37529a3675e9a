"""
Tests for the alert and insight engine.
"""

import pytest
from datetime import date, timedelta
from types import SimpleNamespace

from capacity_engine.alerts import (
    AlertEngine,
    AlertType,
    Category,
    Severity,
    Status,
    SuppressionRule,
    build_configurations,
    describe_period
)
from capacity_engine.collector import HistoricalDataPoint, ProcessedTeamData
from capacity_engine.errors import NotFoundError, ValidationError
from capacity_engine.predictor import BurnoutFactors, BurnoutRiskAssessment, RiskLevel

from conftest import NOW, TODAY


def processed(team_id, name, utilizations_by_member):
    """Processed team data with one point per sprint for each member."""
    points = [
        HistoricalDataPoint(
            date=date(2024, 1, 7) + timedelta(days=14 * sprint),
            team_id=team_id,
            member_id=member_id,
            planned_hours=70.0,
            actual_hours=70.0 * u / 100,
            utilization=u,
            sprint_number=sprint + 1
        )
        for member_id, series in utilizations_by_member.items()
        for sprint, u in enumerate(series)
    ]
    utilizations = [p.utilization for p in points]
    return ProcessedTeamData(
        team_id=team_id,
        team_name=name,
        historical_data=points,
        member_count=len(utilizations_by_member),
        avg_utilization=sum(utilizations) / len(utilizations),
        velocity_trend=[]
    )


def summary(alerts):
    return {(a.type, a.affected_entity.id, a.severity) for a in alerts}


class TestConfiguration:
    """Tests for alert configuration."""

    def test_defaults(self):
        """Test the default thresholds and frequencies."""
        configs = build_configurations()

        capacity = configs[AlertType.CAPACITY_WARNING]
        assert capacity.threshold("utilization_threshold", 0) == 95
        assert capacity.check_frequency_minutes == 60
        assert configs[AlertType.BURNOUT_RISK].threshold("risk_threshold", 0) == 0.7

    def test_overrides(self):
        """Test per-type overrides leave the defaults untouched."""
        configs = build_configurations({
            "capacity_warning": {"thresholds": {"utilization_threshold": 99}},
            "anomaly_detected": {"enabled": False},
            "burnout_risk": {"suppression_rules": []},
        })

        assert configs[AlertType.CAPACITY_WARNING].threshold("utilization_threshold", 0) == 99
        assert configs[AlertType.ANOMALY_DETECTED].enabled is False
        assert configs[AlertType.BURNOUT_RISK].suppression_rules == []
        assert build_configurations()[AlertType.CAPACITY_WARNING].threshold(
            "utilization_threshold", 0
        ) == 95

    def test_unknown_type(self):
        """Test unknown alert types are rejected."""
        with pytest.raises(ValidationError):
            build_configurations({"coffee_shortage": {}})

    def test_unknown_suppression_condition(self):
        """Test unknown suppression conditions are rejected."""
        with pytest.raises(ValidationError):
            SuppressionRule.from_dict({"condition": "recently_snoozed"})

    def test_describe_period(self):
        """Test report labels by period length."""
        assert describe_period(date(2024, 3, 13), date(2024, 3, 20)) == "Weekly Report"
        assert describe_period(date(2024, 3, 1), date(2024, 3, 20)) == "Monthly Report"
        assert describe_period(date(2024, 1, 1), date(2024, 3, 20)) == "Quarterly Report"
        assert describe_period(date(2023, 1, 1), date(2024, 3, 20)) == "Long-term Analysis"


class TestMonitoringCycle:
    """Tests for running checks over all teams."""

    @pytest.mark.asyncio
    async def test_raises_expected_alerts(self, analytics):
        """Test capacity and imbalance alerts for the sample teams."""
        new_alerts = await analytics.alerts.run_monitoring_cycle(force=True)

        assert summary(new_alerts) == {
            (AlertType.CAPACITY_WARNING, 1, Severity.HIGH),
            (AlertType.UTILIZATION_IMBALANCE, 2, Severity.MEDIUM),
        }

    @pytest.mark.asyncio
    async def test_alert_fields(self, analytics):
        """Test identifiers, tags, expiry and initial history."""
        await analytics.alerts.run_monitoring_cycle(force=True)
        alert = analytics.alerts.get_active_alerts(team_id=1)[0]

        assert alert.id.startswith("alert_")
        assert alert.created_at == NOW
        assert alert.expiration_date == NOW + timedelta(hours=168)
        assert alert.tags == ["type:capacity_warning", "category:capacity", "auto-generated"]
        assert alert.affected_entity.name == "Platform"
        assert alert.metrics.current_value == 100
        assert [(h.from_status, h.to_status) for h in alert.history] == [(None, Status.ACTIVE)]
        assert alert.recommendations[0].action == "Reduce sprint capacity by 15-20%"
        assert alert.to_dict()["escalation_path"][0]["level"] == 1

    @pytest.mark.asyncio
    async def test_ordering_and_filters(self, analytics):
        """Test severity ordering and entity, category and severity filters."""
        await analytics.alerts.run_monitoring_cycle(force=True)
        engine = analytics.alerts

        assert [a.severity for a in engine.get_active_alerts()] == [Severity.HIGH, Severity.MEDIUM]
        assert [a.type for a in engine.get_active_alerts(team_id=2)] == [
            AlertType.UTILIZATION_IMBALANCE
        ]
        assert len(engine.get_active_alerts(category=[Category.CAPACITY])) == 2
        assert len(engine.get_active_alerts(category=[Category.TEAM_HEALTH])) == 0
        assert len(engine.get_active_alerts(severity=[Severity.MEDIUM])) == 1
        assert engine.get_active_alerts(member_id=10) == []

    @pytest.mark.asyncio
    async def test_duplicates_refresh_open_alert(self, analytics, clock):
        """Test a repeated condition refreshes the open alert instead of adding one."""
        engine = analytics.alerts
        await engine.run_monitoring_cycle(force=True)
        original = engine.get_active_alerts(team_id=1)[0]

        clock.advance(hours=1)
        assert await engine.run_monitoring_cycle(force=True) == []

        alerts = engine.get_active_alerts()
        assert len(alerts) == 2
        refreshed = engine.get_active_alerts(team_id=1)[0]
        assert refreshed.id == original.id
        assert refreshed.timestamp == NOW + timedelta(hours=1)
        assert refreshed.created_at == NOW

    @pytest.mark.asyncio
    async def test_check_frequency(self, analytics, clock):
        """Test checks only run once their frequency has elapsed."""
        engine = analytics.alerts
        assert len(await engine.run_monitoring_cycle()) == 2
        assert engine._due_configurations(force=False) == []

        clock.advance(minutes=61)
        due = {c.type for c in engine._due_configurations(force=False)}

        assert due == {AlertType.CAPACITY_WARNING, AlertType.ANOMALY_DETECTED}

    @pytest.mark.asyncio
    async def test_disabled_checks_do_not_run(self, analytics):
        """Test a disabled alert type raises nothing."""
        engine = AlertEngine(
            analytics.collector,
            analytics.predictor,
            analytics.performance,
            configurations=build_configurations({"capacity_warning": {"enabled": False}}),
            now=analytics.alerts._now
        )

        new_alerts = await engine.run_monitoring_cycle(force=True)

        assert [a.type for a in new_alerts] == [AlertType.UTILIZATION_IMBALANCE]

    @pytest.mark.asyncio
    async def test_lower_score_threshold(self, analytics):
        """Test a stricter performance threshold flags both teams."""
        engine = AlertEngine(
            analytics.collector,
            analytics.predictor,
            analytics.performance,
            configurations=build_configurations({
                "performance_decline": {"thresholds": {"score_threshold": 80}}
            }),
            now=analytics.alerts._now
        )

        await engine.run_monitoring_cycle(force=True)
        declines = engine.get_active_alerts(category=[Category.PERFORMANCE])

        assert {a.affected_entity.id for a in declines} == {1, 2}
        assert {a.severity for a in declines} == {Severity.MEDIUM}

    @pytest.mark.asyncio
    async def test_failing_check_is_isolated(self, analytics, monkeypatch):
        """Test one failing checker does not stop the others."""
        async def broken(*args, **kwargs):
            raise RuntimeError("performance store offline")

        monkeypatch.setattr(analytics.performance, "calculate_team_performance", broken)

        new_alerts = await analytics.alerts.run_monitoring_cycle(force=True)

        assert len(new_alerts) == 2


class TestExpiryAndSuppression:
    """Tests for alert expiry and suppression."""

    @pytest.mark.asyncio
    async def test_alerts_expire(self, analytics, clock):
        """Test alerts are purged after their expiration."""
        engine = analytics.alerts
        await engine.run_monitoring_cycle(force=True)
        alert_id = engine.get_active_alerts()[0].id

        clock.advance(hours=170)

        assert engine.get_active_alerts() == []
        assert engine.get_alert(alert_id) is None

    @pytest.mark.asyncio
    async def test_closed_alerts_expire(self, analytics, clock):
        """Test resolved and dismissed alerts are purged after expiration too."""
        engine = analytics.alerts
        await engine.run_monitoring_cycle(force=True)
        resolved_id = engine.get_active_alerts(team_id=1)[0].id
        dismissed_id = engine.get_active_alerts(team_id=2)[0].id
        engine.acknowledge_alert(resolved_id, "lead")
        engine.resolve_alert(resolved_id, "lead")
        engine.dismiss_alert(dismissed_id, "lead")

        clock.advance(hours=170)

        assert engine.get_active_alerts(statuses=[Status.RESOLVED, Status.DISMISSED]) == []
        assert engine.get_alert(resolved_id) is None
        assert engine.get_alert(dismissed_id) is None

    @pytest.mark.asyncio
    async def test_dismissed_alert_suppresses_repeat(self, analytics, clock):
        """Test a dismissed capacity alert is not re-raised within 24 hours."""
        engine = analytics.alerts
        await engine.run_monitoring_cycle(force=True)
        capacity = engine.get_active_alerts(team_id=1)[0]
        assert engine.dismiss_alert(capacity.id, "lead@example.com", "known crunch")

        clock.advance(hours=2)
        assert await engine.run_monitoring_cycle(force=True) == []

        clock.advance(hours=23)
        new_alerts = await engine.run_monitoring_cycle(force=True)

        assert summary(new_alerts) == {(AlertType.CAPACITY_WARNING, 1, Severity.HIGH)}
        assert new_alerts[0].id != capacity.id

    @pytest.mark.asyncio
    async def test_resolved_alert_can_recur(self, analytics):
        """Test resolving does not suppress a recurring condition by default."""
        engine = analytics.alerts
        await engine.run_monitoring_cycle(force=True)
        capacity = engine.get_active_alerts(team_id=1)[0]
        engine.acknowledge_alert(capacity.id, "lead")
        engine.resolve_alert(capacity.id, "lead")

        new_alerts = await engine.run_monitoring_cycle(force=True)

        assert [a.type for a in new_alerts] == [AlertType.CAPACITY_WARNING]


class TestTransitions:
    """Tests for alert status changes."""

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, analytics, clock):
        """Test acknowledge, progress and resolve with history."""
        engine = analytics.alerts
        await engine.run_monitoring_cycle(force=True)
        alert_id = engine.get_active_alerts(team_id=1)[0].id

        assert engine.acknowledge_alert(alert_id, "lead")
        assert engine.start_alert_progress(alert_id, "lead")
        clock.advance(hours=3)
        assert engine.resolve_alert(alert_id, "lead", note="scope trimmed")

        alert = engine.get_alert(alert_id)
        assert alert.status is Status.RESOLVED
        assert [h.to_status for h in alert.history] == [
            Status.ACTIVE, Status.ACKNOWLEDGED, Status.IN_PROGRESS, Status.RESOLVED
        ]
        assert alert.history[-1].note == "scope trimmed"
        assert engine.get_active_alerts(team_id=1) == []
        assert engine.get_active_alerts(statuses=[Status.RESOLVED])[0].id == alert_id

    @pytest.mark.asyncio
    async def test_illegal_transitions(self, analytics):
        """Test transitions outside the allowed graph are refused."""
        engine = analytics.alerts
        await engine.run_monitoring_cycle(force=True)
        alert_id = engine.get_active_alerts(team_id=1)[0].id

        assert not engine.resolve_alert(alert_id, "lead")
        assert not engine.start_alert_progress(alert_id, "lead")
        assert engine.acknowledge_alert(alert_id, "lead")
        assert not engine.dismiss_alert(alert_id, "lead")
        assert not engine.acknowledge_alert("alert_missing", "lead")
        assert len(engine.get_alert(alert_id).history) == 2

    @pytest.mark.asyncio
    async def test_resolved_alert_cannot_be_acknowledged(self, analytics):
        """Test a resolved alert refuses further changes and keeps its history."""
        engine = analytics.alerts
        await engine.run_monitoring_cycle(force=True)
        alert_id = engine.get_active_alerts(team_id=1)[0].id
        engine.acknowledge_alert(alert_id, "lead")
        engine.start_alert_progress(alert_id, "lead")
        engine.resolve_alert(alert_id, "lead")

        assert not engine.acknowledge_alert(alert_id, "lead")
        assert not engine.dismiss_alert(alert_id, "lead")

        alert = engine.get_alert(alert_id)
        assert alert.status is Status.RESOLVED
        assert len(alert.history) == 4


class TestCheckers:
    """Tests for individual checks with controlled inputs."""

    @pytest.mark.asyncio
    async def test_performance_decline_severity(self, analytics, monkeypatch):
        """Test scores below 60 are high severity, below 70 medium."""
        engine = analytics.alerts
        team = await analytics.collector.get_processed_team(1)
        config = engine.configurations[AlertType.PERFORMANCE_DECLINE]

        def scored(composite):
            async def stub(team_id, months_back=6):
                return SimpleNamespace(
                    overall=SimpleNamespace(composite=composite, breakdown={"velocity": 90.0})
                )
            return stub

        monkeypatch.setattr(analytics.performance, "calculate_team_performance", scored(55))
        assert (await engine.check_performance_decline(team, config))[0].severity is Severity.HIGH

        monkeypatch.setattr(analytics.performance, "calculate_team_performance", scored(65))
        assert (await engine.check_performance_decline(team, config))[0].severity is Severity.MEDIUM

        monkeypatch.setattr(analytics.performance, "calculate_team_performance", scored(70))
        assert await engine.check_performance_decline(team, config) == []

    @pytest.mark.asyncio
    async def test_burnout_alerts(self, analytics, monkeypatch):
        """Test critical burnout alerts per member, skipping missing members."""
        async def assess(member_id):
            if member_id == 11:
                raise NotFoundError("member", member_id)
            return BurnoutRiskAssessment(
                member_id=member_id,
                member_name=f"Member {member_id}",
                risk_level=RiskLevel.CRITICAL,
                risk_score=0.9,
                factors=BurnoutFactors(workload_trend=0.5),
                burnout_probability=0.9,
                time_to_risk_days=7,
                intervention_window_days=3,
                confidence=0.85
            )

        monkeypatch.setattr(analytics.predictor, "assess_burnout_risk", assess)
        engine = analytics.alerts
        team = await analytics.collector.get_processed_team(1)

        alerts = await engine.check_burnout_risk(team, engine.configurations[AlertType.BURNOUT_RISK])

        assert [(a.affected_entity.type, a.affected_entity.id) for a in alerts] == [
            ("member", 10), ("member", 12)
        ]
        assert {a.severity for a in alerts} == {Severity.CRITICAL}
        assert {a.category for a in alerts} == {Category.TEAM_HEALTH}

    @pytest.mark.asyncio
    async def test_no_burnout_alerts_for_healthy_team(self, analytics):
        """Test steady members stay below the burnout threshold."""
        engine = analytics.alerts
        team = await analytics.collector.get_processed_team(1)

        alerts = await engine.check_burnout_risk(team, engine.configurations[AlertType.BURNOUT_RISK])

        assert alerts == []

    @pytest.mark.asyncio
    async def test_anomaly_in_recent_data(self, analytics):
        """Test a recent utilization spike raises a medium anomaly alert."""
        engine = analytics.alerts
        team = processed(5, "Spiky", {50: [100] * 20 + [100, 100, 190]})

        alerts = await engine.check_anomalies(team, engine.configurations[AlertType.ANOMALY_DETECTED])

        assert summary(alerts) == {(AlertType.ANOMALY_DETECTED, 5, Severity.MEDIUM)}

    @pytest.mark.asyncio
    async def test_anomaly_needs_history(self, analytics):
        """Test short histories are not checked."""
        engine = analytics.alerts
        team = processed(5, "New", {50: [100, 100, 100, 100, 300]})

        assert await engine.check_anomalies(
            team, engine.configurations[AlertType.ANOMALY_DETECTED]
        ) == []

    @pytest.mark.asyncio
    async def test_large_imbalance_is_high(self, analytics):
        """Test a spread above 50 points is high severity."""
        engine = analytics.alerts
        team = processed(5, "Uneven", {50: [120, 120], 51: [40, 40]})

        alerts = await engine.check_utilization_imbalance(
            team, engine.configurations[AlertType.UTILIZATION_IMBALANCE]
        )

        assert alerts[0].severity is Severity.HIGH
        assert alerts[0].metrics.current_value == 80

    def test_company_capacity(self, analytics):
        """Test the company-wide alert above 90% mean utilization."""
        engine = analytics.alerts
        config = engine.configurations[AlertType.CAPACITY_WARNING]
        teams = [processed(5, "A", {50: [95, 95]}), processed(6, "B", {60: [100, 100]})]

        alerts = engine.check_company_capacity(teams, config)

        assert alerts[0].affected_entity.to_dict() == {"type": "company", "id": 0, "name": "Company"}
        assert alerts[0].severity is Severity.HIGH
        assert engine.check_company_capacity([], config) == []
        assert engine.check_company_capacity([processed(5, "A", {50: [80]})], config) == []


class TestInsights:
    """Tests for insight reports."""

    @pytest.mark.asyncio
    async def test_generate_insights(self, analytics):
        """Test the report for the sample teams."""
        engine = analytics.alerts
        await engine.run_monitoring_cycle(force=True)

        report = await engine.generate_insights(date(2024, 3, 1), TODAY)

        assert report.period_description == "Monthly Report"
        assert report.generated_at == NOW

        stress = [i for i in report.key_insights if i.title == "Capacity Stress Detected"]
        assert stress[0].affected_teams == ["Platform"]

        assert [t.metric for t in report.trend_analysis] == ["Company Utilization", "Team Velocity"]
        assert report.trend_analysis[0].direction == "stable"

        assert report.predictive_insights[0].prediction == "Potential team burnout within next 4-6 weeks"
        assert report.predictive_insights[0].probability == pytest.approx(0.8)

        assert [r.title for r in report.recommendations] == ["Relieve Over-Capacity Teams"]

        assert report.performance_summary.company_score == 74
        assert report.performance_summary.needs_attention == []
        assert "utilization" in report.performance_summary.improvement_areas

        assert report.risk_assessment.top_risks == []
        assert report.risk_assessment.next_review_date == TODAY + timedelta(days=7)

        assert report.alert_summary.total_alerts == 2
        assert report.alert_summary.by_severity == {"high": 1, "medium": 1}
        assert report.alert_summary.previous_period_total == 0

    @pytest.mark.asyncio
    async def test_alert_summary_rates(self, analytics, clock):
        """Test resolution time and action rates."""
        engine = analytics.alerts
        await engine.run_monitoring_cycle(force=True)
        capacity = engine.get_active_alerts(team_id=1)[0]
        imbalance = engine.get_active_alerts(team_id=2)[0]

        engine.acknowledge_alert(capacity.id, "lead")
        clock.advance(hours=4)
        engine.resolve_alert(capacity.id, "lead")
        engine.dismiss_alert(imbalance.id, "lead")

        stats = engine.alert_summary(date(2024, 3, 1), TODAY)

        assert stats.avg_resolution_hours == pytest.approx(4)
        assert stats.false_positive_rate == 0.5
        assert stats.action_taken_rate == 0.5

    @pytest.mark.asyncio
    async def test_insights_are_cached(self, analytics):
        """Test repeated requests for the same period reuse the report."""
        engine = analytics.alerts
        first = await engine.generate_insights(date(2024, 3, 1), TODAY)

        assert await engine.generate_insights(date(2024, 3, 1), TODAY) is first
        assert first.to_dict()["period"]["description"] == "Monthly Report"
