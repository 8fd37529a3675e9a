"""
Performance Metrics Aggregator

Velocity, utilization, stability, efficiency, quality and predictive
metrics per team, a weighted composite score, and company-wide rollups.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Optional, Sequence

from .cache import TTLCache
from .collector import (
    DataCollector,
    HistoricalDataPoint,
    group_by_sprint,
    sprint_capacities,
    sprint_utilizations
)
from .errors import InsufficientDataError
from .hours import months_before, round_half_up
from .log import get_logger
from .stat_models import (
    LinearRegressionModel,
    MovingAverageModel,
    Trend,
    linear_slope,
    mean,
    std_dev,
    trend_label
)

logger = get_logger(__name__)


SCORE_WEIGHTS = {
    "velocity": 0.25,
    "utilization": 0.20,
    "stability": 0.20,
    "efficiency": 0.20,
    "quality": 0.15,
}

# Not derivable from schedule data; fixed until delivery and quality
# records are available to the engine
DELIVERY_CONSISTENCY_PLACEHOLDER = 0.85
PROCESS_EFFICIENCY_PLACEHOLDER = 0.78
QUALITY_PLACEHOLDERS = {
    "delivery_quality": 0.87,
    "estimation_accuracy": 0.82,
    "commitment_reliability": 0.89,
    "defect_rate": 2.3,
    "rework_rate": 0.12,
    "customer_satisfaction": 0.91,
}
DEFAULT_PERCENTILE = 50.0

ADDITION_IMPACT = 0.10
REMOVAL_IMPACT = 0.15

UTILIZATION_BUCKETS = (
    ("0-60%", 0, 60, "under"),
    ("60-80%", 60, 80, "under"),
    ("80-95%", 80, 95, "optimal"),
    ("95-110%", 95, 110, "over"),
    ("110%+", 110, float("inf"), "over"),
)


def performance_category(composite: float) -> str:
    if composite >= 90:
        return "excellent"
    if composite >= 80:
        return "good"
    if composite >= 70:
        return "satisfactory"
    if composite >= 60:
        return "needs_improvement"
    return "poor"


@dataclass
class SprintVelocity:
    sprint_number: int
    start_date: date
    velocity: float
    utilization: float
    team_size: int

    def to_dict(self) -> dict:
        return {
            "sprint_number": self.sprint_number,
            "start_date": self.start_date.isoformat(),
            "velocity": round(self.velocity, 1),
            "utilization": round(self.utilization, 1),
            "team_size": self.team_size
        }


@dataclass
class VelocityMetrics:
    """Hours delivered per sprint."""
    current_velocity: float
    average_velocity: float
    velocity_trend: Trend
    velocity_variability: float
    velocity_consistency: float
    history: list[SprintVelocity]
    forecast_next: float
    forecast_lower: float
    forecast_upper: float
    forecast_accuracy: float

    def to_dict(self) -> dict:
        return {
            "current_velocity": round(self.current_velocity, 1),
            "average_velocity": round(self.average_velocity, 1),
            "velocity_trend": self.velocity_trend.value,
            "velocity_variability": round(self.velocity_variability, 3),
            "velocity_consistency": round(self.velocity_consistency, 3),
            "sprint_history": [s.to_dict() for s in self.history],
            "forecasted_velocity": {
                "next_sprint": round(self.forecast_next, 1),
                "confidence_interval": {
                    "lower": round(self.forecast_lower, 1),
                    "upper": round(self.forecast_upper, 1)
                },
                "accuracy": round(self.forecast_accuracy, 3)
            }
        }


@dataclass
class UtilizationBucket:
    range_label: str
    count: int
    percentage: float
    status: str  # "under", "optimal", "over"

    def to_dict(self) -> dict:
        return {
            "range": self.range_label,
            "count": self.count,
            "percentage": round(self.percentage, 1),
            "status": self.status
        }


@dataclass
class UtilizationMetrics:
    current_utilization: float
    average_utilization: float
    utilization_trend: str  # "improving", "declining", "stable"
    peak_utilization: float
    minimum_utilization: float
    utilization_variability: float
    distribution: list[UtilizationBucket]
    capacity_efficiency: float
    optimal_range: tuple[int, int] = (80, 95)

    def to_dict(self) -> dict:
        return {
            "current_utilization": round(self.current_utilization, 1),
            "average_utilization": round(self.average_utilization, 1),
            "utilization_trend": self.utilization_trend,
            "peak_utilization": round(self.peak_utilization, 1),
            "minimum_utilization": round(self.minimum_utilization, 1),
            "utilization_variability": round(self.utilization_variability, 3),
            "optimal_range": {"min": self.optimal_range[0], "max": self.optimal_range[1]},
            "distribution": [b.to_dict() for b in self.distribution],
            "capacity_efficiency": round(self.capacity_efficiency, 3)
        }


@dataclass
class MembershipChange:
    sprint_number: int
    change_type: str  # "addition" or "removal"
    member_id: int
    member_name: str
    impact: float

    def to_dict(self) -> dict:
        return {
            "sprint_number": self.sprint_number,
            "change_type": self.change_type,
            "member_id": self.member_id,
            "member_name": self.member_name,
            "impact": self.impact
        }


@dataclass
class StabilityMetrics:
    team_stability_score: float
    member_retention_rate: float
    turnover_rate: float
    stability_trend: str
    membership_changes: list[MembershipChange]
    stability_risk: str  # "low", "medium", "high"
    retention_by_transition: list[float] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "team_stability_score": round(self.team_stability_score, 3),
            "member_retention_rate": round(self.member_retention_rate, 1),
            "turnover_rate": round(self.turnover_rate, 1),
            "stability_trend": self.stability_trend,
            "membership_changes": [c.to_dict() for c in self.membership_changes],
            "stability_risk": self.stability_risk
        }


@dataclass
class EfficiencyBottleneck:
    category: str
    severity: str
    description: str
    impact: float
    recommendations: list[str]

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "severity": self.severity,
            "description": self.description,
            "impact": round(self.impact, 1),
            "recommendations": self.recommendations
        }


@dataclass
class EfficiencyMetrics:
    overall_efficiency: float
    planning_accuracy: float
    delivery_consistency: float
    resource_utilization: float
    process_efficiency: float
    waste_factor: float
    efficiency_trend: str
    bottlenecks: list[EfficiencyBottleneck] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "overall_efficiency": round(self.overall_efficiency, 3),
            "planning_accuracy": round(self.planning_accuracy, 3),
            "delivery_consistency": self.delivery_consistency,
            "resource_utilization": round(self.resource_utilization, 3),
            "process_efficiency": self.process_efficiency,
            "waste_factor": round(self.waste_factor, 3),
            "efficiency_trend": self.efficiency_trend,
            "bottlenecks": [b.to_dict() for b in self.bottlenecks]
        }


@dataclass
class QualityIndicator:
    metric: str
    value: float
    benchmark: float
    status: str
    impact: str

    def to_dict(self) -> dict:
        return {
            "metric": self.metric,
            "value": self.value,
            "benchmark": self.benchmark,
            "status": self.status,
            "impact": self.impact
        }


@dataclass
class QualityMetrics:
    delivery_quality: float
    estimation_accuracy: float
    commitment_reliability: float
    defect_rate: float
    rework_rate: float
    customer_satisfaction: float
    indicators: list[QualityIndicator] = field(default_factory=list)
    quality_trend: str = "stable"

    def to_dict(self) -> dict:
        return {
            "delivery_quality": self.delivery_quality,
            "estimation_accuracy": self.estimation_accuracy,
            "commitment_reliability": self.commitment_reliability,
            "defect_rate": self.defect_rate,
            "rework_rate": self.rework_rate,
            "customer_satisfaction": self.customer_satisfaction,
            "quality_trend": self.quality_trend,
            "indicators": [i.to_dict() for i in self.indicators]
        }


@dataclass
class IndividualRisk:
    member_id: int
    member_name: str
    risk: float

    def to_dict(self) -> dict:
        return {
            "member_id": self.member_id,
            "member_name": self.member_name,
            "risk": round(self.risk, 3)
        }


@dataclass
class PredictiveMetrics:
    team_burnout_risk: float
    individual_risks: list[IndividualRisk]
    time_to_action_days: int
    capacity_forecast: list[float]
    forecast_confidence: float
    delivery_risk: float
    quality_risk: float
    team_risk: float
    overall_risk: float
    mitigation_priority: str

    def to_dict(self) -> dict:
        return {
            "burnout_risk": {
                "team_level": self.team_burnout_risk,
                "individual_risks": [r.to_dict() for r in self.individual_risks],
                "time_to_action_days": self.time_to_action_days
            },
            "capacity_forecast": {
                "next_sprints": [round(v, 1) for v in self.capacity_forecast],
                "confidence": round(self.forecast_confidence, 3)
            },
            "risk_assessment": {
                "delivery_risk": round(self.delivery_risk, 3),
                "quality_risk": round(self.quality_risk, 3),
                "team_risk": round(self.team_risk, 3),
                "overall_risk": round(self.overall_risk, 3),
                "mitigation_priority": self.mitigation_priority
            }
        }


@dataclass
class OverallPerformanceScore:
    composite: int
    category: str
    breakdown: dict[str, float]
    percentile: float = DEFAULT_PERCENTILE
    improvement_potential: float = 0.0

    def to_dict(self) -> dict:
        return {
            "composite": self.composite,
            "category": self.category,
            "breakdown": {k: round(v, 1) for k, v in self.breakdown.items()},
            "percentile": self.percentile,
            "improvement_potential": round(self.improvement_potential, 3)
        }


@dataclass
class PerformanceRecommendation:
    category: str
    priority: str
    title: str
    description: str
    expected_impact: float
    time_to_implement: str
    effort: str
    success_metrics: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "priority": self.priority,
            "title": self.title,
            "description": self.description,
            "expected_impact": self.expected_impact,
            "time_to_implement": self.time_to_implement,
            "effort": self.effort,
            "success_metrics": self.success_metrics
        }


@dataclass
class TrendData:
    direction: str  # "up", "down", "stable"
    magnitude: float
    significance: str
    duration: int
    projection: list[float]

    def to_dict(self) -> dict:
        return {
            "direction": self.direction,
            "magnitude": round(self.magnitude, 3),
            "significance": self.significance,
            "duration": self.duration,
            "projection": [round(p, 2) for p in self.projection]
        }


def trend_data(series: Sequence[float], horizon: int = 3) -> TrendData:
    """Direction, relative strength and short projection of a series."""
    if len(series) < 2:
        last = series[-1] if series else 0.0
        return TrendData("stable", 0.0, "none", 0, [last] * horizon)

    slope = linear_slope(series)
    level = abs(mean(series))
    magnitude = min(1.0, abs(slope) / level) if level else 0.0

    if magnitude > 0.1:
        significance = "significant"
    elif magnitude > 0.05:
        significance = "moderate"
    elif magnitude > 0.02:
        significance = "slight"
    else:
        significance = "none"

    direction = "stable" if significance == "none" else ("up" if slope > 0 else "down")

    # Trailing run of steps moving the same way
    duration = 0
    if direction != "stable":
        sign = 1 if direction == "up" else -1
        for previous, current in zip(reversed(series[:-1]), reversed(series)):
            if (current - previous) * sign > 0:
                duration += 1
            else:
                break

    projection = LinearRegressionModel().train(series).predict(horizon).predictions
    return TrendData(direction, magnitude, significance, duration, projection)


@dataclass
class PerformanceTrends:
    velocity: TrendData
    utilization: TrendData
    stability: TrendData

    def to_dict(self) -> dict:
        return {
            "velocity": self.velocity.to_dict(),
            "utilization": self.utilization.to_dict(),
            "stability": self.stability.to_dict()
        }


@dataclass
class TeamPerformanceMetrics:
    """All metric families for one team over a reporting period."""
    team_id: int
    team_name: str
    period_start: date
    period_end: date
    sprints_analyzed: int
    velocity: VelocityMetrics
    utilization: UtilizationMetrics
    stability: StabilityMetrics
    efficiency: EfficiencyMetrics
    quality: QualityMetrics
    predictive: PredictiveMetrics
    overall: OverallPerformanceScore
    recommendations: list[PerformanceRecommendation]
    trends: PerformanceTrends

    def to_dict(self) -> dict:
        return {
            "team_id": self.team_id,
            "team_name": self.team_name,
            "reporting_period": {
                "start_date": self.period_start.isoformat(),
                "end_date": self.period_end.isoformat(),
                "sprints_analyzed": self.sprints_analyzed
            },
            "velocity_metrics": self.velocity.to_dict(),
            "utilization_metrics": self.utilization.to_dict(),
            "stability_metrics": self.stability.to_dict(),
            "efficiency_metrics": self.efficiency.to_dict(),
            "quality_metrics": self.quality.to_dict(),
            "predictive_metrics": self.predictive.to_dict(),
            "overall_score": self.overall.to_dict(),
            "recommendations": [r.to_dict() for r in self.recommendations],
            "trends": self.trends.to_dict()
        }


@dataclass
class TeamComparison:
    team_id: int
    team_name: str
    composite: int
    rank: int
    percentile: float
    relative_performance: float  # -1..1 against the company average
    strengths: list[str] = field(default_factory=list)
    weaknesses: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "team_id": self.team_id,
            "team_name": self.team_name,
            "composite": self.composite,
            "rank": self.rank,
            "percentile": round(self.percentile, 1),
            "relative_performance": round(self.relative_performance, 3),
            "strengths": self.strengths,
            "weaknesses": self.weaknesses
        }


@dataclass
class CompanyPerformanceMetrics:
    period_start: date
    period_end: date
    teams: list[TeamPerformanceMetrics]
    comparisons: list[TeamComparison]
    distribution: dict[str, float]
    average_velocity: float
    average_utilization: float
    average_stability: float
    average_efficiency: float
    overall_score: float
    skipped_teams: list[int] = field(default_factory=list)

    @property
    def teams_analyzed(self) -> int:
        return len(self.teams)

    def to_dict(self) -> dict:
        return {
            "reporting_period": {
                "start_date": self.period_start.isoformat(),
                "end_date": self.period_end.isoformat(),
                "teams_analyzed": self.teams_analyzed
            },
            "company_wide_metrics": {
                "average_velocity": round(self.average_velocity, 1),
                "average_utilization": round(self.average_utilization, 1),
                "average_stability": round(self.average_stability, 3),
                "average_efficiency": round(self.average_efficiency, 3),
                "overall_performance_score": round(self.overall_score, 1)
            },
            "team_comparisons": [c.to_dict() for c in self.comparisons],
            "performance_distribution": {k: round(v, 1) for k, v in self.distribution.items()},
            "skipped_teams": self.skipped_teams
        }


class PerformanceMetricsAggregator:
    """
    Computes team and company performance from collected history.

    Usage:
        aggregator = PerformanceMetricsAggregator(collector)
        team = await aggregator.calculate_team_performance(1)
        print(team.overall.composite, team.overall.category)
    """

    def __init__(
        self,
        collector: DataCollector,
        cache: Optional[TTLCache] = None,
        today: Callable[[], date] = date.today
    ):
        self.collector = collector
        self.cache = cache or TTLCache(ttl_seconds=900)
        self._today = today

    async def calculate_team_performance(
        self,
        team_id: int,
        months_back: int = 6
    ) -> TeamPerformanceMetrics:
        """
        Raises:
            NotFoundError: unknown team
            InsufficientDataError: no usable history in the period
        """
        key = ("team", team_id, months_back)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        team = await self.collector.get_team(team_id)
        raw = await self.collector.collect_historical_data(team_id, months_back)
        points = self.collector.clean_data(raw)
        if not points:
            raise InsufficientDataError(
                f"No usable history for team {team_id}",
                required=1,
                available=0
            )

        roster = {m.id: m.name for m in await self.collector.store.get_team_members(team_id)}

        velocity = self.velocity_metrics(points)
        utilization = self.utilization_metrics(points)
        stability = self.stability_metrics(points, roster)
        efficiency = self.efficiency_metrics(points)
        quality = self.quality_metrics()
        predictive = self.predictive_metrics(points, roster)
        overall = self.overall_score(velocity, utilization, stability, efficiency, quality)

        today = self._today()
        performance = TeamPerformanceMetrics(
            team_id=team.id,
            team_name=team.name,
            period_start=months_before(today, months_back),
            period_end=today,
            sprints_analyzed=len(group_by_sprint(points)),
            velocity=velocity,
            utilization=utilization,
            stability=stability,
            efficiency=efficiency,
            quality=quality,
            predictive=predictive,
            overall=overall,
            recommendations=self.recommendations(velocity, utilization, stability, efficiency),
            trends=PerformanceTrends(
                velocity=trend_data(sprint_capacities(points)),
                utilization=trend_data(sprint_utilizations(points)),
                stability=trend_data(stability.retention_by_transition)
            )
        )
        self.cache.set(key, performance)
        return performance

    def velocity_metrics(self, points: Sequence[HistoricalDataPoint]) -> VelocityMetrics:
        history = [
            SprintVelocity(
                sprint_number=number,
                start_date=min(p.date for p in sprint),
                velocity=sum(p.actual_hours for p in sprint),
                utilization=mean([p.utilization for p in sprint]),
                team_size=len({p.member_id for p in sprint})
            )
            for number, sprint in group_by_sprint(points).items()
        ]
        velocities = [s.velocity for s in history]
        average = mean(velocities)
        variability = std_dev(velocities) / average if average > 0 else 0.0

        if len(velocities) >= 2:
            model = LinearRegressionModel().train(velocities)
            forecast = model.predict(1)
            trend = trend_label(model.slope, threshold=5)
            next_value, lower, upper = forecast.predictions[0], forecast.lower[0], forecast.upper[0]
            accuracy = forecast.confidence
        else:
            trend = Trend.STABLE
            next_value = lower = upper = velocities[-1]
            accuracy = 0.0

        return VelocityMetrics(
            current_velocity=velocities[-1],
            average_velocity=average,
            velocity_trend=trend,
            velocity_variability=variability,
            velocity_consistency=max(0.0, 1 - variability),
            history=history,
            forecast_next=next_value,
            forecast_lower=lower,
            forecast_upper=upper,
            forecast_accuracy=accuracy
        )

    def utilization_metrics(self, points: Sequence[HistoricalDataPoint]) -> UtilizationMetrics:
        utilizations = [p.utilization for p in points]
        per_sprint = sprint_utilizations(points)
        average = mean(utilizations)

        slope = linear_slope(per_sprint[-6:])
        if slope > 2:
            trend = "improving"
        elif slope < -2:
            trend = "declining"
        else:
            trend = "stable"

        distribution = []
        for label, low, high, status in UTILIZATION_BUCKETS:
            count = sum(1 for u in utilizations if low <= u < high)
            distribution.append(UtilizationBucket(
                range_label=label,
                count=count,
                percentage=count / len(utilizations) * 100,
                status=status
            ))

        optimal = next(b for b in distribution if b.status == "optimal")
        return UtilizationMetrics(
            current_utilization=per_sprint[-1],
            average_utilization=average,
            utilization_trend=trend,
            peak_utilization=max(utilizations),
            minimum_utilization=min(utilizations),
            utilization_variability=std_dev(utilizations) / average if average > 0 else 0.0,
            distribution=distribution,
            capacity_efficiency=optimal.count / len(utilizations)
        )

    def stability_metrics(
        self,
        points: Sequence[HistoricalDataPoint],
        roster: dict[int, str]
    ) -> StabilityMetrics:
        sprints = group_by_sprint(points)
        rosters = [(number, {p.member_id for p in sprint}) for number, sprint in sprints.items()]
        all_members = {p.member_id for p in points}

        retention = []
        changes = []
        for (_, previous), (number, current) in zip(rosters, rosters[1:]):
            retention.append(len(previous & current) / max(len(previous), 1))
            for member_id in sorted(current - previous):
                changes.append(MembershipChange(
                    number, "addition", member_id,
                    roster.get(member_id, f"Member {member_id}"), ADDITION_IMPACT
                ))
            for member_id in sorted(previous - current):
                changes.append(MembershipChange(
                    number, "removal", member_id,
                    roster.get(member_id, f"Member {member_id}"), REMOVAL_IMPACT
                ))

        score = mean(retention) if retention else 1.0
        removals = sum(1 for c in changes if c.change_type == "removal")

        # Sprints cover about two weeks each; annualize over the observed span
        months_observed = max(1.0, len(rosters) * 2 / 4.33)
        turnover_rate = removals / len(all_members) * (12 / months_observed) * 100

        slope = linear_slope(retention)
        if slope > 0.02:
            trend = "improving"
        elif slope < -0.02:
            trend = "declining"
        else:
            trend = "stable"

        if score < 0.7:
            risk = "high"
        elif score < 0.85:
            risk = "medium"
        else:
            risk = "low"

        return StabilityMetrics(
            team_stability_score=score,
            member_retention_rate=(len(all_members) - removals) / len(all_members) * 100,
            turnover_rate=turnover_rate,
            stability_trend=trend,
            membership_changes=changes,
            stability_risk=risk,
            retention_by_transition=retention
        )

    def efficiency_metrics(self, points: Sequence[HistoricalDataPoint]) -> EfficiencyMetrics:
        def accuracy(point: HistoricalDataPoint) -> float:
            if point.planned_hours == 0:
                return 1.0
            high = max(point.actual_hours, point.planned_hours)
            return min(point.actual_hours, point.planned_hours) / high

        planning_accuracy = mean([accuracy(p) for p in points])
        resource_utilization = min(1.0, mean([p.utilization for p in points]) / 100)

        recent = mean([accuracy(p) for p in points[-6:]])
        if recent > planning_accuracy * 1.05:
            trend = "improving"
        elif recent < planning_accuracy * 0.95:
            trend = "declining"
        else:
            trend = "stable"

        bottlenecks = []
        if planning_accuracy < 0.7:
            bottlenecks.append(EfficiencyBottleneck(
                category="planning",
                severity="high",
                description="Significant variance between planned and actual hours",
                impact=(1 - planning_accuracy) * 25,
                recommendations=[
                    "Improve estimation techniques",
                    "Use historical data for planning",
                    "Break down tasks into smaller units"
                ]
            ))
        if resource_utilization < 0.8:
            bottlenecks.append(EfficiencyBottleneck(
                category="execution",
                severity="medium",
                description="Suboptimal resource utilization",
                impact=(0.8 - resource_utilization) * 20,
                recommendations=[
                    "Optimize work distribution",
                    "Address capacity constraints",
                    "Improve workload balancing"
                ]
            ))

        overall = mean([
            planning_accuracy,
            DELIVERY_CONSISTENCY_PLACEHOLDER,
            resource_utilization,
            PROCESS_EFFICIENCY_PLACEHOLDER,
        ])
        return EfficiencyMetrics(
            overall_efficiency=overall,
            planning_accuracy=planning_accuracy,
            delivery_consistency=DELIVERY_CONSISTENCY_PLACEHOLDER,
            resource_utilization=resource_utilization,
            process_efficiency=PROCESS_EFFICIENCY_PLACEHOLDER,
            waste_factor=1 - PROCESS_EFFICIENCY_PLACEHOLDER,
            efficiency_trend=trend,
            bottlenecks=bottlenecks
        )

    def quality_metrics(self) -> QualityMetrics:
        q = QUALITY_PLACEHOLDERS

        def status(value: float, benchmark: float, good: float) -> str:
            if value >= benchmark:
                return "excellent"
            if value >= good:
                return "good"
            return "needs_improvement"

        indicators = [
            QualityIndicator(
                "Delivery Quality", q["delivery_quality"], 0.90,
                status(q["delivery_quality"], 0.90, 0.80),
                "Affects customer satisfaction and product reliability"
            ),
            QualityIndicator(
                "Estimation Accuracy", q["estimation_accuracy"], 0.85,
                status(q["estimation_accuracy"], 0.85, 0.75),
                "Critical for sprint planning and delivery predictability"
            ),
            QualityIndicator(
                "Commitment Reliability", q["commitment_reliability"], 0.90,
                status(q["commitment_reliability"], 0.90, 0.80),
                "Impacts stakeholder trust and project predictability"
            ),
        ]
        return QualityMetrics(
            delivery_quality=q["delivery_quality"],
            estimation_accuracy=q["estimation_accuracy"],
            commitment_reliability=q["commitment_reliability"],
            defect_rate=q["defect_rate"],
            rework_rate=q["rework_rate"],
            customer_satisfaction=q["customer_satisfaction"],
            indicators=indicators
        )

    def predictive_metrics(
        self,
        points: Sequence[HistoricalDataPoint],
        roster: dict[int, str]
    ) -> PredictiveMetrics:
        recent = mean(sprint_utilizations(points)[-3:])
        if recent > 95:
            team_risk = 0.8
        elif recent > 85:
            team_risk = 0.4
        elif recent < 60:
            team_risk = 0.3
        else:
            team_risk = 0.1

        individual = []
        for member_id in sorted({p.member_id for p in points}):
            member_recent = [p.utilization for p in points if p.member_id == member_id][-3:]
            risk = min(1.0, mean(member_recent) / 150) * 0.6 + team_risk * 0.4
            individual.append(IndividualRisk(
                member_id, roster.get(member_id, f"Member {member_id}"), min(1.0, risk)
            ))

        if team_risk > 0.6:
            time_to_action = 14
        elif team_risk > 0.4:
            time_to_action = 30
        else:
            time_to_action = 90

        capacities = sprint_capacities(points)
        forecast = MovingAverageModel().forecast(capacities, steps=3, window=3)

        delivery_risk = team_risk * 0.4 + (1 - forecast.confidence) * 0.6
        quality_risk = delivery_risk * 0.8
        overall_risk = (delivery_risk + quality_risk + team_risk) / 3
        if overall_risk > 0.7:
            priority = "critical"
        elif overall_risk > 0.5:
            priority = "high"
        elif overall_risk > 0.3:
            priority = "medium"
        else:
            priority = "low"

        return PredictiveMetrics(
            team_burnout_risk=team_risk,
            individual_risks=individual,
            time_to_action_days=time_to_action,
            capacity_forecast=forecast.predictions,
            forecast_confidence=forecast.confidence,
            delivery_risk=delivery_risk,
            quality_risk=quality_risk,
            team_risk=team_risk,
            overall_risk=overall_risk,
            mitigation_priority=priority
        )

    def overall_score(
        self,
        velocity: VelocityMetrics,
        utilization: UtilizationMetrics,
        stability: StabilityMetrics,
        efficiency: EfficiencyMetrics,
        quality: QualityMetrics
    ) -> OverallPerformanceScore:
        breakdown = {
            "velocity": min(100.0, velocity.velocity_consistency * 100),
            "utilization": min(100.0, utilization.capacity_efficiency * 100),
            "stability": min(100.0, stability.team_stability_score * 100),
            "efficiency": min(100.0, efficiency.overall_efficiency * 100),
            "quality": min(100.0, quality.delivery_quality * 100),
        }
        composite = sum(breakdown[k] * w for k, w in SCORE_WEIGHTS.items())
        return OverallPerformanceScore(
            composite=round_half_up(composite),
            category=performance_category(composite),
            breakdown=breakdown,
            improvement_potential=(100 - composite) / 100
        )

    def recommendations(
        self,
        velocity: VelocityMetrics,
        utilization: UtilizationMetrics,
        stability: StabilityMetrics,
        efficiency: EfficiencyMetrics
    ) -> list[PerformanceRecommendation]:
        recommendations = []
        if velocity.velocity_consistency < 0.7:
            recommendations.append(PerformanceRecommendation(
                category="velocity",
                priority="high",
                title="Improve Velocity Consistency",
                description=(
                    "Team velocity shows high variability. Focus on consistent "
                    "sprint planning and scope management."
                ),
                expected_impact=0.2,
                time_to_implement="2-3 sprints",
                effort="medium",
                success_metrics=[
                    "Velocity coefficient of variation < 0.3",
                    "Sprint goal achievement > 85%"
                ]
            ))
        if utilization.capacity_efficiency < 0.8:
            recommendations.append(PerformanceRecommendation(
                category="utilization",
                priority="medium",
                title="Optimize Capacity Utilization",
                description=(
                    "Team is operating outside optimal utilization range. "
                    "Adjust capacity planning."
                ),
                expected_impact=0.15,
                time_to_implement="1-2 sprints",
                effort="low",
                success_metrics=["Utilization consistently between 80-95%"]
            ))
        if stability.stability_risk == "high":
            recommendations.append(PerformanceRecommendation(
                category="stability",
                priority="high",
                title="Stabilize Team Membership",
                description="Frequent roster changes between sprints are reducing continuity.",
                expected_impact=0.15,
                time_to_implement="1-2 months",
                effort="medium",
                success_metrics=["Sprint-over-sprint retention above 85%"]
            ))
        if efficiency.planning_accuracy < 0.7:
            recommendations.append(PerformanceRecommendation(
                category="efficiency",
                priority="medium",
                title="Improve Planning Accuracy",
                description="Actual hours diverge from planned hours by a wide margin.",
                expected_impact=0.1,
                time_to_implement="2-3 sprints",
                effort="low",
                success_metrics=["Planning accuracy above 0.8"]
            ))
        return recommendations

    async def _team_or_none(
        self,
        team_id: int,
        months_back: int
    ) -> Optional[TeamPerformanceMetrics]:
        try:
            return await self.calculate_team_performance(team_id, months_back)
        except InsufficientDataError as e:
            logger.info("team_performance_skipped", team_id=team_id, reason=str(e))
            return None

    async def calculate_company_performance(self, months_back: int = 6) -> CompanyPerformanceMetrics:
        """Per-team performance gathered concurrently; teams without history are skipped."""
        teams = await self.collector.store.get_teams()
        results = await asyncio.gather(
            *(self._team_or_none(team.id, months_back) for team in teams)
        )

        performances = [r for r in results if r is not None]
        skipped = [team.id for team, r in zip(teams, results) if r is None]
        today = self._today()

        return CompanyPerformanceMetrics(
            period_start=months_before(today, months_back),
            period_end=today,
            teams=performances,
            comparisons=self.team_comparisons(performances),
            distribution=self.performance_distribution(performances),
            average_velocity=mean([p.velocity.average_velocity for p in performances]),
            average_utilization=mean([p.utilization.average_utilization for p in performances]),
            average_stability=mean([p.stability.team_stability_score for p in performances]),
            average_efficiency=mean([p.efficiency.overall_efficiency for p in performances]),
            overall_score=mean([p.overall.composite for p in performances]),
            skipped_teams=skipped
        )

    @staticmethod
    def performance_distribution(performances: Sequence[TeamPerformanceMetrics]) -> dict[str, float]:
        categories = ["excellent", "good", "satisfactory", "needs_improvement", "poor"]
        if not performances:
            return {c: 0.0 for c in categories}
        return {
            c: sum(1 for p in performances if p.overall.category == c) / len(performances) * 100
            for c in categories
        }

    @staticmethod
    def team_comparisons(performances: Sequence[TeamPerformanceMetrics]) -> list[TeamComparison]:
        if not performances:
            return []

        company_average = mean([p.overall.composite for p in performances])
        family_average = {
            family: mean([p.overall.breakdown[family] for p in performances])
            for family in SCORE_WEIGHTS
        }

        ranked = sorted(performances, key=lambda p: p.overall.composite, reverse=True)
        comparisons = []
        for rank, performance in enumerate(ranked, start=1):
            composite = performance.overall.composite
            lower = sum(1 for p in performances if p.overall.composite < composite)
            percentile = lower / (len(performances) - 1) * 100 if len(performances) > 1 else 100.0

            if company_average:
                relative = max(-1.0, min(1.0, (composite - company_average) / company_average))
            else:
                relative = 0.0

            breakdown = performance.overall.breakdown
            comparisons.append(TeamComparison(
                team_id=performance.team_id,
                team_name=performance.team_name,
                composite=composite,
                rank=rank,
                percentile=percentile,
                relative_performance=relative,
                strengths=[
                    f"Above-average {family}" for family in SCORE_WEIGHTS
                    if breakdown[family] >= family_average[family] + 5
                ],
                weaknesses=[
                    f"Below-average {family}" for family in SCORE_WEIGHTS
                    if breakdown[family] <= family_average[family] - 5
                ]
            ))
        return comparisons
