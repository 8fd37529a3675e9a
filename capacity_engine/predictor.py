"""
Predictive Analytics Engine

Forecasts sprint capacity, assesses member burnout risk, sizes teams for
projects and simulates backlog delivery dates.
"""

import math
import random
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Callable, Iterable, Optional, Sequence

from .cache import TTLCache
from .collector import (
    DataCollector,
    HistoricalDataPoint,
    group_by_sprint,
    sprint_capacities,
    sprint_utilizations,
    team_stability
)
from .errors import InsufficientDataError, ValidationError
from .hours import (
    DEFAULT_WORK_DAYS,
    HOURS_PER_DAY,
    MEMBER_WEEKLY_POTENTIAL,
    WORK_DAYS_PER_WEEK,
    add_working_days,
    round_half_up
)
from .log import get_logger
from .stat_models import (
    ForecastResult,
    LinearRegressionModel,
    MovingAverageModel,
    SeasonalDecompositionModel,
    linear_slope,
    mean,
    std_dev,
    trend_label,
    variance
)

logger = get_logger(__name__)


MIN_FORECAST_SPRINTS = 3
MIN_BURNOUT_POINTS = 5
ENSEMBLE_WEIGHTS = (0.4, 0.4, 0.2)  # linear, seasonal, moving average
SEASONAL_PERIOD = 4

BURNOUT_WEIGHTS = {
    "workload_trend": 0.30,
    "consistency_score": 0.20,
    "overtime_pattern": 0.25,
    "vacation_frequency": 0.15,
    "team_stability_impact": 0.10,
}

MIN_TEAM_SIZE = 2
MAX_TEAM_SIZE = 12
COST_PER_ADDED_MEMBER = 120000
SAVINGS_PER_REMOVED_MEMBER = 10000

MIN_SIMULATION_ITERATIONS = 1000


class RiskLevel(Enum):
    """Risk level."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


def categorize_risk_level(score: float) -> RiskLevel:
    if score < 0.3:
        return RiskLevel.LOW
    if score < 0.6:
        return RiskLevel.MEDIUM
    if score < 0.85:
        return RiskLevel.HIGH
    return RiskLevel.CRITICAL


@dataclass
class SprintCapacityPrediction:
    """Forecast for one upcoming sprint."""
    sprints_ahead: int
    predicted_capacity: float
    lower: float
    upper: float
    confidence: float
    risk_factors: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "sprints_ahead": self.sprints_ahead,
            "predicted_capacity": round(self.predicted_capacity, 1),
            "confidence_interval": {
                "lower": round(self.lower, 1),
                "upper": round(self.upper, 1)
            },
            "confidence": round(self.confidence, 2),
            "risk_factors": self.risk_factors,
            "recommendations": self.recommendations
        }


@dataclass
class CapacityForecast:
    """Sprint capacity forecasts for a team."""
    team_id: int
    forecasts: list[SprintCapacityPrediction]
    ensemble: ForecastResult
    confidence: float
    based_on_sprints: int
    generated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "team_id": self.team_id,
            "forecasts": [f.to_dict() for f in self.forecasts],
            "ensemble": self.ensemble.to_dict(),
            "confidence": round(self.confidence, 2),
            "based_on_sprints": self.based_on_sprints,
            "generated_at": self.generated_at.isoformat()
        }


@dataclass
class ForecastOutcome:
    """A capacity forecast, or the reason there is none."""
    team_id: int
    forecast: Optional[CapacityForecast] = None
    error: Optional[InsufficientDataError] = None

    @property
    def ok(self) -> bool:
        return self.forecast is not None

    def to_dict(self) -> dict:
        if self.ok:
            return {"ok": True, "forecast": self.forecast.to_dict()}
        return {
            "ok": False,
            "team_id": self.team_id,
            "error": self.error.code,
            "message": str(self.error),
            "required": self.error.required,
            "available": self.error.available
        }


@dataclass
class BurnoutFactors:
    """Normalized burnout inputs in [0, 1]."""
    workload_trend: float = 0.0
    consistency_score: float = 0.5
    overtime_pattern: float = 0.0
    vacation_frequency: float = 0.5
    team_stability_impact: float = 0.0

    def risk_score(self) -> float:
        score = (
            self.workload_trend * BURNOUT_WEIGHTS["workload_trend"]
            + (1 - self.consistency_score) * BURNOUT_WEIGHTS["consistency_score"]
            + self.overtime_pattern * BURNOUT_WEIGHTS["overtime_pattern"]
            + (1 - self.vacation_frequency) * BURNOUT_WEIGHTS["vacation_frequency"]
            + (1 - self.team_stability_impact) * BURNOUT_WEIGHTS["team_stability_impact"]
        )
        return max(0.0, min(1.0, score))

    def to_dict(self) -> dict:
        return {
            "workload_trend": round(self.workload_trend, 3),
            "consistency_score": round(self.consistency_score, 3),
            "overtime_pattern": round(self.overtime_pattern, 3),
            "vacation_frequency": round(self.vacation_frequency, 3),
            "team_stability_impact": round(self.team_stability_impact, 3)
        }


@dataclass
class BurnoutRiskAssessment:
    """Burnout risk for one member."""
    member_id: int
    member_name: str
    risk_level: RiskLevel
    risk_score: float
    factors: BurnoutFactors
    burnout_probability: float
    time_to_risk_days: int
    intervention_window_days: int
    recommendations: list[str] = field(default_factory=list)
    confidence: float = 0.0

    def to_dict(self) -> dict:
        return {
            "member_id": self.member_id,
            "member_name": self.member_name,
            "risk_level": self.risk_level.value,
            "risk_score": round(self.risk_score, 3),
            "factors": self.factors.to_dict(),
            "predictions": {
                "burnout_probability": round(self.burnout_probability, 3),
                "time_to_risk_days": self.time_to_risk_days,
                "intervention_window_days": self.intervention_window_days
            },
            "recommendations": self.recommendations,
            "confidence": self.confidence
        }


class ProjectComplexity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Team size, weekly hours per member, velocity multiplier
COMPLEXITY_BENCHMARKS = {
    ProjectComplexity.LOW: (3, MEMBER_WEEKLY_POTENTIAL, 1.2),
    ProjectComplexity.MEDIUM: (5, MEMBER_WEEKLY_POTENTIAL, 1.0),
    ProjectComplexity.HIGH: (8, MEMBER_WEEKLY_POTENTIAL, 0.8),
}


@dataclass
class ProjectRequirements:
    """Inputs for team sizing."""
    estimated_hours: float
    complexity: ProjectComplexity = ProjectComplexity.MEDIUM
    skill_requirements: list[str] = field(default_factory=list)
    deadline: Optional[date] = None
    critical_path: bool = False
    planning_weeks: int = 8


@dataclass
class TeamSizeImpact:
    """Expected effect of the recommended size, in percent."""
    velocity_improvement: int
    utilization_optimization: int
    delivery_time_reduction: int
    risk_reduction: int

    def to_dict(self) -> dict:
        return {
            "velocity_improvement": self.velocity_improvement,
            "utilization_optimization": self.utilization_optimization,
            "delivery_time_reduction": self.delivery_time_reduction,
            "risk_reduction": self.risk_reduction
        }


@dataclass
class ImplementationPlan:
    """How to get from the current size to the recommended one."""
    priority: str  # "low", "medium", "high"
    timeline: str
    recruitment_strategy: list[str]
    budget_impact: int

    def to_dict(self) -> dict:
        return {
            "priority": self.priority,
            "timeline": self.timeline,
            "recruitment_strategy": self.recruitment_strategy,
            "budget_impact": self.budget_impact
        }


@dataclass
class TeamSizeRecommendation:
    """Recommended team size and the estimates behind it."""
    current_size: int
    recommended_size: int
    workload_based_size: int
    complexity_based_size: int
    benchmark_based_size: int
    reasoning: list[str]
    impact: TeamSizeImpact
    plan: ImplementationPlan

    def to_dict(self) -> dict:
        return {
            "current_size": self.current_size,
            "recommended_size": self.recommended_size,
            "estimates": {
                "workload_based": self.workload_based_size,
                "complexity_based": self.complexity_based_size,
                "benchmark_based": self.benchmark_based_size
            },
            "reasoning": self.reasoning,
            "impact_analysis": self.impact.to_dict(),
            "implementation_plan": self.plan.to_dict()
        }


class ItemPriority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class BacklogItem:
    """A unit of work to deliver."""
    id: str
    title: str
    estimated_hours: float
    priority: ItemPriority = ItemPriority.MEDIUM
    dependencies: list[str] = field(default_factory=list)
    complexity: int = 5  # 1-10
    skills_required: list[str] = field(default_factory=list)

    @property
    def complexity_band(self) -> str:
        if self.complexity <= 3:
            return "low"
        if self.complexity <= 7:
            return "medium"
        return "high"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "estimated_hours": self.estimated_hours,
            "priority": self.priority.value,
            "dependencies": self.dependencies,
            "complexity": self.complexity,
            "skills_required": self.skills_required
        }


@dataclass
class VelocityProfile:
    """Team delivery rate in hours per week."""
    avg_velocity: float = 40.0
    std_dev: float = 8.0
    seasonal_factors: tuple[float, ...] = (1.0, 0.9, 1.1, 0.95)
    minimum: float = 10.0
    source: str = "default"

    # Applied as velocity multipliers, so item hours are divided by them
    complexity_multipliers = {"low": 1.2, "medium": 1.0, "high": 0.7}

    def to_dict(self) -> dict:
        return {
            "avg_velocity": round(self.avg_velocity, 1),
            "std_dev": round(self.std_dev, 1),
            "seasonal_factors": list(self.seasonal_factors),
            "source": self.source
        }


@dataclass
class DatePrediction:
    date: date
    confidence: float
    working_days: float

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "confidence": self.confidence,
            "working_days": round(self.working_days, 1)
        }


@dataclass
class ResourceRequirements:
    total_hours: float
    estimated_weeks: int
    peak_capacity: int
    skills_gaps: list[str]
    skill_distribution: dict[str, int]
    team_composition: dict[str, int]

    def to_dict(self) -> dict:
        return {
            "total_hours": self.total_hours,
            "estimated_weeks": self.estimated_weeks,
            "peak_capacity": self.peak_capacity,
            "skills_gaps": self.skills_gaps,
            "skill_distribution": self.skill_distribution,
            "recommended_team_composition": self.team_composition
        }


@dataclass
class DeliveryPrediction:
    """Monte Carlo delivery dates for a backlog."""
    items: list[BacklogItem]
    optimistic: DatePrediction
    realistic: DatePrediction
    pessimistic: DatePrediction
    risk_factors: list[str]
    mitigation_strategies: list[str]
    resources: ResourceRequirements
    velocity: VelocityProfile
    iterations: int

    def to_dict(self) -> dict:
        return {
            "items": [item.to_dict() for item in self.items],
            "predictions": {
                "optimistic": self.optimistic.to_dict(),
                "realistic": self.realistic.to_dict(),
                "pessimistic": self.pessimistic.to_dict()
            },
            "risk_factors": self.risk_factors,
            "mitigation_strategies": self.mitigation_strategies,
            "resource_requirements": self.resources.to_dict(),
            "velocity": self.velocity.to_dict(),
            "iterations": self.iterations
        }


class PredictiveAnalyticsEngine:
    """
    Capacity forecasting, burnout assessment, team sizing and delivery
    prediction on top of the collected history.

    Usage:
        engine = PredictiveAnalyticsEngine(collector)
        forecast = await engine.forecast_sprint_capacity(team_id=1)
        risk = await engine.assess_burnout_risk(member_id=10)
    """

    def __init__(
        self,
        collector: DataCollector,
        cache: Optional[TTLCache] = None,
        rng: Optional[random.Random] = None,
        work_days: Iterable[int] = DEFAULT_WORK_DAYS,
        today: Callable[[], date] = date.today
    ):
        self.collector = collector
        self.cache = cache or TTLCache(ttl_seconds=600)
        self.rng = rng or random.Random()
        self.work_days = frozenset(work_days)
        self._today = today

    async def _team_history(self, team_id: int, months_back: int) -> list[HistoricalDataPoint]:
        raw = await self.collector.collect_historical_data(team_id, months_back)
        return self.collector.clean_data(raw)

    # Capacity forecasting

    async def forecast_sprint_capacity(
        self,
        team_id: int,
        sprints_ahead: int = 4
    ) -> CapacityForecast:
        """
        Forecast total team hours for the next sprints.

        Raises:
            InsufficientDataError: fewer than 3 sprints of history
        """
        key = ("forecast", team_id, sprints_ahead)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        points = await self._team_history(team_id, months_back=6)
        capacities = sprint_capacities(points)
        if len(capacities) < MIN_FORECAST_SPRINTS:
            raise InsufficientDataError(
                f"Team {team_id} has {len(capacities)} sprints of history, "
                f"{MIN_FORECAST_SPRINTS} required",
                required=MIN_FORECAST_SPRINTS,
                available=len(capacities)
            )

        steps = max(1, sprints_ahead)
        window = max(1, min(7, len(capacities) // 2))
        ensemble = self.ensemble_forecasts([
            LinearRegressionModel().train(capacities).predict(steps),
            self._seasonal_forecast(capacities, steps),
            MovingAverageModel().forecast(capacities, steps, window),
        ])

        spread = std_dev(capacities)
        average = mean(capacities)
        recent_utilization = sprint_utilizations(points)[-3:]

        forecasts = []
        for k, predicted in enumerate(ensemble.predictions, start=1):
            predicted = max(0.0, predicted)
            margin = 1.96 * spread * (1 + 0.1 * k)
            forecasts.append(SprintCapacityPrediction(
                sprints_ahead=k,
                predicted_capacity=predicted,
                lower=max(0.0, predicted - margin),
                upper=predicted + margin,
                confidence=max(0.1, 0.9 - 0.15 * k),
                risk_factors=self._capacity_risk_factors(recent_utilization, k),
                recommendations=self._capacity_recommendations(predicted, average)
            ))

        forecast = CapacityForecast(
            team_id=team_id,
            forecasts=forecasts,
            ensemble=ensemble,
            confidence=self.forecast_confidence(capacities),
            based_on_sprints=len(capacities)
        )
        self.cache.set(key, forecast)
        return forecast

    async def try_forecast_sprint_capacity(
        self,
        team_id: int,
        sprints_ahead: int = 4
    ) -> ForecastOutcome:
        """Like forecast_sprint_capacity, but reports missing history instead of raising."""
        try:
            forecast = await self.forecast_sprint_capacity(team_id, sprints_ahead)
        except InsufficientDataError as e:
            return ForecastOutcome(team_id=team_id, error=e)
        return ForecastOutcome(team_id=team_id, forecast=forecast)

    def _seasonal_forecast(self, data: Sequence[float], steps: int) -> ForecastResult:
        decomposed = SeasonalDecompositionModel().decompose(data, SEASONAL_PERIOD)
        trend = LinearRegressionModel().train(decomposed.trend).predict(steps)
        cycle = decomposed.seasonal[-SEASONAL_PERIOD:]

        offsets = [cycle[i % len(cycle)] for i in range(steps)]
        return ForecastResult(
            predictions=[p + o for p, o in zip(trend.predictions, offsets)],
            lower=[v + o for v, o in zip(trend.lower, offsets)],
            upper=[v + o for v, o in zip(trend.upper, offsets)],
            confidence=trend.confidence,
            trend=trend.trend,
            seasonal_adjusted=True
        )

    @staticmethod
    def ensemble_forecasts(
        forecasts: Sequence[ForecastResult],
        weights: Sequence[float] = ENSEMBLE_WEIGHTS
    ) -> ForecastResult:
        steps = len(forecasts[0].predictions)

        def combine(series: str) -> list[float]:
            return [
                sum(getattr(f, series)[i] * w for f, w in zip(forecasts, weights))
                for i in range(steps)
            ]

        predictions = combine("predictions")
        return ForecastResult(
            predictions=predictions,
            lower=combine("lower"),
            upper=combine("upper"),
            confidence=mean([f.confidence for f in forecasts]),
            trend=trend_label(linear_slope(predictions)),
            seasonal_adjusted=any(f.seasonal_adjusted for f in forecasts)
        )

    @staticmethod
    def forecast_confidence(history: Sequence[float]) -> float:
        """Holdout accuracy of the linear model, as 1 - MAPE clamped to [0.1, 0.95]."""
        holdout = min(3, math.floor(len(history) * 0.3))
        train = history[:len(history) - holdout]
        if holdout == 0 or len(train) < 2:
            return 0.5

        test = history[-holdout:]
        predicted = LinearRegressionModel().train(train).predict(holdout).predictions
        mape = sum(
            abs((actual - guess) / actual)
            for actual, guess in zip(test, predicted)
            if actual != 0
        ) / holdout
        return max(0.1, min(0.95, 1 - mape))

    @staticmethod
    def _capacity_risk_factors(recent_utilization: list[float], sprints_ahead: int) -> list[str]:
        factors = []
        avg = mean(recent_utilization)
        if avg > 90:
            factors.append("Team operating at high utilization - risk of burnout")
        if avg < 60:
            factors.append("Team underutilized - may indicate planning issues")
        if variance(recent_utilization) > 400:
            factors.append("High variability in team utilization - unpredictable capacity")
        if sprints_ahead > 2:
            factors.append("Long-term forecast - uncertainty increases with time")
        return factors

    @staticmethod
    def _capacity_recommendations(predicted: float, historical_average: float) -> list[str]:
        recommendations = []
        if predicted > historical_average * 1.1:
            recommendations.append("Predicted capacity is higher than average - verify assumptions")
        if predicted < historical_average * 0.9:
            recommendations.append("Predicted capacity is lower than average - consider interventions")
        recommendations.append("Monitor team velocity and adjust forecasts regularly")
        return recommendations

    # Burnout

    async def assess_burnout_risk(self, member_id: int) -> BurnoutRiskAssessment:
        """
        Burnout risk from the member's last 3 months.

        With fewer than 5 observations a low-confidence default is returned.
        """
        key = ("burnout", member_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        member = await self.collector.get_member(member_id)
        history = await self.collector.collect_member_history(member_id, months_back=3)

        if len(history) < MIN_BURNOUT_POINTS:
            return BurnoutRiskAssessment(
                member_id=member.id,
                member_name=member.name,
                risk_level=RiskLevel.LOW,
                risk_score=0.2,
                factors=BurnoutFactors(),
                burnout_probability=0.2,
                time_to_risk_days=180,
                intervention_window_days=90,
                recommendations=[
                    "Continue monitoring as more data becomes available",
                    "Ensure regular check-ins with team member"
                ],
                confidence=0.1
            )

        team_points = await self._team_history(member.team_id, months_back=3)
        factors = self.burnout_factors(history, team_stability(team_points))
        score = factors.risk_score()

        assessment = BurnoutRiskAssessment(
            member_id=member.id,
            member_name=member.name,
            risk_level=categorize_risk_level(score),
            risk_score=score,
            factors=factors,
            burnout_probability=1 / (1 + math.exp(-5 * (score - 0.5))),
            time_to_risk_days=self.time_to_risk(score, factors.workload_trend),
            intervention_window_days=max(3, math.floor(self.time_to_risk(score, 0) * 0.7)),
            recommendations=self._burnout_recommendations(factors),
            confidence=0.85 if len(history) >= 10 else 0.65
        )
        self.cache.set(key, assessment)
        return assessment

    @staticmethod
    def burnout_factors(
        history: Sequence[HistoricalDataPoint],
        stability: float
    ) -> BurnoutFactors:
        utilizations = [p.utilization for p in history]
        avg = mean(utilizations)
        n = len(history)

        # Slope in hours per sprint; one extra full day per sprint saturates the factor
        slope = linear_slope([p.actual_hours for p in history])

        return BurnoutFactors(
            workload_trend=max(0.0, min(1.0, slope / HOURS_PER_DAY)),
            consistency_score=max(0.0, 1 - std_dev(utilizations) / avg) if avg else 0.0,
            overtime_pattern=sum(1 for u in utilizations if u > 110) / n,
            vacation_frequency=sum(1 for u in utilizations if u < 20) / n,
            team_stability_impact=stability
        )

    @staticmethod
    def time_to_risk(score: float, workload_trend: float) -> int:
        """Days until the risk becomes critical."""
        if score < 0.3:
            return 365
        if score > 0.8:
            return 7

        base = 180 * (1 - score)
        adjustment = -base * 0.3 if workload_trend > 0 else base * 0.2
        return int(max(7, min(365, base + adjustment)))

    @staticmethod
    def _burnout_recommendations(factors: BurnoutFactors) -> list[str]:
        recommendations = []
        if factors.workload_trend > 0.2:
            recommendations.append("Reduce workload or redistribute tasks to prevent burnout")
        if factors.consistency_score < 0.6:
            recommendations.append("Implement more consistent work scheduling")
        if factors.overtime_pattern > 0.3:
            recommendations.append("Address frequent overtime patterns")
        if factors.vacation_frequency < 0.1:
            recommendations.append("Encourage regular time off and vacation usage")
        return recommendations

    # Team sizing

    def calculate_optimal_team_size(
        self,
        requirements: ProjectRequirements,
        current_size: int = 0
    ) -> TeamSizeRecommendation:
        if requirements.estimated_hours < 0:
            raise ValidationError("estimated_hours must be non-negative")

        workload_size = math.ceil(
            requirements.estimated_hours
            / (MEMBER_WEEKLY_POTENTIAL * max(1, requirements.planning_weeks))
        )
        complexity_size = self._complexity_based_size(requirements)
        benchmark_size = self._benchmark_based_size(requirements)

        recommended = round_half_up(
            workload_size * 0.4 + complexity_size * 0.3 + benchmark_size * 0.3
        )
        recommended = max(MIN_TEAM_SIZE, min(MAX_TEAM_SIZE, recommended))

        return TeamSizeRecommendation(
            current_size=current_size,
            recommended_size=recommended,
            workload_based_size=workload_size,
            complexity_based_size=complexity_size,
            benchmark_based_size=benchmark_size,
            reasoning=self._team_size_reasoning(
                requirements, workload_size, complexity_size, benchmark_size, recommended
            ),
            impact=self._team_size_impact(recommended, requirements.complexity),
            plan=self._implementation_plan(recommended, current_size)
        )

    def _deadline_days(self, requirements: ProjectRequirements) -> Optional[int]:
        if requirements.deadline is None:
            return None
        return (requirements.deadline - self._today()).days

    def _complexity_based_size(self, requirements: ProjectRequirements) -> int:
        size = COMPLEXITY_BENCHMARKS[requirements.complexity][0]
        if len(requirements.skill_requirements) > 5:
            size += 1
        if requirements.critical_path:
            size += 1
        deadline_days = self._deadline_days(requirements)
        if deadline_days is not None and deadline_days < 60:
            size += 1
        return max(MIN_TEAM_SIZE, min(MAX_TEAM_SIZE, size))

    @staticmethod
    def _benchmark_based_size(requirements: ProjectRequirements) -> int:
        base, weekly_hours, _ = COMPLEXITY_BENCHMARKS[requirements.complexity]
        weeks = requirements.estimated_hours / (weekly_hours * base)
        if weeks > 26:
            return math.floor(base * 1.5)
        if weeks < 2:
            return max(1, math.floor(base * 0.5))
        return base

    @staticmethod
    def _team_size_impact(size: int, complexity: ProjectComplexity) -> TeamSizeImpact:
        optimal = 5
        efficiency_optimum = {
            ProjectComplexity.LOW: 3,
            ProjectComplexity.MEDIUM: 5,
            ProjectComplexity.HIGH: 7,
        }[complexity]
        efficiency = max(0.3, 1 - abs(size - efficiency_optimum) * 0.1)

        if size > optimal:
            velocity = max(-10, 25 - (size - optimal) * 3)
        else:
            velocity = min(30, size * 8)

        return TeamSizeImpact(
            velocity_improvement=round_half_up(velocity),
            utilization_optimization=round_half_up(efficiency * 20),
            delivery_time_reduction=round_half_up(max(0, 40 - abs(size - optimal) * 5)),
            risk_reduction=round_half_up(min(35, size * 7)) if size >= 3 else 0
        )

    @staticmethod
    def _implementation_plan(size: int, current_size: int) -> ImplementationPlan:
        difference = size - current_size
        if abs(difference) <= 1:
            priority, timeline, strategy = "low", "2-4 weeks", ["Internal reallocation"]
        elif abs(difference) <= 3:
            priority, timeline, strategy = "medium", "1-2 months", [
                "Internal transfer", "Contract hiring"
            ]
        else:
            priority, timeline, strategy = "high", "2-4 months", [
                "External hiring", "Team restructuring", "Skill development"
            ]

        if difference > 0:
            budget = difference * COST_PER_ADDED_MEMBER
        else:
            budget = difference * SAVINGS_PER_REMOVED_MEMBER

        return ImplementationPlan(
            priority=priority,
            timeline=timeline,
            recruitment_strategy=strategy,
            budget_impact=budget
        )

    def _team_size_reasoning(
        self,
        requirements: ProjectRequirements,
        workload_size: int,
        complexity_size: int,
        benchmark_size: int,
        recommended: int
    ) -> list[str]:
        reasoning = [
            f"Workload analysis suggests {workload_size} members for estimated hours",
            f"Complexity analysis recommends {complexity_size} members for "
            f"{requirements.complexity.value} complexity",
            f"Industry benchmarks indicate {benchmark_size} members for similar projects",
            f"Optimal size {recommended} balances efficiency and coordination overhead",
        ]
        if requirements.critical_path:
            reasoning.append(
                "Critical path project requires additional redundancy and parallel workstreams"
            )
        if len(requirements.skill_requirements) > 5:
            reasoning.append("Diverse skill requirements necessitate specialist team members")
        deadline_days = self._deadline_days(requirements)
        if deadline_days is not None and deadline_days < 60:
            reasoning.append("Tight deadline requires accelerated delivery with larger team")
        return reasoning

    # Delivery prediction

    async def velocity_profile(self, team_id: Optional[int] = None) -> VelocityProfile:
        """Weekly team velocity from history, or the default profile."""
        if team_id is None:
            return VelocityProfile()

        points = await self._team_history(team_id, months_back=6)
        weekly = []
        for sprint in group_by_sprint(points).values():
            weeks = sprint[0].planned_hours / MEMBER_WEEKLY_POTENTIAL
            if weeks > 0:
                weekly.append(sum(p.actual_hours for p in sprint) / weeks)

        if len(weekly) < 2:
            logger.info("default_velocity_profile", team_id=team_id, sprints=len(weekly))
            return VelocityProfile()

        if mean(weekly) < VelocityProfile.minimum:
            logger.warning(
                "default_velocity_profile",
                team_id=team_id,
                sprints=len(weekly),
                avg_velocity=mean(weekly)
            )
            return VelocityProfile()

        return VelocityProfile(
            avg_velocity=mean(weekly),
            std_dev=std_dev(weekly),
            source="history"
        )

    async def predict_delivery_date(
        self,
        items: Sequence[BacklogItem],
        team_id: Optional[int] = None,
        iterations: int = MIN_SIMULATION_ITERATIONS
    ) -> DeliveryPrediction:
        """
        Monte Carlo delivery dates for a backlog.

        P10, P50 and P90 of the simulated working days become the
        optimistic, realistic and pessimistic dates.
        """
        if not items:
            raise ValidationError("Backlog must contain at least one item")

        iterations = max(MIN_SIMULATION_ITERATIONS, iterations)
        profile = await self.velocity_profile(team_id)
        durations = sorted(self.simulate(items, profile, iterations))

        today = self._today()

        def percentile(p: float, confidence: float) -> DatePrediction:
            days = durations[math.floor(len(durations) * p)]
            return DatePrediction(
                date=add_working_days(today, days, self.work_days),
                confidence=confidence,
                working_days=days
            )

        risks = self._delivery_risks(items, profile)
        return DeliveryPrediction(
            items=list(items),
            optimistic=percentile(0.1, 0.9),
            realistic=percentile(0.5, 0.7),
            pessimistic=percentile(0.9, 0.9),
            risk_factors=list(risks.values()),
            mitigation_strategies=self._mitigation_strategies(risks),
            resources=self._resource_requirements(items),
            velocity=profile,
            iterations=iterations
        )

    def simulate(
        self,
        items: Sequence[BacklogItem],
        profile: VelocityProfile,
        iterations: int
    ) -> list[float]:
        """Simulated working days to finish the backlog, one per iteration."""
        results = []
        for _ in range(iterations):
            total_hours = 0.0
            for item in items:
                hours = item.estimated_hours / profile.complexity_multipliers[item.complexity_band]
                hours *= 1 + len(item.dependencies) * 0.1
                hours *= self.rng.uniform(0.8, 1.2)
                total_hours += hours

            seasonal = self.rng.choice(profile.seasonal_factors)
            velocity = max(
                profile.minimum,
                self.rng.gauss(profile.avg_velocity * seasonal, profile.std_dev)
            )
            days = total_hours / (velocity / WORK_DAYS_PER_WEEK)
            days *= self.rng.uniform(1.15, 1.25)  # planning, meetings, testing
            results.append(days)
        return results

    @staticmethod
    def _delivery_risks(
        items: Sequence[BacklogItem],
        profile: VelocityProfile
    ) -> dict[str, str]:
        risks = {}
        n = len(items)

        if mean([item.complexity for item in items]) > 7:
            risks["complexity"] = "High average complexity may significantly slow delivery"

        critical = sum(1 for item in items if item.priority is ItemPriority.CRITICAL)
        if critical > n * 0.3:
            risks["critical"] = "High number of critical items increases delivery pressure and risk"

        if sum(len(item.dependencies) for item in items) > n * 1.5:
            risks["dependency"] = "Complex dependency chains may cause delivery bottlenecks"

        if len({skill for item in items for skill in item.skills_required}) > 8:
            risks["skill"] = "Diverse skill requirements may strain available resources"

        total_hours = sum(item.estimated_hours for item in items)
        if total_hours / max(profile.avg_velocity, profile.minimum) > 12:
            risks["duration"] = (
                "Long project duration increases scope creep and requirement change risks"
            )

        urgent = sum(
            1 for item in items
            if item.priority in (ItemPriority.HIGH, ItemPriority.CRITICAL)
        )
        if urgent / n > 0.7:
            risks["priority"] = (
                "Most items marked as high priority may indicate unrealistic expectations"
            )
        return risks

    @staticmethod
    def _mitigation_strategies(risks: dict[str, str]) -> list[str]:
        strategies = [
            "Implement incremental delivery with regular stakeholder feedback",
            "Establish clear definition of done and quality gates",
        ]
        by_risk = {
            "complexity": [
                "Break down complex items into smaller, manageable tasks",
                "Allocate additional time for architecture and design phases",
            ],
            "critical": [
                "Prioritize critical items in early sprints to reduce late-stage risks",
                "Implement parallel development streams for critical components",
            ],
            "dependency": [
                "Create dependency roadmap and identify critical path items",
                "Establish clear interface contracts for dependent components",
            ],
            "skill": [
                "Cross-train team members on critical skills",
                "Consider bringing in specialist consultants for knowledge transfer",
            ],
            "duration": [
                "Implement regular scope reviews and reprioritization sessions",
                "Plan for milestone-based delivery with optional scope adjustments",
            ],
            "priority": [
                "Conduct stakeholder alignment sessions to clarify true priorities",
                "Implement MoSCoW prioritization method",
            ],
        }
        for risk in risks:
            strategies.extend(by_risk[risk])

        strategies.append("Build 15-20% buffer time for unexpected challenges")
        strategies.append("Implement weekly risk assessment and mitigation reviews")
        return strategies

    @staticmethod
    def _resource_requirements(items: Sequence[BacklogItem]) -> ResourceRequirements:
        total_hours = sum(item.estimated_hours for item in items)
        skills = sorted({skill for item in items for skill in item.skills_required})

        estimated_weeks = max(1, math.ceil(total_hours / MEMBER_WEEKLY_POTENTIAL))
        peak_capacity = math.ceil(total_hours / (estimated_weeks * HOURS_PER_DAY * WORK_DAYS_PER_WEEK))

        def matching(keywords: tuple[str, ...]) -> int:
            return sum(1 for s in skills if any(k in s.lower() for k in keywords))

        distribution = {
            "technical": matching(("javascript", "python", "java", "react", "node", "database")),
            "design": matching(("ui", "ux", "design", "figma")),
            "qa": matching(("testing", "qa", "automation")),
        }

        base_size = math.ceil(total_hours / (MEMBER_WEEKLY_POTENTIAL * 8))
        composition = {
            "developers": max(1, math.ceil(base_size * 0.6)),
            "designers": max(1, math.ceil(base_size * 0.2)) if distribution["design"] else 0,
            "qa_engineers": max(1, math.ceil(base_size * 0.2)),
            "specialists": math.ceil(distribution["technical"] / 3),
        }

        return ResourceRequirements(
            total_hours=total_hours,
            estimated_weeks=estimated_weeks,
            peak_capacity=peak_capacity,
            skills_gaps=[
                s for s in skills
                if any(k in s.lower() for k in ("specialized", "expert", "senior"))
            ],
            skill_distribution=distribution,
            team_composition=composition
        )
