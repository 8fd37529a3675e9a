"""
Alert & Insight Engine

Evaluates monitoring rules against processed team data, keeps the alert
registry (dedup, suppression, expiry, status transitions) and builds
periodic insight reports.
"""

import asyncio
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Callable, Iterable, Optional, Sequence

from .cache import TTLCache
from .collector import (
    DataCollector,
    HistoricalDataPoint,
    ProcessedTeamData,
    sprint_capacities,
    sprint_utilizations
)
from .errors import NotFoundError, ValidationError
from .log import get_logger
from .performance import (
    SCORE_WEIGHTS,
    PerformanceMetricsAggregator,
    TeamPerformanceMetrics,
    trend_data
)
from .predictor import PredictiveAnalyticsEngine, RiskLevel
from .stat_models import AnomalyDetector, AnomalySeverity, Trend, linear_slope, mean, trend_label

logger = get_logger(__name__)


class AlertType(Enum):
    CAPACITY_WARNING = "capacity_warning"
    BURNOUT_RISK = "burnout_risk"
    PERFORMANCE_DECLINE = "performance_decline"
    ANOMALY_DETECTED = "anomaly_detected"
    RESOURCE_SHORTAGE = "resource_shortage"
    DELIVERY_RISK = "delivery_risk"
    TEAM_INSTABILITY = "team_instability"
    QUALITY_DEGRADATION = "quality_degradation"
    PLANNING_INACCURACY = "planning_inaccuracy"
    UTILIZATION_IMBALANCE = "utilization_imbalance"


EXPIRATION_HOURS = {
    AlertType.CAPACITY_WARNING: 168,
    AlertType.BURNOUT_RISK: 72,
    AlertType.PERFORMANCE_DECLINE: 336,
    AlertType.ANOMALY_DETECTED: 48,
    AlertType.RESOURCE_SHORTAGE: 168,
    AlertType.DELIVERY_RISK: 120,
    AlertType.TEAM_INSTABILITY: 240,
    AlertType.QUALITY_DEGRADATION: 120,
    AlertType.PLANNING_INACCURACY: 72,
    AlertType.UTILIZATION_IMBALANCE: 168,
}


class Severity(Enum):
    INFO = "info"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return list(Severity).index(self)


class Category(Enum):
    CAPACITY = "capacity"
    PERFORMANCE = "performance"
    TEAM_HEALTH = "team_health"
    DELIVERY = "delivery"
    QUALITY = "quality"
    PLANNING = "planning"


class Status(Enum):
    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


OPEN_STATUSES = frozenset({Status.ACTIVE, Status.ACKNOWLEDGED, Status.IN_PROGRESS})

ALLOWED_TRANSITIONS = {
    Status.ACTIVE: {Status.ACKNOWLEDGED, Status.DISMISSED},
    Status.ACKNOWLEDGED: {Status.IN_PROGRESS, Status.RESOLVED},
    Status.IN_PROGRESS: {Status.RESOLVED},
}

DEFAULT_CONFIDENCE = 0.85
COMPANY_UTILIZATION_THRESHOLD = 90


@dataclass
class AffectedEntity:
    type: str  # "team", "member" or "company"
    id: int
    name: str

    def to_dict(self) -> dict:
        return {"type": self.type, "id": self.id, "name": self.name}


@dataclass
class AlertMetrics:
    current_value: float
    threshold: float
    historical_average: float
    trend: Trend
    deviation_percentage: float
    impact_score: float

    def to_dict(self) -> dict:
        return {
            "current_value": round(self.current_value, 3),
            "threshold": self.threshold,
            "historical_average": round(self.historical_average, 3),
            "trend": self.trend.value,
            "deviation_percentage": round(self.deviation_percentage, 1),
            "impact_score": self.impact_score
        }


@dataclass
class AlertRecommendation:
    priority: str  # "immediate", "short_term", "medium_term", "long_term"
    action: str
    rationale: str
    expected_impact: str
    estimated_effort: str
    time_to_implement: str
    success_criteria: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "priority": self.priority,
            "action": self.action,
            "rationale": self.rationale,
            "expected_impact": self.expected_impact,
            "estimated_effort": self.estimated_effort,
            "time_to_implement": self.time_to_implement,
            "success_criteria": self.success_criteria
        }


RECOMMENDATIONS = {
    AlertType.CAPACITY_WARNING: [AlertRecommendation(
        priority="immediate",
        action="Reduce sprint capacity by 15-20%",
        rationale="High utilization leads to burnout and quality issues",
        expected_impact="Improved team sustainability and quality",
        estimated_effort="low",
        time_to_implement="1 sprint",
        success_criteria=["Utilization below 95%", "Maintained velocity"]
    )],
    AlertType.BURNOUT_RISK: [AlertRecommendation(
        priority="immediate",
        action="Schedule immediate one-on-one with team member",
        rationale="Early intervention prevents burnout and turnover",
        expected_impact="Reduced burnout risk and improved retention",
        estimated_effort="low",
        time_to_implement="1 week",
        success_criteria=["Reduced stress indicators", "Improved work-life balance"]
    )],
    AlertType.PERFORMANCE_DECLINE: [AlertRecommendation(
        priority="short_term",
        action="Run a focused retrospective on recent sprints",
        rationale="Composite score fell below the acceptable band",
        expected_impact="Identified root causes for the decline",
        estimated_effort="medium",
        time_to_implement="1 sprint",
        success_criteria=["Composite score back above 70"]
    )],
    AlertType.ANOMALY_DETECTED: [AlertRecommendation(
        priority="short_term",
        action="Review recent schedule entries for errors or unplanned absences",
        rationale="Recent utilization is far outside the team's usual range",
        expected_impact="Confirmed or corrected data",
        estimated_effort="low",
        time_to_implement="2-3 days",
        success_criteria=["Anomaly explained or corrected"]
    )],
    AlertType.UTILIZATION_IMBALANCE: [AlertRecommendation(
        priority="medium_term",
        action="Redistribute work from the most to the least loaded members",
        rationale="Uneven load concentrates risk on a few people",
        expected_impact="Spread of member utilization below 30 points",
        estimated_effort="medium",
        time_to_implement="1-2 sprints",
        success_criteria=["Member utilization spread below 30"]
    )],
}


@dataclass
class EscalationStep:
    level: int
    trigger_condition: str
    escalate_to: list[str]
    time_delay_hours: int
    notification_method: str  # "email", "slack", "dashboard", "all"

    def to_dict(self) -> dict:
        return {
            "level": self.level,
            "trigger_condition": self.trigger_condition,
            "escalate_to": self.escalate_to,
            "time_delay_hours": self.time_delay_hours,
            "notification_method": self.notification_method
        }


ESCALATION_PATHS = {
    Severity.INFO: [],
    Severity.LOW: [
        EscalationStep(1, "24 hours without acknowledgment", ["team_lead"], 24, "email"),
    ],
    Severity.MEDIUM: [
        EscalationStep(1, "4 hours without acknowledgment", ["team_lead"], 4, "email"),
        EscalationStep(2, "12 hours without resolution", ["department_manager"], 12, "all"),
    ],
    Severity.HIGH: [
        EscalationStep(
            1, "1 hour without acknowledgment", ["team_lead", "department_manager"], 1, "all"
        ),
        EscalationStep(2, "4 hours without resolution", ["coo", "vp_engineering"], 4, "all"),
    ],
    Severity.CRITICAL: [
        EscalationStep(1, "Immediate", ["team_lead", "department_manager", "coo"], 0, "all"),
    ],
}


@dataclass
class AlertTransition:
    from_status: Optional[Status]
    to_status: Status
    actor: str
    at: datetime
    note: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "from": self.from_status.value if self.from_status else None,
            "to": self.to_status.value,
            "actor": self.actor,
            "at": self.at.isoformat(),
            "note": self.note
        }


@dataclass
class Alert:
    """A raised condition and its lifecycle."""
    id: str
    type: AlertType
    severity: Severity
    category: Category
    title: str
    description: str
    affected_entity: AffectedEntity
    metrics: AlertMetrics
    created_at: datetime
    timestamp: datetime
    expiration_date: datetime
    status: Status = Status.ACTIVE
    confidence: float = DEFAULT_CONFIDENCE
    recommendations: list[AlertRecommendation] = field(default_factory=list)
    escalation_path: list[EscalationStep] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    history: list[AlertTransition] = field(default_factory=list)

    @property
    def entity_key(self) -> tuple[AlertType, str, int]:
        return (self.type, self.affected_entity.type, self.affected_entity.id)

    def is_expired(self, now: datetime) -> bool:
        return self.expiration_date <= now

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "created_at": self.created_at.isoformat(),
            "type": self.type.value,
            "severity": self.severity.value,
            "category": self.category.value,
            "title": self.title,
            "description": self.description,
            "affected_entity": self.affected_entity.to_dict(),
            "metrics": self.metrics.to_dict(),
            "recommendations": [r.to_dict() for r in self.recommendations],
            "escalation_path": [s.to_dict() for s in self.escalation_path],
            "expiration_date": self.expiration_date.isoformat(),
            "status": self.status.value,
            "confidence": self.confidence,
            "tags": self.tags,
            "history": [h.to_dict() for h in self.history]
        }


@dataclass
class SuppressionRule:
    """Skip a new alert while a closed one for the same entity is recent."""
    condition: str  # "recently_resolved" or "recently_dismissed"
    duration_hours: float
    reason: str = ""

    CONDITIONS = {
        "recently_resolved": Status.RESOLVED,
        "recently_dismissed": Status.DISMISSED,
    }

    @classmethod
    def from_dict(cls, data: dict) -> "SuppressionRule":
        condition = data.get("condition")
        if condition not in cls.CONDITIONS:
            raise ValidationError(f"Unknown suppression condition: {condition!r}")
        return cls(
            condition=condition,
            duration_hours=float(data.get("duration_hours", 24)),
            reason=data.get("reason", "")
        )

    def matches(self, closed: Alert, now: datetime) -> bool:
        if closed.status is not self.CONDITIONS[self.condition] or not closed.history:
            return False
        return now - closed.history[-1].at < timedelta(hours=self.duration_hours)


@dataclass
class AlertConfiguration:
    type: AlertType
    enabled: bool = True
    thresholds: dict[str, float] = field(default_factory=dict)
    check_frequency_minutes: int = 60
    suppression_rules: list[SuppressionRule] = field(default_factory=list)

    def threshold(self, name: str, default: float) -> float:
        return float(self.thresholds.get(name, default))


DEFAULT_CONFIGURATIONS = {
    AlertType.CAPACITY_WARNING: AlertConfiguration(
        AlertType.CAPACITY_WARNING,
        thresholds={"utilization_threshold": 95, "company_threshold": COMPANY_UTILIZATION_THRESHOLD},
        check_frequency_minutes=60,
        suppression_rules=[SuppressionRule("recently_dismissed", 24, "Dismissed by a lead")]
    ),
    AlertType.BURNOUT_RISK: AlertConfiguration(
        AlertType.BURNOUT_RISK,
        thresholds={"risk_threshold": 0.7},
        check_frequency_minutes=180,
        suppression_rules=[SuppressionRule("recently_dismissed", 24, "Dismissed by a lead")]
    ),
    AlertType.PERFORMANCE_DECLINE: AlertConfiguration(
        AlertType.PERFORMANCE_DECLINE,
        thresholds={"score_threshold": 70},
        check_frequency_minutes=1440
    ),
    AlertType.ANOMALY_DETECTED: AlertConfiguration(
        AlertType.ANOMALY_DETECTED,
        check_frequency_minutes=60
    ),
    AlertType.UTILIZATION_IMBALANCE: AlertConfiguration(
        AlertType.UTILIZATION_IMBALANCE,
        thresholds={"imbalance_threshold": 30},
        check_frequency_minutes=240
    ),
}


def build_configurations(overrides: Optional[dict] = None) -> dict[AlertType, AlertConfiguration]:
    """Default configurations with per-type overrides from the `alerts` config section."""
    configurations = {t: replace(c, thresholds=dict(c.thresholds)) for t, c in DEFAULT_CONFIGURATIONS.items()}

    for name, section in (overrides or {}).items():
        try:
            alert_type = AlertType(name)
        except ValueError:
            raise ValidationError(f"Unknown alert type in configuration: {name!r}")

        section = section or {}
        current = configurations.get(alert_type) or AlertConfiguration(alert_type)
        current.enabled = bool(section.get("enabled", current.enabled))
        current.check_frequency_minutes = int(
            section.get("check_frequency_minutes", current.check_frequency_minutes)
        )
        current.thresholds.update(section.get("thresholds") or {})
        if "suppression_rules" in section:
            current.suppression_rules = [
                SuppressionRule.from_dict(rule) for rule in section["suppression_rules"] or []
            ]
        configurations[alert_type] = current

    return configurations


# Insight report types

@dataclass
class KeyInsight:
    category: str
    title: str
    description: str
    impact: str
    confidence: float
    supporting_data: dict
    timeframe: str
    affected_teams: list[str]

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "title": self.title,
            "description": self.description,
            "impact": self.impact,
            "confidence": self.confidence,
            "supporting_data": self.supporting_data,
            "timeframe": self.timeframe,
            "affected_teams": self.affected_teams
        }


@dataclass
class TrendInsight:
    metric: str
    direction: str
    magnitude: float
    significance: str  # "high", "medium", "low"
    time_range: str
    forecast: list[float]
    implications: list[str]

    def to_dict(self) -> dict:
        return {
            "metric": self.metric,
            "direction": self.direction,
            "magnitude": round(self.magnitude, 3),
            "significance": self.significance,
            "time_range": self.time_range,
            "forecast": [round(f, 1) for f in self.forecast],
            "implications": self.implications
        }


@dataclass
class PredictiveInsight:
    prediction: str
    probability: float
    time_horizon: str
    impact_area: list[str]
    confidence_level: float
    mitigation_options: list[str]
    early_warning_signals: list[str]

    def to_dict(self) -> dict:
        return {
            "prediction": self.prediction,
            "probability": round(self.probability, 3),
            "time_horizon": self.time_horizon,
            "impact_area": self.impact_area,
            "confidence_level": self.confidence_level,
            "mitigation_options": self.mitigation_options,
            "early_warning_signals": self.early_warning_signals
        }


@dataclass
class ActionableRecommendation:
    title: str
    description: str
    priority: str
    expected_outcome: str
    implementation_steps: list[str]
    timeline: str
    affected_teams: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "expected_outcome": self.expected_outcome,
            "implementation_steps": self.implementation_steps,
            "timeline": self.timeline,
            "affected_teams": self.affected_teams
        }


@dataclass
class TopRisk:
    description: str
    probability: float
    impact: float
    mitigation_status: str  # "none", "planned", "in_progress"

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "probability": round(self.probability, 3),
            "impact": self.impact,
            "mitigation_status": self.mitigation_status
        }


@dataclass
class CompanyRiskAssessment:
    overall_risk: float
    categories: dict[str, float]
    top_risks: list[TopRisk]
    risk_trend: Trend
    next_review_date: date

    def to_dict(self) -> dict:
        return {
            "overall_risk": round(self.overall_risk, 3),
            "risk_categories": {k: round(v, 3) for k, v in self.categories.items()},
            "top_risks": [r.to_dict() for r in self.top_risks],
            "risk_trend": self.risk_trend.value,
            "next_review_date": self.next_review_date.isoformat()
        }


@dataclass
class PerformanceSummary:
    company_score: float
    team_scores: list[dict]
    top_performers: list[str]
    needs_attention: list[str]
    improvement_areas: list[str]
    success_stories: list[str]

    def to_dict(self) -> dict:
        return {
            "company_score": round(self.company_score, 1),
            "team_scores": self.team_scores,
            "top_performers": self.top_performers,
            "needs_attention": self.needs_attention,
            "improvement_areas": self.improvement_areas,
            "success_stories": self.success_stories
        }


@dataclass
class AlertSummaryStats:
    total_alerts: int
    by_severity: dict[str, int]
    by_category: dict[str, int]
    avg_resolution_hours: float
    false_positive_rate: float
    action_taken_rate: float
    previous_period_total: int
    change_percent: float

    def to_dict(self) -> dict:
        return {
            "total_alerts_generated": self.total_alerts,
            "alerts_by_severity": self.by_severity,
            "alerts_by_category": self.by_category,
            "avg_resolution_hours": round(self.avg_resolution_hours, 1),
            "false_positive_rate": round(self.false_positive_rate, 3),
            "action_taken_rate": round(self.action_taken_rate, 3),
            "trend_comparison": {
                "previous_period": self.previous_period_total,
                "change_percent": round(self.change_percent, 1)
            }
        }


@dataclass
class InsightSummary:
    generated_at: datetime
    period_start: date
    period_end: date
    period_description: str
    key_insights: list[KeyInsight]
    trend_analysis: list[TrendInsight]
    predictive_insights: list[PredictiveInsight]
    recommendations: list[ActionableRecommendation]
    risk_assessment: CompanyRiskAssessment
    performance_summary: PerformanceSummary
    alert_summary: AlertSummaryStats

    def to_dict(self) -> dict:
        return {
            "generated_at": self.generated_at.isoformat(),
            "period": {
                "start_date": self.period_start.isoformat(),
                "end_date": self.period_end.isoformat(),
                "description": self.period_description
            },
            "key_insights": [i.to_dict() for i in self.key_insights],
            "trend_analysis": [t.to_dict() for t in self.trend_analysis],
            "predictive_insights": [p.to_dict() for p in self.predictive_insights],
            "actionable_recommendations": [r.to_dict() for r in self.recommendations],
            "risk_assessment": self.risk_assessment.to_dict(),
            "performance_summary": self.performance_summary.to_dict(),
            "alert_summary": self.alert_summary.to_dict()
        }


def describe_period(start: date, end: date) -> str:
    days = (end - start).days
    if days <= 7:
        return "Weekly Report"
    if days <= 31:
        return "Monthly Report"
    if days <= 93:
        return "Quarterly Report"
    return "Long-term Analysis"


def member_average_utilization(points: Iterable[HistoricalDataPoint]) -> dict[int, float]:
    by_member: dict[int, list[float]] = {}
    for point in points:
        by_member.setdefault(point.member_id, []).append(point.utilization)
    return {member_id: mean(values) for member_id, values in by_member.items()}


class AlertEngine:
    """
    Runs monitoring cycles and owns the alert registry.

    Usage:
        engine = AlertEngine(collector, predictor, performance)
        await engine.run_monitoring_cycle()
        for alert in engine.get_active_alerts():
            print(alert.severity.value, alert.title)
        engine.acknowledge_alert(alert.id, "lead@example.com")
    """

    def __init__(
        self,
        collector: DataCollector,
        predictor: PredictiveAnalyticsEngine,
        performance: PerformanceMetricsAggregator,
        configurations: Optional[dict[AlertType, AlertConfiguration]] = None,
        cache: Optional[TTLCache] = None,
        now: Callable[[], datetime] = datetime.now
    ):
        self.collector = collector
        self.predictor = predictor
        self.performance = performance
        self.configurations = configurations or build_configurations()
        self.cache = cache or TTLCache(ttl_seconds=300)
        self.detector = AnomalyDetector()
        self._now = now
        self._alerts: dict[str, Alert] = {}
        self._last_checked: dict[AlertType, datetime] = {}

        self._checkers = {
            AlertType.CAPACITY_WARNING: self.check_capacity_warning,
            AlertType.BURNOUT_RISK: self.check_burnout_risk,
            AlertType.PERFORMANCE_DECLINE: self.check_performance_decline,
            AlertType.ANOMALY_DETECTED: self.check_anomalies,
            AlertType.UTILIZATION_IMBALANCE: self.check_utilization_imbalance,
        }

    # Registry

    def get_alert(self, alert_id: str) -> Optional[Alert]:
        self.purge_expired()
        return self._alerts.get(alert_id)

    def purge_expired(self) -> int:
        now = self._now()
        expired = [alert_id for alert_id, alert in self._alerts.items() if alert.is_expired(now)]
        for alert_id in expired:
            del self._alerts[alert_id]
        if expired:
            logger.info("alerts_expired", count=len(expired))
        return len(expired)

    def get_active_alerts(
        self,
        severity: Optional[Iterable[Severity]] = None,
        category: Optional[Iterable[Category]] = None,
        team_id: Optional[int] = None,
        member_id: Optional[int] = None,
        statuses: Iterable[Status] = (Status.ACTIVE,)
    ) -> list[Alert]:
        """Alerts matching the filters, most severe first, then most recent."""
        self.purge_expired()

        statuses = set(statuses)
        alerts = [a for a in self._alerts.values() if a.status in statuses]
        if severity is not None:
            severity = set(severity)
            alerts = [a for a in alerts if a.severity in severity]
        if category is not None:
            category = set(category)
            alerts = [a for a in alerts if a.category in category]
        if team_id is not None:
            alerts = [
                a for a in alerts
                if a.affected_entity.type == "team" and a.affected_entity.id == team_id
            ]
        if member_id is not None:
            alerts = [
                a for a in alerts
                if a.affected_entity.type == "member" and a.affected_entity.id == member_id
            ]

        return sorted(alerts, key=lambda a: (a.severity.rank, a.timestamp), reverse=True)

    def _transition(
        self,
        alert_id: str,
        target: Status,
        actor: str,
        note: Optional[str] = None
    ) -> bool:
        alert = self.get_alert(alert_id)
        if alert is None or target not in ALLOWED_TRANSITIONS.get(alert.status, set()):
            return False

        alert.history.append(AlertTransition(alert.status, target, actor, self._now(), note))
        logger.info(
            "alert_transition",
            alert_id=alert_id,
            from_status=alert.status.value,
            to_status=target.value,
            actor=actor
        )
        alert.status = target
        return True

    def acknowledge_alert(self, alert_id: str, actor: str) -> bool:
        return self._transition(alert_id, Status.ACKNOWLEDGED, actor)

    def start_alert_progress(self, alert_id: str, actor: str) -> bool:
        return self._transition(alert_id, Status.IN_PROGRESS, actor)

    def resolve_alert(self, alert_id: str, actor: str, note: Optional[str] = None) -> bool:
        return self._transition(alert_id, Status.RESOLVED, actor, note)

    def dismiss_alert(self, alert_id: str, actor: str, reason: Optional[str] = None) -> bool:
        return self._transition(alert_id, Status.DISMISSED, actor, reason)

    def create_alert(
        self,
        alert_type: AlertType,
        severity: Severity,
        category: Category,
        title: str,
        description: str,
        entity: AffectedEntity,
        metrics: AlertMetrics,
        confidence: float = DEFAULT_CONFIDENCE
    ) -> Alert:
        now = self._now()
        return Alert(
            id=f"alert_{uuid.uuid4().hex[:12]}",
            type=alert_type,
            severity=severity,
            category=category,
            title=title,
            description=description,
            affected_entity=entity,
            metrics=metrics,
            created_at=now,
            timestamp=now,
            expiration_date=now + timedelta(hours=EXPIRATION_HOURS[alert_type]),
            confidence=confidence,
            recommendations=list(RECOMMENDATIONS.get(alert_type, [])),
            escalation_path=list(ESCALATION_PATHS[severity]),
            tags=[f"type:{alert_type.value}", f"category:{category.value}", "auto-generated"],
            history=[AlertTransition(None, Status.ACTIVE, "system", now)]
        )

    def find_open_alert(self, alert: Alert) -> Optional[Alert]:
        for existing in self._alerts.values():
            if existing.status in OPEN_STATUSES and existing.entity_key == alert.entity_key:
                return existing
        return None

    def is_suppressed(self, alert: Alert) -> bool:
        config = self.configurations.get(alert.type)
        if config is None or not config.suppression_rules:
            return False
        now = self._now()
        for existing in self._alerts.values():
            if existing.entity_key != alert.entity_key:
                continue
            for rule in config.suppression_rules:
                if rule.matches(existing, now):
                    return True
        return False

    def register(self, alert: Alert) -> bool:
        """Store a new alert. Returns False when it refreshed an open one or was suppressed."""
        existing = self.find_open_alert(alert)
        if existing is not None:
            existing.metrics = alert.metrics
            existing.timestamp = alert.timestamp
            logger.debug("alert_refreshed", alert_id=existing.id, type=alert.type.value)
            return False

        if self.is_suppressed(alert):
            logger.debug(
                "alert_suppressed",
                type=alert.type.value,
                entity=alert.affected_entity.type,
                entity_id=alert.affected_entity.id
            )
            return False

        self._alerts[alert.id] = alert
        logger.info(
            "alert_raised",
            alert_id=alert.id,
            type=alert.type.value,
            severity=alert.severity.value,
            entity=alert.affected_entity.type,
            entity_id=alert.affected_entity.id
        )
        return True

    # Monitoring

    def _due_configurations(self, force: bool) -> list[AlertConfiguration]:
        now = self._now()
        due = []
        for alert_type, config in self.configurations.items():
            if not config.enabled or alert_type not in self._checkers:
                continue
            last = self._last_checked.get(alert_type)
            if force or last is None or now - last >= timedelta(minutes=config.check_frequency_minutes):
                due.append(config)
        return due

    async def run_monitoring_cycle(self, force: bool = False) -> list[Alert]:
        """
        Check every processed team against each due configuration.

        Checks run concurrently per team; a failing checker is logged and
        does not affect other checks. Returns the newly registered alerts.
        """
        self.purge_expired()

        configs = self._due_configurations(force)
        teams = await self.collector.process_all_teams()
        results = await asyncio.gather(*(self._check_team(team, configs) for team in teams))
        candidates = [alert for team_alerts in results for alert in team_alerts]

        capacity_config = self.configurations.get(AlertType.CAPACITY_WARNING)
        if capacity_config in configs:
            candidates.extend(self.check_company_capacity(teams, capacity_config))

        now = self._now()
        for config in configs:
            self._last_checked[config.type] = now

        new_alerts = [alert for alert in candidates if self.register(alert)]
        logger.info(
            "monitoring_cycle_complete",
            teams=len(teams),
            checks=len(configs),
            candidates=len(candidates),
            new_alerts=len(new_alerts)
        )
        return new_alerts

    async def _check_team(
        self,
        team: ProcessedTeamData,
        configs: Sequence[AlertConfiguration]
    ) -> list[Alert]:
        alerts = []
        for config in configs:
            try:
                alerts.extend(await self._checkers[config.type](team, config))
            except Exception:
                logger.error(
                    "alert_check_failed",
                    team_id=team.team_id,
                    type=config.type.value,
                    exc_info=True
                )
        return alerts

    def _team_entity(self, team: ProcessedTeamData) -> AffectedEntity:
        return AffectedEntity("team", team.team_id, team.team_name)

    async def check_capacity_warning(
        self,
        team: ProcessedTeamData,
        config: AlertConfiguration
    ) -> list[Alert]:
        threshold = config.threshold("utilization_threshold", 95)
        utilization = team.avg_utilization
        if utilization <= threshold:
            return []

        series = sprint_utilizations(team.historical_data)
        return [self.create_alert(
            AlertType.CAPACITY_WARNING,
            Severity.CRITICAL if utilization > 110 else Severity.HIGH,
            Category.CAPACITY,
            "Team Capacity Warning",
            f"Team {team.team_name} is operating at {utilization:.1f}% utilization",
            self._team_entity(team),
            AlertMetrics(
                current_value=utilization,
                threshold=threshold,
                historical_average=mean(series),
                trend=trend_label(linear_slope(series), threshold=2),
                deviation_percentage=(utilization - threshold) / threshold * 100,
                impact_score=0.8
            )
        )]

    async def check_burnout_risk(
        self,
        team: ProcessedTeamData,
        config: AlertConfiguration
    ) -> list[Alert]:
        threshold = config.threshold("risk_threshold", 0.7)
        alerts = []
        for member_id in sorted({p.member_id for p in team.historical_data}):
            try:
                assessment = await self.predictor.assess_burnout_risk(member_id)
            except NotFoundError:
                logger.warning("burnout_check_member_missing", member_id=member_id)
                continue

            if assessment.risk_score <= threshold:
                continue

            critical = assessment.risk_level is RiskLevel.CRITICAL
            alerts.append(self.create_alert(
                AlertType.BURNOUT_RISK,
                Severity.CRITICAL if critical else Severity.HIGH,
                Category.TEAM_HEALTH,
                "High Burnout Risk Detected",
                f"{assessment.member_name} shows {assessment.risk_level.value} burnout risk",
                AffectedEntity("member", member_id, assessment.member_name),
                AlertMetrics(
                    current_value=assessment.risk_score,
                    threshold=threshold,
                    historical_average=0.3,
                    trend=trend_label(assessment.factors.workload_trend, threshold=0.1),
                    deviation_percentage=(assessment.risk_score - threshold) / threshold * 100,
                    impact_score=0.9
                ),
                confidence=assessment.confidence or DEFAULT_CONFIDENCE
            ))
        return alerts

    async def check_performance_decline(
        self,
        team: ProcessedTeamData,
        config: AlertConfiguration
    ) -> list[Alert]:
        threshold = config.threshold("score_threshold", 70)
        performance = await self.performance.calculate_team_performance(team.team_id)
        composite = performance.overall.composite
        if composite >= threshold:
            return []

        return [self.create_alert(
            AlertType.PERFORMANCE_DECLINE,
            Severity.HIGH if composite < 60 else Severity.MEDIUM,
            Category.PERFORMANCE,
            "Team Performance Decline",
            f"Team {team.team_name} performance score dropped to {composite}",
            self._team_entity(team),
            AlertMetrics(
                current_value=composite,
                threshold=threshold,
                historical_average=performance.overall.breakdown["velocity"],
                trend=Trend.DECREASING,
                deviation_percentage=(threshold - composite) / threshold * 100,
                impact_score=0.7
            )
        )]

    async def check_anomalies(
        self,
        team: ProcessedTeamData,
        config: AlertConfiguration
    ) -> list[Alert]:
        if len(team.historical_data) <= 5:
            return []

        utilizations = [p.utilization for p in team.historical_data]
        results = self.detector.detect_zscore_anomalies(utilizations)
        recent = [
            r for r in results[-3:]
            if r.is_anomaly and r.severity is AnomalySeverity.HIGH
        ]
        if not recent:
            return []

        return [self.create_alert(
            AlertType.ANOMALY_DETECTED,
            Severity.MEDIUM,
            Category.PERFORMANCE,
            "Performance Anomaly Detected",
            f"Unusual utilization patterns detected in team {team.team_name}",
            self._team_entity(team),
            AlertMetrics(
                current_value=recent[0].anomaly_score,
                threshold=config.threshold("score_threshold", 0.7),
                historical_average=mean(utilizations),
                trend=Trend.STABLE,
                deviation_percentage=(recent[0].value - mean(utilizations)) / mean(utilizations) * 100
                if mean(utilizations) else 0.0,
                impact_score=0.5
            )
        )]

    async def check_utilization_imbalance(
        self,
        team: ProcessedTeamData,
        config: AlertConfiguration
    ) -> list[Alert]:
        threshold = config.threshold("imbalance_threshold", 30)
        averages = member_average_utilization(team.historical_data)
        if len(averages) < 2:
            return []

        imbalance = max(averages.values()) - min(averages.values())
        if imbalance <= threshold:
            return []

        return [self.create_alert(
            AlertType.UTILIZATION_IMBALANCE,
            Severity.HIGH if imbalance > 50 else Severity.MEDIUM,
            Category.CAPACITY,
            "Team Utilization Imbalance",
            f"Significant utilization imbalance in team {team.team_name} "
            f"({imbalance:.1f}% difference)",
            self._team_entity(team),
            AlertMetrics(
                current_value=imbalance,
                threshold=threshold,
                historical_average=mean(list(averages.values())),
                trend=Trend.STABLE,
                deviation_percentage=(imbalance - threshold) / threshold * 100,
                impact_score=0.6
            )
        )]

    def check_company_capacity(
        self,
        teams: Sequence[ProcessedTeamData],
        config: AlertConfiguration
    ) -> list[Alert]:
        if not teams:
            return []

        threshold = config.threshold("company_threshold", COMPANY_UTILIZATION_THRESHOLD)
        utilization = mean([t.avg_utilization for t in teams])
        if utilization <= threshold:
            return []

        return [self.create_alert(
            AlertType.CAPACITY_WARNING,
            Severity.HIGH,
            Category.CAPACITY,
            "Company-Wide Capacity Strain",
            f"Overall company utilization at {utilization:.1f}%",
            AffectedEntity("company", 0, "Company"),
            AlertMetrics(
                current_value=utilization,
                threshold=threshold,
                historical_average=mean([
                    mean(sprint_utilizations(t.historical_data)) for t in teams
                ]),
                trend=Trend.STABLE,
                deviation_percentage=(utilization - threshold) / threshold * 100,
                impact_score=0.9
            )
        )]

    # Insights

    async def generate_insights(self, start: date, end: date) -> InsightSummary:
        key = ("insights", start, end)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        teams = await self.collector.process_all_teams()
        company = await self.performance.calculate_company_performance()
        performances = company.teams
        all_points = [p for team in teams for p in team.historical_data]

        trend_insights = self.trend_insights(all_points)
        summary = InsightSummary(
            generated_at=self._now(),
            period_start=start,
            period_end=end,
            period_description=describe_period(start, end),
            key_insights=self.key_insights(performances),
            trend_analysis=trend_insights,
            predictive_insights=self.predictive_insights(performances, all_points),
            recommendations=self.actionable_recommendations(performances),
            risk_assessment=self.assess_company_risks(performances, trend_insights, end),
            performance_summary=self.summarize_performance(performances),
            alert_summary=self.alert_summary(start, end)
        )
        self.cache.set(key, summary)
        return summary

    @staticmethod
    def key_insights(performances: Sequence[TeamPerformanceMetrics]) -> list[KeyInsight]:
        insights = []

        top = sorted(
            (p for p in performances if p.overall.composite > 85),
            key=lambda p: p.overall.composite,
            reverse=True
        )[:3]
        if top:
            insights.append(KeyInsight(
                category="performance",
                title="High Performing Teams Identified",
                description=(
                    f"{len(top)} teams are performing exceptionally well with scores above 85"
                ),
                impact="medium",
                confidence=0.9,
                supporting_data={
                    "teams": [{"name": p.team_name, "score": p.overall.composite} for p in top]
                },
                timeframe="Current month",
                affected_teams=[p.team_name for p in top]
            ))

        stressed = [p for p in performances if p.utilization.current_utilization > 95]
        if stressed:
            insights.append(KeyInsight(
                category="capacity",
                title="Capacity Stress Detected",
                description=f"{len(stressed)} teams are operating above optimal capacity",
                impact="high",
                confidence=0.85,
                supporting_data={
                    "teams": [
                        {"name": p.team_name, "utilization": round(p.utilization.current_utilization, 1)}
                        for p in stressed
                    ]
                },
                timeframe="Current sprint",
                affected_teams=[p.team_name for p in stressed]
            ))

        return insights

    @staticmethod
    def trend_insights(points: Sequence[HistoricalDataPoint]) -> list[TrendInsight]:
        if not points:
            return []

        significance = {"significant": "high", "moderate": "medium"}
        insights = []

        utilization = sprint_utilizations(points)
        trend = trend_data(utilization)
        if trend.direction == "up":
            implications = ["Increased delivery capacity", "Potential burnout risk if sustained"]
        elif trend.direction == "down":
            implications = ["Spare capacity is growing", "Review planning and absences"]
        else:
            implications = ["Utilization is holding steady"]
        insights.append(TrendInsight(
            metric="Company Utilization",
            direction=trend.direction,
            magnitude=trend.magnitude,
            significance=significance.get(trend.significance, "low"),
            time_range=f"Last {len(utilization)} sprints",
            forecast=trend.projection,
            implications=implications
        ))

        velocity = sprint_capacities(points)
        trend = trend_data(velocity)
        if trend.direction == "stable":
            implications = ["Consistent delivery pace", "Good predictability for planning"]
        else:
            implications = [f"Delivered hours trending {trend.direction}", "Revisit sprint commitments"]
        insights.append(TrendInsight(
            metric="Team Velocity",
            direction=trend.direction,
            magnitude=trend.magnitude,
            significance=significance.get(trend.significance, "low"),
            time_range=f"Last {len(velocity)} sprints",
            forecast=trend.projection,
            implications=implications
        ))
        return insights

    @staticmethod
    def predictive_insights(
        performances: Sequence[TeamPerformanceMetrics],
        points: Sequence[HistoricalDataPoint]
    ) -> list[PredictiveInsight]:
        insights = []

        at_risk = [p for p in performances if p.predictive.team_burnout_risk > 0.6]
        if at_risk:
            insights.append(PredictiveInsight(
                prediction="Potential team burnout within next 4-6 weeks",
                probability=mean([p.predictive.team_burnout_risk for p in at_risk]),
                time_horizon="4-6 weeks",
                impact_area=["Team performance", "Quality", "Delivery timeline"],
                confidence_level=0.8,
                mitigation_options=[
                    "Reduce sprint capacity by 15-20%",
                    "Implement mandatory time off",
                    "Redistribute workload across teams"
                ],
                early_warning_signals=[
                    "Sustained high utilization",
                    "Declining velocity consistency",
                    "Increased defect rates"
                ]
            ))

        capacity = trend_data(sprint_capacities(points))
        if capacity.direction == "down" and capacity.significance in ("significant", "moderate"):
            insights.append(PredictiveInsight(
                prediction="Delivered capacity expected to keep declining over the next 3 sprints",
                probability=min(1.0, 0.5 + capacity.magnitude),
                time_horizon="3 sprints",
                impact_area=["Delivery timeline", "Planning"],
                confidence_level=0.7,
                mitigation_options=[
                    "Re-plan upcoming sprint scope",
                    "Review upcoming absences and vacations"
                ],
                early_warning_signals=["Falling hours delivered per sprint"]
            ))

        return insights

    @staticmethod
    def actionable_recommendations(
        performances: Sequence[TeamPerformanceMetrics]
    ) -> list[ActionableRecommendation]:
        recommendations = []

        stressed = [p.team_name for p in performances if p.utilization.current_utilization > 95]
        if stressed:
            recommendations.append(ActionableRecommendation(
                title="Relieve Over-Capacity Teams",
                description="Some teams are running above 95% utilization.",
                priority="high",
                expected_outcome="Utilization back within the 80-95% band",
                implementation_steps=[
                    "Trim scope for the next sprint",
                    "Move work to teams with spare capacity"
                ],
                timeline="1-2 sprints",
                affected_teams=stressed
            ))

        unstable = [p.team_name for p in performances if p.stability.stability_risk == "high"]
        if unstable:
            recommendations.append(ActionableRecommendation(
                title="Stabilize Team Rosters",
                description="Frequent membership changes are reducing continuity.",
                priority="medium",
                expected_outcome="Sprint-over-sprint retention above 85%",
                implementation_steps=[
                    "Freeze reassignments for the next two sprints",
                    "Pair new members with long-standing ones"
                ],
                timeline="1 month",
                affected_teams=unstable
            ))

        struggling = [p.team_name for p in performances if p.overall.composite < 70]
        if struggling:
            recommendations.append(ActionableRecommendation(
                title="Targeted Improvement Plans",
                description="Teams below a composite score of 70 need focused support.",
                priority="high" if len(struggling) > 1 else "medium",
                expected_outcome="Composite score above 70 within a quarter",
                implementation_steps=[
                    "Review each team's lowest scoring metric family",
                    "Agree on one improvement goal per sprint"
                ],
                timeline="1 quarter",
                affected_teams=struggling
            ))

        return recommendations

    def assess_company_risks(
        self,
        performances: Sequence[TeamPerformanceMetrics],
        trends: Sequence[TrendInsight],
        period_end: date
    ) -> CompanyRiskAssessment:
        if performances:
            categories = {
                "delivery": mean([p.predictive.delivery_risk for p in performances]),
                "capacity": sum(
                    1 for p in performances if p.utilization.current_utilization > 95
                ) / len(performances),
                "team_health": mean([p.predictive.team_burnout_risk for p in performances]),
                "quality": mean([p.predictive.quality_risk for p in performances]),
                "performance": mean([1 - p.overall.composite / 100 for p in performances]),
            }
        else:
            categories = {c: 0.0 for c in ("delivery", "capacity", "team_health", "quality", "performance")}

        open_categories = {
            a.category.value for a in self.get_active_alerts(statuses=OPEN_STATUSES)
        }
        in_progress = {
            a.category.value for a in self.get_active_alerts(statuses=(Status.IN_PROGRESS,))
        }
        top_risks = []
        for name, value in sorted(categories.items(), key=lambda kv: kv[1], reverse=True):
            if value <= 0.5:
                continue
            if name in in_progress:
                status = "in_progress"
            elif name in open_categories:
                status = "planned"
            else:
                status = "none"
            top_risks.append(TopRisk(
                description=f"Elevated {name.replace('_', ' ')} risk",
                probability=value,
                impact=0.8 if name in ("delivery", "team_health") else 0.6,
                mitigation_status=status
            ))

        utilization_trend = next((t for t in trends if t.metric == "Company Utilization"), None)
        if utilization_trend is None or utilization_trend.direction == "stable":
            risk_trend = Trend.STABLE
        elif utilization_trend.direction == "up":
            risk_trend = Trend.INCREASING
        else:
            risk_trend = Trend.DECREASING

        return CompanyRiskAssessment(
            overall_risk=mean(list(categories.values())),
            categories=categories,
            top_risks=top_risks,
            risk_trend=risk_trend,
            next_review_date=period_end + timedelta(days=7)
        )

    @staticmethod
    def summarize_performance(performances: Sequence[TeamPerformanceMetrics]) -> PerformanceSummary:
        improvement_areas = []
        if performances:
            for family in SCORE_WEIGHTS:
                if mean([p.overall.breakdown[family] for p in performances]) < 70:
                    improvement_areas.append(family)

        return PerformanceSummary(
            company_score=mean([p.overall.composite for p in performances]),
            team_scores=[
                {"team_id": p.team_id, "team_name": p.team_name, "score": p.overall.composite}
                for p in performances
            ],
            top_performers=[p.team_name for p in performances if p.overall.composite >= 85],
            needs_attention=[p.team_name for p in performances if p.overall.composite < 70],
            improvement_areas=improvement_areas,
            success_stories=[
                f"{p.team_name}: velocity trending up"
                for p in performances
                if p.trends.velocity.direction == "up" and p.overall.composite >= 80
            ]
        )

    def alert_summary(self, start: date, end: date) -> AlertSummaryStats:
        """Statistics over registry alerts created within [start, end]."""
        self.purge_expired()

        def created_between(first: date, last: date) -> list[Alert]:
            return [a for a in self._alerts.values() if first <= a.created_at.date() <= last]

        alerts = created_between(start, end)
        span = end - start
        previous = created_between(start - span - timedelta(days=1), start - timedelta(days=1))

        by_severity: dict[str, int] = {}
        by_category: dict[str, int] = {}
        for alert in alerts:
            by_severity[alert.severity.value] = by_severity.get(alert.severity.value, 0) + 1
            by_category[alert.category.value] = by_category.get(alert.category.value, 0) + 1

        resolution_hours = [
            (step.at - alert.created_at).total_seconds() / 3600
            for alert in alerts
            for step in alert.history
            if step.to_status is Status.RESOLVED
        ]
        acted = {Status.ACKNOWLEDGED, Status.IN_PROGRESS, Status.RESOLVED}
        total = len(alerts)

        if previous:
            change = (total - len(previous)) / len(previous) * 100
        else:
            change = 0.0

        return AlertSummaryStats(
            total_alerts=total,
            by_severity=by_severity,
            by_category=by_category,
            avg_resolution_hours=mean(resolution_hours),
            false_positive_rate=(
                sum(1 for a in alerts if a.status is Status.DISMISSED) / total if total else 0.0
            ),
            action_taken_rate=sum(1 for a in alerts if a.status in acted) / total if total else 0.0,
            previous_period_total=len(previous),
            change_percent=change
        )
