"""
Capacity Analytics Engine

Turns per-person, per-day availability records into capacity, utilization,
forecasts, performance scores, alerts and insight reports.
"""

__version__ = "1.0.0"

from .errors import (
    CapacityEngineError,
    InsufficientDataError,
    ValidationError,
    NotFoundError
)

from .capacity import (
    CapacityCalculator,
    CapacitySnapshot,
    CapacityStatus
)

from .collector import (
    DataCollector,
    HistoricalDataPoint,
    ProcessedTeamData,
    FeatureVector
)

from .predictor import (
    PredictiveAnalyticsEngine,
    RiskLevel,
    BacklogItem,
    ProjectRequirements,
    ProjectComplexity
)

from .performance import (
    PerformanceMetricsAggregator,
    TeamPerformanceMetrics
)

from .alerts import (
    AlertEngine,
    Alert,
    AlertType,
    Severity,
    Status,
    InsightSummary
)

from .engine import CapacityAnalytics

__all__ = [
    # Version
    "__version__",

    # Errors
    "CapacityEngineError",
    "InsufficientDataError",
    "ValidationError",
    "NotFoundError",

    # Capacity
    "CapacityCalculator",
    "CapacitySnapshot",
    "CapacityStatus",

    # Collector
    "DataCollector",
    "HistoricalDataPoint",
    "ProcessedTeamData",
    "FeatureVector",

    # Predictor
    "PredictiveAnalyticsEngine",
    "RiskLevel",
    "BacklogItem",
    "ProjectRequirements",
    "ProjectComplexity",

    # Performance
    "PerformanceMetricsAggregator",
    "TeamPerformanceMetrics",

    # Alerts
    "AlertEngine",
    "Alert",
    "AlertType",
    "Severity",
    "Status",
    "InsightSummary",

    # Composition
    "CapacityAnalytics",
]
