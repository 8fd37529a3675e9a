"""
Statistical Models

Pure-Python forecasting, anomaly detection, seasonal decomposition and
risk scoring used by the predictive and alerting components.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional, Sequence

from .errors import InsufficientDataError

if TYPE_CHECKING:
    from .collector import FeatureVector, HistoricalDataPoint


def mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def variance(values: Sequence[float]) -> float:
    """Population variance."""
    if not values:
        return 0.0
    avg = mean(values)
    return sum((v - avg) ** 2 for v in values) / len(values)


def std_dev(values: Sequence[float]) -> float:
    return math.sqrt(variance(values))


def linear_slope(values: Sequence[float]) -> float:
    """Least-squares slope of values against their index. 0 for fewer than 2 points."""
    n = len(values)
    if n < 2:
        return 0.0
    x_mean = (n - 1) / 2
    y_mean = mean(values)
    numerator = sum((i - x_mean) * (v - y_mean) for i, v in enumerate(values))
    denominator = sum((i - x_mean) ** 2 for i in range(n))
    return numerator / denominator if denominator else 0.0


class Trend(Enum):
    """Direction of a series."""
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


def trend_label(slope: float, threshold: float = 0.1) -> Trend:
    if slope > threshold:
        return Trend.INCREASING
    if slope < -threshold:
        return Trend.DECREASING
    return Trend.STABLE


@dataclass
class ForecastResult:
    """Point forecasts with a confidence interval per step."""
    predictions: list[float]
    lower: list[float]
    upper: list[float]
    confidence: float
    trend: Trend
    seasonal_adjusted: bool = False

    def to_dict(self) -> dict:
        return {
            "predictions": [round(p, 2) for p in self.predictions],
            "confidence_intervals": {
                "lower": [round(v, 2) for v in self.lower],
                "upper": [round(v, 2) for v in self.upper]
            },
            "confidence": round(self.confidence, 3),
            "trend": self.trend.value,
            "seasonal_adjusted": self.seasonal_adjusted
        }


class LinearRegressionModel:
    """
    Ordinary least squares over an evenly spaced series.

    Usage:
        model = LinearRegressionModel().train([10, 12, 14, 16])
        forecast = model.predict(steps=3)
    """

    def __init__(self):
        self.slope = 0.0
        self.intercept = 0.0
        self.r_squared = 0.0
        self.n = 0
        self.trained = False

    def train(self, values: Sequence[float]) -> "LinearRegressionModel":
        n = len(values)
        if n < 2:
            raise InsufficientDataError(
                "Linear regression needs at least 2 points",
                required=2,
                available=n
            )

        self.slope = linear_slope(values)
        x_mean = (n - 1) / 2
        y_mean = mean(values)
        self.intercept = y_mean - self.slope * x_mean

        ss_total = sum((v - y_mean) ** 2 for v in values)
        ss_residual = sum(
            (v - (self.slope * i + self.intercept)) ** 2
            for i, v in enumerate(values)
        )
        self.r_squared = 1 - ss_residual / ss_total if ss_total else 0.0

        self.n = n
        self.trained = True
        return self

    def predict(self, steps: int) -> ForecastResult:
        """Extrapolate the fitted line over the next `steps` indices."""
        if not self.trained:
            raise InsufficientDataError("Model must be trained before prediction")

        steps = max(1, steps)
        predictions = [self.slope * i + self.intercept for i in range(self.n, self.n + steps)]

        margin = (
            1.96
            * math.sqrt(max(0.0, 1 - self.r_squared))
            * abs(self.slope)
            * math.sqrt(1 + 1 / steps)
        )

        return ForecastResult(
            predictions=predictions,
            lower=[p - margin for p in predictions],
            upper=[p + margin for p in predictions],
            confidence=max(0.0, self.r_squared),
            trend=trend_label(self.slope)
        )

    def parameters(self) -> dict:
        return {
            "slope": self.slope,
            "intercept": self.intercept,
            "r_squared": self.r_squared
        }


class MovingAverageModel:
    """Simple and exponential moving averages with flat forecasts."""

    def __init__(
        self,
        window_sizes: Sequence[int] = (3, 7, 14),
        ema_alpha: float = 0.3
    ):
        self.window_sizes = tuple(window_sizes)
        self.ema_alpha = ema_alpha

    @staticmethod
    def simple_moving_average(data: Sequence[float], window: int) -> list[float]:
        if window <= 0 or len(data) < window:
            return []
        return [mean(data[i - window + 1:i + 1]) for i in range(window - 1, len(data))]

    def exponential_moving_average(self, data: Sequence[float]) -> list[float]:
        if not data:
            return []
        ema = [float(data[0])]
        for value in data[1:]:
            ema.append(self.ema_alpha * value + (1 - self.ema_alpha) * ema[-1])
        return ema

    def calculate(self, data: Sequence[float]) -> dict[str, list[float]]:
        """Moving average series keyed ma3, ma7, ... plus ema."""
        result = {
            f"ma{window}": self.simple_moving_average(data, window)
            for window in self.window_sizes
        }
        result["ema"] = self.exponential_moving_average(data)
        return result

    def forecast(
        self,
        data: Sequence[float],
        steps: int,
        window: int = 7
    ) -> ForecastResult:
        if not data:
            raise InsufficientDataError(
                "Moving average needs at least 1 point",
                required=1,
                available=0
            )

        window = max(1, min(window, len(data)))
        sma = self.simple_moving_average(data, window)
        level = mean(sma[-window:])

        spread = std_dev(data)
        margin = 1.96 * spread
        if level:
            confidence = max(0.0, min(1.0, 1 - variance(data) / level ** 2))
        else:
            confidence = 0.0

        steps = max(1, steps)
        predictions = [level] * steps
        return ForecastResult(
            predictions=predictions,
            lower=[p - margin for p in predictions],
            upper=[p + margin for p in predictions],
            confidence=confidence,
            trend=Trend.STABLE
        )


class AnomalySeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class AnomalyResult:
    """Anomaly verdict for one observation."""
    index: int
    value: float
    is_anomaly: bool
    anomaly_score: float
    severity: AnomalySeverity
    expected_min: float
    expected_max: float
    method: str

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "value": self.value,
            "is_anomaly": self.is_anomaly,
            "anomaly_score": round(self.anomaly_score, 3),
            "severity": self.severity.value,
            "expected_range": {
                "min": round(self.expected_min, 2),
                "max": round(self.expected_max, 2)
            },
            "method": self.method
        }


class AnomalyDetector:
    """
    Flags outliers by z-score, interquartile range, or distance from the
    centroid of a set of feature vectors. Results are returned for every
    observation; filter on `is_anomaly`.
    """

    def __init__(self, z_threshold: float = 2.5, iqr_multiplier: float = 1.5):
        self.z_threshold = z_threshold
        self.iqr_multiplier = iqr_multiplier

    def detect_zscore_anomalies(self, data: Sequence[float]) -> list[AnomalyResult]:
        if len(data) < 3:
            return []

        avg = mean(data)
        spread = std_dev(data)
        results = []
        for index, value in enumerate(data):
            z = abs(value - avg) / spread if spread else 0.0
            if z > 3:
                severity = AnomalySeverity.HIGH
            elif z > 2:
                severity = AnomalySeverity.MEDIUM
            else:
                severity = AnomalySeverity.LOW

            results.append(AnomalyResult(
                index=index,
                value=value,
                is_anomaly=z > self.z_threshold,
                anomaly_score=min(1.0, z / (self.z_threshold * 2)),
                severity=severity,
                expected_min=avg - self.z_threshold * spread,
                expected_max=avg + self.z_threshold * spread,
                method="z-score"
            ))
        return results

    def detect_iqr_anomalies(self, data: Sequence[float]) -> list[AnomalyResult]:
        if len(data) < 4:
            return []

        ordered = sorted(data)
        q1 = ordered[math.floor(len(ordered) * 0.25)]
        q3 = ordered[math.floor(len(ordered) * 0.75)]
        iqr = q3 - q1
        lower_bound = q1 - self.iqr_multiplier * iqr
        upper_bound = q3 + self.iqr_multiplier * iqr

        results = []
        for index, value in enumerate(data):
            is_anomaly = value < lower_bound or value > upper_bound
            distance = min(abs(value - lower_bound), abs(value - upper_bound))
            if is_anomaly and iqr:
                score = min(1.0, distance / (iqr * 2))
            elif is_anomaly:
                score = 1.0
            else:
                score = 0.0

            if distance > iqr * 2:
                severity = AnomalySeverity.HIGH
            elif distance > iqr:
                severity = AnomalySeverity.MEDIUM
            else:
                severity = AnomalySeverity.LOW

            results.append(AnomalyResult(
                index=index,
                value=value,
                is_anomaly=is_anomaly,
                anomaly_score=score,
                severity=severity if is_anomaly else AnomalySeverity.LOW,
                expected_min=lower_bound,
                expected_max=upper_bound,
                method="iqr"
            ))
        return results

    def detect_pattern_anomalies(
        self,
        feature_sets: Sequence[dict[str, float]]
    ) -> list[AnomalyResult]:
        """Flag feature sets far from the centroid (distance > mean + 2 std)."""
        if not feature_sets:
            return []

        dimensions = list(feature_sets[0].keys())
        centroid = {
            dim: mean([features.get(dim, 0.0) for features in feature_sets])
            for dim in dimensions
        }
        distances = [
            math.sqrt(sum((features.get(dim, 0.0) - centroid[dim]) ** 2 for dim in dimensions))
            for features in feature_sets
        ]

        threshold = mean(distances) + 2 * std_dev(distances)
        results = []
        for index, distance in enumerate(distances):
            if distance > threshold * 1.5:
                severity = AnomalySeverity.HIGH
            elif distance > threshold * 1.2:
                severity = AnomalySeverity.MEDIUM
            else:
                severity = AnomalySeverity.LOW

            results.append(AnomalyResult(
                index=index,
                value=distance,
                is_anomaly=distance > threshold,
                anomaly_score=min(1.0, distance / (threshold * 1.5)) if threshold else 0.0,
                severity=severity,
                expected_min=0.0,
                expected_max=threshold,
                method="multivariate"
            ))
        return results


@dataclass
class TimeSeriesData:
    """Additive decomposition of a series."""
    values: list[float]
    trend: list[float]
    seasonal: list[float]
    residual: list[float]


class SeasonalDecompositionModel:
    """Additive decomposition with a centered moving-average trend."""

    def decompose(self, data: Sequence[float], period: int) -> TimeSeriesData:
        values = list(data)
        period = max(1, period)
        trend = self._trend(values, period)
        detrended = [v - t for v, t in zip(values, trend)]
        seasonal = self._seasonal(detrended, period)
        residual = [v - t - s for v, t, s in zip(values, trend, seasonal)]
        return TimeSeriesData(values=values, trend=trend, seasonal=seasonal, residual=residual)

    @staticmethod
    def _trend(data: list[float], period: int) -> list[float]:
        half = period // 2
        trend = []
        for i in range(len(data)):
            window = data[max(0, i - half):min(len(data), i + half + 1)]
            trend.append(mean(window))
        return trend

    @staticmethod
    def _seasonal(detrended: list[float], period: int) -> list[float]:
        totals = [0.0] * period
        counts = [0] * period
        for index, value in enumerate(detrended):
            totals[index % period] += value
            counts[index % period] += 1

        averages = [totals[i] / counts[i] if counts[i] else 0.0 for i in range(period)]
        return [averages[index % period] for index in range(len(detrended))]


@dataclass
class RiskScore:
    """Weighted risk score in [0, 1]."""
    score: float
    factors: dict[str, float] = field(default_factory=dict)
    confidence: float = 0.0
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "score": round(self.score, 3),
            "factors": {k: round(v, 3) for k, v in self.factors.items()},
            "confidence": round(self.confidence, 3),
            "recommendations": self.recommendations
        }


def weighted_score(factors: dict[str, float], weights: dict[str, float]) -> float:
    """Weighted mean of the factors present in weights, clamped to [0, 1]."""
    used = {name: w for name, w in weights.items() if name in factors}
    total = sum(used.values())
    if not total:
        return 0.0
    score = sum(factors[name] * w for name, w in used.items()) / total
    return max(0.0, min(1.0, score))


class RiskAssessmentModel:
    """Burnout and capacity risk from team features."""

    # Relative weights; normalized so the applied weights sum to 1
    BURNOUT_WEIGHTS = {
        "utilization_risk": 0.25,
        "stability_risk": 0.15,
        "trend_risk": 0.15,
        "variability_risk": 0.10,
        "turnover_risk": 0.10,
    }

    CAPACITY_WEIGHTS = {
        "over_commitment_risk": 0.5,
        "volatility_risk": 0.3,
        "accuracy_risk": 0.2,
    }

    def calculate_burnout_risk(self, features: "FeatureVector") -> RiskScore:
        factors = {
            "utilization_risk": min(1.0, features.avg_utilization / 150),
            "variability_risk": min(1.0, features.workload_variability),
            "stability_risk": max(0.0, 1 - features.team_stability),
            "turnover_risk": min(1.0, features.member_turnover * 2),
            "trend_risk": (
                min(1.0, abs(features.velocity_trend) / 10)
                if features.velocity_trend < 0 else 0.0
            ),
        }

        recommendations = []
        if factors["utilization_risk"] > 0.7:
            recommendations.append("Consider reducing workload or adding team members")
        if factors["variability_risk"] > 0.6:
            recommendations.append("Implement better workload planning and distribution")
        if factors["stability_risk"] > 0.5:
            recommendations.append("Focus on team retention and stability initiatives")
        if factors["turnover_risk"] > 0.4:
            recommendations.append("Investigate causes of team member turnover")
        if factors["trend_risk"] > 0.3:
            recommendations.append("Address factors causing declining team velocity")
        if not recommendations:
            recommendations.append("Team appears to be operating within healthy parameters")

        return RiskScore(
            score=weighted_score(factors, self.BURNOUT_WEIGHTS),
            factors=factors,
            confidence=features.historical_accuracy,
            recommendations=recommendations
        )

    def calculate_capacity_risk(
        self,
        points: Sequence["HistoricalDataPoint"],
        target_utilization: float
    ) -> RiskScore:
        """Risk of missing a utilization target given the last 6 observations."""
        recent = [p.utilization for p in points[-6:]]
        if not recent:
            raise InsufficientDataError(
                "Capacity risk needs at least 1 observation",
                required=1,
                available=0
            )

        avg = mean(recent)
        factors = {
            "over_commitment_risk": max(0.0, (target_utilization - avg) / 100),
            "volatility_risk": min(1.0, std_dev(recent) / 50),
            "accuracy_risk": max(0.0, 1 - avg / 100),
        }

        recommendations = []
        if factors["over_commitment_risk"] > 0.6:
            recommendations.append("Reduce sprint commitments or add capacity")
        if factors["volatility_risk"] > 0.5:
            recommendations.append("Improve capacity planning consistency")
        if factors["accuracy_risk"] > 0.4:
            recommendations.append("Review and improve estimation processes")

        return RiskScore(
            score=weighted_score(factors, self.CAPACITY_WEIGHTS),
            factors=factors,
            confidence=0.8 if len(recent) >= 3 else 0.5,
            recommendations=recommendations
        )
