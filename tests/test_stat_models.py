"""
Tests for the statistical models.
"""

import pytest

from capacity_engine.collector import FeatureVector, HistoricalDataPoint
from capacity_engine.errors import InsufficientDataError
from capacity_engine.stat_models import (
    AnomalyDetector,
    AnomalySeverity,
    LinearRegressionModel,
    MovingAverageModel,
    RiskAssessmentModel,
    SeasonalDecompositionModel,
    Trend,
    linear_slope,
    std_dev,
    trend_label,
    weighted_score
)


class TestBasics:
    """Tests for the small helpers."""

    def test_linear_slope(self):
        """Test slope of an evenly spaced series."""
        assert linear_slope([1, 3, 5, 7]) == 2
        assert linear_slope([5]) == 0

    def test_std_dev_is_population(self):
        """Test population standard deviation."""
        assert std_dev([2, 4, 4, 4, 5, 5, 7, 9]) == 2

    def test_trend_label(self):
        """Test slope thresholds."""
        assert trend_label(0.5) is Trend.INCREASING
        assert trend_label(-0.5) is Trend.DECREASING
        assert trend_label(4, threshold=5) is Trend.STABLE

    def test_weighted_score_normalizes(self):
        """Test weights are normalized over the factors present."""
        score = weighted_score({"a": 1.0, "b": 0.0}, {"a": 1, "b": 3, "c": 6})
        assert score == pytest.approx(0.25)


class TestLinearRegressionModel:
    """Tests for least squares fitting."""

    def test_train_and_predict(self):
        """Test a perfect line is extrapolated from index n onwards."""
        model = LinearRegressionModel().train([1, 2, 3, 4])

        assert model.slope == 1
        assert model.intercept == 1
        assert model.r_squared == 1

        forecast = model.predict(2)
        assert forecast.predictions == [5, 6]
        assert forecast.lower == forecast.upper == [5, 6]
        assert forecast.trend is Trend.INCREASING

    def test_requires_two_points(self):
        """Test training on one point is rejected."""
        with pytest.raises(InsufficientDataError) as exc:
            LinearRegressionModel().train([3])
        assert exc.value.required == 2
        assert exc.value.available == 1

    def test_predict_before_train(self):
        """Test predicting with an untrained model is rejected."""
        with pytest.raises(InsufficientDataError):
            LinearRegressionModel().predict(3)


class TestMovingAverageModel:
    """Tests for moving averages."""

    def test_simple_moving_average(self):
        """Test window averages."""
        assert MovingAverageModel.simple_moving_average([1, 2, 3, 4], 2) == [1.5, 2.5, 3.5]
        assert MovingAverageModel.simple_moving_average([1, 2], 3) == []

    def test_exponential_moving_average(self):
        """Test smoothing from the first value."""
        ema = MovingAverageModel(ema_alpha=0.5).exponential_moving_average([10, 20])
        assert ema == [10, 15]

    def test_calculate_keys(self):
        """Test series are keyed by window size."""
        result = MovingAverageModel().calculate(list(range(20)))
        assert set(result) == {"ma3", "ma7", "ma14", "ema"}

    def test_flat_forecast(self):
        """Test the forecast repeats the recent level."""
        forecast = MovingAverageModel().forecast([10, 10, 10], steps=2, window=3)

        assert forecast.predictions == [10, 10]
        assert forecast.confidence == 1.0
        assert forecast.trend is Trend.STABLE

    def test_forecast_requires_data(self):
        """Test an empty series is rejected."""
        with pytest.raises(InsufficientDataError):
            MovingAverageModel().forecast([], steps=2)


class TestAnomalyDetector:
    """Tests for anomaly detection."""

    def test_zscore_flags_outlier(self):
        """Test a single extreme value is flagged as high severity."""
        data = [50] * 20 + [100, 5, 150]
        results = AnomalyDetector().detect_zscore_anomalies(data)

        flagged = [r.index for r in results if r.is_anomaly]
        assert flagged == [22]
        assert results[22].severity is AnomalySeverity.HIGH

    def test_zscore_needs_three_points(self):
        """Test short series return no results."""
        assert AnomalyDetector().detect_zscore_anomalies([1, 2]) == []

    def test_zscore_constant_series(self):
        """Test a constant series has no anomalies."""
        results = AnomalyDetector().detect_zscore_anomalies([5, 5, 5, 5])
        assert not any(r.is_anomaly for r in results)

    def test_iqr(self):
        """Test values beyond the fences are flagged."""
        data = list(range(1, 11)) + [100]
        results = AnomalyDetector().detect_iqr_anomalies(data)

        assert [r.value for r in results if r.is_anomaly] == [100]
        assert results[-1].method == "iqr"

    def test_iqr_needs_four_points(self):
        """Test short series return no results."""
        assert AnomalyDetector().detect_iqr_anomalies([1, 2, 3]) == []

    def test_pattern_anomalies(self):
        """Test a feature set far from the others is flagged."""
        features = [{"a": 1.0, "b": 1.0} for _ in range(10)] + [{"a": 50.0, "b": 50.0}]
        results = AnomalyDetector().detect_pattern_anomalies(features)

        assert [r.index for r in results if r.is_anomaly] == [10]
        assert results[10].method == "multivariate"


class TestSeasonalDecomposition:
    """Tests for additive decomposition."""

    def test_components_sum_to_values(self):
        """Test trend, seasonal and residual add back to the series."""
        data = [10, 20, 10, 20, 10, 20, 10, 20]
        result = SeasonalDecompositionModel().decompose(data, period=2)

        for value, t, s, r in zip(result.values, result.trend, result.seasonal, result.residual):
            assert t + s + r == pytest.approx(value)


class TestRiskAssessmentModel:
    """Tests for team risk scoring."""

    def features(self, **overrides):
        values = dict(
            team_id=1,
            avg_utilization=90.0,
            utilization_std_dev=5.0,
            velocity_trend=0.0,
            team_stability=1.0,
            workload_variability=0.05,
            seasonal_index=0.0,
            historical_accuracy=0.9,
            member_turnover=0.0
        )
        values.update(overrides)
        return FeatureVector(**values)

    def test_healthy_team(self):
        """Test a steady team gets the healthy recommendation."""
        risk = RiskAssessmentModel().calculate_burnout_risk(self.features())

        assert 0 <= risk.score <= 1
        assert risk.confidence == 0.9
        assert risk.recommendations == ["Team appears to be operating within healthy parameters"]

    def test_overloaded_team(self):
        """Test high utilization and turnover raise the score."""
        healthy = RiskAssessmentModel().calculate_burnout_risk(self.features())
        strained = RiskAssessmentModel().calculate_burnout_risk(self.features(
            avg_utilization=140.0, member_turnover=0.4, velocity_trend=-8.0
        ))

        assert strained.score > healthy.score
        assert "Consider reducing workload or adding team members" in strained.recommendations
        assert "Investigate causes of team member turnover" in strained.recommendations

    def test_capacity_risk(self):
        """Test capacity risk over recent observations."""
        points = [
            HistoricalDataPoint(None, 1, 10, 70.0, 35.0, 50.0, s) for s in range(1, 7)
        ]
        risk = RiskAssessmentModel().calculate_capacity_risk(points, target_utilization=90)

        assert risk.factors["over_commitment_risk"] == pytest.approx(0.4)
        assert risk.factors["accuracy_risk"] == pytest.approx(0.5)
        assert risk.confidence == 0.8

    def test_capacity_risk_requires_data(self):
        """Test an empty history is rejected."""
        with pytest.raises(InsufficientDataError):
            RiskAssessmentModel().calculate_capacity_risk([], target_utilization=90)
