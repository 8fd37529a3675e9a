"""
Wires the record store, collector, calculators, predictor, aggregator and
alert engine into one object.
"""

import random
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Optional

from .alerts import AlertEngine, build_configurations
from .cache import TTLCache
from .capacity import CapacityCalculator
from .collector import DataCollector
from .config import Config
from .integrations.records import HTTPRecordStore, RecordStore
from .log import get_logger
from .performance import PerformanceMetricsAggregator
from .predictor import PredictiveAnalyticsEngine

logger = get_logger(__name__)


@dataclass
class CapacityAnalytics:
    """
    One instance of each engine component sharing a record store.

    Usage:
        analytics = CapacityAnalytics.from_config(Config())
        await analytics.alerts.run_monitoring_cycle()
        forecast = await analytics.predictor.forecast_sprint_capacity(1)
    """
    store: RecordStore
    collector: DataCollector
    capacity: CapacityCalculator
    predictor: PredictiveAnalyticsEngine
    performance: PerformanceMetricsAggregator
    alerts: AlertEngine
    today: Callable[[], date] = date.today

    @classmethod
    def from_config(
        cls,
        config: Config,
        store: Optional[RecordStore] = None,
        today: Callable[[], date] = date.today,
        now: Callable[[], datetime] = datetime.now,
        rng: Optional[random.Random] = None
    ) -> "CapacityAnalytics":
        """Build the components; without a store, an HTTP store is created from config."""
        if store is None:
            store = HTTPRecordStore(config.record_store_url, config.record_store_token)

        work_days = config.work_days
        collector = DataCollector(
            store,
            cache=TTLCache(config.cache_ttl("collector")),
            work_days=work_days,
            today=today
        )
        capacity = CapacityCalculator(
            store,
            cache=TTLCache(config.cache_ttl("capacity")),
            work_days=work_days,
            today=today
        )
        predictor = PredictiveAnalyticsEngine(
            collector,
            cache=TTLCache(config.cache_ttl("predictions")),
            rng=rng,
            work_days=work_days,
            today=today
        )
        performance = PerformanceMetricsAggregator(
            collector,
            cache=TTLCache(config.cache_ttl("performance")),
            today=today
        )
        alerts = AlertEngine(
            collector,
            predictor,
            performance,
            configurations=build_configurations(config.alerts),
            cache=TTLCache(config.cache_ttl("insights")),
            now=now
        )

        logger.info(
            "capacity_analytics_ready",
            store=type(store).__name__,
            work_days=sorted(work_days)
        )
        return cls(store, collector, capacity, predictor, performance, alerts, today)
