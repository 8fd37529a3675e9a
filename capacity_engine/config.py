"""
Configuration

Loads engine settings from config/config.yaml and the environment.
"""

import os
from typing import Optional

import yaml

from .hours import DEFAULT_WORK_DAYS, parse_work_days


DEFAULT_CACHE_TTLS = {
    "collector": 300,
    "capacity": 120,
    "predictions": 600,
    "performance": 900,
    "insights": 300,
}


class Config:
    """Load configuration from config.yaml and environment."""

    def __init__(self, config_path: str = "config/config.yaml"):
        self.config = {}

        if os.path.exists(config_path):
            with open(config_path) as f:
                self.config = yaml.safe_load(f) or {}

        # Override with environment variables
        self._load_env()

    def _load_env(self):
        """Load configuration from environment variables."""
        env_mapping = {
            "RECORD_STORE_URL": ("record_store", "url"),
            "RECORD_STORE_TOKEN": ("record_store", "token"),
            "CAPACITY_WORK_DAYS": ("calendar", "work_days"),
            "LOG_LEVEL": ("logging", "level"),
            "LOG_JSON": ("logging", "json"),
        }

        for env_var, (section, key) in env_mapping.items():
            value = os.getenv(env_var)
            if value:
                if section not in self.config:
                    self.config[section] = {}
                self.config[section][key] = value

    def get(self, section: str, key: str, default=None):
        """Get configuration value."""
        return (self.config.get(section) or {}).get(key, default)

    @property
    def record_store_url(self) -> Optional[str]:
        return self.get("record_store", "url")

    @property
    def record_store_token(self) -> Optional[str]:
        return self.get("record_store", "token")

    @property
    def work_days(self) -> frozenset[int]:
        value = self.get("calendar", "work_days")
        if not value:
            return DEFAULT_WORK_DAYS
        return parse_work_days(value)

    def cache_ttl(self, component: str) -> float:
        """TTL in seconds for a component's cache."""
        return float(self.get("cache", component, DEFAULT_CACHE_TTLS[component]))

    @property
    def log_level(self) -> str:
        return self.get("logging", "level", "INFO")

    @property
    def log_json(self) -> bool:
        value = self.get("logging", "json", False)
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes")
        return bool(value)

    @property
    def alerts(self) -> dict:
        """Per alert type overrides, keyed by alert type value."""
        return self.config.get("alerts") or {}
