"""Configuration package for the outcome measures engine."""

from .loader import load_config
from .models import (
    AlertingConfig,
    CircuitBreakerConfig,
    EngineConfig,
    MetricsSettings,
    MonitorConfig,
    SentrySettings,
)

__all__ = [
    "AlertingConfig",
    "CircuitBreakerConfig",
    "EngineConfig",
    "MetricsSettings",
    "MonitorConfig",
    "SentrySettings",
    "load_config",
]
