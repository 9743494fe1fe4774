"""Monitoring services for the outcome measures engine.

Provides observability capabilities:
- CircuitBreakerMonitor: Metrics, history and alerting across breakers
- MetricsService: Prometheus metrics for circuit breakers
- SentryService: Alert and error capture
"""

from outcome_engine.monitoring.metrics import MetricsConfig, MetricsService
from outcome_engine.monitoring.monitor import (
    BreakerMetrics,
    CircuitBreakerMonitor,
    alert_severity,
)
from outcome_engine.monitoring.sentry_service import (
    SentryConfig,
    SentryLevel,
    SentryService,
)

__all__ = [
    # Monitor
    "BreakerMetrics",
    "CircuitBreakerMonitor",
    "alert_severity",
    # Metrics
    "MetricsConfig",
    "MetricsService",
    # Sentry
    "SentryConfig",
    "SentryLevel",
    "SentryService",
]
