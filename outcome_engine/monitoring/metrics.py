"""Prometheus metrics for circuit breakers.

Example:
    >>> from outcome_engine.monitoring.metrics import MetricsService
    >>>
    >>> metrics = MetricsService(MetricsConfig(port=9090))
    >>> metrics.start_server()
    >>> metrics.set_circuit_state("outcome_measures", CircuitState.OPEN)
    >>> metrics.record_fallback("outcome_measures", "getTrends", "CIRCUIT_OPEN")
"""

import logging
import threading
from dataclasses import dataclass

from prometheus_client import CollectorRegistry, Counter, Gauge, start_http_server

from outcome_engine.breakers.errors import CIRCUIT_OPEN, OPERATION_FAILED, OPERATION_TIMEOUT
from outcome_engine.breakers.models import CircuitState
from outcome_engine.config.models import MetricsSettings

logger = logging.getLogger(__name__)

STATE_VALUES = {
    CircuitState.CLOSED: 0,
    CircuitState.HALF_OPEN: 1,
    CircuitState.OPEN: 2,
}


@dataclass(frozen=True)
class MetricsConfig:
    """Configuration for metrics service.

    Attributes:
        enabled: Whether metrics collection is enabled
        port: HTTP server port for Prometheus scraping
        prefix: Metric name prefix
    """

    enabled: bool = True
    port: int = 9090
    prefix: str = "outcome_engine"

    @classmethod
    def from_settings(cls, settings: MetricsSettings) -> "MetricsConfig":
        return cls(enabled=settings.enabled, port=settings.port, prefix=settings.prefix)


def fallback_reason_label(reason: str) -> str:
    """Collapse free-form failure messages into a bounded label set."""
    if reason in (CIRCUIT_OPEN, OPERATION_TIMEOUT):
        return reason
    return OPERATION_FAILED


class MetricsService:
    """Prometheus metrics for circuit breaker monitoring.

    Exposes, labelled by breaker name:
    - Circuit state gauge (0=closed, 1=half-open, 2=open)
    - State transitions
    - Failures by failure type
    - Fallbacks by operation type and reason
    - Alerts by type and severity

    Metrics are registered on ``registry`` (a private registry when not
    given) so several services can coexist in one process.
    """

    def __init__(
        self,
        config: MetricsConfig | None = None,
        registry: CollectorRegistry | None = None,
    ) -> None:
        """Initialize metrics service.

        Args:
            config: Metrics configuration (uses defaults if not provided)
            registry: Prometheus registry to register on
        """
        self.config = config or MetricsConfig()
        self.registry = registry or CollectorRegistry()
        self._server_started = False
        self._lock = threading.Lock()

        self._circuit_state: Gauge | None = None
        self._state_changes: Counter | None = None
        self._failures: Counter | None = None
        self._fallbacks: Counter | None = None
        self._alerts: Counter | None = None

        if self.config.enabled:
            self._initialize_metrics()

    def _initialize_metrics(self) -> None:
        """Initialize Prometheus metrics objects."""
        prefix = self.config.prefix

        self._circuit_state = Gauge(
            f"{prefix}_circuit_state",
            "Circuit breaker state (0=closed, 1=half-open, 2=open)",
            ["breaker"],
            registry=self.registry,
        )

        self._state_changes = Counter(
            f"{prefix}_circuit_state_changes_total",
            "Circuit breaker state transitions",
            ["breaker", "to_state"],
            registry=self.registry,
        )

        self._failures = Counter(
            f"{prefix}_operation_failures_total",
            "Protected operation failures",
            ["breaker", "failure_type"],
            registry=self.registry,
        )

        self._fallbacks = Counter(
            f"{prefix}_fallbacks_total",
            "Fallback results served",
            ["breaker", "operation_type", "reason"],
            registry=self.registry,
        )

        self._alerts = Counter(
            f"{prefix}_alerts_total",
            "Circuit breaker alerts raised",
            ["breaker", "alert_type", "severity"],
            registry=self.registry,
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self) -> bool:
        """Start the Prometheus HTTP server.

        Returns:
            True if server started successfully, False otherwise
        """
        if not self.config.enabled:
            logger.info("Metrics disabled, server not started")
            return False

        with self._lock:
            if self._server_started:
                logger.warning("Metrics server already started")
                return True

            try:
                start_http_server(self.config.port, registry=self.registry)
            except OSError as e:
                logger.error(f"Failed to start metrics server: {e}")
                return False
            self._server_started = True
            logger.info(f"Prometheus metrics server started on port {self.config.port}")
            return True

    @property
    def is_enabled(self) -> bool:
        return self.config.enabled

    def set_circuit_state(self, breaker: str, state: CircuitState) -> None:
        if self._circuit_state is None:
            return
        self._circuit_state.labels(breaker=breaker).set(STATE_VALUES[state])

    def record_state_change(self, breaker: str, to_state: CircuitState) -> None:
        if self._state_changes is None:
            return
        self._state_changes.labels(breaker=breaker, to_state=to_state.value).inc()
        self.set_circuit_state(breaker, to_state)

    def record_failure(self, breaker: str, failure_type: str) -> None:
        if self._failures is None:
            return
        self._failures.labels(breaker=breaker, failure_type=failure_type).inc()

    def record_fallback(self, breaker: str, operation_type: str, reason: str) -> None:
        """Record a fallback result.

        Args:
            breaker: Breaker name
            operation_type: Operation type the fallback served
            reason: Raw fallback reason (collapsed to a bounded label)
        """
        if self._fallbacks is None:
            return
        self._fallbacks.labels(
            breaker=breaker,
            operation_type=operation_type,
            reason=fallback_reason_label(reason),
        ).inc()

    def record_alert(self, breaker: str, alert_type: str, severity: str) -> None:
        if self._alerts is None:
            return
        self._alerts.labels(breaker=breaker, alert_type=alert_type, severity=severity).inc()
