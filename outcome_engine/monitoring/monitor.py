"""Monitoring and alerting across registered circuit breakers.

Tracks current and historical metrics per breaker, raises alerts on
state changes and high failure rates, and forwards alerts to the
configured channels (webhooks, Prometheus, Sentry).
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from outcome_engine.alerts.webhook import Alert, AlertSeverity, WebhookAlerter
from outcome_engine.breakers import events as ev
from outcome_engine.breakers.circuit_breaker import OutcomeMeasuresCircuitBreaker
from outcome_engine.breakers.events import Listener
from outcome_engine.breakers.models import (
    AlertType,
    BreakerAlert,
    CircuitState,
    CircuitStatus,
    FailureEvent,
    FallbackEvent,
    StateChangeEvent,
)
from outcome_engine.config.models import MonitorConfig
from outcome_engine.monitoring.metrics import MetricsService
from outcome_engine.monitoring.sentry_service import SentryService

logger = logging.getLogger(__name__)

ALERT_SEVERITY: dict[str, AlertSeverity] = {
    AlertType.CIRCUIT_OPENED.value: AlertSeverity.HIGH,
    AlertType.CIRCUIT_RECOVERED.value: AlertSeverity.INFO,
    AlertType.HIGH_FAILURE_RATE.value: AlertSeverity.MEDIUM,
    AlertType.SLOW_RESPONSE.value: AlertSeverity.MEDIUM,
    AlertType.SERVICE_DEGRADED.value: AlertSeverity.MEDIUM,
    AlertType.SERVICE_RECOVERED.value: AlertSeverity.INFO,
}


def alert_severity(alert_type: str) -> AlertSeverity:
    return ALERT_SEVERITY.get(alert_type, AlertSeverity.LOW)


def _percent(count: int, total: int, empty: float) -> float:
    if total <= 0:
        return empty
    return round(count / total * 100, 2)


@dataclass
class BreakerMetrics:
    """Current metrics for one registered breaker."""
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_rate: float = 100.0
    failure_rate: float = 0.0
    fallback_rate: float = 0.0
    is_healthy: bool = True
    last_state_change: float | None = None
    uptime: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data


@dataclass
class AlertState:
    high_failure_rate: bool = False
    last_alert_time: float | None = None


class CircuitBreakerMonitor:
    """Registry and observer for many circuit breakers.

    Example:
        >>> monitor = CircuitBreakerMonitor(MonitorConfig(environment="production"))
        >>> monitor.register_circuit_breaker("outcome_measures", breaker)
        >>> monitor.start_monitoring()
        >>> monitor.get_metrics_summary()
        {'total': 1, 'healthy': 1, 'degraded': 0, 'failed': 0, ...}
    """

    def __init__(
        self,
        config: MonitorConfig | None = None,
        alerter: WebhookAlerter | None = None,
        metrics: MetricsService | None = None,
        sentry: SentryService | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize monitor.

        Args:
            config: Monitor configuration
            alerter: Webhook delivery for alerts
            metrics: Prometheus metrics sink
            sentry: Sentry sink for high-severity alerts and errors
            clock: Wall-clock source in epoch seconds
        """
        self.config = config or MonitorConfig()
        self.alerter = alerter
        self.metrics = metrics
        self.sentry = sentry
        self._clock = clock

        self._breakers: dict[str, OutcomeMeasuresCircuitBreaker] = {}
        self._listeners: dict[str, list[tuple[str, Listener]]] = {}
        self._current: dict[str, BreakerMetrics] = {}
        self._historical: dict[str, list[dict[str, Any]]] = {}
        self._alert_states: dict[str, AlertState] = {}
        self._alerts: list[Alert] = []

        self._health_task: asyncio.Task[None] | None = None
        self._collection_task: asyncio.Task[None] | None = None
        self._deliveries: set[asyncio.Task[bool]] = set()

    # --- Registration ---

    @property
    def circuit_breakers(self) -> dict[str, OutcomeMeasuresCircuitBreaker]:
        return dict(self._breakers)

    def register_circuit_breaker(self, name: str, breaker: OutcomeMeasuresCircuitBreaker) -> bool:
        """Start observing a breaker under ``name``.

        Returns:
            False if the name is already registered
        """
        if name in self._breakers:
            logger.warning(f"Circuit breaker {name} is already registered")
            return False

        self._breakers[name] = breaker
        self._current[name] = BreakerMetrics(uptime=breaker.uptime)
        self._historical[name] = []
        self._alert_states[name] = AlertState()

        handlers: list[tuple[str, Listener]] = [
            (ev.STATE_CHANGE, lambda event: self._handle_state_change(name, event)),
            (ev.FAILURE, lambda event: self._handle_failure(name, event)),
            (ev.FALLBACK, lambda event: self._handle_fallback(name, event)),
            (ev.HEALTH_CHECK, lambda status: self._handle_health_check(name, status)),
            (ev.ALERT, lambda alert: self._handle_breaker_alert(name, alert)),
        ]
        for event_name, handler in handlers:
            breaker.on(event_name, handler)
        self._listeners[name] = handlers

        if self.metrics:
            self.metrics.set_circuit_state(name, breaker.state)

        logger.info(f"Circuit breaker {name} registered for monitoring")
        return True

    def unregister_circuit_breaker(self, name: str) -> bool:
        if name not in self._breakers:
            logger.warning(f"Circuit breaker {name} is not registered")
            return False

        breaker = self._breakers.pop(name)
        for event_name, handler in self._listeners.pop(name, []):
            breaker.off(event_name, handler)
        self._current.pop(name, None)
        self._historical.pop(name, None)
        self._alert_states.pop(name, None)

        logger.info(f"Circuit breaker {name} unregistered from monitoring")
        return True

    # --- Event handlers ---

    def _handle_state_change(self, name: str, event: StateChangeEvent) -> None:
        current = self._current.get(name)
        if current:
            current.state = event.to_state
            current.last_state_change = event.timestamp

        if self.metrics:
            self.metrics.record_state_change(name, event.to_state)

        if event.to_state is CircuitState.OPEN:
            self.send_alert(name, AlertType.CIRCUIT_OPENED.value, {
                "message": f"Circuit breaker {name} has opened",
                "previous_state": event.from_state.value,
                "failure_count": event.failure_count,
                "timestamp": event.timestamp,
            })
        elif event.to_state is CircuitState.CLOSED and event.from_state is not CircuitState.CLOSED:
            self.send_alert(name, AlertType.CIRCUIT_RECOVERED.value, {
                "message": f"Circuit breaker {name} has recovered",
                "previous_state": event.from_state.value,
                "timestamp": event.timestamp,
            })

    def _handle_failure(self, name: str, event: FailureEvent) -> None:
        if self.metrics:
            self.metrics.record_failure(name, event.failure_type.value)

        breaker = self._breakers.get(name)
        if breaker is not None and name in self._current:
            self._refresh_current(name, breaker.get_status())
        self._check_failure_rate_alert(name)

    def _handle_fallback(self, name: str, event: FallbackEvent) -> None:
        if self.metrics:
            self.metrics.record_fallback(name, event.operation_type, event.reason)

    def _handle_health_check(self, name: str, status: CircuitStatus) -> None:
        self.update_metrics(name, status)

    def _handle_breaker_alert(self, name: str, alert: BreakerAlert) -> None:
        self._dispatch(Alert(
            id=f"{name}-{alert.type.value}-{int(self._clock() * 1000)}",
            service=alert.service,
            circuit_breaker=name,
            type=alert.type.value,
            severity=alert_severity(alert.type.value),
            environment=self.config.environment,
            details=dict(alert.details),
            timestamp=self._now(),
        ))

    # --- Metrics ---

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    def _refresh_current(self, name: str, status: CircuitStatus) -> BreakerMetrics:
        stats = status.stats
        total = stats.total_requests
        current = self._current.setdefault(name, BreakerMetrics())
        current.state = status.state
        current.failure_count = status.failure_count
        current.success_rate = _percent(stats.total_successes, total, 100.0)
        current.failure_rate = _percent(stats.total_failures, total, 0.0)
        current.fallback_rate = _percent(stats.total_fallbacks, total, 0.0)
        current.is_healthy = status.is_healthy
        current.last_state_change = stats.last_state_change
        current.uptime = max(0.0, self._clock() - stats.start_time)
        return current

    def update_metrics(self, name: str, status: CircuitStatus) -> None:
        """Refresh current metrics from a status snapshot and record a history point."""
        if name not in self._current:
            return

        current = self._refresh_current(name, status)
        historical = self._historical.setdefault(name, [])
        historical.append({"timestamp": self._clock(), **current.to_dict()})

        overflow = len(historical) - self.config.max_metrics_points
        if overflow > 0:
            del historical[:overflow]

    def _check_failure_rate_alert(self, name: str) -> None:
        current = self._current.get(name)
        alert_state = self._alert_states.get(name)
        if current is None or alert_state is None:
            return

        exceeded = current.failure_rate > self.config.failure_rate_threshold * 100

        if exceeded and not alert_state.high_failure_rate:
            alert_state.high_failure_rate = True
            alert_state.last_alert_time = self._clock()
            self.send_alert(name, AlertType.HIGH_FAILURE_RATE.value, {
                "message": f"High failure rate detected for {name}",
                "failure_rate": current.failure_rate,
                "threshold": self.config.failure_rate_threshold * 100,
                "timestamp": alert_state.last_alert_time,
            })
        elif not exceeded and alert_state.high_failure_rate:
            alert_state.high_failure_rate = False

    # --- Alerts ---

    def send_alert(self, name: str, alert_type: str, details: dict[str, Any]) -> Alert:
        """Build, record and forward a monitor alert."""
        alert = Alert(
            id=f"{name}-{alert_type}-{int(self._clock() * 1000)}",
            service=self.config.service_name,
            circuit_breaker=name,
            type=alert_type,
            severity=alert_severity(alert_type),
            environment=self.config.environment,
            details=details,
            timestamp=self._now(),
        )
        self._dispatch(alert)
        return alert

    def _dispatch(self, alert: Alert) -> None:
        self._record_alert(alert)

        if self.metrics:
            self.metrics.record_alert(alert.circuit_breaker, alert.type, alert.severity.value)

        if self.sentry and alert.severity is AlertSeverity.HIGH:
            self.sentry.capture_alert(alert)

        if self.alerter is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running event loop, {alert.type} alert for {alert.circuit_breaker} not delivered")
            return
        task = loop.create_task(self.alerter.send_alert(alert))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)

    def _record_alert(self, alert: Alert) -> None:
        self._alerts.append(alert)
        if len(self._alerts) > self.config.max_alert_history:
            del self._alerts[:100]

    async def flush_alerts(self) -> None:
        """Wait for in-flight alert deliveries."""
        if self._deliveries:
            await asyncio.gather(*list(self._deliveries), return_exceptions=True)

    # --- Reporting ---

    def get_current_metrics(self) -> dict[str, Any]:
        return {
            "timestamp": self._now().isoformat(),
            "circuit_breakers": {name: m.to_dict() for name, m in self._current.items()},
            "summary": self.get_metrics_summary(),
        }

    def get_historical_metrics(self, name: str, duration: float = 3600.0) -> list[dict[str, Any]]:
        """History points for ``name`` newer than ``duration`` seconds."""
        cutoff = self._clock() - duration
        return [p for p in self._historical.get(name, []) if p["timestamp"] > cutoff]

    def get_metrics_summary(self) -> dict[str, Any]:
        breakers = list(self._current.values())
        total = len(breakers)
        if total == 0:
            return {"total": 0, "healthy": 0, "degraded": 0, "failed": 0}

        healthy = sum(1 for m in breakers if m.state is CircuitState.CLOSED and m.is_healthy)
        degraded = sum(
            1 for m in breakers
            if m.state is CircuitState.HALF_OPEN
            or (m.state is CircuitState.CLOSED and not m.is_healthy)
        )
        failed = sum(1 for m in breakers if m.state is CircuitState.OPEN)

        return {
            "total": total,
            "healthy": healthy,
            "degraded": degraded,
            "failed": failed,
            "healthy_percentage": round(healthy / total * 100),
            "average_success_rate": round(sum(m.success_rate for m in breakers) / total),
        }

    def get_recent_alerts(self, limit: int = 50) -> list[Alert]:
        """Most recent alerts, newest first."""
        if limit <= 0:
            return []
        return list(reversed(self._alerts[-limit:]))

    # --- Periodic work ---

    def perform_health_checks(self) -> None:
        for name, breaker in list(self._breakers.items()):
            try:
                self.update_metrics(name, breaker.get_status())
            except Exception as e:
                logger.error(f"Health check failed for {name}: {e}")
                if self.sentry:
                    self.sentry.capture_error(e, context={"circuit_breaker": name})

    def collect_metrics(self) -> dict[str, Any]:
        """Apply retention to history and alerts, then return current metrics."""
        now = self._clock()
        cutoff = now - self.config.metrics_retention_period

        for name, historical in self._historical.items():
            self._historical[name] = [p for p in historical if p["timestamp"] > cutoff]

        self._alerts = [a for a in self._alerts if a.timestamp.timestamp() > cutoff]
        return self.get_current_metrics()

    def start_monitoring(self) -> None:
        """Start the health check and metrics collection loops (needs a running loop)."""
        loop = asyncio.get_running_loop()
        if self._health_task is None or self._health_task.done():
            self._health_task = loop.create_task(
                self._run_every(self.config.health_check_interval, self.perform_health_checks)
            )
        if self._collection_task is None or self._collection_task.done():
            self._collection_task = loop.create_task(
                self._run_every(self.config.metrics_collection_interval, self.collect_metrics)
            )
        logger.info("Circuit breaker monitoring started")

    async def _run_every(self, interval: float, job: Callable[[], Any]) -> None:
        while True:
            await asyncio.sleep(interval)
            job()

    async def stop_monitoring(self) -> None:
        tasks = [t for t in (self._health_task, self._collection_task) if t is not None]
        self._health_task = None
        self._collection_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        if tasks:
            logger.info("Circuit breaker monitoring stopped")

    async def destroy(self) -> None:
        """Stop loops, detach from every breaker and drop collected data."""
        await self.stop_monitoring()
        for name in list(self._breakers):
            self.unregister_circuit_breaker(name)
        self._alerts.clear()
