"""Outcome measures service wrapped with circuit breaker protection.

Every backend operation runs through
:meth:`OutcomeMeasuresCircuitBreaker.execute`, so callers always receive
a result: the backend's answer, or a fallback marked ``fallback: True``.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from outcome_engine.breakers import events as ev
from outcome_engine.breakers.circuit_breaker import OutcomeMeasuresCircuitBreaker
from outcome_engine.breakers.models import BreakerAlert, CircuitState, CircuitStatus, StateChangeEvent
from outcome_engine.config.models import CircuitBreakerConfig
from outcome_engine.services.backend import OutcomeMeasuresBackend

logger = logging.getLogger(__name__)

SERVICE_NAME = "OutcomeMeasuresService"


def _rate(count: int, total: int) -> str:
    if total <= 0:
        return "N/A"
    return f"{count / total * 100:.2f}%"


class OutcomeMeasuresServiceWithCircuitBreaker:
    """Resilient facade over an :class:`OutcomeMeasuresBackend`.

    Example:
        >>> service = OutcomeMeasuresServiceWithCircuitBreaker(backend)
        >>> dashboard = await service.get_dashboard_data("nurse-1")
        >>> service.get_health_status()["overall"]["status"]
        'operational'
    """

    def __init__(
        self,
        backend: OutcomeMeasuresBackend,
        config: CircuitBreakerConfig | None = None,
        breaker: OutcomeMeasuresCircuitBreaker | None = None,
    ) -> None:
        """Initialize the protected service.

        Args:
            backend: Service doing the real work
            config: Breaker configuration (ignored when ``breaker`` is given)
            breaker: Pre-built breaker to share or inject
        """
        self.backend = backend
        if breaker is None:
            config = config or CircuitBreakerConfig(service_name=SERVICE_NAME)
            breaker = OutcomeMeasuresCircuitBreaker(config)
        self.circuit_breaker = breaker
        self._setup_monitoring()

    # --- Protected operations ---

    async def get_dashboard_data(self, user_id: str, options: dict[str, Any] | None = None) -> Any:
        options = options or {}
        return await self.circuit_breaker.execute(
            lambda: self.backend.get_dashboard_data(user_id, options),
            "getDashboardData",
            {"user_id": user_id, "options": options},
        )

    async def get_quality_indicators(self, user_id: str, filters: dict[str, Any] | None = None) -> Any:
        filters = filters or {}
        return await self.circuit_breaker.execute(
            lambda: self.backend.get_quality_indicators(user_id, filters),
            "getQualityIndicators",
            {"user_id": user_id, "filters": filters},
        )

    async def get_trends(self, user_id: str, options: dict[str, Any] | None = None) -> Any:
        options = options or {}
        return await self.circuit_breaker.execute(
            lambda: self.backend.get_trends(user_id, options),
            "getTrends",
            {"user_id": user_id, "options": options},
        )

    async def get_benchmarks(self, user_id: str, criteria: dict[str, Any] | None = None) -> Any:
        criteria = criteria or {}
        return await self.circuit_breaker.execute(
            lambda: self.backend.get_benchmarks(user_id, criteria),
            "getBenchmarks",
            {"user_id": user_id, "criteria": criteria},
        )

    async def create_outcome_measure(self, user_id: str, measure_data: dict[str, Any]) -> Any:
        return await self.circuit_breaker.execute(
            lambda: self.backend.create_outcome_measure(user_id, measure_data),
            "createOutcomeMeasure",
            {"user_id": user_id, "measure_data": measure_data},
        )

    async def update_outcome_measure(
        self, user_id: str, measure_id: str, update_data: dict[str, Any]
    ) -> Any:
        return await self.circuit_breaker.execute(
            lambda: self.backend.update_outcome_measure(user_id, measure_id, update_data),
            "updateOutcomeMeasure",
            {"user_id": user_id, "measure_id": measure_id, "update_data": update_data},
        )

    async def delete_outcome_measure(self, user_id: str, measure_id: str) -> Any:
        return await self.circuit_breaker.execute(
            lambda: self.backend.delete_outcome_measure(user_id, measure_id),
            "deleteOutcomeMeasure",
            {"user_id": user_id, "measure_id": measure_id},
        )

    async def get_outcome_measure_by_id(self, user_id: str, measure_id: str) -> Any:
        return await self.circuit_breaker.execute(
            lambda: self.backend.get_outcome_measure_by_id(user_id, measure_id),
            "getOutcomeMeasureById",
            {"user_id": user_id, "measure_id": measure_id},
        )

    async def list_outcome_measures(self, user_id: str, options: dict[str, Any] | None = None) -> Any:
        options = options or {}
        return await self.circuit_breaker.execute(
            lambda: self.backend.list_outcome_measures(user_id, options),
            "listOutcomeMeasures",
            {"user_id": user_id, "options": options},
        )

    async def get_ai_analytics(
        self, user_id: str, analytics_config: dict[str, Any] | None = None
    ) -> Any:
        analytics_config = analytics_config or {}
        return await self.circuit_breaker.execute(
            lambda: self.backend.get_ai_analytics(user_id, analytics_config),
            "getAIAnalytics",
            {"user_id": user_id, "analytics_config": analytics_config},
        )

    async def extract_from_oasis(self, user_id: str, oasis_data: dict[str, Any]) -> Any:
        return await self.circuit_breaker.execute(
            lambda: self.backend.extract_from_oasis(user_id, oasis_data),
            "extractFromOASIS",
            {"user_id": user_id, "oasis_data": oasis_data},
        )

    async def extract_from_soap(self, user_id: str, soap_data: dict[str, Any]) -> Any:
        return await self.circuit_breaker.execute(
            lambda: self.backend.extract_from_soap(user_id, soap_data),
            "extractFromSOAP",
            {"user_id": user_id, "soap_data": soap_data},
        )

    # --- Health & metrics ---

    def get_health_status(self) -> dict[str, Any]:
        """Service health including circuit breaker status and request rates."""
        status = self.circuit_breaker.get_status()
        stats = status.stats
        total = stats.total_requests

        return {
            "service": SERVICE_NAME,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "circuit_breaker": status.to_dict(),
            "overall": {
                "healthy": status.is_healthy,
                "status": "operational" if status.state is CircuitState.CLOSED else "degraded",
                "uptime": self.circuit_breaker.uptime,
            },
            "metrics": {
                "total_requests": total,
                "success_rate": _rate(stats.total_successes, total),
                "failure_rate": _rate(stats.total_failures, total),
                "fallback_rate": _rate(stats.total_fallbacks, total),
            },
        }

    def get_metrics(self) -> dict[str, Any]:
        """Detailed breaker metrics for dashboards."""
        status = self.circuit_breaker.get_status()
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "circuit_breaker": {
                "state": status.state.value,
                "failure_count": status.failure_count,
                "consecutive_successes": status.consecutive_successes,
                "is_healthy": status.is_healthy,
            },
            "statistics": status.stats.to_dict(),
            "configuration": {
                "failure_threshold": status.config["failure_threshold"],
                "success_threshold": status.config["success_threshold"],
                "open_timeout": status.config["open_timeout"],
                "monitor_window": status.config["monitor_window"],
            },
        }

    # --- Administration ---

    def force_circuit_breaker_state(self, state: CircuitState | str) -> None:
        self.circuit_breaker.force_state(state)

    def reset_circuit_breaker(self) -> None:
        self.circuit_breaker.reset()

    def _setup_monitoring(self) -> None:
        self.circuit_breaker.on(ev.STATE_CHANGE, self._log_state_change)
        self.circuit_breaker.on(ev.ALERT, self._log_alert)
        self.circuit_breaker.on(ev.HEALTH_CHECK, self._log_health_check)

    def _log_state_change(self, event: StateChangeEvent) -> None:
        changed_at = datetime.fromtimestamp(event.timestamp, tz=timezone.utc).isoformat()
        logger.info(
            f"[{SERVICE_NAME}] Circuit breaker state changed: "
            f"{event.from_state.value} -> {event.to_state.value} "
            f"(at={changed_at}, failures={event.failure_count})"
        )

    def _log_alert(self, alert: BreakerAlert) -> None:
        logger.error(f"[{SERVICE_NAME}] ALERT: {alert.type.value} {alert.to_dict()}")

    def _log_health_check(self, status: CircuitStatus) -> None:
        if status.is_healthy:
            return
        logger.warning(
            f"[{SERVICE_NAME}] Health check failed: state={status.state.value}, "
            f"failures={status.failure_count}, "
            f"success_rate={_rate(status.stats.total_successes, status.stats.total_requests)}"
        )

    def destroy(self) -> None:
        self.circuit_breaker.destroy()
