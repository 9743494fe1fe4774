"""Fallback strategies returned when a protected operation cannot run.

Every strategy is called as ``strategy(context, reason)`` and must return
a result without raising. Results follow the outcome-measures convention
``{"success": False, "fallback": True, "reason": ...}`` so callers can tell
a degraded answer from a real one.
"""

import math
from datetime import datetime, timezone
from typing import Any, Callable, Iterator

FallbackStrategy = Callable[[Any, str], Any]

DEFAULT_OPERATION = "default"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _context_value(context: Any, key: str, default: Any = None) -> Any:
    if isinstance(context, dict):
        return context.get(key, default)
    return default


class FallbackRegistry:
    """Per-breaker mapping of operation type to fallback strategy.

    Lookups for unregistered operation types resolve to the ``"default"``
    strategy, which can be replaced but never removed.
    """

    def __init__(self, retry_after_seconds: float = 60.0, install_defaults: bool = True) -> None:
        """Initialize registry.

        Args:
            retry_after_seconds: Hint returned by write/default fallbacks
                (usually the breaker's open timeout)
            install_defaults: Register the outcome-measures strategies
        """
        self.retry_after = math.ceil(retry_after_seconds)
        self._strategies: dict[str, FallbackStrategy] = {}
        if install_defaults:
            self._install_defaults()
        else:
            self.register(DEFAULT_OPERATION, self._default)

    def register(self, operation_type: str, strategy: FallbackStrategy) -> None:
        if not callable(strategy):
            raise TypeError(f"Fallback strategy for '{operation_type}' must be callable")
        self._strategies[operation_type] = strategy

    def unregister(self, operation_type: str) -> bool:
        if operation_type == DEFAULT_OPERATION:
            raise ValueError("The default fallback strategy cannot be removed")
        return self._strategies.pop(operation_type, None) is not None

    def get(self, operation_type: str) -> FallbackStrategy:
        return self._strategies.get(operation_type, self._strategies[DEFAULT_OPERATION])

    def __contains__(self, operation_type: object) -> bool:
        return operation_type in self._strategies

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._strategies))

    def __len__(self) -> int:
        return len(self._strategies)

    # --- Default strategies ---

    def _install_defaults(self) -> None:
        self.register("getDashboardData", self._dashboard_data)
        self.register("getQualityIndicators", self._quality_indicators)
        self.register("getTrends", self._trends)
        self.register("getBenchmarks", self._benchmarks)
        self.register(
            "createOutcomeMeasure",
            self._write_failure(
                "Unable to create outcome measure at this time. Please try again later."
            ),
        )
        self.register(
            "updateOutcomeMeasure",
            self._write_failure(
                "Unable to update outcome measure at this time. "
                "Changes have been queued for retry."
            ),
        )
        self.register(
            "deleteOutcomeMeasure",
            self._write_failure(
                "Unable to delete outcome measure at this time. Please try again later."
            ),
        )
        self.register("getAIAnalytics", self._ai_analytics)
        self.register(DEFAULT_OPERATION, self._default)

    def _dashboard_data(self, context: Any, reason: str) -> dict[str, Any]:
        timestamp = _now_iso()
        return {
            "success": False,
            "fallback": True,
            "reason": reason,
            "data": {
                "quality_indicators": [],
                "trends": {},
                "benchmarks": {},
                "recent_assessments": [],
                "alerts": [
                    {
                        "type": "warning",
                        "message": "Outcome measures service temporarily unavailable. "
                        "Showing cached data.",
                        "timestamp": timestamp,
                    }
                ],
            },
            "metadata": {
                "source": "circuit_breaker_fallback",
                "timestamp": timestamp,
                "user_id": _context_value(context, "user_id") or "unknown",
            },
        }

    def _quality_indicators(self, context: Any, reason: str) -> dict[str, Any]:
        return {
            "success": False,
            "fallback": True,
            "reason": reason,
            "indicators": [],
            "summary": {
                "total": 0,
                "improving": 0,
                "stable": 0,
                "declining": 0,
                "last_updated": None,
            },
            "message": "Quality indicators temporarily unavailable due to service issues.",
        }

    def _trends(self, context: Any, reason: str) -> dict[str, Any]:
        return {
            "success": False,
            "fallback": True,
            "reason": reason,
            "trends": {},
            "analysis": {
                "overall_trend": "unknown",
                "confidence": 0,
                "data_points": 0,
                "message": "Trend analysis temporarily unavailable.",
            },
        }

    def _benchmarks(self, context: Any, reason: str) -> dict[str, Any]:
        return {
            "success": False,
            "fallback": True,
            "reason": reason,
            "benchmarks": {},
            "comparisons": [],
            "message": "Benchmark data temporarily unavailable.",
        }

    def _ai_analytics(self, context: Any, reason: str) -> dict[str, Any]:
        return {
            "success": False,
            "fallback": True,
            "reason": reason,
            "analytics": {
                "patterns": {},
                "predictions": [],
                "recommendations": [],
                "confidence": 0,
            },
            "message": "AI analytics temporarily unavailable. "
            "Basic statistics are still available.",
        }

    def _write_failure(self, error: str) -> FallbackStrategy:
        def strategy(context: Any, reason: str) -> dict[str, Any]:
            return {
                "success": False,
                "fallback": True,
                "reason": reason,
                "error": error,
                "retry_after": self.retry_after,
            }

        return strategy

    def _default(self, context: Any, reason: str) -> dict[str, Any]:
        return {
            "success": False,
            "fallback": True,
            "reason": reason,
            "error": "Service temporarily unavailable. Please try again later.",
            "retry_after": self.retry_after,
        }
