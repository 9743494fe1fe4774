"""Circuit breaker protection for outcome measures downstream calls."""

from outcome_engine.breakers.circuit_breaker import OutcomeMeasuresCircuitBreaker
from outcome_engine.breakers.classifier import classify_error
from outcome_engine.breakers.errors import (
    CIRCUIT_OPEN,
    OPERATION_CANCELLED,
    OPERATION_FAILED,
    OPERATION_TIMEOUT,
    FallbackStrategyError,
    OperationCancelledError,
    OperationTimeoutError,
)
from outcome_engine.breakers.events import EventBus
from outcome_engine.breakers.fallbacks import FallbackRegistry, FallbackStrategy
from outcome_engine.breakers.models import (
    AlertType,
    BreakerAlert,
    CircuitState,
    CircuitStatistics,
    CircuitStatus,
    FailureEvent,
    FailureRecord,
    FailureType,
    FallbackEvent,
    StateChangeEvent,
)

__all__ = [
    "CIRCUIT_OPEN",
    "OPERATION_CANCELLED",
    "OPERATION_FAILED",
    "OPERATION_TIMEOUT",
    "AlertType",
    "BreakerAlert",
    "CircuitState",
    "CircuitStatistics",
    "CircuitStatus",
    "EventBus",
    "FailureEvent",
    "FailureRecord",
    "FailureType",
    "FallbackEvent",
    "FallbackRegistry",
    "FallbackStrategy",
    "FallbackStrategyError",
    "OperationCancelledError",
    "OperationTimeoutError",
    "OutcomeMeasuresCircuitBreaker",
    "StateChangeEvent",
    "classify_error",
]
