"""Data models for the circuit breaker system."""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "CLOSED"        # Normal operation
    OPEN = "OPEN"            # Failing fast
    HALF_OPEN = "HALF_OPEN"  # Testing if the service has recovered


class FailureType(str, Enum):
    """Failure buckets, in classification priority order."""
    TIMEOUT = "TIMEOUT"
    CONNECTION = "CONNECTION"
    DATABASE = "DATABASE"
    VALIDATION = "VALIDATION"
    AI_SERVICE = "AI_SERVICE"
    UNKNOWN = "UNKNOWN"


class AlertType(str, Enum):
    """Alerts raised by breakers and the monitor."""
    CIRCUIT_OPENED = "CIRCUIT_OPENED"
    CIRCUIT_CLOSED = "CIRCUIT_CLOSED"
    CIRCUIT_RECOVERED = "CIRCUIT_RECOVERED"
    HIGH_FAILURE_RATE = "HIGH_FAILURE_RATE"
    SLOW_RESPONSE = "SLOW_RESPONSE"
    SERVICE_DEGRADED = "SERVICE_DEGRADED"
    SERVICE_RECOVERED = "SERVICE_RECOVERED"


@dataclass(frozen=True)
class FailureRecord:
    """One failure inside the sliding monitor window."""

    timestamp: float
    error_message: str
    failure_type: FailureType


@dataclass
class CircuitStatistics:
    """Request counters and gauges for a breaker.

    Counters are monotonic between resets. ``start_time`` survives
    :meth:`reset` so uptime is measured from breaker construction.
    """

    start_time: float
    total_requests: int = 0
    total_successes: int = 0
    total_failures: int = 0
    total_timeouts: int = 0
    total_fallbacks: int = 0
    state_changes: int = 0
    last_state_change: float | None = None

    def reset(self) -> None:
        """Zero every counter except the start time."""
        self.total_requests = 0
        self.total_successes = 0
        self.total_failures = 0
        self.total_timeouts = 0
        self.total_fallbacks = 0
        self.state_changes = 0
        self.last_state_change = None

    def copy(self) -> "CircuitStatistics":
        return CircuitStatistics(**asdict(self))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CircuitStatus:
    """Read-only snapshot of a breaker."""

    state: CircuitState
    failure_count: int
    consecutive_successes: int
    last_failure_time: float | None
    next_attempt_time: float | None
    stats: CircuitStatistics
    config: dict[str, Any]
    is_healthy: bool

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "consecutive_successes": self.consecutive_successes,
            "last_failure_time": self.last_failure_time,
            "next_attempt_time": self.next_attempt_time,
            "stats": self.stats.to_dict(),
            "config": dict(self.config),
            "is_healthy": self.is_healthy,
        }


@dataclass(frozen=True)
class StateChangeEvent:
    from_state: CircuitState
    to_state: CircuitState
    timestamp: float
    failure_count: int


@dataclass(frozen=True)
class FailureEvent:
    error: BaseException
    state: CircuitState
    failure_count: int
    failure_type: FailureType
    timestamp: float


@dataclass(frozen=True)
class FallbackEvent:
    operation_type: str
    reason: str
    context: Any
    result: Any
    timestamp: float


@dataclass(frozen=True)
class BreakerAlert:
    """Alert emitted by a breaker's built-in alerting rules."""

    type: AlertType
    service: str
    timestamp: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "service": self.service,
            "timestamp": self.timestamp,
            "details": dict(self.details),
        }
