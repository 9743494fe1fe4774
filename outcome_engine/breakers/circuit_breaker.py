"""Circuit breaker for outcome measures service resilience.

Wraps fragile downstream calls (database, AI provider, cache) so that
callers always get a result back:
- CLOSED: operations run under an execution timeout
- OPEN: calls fail fast to a fallback strategy
- HALF_OPEN: trial calls decide whether the service has recovered

Failures are counted over a sliding monitor window. Every failure path
(error, timeout, open circuit) resolves to the fallback strategy
registered for the operation type.
"""

import asyncio
import inspect
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable

from outcome_engine.breakers import events as ev
from outcome_engine.breakers.classifier import classify_error, error_message
from outcome_engine.breakers.errors import (
    CIRCUIT_OPEN,
    OPERATION_FAILED,
    FallbackStrategyError,
    OperationCancelledError,
    OperationTimeoutError,
)
from outcome_engine.breakers.events import EventBus, Listener
from outcome_engine.breakers.fallbacks import DEFAULT_OPERATION, FallbackRegistry, FallbackStrategy
from outcome_engine.breakers.models import (
    AlertType,
    BreakerAlert,
    CircuitState,
    CircuitStatistics,
    CircuitStatus,
    FailureEvent,
    FailureRecord,
    FallbackEvent,
    StateChangeEvent,
)
from outcome_engine.config.models import CircuitBreakerConfig

logger = logging.getLogger(__name__)

# Zero-argument callable returning an awaitable or a plain value
Operation = Callable[[], Any]

# (event name, payload) pairs collected under the lock and emitted after it
PendingEvents = list[tuple[str, Any]]


def _caller_cancelling() -> bool:
    """True when the task awaiting ``execute`` has a pending cancellation."""
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0


class OutcomeMeasuresCircuitBreaker:
    """Circuit breaker state machine with timeout and fallback handling.

    One instance protects one logical service and is shared by all of its
    concurrent callers. State, failure history, timers and statistics are
    owned by the instance; outside code changes them only through
    :meth:`force_state` and :meth:`reset`.

    Example:
        >>> breaker = OutcomeMeasuresCircuitBreaker(CircuitBreakerConfig(failure_threshold=3))
        >>> result = await breaker.execute(
        ...     lambda: backend.get_trends(user_id),
        ...     "getTrends",
        ...     {"user_id": user_id},
        ... )
        >>> if result.get("fallback"):
        ...     print("Degraded answer:", result["reason"])
    """

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        fallbacks: FallbackRegistry | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize circuit breaker.

        Args:
            config: Thresholds and timers (defaults if not provided)
            fallbacks: Fallback registry (outcome-measures defaults if not provided)
            clock: Wall-clock source in epoch seconds
        """
        self.config = config or CircuitBreakerConfig()
        self.fallbacks = fallbacks or FallbackRegistry(self.config.open_timeout)
        self._clock = clock

        # Guards every mutation; never held across an await
        self._lock = threading.RLock()
        self._events = EventBus(self.config.service_name)

        self._state = CircuitState.CLOSED
        self._failures: list[FailureRecord] = []
        self._consecutive_successes = 0
        self._last_failure_time: float | None = None
        self._next_attempt_time: float | None = None
        self._stats = CircuitStatistics(start_time=self._clock())

        # Monitoring
        self._monitoring = False
        self._health_task: asyncio.Task[None] | None = None
        self._alert_listeners: list[tuple[str, Listener]] = []

        if self.config.enable_monitoring:
            self.start_monitoring()

    # --- Read-only views ---

    @property
    def service_name(self) -> str:
        return self.config.service_name

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return len(self._failures)

    @property
    def consecutive_successes(self) -> int:
        return self._consecutive_successes

    @property
    def next_attempt_time(self) -> float | None:
        return self._next_attempt_time

    @property
    def stats(self) -> CircuitStatistics:
        """Copy of the current statistics."""
        with self._lock:
            return self._stats.copy()

    @property
    def uptime(self) -> float:
        """Seconds since construction (survives :meth:`reset`)."""
        return max(0.0, self._clock() - self._stats.start_time)

    @property
    def is_monitoring(self) -> bool:
        return self._monitoring

    # --- Listener registration ---

    def on(self, event: str, listener: Listener) -> Listener:
        """Subscribe to ``state_change``, ``failure``, ``fallback``, ``health_check`` or ``alert``."""
        return self._events.on(event, listener)

    def off(self, event: str, listener: Listener) -> bool:
        return self._events.off(event, listener)

    def remove_all_listeners(self, event: str | None = None) -> None:
        self._events.remove_all_listeners(event)
        self._alert_listeners = [
            (name, listener) for name, listener in self._alert_listeners
            if event is not None and name != event
        ]

    def listener_count(self, event: str) -> int:
        return self._events.listener_count(event)

    def register_fallback(self, operation_type: str, strategy: FallbackStrategy) -> None:
        """Register or replace the fallback strategy for an operation type."""
        self.fallbacks.register(operation_type, strategy)

    # --- Execution ---

    async def execute(
        self,
        operation: Operation,
        operation_type: str = DEFAULT_OPERATION,
        context: Any = None,
    ) -> Any:
        """Execute an operation with circuit breaker protection.

        Never raises for failures of the protected operation: errors,
        timeouts and open-circuit rejections all resolve to the fallback
        strategy registered for ``operation_type``.

        Args:
            operation: Zero-argument callable returning an awaitable or a value
            operation_type: Key used to select the fallback strategy
            context: Passed unchanged to the fallback strategy and events

        Returns:
            The operation's result, or the fallback result

        Raises:
            FallbackStrategyError: If the selected fallback strategy raises
        """
        if context is None:
            context = {}

        self._ensure_health_task()

        pending: PendingEvents = []
        with self._lock:
            self._stats.total_requests += 1
            rejected = False
            if self._state is CircuitState.OPEN:
                if self._next_attempt_time is not None and self._clock() < self._next_attempt_time:
                    self._stats.total_fallbacks += 1
                    rejected = True
                else:
                    pending.append(self._set_state(CircuitState.HALF_OPEN))
        self._emit_all(pending)

        if rejected:
            return self.execute_fallback(operation_type, context, CIRCUIT_OPEN)

        try:
            result = await self._execute_with_timeout(operation, self.config.execution_timeout)
        except Exception as error:
            self._on_failure(error)
            with self._lock:
                self._stats.total_fallbacks += 1
            return self.execute_fallback(
                operation_type,
                context,
                error_message(error) or OPERATION_FAILED,
            )

        self._on_success()
        return result

    async def _execute_with_timeout(self, operation: Operation, timeout: float) -> Any:
        """Race the operation against ``timeout`` seconds.

        A timed-out operation is not cancelled: it keeps running in the
        background and its eventual outcome is discarded.
        """
        try:
            outcome = operation()
        except asyncio.CancelledError as exc:
            if _caller_cancelling():
                raise
            raise OperationCancelledError() from exc
        if not inspect.isawaitable(outcome):
            return outcome

        task = asyncio.ensure_future(outcome)
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            # Caller went away; nobody is left to receive the result
            task.cancel()
            raise

        if task in done:
            if task.cancelled() and not _caller_cancelling():
                raise OperationCancelledError()
            return task.result()

        with self._lock:
            self._stats.total_timeouts += 1
        task.add_done_callback(self._discard_late_outcome)
        raise OperationTimeoutError(timeout)

    def _discard_late_outcome(self, task: "asyncio.Future[Any]") -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.debug(
                f"[{self.service_name}] Timed-out operation failed late: {error!r}"
            )
        else:
            logger.debug(f"[{self.service_name}] Timed-out operation completed late")

    def _on_success(self) -> None:
        pending: PendingEvents = []
        with self._lock:
            self._stats.total_successes += 1

            if self._state is CircuitState.HALF_OPEN:
                self._consecutive_successes += 1
                if self._consecutive_successes >= self.config.success_threshold:
                    pending.append(self._set_state(CircuitState.CLOSED))
                    self._reset_failures()
            elif self._state is CircuitState.CLOSED:
                self._cleanup_old_failures()
        self._emit_all(pending)

    def _on_failure(self, error: BaseException) -> None:
        pending: PendingEvents = []
        with self._lock:
            now = self._clock()
            failure_type = classify_error(error)

            self._stats.total_failures += 1
            self._last_failure_time = now
            self._failures.append(
                FailureRecord(
                    timestamp=now,
                    error_message=error_message(error) or "UNKNOWN_ERROR",
                    failure_type=failure_type,
                )
            )
            self._cleanup_old_failures(now)

            if (
                self._state is CircuitState.CLOSED
                and len(self._failures) >= self.config.failure_threshold
            ):
                self._next_attempt_time = now + self.config.open_timeout
                pending.append(self._set_state(CircuitState.OPEN))
            elif self._state is CircuitState.HALF_OPEN:
                self._next_attempt_time = now + self.config.open_timeout
                pending.append(self._set_state(CircuitState.OPEN))
                self._consecutive_successes = 0

            pending.append(
                (
                    ev.FAILURE,
                    FailureEvent(
                        error=error,
                        state=self._state,
                        failure_count=len(self._failures),
                        failure_type=failure_type,
                        timestamp=now,
                    ),
                )
            )
        self._emit_all(pending)

    def _emit_all(self, pending: PendingEvents) -> None:
        """Notify listeners outside the lock so they cannot interleave with a transition."""
        for event, payload in pending:
            self._events.emit(event, payload)

    def _set_state(self, new_state: CircuitState) -> tuple[str, StateChangeEvent]:
        """Single transition point: updates statistics and returns the event to emit.

        Must be called with the lock held.
        """
        old_state = self._state
        self._state = new_state
        self._stats.state_changes += 1
        self._stats.last_state_change = self._clock()

        # A stale counter must not survive into the next half-open cycle
        if new_state is not CircuitState.HALF_OPEN:
            self._consecutive_successes = 0

        logger.info(
            f"[{self.service_name}] Circuit breaker state changed: "
            f"{old_state.value} -> {new_state.value}"
        )
        return (
            ev.STATE_CHANGE,
            StateChangeEvent(
                from_state=old_state,
                to_state=new_state,
                timestamp=self._stats.last_state_change,
                failure_count=len(self._failures),
            ),
        )

    def _cleanup_old_failures(self, now: float | None = None) -> None:
        cutoff = (self._clock() if now is None else now) - self.config.monitor_window
        self._failures = [f for f in self._failures if f.timestamp > cutoff]

    def _reset_failures(self) -> None:
        self._failures = []
        self._consecutive_successes = 0
        self._last_failure_time = None
        self._next_attempt_time = None

    # --- Fallbacks ---

    def execute_fallback(self, operation_type: str, context: Any, reason: str) -> Any:
        """Run the fallback strategy for ``operation_type`` (or ``default``).

        Args:
            operation_type: Operation type to look up
            context: Operation context passed to the strategy
            reason: Why the fallback is used

        Returns:
            The strategy's result

        Raises:
            FallbackStrategyError: If the strategy raises
        """
        strategy = self.fallbacks.get(operation_type)
        try:
            result = strategy(context, reason)
        except Exception as exc:
            logger.error(
                f"[{self.service_name}] Fallback strategy for '{operation_type}' raised: {exc!r}"
            )
            raise FallbackStrategyError(operation_type, reason) from exc

        self._events.emit(
            ev.FALLBACK,
            FallbackEvent(
                operation_type=operation_type,
                reason=reason,
                context=context,
                result=result,
                timestamp=self._clock(),
            ),
        )
        return result

    # --- Status & administration ---

    def get_status(self) -> CircuitStatus:
        """Snapshot of state, counters and configuration.

        ``failure_count`` reflects the window as of the last prune.
        """
        with self._lock:
            failure_count = len(self._failures)
            return CircuitStatus(
                state=self._state,
                failure_count=failure_count,
                consecutive_successes=self._consecutive_successes,
                last_failure_time=self._last_failure_time,
                next_attempt_time=self._next_attempt_time,
                stats=self._stats.copy(),
                config=self.config.model_dump(),
                is_healthy=(
                    self._state is CircuitState.CLOSED
                    and failure_count < self.config.failure_threshold / 2
                ),
            )

    def force_state(self, state: CircuitState | str) -> None:
        """Force a state, bypassing transition triggers (admin/testing).

        Unrecognized states are ignored.
        """
        try:
            target = CircuitState(state)
        except ValueError:
            logger.warning(f"[{self.service_name}] Ignoring unknown circuit state: {state!r}")
            return

        with self._lock:
            if target is CircuitState.OPEN:
                self._next_attempt_time = self._clock() + self.config.open_timeout
            change = self._set_state(target)
            if target is CircuitState.CLOSED:
                self._reset_failures()
        self._emit_all([change])

    def reset(self) -> None:
        """Close the circuit and zero statistics, keeping the start time."""
        with self._lock:
            change = self._set_state(CircuitState.CLOSED)
            self._reset_failures()
            self._stats.reset()
        self._emit_all([change])

    # --- Monitoring & alerting ---

    def start_monitoring(self) -> None:
        """Attach alerting rules and start the periodic health check.

        The health check runs as an asyncio task. Without a running loop
        it starts on the first :meth:`execute` call instead.
        """
        if not self._alert_listeners:
            self._alert_listeners = [
                (ev.STATE_CHANGE, self.on(ev.STATE_CHANGE, self._alert_on_state_change)),
                (ev.FAILURE, self.on(ev.FAILURE, self._alert_on_failure)),
            ]
        self._monitoring = True
        self._ensure_health_task()

    def _ensure_health_task(self) -> None:
        if not self._monitoring:
            return
        if self._health_task is not None and not self._health_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._health_task = loop.create_task(self._health_check_loop())

    async def _health_check_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.health_check_interval)
            self.perform_health_check()

    def perform_health_check(self) -> CircuitStatus:
        """Emit a ``health_check`` snapshot and warn when unhealthy."""
        status = self.get_status()
        self._events.emit(ev.HEALTH_CHECK, status)

        if not status.is_healthy:
            logger.warning(
                f"[{self.service_name}] Circuit breaker health check: UNHEALTHY "
                f"(state={status.state.value}, failures={status.failure_count}, "
                f"requests={status.stats.total_requests})"
            )
        return status

    def _alert_on_state_change(self, event: StateChangeEvent) -> None:
        if event.to_state is CircuitState.OPEN:
            self.send_alert(
                AlertType.CIRCUIT_OPENED,
                {
                    "message": f"Circuit breaker opened for {self.service_name}",
                    "failure_count": event.failure_count,
                    "timestamp": event.timestamp,
                },
            )
        elif (
            event.to_state is CircuitState.CLOSED
            and event.from_state is CircuitState.HALF_OPEN
        ):
            self.send_alert(
                AlertType.CIRCUIT_CLOSED,
                {
                    "message": f"Circuit breaker closed for {self.service_name} - service recovered",
                    "timestamp": event.timestamp,
                },
            )

    def _alert_on_failure(self, event: FailureEvent) -> None:
        threshold = self.config.failure_threshold
        if event.failure_count >= threshold * self.config.high_failure_ratio:
            self.send_alert(
                AlertType.HIGH_FAILURE_RATE,
                {
                    "message": f"High failure rate detected for {self.service_name}",
                    "failure_count": event.failure_count,
                    "threshold": threshold,
                    "error": error_message(event.error),
                },
            )

    def send_alert(self, alert_type: AlertType, details: dict[str, Any]) -> BreakerAlert:
        """Emit an ``alert`` event. Observational only."""
        alert = BreakerAlert(
            type=alert_type,
            service=self.service_name,
            timestamp=datetime.fromtimestamp(self._clock(), tz=timezone.utc).isoformat(),
            details=details,
        )
        self._events.emit(ev.ALERT, alert)
        logger.error(f"[ALERT] {alert_type.value}: {alert.to_dict()}")
        return alert

    def _cancel_health_task(self) -> asyncio.Task[None] | None:
        task, self._health_task = self._health_task, None
        if task is None or task.done() or task.get_loop().is_closed():
            return None
        task.cancel()
        return task

    async def stop_monitoring(self) -> None:
        """Stop the periodic health check and wait for it to finish."""
        self._monitoring = False
        task = self._cancel_health_task()
        if task is not None and task.get_loop() is asyncio.get_running_loop():
            try:
                await task
            except asyncio.CancelledError:
                pass

    def destroy(self) -> None:
        """Stop background work and detach every listener.

        Safe to call repeatedly, and on breakers that never monitored.
        """
        self._monitoring = False
        self._cancel_health_task()
        self._events.remove_all_listeners()
        self._alert_listeners = []
