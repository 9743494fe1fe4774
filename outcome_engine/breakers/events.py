"""Listener registration for breaker notifications."""

import logging
import threading
from typing import Any, Callable

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]

STATE_CHANGE = "state_change"
FAILURE = "failure"
FALLBACK = "fallback"
HEALTH_CHECK = "health_check"
ALERT = "alert"

EVENT_NAMES = frozenset({STATE_CHANGE, FAILURE, FALLBACK, HEALTH_CHECK, ALERT})


class EventBus:
    """Publish/subscribe hub for breaker events.

    Listeners are called synchronously in registration order. A listener
    that raises is logged and skipped; it can neither stop other listeners
    nor affect the code that emitted the event.
    """

    def __init__(self, owner: str = "") -> None:
        self._owner = owner
        self._listeners: dict[str, list[Listener]] = {}
        self._lock = threading.Lock()

    def on(self, event: str, listener: Listener) -> Listener:
        """Register a listener. Returns it so callers can keep a handle for ``off``."""
        if event not in EVENT_NAMES:
            raise ValueError(f"Unknown event: {event}")
        if not callable(listener):
            raise TypeError("listener must be callable")
        with self._lock:
            self._listeners.setdefault(event, []).append(listener)
        return listener

    def off(self, event: str, listener: Listener) -> bool:
        """Remove a listener.

        Returns:
            True if the listener was registered
        """
        with self._lock:
            listeners = self._listeners.get(event, [])
            if listener in listeners:
                listeners.remove(listener)
                return True
        return False

    def remove_all_listeners(self, event: str | None = None) -> None:
        with self._lock:
            if event is None:
                self._listeners.clear()
            else:
                self._listeners.pop(event, None)

    def listener_count(self, event: str) -> int:
        with self._lock:
            return len(self._listeners.get(event, []))

    def emit(self, event: str, payload: Any) -> None:
        with self._lock:
            listeners = list(self._listeners.get(event, []))
        for listener in listeners:
            try:
                listener(payload)
            except Exception:
                logger.exception(f"[{self._owner}] '{event}' listener failed")
