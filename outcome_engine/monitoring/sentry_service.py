"""Sentry integration for circuit breaker error tracking.

Provides:
- Alert capture with breaker context and tags
- Exception capture for fallback strategy failures
- Scrubbing of webhook URLs, tokens and patient identifiers
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import sentry_sdk
from sentry_sdk.integrations.httpx import HttpxIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from outcome_engine.alerts.webhook import Alert, AlertSeverity
from outcome_engine.config.models import SentrySettings

logger = logging.getLogger(__name__)


class SentryLevel(str, Enum):
    """Sentry message levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"


SEVERITY_LEVELS = {
    AlertSeverity.HIGH: SentryLevel.ERROR,
    AlertSeverity.MEDIUM: SentryLevel.WARNING,
    AlertSeverity.INFO: SentryLevel.INFO,
    AlertSeverity.LOW: SentryLevel.INFO,
}

SENSITIVE_KEYS = frozenset({
    "api_key", "apikey", "secret", "password", "token",
    "authorization", "webhook", "patient", "user_id", "oasis_data", "soap_data",
})


@dataclass
class SentryConfig:
    """Sentry configuration."""
    dsn: str
    environment: str = "development"
    release: str = ""
    traces_sample_rate: float = 0.1
    enabled: bool = True
    debug: bool = False
    ignore_errors: list[str] = field(default_factory=lambda: [
        "ConnectionResetError",
        "CancelledError",
    ])

    @classmethod
    def from_settings(cls, settings: SentrySettings) -> "SentryConfig":
        return cls(
            dsn=settings.dsn,
            environment=settings.environment,
            traces_sample_rate=settings.traces_sample_rate,
            enabled=bool(settings.dsn),
        )


def scrub_sensitive_data(data: dict[str, Any]) -> dict[str, Any]:
    """Replace values of sensitive keys (recursively) with ``[REDACTED]``."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        key_lower = str(key).lower()
        if any(s in key_lower for s in SENSITIVE_KEYS):
            result[key] = "[REDACTED]"
        elif isinstance(value, dict):
            result[key] = scrub_sensitive_data(value)
        elif isinstance(value, list):
            result[key] = [
                scrub_sensitive_data(v) if isinstance(v, dict) else v
                for v in value
            ]
        else:
            result[key] = value
    return result


class SentryService:
    """Sentry wrapper with circuit breaker specific helpers.

    Example:
        >>> sentry = SentryService(SentryConfig(dsn="https://xxx@sentry.io/123"))
        >>> sentry.initialize()
        >>> sentry.capture_alert(alert)
    """

    def __init__(self, config: SentryConfig):
        self.config = config
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> bool:
        """Initialize Sentry SDK.

        Returns:
            True if initialization successful
        """
        if not self.config.enabled or not self.config.dsn:
            return False

        try:
            sentry_sdk.init(
                dsn=self.config.dsn,
                environment=self.config.environment,
                release=self.config.release or os.environ.get("SENTRY_RELEASE") or None,
                traces_sample_rate=self.config.traces_sample_rate,
                debug=self.config.debug,
                integrations=[
                    HttpxIntegration(),
                    LoggingIntegration(
                        level=None,  # No breadcrumbs from logs
                        event_level=None,  # Alerts are sent explicitly
                    ),
                ],
                before_send=self._before_send,
            )
        except Exception as e:
            logger.error(f"Failed to initialize Sentry: {e}")
            return False

        self._initialized = True
        return True

    def _before_send(self, event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
        """Drop ignored errors and scrub sensitive data."""
        if "exc_info" in hint:
            exc_type = hint["exc_info"][0]
            if exc_type.__name__ in self.config.ignore_errors:
                return None
        return scrub_sensitive_data(event)

    def capture_alert(self, alert: Alert) -> str | None:
        """Send a circuit breaker alert as a Sentry message.

        Returns:
            Event ID if captured, None otherwise
        """
        if not self._initialized:
            return None

        level = SEVERITY_LEVELS.get(alert.severity, SentryLevel.INFO)
        with sentry_sdk.new_scope() as scope:
            scope.set_tag("circuit_breaker", alert.circuit_breaker)
            scope.set_tag("alert_type", alert.type)
            scope.set_context("circuit_breaker_alert", scrub_sensitive_data(alert.to_dict()))
            return sentry_sdk.capture_message(
                f"[{alert.service}] {alert.type}: {alert.message}",
                level=level.value,
            )

    def capture_error(
        self,
        error: BaseException,
        context: dict[str, Any] | None = None,
        tags: dict[str, str] | None = None,
    ) -> str | None:
        """Capture an exception with optional context and tags.

        Returns:
            Event ID if captured, None otherwise
        """
        if not self._initialized:
            return None

        with sentry_sdk.new_scope() as scope:
            if context:
                scope.set_context("circuit_breaker", scrub_sensitive_data(context))
            for key, value in (tags or {}).items():
                scope.set_tag(key, value)
            return sentry_sdk.capture_exception(error)

    def flush(self, timeout: float = 2.0) -> None:
        if self._initialized:
            sentry_sdk.flush(timeout=timeout)
