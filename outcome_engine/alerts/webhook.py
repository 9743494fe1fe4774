"""Webhook alert delivery for circuit breaker notifications.

Delivers monitor alerts to:
- Slack incoming webhooks (formatted attachment)
- Generic HTTP webhooks (raw alert JSON)
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any, Callable

import httpx

from outcome_engine.config.models import AlertingConfig

logger = logging.getLogger(__name__)

# Upper bound on a server-requested Retry-After wait
MAX_RETRY_AFTER_SECONDS = 30.0


class AlertSeverity(str, Enum):
    """Alert severity levels."""
    HIGH = "high"
    MEDIUM = "medium"
    INFO = "info"
    LOW = "low"


SLACK_COLORS = {
    AlertSeverity.HIGH: "danger",
    AlertSeverity.MEDIUM: "warning",
    AlertSeverity.INFO: "good",
    AlertSeverity.LOW: "#439FE0",
}


@dataclass(frozen=True)
class Alert:
    """Alert raised by the circuit breaker monitor."""
    id: str
    service: str
    circuit_breaker: str
    type: str
    severity: AlertSeverity
    environment: str
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def message(self) -> str:
        return str(self.details.get("message", self.type))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "service": self.service,
            "circuit_breaker": self.circuit_breaker,
            "type": self.type,
            "severity": self.severity.value,
            "timestamp": self.timestamp.isoformat(),
            "environment": self.environment,
            "details": dict(self.details),
        }

    def to_slack_payload(self) -> dict[str, Any]:
        """Format alert as a Slack attachment message."""
        return {
            "text": f"Circuit Breaker Alert: {self.type}",
            "attachments": [
                {
                    "color": SLACK_COLORS.get(self.severity, "#439FE0"),
                    "fields": [
                        {"title": "Service", "value": self.service, "short": True},
                        {"title": "Circuit Breaker", "value": self.circuit_breaker, "short": True},
                        {"title": "Environment", "value": self.environment, "short": True},
                        {"title": "Severity", "value": self.severity.value.upper(), "short": True},
                        {"title": "Message", "value": self.message, "short": False},
                        {"title": "Timestamp", "value": self.timestamp.isoformat(), "short": False},
                    ],
                }
            ],
        }


@dataclass
class WebhookConfig:
    """Webhook delivery configuration."""
    slack_webhook_url: str | None = None
    webhook_urls: list[str] = field(default_factory=list)
    enabled: bool = True
    request_timeout: float = 10.0
    # Rate limiting
    max_alerts_per_minute: int = 10

    @classmethod
    def from_settings(cls, settings: AlertingConfig) -> "WebhookConfig":
        slack_url = settings.slack_webhook_url if settings.enable_slack_alerts else None
        urls = settings.webhook_urls if settings.enable_webhooks else []
        return cls(
            slack_webhook_url=str(slack_url) if slack_url else None,
            webhook_urls=[str(url) for url in urls],
            enabled=bool(slack_url or urls),
            request_timeout=settings.request_timeout,
            max_alerts_per_minute=settings.max_alerts_per_minute,
        )


class WebhookAlerter:
    """HTTP notification service for circuit breaker alerts.

    Delivery failures are logged and reported through the return value;
    they never raise into the monitor.

    Example:
        >>> config = WebhookConfig(slack_webhook_url="https://hooks.slack.com/services/x")
        >>> async with WebhookAlerter(config) as alerter:
        ...     await alerter.send_alert(alert)
    """

    def __init__(self, config: WebhookConfig, clock: Callable[[], float] = time.monotonic):
        """Initialize alerter with configuration.

        Args:
            config: Webhook delivery configuration
            clock: Monotonic clock used for rate limiting
        """
        self.config = config
        self._clock = clock
        self._client: httpx.AsyncClient | None = None

        # Rate limiting state
        self._sent_at: list[float] = []

        # Retry configuration
        self._max_retries = 3
        self._retry_delay = 1.0
        self._max_retry_after = MAX_RETRY_AFTER_SECONDS

    async def __aenter__(self) -> "WebhookAlerter":
        self._client = httpx.AsyncClient(timeout=self.config.request_timeout)
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send_alert(self, alert: Alert) -> bool:
        """Deliver an alert to every configured channel.

        Args:
            alert: Alert to send

        Returns:
            True if at least one channel accepted the alert
        """
        if not self.config.enabled:
            return False

        if not self._check_rate_limit():
            logger.warning(f"Alert rate limit reached, dropping {alert.type} for {alert.circuit_breaker}")
            return False

        deliveries: list[tuple[str, dict[str, Any]]] = []
        if self.config.slack_webhook_url:
            deliveries.append((self.config.slack_webhook_url, alert.to_slack_payload()))
        for url in self.config.webhook_urls:
            deliveries.append((url, alert.to_dict()))

        if not deliveries:
            return False

        if self._client:
            results = await self._deliver_all(self._client, deliveries)
        else:
            async with httpx.AsyncClient(timeout=self.config.request_timeout) as client:
                results = await self._deliver_all(client, deliveries)

        success = any(results)
        if success:
            self._sent_at.append(self._clock())
        return success

    async def _deliver_all(
        self,
        client: httpx.AsyncClient,
        deliveries: list[tuple[str, dict[str, Any]]],
    ) -> list[bool]:
        return list(
            await asyncio.gather(*(self._post(client, url, payload) for url, payload in deliveries))
        )

    def _check_rate_limit(self) -> bool:
        """Check if we're within the per-minute alert budget."""
        cutoff = self._clock() - 60.0
        self._sent_at = [ts for ts in self._sent_at if ts > cutoff]
        return len(self._sent_at) < self.config.max_alerts_per_minute

    async def _post(self, client: httpx.AsyncClient, url: str, payload: dict[str, Any]) -> bool:
        """POST a JSON payload with retries."""
        for attempt in range(self._max_retries):
            try:
                response = await client.post(url, json=payload)
            except httpx.HTTPError as e:
                logger.error(f"Failed to send webhook alert to {url}: {e}")
                if attempt < self._max_retries - 1:
                    await asyncio.sleep(self._retry_delay * (attempt + 1))
                continue

            if response.is_success:
                return True
            if response.status_code == 429:
                await asyncio.sleep(self._retry_after(response))
                continue

            logger.error(f"Webhook {url} rejected alert: HTTP {response.status_code}")
            return False

        return False

    def _retry_after(self, response: httpx.Response) -> float:
        """Seconds to wait before retrying a 429, from delta-seconds or an HTTP-date."""
        header = response.headers.get("Retry-After")
        if header is None:
            return self._retry_delay

        try:
            delay = float(header)
            if not math.isfinite(delay):
                raise ValueError(header)
        except ValueError:
            try:
                retry_at = parsedate_to_datetime(header)
            except (TypeError, ValueError):
                logger.warning(f"Ignoring malformed Retry-After header: {header!r}")
                return self._retry_delay
            if retry_at.tzinfo is None:
                retry_at = retry_at.replace(tzinfo=timezone.utc)
            delay = (retry_at - datetime.now(timezone.utc)).total_seconds()

        return min(max(delay, 0.0), self._max_retry_after)
