"""Alert services for the outcome measures engine.

Provides notification capabilities for operators:
- WebhookAlerter: Slack and generic webhook delivery
"""

from outcome_engine.alerts.webhook import (
    Alert,
    AlertSeverity,
    WebhookAlerter,
    WebhookConfig,
)

__all__ = [
    "Alert",
    "AlertSeverity",
    "WebhookAlerter",
    "WebhookConfig",
]
