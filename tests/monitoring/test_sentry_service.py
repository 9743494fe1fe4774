"""Tests for Sentry service."""

import asyncio
from datetime import datetime, timezone

import pytest
from unittest.mock import MagicMock, patch

from outcome_engine.alerts.webhook import Alert, AlertSeverity
from outcome_engine.config.models import SentrySettings
from outcome_engine.monitoring.sentry_service import (
    SentryConfig,
    SentryLevel,
    SentryService,
    scrub_sensitive_data,
)


def make_alert(severity: AlertSeverity = AlertSeverity.HIGH) -> Alert:
    return Alert(
        id="outcomes-CIRCUIT_OPENED-1",
        service="OutcomeMeasuresService",
        circuit_breaker="outcomes",
        type="CIRCUIT_OPENED",
        severity=severity,
        environment="test",
        details={"message": "Circuit breaker outcomes has opened", "user_id": "nurse-1"},
        timestamp=datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc),
    )


class TestSentryConfig:
    """Test suite for SentryConfig."""

    def test_default_values(self):
        config = SentryConfig(dsn="https://test@sentry.io/123")
        assert config.environment == "development"
        assert config.traces_sample_rate == 0.1
        assert config.enabled is True
        assert "CancelledError" in config.ignore_errors

    def test_from_settings(self):
        config = SentryConfig.from_settings(
            SentrySettings(dsn="https://test@sentry.io/1", environment="staging")
        )
        assert config.enabled is True
        assert config.environment == "staging"

    def test_from_settings_without_dsn_is_disabled(self):
        assert SentryConfig.from_settings(SentrySettings()).enabled is False


class TestScrubSensitiveData:
    """Test suite for scrub_sensitive_data."""

    def test_scrubs_nested_keys(self):
        data = {
            "service": "outcomes",
            "details": {"user_id": "nurse-1", "message": "opened"},
            "slack_webhook_url": "https://hooks.slack.com/x",
            "items": [{"api_key": "k"}, "plain"],
        }

        scrubbed = scrub_sensitive_data(data)

        assert scrubbed["service"] == "outcomes"
        assert scrubbed["details"] == {"user_id": "[REDACTED]", "message": "opened"}
        assert scrubbed["slack_webhook_url"] == "[REDACTED]"
        assert scrubbed["items"] == [{"api_key": "[REDACTED]"}, "plain"]


class TestSentryService:
    """Test suite for SentryService."""

    @pytest.fixture
    def config(self) -> SentryConfig:
        return SentryConfig(dsn="https://test@sentry.io/123", environment="test")

    @pytest.fixture
    def service(self, config: SentryConfig) -> SentryService:
        return SentryService(config)

    @pytest.fixture
    def initialized_service(self, config: SentryConfig) -> SentryService:
        """Create an initialized service without touching the real SDK."""
        service = SentryService(config)
        service._initialized = True
        return service

    def test_initialize_disabled(self, config: SentryConfig):
        config.enabled = False
        assert SentryService(config).initialize() is False

    def test_initialize_no_dsn(self):
        assert SentryService(SentryConfig(dsn="")).initialize() is False

    @patch("outcome_engine.monitoring.sentry_service.sentry_sdk")
    def test_initialize(self, mock_sdk, service: SentryService):
        """Test SDK initialization arguments."""
        assert service.initialize() is True
        assert service.is_initialized is True

        kwargs = mock_sdk.init.call_args.kwargs
        assert kwargs["dsn"] == "https://test@sentry.io/123"
        assert kwargs["environment"] == "test"
        assert kwargs["before_send"] == service._before_send

    @patch("outcome_engine.monitoring.sentry_service.sentry_sdk")
    def test_initialize_release_from_env(self, mock_sdk, service: SentryService):
        with patch.dict("os.environ", {"SENTRY_RELEASE": "v1.2.0"}):
            service.initialize()
        assert mock_sdk.init.call_args.kwargs["release"] == "v1.2.0"

    @patch("outcome_engine.monitoring.sentry_service.sentry_sdk")
    def test_initialize_failure(self, mock_sdk, service: SentryService, caplog):
        mock_sdk.init.side_effect = RuntimeError("bad dsn")
        assert service.initialize() is False
        assert service.is_initialized is False
        assert "Failed to initialize Sentry" in caplog.text

    def test_capture_not_initialized(self, service: SentryService):
        assert service.capture_alert(make_alert()) is None
        assert service.capture_error(RuntimeError("x")) is None

    @patch("outcome_engine.monitoring.sentry_service.sentry_sdk")
    def test_capture_alert(self, mock_sdk, initialized_service: SentryService):
        """Test alerts are sent as messages with tags and scrubbed context."""
        mock_sdk.capture_message.return_value = "event-id"
        scope = mock_sdk.new_scope.return_value.__enter__.return_value

        event_id = initialized_service.capture_alert(make_alert())

        assert event_id == "event-id"
        scope.set_tag.assert_any_call("circuit_breaker", "outcomes")
        scope.set_tag.assert_any_call("alert_type", "CIRCUIT_OPENED")
        context_name, context = scope.set_context.call_args.args
        assert context_name == "circuit_breaker_alert"
        assert context["details"]["user_id"] == "[REDACTED]"
        mock_sdk.capture_message.assert_called_once_with(
            "[OutcomeMeasuresService] CIRCUIT_OPENED: Circuit breaker outcomes has opened",
            level=SentryLevel.ERROR.value,
        )

    @patch("outcome_engine.monitoring.sentry_service.sentry_sdk")
    def test_capture_alert_level_by_severity(self, mock_sdk, initialized_service: SentryService):
        initialized_service.capture_alert(make_alert(AlertSeverity.MEDIUM))
        assert mock_sdk.capture_message.call_args.kwargs["level"] == "warning"

    @patch("outcome_engine.monitoring.sentry_service.sentry_sdk")
    def test_capture_error(self, mock_sdk, initialized_service: SentryService):
        scope = mock_sdk.new_scope.return_value.__enter__.return_value
        error = RuntimeError("status unavailable")

        initialized_service.capture_error(
            error, context={"circuit_breaker": "outcomes"}, tags={"component": "monitor"}
        )

        scope.set_context.assert_called_once_with("circuit_breaker", {"circuit_breaker": "outcomes"})
        scope.set_tag.assert_called_once_with("component", "monitor")
        mock_sdk.capture_exception.assert_called_once_with(error)

    @patch("outcome_engine.monitoring.sentry_service.sentry_sdk")
    def test_flush(self, mock_sdk, initialized_service: SentryService):
        initialized_service.flush(timeout=1.0)
        mock_sdk.flush.assert_called_once_with(timeout=1.0)

    @patch("outcome_engine.monitoring.sentry_service.sentry_sdk")
    def test_flush_not_initialized(self, mock_sdk, service: SentryService):
        service.flush()
        mock_sdk.flush.assert_not_called()

    def test_before_send_filters_ignored_error(self, service: SentryService):
        hint = {"exc_info": (asyncio.CancelledError, asyncio.CancelledError(), None)}
        assert service._before_send({"message": "x"}, hint) is None

    def test_before_send_scrubs(self, service: SentryService):
        hint = {"exc_info": (RuntimeError, RuntimeError("x"), None)}
        event = service._before_send({"extra": {"token": "abc", "state": "OPEN"}}, hint)
        assert event == {"extra": {"token": "[REDACTED]", "state": "OPEN"}}

    def test_before_send_no_exc_info(self, service: SentryService):
        assert service._before_send({"message": "x"}, {}) == {"message": "x"}
