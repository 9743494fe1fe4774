"""Tests for Prometheus MetricsService."""

import pytest
from unittest.mock import patch

from prometheus_client import CollectorRegistry

from outcome_engine.breakers.models import CircuitState
from outcome_engine.config.models import MetricsSettings
from outcome_engine.monitoring.metrics import (
    MetricsConfig,
    MetricsService,
    fallback_reason_label,
)


class TestMetricsConfig:
    """Test suite for MetricsConfig."""

    def test_default_values(self):
        """Test default configuration values."""
        config = MetricsConfig()
        assert config.enabled is True
        assert config.port == 9090
        assert config.prefix == "outcome_engine"

    def test_from_settings(self):
        config = MetricsConfig.from_settings(MetricsSettings(enabled=False, port=9100, prefix="om"))
        assert config == MetricsConfig(enabled=False, port=9100, prefix="om")


class TestFallbackReasonLabel:
    """Test suite for reason label bucketing."""

    @pytest.mark.parametrize(
        "reason,label",
        [
            ("CIRCUIT_OPEN", "CIRCUIT_OPEN"),
            ("OPERATION_TIMEOUT", "OPERATION_TIMEOUT"),
            ("OPERATION_FAILED", "OPERATION_FAILED"),
            ("MongoDB connection pool exhausted", "OPERATION_FAILED"),
        ],
    )
    def test_labels(self, reason: str, label: str):
        assert fallback_reason_label(reason) == label


class TestMetricsServiceDisabled:
    """Test MetricsService when disabled."""

    @pytest.fixture
    def disabled_service(self):
        """Create a disabled metrics service."""
        return MetricsService(MetricsConfig(enabled=False), registry=CollectorRegistry())

    def test_is_enabled_false(self, disabled_service):
        assert disabled_service.is_enabled is False

    def test_start_server_returns_false(self, disabled_service):
        assert disabled_service.start_server() is False

    def test_record_methods_do_nothing(self, disabled_service):
        """Test recording methods don't error when disabled."""
        disabled_service.set_circuit_state("outcomes", CircuitState.OPEN)
        disabled_service.record_state_change("outcomes", CircuitState.OPEN)
        disabled_service.record_failure("outcomes", "TIMEOUT")
        disabled_service.record_fallback("outcomes", "getTrends", "CIRCUIT_OPEN")
        disabled_service.record_alert("outcomes", "CIRCUIT_OPENED", "high")

        assert list(disabled_service.registry.collect()) == []


class TestMetricsServiceEnabled:
    """Test MetricsService against a private registry."""

    @pytest.fixture
    def registry(self) -> CollectorRegistry:
        return CollectorRegistry()

    @pytest.fixture
    def service(self, registry: CollectorRegistry) -> MetricsService:
        return MetricsService(MetricsConfig(), registry=registry)

    def test_circuit_state_gauge(self, service, registry):
        """Test state gauge encoding."""
        service.set_circuit_state("outcomes", CircuitState.HALF_OPEN)
        assert registry.get_sample_value("outcome_engine_circuit_state", {"breaker": "outcomes"}) == 1

        service.set_circuit_state("outcomes", CircuitState.OPEN)
        assert registry.get_sample_value("outcome_engine_circuit_state", {"breaker": "outcomes"}) == 2

    def test_record_state_change(self, service, registry):
        """Test transitions are counted and update the gauge."""
        service.record_state_change("outcomes", CircuitState.OPEN)
        service.record_state_change("outcomes", CircuitState.OPEN)

        assert registry.get_sample_value(
            "outcome_engine_circuit_state_changes_total",
            {"breaker": "outcomes", "to_state": "OPEN"},
        ) == 2
        assert registry.get_sample_value("outcome_engine_circuit_state", {"breaker": "outcomes"}) == 2

    def test_record_failure(self, service, registry):
        service.record_failure("outcomes", "DATABASE")
        assert registry.get_sample_value(
            "outcome_engine_operation_failures_total",
            {"breaker": "outcomes", "failure_type": "DATABASE"},
        ) == 1

    def test_record_fallback_collapses_reason(self, service, registry):
        """Test free-form reasons are bucketed."""
        service.record_fallback("outcomes", "getTrends", "MongoDB unavailable")
        service.record_fallback("outcomes", "getTrends", "CIRCUIT_OPEN")

        assert registry.get_sample_value(
            "outcome_engine_fallbacks_total",
            {"breaker": "outcomes", "operation_type": "getTrends", "reason": "OPERATION_FAILED"},
        ) == 1
        assert registry.get_sample_value(
            "outcome_engine_fallbacks_total",
            {"breaker": "outcomes", "operation_type": "getTrends", "reason": "CIRCUIT_OPEN"},
        ) == 1

    def test_record_alert(self, service, registry):
        service.record_alert("outcomes", "CIRCUIT_OPENED", "high")
        assert registry.get_sample_value(
            "outcome_engine_alerts_total",
            {"breaker": "outcomes", "alert_type": "CIRCUIT_OPENED", "severity": "high"},
        ) == 1

    def test_services_do_not_collide(self):
        """Test two services can be built in one process."""
        first = MetricsService()
        second = MetricsService()
        assert first.registry is not second.registry

    def test_custom_prefix(self, registry):
        service = MetricsService(MetricsConfig(prefix="om"), registry=registry)
        service.record_failure("outcomes", "TIMEOUT")
        assert registry.get_sample_value(
            "om_operation_failures_total",
            {"breaker": "outcomes", "failure_type": "TIMEOUT"},
        ) == 1

    @patch("outcome_engine.monitoring.metrics.start_http_server")
    def test_start_server(self, mock_start, service):
        """Test server is started once on the configured port."""
        assert service.start_server() is True
        assert service.start_server() is True

        mock_start.assert_called_once_with(9090, registry=service.registry)

    @patch("outcome_engine.monitoring.metrics.start_http_server", side_effect=OSError("in use"))
    def test_start_server_failure(self, mock_start, service, caplog):
        assert service.start_server() is False
        assert "Failed to start metrics server" in caplog.text
