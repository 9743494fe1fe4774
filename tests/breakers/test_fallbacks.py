"""Tests for the fallback strategy registry."""

import pytest
from unittest.mock import MagicMock

from outcome_engine.breakers.fallbacks import DEFAULT_OPERATION, FallbackRegistry

WRITE_OPERATIONS = ["createOutcomeMeasure", "updateOutcomeMeasure", "deleteOutcomeMeasure"]


class TestFallbackRegistry:
    """Test suite for FallbackRegistry."""

    @pytest.fixture
    def registry(self) -> FallbackRegistry:
        return FallbackRegistry(retry_after_seconds=60)

    def test_default_strategies_installed(self, registry: FallbackRegistry):
        """Test outcome-measures strategies are present."""
        expected = {
            "getDashboardData",
            "getQualityIndicators",
            "getTrends",
            "getBenchmarks",
            "getAIAnalytics",
            DEFAULT_OPERATION,
            *WRITE_OPERATIONS,
        }
        assert set(registry) == expected
        assert len(registry) == len(expected)

    def test_without_defaults_only_default(self):
        """Test bare registry still resolves the default strategy."""
        registry = FallbackRegistry(install_defaults=False)
        assert list(registry) == [DEFAULT_OPERATION]
        result = registry.get("getTrends")({}, "CIRCUIT_OPEN")
        assert result["error"] == "Service temporarily unavailable. Please try again later."

    @pytest.mark.parametrize(
        "operation_type",
        ["getDashboardData", "getQualityIndicators", "getTrends", "getBenchmarks", "getAIAnalytics",
         *WRITE_OPERATIONS, DEFAULT_OPERATION],
    )
    def test_results_are_marked_as_fallbacks(self, registry: FallbackRegistry, operation_type: str):
        """Test every default strategy marks its result."""
        result = registry.get(operation_type)({"user_id": "u1"}, "CIRCUIT_OPEN")
        assert result["success"] is False
        assert result["fallback"] is True
        assert result["reason"] == "CIRCUIT_OPEN"

    def test_dashboard_data(self, registry: FallbackRegistry):
        """Test dashboard fallback shape."""
        result = registry.get("getDashboardData")({"user_id": "nurse-1"}, "OPERATION_TIMEOUT")

        data = result["data"]
        assert data["quality_indicators"] == []
        assert data["recent_assessments"] == []
        assert data["alerts"][0]["type"] == "warning"
        assert result["metadata"]["user_id"] == "nurse-1"

    def test_dashboard_data_unknown_user(self, registry: FallbackRegistry):
        """Test missing or non-dict context reports an unknown user."""
        assert registry.get("getDashboardData")({}, "x")["metadata"]["user_id"] == "unknown"
        assert registry.get("getDashboardData")(None, "x")["metadata"]["user_id"] == "unknown"

    def test_quality_indicators_summary(self, registry: FallbackRegistry):
        result = registry.get("getQualityIndicators")({}, "x")
        assert result["indicators"] == []
        assert result["summary"]["total"] == 0
        assert result["summary"]["last_updated"] is None

    def test_trends_analysis(self, registry: FallbackRegistry):
        result = registry.get("getTrends")({}, "x")
        assert result["analysis"]["overall_trend"] == "unknown"
        assert result["analysis"]["confidence"] == 0

    def test_ai_analytics(self, registry: FallbackRegistry):
        result = registry.get("getAIAnalytics")({}, "x")
        assert result["analytics"]["predictions"] == []

    @pytest.mark.parametrize("operation_type", WRITE_OPERATIONS)
    def test_write_operations_report_retry_after(self, registry: FallbackRegistry, operation_type: str):
        """Test writes tell callers when to retry."""
        result = registry.get(operation_type)({}, "x")
        assert result["retry_after"] == 60
        assert "outcome measure" in result["error"]

    def test_retry_after_rounds_up(self):
        registry = FallbackRegistry(retry_after_seconds=1.2)
        assert registry.get(DEFAULT_OPERATION)({}, "x")["retry_after"] == 2

    def test_unknown_operation_uses_default(self, registry: FallbackRegistry):
        assert registry.get("nope") is registry.get(DEFAULT_OPERATION)

    def test_register_replaces_strategy(self, registry: FallbackRegistry):
        """Test custom strategies override defaults."""
        strategy = MagicMock(return_value={"cached": True})
        registry.register("getTrends", strategy)

        assert registry.get("getTrends")({"user_id": "u1"}, "x") == {"cached": True}
        strategy.assert_called_once_with({"user_id": "u1"}, "x")

    def test_register_rejects_non_callable(self, registry: FallbackRegistry):
        with pytest.raises(TypeError):
            registry.register("getTrends", "not a function")

    def test_unregister(self, registry: FallbackRegistry):
        """Test removing a strategy falls back to default."""
        assert registry.unregister("getTrends") is True
        assert "getTrends" not in registry
        assert registry.unregister("getTrends") is False

    def test_default_cannot_be_removed(self, registry: FallbackRegistry):
        with pytest.raises(ValueError):
            registry.unregister(DEFAULT_OPERATION)

    def test_registries_are_independent(self):
        """Test registries do not share strategies."""
        first = FallbackRegistry()
        second = FallbackRegistry()
        first.register("custom", MagicMock())

        assert "custom" in first
        assert "custom" not in second
