import logging
import os
from typing import Generator
from unittest.mock import patch

import pytest
from pytest import LogCaptureFixture

from outcome_engine.main import main


@pytest.fixture(autouse=True)
def no_metrics_server() -> Generator[None, None, None]:
    with patch("outcome_engine.monitoring.metrics.start_http_server"):
        yield


def test_main_returns_zero(caplog: LogCaptureFixture) -> None:
    with patch.dict(os.environ, {"MAX_REQUESTS": "3"}):
        with caplog.at_level(logging.INFO):
            result = main()

    assert result == 0
    assert "Outcome Measures Engine starting" in caplog.text
    assert "Request 3: dashboard served" in caplog.text
    assert "Service operational" in caplog.text
    assert "Engine stopped" in caplog.text


def test_main_with_failing_backend(caplog: LogCaptureFixture) -> None:
    """Test injected failures open the circuit and serve fallbacks."""
    env = {"MAX_REQUESTS": "7", "OUTCOME_STUB_FAILING_OPERATIONS": "get_dashboard_data"}
    with patch.dict(os.environ, env):
        with caplog.at_level(logging.INFO):
            result = main()

    assert result == 0
    assert "Request 1: fallback served (reason=DATABASE connection lost)" in caplog.text
    assert "Request 6: fallback served (reason=CIRCUIT_OPEN)" in caplog.text
    assert "Service degraded" in caplog.text


def test_main_config_load_error(caplog: LogCaptureFixture) -> None:
    caplog.set_level(logging.ERROR)
    with patch("outcome_engine.main.load_config", side_effect=Exception("Config broken")):
        result = main()

    assert result == 1
    assert "Failed to load configuration: Config broken" in caplog.text


def test_main_keyboard_interrupt(caplog: LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)
    with patch("outcome_engine.main.asyncio.run", side_effect=KeyboardInterrupt()):
        result = main()

    assert result == 0
    assert "Shutdown requested by user" in caplog.text
    assert "Engine stopped" in caplog.text


def test_main_runtime_error(caplog: LogCaptureFixture) -> None:
    caplog.set_level(logging.ERROR)
    with patch("outcome_engine.main.run", side_effect=RuntimeError("Crash")):
        result = main()

    assert result == 1
    assert "Engine error: Crash" in caplog.text
