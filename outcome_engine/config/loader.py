"""Configuration loader with JSON file and environment variable support."""

import json
import os
from pathlib import Path
from typing import Any, Callable

from .models import EngineConfig

# env var -> (section, key, converter)
ENV_OVERRIDES: dict[str, tuple[str, str, Callable[[str], Any]]] = {
    "OUTCOME_BREAKER_FAILURE_THRESHOLD": ("circuit_breaker", "failure_threshold", int),
    "OUTCOME_BREAKER_SUCCESS_THRESHOLD": ("circuit_breaker", "success_threshold", int),
    "OUTCOME_BREAKER_OPEN_TIMEOUT": ("circuit_breaker", "open_timeout", float),
    "OUTCOME_BREAKER_MONITOR_WINDOW": ("circuit_breaker", "monitor_window", float),
    "OUTCOME_BREAKER_EXECUTION_TIMEOUT": ("circuit_breaker", "execution_timeout", float),
    "OUTCOME_BREAKER_ENABLE_MONITORING": (
        "circuit_breaker",
        "enable_monitoring",
        lambda value: value.strip().lower() in {"1", "true", "yes", "on"},
    ),
    "OUTCOME_BREAKER_SERVICE_NAME": ("circuit_breaker", "service_name", str),
    "OUTCOME_MONITOR_ENVIRONMENT": ("monitor", "environment", str),
    "OUTCOME_MONITOR_FAILURE_RATE_THRESHOLD": ("monitor", "failure_rate_threshold", float),
    "OUTCOME_ALERTING_SLACK_WEBHOOK_URL": ("alerting", "slack_webhook_url", str),
    "SENTRY_DSN": ("sentry", "dsn", str),
    "SENTRY_ENVIRONMENT": ("sentry", "environment", str),
}

# Setting one of these env vars to a non-empty value also turns on the channel flag
ENV_ENABLES: dict[str, tuple[str, str]] = {
    "OUTCOME_ALERTING_SLACK_WEBHOOK_URL": ("alerting", "enable_slack_alerts"),
}


def apply_env_overrides(config_data: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``config_data`` with environment overrides applied."""
    merged = json.loads(json.dumps(config_data))

    for env_name, (section, key, convert) in ENV_OVERRIDES.items():
        if (value := os.environ.get(env_name)) is not None:
            merged.setdefault(section, {})[key] = convert(value)

    for env_name, (section, flag) in ENV_ENABLES.items():
        if os.environ.get(env_name):
            merged.setdefault(section, {})[flag] = True

    return merged


def load_config(config_path: str | None = None) -> EngineConfig:
    """
    Load configuration from JSON file with environment variable overrides.

    Priority: env vars > config file > defaults

    Args:
        config_path: Path to JSON config file. If None, uses OUTCOME_ENGINE_CONFIG_PATH
                     or defaults to 'config.json' in the repository root.

    Returns:
        Validated EngineConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        json.JSONDecodeError: If config file has invalid JSON
        pydantic.ValidationError: If config values are invalid
    """
    if config_path is None:
        config_path = os.environ.get("OUTCOME_ENGINE_CONFIG_PATH", "config.json")

    config_file = Path(config_path)
    if not config_file.is_absolute():
        repo_root = Path(__file__).parent.parent.parent
        config_file = repo_root / config_file

    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {config_file}")

    with open(config_file) as f:
        config_data: dict[str, Any] = json.load(f)

    return EngineConfig(**apply_env_overrides(config_data))
