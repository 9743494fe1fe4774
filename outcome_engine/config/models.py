"""Pydantic configuration models with type safety and validation."""

from pydantic import BaseModel, ConfigDict, Field, HttpUrl


class CircuitBreakerConfig(BaseModel):
    """Circuit breaker thresholds and timers. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    failure_threshold: int = Field(
        default=5,
        ge=1,
        description="Failures within the monitor window that open the circuit",
    )
    success_threshold: int = Field(
        default=3,
        ge=1,
        description="Consecutive half-open successes required to close the circuit",
    )
    open_timeout: float = Field(
        default=60.0,
        gt=0.0,
        description="Seconds the circuit stays open before a trial request",
    )
    monitor_window: float = Field(
        default=300.0,
        gt=0.0,
        description="Sliding window in seconds over which failures are counted",
    )
    execution_timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="Maximum seconds a single operation may run",
    )
    enable_monitoring: bool = Field(
        default=True,
        description="Run the periodic health check and alerting rules",
    )
    service_name: str = Field(
        default="OutcomeMeasuresService",
        min_length=1,
        description="Label used in log and alert text",
    )
    health_check_interval: float = Field(
        default=30.0,
        gt=0.0,
        description="Seconds between background health checks",
    )
    high_failure_ratio: float = Field(
        default=0.8,
        gt=0.0,
        le=1.0,
        description="Fraction of failure_threshold that raises HIGH_FAILURE_RATE",
    )


class MonitorConfig(BaseModel):
    """Multi-breaker monitor settings."""

    service_name: str = Field(default="OutcomeMeasuresService")
    environment: str = Field(default="development")
    health_check_interval: float = Field(
        default=30.0,
        gt=0.0,
        description="Seconds between status polls of registered breakers",
    )
    metrics_collection_interval: float = Field(
        default=60.0,
        gt=0.0,
        description="Seconds between retention sweeps of history and alerts",
    )
    failure_rate_threshold: float = Field(
        default=0.5,
        gt=0.0,
        le=1.0,
        description="Failure rate (0-1) above which HIGH_FAILURE_RATE is raised",
    )
    metrics_retention_period: float = Field(
        default=86400.0,
        gt=0.0,
        description="Seconds of history and alerts to keep",
    )
    max_metrics_points: int = Field(
        default=1440,
        ge=1,
        description="Historical points kept per breaker",
    )
    max_alert_history: int = Field(default=1000, ge=100)


class AlertingConfig(BaseModel):
    """Alert delivery channels."""

    enable_slack_alerts: bool = False
    slack_webhook_url: HttpUrl | None = None
    enable_webhooks: bool = False
    webhook_urls: list[HttpUrl] = Field(default_factory=list)
    request_timeout: float = Field(default=10.0, gt=0.0)
    max_alerts_per_minute: int = Field(default=10, ge=1)


class MetricsSettings(BaseModel):
    enabled: bool = True
    port: int = Field(default=9090, ge=1, le=65535)
    prefix: str = "outcome_engine"


class SentrySettings(BaseModel):
    dsn: str = ""
    environment: str = "development"
    traces_sample_rate: float = Field(default=0.1, ge=0.0, le=1.0)


class EngineConfig(BaseModel):
    """Root configuration model."""

    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    alerting: AlertingConfig = Field(default_factory=AlertingConfig)
    metrics: MetricsSettings = Field(default_factory=MetricsSettings)
    sentry: SentrySettings = Field(default_factory=SentrySettings)
