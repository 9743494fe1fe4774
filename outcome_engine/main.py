"""Main entry point: runs the protected outcome measures service against the stub backend."""

import asyncio
import logging
import os

from outcome_engine.alerts.webhook import WebhookAlerter, WebhookConfig
from outcome_engine.config.loader import load_config
from outcome_engine.config.models import EngineConfig
from outcome_engine.monitoring.metrics import MetricsConfig, MetricsService
from outcome_engine.monitoring.monitor import CircuitBreakerMonitor
from outcome_engine.monitoring.sentry_service import SentryConfig, SentryService
from outcome_engine.services.protected_service import OutcomeMeasuresServiceWithCircuitBreaker
from outcome_engine.services.stub_backend import StubOutcomeMeasuresBackend

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

BREAKER_NAME = "outcome_measures"


async def run(
    config: EngineConfig,
    sentry: SentryService,
    max_requests: int,
    failing_operations: set[str],
) -> None:
    """Serve ``max_requests`` dashboard requests through the circuit breaker."""
    metrics = MetricsService(MetricsConfig.from_settings(config.metrics))
    metrics.start_server()

    async with WebhookAlerter(WebhookConfig.from_settings(config.alerting)) as alerter:
        monitor = CircuitBreakerMonitor(
            config.monitor, alerter=alerter, metrics=metrics, sentry=sentry
        )
        backend = StubOutcomeMeasuresBackend(failing_operations)
        service = OutcomeMeasuresServiceWithCircuitBreaker(backend, config.circuit_breaker)
        monitor.register_circuit_breaker(BREAKER_NAME, service.circuit_breaker)
        monitor.start_monitoring()

        try:
            for i in range(max_requests):
                result = await service.get_dashboard_data(f"clinician-{i % 3}")
                if result.get("fallback"):
                    logger.warning(f"Request {i + 1}: fallback served (reason={result['reason']})")
                else:
                    logger.info(f"Request {i + 1}: dashboard served")

            health = service.get_health_status()
            summary = monitor.get_metrics_summary()
            logger.info(
                f"📊 Service {health['overall']['status']}: "
                f"state={health['circuit_breaker']['state']}, "
                f"success_rate={health['metrics']['success_rate']}, "
                f"alerts={len(monitor.get_recent_alerts())}, "
                f"healthy_breakers={summary['healthy']}/{summary['total']}"
            )
        finally:
            await monitor.flush_alerts()
            await monitor.destroy()
            await service.circuit_breaker.stop_monitoring()
            service.destroy()


def main() -> int:
    """Main entry point for the outcome measures engine."""
    logger.info("🚀 Outcome Measures Engine starting...")

    try:
        config = load_config()
        logger.info(
            f"✅ Configuration loaded: failure_threshold={config.circuit_breaker.failure_threshold}, "
            f"environment={config.monitor.environment}"
        )
    except Exception as e:
        logger.error(f"❌ Failed to load configuration: {e}")
        return 1

    sentry = SentryService(SentryConfig.from_settings(config.sentry))
    if sentry.initialize():
        logger.info(f"✅ Sentry initialized (env={config.sentry.environment})")
    else:
        logger.info("⚠️ Sentry not configured (set SENTRY_DSN to enable)")

    max_requests = int(os.environ.get("MAX_REQUESTS", "10"))
    failing_operations = {
        name.strip()
        for name in os.environ.get("OUTCOME_STUB_FAILING_OPERATIONS", "").split(",")
        if name.strip()
    }

    try:
        logger.info(
            f"▶️  Serving {max_requests} requests "
            f"(failing operations: {sorted(failing_operations) or 'none'})"
        )
        asyncio.run(run(config, sentry, max_requests, failing_operations))
    except KeyboardInterrupt:
        logger.info("⏸️  Shutdown requested by user")
    except Exception as e:
        logger.error(f"❌ Engine error: {e}", exc_info=True)
        sentry.capture_error(e, context={"phase": "run"})
        return 1
    finally:
        sentry.flush()
        logger.info("🛑 Engine stopped")

    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
