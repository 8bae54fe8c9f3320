"""
Monitoring Engine Entry Point

Long-running process that wires the monitoring components to the store, builds the
default job set and runs the scheduler until SIGINT or SIGTERM.

Lifecycle:
- Load environment configuration (PERFTRACK_ENV, REDIS_URL, LOG_* variables)
- Configure structlog and the Prometheus collector
- Construct store client, metric store, tracker, statistics, alert evaluator,
  system monitor, auto-scaler and notification sink
- Record the startup in the system_startup hash
- Run the scheduler; signals, unhandled event loop errors and uncaught
  exceptions all go through the same bounded graceful shutdown

Usage:
    perftrack
    PERFTRACK_ENV=production REDIS_URL=redis://cache:6379/0 python app.py
"""

import asyncio
import signal
import sys
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from perftrack.cache.client import StoreClient, create_store_client
from perftrack.cache.exceptions import StoreError
from perftrack.config.monitoring import ConfigurationError
from perftrack.config.settings import BaseConfig, create_app_config
from perftrack.monitoring.alerts import AlertEvaluator
from perftrack.monitoring.logging import get_logger, setup_structured_logging
from perftrack.monitoring.metrics import PerftrackMetricsCollector
from perftrack.monitoring.statistics import StatisticsEngine
from perftrack.monitoring.store import MetricStore
from perftrack.monitoring.system import PsutilSystemMonitor
from perftrack.monitoring.tracker import MetricTracker
from perftrack.scaling.autoscaler import StoreBackedAutoScaler
from perftrack.scheduler.engine import JobScheduler
from perftrack.scheduler.monitoring_jobs import MonitoringJobs
from perftrack.scheduler.notifications import NotificationSink

logger = get_logger(__name__)


class SchedulerApplication:
    """
    Application lifecycle manager for the monitoring engine process.

    Features:
    - Environment-specific configuration loading and validation
    - Component construction with a single shared store client
    - Signal, event loop and uncaught exception handlers routed to shutdown
    - Custom shutdown handlers executed after the scheduler has stopped
    """

    def __init__(self, environment: Optional[str] = None) -> None:
        self.environment = environment
        self.config: Optional[BaseConfig] = None
        self.store: Optional[StoreClient] = None
        self.metrics: Optional[PerftrackMetricsCollector] = None
        self.tracker: Optional[MetricTracker] = None
        self.monitoring_jobs: Optional[MonitoringJobs] = None
        self.scheduler: Optional[JobScheduler] = None
        self.initialized = False
        self.startup_time: Optional[datetime] = None
        self.shutdown_handlers: List[Callable[[], None]] = []

    def initialize(self) -> JobScheduler:
        """
        Build configuration, logging and all components.

        Returns:
            The configured JobScheduler

        Raises:
            RuntimeError: When configuration validation fails
        """
        if self.initialized and self.scheduler:
            logger.warning("Application already initialized, returning existing scheduler")
            return self.scheduler

        self.startup_time = datetime.now(timezone.utc)

        try:
            self.config = create_app_config(self.environment)
        except ConfigurationError as e:
            raise RuntimeError(f"Configuration validation failed: {e}") from e

        monitoring = self.config.monitoring
        setup_structured_logging(monitoring)

        self.metrics = PerftrackMetricsCollector(monitoring.metrics)
        self.store = create_store_client(self.config.redis)

        metric_store = MetricStore(self.store)
        statistics = StatisticsEngine(metric_store)
        notifications = NotificationSink(self.store, self.metrics)
        self.tracker = MetricTracker(metric_store, self.metrics)

        self.monitoring_jobs = MonitoringJobs(
            store=self.store,
            system_monitor=PsutilSystemMonitor(
                metric_store, monitoring.alerts.response_time_metric, self.metrics
            ),
            auto_scaler=StoreBackedAutoScaler(self.store),
            alert_evaluator=AlertEvaluator(statistics, metric_store, monitoring.alerts, self.metrics),
            statistics=statistics,
            notifications=notifications,
            tracker=self.tracker,
            thresholds=monitoring.alerts,
            config=monitoring.scheduler,
        )

        self.scheduler = JobScheduler(
            store=self.store,
            jobs=self.monitoring_jobs.build_jobs(),
            notifications=notifications,
            config=monitoring.scheduler,
            metrics=self.metrics,
        )

        self.initialized = True
        logger.info(
            "Application initialized",
            environment=self.config.ENVIRONMENT,
            version=self.config.APP_VERSION,
            jobs=[job.name for job in self.scheduler.jobs]
        )
        return self.scheduler

    def add_shutdown_handler(self, handler: Callable[[], None]) -> None:
        self.shutdown_handlers.append(handler)

    def _install_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._handle_signal, sig)
            except NotImplementedError:
                logger.warning("Signal handlers not supported on this platform", signal=sig.name)

        loop.set_exception_handler(self._handle_loop_exception)
        sys.excepthook = self._handle_uncaught_exception

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info("Received signal, initiating graceful shutdown", signal=sig.name)
        self.scheduler.request_shutdown(sig.name)

    def _handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        exception = context.get('exception')
        logger.error(
            "Unhandled exception in event loop",
            message=context.get('message'),
            error=str(exception) if exception else None,
            exc_info=exception
        )
        self.scheduler.request_shutdown('unhandled_exception')

    def _handle_uncaught_exception(self, exc_type, exc_value, exc_traceback) -> None:
        logger.critical(
            "Uncaught exception",
            error=str(exc_value),
            exc_info=(exc_type, exc_value, exc_traceback)
        )

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # raised outside the event loop
            return
        if self.scheduler is not None:
            self.scheduler.request_shutdown('uncaught_exception')

    def _run_shutdown_handlers(self) -> None:
        for handler in self.shutdown_handlers:
            try:
                handler()
            except Exception as e:
                logger.error("Shutdown handler failed", error=str(e), exc_info=True)

    async def run(self) -> bool:
        """
        Run the scheduler until shutdown completes.

        Returns:
            True when every running job finished within the shutdown wait
        """
        scheduler = self.initialize()
        self._install_handlers(asyncio.get_running_loop())

        healthy, details = await self.store.health_check()
        if not healthy:
            logger.warning("Store unavailable at startup, jobs will fail until it recovers", **details)

        try:
            await self.monitoring_jobs.record_startup(self.config.APP_VERSION, self.config.ENVIRONMENT)
        except StoreError as e:
            logger.warning("Failed to record startup", error=str(e))

        try:
            await scheduler.run()
        except Exception as e:
            logger.critical("Scheduler crashed, shutting down", error=str(e), exc_info=True)
            await scheduler.shutdown('uncaught_exception')
            raise
        finally:
            self._run_shutdown_handlers()

        return await scheduler.shutdown()


def main() -> int:
    """Console script entry point."""
    application = SchedulerApplication()

    try:
        asyncio.run(application.run())
    except KeyboardInterrupt:
        logger.info("Monitoring engine stopped by user")
    except Exception as e:
        logger.error("Monitoring engine failed", error=str(e), exc_info=True)
        return 1

    return 0


__all__ = [
    'SchedulerApplication',
    'main',
]
