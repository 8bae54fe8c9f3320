"""
Monitoring and Observability Configuration

This module provides the configuration sections consumed by the monitoring engine:
- structlog structured logging configuration (JSON or console rendering)
- prometheus-client metrics collection and optional textfile export
- Alert thresholds for response time and concurrent user capacity
- Load test harness defaults (synthetic request latency and failure rate)
- Job scheduler timing (tick interval, bounded shutdown wait)

Each section is a dataclass with production defaults; MonitoringConfiguration
aggregates them and applies environment-specific overrides.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class ConfigurationError(Exception):
    """Raised when monitoring configuration is inconsistent or invalid."""
    pass


@dataclass
class StructuredLoggingConfig:
    """
    Structured logging configuration using structlog.

    JSON output is the default so log lines can be shipped to a central
    aggregator; the console renderer is intended for local development.
    """

    default_level: str = "INFO"
    debug_level: str = "DEBUG"
    production_level: str = "WARNING"

    log_format: str = field(default_factory=lambda: os.getenv('LOG_FORMAT', 'json'))
    colored_console_output: bool = field(
        default_factory=lambda: os.getenv('COLORED_CONSOLE_OUTPUT', 'false').lower() == 'true'
    )
    timestamp_format: str = "iso"

    enable_correlation_id: bool = True

    log_file_path: Optional[str] = field(default_factory=lambda: os.getenv('LOG_FILE_PATH'))
    max_file_size_mb: int = 100
    backup_count: int = 5

    def get_log_level(self, environment: str) -> str:
        """Get appropriate log level based on environment."""
        override = os.getenv('LOG_LEVEL')
        if override:
            return override.upper()
        if environment.lower() == "production":
            return self.production_level
        elif environment.lower() == "development":
            return self.debug_level
        return self.default_level


@dataclass
class PrometheusMetricsConfig:
    """
    Prometheus metrics collection configuration using prometheus-client.

    The engine exposes no HTTP surface of its own; when a textfile path is set,
    the registry is written in text exposition format for node_exporter's
    textfile collector after every job run.
    """

    enable_metrics: bool = True
    metric_prefix: str = "perftrack"
    textfile_path: Optional[str] = field(default_factory=lambda: os.getenv('METRICS_TEXTFILE_PATH'))

    # Buckets in seconds for tracked operations and job runs
    duration_buckets: tuple = (
        0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0
    )

    def get_metric_name(self, metric: str) -> str:
        """Generate standardized metric name with prefix."""
        return f"{self.metric_prefix}_{metric}"


@dataclass
class AlertThresholds:
    """
    Fixed alert thresholds for the performance alert evaluator and the
    system-metrics job.

    Response time values are milliseconds, CPU and memory values percentages.
    """

    response_time_metric: str = "api_response_time"
    response_time_p95_warning_ms: float = 2000.0
    response_time_p95_critical_ms: float = 5000.0

    concurrent_users_warning: int = 8000
    concurrent_users_critical: int = 9500

    cpu_critical_percent: float = 90.0
    memory_critical_percent: float = 95.0
    system_response_time_critical_ms: float = 3000.0


@dataclass
class LoadTestDefaults:
    """
    Defaults for the synthetic request strategy of the load test harness.

    The synthetic strategy stands in for a real dependency call: it touches the
    store the way the named endpoint would, waits a random processing delay and
    fails a fixed fraction of requests.
    """

    min_processing_ms: float = 50.0
    max_processing_ms: float = 250.0
    failure_rate: float = 0.05
    max_jitter_ms: float = 100.0
    result_retention_seconds: int = 30 * 24 * 60 * 60
    http_timeout_seconds: float = 10.0


@dataclass
class SchedulerConfig:
    """
    Job scheduler timing configuration.

    Intervals are seconds. The shutdown wait is bounded: once it elapses the
    store connection is released even if jobs are still running.
    """

    tick_interval: float = 1.0
    shutdown_poll_interval: float = 1.0
    shutdown_timeout: float = 30.0

    system_metrics_interval: float = 60.0
    scaling_evaluation_interval: float = 300.0
    predictive_scaling_interval: float = 900.0
    performance_alerts_interval: float = 120.0
    load_balancer_interval: float = 180.0
    cleanup_interval: float = 3600.0
    daily_report_interval: float = 86400.0

    metrics_retention_days: int = 7
    history_list_max_length: int = 1000

    def job_intervals(self) -> Dict[str, float]:
        """Interval per default job name, in seconds."""
        return {
            'system-metrics': self.system_metrics_interval,
            'scaling-evaluation': self.scaling_evaluation_interval,
            'predictive-scaling': self.predictive_scaling_interval,
            'performance-alerts': self.performance_alerts_interval,
            'load-balancer-health': self.load_balancer_interval,
            'cleanup-old-data': self.cleanup_interval,
            'daily-report': self.daily_report_interval,
        }


class MonitoringConfiguration:
    """
    Centralized monitoring configuration manager.

    Provides unified access to all monitoring configuration sections and
    environment-specific settings.
    """

    def __init__(self, environment: str = "development"):
        """
        Initialize monitoring configuration for specific environment.

        Args:
            environment: Deployment environment (development, testing, staging, production)
        """
        self.environment = environment.lower()

        self.logging = StructuredLoggingConfig()
        self.metrics = PrometheusMetricsConfig()
        self.alerts = AlertThresholds()
        self.load_test = LoadTestDefaults()
        self.scheduler = SchedulerConfig()

        self._apply_environment_config()
        self._validate_configuration()

    def _apply_environment_config(self) -> None:
        """Apply environment-specific configuration overrides."""
        if self.environment == "production":
            self.logging.log_format = "json"
        elif self.environment == "development":
            if not os.getenv('LOG_FORMAT'):
                self.logging.log_format = "console"
        elif self.environment == "testing":
            self.logging.log_format = "console"
            self.metrics.textfile_path = None
            self.scheduler.shutdown_timeout = 5.0

        shutdown_timeout = os.getenv('SCHEDULER_SHUTDOWN_TIMEOUT')
        if shutdown_timeout:
            self.scheduler.shutdown_timeout = float(shutdown_timeout)

    def _validate_configuration(self) -> None:
        """Validate configuration consistency and requirements."""
        alerts = self.alerts
        if alerts.response_time_p95_warning_ms >= alerts.response_time_p95_critical_ms:
            raise ConfigurationError("Response time warning threshold must be less than critical threshold")

        if alerts.concurrent_users_warning >= alerts.concurrent_users_critical:
            raise ConfigurationError("Concurrent user warning threshold must be less than critical threshold")

        if not 0.0 <= self.load_test.failure_rate <= 1.0:
            raise ConfigurationError(
                f"Synthetic failure rate must be within [0, 1], got {self.load_test.failure_rate}"
            )

        if self.load_test.min_processing_ms > self.load_test.max_processing_ms:
            raise ConfigurationError("Minimum processing delay exceeds maximum processing delay")

        if self.scheduler.tick_interval <= 0:
            raise ConfigurationError("Scheduler tick interval must be positive")

        for name, interval in self.scheduler.job_intervals().items():
            if interval <= 0:
                raise ConfigurationError(f"Invalid interval for job {name}: {interval}")

        if self.scheduler.shutdown_timeout < 0:
            raise ConfigurationError("Shutdown timeout must not be negative")

    def get_structlog_config(self) -> Dict[str, Any]:
        """
        Generate structlog configuration dictionary.

        Returns:
            Configuration for structlog setup
        """
        return {
            "log_format": self.logging.log_format,
            "colored": self.logging.colored_console_output,
            "log_level": self.logging.get_log_level(self.environment),
            "log_file_path": self.logging.log_file_path,
            "max_file_size_mb": self.logging.max_file_size_mb,
            "backup_count": self.logging.backup_count,
        }


def get_monitoring_config(environment: Optional[str] = None) -> MonitoringConfiguration:
    """
    Get monitoring configuration for specified environment.

    Args:
        environment: Target environment, defaults to PERFTRACK_ENV

    Returns:
        MonitoringConfiguration instance for the environment
    """
    if environment is None:
        environment = os.getenv("PERFTRACK_ENV", "development")

    return MonitoringConfiguration(environment)


__all__ = [
    'ConfigurationError',
    'StructuredLoggingConfig',
    'PrometheusMetricsConfig',
    'AlertThresholds',
    'LoadTestDefaults',
    'SchedulerConfig',
    'MonitoringConfiguration',
    'get_monitoring_config',
]
