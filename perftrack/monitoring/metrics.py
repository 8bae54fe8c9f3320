"""
Prometheus Metrics Collection

This module implements process-level Prometheus instrumentation for the monitoring
engine using prometheus-client. The engine has no HTTP surface, so metrics are kept
in a dedicated CollectorRegistry and, when METRICS_TEXTFILE_PATH is configured,
written in text exposition format for node_exporter's textfile collector after
each scheduled job settles.

Instrumented concerns:
- Tracked operation durations and in-flight timers (Metric Tracker)
- Job runs by status, job durations and running jobs (Job Scheduler)
- Load test requests by outcome (Load Test Harness)
- Alerts raised by type and severity (Alert Evaluator and system-metrics job)
- Notifications pushed per store list
- Host CPU and memory utilization (System Monitor)
"""

from typing import Optional

import structlog
from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    write_to_textfile,
)

from perftrack.config.monitoring import PrometheusMetricsConfig

logger = structlog.get_logger(__name__)


class PerftrackMetricsCollector:
    """
    Prometheus metrics collector shared by all monitoring components.

    A private registry per collector keeps test instances independent of each
    other and of the process-global default registry.
    """

    def __init__(
        self,
        config: Optional[PrometheusMetricsConfig] = None,
        registry: Optional[CollectorRegistry] = None
    ):
        """
        Initialize Prometheus metrics collector.

        Args:
            config: Metrics configuration section
            registry: Registry to register metrics on, a new one by default
        """
        self.config = config or PrometheusMetricsConfig()
        self.registry = registry or CollectorRegistry()
        self.enabled = self.config.enable_metrics

        self._init_tracker_metrics()
        self._init_scheduler_metrics()
        self._init_load_test_metrics()
        self._init_alert_metrics()
        self._init_resource_metrics()

    def _name(self, metric: str) -> str:
        return self.config.get_metric_name(metric)

    def _init_tracker_metrics(self):
        """Initialize tracked operation metrics."""
        self.operation_duration_seconds = Histogram(
            self._name('operation_duration_seconds'),
            'Duration of tracked operations in seconds',
            ['metric'],
            buckets=self.config.duration_buckets,
            registry=self.registry
        )

        self.active_timers = Gauge(
            self._name('active_timers'),
            'Number of started but not yet ended operation timers',
            registry=self.registry
        )

    def _init_scheduler_metrics(self):
        """Initialize job scheduler metrics."""
        self.job_runs_total = Counter(
            self._name('job_runs_total'),
            'Total scheduled job executions by outcome',
            ['job', 'status'],
            registry=self.registry
        )

        self.job_duration_seconds = Histogram(
            self._name('job_duration_seconds'),
            'Scheduled job execution duration in seconds',
            ['job', 'status'],
            buckets=self.config.duration_buckets,
            registry=self.registry
        )

        self.jobs_running = Gauge(
            self._name('jobs_running'),
            'Number of scheduled jobs currently executing',
            registry=self.registry
        )

        self.critical_job_failures_total = Counter(
            self._name('critical_job_failures_total'),
            'Failures of jobs flagged as critical',
            ['job'],
            registry=self.registry
        )

    def _init_load_test_metrics(self):
        """Initialize load test harness metrics."""
        self.load_test_requests_total = Counter(
            self._name('load_test_requests_total'),
            'Load test requests issued by outcome',
            ['endpoint', 'outcome'],
            registry=self.registry
        )

        self.load_test_runs_total = Counter(
            self._name('load_test_runs_total'),
            'Completed load test runs',
            ['endpoint'],
            registry=self.registry
        )

    def _init_alert_metrics(self):
        """Initialize alerting and notification metrics."""
        self.alerts_total = Counter(
            self._name('alerts_total'),
            'Alerts raised by type and severity',
            ['type', 'severity'],
            registry=self.registry
        )

        self.notifications_total = Counter(
            self._name('notifications_total'),
            'Notification records pushed per store list',
            ['channel'],
            registry=self.registry
        )

    def _init_resource_metrics(self):
        """Initialize host resource utilization metrics."""
        self.cpu_utilization_percent = Gauge(
            self._name('cpu_utilization_percent'),
            'Host CPU utilization percentage',
            registry=self.registry
        )

        self.memory_utilization_percent = Gauge(
            self._name('memory_utilization_percent'),
            'Host memory utilization percentage',
            registry=self.registry
        )

    def record_operation(self, metric: str, duration_ms: float):
        """
        Record a completed tracked operation.

        Args:
            metric: Metric name the operation was tracked under
            duration_ms: Duration in milliseconds
        """
        if not self.enabled:
            return
        self.operation_duration_seconds.labels(metric=metric).observe(duration_ms / 1000.0)

    def set_active_timers(self, count: int):
        if self.enabled:
            self.active_timers.set(count)

    def record_job_run(self, job: str, status: str, duration_seconds: float, critical: bool = False):
        """
        Record a settled job execution.

        Args:
            job: Job name
            status: 'success' or 'failed'
            duration_seconds: Wall-clock execution time
            critical: Whether the job is flagged critical
        """
        if not self.enabled:
            return
        self.job_runs_total.labels(job=job, status=status).inc()
        self.job_duration_seconds.labels(job=job, status=status).observe(duration_seconds)
        if critical and status == 'failed':
            self.critical_job_failures_total.labels(job=job).inc()

    def set_jobs_running(self, count: int):
        if self.enabled:
            self.jobs_running.set(count)

    def record_load_test_request(self, endpoint: str, success: bool):
        if not self.enabled:
            return
        outcome = 'success' if success else 'failure'
        self.load_test_requests_total.labels(endpoint=endpoint, outcome=outcome).inc()

    def record_load_test_run(self, endpoint: str):
        if self.enabled:
            self.load_test_runs_total.labels(endpoint=endpoint).inc()

    def record_alert(self, alert_type: str, severity: str):
        if self.enabled:
            self.alerts_total.labels(type=alert_type, severity=severity).inc()

    def record_notification(self, channel: str):
        if self.enabled:
            self.notifications_total.labels(channel=channel).inc()

    def update_resource_utilization(self, cpu_percent: float, memory_percent: float):
        if not self.enabled:
            return
        self.cpu_utilization_percent.set(cpu_percent)
        self.memory_utilization_percent.set(memory_percent)

    def generate_metrics_output(self) -> bytes:
        """
        Generate Prometheus metrics output in text format.

        Returns:
            Metrics in text exposition format
        """
        return generate_latest(self.registry)

    def write_textfile(self) -> bool:
        """
        Write the registry to the configured textfile collector path.

        write_to_textfile writes to a temporary file and renames it, so
        node_exporter never reads a partially written file.

        Returns:
            True if a file was written
        """
        path = self.config.textfile_path
        if not self.enabled or not path:
            return False

        try:
            write_to_textfile(path, self.registry)
            return True
        except OSError as e:
            logger.warning("Failed to write metrics textfile", path=path, error=str(e))
            return False


__all__ = [
    'PerftrackMetricsCollector',
]
