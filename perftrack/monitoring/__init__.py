"""
Monitoring package: latency tracking, statistics, load testing, alerting,
system metrics, structured logging and Prometheus instrumentation.
"""

from perftrack.monitoring.alerts import Alert, AlertEvaluator
from perftrack.monitoring.load_test import (
    HttpRequestStrategy,
    LoadTestConfig,
    LoadTestHarness,
    LoadTestRequestError,
    LoadTestResult,
    SyntheticRequestStrategy,
)
from perftrack.monitoring.logging import get_logger, job_run_scope, setup_structured_logging
from perftrack.monitoring.metrics import PerftrackMetricsCollector
from perftrack.monitoring.statistics import PerformanceStats, StatisticsEngine, compute_stats, percentile
from perftrack.monitoring.store import MetricStore, PerformanceMetric
from perftrack.monitoring.system import PsutilSystemMonitor, SystemMetrics, SystemMonitor
from perftrack.monitoring.tracker import MetricTracker

__all__ = [
    'Alert',
    'AlertEvaluator',
    'HttpRequestStrategy',
    'LoadTestConfig',
    'LoadTestHarness',
    'LoadTestRequestError',
    'LoadTestResult',
    'SyntheticRequestStrategy',
    'get_logger',
    'job_run_scope',
    'setup_structured_logging',
    'PerftrackMetricsCollector',
    'PerformanceStats',
    'StatisticsEngine',
    'compute_stats',
    'percentile',
    'MetricStore',
    'PerformanceMetric',
    'PsutilSystemMonitor',
    'SystemMetrics',
    'SystemMonitor',
    'MetricTracker',
]
