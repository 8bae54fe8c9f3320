"""
Global pytest Configuration and Fixtures

Every component under test receives its store handle by injection, so the suite runs
against the in-memory FakeAsyncRedis double from tests/fixtures/store_fixtures.py
instead of a live Redis server. Each test gets fresh instances: a new fake store, a
new private Prometheus registry and new tracker, statistics and notification
components wired to them.

Dependencies:
- pytest 7.4+
- pytest-asyncio for async tests (asyncio_mode = auto)
- pytest-mock for patching psutil and clocks
"""

import os

import pytest

os.environ.setdefault('PERFTRACK_ENV', 'testing')

from perftrack.cache.client import StoreClient
from perftrack.config.monitoring import AlertThresholds, LoadTestDefaults, SchedulerConfig
from perftrack.monitoring.metrics import PerftrackMetricsCollector
from perftrack.monitoring.statistics import StatisticsEngine
from perftrack.monitoring.store import MetricStore
from perftrack.monitoring.tracker import MetricTracker
from perftrack.scheduler.notifications import NotificationSink

from tests.fixtures.store_fixtures import FakeAsyncRedis


def pytest_configure(config):
    """Register custom markers for test categorization."""
    config.addinivalue_line("markers", "unit: Unit tests with isolated component testing")
    config.addinivalue_line("markers", "slow: Tests that run in real time for more than a second")


@pytest.fixture
def fake_redis() -> FakeAsyncRedis:
    return FakeAsyncRedis()


@pytest.fixture
def store(fake_redis) -> StoreClient:
    return StoreClient(fake_redis)


@pytest.fixture
def metric_store(store) -> MetricStore:
    return MetricStore(store)


@pytest.fixture
def metrics_collector() -> PerftrackMetricsCollector:
    return PerftrackMetricsCollector()


@pytest.fixture
def tracker(metric_store, metrics_collector) -> MetricTracker:
    return MetricTracker(metric_store, metrics_collector)


@pytest.fixture
def statistics(metric_store) -> StatisticsEngine:
    return StatisticsEngine(metric_store)


@pytest.fixture
def notifications(store, metrics_collector) -> NotificationSink:
    return NotificationSink(store, metrics_collector)


@pytest.fixture
def thresholds() -> AlertThresholds:
    return AlertThresholds()


@pytest.fixture
def fast_load_test_defaults() -> LoadTestDefaults:
    """Synthetic requests of 1-5 ms with little jitter, so short runs still produce traffic."""
    return LoadTestDefaults(
        min_processing_ms=1.0,
        max_processing_ms=5.0,
        failure_rate=0.05,
        max_jitter_ms=5.0,
    )


@pytest.fixture
def scheduler_config() -> SchedulerConfig:
    """Scheduler timing scaled down so lifecycle tests finish in well under a second."""
    return SchedulerConfig(
        tick_interval=0.01,
        shutdown_poll_interval=0.01,
        shutdown_timeout=0.5,
    )
