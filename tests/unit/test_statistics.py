"""
Statistics Engine unit tests.

Percentile indexing convention: zero-based index floor(n * p) over ascending
samples, clamped to [0, n - 1].
"""

import random

import pytest

from perftrack.monitoring.statistics import compute_stats, percentile, percentile_index
from perftrack.monitoring.store import PerformanceMetric


async def _record(metric_store, name, durations, base=1_700_000_000_000):
    for offset, duration in enumerate(durations):
        await metric_store.record_metric(PerformanceMetric(name, duration, base + offset))


@pytest.mark.unit
class TestPercentileIndex:

    @pytest.mark.parametrize('count,p,expected', [
        (100, 0.95, 95),
        (100, 0.99, 99),
        (100, 0.5, 50),
        (1, 0.99, 0),
        (2, 0.99, 1),
        (10, 1.0, 9),
        (3, 0.0, 0),
    ])
    def test_index(self, count, p, expected):
        assert percentile_index(count, p) == expected

    def test_index_requires_samples(self):
        with pytest.raises(ValueError):
            percentile_index(0, 0.5)

    def test_percentile_of_empty_is_zero(self):
        assert percentile([], 0.95) == 0.0


@pytest.mark.unit
class TestComputeStats:

    def test_no_samples(self):
        assert compute_stats([]) is None

    def test_one_sample_fills_every_field(self):
        stats = compute_stats([42.5])

        assert stats.count == 1
        assert stats.avg == stats.min == stats.max == 42.5
        assert stats.p50 == stats.p95 == stats.p99 == 42.5

    def test_one_to_hundred(self):
        """For samples 1..100, p95 is 96 and p99 is 100."""
        values = list(range(1, 101))
        random.Random(7).shuffle(values)

        stats = compute_stats(values)

        assert stats.count == 100
        assert stats.min == 1
        assert stats.max == 100
        assert stats.avg == 50.5
        assert stats.p50 == 51
        assert stats.p95 == 96
        assert stats.p99 == 100

    def test_values_rounded_to_two_decimals(self):
        stats = compute_stats([1.004, 2.0061, 3.0])

        assert stats.min == 1.0
        assert stats.avg == 2.0
        assert stats.p50 == 2.01


@pytest.mark.unit
class TestStatisticsEngine:

    async def test_unknown_metric_returns_none(self, statistics):
        assert await statistics.get_performance_stats('never_recorded') is None

    async def test_single_recorded_sample(self, statistics, metric_store):
        await _record(metric_store, 'search_query', [17.25])

        stats = await statistics.get_performance_stats('search_query')

        assert stats.to_dict() == {
            'count': 1, 'avg': 17.25, 'min': 17.25, 'max': 17.25,
            'p50': 17.25, 'p95': 17.25, 'p99': 17.25,
        }

    async def test_recorded_distribution(self, statistics, metric_store):
        await _record(metric_store, 'api_response_time', [float(v) for v in range(100, 0, -1)])

        stats = await statistics.get_performance_stats('api_response_time')

        assert stats.count == 100
        assert stats.p95 == 96.0
        assert stats.p99 == 100.0

    async def test_metrics_are_independent(self, statistics, metric_store):
        await _record(metric_store, 'api_response_time', [10.0])
        await _record(metric_store, 'order_processing', [500.0, 700.0])

        api = await statistics.get_performance_stats('api_response_time')
        orders = await statistics.get_performance_stats('order_processing')

        assert api.count == 1
        assert orders.count == 2
        assert orders.avg == 600.0
