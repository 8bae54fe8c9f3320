"""
Alert Evaluator unit tests: threshold classification, store-backed checks and the
dashboard snapshot.
"""

import pytest

from perftrack.monitoring.alerts import AlertEvaluator
from perftrack.monitoring.statistics import PerformanceStats
from perftrack.monitoring.store import PerformanceMetric, now_ms


def _stats(p95: float) -> PerformanceStats:
    return PerformanceStats(count=100, avg=p95 / 2, min=1.0, max=p95 * 1.1, p50=p95 / 2, p95=p95, p99=p95 * 1.05)


@pytest.fixture
def evaluator(statistics, metric_store, thresholds, metrics_collector):
    return AlertEvaluator(statistics, metric_store, thresholds, metrics_collector)


@pytest.mark.unit
class TestEvaluate:

    def test_warning_above_two_seconds(self, evaluator):
        alerts = evaluator.evaluate(_stats(2500), concurrent_users=0)

        assert len(alerts) == 1
        assert alerts[0].type == 'performance'
        assert alerts[0].severity == 'warning'
        assert alerts[0].metric == 'response_time'
        assert alerts[0].value == 2500
        assert '2500' in alerts[0].message

    def test_critical_above_five_seconds(self, evaluator):
        alerts = evaluator.evaluate(_stats(6000), concurrent_users=0)

        assert [(alert.type, alert.severity) for alert in alerts] == [('performance', 'critical')]

    def test_no_alert_when_fast(self, evaluator):
        assert evaluator.evaluate(_stats(1000), concurrent_users=0) == []

    def test_threshold_is_exclusive(self, evaluator):
        assert evaluator.evaluate(_stats(2000), concurrent_users=8000) == []

    def test_no_stats_no_performance_alert(self, evaluator):
        assert evaluator.evaluate(None, concurrent_users=10) == []

    @pytest.mark.parametrize('users,severity', [(8001, 'warning'), (9500, 'warning'), (9501, 'critical')])
    def test_capacity(self, evaluator, users, severity):
        alerts = evaluator.evaluate(None, concurrent_users=users)

        assert len(alerts) == 1
        assert alerts[0].type == 'capacity'
        assert alerts[0].severity == severity
        assert alerts[0].metric == 'concurrent_users'
        assert alerts[0].value == users

    def test_performance_then_capacity(self, evaluator):
        alerts = evaluator.evaluate(_stats(6000), concurrent_users=9000)

        assert [alert.type for alert in alerts] == ['performance', 'capacity']


@pytest.mark.unit
class TestStoreBackedChecks:

    async def test_check_reads_recorded_latency(self, evaluator, metric_store, metrics_collector):
        base = now_ms()
        for offset in range(20):
            await metric_store.record_metric(PerformanceMetric('api_response_time', 2500.0, base + offset))

        alerts = await evaluator.check_performance_alerts()

        assert [(alert.type, alert.severity) for alert in alerts] == [('performance', 'warning')]
        assert metrics_collector.registry.get_sample_value(
            'perftrack_alerts_total', {'type': 'performance', 'severity': 'warning'}
        ) == 1.0

    async def test_check_samples_active_users(self, evaluator, fake_redis, mocker):
        second = 1_700_000_000
        mocker.patch('perftrack.monitoring.store.now_ms', return_value=second * 1000)
        await fake_redis.sadd(f"active_users:{second}", *[f"user-{i}" for i in range(8001)])

        alerts = await evaluator.check_performance_alerts()

        assert [alert.type for alert in alerts] == ['capacity']
        assert await fake_redis.hget(f"concurrent_users:{second // 60}", 'count') == '8001'

    async def test_healthy_state(self, evaluator):
        assert await evaluator.check_performance_alerts() == []


@pytest.mark.unit
class TestDashboard:

    async def test_dashboard_snapshot(self, evaluator, metric_store):
        base = now_ms()
        await metric_store.record_metric(PerformanceMetric('search_query', 120.0, base))

        data = await evaluator.get_dashboard_data()

        assert data['search']['count'] == 1
        assert data['search']['p95'] == 120.0
        assert data['api'] is None
        assert data['orders'] is None
        assert data['concurrent_users'] == 0
        assert 'T' in data['last_updated']
