"""
Default monitoring job unit tests.

The system monitor is replaced by a stub returning fixed readings; the auto-scaler,
alert evaluator, statistics engine and notification sink are the real components
over the in-memory store.
"""

import asyncio
import json
from datetime import date

import pytest

from perftrack.config.monitoring import SchedulerConfig
from perftrack.monitoring.alerts import AlertEvaluator
from perftrack.monitoring.store import PerformanceMetric, now_ms
from perftrack.monitoring.system import ApplicationMetrics, ServerMetrics, SystemMetrics
from perftrack.scaling.autoscaler import StoreBackedAutoScaler
from perftrack.scheduler.engine import JobScheduler
from perftrack.scheduler.jobs import JobStatus
from perftrack.scheduler.monitoring_jobs import (
    CRITICAL_JOBS,
    JOB_METRIC_PREFIX,
    METRICS_TIMELINE_KEY,
    MonitoringJobs,
)
from perftrack.scheduler.notifications import (
    CRITICAL_ALERTS,
    LB_ALERTS_HISTORY,
    PERFORMANCE_ALERTS_HISTORY,
    SCALING_NOTIFICATIONS,
    SYSTEM_ALERTS_HISTORY,
)

DAY = date(2023, 11, 14)
DAY_START_MS = 1_699_920_000_000


class StubSystemMonitor:
    def __init__(self, cpu=20.0, memory=35.0, response_time=150.0, active_users=12):
        self.readings = (cpu, memory, response_time, active_users)

    async def collect_metrics(self):
        cpu, memory, response_time, active_users = self.readings
        return SystemMetrics(
            server=ServerMetrics(cpu_usage=cpu, memory_usage=memory),
            application=ApplicationMetrics(response_time=response_time, active_users=active_users),
            timestamp=now_ms(),
        )


def _sample(timestamp, cpu=50.0, memory=50.0, response_time=500.0):
    return json.dumps({
        'timestamp': timestamp,
        'cpu': cpu,
        'memory': memory,
        'response_time': response_time,
        'active_users': 10,
    })


@pytest.fixture
def monitor():
    return StubSystemMonitor()


@pytest.fixture
def jobs(store, metric_store, statistics, notifications, tracker, monitor, thresholds):
    return MonitoringJobs(
        store=store,
        system_monitor=monitor,
        auto_scaler=StoreBackedAutoScaler(store),
        alert_evaluator=AlertEvaluator(statistics, metric_store, thresholds),
        statistics=statistics,
        notifications=notifications,
        tracker=tracker,
        thresholds=thresholds,
        config=SchedulerConfig(),
    )


@pytest.mark.unit
class TestJobSet:

    def test_default_jobs(self, jobs):
        built = {job.name: job for job in jobs.build_jobs()}

        assert {name: job.interval for name, job in built.items()} == {
            'system-metrics': 60_000,
            'scaling-evaluation': 300_000,
            'predictive-scaling': 900_000,
            'performance-alerts': 120_000,
            'load-balancer-health': 180_000,
            'cleanup-old-data': 3_600_000,
            'daily-report': 86_400_000,
        }
        assert {name for name, job in built.items() if job.critical} == CRITICAL_JOBS == {
            'system-metrics', 'scaling-evaluation'
        }
        assert all(job.last_run == 0 and not job.is_running for job in built.values())

    async def test_scheduled_run_is_timed(self, jobs, store, notifications, metric_store, statistics, scheduler_config):
        built = {job.name: job for job in jobs.build_jobs()}
        scheduler = JobScheduler(store, [built['system-metrics']], notifications, scheduler_config)

        scheduler.tick(now_ms())
        await asyncio.gather(*scheduler.dispatch_pending())

        stats = await statistics.get_performance_stats(f"{JOB_METRIC_PREFIX}system-metrics")
        assert stats.count == 1
        [entry] = await metric_store.get_timeline('cron_job:system-metrics')
        assert entry.metadata == {'success': True}

    async def test_failed_run_is_timed_and_still_fails(
        self, jobs, store, fake_redis, notifications, metric_store, monitor, scheduler_config, mocker
    ):
        mocker.patch.object(monitor, 'collect_metrics', side_effect=RuntimeError('sensor offline'))
        built = {job.name: job for job in jobs.build_jobs()}
        scheduler = JobScheduler(store, [built['system-metrics']], notifications, scheduler_config)

        scheduler.tick(now_ms())
        await asyncio.gather(*scheduler.dispatch_pending())

        [entry] = await metric_store.get_timeline('cron_job:system-metrics')
        assert entry.metadata == {'success': False, 'error': 'sensor offline'}
        assert built['system-metrics'].last_status == JobStatus.FAILED
        assert (await fake_redis.hgetall('cron_job_stats:system-metrics'))['status'] == 'failed'

    def test_untracked_jobs_run_bare(self, jobs):
        jobs.tracker = None

        built = {job.name: job for job in jobs.build_jobs()}

        assert built['daily-report'].task == jobs.generate_daily_report

    async def test_record_startup(self, jobs, fake_redis):
        info = await jobs.record_startup('1.2.3', 'testing')

        stored = json.loads(await fake_redis.hget('system_startup', 'latest'))
        assert stored == info
        assert stored['version'] == '1.2.3'
        assert stored['environment'] == 'testing'


@pytest.mark.unit
class TestSystemMetricsJob:

    async def test_healthy_readings_append_sample(self, jobs, notifications, fake_redis):
        await jobs.collect_system_metrics()

        members = await fake_redis.zrangebyscore(METRICS_TIMELINE_KEY, '-inf', '+inf')
        assert len(members) == 1
        assert json.loads(members[0])['cpu'] == 20.0
        assert json.loads(members[0])['active_users'] == 12
        assert await notifications.recent(SYSTEM_ALERTS_HISTORY) == []

    async def test_critical_readings_raise_system_alert(self, jobs, monitor, notifications):
        monitor.readings = (95.5, 96.0, 3500.0, 3)

        await jobs.collect_system_metrics()

        records = await notifications.recent(SYSTEM_ALERTS_HISTORY)
        assert len(records) == 1
        assert records[0]['type'] == 'system'
        assert records[0]['alerts'] == [
            'Critical CPU usage: 95.5%',
            'Critical memory usage: 96.0%',
            'Slow response time: 3500.0ms',
        ]

    async def test_samples_beyond_retention_pruned(self, jobs, store, fake_redis):
        stale = now_ms() - 8 * 24 * 60 * 60 * 1000
        await store.zadd(METRICS_TIMELINE_KEY, {_sample(stale): stale})

        await jobs.collect_system_metrics()

        assert await fake_redis.zcard(METRICS_TIMELINE_KEY) == 1


@pytest.mark.unit
class TestScalingJobs:

    async def test_scale_up_pushes_notification(self, jobs, store, notifications, fake_redis):
        timestamp = now_ms()
        await store.zadd(METRICS_TIMELINE_KEY, {_sample(timestamp, cpu=85.0): timestamp})

        await jobs.evaluate_scaling()

        records = await notifications.recent(SCALING_NOTIFICATIONS)
        assert len(records) == 1
        assert records[0]['type'] == 'scaling'
        assert records[0]['action'] == 'scale_up'
        assert records[0]['target_instances'] == 3
        assert await fake_redis.get('scaling:instances') == '3'

    async def test_no_action_is_silent(self, jobs, store, notifications):
        timestamp = now_ms()
        await store.zadd(METRICS_TIMELINE_KEY, {_sample(timestamp): timestamp})

        await jobs.evaluate_scaling()

        assert await notifications.recent(SCALING_NOTIFICATIONS) == []

    async def test_predictive_scaling_notification(self, jobs, store, notifications):
        base = now_ms()
        for i, cpu in enumerate([40.0, 45.0, 50.0, 55.0, 60.0]):
            await store.zadd(METRICS_TIMELINE_KEY, {_sample(base + i, cpu=cpu): base + i})

        await jobs.run_predictive_scaling()

        records = await notifications.recent(SCALING_NOTIFICATIONS)
        assert len(records) == 1
        assert records[0]['type'] == 'predictive'
        assert records[0]['predicted_cpu'] == 85.0
        assert records[0]['recommended_instances'] == 3

    async def test_unhealthy_instances_alert(self, jobs, store, notifications):
        await store.hset('lb:instances', {'i-1': 'healthy', 'i-2': 'unhealthy', 'i-3': 'draining'})

        await jobs.manage_load_balancer()

        records = await notifications.recent(LB_ALERTS_HISTORY)
        assert len(records) == 1
        assert records[0]['status']['unhealthy'] == 2
        assert records[0]['status']['unhealthy_instances'] == ['i-2', 'i-3']

    async def test_healthy_load_balancer_is_silent(self, jobs, store, notifications):
        await store.hset('lb:instances', {'i-1': 'healthy'})

        await jobs.manage_load_balancer()

        assert await notifications.recent(LB_ALERTS_HISTORY) == []


@pytest.mark.unit
class TestPerformanceAlertJob:

    async def test_alerts_pushed_to_history(self, jobs, metric_store, notifications):
        base = now_ms()
        for offset in range(10):
            await metric_store.record_metric(PerformanceMetric('api_response_time', 6000.0, base + offset))

        await jobs.check_performance_alerts()

        records = await notifications.recent(PERFORMANCE_ALERTS_HISTORY)
        assert len(records) == 1
        assert records[0]['alerts'][0]['severity'] == 'critical'

    async def test_no_alerts_no_record(self, jobs, notifications):
        await jobs.check_performance_alerts()

        assert await notifications.recent(PERFORMANCE_ALERTS_HISTORY) == []


@pytest.mark.unit
class TestCleanupJob:

    async def test_cleanup_steps(self, jobs, store, fake_redis, tracker):
        recent = now_ms()
        await store.zadd('metrics:api_response_time:timeline', {'old': 1, 'new': recent})
        await store.set('session:expired', 'x')
        await store.set('session:live', 'x', ttl=600)
        await store.set('cache:unbounded', 'x')
        await store.lpush(SYSTEM_ALERTS_HISTORY, *[str(i) for i in range(1005)])
        stale_timer = await tracker.start_metric('api_response_time')
        tracker._active[stale_timer].started_at -= 3600

        summary = await jobs.cleanup_old_data()

        assert summary == {'successful': 4, 'failed': 0}
        assert await fake_redis.zrangebyscore('metrics:api_response_time:timeline', '-inf', '+inf') == ['new']
        assert not await store.exists('session:expired')
        assert await store.exists('session:live')
        assert await store.exists('cache:unbounded')
        assert await store.llen(SYSTEM_ALERTS_HISTORY) == 1000
        assert tracker.active_timer_count == 0

    async def test_failed_step_does_not_stop_others(self, jobs, store, fake_redis):
        await store.set(LB_ALERTS_HISTORY, 'not a list')
        await store.set('session:expired', 'x')

        summary = await jobs.cleanup_old_data()

        assert summary == {'successful': 3, 'failed': 1}
        assert not await store.exists('session:expired')


@pytest.mark.unit
class TestDailyReport:

    async def test_report_summarizes_the_day(self, jobs, store, notifications, fake_redis):
        inside = DAY_START_MS + 3_600_000
        outside = DAY_START_MS + 86_400_000
        await store.zadd(METRICS_TIMELINE_KEY, {
            _sample(inside, cpu=50.0, memory=40.0, response_time=200.0): inside,
            _sample(inside + 60_000, cpu=70.0, memory=60.0, response_time=400.0): inside + 60_000,
            _sample(outside, cpu=99.0): outside,
        })
        await notifications.push(SCALING_NOTIFICATIONS, {'action': 'scale_up', 'timestamp': inside, 'type': 'scaling'})
        await notifications.push(SCALING_NOTIFICATIONS, {'timestamp': inside, 'type': 'predictive'})
        await notifications.push(SCALING_NOTIFICATIONS, {'timestamp': outside, 'type': 'scaling'})
        await notifications.push(CRITICAL_ALERTS, {'job': 'system-metrics', 'error': 'x', 'timestamp': inside, 'type': 'critical'})
        await notifications.push(CRITICAL_ALERTS, {'job': 'system-metrics', 'error': 'y', 'timestamp': inside, 'type': 'critical'})
        await notifications.push(SYSTEM_ALERTS_HISTORY, {'alerts': ['a'], 'timestamp': inside, 'type': 'system'})

        report = await jobs.generate_daily_report(DAY)

        assert report['date'] == '2023-11-14'
        assert report['system'] == {
            'samples': 2,
            'avg_cpu': 60.0,
            'avg_memory': 50.0,
            'peak_cpu': 70.0,
            'peak_memory': 60.0,
            'avg_response_time': 300.0,
        }
        assert report['scaling'] == {'scaling_events': 1, 'predictive_events': 1}
        assert report['errors'] == {'critical_errors': 2, 'failed_jobs': ['system-metrics'], 'system_alerts': 1}
        assert set(report['performance']) == {'api', 'search', 'orders'}

        stored = json.loads(await fake_redis.hget('daily_reports', '2023-11-14'))
        assert stored == report

    async def test_empty_day(self, jobs):
        report = await jobs.generate_daily_report(DAY)

        assert report['system']['samples'] == 0
        assert report['errors']['critical_errors'] == 0
