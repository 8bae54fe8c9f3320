"""
System monitor and application lifecycle unit tests.
"""

import asyncio
import json
import signal
import sys
from types import SimpleNamespace

import pytest
import redis.exceptions as redis_exceptions

from perftrack import app as app_module
from perftrack.cache.client import StoreClient
from perftrack.config.monitoring import ConfigurationError
from perftrack.monitoring.store import PerformanceMetric
from perftrack.monitoring.system import PsutilSystemMonitor
from perftrack.scheduler.jobs import JobStatus

from tests.fixtures.store_fixtures import FakeAsyncRedis


@pytest.fixture
def fake_psutil(mocker):
    mocker.patch('perftrack.monitoring.system.psutil.cpu_percent', return_value=37.5)
    mocker.patch(
        'perftrack.monitoring.system.psutil.virtual_memory',
        return_value=SimpleNamespace(percent=64.0)
    )


@pytest.mark.unit
class TestPsutilSystemMonitor:

    async def test_collects_host_and_application_metrics(
        self, fake_psutil, metric_store, fake_redis, metrics_collector, mocker
    ):
        now = 1_700_000_030_000
        mocker.patch('perftrack.monitoring.system.now_ms', return_value=now)
        previous_minute = (now // 60000 - 1) * 60000
        await metric_store.record_metric(PerformanceMetric('api_response_time', 100.0, previous_minute + 1))
        await metric_store.record_metric(PerformanceMetric('api_response_time', 300.0, previous_minute + 2))
        await fake_redis.sadd(f"active_users:{now // 1000}", 'u1', 'u2', 'u3')

        monitor = PsutilSystemMonitor(metric_store, metrics=metrics_collector)
        metrics = await monitor.collect_metrics()

        assert metrics.server.cpu_usage == 37.5
        assert metrics.server.memory_usage == 64.0
        assert metrics.application.response_time == 200.0
        assert metrics.application.active_users == 3
        assert metrics.timestamp == now
        assert metrics_collector.registry.get_sample_value('perftrack_cpu_utilization_percent') == 37.5

    async def test_no_traffic(self, fake_psutil, metric_store):
        metrics = await PsutilSystemMonitor(metric_store).collect_metrics()

        assert metrics.application.response_time == 0.0
        assert metrics.application.active_users == 0
        assert metrics.to_dict()['server'] == {'cpu_usage': 37.5, 'memory_usage': 64.0}


@pytest.fixture
def application(mocker, monkeypatch):
    fake_redis = FakeAsyncRedis()
    mocker.patch.object(app_module, 'create_store_client', return_value=StoreClient(fake_redis))
    mocker.patch.object(app_module, 'setup_structured_logging')
    monkeypatch.setattr(sys, 'excepthook', sys.excepthook)

    application = app_module.SchedulerApplication('testing')
    application.fake_redis = fake_redis
    return application


@pytest.mark.unit
class TestSchedulerApplication:

    def test_initialize_builds_default_jobs(self, application):
        scheduler = application.initialize()

        assert [job.name for job in scheduler.jobs] == [
            'system-metrics', 'scaling-evaluation', 'predictive-scaling', 'performance-alerts',
            'load-balancer-health', 'cleanup-old-data', 'daily-report',
        ]
        assert application.initialize() is scheduler

    async def test_run_until_shutdown(self, application):
        handler_calls = []
        application.add_shutdown_handler(lambda: handler_calls.append(True))

        run_task = asyncio.create_task(application.run())
        await asyncio.sleep(0.2)
        application.scheduler.request_shutdown('test')

        assert await asyncio.wait_for(run_task, timeout=10) is True
        assert handler_calls == [True]
        assert application.fake_redis.closed

        startup = json.loads(application.fake_redis.data['system_startup']['latest'])
        assert startup['environment'] == 'testing'
        assert application.scheduler.get_job('system-metrics').run_count == 1

    def test_main_reports_configuration_failure(self, mocker):
        mocker.patch.object(
            app_module, 'create_app_config', side_effect=ConfigurationError('REDIS_URL missing')
        )

        assert app_module.main() == 1


@pytest.mark.unit
class TestShutdownRoutes:

    async def _start(self, application):
        run_task = asyncio.create_task(application.run())
        await asyncio.sleep(0.2)
        return run_task

    async def test_signal_triggers_shutdown(self, application):
        run_task = await self._start(application)

        application._handle_signal(signal.SIGTERM)

        assert await asyncio.wait_for(run_task, timeout=10) is True
        assert application.store.closed
        assert application.fake_redis.closed

    async def test_event_loop_error_triggers_shutdown(self, application):
        run_task = await self._start(application)

        asyncio.get_running_loop().call_exception_handler({
            'message': 'Task exception was never retrieved',
            'exception': RuntimeError('boom'),
        })

        assert await asyncio.wait_for(run_task, timeout=10) is True
        assert application.store.closed

    async def test_uncaught_exception_triggers_shutdown(self, application):
        run_task = await self._start(application)

        error = RuntimeError('escaped')
        sys.excepthook(RuntimeError, error, error.__traceback__)

        assert await asyncio.wait_for(run_task, timeout=10) is True
        assert application.scheduler.is_shutting_down
        assert application.store.closed

    def test_uncaught_exception_outside_loop_only_logs(self, application):
        application.initialize()

        application._handle_uncaught_exception(RuntimeError, RuntimeError('late'), None)

        assert not application.scheduler.is_shutting_down


@pytest.mark.unit
class TestStoreDownAtStartup:

    async def test_keeps_running_and_records_job_failures(self, application):
        application.fake_redis.fail_with = redis_exceptions.ConnectionError('store down')

        run_task = asyncio.create_task(application.run())
        await asyncio.sleep(0.5)

        assert not run_task.done()
        job = application.scheduler.get_job('system-metrics')
        assert job.run_count >= 1
        assert job.last_status == JobStatus.FAILED

        application.scheduler.request_shutdown('test')

        assert await asyncio.wait_for(run_task, timeout=10) is True
        assert application.store.closed
