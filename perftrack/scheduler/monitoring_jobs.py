"""
Default monitoring jobs driven by the scheduler.

| job                  | interval | critical |
|----------------------|----------|----------|
| system-metrics       | 1 min    | yes      |
| scaling-evaluation   | 5 min    | yes      |
| predictive-scaling   | 15 min   | no       |
| performance-alerts   | 2 min    | no       |
| load-balancer-health | 3 min    | no       |
| cleanup-old-data     | 1 hour   | no       |
| daily-report         | 24 hours | no       |

Intervals come from SchedulerConfig; the table lists the defaults. When a tracker is
given, every run is recorded as the metric cron_job:{job name}.
"""

import asyncio
import json
import os
from datetime import date, datetime, time as dt_time, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog

from perftrack.cache.client import StoreClient
from perftrack.config.monitoring import AlertThresholds, SchedulerConfig
from perftrack.monitoring.alerts import DASHBOARD_METRICS, AlertEvaluator
from perftrack.monitoring.statistics import StatisticsEngine
from perftrack.monitoring.store import CONCURRENT_COUNTER_TTL_SECONDS, now_ms
from perftrack.monitoring.system import SystemMonitor
from perftrack.monitoring.tracker import MetricTracker
from perftrack.scaling.interfaces import NO_ACTION, AutoScaler
from perftrack.scheduler.jobs import CronJob
from perftrack.scheduler.notifications import (
    CRITICAL_ALERTS,
    HISTORY_LISTS,
    SCALING_NOTIFICATIONS,
    SYSTEM_ALERTS_HISTORY,
    NotificationSink,
)

logger = structlog.get_logger(__name__)

METRICS_TIMELINE_KEY = 'metrics_timeline'
DAILY_REPORTS_KEY = 'daily_reports'
SYSTEM_STARTUP_KEY = 'system_startup'
JOB_METRIC_PREFIX = 'cron_job:'

CRITICAL_JOBS = frozenset({'system-metrics', 'scaling-evaluation'})


def _day_bounds_ms(day: date) -> tuple:
    start = datetime.combine(day, dt_time.min, tzinfo=timezone.utc)
    end = start + timedelta(days=1)
    return int(start.timestamp() * 1000), int(end.timestamp() * 1000)


def _in_window(record: Dict[str, Any], start_ms: int, end_ms: int) -> bool:
    timestamp = record.get('timestamp')
    return isinstance(timestamp, (int, float)) and start_ms <= timestamp < end_ms


class MonitoringJobs:
    """Task implementations for the default job set."""

    def __init__(
        self,
        store: StoreClient,
        system_monitor: SystemMonitor,
        auto_scaler: AutoScaler,
        alert_evaluator: AlertEvaluator,
        statistics: StatisticsEngine,
        notifications: NotificationSink,
        tracker: Optional[MetricTracker] = None,
        thresholds: Optional[AlertThresholds] = None,
        config: Optional[SchedulerConfig] = None
    ):
        self.store = store
        self.system_monitor = system_monitor
        self.auto_scaler = auto_scaler
        self.alert_evaluator = alert_evaluator
        self.statistics = statistics
        self.notifications = notifications
        self.tracker = tracker
        self.thresholds = thresholds or AlertThresholds()
        self.config = config or SchedulerConfig()

    def build_jobs(self) -> List[CronJob]:
        tasks = {
            'system-metrics': self.collect_system_metrics,
            'scaling-evaluation': self.evaluate_scaling,
            'predictive-scaling': self.run_predictive_scaling,
            'performance-alerts': self.check_performance_alerts,
            'load-balancer-health': self.manage_load_balancer,
            'cleanup-old-data': self.cleanup_old_data,
            'daily-report': self.generate_daily_report,
        }
        intervals = self.config.job_intervals()
        return [
            CronJob(
                name=name,
                interval=int(intervals[name] * 1000),
                task=self._timed(name, task),
                critical=name in CRITICAL_JOBS,
            )
            for name, task in tasks.items()
        ]

    def _timed(self, name: str, task: Callable[[], Awaitable[Any]]) -> Callable[[], Awaitable[Any]]:
        """Run the task under the tracker as cron_job:{name}; errors still reach the scheduler."""
        if self.tracker is None:
            return task

        async def run() -> Any:
            return await self.tracker.measure_async(f"{JOB_METRIC_PREFIX}{name}", task)

        return run

    async def record_startup(self, version: str, environment: str) -> Dict[str, Any]:
        startup_info = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'version': version,
            'environment': environment,
            'pid': os.getpid(),
        }
        await self.store.hset(SYSTEM_STARTUP_KEY, {'latest': json.dumps(startup_info)})
        logger.info("System startup recorded", **startup_info)
        return startup_info

    async def collect_system_metrics(self) -> None:
        metrics = await self.system_monitor.collect_metrics()
        thresholds = self.thresholds

        alerts = []
        if metrics.server.cpu_usage > thresholds.cpu_critical_percent:
            alerts.append(f"Critical CPU usage: {metrics.server.cpu_usage}%")
        if metrics.server.memory_usage > thresholds.memory_critical_percent:
            alerts.append(f"Critical memory usage: {metrics.server.memory_usage}%")
        if metrics.application.response_time > thresholds.system_response_time_critical_ms:
            alerts.append(f"Slow response time: {metrics.application.response_time}ms")

        if alerts:
            logger.warning("System alerts raised", alerts=alerts)
            await self.notifications.system_alert(alerts)

        timestamp = now_ms()
        sample = {
            'timestamp': timestamp,
            'cpu': metrics.server.cpu_usage,
            'memory': metrics.server.memory_usage,
            'response_time': metrics.application.response_time,
            'active_users': metrics.application.active_users,
        }
        retention_ms = self.config.metrics_retention_days * 24 * 60 * 60 * 1000

        pipe = self.store.pipeline()
        pipe.zadd(METRICS_TIMELINE_KEY, {json.dumps(sample): timestamp})
        pipe.zremrangebyscore(METRICS_TIMELINE_KEY, 0, timestamp - retention_ms)
        await pipe.execute()

    async def evaluate_scaling(self) -> None:
        decision = await self.auto_scaler.evaluate_scaling()

        if decision.action != NO_ACTION:
            logger.info(
                "Scaling action taken",
                action=decision.action,
                reason=decision.reason,
                confidence=decision.confidence
            )
            await self.notifications.scaling_notification(decision.to_dict())

    async def run_predictive_scaling(self) -> None:
        prediction = await self.auto_scaler.predictive_scaling()

        if prediction is not None:
            logger.info("Predictive scaling executed", reason=prediction.reason)
            await self.notifications.predictive_scaling_notification(prediction.to_dict())

    async def check_performance_alerts(self) -> None:
        alerts = await self.alert_evaluator.check_performance_alerts()

        if alerts:
            await self.notifications.performance_alert([alert.to_dict() for alert in alerts])

    async def manage_load_balancer(self) -> None:
        status = await self.auto_scaler.manage_load_balancer()

        if status.unhealthy > 0:
            logger.warning(
                "Load balancer has unhealthy instances",
                unhealthy=status.unhealthy,
                total=status.total
            )
            await self.notifications.load_balancer_alert(status.to_dict())
        else:
            logger.info("Load balancer healthy", healthy=status.healthy, total=status.total)

    async def cleanup_old_data(self) -> Dict[str, int]:
        """
        Run all cleanup steps concurrently; one failing step does not stop the
        others.

        Returns:
            Counts of successful and failed steps
        """
        steps = {
            'metrics': self._cleanup_old_metrics(),
            'logs': self._cleanup_old_logs(),
            'sessions': self._cleanup_expired_sessions(),
            'cache': self._cleanup_old_cache(),
        }
        results = await asyncio.gather(*steps.values(), return_exceptions=True)

        failed = 0
        for step, result in zip(steps, results):
            if isinstance(result, Exception):
                failed += 1
                logger.error("Cleanup step failed", step=step, error=str(result))
            else:
                logger.debug("Cleanup step finished", step=step, affected=result)

        if self.tracker is not None:
            self.tracker.prune_stale_timers(CONCURRENT_COUNTER_TTL_SECONDS)

        summary = {'successful': len(steps) - failed, 'failed': failed}
        logger.info("Cleanup completed", **summary)
        return summary

    async def _cleanup_old_metrics(self) -> int:
        cutoff = now_ms() - self.config.metrics_retention_days * 24 * 60 * 60 * 1000
        keys = await self.store.keys('metrics:*:timeline')
        for key in keys:
            await self.store.zremrangebyscore(key, 0, cutoff)
        return len(keys)

    async def _cleanup_old_logs(self) -> int:
        lists = HISTORY_LISTS + (CRITICAL_ALERTS,)
        for name in lists:
            await self.store.ltrim(name, 0, self.config.history_list_max_length - 1)
        return len(lists)

    async def _cleanup_expired_sessions(self) -> int:
        cleaned = 0
        for key in await self.store.keys('session:*'):
            # -1: key exists without an expiry
            if await self.store.ttl(key) == -1:
                await self.store.delete(key)
                cleaned += 1
        return cleaned

    async def _cleanup_old_cache(self) -> int:
        """Count cache keys that were written without an expiry; they are left in place."""
        without_ttl = 0
        for key in await self.store.keys('cache:*'):
            if await self.store.ttl(key) == -1:
                without_ttl += 1
        if without_ttl:
            logger.warning("Cache keys without expiry found", count=without_ttl)
        return without_ttl

    async def generate_daily_report(self, day: Optional[date] = None) -> Dict[str, Any]:
        """
        Summarize one UTC day (yesterday by default) and store it in the
        daily_reports hash under its ISO date.
        """
        day = day or (datetime.now(timezone.utc).date() - timedelta(days=1))
        start_ms, end_ms = _day_bounds_ms(day)

        report = {
            'date': day.isoformat(),
            'system': await self._daily_system_summary(start_ms, end_ms),
            'performance': await self._performance_summary(),
            'scaling': await self._daily_scaling_summary(start_ms, end_ms),
            'errors': await self._daily_error_summary(start_ms, end_ms),
            'generated_at': datetime.now(timezone.utc).isoformat(),
        }

        await self.store.hset(DAILY_REPORTS_KEY, {report['date']: json.dumps(report)})
        logger.info("Daily report generated", date=report['date'])
        return report

    async def _daily_system_summary(self, start_ms: int, end_ms: int) -> Dict[str, Any]:
        members = await self.store.zrangebyscore(METRICS_TIMELINE_KEY, start_ms, end_ms - 1)
        samples = [json.loads(member) for member in members]
        if not samples:
            return {'samples': 0, 'avg_cpu': 0.0, 'avg_memory': 0.0, 'peak_cpu': 0.0,
                    'peak_memory': 0.0, 'avg_response_time': 0.0}

        def average(field: str) -> float:
            return round(sum(float(s.get(field, 0)) for s in samples) / len(samples), 2)

        return {
            'samples': len(samples),
            'avg_cpu': average('cpu'),
            'avg_memory': average('memory'),
            'peak_cpu': max(float(s.get('cpu', 0)) for s in samples),
            'peak_memory': max(float(s.get('memory', 0)) for s in samples),
            'avg_response_time': average('response_time'),
        }

    async def _performance_summary(self) -> Dict[str, Any]:
        summary = {}
        for section, metric_name in DASHBOARD_METRICS.items():
            stats = await self.statistics.get_performance_stats(metric_name)
            summary[section] = stats.to_dict() if stats else None
        return summary

    async def _daily_scaling_summary(self, start_ms: int, end_ms: int) -> Dict[str, Any]:
        records = await self.notifications.recent(SCALING_NOTIFICATIONS, self.config.history_list_max_length)
        events = [r for r in records if _in_window(r, start_ms, end_ms)]
        return {
            'scaling_events': sum(1 for r in events if r.get('type') == 'scaling'),
            'predictive_events': sum(1 for r in events if r.get('type') == 'predictive'),
        }

    async def _daily_error_summary(self, start_ms: int, end_ms: int) -> Dict[str, Any]:
        critical = await self.notifications.recent(CRITICAL_ALERTS, self.config.history_list_max_length)
        system = await self.notifications.recent(SYSTEM_ALERTS_HISTORY, self.config.history_list_max_length)
        critical_today = [r for r in critical if _in_window(r, start_ms, end_ms)]
        return {
            'critical_errors': len(critical_today),
            'failed_jobs': sorted({r.get('job') for r in critical_today if r.get('job')}),
            'system_alerts': sum(1 for r in system if _in_window(r, start_ms, end_ms)),
        }


__all__ = [
    'CRITICAL_JOBS',
    'MonitoringJobs',
]
