"""
System Monitor

Host and application level metrics for the system-metrics job. Host CPU and
memory utilization come from psutil; application response time and active
users are read from data the tracker and application already write to the store.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Protocol

import psutil
import structlog

from perftrack.monitoring.metrics import PerftrackMetricsCollector
from perftrack.monitoring.store import MetricStore, now_ms

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ServerMetrics:
    cpu_usage: float
    memory_usage: float


@dataclass(frozen=True)
class ApplicationMetrics:
    response_time: float
    active_users: int


@dataclass(frozen=True)
class SystemMetrics:
    server: ServerMetrics
    application: ApplicationMetrics
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SystemMonitor(Protocol):
    async def collect_metrics(self) -> SystemMetrics:
        ...


class PsutilSystemMonitor:
    """
    Default SystemMonitor.

    response_time is the average duration recorded for the response time
    metric in the previous full minute bucket; active_users is the size of the
    active user set for the current second.
    """

    def __init__(
        self,
        metric_store: MetricStore,
        response_time_metric: str = 'api_response_time',
        metrics: Optional[PerftrackMetricsCollector] = None
    ):
        self.metric_store = metric_store
        self.response_time_metric = response_time_metric
        self.metrics = metrics
        # first cpu_percent(interval=None) call returns 0.0; prime the counter
        psutil.cpu_percent(interval=None)

    async def collect_metrics(self) -> SystemMetrics:
        timestamp = now_ms()

        cpu_usage = psutil.cpu_percent(interval=None)
        memory_usage = psutil.virtual_memory().percent

        bucket = await self.metric_store.get_minute_bucket(
            self.response_time_metric, timestamp // 60000 - 1
        )
        active_users = await self.metric_store.get_active_users(timestamp // 1000)

        if self.metrics:
            self.metrics.update_resource_utilization(cpu_usage, memory_usage)

        system_metrics = SystemMetrics(
            server=ServerMetrics(cpu_usage=cpu_usage, memory_usage=memory_usage),
            application=ApplicationMetrics(
                response_time=round(bucket.average_duration, 2),
                active_users=active_users,
            ),
            timestamp=timestamp,
        )

        logger.debug(
            "System metrics collected",
            cpu_usage=cpu_usage,
            memory_usage=memory_usage,
            response_time=system_metrics.application.response_time,
            active_users=active_users
        )
        return system_metrics


__all__ = [
    'ServerMetrics',
    'ApplicationMetrics',
    'SystemMetrics',
    'SystemMonitor',
    'PsutilSystemMonitor',
]
