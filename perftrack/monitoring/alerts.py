"""
Alert Evaluator

Threshold checks over current response time statistics and the sampled concurrent
user count. An empty alert list is the healthy state.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog

from perftrack.config.monitoring import AlertThresholds
from perftrack.monitoring.metrics import PerftrackMetricsCollector
from perftrack.monitoring.statistics import PerformanceStats, StatisticsEngine
from perftrack.monitoring.store import MetricStore

logger = structlog.get_logger(__name__)

DASHBOARD_METRICS = {
    'api': 'api_response_time',
    'search': 'search_query',
    'orders': 'order_processing',
}


@dataclass(frozen=True)
class Alert:
    type: str
    severity: str
    message: str
    metric: str
    value: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AlertEvaluator:
    def __init__(
        self,
        statistics: StatisticsEngine,
        metric_store: MetricStore,
        thresholds: Optional[AlertThresholds] = None,
        metrics: Optional[PerftrackMetricsCollector] = None
    ):
        self.statistics = statistics
        self.metric_store = metric_store
        self.thresholds = thresholds or AlertThresholds()
        self.metrics = metrics

    def evaluate(self, stats: Optional[PerformanceStats], concurrent_users: int) -> List[Alert]:
        """
        Apply the alert thresholds to a stats snapshot and a user count.

        Args:
            stats: Response time statistics, None when no samples exist
            concurrent_users: Sampled concurrent user count

        Returns:
            Alerts in evaluation order (performance, then capacity)
        """
        thresholds = self.thresholds
        alerts = []

        if stats is not None and stats.p95 > thresholds.response_time_p95_warning_ms:
            severity = 'critical' if stats.p95 > thresholds.response_time_p95_critical_ms else 'warning'
            alerts.append(Alert(
                type='performance',
                severity=severity,
                message=f"API response time is slow. P95: {stats.p95}ms",
                metric='response_time',
                value=stats.p95,
            ))

        if concurrent_users > thresholds.concurrent_users_warning:
            severity = 'critical' if concurrent_users > thresholds.concurrent_users_critical else 'warning'
            alerts.append(Alert(
                type='capacity',
                severity=severity,
                message=f"High concurrent user count: {concurrent_users}",
                metric='concurrent_users',
                value=concurrent_users,
            ))

        return alerts

    async def check_performance_alerts(self) -> List[Alert]:
        stats = await self.statistics.get_performance_stats(self.thresholds.response_time_metric)
        concurrent_users = await self.metric_store.track_concurrent_users()

        alerts = self.evaluate(stats, concurrent_users)

        for alert in alerts:
            logger.warning(
                "Performance alert raised",
                alert_type=alert.type,
                severity=alert.severity,
                metric=alert.metric,
                value=alert.value
            )
            if self.metrics:
                self.metrics.record_alert(alert.type, alert.severity)

        return alerts

    async def get_dashboard_data(self) -> Dict[str, Any]:
        """
        Snapshot for dashboards: stats for the well-known metrics, the
        concurrent user count and an ISO timestamp.
        """
        data: Dict[str, Any] = {}
        for section, metric_name in DASHBOARD_METRICS.items():
            stats = await self.statistics.get_performance_stats(metric_name)
            data[section] = stats.to_dict() if stats else None

        data['concurrent_users'] = await self.metric_store.track_concurrent_users()
        data['last_updated'] = datetime.now(timezone.utc).isoformat()
        return data


__all__ = [
    'Alert',
    'AlertEvaluator',
    'DASHBOARD_METRICS',
]
