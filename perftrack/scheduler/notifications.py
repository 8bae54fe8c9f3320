"""
Notification sink.

Alerts and notifications are JSON records pushed (newest first) onto named store
lists. Delivery to e-mail, chat or webhooks is left to external consumers of
these lists.
"""

import json
from typing import Any, Dict, List, Optional, Sequence

import structlog

from perftrack.cache.client import StoreClient
from perftrack.monitoring.metrics import PerftrackMetricsCollector
from perftrack.monitoring.store import now_ms

logger = structlog.get_logger(__name__)

CRITICAL_ALERTS = 'critical_alerts'
SYSTEM_ALERTS_HISTORY = 'system_alerts_history'
SCALING_NOTIFICATIONS = 'scaling_notifications'
PERFORMANCE_ALERTS_HISTORY = 'performance_alerts_history'
LB_ALERTS_HISTORY = 'lb_alerts_history'

HISTORY_LISTS = (
    SYSTEM_ALERTS_HISTORY,
    SCALING_NOTIFICATIONS,
    PERFORMANCE_ALERTS_HISTORY,
    LB_ALERTS_HISTORY,
)


class NotificationSink:
    def __init__(self, store: StoreClient, metrics: Optional[PerftrackMetricsCollector] = None):
        self.store = store
        self.metrics = metrics

    async def push(self, channel: str, record: Dict[str, Any]) -> None:
        await self.store.lpush(channel, json.dumps(record, default=str))
        if self.metrics:
            self.metrics.record_notification(channel)
        logger.info("Notification pushed", channel=channel, notification_type=record.get('type'))

    async def recent(self, channel: str, count: int = 100) -> List[Dict[str, Any]]:
        """Newest-first decoded records of a channel."""
        raw = await self.store.lrange(channel, 0, count - 1)
        return [json.loads(item) for item in raw]

    async def critical_alert(self, job_name: str, error: str) -> None:
        logger.critical("Critical job failed", job=job_name, error=error)
        await self.push(CRITICAL_ALERTS, {
            'job': job_name,
            'error': error,
            'timestamp': now_ms(),
            'type': 'critical',
        })

    async def system_alert(self, alerts: Sequence[str]) -> None:
        await self.push(SYSTEM_ALERTS_HISTORY, {
            'alerts': list(alerts),
            'timestamp': now_ms(),
            'type': 'system',
        })

    async def scaling_notification(self, decision: Dict[str, Any]) -> None:
        await self.push(SCALING_NOTIFICATIONS, {**decision, 'type': 'scaling'})

    async def predictive_scaling_notification(self, prediction: Dict[str, Any]) -> None:
        await self.push(SCALING_NOTIFICATIONS, {**prediction, 'type': 'predictive'})

    async def performance_alert(self, alerts: Sequence[Dict[str, Any]]) -> None:
        await self.push(PERFORMANCE_ALERTS_HISTORY, {
            'alerts': list(alerts),
            'timestamp': now_ms(),
            'type': 'performance',
        })

    async def load_balancer_alert(self, status: Dict[str, Any]) -> None:
        await self.push(LB_ALERTS_HISTORY, {
            'status': status,
            'timestamp': now_ms(),
            'type': 'load_balancer',
        })


__all__ = [
    'CRITICAL_ALERTS',
    'SYSTEM_ALERTS_HISTORY',
    'SCALING_NOTIFICATIONS',
    'PERFORMANCE_ALERTS_HISTORY',
    'LB_ALERTS_HISTORY',
    'HISTORY_LISTS',
    'NotificationSink',
]
