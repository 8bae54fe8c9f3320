"""
Metric Store

Persistence layout shared by the Metric Tracker, Statistics Engine, Load Test Harness
and Alert Evaluator. All data lives in the key-value store:

- metrics:{name}:timeline        sorted set scored by completion timestamp (ms),
                                 entries older than one hour pruned on every write
- metrics:{name}:durations       most-recent-first list of durations, capped at 1000
- metrics:{name}:minute:{minute} hash with count / total_duration, 24 hour expiry
- concurrent_requests:{name}     in-flight counter with a 5 minute self-healing expiry
- load_test:{timestamp}          hash of one load test report, 30 day expiry
- active_users:{epoch_second}    set of active user ids (written by the application)
- concurrent_users:{minute}      hash recording the sampled active user count

Writes for one metric are sent as a single non-transactional pipeline. This is
telemetry: a crash between commands may lose part of a write and no effort is made
to prevent that.
"""

import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import structlog

from perftrack.cache.client import StoreClient

logger = structlog.get_logger(__name__)

TIMELINE_RETENTION_MS = 60 * 60 * 1000
DURATION_WINDOW_SIZE = 1000
MINUTE_BUCKET_TTL_SECONDS = 24 * 60 * 60
CONCURRENT_COUNTER_TTL_SECONDS = 5 * 60
CONCURRENT_USERS_TTL_SECONDS = 24 * 60 * 60
LOAD_TEST_RETENTION_SECONDS = 30 * 24 * 60 * 60


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class PerformanceMetric:
    """A single completed, timed measurement. Duration is milliseconds."""

    name: str
    duration: float
    timestamp: int
    tags: Optional[Dict[str, str]] = None
    metadata: Optional[Dict[str, Any]] = None

    def to_timeline_member(self) -> str:
        # timestamp is embedded so identical durations stay distinct members
        return json.dumps({
            'duration': self.duration,
            'timestamp': self.timestamp,
            'tags': self.tags,
            'metadata': self.metadata,
        }, default=str, sort_keys=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'duration': self.duration,
            'timestamp': self.timestamp,
            'tags': self.tags,
            'metadata': self.metadata,
        }


@dataclass
class MinuteBucket:
    minute: int
    count: int = 0
    total_duration: float = 0.0

    @property
    def average_duration(self) -> float:
        return self.total_duration / self.count if self.count else 0.0


@dataclass
class TimelineEntry:
    timestamp: int
    duration: float
    tags: Optional[Dict[str, str]] = None
    metadata: Optional[Dict[str, Any]] = field(default=None)


class MetricStore:
    """
    Store-backed persistence for performance metrics and load test reports.

    The store handle is injected so components can be exercised against an
    in-memory double.
    """

    def __init__(self, store: StoreClient):
        self.store = store

    @staticmethod
    def timeline_key(name: str) -> str:
        return f"metrics:{name}:timeline"

    @staticmethod
    def durations_key(name: str) -> str:
        return f"metrics:{name}:durations"

    @staticmethod
    def minute_key(name: str, minute: int) -> str:
        return f"metrics:{name}:minute:{minute}"

    @staticmethod
    def concurrent_requests_key(name: str) -> str:
        return f"concurrent_requests:{name}"

    async def record_metric(self, metric: PerformanceMetric) -> None:
        """
        Persist a completed metric into the timeline, the duration window and
        the per-minute aggregate.
        """
        minute = metric.timestamp // 60000
        minute_key = self.minute_key(metric.name, minute)
        timeline_key = self.timeline_key(metric.name)
        durations_key = self.durations_key(metric.name)

        pipe = self.store.pipeline()
        pipe.zadd(timeline_key, {metric.to_timeline_member(): metric.timestamp})
        pipe.zremrangebyscore(timeline_key, 0, metric.timestamp - TIMELINE_RETENTION_MS)
        pipe.lpush(durations_key, metric.duration)
        pipe.ltrim(durations_key, 0, DURATION_WINDOW_SIZE - 1)
        pipe.hincrby(minute_key, 'count', 1)
        pipe.hincrbyfloat(minute_key, 'total_duration', metric.duration)
        pipe.expire(minute_key, MINUTE_BUCKET_TTL_SECONDS)
        await pipe.execute()

        logger.debug(
            "Metric recorded",
            metric=metric.name,
            duration_ms=metric.duration,
            minute=minute
        )

    async def get_durations(self, name: str, limit: int = DURATION_WINDOW_SIZE) -> List[float]:
        """Most recent durations for a metric, newest first."""
        raw = await self.store.lrange(self.durations_key(name), 0, limit - 1)
        return [float(value) for value in raw]

    async def get_timeline(self, name: str, since_ms: int = 0) -> List[TimelineEntry]:
        """Timeline entries recorded at or after since_ms, oldest first."""
        members = await self.store.zrangebyscore(self.timeline_key(name), since_ms, '+inf', withscores=True)
        entries = []
        for member, score in members:
            payload = json.loads(member)
            entries.append(TimelineEntry(
                timestamp=int(score),
                duration=float(payload['duration']),
                tags=payload.get('tags'),
                metadata=payload.get('metadata'),
            ))
        return entries

    async def get_minute_bucket(self, name: str, minute: int) -> MinuteBucket:
        raw = await self.store.hgetall(self.minute_key(name, minute))
        return MinuteBucket(
            minute=minute,
            count=int(raw.get('count', 0)),
            total_duration=float(raw.get('total_duration', 0.0)),
        )

    async def increment_concurrent(self, name: str) -> None:
        key = self.concurrent_requests_key(name)
        pipe = self.store.pipeline()
        pipe.incr(key)
        pipe.expire(key, CONCURRENT_COUNTER_TTL_SECONDS)
        await pipe.execute()

    async def decrement_concurrent(self, name: str) -> None:
        await self.store.decr(self.concurrent_requests_key(name))

    async def get_concurrent_requests(self, name: str) -> int:
        value = await self.store.get(self.concurrent_requests_key(name))
        return int(value) if value is not None else 0

    async def store_load_test_result(
        self,
        fields: Mapping[str, Any],
        timestamp: Optional[int] = None,
        retention_seconds: int = LOAD_TEST_RETENTION_SECONDS
    ) -> str:
        """
        Persist a load test report hash, kept for retention_seconds (30 days by default).

        Returns:
            The key the report was written under
        """
        key = f"load_test:{timestamp if timestamp is not None else now_ms()}"
        pipe = self.store.pipeline()
        pipe.hset(key, fields)
        pipe.expire(key, retention_seconds)
        await pipe.execute()

        logger.info("Load test result stored", key=key)
        return key

    async def get_active_users(self, epoch_second: Optional[int] = None) -> int:
        """Cardinality of the active user set for one second."""
        if epoch_second is None:
            epoch_second = now_ms() // 1000
        return await self.store.scard(f"active_users:{epoch_second}")

    async def track_concurrent_users(self, epoch_second: Optional[int] = None) -> int:
        """
        Sample the current active user count and record it in the per-minute
        concurrent_users hash.

        Returns:
            Number of active users in the sampled second
        """
        if epoch_second is None:
            epoch_second = now_ms() // 1000

        active_users = await self.get_active_users(epoch_second)

        key = f"concurrent_users:{epoch_second // 60}"
        pipe = self.store.pipeline()
        pipe.hset(key, {'count': active_users})
        pipe.expire(key, CONCURRENT_USERS_TTL_SECONDS)
        await pipe.execute()

        return active_users


__all__ = [
    'PerformanceMetric',
    'MinuteBucket',
    'TimelineEntry',
    'MetricStore',
    'now_ms',
]
