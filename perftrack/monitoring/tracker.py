"""
Metric Tracker

Latency instrumentation for async operations. The preferred entry points are the
track() async context manager and measure_async(), which guarantee that every
started timer is ended on all exit paths, including exceptions and cancellation.

start_metric()/end_metric() are the low-level primitives. A timer started with
start_metric() and never ended stays in the process-local in-flight map; the
map size is exposed as active_timer_count (and as a Prometheus gauge), and
prune_stale_timers() discards timers older than a maximum age.
"""

import secrets
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, TypeVar

import structlog

from perftrack.cache.exceptions import StoreError
from perftrack.monitoring.metrics import PerftrackMetricsCollector
from perftrack.monitoring.store import MetricStore, PerformanceMetric, now_ms

logger = structlog.get_logger(__name__)

T = TypeVar('T')


@dataclass
class ActiveTimer:
    name: str
    started_at: float
    tags: Optional[Dict[str, str]] = None


class MetricTracker:
    """
    Records operation durations into the Metric Store.

    Each instance owns its in-flight timer map; instances never share state.
    """

    def __init__(
        self,
        metric_store: MetricStore,
        metrics: Optional[PerftrackMetricsCollector] = None
    ):
        self.metric_store = metric_store
        self.metrics = metrics
        self._active: Dict[str, ActiveTimer] = {}

    @property
    def active_timer_count(self) -> int:
        return len(self._active)

    def _update_gauge(self) -> None:
        if self.metrics:
            self.metrics.set_active_timers(len(self._active))

    async def start_metric(self, name: str, tags: Optional[Dict[str, str]] = None) -> str:
        """
        Start timing an operation.

        Args:
            name: Metric name, e.g. "api_response_time"
            tags: Optional dimension labels carried through to the stored metric

        Returns:
            Timer id to pass to end_metric()
        """
        started_at = time.perf_counter()
        # random suffix keeps ids unique for same-name timers in the same millisecond
        timer_id = f"{name}_{now_ms()}_{secrets.token_hex(6)}"

        await self.metric_store.increment_concurrent(name)

        self._active[timer_id] = ActiveTimer(name=name, started_at=started_at, tags=tags)
        self._update_gauge()
        return timer_id

    async def end_metric(
        self,
        timer_id: str,
        tags: Optional[Dict[str, str]] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Optional[PerformanceMetric]:
        """
        Stop a timer and persist the completed metric.

        Unknown or already ended timer ids return None and never raise.

        Returns:
            The recorded PerformanceMetric, or None
        """
        timer = self._active.pop(timer_id, None)
        if timer is None:
            logger.debug("Ignoring end of unknown timer", timer_id=timer_id)
            return None

        duration = max(0.0, (time.perf_counter() - timer.started_at) * 1000)
        self._update_gauge()

        metric = PerformanceMetric(
            name=timer.name,
            duration=round(duration, 2),
            timestamp=now_ms(),
            tags=tags if tags is not None else timer.tags,
            metadata=metadata,
        )

        await self.metric_store.record_metric(metric)
        await self.metric_store.decrement_concurrent(timer.name)

        if self.metrics:
            self.metrics.record_operation(metric.name, metric.duration)

        return metric

    @asynccontextmanager
    async def track(self, name: str, tags: Optional[Dict[str, str]] = None) -> AsyncIterator[Dict[str, Any]]:
        """
        Time the enclosed block.

        Yields a metadata dict pre-filled with {"success": True} that the block
        may extend. On an exception the metric is recorded with
        {"success": False, "error": str(exc)} and the exception propagates
        unchanged, even if recording the metric fails.

        Example:
            async with tracker.track("order_processing") as metadata:
                metadata["items"] = await process(order)
        """
        timer_id = await self.start_metric(name, tags)
        metadata: Dict[str, Any] = {'success': True}

        try:
            yield metadata
        except BaseException as exc:
            try:
                await self.end_metric(timer_id, tags, {'success': False, 'error': str(exc)})
            except StoreError as store_error:
                logger.warning(
                    "Failed to record metric for failed operation",
                    metric=name,
                    error=str(store_error)
                )
            raise
        else:
            await self.end_metric(timer_id, tags, metadata)

    async def measure_async(
        self,
        name: str,
        fn: Callable[[], Awaitable[T]],
        tags: Optional[Dict[str, str]] = None
    ) -> T:
        """
        Await fn() under a timer and return its result.

        Errors raised by fn are recorded and re-raised unchanged.
        """
        async with self.track(name, tags):
            return await fn()

    def prune_stale_timers(self, max_age_seconds: float) -> int:
        """
        Discard in-flight timers older than max_age_seconds.

        Returns:
            Number of timers discarded
        """
        cutoff = time.perf_counter() - max_age_seconds
        stale = [timer_id for timer_id, timer in self._active.items() if timer.started_at < cutoff]

        for timer_id in stale:
            timer = self._active.pop(timer_id)
            logger.warning("Discarding stale timer", timer_id=timer_id, metric=timer.name)

        if stale:
            self._update_gauge()

        return len(stale)


__all__ = [
    'ActiveTimer',
    'MetricTracker',
]
