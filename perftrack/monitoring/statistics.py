"""
Statistics Engine

Summary statistics over the bounded duration window of a metric. Percentiles use
nearest-rank indexing on the ascending-sorted samples: the zero-based index is
floor(n * p), clamped to [0, n - 1]. For the samples 1..100 this makes p95 == 96
and p99 == 100. Every reported value is rounded to two decimals.
"""

from dataclasses import asdict, dataclass
from fractions import Fraction
from typing import Any, Dict, Iterable, Optional, Sequence

import structlog

from perftrack.monitoring.store import DURATION_WINDOW_SIZE, MetricStore

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PerformanceStats:
    count: int
    avg: float
    min: float
    max: float
    p50: float
    p95: float
    p99: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def percentile_index(count: int, p: float) -> int:
    """
    Zero-based nearest-rank index for percentile p (0..1) over count samples.

    The product is computed exactly so that e.g. 100 * 0.95 yields 95 rather
    than a binary floating point value just below it.
    """
    if count <= 0:
        raise ValueError("percentile_index requires at least one sample")
    index = int(Fraction(str(p)) * count)
    return min(max(index, 0), count - 1)


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """Nearest-rank percentile of already sorted values; 0.0 when empty."""
    if not sorted_values:
        return 0.0
    return sorted_values[percentile_index(len(sorted_values), p)]


def compute_stats(values: Iterable[float]) -> Optional[PerformanceStats]:
    """
    Compute summary statistics over arbitrary-order samples.

    Returns:
        PerformanceStats, or None when there are no samples
    """
    times = sorted(values)
    if not times:
        return None

    return PerformanceStats(
        count=len(times),
        avg=round(sum(times) / len(times), 2),
        min=round(times[0], 2),
        max=round(times[-1], 2),
        p50=round(percentile(times, 0.5), 2),
        p95=round(percentile(times, 0.95), 2),
        p99=round(percentile(times, 0.99), 2),
    )


class StatisticsEngine:
    """Read-only statistics over the Metric Store duration windows."""

    def __init__(self, metric_store: MetricStore):
        self.metric_store = metric_store

    async def get_performance_stats(self, metric_name: str) -> Optional[PerformanceStats]:
        """
        Statistics over the up to 1000 most recent durations of a metric.

        Returns:
            PerformanceStats, or None if the metric has no recorded samples
        """
        durations = await self.metric_store.get_durations(metric_name, DURATION_WINDOW_SIZE)
        stats = compute_stats(durations)

        if stats is None:
            logger.debug("No samples recorded for metric", metric=metric_name)

        return stats


__all__ = [
    'PerformanceStats',
    'StatisticsEngine',
    'compute_stats',
    'percentile',
    'percentile_index',
]
