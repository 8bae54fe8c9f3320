"""
perftrack: performance monitoring and scheduled-job engine.

Measures operation latency, aggregates it into statistics, runs load tests,
evaluates alert thresholds and drives periodic monitoring jobs, all backed by a
Redis-compatible key-value store.
"""

__version__ = '1.0.0'
