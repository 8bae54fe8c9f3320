"""
Shared test fixtures.

store_fixtures provides FakeAsyncRedis, an in-memory stand-in for the
redis.asyncio client used by StoreClient.
"""

from tests.fixtures.store_fixtures import FakeAsyncRedis, FakePipeline

__all__ = [
    'FakeAsyncRedis',
    'FakePipeline',
]
