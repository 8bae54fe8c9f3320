"""
Key-value store access layer.

Exposes the async StoreClient shared by all monitoring components together with
its exception hierarchy.
"""

from perftrack.cache.client import StoreClient, StorePipeline, create_store_client
from perftrack.cache.exceptions import (
    StoreConnectionError,
    StoreError,
    StoreKeyError,
    StoreOperationTimeoutError,
    StoreSerializationError,
    handle_redis_exception,
)

__all__ = [
    'StoreClient',
    'StorePipeline',
    'create_store_client',
    'StoreConnectionError',
    'StoreError',
    'StoreKeyError',
    'StoreOperationTimeoutError',
    'StoreSerializationError',
    'handle_redis_exception',
]
