"""
Async Key-Value Store Client

This module implements the store handle shared by every monitoring component. It wraps
a redis.asyncio client (redis-py 5.0+) and exposes exactly the command surface the
engine relies on: strings and counters, hashes, bounded lists, sorted-set timelines,
sets for active-user tracking, key scans and TTL inspection.

Key Features:
- redis-py asyncio client with connection pooling configured by RedisConfig
- Optional key prefix for namespace isolation with key validation
- redis-py exceptions translated to perftrack.cache.exceptions types
- Exponential backoff retry (tenacity) for idempotent read commands only
- Non-transactional pipelines for batched best-effort telemetry writes
- Health check and graceful connection release

The client never swallows store failures: a command that cannot be served raises a
StoreError subclass to the caller.
"""

import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import redis
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from perftrack.cache.exceptions import (
    StoreConnectionError,
    StoreError,
    StoreKeyError,
    handle_redis_exception,
)
from perftrack.config.database import RedisConfig

logger = structlog.get_logger(__name__)

MAX_KEY_LENGTH = 250

# Read commands are idempotent and safe to retry on connection failures
read_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.1, min=0.1, max=1.0),
    retry=retry_if_exception_type(StoreConnectionError),
    reraise=True
)


class StorePipeline:
    """
    Non-transactional command batch bound to a StoreClient.

    Commands are queued with their keys already formatted and sent in one round
    trip on execute(). Partial application on failure is acceptable: the
    pipeline carries telemetry, not ledger data.
    """

    def __init__(self, store: 'StoreClient'):
        self._store = store
        self._commands: List[Tuple[str, tuple, dict]] = []

    def _queue(self, command: str, *args, **kwargs) -> 'StorePipeline':
        self._commands.append((command, args, kwargs))
        return self

    def incr(self, key: str, amount: int = 1) -> 'StorePipeline':
        return self._queue('incrby', self._store._format_key(key), amount)

    def decr(self, key: str, amount: int = 1) -> 'StorePipeline':
        return self._queue('decrby', self._store._format_key(key), amount)

    def expire(self, key: str, seconds: int) -> 'StorePipeline':
        return self._queue('expire', self._store._format_key(key), seconds)

    def hset(self, key: str, mapping: Mapping[str, Any]) -> 'StorePipeline':
        return self._queue('hset', self._store._format_key(key), mapping=dict(mapping))

    def hincrby(self, key: str, field: str, amount: int = 1) -> 'StorePipeline':
        return self._queue('hincrby', self._store._format_key(key), field, amount)

    def hincrbyfloat(self, key: str, field: str, amount: float) -> 'StorePipeline':
        return self._queue('hincrbyfloat', self._store._format_key(key), field, amount)

    def lpush(self, key: str, *values: Any) -> 'StorePipeline':
        return self._queue('lpush', self._store._format_key(key), *values)

    def ltrim(self, key: str, start: int, end: int) -> 'StorePipeline':
        return self._queue('ltrim', self._store._format_key(key), start, end)

    def zadd(self, key: str, mapping: Mapping[str, float]) -> 'StorePipeline':
        return self._queue('zadd', self._store._format_key(key), dict(mapping))

    def zremrangebyscore(self, key: str, minimum: float, maximum: float) -> 'StorePipeline':
        return self._queue('zremrangebyscore', self._store._format_key(key), minimum, maximum)

    def __len__(self) -> int:
        return len(self._commands)

    async def execute(self) -> List[Any]:
        """
        Send all queued commands in a single round trip.

        Returns:
            Per-command results in queue order

        Raises:
            StoreError: If the batch cannot be executed
        """
        if not self._commands:
            return []

        pipe = self._store.raw_client.pipeline(transaction=False)
        for command, args, kwargs in self._commands:
            getattr(pipe, command)(*args, **kwargs)

        try:
            return await pipe.execute()
        except redis.RedisError as e:
            store_error = handle_redis_exception(e, f"pipeline of {len(self._commands)} commands")
            logger.error(
                "Store pipeline execution failed",
                commands=[command for command, _, _ in self._commands],
                error=str(e),
                store_error_code=store_error.error_code
            )
            raise store_error from e
        finally:
            self._commands = []


class StoreClient:
    """
    High-level async store client used by the tracker, statistics engine, load
    test harness, alert evaluator and job scheduler.

    The underlying client is injected so tests can substitute an in-memory
    double; production code builds it from RedisConfig via create_store_client().
    """

    def __init__(self, client: Any, key_prefix: str = ''):
        """
        Initialize store client around an async redis-compatible client.

        Args:
            client: redis.asyncio.Redis (or compatible) instance with decode_responses=True
            key_prefix: Optional namespace prefix applied to every key
        """
        self._client = client
        self._key_prefix = key_prefix
        self._closed = False

    @property
    def raw_client(self) -> Any:
        """Underlying async client."""
        return self._client

    @property
    def closed(self) -> bool:
        return self._closed

    def _format_key(self, key: str) -> str:
        """
        Validate a key and apply the namespace prefix.

        Raises:
            StoreKeyError: If key is empty or exceeds the length limit
        """
        if not key or not isinstance(key, str):
            raise StoreKeyError(message=f"Invalid store key: {key!r}", key=str(key))

        if len(key) > MAX_KEY_LENGTH:
            raise StoreKeyError(
                message=f"Store key too long: {len(key)} characters",
                key=key[:MAX_KEY_LENGTH]
            )

        return f"{self._key_prefix}{key}"

    def _strip_prefix(self, key: str) -> str:
        if self._key_prefix and key.startswith(self._key_prefix):
            return key[len(self._key_prefix):]
        return key

    async def _execute(self, operation: str, key: str, command: str, *args, **kwargs) -> Any:
        """
        Run one command on the underlying client with error translation.

        Raises:
            StoreError: Translated from any redis-py error
        """
        try:
            return await getattr(self._client, command)(*args, **kwargs)
        except redis.RedisError as e:
            store_error = handle_redis_exception(e, f"{operation} key '{key}'")
            logger.error(
                "Store operation failed",
                operation=operation,
                key=key,
                error=str(e),
                store_error_code=store_error.error_code
            )
            raise store_error from e

    def pipeline(self) -> StorePipeline:
        """Create a non-transactional command batch."""
        return StorePipeline(self)

    # String and counter commands

    @read_retry
    async def get(self, key: str) -> Optional[str]:
        return await self._execute('get', key, 'get', self._format_key(key))

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        Set a string value with optional expiry in seconds.

        Returns:
            True if the value was stored
        """
        result = await self._execute('set', key, 'set', self._format_key(key), value, ex=ttl)
        return bool(result)

    async def setex(self, key: str, ttl: int, value: Any) -> bool:
        result = await self._execute('setex', key, 'setex', self._format_key(key), ttl, value)
        return bool(result)

    async def incr(self, key: str, amount: int = 1) -> int:
        return await self._execute('incr', key, 'incrby', self._format_key(key), amount)

    async def decr(self, key: str, amount: int = 1) -> int:
        return await self._execute('decr', key, 'decrby', self._format_key(key), amount)

    async def expire(self, key: str, seconds: int) -> bool:
        return bool(await self._execute('expire', key, 'expire', self._format_key(key), seconds))

    @read_retry
    async def ttl(self, key: str) -> int:
        """Remaining time to live in seconds; -1 without expiry, -2 when missing."""
        return await self._execute('ttl', key, 'ttl', self._format_key(key))

    # Hash commands

    async def hset(self, key: str, mapping: Mapping[str, Any]) -> int:
        return await self._execute('hset', key, 'hset', self._format_key(key), mapping=dict(mapping))

    @read_retry
    async def hget(self, key: str, field: str) -> Optional[str]:
        return await self._execute('hget', key, 'hget', self._format_key(key), field)

    @read_retry
    async def hgetall(self, key: str) -> Dict[str, str]:
        return await self._execute('hgetall', key, 'hgetall', self._format_key(key))

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        return await self._execute('hincrby', key, 'hincrby', self._format_key(key), field, amount)

    async def hincrbyfloat(self, key: str, field: str, amount: float) -> float:
        return await self._execute('hincrbyfloat', key, 'hincrbyfloat', self._format_key(key), field, amount)

    # List commands

    async def lpush(self, key: str, *values: Any) -> int:
        return await self._execute('lpush', key, 'lpush', self._format_key(key), *values)

    @read_retry
    async def lrange(self, key: str, start: int, end: int) -> List[str]:
        return await self._execute('lrange', key, 'lrange', self._format_key(key), start, end)

    async def ltrim(self, key: str, start: int, end: int) -> bool:
        return bool(await self._execute('ltrim', key, 'ltrim', self._format_key(key), start, end))

    @read_retry
    async def llen(self, key: str) -> int:
        return await self._execute('llen', key, 'llen', self._format_key(key))

    # Sorted-set commands

    async def zadd(self, key: str, mapping: Mapping[str, float]) -> int:
        return await self._execute('zadd', key, 'zadd', self._format_key(key), dict(mapping))

    @read_retry
    async def zrevrange(self, key: str, start: int, end: int, withscores: bool = False) -> List[Any]:
        return await self._execute(
            'zrevrange', key, 'zrevrange', self._format_key(key), start, end, withscores=withscores
        )

    @read_retry
    async def zrangebyscore(
        self,
        key: str,
        minimum: Union[float, str],
        maximum: Union[float, str],
        withscores: bool = False
    ) -> List[Any]:
        return await self._execute(
            'zrangebyscore', key, 'zrangebyscore', self._format_key(key), minimum, maximum,
            withscores=withscores
        )

    async def zremrangebyscore(self, key: str, minimum: float, maximum: float) -> int:
        return await self._execute(
            'zremrangebyscore', key, 'zremrangebyscore', self._format_key(key), minimum, maximum
        )

    @read_retry
    async def zcard(self, key: str) -> int:
        return await self._execute('zcard', key, 'zcard', self._format_key(key))

    # Set commands

    async def sadd(self, key: str, *members: Any) -> int:
        return await self._execute('sadd', key, 'sadd', self._format_key(key), *members)

    @read_retry
    async def scard(self, key: str) -> int:
        return await self._execute('scard', key, 'scard', self._format_key(key))

    # Keyspace commands

    @read_retry
    async def keys(self, pattern: str) -> List[str]:
        """
        Return keys matching a glob pattern, with the namespace prefix removed.

        KEYS is O(N) over the keyspace; it is only used by the hourly cleanup job.
        """
        raw_keys = await self._execute('keys', pattern, 'keys', f"{self._key_prefix}{pattern}")
        return [self._strip_prefix(key) for key in raw_keys]

    @read_retry
    async def exists(self, key: str) -> bool:
        return bool(await self._execute('exists', key, 'exists', self._format_key(key)))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        formatted = [self._format_key(key) for key in keys]
        return await self._execute('delete', ','.join(keys), 'delete', *formatted)

    # Connection management

    async def ping(self) -> bool:
        return bool(await self._execute('ping', '-', 'ping'))

    async def health_check(self) -> Tuple[bool, Dict[str, Any]]:
        """
        Perform a store health check.

        Returns:
            Tuple of (is_healthy, health_details)
        """
        try:
            start_time = time.perf_counter()
            ping_result = await self.ping()
            response_time = time.perf_counter() - start_time

            return ping_result, {
                'timestamp': datetime.now(timezone.utc).isoformat(),
                'service': 'store',
                'status': 'healthy' if ping_result else 'unhealthy',
                'response_time': response_time
            }

        except StoreError as e:
            return False, {
                'timestamp': datetime.now(timezone.utc).isoformat(),
                'service': 'store',
                'status': 'error',
                'error': str(e)
            }

    async def quit(self) -> None:
        """
        Release the underlying connection pool.

        Safe to call more than once.
        """
        if self._closed:
            return

        self._closed = True
        try:
            await self._client.aclose()
            logger.info("Store connection closed")
        except redis.RedisError as e:
            logger.warning("Error while closing store connection", error=str(e))


def create_store_client(config: Optional[RedisConfig] = None) -> StoreClient:
    """
    Factory function to create the store client from configuration.

    Args:
        config: Store configuration (defaults to environment configuration)

    Returns:
        StoreClient: Configured store client instance
    """
    config = config or RedisConfig()
    client = config.create_client()

    logger.info("Store client created", **config.to_dict())

    return StoreClient(client, key_prefix=config.key_prefix)


__all__ = [
    'StoreClient',
    'StorePipeline',
    'create_store_client',
]
