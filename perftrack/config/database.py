"""
Store Connection Configuration

This module implements connection configuration for the Redis-compatible key-value
store that backs the monitoring engine. All metric timelines, duration windows,
per-minute aggregates, load test reports, job status records and notification
logs live in this single store.

Key Features:
- redis-py 5.0+ asyncio client configuration (redis.asyncio.Redis)
- REDIS_URL support with discrete REDIS_HOST/REDIS_PORT/REDIS_DB fallback
- Connection pool sizing and socket timeout settings per environment
- Isolated logical database for the testing environment

Dependencies: redis-py 5.0+
"""

import os
from typing import Any, Dict, Optional

import redis.asyncio as aioredis
import structlog

logger = structlog.get_logger(__name__)


class RedisConfig:
    """
    Redis connection configuration resolved from environment variables.

    A full REDIS_URL takes precedence over the discrete host/port/db variables.
    Environment-specific overrides mirror the deployment layout: the testing
    environment uses logical database 15 so test runs never touch live keys.
    """

    def __init__(self, environment: Optional[str] = None):
        """
        Initialize store configuration for the given environment.

        Args:
            environment: Deployment environment (development, testing, staging, production)
        """
        self.environment = (environment or os.getenv('PERFTRACK_ENV', 'development')).lower()

        self.url: Optional[str] = os.getenv('REDIS_URL')
        self.host: str = os.getenv('REDIS_HOST', 'localhost')
        self.port: int = int(os.getenv('REDIS_PORT', '6379'))
        self.db: int = int(os.getenv('REDIS_DB', '0'))
        self.password: Optional[str] = os.getenv('REDIS_PASSWORD')
        self.username: Optional[str] = os.getenv('REDIS_USERNAME')
        self.ssl: bool = os.getenv('REDIS_SSL', 'false').lower() == 'true'

        self.socket_timeout: float = float(os.getenv('REDIS_SOCKET_TIMEOUT', '30.0'))
        self.socket_connect_timeout: float = float(os.getenv('REDIS_SOCKET_CONNECT_TIMEOUT', '10.0'))
        self.max_connections: int = int(os.getenv('REDIS_MAX_CONNECTIONS', '50'))
        self.health_check_interval: int = int(os.getenv('REDIS_HEALTH_CHECK_INTERVAL', '30'))
        self.key_prefix: str = os.getenv('REDIS_KEY_PREFIX', '')

        self._apply_environment_overrides()

        logger.debug(
            "Store configuration resolved",
            environment=self.environment,
            redis_host=self.host,
            redis_port=self.port,
            redis_db=self.db,
            url_configured=self.url is not None
        )

    def _apply_environment_overrides(self) -> None:
        """Apply environment-specific connection overrides."""
        if self.environment == 'testing':
            self.host = os.getenv('REDIS_TEST_HOST', self.host)
            self.port = int(os.getenv('REDIS_TEST_PORT', str(self.port)))
            self.db = int(os.getenv('REDIS_TEST_DB', '15'))
            self.max_connections = 10
        elif self.environment == 'development':
            self.max_connections = min(self.max_connections, 20)
        elif self.environment == 'production':
            self.max_connections = int(os.getenv('REDIS_MAX_CONNECTIONS', '100'))

    def get_connection_kwargs(self) -> Dict[str, Any]:
        """
        Build keyword arguments for the redis.asyncio client.

        Returns:
            Connection keyword arguments shared by URL and host based construction
        """
        return {
            'decode_responses': True,
            'socket_timeout': self.socket_timeout,
            'socket_connect_timeout': self.socket_connect_timeout,
            'max_connections': self.max_connections,
            'health_check_interval': self.health_check_interval
        }

    def create_client(self) -> aioredis.Redis:
        """
        Create a configured redis.asyncio client with its own connection pool.

        Returns:
            Async Redis client instance (not yet connected; connections are lazy)
        """
        kwargs = self.get_connection_kwargs()

        if self.url:
            return aioredis.from_url(self.url, **kwargs)

        return aioredis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            username=self.username,
            password=self.password,
            ssl=self.ssl,
            **kwargs
        )

    def to_dict(self) -> Dict[str, Any]:
        """Sanitized configuration view for logging (no credentials)."""
        return {
            'environment': self.environment,
            'host': self.host,
            'port': self.port,
            'db': self.db,
            'ssl': self.ssl,
            'max_connections': self.max_connections,
            'key_prefix': self.key_prefix,
            'url_configured': self.url is not None,
        }


def create_redis_config(environment: Optional[str] = None) -> RedisConfig:
    """
    Factory function to create store configuration.

    Args:
        environment: Target environment name

    Returns:
        RedisConfig instance for the specified environment
    """
    return RedisConfig(environment)


__all__ = [
    'RedisConfig',
    'create_redis_config',
]
