"""
Main Configuration Classes

This module implements environment-specific settings (Development, Testing, Staging,
Production) for the monitoring engine process. Environment variables are loaded
via python-dotenv before any configuration class is evaluated, so a local .env
file can supply REDIS_URL, PERFTRACK_ENV and the logging switches.

Key Components:
- Environment-specific configuration classes with shared base settings
- Aggregation of the store (RedisConfig) and monitoring (MonitoringConfiguration) sections
- Configuration validation with errors surfaced before the scheduler starts
"""

import logging
import os
from typing import List, Optional, Type

from dotenv import load_dotenv

from perftrack.config.database import RedisConfig, create_redis_config
from perftrack.config.monitoring import (
    ConfigurationError,
    MonitoringConfiguration,
    get_monitoring_config,
)

# Load environment variables early
load_dotenv()

logger = logging.getLogger(__name__)


class BaseConfig:
    """
    Base configuration class providing common settings for all environments.

    Class attributes hold plain settings; the store and monitoring sections are
    built per instance so that environment overrides apply consistently.
    """

    APP_NAME = os.getenv('APP_NAME', 'perftrack')
    APP_VERSION = os.getenv('APP_VERSION', '1.0.0')

    ENVIRONMENT = 'development'
    DEBUG = False
    TESTING = False

    def __init__(self) -> None:
        self.redis: RedisConfig = create_redis_config(self.ENVIRONMENT)
        self.monitoring: MonitoringConfiguration = get_monitoring_config(self.ENVIRONMENT)


class DevelopmentConfig(BaseConfig):
    """Local development: console logs, debug level."""

    ENVIRONMENT = 'development'
    DEBUG = True


class TestingConfig(BaseConfig):
    """Test runs: isolated store database, short shutdown wait."""

    ENVIRONMENT = 'testing'
    DEBUG = True
    TESTING = True


class StagingConfig(BaseConfig):
    ENVIRONMENT = 'staging'


class ProductionConfig(BaseConfig):
    """Production deployment: JSON logs, warning level."""

    ENVIRONMENT = 'production'


config_map = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'staging': StagingConfig,
    'production': ProductionConfig,

    # Aliases for convenience
    'dev': DevelopmentConfig,
    'test': TestingConfig,
    'stage': StagingConfig,
    'prod': ProductionConfig
}


def get_config(environment: Optional[str] = None) -> Type[BaseConfig]:
    """
    Get configuration class for the specified environment.

    Args:
        environment: Target environment name (defaults to PERFTRACK_ENV)

    Returns:
        Configuration class for the specified environment

    Raises:
        ConfigurationError: If environment is not supported
    """
    if environment is None:
        environment = os.getenv('PERFTRACK_ENV', 'development')

    environment = environment.lower()

    if environment not in config_map:
        raise ConfigurationError(
            f"Unsupported environment '{environment}'. "
            f"Supported environments: {list(config_map.keys())}"
        )

    return config_map[environment]


def validate_configuration(config: BaseConfig) -> List[str]:
    """
    Validate configuration settings and return list of issues.

    Args:
        config: Configuration instance to validate

    Returns:
        List of validation error messages (empty if valid)
    """
    issues = []

    if not config.APP_NAME:
        issues.append("APP_NAME is required")

    if not config.redis.url and not config.redis.host:
        issues.append("Either REDIS_URL or REDIS_HOST must be configured")

    if config.ENVIRONMENT == 'production' and not config.redis.url and config.redis.host == 'localhost':
        issues.append("Production store should not point at localhost")

    if config.redis.max_connections <= 0:
        issues.append("REDIS_MAX_CONNECTIONS must be positive")

    return issues


def create_app_config(environment: Optional[str] = None) -> BaseConfig:
    """
    Factory function to create and validate application configuration.

    Args:
        environment: Target environment name

    Returns:
        Validated configuration instance

    Raises:
        ConfigurationError: If configuration validation fails outside debug mode
    """
    config_class = get_config(environment)
    config = config_class()

    issues = validate_configuration(config)

    if issues and not config.DEBUG:
        raise ConfigurationError(f"Configuration validation failed: {'; '.join(issues)}")
    elif issues:
        logger.warning(
            "Configuration validation warnings (ignored in debug mode)",
            extra={'issues': issues}
        )

    return config


__all__ = [
    'BaseConfig',
    'DevelopmentConfig',
    'TestingConfig',
    'StagingConfig',
    'ProductionConfig',
    'config_map',
    'get_config',
    'validate_configuration',
    'create_app_config',
]
