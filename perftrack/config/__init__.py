"""
Configuration Package

Centralized access to environment-specific configuration for the monitoring engine.

Package Structure:
- settings.py: Environment configuration classes and validation
- database.py: Key-value store (Redis) connection configuration
- monitoring.py: Logging, metrics, alert thresholds, load test and scheduler settings

Usage Examples:
    >>> from perftrack.config import create_app_config
    >>> config = create_app_config('production')
    >>> config.monitoring.scheduler.tick_interval
    1.0
"""

from perftrack.config.database import RedisConfig, create_redis_config
from perftrack.config.monitoring import (
    AlertThresholds,
    ConfigurationError,
    LoadTestDefaults,
    MonitoringConfiguration,
    PrometheusMetricsConfig,
    SchedulerConfig,
    StructuredLoggingConfig,
    get_monitoring_config,
)
from perftrack.config.settings import (
    BaseConfig,
    DevelopmentConfig,
    ProductionConfig,
    StagingConfig,
    TestingConfig,
    create_app_config,
    get_config,
    validate_configuration,
)

__all__ = [
    'RedisConfig',
    'create_redis_config',
    'AlertThresholds',
    'ConfigurationError',
    'LoadTestDefaults',
    'MonitoringConfiguration',
    'PrometheusMetricsConfig',
    'SchedulerConfig',
    'StructuredLoggingConfig',
    'get_monitoring_config',
    'BaseConfig',
    'DevelopmentConfig',
    'ProductionConfig',
    'StagingConfig',
    'TestingConfig',
    'create_app_config',
    'get_config',
    'validate_configuration',
]
