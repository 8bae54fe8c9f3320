"""
Structured Logging Implementation using structlog

This module configures structlog on top of the standard logging package for the
monitoring engine process. Every component logs an event name plus key/value fields;
the final renderer emits either JSON lines (for log aggregation) or a human readable
console format (for local development).

Key Features:
- structlog stdlib integration with level filtering and ISO timestamps
- Correlation ID tracking through contextvars, safe across asyncio tasks
- Job run context (job name and run id) bound for the duration of one job execution
- Optional rotating file output alongside stdout
- Environment-specific configuration via MonitoringConfiguration

Each scheduled job runs in its own asyncio task, and tasks copy the current context on
creation, so correlation ids set inside one job run never leak into another.
"""

import logging
import logging.config
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from itertools import count
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional

import structlog

from perftrack.config.monitoring import MonitoringConfiguration, get_monitoring_config

APPLICATION_NAME = 'perftrack'

# Correlation id for the current unit of work (job run, load test, CLI invocation)
correlation_id_context: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

# Name and run id of the scheduled job executing in the current task
job_run_context: ContextVar[Optional[Dict[str, str]]] = ContextVar('job_run', default=None)


class CorrelationManager:
    """
    Correlation ID generation and propagation for log correlation.

    Ids have the form {timestamp}-{instance_id}-{counter}, e.g.
    20260101T120000-a1b2c3d4-000001, so they sort by creation time and remain
    unique across process restarts.
    """

    def __init__(self):
        self._instance_id = str(uuid.uuid4())[:8]
        self._counter = count(1)

    def generate_correlation_id(self) -> str:
        timestamp = datetime.now(timezone.utc).strftime('%Y%m%dT%H%M%S')
        return f"{timestamp}-{self._instance_id}-{next(self._counter):06d}"

    def set_correlation_id(self, correlation_id: Optional[str] = None) -> str:
        """
        Set correlation ID in context with automatic generation if not provided.

        Returns:
            The correlation ID that was set
        """
        if correlation_id is None:
            correlation_id = self.generate_correlation_id()

        correlation_id_context.set(correlation_id)
        return correlation_id

    def get_correlation_id(self) -> Optional[str]:
        return correlation_id_context.get()

    def clear_correlation_id(self) -> None:
        correlation_id_context.set(None)


correlation_manager = CorrelationManager()


@contextmanager
def job_run_scope(job_name: str) -> Iterator[str]:
    """
    Bind a job name and fresh run id to every log line emitted inside the block.

    Args:
        job_name: Scheduled job name

    Yields:
        The generated job run id
    """
    run_id = correlation_manager.generate_correlation_id()
    job_token = job_run_context.set({'job': job_name, 'job_run_id': run_id})
    correlation_token = correlation_id_context.set(run_id)
    try:
        yield run_id
    finally:
        correlation_id_context.reset(correlation_token)
        job_run_context.reset(job_token)


def create_correlation_processor() -> Callable:
    """
    Create structlog processor for correlation ID enrichment.

    Returns:
        Processor function for structlog
    """
    def processor(logger, method_name, event_dict):
        correlation_id = correlation_id_context.get()
        if correlation_id:
            event_dict.setdefault('correlation_id', correlation_id)
        return event_dict

    return processor


def create_job_context_processor() -> Callable:
    """
    Create structlog processor adding the running job's name and run id.

    Returns:
        Processor function for structlog
    """
    def processor(logger, method_name, event_dict):
        job_run = job_run_context.get()
        if job_run:
            for key, value in job_run.items():
                event_dict.setdefault(key, value)
        return event_dict

    return processor


def setup_structured_logging(
    config: Optional[MonitoringConfiguration] = None
) -> structlog.stdlib.BoundLogger:
    """
    Configure structlog and the standard logging package.

    Args:
        config: Monitoring configuration, defaults to the current environment's

    Returns:
        Configured structured logger instance
    """
    config = config or get_monitoring_config()
    settings: Dict[str, Any] = config.get_structlog_config()
    log_level = settings['log_level']
    log_file_path = settings['log_file_path']

    if log_file_path:
        Path(log_file_path).parent.mkdir(parents=True, exist_ok=True)

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="ISO"),
        create_correlation_processor(),
        create_job_context_processor(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings['log_format'] == 'console':
        processors.append(structlog.dev.ConsoleRenderer(colors=settings['colored']))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging_config = {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'plain': {
                'format': '%(message)s'
            }
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'formatter': 'plain',
                'stream': 'ext://sys.stdout'
            }
        },
        'loggers': {
            '': {
                'handlers': ['console'],
                'level': log_level,
            }
        }
    }

    if log_file_path:
        logging_config['handlers']['file'] = {
            'class': 'logging.handlers.RotatingFileHandler',
            'formatter': 'plain',
            'filename': log_file_path,
            'maxBytes': settings['max_file_size_mb'] * 1024 * 1024,
            'backupCount': settings['backup_count'],
            'encoding': 'utf-8'
        }
        logging_config['loggers']['']['handlers'].append('file')

    logging.config.dictConfig(logging_config)

    logger = structlog.get_logger(APPLICATION_NAME)
    logger.info(
        "Structured logging initialized",
        log_level=log_level,
        log_format=settings['log_format'],
        file_logging=bool(log_file_path),
        environment=config.environment
    )

    return logger


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance with optional name.

    Args:
        name: Logger name, defaults to application name

    Returns:
        Configured structured logger
    """
    return structlog.get_logger(name or APPLICATION_NAME)


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    return correlation_manager.set_correlation_id(correlation_id)


def get_correlation_id() -> Optional[str]:
    return correlation_manager.get_correlation_id()


__all__ = [
    'CorrelationManager',
    'correlation_manager',
    'job_run_scope',
    'create_correlation_processor',
    'create_job_context_processor',
    'setup_structured_logging',
    'get_logger',
    'set_correlation_id',
    'get_correlation_id',
]
