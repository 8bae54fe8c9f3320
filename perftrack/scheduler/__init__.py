"""
Periodic job scheduler with non-overlapping runs and bounded graceful shutdown.
"""

from perftrack.scheduler.engine import JobScheduler
from perftrack.scheduler.exceptions import (
    DuplicateJobError,
    SchedulerError,
    SchedulerStateError,
)
from perftrack.scheduler.jobs import CronJob, JobStatus
from perftrack.scheduler.monitoring_jobs import CRITICAL_JOBS, MonitoringJobs
from perftrack.scheduler.notifications import NotificationSink

__all__ = [
    'JobScheduler',
    'DuplicateJobError',
    'SchedulerError',
    'SchedulerStateError',
    'CronJob',
    'JobStatus',
    'CRITICAL_JOBS',
    'MonitoringJobs',
    'NotificationSink',
]
