"""
Scheduled job definitions.

A CronJob is Idle or Running. The scheduler moves it to Running when its
interval has elapsed and it is not already running, and back to Idle when the
task settles. Tasks never touch these flags themselves.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

JobTask = Callable[[], Awaitable[Any]]


class JobStatus(str, Enum):
    SUCCESS = 'success'
    FAILED = 'failed'


@dataclass
class CronJob:
    """
    Args:
        name: Unique job name
        interval: Milliseconds between run starts
        task: Zero-argument coroutine function
        critical: Failures additionally raise a critical alert
    """

    name: str
    interval: int
    task: JobTask
    critical: bool = False
    last_run: int = 0
    is_running: bool = False
    run_count: int = 0
    last_status: Optional[JobStatus] = None
    last_error: Optional[str] = field(default=None, repr=False)

    def is_due(self, now_ms: int) -> bool:
        return not self.is_running and now_ms - self.last_run >= self.interval

    def snapshot(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'interval': self.interval,
            'critical': self.critical,
            'last_run': self.last_run,
            'is_running': self.is_running,
            'run_count': self.run_count,
            'last_status': self.last_status.value if self.last_status else None,
            'last_error': self.last_error,
        }


__all__ = [
    'JobTask',
    'JobStatus',
    'CronJob',
]
