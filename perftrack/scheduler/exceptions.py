"""
Job scheduler exception classes.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class SchedulerError(Exception):
    """
    Base exception for scheduler failures.

    Attributes:
        message: Human-readable error description
        error_code: Standardized error code for log filtering
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        error_code: str = "SCHEDULER_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat()
        }


class SchedulerStateError(SchedulerError):
    """Raised when the scheduler is started twice or used after shutdown."""

    def __init__(self, message: str, state: str):
        super().__init__(message=message, error_code="SCHEDULER_STATE_ERROR", details={"state": state})
        self.state = state


class DuplicateJobError(SchedulerError):
    def __init__(self, job_name: str):
        super().__init__(
            message=f"Job '{job_name}' is registered more than once",
            error_code="DUPLICATE_JOB",
            details={"job": job_name}
        )
        self.job_name = job_name


__all__ = [
    'SchedulerError',
    'SchedulerStateError',
    'DuplicateJobError',
]
