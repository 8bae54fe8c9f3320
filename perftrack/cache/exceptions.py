"""
Store-specific exception classes for key-value store connection failures, operation
timeouts and (de)serialization errors.

The monitoring engine treats the store as an external service: a failed store call
is translated into one of these exceptions and propagated to the caller. Inside the
job scheduler that caller is a job task, so a store outage surfaces as an ordinary
job failure rather than a distinct circuit-breaker state.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import redis.exceptions as redis_exceptions


class StoreError(Exception):
    """
    Base exception class for all store-related errors.

    Attributes:
        message: Human-readable error description
        error_code: Standardized error code for monitoring and alerting
        details: Additional error context for debugging and observability
        timestamp: Error occurrence timestamp for correlation with logs
    """

    def __init__(
        self,
        message: str,
        error_code: str = "STORE_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for structured log records and job status.

        Returns:
            Dictionary containing error information
        """
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat()
        }


class StoreConnectionError(StoreError):
    """
    Exception raised when the store cannot be reached.

    Covers network failures, authentication errors and connect timeouts.

    Attributes:
        redis_error: Original redis-py exception for detailed diagnostics
    """

    def __init__(self, message: str, redis_error: Optional[Exception] = None):
        details = {
            "redis_error_type": type(redis_error).__name__ if redis_error else None,
            "redis_error_message": str(redis_error) if redis_error else None,
        }
        super().__init__(message=message, error_code="STORE_CONNECTION_ERROR", details=details)
        self.redis_error = redis_error


class StoreOperationTimeoutError(StoreError):
    """Exception raised when a store command exceeds its timeout."""

    def __init__(self, message: str, operation: str, timeout_duration: Optional[float] = None):
        super().__init__(
            message=message,
            error_code="STORE_OPERATION_TIMEOUT",
            details={"operation": operation, "timeout_duration": timeout_duration}
        )
        self.operation = operation
        self.timeout_duration = timeout_duration


class StoreKeyError(StoreError):
    """Exception raised for empty or oversized store keys."""

    def __init__(self, message: str, key: str):
        super().__init__(message=message, error_code="STORE_KEY_ERROR", details={"key": key})
        self.key = key


class StoreSerializationError(StoreError):
    """
    Exception raised when a value cannot be encoded for, or decoded from, the store.

    Attributes:
        value_type: Python type name of the offending value
        original_error: Underlying encoding/decoding exception
    """

    def __init__(
        self,
        message: str,
        value_type: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message=message,
            error_code="STORE_SERIALIZATION_ERROR",
            details={
                "value_type": value_type,
                "original_error": str(original_error) if original_error else None
            }
        )
        self.value_type = value_type
        self.original_error = original_error


def handle_redis_exception(redis_error: Exception, operation: str = "unknown") -> StoreError:
    """
    Convert redis-py exceptions to the matching store exception.

    Args:
        redis_error: Original redis-py exception
        operation: Description of the operation that failed

    Returns:
        Appropriate StoreError subclass based on the redis error type
    """
    error_message = f"Store operation '{operation}' failed: {redis_error}"

    if isinstance(redis_error, redis_exceptions.TimeoutError):
        return StoreOperationTimeoutError(message=error_message, operation=operation)

    # AuthenticationError subclasses ConnectionError
    if isinstance(redis_error, redis_exceptions.ConnectionError):
        return StoreConnectionError(message=error_message, redis_error=redis_error)

    if isinstance(redis_error, redis_exceptions.DataError):
        return StoreSerializationError(
            message=error_message,
            value_type=None,
            original_error=redis_error
        )

    if isinstance(redis_error, redis_exceptions.ResponseError):
        return StoreError(
            message=error_message,
            error_code="STORE_RESPONSE_ERROR",
            details={"operation": operation, "redis_error": str(redis_error)}
        )

    return StoreError(
        message=error_message,
        error_code="STORE_ERROR",
        details={"operation": operation, "redis_error_type": type(redis_error).__name__}
    )


__all__ = [
    'StoreError',
    'StoreConnectionError',
    'StoreOperationTimeoutError',
    'StoreKeyError',
    'StoreSerializationError',
    'handle_redis_exception',
]
