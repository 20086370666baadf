"""
Redis Infrastructure Exceptions

Every redis-py error leaving the connection factory is translated into one
of these. Each carries a stable ``error_code`` for logs and the health
endpoint, a ``details`` dict, and chains the original error.
"""

from typing import Any, Dict, Optional


class RedisException(Exception):
    """Base class of the cache infrastructure errors."""

    default_error_code = "REDIS_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = dict(details or {})
        if original_error is not None:
            self.details.setdefault("original_error", str(original_error))
            self.details.setdefault("original_error_type", type(original_error).__name__)
            self.__cause__ = original_error

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "error_code": self.error_code, **self.details}


class RedisConnectionException(RedisException):
    """Redis is unreachable or refused the connection."""

    default_error_code = "REDIS_CONNECTION_ERROR"

    def __init__(
        self,
        message: str = "Redis connection failed",
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message, original_error=original_error)


class RedisOperationTimeoutException(RedisException):
    """A single cache operation exceeded the operation timeout."""

    default_error_code = "REDIS_TIMEOUT_ERROR"

    def __init__(
        self,
        operation: str,
        timeout_seconds: float,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            f"Redis operation '{operation}' timed out after {timeout_seconds}s",
            details={"operation": operation, "timeout_seconds": timeout_seconds},
            original_error=original_error,
        )


class RedisCircuitBreakerOpenException(RedisException):
    """The circuit breaker rejected the call without contacting Redis."""

    default_error_code = "REDIS_CIRCUIT_BREAKER_OPEN"

    def __init__(self, message: str = "Redis circuit breaker is open"):
        super().__init__(message, details={"service_status": "unavailable"})


class RedisConfigurationException(RedisException):
    """REDIS_URL or a related setting is unusable."""

    default_error_code = "REDIS_CONFIGURATION_ERROR"

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            details={"config_key": config_key} if config_key else None,
            original_error=original_error,
        )
