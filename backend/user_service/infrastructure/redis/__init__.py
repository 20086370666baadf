"""
Redis Infrastructure Module

Redis infrastructure for the user cache with connection pooling,
circuit breaker protection and a dedicated exception family.

This module provides:
- RedisConnectionFactory: Connection management and guarded execution
- Circuit breaker pattern for resilience
- Comprehensive exception handling
"""

from .connection_factory import RedisConnectionFactory, REDIS_FAILURE_EXCEPTIONS
from .circuit_breaker import (
    RedisCircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    CircuitBreakerMetrics,
)
from .exceptions import (
    RedisException,
    RedisConnectionException,
    RedisOperationTimeoutException,
    RedisCircuitBreakerOpenException,
    RedisConfigurationException,
)

__all__ = [
    # Connection management
    "RedisConnectionFactory",
    "REDIS_FAILURE_EXCEPTIONS",
    # Circuit breaker
    "RedisCircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "CircuitBreakerMetrics",
    # Exceptions
    "RedisException",
    "RedisConnectionException",
    "RedisOperationTimeoutException",
    "RedisCircuitBreakerOpenException",
    "RedisConfigurationException",
]
