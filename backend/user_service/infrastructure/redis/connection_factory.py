"""
Redis Connection Factory

Connection management for the user cache.
Provides connection pooling, circuit breaker protection and health checks.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import (
    ConnectionError as RedisConnectionError,
    AuthenticationError as RedisAuthError,
    TimeoutError as RedisTimeoutError,
    RedisError,
)

from ...core.config import Settings
from .exceptions import (
    RedisException,
    RedisConnectionException,
    RedisConfigurationException,
    RedisOperationTimeoutException,
)
from .circuit_breaker import RedisCircuitBreaker, CircuitBreakerConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

REDIS_FAILURE_EXCEPTIONS = (
    RedisConnectionError,
    RedisAuthError,
    RedisTimeoutError,
    ConnectionError,
    OSError,
)


class RedisConnectionFactory:
    """
    Factory for creating and managing Redis connections.

    Every operation goes through ``execute``, which applies the circuit
    breaker and maps redis-py errors onto the RedisException family.
    The pool connects lazily, so initialization never blocks on Redis.
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        max_connections: int = 10,
        connection_timeout: float = 5.0,
        operation_timeout: float = 5.0,
        health_check_interval: int = 30,
        circuit_breaker_config: Optional[CircuitBreakerConfig] = None,
        client: Optional[Redis] = None,
    ):
        self.redis_url = redis_url
        self.max_connections = max_connections
        self.connection_timeout = connection_timeout
        self.operation_timeout = operation_timeout
        self.health_check_interval = health_check_interval
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = client
        self._owns_client = client is None
        self._circuit_breaker = RedisCircuitBreaker(
            circuit_breaker_config
            or CircuitBreakerConfig(
                operation_timeout=operation_timeout,
                failure_exceptions=REDIS_FAILURE_EXCEPTIONS,
            )
        )
        self._initialized = client is not None
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisConnectionFactory":
        """Build a factory from application settings."""
        return cls(
            redis_url=settings.REDIS_URL,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            connection_timeout=settings.REDIS_CONNECTION_TIMEOUT,
            operation_timeout=settings.REDIS_OPERATION_TIMEOUT,
            health_check_interval=settings.REDIS_HEALTH_CHECK_INTERVAL,
            circuit_breaker_config=CircuitBreakerConfig(
                failure_threshold=settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
                recovery_timeout=float(settings.CIRCUIT_BREAKER_RECOVERY_TIMEOUT),
                operation_timeout=settings.REDIS_OPERATION_TIMEOUT,
                failure_exceptions=REDIS_FAILURE_EXCEPTIONS,
            ),
        )

    @property
    def circuit_breaker(self) -> RedisCircuitBreaker:
        return self._circuit_breaker

    async def initialize(self) -> None:
        """Create the connection pool from the configured URL."""
        if self._initialized:
            return

        async with self._lock:
            if self._initialized:
                return

            parsed_url = urlparse(self.redis_url)
            if parsed_url.scheme not in ("redis", "rediss", "unix"):
                raise RedisConfigurationException(
                    message=f"Unsupported Redis URL scheme: {parsed_url.scheme!r}",
                    config_key="REDIS_URL",
                )

            try:
                self._pool = ConnectionPool.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_connect_timeout=self.connection_timeout,
                    socket_timeout=self.operation_timeout,
                    retry_on_timeout=True,
                    health_check_interval=self.health_check_interval,
                    max_connections=self.max_connections,
                )
            except (ValueError, RedisError) as e:
                raise RedisConfigurationException(
                    message=f"Redis connection factory initialization failed: {e}",
                    config_key="REDIS_URL",
                    original_error=e,
                ) from e

            self._client = Redis(connection_pool=self._pool)
            self._initialized = True
            logger.info(
                "Redis connection factory initialized",
                extra={
                    "host": parsed_url.hostname,
                    "port": parsed_url.port,
                    "max_connections": self.max_connections,
                },
            )

    @asynccontextmanager
    async def get_connection(self):
        """
        Get Redis connection.

        Yields:
            Redis client instance bound to the shared pool

        Raises:
            RedisConfigurationException: If the pool cannot be created
        """
        await self.initialize()
        yield self._client

    async def execute(
        self, operation: str, func: Callable[..., Awaitable[T]], *args, **kwargs
    ) -> T:
        """
        Execute Redis operation with circuit breaker protection.

        Args:
            operation: Operation description for logging
            func: Coroutine function receiving the Redis client first
            *args: Function arguments
            **kwargs: Function keyword arguments

        Returns:
            Operation result

        Raises:
            RedisCircuitBreakerOpenException: If circuit breaker is open
            RedisOperationTimeoutException: If the operation timed out
            RedisConnectionException: If Redis is unreachable
            RedisException: For any other Redis error
        """
        async with self.get_connection() as redis_client:
            try:
                return await self._circuit_breaker.call(
                    func, redis_client, *args, **kwargs
                )

            except RedisException:
                raise

            except (asyncio.TimeoutError, RedisTimeoutError) as e:
                raise RedisOperationTimeoutException(
                    operation, self.operation_timeout, original_error=e
                ) from e

            except (RedisConnectionError, RedisAuthError, ConnectionError, OSError) as e:
                logger.error(
                    f"Redis connection error during {operation}: {e}",
                    extra={"operation": operation},
                )
                raise RedisConnectionException(
                    message=f"Redis operation '{operation}' failed: {e}",
                    original_error=e,
                ) from e

            except RedisError as e:
                raise RedisException(
                    message=f"Redis operation '{operation}' failed: {e}",
                    error_code="REDIS_OPERATION_ERROR",
                    details={"operation": operation},
                    original_error=e,
                ) from e

    async def ping(self) -> bool:
        """Ping Redis through the circuit breaker."""

        async def _ping(redis_client: Redis) -> bool:
            return await redis_client.ping()

        return bool(await self.execute("ping", _ping))

    async def health_check(self) -> Dict[str, Any]:
        """
        Perform health check on the Redis connection.

        Returns:
            Health check results with circuit breaker status
        """
        health_status: Dict[str, Any] = {
            "status": "unhealthy",
            "timestamp": time.time(),
            "circuit_breaker": self._circuit_breaker.get_status(),
        }

        try:
            start_time = time.time()
            await self.ping()
            health_status["response_time_ms"] = round(
                (time.time() - start_time) * 1000, 2
            )
            health_status["status"] = "healthy"

        except RedisException as e:
            health_status.update(e.to_dict())
            logger.warning(f"Redis health check failed: {e.message}")

        health_status["circuit_breaker"] = self._circuit_breaker.get_status()
        return health_status

    async def close(self) -> None:
        """Close the connection pool."""
        async with self._lock:
            if self._owns_client and self._client is not None:
                try:
                    await self._client.aclose()
                except (RedisError, OSError) as e:
                    logger.warning(f"Error closing Redis client: {e}")
            if self._pool is not None:
                await self._pool.disconnect()

            self._pool = None
            if self._owns_client:
                self._client = None
                self._initialized = False

            logger.info("Redis connection factory closed")
