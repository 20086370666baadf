"""
Redis Circuit Breaker

Stops sending cache traffic to Redis after repeated connection failures
so a Redis outage costs one fast rejection per call instead of a
connect timeout. The cached user store treats the rejection like any
other cache failure and reads from the store of record.

States:
- CLOSED: calls pass through, failures are counted
- OPEN: calls are rejected until ``recovery_timeout`` has elapsed
- HALF_OPEN: calls probe Redis; ``success_threshold`` successes close
  the circuit, a single failure opens it again
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type, TypeVar

from .exceptions import RedisCircuitBreakerOpenException

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """Thresholds and timeouts of the breaker."""

    failure_threshold: int = 5
    recovery_timeout: float = 30.0
    success_threshold: int = 2
    operation_timeout: float = 5.0
    # Exceptions that count against the circuit; anything else passes through
    failure_exceptions: Tuple[Type[BaseException], ...] = field(
        default=(ConnectionError, TimeoutError, OSError)
    )


@dataclass
class CircuitBreakerMetrics:
    """Call counters exposed through ``get_status``."""

    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    timeout_calls: int = 0
    rejected_calls: int = 0
    circuit_opens: int = 0
    last_failure_time: Optional[float] = None
    last_success_time: Optional[float] = None

    @property
    def success_rate(self) -> float:
        return self.successful_calls / self.total_calls if self.total_calls else 0.0

    @property
    def failure_rate(self) -> float:
        return self.failed_calls / self.total_calls if self.total_calls else 0.0


class RedisCircuitBreaker:
    """Circuit breaker guarding every call the connection factory makes."""

    def __init__(self, config: Optional[CircuitBreakerConfig] = None):
        self.config = config or CircuitBreakerConfig()
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None
        self.last_state_change_time = time.time()
        self.metrics = CircuitBreakerMetrics()
        self._lock = asyncio.Lock()

    async def call(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """
        Run ``func`` unless the circuit is open.

        Raises:
            RedisCircuitBreakerOpenException: If the circuit rejects the call
            asyncio.TimeoutError: If the call exceeds operation_timeout
            Exception: Whatever ``func`` raised
        """
        await self._admit()

        started = time.time()
        try:
            result = await asyncio.wait_for(
                self._invoke(func, *args, **kwargs),
                timeout=self.config.operation_timeout,
            )
        except asyncio.TimeoutError:
            self.metrics.timeout_calls += 1
            await self._on_failure("timeout")
            logger.warning(
                "Redis call timed out",
                extra={
                    "elapsed": round(time.time() - started, 3),
                    "timeout": self.config.operation_timeout,
                    "state": self.state.value,
                },
            )
            raise
        except self.config.failure_exceptions as e:
            await self._on_failure(type(e).__name__)
            logger.warning(
                f"Redis call failed: {type(e).__name__}",
                extra={"failure_count": self.failure_count, "state": self.state.value},
            )
            raise

        await self._on_success()
        return result

    async def _admit(self) -> None:
        """Reject the call while open; move to half-open once recovery is due."""
        async with self._lock:
            self.metrics.total_calls += 1
            if self.state != CircuitState.OPEN:
                return

            if not self._should_attempt_reset():
                self.metrics.rejected_calls += 1
                raise RedisCircuitBreakerOpenException()

            self._transition(CircuitState.HALF_OPEN)
            logger.info(
                "Redis circuit half-open, probing",
                extra={"failure_count": self.failure_count},
            )

    async def _invoke(self, func: Callable[..., Any], *args, **kwargs) -> Any:
        if inspect.iscoroutinefunction(func):
            return await func(*args, **kwargs)
        return await asyncio.to_thread(func, *args, **kwargs)

    async def _on_success(self) -> None:
        async with self._lock:
            self.metrics.successful_calls += 1
            self.metrics.last_success_time = time.time()

            if self.state == CircuitState.HALF_OPEN:
                self.success_count += 1
                if self.success_count >= self.config.success_threshold:
                    self._transition(CircuitState.CLOSED)
                    logger.info("Redis circuit closed, Redis recovered")
            elif self.failure_count > 0:
                # Successes slowly forgive earlier failures
                self.failure_count -= 1

    async def _on_failure(self, failure_type: str) -> None:
        async with self._lock:
            now = time.time()
            self.metrics.failed_calls += 1
            self.metrics.last_failure_time = now
            self.last_failure_time = now

            if self.state == CircuitState.HALF_OPEN:
                self._open(failure_type)
            elif self.state == CircuitState.CLOSED:
                self.failure_count += 1
                if self.failure_count >= self.config.failure_threshold:
                    self._open(failure_type)

    def _open(self, failure_type: str) -> None:
        self._transition(CircuitState.OPEN)
        self.metrics.circuit_opens += 1
        logger.warning(
            "Redis circuit opened",
            extra={
                "failure_count": self.failure_count,
                "threshold": self.config.failure_threshold,
                "failure_type": failure_type,
            },
        )

    def _transition(self, state: CircuitState) -> None:
        self.state = state
        self.success_count = 0
        if state == CircuitState.CLOSED:
            self.failure_count = 0
        self.last_state_change_time = time.time()

    def _should_attempt_reset(self) -> bool:
        if self.last_failure_time is None:
            return True
        return time.time() - self.last_failure_time >= self.config.recovery_timeout

    def get_status(self) -> Dict[str, Any]:
        """Breaker state, counters and configuration for health reporting."""
        metrics = self.metrics
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "last_failure_time": self.last_failure_time,
            "last_state_change_time": self.last_state_change_time,
            "metrics": {
                "total_calls": metrics.total_calls,
                "successful_calls": metrics.successful_calls,
                "failed_calls": metrics.failed_calls,
                "timeout_calls": metrics.timeout_calls,
                "rejected_calls": metrics.rejected_calls,
                "success_rate": metrics.success_rate,
                "failure_rate": metrics.failure_rate,
                "circuit_opens": metrics.circuit_opens,
            },
            "config": {
                "failure_threshold": self.config.failure_threshold,
                "recovery_timeout": self.config.recovery_timeout,
                "success_threshold": self.config.success_threshold,
                "operation_timeout": self.config.operation_timeout,
            },
        }

    async def reset(self) -> None:
        """Force the circuit closed."""
        async with self._lock:
            self._transition(CircuitState.CLOSED)
            self.last_failure_time = None
            logger.info("Redis circuit manually reset")
