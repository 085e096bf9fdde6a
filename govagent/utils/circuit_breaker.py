"""
Fail-fast guard for calls to the chain node and other remote services.

A breaker opens after too many consecutive failures. Once the recovery
timeout has passed it goes half-open and lets calls through again: the
first failure reopens it, `success_threshold` successes close it.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type, TypeVar

from govagent.utils.logger import logger

T = TypeVar('T')


class CircuitState(Enum):
    """Where the breaker currently stands."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpenError(Exception):
    """The breaker is open; `retry_after` says when calls will be let through again."""

    def __init__(self, message: str, retry_after: float = 0):
        super().__init__(message)
        self.retry_after = retry_after


@dataclass
class CircuitBreakerConfig:
    """Thresholds for one named breaker."""
    name: str = "default"
    # consecutive failures that open the breaker
    failure_threshold: int = 5
    # seconds an open breaker waits before going half-open
    recovery_timeout: float = 30.0
    # half-open successes needed to close again
    success_threshold: int = 1
    # exception types that count as failures; None counts every Exception
    failure_exceptions: Optional[Tuple[Type[BaseException], ...]] = None


class CircuitBreaker:
    """
    Usage:
        breaker = CircuitBreaker(CircuitBreakerConfig(name="chain", failure_threshold=3))
        balance = await breaker.call(gateway_read, address)
    """

    def __init__(self, config: Optional[CircuitBreakerConfig] = None, clock: Callable[[], float] = time.monotonic):
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._consecutive_successes = 0
        self._last_failure_time: Optional[float] = None
        self._rejected_calls = 0
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    def _retry_after(self) -> float:
        if self._last_failure_time is None:
            return self.config.recovery_timeout
        elapsed = self._clock() - self._last_failure_time
        return max(0.0, self.config.recovery_timeout - elapsed)

    def _should_allow_request(self) -> bool:
        if self._state == CircuitState.OPEN:
            if self._retry_after() > 0:
                return False
            self._state = CircuitState.HALF_OPEN
            self._consecutive_successes = 0
            logger.info("Breaker %s half-open, letting calls through", self.config.name)
        return True

    def _on_success(self) -> None:
        self._consecutive_failures = 0
        self._consecutive_successes += 1
        if self._state == CircuitState.HALF_OPEN and self._consecutive_successes >= self.config.success_threshold:
            self._state = CircuitState.CLOSED
            logger.info("Breaker %s closed again", self.config.name)

    def _on_failure(self, error: BaseException) -> None:
        self._consecutive_failures += 1
        self._consecutive_successes = 0
        self._last_failure_time = self._clock()
        if self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            logger.warning("Breaker %s failed while half-open, reopening: %s", self.config.name, error)
        elif self._consecutive_failures >= self.config.failure_threshold and self._state == CircuitState.CLOSED:
            self._state = CircuitState.OPEN
            logger.error("Breaker %s opened after %d failures in a row: %s",
                         self.config.name, self._consecutive_failures, error)

    def _is_failure_exception(self, error: BaseException) -> bool:
        if self.config.failure_exceptions is None:
            return True
        return isinstance(error, self.config.failure_exceptions)

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """
        Await ``func(*args, **kwargs)`` through the breaker.

        Raises:
            CircuitBreakerOpenError: the breaker is open and the recovery timeout has not passed
            whatever ``func`` raises, after recording the failure
        """
        async with self._lock:
            if not self._should_allow_request():
                self._rejected_calls += 1
                raise CircuitBreakerOpenError(
                    f"{self.config.name} is unavailable (breaker open)",
                    retry_after=self._retry_after(),
                )

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            async with self._lock:
                if self._is_failure_exception(e):
                    self._on_failure(e)
            raise

        async with self._lock:
            self._on_success()
        return result

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._consecutive_successes = 0
        self._last_failure_time = None
        logger.info("Breaker %s reset", self.config.name)

    def get_status(self) -> Dict[str, Any]:
        """Snapshot reported by /healthz."""
        return {
            "name": self.config.name,
            "state": self._state.value,
            "consecutive_failures": self._consecutive_failures,
            "rejected_calls": self._rejected_calls,
            "retry_after": round(self._retry_after(), 1) if self._state == CircuitState.OPEN else 0,
        }
