"""Circuit breaker guarding calls to a remote store."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TypeVar

from loguru import logger

__all__ = ["CircuitBreaker", "CircuitOpenError", "CircuitState"]

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(RuntimeError):
    """Raised instead of calling the operation while the circuit is open."""


class CircuitBreaker:
    """Opens after ``failure_threshold`` failures, lets a trial call through after ``reset_timeout`` seconds."""

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        half_open_max_attempts: int = 3,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.half_open_max_attempts = half_open_max_attempts
        self._clock = clock

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.last_failure_time: float | None = None
        self._half_open_successes = 0

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        if self.state is CircuitState.OPEN:
            if self._clock() - (self.last_failure_time or 0.0) > self.reset_timeout:
                self.state = CircuitState.HALF_OPEN
                self._half_open_successes = 0
            else:
                raise CircuitOpenError("Circuit breaker is open")

        try:
            result = await operation()
        except Exception:
            self._record_failure()
            raise

        if self.state is CircuitState.HALF_OPEN:
            self._half_open_successes += 1
            if self._half_open_successes >= self.half_open_max_attempts:
                self.reset()
        return result

    def _record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = self._clock()
        if self.state is CircuitState.HALF_OPEN or (
            self.state is CircuitState.CLOSED and self.failure_count >= self.failure_threshold
        ):
            logger.warning(f"Circuit breaker opened after {self.failure_count} failures")
            self.state = CircuitState.OPEN

    def reset(self) -> None:
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.last_failure_time = None
