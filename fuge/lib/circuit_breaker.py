"""
Circuit breaker for AI provider calls.

Each provider config gets its own breaker so that a provider that keeps
failing is skipped during failover until its recovery timeout elapses.

States:
- CLOSED: calls pass through.
- OPEN: calls are rejected until ``recovery_timeout`` has elapsed.
- HALF_OPEN: a limited number of trial calls decide whether to close again.

Usage:
    breaker = CircuitBreaker(name="ai:primary")
    async with breaker:
        await client.post(...)
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class CircuitState(StrEnum):
    """Possible states for a circuit breaker."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerError(Exception):
    """Raised when a call is rejected because the circuit is open."""

    def __init__(self, name: str, retry_after: float) -> None:
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit '{name}' is open; retry after {retry_after:.1f}s")


class CircuitBreaker:
    """
    Consecutive-failure circuit breaker guarded by an asyncio.Lock.

    Args:
        name: Identifier used in logs.
        failure_threshold: Consecutive failures that open the circuit.
        recovery_timeout: Seconds in OPEN before a trial call is allowed.
        half_open_max_calls: Trial calls allowed while HALF_OPEN.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 3,
        recovery_timeout: float = 30.0,
        half_open_max_calls: int = 1,
    ) -> None:
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.half_open_max_calls = half_open_max_calls

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._trial_calls = 0
        self._opened_at = 0.0
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def _set_state(self, new_state: CircuitState) -> None:
        if new_state == self._state:
            return
        logger.info("Circuit '%s': %s -> %s", self.name, self._state.value, new_state.value)
        self._state = new_state

    def retry_after_seconds(self) -> float:
        """Seconds until an OPEN circuit may be tried again; 0 otherwise."""
        if self._state != CircuitState.OPEN:
            return 0.0
        return max(0.0, self.recovery_timeout - (time.monotonic() - self._opened_at))

    async def allow_request(self) -> bool:
        """Return True if a call may proceed now."""
        async with self._lock:
            if self._state == CircuitState.CLOSED:
                return True
            if self._state == CircuitState.OPEN:
                if time.monotonic() - self._opened_at < self.recovery_timeout:
                    return False
                self._set_state(CircuitState.HALF_OPEN)
                self._trial_calls = 0
            if self._trial_calls < self.half_open_max_calls:
                self._trial_calls += 1
                return True
            return False

    async def record_success(self) -> None:
        async with self._lock:
            self._failure_count = 0
            self._trial_calls = 0
            self._set_state(CircuitState.CLOSED)

    async def record_failure(self) -> None:
        async with self._lock:
            self._failure_count += 1
            if (
                self._state == CircuitState.HALF_OPEN
                or self._failure_count >= self.failure_threshold
            ):
                if self._state != CircuitState.OPEN:
                    logger.warning(
                        "Circuit '%s' opening after %d consecutive failures",
                        self.name,
                        self._failure_count,
                    )
                self._opened_at = time.monotonic()
                self._trial_calls = 0
                self._set_state(CircuitState.OPEN)

    async def reset(self) -> None:
        """Force the circuit back to CLOSED."""
        async with self._lock:
            self._failure_count = 0
            self._trial_calls = 0
            self._opened_at = 0.0
            self._set_state(CircuitState.CLOSED)

    async def __aenter__(self) -> CircuitBreaker:
        if not await self.allow_request():
            raise CircuitBreakerError(self.name, self.retry_after_seconds())
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if exc_type is None:
            await self.record_success()
        else:
            await self.record_failure()
