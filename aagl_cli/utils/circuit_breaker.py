"""
Circuit breaker guarding the versions server against repeated failing fetches.
"""

import asyncio
import logging
import time
from enum import Enum

log = logging.getLogger(__name__)


class CircuitState(Enum):
    """States of the circuit breaker."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Blocking requests
    HALF_OPEN = "half_open"  # Letting one probe through


class CircuitBreakerError(Exception):
    """Raised when circuit breaker is open."""


class CircuitBreaker:
    """
    Opens after `failure_threshold` consecutive failures, blocks calls for
    `recovery_timeout` seconds, then lets a probe through and closes again after
    `success_threshold` consecutive successes.
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        recovery_timeout: float = 60,
        success_threshold: int = 1,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.success_threshold = success_threshold

        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._opened_at: float | None = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    def _maybe_half_open(self) -> None:
        if self._state is not CircuitState.OPEN or self._opened_at is None:
            return
        elapsed = time.monotonic() - self._opened_at
        if elapsed >= self.recovery_timeout:
            log.info(
                f"[yellow]Versions server circuit half-open after {elapsed:.0f}s, "
                "probing...[/yellow]"
            )
            self._state = CircuitState.HALF_OPEN
            self._successes = 0

    async def _record(self, success: bool) -> None:
        async with self._lock:
            if success:
                self._failures = 0
                if self._state is CircuitState.HALF_OPEN:
                    self._successes += 1
                    if self._successes >= self.success_threshold:
                        log.info("[green]✓ Versions server circuit closed.[/green]")
                        self._state = CircuitState.CLOSED
                return

            self._failures += 1
            if self._state is CircuitState.HALF_OPEN or (
                self._state is CircuitState.CLOSED
                and self._failures >= self.failure_threshold
            ):
                log.warning(
                    f"[red]✗ Versions server circuit opened after {self._failures} "
                    f"failure(s); blocking for {self.recovery_timeout:.0f}s.[/red]"
                )
                self._state = CircuitState.OPEN
                self._opened_at = time.monotonic()
                self._failures = 0

    async def __aenter__(self):
        async with self._lock:
            self._maybe_half_open()
            if self._state is CircuitState.OPEN:
                raise CircuitBreakerError(
                    "Versions server circuit is open. Will try again after "
                    f"{self.recovery_timeout:.0f} seconds."
                )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self._record(exc_type is None)
