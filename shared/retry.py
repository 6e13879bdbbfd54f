"""
Retry primitives for resilient operations.

Backoff is computed by ``calculate_delay``; waiting is delegated to a
sleeper so callers (and tests) decide how time passes. ``AsyncioSleeper``
really sleeps but wakes early when its ``CancellationToken`` fires.
"""

import asyncio
import random
from typing import Optional, Protocol

from shared.logging import get_logger


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(self,
                 max_attempts: int = 3,
                 base_delay: float = 1.0,
                 max_delay: float = 30.0,
                 exponential_base: float = 2.0,
                 jitter: bool = False):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter


class RetryError(Exception):
    """Exception raised when all retry attempts are exhausted."""
    def __init__(self, message: str, last_exception: Optional[BaseException], attempts: int):
        super().__init__(message)
        self.last_exception = last_exception
        self.attempts = attempts


class RetryCancelledError(Exception):
    """Raised when a retry sequence is cancelled through its token."""


def calculate_delay(attempt_index: int, config: RetryConfig) -> float:
    """Calculate the delay that follows the 0-based attempt ``attempt_index``."""
    delay = min(config.base_delay * (config.exponential_base ** attempt_index), config.max_delay)

    if config.jitter:
        jitter_amount = delay * 0.1  # 10% jitter
        delay += random.uniform(-jitter_amount, jitter_amount)

    return max(0.0, delay)


class CancellationToken:
    """Cooperative cancellation flag shared between a caller and a retry loop.

    The token may be created outside any event loop; its event is only built
    by the first waiter, inside the loop that waits on it.
    """

    def __init__(self):
        self._cancelled = False
        self._event: Optional[asyncio.Event] = None

    def cancel(self) -> None:
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def wait(self) -> None:
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        await self._event.wait()


class Sleeper(Protocol):
    async def sleep(self, seconds: float, cancel_token: Optional[CancellationToken] = None) -> None:
        ...


class AsyncioSleeper:
    """Sleeper backed by the running event loop."""

    def __init__(self):
        self.logger = get_logger("retry.sleeper")

    async def sleep(self, seconds: float, cancel_token: Optional[CancellationToken] = None) -> None:
        if cancel_token is None:
            await asyncio.sleep(seconds)
            return

        if cancel_token.cancelled:
            raise RetryCancelledError("Retry cancelled before waiting")

        try:
            await asyncio.wait_for(cancel_token.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return

        self.logger.debug("Backoff wait interrupted by cancellation", delay=seconds)
        raise RetryCancelledError("Retry cancelled while waiting")
