"""Bounded retries with exponential backoff and jitter."""

import asyncio
import logging
import random
from contextlib import aclosing
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Retry a fallible async operation.

    The caller decides which errors are retryable. Cancellation
    (``asyncio.CancelledError``) is never retried, including while sleeping
    between attempts.
    """

    max_attempts: int = 3
    base_delay: float = 0.3
    max_delay: float = 4.0
    jitter_fraction: float = 0.2

    def __post_init__(self) -> None:
        self.max_attempts = max(1, self.max_attempts)
        self.jitter_fraction = max(0.0, self.jitter_fraction)

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            jitter_fraction=settings.retry_jitter_fraction,
        )

    def compute_delay(self, attempt: int) -> float:
        """Backoff before retrying after failed ``attempt`` (1-based)."""
        without_jitter = min(self.max_delay, self.base_delay * 2 ** max(0, attempt - 1))
        return without_jitter + without_jitter * self.jitter_fraction * random.uniform(0, 1)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        should_retry: Callable[[BaseException], bool],
        operation_name: str = "operation",
    ) -> T:
        attempt = 1
        while True:
            try:
                return await operation()
            except Exception as e:
                if attempt >= self.max_attempts or not should_retry(e):
                    raise
                await self._backoff(attempt, operation_name, e)
                attempt += 1

    async def run_stream(
        self,
        factory: Callable[[], AsyncIterator[T]],
        should_retry: Callable[[BaseException], bool],
        operation_name: str = "stream",
    ) -> AsyncIterator[T]:
        """Yield from ``factory()``, restarting it on retryable failures.

        A stream is only restarted while it has not yielded anything yet;
        once items have been handed out a failure propagates, so consumers
        never see duplicates.
        """
        attempt = 1
        while True:
            yielded = False
            try:
                async with aclosing(factory()) as stream:
                    async for item in stream:
                        yielded = True
                        yield item
                return
            except Exception as e:
                if yielded or attempt >= self.max_attempts or not should_retry(e):
                    raise
                await self._backoff(attempt, operation_name, e)
                attempt += 1

    async def _backoff(self, attempt: int, operation_name: str, error: Exception) -> None:
        delay = self.compute_delay(attempt)
        logger.warning(
            "%s failed (attempt %d/%d): %s. Retrying in %.2fs...",
            operation_name, attempt, self.max_attempts, error, delay,
        )
        await asyncio.sleep(delay)
