"""
Bounded retry with a fixed delay between attempts.

Used wherever a row written by a side effect (the auth provider's profile
trigger) has to become visible before the next step can proceed.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhausted(Exception):
    """Raised when every attempt failed with a retryable error."""

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class FixedDelayRetry:
    """Retry policy: at most ``max_attempts`` tries, ``delay_seconds`` apart."""

    max_attempts: int
    delay_seconds: float

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds cannot be negative")

    async def poll(self, fetch: Callable[[], Awaitable[Optional[T]]]) -> Optional[T]:
        """
        Call ``fetch`` until it returns something other than None.

        Returns:
            The first non-None result, or None once the attempts run out.
        """
        for attempt in range(1, self.max_attempts + 1):
            result = await fetch()
            if result is not None:
                return result
            if attempt < self.max_attempts:
                logger.debug(f"Poll attempt {attempt}/{self.max_attempts} found nothing, retrying")
                await asyncio.sleep(self.delay_seconds)
        logger.warning(f"Polling gave up after {self.max_attempts} attempts")
        return None

    async def call(
        self,
        operation: Callable[[], Awaitable[T]],
        should_retry: Callable[[BaseException], bool],
    ) -> T:
        """
        Run ``operation``, retrying only the errors ``should_retry`` accepts.

        Raises:
            RetryExhausted: if the last attempt still failed with a retryable error
            Exception: any non-retryable error, immediately
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except Exception as e:
                if not should_retry(e):
                    raise
                if attempt == self.max_attempts:
                    logger.warning(f"Giving up after {attempt} attempts: {e}")
                    raise RetryExhausted(attempt, e) from e
                logger.debug(f"Attempt {attempt}/{self.max_attempts} failed ({e}), retrying")
                await asyncio.sleep(self.delay_seconds)
        # Unreachable: the loop either returns or raises
        raise RuntimeError("retry loop exited without a result")
