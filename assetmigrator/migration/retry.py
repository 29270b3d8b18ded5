"""
Per-asset retry policy with exponential backoff.

Only errors flagged ``retryable`` (transport failures, throttling,
timeouts) are retried. Throttling waits longer: the provider's
Retry-After when given, otherwise the regular delay times
``rate_limit_backoff``.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from assetmigrator.core.logger import get_logger
from assetmigrator.storage.core.errors import ProviderTransportError, RateLimitError

logger = get_logger(__name__)

T = TypeVar("T")


async def with_timeout(
    awaitable: Awaitable[T],
    timeout_seconds: float | None,
    operation: str,
    provider: str | None = None,
) -> T:
    """
    Bound one provider call by a timeout.

    Raises:
        ProviderTransportError: If the call does not finish in time
    """
    if timeout_seconds is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except TimeoutError as e:
        raise ProviderTransportError(
            f"{operation} timed out after {timeout_seconds}s",
            provider=provider,
            timeout_seconds=timeout_seconds,
        ) from e


@dataclass
class AttemptOutcome(Generic[T]):
    """Result of running an operation under a RetryPolicy."""

    attempts: int
    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RetryPolicy:
    """
    Bounded retries with exponential backoff.

    Attributes:
        max_retries: Retries after the first attempt
        delay_seconds: Delay before the first retry
        backoff: Multiplier applied per further retry
        rate_limit_backoff: Extra multiplier for throttling errors
        max_delay_seconds: Upper bound for any single delay
    """

    max_retries: int = 3
    delay_seconds: float = 1.0
    backoff: float = 2.0
    rate_limit_backoff: float = 4.0
    max_delay_seconds: float = 300.0

    @classmethod
    def from_settings(cls, settings: Any) -> "RetryPolicy":
        return cls(
            max_retries=settings.max_retries,
            delay_seconds=settings.retry_delay_seconds,
            backoff=settings.retry_backoff,
            rate_limit_backoff=settings.rate_limit_backoff,
        )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def should_retry(self, error: Exception) -> bool:
        return bool(getattr(error, "retryable", False))

    def delay_for(self, retry_number: int, error: Exception | None = None) -> float:
        """
        Delay before retry number ``retry_number`` (1-based).
        """
        delay = self.delay_seconds * self.backoff ** (retry_number - 1)
        if isinstance(error, RateLimitError):
            delay *= self.rate_limit_backoff
            if error.retry_after is not None:
                delay = max(delay, error.retry_after)
        return min(delay, self.max_delay_seconds)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str = "operation",
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> AttemptOutcome[T]:
        """
        Run an operation until it succeeds, fails permanently, or retries run out.

        Never raises for operation errors; cancellation propagates.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt
            description: Used in log messages
            sleep: Awaitable sleep (injected by tests)
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return AttemptOutcome(attempts=attempt, value=await operation())
            except Exception as e:
                if attempt >= self.max_attempts or not self.should_retry(e):
                    return AttemptOutcome(attempts=attempt, error=e)

                delay = self.delay_for(attempt, e)
                logger.warning(
                    f"Retry {attempt}/{self.max_retries} for {description} in {delay:.2f}s: {e}"
                )
                await sleep(delay)
