"""Retry with exponential backoff for remote content-store operations."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from api.config import get_settings
from api.services.errors import ConflictError, RateLimitedError, TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt budget and backoff shape for ``with_retry``."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    jitter: float = 1.0

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        settings = get_settings()
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            jitter=settings.retry_jitter,
        )

    def delay_for(self, attempt: int) -> float:
        """Delay before retrying after the given 1-based *attempt*.

        Jitter is drawn fresh on every call so concurrent clients that
        failed together do not retry together.
        """
        jitter = random.uniform(0, self.jitter) if self.jitter > 0 else 0.0
        return min(self.max_delay, self.base_delay * 2 ** (attempt - 1) + jitter)


def is_rate_limited(error: BaseException) -> bool:
    return isinstance(error, RateLimitedError)


def is_transient(error: BaseException) -> bool:
    """5xx, timeouts, and transport failures. Rate limits never count."""
    return isinstance(error, TransientError)


def is_retryable(error: BaseException) -> bool:
    """Default policy: hash conflicts and transient failures are retried.

    Rate limits are surfaced immediately since a window can last hours.
    Everything else (404, 401, 403, validation) propagates at once.
    """
    if is_rate_limited(error):
        return False
    return isinstance(error, (ConflictError, TransientError))


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    should_retry: Callable[[BaseException], bool] = is_retryable,
    context: str = "",
) -> T:
    """Run *operation*, retrying retryable failures with backoff.

    The operation is a zero-argument coroutine factory so each attempt
    starts from scratch (a read-modify-write cycle re-reads on every try).

    Raises:
        The last error once attempts are exhausted, or the first error
        that ``should_retry`` rejects.
    """
    policy = policy or RetryPolicy.from_settings()
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= policy.max_attempts or not should_retry(e):
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "Retrying%s after %s (attempt %d/%d, sleeping %.2fs)",
                f" {context}" if context else "",
                type(e).__name__,
                attempt,
                policy.max_attempts,
                delay,
            )
            await asyncio.sleep(delay)
            attempt += 1
