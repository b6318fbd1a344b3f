"""
Bounded retry with exponential backoff.

Listing, media fetches and uploads all go through with_retry with a shared
RetryPolicy. The delay after attempt n is 2^n * base_delay seconds, so with
the defaults a failing operation waits 2s, then 4s, and gives up after the
third attempt. There is no jitter.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from .errors import RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    How often and how patiently to retry.

    sleep is injectable so tests don't wait for real backoff.
    """
    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_seconds < 0:
            raise ValueError("base_delay_seconds cannot be negative")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        return (2 ** attempt) * self.base_delay_seconds


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    label: str,
    policy: Optional[RetryPolicy] = None,
    log: Optional[logging.Logger] = None,
    error_cls: type[RetryExhaustedError] = RetryExhaustedError,
    before_retry: Optional[Callable[[int], bool]] = None,
) -> T:
    """
    Run an async operation, retrying failures with exponential backoff.

    before_retry is called with the upcoming attempt number before each
    retry; returning False stops retrying (used for streams that can't be
    replayed). After the last failed attempt error_cls is raised with the
    label, the number of attempts made and the last error.
    """
    policy = policy or RetryPolicy()
    log = log or logger
    last_error: Optional[BaseException] = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            last_error = e
            if attempt == policy.max_attempts:
                break
            if before_retry is not None and not before_retry(attempt + 1):
                log.warning("%s attempt %d failed and cannot be retried: %s", label, attempt, e)
                raise error_cls(label, attempt, e) from e
            delay = policy.delay_for(attempt)
            log.warning(
                "%s attempt %d failed, retrying in %dms: %s",
                label, attempt, int(delay * 1000), e,
                extra={"label": label, "attempt": attempt, "delay_ms": int(delay * 1000)},
            )
            await policy.sleep(delay)

    raise error_cls(label, policy.max_attempts, last_error) from last_error
