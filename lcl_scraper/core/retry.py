"""Retry policy for page fetches, built on tenacity."""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from tenacity import AsyncRetrying, RetryCallState, retry_if_result, stop_after_attempt

from lcl_scraper.logging import get_logger

logger = get_logger(__name__)


def is_retryable_status(status: int) -> bool:
    """429, any 5xx, and 0 (network-level failure) are retried.

    Other non-2xx statuses, 403 included, are returned to the caller as-is.
    """
    return status == 0 or status == 429 or status >= 500


@dataclass
class RetryConfig:
    """Configuration for fetch retry behavior."""

    max_attempts: int = 3
    backoff_schedule: Sequence[float] = field(default_factory=lambda: (1.0, 3.0, 9.0))

    def delay_for(self, attempt: int) -> float:
        """Delay after the given 1-indexed attempt; the last step repeats."""
        if not self.backoff_schedule:
            return 0.0
        index = min(max(attempt, 1), len(self.backoff_schedule)) - 1
        return float(self.backoff_schedule[index])


def _log_retry(retry_state: RetryCallState) -> None:
    result = retry_state.outcome.result() if retry_state.outcome else None
    logger.warning(
        "fetch_retry",
        url=getattr(result, "url", None),
        status=getattr(result, "status", None),
        attempt=retry_state.attempt_number,
        delay=retry_state.next_action.sleep if retry_state.next_action else None,
    )


def create_fetch_retrying(
    config: RetryConfig | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> AsyncRetrying:
    """Create a tenacity controller for one fetch.

    The wrapped call must return an object with a ``status`` attribute and
    must not raise for network failures (report them as status 0). When
    attempts run out, the last result is returned instead of raising.

    Usage:
        retrying = create_fetch_retrying(RetryConfig(max_attempts=3))
        result = await retrying(fetcher.fetch_once, url)
    """
    if config is None:
        config = RetryConfig()

    def wait(retry_state: RetryCallState) -> float:
        return config.delay_for(retry_state.attempt_number)

    def last_result(retry_state: RetryCallState) -> Any:
        return retry_state.outcome.result()

    return AsyncRetrying(
        stop=stop_after_attempt(max(config.max_attempts, 1)),
        wait=wait,
        retry=retry_if_result(lambda r: is_retryable_status(r.status)),
        retry_error_callback=last_result,
        before_sleep=_log_retry,
        sleep=sleep,
    )
