"""Per-host request throttling shared by every fetcher in a run."""

import asyncio
import time
from collections.abc import Awaitable, Callable

from lcl_scraper.logging import get_logger
from lcl_scraper.utils.urls import extract_host

logger = get_logger(__name__)


class HostRateLimiter:
    """Guarantees a minimum interval between requests to the same host.

    One instance is shared by all workers of a run, so two sources on the same
    host are throttled together. Each caller reserves its slot under the lock
    and then sleeps outside it, so waiting on one host never blocks another.

    Example:
        ```python
        limiter = HostRateLimiter(min_interval=0.5)
        await limiter.wait("https://example.nl/agenda")
        ```
    """

    def __init__(
        self,
        min_interval: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._next_slot: dict[str, float] = {}
        self._lock = asyncio.Lock()

    async def wait(self, url: str, min_interval: float | None = None) -> float:
        """Sleep until a request to the URL's host is allowed.

        Args:
            url: Request URL; its hostname is the throttling key
            min_interval: Per-source override, never lower than the global floor

        Returns:
            Seconds waited
        """
        host = extract_host(url) or url
        interval = max(self.min_interval, min_interval or 0.0)

        async with self._lock:
            now = self._clock()
            slot = max(now, self._next_slot.get(host, now))
            self._next_slot[host] = slot + interval
            delay = slot - now

        if delay > 0:
            logger.debug("rate_limit_wait", host=host, wait_seconds=round(delay, 3))
            await self._sleep(delay)
        return delay

    def reset(self, host: str | None = None) -> None:
        """Forget throttling state for one host, or all hosts."""
        if host is None:
            self._next_slot.clear()
        else:
            self._next_slot.pop(host, None)
