import time
import asyncio
import logging
from typing import Callable, Awaitable, List

from .errors import RateLimitError

logger = logging.getLogger(__name__)

MIN_WAIT = 0.001


class RateLimiter:
    """Sliding-window limiter with a density-based minimum gap between requests.

    Not shared across processes; each ChatService owns one.
    """

    def __init__(
        self,
        max_requests: int = 10,
        time_window: float = 60,
        base_delay: float = 0.5,
        max_delay: float = 8.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.max_requests = max_requests
        self.time_window = time_window
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.clock = clock
        self.sleep = sleep
        self.requests: List[float] = []
        self._lock = asyncio.Lock()

    def _prune(self, current_time: float):
        self.requests = [req_time for req_time in self.requests
                         if current_time - req_time < self.time_window]

    def _wait_for_oldest(self, current_time: float) -> float:
        # kept strictly inside (0, time_window) even when requests share a timestamp
        wait = self.requests[0] + self.time_window - current_time
        return min(max(wait, MIN_WAIT), self.time_window - MIN_WAIT)

    def wait_time(self) -> float:
        """Seconds until the oldest request leaves the window"""
        current_time = self.clock()
        self._prune(current_time)
        if len(self.requests) < self.max_requests:
            return 0.0
        return self._wait_for_oldest(current_time)

    def min_delay(self) -> float:
        if not self.requests or self.base_delay <= 0:
            return 0.0
        return min(self.max_delay, self.base_delay * 2 ** (len(self.requests) - 1))

    async def acquire(self):
        """Reserve a slot, sleeping off the backoff gap if needed"""
        async with self._lock:
            current_time = self.clock()
            self._prune(current_time)

            if len(self.requests) >= self.max_requests:
                wait = self._wait_for_oldest(current_time)
                logger.warning(f"Rate limit reached, retry in {wait:.1f}s")
                raise RateLimitError(wait)

            if self.requests:
                gap = self.min_delay() - (current_time - self.requests[-1])
                if gap > 0:
                    logger.debug(f"Backing off {gap:.2f}s before next completion")
                    await self.sleep(gap)

            self.requests.append(self.clock())
