"""
Sliding Window Rate Limiter

Per-sender inbound limit: a message is accepted only if fewer than
``max_per_window`` accepted messages fall inside the trailing window.
Check-and-record happens under one lock, so two concurrent messages from the
same sender cannot both take the last slot.

Idle senders (no timestamp inside the window) are dropped by sweep().
"""

import asyncio
import time
from collections import deque
from collections.abc import Callable

from courier.core.config.constants import Stage
from courier.core.logging import get_logger

logger = get_logger(__name__)


class SlidingWindowRateLimiter:
    """
    Usage:
        limiter = SlidingWindowRateLimiter(max_per_window=30, window_seconds=60)
        allowed, remaining = await limiter.check_and_record(sender)
    """

    def __init__(
        self,
        max_per_window: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_per_window <= 0:
            raise ValueError("max_per_window must be positive")
        self.max_per_window = max_per_window
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, deque[float]] = {}
        self._lock = asyncio.Lock()

    def _evict(self, window: deque[float], now: float) -> None:
        cutoff = now - self.window_seconds
        while window and window[0] <= cutoff:
            window.popleft()

    async def check_and_record(self, sender: str) -> tuple[bool, int]:
        """
        Returns:
            (allowed, remaining) where remaining counts slots left after this call
        """
        async with self._lock:
            now = self._clock()
            window = self._windows.setdefault(sender, deque())
            self._evict(window, now)

            if len(window) >= self.max_per_window:
                logger.warning(
                    "Rate limit exceeded",
                    sender=sender,
                    limit=self.max_per_window,
                    window_seconds=self.window_seconds,
                    stage=Stage.RATE_LIMITING,
                )
                return False, 0

            window.append(now)
            return True, self.max_per_window - len(window)

    async def sweep(self) -> int:
        """Drop senders with no activity inside the window; returns how many."""
        async with self._lock:
            now = self._clock()
            idle = []
            for sender, window in self._windows.items():
                self._evict(window, now)
                if not window:
                    idle.append(sender)
            for sender in idle:
                del self._windows[sender]
        if idle:
            logger.debug("Rate limiter swept", removed=len(idle), stage=Stage.RATE_LIMITING)
        return len(idle)

    def tracked_senders(self) -> int:
        return len(self._windows)
