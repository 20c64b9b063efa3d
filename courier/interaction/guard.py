"""
Per-Sender Interaction Guard

Explicit per-process owner of the inbound rate limiter and the conversation
context store, plus the periodic sweep that drops idle senders and expired
contexts.
"""

import asyncio
import time
from collections.abc import Callable

from courier.core.config.constants import Stage
from courier.core.config.settings import InteractionSettings, get_settings
from courier.core.logging import get_logger
from courier.interaction.context_store import ConversationContextStore
from courier.interaction.rate_limiter import SlidingWindowRateLimiter

logger = get_logger(__name__)


class InteractionGuard:

    def __init__(
        self,
        settings: InteractionSettings | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._settings = settings or get_settings().interaction
        self.limiter = SlidingWindowRateLimiter(
            max_per_window=self._settings.RATE_LIMIT_MESSAGES_PER_MINUTE,
            window_seconds=self._settings.RATE_LIMIT_WINDOW_MS / 1000.0,
            clock=clock,
        )
        self.contexts = ConversationContextStore(self._settings.CONTEXT_TTL_SECONDS, clock=clock)
        self._sweep_task: asyncio.Task | None = None

    async def sweep(self) -> dict[str, int]:
        return {
            "idle_senders": await self.limiter.sweep(),
            "expired_contexts": self.contexts.sweep(),
        }

    async def _sweep_loop(self) -> None:
        interval = self._settings.RATE_LIMIT_SWEEP_INTERVAL_SECONDS
        while True:
            await asyncio.sleep(interval)
            removed = await self.sweep()
            if any(removed.values()):
                logger.debug("Interaction guard swept", stage=Stage.INBOUND, **removed)

    def start(self) -> None:
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop(), name="interaction-sweep")

    async def stop(self) -> None:
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            await asyncio.gather(self._sweep_task, return_exceptions=True)
            self._sweep_task = None
