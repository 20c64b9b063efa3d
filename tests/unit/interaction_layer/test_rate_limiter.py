"""
Unit Tests for SlidingWindowRateLimiter and InteractionGuard
"""

import asyncio

import pytest

from courier.interaction import InteractionGuard, SlidingWindowRateLimiter


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.mark.unit
class TestSlidingWindow:

    @pytest.mark.asyncio
    async def test_allows_up_to_limit(self):
        limiter = SlidingWindowRateLimiter(max_per_window=3, window_seconds=60, clock=FakeClock())

        results = [await limiter.check_and_record("alice") for _ in range(4)]

        assert results == [(True, 2), (True, 1), (True, 0), (False, 0)]

    @pytest.mark.asyncio
    async def test_window_slides(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(max_per_window=2, window_seconds=60, clock=clock)
        await limiter.check_and_record("alice")
        clock.now = 30
        await limiter.check_and_record("alice")
        assert (await limiter.check_and_record("alice"))[0] is False

        clock.now = 60.5
        assert (await limiter.check_and_record("alice"))[0] is True

    @pytest.mark.asyncio
    async def test_senders_are_independent(self):
        limiter = SlidingWindowRateLimiter(max_per_window=1, window_seconds=60, clock=FakeClock())

        assert (await limiter.check_and_record("alice"))[0] is True
        assert (await limiter.check_and_record("bob"))[0] is True
        assert (await limiter.check_and_record("alice"))[0] is False

    @pytest.mark.asyncio
    async def test_concurrent_checks_take_last_slot_once(self):
        limiter = SlidingWindowRateLimiter(max_per_window=1, window_seconds=60, clock=FakeClock())

        results = await asyncio.gather(*(limiter.check_and_record("alice") for _ in range(5)))

        assert sum(1 for allowed, _ in results if allowed) == 1

    @pytest.mark.asyncio
    async def test_sweep_drops_idle_senders(self):
        clock = FakeClock()
        limiter = SlidingWindowRateLimiter(max_per_window=5, window_seconds=60, clock=clock)
        await limiter.check_and_record("alice")
        clock.now = 50
        await limiter.check_and_record("bob")

        clock.now = 100
        removed = await limiter.sweep()

        assert removed == 1
        assert limiter.tracked_senders() == 1

    def test_non_positive_limit_rejected(self):
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(max_per_window=0, window_seconds=60)


@pytest.mark.unit
class TestInteractionGuard:

    def test_limiter_built_from_settings(self, fast_settings):
        guard = InteractionGuard(fast_settings.interaction)

        assert guard.limiter.max_per_window == 30
        assert guard.limiter.window_seconds == 60.0

    @pytest.mark.asyncio
    async def test_sweep_reports_both_stores(self, fast_settings):
        clock = FakeClock(1000.0)
        guard = InteractionGuard(fast_settings.interaction, clock=clock)
        await guard.limiter.check_and_record("alice")
        guard.contexts.start("bob", "reply", reference_id="draft-1")

        clock.now += 3600
        removed = await guard.sweep()

        assert removed == {"idle_senders": 1, "expired_contexts": 1}

    @pytest.mark.asyncio
    async def test_start_and_stop(self, fast_settings):
        guard = InteractionGuard(fast_settings.interaction)
        guard.start()
        await guard.stop()
        await guard.stop()
