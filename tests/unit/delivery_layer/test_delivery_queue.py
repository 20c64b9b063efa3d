"""
Unit Tests for DeliveryQueue

Ordering, aging, retry/dead-letter, de-duplication and operator controls.
"""

import asyncio

import pytest

from courier.core.config.constants import APOLOGY_TEXT
from courier.delivery import DeliveryQueue, MessagePriority
from courier.delivery.delivery_queue import PendingSet, RetryStrategy
from courier.core.resilience import BackoffPolicy
from tests.test_fixtures.async_helpers import wait_until
from tests.test_fixtures.message_factory import MessageFactory, RecordingSender


@pytest.mark.unit
class TestPendingSet:
    """Priority ordering with aging."""

    def test_priority_order_then_fifo(self):
        pending = PendingSet(aging_seconds=300)
        pending.push(MessageFactory.message("low", priority="low"))
        pending.push(MessageFactory.message("normal-1"))
        pending.push(MessageFactory.message("high", priority="high"))
        pending.push(MessageFactory.message("normal-2"))

        order = [pending.pop_next().payload for _ in range(4)]

        assert order == ["high", "normal-1", "normal-2", "low"]
        assert pending.pop_next() is None

    def test_aged_low_message_promoted(self):
        now = [1000.0]
        pending = PendingSet(aging_seconds=300, clock=lambda: now[0])

        old_low = MessageFactory.message("old-low", priority="low")
        old_low.enqueued_at = 1000.0
        pending.push(old_low)

        now[0] = 1000.0 + 650
        fresh_normal = MessageFactory.message("fresh-normal")
        fresh_normal.enqueued_at = now[0]
        pending.push(fresh_normal)

        # waited two aging periods: low (3) -> high (1)
        assert pending.effective_rank(old_low) == 1
        assert pending.pop_next().payload == "old-low"

    def test_rank_never_below_high(self):
        now = [0.0]
        pending = PendingSet(aging_seconds=1, clock=lambda: now[0])
        message = MessageFactory.message(priority="low")
        message.enqueued_at = 0.0
        now[0] = 10_000.0

        assert pending.effective_rank(message) == 1

    def test_waiting_before_dispatchable_does_not_age(self):
        now = [1000.0]
        pending = PendingSet(aging_seconds=300, clock=lambda: now[0])
        for text, priority in [("low", "low"), ("normal", "normal"), ("high", "high")]:
            message = MessageFactory.message(text, priority=priority)
            message.enqueued_at = 1000.0
            pending.push(message)

        now[0] = 1700.0
        pending.mark_dispatchable()

        order = [pending.pop_next().payload for _ in range(3)]
        assert order == ["high", "normal", "low"]

    def test_aging_resumes_after_becoming_dispatchable(self):
        now = [1000.0]
        pending = PendingSet(aging_seconds=300, clock=lambda: now[0])
        low = MessageFactory.message(priority="low")
        low.enqueued_at = 1000.0
        pending.mark_dispatchable()

        now[0] = 1000.0 + 310
        assert pending.effective_rank(low) == 2

    def test_contains_covers_delayed(self):
        pending = PendingSet(aging_seconds=300)
        message = MessageFactory.message(message_id="m1")
        pending.hold_back(message, None)

        assert "m1" in pending
        assert len(pending) == 1
        assert pending.pop_next() is None

    def test_release_untimed(self):
        pending = PendingSet(aging_seconds=300)
        pending.hold_back(MessageFactory.message(message_id="m1"), None)

        assert pending.release_untimed() == 1
        assert pending.pop_next().id == "m1"


@pytest.mark.unit
class TestRetryStrategy:

    def test_fourth_failure_exhausts_budget_of_three(self):
        strategy = RetryStrategy(BackoffPolicy(1, 30), max_retries=3)
        message = MessageFactory.message()

        outcomes = []
        for _ in range(4):
            message.retry_count += 1
            outcomes.append(strategy.should_retry(message))

        assert outcomes == [True, True, True, False]

    def test_backoff_delay_uses_retry_count(self):
        strategy = RetryStrategy(BackoffPolicy(1, 30), max_retries=3)
        assert strategy.calculate_backoff_delay(1) == 2
        assert strategy.calculate_backoff_delay(3) == 8


@pytest.mark.unit
class TestEnqueue:
    """enqueue() never blocks and de-duplicates by id."""

    @pytest.mark.asyncio
    async def test_duplicate_id_ignored(self, queue_settings):
        queue = DeliveryQueue(RecordingSender(), settings=queue_settings)

        assert queue.enqueue(MessageFactory.message(message_id="alert")) is True
        assert queue.enqueue(MessageFactory.message(message_id="alert")) is False
        assert queue.status()["size"] == 1

    @pytest.mark.asyncio
    async def test_enqueue_bulk_counts_accepted(self, queue_settings):
        queue = DeliveryQueue(RecordingSender(), settings=queue_settings)
        messages = MessageFactory.batch(3) + [MessageFactory.message(message_id="msg-0")]

        assert queue.enqueue_bulk(messages) == 3

    @pytest.mark.asyncio
    async def test_enqueue_apology(self, queue_settings):
        queue = DeliveryQueue(RecordingSender(), settings=queue_settings)

        queue.enqueue_apology("user-9")

        [message] = queue.pending_messages()
        assert message.destination == "user-9"
        assert message.payload == APOLOGY_TEXT
        assert message.priority == MessagePriority.NORMAL


@pytest.mark.unit
class TestDispatch:
    """Dispatch loop behavior."""

    @pytest.mark.asyncio
    async def test_nothing_sent_while_offline(self, queue_settings):
        sender = RecordingSender()
        queue = DeliveryQueue(sender, settings=queue_settings)
        await queue.start()
        queue.enqueue(MessageFactory.message())

        await asyncio.sleep(0.05)

        assert sender.calls == []
        assert queue.status()["size"] == 1
        await queue.stop()

    @pytest.mark.asyncio
    async def test_drain_dispatches_in_priority_order(self, queue_settings):
        sender = RecordingSender()
        queue = DeliveryQueue(sender, settings=queue_settings)
        await queue.start()
        queue.enqueue(MessageFactory.message("low", priority="low"))
        queue.enqueue(MessageFactory.message("normal"))
        queue.enqueue(MessageFactory.message("high", priority="high"))

        queue.drain()
        await wait_until(lambda: len(sender.delivered) == 3)

        assert sender.texts == ["high", "normal", "low"]
        assert queue.status()["delivered_count"] == 3
        await queue.stop()

    @pytest.mark.asyncio
    async def test_long_outage_keeps_priority_order(self, queue_settings):
        now = [1000.0]
        sender = RecordingSender()
        queue = DeliveryQueue(sender, settings=queue_settings, clock=lambda: now[0])
        await queue.start()
        for text, priority in [("low", "low"), ("normal", "normal"), ("high", "high")]:
            message = MessageFactory.message(text, priority=priority)
            message.enqueued_at = now[0]
            queue.enqueue(message)

        # offline for more than two aging periods
        now[0] += 2 * queue_settings.QUEUE_PRIORITY_AGING_SECONDS + 100
        queue.drain()
        await wait_until(lambda: len(sender.delivered) == 3)

        assert sender.texts == ["high", "normal", "low"]
        await queue.stop()

    @pytest.mark.asyncio
    async def test_pause_does_not_age_messages(self, queue_settings):
        now = [1000.0]
        sender = RecordingSender()
        queue = DeliveryQueue(sender, settings=queue_settings, clock=lambda: now[0])
        await queue.start()
        queue.drain()
        queue.pause()
        for text, priority in [("low", "low"), ("high", "high")]:
            message = MessageFactory.message(text, priority=priority)
            message.enqueued_at = now[0]
            queue.enqueue(message)

        now[0] += 2 * queue_settings.QUEUE_PRIORITY_AGING_SECONDS + 100
        queue.resume()
        await wait_until(lambda: len(sender.delivered) == 2)

        assert sender.texts == ["high", "low"]
        await queue.stop()

    @pytest.mark.asyncio
    async def test_hold_stops_dispatch(self, queue_settings):
        sender = RecordingSender()
        queue = DeliveryQueue(sender, settings=queue_settings)
        await queue.start()
        queue.drain()
        queue.hold()
        queue.enqueue(MessageFactory.message())

        await asyncio.sleep(0.05)

        assert sender.calls == []
        assert queue.status()["is_online"] is False
        await queue.stop()

    @pytest.mark.asyncio
    async def test_in_flight_message_included_in_pending(self, queue_settings):
        sender = RecordingSender(delay=0.3)
        queue = DeliveryQueue(sender, settings=queue_settings)
        await queue.start()
        queue.enqueue(MessageFactory.message("slow", message_id="slow"))
        queue.drain()

        await wait_until(lambda: queue.status()["in_flight"] == 1)

        assert [m.id for m in queue.pending_messages()] == ["slow"]
        assert queue.enqueue(MessageFactory.message(message_id="slow")) is False
        await queue.stop()


@pytest.mark.unit
class TestRetryAndDeadLetter:

    @pytest.mark.asyncio
    async def test_transient_failure_retried(self, queue_settings):
        sender = RecordingSender(fail_times=2)
        queue = DeliveryQueue(sender, settings=queue_settings)
        await queue.start()
        queue.enqueue(MessageFactory.message("flaky"))
        queue.drain()

        await wait_until(lambda: len(sender.delivered) == 1)

        assert len(sender.calls) == 3
        assert queue.status()["dead_letter_count"] == 0
        await queue.stop()

    @pytest.mark.asyncio
    async def test_fourth_failure_dead_letters(self, queue_settings):
        sender = RecordingSender(always_fail=True)
        queue = DeliveryQueue(sender, settings=queue_settings)
        await queue.start()
        queue.enqueue(MessageFactory.message("doomed", message_id="doomed"))
        queue.drain()

        await wait_until(lambda: queue.status()["dead_letter_count"] == 1)

        assert len(sender.calls) == 4
        [dead] = queue.dead_letters()
        assert dead.id == "doomed"
        assert dead.retry_count == 4
        assert queue.status()["size"] == 0
        await queue.stop()

    @pytest.mark.asyncio
    async def test_retry_dead_letters_resets_count(self, queue_settings):
        sender = RecordingSender(always_fail=True)
        queue = DeliveryQueue(sender, settings=queue_settings)
        await queue.start()
        queue.enqueue(MessageFactory.message("doomed", message_id="doomed"))
        queue.drain()
        await wait_until(lambda: queue.status()["dead_letter_count"] == 1)

        sender.always_fail = False
        revived = await queue.retry_dead_letters()

        await wait_until(lambda: len(sender.delivered) == 1)
        assert revived == 1
        assert queue.status()["dead_letter_count"] == 0
        assert sender.texts == ["doomed"]
        await queue.stop()

    @pytest.mark.asyncio
    async def test_resubmitted_id_supersedes_dead_letter(self, queue_settings):
        sender = RecordingSender(always_fail=True)
        queue = DeliveryQueue(sender, settings=queue_settings)
        await queue.start()
        queue.enqueue(MessageFactory.message(message_id="m1"))
        queue.drain()
        await wait_until(lambda: queue.status()["dead_letter_count"] == 1)

        queue.pause()
        assert queue.enqueue(MessageFactory.message(message_id="m1")) is True

        assert queue.status()["dead_letter_count"] == 0
        assert queue.status()["size"] == 1
        await queue.stop()


@pytest.mark.unit
class TestOperatorControls:

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, queue_settings):
        sender = RecordingSender()
        queue = DeliveryQueue(sender, settings=queue_settings)
        await queue.start()
        queue.drain()
        queue.pause()
        queue.enqueue(MessageFactory.message("held"))

        await asyncio.sleep(0.05)
        assert sender.calls == []
        assert queue.status()["is_paused"] is True

        queue.resume()
        await wait_until(lambda: sender.texts == ["held"])
        await queue.stop()

    @pytest.mark.asyncio
    async def test_clear_drops_pending_only(self, queue_settings):
        sender = RecordingSender(always_fail=True)
        queue = DeliveryQueue(sender, settings=queue_settings)
        await queue.start()
        queue.enqueue(MessageFactory.message(message_id="dead"))
        queue.drain()
        await wait_until(lambda: queue.status()["dead_letter_count"] == 1)
        queue.hold()

        queue.enqueue_bulk(MessageFactory.batch(3))
        cleared = queue.clear()

        assert cleared == 3
        assert queue.status()["size"] == 0
        assert queue.status()["dead_letter_count"] == 1
        await queue.stop()


@pytest.mark.unit
class TestStoppedQueue:
    """Nothing is accepted once the final snapshot has been taken."""

    @pytest.mark.asyncio
    async def test_enqueue_after_stop_rejected(self, queue_settings):
        queue = DeliveryQueue(RecordingSender(), settings=queue_settings)
        await queue.start()
        await queue.stop()

        assert queue.enqueue(MessageFactory.message("late")) is False
        assert queue.status()["size"] == 0

        restarted = DeliveryQueue(RecordingSender(), settings=queue_settings)
        await restarted.start()
        assert restarted.status()["size"] == 0
        await restarted.stop()

    @pytest.mark.asyncio
    async def test_message_enqueued_before_stop_survives_restart(self, queue_settings):
        queue = DeliveryQueue(RecordingSender(), settings=queue_settings)
        await queue.start()
        assert queue.enqueue(MessageFactory.message("kept", message_id="kept")) is True
        await queue.stop()

        restarted = DeliveryQueue(RecordingSender(), settings=queue_settings)
        await restarted.start()
        assert [m.id for m in restarted.pending_messages()] == ["kept"]
        await restarted.stop()

    @pytest.mark.asyncio
    async def test_start_after_stop_accepts_again(self, queue_settings):
        queue = DeliveryQueue(RecordingSender(), settings=queue_settings)
        await queue.start()
        await queue.stop()
        await queue.start()

        assert queue.enqueue(MessageFactory.message("again")) is True
        await queue.stop()
