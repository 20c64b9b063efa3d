"""
Outbound Delivery Queue - Durable, Prioritized, Retrying

Holds outbound messages while the connection is unavailable and dispatches
them one at a time once it is.

Architecture:
    DeliveryQueue (Public API)
        ├── PendingSet (priority ordering with aging, id de-duplication)
        ├── RetryStrategy (per-message backoff, dead-letter handoff)
        └── SnapshotStore (orjson snapshot + dead-letter file)

Flow:
    1. enqueue() adds to the pending set and wakes the dispatcher (never blocks)
    2. The dispatcher waits until the queue is online and not paused
    3. The highest effective priority message is sent through the sender
    4. Failure: retry_count += 1, back off, or dead-letter once the budget is spent
    5. The pending set is snapshotted periodically and on stop

Delivery guarantee: at-least-once. The in-flight message is included in every
snapshot, so a crash between send and acknowledgement re-sends it.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from courier.core.config.constants import APOLOGY_TEXT, Stage
from courier.core.config.settings import QueueSettings, get_settings
from courier.core.exceptions import PersistenceError
from courier.core.logging import get_logger
from courier.core.resilience import BackoffPolicy
from courier.delivery.models import MessagePriority, QueuedMessage
from courier.delivery.persistence import SnapshotStore

logger = get_logger(__name__)

MessageSender = Callable[[str, str, dict[str, Any]], Awaitable[None]]


# =============================================================================
# LAYER 1: PENDING SET
# Priority ordering, aging and id de-duplication
# =============================================================================

@dataclass
class _PendingEntry:
    seq: int
    message: QueuedMessage


class PendingSet:
    """
    Messages ready for dispatch plus messages waiting out a retry backoff.

    Ordering:
        (effective_rank, seq) ascending, where
        effective_rank = max(1, rank - floor(waited / aging_seconds))

    A low priority message is promoted one tier per aging period, so it
    cannot starve behind a steady stream of higher priority traffic.
    Waiting only counts from the moment the set last became dispatchable,
    so a batch held through an outage keeps its priority order on reconnect.
    FIFO within a tier is preserved by the monotonically increasing seq.
    """

    def __init__(self, aging_seconds: float, clock: Callable[[], float] = time.time):
        self._aging_seconds = aging_seconds
        self._clock = clock
        self._ready: list[_PendingEntry] = []
        self._delayed: dict[str, tuple[QueuedMessage, asyncio.TimerHandle | None]] = {}
        self._seq = 0
        self._dispatchable_since: float | None = None

    def __len__(self) -> int:
        return len(self._ready) + len(self._delayed)

    def __contains__(self, message_id: str) -> bool:
        return message_id in self._delayed or any(e.message.id == message_id for e in self._ready)

    def mark_dispatchable(self) -> None:
        """Restart the aging window: dispatch has just become possible."""
        self._dispatchable_since = self._clock()

    def effective_rank(self, message: QueuedMessage) -> int:
        since = message.enqueued_at
        if self._dispatchable_since is not None:
            since = max(since, self._dispatchable_since)
        waited = max(0.0, self._clock() - since)
        promotion = int(waited // self._aging_seconds) if self._aging_seconds > 0 else 0
        return max(1, message.priority.rank - promotion)

    def push(self, message: QueuedMessage) -> None:
        self._seq += 1
        self._ready.append(_PendingEntry(seq=self._seq, message=message))

    def pop_next(self) -> QueuedMessage | None:
        if not self._ready:
            return None
        best = min(self._ready, key=lambda e: (self.effective_rank(e.message), e.seq))
        self._ready.remove(best)
        return best.message

    def hold_back(self, message: QueuedMessage, handle: asyncio.TimerHandle | None) -> None:
        self._delayed[message.id] = (message, handle)

    def release(self, message_id: str) -> QueuedMessage | None:
        """Move a delayed message into the ready list."""
        item = self._delayed.pop(message_id, None)
        if item is None:
            return None
        self.push(item[0])
        return item[0]

    def cancel_timers(self) -> None:
        """Cancel backoff timers; delayed messages stay pending."""
        for message_id, (message, handle) in self._delayed.items():
            if handle is not None:
                handle.cancel()
            self._delayed[message_id] = (message, None)

    def release_untimed(self) -> int:
        """Release delayed messages whose timer was cancelled."""
        untimed = [mid for mid, (_, handle) in self._delayed.items() if handle is None]
        for message_id in untimed:
            self.release(message_id)
        return len(untimed)

    def messages(self) -> list[QueuedMessage]:
        ready = [e.message for e in sorted(self._ready, key=lambda e: e.seq)]
        return ready + [m for m, _ in self._delayed.values()]

    def clear(self) -> int:
        self.cancel_timers()
        count = len(self)
        self._ready.clear()
        self._delayed.clear()
        return count


# =============================================================================
# LAYER 2: RETRY STRATEGY
# Per-message exponential backoff and dead-letter handoff
# =============================================================================

class RetryStrategy:
    """
    Decides what happens to a message after a failed dispatch.

    Algorithm:
        retry_count += 1
        retry_count <= max_retries → re-enqueue after min(base * 2^retry_count, cap)
        otherwise                  → dead-letter

    With max_retries=3 the fourth failure dead-letters the message.
    """

    def __init__(self, policy: BackoffPolicy, max_retries: int):
        self._policy = policy
        self._max_retries = max_retries

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def should_retry(self, message: QueuedMessage) -> bool:
        return message.retry_count <= self._max_retries

    def calculate_backoff_delay(self, retry_count: int) -> float:
        return self._policy.calculate_delay(retry_count)


# =============================================================================
# LAYER 3: PUBLIC API
# =============================================================================

class DeliveryQueue:
    """
    Priority-ordered, rate-limited, retrying, persisted outbound queue.

    Lifecycle hooks used by the connection manager:
        start()      restore snapshot, start dispatcher and snapshot loops
        drain()      connection available, dispatch may proceed
        hold()       connection lost, dispatch stops (enqueue keeps working)
        stop(grace)  let the in-flight send finish within grace, persist, stop

    Failures inside the queue (dispatch or persistence) become state changes
    and log lines; they are never raised to callers.
    """

    def __init__(
        self,
        sender: MessageSender,
        settings: QueueSettings | None = None,
        snapshot_store: SnapshotStore | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._settings = settings or get_settings().queue
        self._sender = sender
        self._clock = clock
        self._store = snapshot_store
        if self._store is None:
            self._store = SnapshotStore(
                self._settings.QUEUE_SNAPSHOT_PATH,
                self._settings.QUEUE_DEAD_LETTER_PATH,
                timeout_seconds=self._settings.PERSISTENCE_TIMEOUT_SECONDS,
                clock=clock,
            )

        self._pending = PendingSet(self._settings.QUEUE_PRIORITY_AGING_SECONDS, clock=clock)
        self._retry = RetryStrategy(
            BackoffPolicy(
                base_delay_seconds=self._settings.QUEUE_RETRY_BASE_DELAY_SECONDS,
                max_delay_seconds=self._settings.QUEUE_RETRY_MAX_DELAY_SECONDS,
            ),
            max_retries=self._settings.MESSAGE_RETRY_COUNT,
        )
        self._dead_letters: dict[str, QueuedMessage] = {}
        self._in_flight: QueuedMessage | None = None

        self._online = False
        self._paused = False
        self._running = False
        self._closed = False
        self._wakeup = asyncio.Event()
        self._stopped = asyncio.Event()
        self._dispatcher_task: asyncio.Task | None = None
        self._snapshot_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()
        self._delivered_count = 0

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    def enqueue(self, message: QueuedMessage) -> bool:
        """
        Add a message to the pending set.

        Returns False when a message with the same id is already pending or
        in flight (used to debounce repeated alerts), or when the queue has
        been stopped and its final snapshot taken.
        """
        if self._closed:
            logger.warning(
                "Message rejected, queue stopped",
                message_id=message.id,
                destination=message.destination,
                stage=Stage.QUEUE,
            )
            return False

        if message.id in self._pending or (
            self._in_flight is not None and self._in_flight.id == message.id
        ):
            logger.debug("Duplicate message ignored", message_id=message.id, stage=Stage.QUEUE)
            return False

        # A re-submitted id supersedes its dead-lettered predecessor
        if self._dead_letters.pop(message.id, None) is not None:
            self._spawn(self._persist_dead_letters())

        self._pending.push(message)
        self._wakeup.set()
        logger.info(
            "Message enqueued",
            message_id=message.id,
            priority=message.priority.value,
            queue_size=len(self._pending),
            stage=Stage.QUEUE,
        )
        return True

    def enqueue_bulk(self, messages: list[QueuedMessage]) -> int:
        """Enqueue several messages; returns how many were accepted."""
        return sum(1 for message in messages if self.enqueue(message))

    def enqueue_apology(self, destination: str) -> bool:
        """Queue the generic apology reply for a failed inbound action."""
        return self.enqueue(QueuedMessage.create(destination, APOLOGY_TEXT))

    # ------------------------------------------------------------------
    # Operator controls
    # ------------------------------------------------------------------

    def pause(self) -> None:
        self._paused = True
        logger.info("Queue paused", stage=Stage.QUEUE)

    def resume(self) -> None:
        if self._paused and self._online:
            self._pending.mark_dispatchable()
        self._paused = False
        self._wakeup.set()
        logger.info("Queue resumed", stage=Stage.QUEUE)

    def clear(self) -> int:
        """Drop every pending message. Dead letters and the in-flight send are kept."""
        cleared = self._pending.clear()
        logger.info("Queue cleared", cleared=cleared, stage=Stage.QUEUE)
        return cleared

    async def retry_dead_letters(self) -> int:
        """Reset retry_count to 0 and re-enqueue every dead letter."""
        revived = list(self._dead_letters.values())
        self._dead_letters.clear()
        for message in revived:
            message.retry_count = 0
            if message.id not in self._pending:
                self._pending.push(message)
        if revived:
            self._wakeup.set()
        await self._persist_dead_letters()
        logger.info("Dead letters re-enqueued", count=len(revived), stage=Stage.RETRY)
        return len(revived)

    def status(self) -> dict[str, Any]:
        return {
            "size": len(self._pending),
            "in_flight": 1 if self._in_flight is not None else 0,
            "is_paused": self._paused,
            "dead_letter_count": len(self._dead_letters),
            "is_online": self._online,
            "delivered_count": self._delivered_count,
        }

    def pending_messages(self) -> list[QueuedMessage]:
        messages = self._pending.messages()
        if self._in_flight is not None:
            messages.insert(0, self._in_flight)
        return messages

    def dead_letters(self) -> list[QueuedMessage]:
        return list(self._dead_letters.values())

    # ------------------------------------------------------------------
    # Lifecycle hooks
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Restore the last fresh snapshot and start background loops."""
        if self._running:
            return
        self._closed = False
        await self._restore_snapshot()
        self._running = True
        self._stopped.clear()
        self._dispatcher_task = asyncio.create_task(self._dispatch_loop(), name="delivery-dispatcher")
        self._snapshot_task = asyncio.create_task(self._snapshot_loop(), name="delivery-snapshot")
        logger.info("Delivery queue started", stage=Stage.QUEUE, **self.status())

    def drain(self) -> None:
        """Connection available: allow dispatch."""
        if not self._online and not self._paused:
            self._pending.mark_dispatchable()
        self._online = True
        released = self._pending.release_untimed()
        self._wakeup.set()
        logger.info("Queue draining", released_from_backoff=released, stage=Stage.DISPATCH)

    def hold(self) -> None:
        """Connection lost: stop dispatching, keep accepting."""
        self._online = False
        logger.info("Queue on hold", queue_size=len(self._pending), stage=Stage.DISPATCH)

    async def stop(self, grace_seconds: float = 10.0) -> None:
        """
        Stop dispatching and persist state.

        The in-flight send may finish within ``grace_seconds``; after that it
        is cancelled and returned to the pending set.
        """
        if not self._running:
            return
        self._running = False
        self._stopped.set()
        self._wakeup.set()

        if self._snapshot_task is not None:
            self._snapshot_task.cancel()
            await asyncio.gather(self._snapshot_task, return_exceptions=True)

        if self._dispatcher_task is not None:
            try:
                await asyncio.wait_for(asyncio.shield(self._dispatcher_task), timeout=grace_seconds)
            except asyncio.TimeoutError:
                logger.warning("Dispatcher did not finish within grace", grace_seconds=grace_seconds)
                self._dispatcher_task.cancel()
                await asyncio.gather(self._dispatcher_task, return_exceptions=True)

        self._pending.cancel_timers()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        # Nothing accepted after this point would reach the snapshot
        self._closed = True
        await self.snapshot()
        logger.info("Delivery queue stopped", stage=Stage.QUEUE, **self.status())

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _next_dispatchable(self) -> QueuedMessage | None:
        if not self._online or self._paused:
            return None
        return self._pending.pop_next()

    async def _dispatch_loop(self) -> None:
        interval = self._settings.QUEUE_DISPATCH_INTERVAL_SECONDS
        while self._running:
            message = self._next_dispatchable()
            if message is None:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue

            await self._dispatch(message)

            if interval > 0 and self._running:
                try:
                    await asyncio.wait_for(self._stopped.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    pass

    async def _dispatch(self, message: QueuedMessage) -> None:
        self._in_flight = message
        try:
            await self._sender(message.destination, message.payload, message.options)
        except asyncio.CancelledError:
            self._in_flight = None
            self._pending.push(message)
            raise
        except Exception as e:
            self._in_flight = None
            await self._handle_failure(message, e)
        else:
            self._in_flight = None
            self._delivered_count += 1
            logger.info(
                "Message delivered",
                message_id=message.id,
                retry_count=message.retry_count,
                stage=Stage.DISPATCH,
            )

    async def _handle_failure(self, message: QueuedMessage, error: Exception) -> None:
        message.retry_count += 1

        if self._retry.should_retry(message):
            delay = self._retry.calculate_backoff_delay(message.retry_count)
            handle = asyncio.get_running_loop().call_later(delay, self._release_delayed, message.id)
            self._pending.hold_back(message, handle)
            logger.warning(
                "Dispatch failed, retry scheduled",
                message_id=message.id,
                retry_count=message.retry_count,
                max_retries=self._retry.max_retries,
                delay_seconds=delay,
                error=str(error),
                error_type=type(error).__name__,
                stage=Stage.RETRY,
            )
            return

        self._dead_letters[message.id] = message
        logger.error(
            "Message moved to dead-letter set",
            message_id=message.id,
            retry_count=message.retry_count,
            error=str(error),
            error_type=type(error).__name__,
            stage=Stage.RETRY,
        )
        await self._persist_dead_letters()

    def _release_delayed(self, message_id: str) -> None:
        if self._pending.release(message_id) is not None:
            self._wakeup.set()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def snapshot(self) -> bool:
        """Write the pending and dead-letter sets; returns False on failure."""
        try:
            await self._store.write_snapshot(self.pending_messages(), self.dead_letters())
        except PersistenceError as e:
            logger.error("Queue snapshot failed", error=e.message, stage=Stage.PERSISTENCE, **e.details)
            return False
        return True

    async def _snapshot_loop(self) -> None:
        interval = self._settings.QUEUE_SNAPSHOT_INTERVAL_SECONDS
        while self._running:
            await asyncio.sleep(interval)
            await self.snapshot()

    async def _restore_snapshot(self) -> None:
        try:
            snapshot = await self._store.read_snapshot(self._settings.QUEUE_SNAPSHOT_MAX_AGE_SECONDS)
        except PersistenceError as e:
            logger.error("Queue snapshot restore failed", error=e.message, stage=Stage.PERSISTENCE)
            return
        if snapshot is None:
            return

        restored = sum(1 for message in snapshot.pending if self.enqueue(message))
        for message in snapshot.dead_letters:
            if message.id not in self._pending:
                self._dead_letters[message.id] = message
        logger.info(
            "Queue snapshot restored",
            pending=restored,
            dead_letters=len(self._dead_letters),
            stage=Stage.PERSISTENCE,
        )

    async def _persist_dead_letters(self) -> None:
        try:
            await self._store.write_dead_letters(self.dead_letters())
        except PersistenceError as e:
            logger.error("Dead-letter write failed", error=e.message, stage=Stage.PERSISTENCE)

    def _spawn(self, coro) -> None:
        try:
            task = asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            coro.close()
            return
        self._background.add(task)
        task.add_done_callback(self._background.discard)


__all__ = ["DeliveryQueue", "MessagePriority", "PendingSet", "QueuedMessage", "RetryStrategy"]
