"""
Connection Lifecycle Manager - Composition Root

Owns the single logical connection to the messaging platform and wires the
session store, delivery queue, health monitor and interaction guard around it.

Architecture:
    LifecycleManager (Public API)
        ├── Transport (private handle, one instance per connection attempt)
        ├── SessionStore (credentials restore / save / backup / clear)
        ├── DeliveryQueue (drained on connect, held on disconnect)
        ├── HealthMonitor (connection snapshot pushed on every transition)
        └── InboundRouter (received messages, through the interaction guard)

Event model:
    Transport callbacks emit ConnectionEvents tagged with the id of the
    attempt that produced them. One consumer task takes them off an
    asyncio.Queue and applies them under the transition lock, so state changes
    are strictly serialized. shutdown() and restart() take the same lock.
    Events from an earlier attempt are ignored.

Reconnect:
    recoverable drop → delay = min(base * 2^attempt, cap), attempt += 1
    attempt reaches MAX_RECONNECT_ATTEMPTS → give up, wait_closed() raises
    ReconnectionExhaustedError; only restart() recovers
    terminal drop (logout / revoked) → session cleared, no reconnect
"""

import asyncio
import uuid
from dataclasses import asdict
from datetime import datetime
from typing import Any

from courier.connection.events import ConnectionEvent, DisconnectReason, EventKind
from courier.connection.states import ConnectionState, is_transition_allowed
from courier.connection.transport import (
    EventEmitter,
    Transport,
    TransportFactory,
    load_transport_factory,
)
from courier.core.config.constants import (
    AUTHORIZATION_NOTICE,
    AUTHORIZATION_NOTICE_ID,
    GIVE_UP_NOTICE,
    ONLINE_NOTICE,
    BotStatus,
    Stage,
)
from courier.core.config.settings import Settings, get_settings
from courier.core.exceptions import (
    BackendError,
    DispatchError,
    DispatchTimeoutError,
    InvalidTransitionError,
    NotConnectedError,
    ReconnectionExhaustedError,
)
from courier.core.logging import clear_connection_id, get_logger, set_connection_id
from courier.core.resilience import BackoffPolicy
from courier.delivery import DeliveryQueue, MessagePriority, QueuedMessage
from courier.infrastructure import BackendClient
from courier.interaction import InboundHandler, InboundRouter, InteractionGuard
from courier.monitoring import ConnectionSnapshot, HealthMonitor, HealthReport
from courier.session import SessionRecord, SessionStore

logger = get_logger(__name__)

_ACTIVE_STATES = (
    ConnectionState.CONNECTING,
    ConnectionState.AWAITING_AUTHORIZATION,
    ConnectionState.CONNECTED,
)


class LifecycleManager:
    """
    Drives one long-lived connection through its lifecycle.

    Usage:
        manager = LifecycleManager.from_settings(handler=my_handler)
        await manager.start()
        manager.request_send(destination, "hello", priority="high")
        ...
        await manager.shutdown()
    """

    def __init__(
        self,
        transport_factory: TransportFactory,
        settings: Settings | None = None,
        session_store: SessionStore | None = None,
        queue: DeliveryQueue | None = None,
        backend: BackendClient | None = None,
        monitor: HealthMonitor | None = None,
        guard: InteractionGuard | None = None,
        handler: InboundHandler | None = None,
    ):
        self._settings = settings or get_settings()
        self._lifecycle = self._settings.lifecycle
        self._transport_factory = transport_factory

        self.session_store = session_store or SessionStore(self._settings.session)
        self.queue = queue or DeliveryQueue(self.send, settings=self._settings.queue)
        self.backend = backend
        self.monitor = monitor or HealthMonitor(
            self.queue,
            backend=backend,
            settings=self._settings.health,
            operator_destination=self._lifecycle.OPERATOR_DESTINATION,
        )
        self.guard = guard or InteractionGuard(self._settings.interaction)
        self.router = InboundRouter(
            self.guard, self.queue, handler=handler, settings=self._settings.interaction
        )

        self._backoff = BackoffPolicy(
            base_delay_seconds=self._lifecycle.RECONNECT_BASE_DELAY_SECONDS,
            max_delay_seconds=self._lifecycle.RECONNECT_MAX_DELAY_SECONDS,
            max_attempts=self._lifecycle.MAX_RECONNECT_ATTEMPTS,
        )

        self._state = ConnectionState.DISCONNECTED
        self._transport: Transport | None = None
        self._connection_id: str | None = None
        self._reconnect_attempts = 0
        self._first_connect_done = False
        self._gave_up = False
        self._last_connected_at: str | None = None
        self._last_disconnect_reason: DisconnectReason | None = None

        self._events: asyncio.Queue[ConnectionEvent] = asyncio.Queue()
        self._lock = asyncio.Lock()
        self._closed = asyncio.Event()
        self._fatal: ReconnectionExhaustedError | None = None
        self._started = False

        self._consumer_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._handshake_task: asyncio.Task | None = None
        self._authorization_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        handler: InboundHandler | None = None,
        backend: BackendClient | None = None,
    ) -> "LifecycleManager":
        """Build a manager whose transport comes from TRANSPORT_FACTORY."""
        settings = settings or get_settings()
        factory = load_transport_factory(settings.lifecycle.TRANSPORT_FACTORY)
        return cls(factory, settings=settings, backend=backend, handler=handler)

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    def get_connection_status(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    def connection_snapshot(self) -> ConnectionSnapshot:
        return ConnectionSnapshot(
            state=self._state.value,
            connected=self._state == ConnectionState.CONNECTED,
            reconnect_attempts=self._reconnect_attempts,
            last_connected_at=self._last_connected_at,
            last_disconnect_reason=(
                self._last_disconnect_reason.value if self._last_disconnect_reason else None
            ),
            gave_up=self._gave_up,
        )

    async def get_health_report(self) -> HealthReport:
        return await self.monitor.generate_report()

    async def run_diagnostics(self) -> dict[str, Any]:
        return await self.monitor.run_diagnostics()

    async def status(self) -> dict[str, Any]:
        return {
            "connection": {
                **asdict(self.connection_snapshot()),
                "connection_id": self._connection_id,
            },
            "queue": self.queue.status(),
            "session": await self.session_store.info(),
        }

    # ------------------------------------------------------------------
    # Business-facing API
    # ------------------------------------------------------------------

    def request_send(
        self,
        destination: str,
        text: str,
        priority: MessagePriority | str = MessagePriority.NORMAL,
        options: dict[str, Any] | None = None,
        message_id: str | None = None,
    ) -> QueuedMessage | None:
        """Queue a message; returns it, or None if its id was already queued."""
        message = QueuedMessage.create(
            destination, text, priority=priority, options=options, message_id=message_id
        )
        return message if self.queue.enqueue(message) else None

    async def send(self, destination: str, text: str, options: dict[str, Any] | None = None) -> None:
        """
        Send through the live transport. Used by the delivery queue.

        Raises:
            NotConnectedError: not in CONNECTED
            DispatchTimeoutError: send exceeded SEND_TIMEOUT_SECONDS
            DispatchError: transport rejected the message
        """
        transport = self._transport
        if self._state != ConnectionState.CONNECTED or transport is None:
            raise NotConnectedError("Not connected", details={"state": self._state.value})

        try:
            await asyncio.wait_for(
                transport.send(destination, text, options or {}),
                timeout=self._lifecycle.SEND_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError as e:
            raise DispatchTimeoutError(
                "Send timed out",
                details={"timeout_seconds": self._lifecycle.SEND_TIMEOUT_SECONDS},
            ) from e
        except Exception as e:
            raise DispatchError.from_exception(e, message="Transport rejected message") from e

    # ------------------------------------------------------------------
    # Operational API
    # ------------------------------------------------------------------

    def pause_queue(self) -> None:
        self.queue.pause()

    def resume_queue(self) -> None:
        self.queue.resume()

    def clear_queue(self) -> int:
        return self.queue.clear()

    async def retry_dead_letters(self) -> int:
        return await self.queue.retry_dead_letters()

    async def start(self) -> None:
        """
        Restore queue state, start background services and begin connecting.

        STAGE-0: Startup
        """
        if self._started:
            return
        self._started = True
        self._closed.clear()

        await self.queue.start()
        self.guard.start()
        self.monitor.start_monitoring()
        self._publish_snapshot()
        self._consumer_task = asyncio.create_task(self._consume_events(), name="connection-events")

        async with self._lock:
            await self._begin_connect()

    async def restart(self) -> None:
        """Reset the attempt counter and reconnect; recovers from a give-up."""
        async with self._lock:
            if self._state == ConnectionState.CLOSING_BY_REQUEST:
                raise InvalidTransitionError("Cannot restart after shutdown")

            logger.info("Restart requested", state=self._state.value, stage=Stage.CONNECTION)
            self._cancel_timer("_reconnect_task")
            self._reconnect_attempts = 0
            self._gave_up = False
            self._fatal = None
            self._closed.clear()

            if self._state != ConnectionState.DISCONNECTED:
                self._cancel_handshake_timers()
                await self._close_transport()
                self._transition(ConnectionState.DISCONNECTED)
                self.queue.hold()
            await self._begin_connect()

    async def shutdown(self) -> None:
        """
        Graceful stop.

        STAGE-C.X: cancel reconnect, stop queue within grace, close the
        connection, back up the session, mark the backend offline.
        """
        async with self._lock:
            if self._state == ConnectionState.CLOSING_BY_REQUEST:
                return
            logger.info("Shutdown requested", state=self._state.value, stage=Stage.SHUTDOWN)

            self._cancel_timer("_reconnect_task")
            self._cancel_handshake_timers()
            self._transition(ConnectionState.CLOSING_BY_REQUEST)

            # In-flight inbound handlers may still enqueue replies; settle them before the final snapshot
            await self._cancel_tasks()
            await self.queue.stop(self._lifecycle.SHUTDOWN_GRACE_SECONDS)
            await self._close_transport()
            await self.session_store.backup()
            await self._update_backend_status(BotStatus.OFFLINE)

            await self.monitor.stop_monitoring()
            await self.guard.stop()
            self._closed.set()

        if self._consumer_task is not None:
            self._consumer_task.cancel()
            await asyncio.gather(self._consumer_task, return_exceptions=True)
        await self._cancel_tasks()
        clear_connection_id()
        logger.info("Shutdown complete", stage=Stage.SHUTDOWN)

    async def wait_closed(self) -> None:
        """
        Block until shutdown or give-up.

        Raises:
            ReconnectionExhaustedError: reconnection attempts exhausted
        """
        await self._closed.wait()
        if self._fatal is not None:
            raise self._fatal

    # ------------------------------------------------------------------
    # Event intake
    # ------------------------------------------------------------------

    def _emitter(self, connection_id: str) -> EventEmitter:
        def emit(event: ConnectionEvent) -> None:
            event.connection_id = connection_id
            self._events.put_nowait(event)
        return emit

    async def _consume_events(self) -> None:
        while True:
            event = await self._events.get()
            try:
                async with self._lock:
                    await self._handle_event(event)
            except Exception as e:
                logger.error(
                    "Connection event handling failed",
                    kind=event.kind.value,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                    stage=Stage.CONNECTION,
                )

    async def _handle_event(self, event: ConnectionEvent) -> None:
        if self._state == ConnectionState.CLOSING_BY_REQUEST:
            return
        if event.connection_id != self._connection_id:
            logger.debug(
                "Ignoring event from stale connection attempt",
                kind=event.kind.value,
                event_connection_id=event.connection_id,
            )
            return

        if event.kind == EventKind.OPENED:
            if self._state in (ConnectionState.CONNECTING, ConnectionState.AWAITING_AUTHORIZATION):
                await self._on_connected()

        elif event.kind == EventKind.AUTHORIZATION_REQUIRED:
            if self._state in (ConnectionState.CONNECTING, ConnectionState.AWAITING_AUTHORIZATION):
                self._on_authorization_required(event.authorization_code or "")

        elif event.kind == EventKind.CLOSED:
            await self._on_closed(event.reason or DisconnectReason.UNKNOWN)

        elif event.kind == EventKind.CREDENTIALS_UPDATED:
            if event.credentials:
                await self.session_store.save(SessionRecord(credentials=event.credentials))

        elif event.kind == EventKind.MESSAGE_RECEIVED:
            if event.message is not None:
                self._spawn(self.router.route(event.message))

    # ------------------------------------------------------------------
    # Transitions (transition lock held)
    # ------------------------------------------------------------------

    def _transition(self, target: ConnectionState) -> None:
        if not is_transition_allowed(self._state, target):
            raise InvalidTransitionError(
                f"Illegal transition {self._state.value} -> {target.value}",
                correlation_id=self._connection_id,
            )
        logger.info(
            "Connection state changed",
            from_state=self._state.value,
            to_state=target.value,
            reconnect_attempts=self._reconnect_attempts,
            stage=Stage.CONNECTION,
        )
        self._state = target
        self._publish_snapshot()

    def _publish_snapshot(self) -> None:
        self.monitor.update_connection(self.connection_snapshot())

    async def _begin_connect(self) -> None:
        self._transition(ConnectionState.CONNECTING)
        connection_id = uuid.uuid4().hex[:12]
        self._connection_id = connection_id
        set_connection_id(connection_id)

        record = await self.session_store.load()
        credentials = record.credentials if record is not None else None

        self._transport = self._transport_factory()
        self._handshake_task = self._arm_timeout(
            connection_id,
            self._lifecycle.HANDSHAKE_TIMEOUT_SECONDS,
            DisconnectReason.HANDSHAKE_TIMEOUT,
        )
        logger.info(
            "Connecting",
            has_session=credentials is not None,
            attempt=self._reconnect_attempts,
            stage=Stage.CONNECTION,
        )

        try:
            await asyncio.wait_for(
                self._transport.connect(credentials, self._emitter(connection_id)),
                timeout=self._lifecycle.HANDSHAKE_TIMEOUT_SECONDS,
            )
        except Exception as e:
            logger.error(
                "Connection attempt failed",
                error=str(e),
                error_type=type(e).__name__,
                stage=Stage.CONNECTION,
            )
            await self._on_closed(DisconnectReason.CONNECTION_LOST)

    async def _on_connected(self) -> None:
        self._cancel_handshake_timers()
        self._transition(ConnectionState.CONNECTED)
        self._reconnect_attempts = 0
        self._last_connected_at = datetime.utcnow().isoformat() + "Z"
        self._publish_snapshot()

        self._spawn(self._update_backend_status(BotStatus.ONLINE))
        if not self._first_connect_done:
            self._first_connect_done = True
            self._notify_operator(ONLINE_NOTICE)
        self.queue.drain()
        await self.session_store.backup()
        logger.info("Connected", stage=Stage.CONNECTION)

    def _on_authorization_required(self, code: str) -> None:
        self._cancel_timer("_handshake_task")
        self._transition(ConnectionState.AWAITING_AUTHORIZATION)
        # Rendered on the console so a local operator can complete pairing
        logger.info("Authorization code issued", authorization_code=code, stage=Stage.CONNECTION)
        self._notify_operator(AUTHORIZATION_NOTICE, notice_id=AUTHORIZATION_NOTICE_ID)

        if self._authorization_task is None or self._authorization_task.done():
            self._authorization_task = self._arm_timeout(
                self._connection_id,
                self._lifecycle.AUTHORIZATION_TIMEOUT_SECONDS,
                DisconnectReason.AUTHORIZATION_TIMEOUT,
            )

    async def _on_closed(self, reason: DisconnectReason) -> None:
        if self._state not in _ACTIVE_STATES:
            return
        if reason == DisconnectReason.HANDSHAKE_TIMEOUT and self._state != ConnectionState.CONNECTING:
            return
        if (
            reason == DisconnectReason.AUTHORIZATION_TIMEOUT
            and self._state != ConnectionState.AWAITING_AUTHORIZATION
        ):
            return

        self._cancel_handshake_timers()
        self._last_disconnect_reason = reason
        await self._close_transport()
        self._transition(ConnectionState.DISCONNECTED)
        self.queue.hold()

        if reason.is_terminal:
            logger.warning(
                "Session terminated by the platform, re-authorization required",
                reason=reason.value,
                stage=Stage.CONNECTION,
            )
            await self.session_store.clear()
            self._spawn(self._update_backend_status(BotStatus.OFFLINE))
            return

        if self._backoff.is_exhausted(self._reconnect_attempts):
            await self._give_up()
            return

        delay = self._backoff.calculate_delay(self._reconnect_attempts)
        self._reconnect_attempts += 1
        self._publish_snapshot()
        logger.warning(
            "Connection lost, reconnect scheduled",
            reason=reason.value,
            delay_seconds=delay,
            attempt=self._reconnect_attempts,
            max_attempts=self._lifecycle.MAX_RECONNECT_ATTEMPTS,
            stage=Stage.RECONNECT,
        )
        self._reconnect_task = asyncio.create_task(
            self._reconnect_after(delay), name="connection-reconnect"
        )

    async def _give_up(self) -> None:
        self._gave_up = True
        self._publish_snapshot()
        error = ReconnectionExhaustedError(
            "Max reconnection attempts reached",
            correlation_id=self._connection_id,
            details={"attempts": self._reconnect_attempts},
        ).with_suggestion("Check connectivity, then restart the courier")
        logger.critical(
            "Max reconnection attempts reached. Manual intervention required.",
            attempts=self._reconnect_attempts,
            stage=Stage.RECONNECT,
        )

        self._notify_operator(GIVE_UP_NOTICE.format(attempts=self._reconnect_attempts))
        self._spawn(self._update_backend_status(BotStatus.OFFLINE))
        if self.backend is not None:
            self._spawn(self.backend.report_error(error))

        self._fatal = error
        self._closed.set()

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        async with self._lock:
            if self._state != ConnectionState.DISCONNECTED or self._gave_up:
                return
            await self._begin_connect()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _arm_timeout(
        self, connection_id: str | None, timeout: float, reason: DisconnectReason
    ) -> asyncio.Task:
        async def expire() -> None:
            await asyncio.sleep(timeout)
            logger.warning("Connection attempt timed out", reason=reason.value, timeout_seconds=timeout)
            self._emitter(connection_id)(ConnectionEvent.closed(reason))

        return asyncio.create_task(expire(), name=f"connection-{reason.value}")

    def _cancel_timer(self, attribute: str) -> None:
        task = getattr(self, attribute)
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        setattr(self, attribute, None)

    def _cancel_handshake_timers(self) -> None:
        self._cancel_timer("_handshake_task")
        self._cancel_timer("_authorization_task")

    async def _close_transport(self) -> None:
        transport, self._transport = self._transport, None
        if transport is None:
            return
        try:
            await asyncio.wait_for(transport.close(), timeout=self._lifecycle.SEND_TIMEOUT_SECONDS)
        except Exception as e:
            logger.warning(
                "Transport close failed",
                error=str(e),
                error_type=type(e).__name__,
                stage=Stage.CONNECTION,
            )

    def _notify_operator(self, text: str, notice_id: str | None = None) -> None:
        destination = self._lifecycle.OPERATOR_DESTINATION
        if not destination:
            return
        self.queue.enqueue(QueuedMessage.create(
            destination, text, priority=MessagePriority.HIGH, message_id=notice_id
        ))

    async def _update_backend_status(self, status: BotStatus) -> None:
        if self.backend is None:
            return
        try:
            await self.backend.update_bot_status(status)
        except BackendError as e:
            logger.warning(
                "Bot status update failed",
                status=status.value,
                error=e.message,
                stage=Stage.BACKEND,
            )

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _cancel_tasks(self) -> None:
        if not self._tasks:
            return
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
