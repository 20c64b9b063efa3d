"""
Inbound Router

Path of every received text message:

    1. Empty text is ignored
    2. Rate limit per sender; over the limit → warning reply, stop
    3. Open context → parse as directive and hand to the business handler
       No context    → hand the raw text to the business handler
    4. Reply text (if any) goes out through the delivery queue
    5. Handler failure or timeout → apology reply through the queue

Business logic plugs in through the InboundHandler protocol.
"""

import asyncio
from typing import Protocol

from courier.connection.events import InboundMessage
from courier.core.config.constants import RATE_LIMIT_WARNING, UNKNOWN_DIRECTIVE_HINT, Stage
from courier.core.config.settings import InteractionSettings, get_settings
from courier.core.logging import get_logger
from courier.delivery import DeliveryQueue, QueuedMessage
from courier.interaction.context_store import ConversationContextStore, InteractionContext
from courier.interaction.directives import Directive, DirectiveKind, parse_directive
from courier.interaction.guard import InteractionGuard

logger = get_logger(__name__)


class InboundHandler(Protocol):
    """Business logic boundary. Both methods return optional reply text."""

    async def handle_message(
        self, sender: str, text: str, contexts: ConversationContextStore
    ) -> str | None:
        ...

    async def handle_directive(
        self, sender: str, directive: Directive, context: InteractionContext
    ) -> str | None:
        ...


class InboundRouter:

    def __init__(
        self,
        guard: InteractionGuard,
        queue: DeliveryQueue,
        handler: InboundHandler | None = None,
        settings: InteractionSettings | None = None,
    ):
        self._settings = settings or get_settings().interaction
        self._guard = guard
        self._queue = queue
        self._handler = handler

    def _reply(self, destination: str, text: str, message_id: str | None = None) -> None:
        self._queue.enqueue(QueuedMessage.create(destination, text, message_id=message_id))

    async def route(self, message: InboundMessage) -> None:
        text = (message.text or "").strip()
        if not text:
            return

        sender = message.sender
        allowed, _ = await self._guard.limiter.check_and_record(sender)
        if not allowed:
            # Stable id: one pending warning per sender at a time
            self._reply(sender, RATE_LIMIT_WARNING, message_id=f"ratelimit_{sender}")
            return

        if self._handler is None:
            logger.debug("No inbound handler configured", sender=sender, stage=Stage.INBOUND)
            return

        context = self._guard.contexts.get(sender)
        try:
            if context is None:
                reply = await asyncio.wait_for(
                    self._handler.handle_message(sender, text, self._guard.contexts),
                    timeout=self._settings.HANDLER_TIMEOUT_SECONDS,
                )
            else:
                reply = await self._route_directive(sender, text, context)
        except asyncio.TimeoutError:
            logger.error(
                "Inbound handler timed out",
                sender=sender,
                timeout_seconds=self._settings.HANDLER_TIMEOUT_SECONDS,
                stage=Stage.INBOUND,
            )
            self._queue.enqueue_apology(sender)
            return
        except Exception as e:
            logger.error(
                "Inbound handler failed",
                sender=sender,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
                stage=Stage.INBOUND,
            )
            self._queue.enqueue_apology(sender)
            return

        if reply:
            self._reply(sender, reply)

    async def _route_directive(
        self, sender: str, text: str, context: InteractionContext
    ) -> str | None:
        directive = parse_directive(text, accepts_free_text=context.accepts_free_text)
        logger.info(
            "Directive received",
            sender=sender,
            directive=directive.kind.value,
            reference_id=context.reference_id,
            stage=Stage.CONTEXT,
        )

        if directive.kind == DirectiveKind.UNKNOWN:
            return UNKNOWN_DIRECTIVE_HINT

        if directive.kind == DirectiveKind.CANCEL:
            self._guard.contexts.clear(sender)
        elif directive.kind == DirectiveKind.EDIT:
            context.draft = directive.text

        reply = await asyncio.wait_for(
            self._handler.handle_directive(sender, directive, context),
            timeout=self._settings.HANDLER_TIMEOUT_SECONDS,
        )

        if directive.kind == DirectiveKind.CONFIRM:
            self._guard.contexts.clear(sender)
        return reply
