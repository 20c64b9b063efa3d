"""
Conversation Context Store

At most one InteractionContext per remote party. A context is created when a
multi-step flow starts (a draft awaiting confirmation, or a prompt awaiting
free text) and is cleared on completion, cancellation or expiry.

    none ──start()──▶ awaiting-input ──clear()/expiry──▶ none
"""

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from courier.core.config.constants import Stage
from courier.core.logging import get_logger

logger = get_logger(__name__)


class PendingAction(str, Enum):
    """What the open context is waiting for."""

    REPLY = "reply"
    AWAITING_RESPONSE = "awaiting_response"


@dataclass
class InteractionContext:
    sender: str
    pending_action: PendingAction
    reference_id: str | None = None
    draft: str | None = None
    created_at: float = field(default_factory=time.time)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def accepts_free_text(self) -> bool:
        return self.pending_action == PendingAction.AWAITING_RESPONSE


class ConversationContextStore:
    """Per-process store of open contexts with TTL expiry."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.time):
        self._ttl = ttl_seconds
        self._clock = clock
        self._contexts: dict[str, InteractionContext] = {}

    def __len__(self) -> int:
        return len(self._contexts)

    def _expired(self, context: InteractionContext) -> bool:
        return self._clock() - context.created_at > self._ttl

    def start(
        self,
        sender: str,
        pending_action: PendingAction | str,
        reference_id: str | None = None,
        draft: str | None = None,
        **metadata,
    ) -> InteractionContext:
        """Open a context for ``sender``, replacing any previous one."""
        context = InteractionContext(
            sender=sender,
            pending_action=PendingAction(pending_action),
            reference_id=reference_id,
            draft=draft,
            created_at=self._clock(),
            metadata=metadata,
        )
        self._contexts[sender] = context
        logger.info(
            "Conversation context opened",
            sender=sender,
            pending_action=context.pending_action.value,
            reference_id=reference_id,
            stage=Stage.CONTEXT,
        )
        return context

    def get(self, sender: str) -> InteractionContext | None:
        context = self._contexts.get(sender)
        if context is not None and self._expired(context):
            del self._contexts[sender]
            logger.info("Conversation context expired", sender=sender, stage=Stage.CONTEXT)
            return None
        return context

    def update_draft(self, sender: str, draft: str) -> InteractionContext | None:
        context = self.get(sender)
        if context is not None:
            context.draft = draft
        return context

    def clear(self, sender: str) -> bool:
        return self._contexts.pop(sender, None) is not None

    def sweep(self) -> int:
        expired = [s for s, c in self._contexts.items() if self._expired(c)]
        for sender in expired:
            del self._contexts[sender]
        return len(expired)
