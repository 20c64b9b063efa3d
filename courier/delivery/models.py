"""
Delivery Queue Data Models

QueuedMessage is the unit of outbound delivery. It is serializable so the
pending and dead-letter sets survive a process restart.
"""

import secrets
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class MessagePriority(str, Enum):
    """
    Delivery priority tiers.

    rank: 1 = dispatched first. Aging lowers the effective rank of a waiting
    message but never below HIGH.
    """

    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    MessagePriority.HIGH: 1,
    MessagePriority.NORMAL: 2,
    MessagePriority.LOW: 3,
}


def generate_message_id() -> str:
    """Generate an id of the form ``msg_<epoch-ms>_<random>``."""
    return f"msg_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"


@dataclass
class QueuedMessage:
    """
    A message waiting for (or undergoing) delivery.

    Attributes:
        id: Unique id; enqueue ignores ids already pending or in flight
        destination: Remote party address
        payload: Text body
        priority: Delivery tier
        retry_count: Failed dispatches so far; only reset by retry_dead_letters()
        enqueued_at: Epoch seconds of first enqueue (drives priority aging)
        options: Transport-specific send options
    """

    id: str
    destination: str
    payload: str
    priority: MessagePriority = MessagePriority.NORMAL
    retry_count: int = 0
    enqueued_at: float = field(default_factory=time.time)
    options: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        destination: str,
        payload: str,
        priority: MessagePriority | str = MessagePriority.NORMAL,
        options: dict[str, Any] | None = None,
        message_id: str | None = None,
    ) -> "QueuedMessage":
        return cls(
            id=message_id or generate_message_id(),
            destination=destination,
            payload=payload,
            priority=MessagePriority(priority),
            options=dict(options or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for snapshot storage."""
        return {
            "id": self.id,
            "destination": self.destination,
            "payload": self.payload,
            "priority": self.priority.value,
            "retry_count": self.retry_count,
            "enqueued_at": self.enqueued_at,
            "options": self.options,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueuedMessage":
        """Deserialize from dictionary."""
        return cls(
            id=data["id"],
            destination=data["destination"],
            payload=data["payload"],
            priority=MessagePriority(data.get("priority", "normal")),
            retry_count=int(data.get("retry_count", 0)),
            enqueued_at=float(data.get("enqueued_at", time.time())),
            options=dict(data.get("options") or {}),
        )
