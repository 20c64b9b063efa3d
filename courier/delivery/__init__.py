from .delivery_queue import DeliveryQueue
from .models import MessagePriority, QueuedMessage, generate_message_id
from .persistence import QueueSnapshot, SnapshotStore

__all__ = [
    "DeliveryQueue",
    "MessagePriority",
    "QueueSnapshot",
    "QueuedMessage",
    "SnapshotStore",
    "generate_message_id",
]
