"""
Connection Events

Transport callbacks are converted into discrete ConnectionEvent objects and
pushed onto the lifecycle manager's event queue. The manager consumes them
one at a time, so every state transition is serialized.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventKind(str, Enum):
    """Kinds of events a transport may emit."""

    OPENED = "opened"
    AUTHORIZATION_REQUIRED = "authorization_required"
    CLOSED = "closed"
    CREDENTIALS_UPDATED = "credentials_updated"
    MESSAGE_RECEIVED = "message_received"


class DisconnectReason(str, Enum):
    """
    Why a connection closed.

    LOGGED_OUT and SESSION_REVOKED are terminal: the session is cleared and
    auto-reconnect stops. Everything else is recoverable.
    """

    CONNECTION_LOST = "connection_lost"
    CONNECTION_CLOSED = "connection_closed"
    TIMED_OUT = "timed_out"
    RESTART_REQUIRED = "restart_required"
    HANDSHAKE_TIMEOUT = "handshake_timeout"
    AUTHORIZATION_TIMEOUT = "authorization_timeout"
    LOGGED_OUT = "logged_out"
    SESSION_REVOKED = "session_revoked"
    UNKNOWN = "unknown"

    @property
    def is_terminal(self) -> bool:
        return self in (DisconnectReason.LOGGED_OUT, DisconnectReason.SESSION_REVOKED)


@dataclass
class InboundMessage:
    """A text message received from a remote party."""

    sender: str
    text: str
    message_id: str | None = None
    received_at: float = field(default_factory=time.time)


@dataclass
class ConnectionEvent:
    """
    A single transport occurrence.

    Attributes:
        kind: What happened
        reason: Disconnect reason (CLOSED only)
        authorization_code: Out-of-band proof to render (AUTHORIZATION_REQUIRED only)
        credentials: New credential blob (CREDENTIALS_UPDATED only)
        message: Received message (MESSAGE_RECEIVED only)
        connection_id: Attempt the event belongs to; stale events are ignored
    """

    kind: EventKind
    reason: DisconnectReason | None = None
    authorization_code: str | None = None
    credentials: dict[str, Any] | None = None
    message: InboundMessage | None = None
    connection_id: str | None = None
    occurred_at: float = field(default_factory=time.time)

    @classmethod
    def opened(cls) -> "ConnectionEvent":
        return cls(kind=EventKind.OPENED)

    @classmethod
    def closed(cls, reason: DisconnectReason = DisconnectReason.UNKNOWN) -> "ConnectionEvent":
        return cls(kind=EventKind.CLOSED, reason=reason)

    @classmethod
    def authorization_required(cls, code: str) -> "ConnectionEvent":
        return cls(kind=EventKind.AUTHORIZATION_REQUIRED, authorization_code=code)

    @classmethod
    def credentials_updated(cls, credentials: dict[str, Any]) -> "ConnectionEvent":
        return cls(kind=EventKind.CREDENTIALS_UPDATED, credentials=credentials)

    @classmethod
    def message_received(cls, sender: str, text: str, message_id: str | None = None) -> "ConnectionEvent":
        return cls(
            kind=EventKind.MESSAGE_RECEIVED,
            message=InboundMessage(sender=sender, text=text, message_id=message_id),
        )
