"""
Connection Lifecycle Exceptions

All exceptions related to the single logical connection to the messaging platform.

Author: System Architect
Date: 2025-12-08
"""

from courier.core.exceptions.base import CourierError


class ConnectionLifecycleError(CourierError):
    """Base exception for connection lifecycle errors."""
    pass


class NotConnectedError(ConnectionLifecycleError):
    """
    Raised when a send is attempted while the connection is not established.

    The delivery queue treats this as an ordinary dispatch failure.
    """
    pass


class HandshakeTimeoutError(ConnectionLifecycleError):
    """
    Raised internally when a handshake neither opens nor requests authorization
    within the handshake timeout, or authorization is not completed in time.

    Counts as a recoverable drop.
    """
    pass


class InvalidTransitionError(ConnectionLifecycleError):
    """Raised when a state transition not present in the transition table is attempted."""
    pass


class ReconnectionExhaustedError(ConnectionLifecycleError):
    """
    Raised when the reconnect attempt counter reaches its hard maximum.

    This is the only fatal condition; the host sees it from wait_closed().
    Recovery requires restart() or a process restart.
    """
    pass
