"""
Delivery Queue Exceptions

Author: System Architect
Date: 2025-12-08
"""

from courier.core.exceptions.base import CourierError


class DeliveryError(CourierError):
    """Base exception for outbound delivery errors."""
    pass


class DispatchError(DeliveryError):
    """
    Raised when a single dispatch attempt fails.

    Common causes:
    - Connection not available
    - Transport rejected the message
    """
    pass


class DispatchTimeoutError(DispatchError):
    """Raised when a send does not complete within SEND_TIMEOUT_SECONDS."""
    pass


class PersistenceError(DeliveryError):
    """
    Raised by the snapshot store on read/write failures.

    Never escapes the queue: callers log it and continue.
    """
    pass
