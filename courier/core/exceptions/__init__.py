"""
Exception Module

Structured exception hierarchy for the session courier.
Exceptions are organized by theme.

Module Structure:
-----------------
- **base.py**: CourierError base class + ConfigurationError
- **connection.py**: Connection lifecycle exceptions
- **delivery.py**: Outbound delivery queue exceptions
- **session.py**: Session store exceptions
- **backend.py**: Backend API exceptions
- **rate_limit.py**: Inbound rate limiting exceptions

Usage:
------
```python
from courier.core.exceptions import NotConnectedError, ReconnectionExhaustedError
```

Author: System Architect
Date: 2025-12-08
"""

# Backend exceptions
from courier.core.exceptions.backend import BackendError, BackendUnavailableError

# Base exception
from courier.core.exceptions.base import ConfigurationError, CourierError

# Connection exceptions
from courier.core.exceptions.connection import (
    ConnectionLifecycleError,
    HandshakeTimeoutError,
    InvalidTransitionError,
    NotConnectedError,
    ReconnectionExhaustedError,
)

# Delivery exceptions
from courier.core.exceptions.delivery import (
    DeliveryError,
    DispatchError,
    DispatchTimeoutError,
    PersistenceError,
)

# Rate limit exceptions
from courier.core.exceptions.rate_limit import RateLimitError, RateLimitExceededError

# Session exceptions
from courier.core.exceptions.session import SessionError, SessionIntegrityError

__all__ = [
    # Base
    "CourierError",
    "ConfigurationError",
    # Connection
    "ConnectionLifecycleError",
    "NotConnectedError",
    "HandshakeTimeoutError",
    "InvalidTransitionError",
    "ReconnectionExhaustedError",
    # Delivery
    "DeliveryError",
    "DispatchError",
    "DispatchTimeoutError",
    "PersistenceError",
    # Session
    "SessionError",
    "SessionIntegrityError",
    # Backend
    "BackendError",
    "BackendUnavailableError",
    # Rate limit
    "RateLimitError",
    "RateLimitExceededError",
]
