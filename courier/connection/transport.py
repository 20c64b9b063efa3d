"""
Transport Boundary

The wire protocol of the messaging platform is out of scope. A transport is
anything that satisfies the Transport protocol: it opens a connection with
the given credentials and reports what happens through ``emit``.

Contract:
    - connect() returns once the attempt is under way; the outcome arrives
      later as OPENED, AUTHORIZATION_REQUIRED or CLOSED events.
    - emit() is non-blocking and may be called any number of times.
    - send() raises on rejection; the caller applies its own timeout.
    - close() is idempotent.
"""

import importlib
from collections.abc import Callable
from typing import Any, Protocol

from courier.connection.events import ConnectionEvent
from courier.core.exceptions import ConfigurationError

EventEmitter = Callable[[ConnectionEvent], None]


class Transport(Protocol):
    """Protocol for a platform connection."""

    async def connect(self, credentials: dict[str, Any] | None, emit: EventEmitter) -> None:
        """Start a connection attempt."""
        ...

    async def send(self, destination: str, text: str, options: dict[str, Any]) -> None:
        """Send one text message."""
        ...

    async def close(self) -> None:
        """Release the connection."""
        ...


TransportFactory = Callable[[], Transport]


def load_transport_factory(path: str | None) -> TransportFactory:
    """
    Resolve a transport factory from a ``module:callable`` path.

    Raises:
        ConfigurationError: path missing, malformed, or not importable
    """
    if not path:
        raise ConfigurationError(
            "No transport configured"
        ).with_suggestion("Set TRANSPORT_FACTORY to 'package.module:factory'")

    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise ConfigurationError(
            "TRANSPORT_FACTORY must look like 'module:callable'",
            details={"value": path},
        )

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError.from_exception(
            e, message=f"Cannot import transport module '{module_name}'", value=path
        )

    factory = getattr(module, attribute, None)
    if not callable(factory):
        raise ConfigurationError(
            f"Transport factory '{attribute}' not found in '{module_name}'",
            details={"value": path},
        )
    return factory
