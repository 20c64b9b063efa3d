"""
Connection State Machine Definitions

The lifecycle manager owns exactly one ConnectionState. Transitions are the
only legal mutations; the table below is the single source of truth and is
enforced by LifecycleManager._transition().

    DISCONNECTED ──start/reconnect/restart──▶ CONNECTING
    CONNECTING ──authorization required──▶ AWAITING_AUTHORIZATION
    CONNECTING | AWAITING_AUTHORIZATION ──opened──▶ CONNECTED
    CONNECTED | CONNECTING | AWAITING_AUTHORIZATION ──dropped──▶ DISCONNECTED
    any ──shutdown──▶ CLOSING_BY_REQUEST (terminal)
"""

from enum import Enum


class ConnectionState(str, Enum):
    """States of the single logical connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_AUTHORIZATION = "awaiting_authorization"
    CONNECTED = "connected"
    CLOSING_BY_REQUEST = "closing_by_request"


ALLOWED_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset({
        ConnectionState.CONNECTING,
        ConnectionState.CLOSING_BY_REQUEST,
    }),
    ConnectionState.CONNECTING: frozenset({
        ConnectionState.AWAITING_AUTHORIZATION,
        ConnectionState.CONNECTED,
        ConnectionState.DISCONNECTED,
        ConnectionState.CLOSING_BY_REQUEST,
    }),
    ConnectionState.AWAITING_AUTHORIZATION: frozenset({
        # A fresh authorization code may be issued while still waiting
        ConnectionState.AWAITING_AUTHORIZATION,
        ConnectionState.CONNECTED,
        ConnectionState.DISCONNECTED,
        ConnectionState.CLOSING_BY_REQUEST,
    }),
    ConnectionState.CONNECTED: frozenset({
        ConnectionState.DISCONNECTED,
        ConnectionState.CLOSING_BY_REQUEST,
    }),
    ConnectionState.CLOSING_BY_REQUEST: frozenset(),
}


def is_transition_allowed(current: ConnectionState, target: ConnectionState) -> bool:
    return target in ALLOWED_TRANSITIONS[current]
