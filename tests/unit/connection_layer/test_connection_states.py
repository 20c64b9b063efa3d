"""
Unit Tests for Connection States, Events and Transport Resolution
"""

import pytest

from courier.connection.events import ConnectionEvent, DisconnectReason, EventKind
from courier.connection.states import ConnectionState, is_transition_allowed
from courier.connection.transport import load_transport_factory
from courier.core.exceptions import ConfigurationError
from tests.test_fixtures.transport_factory import FakeTransport


@pytest.mark.unit
class TestTransitions:

    @pytest.mark.parametrize(
        "current,target",
        [
            (ConnectionState.DISCONNECTED, ConnectionState.CONNECTING),
            (ConnectionState.CONNECTING, ConnectionState.AWAITING_AUTHORIZATION),
            (ConnectionState.CONNECTING, ConnectionState.CONNECTED),
            (ConnectionState.AWAITING_AUTHORIZATION, ConnectionState.AWAITING_AUTHORIZATION),
            (ConnectionState.AWAITING_AUTHORIZATION, ConnectionState.CONNECTED),
            (ConnectionState.CONNECTED, ConnectionState.DISCONNECTED),
            (ConnectionState.CONNECTED, ConnectionState.CLOSING_BY_REQUEST),
        ],
    )
    def test_allowed(self, current, target):
        assert is_transition_allowed(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (ConnectionState.DISCONNECTED, ConnectionState.CONNECTED),
            (ConnectionState.CONNECTED, ConnectionState.CONNECTING),
            (ConnectionState.CONNECTED, ConnectionState.AWAITING_AUTHORIZATION),
            (ConnectionState.CLOSING_BY_REQUEST, ConnectionState.CONNECTING),
            (ConnectionState.CLOSING_BY_REQUEST, ConnectionState.DISCONNECTED),
        ],
    )
    def test_forbidden(self, current, target):
        assert not is_transition_allowed(current, target)

    def test_closing_is_terminal(self):
        assert not any(is_transition_allowed(ConnectionState.CLOSING_BY_REQUEST, s) for s in ConnectionState)


@pytest.mark.unit
class TestEvents:

    @pytest.mark.parametrize("reason", [DisconnectReason.LOGGED_OUT, DisconnectReason.SESSION_REVOKED])
    def test_terminal_reasons(self, reason):
        assert reason.is_terminal

    @pytest.mark.parametrize(
        "reason",
        [
            DisconnectReason.CONNECTION_LOST,
            DisconnectReason.TIMED_OUT,
            DisconnectReason.RESTART_REQUIRED,
            DisconnectReason.HANDSHAKE_TIMEOUT,
            DisconnectReason.UNKNOWN,
        ],
    )
    def test_recoverable_reasons(self, reason):
        assert not reason.is_terminal

    def test_event_constructors(self):
        assert ConnectionEvent.opened().kind == EventKind.OPENED
        assert ConnectionEvent.closed(DisconnectReason.TIMED_OUT).reason == DisconnectReason.TIMED_OUT
        assert ConnectionEvent.authorization_required("1234").authorization_code == "1234"
        assert ConnectionEvent.credentials_updated({"me": 1}).credentials == {"me": 1}

        received = ConnectionEvent.message_received("alice", "hi", message_id="x")
        assert received.message.sender == "alice"
        assert received.message.text == "hi"
        assert received.connection_id is None


@pytest.mark.unit
class TestLoadTransportFactory:

    def test_valid_path(self):
        factory = load_transport_factory("tests.test_fixtures.transport_factory:make_transport")
        assert isinstance(factory(), FakeTransport)

    @pytest.mark.parametrize("path", [None, "", "no_colon", "module:", ":attr"])
    def test_malformed_path(self, path):
        with pytest.raises(ConfigurationError):
            load_transport_factory(path)

    def test_unknown_module(self):
        with pytest.raises(ConfigurationError):
            load_transport_factory("courier.does_not_exist:factory")

    def test_unknown_attribute(self):
        with pytest.raises(ConfigurationError):
            load_transport_factory("tests.test_fixtures.transport_factory:missing")
