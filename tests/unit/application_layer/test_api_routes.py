"""
Unit Tests for API Routes

Tests FastAPI routes with TestClient against a mocked lifecycle manager.
The lifespan is not entered, so no transport is ever built.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from courier.application.app import create_app
from courier.connection.states import ConnectionState
from courier.core.exceptions import InvalidTransitionError
from courier.delivery import QueuedMessage
from courier.monitoring import HealthReport, HealthStatus

QUEUE_STATUS = {
    "size": 0,
    "in_flight": 0,
    "is_paused": False,
    "dead_letter_count": 0,
    "is_online": True,
    "delivered_count": 5,
}


def make_report(status: HealthStatus) -> HealthReport:
    return HealthReport(
        status=status,
        uptime_seconds=10.0,
        memory={"system_percent": 40.0},
        queue=QUEUE_STATUS,
        connection={"state": "connected", "connected": True},
        backend={"reachable": True, "configured": True, "latency_ms": 3.2},
    )


@pytest.fixture
def manager():
    manager = MagicMock()
    manager.state = ConnectionState.CONNECTED
    manager.queue.status.return_value = QUEUE_STATUS
    manager.get_health_report = AsyncMock(return_value=make_report(HealthStatus.HEALTHY))
    manager.run_diagnostics = AsyncMock(return_value={
        "overall": "pass",
        "checks": [{"name": "connection", "status": "pass", "message": "Connection is connected"}],
        "timestamp": "2025-01-01T00:00:00Z",
    })
    manager.status = AsyncMock(return_value={
        "connection": {"state": "connected"},
        "queue": QUEUE_STATUS,
        "session": {"exists": True},
    })
    manager.retry_dead_letters = AsyncMock(return_value=2)
    manager.clear_queue.return_value = 3
    manager.restart = AsyncMock()
    return manager


@pytest.fixture
def client(manager):
    return TestClient(create_app(manager=manager))


@pytest.mark.unit
class TestHealthRoutes:
    """Test suite for health check routes."""

    def test_healthy_returns_200(self, client):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_unhealthy_returns_503_with_report(self, client, manager):
        manager.get_health_report.return_value = make_report(HealthStatus.UNHEALTHY)

        response = client.get("/api/v1/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"
        assert response.json()["queue"] == QUEUE_STATUS

    def test_degraded_still_200(self, client, manager):
        manager.get_health_report.return_value = make_report(HealthStatus.DEGRADED)
        assert client.get("/api/v1/health").status_code == 200

    def test_diagnostics(self, client):
        response = client.get("/api/v1/health/diagnostics")

        assert response.status_code == 200
        assert response.json()["overall"] == "pass"
        assert response.json()["checks"][0]["name"] == "connection"

    def test_liveness(self, client, manager):
        response = client.get("/api/v1/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "alive"
        manager.get_health_report.assert_not_awaited()

    def test_not_initialized_returns_503(self):
        client = TestClient(create_app())
        assert client.get("/api/v1/health").status_code == 503


@pytest.mark.unit
class TestAdminRoutes:

    def test_status(self, client):
        response = client.get("/api/v1/admin/status")

        assert response.status_code == 200
        assert response.json()["session"] == {"exists": True}

    def test_pause_and_resume(self, client, manager):
        assert client.post("/api/v1/admin/queue/pause").json()["action"] == "pause"
        assert client.post("/api/v1/admin/queue/resume").json()["action"] == "resume"

        manager.pause_queue.assert_called_once()
        manager.resume_queue.assert_called_once()

    def test_clear_reports_affected(self, client):
        data = client.post("/api/v1/admin/queue/clear").json()

        assert data["action"] == "clear"
        assert data["affected"] == 3
        assert data["queue"] == QUEUE_STATUS

    def test_retry_dead_letters(self, client, manager):
        data = client.post("/api/v1/admin/queue/retry-dead-letters").json()

        assert data["affected"] == 2
        manager.retry_dead_letters.assert_awaited_once()

    def test_send_accepted(self, client, manager):
        manager.request_send.return_value = QueuedMessage.create("alice", "hi", message_id="m1")

        response = client.post(
            "/api/v1/admin/send",
            json={"destination": "alice", "text": "hi", "priority": "high"},
        )

        assert response.status_code == 202
        assert response.json()["accepted"] is True
        assert response.json()["message_id"] == "m1"
        args, kwargs = manager.request_send.call_args
        assert args == ("alice", "hi")
        assert kwargs["priority"].value == "high"

    def test_send_duplicate_not_accepted(self, client, manager):
        manager.request_send.return_value = None

        response = client.post(
            "/api/v1/admin/send",
            json={"destination": "alice", "text": "hi", "message_id": "m1"},
        )

        assert response.status_code == 202
        assert response.json()["accepted"] is False
        assert response.json()["message_id"] == "m1"

    @pytest.mark.parametrize(
        "body",
        [
            {"destination": "alice", "text": "   "},
            {"destination": "", "text": "hi"},
            {"destination": "alice", "text": "hi", "priority": "urgent"},
        ],
    )
    def test_send_validation(self, client, body):
        assert client.post("/api/v1/admin/send", json=body).status_code == 422

    def test_restart(self, client, manager):
        response = client.post("/api/v1/admin/restart")

        assert response.status_code == 202
        assert response.json() == {"restarted": True, "state": "connected"}
        manager.restart.assert_awaited_once()

    def test_restart_after_shutdown_conflict(self, client, manager):
        manager.restart.side_effect = InvalidTransitionError("Cannot restart after shutdown")

        response = client.post("/api/v1/admin/restart")

        assert response.status_code == 409
        assert response.json()["error_type"] == "InvalidTransitionError"


@pytest.mark.unit
class TestRoot:

    def test_root(self, client):
        data = client.get("/").json()
        assert data["health"] == "/api/v1/health"
