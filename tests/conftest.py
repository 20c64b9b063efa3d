"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.
"""

import os
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add project root to sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture
def fast_settings(tmp_path):
    """
    Real Settings with millisecond delays and files under tmp_path.

    Every persisted file of the courier (session, snapshot, dead letters)
    lands in the test's temporary directory.
    """
    from courier.core.config.settings import Settings

    return Settings(
        _env_file=None,
        RECONNECT_BASE_DELAY_SECONDS=0.01,
        RECONNECT_MAX_DELAY_SECONDS=0.05,
        MAX_RECONNECT_ATTEMPTS=3,
        HANDSHAKE_TIMEOUT_SECONDS=0.5,
        AUTHORIZATION_TIMEOUT_SECONDS=0.5,
        SEND_TIMEOUT_SECONDS=0.5,
        SHUTDOWN_GRACE_SECONDS=0.5,
        OPERATOR_DESTINATION="operator",
        MESSAGE_RETRY_COUNT=3,
        QUEUE_RETRY_BASE_DELAY_SECONDS=0.001,
        QUEUE_RETRY_MAX_DELAY_SECONDS=0.01,
        QUEUE_DISPATCH_INTERVAL_SECONDS=0,
        QUEUE_SNAPSHOT_INTERVAL_SECONDS=60,
        QUEUE_SNAPSHOT_PATH=str(tmp_path / "queue-backup.json"),
        QUEUE_DEAD_LETTER_PATH=str(tmp_path / "failed-messages.json"),
        PERSISTENCE_TIMEOUT_SECONDS=2.0,
        SESSION_PATH=str(tmp_path / "session"),
        HEALTH_CHECK_INTERVAL_SECONDS=60,
        HEALTH_PROBE_TIMEOUT_SECONDS=0.2,
        RATE_LIMIT_SWEEP_INTERVAL_SECONDS=60,
        HANDLER_TIMEOUT_SECONDS=0.2,
    )


@pytest.fixture
def queue_settings(fast_settings):
    return fast_settings.queue


@pytest.fixture
def session_settings(fast_settings):
    return fast_settings.session


# ============================================================================
# Mock Collaborators
# ============================================================================


@pytest.fixture
def mock_backend():
    """
    Mock BackendClient.

    Every call succeeds; tests override return values or side effects.
    """
    backend = MagicMock()
    backend.update_bot_status = AsyncMock(return_value=None)
    backend.health_check = AsyncMock(return_value={"status": "healthy", "latency_ms": 1.0})
    backend.report_error = AsyncMock(return_value=True)
    return backend


@pytest.fixture
def fake_metrics():
    """SystemMetrics stand-in with fixed, healthy readings."""
    metrics = MagicMock()
    metrics.memory.return_value = {
        "system_percent": 40.0,
        "system_total_mb": 16000.0,
        "system_available_mb": 9600.0,
        "process_rss_mb": 80.0,
        "process_percent": 0.5,
    }
    metrics.cpu_percent.return_value = 10.0
    metrics.uptime_seconds.return_value = 12.0
    return metrics
