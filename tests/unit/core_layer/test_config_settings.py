"""
Unit Tests for Configuration Settings

Tests the settings loading, validation, and default values.
"""

from unittest.mock import patch

import pytest
from pydantic import ValidationError

from courier.core.config.settings import Settings, get_settings, reload_settings


@pytest.mark.unit
class TestSettingsDefaults:
    """Default values of every section."""

    def test_lifecycle_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.lifecycle.RECONNECT_BASE_DELAY_SECONDS == 5.0
        assert settings.lifecycle.RECONNECT_MAX_DELAY_SECONDS == 60.0
        assert settings.lifecycle.MAX_RECONNECT_ATTEMPTS == 10
        assert settings.lifecycle.HANDSHAKE_TIMEOUT_SECONDS == 60.0
        assert settings.lifecycle.SEND_TIMEOUT_SECONDS == 30.0
        assert settings.lifecycle.SHUTDOWN_GRACE_SECONDS == 10.0

    def test_queue_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.queue.MESSAGE_RETRY_COUNT == 3
        assert settings.queue.QUEUE_RETRY_BASE_DELAY_SECONDS == 1.0
        assert settings.queue.QUEUE_RETRY_MAX_DELAY_SECONDS == 30.0
        assert settings.queue.QUEUE_DISPATCH_INTERVAL_SECONDS == 1.0
        assert settings.queue.QUEUE_SNAPSHOT_INTERVAL_SECONDS == 30.0
        assert settings.queue.QUEUE_SNAPSHOT_MAX_AGE_SECONDS == 86400.0

    def test_interaction_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.interaction.RATE_LIMIT_WINDOW_MS == 60000
        assert settings.interaction.RATE_LIMIT_MESSAGES_PER_MINUTE == 30

    def test_health_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.health.HEALTH_CHECK_INTERVAL_SECONDS == 60.0
        assert settings.health.HEALTH_MEMORY_DEGRADED_PERCENT == 80.0
        assert settings.health.HEALTH_DEAD_LETTER_DEGRADED_COUNT == 10

    def test_session_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.session.SESSION_PATH == "./session"
        assert settings.session.SESSION_REQUIRED_FIELDS == ["me"]

    def test_sections_share_persistence_timeout(self):
        settings = Settings(_env_file=None, PERSISTENCE_TIMEOUT_SECONDS=2.5)

        assert settings.queue.PERSISTENCE_TIMEOUT_SECONDS == 2.5
        assert settings.session.PERSISTENCE_TIMEOUT_SECONDS == 2.5


@pytest.mark.unit
class TestSettingsValidation:
    """Invalid configuration fails at startup."""

    def test_invalid_log_level_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, LOG_LEVEL="LOUD")

    def test_log_level_is_uppercased(self):
        settings = Settings(_env_file=None, LOG_LEVEL="debug")
        assert settings.logging.LOG_LEVEL == "DEBUG"

    def test_reconnect_cap_below_base_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, RECONNECT_BASE_DELAY_SECONDS=10, RECONNECT_MAX_DELAY_SECONDS=5)

    def test_retry_cap_below_base_rejected(self):
        with pytest.raises(ValidationError):
            Settings(
                _env_file=None, QUEUE_RETRY_BASE_DELAY_SECONDS=2, QUEUE_RETRY_MAX_DELAY_SECONDS=1
            )

    def test_negative_retry_count_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, MESSAGE_RETRY_COUNT=-1)

    def test_zero_rate_limit_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, RATE_LIMIT_MESSAGES_PER_MINUTE=0)


@pytest.mark.unit
class TestSettingsEnvironment:
    """Environment variable overrides."""

    def test_environment_overrides_default(self):
        with patch.dict("os.environ", {"MAX_RECONNECT_ATTEMPTS": "4", "OPERATOR_DESTINATION": "ops"}):
            settings = Settings(_env_file=None)

        assert settings.lifecycle.MAX_RECONNECT_ATTEMPTS == 4
        assert settings.lifecycle.OPERATOR_DESTINATION == "ops"

    def test_required_fields_from_json_list(self):
        with patch.dict("os.environ", {"SESSION_REQUIRED_FIELDS": '["me", "noiseKey"]'}):
            settings = Settings(_env_file=None)

        assert settings.session.SESSION_REQUIRED_FIELDS == ["me", "noiseKey"]


@pytest.mark.unit
class TestSettingsSingleton:

    def test_get_settings_returns_same_instance(self):
        assert get_settings() is get_settings()

    def test_reload_settings_replaces_instance(self):
        first = get_settings()
        reloaded = reload_settings()

        assert reloaded is not first
        assert get_settings() is reloaded
