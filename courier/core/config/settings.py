#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the
session courier. Every tunable of the connection lifecycle, the delivery
queue, the session store, the health monitor and the interaction guard
lives here.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Grouped section objects (settings.queue, settings.lifecycle, ...)
- Easy testing with reload_settings()
"""

from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LifecycleSettings(BaseSettings):
    """
    Connection lifecycle configuration.

    STAGE-C: Reconnect backoff and handshake bounds

    delay(n) = min(RECONNECT_BASE_DELAY_SECONDS * 2^n, RECONNECT_MAX_DELAY_SECONDS)
    """

    RECONNECT_BASE_DELAY_SECONDS: float = Field(default=5.0, description="Base reconnect delay")
    RECONNECT_MAX_DELAY_SECONDS: float = Field(default=60.0, description="Reconnect delay cap")
    MAX_RECONNECT_ATTEMPTS: int = Field(default=10, description="Reconnects before giving up")
    HANDSHAKE_TIMEOUT_SECONDS: float = Field(default=60.0, description="Handshake timeout")
    AUTHORIZATION_TIMEOUT_SECONDS: float = Field(
        default=300.0, description="Time allowed to complete out-of-band authorization"
    )
    SEND_TIMEOUT_SECONDS: float = Field(default=30.0, description="Timeout for a single send")
    SHUTDOWN_GRACE_SECONDS: float = Field(default=10.0, description="Graceful shutdown window")
    OPERATOR_DESTINATION: str | None = Field(
        default=None, description="Destination that receives operator notices"
    )
    TRANSPORT_FACTORY: str | None = Field(
        default=None, description="Transport factory as 'module:callable'"
    )

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class QueueSettings(BaseSettings):
    """
    Outbound delivery queue configuration.

    STAGE-Q: Retry, rate and persistence thresholds

    Architectural Decision: one dispatch per interval, concurrency 1
    - Respects the messaging platform's abuse limits
    - Throughput ceiling, not a correctness requirement
    """

    MESSAGE_RETRY_COUNT: int = Field(default=3, description="Max retries before dead-letter")
    QUEUE_RETRY_BASE_DELAY_SECONDS: float = Field(default=1.0, description="Retry base delay")
    QUEUE_RETRY_MAX_DELAY_SECONDS: float = Field(default=30.0, description="Retry delay cap")
    QUEUE_DISPATCH_INTERVAL_SECONDS: float = Field(
        default=1.0, description="Minimum spacing between two dispatches"
    )
    QUEUE_SNAPSHOT_INTERVAL_SECONDS: float = Field(default=30.0, description="Snapshot period")
    QUEUE_SNAPSHOT_MAX_AGE_SECONDS: float = Field(
        default=86400.0, description="Snapshots older than this are never restored"
    )
    QUEUE_PRIORITY_AGING_SECONDS: float = Field(
        default=300.0, description="Wait time that promotes a message by one priority tier"
    )
    QUEUE_SNAPSHOT_PATH: str = Field(default="queue-backup.json", description="Snapshot file")
    QUEUE_DEAD_LETTER_PATH: str = Field(
        default="failed-messages.json", description="Dead-letter inspection file"
    )
    PERSISTENCE_TIMEOUT_SECONDS: float = Field(default=5.0, description="Disk I/O timeout")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class SessionSettings(BaseSettings):
    """
    Session store configuration.

    STAGE-S: Session directory layout

    The backup directory is always the sibling '<SESSION_PATH>-backup'.
    """

    SESSION_PATH: str = Field(default="./session", description="Session directory")
    SESSION_REQUIRED_FIELDS: list[str] = Field(
        default=["me"], description="Credential keys required for a valid session"
    )
    PERSISTENCE_TIMEOUT_SECONDS: float = Field(default=5.0, description="Disk I/O timeout")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class HealthSettings(BaseSettings):
    """
    Health monitor configuration.

    STAGE-H: Health classification thresholds
    """

    HEALTH_CHECK_INTERVAL_SECONDS: float = Field(default=60.0, description="Poll period")
    HEALTH_PROBE_TIMEOUT_SECONDS: float = Field(default=5.0, description="Backend probe timeout")
    HEALTH_MEMORY_DEGRADED_PERCENT: float = Field(default=80.0, description="Degraded memory")
    HEALTH_DEAD_LETTER_DEGRADED_COUNT: int = Field(default=10, description="Degraded dead letters")
    DIAGNOSTIC_WARNING_PERCENT: float = Field(default=70.0, description="Diagnostic warning")
    DIAGNOSTIC_FAILURE_PERCENT: float = Field(default=85.0, description="Diagnostic failure")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class InteractionSettings(BaseSettings):
    """
    Per-sender interaction guard configuration.

    STAGE-I: Inbound rate limit and conversation context
    """

    RATE_LIMIT_WINDOW_MS: int = Field(default=60000, description="Sliding window length")
    RATE_LIMIT_MESSAGES_PER_MINUTE: int = Field(default=30, description="Messages per window")
    RATE_LIMIT_SWEEP_INTERVAL_SECONDS: float = Field(default=60.0, description="Sweep period")
    CONTEXT_TTL_SECONDS: float = Field(default=600.0, description="Conversation context expiry")
    HANDLER_TIMEOUT_SECONDS: float = Field(default=20.0, description="Business handler timeout")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class BackendSettings(BaseSettings):
    """
    Backend API configuration (bot status, reachability probe, error reports).
    """

    API_URL: str = Field(default="http://localhost:3000", description="Backend base URL")
    API_KEY: str | None = Field(default=None, description="Backend API key")
    API_TIMEOUT_SECONDS: float = Field(default=10.0, description="Backend request timeout")
    API_MAX_RETRIES: int = Field(default=3, description="Retries for transient backend errors")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApplicationSettings(BaseSettings):
    """
    General application settings.

    STAGE-0: Application initialization
    """

    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Session Courier", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")
    API_HOST: str = Field(default="0.0.0.0", description="Admin API host")
    API_PORT: int = Field(default=8080, description="Admin API port")
    API_BASE_PATH: str = Field(default="/api/v1", description="Admin API prefix")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    Usage:
        from courier.core.config.settings import get_settings

        settings = get_settings()
        max_retries = settings.queue.MESSAGE_RETRY_COUNT
        base_delay = settings.lifecycle.RECONNECT_BASE_DELAY_SECONDS
    """

    # Lifecycle settings
    RECONNECT_BASE_DELAY_SECONDS: float = Field(default=5.0, ge=0)
    RECONNECT_MAX_DELAY_SECONDS: float = Field(default=60.0, ge=0)
    MAX_RECONNECT_ATTEMPTS: int = Field(default=10, ge=0)
    HANDSHAKE_TIMEOUT_SECONDS: float = Field(default=60.0, gt=0)
    AUTHORIZATION_TIMEOUT_SECONDS: float = Field(default=300.0, gt=0)
    SEND_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)
    SHUTDOWN_GRACE_SECONDS: float = Field(default=10.0, ge=0)
    OPERATOR_DESTINATION: str | None = Field(default=None)
    TRANSPORT_FACTORY: str | None = Field(default=None)

    # Queue settings
    MESSAGE_RETRY_COUNT: int = Field(default=3, ge=0)
    QUEUE_RETRY_BASE_DELAY_SECONDS: float = Field(default=1.0, ge=0)
    QUEUE_RETRY_MAX_DELAY_SECONDS: float = Field(default=30.0, ge=0)
    QUEUE_DISPATCH_INTERVAL_SECONDS: float = Field(default=1.0, ge=0)
    QUEUE_SNAPSHOT_INTERVAL_SECONDS: float = Field(default=30.0, gt=0)
    QUEUE_SNAPSHOT_MAX_AGE_SECONDS: float = Field(default=86400.0, gt=0)
    QUEUE_PRIORITY_AGING_SECONDS: float = Field(default=300.0, gt=0)
    QUEUE_SNAPSHOT_PATH: str = Field(default="queue-backup.json")
    QUEUE_DEAD_LETTER_PATH: str = Field(default="failed-messages.json")
    PERSISTENCE_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)

    # Session settings
    SESSION_PATH: str = Field(default="./session")
    SESSION_REQUIRED_FIELDS: list[str] = Field(default=["me"])

    # Health settings
    HEALTH_CHECK_INTERVAL_SECONDS: float = Field(default=60.0, gt=0)
    HEALTH_PROBE_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)
    HEALTH_MEMORY_DEGRADED_PERCENT: float = Field(default=80.0, ge=0, le=100)
    HEALTH_DEAD_LETTER_DEGRADED_COUNT: int = Field(default=10, ge=0)
    DIAGNOSTIC_WARNING_PERCENT: float = Field(default=70.0, ge=0, le=100)
    DIAGNOSTIC_FAILURE_PERCENT: float = Field(default=85.0, ge=0, le=100)

    # Interaction settings
    RATE_LIMIT_WINDOW_MS: int = Field(default=60000, gt=0)
    RATE_LIMIT_MESSAGES_PER_MINUTE: int = Field(default=30, gt=0)
    RATE_LIMIT_SWEEP_INTERVAL_SECONDS: float = Field(default=60.0, gt=0)
    CONTEXT_TTL_SECONDS: float = Field(default=600.0, gt=0)
    HANDLER_TIMEOUT_SECONDS: float = Field(default=20.0, gt=0)

    # Backend settings
    API_URL: str = Field(default="http://localhost:3000")
    API_KEY: str | None = Field(default=None)
    API_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0)
    API_MAX_RETRIES: int = Field(default=3, ge=1)

    # Logging settings
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application settings
    ENVIRONMENT: Literal["development", "staging", "production"] = Field(default="development")
    APP_NAME: str = Field(default="Session Courier")
    APP_VERSION: str = Field(default="1.0.0")
    API_HOST: str = Field(default="0.0.0.0")
    API_PORT: int = Field(default=8080)
    API_BASE_PATH: str = Field(default="/api/v1")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @model_validator(mode="after")
    def check_delay_bounds(self):
        """Backoff caps must not be below their base delays."""
        if self.RECONNECT_MAX_DELAY_SECONDS < self.RECONNECT_BASE_DELAY_SECONDS:
            raise ValueError("RECONNECT_MAX_DELAY_SECONDS must be >= RECONNECT_BASE_DELAY_SECONDS")
        if self.QUEUE_RETRY_MAX_DELAY_SECONDS < self.QUEUE_RETRY_BASE_DELAY_SECONDS:
            raise ValueError(
                "QUEUE_RETRY_MAX_DELAY_SECONDS must be >= QUEUE_RETRY_BASE_DELAY_SECONDS"
            )
        return self

    @property
    def lifecycle(self) -> 'LifecycleSettings':
        """Get connection lifecycle settings."""
        return LifecycleSettings(
            RECONNECT_BASE_DELAY_SECONDS=self.RECONNECT_BASE_DELAY_SECONDS,
            RECONNECT_MAX_DELAY_SECONDS=self.RECONNECT_MAX_DELAY_SECONDS,
            MAX_RECONNECT_ATTEMPTS=self.MAX_RECONNECT_ATTEMPTS,
            HANDSHAKE_TIMEOUT_SECONDS=self.HANDSHAKE_TIMEOUT_SECONDS,
            AUTHORIZATION_TIMEOUT_SECONDS=self.AUTHORIZATION_TIMEOUT_SECONDS,
            SEND_TIMEOUT_SECONDS=self.SEND_TIMEOUT_SECONDS,
            SHUTDOWN_GRACE_SECONDS=self.SHUTDOWN_GRACE_SECONDS,
            OPERATOR_DESTINATION=self.OPERATOR_DESTINATION,
            TRANSPORT_FACTORY=self.TRANSPORT_FACTORY,
        )

    @property
    def queue(self) -> 'QueueSettings':
        """Get delivery queue settings."""
        return QueueSettings(
            MESSAGE_RETRY_COUNT=self.MESSAGE_RETRY_COUNT,
            QUEUE_RETRY_BASE_DELAY_SECONDS=self.QUEUE_RETRY_BASE_DELAY_SECONDS,
            QUEUE_RETRY_MAX_DELAY_SECONDS=self.QUEUE_RETRY_MAX_DELAY_SECONDS,
            QUEUE_DISPATCH_INTERVAL_SECONDS=self.QUEUE_DISPATCH_INTERVAL_SECONDS,
            QUEUE_SNAPSHOT_INTERVAL_SECONDS=self.QUEUE_SNAPSHOT_INTERVAL_SECONDS,
            QUEUE_SNAPSHOT_MAX_AGE_SECONDS=self.QUEUE_SNAPSHOT_MAX_AGE_SECONDS,
            QUEUE_PRIORITY_AGING_SECONDS=self.QUEUE_PRIORITY_AGING_SECONDS,
            QUEUE_SNAPSHOT_PATH=self.QUEUE_SNAPSHOT_PATH,
            QUEUE_DEAD_LETTER_PATH=self.QUEUE_DEAD_LETTER_PATH,
            PERSISTENCE_TIMEOUT_SECONDS=self.PERSISTENCE_TIMEOUT_SECONDS,
        )

    @property
    def session(self) -> 'SessionSettings':
        """Get session store settings."""
        return SessionSettings(
            SESSION_PATH=self.SESSION_PATH,
            SESSION_REQUIRED_FIELDS=self.SESSION_REQUIRED_FIELDS,
            PERSISTENCE_TIMEOUT_SECONDS=self.PERSISTENCE_TIMEOUT_SECONDS,
        )

    @property
    def health(self) -> 'HealthSettings':
        """Get health monitor settings."""
        return HealthSettings(
            HEALTH_CHECK_INTERVAL_SECONDS=self.HEALTH_CHECK_INTERVAL_SECONDS,
            HEALTH_PROBE_TIMEOUT_SECONDS=self.HEALTH_PROBE_TIMEOUT_SECONDS,
            HEALTH_MEMORY_DEGRADED_PERCENT=self.HEALTH_MEMORY_DEGRADED_PERCENT,
            HEALTH_DEAD_LETTER_DEGRADED_COUNT=self.HEALTH_DEAD_LETTER_DEGRADED_COUNT,
            DIAGNOSTIC_WARNING_PERCENT=self.DIAGNOSTIC_WARNING_PERCENT,
            DIAGNOSTIC_FAILURE_PERCENT=self.DIAGNOSTIC_FAILURE_PERCENT,
        )

    @property
    def interaction(self) -> 'InteractionSettings':
        """Get interaction guard settings."""
        return InteractionSettings(
            RATE_LIMIT_WINDOW_MS=self.RATE_LIMIT_WINDOW_MS,
            RATE_LIMIT_MESSAGES_PER_MINUTE=self.RATE_LIMIT_MESSAGES_PER_MINUTE,
            RATE_LIMIT_SWEEP_INTERVAL_SECONDS=self.RATE_LIMIT_SWEEP_INTERVAL_SECONDS,
            CONTEXT_TTL_SECONDS=self.CONTEXT_TTL_SECONDS,
            HANDLER_TIMEOUT_SECONDS=self.HANDLER_TIMEOUT_SECONDS,
        )

    @property
    def backend(self) -> 'BackendSettings':
        """Get backend API settings."""
        return BackendSettings(
            API_URL=self.API_URL,
            API_KEY=self.API_KEY,
            API_TIMEOUT_SECONDS=self.API_TIMEOUT_SECONDS,
            API_MAX_RETRIES=self.API_MAX_RETRIES,
        )

    @property
    def logging(self) -> 'LoggingSettings':
        """Get logging settings."""
        return LoggingSettings(LOG_LEVEL=self.LOG_LEVEL, LOG_FORMAT=self.LOG_FORMAT)

    @property
    def app(self) -> 'ApplicationSettings':
        """Get application settings."""
        return ApplicationSettings(
            ENVIRONMENT=self.ENVIRONMENT,
            APP_NAME=self.APP_NAME,
            APP_VERSION=self.APP_VERSION,
            API_HOST=self.API_HOST,
            API_PORT=self.API_PORT,
            API_BASE_PATH=self.API_BASE_PATH,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    STAGE-0.3: Settings initialization

    Returns:
        Settings: Global settings instance
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = Settings()
    return _settings
