#!/usr/bin/env python3
"""
Structured Logging Module using structlog

This module provides structured logging for the courier with:
- Connection ID correlation (every line of one connection attempt shares an id)
- Stage identifiers for execution flow
- JSON formatting for log aggregation
- Automatic PII redaction (remote parties are phone numbers and e-mails)

Architectural Decision: structlog for production logging
- Context-aware logging with automatic field injection
- JSON output for log aggregation, console output for local runs

Author: System Architect
Date: 2025-12-05
"""

import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime

import structlog
from structlog.types import EventDict, WrappedLogger

from courier.core.config.settings import get_settings

# Context variable for the current connection attempt
connection_id_ctx: ContextVar[str | None] = ContextVar("connection_id", default=None)

_EMAIL_PATTERN = re.compile(r"\b[\w.+-]+@[\w.-]+\.\w+\b")
_PHONE_PATTERN = re.compile(r"\+?\b\d[\d\s.-]{8,}\d\b")
_API_KEY_PATTERN = re.compile(r"\b(?:sk|key)-[a-zA-Z0-9]+\b")

# Injected by the processor chain, or rendered for a local operator; dates and
# pairing codes would otherwise match the phone pattern
_UNREDACTED_KEYS = frozenset({"timestamp", "level", "logger", "connection_id", "authorization_code"})


def add_connection_id(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add connection ID to log event from context variable.

    STAGE-L.1: Connection ID injection
    """
    connection_id = connection_id_ctx.get()
    if connection_id:
        event_dict["connection_id"] = connection_id
    return event_dict


def add_timestamp(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Add ISO timestamp to log event.

    STAGE-L.2: Timestamp injection
    """
    event_dict["timestamp"] = datetime.utcnow().isoformat() + "Z"
    return event_dict


def redact_text(text: str) -> str:
    """Replace e-mail, phone-number and API-key looking substrings."""
    text = _EMAIL_PATTERN.sub("[EMAIL]", text)
    text = _API_KEY_PATTERN.sub("[REDACTED]", text)
    text = _PHONE_PATTERN.sub("[PHONE]", text)
    return text


def redact_pii(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Redact PII from log messages and string fields.

    STAGE-L.3: PII redaction

    Patterns redacted:
    - Email addresses → [EMAIL]
    - API keys → [REDACTED]
    - Phone numbers → [PHONE]
    """
    for key, value in list(event_dict.items()):
        if key in _UNREDACTED_KEYS:
            continue
        if isinstance(value, str):
            event_dict[key] = redact_text(value)
    return event_dict


def add_log_level_name(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Upper-case the log level.

    STAGE-L.4: Log level injection
    """
    if "level" in event_dict:
        event_dict["level"] = event_dict["level"].upper()
    return event_dict


def setup_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """
    Setup structured logging with structlog.

    STAGE-L: Logging initialization

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ('json' or 'console')
    """
    settings = get_settings()

    log_level = log_level or settings.logging.LOG_LEVEL
    log_format = log_format or settings.logging.LOG_FORMAT

    logging.basicConfig(
        format="%(message)s", stream=sys.stdout, level=getattr(logging, log_level.upper())
    )

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_connection_id,
            add_timestamp,
            structlog.stdlib.add_log_level,
            add_log_level_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_pii,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("message", key="value", stage=Stage.QUEUE)
    """
    return structlog.get_logger(name)


def set_connection_id(connection_id: str) -> None:
    """
    Set the connection ID for the current connection attempt.

    STAGE-C.1: Connection ID context initialization
    """
    connection_id_ctx.set(connection_id)


def get_connection_id() -> str | None:
    """Get current connection ID from context."""
    return connection_id_ctx.get()


def clear_connection_id() -> None:
    """Clear connection ID from context."""
    connection_id_ctx.set(None)


def log_stage(
    logger: structlog.stdlib.BoundLogger, stage: str, message: str, level: str = "info", **kwargs
) -> None:
    """
    Log a message with stage information.

    Usage:
        log_stage(logger, Stage.RECONNECT, "Reconnect scheduled", delay=5.0)
    """
    log_func = getattr(logger, level.lower())
    log_func(message, stage=stage, **kwargs)
