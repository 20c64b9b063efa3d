"""
System Constants and Enumerations

This module defines system-wide constants and enumerations used across
the session courier.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for magic strings and identifiers
- Type-safe enums for state management
- Stage identifiers keep logs readable without code lookup

Author: System Architect
Date: 2025-12-05
"""

from enum import Enum

# ============================================================================
# Stage Identifiers (for execution tracking and logging)
# ============================================================================


class Stage(str, Enum):
    """
    Execution stages used as the ``stage`` field of structured log entries.

    Format: {PREFIX}_{DESCRIPTIVE_NAME}
    - PREFIX: Alphabetic subsystem prefix (C, Q, S, H, I, B)
    - DESCRIPTIVE_NAME: Clear, uppercase description with underscores
    """

    INITIALIZATION = "0.0_INITIALIZATION"

    # Connection lifecycle
    CONNECTION = "C_CONNECTION_LIFECYCLE"
    RECONNECT = "C.R_RECONNECT_SCHEDULING"
    SHUTDOWN = "C.X_SHUTDOWN"

    # Delivery queue
    QUEUE = "Q_DELIVERY_QUEUE"
    DISPATCH = "Q.D_DISPATCH"
    RETRY = "Q.R_RETRY_LOGIC"
    PERSISTENCE = "Q.P_PERSISTENCE"

    # Session store
    SESSION = "S_SESSION_STORE"

    # Health monitoring
    HEALTH = "H_HEALTH_MONITOR"
    DIAGNOSTICS = "H.D_DIAGNOSTICS"

    # Inbound interaction
    INBOUND = "I_INBOUND_ROUTING"
    RATE_LIMITING = "I.R_RATE_LIMITING"
    CONTEXT = "I.C_CONVERSATION_CONTEXT"

    # Backend API
    BACKEND = "B_BACKEND_API"


# ============================================================================
# Bot Status (reported to the backend API)
# ============================================================================


class BotStatus(str, Enum):
    """Status values accepted by the backend's bot-status endpoint."""

    ONLINE = "online"
    OFFLINE = "offline"


# ============================================================================
# Operator & User Facing Texts
# ============================================================================

ONLINE_NOTICE = "Bot is online and ready to receive messages."
AUTHORIZATION_NOTICE = (
    "New authorization code generated. Complete pairing on the device; "
    "the code expires in 60 seconds."
)
GIVE_UP_NOTICE = (
    "Max reconnection attempts reached ({attempts}). "
    "Manual intervention required."
)
HEALTH_ALERT_TEXT = "Health check failed! Status: {status}"
RATE_LIMIT_WARNING = "You're sending too many messages. Please wait a moment."
APOLOGY_TEXT = "An error occurred while processing your message. Please try again."
UNKNOWN_DIRECTIVE_HINT = (
    "Reply 'send' to confirm, 'cancel' to discard, 'regenerate' for a new draft, "
    "or 'edit <text>' to replace it."
)

# Stable alert id: repeated unhealthy polls are de-duplicated by the queue
HEALTH_ALERT_ID = "alert_health_unhealthy"
AUTHORIZATION_NOTICE_ID = "notice_authorization_required"

# ============================================================================
# Persistence Layout
# ============================================================================

SESSION_FILE_NAME = "session.json"
SESSION_BACKUP_SUFFIX = "-backup"
SNAPSHOT_SCHEMA_VERSION = 1
