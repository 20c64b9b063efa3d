"""
Session Store Exceptions

Author: System Architect
Date: 2025-12-08
"""

from courier.core.exceptions.base import CourierError


class SessionError(CourierError):
    """Base exception for session store errors."""
    pass


class SessionIntegrityError(SessionError):
    """
    Raised when a session file is unreadable, lacks required credential fields,
    or its checksum does not match the credential blob.

    The store catches it and falls back to the backup copy.
    """
    pass
