"""
Backend API Exceptions

Author: System Architect
Date: 2025-12-08
"""

from courier.core.exceptions.base import CourierError


class BackendError(CourierError):
    """Raised when the backend API answers with an error status."""
    pass


class BackendUnavailableError(BackendError):
    """
    Raised when the backend cannot be reached after all retries.

    Common causes:
    - Backend process down
    - Network partition
    - Request timeout
    """
    pass
