"""
Rate Limiting Exceptions

Author: System Architect
Date: 2025-12-08
"""

from courier.core.exceptions.base import CourierError


class RateLimitError(CourierError):
    """Base exception for rate limiting errors."""
    pass


class RateLimitExceededError(RateLimitError):
    """Raised when a sender exceeds the sliding-window message limit."""
    pass
