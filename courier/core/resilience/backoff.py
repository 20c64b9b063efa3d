"""
Exponential Backoff Policy

Shared delay calculation used by two independent policies:
- connection reconnects (base 5s, cap 60s, hard attempt maximum)
- delivery queue retries (base 1s, cap 30s, per-message retry budget)

Algorithm:
    delay(n) = min(base * 2^n, cap)

Each consumer owns its own BackoffPolicy instance built from its own
settings section; they never share counters.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Exponential backoff with a cap and an optional attempt budget.

    Attributes:
        base_delay_seconds: Delay for attempt 0
        max_delay_seconds: Upper bound of any delay
        max_attempts: Attempts allowed before giving up (None = unbounded)

    Example:
        base=5, cap=60
        attempt=0: 5s
        attempt=1: 10s
        attempt=2: 20s
        attempt=3: 40s
        attempt=4: 60s (capped)
    """

    base_delay_seconds: float
    max_delay_seconds: float
    max_attempts: int | None = None

    def __post_init__(self):
        if self.base_delay_seconds < 0:
            raise ValueError("base_delay_seconds must be >= 0")
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError("max_delay_seconds must be >= base_delay_seconds")

    def calculate_delay(self, attempt: int) -> float:
        """
        Calculate the backoff delay in seconds for a 0-indexed attempt.

        Large attempts are clamped before exponentiation so the result stays finite.
        """
        if attempt < 0:
            attempt = 0
        # 2^64 already exceeds any sane cap
        exponent = min(attempt, 64)
        return min(self.base_delay_seconds * (2 ** exponent), self.max_delay_seconds)

    def is_exhausted(self, attempt: int) -> bool:
        """Return True when ``attempt`` has reached the attempt budget."""
        return self.max_attempts is not None and attempt >= self.max_attempts
