"""Rate limiter interfaces.

The API depends on this abstraction (not the concrete implementation) so
the algorithm and its storage backend can change behind it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit consume operation.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max interpolated requests per window.
        remaining: Whole requests left before the limit is reached (0 when blocked).
        reset_at: UNIX epoch seconds when the current window ends.
        retry_after_seconds: Suggested wait time in seconds when blocked.
        rate: Interpolated request rate the decision was based on.
        window_start: UNIX epoch seconds of the current window.
        count_current: Requests recorded in the current window.
        count_previous: Requests recorded in the previous window.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None
    rate: float = 0.0
    window_start: int = 0
    count_current: int = 0
    count_previous: int = 0


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    def consume(self, key: str, *, cost: int = 1) -> RateLimitResult:
        """Consume rate limit budget for a given key.

        Args:
            key: Unique identifier (e.g., API key, IP address).
            cost: Units to consume (default 1).

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError

    def allow(self, key: str) -> bool:
        """Count one request for ``key`` and return the admission decision."""
        return self.consume(key).allowed
