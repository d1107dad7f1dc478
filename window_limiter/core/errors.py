"""Errors raised by the rate limiting dependency.

Each error knows the HTTP status and headers it maps to, so a single
handler renders all of them.
"""

from __future__ import annotations

from typing import Any

from window_limiter.adapters.rate_limit.base import RateLimitResult


class RateLimitError(Exception):
    """Base class for failures surfaced by ``enforce_rate_limit``."""

    status_code = 500
    code = "rate_limit_error"

    def __init__(
        self,
        message: str,
        *,
        headers: dict[str, str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.headers = headers or {}
        self.details = details


class StoreUnavailableError(RateLimitError):
    """The counter store could not be reached and the policy is fail-closed."""

    status_code = 503
    code = "rate_limit_store_unavailable"

    def __init__(self, *, backend: str, error_type: str) -> None:
        super().__init__(
            "Rate limit store is unavailable. Try again later.",
            details={"backend": backend, "error_type": error_type},
        )


class RateLimitExceededError(RateLimitError):
    """The caller's interpolated rate is above the configured maximum."""

    status_code = 429
    code = "rate_limit_exceeded"

    def __init__(self, result: RateLimitResult, *, include_headers: bool = True) -> None:
        retry_after = result.retry_after_seconds or 0
        headers: dict[str, str] = {}
        if include_headers:
            headers = {
                "Retry-After": str(retry_after),
                "X-RateLimit-Limit": str(result.limit),
                "X-RateLimit-Remaining": str(result.remaining),
                "X-RateLimit-Reset": str(result.reset_at),
            }
        super().__init__(
            "Rate limit exceeded. Try again later.",
            headers=headers,
            details={"limit": result.limit, "retry_after": retry_after},
        )
        self.result = result
