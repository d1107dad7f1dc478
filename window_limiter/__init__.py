"""Distributed sliding-window rate limiter."""

from window_limiter.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from window_limiter.adapters.rate_limit.sliding_window import SlidingWindowRateLimiter

__all__ = ["AbstractRateLimiter", "RateLimitResult", "SlidingWindowRateLimiter"]
