"""Rate limiting dependency for FastAPI routes.

This module wires the sliding-window limiter into the HTTP layer.

Design goals:
- Minimal coupling: API routes depend on a dependency function only.
- Shared state: counters live in the configured store (Redis by default),
  so every worker and host enforces the same quota.
- Explicit failure policy: store outages fail closed (503) unless
  RATE_LIMIT_FAIL_OPEN is set.

Rate limiting strategy:
- Sliding-window limit per API key.
- If API key is missing, fall back to client IP.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Header, Request
from fastapi.concurrency import run_in_threadpool

from window_limiter.adapters.rate_limit.base import AbstractRateLimiter
from window_limiter.adapters.rate_limit.sliding_window import SlidingWindowRateLimiter
from window_limiter.adapters.store.base import AbstractCounterStore
from window_limiter.adapters.store.in_memory import InMemoryCounterStore
from window_limiter.adapters.store.redis_store import RedisCounterStore
from window_limiter.core.config import settings
from window_limiter.core.errors import RateLimitExceededError, StoreUnavailableError
from window_limiter.core.logging import hash_identity

logger = logging.getLogger(__name__)


_store: AbstractCounterStore | None = None
_store_config: tuple | None = None
_limiter: AbstractRateLimiter | None = None
_limiter_config: tuple | None = None


def get_counter_store() -> AbstractCounterStore:
    """Return the process-wide counter store, rebuilding it on config change."""

    global _store, _store_config

    cfg = settings.store
    config = (cfg.backend, cfg.redis_url, cfg.socket_timeout_seconds)

    if _store is None or _store_config != config:
        if _store is not None:
            _store.close()
        if cfg.backend == "memory":
            _store = InMemoryCounterStore()
        else:
            _store = RedisCounterStore.from_url(
                cfg.redis_url,
                socket_timeout=cfg.socket_timeout_seconds,
            )
        _store_config = config
        logger.info("rate_limit.store_configured", extra={"backend": cfg.backend})

    return _store


def get_rate_limiter() -> AbstractRateLimiter:
    """Return a process-wide rate limiter instance.

    The limiter itself is stateless; caching it only avoids rebuilding the
    store client per request. If configuration changes (primarily in
    tests), the limiter is rebuilt.

    Returns:
        AbstractRateLimiter: Configured limiter instance.
    """

    global _limiter, _limiter_config

    rl = settings.rate_limit
    store = get_counter_store()
    config = (
        rl.max_requests,
        rl.window_seconds,
        rl.weighting,
        rl.carry_forward_idle,
        settings.store.key_prefix,
        id(store),
    )

    if _limiter is None or _limiter_config != config:
        _limiter = SlidingWindowRateLimiter(
            store,
            max_requests=rl.max_requests,
            window_seconds=rl.window_seconds,
            key_prefix=settings.store.key_prefix,
            weighting=rl.weighting,
            carry_forward_idle=rl.carry_forward_idle,
        )
        _limiter_config = config

    return _limiter


def reset_rate_limiter() -> None:
    """Close the cached store and drop it along with the limiter."""

    global _store, _store_config, _limiter, _limiter_config
    if _store is not None:
        _store.close()
    _store = None
    _store_config = None
    _limiter = None
    _limiter_config = None


def _build_rate_limit_key(request: Request, x_api_key: str | None) -> str:
    """Build the limiter identity for the current request.

    Args:
        request: FastAPI request.
        x_api_key: API key value from the X-API-Key header.

    Returns:
        str: Namespaced limiter identity.
    """

    if x_api_key:
        return f"api_key:{x_api_key}"

    client_host = request.client.host if request.client else "unknown"
    return f"ip:{client_host}"


async def enforce_rate_limit(
    request: Request,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> None:
    """FastAPI dependency enforcing rate limits.

    When enabled, records one request against the requester's budget. If the
    interpolated rate exceeds the configured maximum, the request is rejected.

    Args:
        request: FastAPI request.
        x_api_key: API key from X-API-Key header.

    Raises:
        RateLimitExceededError: 429 when the rate limit is exceeded.
        StoreUnavailableError: 503 when the counter store fails and fail_open is off.
    """

    rl = settings.rate_limit
    if not rl.enabled:
        return

    limiter = get_rate_limiter()
    key = _build_rate_limit_key(request, x_api_key)
    key_hash = hash_identity(key)
    key_type = "api_key" if x_api_key else "ip"

    try:
        result = await run_in_threadpool(limiter.consume, key)
    except Exception as exc:
        if rl.fail_open:
            logger.warning(
                "rate_limit.fail_open",
                extra={
                    "key_type": key_type,
                    "key_hash": key_hash,
                    "error_type": type(exc).__name__,
                },
            )
            return
        raise StoreUnavailableError(
            backend=settings.store.backend,
            error_type=type(exc).__name__,
        ) from exc

    if result.allowed:
        logger.info(
            "rate_limit.allowed",
            extra={
                "key_type": key_type,
                "key_hash": key_hash,
                "limit": result.limit,
                "remaining": result.remaining,
                "rate": round(result.rate, 3),
                "window_s": rl.window_seconds,
            },
        )
        return

    retry_after = result.retry_after_seconds or 0
    logger.warning(
        "rate_limit.exceeded",
        extra={
            "key_type": key_type,
            "key_hash": key_hash,
            "limit": result.limit,
            "rate": round(result.rate, 3),
            "window_s": rl.window_seconds,
            "retry_after_s": retry_after,
        },
    )

    raise RateLimitExceededError(result, include_headers=rl.include_headers)
