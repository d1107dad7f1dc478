"""Sliding-window-counter rate limiter backed by a shared counter store.

Each identity has one integer counter per fixed window. A decision
interpolates between the current and the previous window counters to
approximate a continuously sliding window without storing per-request
timestamps.

Notes:
- Multi-process safe: all state lives in the store, and the increment is
  part of one atomic batch.
- Not idempotent: every call counts as a request.
- Store errors propagate unchanged; no admission decision is inferred.
- The only writes are the atomic batch. The optional carry-forward seed of
  an empty previous-window slot is part of it, so it never overwrites a
  count another host recorded in that window.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Callable, Literal

from window_limiter.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult
from window_limiter.adapters.store.base import (
    AbstractCounterStore,
    Expire,
    Increment,
    SetIfNotExists,
    StoreOp,
)
from window_limiter.core.logging import hash_identity

logger = logging.getLogger(__name__)

Weighting = Literal["standard", "literal"]

KEY_SEPARATOR = ":"


class SlidingWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter using a weighted sliding window over two fixed windows.

    For ``window_seconds=10`` and ``max_requests=5`` an identity may issue
    roughly five requests in any ten-second span. The previous window's
    count contributes in proportion to how much of it still overlaps the
    sliding span.

    Two weighting formulas are available:

    ``standard``
        ``elapsed = (now - window_start) / window``;
        ``rate = count_previous * (1 - elapsed) + count_current``.
    ``literal``
        ``previous_weight = (window_start - now) / window`` (always <= 0) and
        ``current_weight = 1 - previous_weight``. The previous window lowers
        the rate and the current window is over-weighted late in the window.
    """

    def __init__(
        self,
        store: AbstractCounterStore,
        *,
        max_requests: int,
        window_seconds: int,
        key_prefix: str | None = None,
        weighting: Weighting = "standard",
        carry_forward_idle: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            store: Shared counter store.
            max_requests: Maximum interpolated rate admitted per window.
            window_seconds: Size of each fixed window in seconds.
            key_prefix: Optional namespace prepended to every counter key.
            weighting: Interpolation formula, ``standard`` or ``literal``.
            carry_forward_idle: When the previous-window slot is empty, create
                it holding the current count instead of 0. Off by default.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If max_requests, window_seconds or weighting are invalid.
        """
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")
        if weighting not in ("standard", "literal"):
            raise ValueError("weighting must be 'standard' or 'literal'")

        self._store = store
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._key_prefix = key_prefix or None
        self._weighting = weighting
        self._carry_forward_idle = carry_forward_idle
        self._clock = clock

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def window_seconds(self) -> int:
        return self._window_seconds

    @property
    def ttl_seconds(self) -> int:
        """Counter lifetime: long enough to be read back as the previous window."""
        return 2 * self._window_seconds

    def window_start(self, now: float) -> int:
        """Return the start of the fixed window containing ``now``."""
        return int(now // self._window_seconds) * self._window_seconds

    def window_key(self, identity: str, window_start: int) -> str:
        """Build the counter key for ``identity`` in the given window.

        The window start is always the integer after the last separator, so
        identities that themselves contain ``:`` cannot collide.
        """
        parts = [identity, str(window_start)]
        if self._key_prefix:
            parts.insert(0, self._key_prefix)
        return KEY_SEPARATOR.join(parts)

    def weights(self, now: float, window_start: int) -> tuple[float, float]:
        """Return ``(previous_weight, current_weight)`` for ``now``."""
        if self._weighting == "literal":
            previous_weight = (window_start - now) / self._window_seconds
            return previous_weight, 1.0 - previous_weight

        elapsed = (now - window_start) / self._window_seconds
        return 1.0 - elapsed, 1.0

    def consume(self, key: str, *, cost: int = 1) -> RateLimitResult:
        """Record ``cost`` requests for ``key`` and decide admission.

        Args:
            key: Identity the quota is tracked against.
            cost: Requests to record (default 1).

        Returns:
            RateLimitResult with the decision and the counters behind it.

        Raises:
            ValueError: If key is empty or cost is invalid.
            Exception: Any error raised by the counter store, unchanged.
        """
        if cost < 1:
            raise ValueError("cost must be >= 1")
        if not key:
            raise ValueError("key must be a non-empty string")

        now = self._clock()
        current_start = self.window_start(now)
        previous_start = current_start - self._window_seconds
        key_current = self.window_key(key, current_start)
        key_previous = self.window_key(key, previous_start)
        ttl = self.ttl_seconds

        ops: list[StoreOp] = [Increment(key_current) for _ in range(cost)]
        ops.append(Expire(key_current, ttl))
        seed_from = key_current if self._carry_forward_idle else None
        ops.append(SetIfNotExists(key_previous, 0, ttl, seed_from=seed_from))

        try:
            results = self._store.atomic_batch(ops)
            raw_current, raw_previous = self._store.multi_get([key_current, key_previous])
        except Exception as exc:
            logger.warning(
                "rate_limit.store_error",
                extra={
                    "key_hash": hash_identity(key),
                    "error_type": type(exc).__name__,
                },
            )
            raise

        incremented = int(results[cost - 1])
        previous_initialised = bool(results[-1])
        count_current = max(incremented, self._decode_count(raw_current, key_current))
        # A slot this batch just created held no traffic when the rate is taken.
        count_previous = 0
        if not previous_initialised:
            count_previous = self._decode_count(raw_previous, key_previous)

        previous_weight, current_weight = self.weights(now, current_start)
        rate = previous_weight * count_previous + current_weight * count_current

        # No request landed in the preceding window. With carry-forward on, the
        # batch seeded its slot so later calls interpolate against recent traffic.
        if seed_from is not None and previous_initialised:
            logger.debug(
                "rate_limit.rollover",
                extra={
                    "key_hash": hash_identity(key),
                    "window_start": current_start,
                    "seed": count_current,
                },
            )

        reset_at = current_start + self._window_seconds
        allowed = rate <= self._max_requests
        remaining = 0
        if allowed:
            remaining = min(self._max_requests, math.floor(self._max_requests - rate))
        retry_after = None if allowed else max(1, int(math.ceil(reset_at - now)))

        return RateLimitResult(
            allowed=allowed,
            limit=self._max_requests,
            remaining=remaining,
            reset_at=reset_at,
            retry_after_seconds=retry_after,
            rate=rate,
            window_start=current_start,
            count_current=count_current,
            count_previous=count_previous,
        )

    @staticmethod
    def _decode_count(raw: str | bytes | int | None, store_key: str) -> int:
        """Parse a stored counter, treating missing or malformed values as 0."""
        if raw is None:
            return 0
        if isinstance(raw, bytes):
            raw = raw.decode(errors="replace")
        try:
            return int(raw)
        except (TypeError, ValueError):
            logger.debug(
                "rate_limit.decode_fallback",
                extra={"store_key_hash": hash_identity(store_key)},
            )
            return 0
