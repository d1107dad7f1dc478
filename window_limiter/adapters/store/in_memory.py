"""In-memory counter store.

Notes:
- Per-process only: limiters in different workers do not share counts.
- Thread-safe: uses a lock around shared state.
- Mirrors Redis semantics closely enough for the limiter: values are stored
  as strings, INCR keeps an existing TTL, SET with a TTL replaces it.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from window_limiter.adapters.store.base import (
    AbstractCounterStore,
    Expire,
    Increment,
    SetIfNotExists,
    StoreOp,
)

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    value: str
    expires_at: float | None = None


class InMemoryCounterStore(AbstractCounterStore):
    """Dict-backed store with lazy TTL expiry."""

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        """Initialize the store.

        Args:
            clock: Time source function returning UNIX time in seconds.
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: dict[str, _Entry] = {}

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"InMemoryCounterStore(size={len(self._entries)})"

    def atomic_batch(self, ops: Sequence[StoreOp]) -> list[Any]:
        """Apply ``ops`` against a staged copy and commit only if all succeed.

        Raises:
            ValueError: If an increment targets a non-integer value.
            TypeError: If an operation type is not supported.
        """

        with self._lock:
            now = self._clock()
            self._purge_expired_locked(now)
            staged = dict(self._entries)
            results: list[Any] = []

            for op in ops:
                if isinstance(op, Increment):
                    results.append(self._incr(staged, op.key))
                elif isinstance(op, Expire):
                    results.append(self._expire(staged, op.key, op.ttl_seconds, now))
                elif isinstance(op, SetIfNotExists):
                    results.append(self._setnx(staged, op, now))
                else:
                    raise TypeError(f"unsupported store operation: {op!r}")

            self._entries = staged
            return results

    def multi_get(self, keys: Sequence[str]) -> list[str | None]:
        with self._lock:
            self._purge_expired_locked(self._clock())
            values: list[str | None] = []
            for key in keys:
                entry = self._entries.get(key)
                values.append(entry.value if entry else None)
            return values

    def set(self, key: str, value: int, ttl_seconds: int) -> None:
        with self._lock:
            self._entries[key] = _Entry(
                value=str(value),
                expires_at=self._clock() + ttl_seconds,
            )

    def ping(self) -> bool:
        return True

    def ttl(self, key: str) -> float | None:
        """Return remaining seconds before ``key`` expires.

        Returns:
            Remaining TTL, or None when the key is missing or has no expiry.
        """

        with self._lock:
            now = self._clock()
            self._purge_expired_locked(now)
            entry = self._entries.get(key)
            if entry is None or entry.expires_at is None:
                return None
            return entry.expires_at - now

    def put_raw(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """Store an arbitrary string, bypassing integer encoding."""

        with self._lock:
            expires_at = self._clock() + ttl_seconds if ttl_seconds else None
            self._entries[key] = _Entry(value=value, expires_at=expires_at)

    @staticmethod
    def _incr(entries: dict[str, _Entry], key: str) -> int:
        current = entries.get(key)
        if current is None:
            entries[key] = _Entry(value="1")
            return 1
        try:
            value = int(current.value) + 1
        except ValueError as exc:
            raise ValueError(f"value at {key!r} is not an integer") from exc
        # Replace rather than mutate: the staged dict shares entry objects.
        entries[key] = _Entry(value=str(value), expires_at=current.expires_at)
        return value

    @staticmethod
    def _expire(entries: dict[str, _Entry], key: str, ttl_seconds: int, now: float) -> bool:
        current = entries.get(key)
        if current is None:
            return False
        entries[key] = _Entry(value=current.value, expires_at=now + ttl_seconds)
        return True

    @staticmethod
    def _setnx(entries: dict[str, _Entry], op: SetIfNotExists, now: float) -> bool:
        if op.key in entries:
            return False
        value = str(op.value)
        if op.seed_from is not None and op.seed_from in entries:
            value = entries[op.seed_from].value
        entries[op.key] = _Entry(value=value, expires_at=now + op.ttl_seconds)
        return True

    def _purge_expired_locked(self, now: float) -> None:
        expired = [
            key
            for key, entry in self._entries.items()
            if entry.expires_at is not None and entry.expires_at <= now
        ]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("store.expired", extra={"expired_keys": len(expired)})
