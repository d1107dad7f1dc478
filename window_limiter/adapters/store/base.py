"""Counter store interfaces.

The limiter depends on this abstraction (not a concrete client) so the
shared store can be Redis in production and an in-memory fake in tests.
Only the minimal operation set the sliding-window algorithm needs is
modelled here.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Sequence, Union


@dataclass(frozen=True)
class Increment:
    """Add 1 to the integer at ``key`` (missing keys start at 0).

    Result: the post-increment value.
    """

    key: str


@dataclass(frozen=True)
class Expire:
    """Set the time-to-live of ``key``.

    Result: True if the key exists and the TTL was applied.
    """

    key: str
    ttl_seconds: int


@dataclass(frozen=True)
class SetIfNotExists:
    """Write ``value`` with a TTL only when ``key`` is absent.

    With ``seed_from`` set, the new key takes the value ``seed_from`` holds at
    that point in the batch (``value`` when ``seed_from`` is missing).

    Result: True if the key was written, False if it already existed.
    """

    key: str
    value: int
    ttl_seconds: int
    seed_from: str | None = None


StoreOp = Union[Increment, Expire, SetIfNotExists]


class AbstractCounterStore(ABC):
    """Interface for shared counter stores."""

    @abstractmethod
    def atomic_batch(self, ops: Sequence[StoreOp]) -> list[Any]:
        """Execute ``ops`` in order as a single all-or-nothing unit.

        Args:
            ops: Ordered operations to apply.

        Returns:
            One result per operation, in the same order.
        """
        raise NotImplementedError

    @abstractmethod
    def multi_get(self, keys: Sequence[str]) -> list[str | None]:
        """Read several keys at once.

        Missing keys yield ``None`` so they stay distinguishable from "0".
        """
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: int, ttl_seconds: int) -> None:
        """Unconditionally overwrite ``key`` with ``value`` and a TTL."""
        raise NotImplementedError

    @abstractmethod
    def ping(self) -> bool:
        """Return True when the store answers."""
        raise NotImplementedError

    def close(self) -> None:
        """Release client resources. Stores without any keep the default."""
