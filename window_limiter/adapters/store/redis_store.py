"""Redis-backed counter store.

The atomic batch runs as one Lua script. Redis does not undo the writes a
script made before failing, so the script first checks every INCR target
and only starts writing once the whole batch is known to apply.

Redis client errors (connection, timeout, protocol, script errors) are not
wrapped: callers receive the original ``redis.exceptions.RedisError``.
"""

from __future__ import annotations

from typing import Any, Sequence

from redis import Redis

from window_limiter.adapters.store.base import (
    AbstractCounterStore,
    Expire,
    Increment,
    SetIfNotExists,
    StoreOp,
)

# KEYS: one key per op, then seed source keys.
# ARGV: four slots per op: kind, ttl, value, index of the seed key in KEYS (0 = none).
BATCH_SCRIPT = """
local n = #ARGV / 4

for i = 1, n do
  if ARGV[(i - 1) * 4 + 1] == 'incr' then
    local current = redis.call('GET', KEYS[i])
    if current and not string.match(current, '^-?%d+$') then
      return {err = 'ERR value is not an integer or out of range'}
    end
  end
end

local results = {}
for i = 1, n do
  local base = (i - 1) * 4
  local kind = ARGV[base + 1]
  if kind == 'incr' then
    results[i] = redis.call('INCR', KEYS[i])
  elseif kind == 'expire' then
    results[i] = redis.call('EXPIRE', KEYS[i], ARGV[base + 2])
  else
    local value = ARGV[base + 3]
    local seed = tonumber(ARGV[base + 4])
    if seed > 0 then
      value = redis.call('GET', KEYS[seed]) or value
    end
    if redis.call('SET', KEYS[i], value, 'EX', ARGV[base + 2], 'NX') then
      results[i] = 1
    else
      results[i] = 0
    end
  end
end
return results
"""


class RedisCounterStore(AbstractCounterStore):
    """Counter store on top of a synchronous redis-py client.

    The client must be created with ``decode_responses=True`` so reads come
    back as ``str``; :meth:`from_url` takes care of that.
    """

    def __init__(self, client: Redis) -> None:
        self._client = client
        self._batch = client.register_script(BATCH_SCRIPT)

    @classmethod
    def from_url(cls, url: str, *, socket_timeout: float | None = None) -> "RedisCounterStore":
        """Build a store from a Redis URL.

        Args:
            url: Redis connection URL (``redis://host:port/db``).
            socket_timeout: Seconds before a single round-trip is abandoned.
                This is the only deadline applied to limiter calls.
        """

        client = Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client)

    def atomic_batch(self, ops: Sequence[StoreOp]) -> list[Any]:
        keys: list[str] = []
        seed_keys: list[str] = []
        args: list[Any] = []
        for op in ops:
            if isinstance(op, Increment):
                args.extend(["incr", 0, 0, 0])
            elif isinstance(op, Expire):
                args.extend(["expire", op.ttl_seconds, 0, 0])
            elif isinstance(op, SetIfNotExists):
                seed_index = 0
                if op.seed_from is not None:
                    seed_keys.append(op.seed_from)
                    seed_index = len(ops) + len(seed_keys)
                args.extend(["setnx", op.ttl_seconds, op.value, seed_index])
            else:
                raise TypeError(f"unsupported store operation: {op!r}")
            keys.append(op.key)

        raw = self._batch(keys=keys + seed_keys, args=args)

        return [
            bool(result) if isinstance(op, (Expire, SetIfNotExists)) else int(result)
            for op, result in zip(ops, raw)
        ]

    def multi_get(self, keys: Sequence[str]) -> list[str | None]:
        return list(self._client.mget(list(keys)))

    def set(self, key: str, value: int, ttl_seconds: int) -> None:
        self._client.set(key, value, ex=ttl_seconds)

    def ping(self) -> bool:
        return bool(self._client.ping())

    def close(self) -> None:
        self._client.close()
