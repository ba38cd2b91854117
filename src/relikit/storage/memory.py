# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

from collections import deque

from ..core.time import Clock, SystemClock


class MemoryKV:
    """
    In-process KVBackend.

    Every method body runs without awaiting before it returns, so each call is
    atomic with respect to other coroutines on the same loop. TTLs are measured
    on the injected clock's monotonic time and evicted lazily on access.
    """

    def __init__(self, *, clock: Clock | None = None) -> None:
        self.clock: Clock = clock or SystemClock()
        self._data: dict[str, str] = {}
        self._expires: dict[str, int] = {}
        self._lists: dict[str, deque[str]] = {}

    # ---- internal

    def _alive(self, key: str) -> bool:
        deadline = self._expires.get(key)
        if deadline is not None and self.clock.mono_ms() >= deadline:
            self._data.pop(key, None)
            self._expires.pop(key, None)
            return False
        return key in self._data

    # ---- KV

    async def get(self, key: str) -> str | None:
        return self._data[key] if self._alive(key) else None

    async def set(self, key: str, value: str, *, ttl_ms: int | None = None) -> None:
        self._data[key] = value
        if ttl_ms is not None:
            self._expires[key] = self.clock.mono_ms() + int(ttl_ms)
        else:
            self._expires.pop(key, None)

    async def set_if_absent(self, key: str, value: str) -> bool:
        if self._alive(key):
            return False
        self._data[key] = value
        self._expires.pop(key, None)
        return True

    async def delete(self, *keys: str) -> int:
        n = 0
        for k in keys:
            if self._alive(k):
                n += 1
            self._data.pop(k, None)
            self._expires.pop(k, None)
            if k in self._lists:
                n += 1
                del self._lists[k]
        return n

    async def incr(self, key: str) -> int:
        cur = int(self._data[key]) if self._alive(key) else 0
        cur += 1
        self._data[key] = str(cur)
        return cur

    async def keys(self, prefix: str) -> list[str]:
        names = [k for k in list(self._data) if k.startswith(prefix) and self._alive(k)]
        names.extend(k for k in self._lists if k.startswith(prefix))
        return names

    # ---- lists

    async def push(self, name: str, value: str) -> int:
        q = self._lists.setdefault(name, deque())
        q.appendleft(value)
        return len(q)

    async def pop(self, name: str) -> str | None:
        q = self._lists.get(name)
        if not q:
            return None
        value = q.pop()
        if not q:
            del self._lists[name]
        return value

    async def length(self, name: str) -> int:
        return len(self._lists.get(name) or ())

    async def ping(self) -> bool:
        return True

    # ---- test helpers

    def expire_now(self, key: str) -> None:
        """Force a key to expire at the next access."""
        if key in self._data:
            self._expires[key] = self.clock.mono_ms()
