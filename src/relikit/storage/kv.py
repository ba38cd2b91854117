# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Key/Value backend interface (DB-agnostic).

This is the backing-store and queue-transport surface the core consumes:
- string values under string keys with optional TTL,
- set-if-absent for unique-key claims,
- an atomic counter for id generation,
- key enumeration by prefix,
- list push/pop used as a FIFO message queue (push to head, pop from tail).

Implementations: `MemoryKV` (in-process) and `RedisKV` (redis-py asyncio).
Backend I/O failures surface as `ConnectionFailure`.
"""

from typing import Protocol, runtime_checkable

__all__ = ["KVBackend"]


@runtime_checkable
class KVBackend(Protocol):
    """Minimal async KV + list interface."""

    # -------- Plain KV --------

    async def get(self, key: str) -> str | None: ...
    async def set(self, key: str, value: str, *, ttl_ms: int | None = None) -> None: ...

    async def set_if_absent(self, key: str, value: str) -> bool:
        """Store `value` only when `key` does not exist. Return True if stored."""

    async def delete(self, *keys: str) -> int:
        """Delete keys; return how many existed."""

    async def incr(self, key: str) -> int:
        """Atomically increment an integer counter and return the new value."""

    async def keys(self, prefix: str) -> list[str]:
        """Enumerate live keys starting with `prefix` (order unspecified)."""

    # -------- Lists (queues) --------

    async def push(self, name: str, value: str) -> int:
        """Push to the head of list `name`; return the new length."""

    async def pop(self, name: str) -> str | None:
        """Non-blocking pop from the tail of list `name`."""

    async def length(self, name: str) -> int: ...

    # -------- Health --------

    async def ping(self) -> bool: ...
