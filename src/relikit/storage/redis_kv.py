# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Redis implementation of `KVBackend` on the redis-py asyncio client.

Key enumeration uses SCAN (never KEYS) and queues are plain Redis lists
(LPUSH + RPOP gives FIFO). All `RedisError`s are re-raised as
`ConnectionFailure` so adapters and the cache see a single failure type.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from redis.asyncio import Redis
from redis.exceptions import RedisError

from ..api.errors import ConnectionFailure
from ..core.log import get_logger


class RedisKV:
    def __init__(self, client: Redis) -> None:
        self.client = client
        self.log = get_logger("storage.redis")

    @classmethod
    def from_url(cls, url: str, **kwargs) -> RedisKV:
        return cls(Redis.from_url(url, decode_responses=True, **kwargs))

    async def close(self) -> None:
        await self.client.aclose()

    @asynccontextmanager
    async def _io(self, op: str) -> AsyncIterator[None]:
        try:
            yield
        except RedisError as e:
            self.log.debug("redis.error", event="redis.error", op=op, error=str(e))
            raise ConnectionFailure(f"redis {op} failed: {e}") from e

    # ---- KV

    async def get(self, key: str) -> str | None:
        async with self._io("get"):
            return await self.client.get(key)

    async def set(self, key: str, value: str, *, ttl_ms: int | None = None) -> None:
        async with self._io("set"):
            await self.client.set(key, value, px=ttl_ms)

    async def set_if_absent(self, key: str, value: str) -> bool:
        async with self._io("setnx"):
            return bool(await self.client.set(key, value, nx=True))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        async with self._io("delete"):
            return int(await self.client.delete(*keys))

    async def incr(self, key: str) -> int:
        async with self._io("incr"):
            return int(await self.client.incr(key))

    async def keys(self, prefix: str) -> list[str]:
        async with self._io("scan"):
            return [k async for k in self.client.scan_iter(match=f"{prefix}*", count=500)]

    # ---- lists

    async def push(self, name: str, value: str) -> int:
        async with self._io("lpush"):
            return int(await self.client.lpush(name, value))

    async def pop(self, name: str) -> str | None:
        async with self._io("rpop"):
            return await self.client.rpop(name)

    async def length(self, name: str) -> int:
        async with self._io("llen"):
            return int(await self.client.llen(name))

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError:
            return False
