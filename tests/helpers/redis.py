from __future__ import annotations

import fnmatch
from collections import deque
from typing import Any

from redis.exceptions import ConnectionError as RedisConnectionError

from relikit.core.log import get_logger
from relikit.core.time import Clock, ManualClock

LOG = get_logger("tests.redis")


# ───────────────────────── In-memory Redis ─────────────────────────


class InMemRedisServer:
    """
    Tiny shared keyspace behind every FakeRedis client.

    Supports the commands RedisKV issues (GET/SET PX NX/DEL/INCR/SCAN/LPUSH/RPOP/LLEN/PING).
    Set `down = True` to make every command fail like a lost connection.
    """

    def __init__(self) -> None:
        self.clock: Clock = ManualClock()
        self.strings: dict[str, str] = {}
        self.expires: dict[str, int] = {}
        self.lists: dict[str, deque[str]] = {}
        self.down = False
        self.commands: list[str] = []

    def reset(self, clock: Clock | None = None) -> None:
        self.strings.clear()
        self.expires.clear()
        self.lists.clear()
        self.commands.clear()
        self.down = False
        if clock is not None:
            self.clock = clock
        LOG.debug("redis.reset", event="redis.reset")

    def check(self, cmd: str) -> None:
        self.commands.append(cmd)
        if self.down:
            raise RedisConnectionError(f"Error connecting to fake redis ({cmd})")

    def alive(self, key: str) -> bool:
        deadline = self.expires.get(key)
        if deadline is not None and self.clock.mono_ms() >= deadline:
            self.strings.pop(key, None)
            self.expires.pop(key, None)
        return key in self.strings or key in self.lists


# single server instance
SERVER = InMemRedisServer()


class FakeRedis:
    """Stand-in for `redis.asyncio.Redis` with `decode_responses=True`."""

    def __init__(self, server: InMemRedisServer | None = None) -> None:
        self.server = server or SERVER
        self.closed = False

    @classmethod
    def from_url(cls, url: str, **_: Any) -> FakeRedis:
        LOG.debug("redis.connect", event="redis.connect", url=url)
        return cls(SERVER)

    async def get(self, key: str) -> str | None:
        s = self.server
        s.check("GET")
        return s.strings.get(key) if s.alive(key) else None

    async def set(self, key: str, value: str, *, px: int | None = None, nx: bool = False) -> bool | None:
        s = self.server
        s.check("SET")
        if nx and s.alive(key):
            return None
        s.strings[key] = value
        if px is not None:
            s.expires[key] = s.clock.mono_ms() + int(px)
        else:
            s.expires.pop(key, None)
        return True

    async def delete(self, *keys: str) -> int:
        s = self.server
        s.check("DEL")
        n = 0
        for k in keys:
            if s.alive(k):
                n += 1
            s.strings.pop(k, None)
            s.expires.pop(k, None)
            s.lists.pop(k, None)
        return n

    async def incr(self, key: str) -> int:
        s = self.server
        s.check("INCR")
        cur = int(s.strings.get(key, "0")) + 1 if s.alive(key) else 1
        s.strings[key] = str(cur)
        return cur

    async def scan_iter(self, match: str | None = None, count: int | None = None):
        s = self.server
        s.check("SCAN")
        for k in list(s.strings) + list(s.lists):
            if s.alive(k) and (match is None or fnmatch.fnmatchcase(k, match)):
                yield k

    async def lpush(self, name: str, *values: str) -> int:
        s = self.server
        s.check("LPUSH")
        q = s.lists.setdefault(name, deque())
        for v in values:
            q.appendleft(v)
        return len(q)

    async def rpop(self, name: str) -> str | None:
        s = self.server
        s.check("RPOP")
        q = s.lists.get(name)
        if not q:
            return None
        v = q.pop()
        if not q:
            del s.lists[name]
        return v

    async def llen(self, name: str) -> int:
        s = self.server
        s.check("LLEN")
        return len(s.lists.get(name) or ())

    async def ping(self) -> bool:
        self.server.check("PING")
        return True

    async def aclose(self) -> None:
        self.closed = True
