from __future__ import annotations

"""
relikit.core.time
=================

Time source injected into everything that waits or expires: fault delays,
simulated store latency, retry backoff, and cache/KV TTLs. Production code
uses `SystemClock`; tests pass a `ManualClock` and never sleep for real.
"""

import asyncio
import time
from datetime import UTC, datetime
from typing import Protocol

from .types import Millis, MonotonicMs, TimestampMs


class Clock(Protocol):
    def now_dt(self) -> datetime: ...
    def now_ms(self) -> TimestampMs: ...
    def mono_ms(self) -> MonotonicMs: ...
    async def sleep_ms(self, ms: Millis) -> None: ...


class SystemClock:
    """Wall time for record timestamps, monotonic time for expiry."""

    def now_dt(self) -> datetime:
        return datetime.now(UTC)

    def now_ms(self) -> TimestampMs:
        return time.time_ns() // 1_000_000

    def mono_ms(self) -> MonotonicMs:
        return time.monotonic_ns() // 1_000_000

    async def sleep_ms(self, ms: Millis) -> None:
        if ms > 0:
            await asyncio.sleep(ms / 1000)
        else:
            await asyncio.sleep(0)


class ManualClock:
    """
    Test clock driven by a single millisecond counter.

    `sleep_ms` returns at once: it appends the requested delay to `sleeps`,
    moves the counter forward and yields to the event loop. `advance` moves
    the counter without recording anything (e.g. to let a TTL lapse).
    Monotonic time counts from construction.
    """

    def __init__(self, start_ms: Millis = 1_700_000_000_000) -> None:
        self.start_ms = start_ms
        self.elapsed_ms: Millis = 0
        self.sleeps: list[Millis] = []

    def now_ms(self) -> TimestampMs:
        return self.start_ms + self.elapsed_ms

    def now_dt(self) -> datetime:
        return datetime.fromtimestamp(self.now_ms() / 1000, tz=UTC)

    def mono_ms(self) -> MonotonicMs:
        return self.elapsed_ms

    def advance(self, ms: Millis) -> None:
        self.elapsed_ms += max(0, int(ms))

    async def sleep_ms(self, ms: Millis) -> None:
        self.sleeps.append(int(ms))
        self.advance(ms)
        await asyncio.sleep(0)
