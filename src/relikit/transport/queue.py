# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Queue transport abstraction.

A queue is a named list: producers push to the head, consumers pop from the
tail, which yields FIFO order. Popping removes the message; there is no
acknowledgment or visibility timeout, so a consumer crash between pop and
apply loses that message.
"""

from typing import Protocol, runtime_checkable

from ..storage.kv import KVBackend


@runtime_checkable
class QueueTransport(Protocol):
    async def push(self, queue: str, payload: str) -> None: ...
    async def pop(self, queue: str) -> str | None:
        """Non-blocking; returns None when the queue is empty."""
        ...

    async def length(self, queue: str) -> int: ...


class ListQueueTransport:
    """QueueTransport over KVBackend lists (Redis LPUSH/RPOP or the in-memory backend)."""

    def __init__(self, backend: KVBackend) -> None:
        self.backend = backend

    async def push(self, queue: str, payload: str) -> None:
        await self.backend.push(queue, payload)

    async def pop(self, queue: str) -> str | None:
        return await self.backend.pop(queue)

    async def length(self, queue: str) -> int:
        return await self.backend.length(queue)
