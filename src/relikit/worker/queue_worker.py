# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Queue worker.

One loop per mutation kind (create, update, delete), each on its own queue and
its own task, so a slow or failing queue never holds up the others:

    Idle -> Polling -> Processing -> (Idle | Backoff) -> Polling ... -> Stopped

- Pop is non-blocking; an empty queue waits `poll_interval_ms` on the stop event.
- Processing retries transient failures up to `retry_attempts` times, waiting
  `retry_delay_ms * attempt` between attempts. Non-transient failures (duplicate
  key, not found) stop retrying at once.
- Undecodable messages are dropped immediately.
- A message that still fails after the last attempt is logged and dropped.
  There is no dead-letter queue.
- `stop()` is cooperative: loops leave the poll wait promptly, and a message
  already being processed finishes first.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, TypeVar

from ..api.errors import DeserializationFailure, DuplicateKey, classify_error
from ..cache.layer import RecordCache
from ..core.config import MessagingConfig
from ..core.log import get_logger, log_context, swallow, warn_once
from ..core.time import Clock, SystemClock
from ..protocol.messages import (
    CreateRecordMessage,
    DeleteRecordMessage,
    MutationKind,
    UpdateRecordMessage,
    decode_message,
)
from ..storage.records import RecordStore
from ..transport.queue import QueueTransport

T = TypeVar("T")


class QueueState(str, Enum):
    idle = "idle"
    polling = "polling"
    processing = "processing"
    backoff = "backoff"
    stopped = "stopped"


@dataclass
class QueueStats:
    queue: str
    state: QueueState = QueueState.idle
    processed: int = 0
    failed: int = 0
    dropped_duplicate: int = 0
    dropped_invalid: int = 0

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["state"] = self.state.value
        return out


async def run_with_retry(
    op: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    delay_ms: int,
    clock: Clock,
    log: logging.LoggerAdapter | None = None,
    on_retry: Callable[[int, BaseException], None] | None = None,
) -> T:
    """
    Call `op` up to `attempts` times with linear backoff (`delay_ms * attempt`).

    Errors whose kind is not transient are re-raised immediately. After the
    last attempt the final error is re-raised.
    """
    log = log or get_logger("worker.retry")
    attempt = 1
    while True:
        try:
            return await op()
        except Exception as e:
            kind = classify_error(e)
            if not kind.transient or attempt >= attempts:
                raise
            wait_ms = delay_ms * attempt
            log.warning(
                "worker.retry",
                event="worker.retry",
                attempt=attempt,
                max_attempts=attempts,
                kind=kind.value,
                error=str(e),
                wait_ms=wait_ms,
            )
            if on_retry is not None:
                on_retry(attempt, e)
            await clock.sleep_ms(wait_ms)
            attempt += 1


AnyMessage = CreateRecordMessage | UpdateRecordMessage | DeleteRecordMessage


class QueueWorker:
    def __init__(
        self,
        *,
        store: RecordStore,
        transport: QueueTransport,
        cfg: MessagingConfig | None = None,
        cache: RecordCache | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.store = store
        self.transport = transport
        self.cfg = cfg or MessagingConfig()
        self.cache = cache
        self.clock: Clock = clock or SystemClock()

        self.queues: dict[MutationKind, str] = {
            MutationKind.create: self.cfg.create_queue,
            MutationKind.update: self.cfg.update_queue,
            MutationKind.delete: self.cfg.delete_queue,
        }
        self.stats: dict[MutationKind, QueueStats] = {k: QueueStats(queue=q) for k, q in self.queues.items()}

        self._stop = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()
        self.log = get_logger("worker")

    # ---------- lifecycle ----------

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        if self._tasks:
            return
        self._stop.clear()
        for kind in self.queues:
            self._spawn(self._queue_loop(kind), name=f"queue.{kind.value}")
        self.log.info("worker.started", event="worker.started", queues=list(self.queues.values()))

    async def stop(self) -> None:
        """Signal the loops and wait for them; in-flight messages finish first."""
        self._stop.set()
        tasks = list(self._tasks)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        for st in self.stats.values():
            st.state = QueueState.stopped
        self.log.info("worker.stopped", event="worker.stopped", stats=self.snapshot())

    async def wait_stopped(self) -> None:
        await self._stop.wait()

    def request_stop(self) -> None:
        """Thread-unsafe, loop-local stop signal (signal handlers, tests)."""
        self._stop.set()

    def _spawn(self, coro, *, name: str) -> None:
        t = asyncio.create_task(coro, name=name)
        self._tasks.add(t)

        def _done(task: asyncio.Task) -> None:
            self._tasks.discard(task)
            if task.cancelled():
                return
            exc = task.exception()
            if exc is not None:
                self.log.error(
                    "worker.task.crashed", event="worker.task.crashed", task=task.get_name(), exc_info=exc
                )

        t.add_done_callback(_done)

    def snapshot(self) -> dict[str, dict[str, Any]]:
        return {kind.value: st.to_dict() for kind, st in self.stats.items()}

    # ---------- loops ----------

    async def _pause(self, ms: int) -> None:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=max(0.0, ms / 1000.0))
        except TimeoutError:
            pass

    async def _queue_loop(self, kind: MutationKind) -> None:
        st = self.stats[kind]
        queue = self.queues[kind]
        self.log.debug("worker.queue.started", event="worker.queue.started", queue=queue)
        try:
            while not self._stop.is_set():
                try:
                    handled = await self.process_next(kind)
                except Exception as e:
                    warn_once(
                        self.log,
                        f"worker.poll.error.{queue}",
                        "queue pop failed (suppressed next occurrences)",
                        level=logging.ERROR,
                        queue=queue,
                        error=str(e),
                    )
                    self.log.debug("worker.poll.error", event="worker.poll.error", queue=queue, error=str(e))
                    st.state = QueueState.idle
                    await self._pause(self.cfg.error_pause_ms)
                    continue
                if not handled:
                    await self._pause(self.cfg.poll_interval_ms)
        finally:
            st.state = QueueState.stopped
            self.log.debug("worker.queue.stopped", event="worker.queue.stopped", queue=queue)

    async def process_next(self, kind: MutationKind) -> bool:
        """Pop and handle one message. Returns False when the queue was empty."""
        st = self.stats[kind]
        st.state = QueueState.polling
        raw = await self.transport.pop(self.queues[kind])
        if raw is None:
            st.state = QueueState.idle
            return False
        st.state = QueueState.processing
        try:
            await self.handle(kind, raw)
        finally:
            st.state = QueueState.idle
        return True

    async def drain(self) -> int:
        """Process every queued message without the poll loops; returns how many were popped."""
        total = 0
        progressed = True
        while progressed:
            progressed = False
            for kind in self.queues:
                if await self.process_next(kind):
                    total += 1
                    progressed = True
        return total

    # ---------- message handling ----------

    async def handle(self, kind: MutationKind, raw: str) -> None:
        st = self.stats[kind]
        queue = self.queues[kind]
        try:
            msg = decode_message(raw, expect=kind)
        except DeserializationFailure as e:
            st.dropped_invalid += 1
            self.log.error("worker.message.invalid", event="worker.message.invalid", queue=queue, error=str(e))
            return

        def _backoff(_attempt: int, _exc: BaseException) -> None:
            st.state = QueueState.backoff

        async def _run_attempt() -> None:
            st.state = QueueState.processing
            await self._apply(msg)

        with log_context(queue=queue, message_id=msg.message_id, correlation_id=msg.correlation_id):
            try:
                await run_with_retry(
                    _run_attempt,
                    attempts=self.cfg.retry_attempts,
                    delay_ms=self.cfg.retry_delay_ms,
                    clock=self.clock,
                    log=self.log,
                    on_retry=_backoff,
                )
            except DuplicateKey as e:
                st.dropped_duplicate += 1
                self.log.warning("worker.message.duplicate", event="worker.message.duplicate", email=e.email)
            except Exception as e:
                st.failed += 1
                self.log.error(
                    "worker.message.dropped",
                    event="worker.message.dropped",
                    kind=classify_error(e).value,
                    error=str(e),
                    attempts=self.cfg.retry_attempts,
                )
            else:
                st.processed += 1
            finally:
                st.state = QueueState.processing

    async def _apply(self, msg: AnyMessage) -> None:
        if isinstance(msg, CreateRecordMessage):
            created = await self.store.create(msg.record)
            self.log.info("worker.created", event="worker.created", record_id=created.id)
            await self._invalidate(created.id, created.email)
        elif isinstance(msg, UpdateRecordMessage):
            updated = await self.store.update(msg.record)
            self.log.info("worker.updated", event="worker.updated", record_id=updated.id)
            await self._invalidate(updated.id, updated.email)
        else:
            if await self.store.delete(msg.record_id):
                self.log.info("worker.deleted", event="worker.deleted", record_id=msg.record_id)
            else:
                self.log.warning("worker.delete.missing", event="worker.delete.missing", record_id=msg.record_id)
            await self._invalidate(msg.record_id, None)

    async def _invalidate(self, record_id: int, email: str | None) -> None:
        """Drop cache entries written by readers between publish and apply."""
        if self.cache is None:
            return
        with swallow(logger=self.log, level=logging.WARNING, code="worker.cache.invalidate", msg="cache invalidation failed"):
            await self.cache.invalidate(record_id)
            if email:
                await self.cache.invalidate_by_email(email)
            await self.cache.invalidate_all()
