# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Mutation dispatch strategies.

The strategy is chosen once, at construction (`build_strategy`), never per call:

- `DirectStrategy` applies the mutation to the record store, then invalidates
  the affected cache keys and returns the authoritative result.
- `AsyncStrategy` never touches the store. It publishes a mutation message,
  invalidates the cache right away (before the write has happened) and returns
  `accepted` with the message id. Readers may see stale data until the queue
  worker applies the message.

By-email invalidation: before mutating, both strategies peek the cached copy by
id (cache only, no store read) to learn the email currently cached for that id.
That email, the new email (update) and the id key are dropped together with
the all-records snapshot.
"""

import logging

from ..api.errors import RelikitError
from ..api.outcomes import OperationResult, OutcomeStatus, outcome_from_error
from ..cache.layer import RecordCache
from ..core.config import DispatchMode
from ..core.log import get_logger, log_context
from ..core.time import Clock, SystemClock
from ..protocol.messages import (
    CreateRecordMessage,
    DeleteRecordMessage,
    RecordDraft,
    UpdateRecordMessage,
)
from ..storage.records import RecordStore
from ..transport.publisher import MessagePublisher


def failure_outcome(log: logging.LoggerAdapter, exc: BaseException, *, operation: str) -> OperationResult:
    """Shared error translation; unexpected (non-taxonomy) errors are logged with a traceback."""
    if isinstance(exc, RelikitError):
        log.debug(f"{operation}.failed", event=f"{operation}.failed", kind=exc.kind.value, error=str(exc))
    else:
        log.error(f"{operation}.error", event=f"{operation}.error", exc_info=exc)
    return outcome_from_error(exc)


async def _stale_email(cache: RecordCache, record_id: int) -> str | None:
    cached = await cache.get(record_id)
    return cached.email if cached else None


async def _invalidate(cache: RecordCache, record_id: int | None, *emails: str | None) -> None:
    if record_id is not None:
        await cache.invalidate(record_id)
    for email in dict.fromkeys(e for e in emails if e):
        await cache.invalidate_by_email(email)
    await cache.invalidate_all()


class DirectStrategy:
    mode = DispatchMode.direct

    def __init__(self, store: RecordStore, cache: RecordCache) -> None:
        self.store = store
        self.cache = cache
        self.log = get_logger("dispatch.direct")

    async def create(self, draft: RecordDraft, *, correlation_id: str | None = None) -> OperationResult:
        with log_context(correlation_id=correlation_id, operation="create"):
            try:
                created = await self.store.create(draft.to_record())
            except Exception as e:
                return failure_outcome(self.log, e, operation="direct.create")
            await _invalidate(self.cache, created.id, created.email)
            self.log.debug("direct.created", event="direct.created", record_id=created.id)
            return OperationResult(status=OutcomeStatus.created, record=created, record_id=created.id)

    async def update(self, record_id: int, draft: RecordDraft, *, correlation_id: str | None = None) -> OperationResult:
        with log_context(correlation_id=correlation_id, operation="update"):
            stale = await _stale_email(self.cache, record_id)
            try:
                updated = await self.store.update(draft.to_record(record_id=record_id))
            except Exception as e:
                return failure_outcome(self.log, e, operation="direct.update")
            await _invalidate(self.cache, record_id, stale, updated.email)
            self.log.debug("direct.updated", event="direct.updated", record_id=record_id)
            return OperationResult(status=OutcomeStatus.ok, record=updated, record_id=record_id)

    async def delete(self, record_id: int, *, correlation_id: str | None = None) -> OperationResult:
        with log_context(correlation_id=correlation_id, operation="delete"):
            stale = await _stale_email(self.cache, record_id)
            try:
                deleted = await self.store.delete(record_id)
            except Exception as e:
                return failure_outcome(self.log, e, operation="direct.delete")
            if not deleted:
                return OperationResult(
                    status=OutcomeStatus.not_found, record_id=record_id, error=f"Record with ID {record_id} not found"
                )
            await _invalidate(self.cache, record_id, stale)
            self.log.debug("direct.deleted", event="direct.deleted", record_id=record_id)
            return OperationResult(status=OutcomeStatus.no_content, record_id=record_id)


class AsyncStrategy:
    mode = DispatchMode.async_

    def __init__(self, publisher: MessagePublisher, cache: RecordCache, *, clock: Clock | None = None) -> None:
        self.publisher = publisher
        self.cache = cache
        self.clock: Clock = clock or SystemClock()
        self.log = get_logger("dispatch.async")

    async def create(self, draft: RecordDraft, *, correlation_id: str | None = None) -> OperationResult:
        # id stays 0: the store assigns it when the worker applies the message
        record = draft.to_record().model_copy(update={"created_at": self.clock.now_dt()})
        msg = CreateRecordMessage(record=record, correlation_id=correlation_id)
        with log_context(correlation_id=correlation_id, message_id=msg.message_id, operation="create"):
            try:
                await self.publisher.publish(msg)
            except Exception as e:
                return failure_outcome(self.log, e, operation="async.create")
            await _invalidate(self.cache, None, record.email)
            self.log.debug("async.accepted", event="async.accepted")
            return OperationResult(status=OutcomeStatus.accepted, record=record, message_id=msg.message_id)

    async def update(self, record_id: int, draft: RecordDraft, *, correlation_id: str | None = None) -> OperationResult:
        record = draft.to_record(record_id=record_id).model_copy(update={"updated_at": self.clock.now_dt()})
        msg = UpdateRecordMessage(record=record, correlation_id=correlation_id)
        with log_context(correlation_id=correlation_id, message_id=msg.message_id, operation="update"):
            stale = await _stale_email(self.cache, record_id)
            try:
                await self.publisher.publish(msg)
            except Exception as e:
                return failure_outcome(self.log, e, operation="async.update")
            await _invalidate(self.cache, record_id, stale, record.email)
            self.log.debug("async.accepted", event="async.accepted", record_id=record_id)
            return OperationResult(status=OutcomeStatus.accepted, record_id=record_id, message_id=msg.message_id)

    async def delete(self, record_id: int, *, correlation_id: str | None = None) -> OperationResult:
        msg = DeleteRecordMessage(record_id=record_id, correlation_id=correlation_id)
        with log_context(correlation_id=correlation_id, message_id=msg.message_id, operation="delete"):
            stale = await _stale_email(self.cache, record_id)
            try:
                await self.publisher.publish(msg)
            except Exception as e:
                return failure_outcome(self.log, e, operation="async.delete")
            await _invalidate(self.cache, record_id, stale)
            self.log.debug("async.accepted", event="async.accepted", record_id=record_id)
            return OperationResult(status=OutcomeStatus.accepted, record_id=record_id, message_id=msg.message_id)


MutationStrategy = DirectStrategy | AsyncStrategy


def build_strategy(
    mode: DispatchMode | str,
    *,
    cache: RecordCache,
    store: RecordStore | None = None,
    publisher: MessagePublisher | None = None,
    clock: Clock | None = None,
) -> MutationStrategy:
    mode = DispatchMode(mode)
    if mode is DispatchMode.direct:
        if store is None:
            raise ValueError("direct dispatch requires a record store")
        return DirectStrategy(store, cache)
    if publisher is None:
        raise ValueError("async dispatch requires a message publisher")
    return AsyncStrategy(publisher, cache, clock=clock)


__all__ = [
    "AsyncStrategy",
    "DirectStrategy",
    "MutationStrategy",
    "build_strategy",
    "failure_outcome",
]
