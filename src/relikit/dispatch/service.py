# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Record service: the caller-facing surface.

Reads go through the cache (read-through: a miss loads from the store and
populates the cache). Mutations are delegated to the configured dispatch
strategy. Administrative operations (reset, status, runtime failure config)
live here too.

Every method returns an `OperationResult`; nothing raises to the caller.
"""

from typing import Any

from ..api.outcomes import OperationResult, OutcomeStatus
from ..cache.layer import RecordCache
from ..core.config import FailureConfig, FailureConfigHolder
from ..core.log import get_logger, log_context
from ..protocol.messages import RecordDraft
from ..storage.records import RecordStore
from .strategies import MutationStrategy, failure_outcome


class RecordService:
    def __init__(
        self,
        *,
        store: RecordStore,
        cache: RecordCache,
        strategy: MutationStrategy,
        failures: FailureConfigHolder | None = None,
    ) -> None:
        self.store = store
        self.cache = cache
        self.strategy = strategy
        self.failures = failures or FailureConfigHolder()
        self.log = get_logger("service")

    @property
    def mode(self) -> str:
        return self.strategy.mode.value

    # ---------- reads ----------

    async def get(self, record_id: int) -> OperationResult:
        cached = await self.cache.get(record_id)
        if cached is not None:
            return OperationResult(status=OutcomeStatus.ok, record=cached, record_id=record_id)
        try:
            found = await self.store.get(record_id)
        except Exception as e:
            return failure_outcome(self.log, e, operation="service.get")
        if found is None:
            return OperationResult(
                status=OutcomeStatus.not_found, record_id=record_id, error=f"Record with ID {record_id} not found"
            )
        await self.cache.set(found)
        return OperationResult(status=OutcomeStatus.ok, record=found, record_id=record_id)

    async def get_by_email(self, email: str) -> OperationResult:
        cached = await self.cache.get_by_email(email)
        if cached is not None:
            return OperationResult(status=OutcomeStatus.ok, record=cached, record_id=cached.id)
        try:
            found = await self.store.get_by_email(email)
        except Exception as e:
            return failure_outcome(self.log, e, operation="service.get_by_email")
        if found is None:
            return OperationResult(status=OutcomeStatus.not_found, error=f"Record with email {email} not found")
        await self.cache.set(found)
        return OperationResult(status=OutcomeStatus.ok, record=found, record_id=found.id)

    async def list(self) -> OperationResult:
        cached = await self.cache.get_all()
        if cached is not None:
            return OperationResult(status=OutcomeStatus.ok, records=cached, count=len(cached))
        try:
            records = await self.store.list()
        except Exception as e:
            return failure_outcome(self.log, e, operation="service.list")
        await self.cache.set_all(records)
        return OperationResult(status=OutcomeStatus.ok, records=records, count=len(records))

    async def count(self) -> OperationResult:
        try:
            n = await self.store.count()
        except Exception as e:
            return failure_outcome(self.log, e, operation="service.count")
        return OperationResult(status=OutcomeStatus.ok, count=n)

    # ---------- mutations ----------

    async def create(self, draft: RecordDraft, *, correlation_id: str | None = None) -> OperationResult:
        return await self.strategy.create(draft, correlation_id=correlation_id)

    async def update(self, record_id: int, draft: RecordDraft, *, correlation_id: str | None = None) -> OperationResult:
        return await self.strategy.update(record_id, draft, correlation_id=correlation_id)

    async def delete(self, record_id: int, *, correlation_id: str | None = None) -> OperationResult:
        return await self.strategy.delete(record_id, correlation_id=correlation_id)

    # ---------- administration ----------

    async def reset(self) -> OperationResult:
        """Remove every record and every cache key."""
        with log_context(operation="reset"):
            try:
                removed = await self.store.clear()
            except Exception as e:
                return failure_outcome(self.log, e, operation="service.reset")
            cleared = await self.cache.invalidate_everything()
            self.log.info("service.reset", event="service.reset", removed=removed, cache_keys=cleared)
            return OperationResult(status=OutcomeStatus.no_content, count=removed)

    async def status(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "provider": self.store.provider,
            "mode": self.mode,
            "failures": self.failures.current().to_dict(),
            "cache": await self.cache.status(),
        }
        counted = await self.count()
        if counted.ok:
            out["count"] = counted.count
        else:
            out["error"] = counted.error
        return out

    def failure_config(self) -> FailureConfig:
        return self.failures.current()

    def update_failure_config(self, **changes: Any) -> FailureConfig:
        snapshot = self.failures.update(**changes)
        self.log.info("service.failures_updated", event="service.failures_updated", **snapshot.to_dict())
        return snapshot

    def reset_failure_config(self) -> FailureConfig:
        snapshot = self.failures.reset()
        self.log.info("service.failures_reset", event="service.failures_reset")
        return snapshot
