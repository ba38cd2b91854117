# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Write-through, TTL-based record cache.

Keys (namespace defaults to ``cache:``):
  - ``cache:record:{id}``           one record by id
  - ``cache:record:email:{email}``  the same record by email
  - ``cache:all_records``           snapshot of the full ordered list

`set()` writes the id and email keys with the same TTL but independently, so
one of them may expire slightly before the other. Callers must treat the cache
as best-effort: when disabled every read is a miss and every write is a no-op,
and backend failures are logged and absorbed, never raised.
"""

import logging
from typing import Any

from ..core.config import CacheConfig
from ..core.log import get_logger, swallow
from ..protocol.messages import Record, RecordListAdapter
from ..storage.kv import KVBackend


class RecordCache:
    def __init__(self, backend: KVBackend, cfg: CacheConfig | None = None) -> None:
        self.backend = backend
        self.cfg = cfg or CacheConfig()
        self.log = get_logger("cache")
        ns = self.cfg.namespace
        self._id_prefix = f"{ns}record:"
        self._email_prefix = f"{ns}record:email:"
        self._all_key = f"{ns}all_records"

    @property
    def enabled(self) -> bool:
        return self.cfg.enabled

    def id_key(self, record_id: int) -> str:
        return f"{self._id_prefix}{record_id}"

    def email_key(self, email: str) -> str:
        return f"{self._email_prefix}{email}"

    @property
    def all_key(self) -> str:
        return self._all_key

    def _guard(self, code: str, msg: str, **extra: Any):
        return swallow(logger=self.log, level=logging.ERROR, code=code, msg=msg, extra=extra)

    # ---------- reads ----------

    async def get(self, record_id: int) -> Record | None:
        if not self.enabled:
            return None
        found: Record | None = None
        with self._guard("cache.get.error", "cache read failed", record_id=record_id):
            raw = await self.backend.get(self.id_key(record_id))
            found = Record.model_validate_json(raw) if raw is not None else None
        code = "cache.hit" if found else "cache.miss"
        self.log.info(code, event=code, record_id=record_id)
        return found

    async def get_by_email(self, email: str) -> Record | None:
        if not self.enabled:
            return None
        found: Record | None = None
        with self._guard("cache.get_by_email.error", "cache read by email failed", email=email):
            raw = await self.backend.get(self.email_key(email))
            found = Record.model_validate_json(raw) if raw is not None else None
        code = "cache.hit_email" if found else "cache.miss_email"
        self.log.info(code, event=code, email=email)
        return found

    async def get_all(self) -> list[Record] | None:
        if not self.enabled:
            return None
        found: list[Record] | None = None
        with self._guard("cache.get_all.error", "cache read of all records failed"):
            raw = await self.backend.get(self.all_key)
            found = RecordListAdapter.validate_json(raw) if raw is not None else None
        code = "cache.hit_all" if found is not None else "cache.miss_all"
        self.log.info(code, event=code)
        return found

    # ---------- writes ----------

    async def set(self, record: Record) -> None:
        if not self.enabled:
            return
        with self._guard("cache.set.error", "cache write failed", record_id=record.id):
            payload = record.to_json()
            ttl = self.cfg.ttl_ms
            await self.backend.set(self.id_key(record.id), payload, ttl_ms=ttl)
            await self.backend.set(self.email_key(record.email), payload, ttl_ms=ttl)
            self.log.info(
                "cache.set", event="cache.set", record_id=record.id, email=record.email, ttl_s=self.cfg.expiration_seconds
            )

    async def set_all(self, records: list[Record]) -> None:
        if not self.enabled:
            return
        with self._guard("cache.set_all.error", "cache write of all records failed"):
            payload = RecordListAdapter.dump_json(records).decode("utf-8")
            await self.backend.set(self.all_key, payload, ttl_ms=self.cfg.ttl_ms)
            self.log.info("cache.set_all", event="cache.set_all", count=len(records), ttl_s=self.cfg.expiration_seconds)

    # ---------- invalidation ----------

    async def invalidate(self, record_id: int) -> None:
        if not self.enabled:
            return
        with self._guard("cache.invalidate.error", "cache invalidation failed", record_id=record_id):
            await self.backend.delete(self.id_key(record_id))
            self.log.info("cache.invalidate", event="cache.invalidate", record_id=record_id)

    async def invalidate_by_email(self, email: str) -> None:
        if not self.enabled:
            return
        with self._guard("cache.invalidate_email.error", "cache invalidation by email failed", email=email):
            await self.backend.delete(self.email_key(email))
            self.log.info("cache.invalidate_email", event="cache.invalidate_email", email=email)

    async def invalidate_all(self) -> None:
        """Drop the all-records snapshot."""
        if not self.enabled:
            return
        with self._guard("cache.invalidate_all.error", "cache invalidation of all records failed"):
            await self.backend.delete(self.all_key)
            self.log.info("cache.invalidate_all", event="cache.invalidate_all")

    async def invalidate_everything(self) -> int:
        """Delete every key under the cache namespace (administrative reset)."""
        if not self.enabled:
            return 0
        removed = 0
        with self._guard("cache.clear.error", "cache clear failed"):
            keys = await self.backend.keys(self.cfg.namespace)
            if keys:
                removed = await self.backend.delete(*keys)
                self.log.info("cache.cleared", event="cache.cleared", keys=len(keys))
            else:
                self.log.info("cache.clear_empty", event="cache.clear_empty")
        return removed

    # ---------- status ----------

    async def status(self) -> dict[str, Any]:
        out: dict[str, Any] = {"enabled": self.enabled, "expiration_seconds": self.cfg.expiration_seconds}
        try:
            out["key_count"] = len(await self.backend.keys(self.cfg.namespace))
            out["connection"] = "connected" if await self.backend.ping() else "disconnected"
        except Exception as e:
            self.log.error("cache.status.error", event="cache.status.error", exc_info=True)
            out["error"] = str(e)
        return out
