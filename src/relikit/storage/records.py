# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Data store adapters.

Every public operation runs the same pipeline:

    fault injector (read|write) -> admission slot (scoped) -> simulated latency -> backend call

Latency is weighted by operation: point reads use `read_latency_ms`, writes use
`write_latency_ms` and full scans use `scan_latency_ms`. Subclasses implement
only the underscored backend calls.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from ..api.errors import DuplicateKey, NotFound
from ..core.config import StoreConfig
from ..core.log import get_logger, swallow
from ..core.time import Clock, SystemClock
from ..faults.injector import FaultInjector, OperationKind
from ..protocol.messages import Record
from .admission import AdmissionController
from .kv import KVBackend

T = TypeVar("T")


class RecordStore:
    """Base adapter: the fault/admission/latency pipeline around backend calls."""

    provider = "abstract"

    def __init__(
        self,
        *,
        cfg: StoreConfig | None = None,
        injector: FaultInjector | None = None,
        admission: AdmissionController | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.cfg = cfg or StoreConfig()
        self.clock: Clock = clock or SystemClock()
        self.injector = injector or FaultInjector(clock=self.clock)
        self.admission = admission or AdmissionController(self.cfg.max_concurrent_clients)
        self.log = get_logger(f"storage.{self.provider}")

    async def _run(self, name: str, kind: OperationKind, latency_ms: int, call: Callable[[], Awaitable[T]]) -> T:
        await self.injector.simulate(kind, operation=name)
        with self.admission.slot():
            await self.clock.sleep_ms(latency_ms)
            return await call()

    # ---------- public operations ----------

    async def get(self, record_id: int) -> Record | None:
        return await self._run("get", OperationKind.read, self.cfg.read_latency_ms, lambda: self._get(record_id))

    async def get_by_email(self, email: str) -> Record | None:
        return await self._run(
            "get_by_email", OperationKind.read, self.cfg.read_latency_ms, lambda: self._get_by_email(email)
        )

    async def create(self, record: Record) -> Record:
        """Persist a new record. Any caller-supplied id is ignored; a fresh one is assigned."""
        fresh = record.model_copy(update={"id": 0, "created_at": self.clock.now_dt(), "updated_at": None})
        created = await self._run("create", OperationKind.write, self.cfg.write_latency_ms, lambda: self._create(fresh))
        self.log.debug("store.created", event="store.created", record_id=created.id)
        return created

    async def update(self, record: Record) -> Record:
        """Overwrite attributes of an existing record. Raises NotFound if the id is unknown."""
        return await self._run(
            "update", OperationKind.write, self.cfg.write_latency_ms, lambda: self._update(record, self.clock.now_dt())
        )

    async def delete(self, record_id: int) -> bool:
        return await self._run("delete", OperationKind.write, self.cfg.read_latency_ms, lambda: self._delete(record_id))

    async def list(self) -> list[Record]:
        """All records ordered by id ascending."""
        records = await self._run("list", OperationKind.read, self.cfg.scan_latency_ms, self._list)
        return sorted(records, key=lambda r: r.id)

    async def count(self) -> int:
        return await self._run("count", OperationKind.read, self.cfg.read_latency_ms, self._count)

    async def clear(self) -> int:
        removed = await self._run("clear", OperationKind.write, self.cfg.scan_latency_ms, self._clear)
        self.log.info("store.cleared", event="store.cleared", removed=removed)
        return removed

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    # ---------- backend calls ----------

    async def _get(self, record_id: int) -> Record | None:
        raise NotImplementedError

    async def _get_by_email(self, email: str) -> Record | None:
        raise NotImplementedError

    async def _create(self, record: Record) -> Record:
        raise NotImplementedError

    async def _update(self, record: Record, now) -> Record:
        raise NotImplementedError

    async def _delete(self, record_id: int) -> bool:
        raise NotImplementedError

    async def _list(self) -> list[Record]:
        raise NotImplementedError

    async def _count(self) -> int:
        raise NotImplementedError

    async def _clear(self) -> int:
        raise NotImplementedError


class KeyValueRecordStore(RecordStore):
    """
    Records as JSON on a KVBackend.

    Layout (prefix defaults to ``record:``):
      - ``record:{id}``          record JSON
      - ``record:email:{email}`` id owning the email (claimed with set-if-absent)
      - ``record:id:counter``    monotonic id counter; never reset, so ids are not reused
    """

    provider = "kv"

    def __init__(self, backend: KVBackend, **kwargs) -> None:
        super().__init__(**kwargs)
        self.backend = backend
        self._prefix = self.cfg.key_prefix

    def _record_key(self, record_id: int) -> str:
        return f"{self._prefix}{record_id}"

    def _email_key(self, email: str) -> str:
        return f"{self._prefix}email:{email}"

    @property
    def _counter_key(self) -> str:
        return f"{self._prefix}id:counter"

    def _is_record_key(self, key: str) -> bool:
        return key[len(self._prefix) :].isdigit()

    async def ping(self) -> bool:
        return await self.backend.ping()

    async def _get(self, record_id: int) -> Record | None:
        raw = await self.backend.get(self._record_key(record_id))
        return Record.from_json(raw) if raw is not None else None

    async def _release_claim(self, email: str, owner: int) -> None:
        """Drop an email claim whose record write failed, so a retry can claim it again."""
        key = self._email_key(email)
        with swallow(logger=self.log, level=logging.WARNING, code="store.claim.release", msg="claim release failed"):
            if await self.backend.get(key) == str(owner):
                await self.backend.delete(key)

    async def _get_by_email(self, email: str) -> Record | None:
        owner = await self.backend.get(self._email_key(email))
        if owner is None:
            return None
        return await self._get(int(owner))

    async def _create(self, record: Record) -> Record:
        new_id = await self.backend.incr(self._counter_key)
        if not await self.backend.set_if_absent(self._email_key(record.email), str(new_id)):
            raise DuplicateKey(record.email)
        created = record.model_copy(update={"id": new_id})
        try:
            await self.backend.set(self._record_key(new_id), created.to_json())
        except Exception:
            await self._release_claim(record.email, new_id)
            raise
        return created

    async def _update(self, record: Record, now) -> Record:
        raw = await self.backend.get(self._record_key(record.id))
        if raw is None:
            raise NotFound(f"Record with ID {record.id} not found")
        existing = Record.from_json(raw)

        email_changed = record.email != existing.email
        if email_changed and not await self.backend.set_if_absent(self._email_key(record.email), str(record.id)):
            raise DuplicateKey(record.email)

        updated = existing.model_copy(
            update={
                "name": record.name,
                "email": record.email,
                "phone": record.phone,
                "address": record.address,
                "updated_at": now,
            }
        )
        try:
            await self.backend.set(self._record_key(record.id), updated.to_json())
        except Exception:
            if email_changed:
                await self._release_claim(record.email, record.id)
            raise
        if email_changed:
            await self.backend.delete(self._email_key(existing.email))
        return updated

    async def _delete(self, record_id: int) -> bool:
        raw = await self.backend.get(self._record_key(record_id))
        if raw is None:
            return False
        existing = Record.from_json(raw)
        await self.backend.delete(self._record_key(record_id), self._email_key(existing.email))
        return True

    async def _list(self) -> list[Record]:
        out: list[Record] = []
        for key in await self.backend.keys(self._prefix):
            if not self._is_record_key(key):
                continue
            raw = await self.backend.get(key)
            if raw is not None:
                out.append(Record.from_json(raw))
        return out

    async def _count(self) -> int:
        return sum(1 for k in await self.backend.keys(self._prefix) if self._is_record_key(k))

    async def _clear(self) -> int:
        keys = [k for k in await self.backend.keys(self._prefix) if k != self._counter_key]
        removed = sum(1 for k in keys if self._is_record_key(k))
        if keys:
            await self.backend.delete(*keys)
        return removed
