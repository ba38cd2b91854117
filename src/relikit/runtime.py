# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Composition root.

`build_runtime(cfg)` wires one process worth of components from an `AppConfig`:

    KV backend (memory | redis) --+--> cache layer
                                  +--> queue transport --> publisher
    record store (kv | sql) <---- fault injector + admission controller
    dispatch strategy (direct | async) --> RecordService
    QueueWorker (store + transport + cache)

The store, and therefore its admission controller, is shared by the request
path and the worker loops. The KV backend is in-memory only for the `memory`
store backend; `redis` and `sql` stores use Redis for the cache and queues
unless a backend is passed in.
"""

import random
from dataclasses import dataclass

from .cache.layer import RecordCache
from .core.config import AppConfig, FailureConfigHolder, StoreBackend
from .core.log import get_logger
from .core.time import Clock, SystemClock
from .dispatch.service import RecordService
from .dispatch.strategies import build_strategy
from .faults.injector import FaultInjector
from .storage.kv import KVBackend
from .storage.memory import MemoryKV
from .storage.records import KeyValueRecordStore, RecordStore
from .transport.publisher import MessagePublisher
from .transport.queue import ListQueueTransport
from .worker.queue_worker import QueueWorker


@dataclass
class Runtime:
    cfg: AppConfig
    clock: Clock
    backend: KVBackend
    failures: FailureConfigHolder
    injector: FaultInjector
    store: RecordStore
    cache: RecordCache
    publisher: MessagePublisher
    service: RecordService
    worker: QueueWorker

    async def close(self) -> None:
        if self.worker.running:
            await self.worker.stop()
        await self.store.close()
        close = getattr(self.backend, "close", None)
        if close is not None:
            await close()


def _build_backend(cfg: AppConfig, clock: Clock) -> KVBackend:
    if cfg.store.backend is StoreBackend.memory:
        return MemoryKV(clock=clock)
    from .storage.redis_kv import RedisKV

    return RedisKV.from_url(cfg.redis_url)


async def _build_store(cfg: AppConfig, backend: KVBackend, **kwargs) -> RecordStore:
    if cfg.store.backend is StoreBackend.sql:
        from .storage.sql import SqlRecordStore

        sql = SqlRecordStore.from_url(cfg.store.sql_url, cfg=cfg.store, **kwargs)
        await sql.init()
        return sql
    return KeyValueRecordStore(backend, cfg=cfg.store, **kwargs)


async def build_runtime(
    cfg: AppConfig | None = None,
    *,
    clock: Clock | None = None,
    backend: KVBackend | None = None,
    rng: random.Random | None = None,
) -> Runtime:
    cfg = cfg or AppConfig.load()
    clock = clock or SystemClock()
    log = get_logger("runtime")

    backend = backend if backend is not None else _build_backend(cfg, clock)
    failures = FailureConfigHolder(cfg.failures)
    injector = FaultInjector(failures, rng=rng, seed=cfg.seed, clock=clock)

    store = await _build_store(cfg, backend, injector=injector, clock=clock)
    cache = RecordCache(backend, cfg.cache)
    publisher = MessagePublisher(ListQueueTransport(backend), cfg.messaging, injector=injector)
    strategy = build_strategy(cfg.dispatch_mode, cache=cache, store=store, publisher=publisher, clock=clock)
    service = RecordService(store=store, cache=cache, strategy=strategy, failures=failures)
    worker = QueueWorker(
        store=store, transport=publisher.transport, cfg=cfg.messaging, cache=cache, clock=clock
    )

    log.info(
        "runtime.built",
        event="runtime.built",
        store=store.provider,
        mode=cfg.dispatch_mode.value,
        cache=cfg.cache.enabled,
        failures=cfg.failures.enabled,
    )
    return Runtime(
        cfg=cfg,
        clock=clock,
        backend=backend,
        failures=failures,
        injector=injector,
        store=store,
        cache=cache,
        publisher=publisher,
        service=service,
        worker=worker,
    )
