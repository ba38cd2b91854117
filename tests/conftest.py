# conftest.py
from __future__ import annotations

import os
import random
import uuid

import pytest
import pytest_asyncio

from relikit.cache.layer import RecordCache
from relikit.core.config import AppConfig, CacheConfig, FailureConfigHolder, MessagingConfig, StoreConfig
from relikit.core.log import bind_context, configure_from_env, enable_stdout_logging, get_logger, log_context
from relikit.core.time import ManualClock
from relikit.faults.injector import FaultInjector
from relikit.runtime import build_runtime
from relikit.storage.memory import MemoryKV
from relikit.storage.records import KeyValueRecordStore
from relikit.transport.publisher import MessagePublisher
from relikit.transport.queue import ListQueueTransport
from tests.helpers.util import RecordingRandom


def pytest_addoption(parser):
    parser.addoption(
        "--log-json",
        action="store_true",
        default=False,
        help="Emit relikit logs in JSON format during tests",
    )


@pytest.fixture(scope="session", autouse=True)
def _configure_relikit_logging(request):
    configure_from_env()
    prefer_json = request.config.getoption("--log-json")
    if os.getenv("RELIKIT_LOG_STDOUT", "").lower() not in ("1", "true", "yes", "on"):
        enable_stdout_logging(level="DEBUG", json_output=prefer_json, pretty=not prefer_json)
    bind_context(role="pytest")


@pytest.fixture(scope="session")
def session_run_id():
    return uuid.uuid4().hex[:8]


@pytest.fixture(autouse=True)
def _test_log_context(request, session_run_id):
    log = get_logger("test")
    with log_context(test=request.node.name, test_run=session_run_id):
        log.debug("pytest.test.start", event="pytest.test.start")
        yield


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item, call):
    outcome = yield
    rep = outcome.get_result()
    if rep.when == "call":
        log = get_logger("test")
        with log_context(test=item.name):
            log.debug("pytest.test.finish", event="pytest.test.finish", outcome=rep.outcome)


@pytest.fixture
def tlog():
    return get_logger("test")


# ---------- building blocks ----------


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def kv(clock):
    return MemoryKV(clock=clock)


@pytest.fixture
def failures():
    return FailureConfigHolder()


@pytest.fixture
def rng():
    return RecordingRandom(1234)


@pytest.fixture
def injector(failures, rng, clock):
    return FaultInjector(failures, rng=rng, clock=clock)


@pytest.fixture
def store_cfg():
    return StoreConfig()


@pytest.fixture
def store(kv, store_cfg, injector, clock):
    return KeyValueRecordStore(kv, cfg=store_cfg, injector=injector, clock=clock)


@pytest.fixture
def cache(kv):
    return RecordCache(kv, CacheConfig(enabled=True, expiration_seconds=60))


@pytest.fixture
def messaging_cfg():
    return MessagingConfig(retry_attempts=3, retry_delay_ms=1000, poll_interval_ms=5, error_pause_ms=5)


@pytest.fixture
def publisher(kv, messaging_cfg, injector):
    return MessagePublisher(ListQueueTransport(kv), messaging_cfg, injector=injector)


def _overrides_from_marker(request) -> dict:
    m = request.node.get_closest_marker("cfg")
    return dict(m.kwargs) if m else {}


@pytest.fixture
def app_cfg(request):
    """AppConfig for the wired runtime; tweak per test with @pytest.mark.cfg(section={...})."""
    overrides = {
        "cache": {"enabled": True},
        "messaging": {"poll_interval_ms": 5, "error_pause_ms": 5},
        **_overrides_from_marker(request),
    }
    return AppConfig.load(overrides=overrides)


@pytest_asyncio.fixture
async def runtime(app_cfg, clock, kv):
    rt = await build_runtime(app_cfg, clock=clock, backend=kv, rng=random.Random(7))
    try:
        yield rt
    finally:
        await rt.close()


def pytest_configure(config):
    config.addinivalue_line("markers", "cfg(**sections): per-test AppConfig overrides for the runtime fixture")
