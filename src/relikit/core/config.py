from __future__ import annotations

"""
relikit.core.config
===================

Strongly-typed configuration for the simulation harness.
- No external deps; optional JSON file loading.
- `load()` merges: JSON file -> environment -> explicit overrides (later wins).
- `FailureConfig` is an immutable snapshot; runtime changes go through
  `FailureConfigHolder`, which swaps whole snapshots (read-copy-update) so
  concurrent readers never see a half-applied change.

If a config file path is not provided or not found, sane defaults are used.
"""

import json
import os
import threading
from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any

from .types import DEFAULT_CACHE_NAMESPACE, DEFAULT_KEY_PREFIX
from .utils import truthy


def _try_load_json(path: Path | None) -> dict[str, Any]:
    if not path:
        return {}
    try:
        if path.exists():
            return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        # Fail soft (callers may still override)
        pass
    return {}


def _check_rate(name: str, value: float) -> None:
    if not 0.0 <= float(value) <= 1.0:
        raise ValueError(f"{name} must be within [0, 1], got {value!r}")


def _check_non_negative(name: str, value: int) -> None:
    if int(value) < 0:
        raise ValueError(f"{name} must be non-negative, got {value!r}")


# ---------------------------------------------------------------------------


# camelCase option names accepted from external configuration sources
_FAILURE_ALIASES: dict[str, str] = {
    "enabled": "enabled",
    "connectionFailureRate": "connection_failure_rate",
    "readTimeoutRate": "read_timeout_rate",
    "writeTimeoutRate": "write_timeout_rate",
    "slowResponseRate": "slow_response_rate",
    "readTimeoutMs": "read_timeout_ms",
    "writeTimeoutMs": "write_timeout_ms",
    "slowResponseDelayMs": "slow_response_delay_ms",
}


@dataclass(frozen=True)
class FailureConfig:
    """Fault-injection probabilities and delays. Immutable; see FailureConfigHolder."""

    enabled: bool = False
    connection_failure_rate: float = 0.0
    read_timeout_rate: float = 0.0
    write_timeout_rate: float = 0.0
    slow_response_rate: float = 0.0
    read_timeout_ms: int = 5000
    write_timeout_ms: int = 5000
    slow_response_delay_ms: int = 2000

    def __post_init__(self) -> None:
        _check_rate("connection_failure_rate", self.connection_failure_rate)
        _check_rate("read_timeout_rate", self.read_timeout_rate)
        _check_rate("write_timeout_rate", self.write_timeout_rate)
        _check_rate("slow_response_rate", self.slow_response_rate)
        _check_non_negative("read_timeout_ms", self.read_timeout_ms)
        _check_non_negative("write_timeout_ms", self.write_timeout_ms)
        _check_non_negative("slow_response_delay_ms", self.slow_response_delay_ms)

    @classmethod
    def from_mapping(cls, data: dict[str, Any] | None) -> FailureConfig:
        """Build from a mapping using snake_case or camelCase option names."""
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for k, v in (data or {}).items():
            name = _FAILURE_ALIASES.get(k, k)
            if name not in known:
                raise ValueError(f"unknown failure option: {k!r}")
            kwargs[name] = v
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class FailureConfigHolder:
    """
    Atomically swappable FailureConfig.

    Readers call `current()` once per operation and work with that snapshot.
    Writers build a complete new snapshot and publish it under a lock.
    """

    def __init__(self, initial: FailureConfig | None = None) -> None:
        self._initial = initial or FailureConfig()
        self._current = self._initial
        self._lock = threading.Lock()

    def current(self) -> FailureConfig:
        return self._current

    def update(self, **changes: Any) -> FailureConfig:
        """Apply changes (snake_case or camelCase names) and publish the new snapshot."""
        normalized = {_FAILURE_ALIASES.get(k, k): v for k, v in changes.items()}
        with self._lock:
            snapshot = replace(self._current, **normalized)
            self._current = snapshot
        return snapshot

    def replace_with(self, config: FailureConfig) -> None:
        with self._lock:
            self._current = config

    def reset(self) -> FailureConfig:
        """Restore the startup snapshot."""
        with self._lock:
            self._current = self._initial
        return self._initial


# ---------------------------------------------------------------------------


class StoreBackend(str, Enum):
    memory = "memory"
    redis = "redis"
    sql = "sql"


class DispatchMode(str, Enum):
    direct = "direct"
    async_ = "async"


@dataclass
class StoreConfig:
    """Data store adapter settings: backend, admission ceiling and simulated latencies."""

    backend: StoreBackend = StoreBackend.memory
    max_concurrent_clients: int = 5

    # simulated latency per operation weight
    read_latency_ms: int = 50
    write_latency_ms: int = 100
    scan_latency_ms: int = 200

    key_prefix: str = DEFAULT_KEY_PREFIX
    sql_url: str = "sqlite+aiosqlite:///relikit.db"
    auto_migrate: bool = True

    def __post_init__(self) -> None:
        self.backend = StoreBackend(self.backend)
        if int(self.max_concurrent_clients) < 1:
            raise ValueError("max_concurrent_clients must be >= 1")
        _check_non_negative("read_latency_ms", self.read_latency_ms)
        _check_non_negative("write_latency_ms", self.write_latency_ms)
        _check_non_negative("scan_latency_ms", self.scan_latency_ms)
        if not self.key_prefix:
            raise ValueError("key_prefix must be a non-empty string")


@dataclass
class CacheConfig:
    enabled: bool = False
    expiration_seconds: int = 300
    namespace: str = DEFAULT_CACHE_NAMESPACE

    def __post_init__(self) -> None:
        if int(self.expiration_seconds) <= 0:
            raise ValueError("expiration_seconds must be positive")
        if not self.namespace:
            raise ValueError("namespace must be a non-empty string")

    @property
    def ttl_ms(self) -> int:
        return int(self.expiration_seconds * 1000)


@dataclass
class MessagingConfig:
    """Queue names and the worker's polling/retry policy."""

    create_queue: str = "record_create_queue"
    update_queue: str = "record_update_queue"
    delete_queue: str = "record_delete_queue"

    retry_attempts: int = 3
    retry_delay_ms: int = 1000
    poll_interval_ms: int = 1000
    error_pause_ms: int = 1000

    def __post_init__(self) -> None:
        if int(self.retry_attempts) < 1:
            raise ValueError("retry_attempts must be >= 1")
        _check_non_negative("retry_delay_ms", self.retry_delay_ms)
        _check_non_negative("poll_interval_ms", self.poll_interval_ms)
        _check_non_negative("error_pause_ms", self.error_pause_ms)
        names = [self.create_queue, self.update_queue, self.delete_queue]
        if not all(names) or len(set(names)) != 3:
            raise ValueError("queue names must be non-empty and distinct")


# ---------------------------------------------------------------------------


_SECTION_TYPES = {
    "store": StoreConfig,
    "cache": CacheConfig,
    "messaging": MessagingConfig,
}

# flat option names of the external configuration source -> (section, field)
_FLAT_ALIASES: dict[str, tuple[str, str]] = {
    "maxConcurrentClients": ("store", "max_concurrent_clients"),
    "expirationSeconds": ("cache", "expiration_seconds"),
    "retryAttempts": ("messaging", "retry_attempts"),
    "retryDelayMs": ("messaging", "retry_delay_ms"),
}


@dataclass
class AppConfig:
    """Top-level configuration snapshot read once at startup."""

    failures: FailureConfig = field(default_factory=FailureConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    messaging: MessagingConfig = field(default_factory=MessagingConfig)

    dispatch_mode: DispatchMode = DispatchMode.direct
    redis_url: str = "redis://localhost:6379/0"
    seed: int | None = None

    def __post_init__(self) -> None:
        self.dispatch_mode = DispatchMode(self.dispatch_mode)
        if not self.redis_url:
            raise ValueError("redis_url must be a non-empty string")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppConfig:
        data = dict(data)
        sections: dict[str, dict[str, Any]] = {name: dict(data.pop(name, None) or {}) for name in _SECTION_TYPES}
        failures = dict(data.pop("failures", None) or {})

        for alias, (section, name) in _FLAT_ALIASES.items():
            if alias in data:
                sections[section][name] = data.pop(alias)
        for alias in list(data):
            if alias in _FAILURE_ALIASES:
                failures[alias] = data.pop(alias)

        return cls(
            failures=FailureConfig.from_mapping(failures),
            store=StoreConfig(**sections["store"]),
            cache=CacheConfig(**sections["cache"]),
            messaging=MessagingConfig(**sections["messaging"]),
            **data,
        )

    @classmethod
    def load(cls, path: Path | str | None = None, *, overrides: dict[str, Any] | None = None) -> AppConfig:
        """
        Load config from JSON file (if provided), then apply env and overrides.

        Env overrides:
          - RELIKIT_REDIS_URL
          - RELIKIT_DISPATCH_MODE (direct|async)
          - RELIKIT_STORE_BACKEND (memory|redis|sql)
          - RELIKIT_SQL_URL
          - RELIKIT_CACHE_ENABLED (1/0)
          - RELIKIT_FAILURES_ENABLED (1/0)
        """
        data: dict[str, Any] = {}
        data.update(_try_load_json(Path(path) if path else None))

        def _section(name: str) -> dict[str, Any]:
            sec = dict(data.get(name) or {})
            data[name] = sec
            return sec

        if os.getenv("RELIKIT_REDIS_URL"):
            data["redis_url"] = os.environ["RELIKIT_REDIS_URL"]
        if os.getenv("RELIKIT_DISPATCH_MODE"):
            data["dispatch_mode"] = os.environ["RELIKIT_DISPATCH_MODE"]
        if os.getenv("RELIKIT_STORE_BACKEND"):
            _section("store")["backend"] = os.environ["RELIKIT_STORE_BACKEND"]
        if os.getenv("RELIKIT_SQL_URL"):
            _section("store")["sql_url"] = os.environ["RELIKIT_SQL_URL"]
        if os.getenv("RELIKIT_CACHE_ENABLED"):
            _section("cache")["enabled"] = truthy(os.environ["RELIKIT_CACHE_ENABLED"])
        if os.getenv("RELIKIT_FAILURES_ENABLED"):
            _section("failures")["enabled"] = truthy(os.environ["RELIKIT_FAILURES_ENABLED"])

        for k, v in (overrides or {}).items():
            if k in data and isinstance(data[k], dict) and isinstance(v, dict):
                data[k] = {**data[k], **v}
            else:
                data[k] = v

        return cls.from_dict(data)
