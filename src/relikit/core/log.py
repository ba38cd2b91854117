from __future__ import annotations

"""
relikit.core.log
================

Event-coded structured logging on the stdlib `logging` package.

Every call names a dotted event code and may carry keyword fields:

    log = get_logger("worker")
    log.warning("worker.retry", event="worker.retry", attempt=2, wait_ms=2000)

`event` defaults to the message when omitted. Fields bound with
`log_context(...)` / `bind_context(...)` (queue, message_id, correlation_id,
operation, ...) live in a contextvar, so they follow the asyncio task that set
them and are attached to every record emitted inside that scope.

Nothing is printed until a handler is attached: `enable_stdout_logging()`
or `configure_from_env()` (RELIKIT_LOG_* variables).
"""

import contextvars
import json
import logging
import os
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any, Final

from .utils import truthy

__all__ = [
    "bind_context",
    "configure_from_env",
    "disable_stdout_logging",
    "enable_stdout_logging",
    "get_logger",
    "log_context",
    "swallow",
    "warn_once",
]

ROOT: Final[str] = "relikit"
_HANDLER_NAME: Final[str] = "relikit.stdout"

# attributes every LogRecord already has; structured fields must not shadow them
_RESERVED: Final[frozenset[str]] = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
}

_EMPTY: Mapping[str, Any] = MappingProxyType({})
_context: contextvars.ContextVar[Mapping[str, Any]] = contextvars.ContextVar("relikit_log_context", default=_EMPTY)


# ---------- context ----------


def _merged(fields: Mapping[str, Any]) -> Mapping[str, Any]:
    merged = dict(_context.get())
    merged.update((k, v) for k, v in fields.items() if v is not None)
    return MappingProxyType(merged)


def bind_context(**fields: Any) -> None:
    """Add fields for the rest of the current task (e.g. role of a process)."""
    _context.set(_merged(fields))


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Add fields for the duration of the block; `None` values are skipped."""
    token = _context.set(_merged(fields))
    try:
        yield
    finally:
        _context.reset(token)


def current_context() -> Mapping[str, Any]:
    return _context.get()


# ---------- records ----------


class ContextFilter(logging.Filter):
    """Stamp the bound context onto each record (explicit fields win)."""

    def filter(self, record: logging.LogRecord) -> bool:
        for k, v in _context.get().items():
            if k not in _RESERVED and not hasattr(record, k):
                setattr(record, k, v)
        return True


def _fields(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in vars(record).items() if k not in _RESERVED}


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def __init__(self, *, include_stack: bool = False) -> None:
        super().__init__()
        self.include_stack = include_stack

    def format(self, record: logging.LogRecord) -> str:
        doc: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname.lower(),
            "logger": record.name,
        }
        doc.update(_fields(record))
        doc.setdefault("event", record.getMessage())
        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            doc["error"] = {"type": type(exc).__name__, "message": str(exc)}
            if self.include_stack:
                doc["error"]["stack"] = self.formatException(record.exc_info)
        return json.dumps(doc, ensure_ascii=False, separators=(",", ":"), default=str)


class HumanFormatter(logging.Formatter):
    """`12:00:00.123 WARNING relikit.worker worker.retry attempt=1 wait_ms=1000 [queue=... message_id=...]`"""

    context_keys: Final[tuple[str, ...]] = ("queue", "message_id", "correlation_id", "operation")

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        fields = _fields(record)
        fields.pop("event", None)
        ctx = {k: fields.pop(k) for k in self.context_keys if k in fields}
        line = f"{ts} {record.levelname:<7} {record.name} {record.getMessage()}"
        if fields:
            line += " " + " ".join(f"{k}={v}" for k, v in fields.items())
        if ctx:
            line += " [" + " ".join(f"{k}={v}" for k, v in ctx.items()) + "]"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class _EventAdapter(logging.LoggerAdapter):
    """Routes keyword arguments into `extra`; a field named like a record attribute gets a `field_` prefix."""

    _native: Final[frozenset[str]] = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})

    def process(self, msg, kwargs):
        extra = dict(kwargs.get("extra") or {})
        for key in [k for k in kwargs if k not in self._native]:
            value = kwargs.pop(key)
            extra.setdefault(f"field_{key}" if key in _RESERVED else key, value)
        extra.setdefault("event", msg)
        kwargs["extra"] = extra
        return msg, kwargs


# ---------- configuration ----------

_setup_lock = threading.Lock()
_ready = False


def _ensure_root() -> logging.Logger:
    global _ready
    root = logging.getLogger(ROOT)
    if not _ready:
        with _setup_lock:
            if not _ready:
                root.setLevel(logging.DEBUG)
                root.addHandler(logging.NullHandler())
                _ready = True
    return root


def get_logger(name: str | None = None) -> logging.LoggerAdapter:
    """Adapter for `relikit.<name>` that accepts keyword fields."""
    root = _ensure_root()
    return _EventAdapter(root.getChild(name) if name else root, {})


def _level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.upper())
    if not isinstance(value, int):
        raise ValueError(f"unknown log level: {level!r}")
    return value


def enable_stdout_logging(
    *,
    level: int | str = logging.DEBUG,
    json_output: bool = True,
    include_stack: bool = False,
    pretty: bool = False,
) -> None:
    """(Re)attach the stdout handler. `pretty=True` selects the human formatter."""
    root = _ensure_root()
    disable_stdout_logging()
    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setLevel(_level(level))
    handler.addFilter(ContextFilter())
    if pretty or not json_output:
        handler.setFormatter(HumanFormatter())
    else:
        handler.setFormatter(JsonFormatter(include_stack=include_stack))
    root.addHandler(handler)


def disable_stdout_logging() -> None:
    root = _ensure_root()
    for handler in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(handler)


def configure_from_env() -> None:
    """
    RELIKIT_LOG_STDOUT=1     attach the stdout handler
    RELIKIT_LOG_LEVEL=INFO   logger and handler level (default DEBUG)
    RELIKIT_LOG_PRETTY=1     human-readable lines instead of JSON
    RELIKIT_LOG_STACK=1      include tracebacks in JSON output
    """
    level = _level(os.getenv("RELIKIT_LOG_LEVEL", "DEBUG"))
    _ensure_root().setLevel(level)
    if not truthy(os.getenv("RELIKIT_LOG_STDOUT")):
        disable_stdout_logging()
        return
    pretty = truthy(os.getenv("RELIKIT_LOG_PRETTY"))
    enable_stdout_logging(
        level=level, json_output=not pretty, include_stack=truthy(os.getenv("RELIKIT_LOG_STACK")), pretty=pretty
    )


# ---------- helpers ----------

_once_lock = threading.Lock()
_once_codes: set[str] = set()


def warn_once(
    logger: logging.LoggerAdapter,
    code: str,
    msg: str,
    *,
    level: int = logging.WARNING,
    **fields: Any,
) -> None:
    """Emit `msg` the first time `code` is seen in this process; later calls are no-ops."""
    with _once_lock:
        if code in _once_codes:
            return
        _once_codes.add(code)
    logger.log(level, msg, event=code, **fields)


@contextmanager
def swallow(
    *,
    logger: logging.LoggerAdapter | None = None,
    level: int = logging.DEBUG,
    code: str,
    msg: str | None = None,
    extra: Mapping[str, Any] | None = None,
) -> Iterator[None]:
    """
    Log and suppress any exception raised in the block. For best-effort work
    (cache I/O) whose failure must never reach the caller:

        with swallow(logger=log, level=logging.ERROR, code="cache.set.error", msg="cache write failed"):
            await backend.set(key, payload, ttl_ms=ttl)
    """
    try:
        yield
    except Exception as e:
        (logger or get_logger("swallow")).log(
            level, msg or "suppressed exception", exc_info=e, event=code, **dict(extra or {})
        )
