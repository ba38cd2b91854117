from __future__ import annotations

# Runtime package version.
try:
    # optional file written by release builds
    from ._version import __version__
except Exception:  # pragma: no cover
    # fallback for editable installs / missing file
    try:
        from importlib.metadata import version as _pkg_version

        __version__ = _pkg_version("relikit")
    except Exception:
        __version__ = "0.0.0"

from .core.config import AppConfig, CacheConfig, FailureConfig, MessagingConfig, StoreConfig
from .dispatch.service import RecordService
from .protocol.messages import Record, RecordDraft
from .runtime import Runtime, build_runtime
from .worker.queue_worker import QueueWorker

__all__ = [
    "AppConfig",
    "CacheConfig",
    "FailureConfig",
    "MessagingConfig",
    "QueueWorker",
    "Record",
    "RecordDraft",
    "RecordService",
    "Runtime",
    "StoreConfig",
    "build_runtime",
    "__version__",
]
