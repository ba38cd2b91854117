from __future__ import annotations

"""
relikit.core.types
==================

Shared type aliases and small constants. Keep this module tiny and dependency-free.
"""

from typing import Final

# ---- Time --------------------------------------------------------------------

Millis = int
TimestampMs = int  # wall-clock epoch timestamp (ms)
MonotonicMs = int  # process-local monotonic time (ms)

# ---- Key layout --------------------------------------------------------------

DEFAULT_KEY_PREFIX: Final[str] = "record:"
DEFAULT_CACHE_NAMESPACE: Final[str] = "cache:"


__all__ = [
    "Millis",
    "TimestampMs",
    "MonotonicMs",
    "DEFAULT_KEY_PREFIX",
    "DEFAULT_CACHE_NAMESPACE",
]
