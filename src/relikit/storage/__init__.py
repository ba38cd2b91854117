# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Backing-store interfaces, backends and record store adapters.

`SqlRecordStore` lives in `relikit.storage.sql` and is imported lazily by the
runtime so the key-value path does not pull in SQLAlchemy.
"""

from .admission import AdmissionController, AdmissionSlot
from .kv import KVBackend
from .memory import MemoryKV
from .records import KeyValueRecordStore, RecordStore

__all__ = [
    "AdmissionController",
    "AdmissionSlot",
    "KVBackend",
    "MemoryKV",
    "KeyValueRecordStore",
    "RecordStore",
]
