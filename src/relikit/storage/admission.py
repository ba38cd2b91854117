# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from ..api.errors import TooManyClients
from ..core.log import get_logger


class AdmissionSlot:
    """Release handle returned by `AdmissionController.acquire()`. Releasing twice is a no-op."""

    __slots__ = ("_controller", "_released")

    def __init__(self, controller: AdmissionController) -> None:
        self._controller = controller
        self._released = False

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._controller.release()

    def __enter__(self) -> AdmissionSlot:
        return self

    def __exit__(self, *exc) -> None:
        self.release()


class AdmissionController:
    """
    Global ceiling on concurrently in-flight store operations.

    Excess callers are rejected immediately with TooManyClients (backpressure),
    never queued. One controller is owned by each store adapter instance; only
    the counter update is guarded by the lock, not the wrapped operation.
    """

    def __init__(self, max_concurrent: int) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self.max_concurrent = int(max_concurrent)
        self._in_flight = 0
        self._lock = threading.Lock()
        self.log = get_logger("storage.admission")

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def acquire(self) -> AdmissionSlot:
        with self._lock:
            if self._in_flight >= self.max_concurrent:
                current = self._in_flight
                rejected = True
            else:
                self._in_flight += 1
                rejected = False
        if rejected:
            self.log.error("admission.rejected", event="admission.rejected", current=current, max=self.max_concurrent)
            raise TooManyClients(self.max_concurrent, current)
        return AdmissionSlot(self)

    def release(self) -> None:
        with self._lock:
            if self._in_flight == 0:
                raise RuntimeError("release() without a matching acquire()")
            self._in_flight -= 1

    @contextmanager
    def slot(self) -> Iterator[AdmissionSlot]:
        """Scoped acquisition; the slot is released on every exit path."""
        handle = self.acquire()
        try:
            yield handle
        finally:
            handle.release()
