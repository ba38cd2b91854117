# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

"""
Fault injector.

Decides, per store operation, whether to simulate a connection failure, a
read/write timeout or a slow response. Checks run in a fixed order and the
first one that fires wins:

    connection -> timeout (for this operation kind) -> slow response

Every check consumes exactly one draw from the shared random source, so runs
are reproducible for a given seed.
"""

import random
from enum import Enum

from ..api.errors import ConnectionFailure, ReadTimeout, WriteTimeout
from ..core.config import FailureConfig, FailureConfigHolder
from ..core.log import get_logger
from ..core.time import Clock, SystemClock


class OperationKind(str, Enum):
    read = "read"
    write = "write"


class FaultInjector:
    def __init__(
        self,
        config: FailureConfigHolder | FailureConfig | None = None,
        *,
        rng: random.Random | None = None,
        seed: int | None = None,
        clock: Clock | None = None,
    ) -> None:
        if isinstance(config, FailureConfigHolder):
            self.config = config
        else:
            self.config = FailureConfigHolder(config)
        self.rng = rng or random.Random(seed)
        self.clock: Clock = clock or SystemClock()
        self.log = get_logger("faults")

    def _trial(self, rate: float) -> bool:
        draw = self.rng.random()
        return draw < rate

    async def simulate(self, kind: OperationKind | str, *, operation: str | None = None) -> None:
        """
        Raise ConnectionFailure / ReadTimeout / WriteTimeout, delay, or return.
        No-op while the current snapshot is disabled.
        """
        cfg = self.config.current()
        if not cfg.enabled:
            return
        kind = OperationKind(kind)
        op = operation or kind.value

        if self._trial(cfg.connection_failure_rate):
            self.log.warning("faults.connection", event="faults.connection", operation=op)
            raise ConnectionFailure("Connection failed - service unavailable")

        if kind is OperationKind.read:
            if self._trial(cfg.read_timeout_rate):
                self.log.warning("faults.read_timeout", event="faults.read_timeout", operation=op, delay_ms=cfg.read_timeout_ms)
                await self.clock.sleep_ms(cfg.read_timeout_ms)
                raise ReadTimeout("Read operation timed out")
        elif self._trial(cfg.write_timeout_rate):
            self.log.warning("faults.write_timeout", event="faults.write_timeout", operation=op, delay_ms=cfg.write_timeout_ms)
            await self.clock.sleep_ms(cfg.write_timeout_ms)
            raise WriteTimeout("Write operation timed out")

        if self._trial(cfg.slow_response_rate):
            self.log.warning(
                "faults.slow_response", event="faults.slow_response", operation=op, delay_ms=cfg.slow_response_delay_ms
            )
            await self.clock.sleep_ms(cfg.slow_response_delay_ms)
