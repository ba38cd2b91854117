from __future__ import annotations

import random
from collections.abc import Iterable

from relikit.api.errors import ConnectionFailure
from relikit.protocol.messages import RecordDraft


def draft(name: str = "Ada", email: str = "ada@example.com", **extra) -> RecordDraft:
    return RecordDraft(name=name, email=email, **extra)


class RecordingRandom(random.Random):
    """Seeded Random that remembers every `random()` draw."""

    def __init__(self, seed: int | None = None) -> None:
        self.draws: list[float] = []
        super().__init__(seed)

    def random(self) -> float:
        v = super().random()
        self.draws.append(v)
        return v


class ScriptedRandom(random.Random):
    """Returns the scripted values from `random()` in order, then 0.99 forever."""

    def __init__(self, values: Iterable[float]) -> None:
        self.values = list(values)
        self.draws: list[float] = []
        super().__init__(0)

    def random(self) -> float:
        v = self.values.pop(0) if self.values else 0.99
        self.draws.append(v)
        return v


class FlakyOp:
    """Async callable that raises `exc` for the first `failures` calls, then returns `result`."""

    def __init__(self, failures: int, *, exc: Exception | None = None, result: object = "ok") -> None:
        self.failures = failures
        self.exc = exc or ConnectionFailure("Connection failed - service unavailable")
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return self.result
