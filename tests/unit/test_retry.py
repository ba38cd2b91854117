from __future__ import annotations

import pytest

from relikit.api.errors import DuplicateKey, NotFound, ReadTimeout
from relikit.core.time import ManualClock
from relikit.worker.queue_worker import run_with_retry
from tests.helpers.util import FlakyOp

pytestmark = pytest.mark.unit


@pytest.mark.asyncio
async def test_fails_twice_then_succeeds_on_third_attempt():
    clock = ManualClock()
    op = FlakyOp(2)

    result = await run_with_retry(op, attempts=3, delay_ms=1000, clock=clock)

    assert result == "ok"
    assert op.calls == 3
    # linear backoff: delay * attempt
    assert clock.sleeps == [1000, 2000]


@pytest.mark.asyncio
async def test_exhausted_attempts_reraise_last_error():
    clock = ManualClock()
    op = FlakyOp(2, exc=ReadTimeout("Read operation timed out"))

    with pytest.raises(ReadTimeout):
        await run_with_retry(op, attempts=2, delay_ms=1000, clock=clock)

    assert op.calls == 2
    assert clock.sleeps == [1000]


@pytest.mark.asyncio
@pytest.mark.parametrize("exc", [DuplicateKey("a@x.com"), NotFound("Record with ID 3 not found")])
async def test_non_transient_errors_are_not_retried(exc):
    clock = ManualClock()
    op = FlakyOp(5, exc=exc)

    with pytest.raises(type(exc)):
        await run_with_retry(op, attempts=3, delay_ms=1000, clock=clock)

    assert op.calls == 1
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_foreign_errors_count_as_transient():
    clock = ManualClock()
    op = FlakyOp(1, exc=RuntimeError("driver hiccup"))
    seen = []

    await run_with_retry(
        op, attempts=3, delay_ms=10, clock=clock, on_retry=lambda attempt, exc: seen.append((attempt, str(exc)))
    )

    assert op.calls == 2
    assert seen == [(1, "driver hiccup")]


@pytest.mark.asyncio
async def test_single_attempt_means_no_retry():
    op = FlakyOp(1)
    with pytest.raises(Exception):
        await run_with_retry(op, attempts=1, delay_ms=10, clock=ManualClock())
    assert op.calls == 1
