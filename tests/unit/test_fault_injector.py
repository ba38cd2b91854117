from __future__ import annotations

import pytest

from relikit.api.errors import ConnectionFailure, ReadTimeout, WriteTimeout
from relikit.core.config import FailureConfig, FailureConfigHolder
from relikit.core.time import ManualClock
from relikit.faults.injector import FaultInjector, OperationKind
from tests.helpers.util import RecordingRandom, ScriptedRandom

pytestmark = pytest.mark.unit


def _injector(rng, **rates):
    clock = ManualClock()
    holder = FailureConfigHolder(FailureConfig(enabled=True, **rates))
    return FaultInjector(holder, rng=rng, clock=clock), clock


@pytest.mark.asyncio
async def test_disabled_injector_is_noop_and_draws_nothing():
    rng = RecordingRandom(1)
    clock = ManualClock()
    inj = FaultInjector(FailureConfig(enabled=False, connection_failure_rate=1.0), rng=rng, clock=clock)

    await inj.simulate(OperationKind.read)
    await inj.simulate(OperationKind.write)

    assert rng.draws == []
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_connection_failure_wins_and_skips_later_checks():
    rng = RecordingRandom(1)
    inj, clock = _injector(rng, connection_failure_rate=1.0, read_timeout_rate=1.0, slow_response_rate=1.0)

    with pytest.raises(ConnectionFailure, match="service unavailable"):
        await inj.simulate(OperationKind.read)

    # one draw for the connection check, none for timeout/slow
    assert len(rng.draws) == 1
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_read_timeout_delays_then_raises():
    inj, clock = _injector(ScriptedRandom([0.9, 0.0]), connection_failure_rate=0.5, read_timeout_rate=0.5, read_timeout_ms=5000)

    with pytest.raises(ReadTimeout):
        await inj.simulate(OperationKind.read)

    assert clock.sleeps == [5000]


@pytest.mark.asyncio
async def test_write_timeout_uses_write_rate_only():
    rng = ScriptedRandom([0.9, 0.1])
    inj, clock = _injector(rng, connection_failure_rate=0.5, read_timeout_rate=0.0, write_timeout_rate=0.2, write_timeout_ms=700)

    with pytest.raises(WriteTimeout):
        await inj.simulate(OperationKind.write)

    assert clock.sleeps == [700]
    assert rng.draws == [0.9, 0.1]


@pytest.mark.asyncio
async def test_read_path_ignores_write_timeout_rate():
    inj, clock = _injector(ScriptedRandom([]), write_timeout_rate=1.0)

    await inj.simulate(OperationKind.read)

    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_slow_response_delays_without_error():
    rng = ScriptedRandom([0.9, 0.9, 0.01])
    inj, clock = _injector(rng, connection_failure_rate=0.5, read_timeout_rate=0.5, slow_response_rate=0.05, slow_response_delay_ms=2000)

    await inj.simulate(OperationKind.read, operation="get")

    assert clock.sleeps == [2000]
    assert len(rng.draws) == 3


@pytest.mark.asyncio
async def test_each_check_draws_once_even_when_rate_is_zero():
    rng = RecordingRandom(99)
    inj, _ = _injector(rng)

    for _ in range(4):
        await inj.simulate(OperationKind.write)

    assert len(rng.draws) == 12


@pytest.mark.asyncio
async def test_runtime_config_update_takes_effect_on_next_call():
    holder = FailureConfigHolder(FailureConfig(enabled=True))
    inj = FaultInjector(holder, rng=RecordingRandom(3), clock=ManualClock())

    await inj.simulate(OperationKind.read)
    holder.update(connectionFailureRate=1.0)

    with pytest.raises(ConnectionFailure):
        await inj.simulate(OperationKind.read)

    holder.reset()
    await inj.simulate(OperationKind.read)


@pytest.mark.asyncio
async def test_same_seed_gives_same_outcomes():
    async def run(seed: int) -> list[str]:
        inj = FaultInjector(
            FailureConfig(enabled=True, connection_failure_rate=0.3, read_timeout_rate=0.3, read_timeout_ms=1),
            seed=seed,
            clock=ManualClock(),
        )
        out = []
        for _ in range(30):
            try:
                await inj.simulate("read")
                out.append("ok")
            except (ConnectionFailure, ReadTimeout) as e:
                out.append(type(e).__name__)
        return out

    assert await run(42) == await run(42)
