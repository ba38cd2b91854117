from __future__ import annotations

import pytest

from relikit.api.outcomes import OutcomeStatus
from relikit.protocol.messages import MutationKind
from tests.helpers.util import draft

pytestmark = [pytest.mark.integration, pytest.mark.chaos]

_FAULTS = {
    "enabled": True,
    "connection_failure_rate": 0.1,
    "read_timeout_rate": 0.1,
    "write_timeout_rate": 0.15,
    "slow_response_rate": 0.2,
    "read_timeout_ms": 5000,
    "write_timeout_ms": 5000,
    "slow_response_delay_ms": 2000,
}

_ALLOWED = {OutcomeStatus.created, OutcomeStatus.ok, OutcomeStatus.timeout, OutcomeStatus.unavailable}


@pytest.mark.asyncio
@pytest.mark.cfg(failures=_FAULTS)
async def test_direct_outcomes_match_store_contents(runtime):
    svc = runtime.service
    created = 0
    for i in range(60):
        res = await svc.create(draft(name=f"N{i}", email=f"n{i}@example.com"))
        assert res.status in _ALLOWED
        created += res.status is OutcomeStatus.created

    assert 0 < created < 60
    assert runtime.store.admission.in_flight == 0

    svc.reset_failure_config()
    assert (await svc.count()).count == created


@pytest.mark.asyncio
@pytest.mark.cfg(failures=_FAULTS, dispatch_mode="async", messaging={"retry_attempts": 3, "retry_delay_ms": 100})
async def test_async_every_accepted_message_is_accounted_for(runtime):
    svc = runtime.service
    accepted = 0
    for i in range(60):
        res = await svc.create(draft(name=f"N{i}", email=f"n{i}@example.com"))
        assert res.status in {OutcomeStatus.accepted, OutcomeStatus.timeout, OutcomeStatus.unavailable}
        accepted += res.status is OutcomeStatus.accepted

    await runtime.worker.drain()

    stats = runtime.worker.stats[MutationKind.create]
    assert stats.processed + stats.failed == accepted
    assert stats.dropped_duplicate == 0
    svc.reset_failure_config()
    assert (await svc.count()).count == stats.processed
    # with three attempts per message most of them make it
    assert stats.processed > stats.failed
