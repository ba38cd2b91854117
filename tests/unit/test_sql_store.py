from __future__ import annotations

import pytest
import pytest_asyncio

from relikit.api.errors import DuplicateKey, NotFound
from relikit.core.config import StoreConfig
from relikit.protocol.messages import Record
from relikit.storage.sql import SqlRecordStore
from tests.helpers.util import draft

pytestmark = pytest.mark.unit


@pytest_asyncio.fixture
async def sql_store(tmp_path, injector, clock):
    store = SqlRecordStore.from_url(
        f"sqlite+aiosqlite:///{tmp_path / 'records.db'}", cfg=StoreConfig(backend="sql"), injector=injector, clock=clock
    )
    await store.init()
    try:
        yield store
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_create_get_and_lookup_by_email(sql_store, clock):
    t0 = clock.now_dt()
    a = await sql_store.create(draft(phone="555").to_record())
    b = await sql_store.create(draft(name="Bob", email="bob@example.com").to_record())

    assert (a.id, b.id) == (1, 2)
    assert a.created_at == t0
    assert a.updated_at is None
    assert await sql_store.get(a.id) == a
    assert (await sql_store.get_by_email("bob@example.com")).id == b.id
    assert await sql_store.get(99) is None
    assert await sql_store.ping() is True


@pytest.mark.asyncio
async def test_duplicate_email_maps_to_duplicate_key(sql_store):
    await sql_store.create(draft().to_record())

    with pytest.raises(DuplicateKey):
        await sql_store.create(draft(name="Other").to_record())

    assert await sql_store.count() == 1


@pytest.mark.asyncio
async def test_update_copies_attributes(sql_store, clock):
    created = await sql_store.create(draft().to_record())
    clock.advance(60_000)

    updated = await sql_store.update(
        Record(id=created.id, name="Ada L.", email="ada@example.com", address="London")
    )

    assert updated.name == "Ada L." and updated.address == "London"
    assert updated.updated_at == clock.now_dt()
    assert (await sql_store.get(created.id)).name == "Ada L."


@pytest.mark.asyncio
async def test_update_missing_raises_not_found(sql_store):
    with pytest.raises(NotFound):
        await sql_store.update(Record(id=5, name="X", email="x@example.com"))


@pytest.mark.asyncio
async def test_delete_list_and_clear(sql_store):
    for i in range(3):
        await sql_store.create(draft(name=f"N{i}", email=f"n{i}@example.com").to_record())

    assert await sql_store.delete(2) is True
    assert await sql_store.delete(2) is False
    assert [r.id for r in await sql_store.list()] == [1, 3]

    assert await sql_store.clear() == 2
    assert await sql_store.count() == 0
    # identity column does not hand out a deleted id again
    assert (await sql_store.create(draft().to_record())).id == 4
