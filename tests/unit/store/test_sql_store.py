from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from src.adcast.db import init_db
from src.adcast.exceptions import PersistenceError
from src.adcast.store.documents import EQUALS, Filter
from src.adcast.store.sql_store import SqlDocumentStore

pytestmark = pytest.mark.unit


@pytest.fixture
def session_factory(tmp_path: Path) -> Any:
    engine = create_engine(f"sqlite:///{tmp_path / 'store.db'}", future=True)
    init_db(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


@pytest.mark.asyncio
async def test_create_and_read_back(session_factory: Any) -> None:
    store = SqlDocumentStore(session_factory)

    await store.create_record("tvSetup", "AB12CD", {"status": "pending", "deviceId": None})

    assert await store.get_record("tvSetup", "AB12CD") == {"status": "pending", "deviceId": None}
    assert await store.get_record("tvSetup", "ZZZZZZ") is None


@pytest.mark.asyncio
async def test_create_existing_record_raises_persistence_error(session_factory: Any) -> None:
    store = SqlDocumentStore(session_factory)
    await store.create_record("tvSetup", "AB12CD", {"status": "pending"})

    with pytest.raises(PersistenceError):
        await store.create_record("tvSetup", "AB12CD", {"status": "pending"})


@pytest.mark.asyncio
async def test_update_merges_fields(session_factory: Any) -> None:
    store = SqlDocumentStore(session_factory)
    await store.update_record("tvs", "tv-1", {"locationId": "loc-1", "ownerId": "u1"})
    await store.update_record("tvs", "tv-1", {"locationId": "loc-2"})

    assert await store.get_record("tvs", "tv-1") == {"locationId": "loc-2", "ownerId": "u1"}


@pytest.mark.asyncio
async def test_query_filters_records(session_factory: Any) -> None:
    store = SqlDocumentStore(session_factory)
    await store.update_record("carousels", "b", {"status": "active"})
    await store.update_record("carousels", "a", {"status": "draft"})

    documents = await store.query("carousels", [Filter("status", EQUALS, "active")])

    assert [doc.id for doc in documents] == ["b"]


@pytest.mark.asyncio
async def test_subscription_receives_initial_snapshot_and_local_writes(
    session_factory: Any,
) -> None:
    store = SqlDocumentStore(session_factory)
    received: list[object] = []

    store.subscribe_doc("tvSetup", "AB12CD", received.append)
    await store.wait_idle()
    await store.create_record("tvSetup", "AB12CD", {"status": "pending"})

    assert received == [None, {"status": "pending"}]


@pytest.mark.asyncio
async def test_refresh_picks_up_writes_from_another_process(session_factory: Any) -> None:
    device_side = SqlDocumentStore(session_factory)
    dashboard_side = SqlDocumentStore(session_factory)
    snapshots: list[list[str]] = []

    device_side.subscribe(
        "carousels",
        [Filter("status", EQUALS, "active")],
        lambda documents: snapshots.append([doc.id for doc in documents]),
    )
    await device_side.wait_idle()
    await dashboard_side.update_record("carousels", "c1", {"status": "active"})

    assert snapshots == [[]]

    await device_side.refresh()
    await device_side.refresh()

    assert snapshots == [[], ["c1"]]


@pytest.mark.asyncio
async def test_unsubscribed_watch_is_not_refreshed(session_factory: Any) -> None:
    store = SqlDocumentStore(session_factory)
    received: list[object] = []

    subscription = store.subscribe_doc("tvs", "tv-1", received.append)
    await store.wait_idle()
    subscription.unsubscribe()
    await store.update_record("tvs", "tv-1", {"locationId": "loc-1"})
    await store.refresh()

    assert received == [None]
