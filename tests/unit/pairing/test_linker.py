from __future__ import annotations

from datetime import timedelta

import pytest

from src.adcast.domain.models import Identity, PairingRecord, PairingStatus
from src.adcast.exceptions import (
    ExpiredPairingError,
    InvalidPairingStateError,
    PairingAlreadyLinkedError,
    PairingNotFoundError,
    PairingOwnershipError,
    UnauthenticatedError,
)
from src.adcast.pairing.linker import PairingLinker, normalize_code
from src.adcast.store.documents import TV_SETUP, TVS
from src.adcast.store.memory import InMemoryDocumentStore
from tests.helpers.scheduler import T0, ManualScheduler

pytestmark = pytest.mark.unit

OWNER = Identity(uid="owner-1")
STRANGER = Identity(uid="owner-2")


async def _publish(store: InMemoryDocumentStore, code: str = "AB12CD", **extra: str) -> None:
    record = PairingRecord(code=code, created_at=T0)
    document = record.to_document()
    document.update(extra)
    await store.create_record(TV_SETUP, code, document)


def _linker(store: InMemoryDocumentStore, scheduler: ManualScheduler) -> PairingLinker:
    return PairingLinker(
        store, ttl_seconds=300, clock=scheduler.now, device_id_factory=lambda: "tv-new"
    )


def test_normalize_code_strips_and_uppercases() -> None:
    assert normalize_code("  ab12cd ") == "AB12CD"


@pytest.mark.asyncio
async def test_claim_links_pending_code() -> None:
    store = InMemoryDocumentStore()
    scheduler = ManualScheduler()
    await _publish(store)

    record = await _linker(store, scheduler).claim("ab12cd", owner=OWNER)

    assert record.status is PairingStatus.LINKED
    assert record.device_id == "tv-new"
    stored = await store.get_record(TV_SETUP, "AB12CD")
    assert stored is not None
    assert stored["status"] == "linked"
    assert stored["deviceId"] == "tv-new"
    assert stored["ownerId"] == "owner-1"
    assert stored["locationId"] is None


@pytest.mark.asyncio
async def test_claim_keeps_supplied_device_and_location() -> None:
    store = InMemoryDocumentStore()
    await _publish(store)

    record = await _linker(store, ManualScheduler()).claim(
        "AB12CD", owner=OWNER, device_id="tv-7", location_id="loc-1"
    )

    assert record.device_id == "tv-7"
    assert record.location_id == "loc-1"


@pytest.mark.asyncio
async def test_claim_requires_sign_in() -> None:
    store = InMemoryDocumentStore()
    await _publish(store)

    with pytest.raises(UnauthenticatedError):
        await _linker(store, ManualScheduler()).claim("AB12CD", owner=None)


@pytest.mark.asyncio
async def test_claim_unknown_code() -> None:
    with pytest.raises(PairingNotFoundError):
        await _linker(InMemoryDocumentStore(), ManualScheduler()).claim("ZZZZZZ", owner=OWNER)


@pytest.mark.asyncio
async def test_claim_after_ttl_is_rejected() -> None:
    store = InMemoryDocumentStore()
    scheduler = ManualScheduler()
    await _publish(store)
    scheduler.advance(310)

    with pytest.raises(ExpiredPairingError):
        await _linker(store, scheduler).claim("AB12CD", owner=OWNER)

    stored = await store.get_record(TV_SETUP, "AB12CD")
    assert stored is not None
    assert stored["status"] == "pending"


@pytest.mark.asyncio
async def test_second_claim_is_rejected() -> None:
    store = InMemoryDocumentStore()
    scheduler = ManualScheduler()
    await _publish(store)
    linker = _linker(store, scheduler)
    await linker.claim("AB12CD", owner=OWNER)

    with pytest.raises(PairingAlreadyLinkedError):
        await linker.claim("AB12CD", owner=STRANGER)


@pytest.mark.asyncio
async def test_code_published_for_another_account_is_rejected() -> None:
    store = InMemoryDocumentStore()
    await _publish(store, ownerId="owner-2")

    with pytest.raises(PairingOwnershipError):
        await _linker(store, ManualScheduler()).claim("AB12CD", owner=OWNER)


@pytest.mark.asyncio
async def test_assign_location_after_claim() -> None:
    store = InMemoryDocumentStore()
    await _publish(store)
    linker = _linker(store, ManualScheduler())
    await linker.claim("AB12CD", owner=OWNER)

    record = await linker.assign_location("AB12CD", "loc-1", owner=OWNER)
    again = await linker.assign_location("AB12CD", "loc-1", owner=OWNER)

    assert record.location_id == "loc-1"
    assert again.location_id == "loc-1"
    with pytest.raises(InvalidPairingStateError):
        await linker.assign_location("AB12CD", "loc-2", owner=OWNER)
    with pytest.raises(PairingOwnershipError):
        await linker.assign_location("AB12CD", "loc-1", owner=STRANGER)


@pytest.mark.asyncio
async def test_assign_location_requires_claim() -> None:
    store = InMemoryDocumentStore()
    await _publish(store)

    with pytest.raises(InvalidPairingStateError):
        await _linker(store, ManualScheduler()).assign_location("AB12CD", "loc-1", owner=OWNER)


@pytest.mark.asyncio
async def test_relocate_device_updates_tv_document() -> None:
    store = InMemoryDocumentStore()
    scheduler = ManualScheduler()
    await store.update_record(TVS, "tv-1", {"locationId": "loc-1", "ownerId": "owner-1"})
    scheduler.advance(60)

    await _linker(store, scheduler).relocate_device("tv-1", "loc-2", owner=OWNER)

    stored = await store.get_record(TVS, "tv-1")
    assert stored == {
        "locationId": "loc-2",
        "ownerId": "owner-1",
        "updatedAt": (T0 + timedelta(seconds=60)).isoformat(),
    }


@pytest.mark.asyncio
async def test_relocate_device_checks_owner_and_existence() -> None:
    store = InMemoryDocumentStore()
    scheduler = ManualScheduler()
    await store.update_record(TVS, "tv-1", {"locationId": "loc-1", "ownerId": "owner-2"})
    linker = _linker(store, scheduler)

    with pytest.raises(PairingOwnershipError):
        await linker.relocate_device("tv-1", "loc-2", owner=OWNER)
    with pytest.raises(PairingNotFoundError):
        await linker.relocate_device("tv-9", "loc-2", owner=OWNER)
