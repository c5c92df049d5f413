"""Playback client: resolution, connectivity and live updates."""

from __future__ import annotations

from typing import Any

import pytest

from src.adcast.domain.models import DeviceIdentity
from src.adcast.exceptions import PersistenceError
from src.adcast.playback.cache import CarouselCache
from src.adcast.playback.client import PlaybackClient, PlaybackPhase, PlaybackView
from src.adcast.store.documents import CAROUSELS, TVS
from tests.helpers.scheduler import ManualScheduler
from tests.mocks.storage import MemoryStorage
from tests.mocks.store import FlakyDocumentStore
from tests.mocks.surface import ScriptedSurface

pytestmark = pytest.mark.unit

IDENTITY = DeviceIdentity(device_id="tv-1", location_id="loc-1")


def _carousel(
    *item_ids: str,
    location: str = "loc-1",
    updated_at: str = "2025-01-01T00:00:00Z",
    status: str = "active",
) -> dict[str, Any]:
    return {
        "name": "Lobby",
        "status": status,
        "locations": [location],
        "items": [
            {
                "id": item_id,
                "url": f"https://cdn.example/{item_id}.png",
                "type": "image",
                "order": order,
                "duration": 5,
            }
            for order, item_id in enumerate(item_ids)
        ],
        "updatedAt": updated_at,
    }


class _Device:
    def __init__(
        self,
        *,
        store: FlakyDocumentStore | None = None,
        storage: MemoryStorage | None = None,
        online: bool = True,
        on_relocated: Any = None,
    ) -> None:
        self.store = store or FlakyDocumentStore()
        self.storage = storage or MemoryStorage()
        self.scheduler = ManualScheduler()
        self.surface = ScriptedSurface()
        self.views: list[PlaybackView] = []
        self.client = PlaybackClient(
            IDENTITY,
            self.store,
            CarouselCache(self.storage),
            self.surface,
            self.scheduler,
            online=online,
            on_relocated=on_relocated,
            on_change=self.views.append,
        )


@pytest.mark.asyncio
async def test_start_plays_the_resolved_carousel() -> None:
    device = _Device()
    await device.store.update_record(CAROUSELS, "c1", _carousel("a", "b", "c"))

    view = await device.client.start()

    assert view.phase is PlaybackPhase.PLAYING
    assert view.carousel_id == "c1"
    assert view.current_index == 0
    assert view.item_count == 3
    assert device.surface.rendered_ids == ["a"]
    assert view.to_dict()["currentItem"]["id"] == "a"


@pytest.mark.asyncio
async def test_no_eligible_carousel_shows_no_content() -> None:
    device = _Device()
    await device.store.update_record(CAROUSELS, "c1", _carousel("a", location="loc-2"))

    view = await device.client.start()

    assert view.phase is PlaybackPhase.NO_CONTENT
    assert device.surface.calls == []
    assert "currentIndex" not in view.to_dict()


@pytest.mark.asyncio
async def test_going_offline_keeps_rotation_running_from_cache() -> None:
    device = _Device()
    await device.store.update_record(CAROUSELS, "c1", _carousel("a", "b", "c"))
    await device.client.start()
    device.scheduler.advance(5)

    device.store.fail_queries = True
    await device.client.set_online(False)
    device.scheduler.advance(5)

    view = device.client.view
    assert view.offline is True
    assert view.phase is PlaybackPhase.PLAYING
    assert device.surface.rendered_ids == ["a", "b", "c"]
    assert [call.item.url for call in device.surface.calls][-1] == "https://cdn.example/c.png"


@pytest.mark.asyncio
async def test_offline_start_uses_cached_snapshot() -> None:
    storage = MemoryStorage()
    first = _Device(storage=storage)
    await first.store.update_record(CAROUSELS, "c1", _carousel("a", "b"))
    await first.client.start()
    first.client.stop()

    restarted = _Device(storage=storage, online=False)
    restarted.store.fail_queries = True
    view = await restarted.client.start()

    assert view.phase is PlaybackPhase.PLAYING
    assert view.offline is True
    assert view.carousel_id == "c1"
    assert restarted.surface.rendered_ids == ["a"]


@pytest.mark.asyncio
async def test_offline_without_cache_has_no_content() -> None:
    device = _Device(online=False)

    view = await device.client.start()

    assert view.phase is PlaybackPhase.NO_CONTENT


@pytest.mark.asyncio
async def test_store_failure_before_playback_shows_error() -> None:
    device = _Device()
    device.store.fail_queries = True

    view = await device.client.start()

    assert view.phase is PlaybackPhase.ERROR
    assert view.error is not None


@pytest.mark.asyncio
async def test_store_failure_during_playback_keeps_playing() -> None:
    device = _Device()
    await device.store.update_record(CAROUSELS, "c1", _carousel("a", "b"))
    await device.client.start()

    device.store.fail_queries = True
    device.store.break_subscriptions()
    view = await device.client.refresh()

    assert view.phase is PlaybackPhase.PLAYING
    assert view.error is None
    device.scheduler.advance(5)
    assert device.surface.rendered_ids == ["a", "b"]


@pytest.mark.asyncio
async def test_refresh_recovers_from_error() -> None:
    device = _Device()
    device.store.fail_queries = True
    await device.client.start()

    device.store.fail_queries = False
    await device.store.update_record(CAROUSELS, "c1", _carousel("a"))
    view = await device.client.refresh()

    assert view.phase is PlaybackPhase.PLAYING
    assert view.error is None


@pytest.mark.asyncio
async def test_live_changes_are_picked_up_without_restart() -> None:
    device = _Device()
    await device.store.update_record(CAROUSELS, "c1", _carousel("a", "b"))
    await device.client.start()
    device.scheduler.advance(5)

    await device.store.update_record(CAROUSELS, "c1", _carousel("a", "b", "c"))
    device.scheduler.advance(5)

    assert device.client.view.item_count == 3
    assert device.surface.rendered_ids == ["a", "b", "c"]

    await device.store.update_record(
        CAROUSELS, "c2", _carousel("x", updated_at="2025-02-01T00:00:00Z")
    )

    assert device.client.view.carousel_id == "c2"
    assert device.surface.rendered_ids[-1] == "x"


@pytest.mark.asyncio
async def test_deactivated_carousel_stops_rotation() -> None:
    device = _Device()
    await device.store.update_record(CAROUSELS, "c1", _carousel("a", "b"))
    await device.client.start()

    await device.store.update_record(CAROUSELS, "c1", {"status": "archived"})

    assert device.client.phase is PlaybackPhase.NO_CONTENT
    assert device.client.progress.is_idle
    assert device.surface.clears == 1


@pytest.mark.asyncio
async def test_updates_while_offline_are_ignored_until_reconnect() -> None:
    device = _Device()
    await device.store.update_record(CAROUSELS, "c1", _carousel("a"))
    await device.client.start()
    await device.client.set_online(False)

    await device.store.update_record(
        CAROUSELS, "c2", _carousel("x", updated_at="2025-02-01T00:00:00Z")
    )
    assert device.client.view.carousel_id == "c1"

    await device.client.set_online(True)

    assert device.client.view.carousel_id == "c2"
    assert device.client.view.offline is False


@pytest.mark.asyncio
async def test_dashboard_relocation_retargets_playback() -> None:
    relocated: list[str] = []
    device = _Device(on_relocated=relocated.append)
    await device.store.update_record(TVS, "tv-1", {"locationId": "loc-1"})
    await device.store.update_record(CAROUSELS, "c1", _carousel("a"))
    await device.store.update_record(CAROUSELS, "c2", _carousel("x", location="loc-2"))
    await device.client.start()

    await device.store.update_record(TVS, "tv-1", {"locationId": "loc-2"})
    await device.client.settle()

    assert relocated == ["loc-2"]
    assert device.client.identity == DeviceIdentity(device_id="tv-1", location_id="loc-2")
    assert device.client.view.carousel_id == "c2"

    # Changes for the old location no longer reach the screen.
    await device.store.update_record(
        CAROUSELS, "c3", _carousel("z", updated_at="2025-03-01T00:00:00Z")
    )
    assert device.client.view.carousel_id == "c2"


@pytest.mark.asyncio
async def test_relocation_persist_failure_does_not_stop_playback() -> None:
    def _fail(location_id: str) -> None:
        raise PersistenceError("disk full")

    device = _Device(on_relocated=_fail)
    await device.store.update_record(CAROUSELS, "c2", _carousel("x", location="loc-2"))
    await device.client.start()

    await device.store.update_record(TVS, "tv-1", {"locationId": "loc-2"})
    await device.client.settle()

    assert device.client.identity.location_id == "loc-2"
    assert device.client.phase is PlaybackPhase.PLAYING


@pytest.mark.asyncio
async def test_stop_detaches_everything() -> None:
    device = _Device()
    await device.store.update_record(CAROUSELS, "c1", _carousel("a", "b"))
    await device.client.start()

    device.client.stop()
    await device.store.update_record(CAROUSELS, "c1", _carousel("a", "b", "c"))
    device.scheduler.advance(30)

    assert device.store.active_watches == 0
    assert device.surface.rendered_ids == ["a"]
    assert device.client.progress.is_idle


@pytest.mark.asyncio
async def test_cache_write_failure_still_starts_playback() -> None:
    device = _Device()
    device.storage.fail_writes = True
    await device.store.update_record(CAROUSELS, "c1", _carousel("a", "b"))

    view = await device.client.start()

    assert view.phase is PlaybackPhase.PLAYING
    assert device.surface.rendered_ids == ["a"]
    assert device.store.active_watches == 2

    await device.store.update_record(CAROUSELS, "c1", _carousel("x", "y", "z"))

    assert [item.id for item in device.client.carousel.items] == ["x", "y", "z"]
    assert device.client.view.item_count == 3


@pytest.mark.asyncio
async def test_live_change_applies_when_cache_writes_start_failing() -> None:
    device = _Device()
    await device.store.update_record(CAROUSELS, "c1", _carousel("a", "b"))
    await device.client.start()

    device.storage.fail_writes = True
    await device.store.update_record(CAROUSELS, "c1", _carousel("x", "y", "z"))

    assert [item.id for item in device.client.carousel.items] == ["x", "y", "z"]
    assert device.client.phase is PlaybackPhase.PLAYING


@pytest.mark.asyncio
async def test_playing_device_reattaches_watches_after_listener_error() -> None:
    device = _Device()
    await device.store.update_record(CAROUSELS, "c1", _carousel("a", "b"))
    await device.client.start()

    device.store.break_subscriptions("transient blip")
    await device.store.update_record(CAROUSELS, "c1", _carousel("x", "y", "z"))

    assert device.store.active_watches == 0
    assert device.client.view.error is None
    assert [item.id for item in device.client.carousel.items] == ["a", "b"]

    device.scheduler.advance(30)
    await device.client.settle()

    assert device.store.active_watches == 2
    assert [item.id for item in device.client.carousel.items] == ["x", "y", "z"]

    await device.store.update_record(TVS, "tv-1", {"locationId": "loc-2"})
    await device.client.settle()

    assert device.client.identity.location_id == "loc-2"


@pytest.mark.asyncio
async def test_reattach_keeps_retrying_while_the_store_is_down() -> None:
    device = _Device()
    await device.store.update_record(CAROUSELS, "c1", _carousel("a", "b"))
    await device.client.start()

    device.store.fail_queries = True
    device.store.break_subscriptions()
    device.scheduler.advance(30)
    await device.client.settle()

    assert device.client.phase is PlaybackPhase.PLAYING
    assert device.store.active_watches == 1

    device.store.fail_queries = False
    device.scheduler.advance(30)
    await device.client.settle()

    assert device.store.active_watches == 2


@pytest.mark.asyncio
async def test_stop_cancels_pending_reattach() -> None:
    device = _Device()
    await device.store.update_record(CAROUSELS, "c1", _carousel("a", "b"))
    await device.client.start()
    device.store.break_subscriptions()

    device.client.stop()
    device.scheduler.advance(60)
    await device.client.settle()

    assert device.store.active_watches == 0
    assert device.scheduler.pending == []
