"""Playback client orchestrating resolution, the offline cache and rotation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping

import structlog

from ..domain.models import Carousel, DeviceIdentity
from ..exceptions import PersistenceError, QueryError
from ..interfaces import DocumentStore, MediaSurface, Scheduler, Subscription, TimerHandle
from ..runtime import BackgroundTasks
from ..store.documents import TVS
from .cache import CarouselCache
from .resolver import CarouselResolver, Resolution
from .rotation import RotationEngine, RotationProgress

logger = structlog.get_logger(__name__)


class PlaybackPhase(str, Enum):
    LOADING = "loading"
    ERROR = "error"
    NO_CONTENT = "no_content"
    PLAYING = "playing"


@dataclass(frozen=True, slots=True)
class PlaybackView:
    """Snapshot rendered by the display screen."""

    phase: PlaybackPhase
    offline: bool
    device_id: str
    location_id: str
    current_index: int | None = None
    item_count: int | None = None
    current_item: Mapping[str, Any] | None = None
    carousel_id: str | None = None
    carousel_name: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "phase": self.phase.value,
            "offline": self.offline,
            "deviceId": self.device_id,
            "locationId": self.location_id,
        }
        optional = {
            "currentIndex": self.current_index,
            "itemCount": self.item_count,
            "currentItem": dict(self.current_item) if self.current_item is not None else None,
            "carouselId": self.carousel_id,
            "carouselName": self.carousel_name,
            "error": self.error,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        return payload


class PlaybackClient:
    """Unattended display loop for one paired device.

    Resolution runs at start, on every change of the carousel subscription,
    on offline/online transitions and on :meth:`refresh`. Store failures only
    reach the screen when nothing is playing; otherwise playback continues and
    watches ended by the failure are re-attached every ``watch_retry_seconds``.
    """

    def __init__(
        self,
        identity: DeviceIdentity,
        store: DocumentStore,
        cache: CarouselCache,
        surface: MediaSurface,
        scheduler: Scheduler,
        *,
        online: bool = True,
        video_grace_seconds: float = 10.0,
        error_backoff_seconds: float = 5.0,
        watch_retry_seconds: float = 30.0,
        on_relocated: Callable[[str], None] | None = None,
        on_change: Callable[[PlaybackView], None] | None = None,
    ) -> None:
        if watch_retry_seconds <= 0:
            raise ValueError("watch_retry_seconds must be positive")
        self._identity = identity
        self._store = store
        self._scheduler = scheduler
        self._watch_retry_seconds = watch_retry_seconds
        self._resolver = CarouselResolver(store, cache)
        self._online = online
        self._on_relocated = on_relocated
        self._on_change = on_change
        self._tasks = BackgroundTasks("playback.client")
        self.engine = RotationEngine(
            surface,
            scheduler,
            video_grace_seconds=video_grace_seconds,
            error_backoff_seconds=error_backoff_seconds,
            on_advance=self._on_progress,
        )

        self._phase = PlaybackPhase.LOADING
        self._carousel: Carousel | None = None
        self._error: str | None = None
        self._carousel_subscription: Subscription | None = None
        self._device_subscription: Subscription | None = None
        self._reattach_timer: TimerHandle | None = None
        self._resolve_token = 0
        self._closed = False

    @property
    def identity(self) -> DeviceIdentity:
        return self._identity

    @property
    def online(self) -> bool:
        return self._online

    @property
    def phase(self) -> PlaybackPhase:
        return self._phase

    @property
    def carousel(self) -> Carousel | None:
        return self._carousel

    @property
    def progress(self) -> RotationProgress:
        return self.engine.progress

    @property
    def view(self) -> PlaybackView:
        progress = self.engine.progress
        playing = self._phase is PlaybackPhase.PLAYING and not progress.is_idle
        carousel = self._carousel
        return PlaybackView(
            phase=self._phase,
            offline=not self._online,
            device_id=self._identity.device_id,
            location_id=self._identity.location_id,
            current_index=progress.current_index if playing else None,
            item_count=progress.item_count if playing else None,
            current_item=(
                progress.current_item.to_document()
                if playing and progress.current_item is not None
                else None
            ),
            carousel_id=carousel.id if carousel is not None else None,
            carousel_name=carousel.name if carousel is not None else None,
            error=self._error,
        )

    async def start(self) -> PlaybackView:
        logger.info(
            "playback.start",
            device_id=self._identity.device_id,
            location_id=self._identity.location_id,
            online=self._online,
        )
        self._watch_device()
        await self._resolve_now()
        self._watch_carousels()
        return self.view

    async def refresh(self) -> PlaybackView:
        """Manual refresh; also re-attaches watches ended by a store error."""
        self._cancel_reattach()
        self._watch_device()
        await self._resolve_now()
        self._watch_carousels()
        return self.view

    async def set_online(self, online: bool) -> None:
        if online == self._online or self._closed:
            return
        self._online = online
        logger.info("playback.connectivity", online=online)
        if not online:
            self._drop_carousel_watch()
        await self._resolve_now()
        self._watch_carousels()

    def stop(self) -> None:
        """Detach every subscription and stop rotation; late events are dropped."""
        self._closed = True
        self._resolve_token += 1
        self._drop_carousel_watch()
        if self._device_subscription is not None:
            self._device_subscription.unsubscribe()
            self._device_subscription = None
        self._cancel_reattach()
        self._tasks.cancel_all()
        self.engine.stop()

    async def settle(self) -> None:
        await self._tasks.drain()

    # -- resolution ---------------------------------------------------------

    async def _resolve_now(self) -> None:
        self._resolve_token += 1
        token = self._resolve_token
        location_id = self._identity.location_id
        try:
            resolution = await self._resolver.resolve(location_id, online=self._online)
        except QueryError as exc:
            if token == self._resolve_token and not self._closed:
                self._on_query_error(exc)
            return
        if token != self._resolve_token or self._closed:
            return
        self._apply(resolution)

    def _apply(self, resolution: Resolution) -> None:
        carousel = resolution.carousel
        self._carousel = carousel
        self._error = None
        if carousel is None or not carousel.items:
            self._phase = PlaybackPhase.NO_CONTENT
            self.engine.load(())
        else:
            self._phase = PlaybackPhase.PLAYING
            self.engine.load(carousel.items)
        self._notify()

    def _on_query_error(self, exc: Exception) -> None:
        if self.engine.is_playing:
            logger.warning(
                "playback.resolve.failed",
                location_id=self._identity.location_id,
                error=str(exc),
                continuing=True,
            )
            return
        logger.error(
            "playback.resolve.failed",
            location_id=self._identity.location_id,
            error=str(exc),
            continuing=False,
        )
        self._phase = PlaybackPhase.ERROR
        self._error = str(exc)
        self._notify()

    def _on_snapshot(self, location_id: str, resolution: Resolution) -> None:
        if self._closed or location_id != self._identity.location_id or not self._online:
            return
        self._resolve_token += 1
        self._apply(resolution)

    # -- subscriptions ------------------------------------------------------

    def _watch_carousels(self) -> None:
        if self._closed or not self._online:
            return
        if self._carousel_subscription is not None and self._carousel_subscription.active:
            return
        location_id = self._identity.location_id
        self._carousel_subscription = self._resolver.watch(
            location_id,
            lambda resolution: self._on_snapshot(location_id, resolution),
            on_error=self._on_carousel_watch_error,
        )

    def _drop_carousel_watch(self) -> None:
        if self._carousel_subscription is not None:
            self._carousel_subscription.unsubscribe()
            self._carousel_subscription = None

    def _watch_device(self) -> None:
        if self._closed:
            return
        if self._device_subscription is not None and self._device_subscription.active:
            return
        self._device_subscription = self._store.subscribe_doc(
            TVS,
            self._identity.device_id,
            self._on_device_document,
            on_error=self._on_device_watch_error,
        )

    def _on_carousel_watch_error(self, exc: Exception) -> None:
        if self._closed:
            return
        self._on_query_error(exc)
        if self.engine.is_playing:
            self._schedule_reattach()

    def _on_device_watch_error(self, exc: Exception) -> None:
        if self._closed:
            return
        logger.warning(
            "playback.device_watch.failed",
            device_id=self._identity.device_id,
            error=str(exc),
        )
        self._schedule_reattach()

    def _schedule_reattach(self) -> None:
        if self._reattach_timer is not None:
            return
        self._reattach_timer = self._scheduler.call_later(
            self._watch_retry_seconds, self._on_reattach_timer
        )

    def _cancel_reattach(self) -> None:
        if self._reattach_timer is not None:
            self._reattach_timer.cancel()
            self._reattach_timer = None

    def _on_reattach_timer(self) -> None:
        self._reattach_timer = None
        if not self._closed:
            self._tasks.spawn(self._reattach())

    async def _reattach(self) -> None:
        carousel_dead = self._online and not (
            self._carousel_subscription is not None and self._carousel_subscription.active
        )
        logger.info(
            "playback.watch.reattach",
            device_id=self._identity.device_id,
            carousel_watch=carousel_dead,
        )
        self._watch_device()
        if carousel_dead:
            await self._resolve_now()
            self._watch_carousels()

    def _on_device_document(self, data: Mapping[str, Any] | None) -> None:
        if self._closed or data is None:
            return
        location_id = data.get("locationId")
        if not location_id or location_id == self._identity.location_id:
            return
        self._relocate(str(location_id))

    def _relocate(self, location_id: str) -> None:
        previous = self._identity.location_id
        if self._on_relocated is not None:
            try:
                self._on_relocated(location_id)
            except PersistenceError as exc:
                logger.warning(
                    "playback.relocate.persist_failed",
                    device_id=self._identity.device_id,
                    location_id=location_id,
                    error=str(exc),
                )
        self._identity = DeviceIdentity(
            device_id=self._identity.device_id, location_id=location_id
        )
        logger.info(
            "playback.relocated",
            device_id=self._identity.device_id,
            previous_location_id=previous,
            location_id=location_id,
        )
        self._drop_carousel_watch()
        self._tasks.spawn(self._retarget())

    async def _retarget(self) -> None:
        await self._resolve_now()
        self._watch_carousels()

    def _on_progress(self, progress: RotationProgress) -> None:
        self._notify()

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self.view)


__all__ = ["PlaybackClient", "PlaybackPhase", "PlaybackView"]
