"""TV device runtime: pairing on first boot, playback afterwards."""

from __future__ import annotations

from functools import partial
from typing import Any, Callable

import structlog

from .config import Settings
from .domain.models import DeviceIdentity, Ready
from .interfaces import DocumentStore, IdentityProvider, LocalStorage, MediaSurface, Scheduler
from .pairing import codes
from .pairing.acceptor import PairingAcceptor
from .pairing.coordinator import PairingView
from .playback.cache import CarouselCache
from .playback.client import PlaybackClient, PlaybackView
from .runtime import BackgroundTasks

logger = structlog.get_logger(__name__)


class DeviceRuntime:
    """Compose the pairing acceptor and the playback client for one TV."""

    def __init__(
        self,
        *,
        storage: LocalStorage,
        store: DocumentStore,
        surface: MediaSurface,
        scheduler: Scheduler,
        ttl_seconds: int = 300,
        max_generation_attempts: int = 3,
        link_base_url: str = "https://advertiser-genius.com",
        video_grace_seconds: float = 10.0,
        error_backoff_seconds: float = 5.0,
        watch_retry_seconds: float = 30.0,
        code_factory: Callable[[], str] | None = None,
        identity_provider: IdentityProvider | None = None,
    ) -> None:
        self._store = store
        self._surface = surface
        self._scheduler = scheduler
        self._cache = CarouselCache(storage)
        self._video_grace_seconds = video_grace_seconds
        self._error_backoff_seconds = error_backoff_seconds
        self._watch_retry_seconds = watch_retry_seconds
        self._online = True
        self._tasks = BackgroundTasks("device.runtime")
        self.playback: PlaybackClient | None = None
        self.acceptor = PairingAcceptor(
            storage,
            store,
            scheduler,
            ttl_seconds=ttl_seconds,
            max_generation_attempts=max_generation_attempts,
            code_factory=code_factory,
            identity_provider=identity_provider,
            link_base_url=link_base_url,
            on_ready=self._on_ready,
        )

    @classmethod
    def from_settings(cls, settings: Settings, **collaborators: Any) -> "DeviceRuntime":
        collaborators.setdefault(
            "code_factory", partial(codes.generate_code, settings.pairing_code_length)
        )
        return cls(
            ttl_seconds=settings.pairing_ttl_seconds,
            max_generation_attempts=settings.pairing_max_generation_attempts,
            link_base_url=settings.link_base_url,
            video_grace_seconds=settings.video_grace_seconds,
            error_backoff_seconds=settings.error_backoff_seconds,
            watch_retry_seconds=settings.watch_retry_seconds,
            **collaborators,
        )

    @property
    def is_paired(self) -> bool:
        return self.playback is not None

    @property
    def pairing_view(self) -> PairingView:
        return self.acceptor.view

    @property
    def playback_view(self) -> PlaybackView | None:
        return self.playback.view if self.playback is not None else None

    async def start(self) -> None:
        """Boot: resume playback for a stored identity or open a pairing session."""
        state = self.acceptor.boot()
        if isinstance(state, Ready):
            await self._start_playback(state.to_identity())
            return
        await self.acceptor.start()

    async def set_online(self, online: bool) -> None:
        self._online = online
        if self.playback is not None:
            await self.playback.set_online(online)

    async def settle(self) -> None:
        """Wait for background identity commits and playback start-up."""
        await self.acceptor.settle()
        await self._tasks.drain()
        if self.playback is not None:
            await self.playback.settle()

    def stop(self) -> None:
        self.acceptor.close()
        self._tasks.cancel_all()
        if self.playback is not None:
            self.playback.stop()
        logger.info("device.stopped")

    def _on_ready(self, identity: DeviceIdentity) -> None:
        self._tasks.spawn(self._start_playback(identity))

    async def _start_playback(self, identity: DeviceIdentity) -> None:
        if self.playback is not None:
            return
        logger.info(
            "device.playback.starting",
            device_id=identity.device_id,
            location_id=identity.location_id,
        )
        self.playback = PlaybackClient(
            identity,
            self._store,
            self._cache,
            self._surface,
            self._scheduler,
            online=self._online,
            video_grace_seconds=self._video_grace_seconds,
            error_backoff_seconds=self._error_backoff_seconds,
            watch_retry_seconds=self._watch_retry_seconds,
            on_relocated=self.acceptor.reassign_location,
        )
        await self.playback.start()


__all__ = ["DeviceRuntime"]
