"""FastAPI application entry point.

Run with ``uvicorn src.adcast.main:create_app --factory``.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI

from .api import devices_router, health_router, tv_router
from .auth.identity import SessionIdentityProvider, TokenVerifier
from .config import AppConfig, load_config
from .device import DeviceRuntime
from .interfaces import DocumentStore, MediaSurface, Scheduler
from .lifecycle import ConnectivityMonitor, run_connectivity_monitor, run_store_polling
from .logging import configure_logging
from .pairing.linker import PairingLinker
from .playback.surface import LoggingSurface
from .runtime import AsyncioScheduler
from .store.local_storage import JsonFileStorage
from .store.sql_store import SqlDocumentStore

logger = structlog.get_logger(__name__)


def include_routers(
    app: FastAPI,
    config: AppConfig,
    *,
    store: DocumentStore | None = None,
    surface: MediaSurface | None = None,
    scheduler: Scheduler | None = None,
) -> None:
    """Build services, attach them to ``app.state`` and mount routers."""
    settings = config.settings
    document_store = store or SqlDocumentStore(config.session_factory)

    verifier = TokenVerifier(signing_key=settings.jwt_signing_key)
    identity_provider = SessionIdentityProvider(verifier)

    runtime: DeviceRuntime | None = None
    if settings.device_enabled:
        runtime = DeviceRuntime.from_settings(
            settings,
            storage=JsonFileStorage(settings.local_storage_path),
            store=document_store,
            surface=surface or LoggingSurface(),
            scheduler=scheduler or AsyncioScheduler(),
            identity_provider=identity_provider,
        )

    app.state.config = config
    app.state.store = document_store
    app.state.token_verifier = verifier
    app.state.identity_provider = identity_provider
    app.state.linker = PairingLinker(document_store, ttl_seconds=settings.pairing_ttl_seconds)
    app.state.device_runtime = runtime

    app.include_router(health_router)
    app.include_router(tv_router)
    app.include_router(devices_router)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = app.state.config.settings
    runtime: DeviceRuntime | None = app.state.device_runtime
    store = app.state.store
    shutdown_event = asyncio.Event()
    background: list[asyncio.Task[None]] = []

    if runtime is not None:
        await runtime.start()
        if settings.connectivity_probe_url:
            monitor = ConnectivityMonitor(
                settings.connectivity_probe_url,
                timeout_seconds=settings.connectivity_timeout_seconds,
                on_change=runtime.set_online,
            )
            background.append(
                asyncio.create_task(
                    run_connectivity_monitor(
                        monitor=monitor,
                        shutdown_event=shutdown_event,
                        interval_seconds=settings.connectivity_interval_seconds,
                    )
                )
            )
    if isinstance(store, SqlDocumentStore):
        background.append(
            asyncio.create_task(
                run_store_polling(
                    store=store,
                    shutdown_event=shutdown_event,
                    interval_seconds=settings.store_poll_interval_seconds,
                )
            )
        )
    logger.info("app.started", device_enabled=runtime is not None, tasks=len(background))
    try:
        yield
    finally:
        shutdown_event.set()
        if runtime is not None:
            runtime.stop()
        await asyncio.gather(*background, return_exceptions=True)
        logger.info("app.stopped")


def create_app(
    config: AppConfig | None = None,
    *,
    store: DocumentStore | None = None,
    surface: MediaSurface | None = None,
    scheduler: Scheduler | None = None,
) -> FastAPI:
    """Build FastAPI instance with configured dependencies."""
    cfg = config or load_config()
    configure_logging(cfg.settings.log_level)
    app = FastAPI(title="adcast", lifespan=lifespan)
    include_routers(app, cfg, store=store, surface=surface, scheduler=scheduler)
    return app


__all__ = ["create_app", "include_routers", "lifespan"]
