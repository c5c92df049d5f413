"""Lifecycle helpers wiring background tasks for FastAPI startup."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Protocol

import httpx
import structlog

logger = structlog.get_logger(__name__)


class Pollable(Protocol):
    async def refresh(self) -> None:
        """Deliver changes made by other processes."""


class ConnectivityMonitor:
    """Probe ``probe_url`` and report online/offline transitions.

    Without a probe URL the device is always considered online. Any HTTP
    response, including an error status, counts as connectivity; only
    transport failures and timeouts count as offline.
    """

    def __init__(
        self,
        probe_url: str | None,
        *,
        timeout_seconds: float = 5.0,
        on_change: Callable[[bool], Awaitable[None]] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.probe_url = probe_url
        self.timeout_seconds = timeout_seconds
        self._on_change = on_change
        self._transport = transport
        self.online: bool | None = None

    async def probe(self) -> bool:
        if not self.probe_url:
            return True
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                await client.head(self.probe_url)
        except httpx.HTTPError as exc:
            logger.debug("connectivity.probe.failed", url=self.probe_url, error=str(exc))
            return False
        return True

    async def check_once(self) -> bool:
        online = await self.probe()
        if online != self.online:
            previous = self.online
            self.online = online
            if previous is not None:
                logger.info("connectivity.changed", online=online)
            if self._on_change is not None:
                await self._on_change(online)
        return online


async def _run_every(
    action: Callable[[], Awaitable[object]],
    *,
    name: str,
    shutdown_event: asyncio.Event,
    interval_seconds: float,
) -> None:
    interval = max(0.1, float(interval_seconds))
    while not shutdown_event.is_set():
        try:
            await action()
        except Exception:
            logger.exception(f"{name}.iteration_failed")
        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            continue


async def run_connectivity_monitor(
    *,
    monitor: ConnectivityMonitor,
    shutdown_event: asyncio.Event,
    interval_seconds: float = 15.0,
) -> None:
    """Probe connectivity until ``shutdown_event`` is signalled."""

    await _run_every(
        monitor.check_once,
        name="connectivity",
        shutdown_event=shutdown_event,
        interval_seconds=interval_seconds,
    )


async def run_store_polling(
    *,
    store: Pollable,
    shutdown_event: asyncio.Event,
    interval_seconds: float = 2.0,
) -> None:
    """Refresh store subscriptions until ``shutdown_event`` is signalled."""

    await _run_every(
        store.refresh,
        name="store.polling",
        shutdown_event=shutdown_event,
        interval_seconds=interval_seconds,
    )


__all__ = [
    "ConnectivityMonitor",
    "Pollable",
    "run_connectivity_monitor",
    "run_store_polling",
]
