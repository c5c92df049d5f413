"""Collaborator interfaces consumed by the pairing and playback core."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Protocol

from .domain.models import Identity, MediaItem
from .store.documents import (
    Document,
    DocumentCallback,
    ErrorCallback,
    Filter,
    QueryCallback,
)


class Subscription(Protocol):
    """Cancelable handle returned by every ``subscribe`` call."""

    @property
    def active(self) -> bool:
        """``False`` once :meth:`unsubscribe` ran; no callback fires afterwards."""

    def unsubscribe(self) -> None:
        """Detach the callback synchronously. Safe to call more than once."""


class TimerHandle(Protocol):
    def cancel(self) -> None:
        """Disarm the timer; a cancelled timer never fires."""


class Scheduler(Protocol):
    """Clock and single-shot timers driving every state machine."""

    def now(self) -> datetime:
        """Return the current timezone-aware time."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` once after ``delay`` seconds on the event loop."""


class DocumentStore(Protocol):
    """Shared multi-writer document store (``tvSetup``, ``tvs``, ``carousels``)."""

    async def create_record(
        self, collection: str, record_id: str, fields: Mapping[str, Any]
    ) -> None:
        """Create a record; raise :class:`PersistenceError` when it already exists."""

    async def get_record(self, collection: str, record_id: str) -> dict[str, Any] | None:
        """Return a copy of the record fields or ``None``."""

    async def update_record(
        self, collection: str, record_id: str, fields: Mapping[str, Any]
    ) -> None:
        """Merge ``fields`` into the record, creating it when missing."""

    async def query(self, collection: str, filters: Iterable[Filter]) -> list[Document]:
        """Return every record of ``collection`` matching all ``filters``."""

    def subscribe(
        self,
        collection: str,
        filters: Iterable[Filter],
        callback: QueryCallback,
        *,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        """Deliver the full matching result set now and after every change."""

    def subscribe_doc(
        self,
        collection: str,
        record_id: str,
        callback: DocumentCallback,
        *,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        """Deliver the record (or ``None``) now and after every change."""


class LocalStorage(Protocol):
    """Synchronous string key/value storage surviving process restarts."""

    def get(self, key: str) -> str | None:
        """Return the stored value or ``None``."""

    def set(self, key: str, value: str) -> None:
        """Store one value; raise :class:`PersistenceError` on failure."""

    def set_many(self, values: Mapping[str, str]) -> None:
        """Store all values in one atomic write (all or none)."""

    def remove_many(self, keys: Iterable[str]) -> None:
        """Remove keys in one atomic write; missing keys are ignored."""


class IdentityProvider(Protocol):
    """Source of the signed-in dashboard operator."""

    def current_identity(self) -> Identity | None:
        """Return the signed-in identity or ``None``."""

    def subscribe(self, callback: Callable[[Identity | None], None]) -> Subscription:
        """Notify ``callback`` on every sign-in/sign-out."""


class MediaSurface(Protocol):
    """Display surface rendering one media item at a time."""

    def render(
        self,
        item: MediaItem,
        *,
        on_ready: Callable[[], None],
        on_ended: Callable[[], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        """Start showing ``item``; ``on_ended`` is only reported for videos."""

    def clear(self) -> None:
        """Remove whatever is displayed."""


__all__ = [
    "DocumentCallback",
    "DocumentStore",
    "ErrorCallback",
    "IdentityProvider",
    "LocalStorage",
    "MediaSurface",
    "QueryCallback",
    "Scheduler",
    "Subscription",
    "TimerHandle",
]
