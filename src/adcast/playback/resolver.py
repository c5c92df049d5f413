"""Carousel resolution for a location, with the offline cache as fallback."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Sequence

import structlog

from ..domain.models import Carousel, CarouselStatus
from ..exceptions import PersistenceError
from ..interfaces import DocumentStore, ErrorCallback, Subscription
from ..store.documents import ARRAY_CONTAINS, CAROUSELS, EQUALS, Document, Filter
from .cache import CarouselCache

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class Resolution:
    """Outcome of one resolution; ``carousel`` is ``None`` for "no content"."""

    carousel: Carousel | None
    from_cache: bool = False


def carousel_filters(location_id: str) -> tuple[Filter, ...]:
    return (
        Filter("locations", ARRAY_CONTAINS, location_id),
        Filter("status", EQUALS, CarouselStatus.ACTIVE.value),
    )


def _rank(carousel: Carousel) -> tuple[bool, float, str]:
    updated_at: datetime | None = carousel.updated_at
    if updated_at is None:
        return (True, 0.0, carousel.id)
    return (False, -updated_at.timestamp(), carousel.id)


def select_carousel(documents: Iterable[Document], location_id: str) -> Carousel | None:
    """Pick the carousel a location should play.

    Only active carousels assigned to ``location_id`` with at least one item
    qualify. The most recent ``updatedAt`` wins; carousels without a
    timestamp rank oldest and ties go to the smallest ``id``.
    """

    candidates: list[Carousel] = []
    for document in documents:
        try:
            carousel = Carousel.from_document(document.id, document.fields)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("playback.carousel.invalid", carousel_id=document.id, error=str(exc))
            continue
        if carousel.is_eligible(location_id) and carousel.items:
            candidates.append(carousel)
    if not candidates:
        return None
    return min(candidates, key=_rank)


class CarouselResolver:
    def __init__(self, store: DocumentStore, cache: CarouselCache) -> None:
        self._store = store
        self._cache = cache

    async def resolve(self, location_id: str, *, online: bool) -> Resolution:
        """Resolve from the store when online, from the cache otherwise.

        Store failures propagate as :class:`~adcast.exceptions.QueryError`.
        An online resolution with nothing eligible never consults the cache.
        """

        if not online:
            cached = self._cache.load()
            logger.info(
                "playback.resolve.offline",
                location_id=location_id,
                carousel_id=cached.id if cached else None,
            )
            return Resolution(carousel=cached, from_cache=True)
        documents = await self._store.query(CAROUSELS, carousel_filters(location_id))
        return self.apply_snapshot(documents, location_id)

    def apply_snapshot(self, documents: Sequence[Document], location_id: str) -> Resolution:
        carousel = select_carousel(documents, location_id)
        if carousel is not None:
            try:
                self._cache.save(carousel)
            except PersistenceError as exc:
                # A failed cache write never blocks playback.
                logger.warning(
                    "playback.cache.save_failed", carousel_id=carousel.id, error=str(exc)
                )
        logger.info(
            "playback.resolve.online",
            location_id=location_id,
            candidates=len(documents),
            carousel_id=carousel.id if carousel else None,
        )
        return Resolution(carousel=carousel)

    def watch(
        self,
        location_id: str,
        callback: Callable[[Resolution], None],
        *,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        """Re-resolve on every change of the location's carousel query."""

        def _deliver(documents: Sequence[Document]) -> None:
            callback(self.apply_snapshot(documents, location_id))

        return self._store.subscribe(
            CAROUSELS,
            carousel_filters(location_id),
            _deliver,
            on_error=on_error,
        )


__all__ = ["CarouselResolver", "Resolution", "carousel_filters", "select_carousel"]
