"""Offline snapshot of the last resolved carousel."""

from __future__ import annotations

import json

import structlog

from ..domain.models import Carousel
from ..interfaces import LocalStorage

logger = structlog.get_logger(__name__)

CACHE_KEY = "cached_carousel"


def serialize_carousel(carousel: Carousel) -> str:
    """Canonical JSON: an unchanged carousel always yields the same bytes."""
    return json.dumps(
        carousel.to_document(),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def deserialize_carousel(raw: str) -> Carousel:
    data = json.loads(raw)
    if not isinstance(data, dict) or not data.get("id"):
        raise ValueError("cached carousel has no id")
    return Carousel.from_document(str(data["id"]), data)


class CarouselCache:
    """Reads and overwrites the cached snapshot in device-local storage."""

    def __init__(self, storage: LocalStorage) -> None:
        self._storage = storage

    def load(self) -> Carousel | None:
        raw = self._storage.get(CACHE_KEY)
        if not raw:
            return None
        try:
            return deserialize_carousel(raw)
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("playback.cache.unreadable", error=str(exc))
            return None

    def save(self, carousel: Carousel) -> str:
        payload = serialize_carousel(carousel)
        self._storage.set(CACHE_KEY, payload)
        logger.debug("playback.cache.saved", carousel_id=carousel.id, items=len(carousel.items))
        return payload


__all__ = ["CACHE_KEY", "CarouselCache", "deserialize_carousel", "serialize_carousel"]
