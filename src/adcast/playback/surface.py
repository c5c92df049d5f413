"""Headless media surface used when no display toolkit is attached."""

from __future__ import annotations

from typing import Callable
from urllib.parse import urlparse

import structlog

from ..domain.models import MediaItem
from ..exceptions import MediaError

logger = structlog.get_logger(__name__)

SUPPORTED_SCHEMES = frozenset({"http", "https", "file"})


class LoggingSurface:
    """Records what would be on screen.

    Items with an unusable URL are reported through ``on_error``. Videos never
    report ``on_ended`` here, so they run until their fallback timer.
    """

    def __init__(self) -> None:
        self.current: MediaItem | None = None

    def render(
        self,
        item: MediaItem,
        *,
        on_ready: Callable[[], None],
        on_ended: Callable[[], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        parsed = urlparse(item.url)
        if parsed.scheme not in SUPPORTED_SCHEMES or not (parsed.netloc or parsed.path):
            self.current = None
            on_error(MediaError(f"unsupported media url '{item.url}'", item_id=item.id))
            return
        self.current = item
        logger.info(
            "surface.render",
            item_id=item.id,
            media_type=item.type.value,
            url=item.url,
            name=item.name or None,
        )
        on_ready()

    def clear(self) -> None:
        if self.current is not None:
            logger.info("surface.clear", item_id=self.current.id)
        self.current = None


__all__ = ["LoggingSurface", "SUPPORTED_SCHEMES"]
