"""Endless, failure-tolerant rotation over a carousel's media items.

The engine is either idle (no items) or playing one index. Entering an index
bumps a generation counter; every trigger armed for that index (item timer,
video end event, media error) carries the generation it was armed with and is
ignored once the counter has moved on. The first trigger to fire bumps the
counter itself, so an item advances exactly once.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from typing import Callable, Sequence

import structlog

from ..domain.deadlines import fallback_delay_seconds
from ..domain.models import MediaItem, MediaType
from ..exceptions import MediaError
from ..interfaces import MediaSurface, Scheduler, TimerHandle

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RotationProgress:
    """Read-only position of the rotation for progress indicators."""

    current_index: int | None
    item_count: int
    current_item: MediaItem | None

    @property
    def is_idle(self) -> bool:
        return self.current_index is None


class RotationEngine:
    def __init__(
        self,
        surface: MediaSurface,
        scheduler: Scheduler,
        *,
        video_grace_seconds: float = 10.0,
        error_backoff_seconds: float = 5.0,
        on_advance: Callable[[RotationProgress], None] | None = None,
    ) -> None:
        if video_grace_seconds < 0:
            raise ValueError("video_grace_seconds must not be negative")
        if error_backoff_seconds < 0:
            raise ValueError("error_backoff_seconds must not be negative")
        self._surface = surface
        self._scheduler = scheduler
        self._grace = video_grace_seconds
        self._backoff = error_backoff_seconds
        self._on_advance = on_advance

        self._items: tuple[MediaItem, ...] = ()
        self._index: int | None = None
        self._generation = 0
        self._timer: TimerHandle | None = None
        self._arming = False
        self._failures_in_row = 0

    @property
    def items(self) -> tuple[MediaItem, ...]:
        return self._items

    @property
    def progress(self) -> RotationProgress:
        index = self._index
        return RotationProgress(
            current_index=index,
            item_count=len(self._items),
            current_item=self._items[index] if index is not None else None,
        )

    @property
    def is_playing(self) -> bool:
        return self._index is not None

    def load(self, items: Sequence[MediaItem]) -> None:
        """Swap the item sequence.

        An identical sequence is a no-op. Otherwise the current index is kept
        modulo the new length; the item on screen is only restarted when the
        item at that index changed.
        """

        new_items = tuple(items)
        if new_items == self._items:
            return
        previous = self.progress.current_item
        self._items = new_items
        self._failures_in_row = 0
        if not new_items:
            self._go_idle()
            return
        if self._index is None:
            self._enter(0)
            return
        index = self._index % len(new_items)
        if index != self._index or new_items[index] != previous:
            self._enter(index)
            return
        self._index = index
        self._notify()

    def stop(self) -> None:
        """Disarm every trigger and clear the surface; late callbacks are dropped."""
        self._items = ()
        self._go_idle()

    # -- transitions --------------------------------------------------------

    def _enter(self, index: int) -> None:
        self._cancel_timer()
        self._generation += 1
        generation = self._generation
        self._index = index
        item = self._items[index]
        if item.type is MediaType.VIDEO:
            delay = fallback_delay_seconds(item, grace_seconds=self._grace)
        else:
            delay = item.duration
        self._timer = self._scheduler.call_later(delay, partial(self._on_timer, generation))
        logger.debug(
            "rotation.enter",
            index=index,
            item_id=item.id,
            media_type=item.type.value,
            delay=delay,
        )
        self._notify()

        self._arming = True
        try:
            self._surface.render(
                item,
                on_ready=partial(self._on_ready, generation),
                on_ended=partial(self._on_ended, generation),
                on_error=partial(self._on_error, generation),
            )
        except MediaError as exc:
            self._on_error(generation, exc)
        finally:
            self._arming = False

    def _go_idle(self) -> None:
        self._cancel_timer()
        self._generation += 1
        was_playing = self._index is not None
        self._index = None
        self._surface.clear()
        if was_playing:
            logger.info("rotation.idle")
        self._notify()

    def _advance(self, generation: int, *, failed: bool) -> None:
        if generation != self._generation or self._index is None:
            return
        self._generation += 1
        self._cancel_timer()
        if self._arming:
            # Reported synchronously from render(); continue on the next loop turn.
            self._timer = self._scheduler.call_later(
                0.0, partial(self._step_later, self._generation, failed)
            )
            return
        self._step(failed=failed)

    def _step_later(self, generation: int, failed: bool) -> None:
        if generation != self._generation or self._index is None:
            return
        self._timer = None
        self._step(failed=failed)

    def _step(self, *, failed: bool) -> None:
        if self._index is None or not self._items:
            return
        next_index = (self._index + 1) % len(self._items)
        if not failed:
            self._failures_in_row = 0
            self._enter(next_index)
            return
        self._failures_in_row += 1
        if self._backoff > 0 and self._failures_in_row >= len(self._items):
            self._failures_in_row = 0
            logger.warning(
                "rotation.backoff",
                item_count=len(self._items),
                delay=self._backoff,
            )
            self._timer = self._scheduler.call_later(
                self._backoff, partial(self._resume, self._generation, next_index)
            )
            return
        self._enter(next_index)

    def _resume(self, generation: int, index: int) -> None:
        if generation != self._generation or not self._items:
            return
        self._timer = None
        self._enter(index % len(self._items))

    # -- triggers -----------------------------------------------------------

    def _on_timer(self, generation: int) -> None:
        if generation == self._generation:
            self._timer = None
        self._advance(generation, failed=False)

    def _on_ready(self, generation: int) -> None:
        if generation == self._generation:
            self._failures_in_row = 0

    def _on_ended(self, generation: int) -> None:
        self._advance(generation, failed=False)

    def _on_error(self, generation: int, exc: Exception) -> None:
        if generation != self._generation or self._index is None:
            return
        item = self._items[self._index]
        logger.warning(
            "rotation.media_error",
            index=self._index,
            item_id=item.id,
            url=item.url,
            error=str(exc),
        )
        self._advance(generation, failed=True)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _notify(self) -> None:
        if self._on_advance is not None:
            self._on_advance(self.progress)


__all__ = ["RotationEngine", "RotationProgress"]
