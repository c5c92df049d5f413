"""Virtual-time scheduler driving state machines deterministically in tests."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

T0 = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@dataclass
class ManualTimer:
    due: float
    seq: int
    callback: Callable[[], None]
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Timers fire only from :meth:`advance`, in due-time order."""

    def __init__(self, start: datetime = T0) -> None:
        self._start = start
        self.elapsed = 0.0
        self._timers: list[ManualTimer] = []
        self._seq = 0

    def now(self) -> datetime:
        return self._start + timedelta(seconds=self.elapsed)

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        self._seq += 1
        timer = ManualTimer(due=self.elapsed + max(0.0, float(delay)), seq=self._seq, callback=callback)
        self._timers.append(timer)
        return timer

    @property
    def pending(self) -> list[ManualTimer]:
        return [timer for timer in self._timers if not timer.cancelled and not timer.fired]

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due timers (including newly armed ones)."""
        target = self.elapsed + seconds
        while True:
            due = [timer for timer in self.pending if timer.due <= target]
            if not due:
                break
            timer = min(due, key=lambda item: (item.due, item.seq))
            self.elapsed = timer.due
            timer.fired = True
            timer.callback()
        self.elapsed = target
        self._timers = self.pending

    def run_due(self) -> None:
        self.advance(0.0)


__all__ = ["ManualScheduler", "ManualTimer", "T0"]
