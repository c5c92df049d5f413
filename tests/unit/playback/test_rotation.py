"""Rotation engine timing in virtual time."""

from __future__ import annotations

import pytest

from src.adcast.domain.models import MediaItem, MediaType
from src.adcast.playback.rotation import RotationEngine, RotationProgress
from tests.helpers.scheduler import ManualScheduler
from tests.mocks.surface import ScriptedSurface

pytestmark = pytest.mark.unit


def _image(item_id: str, order: int, duration: float = 5.0) -> MediaItem:
    return MediaItem(
        id=item_id,
        url=f"https://cdn.example/{item_id}.png",
        type=MediaType.IMAGE,
        order=order,
        duration=duration,
    )


def _video(item_id: str, order: int, duration: float = 12.0) -> MediaItem:
    return MediaItem(
        id=item_id,
        url=f"https://cdn.example/{item_id}.mp4",
        type=MediaType.VIDEO,
        order=order,
        duration=duration,
    )


class _Harness:
    def __init__(self, *, broken: set[str] | None = None, backoff: float = 5.0) -> None:
        self.scheduler = ManualScheduler()
        self.surface = ScriptedSurface(broken_urls=broken or set())
        self.transitions: list[tuple[float, int | None]] = []
        self.engine = RotationEngine(
            self.surface,
            self.scheduler,
            video_grace_seconds=10.0,
            error_backoff_seconds=backoff,
            on_advance=self._record,
        )

    def _record(self, progress: RotationProgress) -> None:
        self.transitions.append((self.scheduler.elapsed, progress.current_index))


def test_images_and_video_follow_their_own_durations() -> None:
    harness = _Harness()
    items = [_image("a", 0), _image("b", 1), _video("v", 2)]

    harness.engine.load(items)
    harness.scheduler.advance(5)
    harness.scheduler.advance(5)
    harness.scheduler.advance(12)
    harness.surface.last.end()
    harness.scheduler.advance(5)
    harness.scheduler.advance(5)
    harness.scheduler.advance(12)
    harness.surface.last.end()

    assert harness.transitions == [
        (0, 0),
        (5, 1),
        (10, 2),
        (22, 0),
        (27, 1),
        (32, 2),
        (44, 0),
    ]


def test_video_without_end_event_is_cut_after_grace() -> None:
    harness = _Harness()
    harness.engine.load([_video("v", 0), _image("a", 1)])

    harness.scheduler.advance(21)
    assert harness.engine.progress.current_index == 0

    harness.scheduler.advance(1)
    assert harness.engine.progress.current_index == 1


def test_every_item_is_shown_once_per_cycle() -> None:
    harness = _Harness()
    items = [_image("a", 0, 3), _image("b", 1, 4), _image("c", 2, 2)]
    harness.engine.load(items)

    harness.scheduler.advance(9)
    harness.scheduler.advance(9)

    assert harness.surface.rendered_ids == ["a", "b", "c", "a", "b", "c", "a"]


def test_single_item_loops_on_itself() -> None:
    harness = _Harness()
    harness.engine.load([_image("a", 0)])

    harness.scheduler.advance(15)

    assert harness.surface.rendered_ids == ["a", "a", "a", "a"]
    assert harness.engine.progress.current_index == 0


def test_empty_sequence_is_idle() -> None:
    harness = _Harness()

    harness.engine.load([])

    assert harness.engine.progress.is_idle
    assert harness.engine.progress.item_count == 0
    assert harness.scheduler.pending == []
    assert harness.surface.calls == []


def test_late_triggers_for_a_finished_item_are_ignored() -> None:
    harness = _Harness()
    harness.engine.load([_video("v", 0), _image("a", 1), _image("b", 2)])
    video_call = harness.surface.last

    harness.scheduler.advance(3)
    video_call.end()
    video_call.end()
    video_call.fail()
    harness.scheduler.advance(32)

    # v ended at t=3, then a (5s), b (5s), v again at 13 and cut at 35.
    assert harness.surface.rendered_ids == ["v", "a", "b", "v", "a"]
    assert harness.engine.progress.current_index == 1


def test_failed_image_advances_without_waiting_for_its_duration() -> None:
    harness = _Harness()
    harness.engine.load([_image("a", 0), _image("b", 1), _image("c", 2)])
    harness.scheduler.advance(5)

    harness.scheduler.advance(1)
    harness.surface.last.fail()

    assert harness.transitions[-1] == (6, 2)
    harness.scheduler.advance(4.9)
    assert harness.engine.progress.current_index == 2


def test_synchronous_load_failure_skips_to_next_item() -> None:
    harness = _Harness(broken={"https://cdn.example/b.png"})
    harness.engine.load([_image("a", 0), _image("b", 1), _image("c", 2)])

    harness.scheduler.advance(5)

    assert harness.surface.rendered_ids == ["a", "b", "c"]
    assert harness.engine.progress.current_index == 2
    assert harness.transitions[-1] == (5, 2)


def test_all_items_failing_backs_off_between_cycles() -> None:
    harness = _Harness(
        broken={"https://cdn.example/a.png", "https://cdn.example/b.png"}, backoff=5.0
    )
    harness.engine.load([_image("a", 0), _image("b", 1)])
    harness.scheduler.run_due()

    assert harness.surface.rendered_ids == ["a", "b"]
    assert [timer.due for timer in harness.scheduler.pending] == [5.0]

    harness.scheduler.advance(4)
    assert harness.surface.rendered_ids == ["a", "b"]

    harness.scheduler.advance(1)
    assert harness.surface.rendered_ids == ["a", "b", "a", "b"]


def test_one_working_item_prevents_backoff() -> None:
    harness = _Harness(broken={"https://cdn.example/b.png"})
    harness.engine.load([_image("a", 0), _image("b", 1)])

    harness.scheduler.advance(10)

    assert harness.surface.rendered_ids == ["a", "b", "a", "b", "a"]


def test_identical_load_keeps_playing_without_restart() -> None:
    harness = _Harness()
    items = [_image("a", 0), _image("b", 1)]
    harness.engine.load(items)
    harness.scheduler.advance(3)

    harness.engine.load(list(items))
    harness.scheduler.advance(2)

    assert harness.surface.rendered_ids == ["a", "b"]


def test_shorter_sequence_keeps_index_modulo_length() -> None:
    harness = _Harness()
    harness.engine.load([_image("a", 0), _image("b", 1), _image("c", 2)])
    harness.scheduler.advance(10)
    assert harness.engine.progress.current_index == 2

    harness.engine.load([_image("x", 0), _image("y", 1)])

    assert harness.engine.progress.current_index == 0
    assert harness.surface.rendered_ids[-1] == "x"


def test_unchanged_current_item_is_not_restarted_by_a_new_sequence() -> None:
    harness = _Harness()
    harness.engine.load([_image("a", 0), _image("b", 1)])
    harness.scheduler.advance(5)
    assert harness.surface.rendered_ids == ["a", "b"]

    harness.scheduler.advance(2)
    harness.engine.load([_image("a", 0), _image("b", 1), _image("c", 2)])
    harness.scheduler.advance(3)

    assert harness.surface.rendered_ids == ["a", "b", "c"]
    assert harness.transitions[-1] == (10, 2)


def test_stop_clears_surface_and_drops_late_callbacks() -> None:
    harness = _Harness()
    harness.engine.load([_video("v", 0), _image("a", 1)])
    call = harness.surface.last

    harness.engine.stop()
    call.end()
    harness.scheduler.advance(60)

    assert not harness.engine.is_playing
    assert harness.surface.clears == 1
    assert harness.surface.rendered_ids == ["v"]
    assert harness.scheduler.pending == []


def test_step_on_an_idle_engine_is_a_no_op() -> None:
    harness = _Harness()
    harness.engine.load([_image("a", 0)])
    harness.engine.stop()

    harness.engine._step(failed=False)

    assert harness.engine.progress.is_idle
    assert harness.surface.rendered_ids == ["a"]
    assert harness.scheduler.pending == []
