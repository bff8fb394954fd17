import pytest

from conftest import DAY, at, make_segment
from core.errors import ChangesRevertedError
from helpers.resize import DragMode
from services.drag_controller import IDLE, DragController, PointerEvent, toggles_precision

# 24h over 1440 px: one pixel per minute
TRACK = 1440


class RecordingSegments:
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    async def update(self, segment_id, **fields):
        self.calls.append((segment_id, fields))
        if self.error is not None:
            raise self.error
        return None


def _controller(segments, previews=None):
    return DragController(
        segments,
        track_width=TRACK,
        day_start_hour=0,
        day_end_hour=24,
        on_preview=(lambda *args: previews.append(args)) if previews is not None else None,
    )


def test_pointer_down_picks_mode_from_hit_zone():
    ctrl = _controller(RecordingSegments())
    seg = make_segment("s1", at(9), at(10))
    assert ctrl.pointer_down(seg, PointerEvent(1, 540), block_x=1, block_width=60) is DragMode.RESIZE_START
    assert ctrl.state == "resize-start"
    assert ctrl.pointer_down(seg, PointerEvent(2, 540), block_x=30, block_width=60) is None


@pytest.mark.asyncio
async def test_move_snaps_to_quarter_hours_and_commits():
    segments = RecordingSegments()
    previews = []
    ctrl = _controller(segments, previews)
    seg = make_segment("s1", at(9), at(10))
    ctrl.pointer_down(seg, PointerEvent(1, 540), block_x=30, block_width=60)

    assert ctrl.pointer_move(PointerEvent(1, 547)) == (at(9), at(10))
    assert ctrl.pointer_move(PointerEvent(1, 563)) == (at(9, 30), at(10, 30))
    assert previews[-1] == ("s1", at(9, 30), at(10, 30))

    outcome = await ctrl.pointer_up(PointerEvent(1, 563))
    assert outcome.committed
    assert ctrl.state == IDLE
    assert segments.calls == [("s1", {"start_time": at(9, 30), "end_time": at(10, 30), "origin": "timeline"})]


@pytest.mark.asyncio
async def test_precise_modifier_uses_minute_grid():
    segments = RecordingSegments()
    ctrl = _controller(segments)
    seg = make_segment("s1", at(9), at(10))
    ctrl.pointer_down(seg, PointerEvent(1, 600), block_x=59, block_width=60)
    assert ctrl.pointer_move(PointerEvent(1, 607, precise=True)) == (at(9), at(10, 7))
    outcome = await ctrl.pointer_up(PointerEvent(1, 607, precise=True))
    assert outcome.mode is DragMode.RESIZE_END
    assert outcome.end == at(10, 7)


def test_other_pointers_are_ignored():
    ctrl = _controller(RecordingSegments())
    ctrl.pointer_down(make_segment("s1", at(9), at(10)), PointerEvent(1, 540), block_x=30, block_width=60)
    assert ctrl.pointer_move(PointerEvent(2, 700)) is None
    assert ctrl.preview() == (at(9), at(10))


@pytest.mark.asyncio
async def test_unchanged_drag_writes_nothing():
    segments = RecordingSegments()
    ctrl = _controller(segments)
    ctrl.pointer_down(make_segment("s1", at(9), at(10)), PointerEvent(1, 540), block_x=30, block_width=60)
    outcome = await ctrl.pointer_up(PointerEvent(1, 545))
    assert not outcome.committed
    assert segments.calls == []


@pytest.mark.asyncio
async def test_failed_write_reverts_preview():
    segments = RecordingSegments(error=ChangesRevertedError(RuntimeError("offline")))
    previews = []
    ctrl = _controller(segments, previews)
    ctrl.pointer_down(make_segment("s1", at(9), at(10)), PointerEvent(1, 540), block_x=30, block_width=60)
    outcome = await ctrl.pointer_up(PointerEvent(1, 600))
    assert not outcome.committed
    assert isinstance(outcome.error, ChangesRevertedError)
    assert (outcome.start, outcome.end) == (at(9), at(10))
    assert previews[-1] == ("s1", at(9), at(10))
    assert ctrl.state == IDLE


def test_cancel_discards_without_write():
    segments = RecordingSegments()
    previews = []
    ctrl = _controller(segments, previews)
    ctrl.pointer_down(make_segment("s1", at(9), at(10)), PointerEvent(1, 540), block_x=30, block_width=60)
    ctrl.pointer_move(PointerEvent(1, 600))
    assert not ctrl.pointer_cancel(PointerEvent(2, 600))
    assert ctrl.pointer_cancel()
    assert ctrl.state == IDLE
    assert previews[-1] == ("s1", at(9), at(10))
    assert segments.calls == []


def test_drag_stays_inside_the_day():
    ctrl = _controller(RecordingSegments())
    ctrl.pointer_down(make_segment("s1", at(23), at(23, 30)), PointerEvent(1, 0), block_x=15, block_width=30)
    start, end = ctrl.pointer_move(PointerEvent(1, 300))
    assert end == at(0, day=DAY.replace(day=12))
    assert start == at(23, 30)


def test_empty_visible_range_rejected():
    with pytest.raises(ValueError):
        DragController(RecordingSegments(), day_start_hour=8, day_end_hour=8)


def test_only_bare_shift_toggles_precision():
    assert toggles_precision("Shift Left", "shift")
    assert toggles_precision("Shift Right", "shift")
    # capital letters typed with Shift held
    assert not toggles_precision("A", "shift")
    assert not toggles_precision("Shift Left", "toggle")
