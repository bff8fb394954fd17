from datetime import date, datetime, timedelta

import pytest

from conftest import DAY, at
from core.errors import (
    ChangesRevertedError,
    InvalidTimeRangeError,
    MidnightCrossingError,
    NotFoundError,
    ValidationError,
)
from services.events import SegmentChanged
from services.view_cache import EntryState
from services.views import DayTimelineCache


async def _task(port, title="Write report", planned_date=DAY):
    return await port.create_task(title=title, planned_date=planned_date)


class FailingUpdates:
    """Port wrapper whose segment updates blow up after validation."""

    def __init__(self, inner):
        self._inner = inner

    def __getattr__(self, name):
        return getattr(self._inner, name)

    async def update_segment(self, segment_id, **fields):
        raise RuntimeError("disk unplugged")


class FailingSplits(FailingUpdates):
    async def split_segment(self, segment_id, first, second):
        raise RuntimeError("disk unplugged")


@pytest.mark.asyncio
async def test_create_recomputes_and_announces(port, bus, segments):
    events = []
    bus.subscribe(SegmentChanged, events.append)
    task = await _task(port)

    seg = await segments.create(task_id=task.id, start_time=at(9), end_time=at(10, 30))

    assert (seg.date, seg.duration, seg.order) == (DAY, 90, 1)
    assert seg.title == "Write report"
    assert (await port.get_task(task.id)).scheduled_minutes == 90
    assert len(events) == 1
    assert events[0].kind == "created"
    assert events[0].segment_ids == (seg.id,)
    assert DAY in events[0].dates


@pytest.mark.asyncio
async def test_create_rejects_bad_times_before_writing(port, segments):
    task = await _task(port)
    with pytest.raises(InvalidTimeRangeError):
        await segments.create(task_id=task.id, start_time=at(10), end_time=at(10))
    with pytest.raises(MidnightCrossingError) as info:
        await segments.create(task_id=task.id, start_time=at(23), end_time=at(1, day=date(2024, 3, 12)))
    assert info.value.field == "end_time"
    with pytest.raises(ValidationError):
        await segments.create(task_id=task.id, start_time=None, end_time=at(10))
    assert await port.list_segments() == []


@pytest.mark.asyncio
async def test_create_unknown_task(segments):
    with pytest.raises(NotFoundError):
        await segments.create(task_id="missing", start_time=at(9), end_time=at(10))


@pytest.mark.asyncio
async def test_create_from_drop_is_an_hour_clamped_to_midnight(port, segments):
    task = await _task(port)
    seg = await segments.create_from_drop(task.id, at(14))
    assert (seg.start_time, seg.end_time) == (at(14), at(15))
    late = await segments.create_from_drop(task.id, at(23, 30))
    assert late.end_time == datetime(2024, 3, 12)
    assert late.duration == 30
    assert late.order == 2


@pytest.mark.asyncio
async def test_create_event_without_task_makes_backing_task(port, segments):
    seg = await segments.create_event(start_time=at(9), end_time=at(9, 30), title="Standup")
    task = await port.get_task(seg.task_id)
    assert task.title == "Standup"
    assert task.planned_date == DAY
    assert task.scheduled_minutes == 30
    assert seg.title_is_custom

    untitled = await segments.create_event(start_time=at(11), end_time=at(12))
    assert (await port.get_task(untitled.task_id)).title == "Untitled Event"


@pytest.mark.asyncio
async def test_update_title_marks_custom(port, segments):
    task = await _task(port)
    seg = await segments.create(task_id=task.id, start_time=at(9), end_time=at(10))
    renamed = await segments.update(seg.id, title="Outline")
    assert renamed.title == "Outline"
    assert renamed.title_is_custom


@pytest.mark.asyncio
async def test_update_ignores_derived_and_rejects_unknown(port, segments):
    task = await _task(port)
    seg = await segments.create(task_id=task.id, start_time=at(9), end_time=at(10))
    moved = await segments.update(seg.id, end_time=at(11), duration=5, date=date(2020, 1, 1))
    assert (moved.duration, moved.date) == (120, DAY)
    with pytest.raises(ValidationError):
        await segments.update(seg.id, colour="blue")
    with pytest.raises(ValidationError):
        await segments.update(seg.id, status="sleeping")


@pytest.mark.asyncio
async def test_partial_update_validates_against_current_times(port, segments):
    task = await _task(port)
    seg = await segments.create(task_id=task.id, start_time=at(9), end_time=at(10))
    with pytest.raises(InvalidTimeRangeError):
        await segments.update(seg.id, start_time=at(10, 30))
    assert (await port.get_segment(seg.id)).start_time == at(9)


@pytest.mark.asyncio
async def test_move_to_tomorrow_keeps_clock_time(port, segments):
    task = await _task(port)
    seg = await segments.create(task_id=task.id, start_time=at(9), end_time=at(10, 15))
    moved = await segments.move_to_tomorrow(seg.id, today=DAY)
    assert moved.date == date(2024, 3, 12)
    assert moved.start_time.time() == at(9).time()
    assert moved.duration == 75


@pytest.mark.asyncio
async def test_duplicate_shifts_an_hour(port, segments):
    task = await _task(port)
    seg = await segments.create(task_id=task.id, start_time=at(9), end_time=at(10), status="completed", source="task")
    copy = await segments.duplicate(seg.id)
    assert copy.id != seg.id
    assert (copy.start_time, copy.end_time) == (at(10), at(11))
    assert copy.status == "completed"
    assert copy.source == "task"
    assert copy.order == 2
    assert (await port.get_task(task.id)).scheduled_minutes == 120


@pytest.mark.asyncio
async def test_duplicate_past_midnight_is_rejected(port, segments):
    task = await _task(port)
    seg = await segments.create(task_id=task.id, start_time=at(22, 30), end_time=at(23, 30))
    with pytest.raises(MidnightCrossingError):
        await segments.duplicate(seg.id)


@pytest.mark.asyncio
async def test_split_makes_two_halves(port, segments):
    task = await _task(port)
    seg = await segments.create(task_id=task.id, start_time=at(10), end_time=at(12))
    first, second = await segments.split(seg.id)
    assert (first.start_time, first.end_time) == (at(10), at(11))
    assert (second.start_time, second.end_time) == (at(11), at(12))
    assert (first.order, second.order) == (1, 2)
    assert await port.get_segment(seg.id) is None
    assert (await port.get_task(task.id)).scheduled_minutes == 120


@pytest.mark.asyncio
async def test_split_odd_duration_and_too_short(port, segments):
    task = await _task(port)
    odd = await segments.create(task_id=task.id, start_time=at(10), end_time=at(10, 45))
    first, second = await segments.split(odd.id)
    assert (first.duration, second.duration) == (22, 23)

    tiny = await segments.create(task_id=task.id, start_time=at(15), end_time=at(15, 1))
    with pytest.raises(ValidationError):
        await segments.split(tiny.id)


@pytest.mark.asyncio
async def test_failed_split_keeps_original_and_total(port, sync, bus):
    from services.segments import SegmentService

    task = await _task(port)
    seg = await SegmentService(port, sync, bus).create(task_id=task.id, start_time=at(10), end_time=at(12))

    service = SegmentService(FailingSplits(port), sync, bus)
    with pytest.raises(ChangesRevertedError):
        await service.split(seg.id)

    live = await port.list_segments(task_ids=[task.id])
    assert [(s.id, s.start_time, s.end_time) for s in live] == [(seg.id, at(10), at(12))]
    assert (await port.get_task(task.id)).scheduled_minutes == 120


@pytest.mark.asyncio
async def test_bulk_operations(port, segments):
    task = await _task(port)
    a = await segments.create(task_id=task.id, start_time=at(9), end_time=at(10))
    b = await segments.create(task_id=task.id, start_time=at(11), end_time=at(12))
    c = await segments.create(task_id=task.id, start_time=at(13), end_time=at(14))

    done = await segments.bulk_update([a.id, b.id], status="completed")
    assert [seg.status for seg in done] == ["completed", "completed"]

    await segments.bulk_delete([a.id])
    assert (await port.get_task(task.id)).scheduled_minutes == 120

    completed = await segments.complete_for_task(task.id)
    assert [seg.id for seg in completed] == [c.id]

    assert await segments.delete_all_for_task(task.id) == 2
    assert (await port.get_task(task.id)).scheduled_minutes == 0
    assert await segments.bulk_update([], status="completed") == []


@pytest.mark.asyncio
async def test_recompute_scheduled_minutes(port, store, segments):
    task = await _task(port)
    await segments.create(task_id=task.id, start_time=at(9), end_time=at(9, 40))
    store.update_task(task.id, scheduled_minutes=999)
    assert (await segments.recompute_scheduled_minutes(task.id)).scheduled_minutes == 40


@pytest.mark.asyncio
async def test_failed_move_leaves_cache_like_a_fresh_fetch(port, sync, bus):
    from services.segments import SegmentService

    task = await _task(port)
    seeded = SegmentService(port, sync, bus)
    seg = await seeded.create(task_id=task.id, start_time=at(9), end_time=at(10))

    flaky = FailingUpdates(port)
    cache = sync.register("timeline", DayTimelineCache(flaky, DAY))
    await cache.refresh()
    service = SegmentService(flaky, sync, bus)

    with pytest.raises(ChangesRevertedError) as info:
        await service.update(seg.id, start_time=at(11), end_time=at(12), origin="timeline")
    assert isinstance(info.value.cause, RuntimeError)

    fresh = DayTimelineCache(port, DAY)
    await fresh.refresh()
    assert cache.snapshot() == fresh.snapshot()
    assert cache.state_of(seg.id) is EntryState.CONFIRMED
    assert cache.pending_mutations() == set()


@pytest.mark.asyncio
async def test_optimistic_value_visible_in_origin_cache(port, sync, segments):
    task = await _task(port)
    seg = await segments.create(task_id=task.id, start_time=at(9), end_time=at(10))
    cache = sync.register("timeline", DayTimelineCache(port, DAY))
    await cache.refresh()

    seen = []
    cache.subscribe(lambda c: seen.append((c.segment(seg.id).start_time, c.state_of(seg.id))))
    await segments.update(seg.id, start_time=at(9, 30), end_time=at(10, 30), origin="timeline")

    assert seen[0] == (at(9, 30), EntryState.PENDING)
    assert seen[-1] == (at(9, 30), EntryState.CONFIRMED)
    assert cache.task(task.id).scheduled_minutes == 60
