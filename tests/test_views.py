from datetime import date

import pytest

from conftest import DAY, at
from services.events import EventBus, SegmentChanged
from services.views import UNTITLED, BoardCache, CalendarCache, DayTimelineCache


@pytest.mark.asyncio
async def test_timeline_rows_and_overlaps(port, tasks, segments):
    a = await tasks.add("A", DAY)
    b = await tasks.add("B", DAY)
    s1 = await segments.create(task_id=a.id, start_time=at(9), end_time=at(10, 30))
    s2 = await segments.create(task_id=b.id, start_time=at(10), end_time=at(11))
    await segments.create(task_id=b.id, start_time=at(9, day=date(2024, 3, 12)), end_time=at(10, day=date(2024, 3, 12)))

    cache = DayTimelineCache(port, DAY)
    await cache.refresh()

    assert [seg.id for seg in cache.day_segments()] == [s1.id, s2.id]
    assert [task.id for task, _ in cache.rows()] == [a.id, b.id]
    assert cache.overlaps() == {s1.id: [s2.id], s2.id: [s1.id]}
    assert cache.covers([DAY])
    assert not cache.covers([date(2024, 3, 20)])
    assert cache.covers([])


@pytest.mark.asyncio
async def test_timeline_loads_only_its_day(port, tasks, segments):
    here = await tasks.add("Here", DAY)
    moved = await tasks.add("Moved", DAY)
    await segments.create(task_id=moved.id, start_time=at(9, day=date(2024, 3, 12)), end_time=at(10, day=date(2024, 3, 12)))

    cache = DayTimelineCache(port, DAY)
    await cache.refresh()

    assert cache.all_segments() == []
    assert [task.id for task, _ in cache.rows()] == [here.id]


@pytest.mark.asyncio
async def test_calendar_events_fall_back_to_task_title(port, tasks, segments, store):
    task = await tasks.add("Write report", DAY, priority="high")
    seg = await segments.create(task_id=task.id, start_time=at(9), end_time=at(10))
    store.update_segment(seg.id, title="")

    cache = CalendarCache(port, date(2024, 3, 1), date(2024, 3, 31))
    await cache.refresh()
    [event] = cache.events(DAY)
    assert event.title == "Write report"
    assert event.priority == "high"
    assert event.session_label == "Session 1"
    assert cache.events(date(2024, 3, 12)) == []
    assert cache.covers([date(2024, 3, 31)])
    assert not cache.covers([date(2024, 4, 1)])
    assert UNTITLED == "Untitled"


@pytest.mark.asyncio
async def test_board_columns(port, tasks, segments):
    todo = await tasks.add("Todo", DAY)
    done = await tasks.add("Done", DAY, status="completed")
    await tasks.add("child", DAY, parent_task_id=todo.id)
    await segments.create(task_id=todo.id, start_time=at(9), end_time=at(10))

    cache = BoardCache(port)
    await cache.refresh()
    columns = cache.columns()

    assert [card.task.id for card in columns["todo"]] == [todo.id]
    assert (columns["todo"][0].box_start, columns["todo"][0].box_end) == (DAY, DAY)
    assert columns["todo"][0].scheduled_minutes == 60
    assert columns["todo"][0].sessions == 1
    assert [card.task.id for card in columns["completed"]] == [done.id]
    assert columns["in_progress"] == []


@pytest.mark.asyncio
async def test_board_cards_fold_segments_to_a_range(port, tasks, segments):
    spread = await tasks.add("Spread", DAY)
    await tasks.add("Planned only", date(2024, 3, 14))
    await segments.create(task_id=spread.id, start_time=at(9), end_time=at(10))
    await segments.create(task_id=spread.id, start_time=at(9, day=date(2024, 3, 13)), end_time=at(9, 30, day=date(2024, 3, 13)))

    cache = BoardCache(port)
    await cache.refresh()
    spread_card, planned_card = cache.columns()["todo"]

    assert (spread_card.box_start, spread_card.box_end, spread_card.sessions) == (DAY, date(2024, 3, 13), 2)
    assert (planned_card.box_start, planned_card.box_end, planned_card.sessions) == (date(2024, 3, 14), date(2024, 3, 14), 0)
    assert cache.all_segments() == []


def test_bus_rejects_unknown_events_and_isolates_listeners():
    bus = EventBus()
    with pytest.raises(ValueError):
        bus.subscribe(dict, print)
    seen = []

    def broken(_):
        raise RuntimeError("boom")

    bus.subscribe(SegmentChanged, broken)
    bus.subscribe(SegmentChanged, seen.append)
    event = SegmentChanged(kind="created", segment_ids=("s1",), task_ids=("t1",), dates=frozenset({DAY}))
    bus.emit(event)
    assert seen == [event]
