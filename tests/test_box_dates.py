from datetime import date, datetime

from conftest import DAY, at, make_segment, make_task
from services.box_dates import resolve_box_dates, tasks_for_day, tasks_in_box, timeline_rows


def test_segments_override_planned_date():
    task = make_task(planned_date=date(2024, 3, 1))
    segs = [
        make_segment("s1", at(9), at(10)),
        make_segment("s2", at(14, day=date(2024, 3, 13)), at(15, day=date(2024, 3, 13))),
    ]
    assert resolve_box_dates(task, segs) == {DAY, date(2024, 3, 13)}


def test_falls_back_to_planned_date_then_deadline():
    assert resolve_box_dates(make_task(planned_date=DAY), []) == {DAY}
    undated = make_task(planned_date=None, deadline=date(2024, 3, 20))
    assert resolve_box_dates(undated, []) == {date(2024, 3, 20)}
    assert resolve_box_dates(make_task(planned_date=None), []) == set()


def test_deleted_segments_do_not_box():
    task = make_task(planned_date=date(2024, 3, 1))
    gone = make_segment("s1", at(9), at(10), deleted_at=datetime(2024, 3, 10))
    assert resolve_box_dates(task, [gone]) == {date(2024, 3, 1)}


def test_segments_of_other_tasks_are_ignored():
    task = make_task("t1", planned_date=date(2024, 3, 1))
    other = make_segment("s1", at(9), at(10), task_id="t2")
    assert resolve_box_dates(task, [other]) == {date(2024, 3, 1)}


def test_task_leaves_planned_day_once_scheduled_elsewhere():
    task = make_task(planned_date=DAY)
    elsewhere = make_segment("s1", at(9, day=date(2024, 3, 12)), at(10, day=date(2024, 3, 12)))
    assert tasks_in_box([task], [elsewhere], DAY) == []
    assert tasks_in_box([task], [elsewhere], date(2024, 3, 12)) == [task]


def test_tasks_for_day_skips_completed_and_subtasks_and_sorts():
    late = make_task("a", order=2, created_at=datetime(2024, 1, 1))
    early = make_task("b", order=1, created_at=datetime(2024, 1, 2))
    tie = make_task("c", order=1, created_at=datetime(2024, 1, 1))
    done = make_task("d", status="completed")
    child = make_task("e", parent_task_id="a")
    result = tasks_for_day([late, early, tie, done, child], [], DAY)
    assert [task.id for task in result] == ["c", "b", "a"]


def test_timeline_rows_list_day_sessions_in_order():
    task = make_task()
    second = make_segment("s2", at(8), at(9), order=2)
    first = make_segment("s1", at(13), at(14), order=1)
    other_day = make_segment("s3", at(9, day=date(2024, 3, 12)), at(10, day=date(2024, 3, 12)))
    rows = timeline_rows([task], [second, first, other_day], DAY)
    assert len(rows) == 1
    row_task, row_segments = rows[0]
    assert row_task is task
    assert [seg.id for seg in row_segments] == ["s1", "s2"]


def test_boxed_elsewhere_blocks_the_planned_fallback():
    task = make_task("t1", planned_date=DAY)
    assert resolve_box_dates(task, [], boxed_elsewhere=True) == set()
    assert tasks_for_day([task], [], DAY, boxed_elsewhere={"t1"}) == []
