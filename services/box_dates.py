"""Which calendar dates a task is shown under."""
from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime
from typing import Collection, Dict, Iterable, List, Set, Tuple

from models.records import SegmentRecord, TaskRecord
from utils.datetime_utils import normalize_midnight


def resolve_box_dates(
    task: TaskRecord,
    segments: Iterable[SegmentRecord],
    *,
    boxed_elsewhere: bool = False,
) -> Set[date]:
    """Box dates of ``task`` given its segments.

    Live segments win: their start dates are the box and ``planned_date`` is
    ignored. Without live segments the box is ``planned_date``, then
    ``deadline``, then nothing. ``boxed_elsewhere`` says the task has live
    segments that were not passed in, so the box never falls back.
    """

    live = {
        normalize_midnight(segment.start_time)
        for segment in segments
        if segment.deleted_at is None and segment.task_id == task.id
    }
    if live or boxed_elsewhere:
        return live
    if task.planned_date is not None:
        return {task.planned_date}
    if task.deadline is not None:
        return {task.deadline}
    return set()


def group_segments_by_task(segments: Iterable[SegmentRecord]) -> Dict[str, List[SegmentRecord]]:
    grouped: Dict[str, List[SegmentRecord]] = defaultdict(list)
    for segment in segments:
        grouped[segment.task_id].append(segment)
    return grouped


def tasks_in_box(
    tasks: Iterable[TaskRecord],
    segments: Iterable[SegmentRecord],
    day: date,
    boxed_elsewhere: Collection[str] = (),
) -> List[TaskRecord]:
    """Tasks whose box contains ``day``, in the order they were given."""

    grouped = group_segments_by_task(segments)
    return [
        task
        for task in tasks
        if task.deleted_at is None
        and day in resolve_box_dates(
            task, grouped.get(task.id, ()), boxed_elsewhere=task.id in boxed_elsewhere
        )
    ]


def tasks_for_day(
    tasks: Iterable[TaskRecord],
    segments: Iterable[SegmentRecord],
    day: date,
    boxed_elsewhere: Collection[str] = (),
) -> List[TaskRecord]:
    """Open top-level tasks boxed on ``day``, by manual order then creation."""

    candidates = [
        task
        for task in tasks
        if task.parent_task_id is None and task.status != "completed"
    ]
    boxed = tasks_in_box(candidates, segments, day, boxed_elsewhere)
    return sorted(boxed, key=lambda task: (task.order, task.created_at or datetime.min))


def timeline_rows(
    tasks: Iterable[TaskRecord],
    segments: Iterable[SegmentRecord],
    day: date,
    boxed_elsewhere: Collection[str] = (),
) -> List[Tuple[TaskRecord, List[SegmentRecord]]]:
    """Rows of a day timeline: each boxed task with its sessions on ``day``."""

    segments = list(segments)
    grouped = group_segments_by_task(
        segment for segment in segments if segment.deleted_at is None and segment.date == day
    )
    return [
        (task, sorted(grouped.get(task.id, ()), key=lambda seg: (seg.order, seg.start_time)))
        for task in tasks_for_day(tasks, segments, day, boxed_elsewhere)
    ]


__all__ = [
    "group_segments_by_task",
    "resolve_box_dates",
    "tasks_for_day",
    "tasks_in_box",
    "timeline_rows",
]
