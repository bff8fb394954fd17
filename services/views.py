"""The three view caches: day timeline, calendar window and board."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple

from models.records import SegmentRecord, SegmentSummary, TaskRecord
from services.box_dates import resolve_box_dates, timeline_rows
from services.overlaps import overlap_map
from services.view_cache import ViewCache

UNTITLED = "Untitled"


class DayTimelineCache(ViewCache):
    """Segments of one day plus every live task, for the timeline rows.

    Only the day's segments are loaded. For box membership it is enough to
    know which tasks have live segments on other days.
    """

    name = "timeline"

    def __init__(self, port, day: date) -> None:
        super().__init__(port)
        self.day = day
        self._boxed_elsewhere: Set[str] = set()

    def set_day(self, day: date) -> None:
        self.day = day

    def _in_scope(self, segment: SegmentRecord) -> bool:
        return segment.date == self.day

    def covers(self, dates: Iterable[date], task_ids: Iterable[str] = ()) -> bool:
        dates = set(dates)
        if not dates or self.day in dates:
            return True
        # a task shown today may have been boxed away by a segment elsewhere
        shown = {task.id for task, _ in self.rows()}
        return any(task_id in shown for task_id in task_ids)

    async def _fetch(self):
        day = self.day
        tasks = await self.port.list_tasks()
        segments = await self.port.list_segments(day, day)
        self._boxed_elsewhere = await self.port.boxed_task_ids(exclude_date=day)
        return segments, tasks

    def day_segments(self) -> List[SegmentRecord]:
        return self.segments()

    def rows(self) -> List[Tuple[TaskRecord, List[SegmentRecord]]]:
        return timeline_rows(self.tasks(), self.all_segments(), self.day, self._boxed_elsewhere)

    def overlaps(self) -> Dict[str, List[str]]:
        return overlap_map(self.segments())


@dataclass(frozen=True)
class CalendarEvent:
    id: str
    task_id: str
    title: str
    start: datetime
    end: datetime
    status: str
    session_label: str
    priority: str = "medium"
    title_is_custom: bool = False


class CalendarCache(ViewCache):
    """Segments of a date window projected onto calendar events."""

    name = "calendar"

    def __init__(self, port, start: date, end: date) -> None:
        super().__init__(port)
        self.start = start
        self.end = end

    def set_window(self, start: date, end: date) -> None:
        self.start = start
        self.end = end

    def _in_scope(self, segment: SegmentRecord) -> bool:
        return self.start <= segment.date <= self.end

    def covers(self, dates: Iterable[date], task_ids: Iterable[str] = ()) -> bool:
        dates = set(dates)
        return not dates or any(self.start <= day <= self.end for day in dates)

    async def _fetch(self):
        segments = await self.port.list_segments(self.start, self.end)
        task_ids = sorted({seg.task_id for seg in segments})
        tasks = await self.port.list_tasks(ids=task_ids) if task_ids else []
        return segments, tasks

    def events(self, day: Optional[date] = None) -> List[CalendarEvent]:
        tasks = {task.id: task for task in self.tasks()}
        result = []
        for seg in self.segments():
            if day is not None and seg.date != day:
                continue
            task = tasks.get(seg.task_id)
            title = seg.title or (task.title if task else "") or UNTITLED
            result.append(
                CalendarEvent(
                    id=seg.id,
                    task_id=seg.task_id,
                    title=title,
                    start=seg.start_time,
                    end=seg.end_time,
                    status=seg.status,
                    session_label=seg.session_label,
                    priority=task.priority if task else "medium",
                    title_is_custom=seg.title_is_custom,
                )
            )
        return result


@dataclass(frozen=True)
class BoardCard:
    task: TaskRecord
    box_start: Optional[date]
    box_end: Optional[date]
    scheduled_minutes: int
    sessions: int


class BoardCache(ViewCache):
    """Top-level tasks grouped by status.

    Segments are not cached here; each card only needs the task's box range
    and session count, which come back folded per task.
    """

    name = "board"

    def __init__(self, port) -> None:
        super().__init__(port)
        self._summary: Dict[str, SegmentSummary] = {}

    async def _fetch(self):
        tasks = await self.port.list_tasks(top_level_only=True)
        summary = await self.port.segment_summary([task.id for task in tasks]) if tasks else {}
        self._summary = summary
        return [], tasks

    def columns(self, statuses: Iterable[str] = ("todo", "in_progress", "completed")) -> Dict[str, List[BoardCard]]:
        columns: Dict[str, List[BoardCard]] = {status: [] for status in statuses}
        tasks = sorted(self.tasks(), key=lambda task: (task.order, task.created_at or datetime.min))
        for task in tasks:
            if task.parent_task_id is not None or task.status not in columns:
                continue
            summary = self._summary.get(task.id)
            if summary is not None:
                start, end, sessions = summary.first, summary.last, summary.count
            else:
                fallback = sorted(resolve_box_dates(task, ()))
                start = end = fallback[0] if fallback else None
                sessions = 0
            columns[task.status].append(
                BoardCard(
                    task=task,
                    box_start=start,
                    box_end=end,
                    scheduled_minutes=task.scheduled_minutes,
                    sessions=sessions,
                )
            )
        return columns


__all__ = ["BoardCache", "BoardCard", "CalendarCache", "CalendarEvent", "DayTimelineCache", "UNTITLED"]
