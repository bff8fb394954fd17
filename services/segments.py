"""Segment mutations: validate, show optimistically, persist, recompute, announce."""
from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from core.errors import NotFoundError, ValidationError
from core.priorities import SEGMENT_SOURCES, SEGMENT_STATUSES
from core.settings import SCHEDULING
from models.records import SegmentRecord, TaskRecord
from services.events import EventBus, SegmentChanged
from services.synchronizer import CrossViewSynchronizer, new_mutation_id
from services.validation import derive_timing, validate_segment_times
from services.view_cache import Change
from utils.datetime_utils import day_bounds, to_local_naive, utc_now

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {
    "task_id",
    "start_time",
    "end_time",
    "title",
    "title_is_custom",
    "description",
    "notes",
    "status",
    "order",
    "source",
    "external_id",
}
DERIVED_FIELDS = {"date", "duration"}


def _check_choice(field: str, value: Optional[str], choices: Iterable[str]) -> None:
    if value is not None and value not in choices:
        raise ValidationError(field, "invalid_choice", f"{field} must be one of {', '.join(choices)}")


class SegmentService:
    """Every write recomputes ``scheduled_minutes`` of the tasks it touched
    before the change is announced to other views."""

    def __init__(
        self,
        port,
        synchronizer: CrossViewSynchronizer,
        bus: EventBus,
        settings=SCHEDULING,
    ) -> None:
        self.port = port
        self.sync = synchronizer
        self.bus = bus
        self.settings = settings

    # ----- lookups -----
    async def _current(self, segment_id: str, origin: Optional[str]) -> SegmentRecord:
        cached = self.sync.cached_segment(origin, segment_id)
        if cached is not None and cached.deleted_at is None:
            return cached
        record = await self.port.get_segment(segment_id)
        if record is None:
            raise NotFoundError("segment", segment_id)
        return record

    async def _task(self, task_id: str, origin: Optional[str]) -> TaskRecord:
        cached = self.sync.cached_task(origin, task_id)
        if cached is not None and cached.deleted_at is None:
            return cached
        task = await self.port.get_task(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        return task

    async def list_for_day(self, day: date) -> List[SegmentRecord]:
        return await self.port.list_segments(day, day)

    async def list_for_task(self, task_id: str) -> List[SegmentRecord]:
        return await self.port.list_segments(task_ids=[task_id])

    # ----- aggregate -----
    async def recompute_scheduled_minutes(self, task_id: str) -> TaskRecord:
        """Persist ``SUM(duration)`` over the task's live segments."""

        segments = await self.port.list_segments(task_ids=[task_id])
        total = sum(seg.duration for seg in segments if seg.deleted_at is None)
        return await self.port.update_task(task_id, scheduled_minutes=total)

    def _optimistic_tasks(self, origin: Optional[str], deltas: Dict[str, int]) -> Tuple[TaskRecord, ...]:
        result = []
        for task_id, delta in deltas.items():
            task = self.sync.cached_task(origin, task_id)
            if task is None or delta == 0:
                continue
            result.append(task.evolve(scheduled_minutes=max(0, task.scheduled_minutes + delta)))
        return tuple(result)

    # ----- plumbing -----
    async def _mutate(
        self,
        kind: str,
        origin: Optional[str],
        optimistic: Change,
        write: Callable[[], Awaitable[Tuple[List[SegmentRecord], List[str]]]],
        *,
        dates: Iterable[date] = (),
    ) -> Change:
        """Run ``write`` under the synchronizer and announce the result.

        ``write`` persists and returns ``(written segments, removed ids)``; the
        touched tasks are recomputed before the change is settled.
        """

        mutation_id = new_mutation_id()
        touched_dates = set(dates) | set(optimistic.affected_dates)

        async def operation() -> Change:
            written, removed = await write()
            task_ids = dict.fromkeys(seg.task_id for seg in written)
            task_ids.update(dict.fromkeys(optimistic.task_ids))
            tasks = []
            for task_id in task_ids:
                task = await self.port.get_task(task_id)
                if task is None:
                    continue
                tasks.append(await self.recompute_scheduled_minutes(task_id))
            kept = tuple(seg for seg in written if seg.deleted_at is None)
            gone = tuple(removed) + tuple(seg.id for seg in written if seg.deleted_at is not None)
            return Change(
                segments=kept,
                removed_segment_ids=gone,
                tasks=tuple(tasks),
                dates=frozenset(touched_dates | {seg.date for seg in written}),
            )

        settled = await self.sync.run(origin, optimistic, operation, mutation_id=mutation_id)
        self.bus.emit(
            SegmentChanged(
                kind=kind,
                segment_ids=settled.segment_ids,
                task_ids=settled.task_ids,
                dates=settled.affected_dates,
                origin=origin,
                mutation_id=mutation_id,
            )
        )
        logger.debug("%s %s settled: %s", kind, mutation_id, settled.segment_ids)
        return settled

    def _build(self, task: TaskRecord, start: datetime, end: datetime, **fields: Any) -> SegmentRecord:
        day, duration = derive_timing(start, end)
        title = fields.pop("title", None)
        return SegmentRecord(
            id=fields.pop("id", None) or str(uuid.uuid4()),
            task_id=task.id,
            start_time=start,
            end_time=end,
            date=day,
            duration=duration,
            title=title or task.title,
            **fields,
        )

    @staticmethod
    def _payload(record: SegmentRecord) -> Dict[str, Any]:
        return {
            "id": record.id,
            "task_id": record.task_id,
            "start_time": record.start_time,
            "end_time": record.end_time,
            "title": record.title,
            "title_is_custom": record.title_is_custom,
            "description": record.description,
            "notes": record.notes,
            "status": record.status,
            "order": record.order,
            "source": record.source,
            "external_id": record.external_id,
        }

    async def _next_order(self, task_id: str, day: date) -> int:
        return await self.port.count_segments_on(task_id, day) + 1

    # ----- create -----
    async def create(
        self,
        *,
        task_id: str,
        start_time: Optional[datetime],
        end_time: Optional[datetime],
        title: Optional[str] = None,
        title_is_custom: bool = False,
        description: Optional[str] = None,
        notes: Optional[str] = None,
        status: str = "planned",
        order: Optional[int] = None,
        source: str = "app",
        external_id: Optional[str] = None,
        origin: Optional[str] = None,
    ) -> SegmentRecord:
        start, end = validate_segment_times(start_time, end_time)
        _check_choice("status", status, SEGMENT_STATUSES)
        _check_choice("source", source, SEGMENT_SOURCES)
        task = await self._task(task_id, origin)
        if order is None:
            order = await self._next_order(task.id, start.date())
        record = self._build(
            task,
            start,
            end,
            title=title,
            title_is_custom=title_is_custom,
            description=description,
            notes=notes,
            status=status,
            order=order,
            source=source,
            external_id=external_id,
        )
        optimistic = Change(
            segments=(record,),
            tasks=self._optimistic_tasks(origin, {task.id: record.duration}),
        )

        async def write():
            return [await self.port.create_segment(**self._payload(record))], []

        settled = await self._mutate("created", origin, optimistic, write)
        return settled.segments[0]

    async def create_from_drop(
        self,
        task_id: str,
        start_time: datetime,
        *,
        origin: Optional[str] = None,
    ) -> SegmentRecord:
        """A task dropped on a time slot becomes a one-hour planned session."""

        if start_time is None:
            raise ValidationError("start_time", "required", "start time is required")
        start = to_local_naive(start_time)
        _, day_end = day_bounds(start.date())
        end = min(start + timedelta(minutes=self.settings.drop_duration_minutes), day_end)
        return await self.create(task_id=task_id, start_time=start, end_time=end, origin=origin)

    async def create_event(
        self,
        *,
        start_time: datetime,
        end_time: datetime,
        title: Optional[str] = None,
        task_id: Optional[str] = None,
        description: Optional[str] = None,
        origin: Optional[str] = None,
    ) -> SegmentRecord:
        """Calendar event; without ``task_id`` a minimal backing task is created."""

        if task_id is not None:
            return await self.create(
                task_id=task_id,
                start_time=start_time,
                end_time=end_time,
                title=title,
                title_is_custom=bool(title),
                description=description,
                origin=origin,
            )

        start, end = validate_segment_times(start_time, end_time)
        label = (title or "").strip() or "Untitled Event"
        task = TaskRecord(
            id=str(uuid.uuid4()),
            title=label,
            planned_date=start.date(),
            created_at=utc_now().replace(tzinfo=None),
        )
        record = self._build(
            task, start, end, title=label, title_is_custom=True, description=description, order=1
        )
        optimistic = Change(
            segments=(record,),
            tasks=(task.evolve(scheduled_minutes=record.duration),),
        )

        async def write():
            await self.port.create_task(
                id=task.id,
                title=task.title,
                planned_date=task.planned_date,
                priority=task.priority,
            )
            return [await self.port.create_segment(**self._payload(record))], []

        settled = await self._mutate("created", origin, optimistic, write)
        return settled.segments[0]

    # ----- update -----
    def _merge(self, current: SegmentRecord, partial: Dict[str, Any]) -> Dict[str, Any]:
        unknown = set(partial) - EDITABLE_FIELDS - DERIVED_FIELDS
        if unknown:
            raise ValidationError(sorted(unknown)[0], "unknown_field")
        fields = {key: value for key, value in partial.items() if key not in DERIVED_FIELDS}
        _check_choice("status", fields.get("status"), SEGMENT_STATUSES)
        _check_choice("source", fields.get("source"), SEGMENT_SOURCES)
        if "title" in fields and "title_is_custom" not in fields:
            fields["title_is_custom"] = bool(fields["title"])
        start, end = validate_segment_times(
            fields.get("start_time", current.start_time),
            fields.get("end_time", current.end_time),
        )
        if "start_time" in fields:
            fields["start_time"] = start
        if "end_time" in fields:
            fields["end_time"] = end
        return fields

    def _apply(self, current: SegmentRecord, fields: Dict[str, Any]) -> SegmentRecord:
        updated = current.evolve(**fields)
        day, duration = derive_timing(updated.start_time, updated.end_time)
        return updated.evolve(date=day, duration=duration)

    @staticmethod
    def _deltas(pairs: Iterable[Tuple[Optional[SegmentRecord], Optional[SegmentRecord]]]) -> Dict[str, int]:
        deltas: Dict[str, int] = {}
        for before, after in pairs:
            if before is not None:
                deltas[before.task_id] = deltas.get(before.task_id, 0) - before.duration
            if after is not None:
                deltas[after.task_id] = deltas.get(after.task_id, 0) + after.duration
        return deltas

    async def update(self, segment_id: str, *, origin: Optional[str] = None, **partial: Any) -> SegmentRecord:
        current = await self._current(segment_id, origin)
        fields = self._merge(current, partial)
        if fields.get("task_id") and fields["task_id"] != current.task_id:
            await self._task(fields["task_id"], origin)
        updated = self._apply(current, fields)
        optimistic = Change(
            segments=(updated,),
            tasks=self._optimistic_tasks(origin, self._deltas([(current, updated)])),
            dates=frozenset({current.date}),
        )

        async def write():
            return [await self.port.update_segment(segment_id, **fields)], []

        settled = await self._mutate("updated", origin, optimistic, write, dates=[current.date])
        return settled.segments[0]

    async def move_to_day(self, segment_id: str, day: date, *, origin: Optional[str] = None) -> SegmentRecord:
        """Same time of day and length on another date."""

        current = await self._current(segment_id, origin)
        start = datetime.combine(day, current.start_time.time())
        return await self.update(
            segment_id,
            start_time=start,
            end_time=start + (current.end_time - current.start_time),
            origin=origin,
        )

    async def move_to_today(self, segment_id: str, *, today: Optional[date] = None, origin: Optional[str] = None):
        return await self.move_to_day(segment_id, today or date.today(), origin=origin)

    async def move_to_tomorrow(self, segment_id: str, *, today: Optional[date] = None, origin: Optional[str] = None):
        return await self.move_to_day(segment_id, (today or date.today()) + timedelta(days=1), origin=origin)

    # ----- delete -----
    async def delete(self, segment_id: str, *, origin: Optional[str] = None) -> None:
        current = await self._current(segment_id, origin)
        optimistic = Change(
            removed_segment_ids=(segment_id,),
            tasks=self._optimistic_tasks(origin, self._deltas([(current, None)])),
            dates=frozenset({current.date}),
        )

        async def write():
            return [await self.port.delete_segment(segment_id)], []

        await self._mutate("deleted", origin, optimistic, write, dates=[current.date])

    # ----- duplicate / split -----
    async def duplicate(self, segment_id: str, *, origin: Optional[str] = None) -> SegmentRecord:
        """Copy a segment one offset later (an hour by default) for the same task.

        Status and source are copied; the copy gets the next session number of
        its day and no external id.
        """

        current = await self._current(segment_id, origin)
        offset = timedelta(minutes=self.settings.duplicate_offset_minutes)
        start, end = validate_segment_times(current.start_time + offset, current.end_time + offset)
        task = await self._task(current.task_id, origin)
        record = self._build(
            task,
            start,
            end,
            title=current.title,
            title_is_custom=current.title_is_custom,
            description=current.description,
            notes=current.notes,
            status=current.status,
            order=await self._next_order(task.id, start.date()),
            source=current.source,
        )
        optimistic = Change(
            segments=(record,),
            tasks=self._optimistic_tasks(origin, {task.id: record.duration}),
        )

        async def write():
            return [await self.port.create_segment(**self._payload(record))], []

        settled = await self._mutate("duplicated", origin, optimistic, write)
        return settled.segments[0]

    async def split(self, segment_id: str, *, origin: Optional[str] = None) -> Tuple[SegmentRecord, SegmentRecord]:
        """Replace a segment by two contiguous halves, soft-deleting the original in the same write.

        The cut falls on a whole minute, so an odd duration gives the extra
        minute to the second half.
        """

        current = await self._current(segment_id, origin)
        if current.duration < 2:
            raise ValidationError("duration", "too_short", "segment is too short to split")
        middle = current.start_time + timedelta(minutes=current.duration // 2)
        shared = {
            "task_id": current.task_id,
            "title": current.title,
            "title_is_custom": current.title_is_custom,
            "description": current.description,
            "notes": current.notes,
            "status": current.status,
            "source": current.source,
            "deleted_at": None,
            "external_id": None,
        }
        first = self._apply(
            current,
            dict(shared, id=str(uuid.uuid4()), end_time=middle, order=current.order),
        )
        second = self._apply(
            current,
            dict(shared, id=str(uuid.uuid4()), start_time=middle, order=current.order + 1),
        )
        optimistic = Change(segments=(first, second), removed_segment_ids=(segment_id,))

        async def write():
            made = await self.port.split_segment(segment_id, self._payload(first), self._payload(second))
            return list(made[:2]), [segment_id]

        settled = await self._mutate("split", origin, optimistic, write, dates=[current.date])
        by_id = {seg.id: seg for seg in settled.segments}
        return by_id[first.id], by_id[second.id]

    # ----- bulk -----
    async def bulk_update(self, segment_ids: Iterable[str], *, origin: Optional[str] = None, **partial: Any) -> List[SegmentRecord]:
        ids = list(dict.fromkeys(segment_ids))
        if not ids:
            return []
        pairs = []
        plans = []
        for segment_id in ids:
            current = await self._current(segment_id, origin)
            fields = self._merge(current, partial)
            updated = self._apply(current, fields)
            pairs.append((current, updated))
            plans.append((segment_id, fields))
        optimistic = Change(
            segments=tuple(after for _, after in pairs),
            tasks=self._optimistic_tasks(origin, self._deltas(pairs)),
            dates=frozenset(before.date for before, _ in pairs),
        )

        async def write():
            return [await self.port.update_segment(segment_id, **fields) for segment_id, fields in plans], []

        settled = await self._mutate("bulk", origin, optimistic, write)
        by_id = {seg.id: seg for seg in settled.segments}
        return [by_id[segment_id] for segment_id in ids if segment_id in by_id]

    async def bulk_delete(self, segment_ids: Iterable[str], *, origin: Optional[str] = None) -> None:
        ids = list(dict.fromkeys(segment_ids))
        if not ids:
            return
        currents = [await self._current(segment_id, origin) for segment_id in ids]
        optimistic = Change(
            removed_segment_ids=tuple(ids),
            tasks=self._optimistic_tasks(origin, self._deltas((seg, None) for seg in currents)),
            dates=frozenset(seg.date for seg in currents),
        )

        async def write():
            return [await self.port.delete_segment(segment_id) for segment_id in ids], []

        await self._mutate("bulk", origin, optimistic, write)

    async def delete_all_for_task(self, task_id: str, *, origin: Optional[str] = None) -> int:
        segments = await self.list_for_task(task_id)
        await self.bulk_delete([seg.id for seg in segments], origin=origin)
        return len(segments)

    async def complete_for_task(self, task_id: str, *, origin: Optional[str] = None) -> List[SegmentRecord]:
        segments = [seg for seg in await self.list_for_task(task_id) if seg.status != "completed"]
        return await self.bulk_update([seg.id for seg in segments], status="completed", origin=origin)


__all__ = ["SegmentService"]
