# timebox/services/tasks.py
from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Any, Iterable, List, Optional, Sequence, Set, Tuple

from core.errors import NotFoundError, ValidationError
from core.priorities import DEFAULT_PRIORITY, TASK_STATUSES, normalize_priority
from models.records import SegmentRecord, TaskRecord
from services.box_dates import tasks_for_day, timeline_rows
from services.events import EventBus, TaskChanged
from services.synchronizer import CrossViewSynchronizer, new_mutation_id
from services.view_cache import Change
from utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

UPDATABLE = {
    "title",
    "description",
    "planned_date",
    "deadline",
    "priority",
    "status",
    "estimated_minutes",
    "scheduled_minutes",
    "parent_task_id",
    "order",
    "tags",
}


def _clean_title(title: Optional[str]) -> str:
    text = (title or "").strip()
    if not text:
        raise ValidationError("title", "required", "title is required")
    return text


def _check_status(status: str) -> str:
    if status not in TASK_STATUSES:
        raise ValidationError("status", "invalid_choice", f"status must be one of {', '.join(TASK_STATUSES)}")
    return status


class TaskService:
    def __init__(self, port, synchronizer: CrossViewSynchronizer, bus: EventBus) -> None:
        self.port = port
        self.sync = synchronizer
        self.bus = bus

    async def _run(
        self,
        kind: str,
        origin: Optional[str],
        optimistic: Change,
        write,
        *,
        task_ids: Sequence[str],
    ) -> Change:
        mutation_id = new_mutation_id()
        settled = await self.sync.run(origin, optimistic, write, mutation_id=mutation_id)
        self.bus.emit(
            TaskChanged(
                kind=kind,
                task_ids=tuple(task_ids),
                origin=origin,
                mutation_id=mutation_id,
            )
        )
        return settled

    def _cached_segments(self, origin: Optional[str], task_id: str) -> List[SegmentRecord]:
        cache = self.sync.view(origin)
        if cache is None:
            return []
        return [seg for seg in cache.all_segments() if seg.task_id == task_id]

    # ----- reads -----
    async def get(self, task_id: str) -> Optional[TaskRecord]:
        return await self.port.get_task(task_id)

    async def list(self, *, top_level_only: bool = False) -> List[TaskRecord]:
        return await self.port.list_tasks(top_level_only=top_level_only)

    async def list_subtasks(self, parent_task_id: str) -> List[TaskRecord]:
        return await self.port.list_tasks(parent_task_id=parent_task_id)

    async def _day_view(self, day: date) -> Tuple[List[TaskRecord], List[SegmentRecord], Set[str]]:
        tasks = await self.port.list_tasks(top_level_only=True)
        segments = await self.port.list_segments(day, day)
        boxed_elsewhere = await self.port.boxed_task_ids(exclude_date=day)
        return tasks, segments, boxed_elsewhere

    async def tasks_for_box(self, day: date) -> List[TaskRecord]:
        """Open top-level tasks whose box contains ``day``."""
        tasks, segments, boxed_elsewhere = await self._day_view(day)
        return tasks_for_day(tasks, segments, day, boxed_elsewhere)

    async def timeline_rows(self, day: date) -> List[Tuple[TaskRecord, List[SegmentRecord]]]:
        tasks, segments, boxed_elsewhere = await self._day_view(day)
        return timeline_rows(tasks, segments, day, boxed_elsewhere)

    # ----- writes -----
    async def add(
        self,
        title: str,
        planned_date: Optional[date],
        *,
        description: Optional[str] = None,
        deadline: Optional[date] = None,
        priority: Optional[str] = DEFAULT_PRIORITY,
        status: str = "todo",
        estimated_minutes: Optional[int] = None,
        parent_task_id: Optional[str] = None,
        tags: Iterable[str] = (),
        order: Optional[int] = None,
        origin: Optional[str] = None,
    ) -> TaskRecord:
        title = _clean_title(title)
        if planned_date is None:
            raise ValidationError("planned_date", "required", "planned date is required")
        _check_status(status)
        if parent_task_id is not None and await self.port.get_task(parent_task_id) is None:
            raise NotFoundError("task", parent_task_id)
        fields = {
            "id": str(uuid.uuid4()),
            "title": title,
            "description": description or None,
            "planned_date": planned_date,
            "deadline": deadline,
            "priority": normalize_priority(priority),
            "status": status,
            "estimated_minutes": estimated_minutes,
            "parent_task_id": parent_task_id,
            "order": order,
            "tags": list(dict.fromkeys(tag.strip() for tag in tags if tag.strip())),
        }
        record = TaskRecord(
            id=fields["id"],
            title=title,
            planned_date=planned_date,
            description=fields["description"],
            deadline=deadline,
            priority=fields["priority"],
            status=status,
            estimated_minutes=estimated_minutes,
            parent_task_id=parent_task_id,
            order=order if order is not None else 0,
            tags=tuple(fields["tags"]),
            created_at=utc_now().replace(tzinfo=None),
        )

        async def write() -> Change:
            return Change(tasks=(await self.port.create_task(**fields),))

        settled = await self._run("created", origin, Change(tasks=(record,)), write, task_ids=[record.id])
        return settled.tasks[0]

    async def update(self, task_id: str, *, origin: Optional[str] = None, **fields: Any) -> TaskRecord:
        """Patch a task; ``scheduled_minutes`` may be overridden explicitly.

        A new title reaches segments without a custom title and completing a
        task completes its segments.
        """

        unknown = set(fields) - UPDATABLE
        if unknown:
            raise ValidationError(sorted(unknown)[0], "unknown_field")
        current = self.sync.cached_task(origin, task_id) or await self.port.get_task(task_id)
        if current is None:
            raise NotFoundError("task", task_id)
        if "title" in fields:
            fields["title"] = _clean_title(fields["title"])
        if "planned_date" in fields and fields["planned_date"] is None:
            raise ValidationError("planned_date", "required", "planned date is required")
        if "status" in fields:
            _check_status(fields["status"])
        if "priority" in fields:
            fields["priority"] = normalize_priority(fields["priority"])
        if fields.get("parent_task_id") == task_id:
            raise ValidationError("parent_task_id", "self_parent", "a task cannot be its own parent")
        if "tags" in fields:
            fields["tags"] = list(dict.fromkeys(tag.strip() for tag in fields["tags"] if tag.strip()))

        optimistic_task = current.evolve(
            **{key: (tuple(value) if key == "tags" else value) for key, value in fields.items()}
        )
        touched = []
        for seg in self._cached_segments(origin, task_id):
            changes = {}
            if "title" in fields and not seg.title_is_custom:
                changes["title"] = fields["title"]
            if fields.get("status") == "completed":
                changes["status"] = "completed"
            if changes:
                touched.append(seg.evolve(**changes))
        optimistic = Change(segments=tuple(touched), tasks=(optimistic_task,))

        async def write() -> Change:
            task = await self.port.update_task(task_id, **fields)
            segments = []
            if "title" in fields or fields.get("status") == "completed":
                segments = await self.port.list_segments(task_ids=[task_id])
            return Change(segments=tuple(segments), tasks=(task,))

        settled = await self._run("updated", origin, optimistic, write, task_ids=[task_id])
        return settled.tasks[0]

    async def set_status(self, task_id: str, status: str, *, origin: Optional[str] = None) -> TaskRecord:
        return await self.update(task_id, status=status, origin=origin)

    async def delete(self, task_id: str, *, origin: Optional[str] = None) -> None:
        """Soft-delete a task and, with it, all of its segments."""

        current = self.sync.cached_task(origin, task_id) or await self.port.get_task(task_id)
        if current is None:
            raise NotFoundError("task", task_id)
        segment_ids = tuple(seg.id for seg in self._cached_segments(origin, task_id))
        optimistic = Change(removed_segment_ids=segment_ids, removed_task_ids=(task_id,))

        async def write() -> Change:
            live = await self.port.list_segments(task_ids=[task_id])
            await self.port.delete_task(task_id)
            ids = tuple(dict.fromkeys(segment_ids + tuple(seg.id for seg in live)))
            return Change(removed_segment_ids=ids, removed_task_ids=(task_id,))

        await self._run("deleted", origin, optimistic, write, task_ids=[task_id])

    async def reorder(
        self,
        parent_task_id: Optional[str],
        ordered_ids: Sequence[str],
        *,
        origin: Optional[str] = None,
    ) -> List[TaskRecord]:
        """Give siblings consecutive ``order`` values following ``ordered_ids``."""

        if parent_task_id is None:
            siblings = await self.port.list_tasks(top_level_only=True)
        else:
            siblings = await self.port.list_tasks(parent_task_id=parent_task_id)
        by_id = {task.id: task for task in siblings}
        ids = list(dict.fromkeys(ordered_ids))
        strangers = [task_id for task_id in ids if task_id not in by_id]
        if strangers:
            raise ValidationError("order", "not_sibling", f"task {strangers[0]} is not in this group")
        ids += [task.id for task in siblings if task.id not in ids]
        optimistic = Change(
            tasks=tuple(by_id[task_id].evolve(order=index) for index, task_id in enumerate(ids))
        )

        async def write() -> Change:
            updated = []
            for index, task_id in enumerate(ids):
                if by_id[task_id].order == index:
                    updated.append(by_id[task_id])
                    continue
                updated.append(await self.port.update_task(task_id, order=index))
            return Change(tasks=tuple(updated))

        settled = await self._run("reordered", origin, optimistic, write, task_ids=ids)
        return list(settled.tasks)


__all__ = ["TaskService"]
