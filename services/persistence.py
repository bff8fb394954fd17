"""Async persistence port used by the services and view caches."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Protocol, Set, Tuple

from core.settings import LOCAL_USER_ID
from models.records import SegmentRecord, SegmentSummary, TaskRecord
from storage.store import PlannerStore


@dataclass(frozen=True)
class Actor:
    """Identity of whoever is acting; rows are scoped by ``user_id``."""

    user_id: str = LOCAL_USER_ID


class PersistencePort(Protocol):
    actor: Actor

    async def list_segments(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        *,
        task_ids: Optional[Iterable[str]] = None,
    ) -> List[SegmentRecord]: ...

    async def get_segment(self, segment_id: str) -> Optional[SegmentRecord]: ...

    async def create_segment(self, **fields: Any) -> SegmentRecord: ...

    async def update_segment(self, segment_id: str, **fields: Any) -> SegmentRecord: ...

    async def delete_segment(self, segment_id: str) -> SegmentRecord: ...

    async def split_segment(
        self,
        segment_id: str,
        first: Dict[str, Any],
        second: Dict[str, Any],
    ) -> Tuple[SegmentRecord, SegmentRecord, SegmentRecord]: ...

    async def count_segments_on(self, task_id: str, day: date) -> int: ...

    async def boxed_task_ids(self, *, exclude_date: Optional[date] = None) -> Set[str]: ...

    async def segment_summary(self, task_ids: Optional[Iterable[str]] = None) -> Dict[str, SegmentSummary]: ...

    async def list_tasks(
        self,
        *,
        ids: Optional[Iterable[str]] = None,
        parent_task_id: Optional[str] = None,
        top_level_only: bool = False,
    ) -> List[TaskRecord]: ...

    async def get_task(self, task_id: str) -> Optional[TaskRecord]: ...

    async def create_task(self, **fields: Any) -> TaskRecord: ...

    async def update_task(self, task_id: str, **fields: Any) -> TaskRecord: ...

    async def delete_task(self, task_id: str) -> TaskRecord: ...


class LocalPersistence:
    """Port backed by the local SQLite store.

    SQLite calls are short, so they run on the event loop directly; a remote
    backend would await its HTTP client here instead.
    """

    def __init__(self, store: Optional[PlannerStore] = None) -> None:
        self.store = store or PlannerStore()
        self.actor = Actor(self.store.user_id)

    async def list_segments(self, start=None, end=None, *, task_ids=None) -> List[SegmentRecord]:
        rows = self.store.list_segments(start, end, task_ids=task_ids)
        return [SegmentRecord.from_row(row) for row in rows]

    async def get_segment(self, segment_id: str) -> Optional[SegmentRecord]:
        row = self.store.get_segment(segment_id)
        return SegmentRecord.from_row(row) if row else None

    async def create_segment(self, **fields: Any) -> SegmentRecord:
        return SegmentRecord.from_row(self.store.insert_segment(**fields))

    async def update_segment(self, segment_id: str, **fields: Any) -> SegmentRecord:
        return SegmentRecord.from_row(self.store.update_segment(segment_id, **fields))

    async def delete_segment(self, segment_id: str) -> SegmentRecord:
        return SegmentRecord.from_row(self.store.soft_delete_segment(segment_id))

    async def split_segment(self, segment_id: str, first, second) -> Tuple[SegmentRecord, SegmentRecord, SegmentRecord]:
        rows = self.store.split_segment(segment_id, dict(first), dict(second))
        return tuple(SegmentRecord.from_row(row) for row in rows)

    async def count_segments_on(self, task_id: str, day: date) -> int:
        return self.store.count_segments_on(task_id, day)

    async def boxed_task_ids(self, *, exclude_date: Optional[date] = None) -> Set[str]:
        return self.store.boxed_task_ids(exclude_date=exclude_date)

    async def segment_summary(self, task_ids=None) -> Dict[str, SegmentSummary]:
        rows = self.store.segment_summary(task_ids)
        return {task_id: SegmentSummary(*values) for task_id, values in rows.items()}

    async def list_tasks(self, *, ids=None, parent_task_id=None, top_level_only=False) -> List[TaskRecord]:
        rows = self.store.list_tasks(ids=ids, parent_task_id=parent_task_id, top_level_only=top_level_only)
        return [TaskRecord.from_row(row) for row in rows]

    async def get_task(self, task_id: str) -> Optional[TaskRecord]:
        row = self.store.get_task(task_id)
        return TaskRecord.from_row(row) if row else None

    async def create_task(self, **fields: Any) -> TaskRecord:
        return TaskRecord.from_row(self.store.create_task(**fields))

    async def update_task(self, task_id: str, **fields: Any) -> TaskRecord:
        return TaskRecord.from_row(self.store.update_task(task_id, **fields))

    async def delete_task(self, task_id: str) -> TaskRecord:
        return TaskRecord.from_row(self.store.soft_delete_task(task_id))


__all__ = ["Actor", "LocalPersistence", "PersistencePort"]
