"""Immutable snapshots handed across the persistence port.

View caches keep these instead of ORM rows so that an optimistic edit in one
view can never leak into another view through a shared mutable object.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Optional, Tuple


@dataclass(frozen=True)
class SegmentRecord:
    id: str
    task_id: str
    start_time: datetime
    end_time: datetime
    date: date
    duration: int
    title: str
    title_is_custom: bool = False
    status: str = "planned"
    order: int = 1
    source: str = "app"
    external_id: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    deleted_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row) -> "SegmentRecord":
        return cls(
            id=row.id,
            task_id=row.task_id,
            start_time=row.start_time,
            end_time=row.end_time,
            date=row.date,
            duration=row.duration,
            title=row.title,
            title_is_custom=bool(row.title_is_custom),
            status=row.status,
            order=row.order,
            source=row.source,
            external_id=row.external_id,
            description=row.description,
            notes=row.notes,
            deleted_at=row.deleted_at,
        )

    @property
    def session_label(self) -> str:
        return f"Session {self.order}"

    def evolve(self, **changes: Any) -> "SegmentRecord":
        return replace(self, **changes)


@dataclass(frozen=True)
class TaskRecord:
    id: str
    title: str
    planned_date: Optional[date]
    description: Optional[str] = None
    deadline: Optional[date] = None
    priority: str = "medium"
    status: str = "todo"
    estimated_minutes: Optional[int] = None
    scheduled_minutes: int = 0
    parent_task_id: Optional[str] = None
    order: int = 0
    tags: Tuple[str, ...] = field(default_factory=tuple)
    created_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row) -> "TaskRecord":
        return cls(
            id=row.id,
            title=row.title,
            planned_date=row.planned_date,
            description=row.description,
            deadline=row.deadline,
            priority=row.priority,
            status=row.status,
            estimated_minutes=row.estimated_minutes,
            scheduled_minutes=row.scheduled_minutes or 0,
            parent_task_id=row.parent_task_id,
            order=row.order,
            tags=tuple(row.tags or ()),
            created_at=row.created_at,
            deleted_at=row.deleted_at,
        )

    def evolve(self, **changes: Any) -> "TaskRecord":
        return replace(self, **changes)


@dataclass(frozen=True)
class SegmentSummary:
    """Live segments of one task, folded to their date range and count."""

    first: date
    last: date
    count: int


__all__ = ["SegmentRecord", "SegmentSummary", "TaskRecord"]
