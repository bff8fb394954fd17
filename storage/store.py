"""Relational store for tasks and their time segments."""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from core.errors import NotFoundError, PlannerError, ValidationError, translate_constraint
from core.settings import LOCAL_USER_ID
from models.task import Task
from models.time_segment import TimeSegment
from storage.db import get_session
from utils.datetime_utils import minutes_between, to_local_naive, utc_now

logger = logging.getLogger(__name__)

TASK_FIELDS = {
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

SEGMENT_FIELDS = {
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


def translate_integrity_error(exc: IntegrityError) -> PlannerError:
    detail = str(getattr(exc, "orig", None) or exc)
    error = translate_constraint(detail)
    logger.info("constraint violation translated: %s -> %s", detail, type(error).__name__)
    return error


def _stamp_timing(segment: TimeSegment) -> None:
    segment.start_time = to_local_naive(segment.start_time)
    segment.end_time = to_local_naive(segment.end_time)
    segment.date = segment.start_time.date()
    segment.duration = minutes_between(segment.start_time, segment.end_time)


class PlannerStore:
    """CRUD over ``tasks``/``time_segments`` scoped to one user.

    Every segment write recomputes ``scheduled_time`` of the owning task with a
    ``SUM(duration)`` query inside the same transaction.
    """

    def __init__(self, session_factory=get_session, user_id: str = LOCAL_USER_ID) -> None:
        self._session_factory = session_factory
        self.user_id = user_id

    # ----- helpers -----
    def _flush(self, session) -> None:
        try:
            session.flush()
        except IntegrityError as exc:
            session.rollback()
            raise translate_integrity_error(exc) from exc

    def _commit(self, session) -> None:
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise translate_integrity_error(exc) from exc

    def _task(self, session, task_id: str, *, include_deleted: bool = False) -> Task:
        task = session.get(Task, task_id)
        if task is None or task.user_id != self.user_id:
            raise NotFoundError("task", task_id)
        if task.deleted_at is not None and not include_deleted:
            raise NotFoundError("task", task_id)
        return task

    def _segment(self, session, segment_id: str) -> TimeSegment:
        segment = session.get(TimeSegment, segment_id)
        if segment is None or segment.user_id != self.user_id:
            raise NotFoundError("segment", segment_id)
        return segment

    def _sum_durations(self, session, task_id: str) -> int:
        stmt = select(func.coalesce(func.sum(TimeSegment.duration), 0)).where(
            TimeSegment.task_id == task_id,
            TimeSegment.deleted_at.is_(None),
        )
        return int(session.exec(stmt).one())

    def _recompute(self, session, task_id: str) -> int:
        self._flush(session)
        total = self._sum_durations(session, task_id)
        task = session.get(Task, task_id)
        if task is not None and task.scheduled_minutes != total:
            task.scheduled_minutes = total
            task.updated_at = utc_now()
            session.add(task)
        return total

    def _count_on(self, session, task_id: str, day: date, exclude_id: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(TimeSegment).where(
            TimeSegment.task_id == task_id,
            TimeSegment.date == day,
            TimeSegment.deleted_at.is_(None),
        )
        if exclude_id:
            stmt = stmt.where(TimeSegment.id != exclude_id)
        return int(session.exec(stmt).one())

    # ----- tasks -----
    def _next_order(self, session, parent_task_id: Optional[str]) -> int:
        stmt = select(func.max(Task.order)).where(
            Task.user_id == self.user_id,
            Task.deleted_at.is_(None),
        )
        if parent_task_id is None:
            stmt = stmt.where(Task.parent_task_id.is_(None))
        else:
            stmt = stmt.where(Task.parent_task_id == parent_task_id)
        current = session.exec(stmt).one()
        return 0 if current is None else int(current) + 1

    def create_task(self, **fields: Any) -> Task:
        unknown = set(fields) - TASK_FIELDS - {"id"}
        if unknown:
            raise ValidationError(sorted(unknown)[0], "unknown_field")
        with self._session_factory() as session:
            parent_id = fields.get("parent_task_id")
            if parent_id:
                self._task(session, parent_id)
            if fields.get("order") is None:
                fields["order"] = self._next_order(session, parent_id)
            fields.setdefault("tags", [])
            task = Task(user_id=self.user_id, **fields)
            session.add(task)
            self._commit(session)
            session.refresh(task)
            return task

    def get_task(self, task_id: str, *, include_deleted: bool = False) -> Optional[Task]:
        with self._session_factory() as session:
            try:
                return self._task(session, task_id, include_deleted=include_deleted)
            except NotFoundError:
                return None

    def list_tasks(
        self,
        *,
        ids: Optional[Iterable[str]] = None,
        parent_task_id: Optional[str] = None,
        top_level_only: bool = False,
        include_deleted: bool = False,
    ) -> List[Task]:
        with self._session_factory() as session:
            stmt = select(Task).where(Task.user_id == self.user_id)
            if not include_deleted:
                stmt = stmt.where(Task.deleted_at.is_(None))
            if ids is not None:
                stmt = stmt.where(Task.id.in_(list(ids)))
            if parent_task_id is not None:
                stmt = stmt.where(Task.parent_task_id == parent_task_id)
            elif top_level_only:
                stmt = stmt.where(Task.parent_task_id.is_(None))
            stmt = stmt.order_by(Task.order.asc(), Task.created_at.asc())
            return list(session.exec(stmt))

    def update_task(self, task_id: str, **fields: Any) -> Task:
        """Patch a task.

        ``scheduled_minutes`` is recomputed from the live segments unless the
        caller passes it explicitly. A new title is copied onto segments that do
        not carry a custom title; completing a task completes its segments.
        """

        unknown = set(fields) - TASK_FIELDS
        if unknown:
            raise ValidationError(sorted(unknown)[0], "unknown_field")
        with self._session_factory() as session:
            task = self._task(session, task_id)
            if fields.get("parent_task_id"):
                self._task(session, fields["parent_task_id"])
            for key, value in fields.items():
                setattr(task, key, value)
            if "status" in fields:
                task.completed_at = utc_now() if fields["status"] == "completed" else None
            task.updated_at = utc_now()
            session.add(task)
            self._flush(session)
            self._propagate(session, task, fields)
            if "scheduled_minutes" not in fields:
                self._recompute(session, task.id)
            self._commit(session)
            session.refresh(task)
            return task

    def _propagate(self, session, task: Task, fields: Dict[str, Any]) -> None:
        if "title" not in fields and fields.get("status") != "completed":
            return
        stmt = select(TimeSegment).where(
            TimeSegment.task_id == task.id,
            TimeSegment.deleted_at.is_(None),
        )
        for segment in session.exec(stmt):
            touched = False
            if "title" in fields and not segment.title_is_custom and segment.title != task.title:
                segment.title = task.title
                touched = True
            if fields.get("status") == "completed" and segment.status != "completed":
                segment.status = "completed"
                touched = True
            if touched:
                segment.updated_at = utc_now()
                session.add(segment)

    def soft_delete_task(self, task_id: str) -> Task:
        with self._session_factory() as session:
            task = self._task(session, task_id)
            now = utc_now()
            task.deleted_at = now
            task.updated_at = now
            session.add(task)
            stmt = select(TimeSegment).where(
                TimeSegment.task_id == task_id,
                TimeSegment.deleted_at.is_(None),
            )
            for segment in session.exec(stmt):
                segment.deleted_at = now
                segment.updated_at = now
                session.add(segment)
            self._recompute(session, task_id)
            self._commit(session)
            session.refresh(task)
            return task

    # ----- segments -----
    def insert_segment(self, **fields: Any) -> TimeSegment:
        fields.pop("date", None)
        fields.pop("duration", None)
        unknown = set(fields) - SEGMENT_FIELDS - {"id"}
        if unknown:
            raise ValidationError(sorted(unknown)[0], "unknown_field")
        for name in ("start_time", "end_time"):
            if fields.get(name) is None:
                raise ValidationError(name, "required")
        with self._session_factory() as session:
            task = self._task(session, fields.get("task_id") or "")
            if not fields.get("title"):
                fields["title"] = task.title
            segment = TimeSegment(user_id=self.user_id, date=date.min, duration=0, **fields)
            _stamp_timing(segment)
            if fields.get("order") is None:
                segment.order = self._count_on(session, task.id, segment.date) + 1
            session.add(segment)
            self._recompute(session, task.id)
            self._commit(session)
            session.refresh(segment)
            return segment

    def get_segment(self, segment_id: str, *, include_deleted: bool = False) -> Optional[TimeSegment]:
        with self._session_factory() as session:
            segment = session.get(TimeSegment, segment_id)
            if segment is None or segment.user_id != self.user_id:
                return None
            if segment.deleted_at is not None and not include_deleted:
                return None
            return segment

    def update_segment(self, segment_id: str, **fields: Any) -> TimeSegment:
        fields.pop("date", None)
        fields.pop("duration", None)
        unknown = set(fields) - SEGMENT_FIELDS
        if unknown:
            raise ValidationError(sorted(unknown)[0], "unknown_field")
        with self._session_factory() as session:
            segment = self._segment(session, segment_id)
            if segment.deleted_at is not None:
                raise NotFoundError("segment", segment_id)
            previous_task = segment.task_id
            if fields.get("task_id") and fields["task_id"] != previous_task:
                self._task(session, fields["task_id"])
            for key, value in fields.items():
                setattr(segment, key, value)
            _stamp_timing(segment)
            segment.updated_at = utc_now()
            session.add(segment)
            self._recompute(session, segment.task_id)
            if segment.task_id != previous_task:
                self._recompute(session, previous_task)
            self._commit(session)
            session.refresh(segment)
            return segment

    def soft_delete_segment(self, segment_id: str) -> TimeSegment:
        with self._session_factory() as session:
            segment = self._segment(session, segment_id)
            if segment.deleted_at is None:
                now = utc_now()
                segment.deleted_at = now
                segment.updated_at = now
                session.add(segment)
                self._recompute(session, segment.task_id)
                self._commit(session)
                session.refresh(segment)
            return segment

    def split_segment(
        self,
        segment_id: str,
        first: Dict[str, Any],
        second: Dict[str, Any],
    ) -> Tuple[TimeSegment, TimeSegment, TimeSegment]:
        """Insert both halves and soft-delete the original in one transaction."""

        for fields in (first, second):
            fields.pop("date", None)
            fields.pop("duration", None)
            unknown = set(fields) - SEGMENT_FIELDS - {"id"}
            if unknown:
                raise ValidationError(sorted(unknown)[0], "unknown_field")
        with self._session_factory() as session:
            original = self._segment(session, segment_id)
            if original.deleted_at is not None:
                raise NotFoundError("segment", segment_id)
            halves = []
            for fields in (first, second):
                fields.setdefault("task_id", original.task_id)
                fields.setdefault("title", original.title)
                half = TimeSegment(user_id=self.user_id, date=date.min, duration=0, **fields)
                _stamp_timing(half)
                session.add(half)
                halves.append(half)
            now = utc_now()
            original.deleted_at = now
            original.updated_at = now
            session.add(original)
            self._recompute(session, original.task_id)
            self._commit(session)
            for row in (*halves, original):
                session.refresh(row)
            return halves[0], halves[1], original

    def list_segments(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        *,
        task_ids: Optional[Iterable[str]] = None,
        include_deleted: bool = False,
    ) -> List[TimeSegment]:
        """Segments whose ``date`` lies in ``[start, end]`` (both optional)."""

        with self._session_factory() as session:
            stmt = select(TimeSegment).where(TimeSegment.user_id == self.user_id)
            if not include_deleted:
                stmt = stmt.where(TimeSegment.deleted_at.is_(None))
            if start is not None:
                stmt = stmt.where(TimeSegment.date >= start)
            if end is not None:
                stmt = stmt.where(TimeSegment.date <= end)
            if task_ids is not None:
                stmt = stmt.where(TimeSegment.task_id.in_(list(task_ids)))
            stmt = stmt.order_by(TimeSegment.start_time.asc(), TimeSegment.order.asc())
            return list(session.exec(stmt))

    def boxed_task_ids(self, *, exclude_date: Optional[date] = None) -> Set[str]:
        """Ids of tasks with a live segment, optionally ignoring one date."""

        with self._session_factory() as session:
            stmt = select(TimeSegment.task_id).where(
                TimeSegment.user_id == self.user_id,
                TimeSegment.deleted_at.is_(None),
            )
            if exclude_date is not None:
                stmt = stmt.where(TimeSegment.date != exclude_date)
            return set(session.exec(stmt.distinct()))

    def segment_summary(
        self, task_ids: Optional[Iterable[str]] = None
    ) -> Dict[str, Tuple[date, date, int]]:
        """``task_id -> (first date, last date, live segment count)``."""

        with self._session_factory() as session:
            stmt = select(
                TimeSegment.task_id,
                func.min(TimeSegment.date),
                func.max(TimeSegment.date),
                func.count(TimeSegment.id),
            ).where(
                TimeSegment.user_id == self.user_id,
                TimeSegment.deleted_at.is_(None),
            )
            if task_ids is not None:
                stmt = stmt.where(TimeSegment.task_id.in_(list(task_ids)))
            stmt = stmt.group_by(TimeSegment.task_id)
            return {task_id: (first, last, int(count)) for task_id, first, last, count in session.exec(stmt)}

    def count_segments_on(self, task_id: str, day: date) -> int:
        with self._session_factory() as session:
            return self._count_on(session, task_id, day)

    def recompute_scheduled_minutes(self, task_id: str) -> int:
        with self._session_factory() as session:
            self._task(session, task_id, include_deleted=True)
            total = self._recompute(session, task_id)
            self._commit(session)
            return total


__all__ = ["PlannerStore", "translate_integrity_error", "SEGMENT_FIELDS", "TASK_FIELDS"]
