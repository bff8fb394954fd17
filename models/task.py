# timebox/models/task.py
import datetime as dt
import uuid
from typing import List, Optional

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, Integer
from sqlmodel import Field, SQLModel

from utils.datetime_utils import utc_now


def _new_id() -> str:
    return str(uuid.uuid4())


class Task(SQLModel, table=True):
    __tablename__ = "tasks"
    __table_args__ = (
        CheckConstraint(
            "parent_task_id IS NULL OR parent_task_id <> id",
            name="tasks_not_self_parent",
        ),
    )

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(index=True)
    title: str
    description: Optional[str] = None
    planned_date: dt.date              # default box when the task has no segments
    deadline: Optional[dt.date] = None
    priority: str = "medium"           # urgent / high / medium / low
    status: str = Field(default="todo", index=True)  # todo / in_progress / completed
    estimated_minutes: Optional[int] = None
    scheduled_minutes: int = Field(
        default=0,
        sa_column=Column("scheduled_time", Integer, nullable=False, server_default="0"),
    )
    parent_task_id: Optional[str] = Field(default=None, foreign_key="tasks.id", index=True)
    order: int = 0
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    completed_at: Optional[dt.datetime] = Field(default=None, sa_type=DateTime(timezone=False))
    created_at: dt.datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=False))
    updated_at: dt.datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=False))
    deleted_at: Optional[dt.datetime] = Field(default=None, index=True, sa_type=DateTime(timezone=False))


__all__ = ["Task"]
