"""SQLModel table for concrete, calendar-bound work sessions."""

import datetime as dt
import uuid
from typing import Optional

from sqlalchemy import CheckConstraint, Column, DateTime, String
from sqlmodel import Field, SQLModel

from utils.datetime_utils import utc_now


class TimeSegment(SQLModel, table=True):
    """One interval of scheduled work on a task.

    ``start_time``/``end_time`` are naive local wall-clock values; ``date`` and
    ``duration`` are derived from them on every write.
    """

    __tablename__ = "time_segments"
    __table_args__ = (
        CheckConstraint("end_time > start_time", name="valid_times"),
        # an end of exactly 24:00 still belongs to the start's day
        CheckConstraint(
            "date(start_time) = date(end_time, '-1 seconds')",
            name="no_midnight_cross",
        ),
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    task_id: str = Field(foreign_key="tasks.id", index=True)
    user_id: str = Field(index=True)
    start_time: dt.datetime = Field(sa_type=DateTime(timezone=False))
    end_time: dt.datetime = Field(sa_type=DateTime(timezone=False))
    date: dt.date = Field(index=True)
    duration: int
    title: str
    title_is_custom: bool = False
    description: Optional[str] = None
    notes: Optional[str] = None
    status: str = "planned"  # planned / in-progress / completed
    order: int = 1
    source: str = "app"      # app / task / google
    external_id: Optional[str] = Field(
        default=None,
        sa_column=Column("google_calendar_event_id", String, nullable=True, index=True),
    )
    created_at: dt.datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=False))
    updated_at: dt.datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=False))
    deleted_at: Optional[dt.datetime] = Field(default=None, index=True, sa_type=DateTime(timezone=False))


__all__ = ["TimeSegment"]
