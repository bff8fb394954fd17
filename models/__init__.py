"""ORM models exposed by the Timebox application."""
from .task import Task
from .time_segment import TimeSegment

__all__ = ["Task", "TimeSegment"]
