"""Timing rules every segment write has to satisfy."""
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional, Tuple

from core.errors import InvalidTimeRangeError, MidnightCrossingError, ValidationError
from utils.datetime_utils import minutes_between, to_local_naive


def same_calendar_day(start: datetime, end: datetime) -> bool:
    """True when ``end`` is on ``start``'s day; the following midnight counts as 24:00."""

    return start.date() == (end - timedelta(microseconds=1)).date()


def validate_segment_times(
    start: Optional[datetime], end: Optional[datetime]
) -> Tuple[datetime, datetime]:
    """Return local naive ``(start, end)`` or raise a field-tagged domain error."""

    if start is None:
        raise ValidationError("start_time", "required", "start time is required")
    if end is None:
        raise ValidationError("end_time", "required", "end time is required")
    start = to_local_naive(start)
    end = to_local_naive(end)
    if end <= start:
        raise InvalidTimeRangeError("end_time")
    if not same_calendar_day(start, end):
        raise MidnightCrossingError("end_time")
    return start, end


def derive_timing(start: datetime, end: datetime) -> Tuple[date, int]:
    """``(date, duration)`` as stored alongside a segment."""

    return start.date(), minutes_between(start, end)


__all__ = ["derive_timing", "same_calendar_day", "validate_segment_times"]
