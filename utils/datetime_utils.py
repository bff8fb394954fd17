"""Clock helpers: UTC stamps for audit columns, local wall-clock for segments."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from core.settings import SCHEDULING

UTC = timezone.utc


def utc_now() -> datetime:
    return datetime.now(UTC)


def to_local_naive(dt: Optional[datetime], tz_name: Optional[str] = None) -> Optional[datetime]:
    """Return ``dt`` as naive wall-clock time in the scheduling zone.

    Naive values are assumed to already be local. Segment timestamps are
    stored this way so that the calendar date of a timestamp never depends
    on the database's idea of a timezone.
    """

    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    name = tz_name if tz_name is not None else SCHEDULING.timezone
    if name:
        return dt.astimezone(ZoneInfo(name)).replace(tzinfo=None)
    return dt.astimezone().replace(tzinfo=None)


def midnight(d: date) -> datetime:
    return datetime.combine(d, time.min)


def day_bounds(d: date) -> Tuple[datetime, datetime]:
    """``[00:00, 24:00]`` of ``d`` as naive datetimes."""
    start = midnight(d)
    return start, start + timedelta(days=1)


def normalize_midnight(dt: Optional[datetime]) -> Optional[date]:
    if dt is None:
        return None
    return to_local_naive(dt).date()


def minutes_between(start: datetime, end: datetime) -> int:
    return int(round((end - start).total_seconds() / 60))


def month_window(anchor: date, *, back: int, forward: int) -> Tuple[date, date]:
    """First day ``back`` months before ``anchor`` .. last day ``forward`` months after."""

    def _shift(year: int, month: int, delta: int) -> Tuple[int, int]:
        idx = year * 12 + (month - 1) + delta
        return idx // 12, idx % 12 + 1

    y0, m0 = _shift(anchor.year, anchor.month, -back)
    y1, m1 = _shift(anchor.year, anchor.month, forward + 1)
    return date(y0, m0, 1), date(y1, m1, 1) - timedelta(days=1)


__all__ = [
    "UTC",
    "day_bounds",
    "midnight",
    "minutes_between",
    "month_window",
    "normalize_midnight",
    "to_local_naive",
    "utc_now",
]
