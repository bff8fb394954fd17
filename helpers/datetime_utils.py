"""Shared utilities for parsing and snapping user date/time input."""
from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta
from typing import Optional


def snap_minutes(value: float, *, step: int, direction: str = "forward") -> int:
    """Snap ``value`` to ``step`` minutes using the provided ``direction``.

    ``direction`` can be ``forward`` (ceil), ``nearest`` or ``backward``.
    ``nearest`` rounds halves up, so 7.5 on a 15 grid becomes 15.
    """

    if step <= 0:
        return int(value)
    if direction == "nearest":
        return int(math.floor(value / step + 0.5) * step)
    if direction == "backward":
        return int(math.floor(value / step) * step)
    # forward (ceil)
    return int(math.ceil(value / step) * step)


def _parse_int(value: str) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_date_input(value: str | None) -> Optional[date]:
    """Parse ISO ``YYYY-MM-DD`` or ``DD.MM.YYYY`` string into a ``date`` object."""

    if not value:
        return None
    text = value.strip()
    if not text:
        return None

    for fmt in ("%Y-%m-%d", "%d.%m.%Y"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def parse_time_input(value: str | None, *, allow_relative: bool = True) -> Optional[time]:
    """Parse ``HH:MM`` strings or relative shortcuts like ``now+30``."""

    if not value:
        return None
    text = value.strip().lower()
    if not text:
        return None

    if allow_relative and text.startswith("now"):
        parts = text.split("+", 1)
        minutes = _parse_int(parts[1]) if len(parts) == 2 else 0
        minutes = max(minutes or 0, 0)
        base = datetime.now().replace(second=0, microsecond=0) + timedelta(minutes=minutes)
        return time(base.hour, base.minute)

    if text == "24:00":
        # end-of-day marker; callers map it onto the next midnight
        return time(0, 0)

    for fmt in ("%H:%M", "%H.%M"):
        try:
            dt = datetime.strptime(text, fmt)
            return time(dt.hour, dt.minute)
        except ValueError:
            continue

    # short hhmm (e.g. 930 -> 09:30)
    if len(text) in {3, 4} and text.isdigit():
        hours = _parse_int(text[:-2])
        minutes = _parse_int(text[-2:])
        if hours is not None and minutes is not None and 0 <= hours <= 23 and 0 <= minutes <= 59:
            return time(hours, minutes)

    return None


def combine_end(day: date, start: time, end_text: str | None) -> Optional[datetime]:
    """Build an end timestamp on ``day``; ``24:00`` (or ``00:00`` after a later start) is next midnight."""

    parsed = parse_time_input(end_text, allow_relative=False)
    if parsed is None:
        return None
    end = datetime.combine(day, parsed)
    if (end_text or "").strip() == "24:00":
        return datetime.combine(day + timedelta(days=1), time(0, 0))
    if parsed == time(0, 0) and start != time(0, 0):
        return datetime.combine(day + timedelta(days=1), time(0, 0))
    return end


__all__ = [
    "combine_end",
    "parse_date_input",
    "parse_time_input",
    "snap_minutes",
]
