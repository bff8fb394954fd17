"""Pointer arithmetic for moving and resizing segments on a time axis.

Everything here is pure: the drag controller and the calendar page feed in
pixel offsets or reported times and get snapped, clamped datetimes back.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Tuple

from core.settings import SCHEDULING, ResizeHeuristic
from helpers.datetime_utils import snap_minutes
from utils.datetime_utils import day_bounds, midnight

Bounds = Tuple[datetime, datetime]


class DragMode(str, Enum):
    MOVE = "move"
    RESIZE_START = "resize-start"
    RESIZE_END = "resize-end"


class ResizeEdge(str, Enum):
    START = "start"
    END = "end"


def classify_resize(
    start_delta: float,
    end_delta: float,
    heuristic: ResizeHeuristic = SCHEDULING.resize,
) -> ResizeEdge:
    """Decide which boundary a combined resize event moved.

    Deltas are in minutes; only their magnitude matters. One end moving more
    than ``significant_minutes`` while the other moved under
    ``minimal_minutes`` is decisive. Otherwise an end that moved more than
    ``dominance_ratio`` times the other wins, and anything else is the end.
    """

    s = abs(start_delta)
    e = abs(end_delta)
    if s > heuristic.significant_minutes and e < heuristic.minimal_minutes:
        return ResizeEdge.START
    if e > heuristic.significant_minutes and s < heuristic.minimal_minutes:
        return ResizeEdge.END
    if s > heuristic.dominance_ratio * e:
        return ResizeEdge.START
    if e > heuristic.dominance_ratio * s:
        return ResizeEdge.END
    return ResizeEdge.END


def pixels_to_minutes(dx: float, track_width: float, visible_minutes: int) -> float:
    if track_width <= 0:
        return 0.0
    return dx / track_width * visible_minutes


def snap_delta(raw_minutes: float, *, precise: bool = False, settings=SCHEDULING) -> int:
    step = settings.fine_snap_minutes if precise else settings.snap_minutes
    return snap_minutes(raw_minutes, step=step, direction="nearest")


def hit_test(x: float, width: float, edge_px: int = SCHEDULING.edge_hit_px) -> DragMode:
    """Mode for a pointer-down ``x`` pixels into a block ``width`` pixels wide."""

    if x < edge_px:
        return DragMode.RESIZE_START
    if x > width - edge_px:
        return DragMode.RESIZE_END
    return DragMode.MOVE


def _bounds(start: datetime, bounds: Optional[Bounds]) -> Bounds:
    return bounds or day_bounds(start.date())


def apply_move(
    start: datetime,
    end: datetime,
    delta_minutes: int,
    bounds: Optional[Bounds] = None,
) -> Tuple[datetime, datetime]:
    lo, hi = _bounds(start, bounds)
    duration = end - start
    new_start = start + timedelta(minutes=delta_minutes)
    new_end = new_start + duration
    if new_start < lo:
        new_start, new_end = lo, lo + duration
    if new_end > hi:
        new_start, new_end = hi - duration, hi
    return new_start, new_end


def apply_resize_start(
    start: datetime,
    end: datetime,
    delta_minutes: int,
    *,
    min_minutes: int = SCHEDULING.min_duration_minutes,
    bounds: Optional[Bounds] = None,
) -> Tuple[datetime, datetime]:
    lo, _ = _bounds(start, bounds)
    new_start = start + timedelta(minutes=delta_minutes)
    new_start = min(new_start, end - timedelta(minutes=min_minutes))
    return max(new_start, lo), end


def apply_resize_end(
    start: datetime,
    end: datetime,
    delta_minutes: int,
    *,
    min_minutes: int = SCHEDULING.min_duration_minutes,
    bounds: Optional[Bounds] = None,
) -> Tuple[datetime, datetime]:
    _, hi = _bounds(start, bounds)
    new_end = end + timedelta(minutes=delta_minutes)
    new_end = max(new_end, start + timedelta(minutes=min_minutes))
    return start, min(new_end, hi)


def apply_drag(
    mode: DragMode,
    start: datetime,
    end: datetime,
    delta_minutes: int,
    *,
    min_minutes: int = SCHEDULING.min_duration_minutes,
    bounds: Optional[Bounds] = None,
) -> Tuple[datetime, datetime]:
    if mode is DragMode.MOVE:
        return apply_move(start, end, delta_minutes, bounds)
    if mode is DragMode.RESIZE_START:
        return apply_resize_start(start, end, delta_minutes, min_minutes=min_minutes, bounds=bounds)
    return apply_resize_end(start, end, delta_minutes, min_minutes=min_minutes, bounds=bounds)


def snap_datetime(value: datetime, step: int = SCHEDULING.snap_minutes) -> datetime:
    """Round ``value`` to the nearest ``step`` minutes of its day."""

    base = midnight(value.date())
    offset = (value - base).total_seconds() / 60
    return base + timedelta(minutes=snap_minutes(offset, step=step, direction="nearest"))


def resolve_calendar_drop(
    original_start: datetime,
    original_end: datetime,
    dropped_start: datetime,
    *,
    step: int = SCHEDULING.snap_minutes,
    bounds: Optional[Bounds] = None,
) -> Tuple[datetime, datetime]:
    """Snap a calendar move, keep its length and keep it inside the drop day."""

    lo, hi = bounds or day_bounds(dropped_start.date())
    duration = original_end - original_start
    start = snap_datetime(dropped_start, step)
    end = snap_datetime(start + duration, step)
    if start < lo:
        start = lo
        end = snap_datetime(start + duration, step)
    if end > hi:
        end = hi
        start = snap_datetime(end - duration, step)
        if start < lo:
            start = lo
            end = min(snap_datetime(start + duration, step), hi)
    if end <= start:
        end = min(start + timedelta(minutes=step), hi)
        start = min(start, end - timedelta(minutes=step))
    return start, end


def resolve_calendar_resize(
    original_start: datetime,
    original_end: datetime,
    reported_start: datetime,
    reported_end: datetime,
    *,
    step: int = SCHEDULING.snap_minutes,
    min_minutes: int = SCHEDULING.min_duration_minutes,
    heuristic: ResizeHeuristic = SCHEDULING.resize,
    bounds: Optional[Bounds] = None,
) -> Tuple[ResizeEdge, datetime, datetime]:
    """Classify a combined resize, then snap and clamp only the moved edge."""

    start_delta = (reported_start - original_start).total_seconds() / 60
    end_delta = (reported_end - original_end).total_seconds() / 60
    edge = classify_resize(start_delta, end_delta, heuristic)
    lo, hi = bounds or day_bounds(original_start.date())
    minimum = timedelta(minutes=min_minutes)
    if edge is ResizeEdge.START:
        start = snap_datetime(reported_start, step)
        start = max(lo, min(start, original_end - minimum))
        return edge, start, original_end
    end = snap_datetime(reported_end, step) if reported_end.date() == original_start.date() else hi
    end = min(hi, max(end, original_start + minimum))
    return edge, original_start, end


__all__ = [
    "Bounds",
    "DragMode",
    "ResizeEdge",
    "apply_drag",
    "apply_move",
    "apply_resize_end",
    "apply_resize_start",
    "classify_resize",
    "hit_test",
    "pixels_to_minutes",
    "resolve_calendar_drop",
    "resolve_calendar_resize",
    "snap_datetime",
    "snap_delta",
]
