"""Overlap warnings among segments of one day."""
from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List

from models.records import SegmentRecord


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    # half-open intervals: touching ends do not overlap
    return a_start < b_end and b_start < a_end


def find_overlaps(candidate: SegmentRecord, day_segments: Iterable[SegmentRecord]) -> List[SegmentRecord]:
    """Live segments on ``candidate``'s day that intersect it, by start time."""

    hits = [
        other
        for other in day_segments
        if other.id != candidate.id
        and other.deleted_at is None
        and other.date == candidate.date
        and intervals_overlap(candidate.start_time, candidate.end_time, other.start_time, other.end_time)
    ]
    return sorted(hits, key=lambda seg: (seg.start_time, seg.id))


def overlap_map(day_segments: Iterable[SegmentRecord]) -> Dict[str, List[str]]:
    """segment id -> ids it overlaps with; segments without overlaps are omitted."""

    live = sorted(
        (seg for seg in day_segments if seg.deleted_at is None),
        key=lambda seg: (seg.date, seg.start_time),
    )
    result: Dict[str, List[str]] = {}
    for index, current in enumerate(live):
        for other in live[index + 1 :]:
            # sorted by start, so nothing further can reach back into ``current``
            if other.date != current.date or other.start_time >= current.end_time:
                break
            result.setdefault(current.id, []).append(other.id)
            result.setdefault(other.id, []).append(current.id)
    return result


__all__ = ["find_overlaps", "intervals_overlap", "overlap_map"]
