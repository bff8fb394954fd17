"""Per-view record caches with tagged optimistic entries.

Each entry is ``confirmed``, ``pending`` (written optimistically by a mutation
still in flight) or ``reverting`` (its mutation failed and a refetch is under
way). A pending entry remembers the confirmed entry it replaced, so throwing a
mutation away is one transition per entry. Only the synchronizer writes here;
pages read through :meth:`ViewCache.segments` and :meth:`ViewCache.tasks`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from models.records import SegmentRecord, TaskRecord

logger = logging.getLogger("timebox.sync.cache")


class EntryState(str, Enum):
    CONFIRMED = "confirmed"
    PENDING = "pending"
    REVERTING = "reverting"


@dataclass
class CacheEntry:
    value: Optional[object]  # None marks a pending removal
    state: EntryState = EntryState.CONFIRMED
    mutation_id: Optional[str] = None
    previous: Optional["CacheEntry"] = None


@dataclass(frozen=True)
class Change:
    segments: Tuple[SegmentRecord, ...] = ()
    removed_segment_ids: Tuple[str, ...] = ()
    tasks: Tuple[TaskRecord, ...] = ()
    removed_task_ids: Tuple[str, ...] = ()
    dates: FrozenSet[date] = field(default_factory=frozenset)

    @property
    def segment_ids(self) -> Tuple[str, ...]:
        return tuple(seg.id for seg in self.segments) + self.removed_segment_ids

    @property
    def task_ids(self) -> Tuple[str, ...]:
        ids = [task.id for task in self.tasks] + list(self.removed_task_ids)
        ids.extend(seg.task_id for seg in self.segments)
        return tuple(dict.fromkeys(ids))

    @property
    def affected_dates(self) -> FrozenSet[date]:
        return frozenset(self.dates) | {seg.date for seg in self.segments}


class ViewCache:
    """Base cache; subclasses define ``_fetch`` and which records are in scope."""

    name = "view"

    def __init__(self, port) -> None:
        self.port = port
        self._segments: Dict[str, CacheEntry] = {}
        self._tasks: Dict[str, CacheEntry] = {}
        self._listeners: Set[Callable[["ViewCache"], None]] = set()
        self.loaded = False
        self.version = 0

    # ----- reading -----
    def _values(self, entries: Dict[str, CacheEntry]) -> List:
        return [entry.value for entry in entries.values() if entry.value is not None]

    def all_segments(self) -> List[SegmentRecord]:
        """Every cached live segment, including ones outside the visible range."""
        return [seg for seg in self._values(self._segments) if seg.deleted_at is None]

    def segments(self) -> List[SegmentRecord]:
        segs = [seg for seg in self.all_segments() if self._in_scope(seg)]
        return sorted(segs, key=lambda seg: (seg.start_time, seg.order, seg.id))

    def tasks(self) -> List[TaskRecord]:
        return [task for task in self._values(self._tasks) if task.deleted_at is None]

    def segment(self, segment_id: str) -> Optional[SegmentRecord]:
        entry = self._segments.get(segment_id)
        return entry.value if entry else None

    def task(self, task_id: str) -> Optional[TaskRecord]:
        entry = self._tasks.get(task_id)
        return entry.value if entry else None

    def state_of(self, record_id: str) -> Optional[EntryState]:
        entry = self._segments.get(record_id) or self._tasks.get(record_id)
        return entry.state if entry else None

    def pending_mutations(self) -> Set[str]:
        entries = list(self._segments.values()) + list(self._tasks.values())
        return {e.mutation_id for e in entries if e.state is EntryState.PENDING and e.mutation_id}

    def snapshot(self) -> Tuple[Dict[str, SegmentRecord], Dict[str, TaskRecord]]:
        """Visible records keyed by id, used to compare a cache with a fresh fetch."""
        return (
            {seg.id: seg for seg in self.segments()},
            {task.id: task for task in self.tasks()},
        )

    # ----- scope -----
    def _in_scope(self, segment: SegmentRecord) -> bool:
        return True

    def covers(self, dates: Iterable[date], task_ids: Iterable[str] = ()) -> bool:
        return True

    async def _fetch(self) -> Tuple[List[SegmentRecord], List[TaskRecord]]:
        raise NotImplementedError

    # ----- listeners -----
    def subscribe(self, callback: Callable[["ViewCache"], None]) -> None:
        self._listeners.add(callback)

    def unsubscribe(self, callback: Callable[["ViewCache"], None]) -> None:
        self._listeners.discard(callback)

    def _notify(self) -> None:
        self.version += 1
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception:
                logger.exception("%s listener failed", self.name)

    # ----- transitions -----
    @staticmethod
    def _stage(entries: Dict[str, CacheEntry], key: str, value, mutation_id: str) -> None:
        current = entries.get(key)
        if current is None:
            previous = None
        elif current.state is EntryState.CONFIRMED:
            previous = current
        else:
            previous = current.previous
        entries[key] = CacheEntry(value, EntryState.PENDING, mutation_id, previous)

    def apply_pending(self, change: Change, mutation_id: str) -> None:
        for seg in change.segments:
            self._stage(self._segments, seg.id, seg, mutation_id)
        for seg_id in change.removed_segment_ids:
            self._stage(self._segments, seg_id, None, mutation_id)
        for task in change.tasks:
            self._stage(self._tasks, task.id, task, mutation_id)
        for task_id in change.removed_task_ids:
            self._stage(self._tasks, task_id, None, mutation_id)
        self._notify()

    @staticmethod
    def _settle(entries: Dict[str, CacheEntry], mutation_id: str, confirmed: Dict[str, object]) -> None:
        for key, entry in list(entries.items()):
            if entry.mutation_id != mutation_id or entry.state is EntryState.CONFIRMED:
                continue
            value = confirmed.get(key, entry.value)
            if value is None:
                del entries[key]
            else:
                entries[key] = CacheEntry(value)
        for key, value in confirmed.items():
            current = entries.get(key)
            if current is None or current.state is EntryState.CONFIRMED:
                if value is None:
                    entries.pop(key, None)
                else:
                    entries[key] = CacheEntry(value)

    def confirm(self, mutation_id: str, settled: Optional[Change] = None) -> None:
        """Promote a mutation's entries, taking persisted values from ``settled``."""

        seg_values: Dict[str, object] = {}
        task_values: Dict[str, object] = {}
        if settled is not None:
            seg_values.update({seg.id: seg for seg in settled.segments})
            seg_values.update({seg_id: None for seg_id in settled.removed_segment_ids})
            task_values.update({task.id: task for task in settled.tasks})
            task_values.update({task_id: None for task_id in settled.removed_task_ids})
        self._settle(self._segments, mutation_id, seg_values)
        self._settle(self._tasks, mutation_id, task_values)
        self._notify()

    @staticmethod
    def _restore(entries: Dict[str, CacheEntry], mutation_id: str) -> None:
        for key, entry in list(entries.items()):
            if entry.mutation_id != mutation_id or entry.state is EntryState.CONFIRMED:
                continue
            if entry.previous is None:
                del entries[key]
            else:
                entries[key] = entry.previous

    def discard(self, mutation_id: str) -> None:
        """Put back whatever each of the mutation's entries replaced."""

        self._restore(self._segments, mutation_id)
        self._restore(self._tasks, mutation_id)
        self._notify()

    async def rollback(self, mutation_id: str) -> None:
        """Drop a failed mutation and reload the range from the store."""

        for entries in (self._segments, self._tasks):
            for entry in entries.values():
                if entry.mutation_id == mutation_id and entry.state is EntryState.PENDING:
                    entry.state = EntryState.REVERTING
        self._notify()
        try:
            await self.refresh()
        except Exception as exc:
            logger.warning("%s refetch after failed mutation %s failed: %s", self.name, mutation_id, exc)
            self.discard(mutation_id)

    @staticmethod
    def _rebuild(entries: Dict[str, CacheEntry], fetched: Iterable) -> Dict[str, CacheEntry]:
        rebuilt = {record.id: CacheEntry(record) for record in fetched}
        for key, entry in entries.items():
            if entry.state is not EntryState.PENDING:
                continue
            # another mutation is still in flight; keep showing it on top of the fresh data
            rebuilt[key] = CacheEntry(entry.value, EntryState.PENDING, entry.mutation_id, rebuilt.get(key))
        return rebuilt

    async def refresh(self) -> None:
        segments, tasks = await self._fetch()
        self._segments = self._rebuild(self._segments, segments)
        self._tasks = self._rebuild(self._tasks, tasks)
        self.loaded = True
        self._notify()


__all__ = ["CacheEntry", "Change", "EntryState", "ViewCache"]
