"""In-process change notifications between services and view caches."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, FrozenSet, Optional, Set, Tuple, Type

logger = logging.getLogger("timebox.sync.events")


@dataclass(frozen=True)
class SegmentChanged:
    kind: str  # created / updated / deleted / split / duplicated / bulk
    segment_ids: Tuple[str, ...]
    task_ids: Tuple[str, ...]
    dates: FrozenSet[date]
    origin: Optional[str] = None
    mutation_id: str = ""


@dataclass(frozen=True)
class TaskChanged:
    kind: str  # created / updated / deleted / reordered
    task_ids: Tuple[str, ...]
    # empty means every date may be affected
    dates: FrozenSet[date] = field(default_factory=frozenset)
    origin: Optional[str] = None
    mutation_id: str = ""


Event = object
Listener = Callable[[Event], None]


class EventBus:
    """Synchronous fan-out keyed by event class."""

    def __init__(self) -> None:
        self._listeners: Dict[Type, Set[Listener]] = {
            SegmentChanged: set(),
            TaskChanged: set(),
        }

    def subscribe(self, event_type: Type, callback: Listener) -> None:
        if event_type not in self._listeners:
            raise ValueError(f"Unsupported event: {event_type.__name__}")
        self._listeners[event_type].add(callback)

    def unsubscribe(self, event_type: Type, callback: Listener) -> None:
        if event_type not in self._listeners:
            return
        self._listeners[event_type].discard(callback)

    def emit(self, event: Event) -> None:
        listeners = list(self._listeners.get(type(event), ()))
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("listener failed for %s", type(event).__name__)


__all__ = ["EventBus", "SegmentChanged", "TaskChanged"]
