"""Direct manipulation of a timeline block: idle -> dragging(mode) -> idle."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple

from core.errors import PlannerError
from core.settings import SCHEDULING, UI
from helpers.resize import DragMode, apply_drag, hit_test, pixels_to_minutes, snap_delta
from models.records import SegmentRecord
from utils.datetime_utils import midnight

logger = logging.getLogger(__name__)

IDLE = "idle"

Preview = Callable[[str, datetime, datetime], None]

SHIFT_KEYS = ("Shift Left", "Shift Right")


def toggles_precision(key: str, modifier: str) -> bool:
    """True for a bare Shift press when Shift is the precision modifier."""
    return modifier == "shift" and key in SHIFT_KEYS


@dataclass(frozen=True)
class PointerEvent:
    pointer_id: int
    x: float  # horizontal position on the track, in pixels
    precise: bool = False  # modifier held: 1-minute grid


@dataclass
class _Drag:
    segment_id: str
    mode: DragMode
    pointer_id: int
    origin_x: float
    original_start: datetime
    original_end: datetime
    start: datetime
    end: datetime


@dataclass(frozen=True)
class DragOutcome:
    segment_id: str
    mode: DragMode
    committed: bool
    start: datetime
    end: datetime
    error: Optional[PlannerError] = None


class DragController:
    """Turns pointer events on one timeline into snapped segment edits.

    Only the pointer that started a drag can move or finish it. The final
    times go through :class:`SegmentService`; on failure the preview goes back
    to where the drag started.
    """

    def __init__(
        self,
        segments,
        *,
        view: str = "timeline",
        track_width: float = UI.timeline.track_width,
        day_start_hour: int = UI.timeline.day_start,
        day_end_hour: int = UI.timeline.day_end,
        settings=SCHEDULING,
        on_preview: Optional[Preview] = None,
    ) -> None:
        if day_end_hour <= day_start_hour:
            raise ValueError("visible range must not be empty")
        self.segments = segments
        self.view = view
        self.track_width = track_width
        self.day_start_hour = day_start_hour
        self.day_end_hour = day_end_hour
        self.settings = settings
        self.on_preview = on_preview
        self._drag: Optional[_Drag] = None

    @property
    def state(self) -> str:
        return self._drag.mode.value if self._drag else IDLE

    @property
    def dragging(self) -> bool:
        return self._drag is not None

    @property
    def visible_minutes(self) -> int:
        return (self.day_end_hour - self.day_start_hour) * 60

    def _bounds(self, start: datetime) -> Tuple[datetime, datetime]:
        base = midnight(start.date())
        return (
            base + timedelta(hours=self.day_start_hour),
            base + timedelta(hours=self.day_end_hour),
        )

    def _preview(self, segment_id: str, start: datetime, end: datetime) -> None:
        if self.on_preview is not None:
            self.on_preview(segment_id, start, end)

    def preview(self) -> Optional[Tuple[datetime, datetime]]:
        if self._drag is None:
            return None
        return self._drag.start, self._drag.end

    def pointer_down(
        self,
        segment: SegmentRecord,
        event: PointerEvent,
        *,
        block_x: float,
        block_width: float,
    ) -> Optional[DragMode]:
        """Start a drag; ``block_x`` is the pointer offset inside the block."""

        if self._drag is not None:
            return None
        mode = hit_test(block_x, block_width, self.settings.edge_hit_px)
        self._drag = _Drag(
            segment_id=segment.id,
            mode=mode,
            pointer_id=event.pointer_id,
            origin_x=event.x,
            original_start=segment.start_time,
            original_end=segment.end_time,
            start=segment.start_time,
            end=segment.end_time,
        )
        return mode

    def _track(self, event: PointerEvent) -> bool:
        drag = self._drag
        if drag is None or event.pointer_id != drag.pointer_id:
            return False
        raw = pixels_to_minutes(event.x - drag.origin_x, self.track_width, self.visible_minutes)
        delta = snap_delta(raw, precise=event.precise, settings=self.settings)
        drag.start, drag.end = apply_drag(
            drag.mode,
            drag.original_start,
            drag.original_end,
            delta,
            min_minutes=self.settings.min_duration_minutes,
            bounds=self._bounds(drag.original_start),
        )
        return True

    def pointer_move(self, event: PointerEvent) -> Optional[Tuple[datetime, datetime]]:
        if not self._track(event):
            return None
        drag = self._drag
        self._preview(drag.segment_id, drag.start, drag.end)
        return drag.start, drag.end

    async def pointer_up(self, event: PointerEvent) -> Optional[DragOutcome]:
        if not self._track(event):
            return None
        drag = self._drag
        self._drag = None
        if (drag.start, drag.end) == (drag.original_start, drag.original_end):
            return DragOutcome(drag.segment_id, drag.mode, False, drag.start, drag.end)
        self._preview(drag.segment_id, drag.start, drag.end)
        try:
            await self.segments.update(
                drag.segment_id,
                start_time=drag.start,
                end_time=drag.end,
                origin=self.view,
            )
        except PlannerError as exc:
            logger.info("drag of %s reverted: %s", drag.segment_id, exc)
            self._preview(drag.segment_id, drag.original_start, drag.original_end)
            return DragOutcome(
                drag.segment_id,
                drag.mode,
                False,
                drag.original_start,
                drag.original_end,
                error=exc,
            )
        return DragOutcome(drag.segment_id, drag.mode, True, drag.start, drag.end)

    def pointer_cancel(self, event: Optional[PointerEvent] = None) -> bool:
        """Abandon the drag without writing anything."""

        drag = self._drag
        if drag is None or (event is not None and event.pointer_id != drag.pointer_id):
            return False
        self._drag = None
        self._preview(drag.segment_id, drag.original_start, drag.original_end)
        return True


__all__ = ["DragController", "DragOutcome", "IDLE", "PointerEvent", "SHIFT_KEYS", "toggles_precision"]
