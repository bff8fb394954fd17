# ui/pages/timeline.py
from __future__ import annotations

from datetime import date, datetime, timedelta
from itertools import count
from typing import Dict, Optional

import flet as ft

from core.settings import SCHEDULING, UI
from helpers.datetime_utils import snap_minutes
from models.records import SegmentRecord
from services.drag_controller import DragController, PointerEvent, toggles_precision
from services.view_cache import EntryState
from utils.datetime_utils import midnight

TL_UI = UI.timeline
THEME = UI.theme

DAY_START = TL_UI.day_start
DAY_END = TL_UI.day_end
TRACK_W = TL_UI.track_width
ROW_H = TL_UI.row_height
TITLE_W = TL_UI.title_column_width
VISIBLE_MIN = (DAY_END - DAY_START) * 60


def _x_of(moment: datetime, day: date) -> float:
    minutes = (moment - midnight(day)).total_seconds() / 60 - DAY_START * 60
    return max(0.0, min(TRACK_W, minutes / VISIBLE_MIN * TRACK_W))


class TimelinePage:
    """Day timeline: one row per boxed task, blocks dragged along the hour axis."""

    def __init__(self, app, cache):
        self.app = app
        self.cache = cache
        self._pointer_ids = count(1)
        self._active_pointer: Optional[int] = None
        self._last_x = 0.0
        self._preview: Dict[str, tuple] = {}
        self.controller = DragController(
            app.segments,
            view="timeline",
            track_width=TRACK_W,
            day_start_hour=DAY_START,
            day_end_hour=DAY_END,
            on_preview=self._on_preview,
        )

        self.title_text = ft.Text("", size=24, weight=ft.FontWeight.BOLD)
        self.fine_switch = ft.Switch(label="1-minute snap", value=False)
        header = ft.Row(
            [
                ft.Row(
                    [
                        ft.IconButton(icon=ft.Icons.CHEVRON_LEFT, tooltip="Previous day", on_click=lambda e: self.shift_day(-1)),
                        ft.IconButton(icon=ft.Icons.TODAY, tooltip="Today", on_click=lambda e: self.go_to(date.today())),
                        ft.IconButton(icon=ft.Icons.CHEVRON_RIGHT, tooltip="Next day", on_click=lambda e: self.shift_day(1)),
                    ],
                    spacing=6,
                ),
                self.title_text,
                self.fine_switch,
            ],
            alignment=ft.MainAxisAlignment.SPACE_BETWEEN,
        )
        self.rows = ft.ListView(expand=True, spacing=4)
        self.view = ft.Container(
            content=ft.Column([header, ft.Divider(height=1), self._hour_ruler(), self.rows], expand=True, spacing=8),
            expand=True,
            padding=20,
        )
        app.page.on_keyboard_event = self._on_key
        cache.subscribe(lambda _cache: self.render(update=True))

    # ---------- navigation ----------
    def go_to(self, day: date):
        if self.controller.dragging:
            self.controller.pointer_cancel()
        self.cache.set_day(day)
        self.app.remember_day(day)
        self.app.page.run_task(self.cache.refresh)

    def shift_day(self, delta: int):
        self.go_to(self.cache.day + timedelta(days=delta))

    def _on_key(self, e: ft.KeyboardEvent):
        if e.key == "Escape" and self.controller.dragging:
            self.controller.pointer_cancel()
        elif toggles_precision(e.key, self.app.config.precision_modifier):
            self.fine_switch.value = not self.fine_switch.value
            self.app.page.update()

    # ---------- rendering ----------
    def _hour_ruler(self) -> ft.Control:
        marks = []
        step = TRACK_W / (DAY_END - DAY_START)
        for hour in range(DAY_START, DAY_END):
            marks.append(
                ft.Container(
                    content=ft.Text(f"{hour:02d}", size=10, color=THEME.text_subtle),
                    width=step,
                    border=ft.border.only(left=ft.BorderSide(0.5, THEME.outline)),
                )
            )
        return ft.Row([ft.Container(width=TITLE_W), ft.Row(marks, spacing=0, width=TRACK_W)], spacing=0)

    def render(self, update: bool = False):
        day = self.cache.day
        self.title_text.value = day.strftime("%A, %d %b %Y")
        overlaps = self.cache.overlaps()
        self.rows.controls.clear()
        for task, segments in self.cache.rows():
            blocks = [self._block(seg, overlaps.get(seg.id, [])) for seg in segments]
            track = ft.GestureDetector(
                content=ft.Stack(
                    [ft.Container(width=TRACK_W, height=ROW_H, bgcolor=THEME.safe_surface_bg, border_radius=6)] + blocks,
                    width=TRACK_W,
                    height=ROW_H,
                ),
                on_double_tap_down=lambda e, tid=task.id: self._create_at(tid, e.local_x),
            )
            label = ft.Container(
                content=ft.Column(
                    [
                        ft.Text(task.title, size=13, weight=ft.FontWeight.W_600, no_wrap=True, overflow=ft.TextOverflow.ELLIPSIS),
                        ft.Text(f"{task.scheduled_minutes} min scheduled", size=11, color=THEME.text_subtle),
                    ],
                    spacing=2,
                ),
                width=TITLE_W,
                padding=ft.padding.only(right=8),
            )
            self.rows.controls.append(ft.Row([label, track], spacing=0))
        if not self.rows.controls:
            self.rows.controls.append(ft.Text("Nothing boxed on this day", color=THEME.text_subtle))
        if update:
            self.app.page.update()

    def _block(self, seg: SegmentRecord, overlapping) -> ft.Control:
        start, end = self._preview.get(seg.id, (seg.start_time, seg.end_time))
        left = _x_of(start, seg.date)
        width = max(6.0, _x_of(end, seg.date) - left)
        pending = self.cache.state_of(seg.id) not in (None, EntryState.CONFIRMED)
        body = ft.Container(
            content=ft.Text(
                f"{seg.title} · {seg.session_label}",
                size=11,
                no_wrap=True,
                overflow=ft.TextOverflow.ELLIPSIS,
                color=THEME.chip_text,
            ),
            bgcolor=THEME.pending if pending else THEME.chip,
            border=ft.border.all(2 if overlapping else 0.5, THEME.overlap if overlapping else THEME.outline),
            border_radius=6,
            padding=ft.padding.symmetric(horizontal=6, vertical=4),
            width=width,
            height=ROW_H - 8,
            tooltip=f"Overlaps {len(overlapping)} other segment(s)" if overlapping else None,
        )
        menu = ft.PopupMenuButton(
            icon=ft.Icons.MORE_VERT,
            icon_size=14,
            items=[
                ft.PopupMenuItem(text="Duplicate", on_click=lambda e, sid=seg.id: self.app.run(self.app.segments.duplicate, sid, origin="timeline")),
                ft.PopupMenuItem(text="Split", on_click=lambda e, sid=seg.id: self.app.run(self.app.segments.split, sid, origin="timeline")),
                ft.PopupMenuItem(text="Move to tomorrow", on_click=lambda e, sid=seg.id: self.app.run(self.app.segments.move_to_tomorrow, sid, origin="timeline")),
                ft.PopupMenuItem(text="Delete", on_click=lambda e, sid=seg.id: self.app.run(self.app.segments.delete, sid, origin="timeline")),
            ],
        )
        detector = ft.GestureDetector(
            content=ft.Row([body, menu], spacing=0),
            drag_interval=10,
            on_pan_start=lambda e, s=seg, w=width: self._pan_start(s, w, e),
            on_pan_update=self._pan_update,
            on_pan_end=self._pan_end,
        )
        return ft.Container(content=detector, left=left, top=4)

    # ---------- gestures ----------
    def _event(self, x: float) -> PointerEvent:
        return PointerEvent(self._active_pointer or 0, x, bool(self.fine_switch.value))

    def _pan_start(self, seg: SegmentRecord, width: float, e: ft.DragStartEvent):
        self._active_pointer = next(self._pointer_ids)
        self._last_x = e.global_x
        self.controller.pointer_down(seg, self._event(e.global_x), block_x=e.local_x, block_width=width)

    def _pan_update(self, e: ft.DragUpdateEvent):
        self._last_x = e.global_x
        self.controller.pointer_move(self._event(e.global_x))

    def _pan_end(self, e: ft.DragEndEvent):
        event = self._event(self._last_x)

        async def _finish():
            outcome = await self.controller.pointer_up(event)
            if outcome is None:
                return
            self._preview.pop(outcome.segment_id, None)
            self.render(update=True)
            if outcome.error is not None:
                self.app.toast(outcome.error.message)

        self.app.page.run_task(_finish)

    def _on_preview(self, segment_id: str, start: datetime, end: datetime):
        seg = self.cache.segment(segment_id)
        if seg is not None and (seg.start_time, seg.end_time) == (start, end):
            self._preview.pop(segment_id, None)
        else:
            self._preview[segment_id] = (start, end)
        self.render(update=True)

    def _create_at(self, task_id: str, x: float):
        raw = x / TRACK_W * VISIBLE_MIN + DAY_START * 60
        minutes = snap_minutes(raw, step=SCHEDULING.snap_minutes, direction="backward")
        start = midnight(self.cache.day) + timedelta(minutes=minutes)
        self.app.run(self.app.segments.create_from_drop, task_id, start, origin="timeline")
