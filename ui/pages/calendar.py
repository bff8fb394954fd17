# ui/pages/calendar.py
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Tuple

import flet as ft

from core.priorities import priority_bgcolor, priority_color, priority_label
from core.settings import SYNC, UI
from helpers.datetime_utils import combine_end, parse_time_input
from helpers.resize import resolve_calendar_drop, resolve_calendar_resize
from services.view_cache import EntryState
from services.views import CalendarEvent
from utils.datetime_utils import month_window

from ..dialogs import close_alert_dialog, open_alert_dialog

CAL_UI = UI.calendar
THEME = UI.theme

DAY_START = CAL_UI.day_start
DAY_END = CAL_UI.day_end
ROW_MIN_H = CAL_UI.row_min_height
DAY_COL_W = CAL_UI.day_column_width
HOURS_COL_W = CAL_UI.hours_column_width
SIDE_PANEL_W = CAL_UI.side_panel_width
HEADER_H = CAL_UI.header_height
DIALOG_W = CAL_UI.dialog_width


class CalendarPage:
    """Week grid of segments.

    - Chips are dragged between hour slots (calendar move).
    - Tasks from the side panel dropped on a slot become one-hour sessions.
    - The edit dialog reports a new start and end together, like a resize.
    """

    def __init__(self, app, cache):
        self.app = app
        self.cache = cache
        self.week_start: date = self._monday_of(date.today())
        # what is being dragged: ("segment" | "task", id)
        self.current_drag: Optional[Tuple[str, str]] = None

        self.title_text = ft.Text("", size=24, weight=ft.FontWeight.BOLD)
        header = ft.Row(
            controls=[
                ft.Row(
                    [
                        ft.IconButton(icon=ft.Icons.CHEVRON_LEFT, tooltip="Previous week", on_click=lambda e: self.shift_week(-1)),
                        ft.IconButton(icon=ft.Icons.HOME, tooltip="This week", on_click=lambda e: self.go_home()),
                        ft.IconButton(icon=ft.Icons.CHEVRON_RIGHT, tooltip="Next week", on_click=lambda e: self.shift_week(1)),
                        ft.IconButton(icon=ft.Icons.ADD, tooltip="New event", on_click=lambda e: self.open_event_dialog()),
                    ],
                    spacing=6,
                ),
                self.title_text,
                ft.Container(),
            ],
            alignment=ft.MainAxisAlignment.SPACE_BETWEEN,
        )
        self.unboxed_list = ft.ListView(expand=True, spacing=6)
        self.side_panel = ft.Container(
            width=SIDE_PANEL_W,
            content=ft.Column(
                [ft.Text("Tasks this week", size=16, weight=ft.FontWeight.W_600), ft.Divider(height=1), self.unboxed_list],
                expand=True,
                spacing=8,
            ),
            padding=10,
            border=ft.border.all(0.5, THEME.outline),
            border_radius=8,
        )
        self.grid = ft.Container(expand=True)
        self.view = ft.Container(
            content=ft.Column(
                [header, ft.Divider(height=1), ft.Row([self.side_panel, self.grid], expand=True, spacing=12)],
                spacing=12,
                expand=True,
            ),
            expand=True,
            padding=20,
        )
        cache.subscribe(lambda _cache: self.render(update=True))

    # ---------- navigation ----------
    @staticmethod
    def _monday_of(day: date) -> date:
        return day - timedelta(days=day.weekday())

    def _week_days(self) -> List[date]:
        return [self.week_start + timedelta(days=i) for i in range(7)]

    def _ensure_window(self):
        week_end = self.week_start + timedelta(days=6)
        if self.cache.start <= self.week_start and week_end <= self.cache.end:
            return
        start, end = month_window(
            self.week_start, back=SYNC.calendar_months_back, forward=SYNC.calendar_months_forward
        )
        self.cache.set_window(start, end)
        self.app.page.run_task(self.cache.refresh)

    def shift_week(self, delta: int):
        self.week_start += timedelta(days=7 * delta)
        self._ensure_window()
        self.render(update=True)

    def go_home(self):
        self.week_start = self._monday_of(date.today())
        self._ensure_window()
        self.render(update=True)

    # ---------- rendering ----------
    def render(self, update: bool = False):
        days = self._week_days()
        self.title_text.value = f"Week {days[0].strftime('%d.%m')} - {days[-1].strftime('%d.%m.%Y')}"
        index: Dict[Tuple[date, int], List[CalendarEvent]] = {}
        for event in self.cache.events():
            if days[0] <= event.start.date() <= days[-1]:
                index.setdefault((event.start.date(), event.start.hour), []).append(event)
        self.grid.content = self._build_grid(days, index)
        self._build_side_panel(days)
        if update:
            self.app.page.update()

    def _build_side_panel(self, days: List[date]):
        self.unboxed_list.controls.clear()
        seen = set()
        for task in self.app.timeline_cache.tasks() + self.app.board_cache.tasks():
            if task.id in seen or task.status == "completed" or task.parent_task_id:
                continue
            seen.add(task.id)
            if task.planned_date is None or not (days[0] <= task.planned_date <= days[-1]):
                continue
            chip = ft.Container(
                content=ft.Text(task.title, size=12, no_wrap=True, overflow=ft.TextOverflow.ELLIPSIS),
                padding=8,
                bgcolor=priority_bgcolor(task.priority),
                border=ft.border.all(0.5, THEME.outline),
                border_radius=8,
                width=SIDE_PANEL_W - 20,
            )
            self.unboxed_list.controls.append(
                ft.Draggable(
                    group="calendar",
                    data=task.id,
                    on_drag_start=lambda e, tid=task.id: self._remember_drag("task", tid),
                    content=chip,
                    content_feedback=ft.Container(content=ft.Text(task.title, size=12), padding=8, bgcolor="#ffffff", border_radius=6),
                )
            )

    def _build_grid(self, days: List[date], index) -> ft.Control:
        today = date.today()
        header_cells = [ft.Container(width=HOURS_COL_W, height=HEADER_H)]
        for d in days:
            header_cells.append(
                ft.Container(
                    width=DAY_COL_W,
                    height=HEADER_H,
                    content=ft.Column(
                        [
                            ft.Text(d.strftime("%a"), size=14, weight=ft.FontWeight.W_600),
                            ft.Text(d.strftime("%d.%m"), size=12, color=THEME.text_subtle),
                        ],
                        spacing=2,
                        horizontal_alignment=ft.CrossAxisAlignment.CENTER,
                    ),
                    alignment=ft.alignment.center,
                    bgcolor=THEME.today_bg if d == today else None,
                )
            )
        rows: List[ft.Control] = []
        for hour in range(DAY_START, DAY_END):
            cells: List[ft.Control] = [
                ft.Container(
                    content=ft.Text(f"{hour:02d}:00", size=12, color=THEME.text_subtle),
                    width=HOURS_COL_W,
                    alignment=ft.alignment.center_right,
                    padding=ft.padding.only(right=8),
                )
            ]
            for d in days:
                events = index.get((d, hour), [])
                slot = ft.Container(
                    content=ft.Column([self._chip(ev) for ev in events], spacing=4),
                    width=DAY_COL_W,
                    padding=4,
                    bgcolor=THEME.today_bg if d == today else None,
                    border=ft.border.only(bottom=ft.BorderSide(0.6, THEME.outline), right=ft.BorderSide(0.5, THEME.outline)),
                    on_click=(lambda e, _d=d, _h=hour: self.open_event_dialog(day=_d, hour=_h)) if not events else None,
                )
                cells.append(
                    ft.DragTarget(
                        group="calendar",
                        content=ft.Container(content=slot, height=max(ROW_MIN_H, 8 + 34 * len(events))),
                        on_accept=lambda e, _d=d, _h=hour: self._on_drop_accept(_d, _h),
                    )
                )
            rows.append(ft.Row(cells, spacing=0))
        return ft.Container(
            content=ft.Column(
                [ft.Row(header_cells, spacing=0), ft.Divider(height=1), ft.Column(rows, spacing=0, scroll=ft.ScrollMode.ALWAYS, expand=True)],
                spacing=0,
                expand=True,
            ),
            expand=True,
            border_radius=8,
            border=ft.border.all(0.5, THEME.outline),
            padding=8,
        )

    def _chip(self, event: CalendarEvent) -> ft.Control:
        label = f"{event.start:%H:%M}-{event.end:%H:%M} {event.title}"
        body = ft.Container(
            content=ft.Row(
                [
                    ft.Container(width=4, height=16, bgcolor=priority_color(event.priority), border_radius=2),
                    ft.Text(label, size=11, no_wrap=True, overflow=ft.TextOverflow.ELLIPSIS, color=THEME.chip_text),
                ],
                spacing=6,
            ),
            bgcolor=THEME.pending if self.cache.state_of(event.id) not in (None, EntryState.CONFIRMED) else THEME.chip,
            border=ft.border.all(0.5, THEME.outline),
            border_radius=8,
            padding=6,
            width=DAY_COL_W - 12,
            tooltip=f"{event.session_label} · {priority_label(event.priority)}",
        )
        return ft.Draggable(
            group="calendar",
            data=event.id,
            on_drag_start=lambda e, sid=event.id: self._remember_drag("segment", sid),
            content=ft.GestureDetector(content=body, on_tap=lambda e, ev=event: self.open_event_dialog(event=ev)),
            content_feedback=ft.Container(content=ft.Text(event.title, size=12), padding=8, bgcolor="#ffffff", border_radius=6),
        )

    # ---------- drag & drop ----------
    def _remember_drag(self, kind: str, record_id: str):
        self.current_drag = (kind, record_id)

    def _on_drop_accept(self, day: date, hour: int):
        if self.current_drag is None:
            return
        kind, record_id = self.current_drag
        self.current_drag = None
        slot = datetime.combine(day, datetime.min.time()) + timedelta(hours=hour)
        if kind == "task":
            self.app.run(self.app.segments.create_from_drop, record_id, slot, origin="calendar")
            return
        seg = self.cache.segment(record_id)
        if seg is None:
            return
        dropped = slot + timedelta(minutes=seg.start_time.minute)
        start, end = resolve_calendar_drop(seg.start_time, seg.end_time, dropped)
        if (start, end) == (seg.start_time, seg.end_time):
            return
        self.app.run(self.app.segments.update, record_id, start_time=start, end_time=end, origin="calendar")

    # ---------- dialog ----------
    def open_event_dialog(self, event: Optional[CalendarEvent] = None, day: Optional[date] = None, hour: int = 9):
        day = event.start.date() if event else (day or date.today())
        start_init = event.start.strftime("%H:%M") if event else f"{hour:02d}:00"
        end_init = ("24:00" if event.end.date() != day else event.end.strftime("%H:%M")) if event else f"{min(hour + 1, 24):02d}:00"
        title_tf = ft.TextField(label="Title", value=event.title if event else "", width=DIALOG_W - 80)
        start_tf = ft.TextField(label="Start", value=start_init, width=110)
        end_tf = ft.TextField(label="End", value=end_init, width=110)
        dlg: Optional[ft.AlertDialog] = None

        def close(_=None):
            close_alert_dialog(self.app.page, dlg)

        def save(_):
            start_time = parse_time_input(start_tf.value, allow_relative=False)
            if start_time is None:
                self.app.toast("Start time is not valid")
                return
            start = datetime.combine(day, start_time)
            end = combine_end(day, start_time, end_tf.value)
            if end is None:
                self.app.toast("End time is not valid")
                return
            close()
            if event is None:
                self.app.run(self.app.segments.create_event, start_time=start, end_time=end, title=title_tf.value, origin="calendar")
                return
            changes = {}
            if (start, end) != (event.start, event.end):
                if end - start == event.end - event.start:
                    new_start, new_end = resolve_calendar_drop(event.start, event.end, start)
                else:
                    _edge, new_start, new_end = resolve_calendar_resize(event.start, event.end, start, end)
                changes.update(start_time=new_start, end_time=new_end)
            if (title_tf.value or "").strip() and title_tf.value.strip() != event.title:
                changes["title"] = title_tf.value.strip()
            if not changes:
                return
            self.app.run(self.app.segments.update, event.id, origin="calendar", **changes)

        def delete(_):
            close()
            self.app.run(self.app.segments.delete, event.id, origin="calendar")

        actions = [ft.TextButton("Cancel", on_click=close), ft.FilledButton("Save", on_click=save)]
        if event is not None:
            actions.insert(0, ft.TextButton("Delete", on_click=delete))
        dlg = open_alert_dialog(
            self.app.page,
            title="Edit event" if event else "New event",
            content=ft.Column([title_tf, ft.Row([start_tf, end_tf], spacing=12)], tight=True, width=DIALOG_W),
            actions=actions,
        )
