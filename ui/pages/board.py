# ui/pages/board.py
from __future__ import annotations

from datetime import date
from typing import Optional

import flet as ft

from core.priorities import priority_bgcolor, priority_color, priority_label
from core.settings import UI
from helpers.datetime_utils import parse_date_input
from services.view_cache import EntryState
from services.views import BoardCard

from ..dialogs import confirm

BOARD_UI = UI.board
THEME = UI.theme
COL_W = BOARD_UI.column_width


def _fmt_minutes(minutes: int) -> str:
    hours, rest = divmod(int(minutes or 0), 60)
    if hours and rest:
        return f"{hours}h {rest}m"
    if hours:
        return f"{hours}h"
    return f"{rest}m"


class BoardPage:
    """Status columns; dropping a card on another column changes its status."""

    def __init__(self, app, cache):
        self.app = app
        self.cache = cache
        self.current_drag_task_id: Optional[str] = None

        self.new_title = ft.TextField(hint_text="New task", expand=True, on_submit=lambda e: self.add_task())
        self.new_date = ft.TextField(hint_text="Date (YYYY-MM-DD)", width=170, on_submit=lambda e: self.add_task())
        header = ft.Row(
            [
                ft.Text("Board", size=24, weight=ft.FontWeight.BOLD),
                ft.Row(
                    [self.new_title, self.new_date, ft.IconButton(icon=ft.Icons.ADD, tooltip="Add task", on_click=lambda e: self.add_task())],
                    spacing=8,
                    expand=True,
                ),
            ],
            spacing=24,
        )
        self.columns_row = ft.Row(spacing=16, expand=True, vertical_alignment=ft.CrossAxisAlignment.START, scroll=ft.ScrollMode.AUTO)
        self.view = ft.Container(
            content=ft.Column([header, ft.Divider(height=1), self.columns_row], spacing=12, expand=True),
            expand=True,
            padding=20,
        )
        cache.subscribe(lambda _cache: self.render(update=True))

    def add_task(self):
        title = (self.new_title.value or "").strip()
        if not title:
            return
        raw_date = (self.new_date.value or "").strip()
        planned = parse_date_input(raw_date) if raw_date else date.today()
        if planned is None:
            self.app.toast("Date is not valid")
            return
        self.new_title.value = ""
        self.new_date.value = ""
        self.app.run(self.app.tasks.add, title, planned, origin="board")

    def render(self, update: bool = False):
        columns = self.cache.columns([status for status, _ in BOARD_UI.columns])
        self.columns_row.controls = [
            self._column(status, label, columns.get(status, [])) for status, label in BOARD_UI.columns
        ]
        if update:
            self.app.page.update()

    def _column(self, status: str, label: str, cards) -> ft.Control:
        body = ft.Container(
            content=ft.Column(
                [
                    ft.Row(
                        [
                            ft.Text(label, size=16, weight=ft.FontWeight.W_600),
                            ft.Text(str(len(cards)), size=12, color=THEME.text_subtle),
                        ],
                        alignment=ft.MainAxisAlignment.SPACE_BETWEEN,
                    ),
                    ft.Divider(height=1),
                    ft.Column([self._card(card) for card in cards], spacing=8, scroll=ft.ScrollMode.AUTO, expand=True),
                ],
                spacing=8,
                expand=True,
            ),
            width=COL_W,
            padding=10,
            bgcolor=THEME.safe_surface_bg,
            border_radius=10,
            expand=True,
        )
        return ft.DragTarget(
            group="board",
            content=body,
            on_accept=lambda e, s=status: self._on_drop(s),
        )

    def _card(self, card: BoardCard) -> ft.Control:
        task = card.task
        if card.box_start is not None:
            first, last = card.box_start, card.box_end
            box = first.strftime("%d.%m") if first == last else f"{first:%d.%m} - {last:%d.%m}"
        else:
            box = "not boxed"
        pending = self.cache.state_of(task.id) not in (None, EntryState.CONFIRMED)
        content = ft.Container(
            content=ft.Column(
                [
                    ft.Row(
                        [
                            ft.Container(width=6, height=18, bgcolor=priority_color(task.priority), border_radius=3),
                            ft.Text(task.title, size=13, weight=ft.FontWeight.W_600, expand=True, max_lines=2),
                            ft.IconButton(
                                icon=ft.Icons.DELETE_OUTLINE,
                                icon_size=16,
                                tooltip="Delete",
                                on_click=lambda e, t=task: self._confirm_delete(t),
                            ),
                        ],
                        spacing=6,
                    ),
                    ft.Row(
                        [
                            ft.Text(box, size=11, color=THEME.text_subtle),
                            ft.Text(f"{_fmt_minutes(card.scheduled_minutes)} · {card.sessions} session(s)", size=11, color=THEME.text_subtle),
                        ],
                        alignment=ft.MainAxisAlignment.SPACE_BETWEEN,
                    ),
                ],
                spacing=4,
            ),
            padding=10,
            bgcolor=THEME.pending if pending else priority_bgcolor(task.priority),
            border=ft.border.all(0.5, THEME.outline),
            border_radius=8,
            tooltip=priority_label(task.priority),
        )
        return ft.Draggable(
            group="board",
            data=task.id,
            on_drag_start=lambda e, tid=task.id: self._remember(tid),
            content=content,
            content_feedback=ft.Container(content=ft.Text(task.title, size=12), padding=8, bgcolor="#ffffff", border_radius=6),
        )

    def _confirm_delete(self, task):
        confirm(
            self.app.page,
            title="Delete task",
            message=f"\"{task.title}\" and all of its sessions will be removed.",
            on_confirm=lambda: self.app.run(self.app.tasks.delete, task.id, origin="board"),
        )

    def _remember(self, task_id: str):
        self.current_drag_task_id = task_id

    def _on_drop(self, status: str):
        task_id = self.current_drag_task_id
        self.current_drag_task_id = None
        if task_id is None:
            return
        task = self.cache.task(task_id)
        if task is None or task.status == status:
            return
        self.app.run(self.app.tasks.set_status, task_id, status, origin="board")
