# ui/app_shell.py
from __future__ import annotations

import logging
from datetime import date

import flet as ft

from core.errors import ChangesRevertedError, NotFoundError, PlannerError, ValidationError
from core.settings import SYNC, UI
from services.events import EventBus
from services.persistence import LocalPersistence
from services.segments import SegmentService
from services.synchronizer import CrossViewSynchronizer
from services.tasks import TaskService
from services.views import BoardCache, CalendarCache, DayTimelineCache
from storage.config import VIEWS, load_config, update_config
from storage.store import PlannerStore
from utils.datetime_utils import month_window

from .pages.board import BoardPage
from .pages.calendar import CalendarPage
from .pages.timeline import TimelinePage

logger = logging.getLogger(__name__)


class AppShell:
    """Wires the store, services and the three view caches into one window."""

    def __init__(self, page: ft.Page, *, store: PlannerStore | None = None):
        self.page = page
        self.page.title = UI.app_title
        self.page.horizontal_alignment = ft.CrossAxisAlignment.STRETCH
        self.page.vertical_alignment = ft.MainAxisAlignment.START

        self.config = load_config()
        anchor = self.config.last_day or date.today()

        # --- engine ---
        self.port = LocalPersistence(store or PlannerStore())
        self.bus = EventBus()
        self.sync = CrossViewSynchronizer(self.bus)
        self.segments = SegmentService(self.port, self.sync, self.bus)
        self.tasks = TaskService(self.port, self.sync, self.bus)

        # --- caches, one per surface ---
        window = month_window(anchor, back=SYNC.calendar_months_back, forward=SYNC.calendar_months_forward)
        self.timeline_cache = self.sync.register("timeline", DayTimelineCache(self.port, anchor))
        self.calendar_cache = self.sync.register("calendar", CalendarCache(self.port, *window))
        self.board_cache = self.sync.register("board", BoardCache(self.port))

        # --- pages ---
        self._timeline = TimelinePage(self, self.timeline_cache)
        self._calendar = CalendarPage(self, self.calendar_cache)
        self._board = BoardPage(self, self.board_cache)
        self._pages = {
            "timeline": self._timeline,
            "calendar": self._calendar,
            "board": self._board,
        }

        self.content = ft.Container(expand=True)
        self.nav = ft.NavigationRail(
            selected_index=VIEWS.index(self.config.last_view),
            label_type=ft.NavigationRailLabelType.ALL,
            min_width=90,
            group_alignment=-0.9,
            on_change=self.on_nav_change,
            destinations=[
                ft.NavigationRailDestination(
                    icon=ft.Icons.VIEW_TIMELINE_OUTLINED,
                    selected_icon=ft.Icons.VIEW_TIMELINE,
                    label="Timeline",
                ),
                ft.NavigationRailDestination(
                    icon=ft.Icons.CALENDAR_MONTH_OUTLINED,
                    selected_icon=ft.Icons.CALENDAR_MONTH,
                    label="Calendar",
                ),
                ft.NavigationRailDestination(
                    icon=ft.Icons.VIEW_KANBAN_OUTLINED,
                    selected_icon=ft.Icons.VIEW_KANBAN,
                    label="Board",
                ),
            ],
        )
        self.root = ft.Row(
            controls=[
                ft.Container(self.nav, width=88, bgcolor=UI.theme.safe_surface_bg),
                ft.VerticalDivider(width=1),
                self.content,
            ],
            expand=True,
            spacing=0,
        )

    # ---------- mounting ----------
    def mount(self):
        self.page.controls.clear()
        self.page.add(self.root)
        self.show(self.config.last_view)
        self.page.run_task(self._load_all)

    async def _load_all(self):
        for name, cache in self.sync.views.items():
            try:
                await cache.refresh()
            except PlannerError as exc:
                logger.warning("initial load of %s failed: %s", name, exc)
                self.toast(f"Could not load {name}")

    def show(self, view: str):
        page = self._pages[view]
        self.content.content = page.view
        page.render()
        self.page.update()

    def on_nav_change(self, e: ft.ControlEvent):
        view = VIEWS[int(e.control.selected_index)]
        self.config = update_config(last_view=view)
        self.show(view)

    def remember_day(self, day: date):
        self.config = update_config(last_date=day)

    # ---------- helpers for pages ----------
    def toast(self, text: str):
        self.page.snack_bar = ft.SnackBar(ft.Text(text))
        self.page.snack_bar.open = True
        self.page.update()

    async def guarded(self, action):
        """Await a mutation and turn domain errors into a notice."""
        try:
            return await action
        except ValidationError as exc:
            self.toast(exc.message)
        except ChangesRevertedError as exc:
            self.toast(exc.message)
        except NotFoundError as exc:
            self.toast(exc.message)
        return None

    def run(self, action_factory, *args, **kwargs):
        """Schedule ``action_factory(*args, **kwargs)`` on the page loop."""

        async def _runner():
            await self.guarded(action_factory(*args, **kwargs))

        self.page.run_task(_runner)
