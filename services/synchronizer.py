"""Keeps the view caches coherent around every mutation.

The acting view gets the optimistic change first; the write runs; the acting
view is confirmed (or rolled back to a fresh fetch) and every other view that
shows an affected date reloads itself in the background once the service
announces the change.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional, Set

from core.errors import ChangesRevertedError, ValidationError
from core.settings import SYNC
from models.records import SegmentRecord, TaskRecord
from services.events import EventBus, SegmentChanged, TaskChanged
from services.view_cache import Change, ViewCache


def _ensure_logger(log_path: Optional[Path] = None) -> logging.Logger:
    logger = logging.getLogger("timebox.sync")
    if not logger.handlers:
        path = Path(log_path or SYNC.log_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(path, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    return logger


def new_mutation_id() -> str:
    return uuid.uuid4().hex


class CrossViewSynchronizer:
    def __init__(
        self,
        bus: EventBus,
        *,
        log_path: Optional[Path] = None,
        background: bool = SYNC.background_refresh,
    ) -> None:
        self.bus = bus
        self.background = background
        self.logger = _ensure_logger(log_path)
        self._views: Dict[str, ViewCache] = {}
        self._pending: Set[asyncio.Task] = set()
        bus.subscribe(SegmentChanged, self._on_change)
        bus.subscribe(TaskChanged, self._on_change)

    # ----- registry -----
    def register(self, name: str, cache: ViewCache) -> ViewCache:
        self._views[name] = cache
        return cache

    def unregister(self, name: str) -> None:
        self._views.pop(name, None)

    def view(self, name: Optional[str]) -> Optional[ViewCache]:
        if name is None:
            return None
        return self._views.get(name)

    @property
    def views(self) -> Dict[str, ViewCache]:
        return dict(self._views)

    def cached_segment(self, origin: Optional[str], segment_id: str) -> Optional[SegmentRecord]:
        cache = self.view(origin)
        return cache.segment(segment_id) if cache else None

    def cached_task(self, origin: Optional[str], task_id: str) -> Optional[TaskRecord]:
        cache = self.view(origin)
        if cache and cache.task(task_id):
            return cache.task(task_id)
        for other in self._views.values():
            if other.task(task_id):
                return other.task(task_id)
        return None

    # ----- mutations -----
    async def run(
        self,
        origin: Optional[str],
        change: Change,
        operation: Callable[[], Awaitable[Change]],
        *,
        mutation_id: Optional[str] = None,
    ) -> Change:
        """Apply ``change`` to the acting view, await the write, settle the view.

        ``operation`` returns the persisted state as a :class:`Change`. A
        validation failure is re-raised as is after the rollback; anything else
        becomes :class:`ChangesRevertedError`.
        """

        mutation_id = mutation_id or new_mutation_id()
        cache = self.view(origin)
        if cache is not None:
            cache.apply_pending(change, mutation_id)
        try:
            settled = await operation()
        except ValidationError as exc:
            self.logger.info("mutation %s rejected (%s): %s", mutation_id, exc.code, exc.message)
            if cache is not None:
                await cache.rollback(mutation_id)
            raise
        except Exception as exc:
            self.logger.warning("mutation %s failed, reverting %s: %s", mutation_id, origin, exc)
            if cache is not None:
                await cache.rollback(mutation_id)
            raise ChangesRevertedError(exc) from exc
        if cache is not None:
            cache.confirm(mutation_id, settled)
        return settled

    # ----- background refresh -----
    def _on_change(self, event) -> None:
        if not self.background:
            return
        targets = [
            (name, cache)
            for name, cache in self._views.items()
            if name != event.origin and cache.loaded and cache.covers(event.dates, event.task_ids)
        ]
        if not targets:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.logger.warning("no event loop; skipped refresh after %s", event.mutation_id)
            return
        for name, cache in targets:
            task = loop.create_task(self._refresh(name, cache, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _refresh(self, name: str, cache: ViewCache, event) -> None:
        try:
            await cache.refresh()
        except Exception as exc:
            self.logger.warning(
                "background refresh of %s after %s %s failed: %s",
                name,
                type(event).__name__,
                event.mutation_id,
                exc,
            )

    async def drain(self) -> None:
        """Wait for every scheduled background refresh."""

        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._pending):
            task.cancel()
        await asyncio.gather(*list(self._pending), return_exceptions=True)
        self.bus.unsubscribe(SegmentChanged, self._on_change)
        self.bus.unsubscribe(TaskChanged, self._on_change)


__all__ = ["CrossViewSynchronizer", "new_mutation_id"]
