"""Centralized application configuration."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional
import os
import sys


def get_default_data_dir(
    app_name: str,
    *,
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return an OS-specific user data directory for ``app_name``."""

    platform_id = (platform or sys.platform).lower()
    environ = dict(env or os.environ)
    home_dir = Path(home or Path.home())
    sanitized = app_name.strip() or "app"
    sanitized = sanitized.replace("/", "-").replace("\\", "-")

    if platform_id.startswith("win"):
        base = Path(environ.get("APPDATA") or home_dir / "AppData" / "Roaming")
    elif platform_id == "darwin":
        base = Path(environ.get("APPDATA") or home_dir / "Library" / "Application Support")
    else:
        base = Path(environ.get("XDG_DATA_HOME") or home_dir / ".local" / "share")

    return (base.expanduser() / sanitized)


APP_NAME = "Timebox"
LOCAL_USER_ID = "local"


DATA_DIR = get_default_data_dir(APP_NAME)
STORAGE_DIR = DATA_DIR / "storage"
LOG_DIR = DATA_DIR / "logs"
BACKUP_DIR = DATA_DIR / "backups"

for _dir in (DATA_DIR, STORAGE_DIR, LOG_DIR, BACKUP_DIR):
    _dir.mkdir(parents=True, exist_ok=True)


DB_PATH = DATA_DIR / "timebox.db"
CONFIG_PATH = STORAGE_DIR / "config.json"
SYNC_LOG_PATH = LOG_DIR / "sync.log"


@dataclass(frozen=True)
class ResizeHeuristic:
    """Thresholds (minutes) used to tell which edge a combined resize moved."""

    significant_minutes: float = 5
    minimal_minutes: float = 1
    dominance_ratio: float = 2.0


@dataclass(frozen=True)
class SchedulingSettings:
    snap_minutes: int = 15
    fine_snap_minutes: int = 1
    min_duration_minutes: int = 15
    edge_hit_px: float = 3
    duplicate_offset_minutes: int = 60
    drop_duration_minutes: int = 60
    # IANA zone name; None means the machine's local zone
    timezone: Optional[str] = None
    resize: ResizeHeuristic = field(default_factory=ResizeHeuristic)


SCHEDULING = SchedulingSettings()


@dataclass(frozen=True)
class ThemeColors:
    safe_surface_bg: str = "#F1F5F9"
    outline: str = "#E5E7EB"
    text_subtle: str = "#6B7280"
    today_bg: str = "#EEF2FF"
    overlap: str = "#F59E0B"
    pending: str = "#A5B4FC"
    chip: str = "#E0E7FF"
    chip_text: str = "#1F2937"


@dataclass(frozen=True)
class TimelineUISettings:
    day_start: int = 0
    day_end: int = 24
    track_width: int = 960
    row_height: int = 44
    title_column_width: int = 220


@dataclass(frozen=True)
class CalendarUISettings:
    day_start: int = 0
    day_end: int = 24
    row_min_height: int = 44
    hours_column_width: int = 64
    day_column_width: int = 160
    side_panel_width: int = 240
    header_height: int = 54
    dialog_width: int = 460


@dataclass(frozen=True)
class BoardUISettings:
    column_width: int = 300
    columns: tuple[tuple[str, str], ...] = (
        ("todo", "To do"),
        ("in_progress", "In progress"),
        ("completed", "Done"),
    )


@dataclass(frozen=True)
class UISettings:
    app_title: str = APP_NAME
    theme_mode: str = "system"
    color_scheme_seed: str = "#4F46E5"
    window_min_width: int = 1000
    window_min_height: int = 640
    theme: ThemeColors = field(default_factory=ThemeColors)
    timeline: TimelineUISettings = field(default_factory=TimelineUISettings)
    calendar: CalendarUISettings = field(default_factory=CalendarUISettings)
    board: BoardUISettings = field(default_factory=BoardUISettings)


UI = UISettings()


@dataclass(frozen=True)
class SyncSettings:
    log_path: Path = SYNC_LOG_PATH
    background_refresh: bool = True
    # calendar window around "today", in months
    calendar_months_back: int = 1
    calendar_months_forward: int = 2


SYNC = SyncSettings()


@dataclass(frozen=True)
class BackupSettings:
    enabled: bool = True
    directory: Path = BACKUP_DIR
    keep_days: int = 7


BACKUP = BackupSettings()


__all__ = [
    "APP_NAME",
    "LOCAL_USER_ID",
    "DATA_DIR",
    "STORAGE_DIR",
    "LOG_DIR",
    "BACKUP_DIR",
    "DB_PATH",
    "CONFIG_PATH",
    "SYNC_LOG_PATH",
    "SCHEDULING",
    "UI",
    "SYNC",
    "BACKUP",
    "ResizeHeuristic",
    "SchedulingSettings",
    "get_default_data_dir",
]
