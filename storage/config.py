"""Simple JSON-backed configuration store."""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional

from core.settings import CONFIG_PATH

logger = logging.getLogger(__name__)

VIEWS = ("timeline", "calendar", "board")


@dataclass
class AppConfig:
    """User preferences persisted to ``config.json``."""

    last_view: str = "timeline"
    last_date: Optional[str] = None
    # "shift" switches drags to the fine grid while the key is held; "toggle" uses the on-screen switch
    precision_modifier: str = "shift"

    @property
    def last_day(self) -> Optional[date]:
        if not self.last_date:
            return None
        try:
            return date.fromisoformat(self.last_date)
        except ValueError:
            return None


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _load_raw(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("ignoring unreadable config %s: %s", path, exc)
        return {}


def load_config(path: Optional[Path] = None) -> AppConfig:
    target = path or CONFIG_PATH
    data = _load_raw(target)
    view = data.get("last_view")
    modifier = data.get("precision_modifier")
    return AppConfig(
        last_view=view if view in VIEWS else "timeline",
        last_date=data.get("last_date"),
        precision_modifier=modifier if modifier in {"shift", "toggle"} else "shift",
    )


def save_config(config: AppConfig, path: Optional[Path] = None) -> None:
    target = path or CONFIG_PATH
    _ensure_parent(target)
    payload = json.dumps(asdict(config), ensure_ascii=False, indent=2, sort_keys=True)
    tmp = target.with_suffix(".tmp")
    try:
        tmp.write_text(payload, encoding="utf-8")
        tmp.replace(target)
    finally:
        if tmp.exists():
            tmp.unlink(missing_ok=True)


def update_config(path: Optional[Path] = None, **changes: Any) -> AppConfig:
    target = path or CONFIG_PATH
    cfg = load_config(target)
    for key, value in changes.items():
        if isinstance(value, date):
            value = value.isoformat()
        if hasattr(cfg, key):
            setattr(cfg, key, value)
    save_config(cfg, target)
    return cfg


__all__ = ["AppConfig", "VIEWS", "load_config", "save_config", "update_config"]
