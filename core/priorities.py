"""Utility helpers for task priorities and statuses."""
from __future__ import annotations

from typing import Dict

# Ordered from most to least pressing; the rank drives sorting in the board.
PRIORITY_META: Dict[str, Dict[str, str]] = {
    "urgent": {
        "label": "Urgent",
        "color": "#DC2626",    # red-600
        "bgcolor": "#FEE2E2",  # red-100
    },
    "high": {
        "label": "High",
        "color": "#EA580C",    # orange-600
        "bgcolor": "#FFEDD5",  # orange-100
    },
    "medium": {
        "label": "Medium",
        "color": "#0891B2",    # cyan-600
        "bgcolor": "#CFFAFE",  # cyan-100
    },
    "low": {
        "label": "Low",
        "color": "#64748B",    # slate-500
        "bgcolor": "#E2E8F0",  # slate-200
    },
}

DEFAULT_PRIORITY = "medium"

TASK_STATUSES = ("todo", "in_progress", "completed")
SEGMENT_STATUSES = ("planned", "in-progress", "completed")
SEGMENT_SOURCES = ("app", "task", "google")


def normalize_priority(value: str | None) -> str:
    """Fold external values onto the supported priority names."""
    if value is None:
        return DEFAULT_PRIORITY
    key = str(value).strip().lower()
    return key if key in PRIORITY_META else DEFAULT_PRIORITY


def priority_rank(value: str) -> int:
    keys = list(PRIORITY_META.keys())
    return keys.index(normalize_priority(value))


def priority_label(value: str) -> str:
    return PRIORITY_META[normalize_priority(value)]["label"]


def priority_color(value: str) -> str:
    return PRIORITY_META[normalize_priority(value)]["color"]


def priority_bgcolor(value: str) -> str:
    return PRIORITY_META[normalize_priority(value)]["bgcolor"]


def priority_options() -> Dict[str, str]:
    """Return mapping of dropdown values -> labels."""
    return {key: meta["label"] for key, meta in PRIORITY_META.items()}
