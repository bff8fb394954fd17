"""Daily SQLite snapshots of the Timebox database."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from pathlib import Path
from shutil import copy2
from typing import List

logger = logging.getLogger(__name__)


def _parse_backup_date(path: Path, prefix: str) -> datetime | None:
    stem = path.stem
    if not stem.startswith(prefix):
        return None
    try:
        return datetime.strptime(stem[len(prefix) :], "%Y-%m-%d")
    except ValueError:
        return None


def list_backups(db_path: str | Path, backup_dir: str | Path) -> List[Path]:
    """Existing snapshots for ``db_path``, oldest first."""

    db_file = Path(db_path)
    backups = Path(backup_dir)
    if not backups.exists():
        return []
    prefix = f"{db_file.stem}_"
    dated = []
    for file in backups.glob(f"{prefix}*{db_file.suffix}"):
        stamp = _parse_backup_date(file, prefix)
        if stamp is not None:
            dated.append((stamp, file))
    return [file for _, file in sorted(dated)]


def ensure_daily_backup(
    db_path: str | Path,
    backup_dir: str | Path,
    *,
    keep_days: int = 7,
) -> Path | None:
    """Copy the database once per day and drop snapshots older than ``keep_days``."""

    db_file = Path(db_path)
    if not db_file.exists():
        return None

    backups = Path(backup_dir)
    backups.mkdir(parents=True, exist_ok=True)

    today = datetime.now().date()
    prefix = f"{db_file.stem}_"
    destination = backups / f"{prefix}{today.isoformat()}{db_file.suffix}"

    created_path: Path | None = None
    if not destination.exists():
        copy2(db_file, destination)
        created_path = destination
        logger.info("database snapshot written to %s", destination)

    if keep_days > 0:
        cutoff = today - timedelta(days=keep_days - 1)
        for file in list_backups(db_file, backups):
            stamp = _parse_backup_date(file, prefix)
            if stamp and stamp.date() < cutoff:
                try:
                    file.unlink()
                except OSError as exc:
                    logger.warning("could not remove old snapshot %s: %s", file, exc)

    return created_path


__all__ = ["ensure_daily_backup", "list_backups"]
