"""Ad-hoc database migrations for Timebox."""

from __future__ import annotations

from sqlalchemy import text


def _column_exists(conn, table: str, column: str) -> bool:
    result = conn.execute(text(f"PRAGMA table_info('{table}')"))
    return any(row[1] == column for row in result)


def ensure_task_columns(conn) -> None:
    columns = {
        "estimated_minutes": "INTEGER",
        "scheduled_time": "INTEGER NOT NULL DEFAULT 0",
        "completed_at": "DATETIME",
        "deleted_at": "DATETIME",
    }
    for name, ddl_type in columns.items():
        if not _column_exists(conn, "tasks", name):
            conn.execute(text(f"ALTER TABLE tasks ADD COLUMN {name} {ddl_type}"))


def ensure_segment_columns(conn) -> None:
    columns = {
        "title_is_custom": "BOOLEAN NOT NULL DEFAULT 0",
        "notes": "TEXT",
        "source": "VARCHAR NOT NULL DEFAULT 'app'",
        "google_calendar_event_id": "VARCHAR",
        "deleted_at": "DATETIME",
    }
    for name, ddl_type in columns.items():
        if not _column_exists(conn, "time_segments", name):
            conn.execute(text(f"ALTER TABLE time_segments ADD COLUMN {name} {ddl_type}"))


def ensure_indexes(conn) -> None:
    conn.execute(
        text(
            """
            CREATE INDEX IF NOT EXISTS ix_time_segments_task_date
            ON time_segments (task_id, date)
            """
        )
    )
    conn.execute(
        text(
            """
            CREATE INDEX IF NOT EXISTS ix_time_segments_user_date
            ON time_segments (user_id, date)
            """
        )
    )
    conn.execute(
        text(
            """
            CREATE INDEX IF NOT EXISTS ix_tasks_parent_order
            ON tasks (parent_task_id, "order")
            """
        )
    )


def backfill_segment_dates(conn) -> None:
    # rows written before ``date``/``duration`` were derived on every write
    conn.execute(
        text(
            """
            UPDATE time_segments
            SET date = date(start_time),
                duration = CAST(ROUND((julianday(end_time) - julianday(start_time)) * 1440) AS INTEGER)
            WHERE date IS NULL OR date <> date(start_time) OR duration IS NULL
            """
        )
    )


def run_all(engine) -> None:
    with engine.begin() as conn:
        ensure_task_columns(conn)
        ensure_segment_columns(conn)
        backfill_segment_dates(conn)
        ensure_indexes(conn)


__all__ = ["run_all"]
