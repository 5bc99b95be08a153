# tests/helpers.py

from __future__ import annotations

from pathlib import Path

from neuropilot.storage.sqlite import connect
from neuropilot.timeutil import duration_ms, parse_iso, to_iso


def insert_raw_activity(db_path: Path, action_class_id: int, start: str, end: str | None) -> int:
    """Write an Activity row directly, bypassing normalization."""
    start_dt = parse_iso(start)
    end_dt = parse_iso(end) if end else None
    conn = connect(db_path)
    try:
        cur = conn.execute(
            """
            INSERT INTO Activity (action_class_id, start_time, end_time, description, duration_ms)
            VALUES (?, ?, ?, '', ?)
            """,
            (action_class_id, to_iso(start_dt), to_iso(end_dt) if end_dt else None, duration_ms(start_dt, end_dt)),
        )
        conn.commit()
        assert cur.lastrowid is not None
        return int(cur.lastrowid)
    finally:
        conn.close()


def execute(db_path: Path, sql: str, params: tuple = ()) -> None:
    conn = connect(db_path)
    try:
        conn.execute(sql, params)
        conn.commit()
    finally:
        conn.close()
