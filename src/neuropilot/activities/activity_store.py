# src/neuropilot/activities/activity_store.py

from __future__ import annotations

import logging
import sqlite3
from datetime import date, datetime
from pathlib import Path
from typing import Any

from ..core.ports import ACTIVITY_UPDATED
from ..errors import NotFoundError, ValidationError
from ..storage.sqlite import SQLiteStore
from ..timeutil import DAY, duration_ms, ensure_utc, parse_date, parse_iso, start_of_day, to_iso, utc_now
from .activity_models import Activity
from .interval_normalizer import DEFAULT_THRESHOLD_SECONDS, IntervalNormalizer

logger = logging.getLogger(__name__)

_UNSET: Any = object()

_SELECT_WITH_CLASS = """
    SELECT a.*, c.name AS action_class_name
    FROM Activity a
    JOIN ActionClass c ON a.action_class_id = c.action_class_id
"""


class ActivityStore(SQLiteStore):
    """
    Activity timer + manual timeline edits.

    "Current activity" is always the live query end_time IS NULL; nothing
    here caches it. Every write that moves start/end runs the normalizer
    before returning.
    """

    def __init__(
        self,
        db_path: str | Path,
        *,
        normalizer: IntervalNormalizer | None = None,
        threshold_seconds: float = DEFAULT_THRESHOLD_SECONDS,
        events=None,
    ) -> None:
        super().__init__(db_path, events=events)
        self._normalizer = normalizer or IntervalNormalizer(
            db_path, threshold_seconds=threshold_seconds, events=events
        )

    @property
    def normalizer(self) -> IntervalNormalizer:
        return self._normalizer

    # ---- low-level helpers ----

    @staticmethod
    def _require_class(conn: sqlite3.Connection, action_class_id: int) -> None:
        row = conn.execute(
            "SELECT 1 FROM ActionClass WHERE action_class_id = ?", (int(action_class_id),)
        ).fetchone()
        if row is None:
            raise ValidationError("action_class_id", f"unknown action class {action_class_id}")

    @staticmethod
    def _close_open(conn: sqlite3.Connection, now: datetime) -> list[int]:
        """Close every running row at `now` (there should be at most one)."""
        closed: list[int] = []
        rows = conn.execute("SELECT activity_id, start_time FROM Activity WHERE end_time IS NULL").fetchall()
        for r in rows:
            start = parse_iso(r["start_time"])
            if now < start:
                raise ValidationError(
                    "now", f"{to_iso(now)} is before the running activity's start {to_iso(start)}"
                )
            conn.execute(
                "UPDATE Activity SET end_time = ?, duration_ms = ? WHERE activity_id = ?",
                (to_iso(now), duration_ms(start, now), int(r["activity_id"])),
            )
            closed.append(int(r["activity_id"]))
        if len(closed) > 1:
            logger.warning("Found %d running activities; closed all of them", len(closed))
        return closed

    def _normalize_all(self, ids: list[int]) -> list[int]:
        survivors: list[int] = []
        for activity_id in ids:
            for sid in self._normalizer.normalize(activity_id):
                if sid not in survivors:
                    survivors.append(sid)
        return survivors

    # ---- timer ----

    def start_activity(
        self,
        action_class_id: int,
        description: str = "",
        *,
        now: datetime | None = None,
    ) -> int:
        """Start a new running activity, auto-stopping the previous one."""
        now_dt = ensure_utc(now) if now is not None else utc_now()

        with self._tx() as conn:
            self._require_class(conn, action_class_id)
            closed = self._close_open(conn, now_dt)
            cur = conn.execute(
                "INSERT INTO Activity (action_class_id, start_time, description) VALUES (?, ?, ?)",
                (int(action_class_id), to_iso(now_dt), (description or "").strip()),
            )
            if cur.lastrowid is None:
                raise RuntimeError("SQLite did not return lastrowid for Activity insert")
            activity_id = int(cur.lastrowid)

        self._normalize_all([*closed, activity_id])
        logger.info(
            "Activity started id=%s class=%s closed=%s", activity_id, action_class_id, closed
        )
        self._emit(ACTIVITY_UPDATED)
        return activity_id

    def stop_current_activity(self, *, now: datetime | None = None) -> int:
        """Stop the running activity. Returns how many rows were closed."""
        now_dt = ensure_utc(now) if now is not None else utc_now()

        with self._tx() as conn:
            closed = self._close_open(conn, now_dt)

        if not closed:
            return 0
        self._normalize_all(closed)
        logger.info("Activity stopped ids=%s at=%s", closed, to_iso(now_dt))
        self._emit(ACTIVITY_UPDATED)
        return len(closed)

    def get_current_activity(self) -> Activity | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                _SELECT_WITH_CLASS + " WHERE a.end_time IS NULL ORDER BY a.start_time DESC LIMIT 1"
            ).fetchone()
            return Activity.from_row(row) if row else None
        finally:
            conn.close()

    # ---- manual timeline edits ----

    def create_manual(
        self,
        action_class_id: int,
        start_time: str | datetime,
        end_time: str | datetime,
        description: str = "",
    ) -> list[int]:
        """
        Insert a finished activity and repair the timeline around it.

        Returns the ids of the rows carrying the new interval (several when it
        crossed midnight).
        """
        start = parse_iso(start_time, field="start_time")
        end = parse_iso(end_time, field="end_time")
        if end < start:
            raise ValidationError("end_time", "end_time must not be before start_time")

        with self._tx() as conn:
            self._require_class(conn, action_class_id)
            cur = conn.execute(
                """
                INSERT INTO Activity (action_class_id, start_time, end_time, description, duration_ms)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    int(action_class_id),
                    to_iso(start),
                    to_iso(end),
                    (description or "").strip(),
                    duration_ms(start, end),
                ),
            )
            if cur.lastrowid is None:
                raise RuntimeError("SQLite did not return lastrowid for Activity insert")
            activity_id = int(cur.lastrowid)

        ids = self._normalize_all([activity_id])
        logger.debug("Manual activity id=%s stored as %s", activity_id, ids)
        self._emit(ACTIVITY_UPDATED)
        return ids

    def update_activity(
        self,
        activity_id: int,
        *,
        action_class_id: Any = _UNSET,
        start_time: Any = _UNSET,
        end_time: Any = _UNSET,
        description: Any = _UNSET,
    ) -> list[int]:
        current = self.get_activity(activity_id)
        if current is None:
            raise NotFoundError("Activity", activity_id)

        start = current.start_time if start_time is _UNSET else parse_iso(start_time, field="start_time")
        if end_time is _UNSET:
            end = current.end_time
        elif end_time is None:
            if not current.running:
                raise ValidationError("end_time", "cannot reopen a finished activity")
            end = None
        else:
            end = parse_iso(end_time, field="end_time")
        if end is not None and end < start:
            raise ValidationError("end_time", "end_time must not be before start_time")

        fields: list[str] = ["start_time = ?", "end_time = ?", "duration_ms = ?"]
        params: list[Any] = [to_iso(start), to_iso(end) if end else None, duration_ms(start, end)]
        if action_class_id is not _UNSET:
            fields.append("action_class_id = ?")
            params.append(int(action_class_id))
        if description is not _UNSET:
            fields.append("description = ?")
            params.append((description or "").strip())
        params.append(int(activity_id))

        with self._tx() as conn:
            if action_class_id is not _UNSET:
                self._require_class(conn, action_class_id)
            conn.execute(f"UPDATE Activity SET {', '.join(fields)} WHERE activity_id = ?", params)

        times_touched = start_time is not _UNSET or end_time is not _UNSET
        ids = self._normalize_all([int(activity_id)]) if times_touched else [int(activity_id)]
        self._emit(ACTIVITY_UPDATED)
        return ids

    def delete_activity(self, activity_id: int) -> int:
        """Delete one row. The resulting gap is accepted as-is."""
        with self._tx() as conn:
            cur = conn.execute("DELETE FROM Activity WHERE activity_id = ?", (int(activity_id),))
            n = cur.rowcount
        if n:
            self._emit(ACTIVITY_UPDATED)
        return n

    # ---- reads ----

    def get_activity(self, activity_id: int) -> Activity | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                _SELECT_WITH_CLASS + " WHERE a.activity_id = ?", (int(activity_id),)
            ).fetchone()
            return Activity.from_row(row) if row else None
        finally:
            conn.close()

    def list_between(self, start: str | datetime, end: str | datetime) -> list[Activity]:
        """Activities intersecting [start, end), running ones included."""
        start_dt = parse_iso(start, field="start")
        end_dt = parse_iso(end, field="end")
        conn = self._get_conn()
        try:
            rows = conn.execute(
                _SELECT_WITH_CLASS
                + """
                WHERE a.start_time < ?
                  AND (a.end_time IS NULL OR a.end_time > ?)
                ORDER BY a.start_time ASC, a.activity_id ASC
                """,
                (to_iso(end_dt), to_iso(start_dt)),
            ).fetchall()
            return [Activity.from_row(r) for r in rows]
        finally:
            conn.close()

    def list_for_date(self, day: str | date) -> list[Activity]:
        d = parse_date(day)
        start = start_of_day(datetime(d.year, d.month, d.day))
        return self.list_between(start, start + DAY)

    def count_activities(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM Activity").fetchone()
            return int(n)
        finally:
            conn.close()
