# src/neuropilot/reports/weekly.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path

from ..storage.sqlite import SQLiteStore
from ..timeutil import ensure_utc, parse_date, parse_iso, to_iso, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ClassTotal:
    action_class_id: int
    name: str
    color: str
    total_duration_ms: int


@dataclass(frozen=True, slots=True)
class TaskStats:
    completed: int
    total: int

    @property
    def completion_rate(self) -> float:
        return self.completed / self.total if self.total else 0.0


@dataclass(frozen=True, slots=True)
class WeeklyReport:
    start: date
    end: date
    activities: list[ClassTotal] = field(default_factory=list)
    tasks: TaskStats = TaskStats(completed=0, total=0)
    mood_average: float | None = None


class WeeklyReportBuilder(SQLiteStore):
    """
    Read-only aggregation over a 7-day window [start, start + 6].

    Only consistent after pending normalization passes committed; callers
    issue it after the write that triggered them returned.
    """

    def __init__(self, db_path: str | Path) -> None:
        super().__init__(db_path)

    def get_weekly_report(self, start_date: str | date, *, now: datetime | None = None) -> WeeklyReport:
        start = parse_date(start_date, field="start_date")
        end = start + timedelta(days=6)
        now_dt = ensure_utc(now) if now is not None else utc_now()
        start_s, end_s = start.isoformat(), end.isoformat()

        conn = self._get_conn()
        try:
            act_rows = conn.execute(
                """
                SELECT c.action_class_id, c.name, c.color, a.start_time, a.duration_ms
                FROM Activity a
                JOIN ActionClass c ON a.action_class_id = c.action_class_id
                WHERE substr(a.start_time, 1, 10) BETWEEN ? AND ?
                """,
                (start_s, end_s),
            ).fetchall()

            task_row = conn.execute(
                """
                SELECT
                    SUM(CASE WHEN status = 'done' THEN 1 ELSE 0 END) AS completed_count,
                    COUNT(*) AS total_with_due
                FROM Task
                WHERE due_date IS NOT NULL AND due_date BETWEEN ? AND ?
                """,
                (start_s, end_s),
            ).fetchone()

            mood_row = conn.execute(
                "SELECT AVG(mood) AS avg_mood FROM DailyForm WHERE mood IS NOT NULL AND form_date BETWEEN ? AND ?",
                (start_s, end_s),
            ).fetchone()
        finally:
            conn.close()

        totals: dict[int, list] = {}
        for r in act_rows:
            if r["duration_ms"] is not None:
                ms = int(r["duration_ms"])
            else:
                # Running: count up to now.
                ms = max(0, int((now_dt - parse_iso(r["start_time"])).total_seconds() * 1000))
            key = int(r["action_class_id"])
            if key not in totals:
                totals[key] = [str(r["name"]), str(r["color"] or ""), 0]
            totals[key][2] += ms

        activities = sorted(
            (
                ClassTotal(action_class_id=k, name=v[0], color=v[1], total_duration_ms=v[2])
                for k, v in totals.items()
            ),
            key=lambda c: (-c.total_duration_ms, c.name),
        )

        report = WeeklyReport(
            start=start,
            end=end,
            activities=activities,
            tasks=TaskStats(
                completed=int(task_row["completed_count"] or 0),
                total=int(task_row["total_with_due"] or 0),
            ),
            mood_average=float(mood_row["avg_mood"]) if mood_row and mood_row["avg_mood"] is not None else None,
        )
        logger.debug("Weekly report %s..%s at %s: %d classes", start_s, end_s, to_iso(now_dt), len(activities))
        return report
