# src/neuropilot/tasks/recurrence.py

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, date, datetime, timedelta
from pathlib import Path

from ..core.ports import TASKS_UPDATED, Notifier
from ..errors import ValidationError
from ..storage.sqlite import SQLiteStore
from ..timeutil import parse_time_of_day, to_iso, utc_now, weekday_number
from .task_models import PatternType, RecurringTemplate, TaskStatus
from .task_store import next_sort_order

logger = logging.getLogger(__name__)


def _date_range(start: date, end: date) -> Iterable[date]:
    d = start
    while d <= end:
        yield d
        d += timedelta(days=1)


def dates_matching(
    pattern_type: PatternType | str,
    window_start: date,
    window_end: date,
    *,
    pattern_days: Iterable[int] | None = None,
    every_other_seed: date | None = None,
) -> list[date]:
    """
    Dates in [window_start, window_end] (inclusive) matching a recurrence pattern.

    - daily: every date
    - weekdays: weekday number (0=Sunday..6=Saturday) in pattern_days
    - every_other_day: days since the seed is a non-negative even number
    """
    pt = PatternType.parse(pattern_type)
    if window_end < window_start:
        return []

    if pt == PatternType.DAILY:
        return list(_date_range(window_start, window_end))

    if pt == PatternType.WEEKDAYS:
        days = set(pattern_days or ())
        return [d for d in _date_range(window_start, window_end) if weekday_number(d) in days]

    if every_other_seed is None:
        raise ValidationError("every_other_seed", "required for every_other_day pattern")
    out: list[date] = []
    for d in _date_range(window_start, window_end):
        delta = (d - every_other_seed).days
        if delta >= 0 and delta % 2 == 0:
            out.append(d)
    return out


def template_dates(template: RecurringTemplate, window_start: date, window_end: date) -> list[date]:
    return dates_matching(
        template.pattern_type,
        window_start,
        window_end,
        pattern_days=template.pattern_days,
        every_other_seed=template.every_other_seed,
    )


class RecurrenceGenerator(SQLiteStore):
    """
    Expands active RecurringTemplates into Task rows for a rolling window.

    Idempotent: the (template_id, due_date) existence check decides whether an
    instance is inserted, so re-running a window adds nothing.
    """

    def __init__(self, db_path: str | Path, *, notifier: Notifier | None = None, events=None) -> None:
        super().__init__(db_path, events=events)
        self._notifier = notifier

    def _active_templates(self) -> list[RecurringTemplate]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM RecurringTemplate WHERE active = 1 ORDER BY template_id ASC"
            ).fetchall()
        finally:
            conn.close()

        out: list[RecurringTemplate] = []
        for r in rows:
            try:
                out.append(RecurringTemplate.from_row(r))
            except (ValueError, ValidationError):
                logger.exception("Skipping malformed recurring template id=%s", r["template_id"])
        return out

    def _schedule_reminders(self, created: list[tuple[int, RecurringTemplate, date]]) -> None:
        if self._notifier is None:
            return
        now = utc_now()
        for task_id, tpl, day in created:
            if not tpl.due_time:
                continue
            fire_at = datetime.combine(day, parse_time_of_day(tpl.due_time), tzinfo=UTC)
            if fire_at <= now:
                continue
            try:
                reminder_id = self._notifier.schedule_reminder(
                    task_id, tpl.name, tpl.description or "Recurring task due", fire_at
                )
            except Exception:
                logger.exception("schedule_reminder failed task_id=%s template_id=%s", task_id, tpl.id)
                continue
            with self._tx() as conn:
                conn.execute(
                    "UPDATE Task SET reminder_notification_id = ? WHERE task_id = ?",
                    (str(reminder_id), task_id),
                )

    def generate_instances(self, days_ahead: int, *, today: date | None = None) -> int:
        """
        Create missing task instances for [today, today + days_ahead].

        Returns the number of Task rows inserted.
        """
        if days_ahead < 0:
            raise ValidationError("days_ahead", "must be >= 0")

        start = today or utc_now().date()
        end = start + timedelta(days=int(days_ahead))
        templates = self._active_templates()
        if not templates:
            return 0

        created: list[tuple[int, RecurringTemplate, date]] = []
        now_iso = to_iso(utc_now())

        with self._tx() as conn:
            for tpl in templates:
                for day in template_dates(tpl, start, end):
                    day_s = day.isoformat()
                    exists = conn.execute(
                        "SELECT 1 FROM Task WHERE template_id = ? AND due_date = ? LIMIT 1",
                        (tpl.id, day_s),
                    ).fetchone()
                    if exists:
                        continue
                    cur = conn.execute(
                        """
                        INSERT INTO Task(
                            name, description, status, completed, priority, action_class_id,
                            template_id, is_generated, source_generation_date,
                            due_date, due_time, sort_order, created_at, updated_at
                        )
                        VALUES (?, ?, ?, 0, ?, ?, ?, 1, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            tpl.name,
                            tpl.description,
                            TaskStatus.TODO.value,
                            tpl.priority,
                            tpl.action_class_id,
                            tpl.id,
                            day_s,
                            day_s,
                            tpl.due_time,
                            next_sort_order(conn, TaskStatus.TODO),
                            now_iso,
                            now_iso,
                        ),
                    )
                    if cur.lastrowid is None:
                        raise RuntimeError("SQLite did not return lastrowid for Task insert")
                    created.append((int(cur.lastrowid), tpl, day))

        if created:
            logger.info(
                "Generated %d recurring task(s) for %s..%s from %d template(s)",
                len(created),
                start,
                end,
                len(templates),
            )
            self._schedule_reminders(created)
            self._emit(TASKS_UPDATED)
        return len(created)
