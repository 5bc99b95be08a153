# src/neuropilot/tasks/template_store.py

from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Any

from ..core.ports import TASKS_UPDATED
from ..errors import NotFoundError, ValidationError
from ..storage.sqlite import SQLiteStore
from ..timeutil import parse_date, parse_time_of_day, to_iso, utc_now
from .task_models import (
    PatternType,
    Priority,
    RecurringTemplate,
    format_pattern_days,
    parse_pattern_days,
)

logger = logging.getLogger(__name__)

_UNSET: Any = object()


def validate_pattern(
    pattern_type: PatternType | str,
    pattern_days: Any = None,
    every_other_seed: Any = None,
) -> tuple[PatternType, str | None, str | None]:
    """
    Check the pattern fields as a whole and return their stored form.

    weekdays needs a non-empty pattern_days; every_other_day needs a seed date.
    Fields that the pattern does not use are dropped.
    """
    pt = PatternType.parse(pattern_type)

    if pt == PatternType.WEEKDAYS:
        if pattern_days is None or pattern_days == "":
            raise ValidationError("pattern_days", "required for weekdays pattern")
        days = parse_pattern_days(pattern_days)
        if not days:
            raise ValidationError("pattern_days", "required for weekdays pattern")
        return pt, format_pattern_days(days), None

    if pt == PatternType.EVERY_OTHER_DAY:
        if every_other_seed is None or every_other_seed == "":
            raise ValidationError("every_other_seed", "required for every_other_day pattern")
        seed: date = parse_date(every_other_seed, field="every_other_seed")
        return pt, None, seed.isoformat()

    return pt, None, None


class TemplateStore(SQLiteStore):
    """
    RecurringTemplate CRUD.

    Deactivation is a soft delete: generated Task rows stay untouched, the
    template simply stops being picked by the generator.
    """

    def __init__(self, db_path: str | Path, *, events=None) -> None:
        super().__init__(db_path, events=events)

    def create_template(
        self,
        *,
        name: str,
        pattern_type: PatternType | str,
        description: str = "",
        pattern_days: Any = None,
        every_other_seed: Any = None,
        priority: int = Priority.NORMAL,
        action_class_id: int | None = None,
        due_time: Any = None,
    ) -> int:
        if not name or not name.strip():
            raise ValidationError("name", "template name is required")
        pt, days, seed = validate_pattern(pattern_type, pattern_days, every_other_seed)
        pri = Priority.parse(priority)
        due = parse_time_of_day(due_time, field="due_time").strftime("%H:%M") if due_time else None
        now = to_iso(utc_now())

        with self._tx() as conn:
            cur = conn.execute(
                """
                INSERT INTO RecurringTemplate(
                    name, description, pattern_type, pattern_days, every_other_seed,
                    active, priority, action_class_id, due_time, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, 1, ?, ?, ?, ?, ?)
                """,
                (name.strip(), description or "", pt.value, days, seed, int(pri), action_class_id, due, now, now),
            )
            if cur.lastrowid is None:
                raise RuntimeError("SQLite did not return lastrowid for RecurringTemplate insert")
            template_id = int(cur.lastrowid)

        logger.info("Recurring template created id=%s pattern=%s", template_id, pt.value)
        return template_id

    def get_template(self, template_id: int) -> RecurringTemplate | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM RecurringTemplate WHERE template_id = ?", (int(template_id),)
            ).fetchone()
            return RecurringTemplate.from_row(row) if row else None
        finally:
            conn.close()

    def list_templates(self, *, active_only: bool = False) -> list[RecurringTemplate]:
        sql = "SELECT * FROM RecurringTemplate"
        if active_only:
            sql += " WHERE active = 1"
        sql += " ORDER BY template_id ASC"
        conn = self._get_conn()
        try:
            return [RecurringTemplate.from_row(r) for r in conn.execute(sql).fetchall()]
        finally:
            conn.close()

    def update_template(
        self,
        template_id: int,
        *,
        name: Any = _UNSET,
        description: Any = _UNSET,
        pattern_type: Any = _UNSET,
        pattern_days: Any = _UNSET,
        every_other_seed: Any = _UNSET,
        priority: Any = _UNSET,
        action_class_id: Any = _UNSET,
        due_time: Any = _UNSET,
    ) -> int:
        current = self.get_template(template_id)
        if current is None:
            raise NotFoundError("RecurringTemplate", template_id)

        fields: list[str] = []
        params: list[Any] = []

        if name is not _UNSET:
            if not name or not str(name).strip():
                raise ValidationError("name", "template name is required")
            fields.append("name = ?")
            params.append(str(name).strip())
        if description is not _UNSET:
            fields.append("description = ?")
            params.append(description or "")
        if priority is not _UNSET:
            fields.append("priority = ?")
            params.append(int(Priority.parse(priority)))
        if action_class_id is not _UNSET:
            fields.append("action_class_id = ?")
            params.append(action_class_id)
        if due_time is not _UNSET:
            fields.append("due_time = ?")
            params.append(parse_time_of_day(due_time, field="due_time").strftime("%H:%M") if due_time else None)

        if any(v is not _UNSET for v in (pattern_type, pattern_days, every_other_seed)):
            # Pattern fields are replaced as a unit, falling back to the stored ones.
            pt, days, seed = validate_pattern(
                current.pattern_type if pattern_type is _UNSET else pattern_type,
                (format_pattern_days(current.pattern_days) if pattern_days is _UNSET else pattern_days),
                (current.every_other_seed if every_other_seed is _UNSET else every_other_seed),
            )
            fields += ["pattern_type = ?", "pattern_days = ?", "every_other_seed = ?"]
            params += [pt.value, days, seed]

        if not fields:
            return 0

        fields.append("updated_at = ?")
        params.append(to_iso(utc_now()))
        params.append(int(template_id))

        with self._tx() as conn:
            n = conn.execute(
                f"UPDATE RecurringTemplate SET {', '.join(fields)} WHERE template_id = ?", params
            ).rowcount
        return n

    def deactivate_template(self, template_id: int) -> int:
        with self._tx() as conn:
            n = conn.execute(
                "UPDATE RecurringTemplate SET active = 0, updated_at = ? WHERE template_id = ?",
                (to_iso(utc_now()), int(template_id)),
            ).rowcount
        if n:
            logger.info("Recurring template deactivated id=%s", template_id)
            self._emit(TASKS_UPDATED)
        return n
