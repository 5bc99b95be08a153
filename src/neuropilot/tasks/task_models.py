# src/neuropilot/tasks/task_models.py

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import date
from enum import IntEnum, StrEnum

from ..errors import ValidationError


class TaskStatus(StrEnum):
    """Kanban column."""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.TODO
        if raw == "ongoing":
            # Older builds wrote "ongoing" for the in-progress column.
            return cls.IN_PROGRESS
        try:
            return cls(raw)
        except ValueError:
            return cls.TODO

    @classmethod
    def parse(cls, raw: str | TaskStatus) -> TaskStatus:
        try:
            return cls(raw)
        except ValueError:
            raise ValidationError("status", f"invalid status {raw!r}") from None


class Priority(IntEnum):
    HIGH = 1
    MEDIUM = 2
    NORMAL = 3
    LATER = 4

    @classmethod
    def parse(cls, raw: int | Priority) -> Priority:
        try:
            return cls(int(raw))
        except (TypeError, ValueError):
            raise ValidationError("priority", f"priority must be 1..4, got {raw!r}") from None


class PatternType(StrEnum):
    DAILY = "daily"
    EVERY_OTHER_DAY = "every_other_day"
    WEEKDAYS = "weekdays"

    @classmethod
    def parse(cls, raw: str | PatternType) -> PatternType:
        try:
            return cls(raw)
        except ValueError:
            raise ValidationError("pattern_type", f"invalid pattern type {raw!r}") from None


@dataclass(slots=True)
class Task:
    id: int
    name: str
    description: str
    status: TaskStatus
    completed: bool
    priority: int
    action_class_id: int | None
    template_id: int | None
    is_generated: bool
    source_generation_date: str | None
    start_date: str | None
    start_time: str | None
    due_date: str | None
    due_time: str | None
    sort_order: int
    reminder_notification_id: str | None
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Task:
        return cls(
            id=int(row["task_id"]),
            name=str(row["name"] or ""),
            description=str(row["description"] or ""),
            status=TaskStatus.from_db(row["status"]),
            completed=bool(row["completed"]),
            priority=int(row["priority"] or Priority.NORMAL),
            action_class_id=row["action_class_id"],
            template_id=row["template_id"],
            is_generated=bool(row["is_generated"]),
            source_generation_date=row["source_generation_date"],
            start_date=row["start_date"],
            start_time=row["start_time"],
            due_date=row["due_date"],
            due_time=row["due_time"],
            sort_order=int(row["sort_order"] or 0),
            reminder_notification_id=row["reminder_notification_id"],
            created_at=str(row["created_at"] or ""),
            updated_at=str(row["updated_at"] or ""),
        )


@dataclass(slots=True)
class RecurringTemplate:
    id: int
    name: str
    description: str
    pattern_type: PatternType
    pattern_days: frozenset[int]
    every_other_seed: date | None
    active: bool
    priority: int
    action_class_id: int | None
    due_time: str | None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> RecurringTemplate:
        seed = row["every_other_seed"]
        return cls(
            id=int(row["template_id"]),
            name=str(row["name"] or ""),
            description=str(row["description"] or ""),
            pattern_type=PatternType(row["pattern_type"]),
            pattern_days=parse_pattern_days(row["pattern_days"] or "") if row["pattern_days"] else frozenset(),
            every_other_seed=date.fromisoformat(seed) if seed else None,
            active=bool(row["active"]),
            priority=int(row["priority"] or Priority.NORMAL),
            action_class_id=row["action_class_id"],
            due_time=row["due_time"],
        )


def parse_pattern_days(raw: str | list[int] | tuple[int, ...] | set[int] | frozenset[int]) -> frozenset[int]:
    """
    Accept "1,2,3" or an iterable of ints; every day must be 0..6 (0=Sunday).
    """
    if isinstance(raw, str):
        parts = [p.strip() for p in raw.split(",") if p.strip()]
    else:
        parts = list(raw)

    days: set[int] = set()
    for p in parts:
        try:
            d = int(p)
        except (TypeError, ValueError):
            raise ValidationError("pattern_days", f"not a weekday number: {p!r}") from None
        if d < 0 or d > 6:
            raise ValidationError("pattern_days", f"weekday must be 0..6, got {d}")
        days.add(d)
    return frozenset(days)


def format_pattern_days(days: frozenset[int] | set[int]) -> str:
    return ",".join(str(d) for d in sorted(days))
