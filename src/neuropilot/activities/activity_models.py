# src/neuropilot/activities/activity_models.py

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime

from ..timeutil import parse_iso


@dataclass(slots=True)
class Activity:
    id: int
    action_class_id: int
    start_time: datetime
    end_time: datetime | None
    description: str
    duration_ms: int | None

    action_class_name: str | None = None

    @property
    def running(self) -> bool:
        return self.end_time is None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Activity:
        keys = row.keys()
        return cls(
            id=int(row["activity_id"]),
            action_class_id=int(row["action_class_id"]),
            start_time=parse_iso(row["start_time"]),
            end_time=parse_iso(row["end_time"]) if row["end_time"] else None,
            description=str(row["description"] or ""),
            duration_ms=int(row["duration_ms"]) if row["duration_ms"] is not None else None,
            action_class_name=row["action_class_name"] if "action_class_name" in keys else None,
        )
