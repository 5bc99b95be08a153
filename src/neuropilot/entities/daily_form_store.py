# src/neuropilot/entities/daily_form_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any

from ..core.ports import DAILY_FORM_UPDATED
from ..errors import ValidationError
from ..storage.sqlite import SQLiteStore
from ..timeutil import parse_date, parse_time_of_day, to_iso, utc_now

logger = logging.getLogger(__name__)

MOOD_MIN = 1
MOOD_MAX = 10


@dataclass(slots=True)
class DailyForm:
    form_date: str
    mood: int | None
    thoughts: str
    highlights: str
    gratitude: str
    poop_time: str | None = None
    poop_quality: int | None = None
    additional_fields: dict[str, Any] = field(default_factory=dict)
    updated_at: str = ""


def _fields_to_str(fields: dict[str, Any] | None) -> str:
    if not fields:
        return "{}"
    try:
        return json.dumps(fields, ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise ValidationError("additional_fields", f"not JSON-serializable: {exc}") from exc


def _str_to_fields(s: str | None) -> dict[str, Any]:
    if not s:
        return {}
    with contextlib.suppress(ValueError):
        val = json.loads(s)
        if isinstance(val, dict):
            return val
    return {}


def _row_to_form(row: sqlite3.Row) -> DailyForm:
    return DailyForm(
        form_date=str(row["form_date"]),
        mood=int(row["mood"]) if row["mood"] is not None else None,
        thoughts=str(row["thoughts"] or ""),
        highlights=str(row["highlights"] or ""),
        gratitude=str(row["gratitude"] or ""),
        poop_time=row["poop_time"] or None,
        poop_quality=int(row["poop_quality"]) if row["poop_quality"] is not None else None,
        additional_fields=_str_to_fields(row["additional_fields"]),
        updated_at=str(row["updated_at"] or ""),
    )


class DailyFormStore(SQLiteStore):
    """Journal entries, one per calendar date (upsert keyed on form_date)."""

    def __init__(self, db_path: str | Path, *, events=None) -> None:
        super().__init__(db_path, events=events)

    def upsert(
        self,
        form_date: str | date,
        *,
        mood: int | None = None,
        thoughts: str = "",
        highlights: str = "",
        gratitude: str = "",
        poop_time: str | None = None,
        poop_quality: int | None = None,
        additional_fields: dict[str, Any] | None = None,
    ) -> str:
        d = parse_date(form_date, field="form_date").isoformat()
        if mood is not None:
            try:
                mood = int(mood)
            except (TypeError, ValueError):
                raise ValidationError("mood", f"mood must be an integer, got {mood!r}") from None
            if not MOOD_MIN <= mood <= MOOD_MAX:
                raise ValidationError("mood", f"mood must be {MOOD_MIN}..{MOOD_MAX}, got {mood}")
        if poop_time:
            poop_time = parse_time_of_day(poop_time, field="poop_time").strftime("%H:%M")
        else:
            poop_time = None
        if poop_quality is not None:
            try:
                poop_quality = int(poop_quality)
            except (TypeError, ValueError):
                raise ValidationError(
                    "poop_quality", f"poop_quality must be an integer, got {poop_quality!r}"
                ) from None

        extra = _fields_to_str(additional_fields)

        with self._tx() as conn:
            conn.execute(
                """
                INSERT INTO DailyForm (
                    form_date, mood, thoughts, highlights, gratitude,
                    poop_time, poop_quality, additional_fields, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(form_date) DO UPDATE SET
                    mood = excluded.mood,
                    thoughts = excluded.thoughts,
                    highlights = excluded.highlights,
                    gratitude = excluded.gratitude,
                    poop_time = excluded.poop_time,
                    poop_quality = excluded.poop_quality,
                    additional_fields = excluded.additional_fields,
                    updated_at = excluded.updated_at
                """,
                (
                    d,
                    mood,
                    thoughts or "",
                    highlights or "",
                    gratitude or "",
                    poop_time,
                    poop_quality,
                    extra,
                    to_iso(utc_now()),
                ),
            )

        logger.debug("DailyForm upserted date=%s", d)
        self._emit(DAILY_FORM_UPDATED)
        return d

    def get(self, form_date: str | date) -> DailyForm | None:
        d = parse_date(form_date, field="form_date").isoformat()
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM DailyForm WHERE form_date = ? LIMIT 1", (d,)).fetchone()
            return _row_to_form(row) if row else None
        finally:
            conn.close()

    def list_range(self, start_date: str | date, end_date: str | date) -> list[DailyForm]:
        """Forms with start_date <= form_date <= end_date, newest first."""
        start = parse_date(start_date, field="start_date").isoformat()
        end = parse_date(end_date, field="end_date").isoformat()
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM DailyForm WHERE form_date BETWEEN ? AND ? ORDER BY form_date DESC",
                (start, end),
            ).fetchall()
            return [_row_to_form(r) for r in rows]
        finally:
            conn.close()
