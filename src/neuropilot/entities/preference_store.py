# src/neuropilot/entities/preference_store.py

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from ..core.ports import PREFERENCES_UPDATED
from ..errors import ValidationError
from ..storage.sqlite import SQLiteStore

logger = logging.getLogger(__name__)


class PreferenceStore(SQLiteStore):
    """Key/value settings. Values are stored JSON-encoded."""

    def __init__(self, db_path: str | Path, *, events=None) -> None:
        super().__init__(db_path, events=events)

    def get(self, key: str, default: Any = None) -> Any:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT pref_value FROM Preference WHERE pref_key = ?", (key,)).fetchone()
        finally:
            conn.close()
        if row is None or row["pref_value"] is None:
            return default
        try:
            return json.loads(row["pref_value"])
        except ValueError:
            logger.warning("Preference %s holds non-JSON value; returning raw string", key)
            return row["pref_value"]

    def set(self, key: str, value: Any) -> None:
        if not key or not key.strip():
            raise ValidationError("key", "preference key is required")
        try:
            encoded = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise ValidationError("value", f"not JSON-serializable: {exc}") from exc

        with self._tx() as conn:
            conn.execute(
                """
                INSERT INTO Preference (pref_key, pref_value) VALUES (?, ?)
                ON CONFLICT(pref_key) DO UPDATE SET pref_value = excluded.pref_value
                """,
                (key.strip(), encoded),
            )
        self._emit(PREFERENCES_UPDATED)

    def all(self) -> dict[str, Any]:
        conn = self._get_conn()
        try:
            rows = conn.execute("SELECT pref_key, pref_value FROM Preference ORDER BY pref_key").fetchall()
        finally:
            conn.close()
        out: dict[str, Any] = {}
        for r in rows:
            try:
                out[r["pref_key"]] = json.loads(r["pref_value"]) if r["pref_value"] is not None else None
            except ValueError:
                out[r["pref_key"]] = r["pref_value"]
        return out
