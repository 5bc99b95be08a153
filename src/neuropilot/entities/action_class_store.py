# src/neuropilot/entities/action_class_store.py

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..core.ports import ACTION_CLASSES_UPDATED
from ..errors import NotFoundError, ReferentialConflict, UniquenessConflict, ValidationError
from ..storage.sqlite import SQLiteStore

logger = logging.getLogger(__name__)

DEFAULT_COLOR = "#2196F3"

_UNSET: Any = object()


@dataclass(frozen=True, slots=True)
class ActionClass:
    id: int
    name: str
    color: str
    emoji: str | None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> ActionClass:
        return cls(
            id=int(row["action_class_id"]),
            name=str(row["name"]),
            color=str(row["color"] or DEFAULT_COLOR),
            emoji=row["emoji"],
        )


def _is_unique_violation(exc: sqlite3.IntegrityError) -> bool:
    return "UNIQUE" in str(exc).upper()


class ActionClassStore(SQLiteStore):
    """Categories for activities and tasks. Names are unique."""

    def __init__(self, db_path: str | Path, *, events=None) -> None:
        super().__init__(db_path, events=events)

    def create(self, name: str, color: str = DEFAULT_COLOR, emoji: str | None = None) -> int:
        if not name or not name.strip():
            raise ValidationError("name", "name required")
        clean = name.strip()

        with self._tx() as conn:
            try:
                cur = conn.execute(
                    "INSERT INTO ActionClass (name, color, emoji) VALUES (?, ?, ?)",
                    (clean, color or DEFAULT_COLOR, emoji or None),
                )
            except sqlite3.IntegrityError as exc:
                if _is_unique_violation(exc):
                    raise UniquenessConflict("ActionClass", "name", clean) from exc
                raise
            if cur.lastrowid is None:
                raise RuntimeError("SQLite did not return lastrowid for ActionClass insert")
            class_id = int(cur.lastrowid)

        logger.debug("ActionClass created id=%s name=%s", class_id, clean)
        self._emit(ACTION_CLASSES_UPDATED)
        return class_id

    def get(self, class_id: int) -> ActionClass | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM ActionClass WHERE action_class_id = ?", (int(class_id),)
            ).fetchone()
            return ActionClass.from_row(row) if row else None
        finally:
            conn.close()

    def get_by_name(self, name: str) -> ActionClass | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM ActionClass WHERE name = ?", ((name or "").strip(),)).fetchone()
            return ActionClass.from_row(row) if row else None
        finally:
            conn.close()

    def list_classes(self) -> list[ActionClass]:
        conn = self._get_conn()
        try:
            rows = conn.execute("SELECT * FROM ActionClass ORDER BY name ASC").fetchall()
            return [ActionClass.from_row(r) for r in rows]
        finally:
            conn.close()

    def update(
        self,
        class_id: int,
        *,
        name: Any = _UNSET,
        color: Any = _UNSET,
        emoji: Any = _UNSET,
    ) -> int:
        fields: list[str] = []
        params: list[Any] = []
        if name is not _UNSET:
            if not name or not str(name).strip():
                raise ValidationError("name", "name required")
            fields.append("name = ?")
            params.append(str(name).strip())
        if color is not _UNSET:
            fields.append("color = ?")
            params.append(color or DEFAULT_COLOR)
        if emoji is not _UNSET:
            fields.append("emoji = ?")
            params.append(emoji or None)
        if not fields:
            return 0
        params.append(int(class_id))

        with self._tx() as conn:
            try:
                n = conn.execute(
                    f"UPDATE ActionClass SET {', '.join(fields)} WHERE action_class_id = ?", params
                ).rowcount
            except sqlite3.IntegrityError as exc:
                if _is_unique_violation(exc):
                    raise UniquenessConflict("ActionClass", "name", str(name).strip()) from exc
                raise

        if n == 0:
            raise NotFoundError("ActionClass", class_id)
        self._emit(ACTION_CLASSES_UPDATED)
        return n

    def delete(self, class_id: int) -> int:
        """
        Delete a class not referenced by any Activity.

        Tasks and templates pointing at it are detached (action_class_id = NULL).
        """
        with self._tx() as conn:
            (cnt,) = conn.execute(
                "SELECT COUNT(*) FROM Activity WHERE action_class_id = ?", (int(class_id),)
            ).fetchone()
            if cnt > 0:
                raise ReferentialConflict("ActionClass", class_id, relation="Activity", count=int(cnt))
            conn.execute("UPDATE Task SET action_class_id = NULL WHERE action_class_id = ?", (int(class_id),))
            conn.execute(
                "UPDATE RecurringTemplate SET action_class_id = NULL WHERE action_class_id = ?",
                (int(class_id),),
            )
            n = conn.execute("DELETE FROM ActionClass WHERE action_class_id = ?", (int(class_id),)).rowcount

        if n:
            logger.info("ActionClass deleted id=%s", class_id)
            self._emit(ACTION_CLASSES_UPDATED)
        return n
