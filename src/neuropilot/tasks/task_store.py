# src/neuropilot/tasks/task_store.py

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..core.ports import TASKS_UPDATED, Notifier
from ..errors import CapacityError, NotFoundError, ValidationError
from ..storage.sqlite import SQLiteStore
from ..timeutil import parse_date, parse_time_of_day, to_iso, utc_now
from .task_models import Priority, Task, TaskStatus

logger = logging.getLogger(__name__)

DEFAULT_WIP_LIMIT = 2
WIP_CONSTRAINT = "in_progress_wip_limit"

_UNSET: Any = object()

# Board order within a column: explicit position, then most important first.
_BOARD_ORDER = "sort_order ASC, priority ASC, task_id ASC"
_STATUS_ORDER = "CASE status WHEN 'in_progress' THEN 0 WHEN 'todo' THEN 1 ELSE 2 END"


def next_sort_order(conn: sqlite3.Connection, status: TaskStatus) -> int:
    """Position at the end of a column: current max + 1, or 0 for an empty column."""
    row = conn.execute("SELECT MAX(sort_order) FROM Task WHERE status = ?", (status.value,)).fetchone()
    return 0 if row is None or row[0] is None else int(row[0]) + 1


def _clean_date(value: Any, field: str) -> str | None:
    if value is None or value == "":
        return None
    return parse_date(value, field=field).isoformat()


def _clean_time(value: Any, field: str) -> str | None:
    if value is None or value == "":
        return None
    return parse_time_of_day(value, field=field).strftime("%H:%M")


def reminder_fire_at(task: Task) -> datetime | None:
    """When a reminder should fire for the task, or None if it needs none."""
    if task.status == TaskStatus.DONE or not task.due_date or not task.due_time:
        return None
    d = parse_date(task.due_date)
    t = parse_time_of_day(task.due_time)
    return datetime.combine(d, t, tzinfo=UTC)


class TaskStore(SQLiteStore):
    """
    SQLite task store (manual path; generated tasks come from RecurrenceGenerator).

    Enforces the WIP limit on the in_progress column and keeps
    completed == (status == done).
    """

    def __init__(
        self,
        db_path: str | Path,
        *,
        notifier: Notifier | None = None,
        events=None,
        wip_limit: int = DEFAULT_WIP_LIMIT,
    ) -> None:
        super().__init__(db_path, events=events)
        self._notifier = notifier
        self.wip_limit = int(wip_limit)

    # ---- low-level helpers ----

    def _check_wip(self, conn: sqlite3.Connection, *, exclude_task_id: int | None = None) -> None:
        if exclude_task_id is None:
            row = conn.execute("SELECT COUNT(*) FROM Task WHERE status = 'in_progress'").fetchone()
        else:
            row = conn.execute(
                "SELECT COUNT(*) FROM Task WHERE status = 'in_progress' AND task_id != ?",
                (int(exclude_task_id),),
            ).fetchone()
        if int(row[0]) >= self.wip_limit:
            raise CapacityError(WIP_CONSTRAINT, self.wip_limit)

    def _set_reminder_id(self, task_id: int, reminder_id: str | None) -> None:
        with self._tx() as conn:
            conn.execute(
                "UPDATE Task SET reminder_notification_id = ? WHERE task_id = ?",
                (reminder_id, int(task_id)),
            )

    def _sync_reminder(self, task: Task) -> None:
        """
        Cancel the stored reminder and schedule a fresh one if the task still
        needs it. Notifier failures are logged; the task write already happened.
        """
        if self._notifier is None:
            return

        if task.reminder_notification_id:
            try:
                self._notifier.cancel_reminder(task.reminder_notification_id)
            except Exception:
                logger.exception("cancel_reminder failed task_id=%s", task.id)
            self._set_reminder_id(task.id, None)

        fire_at = reminder_fire_at(task)
        if fire_at is None or fire_at <= utc_now():
            return

        try:
            reminder_id = self._notifier.schedule_reminder(
                task.id, task.name, task.description or "Task due", fire_at
            )
        except Exception:
            logger.exception("schedule_reminder failed task_id=%s", task.id)
            return
        self._set_reminder_id(task.id, str(reminder_id))

    # ---- public API ----

    def count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM Task").fetchone()
            return int(n)
        finally:
            conn.close()

    def count_in_progress(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM Task WHERE status = 'in_progress'").fetchone()
            return int(n)
        finally:
            conn.close()

    def create_task(
        self,
        *,
        name: str,
        description: str = "",
        status: TaskStatus | str = TaskStatus.TODO,
        priority: int = Priority.NORMAL,
        action_class_id: int | None = None,
        start_date: Any = None,
        start_time: Any = None,
        due_date: Any = None,
        due_time: Any = None,
    ) -> int:
        if not name or not name.strip():
            raise ValidationError("name", "task name is required")

        st = TaskStatus.parse(status)
        pri = Priority.parse(priority)
        now = to_iso(utc_now())

        with self._tx() as conn:
            if st == TaskStatus.IN_PROGRESS:
                self._check_wip(conn)
            cur = conn.execute(
                """
                INSERT INTO Task(
                    name, description, status, completed, priority, action_class_id,
                    is_generated, start_date, start_time, due_date, due_time,
                    sort_order, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, 0, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    name.strip(),
                    description or "",
                    st.value,
                    1 if st == TaskStatus.DONE else 0,
                    int(pri),
                    action_class_id,
                    _clean_date(start_date, "start_date"),
                    _clean_time(start_time, "start_time"),
                    _clean_date(due_date, "due_date"),
                    _clean_time(due_time, "due_time"),
                    next_sort_order(conn, st),
                    now,
                    now,
                ),
            )
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for Task insert")
            task_id = int(rowid)

        logger.debug("Task created id=%s status=%s due=%s %s", task_id, st.value, due_date, due_time)
        task = self.get_task(task_id)
        if task is not None:
            self._sync_reminder(task)
        self._emit(TASKS_UPDATED)
        return task_id

    def get_task(self, task_id: int) -> Task | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM Task WHERE task_id = ?", (int(task_id),)).fetchone()
            return Task.from_row(row) if row else None
        finally:
            conn.close()

    def list_tasks(
        self,
        *,
        include_completed: bool = True,
        status: TaskStatus | str | None = None,
        due_date: Any = None,
        template_id: int | None = None,
    ) -> list[Task]:
        where: list[str] = []
        params: list[Any] = []
        if not include_completed:
            where.append("status != 'done'")
        if status is not None:
            where.append("status = ?")
            params.append(TaskStatus.parse(status).value)
        if due_date is not None:
            where.append("due_date = ?")
            params.append(_clean_date(due_date, "due_date"))
        if template_id is not None:
            where.append("template_id = ?")
            params.append(int(template_id))

        sql = "SELECT * FROM Task"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += f" ORDER BY {_STATUS_ORDER}, {_BOARD_ORDER}"

        conn = self._get_conn()
        try:
            return [Task.from_row(r) for r in conn.execute(sql, params).fetchall()]
        finally:
            conn.close()

    def get_board(self, *, due_date: Any = None) -> dict[TaskStatus, list[Task]]:
        board: dict[TaskStatus, list[Task]] = {s: [] for s in TaskStatus}
        for t in self.list_tasks(due_date=due_date):
            board[t.status].append(t)
        return board

    def update_task(
        self,
        task_id: int,
        *,
        name: Any = _UNSET,
        description: Any = _UNSET,
        status: Any = _UNSET,
        completed: Any = _UNSET,
        priority: Any = _UNSET,
        action_class_id: Any = _UNSET,
        start_date: Any = _UNSET,
        start_time: Any = _UNSET,
        due_date: Any = _UNSET,
        due_time: Any = _UNSET,
    ) -> int:
        """
        Patch a task. Returns rows affected (0 when nothing was passed).

        Raises CapacityError when the change would move a task into a full
        in_progress column.
        """
        current = self.get_task(task_id)
        if current is None:
            raise NotFoundError("Task", task_id)

        fields: list[str] = []
        params: list[Any] = []

        if name is not _UNSET:
            if not name or not str(name).strip():
                raise ValidationError("name", "task name is required")
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
        if start_date is not _UNSET:
            fields.append("start_date = ?")
            params.append(_clean_date(start_date, "start_date"))
        if start_time is not _UNSET:
            fields.append("start_time = ?")
            params.append(_clean_time(start_time, "start_time"))
        if due_date is not _UNSET:
            fields.append("due_date = ?")
            params.append(_clean_date(due_date, "due_date"))
        if due_time is not _UNSET:
            fields.append("due_time = ?")
            params.append(_clean_time(due_time, "due_time"))

        new_status = current.status
        if status is not _UNSET:
            new_status = TaskStatus.parse(status)
        elif completed is not _UNSET:
            if completed:
                new_status = TaskStatus.DONE
            elif current.status == TaskStatus.DONE:
                new_status = TaskStatus.TODO

        status_changed = new_status != current.status
        if status is not _UNSET or completed is not _UNSET:
            fields.append("status = ?")
            params.append(new_status.value)
            fields.append("completed = ?")
            params.append(1 if new_status == TaskStatus.DONE else 0)

        if not fields:
            return 0

        with self._tx() as conn:
            if status_changed:
                if new_status == TaskStatus.IN_PROGRESS:
                    self._check_wip(conn, exclude_task_id=task_id)
                fields.append("sort_order = ?")
                params.append(next_sort_order(conn, new_status))

            fields.append("updated_at = ?")
            params.append(to_iso(utc_now()))
            params.append(int(task_id))
            cur = conn.execute(f"UPDATE Task SET {', '.join(fields)} WHERE task_id = ?", params)
            affected = cur.rowcount

        reminder_relevant = any(
            v is not _UNSET for v in (name, description, status, completed, due_date, due_time)
        )
        if reminder_relevant:
            updated = self.get_task(task_id)
            if updated is not None:
                self._sync_reminder(updated)

        if status_changed:
            logger.info("Task %s -> %s", task_id, new_status.value)
        self._emit(TASKS_UPDATED)
        return affected

    def set_status(self, task_id: int, status: TaskStatus | str) -> int:
        return self.update_task(task_id, status=status)

    def reorder_column(self, status: TaskStatus | str, ordered_ids: Iterable[int]) -> None:
        """
        Rewrite sort_order of one column to 0..n-1 following ordered_ids.
        Tasks of the column missing from ordered_ids keep their relative order after them.
        """
        st = TaskStatus.parse(status)
        wanted = [int(i) for i in ordered_ids]

        with self._tx() as conn:
            rows = conn.execute(
                f"SELECT task_id FROM Task WHERE status = ? ORDER BY {_BOARD_ORDER}", (st.value,)
            ).fetchall()
            in_column = [int(r["task_id"]) for r in rows]
            unknown = [i for i in wanted if i not in in_column]
            if unknown:
                raise ValidationError("ordered_ids", f"tasks {unknown} are not in column {st.value}")
            final = wanted + [i for i in in_column if i not in wanted]
            for pos, tid in enumerate(final):
                conn.execute("UPDATE Task SET sort_order = ? WHERE task_id = ?", (pos, tid))

        self._emit(TASKS_UPDATED)

    def move_task(self, task_id: int, status: TaskStatus | str, position: int | None = None) -> None:
        """Drag a card: change column if needed, then place it at `position` (end when None)."""
        st = TaskStatus.parse(status)
        current = self.get_task(task_id)
        if current is None:
            raise NotFoundError("Task", task_id)
        if current.status != st:
            self.update_task(task_id, status=st)
        if position is None:
            return

        column = [t.id for t in self.list_tasks(status=st) if t.id != int(task_id)]
        pos = max(0, min(int(position), len(column)))
        column.insert(pos, int(task_id))
        self.reorder_column(st, column)

    def delete_task(self, task_id: int) -> int:
        task = self.get_task(task_id)
        if task is None:
            return 0

        with self._tx() as conn:
            n = conn.execute("DELETE FROM Task WHERE task_id = ?", (int(task_id),)).rowcount

        if task.reminder_notification_id and self._notifier is not None:
            try:
                self._notifier.cancel_reminder(task.reminder_notification_id)
            except Exception:
                logger.exception("cancel_reminder failed task_id=%s", task_id)
        self._emit(TASKS_UPDATED)
        return n
