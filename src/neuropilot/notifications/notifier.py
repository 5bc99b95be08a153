# src/neuropilot/notifications/notifier.py

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ScheduledReminder:
    reminder_id: str
    task_id: int
    title: str
    body: str
    fire_at: datetime


class LoggingNotifier:
    """
    Default Notifier used when no platform notification backend is wired.

    Keeps scheduled reminders in memory and logs them; delivery itself is the
    job of whatever presentation layer replaces this object.
    """

    def __init__(self) -> None:
        self._pending: dict[str, ScheduledReminder] = {}
        self._lock = threading.Lock()

    def schedule_reminder(self, task_id: int, title: str, body: str, fire_at: datetime) -> str:
        reminder_id = uuid.uuid4().hex
        with self._lock:
            self._pending[reminder_id] = ScheduledReminder(
                reminder_id=reminder_id,
                task_id=int(task_id),
                title=title,
                body=body,
                fire_at=fire_at,
            )
        logger.info("Reminder scheduled id=%s task_id=%s fire_at=%s", reminder_id, task_id, fire_at)
        return reminder_id

    def cancel_reminder(self, reminder_id: str) -> None:
        with self._lock:
            removed = self._pending.pop(reminder_id, None)
        logger.info("Reminder cancelled id=%s known=%s", reminder_id, removed is not None)

    def pending(self) -> list[ScheduledReminder]:
        with self._lock:
            return sorted(self._pending.values(), key=lambda r: r.fire_at)
