# src/neuropilot/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the stores and engines.

The persistence layer depends on Protocols instead of concrete collaborators.
This keeps the notification backend and the presentation layer swappable
and makes testing easier.
"""

from collections.abc import Callable
from datetime import datetime
from typing import Protocol

# Data-changed topics emitted after successful writes.
ACTIVITY_UPDATED = "activity_updated"
TASKS_UPDATED = "tasks_updated"
ACTION_CLASSES_UPDATED = "action_classes_updated"
DAILY_FORM_UPDATED = "daily_form_updated"
PREFERENCES_UPDATED = "preferences_updated"


class Notifier(Protocol):
    """
    Local reminder capability (consumed, not implemented, by this layer).

    Callers treat failures as non-fatal: a reminder that could not be
    scheduled must never abort the task write that asked for it.
    """

    def schedule_reminder(self, task_id: int, title: str, body: str, fire_at: datetime) -> str: ...

    def cancel_reminder(self, reminder_id: str) -> None: ...


class EventSink(Protocol):
    """Fire-and-forget "something in this domain changed" signal."""

    def emit(self, topic: str) -> None: ...


EventCallback = Callable[[str], None]
