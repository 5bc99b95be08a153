# src/neuropilot/core/state.py

from __future__ import annotations

from dataclasses import dataclass

from ..activities.activity_store import ActivityStore
from ..activities.interval_normalizer import IntervalNormalizer
from ..entities.action_class_store import ActionClassStore
from ..entities.daily_form_store import DailyFormStore
from ..entities.preference_store import PreferenceStore
from ..reports.weekly import WeeklyReportBuilder
from ..storage.migrations import MigrationReport
from ..tasks.recurrence import RecurrenceGenerator
from ..tasks.task_store import TaskStore
from ..tasks.template_store import TemplateStore
from .events import EventBus
from .ports import Notifier


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: object

    events: EventBus
    notifier: Notifier
    migration_report: MigrationReport

    action_classes: ActionClassStore
    activities: ActivityStore
    normalizer: IntervalNormalizer
    tasks: TaskStore
    templates: TemplateStore
    recurrence: RecurrenceGenerator
    daily_forms: DailyFormStore
    preferences: PreferenceStore
    reports: WeeklyReportBuilder
