# src/neuropilot/bootstrap.py

"""
Composition root.

- loads settings once,
- ensures the local data directory exists,
- brings the schema up to date BEFORE any store is handed out,
- wires concrete stores, normalizer, generator and ports into AppState,
- runs one recurrence expansion pass.
"""

from __future__ import annotations

import logging

from .activities.activity_store import ActivityStore
from .activities.interval_normalizer import IntervalNormalizer
from .config import get_settings
from .core.events import EventBus
from .core.ports import Notifier
from .core.state import AppState
from .entities.action_class_store import ActionClassStore
from .entities.daily_form_store import DailyFormStore
from .entities.preference_store import PreferenceStore
from .errors import NeuroPilotError
from .notifications.notifier import LoggingNotifier
from .reports.weekly import WeeklyReportBuilder
from .storage.migrations import apply_all_pending
from .tasks.recurrence import RecurrenceGenerator
from .tasks.task_store import TaskStore
from .tasks.template_store import TemplateStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(
    *,
    settings=None,
    notifier: Notifier | None = None,
    run_generation: bool = True,
) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    report = apply_all_pending(settings.db_path, strict=bool(getattr(settings, "migrations_strict", False)))
    if not report.ok:
        logger.warning(
            "Schema at version %s with %d skipped migration statement(s)",
            report.to_version,
            len(report.skipped_statements),
        )

    db_path = settings.db_path
    events = EventBus()
    notifier = notifier or LoggingNotifier()
    normalizer = IntervalNormalizer(
        db_path, threshold_seconds=settings.normalize_threshold_seconds, events=events
    )

    state = AppState(
        settings=settings,
        events=events,
        notifier=notifier,
        migration_report=report,
        action_classes=ActionClassStore(db_path, events=events),
        activities=ActivityStore(db_path, normalizer=normalizer, events=events),
        normalizer=normalizer,
        tasks=TaskStore(db_path, notifier=notifier, events=events, wip_limit=settings.wip_limit),
        templates=TemplateStore(db_path, events=events),
        recurrence=RecurrenceGenerator(db_path, notifier=notifier, events=events),
        daily_forms=DailyFormStore(db_path, events=events),
        preferences=PreferenceStore(db_path, events=events),
        reports=WeeklyReportBuilder(db_path),
    )

    if run_generation:
        try:
            state.recurrence.generate_instances(settings.recurrence_days_ahead)
        except NeuroPilotError:
            # Startup must not fail because of one bad pass; the background loop retries.
            logger.exception("Initial recurrence pass failed")

    logger.info("%s ready db=%s schema=%s", getattr(settings, "app_name", "neuropilot"), db_path, report.to_version)
    return state
