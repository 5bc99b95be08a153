# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from neuropilot.activities.activity_store import ActivityStore
from neuropilot.activities.interval_normalizer import IntervalNormalizer
from neuropilot.bootstrap import create_initial_state
from neuropilot.core.state import AppState
from neuropilot.entities.action_class_store import ActionClassStore
from neuropilot.storage.migrations import apply_all_pending
from neuropilot.tasks.recurrence import RecurrenceGenerator
from neuropilot.tasks.task_store import TaskStore
from neuropilot.tasks.template_store import TemplateStore

from .fakes import FakeNotifier, RecordingEvents


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with bootstrap and the stores.

    A SimpleNamespace rather than the real config keeps tests isolated from
    the developer's environment and .env file.
    """
    return SimpleNamespace(
        app_name="neuropilot-test",
        data_dir=tmp_path / "data",
        db_path=tmp_path / "data" / "NeuroPilot.db",
        migrations_strict=False,
        recurrence_days_ahead=7,
        recurrence_interval_seconds=0.01,
        normalize_threshold_seconds=60,
        wip_limit=2,
    )


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    """A fully migrated database file."""
    path = tmp_path / "NeuroPilot.db"
    apply_all_pending(path)
    return path


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture()
def events() -> RecordingEvents:
    return RecordingEvents()


@pytest.fixture()
def classes(db_path: Path) -> ActionClassStore:
    return ActionClassStore(db_path)


@pytest.fixture()
def general_id(classes: ActionClassStore) -> int:
    general = classes.get_by_name("General")
    assert general is not None
    return general.id


@pytest.fixture()
def focus_id(classes: ActionClassStore) -> int:
    return classes.create("Focus", "#FF5722", "🎯")


@pytest.fixture()
def normalizer(db_path: Path) -> IntervalNormalizer:
    return IntervalNormalizer(db_path, threshold_seconds=60)


@pytest.fixture()
def activities(db_path: Path, normalizer: IntervalNormalizer, events: RecordingEvents) -> ActivityStore:
    return ActivityStore(db_path, normalizer=normalizer, events=events)


@pytest.fixture()
def tasks(db_path: Path, notifier: FakeNotifier, events: RecordingEvents) -> TaskStore:
    return TaskStore(db_path, notifier=notifier, events=events, wip_limit=2)


@pytest.fixture()
def templates(db_path: Path) -> TemplateStore:
    return TemplateStore(db_path)


@pytest.fixture()
def generator(db_path: Path, notifier: FakeNotifier, events: RecordingEvents) -> RecurrenceGenerator:
    return RecurrenceGenerator(db_path, notifier=notifier, events=events)


@pytest.fixture()
def state(settings: SimpleNamespace) -> AppState:
    """
    AppState wired by the real composition root, with a recording notifier.

    Real SQLite stores are kept because their correctness is what we test.
    """
    return create_initial_state(settings=settings, notifier=FakeNotifier(), run_generation=False)

