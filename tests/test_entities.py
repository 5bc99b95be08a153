# tests/test_entities.py

from __future__ import annotations

from pathlib import Path

import pytest

from neuropilot.activities.activity_store import ActivityStore
from neuropilot.core.ports import ACTION_CLASSES_UPDATED, DAILY_FORM_UPDATED, PREFERENCES_UPDATED
from neuropilot.entities.action_class_store import DEFAULT_COLOR, ActionClassStore
from neuropilot.entities.daily_form_store import DailyFormStore
from neuropilot.entities.preference_store import PreferenceStore
from neuropilot.errors import NotFoundError, ReferentialConflict, UniquenessConflict, ValidationError
from neuropilot.tasks.task_store import TaskStore
from neuropilot.tasks.template_store import TemplateStore

from .fakes import RecordingEvents
from .helpers import execute

# ---- ActionClass ----


def test_action_class_crud(db_path: Path, events: RecordingEvents) -> None:
    store = ActionClassStore(db_path, events=events)

    class_id = store.create("  Exercise ", emoji="🏃")
    got = store.get(class_id)
    assert got is not None
    assert got.name == "Exercise"
    assert got.color == DEFAULT_COLOR
    assert got.emoji == "🏃"
    assert store.get_by_name("Exercise") == got

    assert store.update(class_id, color="#4CAF50", emoji=None) == 1
    got = store.get(class_id)
    assert got is not None and got.color == "#4CAF50" and got.emoji is None

    assert [c.name for c in store.list_classes()] == ["Exercise", "General"]
    assert events.topics.count(ACTION_CLASSES_UPDATED) == 2


def test_action_class_names_are_unique(classes: ActionClassStore) -> None:
    reading = classes.create("Reading")

    with pytest.raises(UniquenessConflict) as exc_info:
        classes.create("Reading")
    assert exc_info.value.field == "name"
    assert exc_info.value.value == "Reading"

    with pytest.raises(UniquenessConflict):
        classes.update(reading, name="General")

    with pytest.raises(ValidationError):
        classes.create("   ")


def test_update_missing_action_class(classes: ActionClassStore) -> None:
    with pytest.raises(NotFoundError):
        classes.update(999, color="#000000")
    assert classes.update(999) == 0


def test_referenced_action_class_cannot_be_deleted(
    db_path: Path, classes: ActionClassStore, activities: ActivityStore, focus_id: int
) -> None:
    activities.create_manual(focus_id, "2024-06-03T09:00:00Z", "2024-06-03T10:00:00Z")
    activities.create_manual(focus_id, "2024-06-03T11:00:00Z", "2024-06-03T12:00:00Z")

    with pytest.raises(ReferentialConflict) as exc_info:
        classes.delete(focus_id)
    assert exc_info.value.relation == "Activity"
    assert exc_info.value.count == 2
    assert classes.get(focus_id) is not None


def test_deleting_action_class_detaches_tasks_and_templates(
    classes: ActionClassStore, tasks: TaskStore, templates: TemplateStore
) -> None:
    class_id = classes.create("Chores")
    task_id = tasks.create_task(name="Vacuum", action_class_id=class_id)
    tpl_id = templates.create_template(name="Dishes", pattern_type="daily", action_class_id=class_id)

    assert classes.delete(class_id) == 1

    assert classes.get(class_id) is None
    assert tasks.get_task(task_id).action_class_id is None  # type: ignore[union-attr]
    assert templates.get_template(tpl_id).action_class_id is None  # type: ignore[union-attr]
    assert classes.delete(class_id) == 0


# ---- DailyForm ----


def test_daily_form_upsert_keeps_one_row_per_date(db_path: Path, events: RecordingEvents) -> None:
    store = DailyFormStore(db_path, events=events)

    store.upsert("2024-06-03", mood=6, thoughts="tired")
    store.upsert(
        "2024-06-03",
        mood=8,
        thoughts="better",
        gratitude="coffee",
        additional_fields={"sleep_hours": 7.5, "tags": ["calm"]},
    )

    forms = store.list_range("2024-06-01", "2024-06-30")
    assert len(forms) == 1
    form = forms[0]
    assert form.form_date == "2024-06-03"
    assert form.mood == 8
    assert form.thoughts == "better"
    assert form.gratitude == "coffee"
    assert form.additional_fields == {"sleep_hours": 7.5, "tags": ["calm"]}
    assert events.topics.count(DAILY_FORM_UPDATED) == 2


def test_daily_form_validation_and_reads(db_path: Path) -> None:
    store = DailyFormStore(db_path)

    with pytest.raises(ValidationError):
        store.upsert("2024-06-03", mood=11)
    with pytest.raises(ValidationError):
        store.upsert("2024-06-03", mood="great")  # type: ignore[arg-type]
    with pytest.raises(ValidationError):
        store.upsert("June 3rd")
    with pytest.raises(ValidationError):
        store.upsert("2024-06-03", additional_fields={"bad": object()})

    assert store.get("2024-06-03") is None

    store.upsert("2024-06-01", mood=5)
    store.upsert("2024-06-02")
    store.upsert("2024-06-09", mood=9)

    assert [f.form_date for f in store.list_range("2024-06-01", "2024-06-07")] == ["2024-06-02", "2024-06-01"]
    blank = store.get("2024-06-02")
    assert blank is not None and blank.mood is None and blank.additional_fields == {}


def test_daily_form_tolerates_garbage_extra_fields(db_path: Path) -> None:
    store = DailyFormStore(db_path)
    store.upsert("2024-06-03", mood=4)
    execute(db_path, "UPDATE DailyForm SET additional_fields = 'not json'")

    form = store.get("2024-06-03")
    assert form is not None and form.additional_fields == {}


def test_daily_form_stores_poop_time_and_quality(db_path: Path) -> None:
    store = DailyFormStore(db_path)

    store.upsert("2024-06-03", mood=7, poop_time="07:45", poop_quality=4)
    form = store.get("2024-06-03")
    assert form is not None
    assert form.poop_time == "07:45"
    assert form.poop_quality == 4

    store.upsert("2024-06-03", mood=7, poop_time="21:10", poop_quality=2)
    form = store.get("2024-06-03")
    assert form is not None and (form.poop_time, form.poop_quality) == ("21:10", 2)

    store.upsert("2024-06-03", mood=7)
    form = store.get("2024-06-03")
    assert form is not None and form.poop_time is None and form.poop_quality is None

    with pytest.raises(ValidationError) as exc_info:
        store.upsert("2024-06-04", poop_time="after lunch")
    assert exc_info.value.field == "poop_time"
    with pytest.raises(ValidationError):
        store.upsert("2024-06-04", poop_quality="ok")  # type: ignore[arg-type]
    assert store.get("2024-06-04") is None


# ---- Preference ----


def test_preferences_round_trip_json_values(db_path: Path, events: RecordingEvents) -> None:
    prefs = PreferenceStore(db_path, events=events)

    assert prefs.get("theme") is None
    assert prefs.get("theme", "light") == "light"

    prefs.set("theme", "dark")
    prefs.set("week_start", 1)
    prefs.set("notifications", {"enabled": True, "quiet_hours": [22, 7]})
    prefs.set("theme", "solarized")

    assert prefs.get("theme") == "solarized"
    assert prefs.all() == {
        "notifications": {"enabled": True, "quiet_hours": [22, 7]},
        "theme": "solarized",
        "week_start": 1,
    }
    assert events.topics.count(PREFERENCES_UPDATED) == 4


def test_preference_validation(db_path: Path) -> None:
    prefs = PreferenceStore(db_path)

    with pytest.raises(ValidationError):
        prefs.set("", 1)
    with pytest.raises(ValidationError):
        prefs.set("blob", {1, 2, 3})
    assert prefs.all() == {}
