# tests/test_interval_normalizer.py

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from neuropilot.activities.activity_store import ActivityStore
from neuropilot.activities.interval_normalizer import IntervalNormalizer
from neuropilot.core.ports import ACTIVITY_UPDATED
from neuropilot.timeutil import to_iso

from .fakes import RecordingEvents
from .helpers import insert_raw_activity


def _timeline(store: ActivityStore, start: str = "2024-05-01T00:00:00Z", end: str = "2024-07-01T00:00:00Z"):
    return [
        (a.action_class_id, to_iso(a.start_time), to_iso(a.end_time) if a.end_time else None, a.duration_ms)
        for a in store.list_between(start, end)
    ]


def test_interval_crossing_midnight_is_split_per_day(activities: ActivityStore, general_id: int) -> None:
    ids = activities.create_manual(general_id, "2024-06-01T23:00:00Z", "2024-06-02T01:00:00Z")

    assert len(ids) == 2
    assert _timeline(activities) == [
        (general_id, "2024-06-01T23:00:00.000Z", "2024-06-02T00:00:00.000Z", 3_600_000),
        (general_id, "2024-06-02T00:00:00.000Z", "2024-06-02T01:00:00.000Z", 3_600_000),
    ]


def test_multi_day_interval_gets_one_row_per_day(activities: ActivityStore, general_id: int) -> None:
    activities.create_manual(general_id, "2024-06-01T22:00:00Z", "2024-06-03T02:00:00Z", "long haul")

    rows = activities.list_between("2024-06-01T00:00:00Z", "2024-06-04T00:00:00Z")
    assert [a.duration_ms for a in rows] == [7_200_000, 86_400_000, 7_200_000]
    assert {a.description for a in rows} == {"long haul"}
    assert sum(a.duration_ms or 0 for a in rows) == 28 * 3_600_000


def test_interval_ending_exactly_at_midnight_is_not_split(activities: ActivityStore, general_id: int) -> None:
    ids = activities.create_manual(general_id, "2024-06-01T23:00:00Z", "2024-06-02T00:00:00Z")

    assert len(ids) == 1
    assert len(_timeline(activities)) == 1


def test_split_day_boundaries_reports_whether_it_split(
    db_path: Path, normalizer: IntervalNormalizer, general_id: int
) -> None:
    crossing = insert_raw_activity(db_path, general_id, "2024-06-01T23:30:00Z", "2024-06-02T00:30:00Z")
    running = insert_raw_activity(db_path, general_id, "2024-06-05T23:30:00Z", None)

    assert normalizer.split_day_boundaries(crossing) is True
    assert normalizer.split_day_boundaries(crossing) is False
    assert normalizer.split_day_boundaries(running) is False


def test_overlapping_predecessor_is_clamped(activities: ActivityStore, general_id: int, focus_id: int) -> None:
    activities.create_manual(general_id, "2024-06-03T09:00:00Z", "2024-06-03T10:00:00Z")
    activities.create_manual(focus_id, "2024-06-03T09:30:00Z", "2024-06-03T11:00:00Z")

    assert _timeline(activities) == [
        (general_id, "2024-06-03T09:00:00.000Z", "2024-06-03T09:30:00.000Z", 1_800_000),
        (focus_id, "2024-06-03T09:30:00.000Z", "2024-06-03T11:00:00.000Z", 5_400_000),
    ]


def test_overlapping_successor_is_pushed_back(activities: ActivityStore, general_id: int, focus_id: int) -> None:
    activities.create_manual(general_id, "2024-06-03T10:00:00Z", "2024-06-03T11:00:00Z")
    activities.create_manual(focus_id, "2024-06-03T09:00:00Z", "2024-06-03T10:30:00Z")

    assert _timeline(activities) == [
        (focus_id, "2024-06-03T09:00:00.000Z", "2024-06-03T10:30:00.000Z", 5_400_000),
        (general_id, "2024-06-03T10:30:00.000Z", "2024-06-03T11:00:00.000Z", 1_800_000),
    ]


def test_engulfed_rows_are_deleted(activities: ActivityStore, general_id: int, focus_id: int) -> None:
    activities.create_manual(general_id, "2024-06-03T10:00:00Z", "2024-06-03T10:30:00Z")
    activities.create_manual(general_id, "2024-06-03T10:40:00Z", "2024-06-03T10:50:00Z")
    activities.create_manual(focus_id, "2024-06-03T09:00:00Z", "2024-06-03T11:00:00Z")

    assert _timeline(activities) == [
        (focus_id, "2024-06-03T09:00:00.000Z", "2024-06-03T11:00:00.000Z", 7_200_000),
    ]


def test_small_fragment_is_merged_into_longer_neighbor(
    activities: ActivityStore, general_id: int, focus_id: int
) -> None:
    activities.create_manual(general_id, "2024-06-03T10:00:00Z", "2024-06-03T10:30:00Z")
    ids = activities.create_manual(focus_id, "2024-06-03T10:00:30Z", "2024-06-03T10:45:00Z")

    # The 30s left of the first row is below the threshold and folds into the new one.
    assert _timeline(activities) == [
        (focus_id, "2024-06-03T10:00:00.000Z", "2024-06-03T10:45:00.000Z", 2_700_000),
    ]
    assert len(ids) == 1
    assert activities.count_activities() == 1


def test_merge_tie_keeps_the_earlier_row(
    db_path: Path, normalizer: IntervalNormalizer, general_id: int, focus_id: int
) -> None:
    insert_raw_activity(db_path, general_id, "2024-06-03T10:00:00Z", "2024-06-03T10:20:00Z")
    later = insert_raw_activity(db_path, focus_id, "2024-06-03T10:10:00Z", "2024-06-03T10:20:00Z")

    # 15 minute threshold: both halves are 10 minutes long.
    changes = normalizer.normalize_neighbors(later, threshold_seconds=900)

    assert changes > 0
    store = ActivityStore(db_path, normalizer=normalizer)
    assert _timeline(store) == [
        (general_id, "2024-06-03T10:00:00.000Z", "2024-06-03T10:20:00.000Z", 1_200_000),
    ]


def test_sliver_merge_never_crosses_midnight(
    db_path: Path, normalizer: IntervalNormalizer, general_id: int, focus_id: int
) -> None:
    insert_raw_activity(db_path, general_id, "2024-06-01T23:59:30Z", "2024-06-02T00:20:00Z")
    anchor = insert_raw_activity(db_path, focus_id, "2024-06-02T00:00:00Z", "2024-06-02T01:00:00Z")

    changes = normalizer.normalize_neighbors(anchor)

    assert changes == 1
    store = ActivityStore(db_path, normalizer=normalizer)
    assert _timeline(store) == [
        (general_id, "2024-06-01T23:59:30.000Z", "2024-06-02T00:00:00.000Z", 30_000),
        (focus_id, "2024-06-02T00:00:00.000Z", "2024-06-02T01:00:00.000Z", 3_600_000),
    ]


def test_normalizing_a_consistent_timeline_changes_nothing(
    activities: ActivityStore, normalizer: IntervalNormalizer, general_id: int, focus_id: int
) -> None:
    activities.create_manual(general_id, "2024-06-03T09:00:00Z", "2024-06-03T10:00:00Z")
    activities.create_manual(focus_id, "2024-06-03T09:30:00Z", "2024-06-03T11:00:00Z")
    before = _timeline(activities)

    for a in activities.list_between("2024-06-03T00:00:00Z", "2024-06-04T00:00:00Z"):
        assert normalizer.normalize_neighbors(a.id) == 0

    assert _timeline(activities) == before


def test_adjacent_rows_are_left_alone(activities: ActivityStore, general_id: int, focus_id: int) -> None:
    activities.create_manual(general_id, "2024-06-03T09:00:00Z", "2024-06-03T10:00:00Z")
    activities.create_manual(focus_id, "2024-06-03T10:00:00Z", "2024-06-03T11:00:00Z")

    assert [row[1:3] for row in _timeline(activities)] == [
        ("2024-06-03T09:00:00.000Z", "2024-06-03T10:00:00.000Z"),
        ("2024-06-03T10:00:00.000Z", "2024-06-03T11:00:00.000Z"),
    ]


def test_normalize_emits_activity_updated(db_path: Path, general_id: int) -> None:
    events = RecordingEvents()
    normalizer = IntervalNormalizer(db_path, events=events)
    crossing = insert_raw_activity(db_path, general_id, "2024-06-01T23:30:00Z", "2024-06-02T00:30:00Z")

    survivors = normalizer.normalize(crossing)

    assert len(survivors) == 2
    assert ACTIVITY_UPDATED in events.topics


def test_running_predecessor_clamped_across_midnight_is_split(
    activities: ActivityStore, general_id: int, focus_id: int
) -> None:
    activities.start_activity(general_id, now=datetime(2024, 6, 3, 8, 53, tzinfo=UTC))

    activities.create_manual(focus_id, "2024-06-04T02:52:00Z", "2024-06-04T03:52:00Z")

    assert activities.get_current_activity() is None
    assert _timeline(activities) == [
        (general_id, "2024-06-03T08:53:00.000Z", "2024-06-04T00:00:00.000Z", 54_420_000),
        (general_id, "2024-06-04T00:00:00.000Z", "2024-06-04T02:52:00.000Z", 10_320_000),
        (focus_id, "2024-06-04T02:52:00.000Z", "2024-06-04T03:52:00.000Z", 3_600_000),
    ]


def test_split_running_predecessor_sliver_merges_into_new_row(
    activities: ActivityStore, general_id: int, focus_id: int
) -> None:
    activities.start_activity(general_id, now=datetime(2024, 6, 3, 8, 0, tzinfo=UTC))

    activities.create_manual(focus_id, "2024-06-04T00:00:30Z", "2024-06-04T01:00:00Z")

    assert _timeline(activities) == [
        (general_id, "2024-06-03T08:00:00.000Z", "2024-06-04T00:00:00.000Z", 57_600_000),
        (focus_id, "2024-06-04T00:00:00.000Z", "2024-06-04T01:00:00.000Z", 3_600_000),
    ]


def test_moving_a_row_past_midnight_splits_the_running_activity(
    activities: ActivityStore, general_id: int, focus_id: int
) -> None:
    (moved,) = activities.create_manual(focus_id, "2024-06-03T10:00:00Z", "2024-06-03T11:00:00Z")
    activities.start_activity(general_id, now=datetime(2024, 6, 3, 20, 0, tzinfo=UTC))

    activities.update_activity(moved, start_time="2024-06-04T01:00:00Z", end_time="2024-06-04T02:00:00Z")

    assert activities.get_current_activity() is None
    assert _timeline(activities) == [
        (general_id, "2024-06-03T20:00:00.000Z", "2024-06-04T00:00:00.000Z", 14_400_000),
        (general_id, "2024-06-04T00:00:00.000Z", "2024-06-04T01:00:00.000Z", 3_600_000),
        (focus_id, "2024-06-04T01:00:00.000Z", "2024-06-04T02:00:00.000Z", 3_600_000),
    ]
