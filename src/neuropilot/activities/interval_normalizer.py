# src/neuropilot/activities/interval_normalizer.py

from __future__ import annotations

"""
Activity timeline repair.

Invariants restored after every time-affecting write:
- stored [start_time, end_time) never crosses a UTC midnight
  (running activities are exempt until they are stopped),
- ended intervals never overlap,
- duration_ms == end_time - start_time for ended rows.

Two passes:
- split_day_boundaries: cut a row at each midnight it crosses, one row per day.
- normalize_neighbors: drop rows engulfed by the activity, clamp the
  overlapping predecessor/successor, and fold slivers shorter than the
  threshold into the larger side of the pair.

Each pass is one transaction. A failure between passes leaves the row in
place with the timeline possibly still overlapping; re-running normalize()
converges because both passes are idempotent.
"""

import logging
import math
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from ..core.ports import ACTIVITY_UPDATED
from ..errors import NotFoundError
from ..storage.sqlite import SQLiteStore
from ..timeutil import DAY, duration_ms, next_midnight, parse_iso, to_iso

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD_SECONDS = 60


@dataclass(slots=True)
class _Span:
    """Mutable working copy of one Activity row's time range."""

    id: int
    action_class_id: int
    start: datetime
    end: datetime | None
    description: str

    def length_ms(self) -> float:
        if self.end is None:
            # A running activity outweighs any finite fragment.
            return math.inf
        return (self.end - self.start).total_seconds() * 1000.0


def _span_from_row(row: sqlite3.Row | None) -> _Span | None:
    if row is None:
        return None
    return _Span(
        id=int(row["activity_id"]),
        action_class_id=int(row["action_class_id"]),
        start=parse_iso(row["start_time"]),
        end=parse_iso(row["end_time"]) if row["end_time"] else None,
        description=str(row["description"] or ""),
    )


def _load(conn: sqlite3.Connection, activity_id: int) -> _Span | None:
    row = conn.execute("SELECT * FROM Activity WHERE activity_id = ?", (int(activity_id),)).fetchone()
    return _span_from_row(row)


def _store_range(conn: sqlite3.Connection, span: _Span) -> None:
    conn.execute(
        "UPDATE Activity SET start_time = ?, end_time = ?, duration_ms = ? WHERE activity_id = ?",
        (
            to_iso(span.start),
            to_iso(span.end) if span.end is not None else None,
            duration_ms(span.start, span.end),
            span.id,
        ),
    )


def _delete(conn: sqlite3.Connection, activity_id: int) -> None:
    conn.execute("DELETE FROM Activity WHERE activity_id = ?", (int(activity_id),))


def _fits_one_day(start: datetime, end: datetime | None) -> bool:
    return end is None or end <= next_midnight(start)


def split_in_conn(conn: sqlite3.Connection, activity_id: int) -> list[int]:
    """
    Split one row at every UTC midnight it crosses.

    Returns the ids of the rows inserted for the following days (empty when
    no split was needed). The original row keeps the first day segment.
    """
    span = _load(conn, activity_id)
    if span is None:
        raise NotFoundError("Activity", activity_id)
    if span.end is None:
        return []

    original_end = span.end
    boundary = next_midnight(span.start)
    if original_end <= boundary:
        _store_range(conn, span)
        return []

    span.end = boundary
    _store_range(conn, span)

    created: list[int] = []
    cursor = boundary
    while cursor < original_end:
        seg_end = min(cursor + DAY, original_end)
        cur = conn.execute(
            """
            INSERT INTO Activity (action_class_id, start_time, end_time, description, duration_ms)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                span.action_class_id,
                to_iso(cursor),
                to_iso(seg_end),
                span.description,
                duration_ms(cursor, seg_end),
            ),
        )
        if cur.lastrowid is None:
            raise RuntimeError("SQLite did not return lastrowid for Activity insert")
        created.append(int(cur.lastrowid))
        cursor = seg_end

    logger.debug("Split activity id=%s into %d extra day segment(s)", span.id, len(created))
    return created


def _merge_pair(conn: sqlite3.Connection, earlier: _Span, later: _Span) -> tuple[_Span | None, int]:
    """
    Fold the shorter of two adjacent spans into the longer one.

    Equal lengths keep the earlier span. A merge that would make an ended row
    cross midnight is refused and the sliver stays as its own row.
    Returns (survivor, rows changed); survivor is None when refused.
    """
    if not _fits_one_day(earlier.start, later.end):
        logger.debug("Sliver merge across midnight refused ids=%s,%s", earlier.id, later.id)
        return None, 0

    if earlier.length_ms() >= later.length_ms():
        earlier.end = later.end
        _store_range(conn, earlier)
        _delete(conn, later.id)
        logger.debug("Merged activity id=%s into id=%s", later.id, earlier.id)
        return earlier, 2

    later.start = earlier.start
    _store_range(conn, later)
    _delete(conn, earlier.id)
    logger.debug("Merged activity id=%s into id=%s", earlier.id, later.id)
    return later, 2


@dataclass(slots=True)
class NeighborResult:
    survivor_id: int
    changes: int


def normalize_in_conn(
    conn: sqlite3.Connection,
    activity_id: int,
    *,
    threshold_seconds: float = DEFAULT_THRESHOLD_SECONDS,
) -> NeighborResult:
    anchor = _load(conn, activity_id)
    if anchor is None:
        raise NotFoundError("Activity", activity_id)

    threshold_ms = float(threshold_seconds) * 1000.0
    changes = 0

    # Engulfed rows go first so they can't be picked as neighbors.
    if anchor.end is not None:
        cur = conn.execute(
            """
            DELETE FROM Activity
            WHERE activity_id != ?
              AND end_time IS NOT NULL
              AND start_time >= ?
              AND end_time <= ?
            """,
            (anchor.id, to_iso(anchor.start), to_iso(anchor.end)),
        )
        if cur.rowcount > 0:
            logger.debug("Deleted %d activity row(s) engulfed by id=%s", cur.rowcount, anchor.id)
            changes += cur.rowcount

    pred = _span_from_row(
        conn.execute(
            """
            SELECT * FROM Activity
            WHERE activity_id != ? AND start_time < ?
            ORDER BY start_time DESC, end_time IS NULL ASC, activity_id DESC
            LIMIT 1
            """,
            (anchor.id, to_iso(anchor.start)),
        ).fetchone()
    )
    if pred is not None and (pred.end is None or pred.end > anchor.start):
        pred.end = anchor.start
        _store_range(conn, pred)
        changes += 1
        if not _fits_one_day(pred.start, pred.end):
            # A running predecessor may have started days before the anchor.
            created = split_in_conn(conn, pred.id)
            changes += len(created)
            pred = _load(conn, created[-1])
        if pred is not None and pred.length_ms() < threshold_ms:
            survivor, merged = _merge_pair(conn, pred, anchor)
            if survivor is not None:
                anchor = survivor
            changes += merged

    if anchor.end is not None:
        succ = _span_from_row(
            conn.execute(
                """
                SELECT * FROM Activity
                WHERE activity_id != ? AND end_time IS NOT NULL AND start_time >= ?
                ORDER BY start_time ASC, activity_id ASC
                LIMIT 1
                """,
                (anchor.id, to_iso(anchor.start)),
            ).fetchone()
        )
        if succ is not None and succ.start < anchor.end:
            succ.start = anchor.end
            _store_range(conn, succ)
            changes += 1
            if succ.length_ms() < threshold_ms:
                survivor, merged = _merge_pair(conn, anchor, succ)
                if survivor is not None:
                    anchor = survivor
                changes += merged

        # The running activity keeps going; only its start moves past the anchor.
        for row in conn.execute(
            """
            SELECT * FROM Activity
            WHERE activity_id != ? AND end_time IS NULL
              AND start_time >= ? AND start_time < ?
            """,
            (anchor.id, to_iso(anchor.start), to_iso(anchor.end)),
        ).fetchall():
            running = _span_from_row(row)
            running.start = anchor.end
            _store_range(conn, running)
            changes += 1

    _store_range(conn, anchor)
    return NeighborResult(survivor_id=anchor.id, changes=changes)


class IntervalNormalizer(SQLiteStore):
    """
    Owns writes to Activity.start_time/end_time/duration_ms during repair.

    Single writer assumed: nothing else may touch those columns mid-pass.
    """

    def __init__(
        self,
        db_path: str | Path,
        *,
        threshold_seconds: float = DEFAULT_THRESHOLD_SECONDS,
        events=None,
    ) -> None:
        super().__init__(db_path, events=events)
        self.threshold_seconds = float(threshold_seconds)

    def split_day_boundaries(self, activity_id: int) -> bool:
        """True if the activity crossed midnight and was split."""
        with self._tx() as conn:
            created = split_in_conn(conn, activity_id)
        if created:
            self._emit(ACTIVITY_UPDATED)
        return bool(created)

    def normalize_neighbors(self, activity_id: int, threshold_seconds: float | None = None) -> int:
        """
        Resolve overlaps between the activity and its neighbors.

        Returns the number of row changes; 0 on an already consistent timeline.
        """
        threshold = self.threshold_seconds if threshold_seconds is None else float(threshold_seconds)
        with self._tx() as conn:
            result = normalize_in_conn(conn, activity_id, threshold_seconds=threshold)
        if result.changes:
            logger.info(
                "Normalized activity id=%s survivor=%s changes=%s",
                activity_id,
                result.survivor_id,
                result.changes,
            )
            self._emit(ACTIVITY_UPDATED)
        return result.changes

    def normalize(self, activity_id: int, threshold_seconds: float | None = None) -> list[int]:
        """
        split_day_boundaries then normalize_neighbors on every resulting segment.

        Returns the ids of the rows that now carry the activity's time.
        """
        threshold = self.threshold_seconds if threshold_seconds is None else float(threshold_seconds)

        with self._tx() as conn:
            created = split_in_conn(conn, activity_id)

        survivors: list[int] = []
        changed = bool(created)
        for seg_id in [int(activity_id), *created]:
            with self._tx() as conn:
                if _load(conn, seg_id) is None:
                    # Already folded into a neighbor by an earlier segment's pass.
                    continue
                result = normalize_in_conn(conn, seg_id, threshold_seconds=threshold)
            changed = changed or result.changes > 0
            if result.survivor_id not in survivors:
                survivors.append(result.survivor_id)

        if changed:
            self._emit(ACTIVITY_UPDATED)
        return survivors
