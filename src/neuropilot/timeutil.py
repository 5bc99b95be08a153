# src/neuropilot/timeutil.py

"""
Timestamp/date helpers shared by the stores.

Stored format: ISO-8601 UTC with millisecond precision and a trailing 'Z'
(2024-06-01T23:00:00.000Z). Fixed width keeps lexical order == time order,
so range queries can compare the TEXT columns directly.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta

from .errors import ValidationError

DAY = timedelta(days=1)


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_iso(dt: datetime) -> str:
    dt = ensure_utc(dt)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def parse_iso(raw: str | datetime, *, field: str = "timestamp") -> datetime:
    if isinstance(raw, datetime):
        return ensure_utc(raw)
    s = (raw or "").strip()
    if not s:
        raise ValidationError(field, "timestamp is required")
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(s))
    except ValueError as exc:
        raise ValidationError(field, f"invalid timestamp {raw!r}") from exc


def parse_date(raw: str | date, *, field: str = "date") -> date:
    if isinstance(raw, datetime):
        return ensure_utc(raw).date()
    if isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat((raw or "").strip())
    except ValueError as exc:
        raise ValidationError(field, f"invalid date {raw!r}") from exc


def parse_time_of_day(raw: str | time, *, field: str = "time") -> time:
    if isinstance(raw, time):
        return raw
    try:
        return time.fromisoformat((raw or "").strip())
    except ValueError as exc:
        raise ValidationError(field, f"invalid time {raw!r}") from exc


def start_of_day(dt: datetime) -> datetime:
    dt = ensure_utc(dt)
    return datetime.combine(dt.date(), time.min, tzinfo=UTC)


def next_midnight(dt: datetime) -> datetime:
    """First UTC midnight strictly after dt."""
    return start_of_day(dt) + DAY


def duration_ms(start: datetime, end: datetime | None) -> int | None:
    if end is None:
        return None
    return int(round((end - start).total_seconds() * 1000))


def weekday_number(d: date) -> int:
    """0=Sunday .. 6=Saturday."""
    return d.isoweekday() % 7
