# src/neuropilot/storage/migrations.py

"""
Forward-only schema migrations.

MIGRATIONS is append-only: never edit a released entry, add a new one with a
higher version instead. Each migration runs inside one transaction and its
version is recorded in SchemaVersion once all of its statements were
attempted.

A failing statement is logged and skipped by default (this tolerates
"duplicate column name" after a partially applied run). Skips are returned in
the MigrationReport so the caller can alert on them; strict=True makes the
first failure fatal instead.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from ..errors import MigrationError, StorageError
from .sqlite import connect

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Migration:
    version: int
    statements: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class SkippedStatement:
    version: int
    index: int
    statement: str
    error: str


@dataclass(slots=True)
class MigrationReport:
    from_version: int
    to_version: int
    applied: list[int] = field(default_factory=list)
    skipped_statements: list[SkippedStatement] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.skipped_statements


MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        version=1,
        statements=(
            "CREATE TABLE IF NOT EXISTS Users (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT, email TEXT)",
            """
            CREATE TABLE IF NOT EXISTS ActionClass (
                action_class_id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS Activity (
                activity_id INTEGER PRIMARY KEY AUTOINCREMENT,
                action_class_id INTEGER NOT NULL,
                start_time TEXT NOT NULL,
                end_time TEXT,
                description TEXT,
                duration_ms INTEGER,
                FOREIGN KEY(action_class_id) REFERENCES ActionClass(action_class_id)
            )
            """,
            "INSERT INTO ActionClass (name) SELECT 'General' WHERE NOT EXISTS (SELECT 1 FROM ActionClass)",
        ),
    ),
    Migration(
        version=2,
        statements=(
            "ALTER TABLE ActionClass ADD COLUMN color TEXT DEFAULT '#2196F3'",
            "UPDATE ActionClass SET color = '#2196F3' WHERE color IS NULL",
        ),
    ),
    Migration(
        version=3,
        statements=(
            """
            CREATE TABLE IF NOT EXISTS Task (
                task_id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                description TEXT,
                due_date TEXT,
                completed INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL DEFAULT (datetime('now')),
                updated_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
            """,
            "CREATE INDEX IF NOT EXISTS idx_task_due_date ON Task(due_date)",
            "CREATE INDEX IF NOT EXISTS idx_task_completed ON Task(completed)",
        ),
    ),
    Migration(
        version=4,
        statements=(
            # Legacy inline repetition; superseded by RecurringTemplate (v7).
            "ALTER TABLE Task ADD COLUMN repetition_type TEXT DEFAULT NULL",
            "ALTER TABLE Task ADD COLUMN repetition_days TEXT DEFAULT NULL",
        ),
    ),
    Migration(
        version=5,
        statements=(
            """
            CREATE TABLE IF NOT EXISTS DailyForm (
                form_id INTEGER PRIMARY KEY AUTOINCREMENT,
                form_date TEXT NOT NULL UNIQUE,
                mood INTEGER,
                thoughts TEXT,
                highlights TEXT,
                gratitude TEXT,
                poop_time TEXT,
                poop_quality INTEGER,
                additional_fields TEXT,
                updated_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
            """,
        ),
    ),
    Migration(
        version=6,
        statements=(
            "ALTER TABLE ActionClass ADD COLUMN emoji TEXT",
            "ALTER TABLE Task ADD COLUMN status TEXT NOT NULL DEFAULT 'todo'",
            "ALTER TABLE Task ADD COLUMN priority INTEGER NOT NULL DEFAULT 3",
            "ALTER TABLE Task ADD COLUMN action_class_id INTEGER REFERENCES ActionClass(action_class_id)",
            "ALTER TABLE Task ADD COLUMN start_date TEXT",
            "ALTER TABLE Task ADD COLUMN start_time TEXT",
            "ALTER TABLE Task ADD COLUMN due_time TEXT",
            "ALTER TABLE Task ADD COLUMN sort_order INTEGER NOT NULL DEFAULT 0",
            "ALTER TABLE Task ADD COLUMN reminder_notification_id TEXT",
            "UPDATE Task SET status = 'done' WHERE completed = 1",
            "UPDATE Task SET sort_order = task_id",
            "CREATE INDEX IF NOT EXISTS idx_task_status_sort ON Task(status, sort_order)",
        ),
    ),
    Migration(
        version=7,
        statements=(
            """
            CREATE TABLE IF NOT EXISTS RecurringTemplate (
                template_id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                description TEXT,
                pattern_type TEXT NOT NULL,
                pattern_days TEXT,
                every_other_seed TEXT,
                active INTEGER NOT NULL DEFAULT 1,
                priority INTEGER NOT NULL DEFAULT 3,
                action_class_id INTEGER REFERENCES ActionClass(action_class_id),
                due_time TEXT,
                created_at TEXT NOT NULL DEFAULT (datetime('now')),
                updated_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
            """,
            "ALTER TABLE Task ADD COLUMN template_id INTEGER REFERENCES RecurringTemplate(template_id)",
            "ALTER TABLE Task ADD COLUMN is_generated INTEGER NOT NULL DEFAULT 0",
            "ALTER TABLE Task ADD COLUMN source_generation_date TEXT",
            "CREATE INDEX IF NOT EXISTS idx_task_template_due ON Task(template_id, due_date)",
        ),
    ),
    Migration(
        version=8,
        statements=(
            """
            CREATE TABLE IF NOT EXISTS Preference (
                pref_key TEXT PRIMARY KEY,
                pref_value TEXT
            )
            """,
        ),
    ),
    Migration(
        version=9,
        statements=(
            "CREATE INDEX IF NOT EXISTS idx_activity_start ON Activity(start_time)",
            "CREATE INDEX IF NOT EXISTS idx_activity_end ON Activity(end_time)",
        ),
    ),
)


def latest_version(migrations: Sequence[Migration] = MIGRATIONS) -> int:
    return migrations[-1].version if migrations else 0


def validate_migrations(migrations: Sequence[Migration]) -> None:
    """Versions must be positive and strictly increasing in declaration order."""
    prev = 0
    for m in migrations:
        if m.version <= 0:
            raise ValueError(f"migration version must be > 0, got {m.version}")
        if m.version <= prev:
            raise ValueError(f"migration versions must strictly increase: {prev} then {m.version}")
        prev = m.version


def _ensure_version_table(conn: sqlite3.Connection) -> None:
    conn.execute("CREATE TABLE IF NOT EXISTS SchemaVersion (version INTEGER NOT NULL)")


def _read_version(conn: sqlite3.Connection) -> int:
    row = conn.execute("SELECT MAX(version) AS v FROM SchemaVersion").fetchone()
    return int(row["v"]) if row and row["v"] is not None else 0


def current_version(db_path: str | Path) -> int:
    conn = connect(db_path)
    try:
        _ensure_version_table(conn)
        return _read_version(conn)
    finally:
        conn.close()


def _apply_one(
    conn: sqlite3.Connection,
    migration: Migration,
    report: MigrationReport,
    *,
    strict: bool,
) -> None:
    conn.execute("BEGIN")
    try:
        for idx, stmt in enumerate(migration.statements):
            try:
                conn.execute(stmt)
            except sqlite3.Error as exc:
                if strict:
                    raise MigrationError(migration.version, stmt, str(exc)) from exc
                logger.warning(
                    "Migration %s statement #%s failed, skipping: %s",
                    migration.version,
                    idx,
                    exc,
                )
                report.skipped_statements.append(
                    SkippedStatement(
                        version=migration.version,
                        index=idx,
                        statement=" ".join(stmt.split()),
                        error=str(exc),
                    )
                )
        conn.execute("INSERT INTO SchemaVersion (version) VALUES (?)", (migration.version,))
        conn.execute("COMMIT")
    except BaseException:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise


def apply_all_pending(
    db_path: str | Path,
    migrations: Sequence[Migration] = MIGRATIONS,
    *,
    strict: bool = False,
) -> MigrationReport:
    """
    Bring the database at db_path up to the latest migration.

    Idempotent: with nothing pending it only reads SchemaVersion.
    """
    validate_migrations(migrations)

    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = connect(db_path)
    # Explicit BEGIN/COMMIT per migration; DDL must not autocommit on its own.
    conn.isolation_level = None
    try:
        _ensure_version_table(conn)
        current = _read_version(conn)
        report = MigrationReport(from_version=current, to_version=current)

        pending = sorted((m for m in migrations if m.version > current), key=lambda m: m.version)
        if not pending:
            logger.debug("Schema up to date db=%s version=%s", db_path, current)
            return report

        for m in pending:
            _apply_one(conn, m, report, strict=strict)
            report.applied.append(m.version)
            report.to_version = m.version
            logger.info("Applied migration %s db=%s", m.version, db_path)

        if report.skipped_statements:
            logger.warning(
                "Migrations %s..%s finished with %d skipped statement(s); schema may have drifted",
                report.from_version,
                report.to_version,
                len(report.skipped_statements),
            )
        return report
    except sqlite3.Error as exc:
        raise StorageError(str(exc)) from exc
    finally:
        conn.close()
