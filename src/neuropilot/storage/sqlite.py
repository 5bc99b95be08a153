# src/neuropilot/storage/sqlite.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
from collections.abc import Iterator
from pathlib import Path

from ..errors import NeuroPilotError, StorageError

logger = logging.getLogger(__name__)


def connect(db_path: str | Path) -> sqlite3.Connection:
    """Open a short-lived connection configured the way every store expects."""
    conn = sqlite3.connect(str(db_path), timeout=30.0)
    conn.row_factory = sqlite3.Row
    with contextlib.suppress(sqlite3.Error):
        conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


class SQLiteStore:
    """
    Base for the SQLite-backed stores.

    Thread-safety:
    - each operation opens its own SQLite connection (no shared cursors)

    Schema is owned by storage.migrations; stores never create tables.
    """

    def __init__(self, db_path: str | Path, *, events=None) -> None:
        self._db_path = Path(db_path)
        self._events = events

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _get_conn(self) -> sqlite3.Connection:
        return connect(self._db_path)

    @contextlib.contextmanager
    def _tx(self) -> Iterator[sqlite3.Connection]:
        """
        One transaction per block: commit on success, rollback on any error.

        sqlite3 errors escaping the block are re-raised as StorageError;
        our own errors (validation, conflicts) pass through untouched.
        """
        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except NeuroPilotError:
            conn.rollback()
            raise
        except sqlite3.Error as exc:
            conn.rollback()
            logger.error("SQLite failure db=%s: %s", self._db_path, exc)
            raise StorageError(str(exc)) from exc
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _emit(self, topic: str) -> None:
        if self._events is None:
            return
        self._events.emit(topic)
