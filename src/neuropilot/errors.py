# src/neuropilot/errors.py

"""
Error kinds raised by the stores and engines.

Callers can catch NeuroPilotError for "anything this layer rejected" and the
concrete subclasses when they need to present a corrective action.
"""

from __future__ import annotations

from typing import Any


class NeuroPilotError(Exception):
    """Base class for all errors raised by this package."""


class ValidationError(NeuroPilotError):
    """Missing required field or invalid value. Never retried."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class NotFoundError(NeuroPilotError):
    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class UniquenessConflict(NeuroPilotError):
    """A unique key (ActionClass name, DailyForm date, ...) is already taken."""

    def __init__(self, entity: str, field: str, value: Any) -> None:
        super().__init__(f"{entity}.{field} already exists: {value!r}")
        self.entity = entity
        self.field = field
        self.value = value


class ReferentialConflict(NeuroPilotError):
    """Delete blocked because other rows still reference the entity."""

    def __init__(self, entity: str, entity_id: Any, *, relation: str, count: int) -> None:
        super().__init__(
            f"cannot delete {entity} {entity_id}: referenced by {count} {relation} row(s)"
        )
        self.entity = entity
        self.entity_id = entity_id
        self.relation = relation
        self.count = count


class CapacityError(NeuroPilotError):
    """A capacity constraint (e.g. the in-progress WIP limit) is already reached."""

    def __init__(self, constraint: str, limit: int) -> None:
        super().__init__(f"{constraint}: limit of {limit} reached")
        self.constraint = constraint
        self.limit = limit


class StorageError(NeuroPilotError):
    """The underlying SQLite engine failed. Not retried by this layer."""


class MigrationError(StorageError):
    """A migration statement failed while strict mode was on."""

    def __init__(self, version: int, statement: str, error: str) -> None:
        super().__init__(f"migration {version} failed: {error}")
        self.version = version
        self.statement = statement
        self.error = error
