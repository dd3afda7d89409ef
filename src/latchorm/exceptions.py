"""
Persistence error taxonomy shared by sessions, lock handling, and adapters.

Adapters translate driver-specific failures into these types so callers can
react to concurrency conflicts without knowing which backend is in use.
"""

from __future__ import annotations

from typing import Any


class PersistenceError(RuntimeError):
    """Base error for failures raised by the persistence layer."""


class NotFoundError(PersistenceError):
    """Raised when an operation requires a row that does not exist."""

    def __init__(self, model: type | None, identifier: Any, message: str | None = None) -> None:
        self.model = model
        self.identifier = identifier
        if message is None:
            name = model.__name__ if model is not None else "entity"
            message = f"No class {name} entity with id {identifier} exists!"
        super().__init__(message)


class OptimisticLockError(PersistenceError):
    """
    Raised when the stored version no longer matches the version read by the
    current unit of work, or when the row vanished underneath it.
    """

    def __init__(self, model: type | None, identifier: Any, message: str | None = None) -> None:
        self.model = model
        self.identifier = identifier
        if message is None:
            name = model.__name__ if model is not None else "entity"
            message = (
                f"Row was updated or deleted by another transaction "
                f"(or unsaved-value mapping was incorrect): [{name}#{identifier}]"
            )
        super().__init__(message)


class PessimisticLockError(PersistenceError):
    """Raised when a row lock cannot be acquired within the allowed time."""


class InvalidStateError(PersistenceError):
    """Raised when an entity removed in this unit of work is saved or deleted again."""

    def __init__(self, message: str, entity: Any = None) -> None:
        self.entity = entity
        super().__init__(message)


class ConstraintViolationError(PersistenceError):
    """Raised when the database rejects a statement because of an integrity constraint."""


class UnsupportedLockModeError(PersistenceError):
    """Raised when a lock mode cannot be honoured for a model or dialect."""


__all__ = [
    "PersistenceError",
    "NotFoundError",
    "OptimisticLockError",
    "PessimisticLockError",
    "InvalidStateError",
    "ConstraintViolationError",
    "UnsupportedLockModeError",
]
