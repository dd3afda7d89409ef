"""
latchorm public package initialization.

A transactional entity cache over SQLite, PostgreSQL and MySQL: an identity
map and unit of work per transaction, with optimistic (version column) and
pessimistic (row lock) concurrency control.
"""

from .core.model import Model, ModelConfigurationError  # noqa: F401
from .core.fields import (
    BooleanField,
    DateField,
    DateTimeField,
    FloatField,
    IntegerField,
    StringField,
    UUIDField,
    VersionField,
)  # noqa: F401
from .exceptions import (  # noqa: F401
    ConstraintViolationError,
    InvalidStateError,
    NotFoundError,
    OptimisticLockError,
    PersistenceError,
    PessimisticLockError,
    UnsupportedLockModeError,
)
from .hooks import hooks  # noqa: F401
from .persistence import LockMode, Session, SessionOptions  # noqa: F401
from .query import Q, QuerySet  # noqa: F401
from .repository import Repository  # noqa: F401
from .schema import SchemaBuilder  # noqa: F401
from .validation import ValidationError  # noqa: F401

__all__ = [
    "Model",
    "BooleanField",
    "DateField",
    "DateTimeField",
    "FloatField",
    "IntegerField",
    "StringField",
    "UUIDField",
    "VersionField",
    "ModelConfigurationError",
    "PersistenceError",
    "NotFoundError",
    "OptimisticLockError",
    "PessimisticLockError",
    "InvalidStateError",
    "ConstraintViolationError",
    "UnsupportedLockModeError",
    "Session",
    "SessionOptions",
    "LockMode",
    "QuerySet",
    "Q",
    "Repository",
    "SchemaBuilder",
    "ValidationError",
    "hooks",
]
