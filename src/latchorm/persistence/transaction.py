"""
Transaction manager handling nested transactions and savepoints.
"""

from __future__ import annotations

import itertools
from typing import List

from ..adapters.base import DatabaseAdapter
from ..dialects.base import Dialect


class TransactionError(RuntimeError):
    pass


class TransactionManager:
    """
    Coordinates begin/commit/rollback with optional savepoint support.

    The outermost level maps to a database transaction; each nested level is
    a savepoint. A level is only popped once the backend acknowledged the
    commit, so a failed commit can still be rolled back.
    """

    def __init__(self, adapter: DatabaseAdapter, dialect: Dialect) -> None:
        self.adapter = adapter
        self.dialect = dialect
        self._stack: List[str | None] = []
        self._savepoint_counter = itertools.count(1)

    @property
    def depth(self) -> int:
        return len(self._stack)

    @property
    def active(self) -> bool:
        return bool(self._stack)

    def begin(self) -> None:
        if self.depth == 0:
            self.adapter.begin()
            self._stack.append(None)
            return

        if not self.dialect.capabilities.supports_savepoints:
            raise TransactionError("Nested transactions not supported by current dialect.")

        name = self._next_savepoint_name()
        self.adapter.execute(f"SAVEPOINT {name}")
        self._stack.append(name)

    def commit(self) -> None:
        if self.depth == 0:
            raise TransactionError("No active transaction to commit.")

        savepoint_name = self._stack[-1]
        if savepoint_name is None:
            self.adapter.commit()
        else:
            self.adapter.execute(f"RELEASE SAVEPOINT {savepoint_name}")
        self._stack.pop()

    def rollback(self) -> None:
        if self.depth == 0:
            raise TransactionError("No active transaction to roll back.")

        savepoint_name = self._stack.pop()
        if savepoint_name is None:
            self.adapter.rollback()
            return

        self.adapter.execute(f"ROLLBACK TO SAVEPOINT {savepoint_name}")
        self.adapter.execute(f"RELEASE SAVEPOINT {savepoint_name}")

    def reset(self) -> None:
        """Forget all levels without touching the connection."""
        self._stack.clear()

    def _next_savepoint_name(self) -> str:
        return f"sp_{next(self._savepoint_counter)}"
