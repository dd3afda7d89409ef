"""
Dialect strategy interfaces describing SQL compilation behaviors.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class DialectCapabilities:
    """
    Feature flags describing backend capabilities.
    """

    supports_returning: bool = False
    supports_savepoints: bool = True
    supports_schema_namespaces: bool = False
    supports_row_locks: bool = True
    supports_shared_locks: bool = True
    supports_nowait: bool = True
    lock_failure_aborts_transaction: bool = False


class Dialect(Protocol):
    """
    Strategy interface consumed across query, schema, locking, and adapter layers.
    """

    @property
    def name(self) -> str: ...

    @property
    def param_style(self) -> str: ...

    @property
    def capabilities(self) -> DialectCapabilities: ...

    def quote_identifier(self, identifier: str) -> str: ...

    def format_table(self, table_name: str) -> str: ...

    def limit_clause(self, limit: int | None, offset: int | None) -> str: ...

    def parameter_placeholder(self, position: int | None = None) -> str: ...

    def render_column_definition(self, column: str, column_type: str, *, nullable: bool) -> str: ...

    def lock_clause(self, *, shared: bool = False, nowait: bool = False) -> str:
        """
        Suffix appended to a SELECT to lock the returned rows, or ``""`` when
        the backend has no row-level locking.
        """
        ...

    def lock_timeout_sql(self, timeout_ms: int) -> str | None:
        """
        Statement bounding how long the next lock acquisition may wait.
        """
        ...

    def current_lock_timeout_sql(self) -> str | None:
        """
        Query returning the lock wait in force, in milliseconds, when the
        backend keeps it across transactions; ``None`` otherwise.
        """
        ...

    def reset_lock_timeout_sql(self, previous_ms: int | None = None) -> str | None:
        """
        Statement restoring the lock wait after a bounded lock: ``previous_ms``
        when it was read beforehand, else the backend default.
        """
        ...
