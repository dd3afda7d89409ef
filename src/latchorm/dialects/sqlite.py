"""
SQLite dialect implementation.
"""

from __future__ import annotations

from typing import Final

from .base import Dialect, DialectCapabilities

#: Busy timeout applied by SQLiteAdapter when the connection config sets none.
DEFAULT_BUSY_TIMEOUT_MS: Final[int] = 5000


class SQLiteDialect:
    """
    SQLite dialect using qmark param style and minimal capabilities.

    SQLite locks the whole database rather than rows, so there is no lock
    clause; exclusive row locks are emulated by the lock manager with a no-op
    write that takes the database write lock.
    """

    name: Final[str] = "sqlite"
    param_style: Final[str] = "qmark"
    capabilities: Final[DialectCapabilities] = DialectCapabilities(
        supports_returning=False,
        supports_savepoints=True,
        supports_schema_namespaces=False,
        supports_row_locks=False,
        supports_shared_locks=False,
        supports_nowait=False,
    )

    def quote_identifier(self, identifier: str) -> str:
        escaped = identifier.replace('"', '""')
        return f'"{escaped}"'

    def format_table(self, table_name: str) -> str:
        return self.quote_identifier(table_name)

    def limit_clause(self, limit: int | None, offset: int | None) -> str:
        parts: list[str] = []
        if limit is not None:
            parts.append(f"LIMIT {limit}")
        if offset is not None:
            if limit is None:
                parts.append("LIMIT -1")
            parts.append(f"OFFSET {offset}")
        return " ".join(parts)

    def parameter_placeholder(self, position: int | None = None) -> str:
        return "?"

    def render_column_definition(self, column: str, column_type: str, *, nullable: bool) -> str:
        null_clause = "" if nullable else " NOT NULL"
        return f"{self.quote_identifier(column)} {column_type}{null_clause}"

    # Row locking -------------------------------------------------------
    def lock_clause(self, *, shared: bool = False, nowait: bool = False) -> str:
        return ""

    def lock_timeout_sql(self, timeout_ms: int) -> str | None:
        return f"PRAGMA busy_timeout = {int(timeout_ms)}"

    def current_lock_timeout_sql(self) -> str | None:
        return "PRAGMA busy_timeout"

    def reset_lock_timeout_sql(self, previous_ms: int | None = None) -> str | None:
        restored = DEFAULT_BUSY_TIMEOUT_MS if previous_ms is None else previous_ms
        return f"PRAGMA busy_timeout = {int(restored)}"


def get_sqlite_dialect() -> Dialect:
    return SQLiteDialect()
