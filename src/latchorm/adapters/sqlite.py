"""
SQLite database adapter implementation.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, Sequence

from ..dialects.sqlite import DEFAULT_BUSY_TIMEOUT_MS, SQLiteDialect
from ..exceptions import ConstraintViolationError, PersistenceError, PessimisticLockError
from ..security.redaction import redact_params
from ..utils import get_logger, time_call
from ..utils.performance import resolve_slow_query_ms
from .base import AdapterConnectionError, ConnectionConfig, DatabaseAdapter

# Store temporal values as ISO-8601 text and parse them back by declared type.
sqlite3.register_adapter(datetime, lambda value: value.isoformat())
sqlite3.register_adapter(date, lambda value: value.isoformat())
sqlite3.register_converter("TIMESTAMP", lambda raw: datetime.fromisoformat(raw.decode()))
sqlite3.register_converter("DATE", lambda raw: date.fromisoformat(raw.decode()))

_LOCKED_MESSAGES = ("database is locked", "database table is locked", "database is busy")


@dataclass(slots=True)
class SQLiteConnectionState:
    connection: sqlite3.Connection
    config: ConnectionConfig


class SQLiteAdapter(DatabaseAdapter):
    """
    Adapter wrapping the Python stdlib sqlite3 module.
    """

    def __init__(self, slow_query_ms: int | None = None) -> None:
        self.dialect = SQLiteDialect()
        self._state: SQLiteConnectionState | None = None
        self.logger = get_logger("adapters.sqlite")
        self.slow_query_ms = resolve_slow_query_ms(default=100, override=slow_query_ms)

    # ------------------------------------------------------------------ #
    # Connection management
    # ------------------------------------------------------------------ #
    def connect(self, config: ConnectionConfig) -> sqlite3.Connection:
        path = self._normalize_path(config.url)
        timeout = (
            config.timeout if config.timeout is not None else DEFAULT_BUSY_TIMEOUT_MS / 1000
        )

        self.logger.info("Connecting to SQLite %s", config.descriptive_label())
        try:
            connection = sqlite3.connect(
                path,
                isolation_level="",
                timeout=timeout,
                detect_types=sqlite3.PARSE_DECLTYPES,
                check_same_thread=False,
            )
        except sqlite3.Error as exc:
            raise AdapterConnectionError(f"Failed to open SQLite database {path!r}.") from exc
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")

        self._state = SQLiteConnectionState(connection, config)
        return connection

    def close(self) -> None:
        if self._state:
            self._state.connection.close()
            self._state = None

    def _ensure_connection(self) -> sqlite3.Connection:
        if not self._state:
            raise AdapterConnectionError("SQLiteAdapter is not connected.")
        return self._state.connection

    # ------------------------------------------------------------------ #
    # Execution helpers
    # ------------------------------------------------------------------ #
    def execute(self, sql: str, params: Sequence[Any] | None = None) -> sqlite3.Cursor:
        connection = self._ensure_connection()
        cursor = connection.cursor()
        params = params or ()
        try:
            with time_call(
                "sqlite.execute",
                self.logger,
                sql=sql,
                params=redact_params(params),
                threshold_ms=self.slow_query_ms,
            ):
                cursor.execute(sql, params)
        except sqlite3.Error as exc:
            translated = self.translate_error(exc)
            if translated is None:
                raise
            raise translated from exc
        return cursor

    def executemany(
        self, sql: str, seq_of_params: Sequence[Sequence[Any]] | Iterable[Sequence[Any]]
    ) -> sqlite3.Cursor:
        connection = self._ensure_connection()
        cursor = connection.cursor()
        try:
            with time_call(
                "sqlite.executemany",
                self.logger,
                sql=sql,
                params="bulk",
                threshold_ms=self.slow_query_ms,
            ):
                cursor.executemany(sql, seq_of_params)
        except sqlite3.Error as exc:
            translated = self.translate_error(exc)
            if translated is None:
                raise
            raise translated from exc
        return cursor

    @staticmethod
    def translate_error(exc: Exception) -> PersistenceError | None:
        """
        Map sqlite3 failures onto the persistence error taxonomy.

        SQLite reports lock contention as an OperationalError once the busy
        timeout elapses; the write lock is what the emulated row lock takes.
        """
        if isinstance(exc, sqlite3.IntegrityError):
            return ConstraintViolationError(str(exc))
        if isinstance(exc, sqlite3.OperationalError):
            message = str(exc).lower()
            if any(token in message for token in _LOCKED_MESSAGES):
                return PessimisticLockError(str(exc))
        return None

    # ------------------------------------------------------------------ #
    # Transactions
    # ------------------------------------------------------------------ #
    def begin(self) -> None:
        connection = self._ensure_connection()
        if connection.in_transaction:
            return
        connection.execute("BEGIN")

    def commit(self) -> None:
        connection = self._ensure_connection()
        try:
            connection.commit()
        except sqlite3.Error as exc:
            translated = self.translate_error(exc)
            if translated is None:
                raise
            raise translated from exc

    def rollback(self) -> None:
        connection = self._ensure_connection()
        connection.rollback()

    # ------------------------------------------------------------------ #
    @staticmethod
    def _normalize_path(url: str) -> str:
        if url == "sqlite:///:memory:":
            return ":memory:"
        prefix = "sqlite:///"
        if url.startswith(prefix):
            return url[len(prefix) :]
        return url
