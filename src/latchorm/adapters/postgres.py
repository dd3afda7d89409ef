"""
PostgreSQL database adapter implementation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from ..dialects.postgres import PostgresDialect
from ..exceptions import ConstraintViolationError, PersistenceError, PessimisticLockError
from ..security.redaction import redact_params
from ..utils import get_logger, time_call
from ..utils.performance import resolve_slow_query_ms
from .base import (
    AdapterConfigurationError,
    AdapterConnectionError,
    ConnectionConfig,
    DatabaseAdapter,
    validate_pyformat_params,
)

# lock_not_available, deadlock_detected
_LOCK_SQLSTATES = {"55P03", "40P01"}
# integrity_constraint_violation class
_CONSTRAINT_SQLSTATE_CLASS = "23"


def _load_driver():
    try:
        import psycopg

        return psycopg
    except ImportError:
        return None


@dataclass
class PostgresConnectionState:
    connection: Any
    config: ConnectionConfig
    driver: Any


class PostgresAdapter(DatabaseAdapter):
    """
    Adapter wrapping the psycopg PostgreSQL driver.
    """

    def __init__(self, slow_query_ms: int | None = None) -> None:
        self.dialect = PostgresDialect()
        self._state: PostgresConnectionState | None = None
        self.logger = get_logger("adapters.postgres")
        self.slow_query_ms = resolve_slow_query_ms(default=100, override=slow_query_ms)

    def connect(self, config: ConnectionConfig) -> Any:
        driver = _load_driver()
        if driver is None:
            raise AdapterConfigurationError("psycopg is required to use PostgresAdapter.")

        options = dict(config.options or {})
        if config.timeout and "connect_timeout" not in options:
            options["connect_timeout"] = int(config.timeout)

        self.logger.info("Connecting to PostgreSQL %s", config.descriptive_label())

        try:
            connection = driver.connect(config.url, **options)
        except Exception as exc:
            raise AdapterConnectionError("Failed to connect to PostgreSQL.") from exc
        connection.autocommit = False

        self._state = PostgresConnectionState(connection, config, driver)
        return connection

    def close(self) -> None:
        if self._state:
            try:
                self._state.connection.close()
            finally:
                self._state = None

    def _ensure_connection(self):
        if not self._state:
            raise AdapterConnectionError("PostgresAdapter is not connected.")
        conn = self._state.connection
        if getattr(conn, "closed", False):
            self.logger.warning("PostgreSQL connection closed; reconnecting.")
            conn = self.connect(self._state.config)
        return conn

    def _driver_errors(self) -> type[BaseException] | tuple[type[BaseException], ...]:
        if self._state is None:
            return ()
        return getattr(self._state.driver, "Error", ())

    def execute(self, sql: str, params: Sequence[Any] | None = None):
        connection = self._ensure_connection()
        cursor = connection.cursor()
        params = params or ()
        validate_pyformat_params(sql, params)
        try:
            with time_call(
                "postgres.execute",
                self.logger,
                sql=sql,
                params=redact_params(params),
                threshold_ms=self.slow_query_ms,
            ):
                cursor.execute(sql, params)
        except self._driver_errors() as exc:
            translated = self.translate_error(exc)
            if translated is None:
                raise
            raise translated from exc
        return cursor

    def executemany(
        self,
        sql: str,
        seq_of_params: Sequence[Sequence[Any]] | Iterable[Sequence[Any]],
    ):
        connection = self._ensure_connection()
        cursor = connection.cursor()
        seq = list(seq_of_params)
        for params in seq:
            validate_pyformat_params(sql, params)
        try:
            with time_call(
                "postgres.executemany",
                self.logger,
                sql=sql,
                params="bulk",
                threshold_ms=self.slow_query_ms,
            ):
                cursor.executemany(sql, seq)
        except self._driver_errors() as exc:
            translated = self.translate_error(exc)
            if translated is None:
                raise
            raise translated from exc
        return cursor

    @staticmethod
    def translate_error(exc: Exception) -> PersistenceError | None:
        sqlstate = getattr(exc, "sqlstate", None) or getattr(exc, "pgcode", None)
        if not sqlstate:
            return None
        if sqlstate in _LOCK_SQLSTATES:
            return PessimisticLockError(str(exc))
        if sqlstate.startswith(_CONSTRAINT_SQLSTATE_CLASS):
            return ConstraintViolationError(str(exc))
        return None

    def begin(self) -> None:
        connection = self._ensure_connection()
        cursor = connection.cursor()
        cursor.execute("BEGIN")

    def commit(self) -> None:
        connection = self._ensure_connection()
        try:
            connection.commit()
        except self._driver_errors() as exc:
            # Deferred constraints surface at commit time.
            translated = self.translate_error(exc)
            if translated is None:
                raise
            raise translated from exc

    def rollback(self) -> None:
        connection = self._ensure_connection()
        connection.rollback()
