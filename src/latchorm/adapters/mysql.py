"""
MySQL database adapter implementation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from ..dialects.mysql import MySQLDialect
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

# ER_LOCK_WAIT_TIMEOUT, ER_LOCK_DEADLOCK, ER_LOCK_NOWAIT
_LOCK_ERRNOS = {1205, 1213, 3572}
# ER_DUP_ENTRY, ER_BAD_NULL_ERROR, ER_ROW_IS_REFERENCED_2, ER_NO_REFERENCED_ROW_2
_CONSTRAINT_ERRNOS = {1062, 1048, 1451, 1452}


def _load_driver():
    try:
        import pymysql  # type: ignore[import-untyped]

        return pymysql
    except ImportError:
        try:
            import MySQLdb

            return MySQLdb
        except ImportError:
            return None


_SSL_QUERY_KEYS = {"ssl_ca": "ca", "ssl_cert": "cert", "ssl_key": "key"}


def _fold_ssl_options(options: dict[str, Any]) -> dict[str, Any]:
    """Gather ``ssl_*`` DSN options into the ``ssl`` mapping PyMySQL expects."""
    ssl = dict(options.pop("ssl", None) or {})
    for key, target in _SSL_QUERY_KEYS.items():
        if key in options:
            ssl[target] = options.pop(key)
    if "ssl_check_hostname" in options:
        raw = str(options.pop("ssl_check_hostname")).strip().lower()
        if raw not in ("true", "false", "1", "0"):
            raise AdapterConfigurationError(f"Invalid value for 'ssl_check_hostname': {raw!r}")
        ssl["check_hostname"] = raw in ("true", "1")
    if ssl:
        options["ssl"] = ssl
    return options


@dataclass
class MySQLConnectionState:
    connection: Any
    config: ConnectionConfig
    driver: Any


class MySQLAdapter(DatabaseAdapter):
    """
    Adapter wrapping a MySQL DB-API driver (PyMySQL or mysqlclient).
    """

    def __init__(self, slow_query_ms: int | None = None) -> None:
        self.dialect = MySQLDialect()
        self._state: MySQLConnectionState | None = None
        self.logger = get_logger("adapters.mysql")
        self.slow_query_ms = resolve_slow_query_ms(default=100, override=slow_query_ms)

    def connect(self, config: ConnectionConfig) -> Any:
        driver = _load_driver()
        if driver is None:
            raise AdapterConfigurationError(
                "PyMySQL or mysqlclient is required to use MySQLAdapter."
            )

        options = _fold_ssl_options(dict(config.options or {}))
        if config.timeout and "connect_timeout" not in options:
            options["connect_timeout"] = int(config.timeout)

        self.logger.info("Connecting to MySQL %s", config.descriptive_label())

        if not config.dsn:
            raise AdapterConfigurationError(
                "ConnectionConfig must be built from a DSN for MySQL connections."
            )

        dsn = config.dsn
        connect_kwargs = {
            "host": dsn.host or "localhost",
            "user": dsn.username,
            "password": dsn.password,
            "database": dsn.database,
            **options,
        }
        if dsn.port:
            connect_kwargs["port"] = dsn.port

        try:
            connection = driver.connect(**connect_kwargs)
        except Exception as exc:
            raise AdapterConnectionError("Failed to connect to MySQL.") from exc
        if hasattr(connection, "autocommit"):
            connection.autocommit(False)

        self._state = MySQLConnectionState(connection, config, driver)
        return connection

    def close(self) -> None:
        if self._state:
            try:
                self._state.connection.close()
            finally:
                self._state = None

    def _ensure_connection(self):
        if not self._state:
            raise AdapterConnectionError("MySQLAdapter is not connected.")
        conn = self._state.connection
        if getattr(conn, "closed", False):
            self.logger.warning("MySQL connection closed; reconnecting.")
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
                "mysql.execute",
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
                "mysql.executemany",
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
        errno = exc.args[0] if exc.args and isinstance(exc.args[0], int) else None
        if errno in _LOCK_ERRNOS:
            return PessimisticLockError(str(exc))
        if errno in _CONSTRAINT_ERRNOS:
            return ConstraintViolationError(str(exc))
        return None

    def begin(self) -> None:
        connection = self._ensure_connection()
        cursor = connection.cursor()
        cursor.execute("START TRANSACTION")

    def commit(self) -> None:
        connection = self._ensure_connection()
        try:
            connection.commit()
        except self._driver_errors() as exc:
            translated = self.translate_error(exc)
            if translated is None:
                raise
            raise translated from exc

    def rollback(self) -> None:
        connection = self._ensure_connection()
        connection.rollback()
