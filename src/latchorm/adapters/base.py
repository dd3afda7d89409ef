"""
Adapter protocol and connection configuration for latchorm.

Sessions own transaction boundaries, so every adapter connects with the
driver's autocommit off and the backend's default isolation level.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Callable, Protocol, Sequence

from ..dialects.base import Dialect
from ..exceptions import PersistenceError
from ..security.dsns import DSNConfig, parse_dsn


class AdapterError(RuntimeError):
    """Base error for adapter-related failures."""


class AdapterConfigurationError(AdapterError):
    """Raised when configuration or required dependencies are invalid."""


class AdapterConnectionError(AdapterError):
    """Raised when establishing or using a connection fails."""


class AdapterExecutionError(AdapterError):
    """Raised when SQL execution or parameter validation fails."""


# DSN query keys with a typed value; anything else is handed to the driver as text.
_TYPED_QUERY_KEYS: dict[str, Callable[[str], Any]] = {
    "timeout": float,
    "connect_timeout": int,
}


def _coerce_query(query: dict[str, str]) -> dict[str, Any]:
    coerced: dict[str, Any] = {}
    for key, raw in query.items():
        convert = _TYPED_QUERY_KEYS.get(key, str)
        try:
            coerced[key] = convert(raw)
        except ValueError as exc:
            raise AdapterConfigurationError(f"Invalid value for '{key}': {raw!r}") from exc
    return coerced


@dataclass
class ConnectionConfig:
    """
    Where to connect and how long to wait.

    ``timeout`` is in seconds: the busy timeout on SQLite and the connect
    timeout on server backends. ``options`` holds driver keyword arguments,
    TLS settings included, passed through from the DSN query string.
    """

    url: str
    timeout: float | None = None
    options: dict[str, Any] | None = None
    dsn: DSNConfig | None = None
    source: str | None = None

    @classmethod
    def from_dsn(cls, dsn: str, **kwargs: Any) -> "ConnectionConfig":
        parsed = parse_dsn(dsn)
        options = _coerce_query(dict(parsed.query))
        timeout = options.pop("timeout", None)
        options.update(kwargs.pop("options", None) or {})
        return cls(
            url=dsn,
            dsn=parsed,
            timeout=kwargs.pop("timeout", timeout),
            options=options or None,
            **kwargs,
        )

    @classmethod
    def from_env(cls, env_var: str, **kwargs: Any) -> "ConnectionConfig":
        value = os.getenv(env_var)
        if not value:
            raise AdapterConfigurationError(f"Environment variable {env_var} is not set")
        return cls.from_dsn(value, source=env_var, **kwargs)

    def redacted_dsn(self) -> str:
        if self.dsn:
            return self.dsn.redacted()
        return self.url

    def descriptive_label(self) -> str:
        """Redacted DSN, prefixed with the environment variable it came from."""
        redacted = self.redacted_dsn()
        if self.source:
            return f"{self.source} ({redacted})"
        return redacted


class DatabaseAdapter(Protocol):
    """
    One driver connection as seen by a session. ``begin``/``commit``/
    ``rollback`` act on the outermost transaction only; savepoints are
    issued as plain statements by the transaction manager.
    """

    dialect: Dialect
    slow_query_ms: int

    def connect(self, config: ConnectionConfig) -> Any: ...

    def close(self) -> None:
        """Idempotent."""

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> Any:
        """Run one statement and return the driver cursor."""

    def executemany(self, sql: str, seq_of_params: Sequence[Sequence[Any]]) -> Any: ...

    def begin(self) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def translate_error(self, exc: Exception) -> PersistenceError | None:
        """
        Map a driver exception onto the persistence error taxonomy, or return
        None when the error has no persistence-level meaning.
        """


def count_pyformat_placeholders(sql: str) -> int:
    """
    Count ``%s`` placeholders, skipping escaped ``%%`` sequences.
    """
    count = 0
    idx = 0
    while idx < len(sql) - 1:
        if sql[idx] == "%" and sql[idx + 1] == "s":
            count += 1
            idx += 2
            continue
        if sql[idx] == "%" and sql[idx + 1] == "%":
            idx += 2
            continue
        idx += 1
    return count


def validate_pyformat_params(sql: str, params: Sequence[Any]) -> None:
    placeholder_count = count_pyformat_placeholders(sql)
    if placeholder_count == 0:
        if params:
            raise AdapterExecutionError("Parameters provided but SQL statement has no placeholders.")
        return
    if placeholder_count != len(params):
        raise AdapterExecutionError(
            f"Parameter count mismatch: expected {placeholder_count}, received {len(params)}."
        )
