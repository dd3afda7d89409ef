"""
Lock modes and the per-dialect strategy used to honour them.

Pessimistic modes are enforced by the database while the row is read.
Optimistic modes are recorded on the unit of work and enforced by the flush
coordinator: forced increments at flush, version re-reads at flush (OPTIMISTIC)
or at commit (READ).
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, Type

from ..core.model import Model
from ..exceptions import OptimisticLockError, PessimisticLockError, UnsupportedLockModeError
from ..utils import get_logger
from .rows import first_value, row_to_dict

if TYPE_CHECKING:
    from .session import Session


class LockMode(Enum):
    NONE = "none"
    PESSIMISTIC_WRITE = "pessimistic_write"
    PESSIMISTIC_READ = "pessimistic_read"
    PESSIMISTIC_FORCE_INCREMENT = "pessimistic_force_increment"
    WRITE = "write"
    READ = "read"
    OPTIMISTIC = "optimistic"
    OPTIMISTIC_FORCE_INCREMENT = "optimistic_force_increment"

    @property
    def is_pessimistic(self) -> bool:
        return self in (
            LockMode.PESSIMISTIC_WRITE,
            LockMode.PESSIMISTIC_READ,
            LockMode.PESSIMISTIC_FORCE_INCREMENT,
        )

    @property
    def requires_version(self) -> bool:
        return self not in (LockMode.NONE, LockMode.PESSIMISTIC_WRITE, LockMode.PESSIMISTIC_READ)

    @classmethod
    def coerce(cls, value: "LockMode | str | None") -> "LockMode":
        if value is None:
            return cls.NONE
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            try:
                return cls[str(value).upper()]
            except KeyError as exc:
                raise ValueError(f"Unknown lock mode {value!r}") from exc


class LockManager:
    """
    Executes lock acquisition for a session.

    Backends with row locks get ``SELECT ... FOR UPDATE``/``FOR SHARE``.
    Backends without them (SQLite) emulate an exclusive lock with a no-op
    ``UPDATE`` on the row, which takes the database write lock until the
    transaction ends.
    """

    def __init__(self, session: "Session") -> None:
        self.session = session
        self.logger = get_logger("persistence.locking")

    @property
    def dialect(self):
        return self.session.dialect

    # ------------------------------------------------------------------ #
    def load(
        self,
        model: Type[Model],
        pk: Any,
        mode: LockMode,
        timeout: Optional[int] = None,
    ) -> Optional[Model]:
        """
        Read ``model`` row ``pk`` under ``mode`` and return an unmanaged
        instance, or ``None`` when the row does not exist.
        """
        self._check_supported(model, mode)
        if mode.is_pessimistic:
            row = self._acquire(model, pk, mode, timeout)
        else:
            row = self.fetch_row(model, pk)
        if row is None:
            return None
        return model.from_row(row)

    def apply(self, instance: Model, mode: LockMode, *, timeout: Optional[int] = None, loaded: bool) -> None:
        """
        Register ``mode`` for a managed instance.

        ``loaded`` is true when the row was just read under the lock; otherwise
        a pessimistic mode acquires the lock now and verifies that the stored
        version still matches the in-memory one.
        """
        model = instance.__class__
        self._check_supported(model, mode)
        if mode is LockMode.NONE:
            return
        if mode.is_pessimistic and not loaded:
            row = self._acquire(model, instance.pk, mode, timeout)
            self._verify_row(instance, row)
        if mode is LockMode.PESSIMISTIC_FORCE_INCREMENT:
            self.session.flusher.increment_version(instance)
        self.session.unit_of_work.register_lock(instance, mode)
        self.logger.debug("Registered %s lock on %s#%s", mode.name, model.__name__, instance.pk)

    # ------------------------------------------------------------------ #
    def fetch_row(self, model: Type[Model], pk: Any, *, lock_clause: str = "") -> Optional[dict[str, Any]]:
        sql = self.select_sql(model, lock_clause=lock_clause)
        cursor = self.session.execute(sql, (pk,))
        row = cursor.fetchone()
        if row is None:
            return None
        return row_to_dict(cursor, row)

    def select_sql(self, model: Type[Model], *, lock_clause: str = "") -> str:
        dialect = self.dialect
        pk_field = model._meta.primary_key
        select_list = ", ".join(
            dialect.quote_identifier(field.column_name()) for field in model._meta.get_fields()
        )
        table = dialect.format_table(model._meta.table)
        sql = (
            f"SELECT {select_list} FROM {table} "
            f"WHERE {dialect.quote_identifier(pk_field.column_name())} = {dialect.parameter_placeholder()}"
        )
        if lock_clause:
            sql = f"{sql} {lock_clause}"
        return sql

    def _acquire(
        self, model: Type[Model], pk: Any, mode: LockMode, timeout: Optional[int]
    ) -> Optional[dict[str, Any]]:
        dialect = self.dialect
        capabilities = dialect.capabilities
        shared = self._use_shared_lock(mode)
        timeout_ms = timeout if timeout is not None else self.session.options.lock_timeout_ms
        if timeout_ms is not None and timeout_ms < 0:
            raise ValueError("Lock timeout must be non-negative.")
        nowait = timeout_ms == 0 and capabilities.supports_nowait
        bounded = timeout_ms is not None and not nowait

        previous_ms = None
        if bounded:
            previous_ms = self._current_lock_timeout()
            self._execute_optional(dialect.lock_timeout_sql(timeout_ms))
        try:
            if capabilities.supports_row_locks:
                row = self.fetch_row(
                    model, pk, lock_clause=dialect.lock_clause(shared=shared, nowait=nowait)
                )
            else:
                row = self._emulated_exclusive_lock(model, pk)
        except PessimisticLockError:
            self.logger.warning(
                "Could not lock %s#%s in %s mode (timeout=%sms)",
                model.__name__,
                pk,
                mode.name,
                timeout_ms,
            )
            if bounded and not capabilities.lock_failure_aborts_transaction:
                self._execute_optional(dialect.reset_lock_timeout_sql(previous_ms))
            raise
        if bounded:
            self._execute_optional(dialect.reset_lock_timeout_sql(previous_ms))
        self.logger.debug(
            "Acquired %s lock on %s#%s (shared=%s, nowait=%s)",
            mode.name,
            model.__name__,
            pk,
            shared,
            nowait,
        )
        return row

    def _emulated_exclusive_lock(self, model: Type[Model], pk: Any) -> Optional[dict[str, Any]]:
        dialect = self.dialect
        pk_column = dialect.quote_identifier(model._meta.primary_key.column_name())
        table = dialect.format_table(model._meta.table)
        cursor = self.session.execute(
            f"UPDATE {table} SET {pk_column} = {pk_column} "
            f"WHERE {pk_column} = {dialect.parameter_placeholder()}",
            (pk,),
        )
        if cursor.rowcount == 0:
            return None
        return self.fetch_row(model, pk)

    def _use_shared_lock(self, mode: LockMode) -> bool:
        if mode is not LockMode.PESSIMISTIC_READ:
            return False
        if self.dialect.capabilities.supports_shared_locks:
            return True
        if self.session.options.shared_lock_fallback == "error":
            raise UnsupportedLockModeError(
                f"{self.dialect.name} has no shared row locks; PESSIMISTIC_READ is unavailable"
            )
        self.logger.info(
            "%s has no shared row locks; escalating PESSIMISTIC_READ to an exclusive lock",
            self.dialect.name,
        )
        return False

    def _check_supported(self, model: Type[Model], mode: LockMode) -> None:
        if mode.requires_version and not model._meta.versioned:
            raise UnsupportedLockModeError(
                f"{mode.name} requires a version field but {model.__name__} does not declare one"
            )

    def _verify_row(self, instance: Model, row: Optional[dict[str, Any]]) -> None:
        model = instance.__class__
        if row is None:
            raise OptimisticLockError(model, instance.pk)
        version_field = model._meta.version_field
        if version_field is None:
            return
        stored = row.get(version_field.column_name())
        if stored != instance.get_version():
            self.logger.warning(
                "Stale %s#%s: stored version %s, in-memory version %s",
                model.__name__,
                instance.pk,
                stored,
                instance.get_version(),
            )
            raise OptimisticLockError(model, instance.pk)

    def _execute_optional(self, sql: Optional[str]) -> None:
        if sql:
            self.session.execute(sql)

    def _current_lock_timeout(self) -> Optional[int]:
        sql = self.dialect.current_lock_timeout_sql()
        if not sql:
            return None
        value = first_value(self.session.execute(sql).fetchone())
        return None if value is None else int(value)
