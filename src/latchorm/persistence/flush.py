"""
Flush coordinator turning unit-of-work state into ordered SQL.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, List

from ..core.model import Model
from ..exceptions import OptimisticLockError
from ..utils import get_logger
from .rows import first_value

if TYPE_CHECKING:
    from .session import Session


@dataclass
class FlushResult:
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    verified: int = 0

    @property
    def statements(self) -> int:
        return self.inserted + self.updated + self.deleted


class FlushCoordinator:
    """
    Writes pending changes in a fixed order: inserts, updates (including
    forced version increments), deletes, then optimistic version checks.

    Every UPDATE and DELETE of a versioned model is conditional on the version
    read by this transaction; zero affected rows means another transaction got
    there first.
    """

    def __init__(self, session: "Session") -> None:
        self.session = session
        self.logger = get_logger("persistence.flush")

    @property
    def dialect(self):
        return self.session.dialect

    def flush(self, *, at_commit: bool = False) -> FlushResult:
        uow = self.session.unit_of_work
        uow.collect_dirty(self.session.identity_map.values())
        result = FlushResult()

        for instance in list(uow.new):
            self._insert(instance)
            del uow.new[instance]
            result.inserted += 1

        pending = list(uow.dirty)
        pending.extend(i for i in uow.pending_increments if i not in uow.dirty)
        for instance in pending:
            force = instance in uow.pending_increments
            if self._update(instance, force=force):
                result.updated += 1
            uow.dirty.pop(instance, None)
            uow.pending_increments.pop(instance, None)

        for instance in list(uow.deleted):
            self._delete(instance)
            del uow.deleted[instance]
            result.deleted += 1

        for instance in uow.verification_targets(at_commit=at_commit):
            self.verify_version(instance)
            result.verified += 1

        if result.statements or result.verified:
            self.logger.debug(
                "Flushed %s insert(s), %s update(s), %s delete(s); verified %s version(s)",
                result.inserted,
                result.updated,
                result.deleted,
                result.verified,
            )
        return result

    # ------------------------------------------------------------------ #
    # Statements
    # ------------------------------------------------------------------ #
    def _insert(self, instance: Model) -> None:
        session = self.session
        self._validate(instance)
        session.hooks.fire("before_save", instance, session=session, created=True)
        dialect = self.dialect
        columns: List[str] = []
        params: List[Any] = []
        for field in instance._meta.get_fields():
            columns.append(dialect.quote_identifier(field.column_name()))
            params.append(getattr(instance, field.require_name(), None))
        placeholders = ", ".join(dialect.parameter_placeholder() for _ in columns)
        table = dialect.format_table(instance._meta.table)
        session.execute(
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})", params
        )
        session.unit_of_work.snapshot(instance)
        session.hooks.fire("after_save", instance, session=session, created=True)

    def _update(self, instance: Model, *, force: bool) -> bool:
        session = self.session
        changed = instance.changed_fields()
        if not changed:
            if force:
                self.increment_version(instance)
                return True
            return False

        self._validate(instance)
        session.hooks.fire("before_save", instance, session=session, created=False)
        dialect = self.dialect
        set_clauses: List[str] = []
        params: List[Any] = []
        for field in changed:
            set_clauses.append(
                f"{dialect.quote_identifier(field.column_name())} = {dialect.parameter_placeholder()}"
            )
            params.append(getattr(instance, field.require_name()))
        version_field = instance._meta.version_field
        if version_field is not None:
            column = dialect.quote_identifier(version_field.column_name())
            set_clauses.append(f"{column} = {column} + 1")
        where_sql, where_params = self._identity_predicate(instance)
        params.extend(where_params)
        table = dialect.format_table(instance._meta.table)
        cursor = session.execute(
            f"UPDATE {table} SET {', '.join(set_clauses)} WHERE {where_sql}", params
        )
        self._check_rowcount(cursor, instance)
        self._advance_version(instance)
        session.unit_of_work.snapshot(instance)
        session.hooks.fire("after_save", instance, session=session, created=False)
        return True

    def _delete(self, instance: Model) -> None:
        session = self.session
        session.hooks.fire("before_delete", instance, session=session)
        where_sql, where_params = self._identity_predicate(instance)
        table = self.dialect.format_table(instance._meta.table)
        cursor = session.execute(f"DELETE FROM {table} WHERE {where_sql}", where_params)
        self._check_rowcount(cursor, instance)
        session.hooks.fire("after_delete", instance, session=session)

    def increment_version(self, instance: Model) -> None:
        """
        Bump the stored version of an otherwise unchanged row.
        """
        version_field = instance._meta.version_field
        if version_field is None:
            raise OptimisticLockError(
                instance.__class__,
                instance.pk,
                f"{instance.__class__.__name__} has no version field to increment",
            )
        dialect = self.dialect
        column = dialect.quote_identifier(version_field.column_name())
        where_sql, where_params = self._identity_predicate(instance)
        table = dialect.format_table(instance._meta.table)
        cursor = self.session.execute(
            f"UPDATE {table} SET {column} = {column} + 1 WHERE {where_sql}", where_params
        )
        self._check_rowcount(cursor, instance)
        self._advance_version(instance)
        self.logger.debug(
            "Forced version increment on %s#%s to %s",
            instance.__class__.__name__,
            instance.pk,
            instance.get_version(),
        )

    def verify_version(self, instance: Model) -> None:
        """
        Re-read the stored version and fail if it moved since this
        transaction read the row.
        """
        version_field = instance._meta.version_field
        if version_field is None:
            return
        dialect = self.dialect
        pk_field = instance._meta.primary_key
        table = dialect.format_table(instance._meta.table)
        cursor = self.session.execute(
            f"SELECT {dialect.quote_identifier(version_field.column_name())} FROM {table} "
            f"WHERE {dialect.quote_identifier(pk_field.column_name())} = {dialect.parameter_placeholder()}",
            (instance.pk,),
        )
        stored = first_value(cursor.fetchone())
        if stored is None or int(stored) != instance.get_version():
            self.logger.warning(
                "Version check failed for %s#%s: stored %s, expected %s",
                instance.__class__.__name__,
                instance.pk,
                stored,
                instance.get_version(),
            )
            raise OptimisticLockError(instance.__class__, instance.pk)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _identity_predicate(self, instance: Model) -> tuple[str, List[Any]]:
        dialect = self.dialect
        pk_field = instance._meta.primary_key
        if instance.pk is None:
            raise ValueError(f"{instance.__class__.__name__} instance is missing its primary key.")
        clauses = [
            f"{dialect.quote_identifier(pk_field.column_name())} = {dialect.parameter_placeholder()}"
        ]
        params: List[Any] = [instance.pk]
        version_field = instance._meta.version_field
        if version_field is not None:
            clauses.append(
                f"{dialect.quote_identifier(version_field.column_name())} = {dialect.parameter_placeholder()}"
            )
            params.append(instance.get_version())
        return " AND ".join(clauses), params

    def _check_rowcount(self, cursor, instance: Model) -> None:
        if cursor.rowcount == 0:
            self.logger.warning(
                "Optimistic lock failure on %s#%s at version %s",
                instance.__class__.__name__,
                instance.pk,
                instance.get_version(),
            )
            raise OptimisticLockError(instance.__class__, instance.pk)

    @staticmethod
    def _advance_version(instance: Model) -> None:
        version = instance.get_version()
        if version is not None:
            instance.set_version(version + 1)
            # Keep the snapshot in step so the bump never reads as a user change.
            name = instance._meta.version_field.require_name()
            instance._initial_state[name] = version + 1

    def _validate(self, instance: Model) -> None:
        session = self.session
        session.hooks.fire("before_validate", instance, session=session)
        instance.full_clean()
        session.hooks.fire("after_validate", instance, session=session)
