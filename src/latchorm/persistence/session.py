"""
Session management coordinating adapters, unit of work, and identity map.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Type, TypeVar

from ..adapters.base import ConnectionConfig, DatabaseAdapter
from ..core.model import Model
from ..dialects.base import Dialect
from ..exceptions import InvalidStateError, NotFoundError, OptimisticLockError
from ..query.expressions import Q
from ..query.queryset import QuerySet
from ..utils import get_logger
from .bulk import BulkGateway
from .flush import FlushCoordinator, FlushResult
from .identity_map import IdentityMap, Snapshot
from .locking import LockManager, LockMode
from .options import SessionOptions
from .rows import row_to_dict
from .transaction import TransactionError, TransactionManager
from .unit_of_work import UnitOfWork

TModel = TypeVar("TModel", bound=Model)


class Session:
    """
    Transaction-scoped unit of work over one database connection.

    Within a transaction every entity id maps to one instance (the identity
    map), writes are deferred until a flush point, and versioned entities are
    protected by optimistic checks. All of that state is discarded when the
    outermost transaction commits or rolls back; instances that outlive it are
    detached and can be re-attached with :meth:`save`.

    Operations called outside a transaction begin one implicitly; it stays open
    until :meth:`commit` or :meth:`rollback`.
    """

    def __init__(
        self,
        adapter: DatabaseAdapter,
        *,
        connection_config: Optional[ConnectionConfig] = None,
        options: Optional[SessionOptions] = None,
    ) -> None:
        self.adapter = adapter
        self.dialect: Dialect = adapter.dialect
        self.connection_config = connection_config or ConnectionConfig(url="sqlite:///:memory:")
        self.options = options or SessionOptions()
        self.identity_map = IdentityMap()
        self.unit_of_work = UnitOfWork()
        self.transaction_manager = TransactionManager(adapter, self.dialect)
        self.flusher = FlushCoordinator(self)
        self.lock_manager = LockManager(self)
        self.bulk = BulkGateway(self)
        self._checkpoints: list[tuple[dict, Snapshot]] = []
        from ..hooks import hooks

        self.hooks = hooks
        self.logger = get_logger("persistence.session")
        self.adapter.connect(self.connection_config)

    # ------------------------------------------------------------------ #
    # Context management
    # ------------------------------------------------------------------ #
    def __enter__(self) -> "Session":
        self.begin()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type:
                if self.is_active:
                    self.rollback()
            elif self.is_active:
                self.commit()
        finally:
            self.close()

    # ------------------------------------------------------------------ #
    # Transactions
    # ------------------------------------------------------------------ #
    @property
    def is_active(self) -> bool:
        return self.transaction_manager.active

    def begin(self) -> None:
        if self.transaction_manager.depth > 0:
            # Nested level: everything pending belongs to the enclosing level.
            self.flusher.flush()
            self.transaction_manager.begin()
            self._checkpoints.append(
                (self.unit_of_work.checkpoint(), self.identity_map.snapshot())
            )
            self.logger.debug("Savepoint opened (depth=%s)", self.transaction_manager.depth)
            return
        self.transaction_manager.begin()
        self.logger.debug("Transaction started")

    def commit(self) -> None:
        manager = self.transaction_manager
        if manager.depth == 0:
            raise TransactionError("No active transaction to commit.")

        if manager.depth > 1:
            try:
                self.flusher.flush()
                manager.commit()
            except Exception:
                self.rollback()
                raise
            self._checkpoints.pop()
            return

        try:
            self.flusher.flush(at_commit=True)
            manager.commit()
        except Exception:
            self.logger.warning("Commit failed; rolling back transaction")
            manager.rollback()
            self._end_transaction(committed=False)
            raise
        self._end_transaction(committed=True)

    def rollback(self) -> None:
        manager = self.transaction_manager
        manager.rollback()
        if manager.depth == 0:
            self._end_transaction(committed=False)
            return
        # Instances loaded inside the savepoint are dropped; the rest get back
        # the state they had when it opened.
        checkpoint, snapshot = self._checkpoints.pop()
        self.identity_map.restore(snapshot)
        self.unit_of_work.restore(checkpoint)
        self.logger.debug("Rolled back to savepoint (depth=%s)", manager.depth)

    @contextmanager
    def transaction(self, *, join: bool = False) -> Iterator["Session"]:
        """
        Run a block in a transaction, committing on success and rolling back
        on error. Inside an active transaction a savepoint is used, unless
        ``join`` is true, in which case the block simply joins it.
        """
        if join and self.is_active:
            yield self
            return

        self.begin()
        try:
            yield self
        except Exception:
            if self.is_active:
                self.rollback()
            raise
        else:
            self.commit()

    def close(self) -> None:
        if self.is_active:
            self.logger.warning("Closing session with an open transaction; rolling back")
            try:
                self.adapter.rollback()
            finally:
                self.transaction_manager.reset()
                self._end_transaction(committed=False)
        self.adapter.close()
        self.identity_map.clear()
        self.unit_of_work.clear()

    def _ensure_active(self) -> None:
        if not self.is_active:
            self.logger.debug("Implicitly starting transaction")
            self.begin()

    def _end_transaction(self, *, committed: bool) -> None:
        self.identity_map.clear()
        self.unit_of_work.clear()
        self._checkpoints.clear()
        if committed:
            self.logger.debug("Transaction committed")
            self.hooks.fire("after_commit", None, session=self)
        else:
            self.logger.debug("Transaction rolled back")
            self.hooks.fire("after_rollback", None, session=self)

    # ------------------------------------------------------------------ #
    # Loading
    # ------------------------------------------------------------------ #
    def get(
        self,
        model: Type[TModel],
        pk: Any,
        *,
        lock: LockMode | str | None = None,
        timeout: Optional[int] = None,
    ) -> Optional[TModel]:
        """
        Return the instance with primary key ``pk`` or ``None``.

        The identity map is consulted first; a row removed in this unit of
        work is reported missing without a query. ``lock`` applies a
        :class:`LockMode`; ``timeout`` (milliseconds) bounds pessimistic
        waits, with ``0`` failing immediately if the row is locked.
        """
        mode = LockMode.coerce(lock)
        self._ensure_active()
        pk = model._meta.primary_key.to_python(pk)
        if self.unit_of_work.is_removed_key(IdentityMap.make_key(model, pk)):
            return None
        cached = self.identity_map.get(model, pk)
        if cached is not None:
            if mode is not LockMode.NONE:
                self.lock(cached, mode, timeout=timeout)
            return cached  # type: ignore[return-value]

        instance = self.lock_manager.load(model, pk, mode, timeout)
        if instance is None:
            return None
        self.identity_map.add(instance)
        self.lock_manager.apply(instance, mode, timeout=timeout, loaded=True)
        return instance

    def lock(self, instance: Model, mode: LockMode | str, *, timeout: Optional[int] = None) -> None:
        """Apply ``mode`` to an instance already managed by this session."""
        mode = LockMode.coerce(mode)
        self._ensure_active()
        self._reject_removed(instance, "lock")
        if instance not in self.identity_map:
            raise ValueError(f"{self._describe(instance)} is not managed by this session")
        if self.unit_of_work.is_new(instance):
            self.flusher.flush()
        self.lock_manager.apply(instance, mode, timeout=timeout, loaded=False)

    def query(self, model: Type[Model]) -> QuerySet:
        return QuerySet(model, self)

    def find_all(self, model: Type[TModel]) -> List[TModel]:
        return self.query(model).all()  # type: ignore[return-value]

    def count(self, model: Type[Model]) -> int:
        return self.query(model).count()

    def exists(self, model: Type[Model], pk: Any) -> bool:
        pk = model._meta.primary_key.to_python(pk)
        if self.unit_of_work.is_removed_key(IdentityMap.make_key(model, pk)):
            return False
        pk_name = model._meta.primary_key.require_name()
        return self.query(model).filter(**{pk_name: pk}).exists()

    def contains(self, instance: Model) -> bool:
        return instance in self.identity_map and not self.unit_of_work.is_removed(instance)

    # ------------------------------------------------------------------ #
    # Registration
    # ------------------------------------------------------------------ #
    def save(self, instance: TModel) -> TModel:
        """
        Make ``instance`` persistent and return the managed instance.

        New instances get an id immediately and are inserted at flush. A
        detached instance is merged: the current row is loaded, its version
        compared, and the detached values copied onto the managed instance,
        which is returned in its place.
        """
        self._ensure_active()
        self._reject_removed(instance, "merge")
        model = instance.__class__
        if instance in self.identity_map:
            return instance

        pk_field = model._meta.primary_key
        if instance.pk is None:
            setattr(instance, pk_field.require_name(), self.options.id_generator())
            self._register_new(instance)
            return instance

        managed = self.identity_map.get(model, instance.pk)
        if managed is None and instance.is_persisted:
            managed = self.get(model, instance.pk)
            if managed is None:
                # Row deleted since the instance was detached.
                raise OptimisticLockError(model, instance.pk)
        if managed is None:
            self._register_new(instance)
            return instance
        return self._merge(instance, managed)  # type: ignore[return-value]

    def save_all(self, instances: Iterable[TModel]) -> List[TModel]:
        return [self.save(instance) for instance in instances]

    def save_and_flush(self, instance: TModel) -> TModel:
        managed = self.save(instance)
        self.flush()
        return managed

    def delete(self, instance: Model) -> None:
        """
        Schedule removal of ``instance``.

        Deleting a pending insert cancels it; deleting a detached instance
        whose row is already gone does nothing.
        """
        self._ensure_active()
        self._reject_removed(instance, "delete")
        if instance.pk is None:
            self.logger.debug("Ignoring delete of unsaved %s", instance.__class__.__name__)
            return
        model = instance.__class__
        managed = self.identity_map.get(model, instance.pk)
        if managed is None:
            managed = self.get(model, instance.pk)
            if managed is None:
                self.logger.debug("Ignoring delete of missing %s", self._describe(instance))
                return
        if managed is not instance and model._meta.versioned:
            if managed.get_version() != instance.get_version():
                raise OptimisticLockError(model, instance.pk)

        self.identity_map.remove(managed)
        if not self.unit_of_work.register_removed(managed):
            self.logger.debug("Cancelled pending insert of %s", self._describe(managed))

    def delete_all(self, instances: Iterable[Model]) -> None:
        for instance in list(instances):
            self.delete(instance)

    def delete_by_id(self, model: Type[Model], pk: Any) -> None:
        instance = self.get(model, pk)
        if instance is None:
            raise NotFoundError(model, pk)
        self.delete(instance)

    def evict(self, instance: Model) -> None:
        """Detach ``instance`` and forget any pending change for it."""
        self.identity_map.remove(instance)
        self.unit_of_work.discard(instance)

    def clear(self) -> None:
        """Detach every instance and discard all pending changes."""
        self.identity_map.clear()
        self.unit_of_work.clear()

    # ------------------------------------------------------------------ #
    # Flush and bulk statements
    # ------------------------------------------------------------------ #
    def flush(self) -> FlushResult:
        """Write pending changes now; queries call this before they run."""
        self._ensure_active()
        return self.flusher.flush()

    def bulk_update(
        self,
        model: Type[Model],
        where: Optional[Q],
        values: Mapping[str, Any],
        *,
        clear: bool = False,
    ) -> int:
        """
        Update every row matching ``where`` in one statement, bumping each
        row's version. Loaded instances stay stale unless ``clear`` is set.
        """
        self._ensure_active()
        return self.bulk.update(model, where, values, clear=clear)

    def bulk_delete(self, model: Type[Model], where: Optional[Q], *, clear: bool = False) -> int:
        self._ensure_active()
        return self.bulk.delete(model, where, clear=clear)

    def delete_in_batch(self, instances: Iterable[Model], *, clear: bool = False) -> int:
        self._ensure_active()
        return self.bulk.delete_instances(instances, clear=clear)

    def delete_all_in_batch(self, model: Type[Model], *, clear: bool = False) -> int:
        self._ensure_active()
        return self.bulk.delete(model, None, clear=clear)

    def execute(self, sql: str, params: Iterable[Any] | None = None):
        # Adapters time and redact each statement themselves.
        return self.adapter.execute(sql, list(params or []))

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _register_new(self, instance: Model) -> None:
        if instance._meta.versioned and instance.get_version() is None:
            instance.set_version(0)
        self.identity_map.add(instance)
        self.unit_of_work.register_new(instance)
        self.logger.debug("Scheduled insert of %s", self._describe(instance))

    def _merge(self, detached: Model, managed: Model) -> Model:
        model = managed.__class__
        if model._meta.versioned and detached.get_version() != managed.get_version():
            raise OptimisticLockError(model, managed.pk)
        for field in model._meta.get_fields():
            if field.primary_key or field.is_version:
                continue
            name = field.require_name()
            if name in detached._field_values:
                setattr(managed, name, detached._field_values[name])
        return managed

    def _materialize(self, model: Type[Model], cursor, row) -> Optional[Model]:
        data = row_to_dict(cursor, row)
        pk_field = model._meta.primary_key
        pk = pk_field.to_python(data[pk_field.column_name()])
        if self.unit_of_work.is_removed_key(IdentityMap.make_key(model, pk)):
            return None
        existing = self.identity_map.get(model, pk)
        if existing is not None:
            return existing
        instance = model.from_row(data)
        self.identity_map.add(instance)
        return instance

    def _reject_removed(self, instance: Model, operation: str) -> None:
        uow = self.unit_of_work
        removed = uow.is_removed(instance)
        if not removed and instance.pk is not None:
            removed = uow.is_removed_key(IdentityMap.make_key(instance, instance.pk))
        if removed:
            raise InvalidStateError(
                f"deleted instance passed to {operation}: [{instance.__class__.__name__}#<null>]",
                entity=instance,
            )

    @staticmethod
    def _describe(instance: Model) -> str:
        return f"{instance.__class__.__name__}#{instance.pk}"
