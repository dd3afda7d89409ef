"""
Identity map ensuring a single in-memory instance per row.
"""

from __future__ import annotations

from threading import RLock
from typing import Any, Dict, List, Tuple, Type

from ..core.model import Model

IdentityKey = Tuple[Type[Model], object]
Snapshot = List[Tuple[IdentityKey, Model, Dict[str, Any], Dict[str, Any], bool]]


class IdentityMap:
    """
    Stores model instances keyed by (model, primary key).

    One map belongs to one transaction; sessions clear it at every
    transaction boundary.
    """

    def __init__(self) -> None:
        self._store: Dict[IdentityKey, Model] = {}
        self._lock = RLock()

    @staticmethod
    def make_key(instance_or_model, pk) -> IdentityKey:
        if isinstance(instance_or_model, type):
            model = instance_or_model
        else:
            model = instance_or_model.__class__
        return (model, pk)

    def add(self, instance: Model) -> None:
        pk = instance.pk
        if pk is None:
            raise ValueError(
                f"Cannot place {instance.__class__.__name__} without a primary key in the identity map"
            )
        key = self.make_key(instance, pk)
        with self._lock:
            existing = self._store.get(key)
            if existing is not None and existing is not instance:
                raise ValueError(
                    f"A different {instance.__class__.__name__} instance with id {pk!r} "
                    "is already managed"
                )
            self._store[key] = instance

    def get(self, model: Type[Model], pk) -> Model | None:
        key = self.make_key(model, pk)
        with self._lock:
            return self._store.get(key)

    def remove(self, instance: Model) -> None:
        pk = instance.pk
        if pk is None:
            return
        key = self.make_key(instance, pk)
        with self._lock:
            if self._store.get(key) is instance:
                del self._store[key]

    def evict_model(self, model: Type[Model]) -> List[Model]:
        """
        Drop every instance of ``model`` and return what was evicted.
        """
        with self._lock:
            keys = [key for key in self._store if key[0] is model]
            return [self._store.pop(key) for key in keys]

    def snapshot(self) -> Snapshot:
        """
        Capture every managed instance together with its loaded state so a
        savepoint rollback can put both back.
        """
        with self._lock:
            return [
                (
                    key,
                    instance,
                    dict(instance._field_values),
                    dict(instance._initial_state),
                    instance._persisted,
                )
                for key, instance in self._store.items()
            ]

    def restore(self, snapshot: Snapshot) -> None:
        with self._lock:
            self._store.clear()
            for key, instance, field_values, initial_state, persisted in snapshot:
                instance._field_values = dict(field_values)
                instance._initial_state = dict(initial_state)
                instance._persisted = persisted
                self._store[key] = instance

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def values(self) -> List[Model]:
        with self._lock:
            return list(self._store.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def __contains__(self, instance: Model) -> bool:
        pk = instance.pk
        if pk is None:
            return False
        key = self.make_key(instance, pk)
        with self._lock:
            return self._store.get(key) is instance
