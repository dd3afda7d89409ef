"""
Repository facade giving each call its own transaction scope.
"""

from __future__ import annotations

from typing import Any, Generic, Iterable, List, Optional, Type, TypeVar

from .core.model import Model
from .exceptions import NotFoundError
from .persistence.locking import LockMode
from .persistence.session import Session
from .query.queryset import QuerySet
from .utils import get_logger

TModel = TypeVar("TModel", bound=Model)


class Repository(Generic[TModel]):
    """
    Per-model entry point over a :class:`Session`.

    Each method joins the caller's transaction when one is active; otherwise
    it runs in a transaction of its own that commits when the method returns.
    Instances returned from such a self-contained call are therefore detached.
    """

    model: Type[TModel]

    def __init__(self, session: Session, model: Optional[Type[TModel]] = None) -> None:
        self.session = session
        if model is not None:
            self.model = model
        if getattr(self, "model", None) is None:
            raise TypeError(f"{self.__class__.__name__} requires a model")
        self.logger = get_logger(f"repository.{self.model.__name__.lower()}")

    def _scope(self):
        return self.session.transaction(join=True)

    # Reads -------------------------------------------------------------
    def find_by_id(self, pk: Any) -> Optional[TModel]:
        with self._scope() as session:
            return session.get(self.model, pk)

    def get_by_id(self, pk: Any) -> TModel:
        instance = self.find_by_id(pk)
        if instance is None:
            raise NotFoundError(self.model, pk)
        return instance

    def find_with_lock(
        self, pk: Any, mode: LockMode | str, *, timeout: Optional[int] = None
    ) -> Optional[TModel]:
        """
        Load ``pk`` under ``mode``. Pessimistic locks are held only for the
        surrounding transaction, so call this inside ``session.transaction()``.
        """
        with self._scope() as session:
            return session.get(self.model, pk, lock=mode, timeout=timeout)

    def find_all(self) -> List[TModel]:
        with self._scope() as session:
            return session.find_all(self.model)

    def query(self) -> QuerySet:
        return self.session.query(self.model)

    def exists(self, pk: Any) -> bool:
        with self._scope() as session:
            return session.exists(self.model, pk)

    def count(self) -> int:
        with self._scope() as session:
            return session.count(self.model)

    # Writes ------------------------------------------------------------
    def save(self, instance: TModel) -> TModel:
        with self._scope() as session:
            return session.save(instance)

    def save_all(self, instances: Iterable[TModel]) -> List[TModel]:
        with self._scope() as session:
            return session.save_all(instances)

    def save_and_flush(self, instance: TModel) -> TModel:
        with self._scope() as session:
            return session.save_and_flush(instance)

    def flush(self) -> None:
        with self._scope() as session:
            session.flush()

    def delete(self, instance: TModel) -> None:
        with self._scope() as session:
            session.delete(instance)

    def delete_by_id(self, pk: Any) -> None:
        with self._scope() as session:
            session.delete_by_id(self.model, pk)

    def delete_all(self, instances: Optional[Iterable[TModel]] = None) -> None:
        """Delete ``instances`` one by one, or every row of the model when omitted."""
        with self._scope() as session:
            if instances is None:
                instances = session.find_all(self.model)
            session.delete_all(instances)

    def delete_in_batch(self, instances: Iterable[TModel], *, clear: bool = False) -> int:
        with self._scope() as session:
            return session.delete_in_batch(instances, clear=clear)

    def delete_all_in_batch(self, *, clear: bool = False) -> int:
        with self._scope() as session:
            return session.delete_all_in_batch(self.model, clear=clear)
