"""
Set-based UPDATE and DELETE statements that bypass the unit of work.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable, Mapping, Optional, Type

from ..core.model import Model
from ..query.compiler import SQLCompiler
from ..query.expressions import Q
from ..utils import get_logger

if TYPE_CHECKING:
    from .session import Session


class BulkGateway:
    """
    Executes bulk statements for a session.

    Pending changes are flushed first so the statement sees them. The identity
    map is left alone: instances already loaded keep their (now stale) state
    unless ``clear=True`` evicts every instance of the model.
    """

    def __init__(self, session: "Session") -> None:
        self.session = session
        self.logger = get_logger("persistence.bulk")

    def update(
        self,
        model: Type[Model],
        where: Optional[Q],
        values: Mapping[str, Any],
        *,
        clear: bool = False,
    ) -> int:
        session = self.session
        session.flush()
        sql, params = SQLCompiler(model, session.dialect, where=where).compile_update(values)
        count = self._rowcount(session.execute(sql, params))
        self.logger.info("Bulk updated %s %s row(s)", count, model.__name__)
        if clear:
            self._evict(model)
        return count

    def delete(self, model: Type[Model], where: Optional[Q], *, clear: bool = False) -> int:
        session = self.session
        session.flush()
        sql, params = SQLCompiler(model, session.dialect, where=where).compile_delete()
        count = self._rowcount(session.execute(sql, params))
        self.logger.info("Bulk deleted %s %s row(s)", count, model.__name__)
        if clear:
            self._evict(model)
        return count

    def delete_instances(self, instances: Iterable[Model], *, clear: bool = False) -> int:
        """
        Delete the given rows with one statement per model, without version
        checks or lifecycle hooks.
        """
        by_model: dict[Type[Model], list[Any]] = {}
        for instance in instances:
            if instance.pk is None:
                continue
            by_model.setdefault(instance.__class__, []).append(instance.pk)
        total = 0
        for model, pks in by_model.items():
            pk_name = model._meta.primary_key.require_name()
            total += self.delete(model, Q(**{f"{pk_name}__in": pks}), clear=clear)
        return total

    def _evict(self, model: Type[Model]) -> None:
        session = self.session
        evicted = session.identity_map.evict_model(model)
        for instance in evicted:
            session.unit_of_work.discard(instance)
        self.logger.debug("Evicted %s %s instance(s) after bulk statement", len(evicted), model.__name__)

    @staticmethod
    def _rowcount(cursor) -> int:
        count = getattr(cursor, "rowcount", -1)
        return count if count is not None and count >= 0 else 0
