"""
QuerySet implementation providing a chainable query API bound to a session.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterator, List, Mapping, Optional, Tuple

from .compiler import SQLCompiler
from .expressions import Q

if TYPE_CHECKING:
    from ..core.model import Model
    from ..persistence.session import Session


class QuerySet:
    """
    Lazy, immutable query over one model.

    Evaluation flushes the session first so pending changes are visible, and
    routes every row through the identity map: an instance already managed by
    the transaction is returned as-is, never refreshed from the row.
    """

    def __init__(
        self,
        model: type["Model"],
        session: "Session",
        *,
        where: Optional[Q] = None,
        ordering: Tuple[str, ...] = (),
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> None:
        self.model = model
        self._session = session
        self._where = where or Q()
        self._ordering = ordering
        self._limit = limit
        self._offset = offset

    # Public API --------------------------------------------------------
    def filter(self, **lookups: Any) -> "QuerySet":
        return self._clone(where=self._add_q(Q(**lookups)))

    def exclude(self, **lookups: Any) -> "QuerySet":
        return self._clone(where=self._add_q(~Q(**lookups)))

    def where(self, q_object: Q) -> "QuerySet":
        return self._clone(where=self._add_q(q_object))

    def order_by(self, *fields: str) -> "QuerySet":
        return self._clone(ordering=tuple(fields))

    def limit(self, value: int) -> "QuerySet":
        return self._clone(limit=value)

    def offset(self, value: int) -> "QuerySet":
        return self._clone(offset=value)

    def to_sql(self) -> tuple[str, list[Any]]:
        return self._compiler().compile()

    def all(self) -> List["Model"]:
        return list(self)

    def first(self) -> Optional["Model"]:
        results = list(self.limit(1))
        return results[0] if results else None

    def count(self) -> int:
        session = self._session
        session.flush()
        sql, params = self._compiler().compile_count()
        row = session.execute(sql, params).fetchone()
        return int(row[0]) if row is not None else 0

    def exists(self) -> bool:
        session = self._session
        session.flush()
        sql, params = self._compiler().compile_exists()
        return session.execute(sql, params).fetchone() is not None

    def update(self, values: Mapping[str, Any], *, clear: bool = False) -> int:
        """Bulk update matching rows; see :meth:`Session.bulk_update`."""
        return self._session.bulk_update(self.model, self._where, values, clear=clear)

    def delete(self, *, clear: bool = False) -> int:
        """Bulk delete matching rows; see :meth:`Session.bulk_delete`."""
        return self._session.bulk_delete(self.model, self._where, clear=clear)

    def __iter__(self) -> Iterator["Model"]:
        session = self._session
        session.flush()
        sql, params = self.to_sql()
        cursor = session.execute(sql, params)
        instances = []
        for row in cursor.fetchall():
            instance = session._materialize(self.model, cursor, row)
            if instance is not None:
                instances.append(instance)
        return iter(instances)

    # Internal helpers --------------------------------------------------
    def _compiler(self) -> SQLCompiler:
        return SQLCompiler(
            model=self.model,
            dialect=self._session.dialect,
            where=self._where,
            ordering=self._ordering,
            limit=self._limit,
            offset=self._offset,
        )

    def _add_q(self, q_object: Q) -> Q:
        if self._where.is_empty():
            return q_object
        return self._where & q_object

    def _clone(self, **overrides: Any) -> "QuerySet":
        return QuerySet(
            self.model,
            self._session,
            where=overrides.get("where", self._where),
            ordering=overrides.get("ordering", self._ordering),
            limit=overrides.get("limit", self._limit),
            offset=overrides.get("offset", self._offset),
        )
