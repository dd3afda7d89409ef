"""
SQL compilation utilities translating expressions into SQL strings.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Mapping, Tuple

from ..dialects.base import Dialect
from .expressions import Q

if TYPE_CHECKING:
    from ..core.model import Model


LOOKUP_OPERATORS = {
    "exact": "=",
    "ne": "<>",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
    "contains": "LIKE",
    "startswith": "LIKE",
    "endswith": "LIKE",
}


def _escape_like(value: str) -> str:
    return value.replace("!", "!!").replace("%", "!%").replace("_", "!_")


class SQLCompiler:
    """
    Compile QuerySet state into SQL statements and parameters.

    Besides SELECTs the compiler renders the set-based UPDATE and DELETE
    statements issued by the bulk gateway, sharing the WHERE compilation.
    """

    def __init__(
        self,
        model: type["Model"],
        dialect: Dialect,
        where: Q | None = None,
        ordering: tuple[str, ...] = (),
        limit: int | None = None,
        offset: int | None = None,
    ) -> None:
        self.model = model
        self.dialect = dialect
        self.where = where
        self.ordering = ordering
        self.limit = limit
        self.offset = offset

    def compile(self) -> Tuple[str, List[Any]]:
        select_list = ", ".join(
            self.dialect.quote_identifier(field.column_name())
            for field in self.model._meta.get_fields()
        )
        sql_parts: List[str] = [f"SELECT {select_list}", "FROM", self._table()]
        params = self._append_where(sql_parts)

        if self.ordering:
            order_sql = ", ".join(self._compile_ordering(field) for field in self.ordering)
            sql_parts.append("ORDER BY")
            sql_parts.append(order_sql)

        limit_clause = self.dialect.limit_clause(self.limit, self.offset)
        if limit_clause:
            sql_parts.append(limit_clause)

        return " ".join(sql_parts), params

    def compile_count(self) -> Tuple[str, List[Any]]:
        sql_parts: List[str] = ["SELECT COUNT(*)", "FROM", self._table()]
        params = self._append_where(sql_parts)
        return " ".join(sql_parts), params

    def compile_exists(self) -> Tuple[str, List[Any]]:
        sql_parts: List[str] = ["SELECT 1", "FROM", self._table()]
        params = self._append_where(sql_parts)
        sql_parts.append(self.dialect.limit_clause(1, None))
        return " ".join(sql_parts), params

    def compile_update(
        self, values: Mapping[str, Any], *, increment_version: bool = True
    ) -> Tuple[str, List[Any]]:
        """
        Render ``UPDATE ... SET`` for ``values`` (field name to value). The
        version column, when present, is bumped in the same statement.
        """
        meta = self.model._meta
        if not values:
            raise ValueError("Bulk update requires at least one value to set.")
        set_clauses: List[str] = []
        params: List[Any] = []
        for name, value in values.items():
            field = meta.get_field(name)
            if field.primary_key:
                raise ValueError(f"Primary key '{name}' cannot be changed by a bulk update.")
            if field.is_version:
                raise ValueError("The version column is managed automatically.")
            set_clauses.append(
                f"{self.dialect.quote_identifier(field.column_name())} = {self.dialect.parameter_placeholder()}"
            )
            params.append(None if value is None else field.to_python(value))
        if increment_version and meta.version_field is not None:
            column = self.dialect.quote_identifier(meta.version_field.column_name())
            set_clauses.append(f"{column} = {column} + 1")
        sql_parts = [f"UPDATE {self._table()} SET {', '.join(set_clauses)}"]
        params.extend(self._append_where(sql_parts))
        return " ".join(sql_parts), params

    def compile_delete(self) -> Tuple[str, List[Any]]:
        sql_parts: List[str] = [f"DELETE FROM {self._table()}"]
        params = self._append_where(sql_parts)
        return " ".join(sql_parts), params

    # Compilation helpers -----------------------------------------------
    def _table(self) -> str:
        return self.dialect.format_table(self.model._meta.table)

    def _append_where(self, sql_parts: List[str]) -> List[Any]:
        if self.where is None or self.where.is_empty():
            return []
        where_sql, where_params = self.compile_where(self.where)
        if where_sql:
            sql_parts.append("WHERE")
            sql_parts.append(where_sql)
        return where_params

    def _compile_ordering(self, field_name: str) -> str:
        descending = field_name.startswith("-")
        name = field_name[1:] if descending else field_name
        field = self.model._meta.get_field(name)
        clause = self.dialect.quote_identifier(field.column_name())
        if descending:
            clause += " DESC"
        return clause

    def compile_where(self, q: Q) -> Tuple[str, List[Any]]:
        if not q.children:
            return "", []

        parts: List[str] = []
        params: List[Any] = []

        for child in q.children:
            if isinstance(child, Q):
                child_sql, child_params = self.compile_where(child)
                if child_sql:
                    parts.append(f"({child_sql})")
                    params.extend(child_params)
            elif isinstance(child, tuple):
                field_lookup, value = child
                sql, child_params = self._compile_lookup(field_lookup, value)
                parts.append(sql)
                params.extend(child_params)

        if not parts:
            return "", []

        separator = f" {q.connector} "
        sql = separator.join(parts)
        if q.negated:
            sql = f"NOT ({sql})"
        return sql, params

    def _compile_lookup(self, field_lookup: str, value: Any) -> Tuple[str, List[Any]]:
        if "__" in field_lookup:
            field_name, lookup = field_lookup.split("__", 1)
        else:
            field_name, lookup = field_lookup, "exact"

        field = self.model._meta.get_field(field_name)
        column = self.dialect.quote_identifier(field.column_name())
        placeholder = self.dialect.parameter_placeholder()

        if lookup == "isnull":
            return (f"{column} IS NULL" if value else f"{column} IS NOT NULL"), []

        if value is None:
            if lookup == "exact":
                return f"{column} IS NULL", []
            if lookup == "ne":
                return f"{column} IS NOT NULL", []
            raise ValueError("NULL comparison only supported for equality.")

        if lookup == "in":
            items = [field.to_python(item) for item in value]
            if not items:
                # An empty IN list matches nothing.
                return "1 = 0", []
            placeholders = ", ".join(placeholder for _ in items)
            return f"{column} IN ({placeholders})", items

        operator = LOOKUP_OPERATORS.get(lookup)
        if operator is None:
            raise ValueError(f"Unsupported lookup '{lookup}'")

        if operator == "LIKE":
            text = _escape_like(str(value))
            if lookup == "contains":
                pattern = f"%{text}%"
            elif lookup == "startswith":
                pattern = f"{text}%"
            else:
                pattern = f"%{text}"
            return f"{column} LIKE {placeholder} ESCAPE '!'", [pattern]

        return f"{column} {operator} {placeholder}", [field.to_python(value)]
