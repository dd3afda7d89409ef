"""
Schema builder converting model metadata into DDL statements.
"""

from __future__ import annotations

from typing import Iterable, List

from ..core.model import Model
from ..dialects.base import Dialect
from ..utils import get_logger


class SchemaBuilder:
    """
    Produces dialect-specific SQL for creating and dropping model tables.

    Version columns are always ``NOT NULL DEFAULT 0`` so rows written outside
    the session still start at a valid version.
    """

    def __init__(self, dialect: Dialect) -> None:
        self.dialect = dialect
        self.logger = get_logger("schema.builder")

    def create_table_sql(self, model: type[Model]) -> str:
        columns_sql = self._render_columns(model)
        table_name = self.dialect.format_table(model._meta.table)
        column_list = ", ".join(columns_sql)
        return f"CREATE TABLE IF NOT EXISTS {table_name} ({column_list})"

    def drop_table_sql(self, model: type[Model]) -> str:
        table_name = self.dialect.format_table(model._meta.table)
        self.logger.warning("DROP TABLE generated for %s", table_name)
        return f"DROP TABLE IF EXISTS {table_name}"

    def create_all(self, adapter, models: Iterable[type[Model]]) -> List[str]:
        """
        Create tables for ``models`` on ``adapter`` and commit. Returns the
        statements that were executed.
        """
        statements = [self.create_table_sql(model) for model in models]
        for sql in statements:
            adapter.execute(sql)
        adapter.commit()
        self.logger.info("Created %s table(s)", len(statements))
        return statements

    def drop_all(self, adapter, models: Iterable[type[Model]]) -> None:
        for model in models:
            adapter.execute(self.drop_table_sql(model))
        adapter.commit()

    def _render_columns(self, model: type[Model]) -> List[str]:
        pieces: List[str] = []
        for field in model._meta.get_fields():
            column_type = field.db_type
            if not column_type:
                raise ValueError(f"Field '{field.name}' missing db_type for schema generation.")
            column_def = self.dialect.render_column_definition(
                field.column_name(),
                column_type,
                nullable=field.nullable and not field.primary_key and not field.is_version,
            )
            extras: List[str] = []
            if field.primary_key:
                extras.append("PRIMARY KEY")
            if field.unique and not field.primary_key:
                extras.append("UNIQUE")
            default_sql = self._default_clause(field)
            if default_sql:
                extras.append(default_sql)

            if extras:
                column_def = f"{column_def} {' '.join(extras)}"
            pieces.append(column_def)
        return pieces

    def _default_clause(self, field) -> str | None:
        if field.is_version:
            return "DEFAULT 0"
        if field.db_default is not None:
            return f"DEFAULT {field.db_default}"
        if field.default is None or callable(field.default):
            return None
        value = field.default
        if isinstance(value, bool):
            return f"DEFAULT {1 if value else 0}"
        if isinstance(value, str):
            escaped = value.replace("'", "''")
            return f"DEFAULT '{escaped}'"
        return f"DEFAULT {value}"
