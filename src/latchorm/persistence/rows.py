"""
Helpers for turning DB-API rows into column-keyed mappings.
"""

from __future__ import annotations

from typing import Any


def row_to_dict(cursor, row) -> dict[str, Any]:
    if hasattr(row, "keys"):
        return {key: row[key] for key in row.keys()}
    if getattr(cursor, "description", None):
        columns = [col[0] for col in cursor.description]
        return {col: row[idx] for idx, col in enumerate(columns)}
    raise ValueError("Unable to map database row to dictionary.")


def first_value(row) -> Any:
    """Return the first column of ``row`` whatever the driver's row type."""
    if row is None:
        return None
    if isinstance(row, dict):
        return next(iter(row.values()))
    return row[0]
