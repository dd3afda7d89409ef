"""
Query construction APIs for latchorm.
"""

from .compiler import SQLCompiler
from .expressions import Q
from .queryset import QuerySet

__all__ = ["Q", "QuerySet", "SQLCompiler"]
