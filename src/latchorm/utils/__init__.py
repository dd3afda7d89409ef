"""
Utility helpers shared across latchorm packages.
"""

from .logging import configure_logging, get_logger, time_call
from .naming import camel_to_snake
from .performance import resolve_slow_query_ms

__all__ = [
    "camel_to_snake",
    "configure_logging",
    "get_logger",
    "resolve_slow_query_ms",
    "time_call",
]
