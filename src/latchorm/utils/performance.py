"""
Slow-query threshold resolution shared by adapters.
"""

from __future__ import annotations

import os

from .logging import get_logger

SLOW_QUERY_ENV_VAR = "LATCHORM_SLOW_QUERY_MS"

logger = get_logger("utils.performance")


def resolve_slow_query_ms(default: int = 100, override: int | None = None) -> int:
    """
    Return the threshold (milliseconds) above which statements log as slow.

    An explicit ``override`` wins, then ``LATCHORM_SLOW_QUERY_MS``, then
    ``default``. Unparseable or negative environment values fall back to the
    default with a warning.
    """
    if override is not None:
        if override < 0:
            raise ValueError("slow_query_ms must be non-negative.")
        return override
    raw = os.getenv(SLOW_QUERY_ENV_VAR)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s value %r", SLOW_QUERY_ENV_VAR, raw)
        return default
    if value < 0:
        logger.warning("Ignoring negative %s value %r", SLOW_QUERY_ENV_VAR, raw)
        return default
    return value
