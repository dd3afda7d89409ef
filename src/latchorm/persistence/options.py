"""
Session-level configuration for locking and identity generation.
"""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable

SHARED_LOCK_FALLBACKS = ("escalate", "error")

LOCK_TIMEOUT_ENV_VAR = "LATCHORM_LOCK_TIMEOUT_MS"
SHARED_LOCK_FALLBACK_ENV_VAR = "LATCHORM_SHARED_LOCK_FALLBACK"


class SessionConfigurationError(ValueError):
    """Raised when session options are invalid."""


def uuid_id_generator() -> str:
    return str(uuid.uuid4())


@dataclass
class SessionOptions:
    """
    Behavioural knobs for a :class:`~latchorm.persistence.Session`.

    ``lock_timeout_ms`` bounds pessimistic lock waits when a call does not pass
    its own timeout (``None`` waits for the backend default, ``0`` fails
    immediately). ``shared_lock_fallback`` decides what PESSIMISTIC_READ does on
    a backend without shared row locks: ``"escalate"`` takes an exclusive lock,
    ``"error"`` raises :class:`~latchorm.exceptions.UnsupportedLockModeError`.
    """

    lock_timeout_ms: int | None = None
    shared_lock_fallback: str = "escalate"
    id_generator: Callable[[], Any] = field(default=uuid_id_generator)

    def __post_init__(self) -> None:
        if self.lock_timeout_ms is not None and self.lock_timeout_ms < 0:
            raise SessionConfigurationError("lock_timeout_ms must be non-negative.")
        if self.shared_lock_fallback not in SHARED_LOCK_FALLBACKS:
            raise SessionConfigurationError(
                f"shared_lock_fallback must be one of {SHARED_LOCK_FALLBACKS}, "
                f"received {self.shared_lock_fallback!r}"
            )

    @classmethod
    def from_env(cls, **overrides: Any) -> "SessionOptions":
        """
        Build options from ``LATCHORM_*`` environment variables; keyword
        overrides take precedence.
        """
        values: dict[str, Any] = {}
        raw_timeout = os.getenv(LOCK_TIMEOUT_ENV_VAR)
        if raw_timeout:
            try:
                values["lock_timeout_ms"] = int(raw_timeout)
            except ValueError as exc:
                raise SessionConfigurationError(
                    f"Invalid integer value for {LOCK_TIMEOUT_ENV_VAR}: {raw_timeout!r}"
                ) from exc
        raw_fallback = os.getenv(SHARED_LOCK_FALLBACK_ENV_VAR)
        if raw_fallback:
            values["shared_lock_fallback"] = raw_fallback.strip().lower()
        values.update(overrides)
        return cls(**values)
