"""
Field validators for text columns.

Validators are plain callables raising ``ValueError``; the pipeline only
calls them for non-null values and files the message under the field name.
"""

from __future__ import annotations

import re


class RegexValidator:
    """Require the whole value to match ``pattern``."""

    def __init__(self, pattern: str, message: str | None = None) -> None:
        self.pattern = re.compile(pattern)
        self.message = message or f"Value must match {pattern}."

    def __call__(self, value: str) -> None:
        if not isinstance(value, str) or self.pattern.fullmatch(value) is None:
            raise ValueError(self.message)


class NotBlankValidator:
    def __init__(self, message: str = "This field cannot be blank.") -> None:
        self.message = message

    def __call__(self, value: str) -> None:
        if not str(value).strip():
            raise ValueError(self.message)
