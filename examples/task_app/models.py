"""
Data models for the latchorm task tracker example.
"""

from __future__ import annotations

from latchorm.core import (
    BooleanField,
    DateField,
    DateTimeField,
    Model,
    StringField,
    VersionField,
)
from latchorm.validation import NotBlankValidator, RegexValidator

#: Ids starting with this prefix belong to seeded system tasks that bulk
#: operations must never touch.
PROTECTED_ID_PREFIX = "00000000-"

LOGIN_ID_PATTERN = r"[a-z0-9_.-]+"


class Task(Model):
    title = StringField(nullable=False, max_length=200, validators=[NotBlankValidator()])
    description = StringField(nullable=True, max_length=2000)
    deadline_date = DateField(nullable=True)
    finished = BooleanField(default=False)
    finished_at = DateTimeField(nullable=True)
    created_at = DateTimeField(auto_now_add=True)
    version = VersionField()


class Member(Model):
    login_id = StringField(
        nullable=False, unique=True, max_length=64, validators=[RegexValidator(LOGIN_ID_PATTERN)]
    )
    name = StringField(nullable=False, max_length=120)
    version = VersionField()
