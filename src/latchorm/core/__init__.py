"""
Core building blocks for latchorm models and metadata handling.
"""

from .fields import (
    BooleanField,
    DateField,
    DateTimeField,
    Field,
    FloatField,
    IntegerField,
    StringField,
    UUIDField,
    VersionField,
)
from .model import Model, ModelConfigurationError, ModelMeta, ModelOptions

__all__ = [
    "BooleanField",
    "DateField",
    "DateTimeField",
    "Field",
    "FloatField",
    "IntegerField",
    "Model",
    "ModelConfigurationError",
    "ModelMeta",
    "ModelOptions",
    "StringField",
    "UUIDField",
    "VersionField",
]
