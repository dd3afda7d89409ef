"""
Field definitions and descriptors for latchorm models.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional, Sequence, cast

if TYPE_CHECKING:
    from .model import Model


class FieldError(Exception):
    """Internal exception for field configuration issues."""


class Field:
    """
    Base class for model field descriptors.

    Fields manage attribute storage on model instances and retain metadata
    required for schema generation, validation, and change tracking.
    """

    _creation_counter = 0

    #: Set on the field carrying the optimistic version counter.
    is_version = False

    def __init__(
        self,
        *,
        primary_key: bool = False,
        unique: bool = False,
        nullable: bool = True,
        default: Any = None,
        db_type: Optional[str] = None,
        db_column: Optional[str] = None,
        db_default: Any = None,
        index: bool = False,
        choices: Optional[Sequence[Any]] = None,
        validators: Optional[Iterable[Callable[[Any], None]]] = None,
        help_text: Optional[str] = None,
    ) -> None:
        self.primary_key = primary_key
        self.unique = unique
        self.nullable = nullable
        self.default = default
        self.db_type = db_type
        self.db_column = db_column
        self.db_default = db_default
        self.index = index
        self.choices = tuple(choices) if choices is not None else None
        self.validators = list(validators or [])
        self.help_text = help_text

        self.model: type["Model"] | None = None  # Will be set during contribute_to_class
        self.name: str | None = None
        self.creation_counter = Field._creation_counter
        Field._creation_counter += 1

    # Descriptor protocol -------------------------------------------------
    def __get__(self, instance: object | None, owner: type | None = None) -> Any:
        if instance is None:
            return self

        model_instance = cast("Model", instance)
        name = self.require_name()
        value = model_instance._field_values.get(name)
        if value is None and name not in model_instance._field_values:
            default = self.get_default()
            if default is not None or self.default is not None:
                model_instance._field_values[name] = default
                return default
        return value

    def __set__(self, instance: object, value: Any) -> None:
        model_instance = cast("Model", instance)
        name = self.require_name()
        if self.primary_key:
            current = model_instance._field_values.get(name)
            if current is not None and value != current:
                raise ValueError(
                    f"Primary key '{name}' of {instance.__class__.__name__} is immutable "
                    f"(current value {current!r})"
                )
        if value is None:
            if not self.nullable and not self.primary_key:
                raise ValueError(f"Field '{name}' cannot be None")
            model_instance._field_values[name] = None
            return

        if self.choices and value not in self.choices:
            raise ValueError(f"Value '{value}' for field '{name}' not in choices {self.choices}")

        python_value = self.to_python(value)
        model_instance._field_values[name] = python_value

    # Metadata helpers ----------------------------------------------------
    def bind(self, model: type["Model"], name: str) -> None:
        self.model = model
        self.name = name
        if self.db_column is None:
            self.db_column = name

    def contribute_to_class(self, model: type["Model"], name: str) -> None:
        """
        Attach the field to the model class as a descriptor.
        """
        self.bind(model, name)
        setattr(model, name, self)

    def require_name(self) -> str:
        if self.name is None:
            raise FieldError("Field name is not set.")
        return self.name

    def require_model(self) -> type["Model"]:
        if self.model is None:
            raise FieldError("Field model is not set.")
        return self.model

    def column_name(self) -> str:
        if self.db_column:
            return self.db_column
        return self.require_name()

    # Conversion / validation ---------------------------------------------
    def get_default(self) -> Any:
        if callable(self.default):
            return self.default()
        return self.default

    def to_python(self, value: Any) -> Any:
        return value

    def run_validators(self, value: Any) -> None:
        for validator in self.validators:
            validator(value)

    @property
    def has_default(self) -> bool:
        return self.default is not None or callable(self.default)

    def __repr__(self) -> str:
        model_name = self.model.__name__ if self.model is not None else "?"
        return f"<{self.__class__.__name__} {model_name}.{self.name}>"


class UUIDField(Field):
    """
    Opaque string identifier, by default the model primary key.

    The value is assigned by the session's id generator on first save rather
    than by the database, so a new entity knows its identity before flush.
    """

    def __init__(self, *, primary_key: bool = True, **kwargs: Any) -> None:
        kwargs.setdefault("db_type", "VARCHAR(36)")
        kwargs.setdefault("nullable", not primary_key)
        super().__init__(primary_key=primary_key, **kwargs)

    def to_python(self, value: Any) -> str | None:
        if value is None:
            return value
        # uuid.UUID instances are accepted and stored in canonical text form
        return str(value)


class IntegerField(Field):
    def __init__(self, **kwargs: Any) -> None:
        kwargs.setdefault("db_type", "INTEGER")
        super().__init__(**kwargs)

    def to_python(self, value: Any) -> int | None:
        if value is None:
            return value
        try:
            return int(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid integer value '{value}'") from exc


class VersionField(IntegerField):
    """
    Monotonic row version used for optimistic concurrency control.

    Starts at 0 and is only advanced by the flush coordinator, lock manager,
    and bulk statements; it never counts as a user modification.
    """

    is_version = True

    def __init__(self, **kwargs: Any) -> None:
        kwargs.setdefault("nullable", False)
        kwargs.setdefault("default", 0)
        super().__init__(**kwargs)

    def to_python(self, value: Any) -> int | None:
        result = super().to_python(value)
        if result is not None and result < 0:
            raise ValueError(f"Version must be non-negative, received {result}")
        return result


class FloatField(Field):
    def __init__(self, **kwargs: Any) -> None:
        kwargs.setdefault("db_type", "REAL")
        super().__init__(**kwargs)

    def to_python(self, value: Any) -> float | None:
        if value is None:
            return value
        try:
            return float(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid float value '{value}'") from exc


class BooleanField(Field):
    def __init__(self, *, default: Any = False, **kwargs: Any) -> None:
        kwargs.setdefault("db_type", "BOOLEAN")
        kwargs.setdefault("nullable", False)
        super().__init__(default=default, **kwargs)

    def to_python(self, value: Any) -> bool | None:
        if value is None:
            return value
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            lowered = value.lower()
            if lowered in {"true", "t", "1"}:
                return True
            if lowered in {"false", "f", "0"}:
                return False
        if isinstance(value, (int, float)):
            return bool(value)
        raise ValueError(f"Invalid boolean value '{value}'")


class StringField(Field):
    def __init__(self, *, max_length: int = 255, **kwargs: Any) -> None:
        kwargs.setdefault("db_type", f"VARCHAR({max_length})" if max_length else "TEXT")
        super().__init__(**kwargs)
        self.max_length = max_length

    def to_python(self, value: Any) -> str | None:
        if value is None:
            return value
        result = str(value)
        if self.max_length and len(result) > self.max_length:
            field_name = self.require_name()
            raise ValueError(f"Value for field '{field_name}' exceeds max_length {self.max_length}")
        return result


class DateTimeField(Field):
    def __init__(self, *, auto_now_add: bool = False, **kwargs: Any) -> None:
        kwargs.setdefault("db_type", "TIMESTAMP")
        super().__init__(**kwargs)
        self.auto_now_add = auto_now_add

    @property
    def has_default(self) -> bool:
        return self.auto_now_add or super().has_default

    def get_default(self) -> Any:
        if self.auto_now_add:
            # Stamped when the instance is constructed, not when it is flushed.
            return datetime.now(timezone.utc)
        return super().get_default()

    def to_python(self, value: Any) -> datetime | None:
        if value is None:
            return value
        if isinstance(value, datetime):
            return value
        if isinstance(value, (bytes, str)):
            text = value.decode() if isinstance(value, bytes) else value
            try:
                return datetime.fromisoformat(text)
            except ValueError as exc:
                raise ValueError(
                    f"Invalid datetime value {value!r} for field '{self.name}'"
                ) from exc
        raise ValueError(f"Expected datetime for field '{self.name}', received {value!r}")


class DateField(Field):
    def __init__(self, **kwargs: Any) -> None:
        kwargs.setdefault("db_type", "DATE")
        super().__init__(**kwargs)

    def to_python(self, value: Any) -> date | None:
        if value is None:
            return value
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, (bytes, str)):
            text = value.decode() if isinstance(value, bytes) else value
            try:
                return date.fromisoformat(text)
            except ValueError as exc:
                raise ValueError(f"Invalid date value {value!r} for field '{self.name}'") from exc
        raise ValueError(f"Expected date for field '{self.name}', received {value!r}")
