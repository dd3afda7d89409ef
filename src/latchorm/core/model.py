"""
Model base classes and metadata orchestration for latchorm.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Type, TypeVar

from ..utils import camel_to_snake
from .fields import Field, UUIDField


class ModelConfigurationError(Exception):
    """Raised when a model class is misconfigured."""


@dataclass
class ModelOptions:
    """
    Container for model metadata calculated by :class:`ModelMeta`.
    """

    model: Type["Model"]
    table_name: str = ""
    schema: Optional[str] = None
    abstract: bool = False
    fields: "OrderedDict[str, Field]" = field(default_factory=OrderedDict)
    primary_key: Optional[Field] = None
    version_field: Optional[Field] = None

    def add_field(self, field_obj: Field) -> None:
        if field_obj.name in self.fields:
            raise ModelConfigurationError(
                f"Duplicate field name '{field_obj.name}' on model '{self.model.__name__}'"
            )
        column = field_obj.column_name()
        for existing in self.fields.values():
            if existing.column_name() == column:
                raise ModelConfigurationError(
                    f"Column '{column}' is mapped twice on model '{self.model.__name__}'"
                )
        self.fields[field_obj.name] = field_obj
        if field_obj.primary_key:
            if self.primary_key and self.primary_key is not field_obj:
                raise ModelConfigurationError(
                    f"Multiple primary keys defined on model '{self.model.__name__}'"
                )
            self.primary_key = field_obj
        if field_obj.is_version:
            if self.version_field and self.version_field is not field_obj:
                raise ModelConfigurationError(
                    f"Multiple version fields defined on model '{self.model.__name__}'"
                )
            if field_obj.primary_key:
                raise ModelConfigurationError(
                    f"Version field on model '{self.model.__name__}' cannot be the primary key"
                )
            self.version_field = field_obj

    @property
    def table(self) -> str:
        if self.schema:
            return f"{self.schema}.{self.table_name}"
        return self.table_name

    @property
    def versioned(self) -> bool:
        return self.version_field is not None

    def get_field(self, name: str) -> Field:
        try:
            return self.fields[name]
        except KeyError as exc:
            raise KeyError(f"Unknown field '{name}' on model '{self.model.__name__}'") from exc

    def get_fields(self) -> Iterable[Field]:
        return self.fields.values()

    def field_for_column(self, column: str) -> Field | None:
        for field_obj in self.fields.values():
            if field_obj.column_name() == column:
                return field_obj
        return None


TModel = TypeVar("TModel", bound="Model")


class ModelMeta(type):
    """
    Metaclass responsible for collecting fields and establishing metadata.

    The field list is validated once, here; sessions and the flush coordinator
    rely on it being fixed afterwards.
    """

    def __new__(mcls, name: str, bases: tuple[type, ...], attrs: Dict[str, Any]) -> "ModelMeta":
        # Allow creation of the base Model class without processing fields.
        if name == "Model" and not bases:
            return super().__new__(mcls, name, bases, attrs)

        declared_fields: Dict[str, Field] = {}
        for attr_name, value in list(attrs.items()):
            if isinstance(value, Field):
                declared_fields[attr_name] = attrs.pop(attr_name)

        cls = super().__new__(mcls, name, bases, attrs)

        meta = attrs.get("Meta")
        table_name = camel_to_snake(name)
        schema = None
        abstract = False

        if meta:
            table_name = getattr(meta, "table", table_name)
            schema = getattr(meta, "schema", None)
            abstract = getattr(meta, "abstract", False)

        cls._meta = ModelOptions(model=cls, table_name=table_name, schema=schema, abstract=abstract)

        # TODO: Support inheriting fields from abstract base models.
        sorted_fields = sorted(
            declared_fields.items(), key=lambda item: item[1].creation_counter
        )
        for attr_name, field_obj in sorted_fields:
            field_obj.contribute_to_class(cls, attr_name)
            cls._meta.add_field(field_obj)

        if not cls._meta.primary_key and not cls._meta.abstract:
            if "id" in cls._meta.fields:
                raise ModelConfigurationError(
                    f"Model '{cls.__name__}' defines a field named 'id' but no primary key. "
                    "Either set primary_key=True on that field or define a different name."
                )
            id_field = UUIDField()
            id_field.contribute_to_class(cls, "id")
            cls._meta.add_field(id_field)
            cls._meta.fields = OrderedDict(
                sorted(
                    cls._meta.fields.items(),
                    key=lambda item: (0 if item[0] == "id" else 1, item[1].creation_counter),
                )
            )

        return cls


class Model(metaclass=ModelMeta):
    """
    Base model providing data container functionality.

    Instances carry their current field values plus a snapshot of the values
    last synchronised with the database; persistence operations live on
    :class:`~latchorm.persistence.Session`.
    """

    def __init__(self, **kwargs: Any) -> None:
        self._field_values: Dict[str, Any] = {}
        self._initial_state: Dict[str, Any] = {}
        self._persisted = False

        unknown = set(kwargs) - set(self._meta.fields)
        if unknown:
            raise TypeError(
                f"{self.__class__.__name__} got unexpected field(s): {', '.join(sorted(unknown))}"
            )

        for field in self._meta.get_fields():
            if field.primary_key and field.has_default is False and field.name not in kwargs:
                # Primary key is assigned by the session on first save.
                continue

            if field.name in kwargs:
                setattr(self, field.name, kwargs[field.name])
            elif field.has_default:
                default_value = field.get_default()
                if default_value is not None:
                    setattr(self, field.name, default_value)

        # Retain snapshot for simple dirty tracking
        self._initial_state = dict(self._field_values)

    @classmethod
    def from_row(cls: Type[TModel], row: Mapping[str, Any]) -> TModel:
        """
        Build a persisted instance from a column-keyed database row.
        """
        instance = cls.__new__(cls)
        instance._field_values = {}
        instance._persisted = True
        for column, value in row.items():
            field = cls._meta.field_for_column(column)
            if field is None:
                continue
            instance._field_values[field.require_name()] = (
                None if value is None else field.to_python(value)
            )
        instance._initial_state = dict(instance._field_values)
        return instance

    def __repr__(self) -> str:
        field_parts = ", ".join(
            f"{field.name}={repr(self._field_values.get(field.name))}"
            for field in self._meta.get_fields()
            if field.name in self._field_values
        )
        return f"<{self.__class__.__name__} {field_parts}>"

    @property
    def pk(self) -> Any:
        if not self._meta.primary_key:
            raise ModelConfigurationError(
                f"Model '{self.__class__.__name__}' does not define a primary key."
            )
        return getattr(self, self._meta.primary_key.name)

    @property
    def is_persisted(self) -> bool:
        """True once the instance has been loaded from or written to the database."""
        return self._persisted

    def get_version(self) -> int | None:
        version_field = self._meta.version_field
        if version_field is None:
            return None
        return getattr(self, version_field.require_name())

    def set_version(self, value: int) -> None:
        version_field = self._meta.version_field
        if version_field is None:
            raise ModelConfigurationError(
                f"Model '{self.__class__.__name__}' does not define a version field."
            )
        self._field_values[version_field.require_name()] = value

    def to_dict(self) -> Dict[str, Any]:
        return {field.name: getattr(self, field.name) for field in self._meta.get_fields()}

    def changed_fields(self) -> List[Field]:
        """
        Fields whose current value differs from the last synchronised snapshot.
        The version field is never reported.
        """
        changed: List[Field] = []
        for field in self._meta.get_fields():
            if field.primary_key or field.is_version:
                continue
            name = field.require_name()
            if self._field_values.get(name) != self._initial_state.get(name):
                changed.append(field)
        return changed

    def is_dirty(self) -> bool:
        return bool(self.changed_fields())

    def mark_clean(self) -> None:
        self._initial_state = dict(self._field_values)
        self._persisted = True

    # Validation --------------------------------------------------------
    def full_clean(self) -> None:
        from ..validation import validate_instance

        validate_instance(self)

    def clean(self) -> None:
        """
        Hook for subclasses to implement model-level validation.
        """
        return None

    @classmethod
    def register_hook(cls, event: str, handler) -> None:
        from ..hooks import hooks

        hooks.register(event, handler, model=cls)
