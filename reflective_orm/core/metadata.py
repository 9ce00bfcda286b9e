"""Entity metadata extraction used by SQL generation and row mapping."""

from __future__ import annotations

import types
from dataclasses import MISSING, Field, dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from typing import (
    Any,
    Dict,
    Generic,
    Tuple,
    Type,
    TypeVar,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from .errors import ConfigurationError
from .models import (
    AUTO_MARKER,
    NULLABLE_MARKER,
    UNIQUE_MARKER,
    DataclassModel,
    column_name,
    is_id_field,
    is_transient_field,
    model_fields,
    table_name,
)

T = TypeVar("T", bound=DataclassModel)


class FieldKind(str, Enum):
    """Semantic type tag of an entity field."""

    NUMERIC = "numeric"
    STRING = "string"
    BOOLEAN = "boolean"
    TEMPORAL = "temporal"
    IDENTIFIER = "identifier"
    ENUM = "enum"
    JSON = "json"
    OTHER = "other"


NUMERIC_TYPES = (int, float, Decimal)
TEMPORAL_TYPES = (datetime, date, time)


@dataclass(frozen=True)
class FieldDescriptor:
    """How one dataclass field maps onto one table column."""

    field_name: str
    column_name: str
    python_type: Any
    kind: FieldKind
    # dataclasses.MISSING when the field declares no default
    default: Any
    default_factory: Any
    is_identifier: bool = False
    is_transient: bool = False
    nullable: bool = True
    auto: bool = False
    init: bool = True
    unique: bool = False

    def zero_value(self) -> Any:
        """Return the value a freshly constructed entity holds for this field."""

        if self.default is not MISSING:
            return self.default
        if self.default_factory is not MISSING:
            return self.default_factory()
        if self.python_type is bool:
            return False
        if self.python_type in NUMERIC_TYPES:
            return self.python_type(0)
        if self.python_type is str:
            return ""
        return None


@dataclass(frozen=True)
class EntityMetadata(Generic[T]):
    """Immutable persistence description of one entity type.

    `persistable_fields` keeps dataclass declaration order and includes the
    identifier; `writable_fields` is the same sequence without it.
    """

    model: Type[T]
    table: str
    identifier: FieldDescriptor
    persistable_fields: Tuple[FieldDescriptor, ...]
    transient_fields: Tuple[FieldDescriptor, ...]

    @property
    def writable_fields(self) -> Tuple[FieldDescriptor, ...]:
        return tuple(f for f in self.persistable_fields if not f.is_identifier)

    @property
    def insert_fields(self) -> Tuple[FieldDescriptor, ...]:
        """Fields written by INSERT: the identifier only when not store-generated."""

        if self.identifier.auto:
            return self.writable_fields
        return self.persistable_fields

    def field(self, name: str) -> FieldDescriptor:
        for descriptor in self.persistable_fields + self.transient_fields:
            if descriptor.field_name == name:
                return descriptor
        raise KeyError(name)

    def column_for(self, name: str) -> str:
        return self.field(name).column_name


def extract_metadata(model: Type[T]) -> EntityMetadata[T]:
    """Build (or reuse) metadata from dataclass annotations and field markers.

    Args:
        model: Dataclass entity type.

    Returns:
        Immutable metadata, cached per entity type.

    Raises:
        ConfigurationError: If the type is not a mutable dataclass, has no
            identifier field or more than one, marks its identifier transient,
            maps two fields onto one column, or has unresolvable annotations.
    """

    try:
        return _extract_cached(model)
    except TypeError as exc:
        # unhashable "types" never reach the cache
        raise ConfigurationError(f"Cannot introspect entity {model!r}: {exc}") from exc


@lru_cache(maxsize=None)
def _extract_cached(model: Type[T]) -> EntityMetadata[T]:
    dc_fields = model_fields(model)
    hints = _model_type_hints(model)

    descriptors = [_describe(field, hints) for field in dc_fields]
    identifiers = [d for d in descriptors if d.is_identifier]
    if not identifiers:
        raise ConfigurationError(
            f"{model.__name__} has no identifier field. Use id_field() or "
            "field(metadata={'id': True})."
        )
    if len(identifiers) > 1:
        names = ", ".join(d.field_name for d in identifiers)
        raise ConfigurationError(
            f"{model.__name__} declares more than one identifier field: {names}."
        )
    identifier = identifiers[0]
    if identifier.is_transient:
        raise ConfigurationError(
            f"{model.__name__}.{identifier.field_name} cannot be both identifier and transient."
        )

    persistable = tuple(d for d in descriptors if not d.is_transient)
    seen: Dict[str, str] = {}
    for descriptor in persistable:
        key = descriptor.column_name.lower()
        if key in seen:
            raise ConfigurationError(
                f"{model.__name__} maps fields {seen[key]!r} and "
                f"{descriptor.field_name!r} onto the same column "
                f"{descriptor.column_name!r}."
            )
        seen[key] = descriptor.field_name

    return EntityMetadata(
        model=model,
        table=table_name(model),
        identifier=identifier,
        persistable_fields=persistable,
        transient_fields=tuple(d for d in descriptors if d.is_transient),
    )


def _describe(field: Field[Any], hints: Dict[str, Any]) -> FieldDescriptor:
    annotation = hints.get(field.name, field.type)
    python_type, optional = _unwrap_optional(annotation)
    identifier = is_id_field(field)
    transient = is_transient_field(field)

    nullable = field.metadata.get(NULLABLE_MARKER)
    if nullable is None:
        nullable = optional or identifier or field.default is None or python_type is Any

    return FieldDescriptor(
        field_name=field.name,
        column_name=column_name(field),
        python_type=python_type,
        kind=FieldKind.IDENTIFIER if identifier else kind_of(python_type),
        is_identifier=identifier,
        is_transient=transient,
        nullable=bool(nullable),
        auto=identifier and bool(field.metadata.get(AUTO_MARKER, True)),
        init=field.init,
        unique=bool(field.metadata.get(UNIQUE_MARKER, False)),
        default=field.default,
        default_factory=field.default_factory,
    )


def kind_of(python_type: Any) -> FieldKind:
    """Classify a resolved annotation into a semantic kind."""

    if python_type is bool:
        return FieldKind.BOOLEAN
    if isinstance(python_type, type) and get_origin(python_type) is None:
        if issubclass(python_type, Enum):
            return FieldKind.ENUM
        if issubclass(python_type, NUMERIC_TYPES):
            return FieldKind.NUMERIC
        if issubclass(python_type, str):
            return FieldKind.STRING
        if issubclass(python_type, TEMPORAL_TYPES):
            return FieldKind.TEMPORAL
    if python_type in {dict, list} or get_origin(python_type) in {dict, list}:
        return FieldKind.JSON
    return FieldKind.OTHER


def _model_type_hints(model: Type[Any]) -> Dict[str, Any]:
    try:
        return dict(get_type_hints(model))
    except Exception as exc:
        raise ConfigurationError(
            f"Cannot resolve field annotations of {model.__name__}: {exc}"
        ) from exc


def _unwrap_optional(annotation: Any) -> Tuple[Any, bool]:
    origin = get_origin(annotation)
    if origin not in {Union, types.UnionType}:
        return annotation, annotation is type(None)

    all_args = get_args(annotation)
    args = [arg for arg in all_args if arg is not type(None)]
    optional = len(args) != len(all_args)
    if len(args) == 1:
        return args[0], optional
    return annotation, optional


