"""Entity declaration markers and dataclass model helpers."""

from __future__ import annotations

import dataclasses
from dataclasses import MISSING, Field, fields, is_dataclass
from typing import Any, Callable, ClassVar, Dict, List, Optional, Protocol, Type, TypeVar

from .errors import ConfigurationError

ID_MARKER = "id"
AUTO_MARKER = "auto"
COLUMN_MARKER = "column"
TRANSIENT_MARKER = "transient"
NULLABLE_MARKER = "nullable"
UNIQUE_MARKER = "unique"


class DataclassModel(Protocol):
    """Protocol for supported dataclass entity types."""

    __dataclass_fields__: ClassVar[dict[str, Any]]


T = TypeVar("T", bound=DataclassModel)
C = TypeVar("C", bound=type)


def id_field(
    *,
    column: Optional[str] = None,
    auto: bool = True,
    default: Any = None,
) -> Any:
    """Declare the identifier field of an entity.

    Args:
        column: Explicit column name. Defaults to the field name.
        auto: Whether the store generates the value on insert.
        default: Value of the field before the entity is saved.
    """

    metadata: Dict[str, Any] = {ID_MARKER: True, AUTO_MARKER: auto}
    if column:
        metadata[COLUMN_MARKER] = column
    return dataclasses.field(default=default, metadata=metadata)


def column(
    name: Optional[str] = None,
    *,
    default: Any = MISSING,
    default_factory: Any = MISSING,
    nullable: Optional[bool] = None,
    unique: bool = False,
) -> Any:
    """Declare a persisted field with an optional column-name override.

    `nullable` overrides the nullability inferred from the annotation.
    `unique` is declarative: it is exposed as `FieldDescriptor.unique` and
    never enforced by the engine.
    """

    metadata: Dict[str, Any] = {UNIQUE_MARKER: unique}
    if name:
        metadata[COLUMN_MARKER] = name
    if nullable is not None:
        metadata[NULLABLE_MARKER] = nullable
    if default_factory is not MISSING:
        return dataclasses.field(default_factory=default_factory, metadata=metadata)
    return dataclasses.field(default=default, metadata=metadata)


def transient(*, default: Any = None, default_factory: Any = MISSING) -> Any:
    """Declare a field that is never written to nor read from the store."""

    metadata = {TRANSIENT_MARKER: True}
    if default_factory is not MISSING:
        return dataclasses.field(default_factory=default_factory, metadata=metadata)
    return dataclasses.field(default=default, metadata=metadata)


def entity(*, table: Optional[str] = None) -> Callable[[C], C]:
    """Class decorator setting an explicit table name on an entity."""

    def decorate(cls: C) -> C:
        if table:
            cls.__table__ = table  # type: ignore[attr-defined]
        return cls

    return decorate


def require_dataclass_model(cls: Type[Any]) -> None:
    """Validate that a class is a mutable dataclass entity."""

    if not isinstance(cls, type) or not is_dataclass(cls):
        name = getattr(cls, "__name__", repr(cls))
        raise ConfigurationError(f"{name} must be a dataclass.")
    params = getattr(cls, "__dataclass_params__", None)
    if params is not None and params.frozen:
        raise ConfigurationError(
            f"{cls.__name__} is a frozen dataclass; generated identifiers "
            "cannot be assigned on save."
        )


def table_name(model_or_cls: Any) -> str:
    """Resolve table name from entity class or instance.

    Uses `__table__` override when present, otherwise the lowercased,
    pluralized class name.
    """

    cls = model_or_cls if isinstance(model_or_cls, type) else type(model_or_cls)
    name = getattr(cls, "__table__", None)
    return name if isinstance(name, str) and name else _pluralize(cls.__name__.lower())


def model_fields(cls: Type[DataclassModel]) -> List[Field[Any]]:
    """Return dataclass fields for an entity type."""

    require_dataclass_model(cls)
    return list(fields(cls))


def is_id_field(field: Field[Any]) -> bool:
    return bool(field.metadata.get(ID_MARKER))


def is_transient_field(field: Field[Any]) -> bool:
    return bool(field.metadata.get(TRANSIENT_MARKER))


def column_name(field: Field[Any]) -> str:
    """Return the explicit column override, or the field name verbatim."""

    override = field.metadata.get(COLUMN_MARKER)
    if override is None or override == "":
        return field.name
    if not isinstance(override, str):
        raise ConfigurationError(
            f"Field {field.name!r} column name must be a string, got "
            f"{type(override).__name__}."
        )
    return override


def _pluralize(name: str) -> str:
    if name.endswith("y") and len(name) > 1 and name[-2] not in "aeiou":
        return f"{name[:-1]}ies"
    if name.endswith(("s", "x", "z", "ch", "sh")):
        return f"{name}es"
    return f"{name}s"
