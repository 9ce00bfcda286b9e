"""Row-to-entity mapping with case-insensitive column lookup."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, Mapping, Type, TypeVar

from .coercion import Unmapped, coerce_value
from .errors import MappingWarning
from .metadata import EntityMetadata
from .models import DataclassModel
from .types import RowMapping

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=DataclassModel)


class CaseInsensitiveRow(Mapping[str, Any]):
    """Read-only view of a decoded row keyed by lowercased column label.

    When two labels differ only by case, the first one wins.
    """

    def __init__(self, row: RowMapping):
        self._values: Dict[str, Any] = {}
        self._labels: Dict[str, str] = {}
        for label, value in row.items():
            key = str(label).lower()
            if key not in self._values:
                self._values[key] = value
                self._labels[key] = str(label)

    def __getitem__(self, column: str) -> Any:
        return self._values[column.lower()]

    def __contains__(self, column: object) -> bool:
        return isinstance(column, str) and column.lower() in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._labels.values())

    def __len__(self) -> int:
        return len(self._values)


def map_row(meta: EntityMetadata[T], row: RowMapping) -> T:
    """Build a new entity from one decoded row.

    Missing columns, nulls headed for non-nullable fields, and values without
    a coercion path are logged as `MappingWarning` and never raise. Transient
    fields always hold their zero value.
    """

    values = row if isinstance(row, CaseInsensitiveRow) else CaseInsensitiveRow(row)
    assigned: Dict[str, Any] = {}
    known_columns = set()

    for descriptor in meta.persistable_fields:
        known_columns.add(descriptor.column_name.lower())
        if descriptor.column_name not in values:
            _warn(meta, descriptor.field_name, descriptor.column_name, "column not found in row")
            continue

        raw = values[descriptor.column_name]
        if raw is None and not descriptor.nullable:
            _warn(
                meta,
                descriptor.field_name,
                descriptor.column_name,
                "null value for non-nullable field; keeping zero value",
            )
            continue

        coerced = coerce_value(raw, descriptor)
        if isinstance(coerced, Unmapped):
            _warn(meta, descriptor.field_name, descriptor.column_name, coerced.reason, raw=raw)
            coerced = coerced.raw
        assigned[descriptor.field_name] = coerced

    for label in values:
        if label.lower() not in known_columns:
            _warn(meta, None, label, "column does not match any persistable field")

    return instantiate(meta, assigned)


def instantiate(meta: EntityMetadata[T], assigned: Mapping[str, Any]) -> T:
    """Construct an entity from mapped values, zero-filling everything else."""

    model: Type[T] = meta.model
    descriptors = meta.persistable_fields + meta.transient_fields
    kwargs = {}
    for descriptor in descriptors:
        if not descriptor.init:
            continue
        if descriptor.field_name in assigned:
            kwargs[descriptor.field_name] = assigned[descriptor.field_name]
        else:
            kwargs[descriptor.field_name] = descriptor.zero_value()

    obj = model(**kwargs)
    for descriptor in descriptors:
        if not descriptor.init and descriptor.field_name in assigned:
            setattr(obj, descriptor.field_name, assigned[descriptor.field_name])
    return obj


def _warn(
    meta: EntityMetadata[Any],
    field_name: Any,
    column: str,
    reason: str,
    *,
    raw: Any = None,
) -> None:
    warning = MappingWarning(
        reason,
        entity=meta.model,
        field_name=field_name,
        column=column,
        raw=raw,
    )
    logger.warning("Mapping %s: %s", meta.table, warning)
