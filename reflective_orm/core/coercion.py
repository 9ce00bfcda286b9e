"""Value coercion between store-native representations and entity field types."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Union, get_origin

from .contracts import DialectPort
from .metadata import NUMERIC_TYPES, FieldDescriptor, FieldKind, kind_of

TRUTHY_TOKENS = frozenset({"true", "t", "y", "1"})


@dataclass(frozen=True)
class Unmapped:
    """Result of a coercion that found no conversion path."""

    raw: Any
    reason: str


Coerced = Union[Any, Unmapped]


def coerce_value(raw: Any, descriptor: FieldDescriptor) -> Coerced:
    """Convert one raw column value into the field's declared type.

    `None` passes through untouched; the caller decides whether the field
    accepts it.
    """

    if raw is None:
        return None

    target = descriptor.python_type
    kind = kind_of(target) if descriptor.kind is FieldKind.IDENTIFIER else descriptor.kind

    if kind is FieldKind.BOOLEAN:
        return _to_bool(raw)
    if kind is FieldKind.NUMERIC:
        return _to_number(raw, target)
    if kind is FieldKind.TEMPORAL:
        return _to_temporal(raw, target)
    if kind is FieldKind.ENUM:
        return _to_enum(raw, target)
    if kind is FieldKind.JSON:
        return _to_json(raw)
    if kind is FieldKind.STRING:
        if isinstance(raw, str):
            return raw if type(raw) is target else target(raw)
        if isinstance(raw, (bytes, bytearray, memoryview)):
            return bytes(raw).decode("utf-8")
        return _unmapped(raw, target)

    if _accepts(target, raw):
        return raw
    return _unmapped(raw, target)


def coerce_generated_key(raw: Any, descriptor: FieldDescriptor) -> Coerced:
    """Narrow a store-generated key to the identifier's declared type."""

    if raw is None:
        return None
    target = descriptor.python_type
    if kind_of(target) is FieldKind.NUMERIC:
        return _to_number(raw, target)
    if _accepts(target, raw):
        return raw
    return _unmapped(raw, target)


def to_db_value(value: Any, descriptor: FieldDescriptor, dialect: DialectPort) -> Any:
    """Serialize one field value for a statement parameter."""

    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    if descriptor.kind is FieldKind.JSON and not isinstance(value, (str, bytes)):
        return json.dumps(value)
    if not dialect.supports_native_temporal and isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if not dialect.supports_native_decimal and isinstance(value, Decimal):
        return str(value)
    return value


def _to_bool(raw: Any) -> Coerced:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, NUMERIC_TYPES):
        return raw != 0
    if isinstance(raw, (bytes, bytearray)):
        raw = bytes(raw).decode("utf-8", errors="replace")
    if isinstance(raw, str):
        return raw.strip().lower() in TRUTHY_TOKENS
    return _unmapped(raw, bool)


def _to_number(raw: Any, target: type) -> Coerced:
    if type(raw) is target:
        return raw
    if isinstance(raw, bool):
        raw = int(raw)
    if isinstance(raw, NUMERIC_TYPES):
        if issubclass(target, Decimal):
            return target(str(raw))
        return target(raw)
    if isinstance(raw, str) and issubclass(target, Decimal):
        try:
            return target(raw.strip())
        except InvalidOperation:
            return _unmapped(raw, target)
    return _unmapped(raw, target)


def _to_temporal(raw: Any, target: type) -> Coerced:
    if issubclass(target, datetime):
        if isinstance(raw, datetime):
            return raw
        if isinstance(raw, date):
            return datetime.combine(raw, time())
        if isinstance(raw, str):
            return _parse_iso(raw, datetime.fromisoformat, target)
        return _unmapped(raw, target)

    if issubclass(target, date):
        if isinstance(raw, datetime):
            return raw.date()
        if isinstance(raw, date):
            return raw
        if isinstance(raw, str):
            parsed = _parse_iso(raw, datetime.fromisoformat, target)
            return parsed.date() if isinstance(parsed, datetime) else parsed
        return _unmapped(raw, target)

    if isinstance(raw, datetime):
        return raw.time()
    if isinstance(raw, time):
        return raw
    if isinstance(raw, str):
        return _parse_iso(raw, time.fromisoformat, target)
    return _unmapped(raw, target)


def _parse_iso(raw: str, parse: Any, target: type) -> Coerced:
    try:
        return parse(raw.strip())
    except ValueError:
        return _unmapped(raw, target)


def _to_enum(raw: Any, enum_type: type[Enum]) -> Coerced:
    if isinstance(raw, enum_type):
        return raw
    try:
        return enum_type(raw)
    except ValueError:
        if isinstance(raw, str) and raw in enum_type.__members__:
            return enum_type[raw]
    return _unmapped(raw, enum_type)


def _to_json(raw: Any) -> Coerced:
    if isinstance(raw, (dict, list)):
        return raw
    if isinstance(raw, (bytes, bytearray, memoryview)):
        raw = bytes(raw).decode("utf-8")
    if not isinstance(raw, str):
        return _unmapped(raw, "json")
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return _unmapped(raw, "json")


def _unmapped(raw: Any, target: Any) -> Unmapped:
    name = getattr(target, "__name__", str(target))
    return Unmapped(raw, f"no conversion from {type(raw).__name__} to {name}")


def _accepts(target: Any, raw: Any) -> bool:
    if target is Any or not isinstance(target, type) or get_origin(target) is not None:
        return True
    return isinstance(raw, target)
