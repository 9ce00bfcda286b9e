"""Error taxonomy raised (or logged) by the repository engine."""

from __future__ import annotations

from typing import Any, Optional


class ReflectiveOrmError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(ReflectiveOrmError):
    """Entity, contract, or connection configuration is unusable.

    Never retried: the same input raises the same error on every call.
    """


class PersistenceError(ReflectiveOrmError):
    """The relational store rejected or could not run an operation.

    The driver exception, when there is one, is chained as `__cause__`.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        entity: Optional[type] = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.entity = entity


class MappingWarning(UserWarning):
    """Non-fatal row mapping anomaly.

    Built and logged by the row mapper when a column is missing, a null
    cannot populate a non-nullable field, or a raw value has no coercion
    path. The affected field keeps its zero value (or raw value).
    """

    def __init__(
        self,
        reason: str,
        *,
        entity: Optional[type] = None,
        field_name: Optional[str] = None,
        column: Optional[str] = None,
        raw: Any = None,
    ):
        super().__init__(reason)
        self.reason = reason
        self.entity = entity
        self.field_name = field_name
        self.column = column
        self.raw = raw

    def __str__(self) -> str:
        owner = self.entity.__name__ if self.entity is not None else "?"
        if self.field_name:
            owner = f"{owner}.{self.field_name}"
        return f"{owner} (column {self.column!r}): {self.reason}"
