"""SQL statement generation from entity metadata."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .contracts import DialectPort
from .metadata import EntityMetadata, FieldDescriptor


class StatementKind(str, Enum):
    """Operations the generator knows how to express."""

    SAVE = "save"
    INSERT = "insert"
    UPDATE = "update"
    SELECT_BY_ID = "select_by_id"
    SELECT_ALL = "select_all"
    DELETE_BY_ID = "delete_by_id"
    COUNT = "count"


@dataclass(frozen=True)
class Statement:
    """Parameterized SQL text plus the fields filling its placeholders, in order.

    `returns_key` is set when the statement itself yields the generated
    identifier (`RETURNING`).
    """

    kind: StatementKind
    sql: str
    param_fields: Tuple[FieldDescriptor, ...] = ()
    returns_key: bool = False

    @property
    def param_names(self) -> Tuple[str, ...]:
        return tuple(f.field_name for f in self.param_fields)


def generate_statement(
    meta: EntityMetadata,
    kind: StatementKind,
    dialect: DialectPort,
    *,
    is_insert: Optional[bool] = None,
) -> Statement:
    """Build the statement for one operation.

    Only table/column identifiers taken from `meta` are interpolated; every
    value goes through a placeholder.

    Args:
        meta: Entity metadata.
        kind: Operation. `StatementKind.SAVE` requires `is_insert`.
        dialect: Quoting and placeholder rules.
        is_insert: Selects INSERT or UPDATE for a SAVE request.
    """

    if kind is StatementKind.SAVE:
        if is_insert is None:
            raise ValueError("is_insert is required for StatementKind.SAVE.")
        kind = StatementKind.INSERT if is_insert else StatementKind.UPDATE

    table_sql = dialect.q(meta.table)
    id_column = dialect.q(meta.identifier.column_name)
    id_placeholder = dialect.placeholder(meta.identifier.field_name)

    if kind is StatementKind.INSERT:
        return _insert(meta, table_sql, dialect)

    if kind is StatementKind.UPDATE:
        fields = meta.writable_fields
        if not fields:
            raise ValueError(
                f"Cannot UPDATE {meta.model.__name__}: no persistable columns "
                "besides the identifier."
            )
        set_clause = ", ".join(
            f"{dialect.q(f.column_name)} = {dialect.placeholder(f.field_name)}"
            for f in fields
        )
        sql = f"UPDATE {table_sql} SET {set_clause} WHERE {id_column} = {id_placeholder}"
        return Statement(kind, sql, fields + (meta.identifier,))

    if kind is StatementKind.SELECT_BY_ID:
        sql = f"SELECT * FROM {table_sql} WHERE {id_column} = {id_placeholder}"
        return Statement(kind, sql, (meta.identifier,))

    if kind is StatementKind.SELECT_ALL:
        return Statement(kind, f"SELECT * FROM {table_sql}")

    if kind is StatementKind.DELETE_BY_ID:
        sql = f"DELETE FROM {table_sql} WHERE {id_column} = {id_placeholder}"
        return Statement(kind, sql, (meta.identifier,))

    if kind is StatementKind.COUNT:
        return Statement(kind, f"SELECT COUNT(*) FROM {table_sql}")

    raise ValueError(f"Unsupported statement kind: {kind!r}")


def _insert(meta: EntityMetadata, table_sql: str, dialect: DialectPort) -> Statement:
    fields = meta.insert_fields
    returning = ""
    returns_key = False
    if meta.identifier.auto and dialect.supports_returning:
        returning = dialect.returning_clause(meta.identifier.column_name)
        returns_key = True

    if not fields:
        sql = f"INSERT INTO {table_sql} DEFAULT VALUES{returning}"
        return Statement(StatementKind.INSERT, sql, (), returns_key)

    column_sql = ", ".join(dialect.q(f.column_name) for f in fields)
    placeholders = ", ".join(dialect.placeholder(f.field_name) for f in fields)
    sql = f"INSERT INTO {table_sql} ({column_sql}) VALUES ({placeholders}){returning}"
    return Statement(StatementKind.INSERT, sql, fields, returns_key)
