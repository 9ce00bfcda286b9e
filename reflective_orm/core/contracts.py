"""Core port contracts used by adapters and the repository engine."""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Any, List, Optional, Protocol, Sequence

from .types import MaybeRow, QueryParams, RowMapping


class DialectPort(Protocol):
    """Dialect behavior required by SQL generation and CRUD operations."""

    name: str
    paramstyle: str
    supports_returning: bool
    supports_native_temporal: bool
    supports_native_decimal: bool

    def q(self, ident: str) -> str: ...

    def placeholder(self, key: str) -> str: ...

    def returning_clause(self, pk_name: str) -> str: ...

    def bind(self, names: Sequence[str], values: Sequence[Any]) -> QueryParams: ...

    def get_lastrowid(self, cursor: Any) -> Optional[int]: ...


class DatabasePort(Protocol):
    """Database adapter behavior required by the repository engine."""

    dialect: DialectPort

    def transaction(self) -> AbstractContextManager[None]: ...

    def execute(self, sql: str, params: QueryParams = None) -> Any: ...

    def fetchone(self, sql: str, params: QueryParams = None) -> MaybeRow: ...

    def fetchall(self, sql: str, params: QueryParams = None) -> List[RowMapping]: ...

    def close(self) -> None: ...


class ConnectionProvider(Protocol):
    """Opens one database adapter per repository call."""

    dialect: DialectPort

    def open(self, config: Any) -> DatabasePort: ...
