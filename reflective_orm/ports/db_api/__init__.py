"""DB-API adapter, dialect, and connector exports."""

from .connectors import (
    DBAPIConnector,
    MySQLConnector,
    PostgresConnector,
    SQLiteConnector,
    resolve_connector,
)
from .database import Database
from .dialects import Dialect, MySQLDialect, PostgresDialect, SQLiteDialect

__all__ = [
    "DBAPIConnector",
    "Database",
    "Dialect",
    "MySQLConnector",
    "MySQLDialect",
    "PostgresConnector",
    "PostgresDialect",
    "SQLiteConnector",
    "SQLiteDialect",
    "resolve_connector",
]
