"""Public port exports for concrete adapter implementations."""

from .db_api import (
    Database,
    DBAPIConnector,
    Dialect,
    MySQLConnector,
    MySQLDialect,
    PostgresConnector,
    PostgresDialect,
    SQLiteConnector,
    SQLiteDialect,
    resolve_connector,
)

__all__ = [
    "Database",
    "DBAPIConnector",
    "Dialect",
    "SQLiteDialect",
    "PostgresDialect",
    "MySQLDialect",
    "SQLiteConnector",
    "PostgresConnector",
    "MySQLConnector",
    "resolve_connector",
]
