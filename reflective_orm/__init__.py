"""Metadata-driven CRUD repositories for dataclass entities over DB-API stores."""

import logging

from .core import (
    CaseInsensitiveRow,
    ConfigurationError,
    CrudRepository,
    DatabaseConfig,
    EntityMetadata,
    EntityRepository,
    FieldDescriptor,
    FieldKind,
    MappingWarning,
    PersistenceError,
    ReflectiveOrmError,
    RepositoryFactory,
    Statement,
    StatementKind,
    column,
    config_from_env,
    create_repository,
    entity,
    extract_metadata,
    generate_statement,
    id_field,
    load_config,
    load_properties,
    map_row,
    table_name,
    transient,
)
from .ports import (
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

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "CaseInsensitiveRow",
    "ConfigurationError",
    "CrudRepository",
    "Database",
    "DatabaseConfig",
    "DBAPIConnector",
    "Dialect",
    "EntityMetadata",
    "EntityRepository",
    "FieldDescriptor",
    "FieldKind",
    "MappingWarning",
    "MySQLConnector",
    "MySQLDialect",
    "PersistenceError",
    "PostgresConnector",
    "PostgresDialect",
    "ReflectiveOrmError",
    "RepositoryFactory",
    "SQLiteConnector",
    "SQLiteDialect",
    "Statement",
    "StatementKind",
    "column",
    "config_from_env",
    "create_repository",
    "entity",
    "extract_metadata",
    "generate_statement",
    "id_field",
    "load_config",
    "load_properties",
    "map_row",
    "resolve_connector",
    "table_name",
    "transient",
]
