"""Public core API: entity markers, metadata, SQL generation, and repositories."""

from .coercion import Unmapped, coerce_generated_key, coerce_value, to_db_value
from .config import DatabaseConfig, config_from_env, load_config, load_properties
from .errors import ConfigurationError, MappingWarning, PersistenceError, ReflectiveOrmError
from .metadata import EntityMetadata, FieldDescriptor, FieldKind, extract_metadata
from .models import column, entity, id_field, table_name, transient
from .repository import (
    CrudRepository,
    EntityRepository,
    RepositoryFactory,
    create_repository,
)
from .row_mapper import CaseInsensitiveRow, map_row
from .sql import Statement, StatementKind, generate_statement

__all__ = [
    "CaseInsensitiveRow",
    "ConfigurationError",
    "CrudRepository",
    "DatabaseConfig",
    "EntityMetadata",
    "EntityRepository",
    "FieldDescriptor",
    "FieldKind",
    "MappingWarning",
    "PersistenceError",
    "ReflectiveOrmError",
    "RepositoryFactory",
    "Statement",
    "StatementKind",
    "Unmapped",
    "coerce_generated_key",
    "coerce_value",
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
    "table_name",
    "to_db_value",
    "transient",
]
