"""CRUD repository contract, its metadata-driven implementation, and factory."""

from __future__ import annotations

import contextlib
import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import (
    Any,
    Dict,
    Generic,
    Iterator,
    List,
    Optional,
    Tuple,
    Type,
    TypeVar,
    get_args,
    get_origin,
)

from .coercion import Unmapped, coerce_generated_key, to_db_value
from .config import ConfigInput, DatabaseConfig, coerce_config
from .contracts import ConnectionProvider, DatabasePort, DialectPort
from .errors import ConfigurationError, MappingWarning, PersistenceError, ReflectiveOrmError
from .metadata import EntityMetadata, extract_metadata
from .models import DataclassModel
from .row_mapper import map_row
from .sql import Statement, StatementKind, generate_statement
from .types import QueryParams, RowMapping

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=DataclassModel)
ID = TypeVar("ID")
R = TypeVar("R", bound="CrudRepository[Any, Any]")


class CrudRepository(ABC, Generic[T, ID]):
    """Five-operation repository contract bound to one entity and id type.

    Declare a contract by subclassing with concrete type arguments::

        class UserRepository(CrudRepository[User, int]):
            pass

    and obtain a working instance from `RepositoryFactory.create_repository`.
    """

    @abstractmethod
    def save(self, entity: T) -> T:
        """Insert a new entity or replace an existing row; return the same instance."""

    @abstractmethod
    def find_by_id(self, id: ID) -> Optional[T]:
        """Return the entity stored under `id`, or `None`."""

    @abstractmethod
    def find_all(self) -> List[T]:
        """Return every stored entity in store iteration order."""

    @abstractmethod
    def delete_by_id(self, id: ID) -> None:
        """Delete the row stored under `id`; a missing row is not an error."""

    @abstractmethod
    def count(self) -> int:
        """Return the number of stored rows."""


class EntityRepository(CrudRepository[T, ID]):
    """CRUD repository generated from entity metadata.

    Holds no connection between calls: every operation opens one connection
    through the provider, runs its statement(s) in one transaction, and
    closes it on both success and failure paths. Metadata is extracted on
    first use and reused for the instance's lifetime.
    """

    def __init__(
        self,
        model: Type[T],
        config: ConfigInput,
        connector: Optional[ConnectionProvider] = None,
        *,
        id_type: Any = None,
    ):
        """Create repository for an entity type.

        Args:
            model: Dataclass entity type.
            config: `DatabaseConfig` or a flat `db.*` mapping.
            connector: Connection provider. Resolved from the config when omitted.
            id_type: Declared identifier type, informational.

        Raises:
            ConfigurationError: If the configuration is incomplete or names
                no supported store.
        """

        from ..ports.db_api.connectors import resolve_connector

        self.model = model
        self.id_type = id_type
        self.config: DatabaseConfig = coerce_config(config)
        self.connector: ConnectionProvider = connector or resolve_connector(self.config)
        self._meta: Optional[EntityMetadata[T]] = None

    @property
    def meta(self) -> EntityMetadata[T]:
        if self._meta is None:
            self._meta = extract_metadata(self.model)
        return self._meta

    @property
    def d(self) -> DialectPort:
        return self.connector.dialect

    def save(self, entity: T) -> T:
        """Insert or update `entity` and return the same instance.

        An unset identifier (`None`, `0`, or `""`) means INSERT; the generated
        key is then written back onto `entity`. A set identifier means a
        full-row UPDATE, or only a lookup by id when the identifier is the
        entity's sole persisted field. Transient fields on `entity` are left
        untouched.

        Raises:
            TypeError: If `entity` is not an instance of the bound type.
            ConfigurationError: If the entity type cannot be introspected.
            PersistenceError: If the store fails or no row is affected.
        """

        meta = self.meta
        if not isinstance(entity, meta.model):
            raise TypeError(
                f"Object to save is not an instance of {meta.model.__name__}: "
                f"{type(entity).__name__}."
            )

        id_name = meta.identifier.field_name
        is_insert = is_unset_identifier(getattr(entity, id_name))
        if is_insert or meta.writable_fields:
            statement = generate_statement(meta, StatementKind.SAVE, self.d, is_insert=is_insert)
        else:
            # nothing to SET: an update only has to find the row
            statement = generate_statement(meta, StatementKind.SELECT_BY_ID, self.d)

        with self._session("save") as db:
            if is_insert:
                generated = self._run_insert(db, statement, entity)
            else:
                if statement.kind is StatementKind.UPDATE:
                    affected = self._run(db, statement, entity).rowcount
                else:
                    params = self._bind_entity(statement, entity)
                    affected = len(db.fetchall(statement.sql, params))
                if affected == 0 and not meta.identifier.auto:
                    insert = generate_statement(meta, StatementKind.INSERT, self.d)
                    self._run_insert(db, insert, entity)
                elif affected == 0:
                    raise PersistenceError(
                        f"Saving {meta.model.__name__} failed, no rows affected "
                        f"({id_name}={getattr(entity, id_name)!r}).",
                        operation="save",
                        entity=meta.model,
                    )
                generated = None

        if is_insert and meta.identifier.auto:
            if generated is None:
                logger.info("No generated key returned for INSERT into %s.", meta.table)
            else:
                self._assign_generated_key(entity, generated)
        return entity

    def find_by_id(self, id: ID) -> Optional[T]:
        """Fetch one row by identifier and map it to a new entity.

        Returns:
            A fresh entity (transient fields at their zero value), or `None`
            when no row matches.
        """

        if id is None:
            return None
        meta = self.meta
        statement = generate_statement(meta, StatementKind.SELECT_BY_ID, self.d)
        params = self._bind(statement, [id])
        with self._session("find_by_id") as db:
            row = db.fetchone(statement.sql, params)
        return map_row(meta, row) if row is not None else None

    def find_all(self) -> List[T]:
        """Fetch and map every row; an empty table yields an empty list."""

        meta = self.meta
        statement = generate_statement(meta, StatementKind.SELECT_ALL, self.d)
        with self._session("find_all") as db:
            rows = db.fetchall(statement.sql)
        return [map_row(meta, row) for row in rows]

    def delete_by_id(self, id: ID) -> None:
        """Delete one row by identifier. Deleting a missing row succeeds."""

        meta = self.meta
        statement = generate_statement(meta, StatementKind.DELETE_BY_ID, self.d)
        params = self._bind(statement, [id])
        with self._session("delete_by_id") as db:
            affected = db.execute(statement.sql, params).rowcount
        if affected == 0:
            logger.info("No rows deleted for %s=%r in %s.", meta.identifier.column_name, id, meta.table)

    def count(self) -> int:
        """Count rows in the entity table."""

        meta = self.meta
        statement = generate_statement(meta, StatementKind.COUNT, self.d)
        with self._session("count") as db:
            row = db.fetchone(statement.sql)
        if not row:
            return 0
        return int(_first_value(row))

    @contextlib.contextmanager
    def _session(self, operation: str) -> Iterator[DatabasePort]:
        """Open one connection for one operation and always close it.

        Driver exceptions become `PersistenceError` chained to the original.
        """

        model = self.meta.model
        try:
            db = self.connector.open(self.config)
        except ReflectiveOrmError:
            raise
        except Exception as exc:
            raise PersistenceError(
                f"Cannot open connection for {operation}: {exc}",
                operation=operation,
                entity=model,
            ) from exc

        try:
            with db.transaction():
                yield db
        except ReflectiveOrmError:
            raise
        except Exception as exc:
            raise PersistenceError(
                f"Repository operation {operation} on {model.__name__} failed: {exc}",
                operation=operation,
                entity=model,
            ) from exc
        finally:
            db.close()

    def _run(self, db: DatabasePort, statement: Statement, entity: T) -> Any:
        return db.execute(statement.sql, self._bind_entity(statement, entity))

    def _run_insert(self, db: DatabasePort, statement: Statement, entity: T) -> Any:
        """Execute an INSERT and return the store-generated key, if any."""

        params = self._bind_entity(statement, entity)
        table = self.meta.model.__name__
        if statement.returns_key:
            rows = db.fetchall(statement.sql, params)
            if not rows:
                raise PersistenceError(
                    f"Saving {table} failed, no rows affected.",
                    operation="save",
                    entity=self.meta.model,
                )
            return _first_value(rows[0])

        cursor = db.execute(statement.sql, params)
        if cursor.rowcount == 0:
            raise PersistenceError(
                f"Saving {table} failed, no rows affected.",
                operation="save",
                entity=self.meta.model,
            )
        if not self.meta.identifier.auto:
            return None
        return self.d.get_lastrowid(cursor)

    def _bind_entity(self, statement: Statement, entity: T) -> QueryParams:
        return self._bind(statement, [getattr(entity, f.field_name) for f in statement.param_fields])

    def _bind(self, statement: Statement, values: List[Any]) -> QueryParams:
        if not statement.param_fields:
            return None
        db_values = [
            to_db_value(value, descriptor, self.d)
            for descriptor, value in zip(statement.param_fields, values)
        ]
        return self.d.bind(statement.param_names, db_values)

    def _assign_generated_key(self, entity: T, raw: Any) -> None:
        identifier = self.meta.identifier
        key = coerce_generated_key(raw, identifier)
        if isinstance(key, Unmapped):
            warning = MappingWarning(
                key.reason,
                entity=self.meta.model,
                field_name=identifier.field_name,
                column=identifier.column_name,
                raw=raw,
            )
            logger.warning("Generated key for %s: %s", self.meta.table, warning)
            key = key.raw
        setattr(entity, identifier.field_name, key)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(model={getattr(self.model, '__name__', self.model)!r}, "
            f"dialect={self.d.name!r})"
        )


def is_unset_identifier(value: Any) -> bool:
    """Return whether an identifier value means "not yet persisted"."""

    if value is None:
        return True
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float, Decimal)):
        return value == 0
    if isinstance(value, str):
        return value == ""
    return False


def _first_value(row: RowMapping) -> Any:
    return next(iter(row.values()))


class RepositoryFactory:
    """Build repository implementations from contracts and one configuration."""

    def __init__(self, config: ConfigInput, connector: Optional[ConnectionProvider] = None):
        """Validate configuration and resolve the connection provider.

        Raises:
            ConfigurationError: If required `db.*` keys are missing or the
                store cannot be determined.
        """

        from ..ports.db_api.connectors import resolve_connector

        self.config = coerce_config(config)
        self.connector = connector or resolve_connector(self.config)
        self._implementations: Dict[type, type] = {}

    def create_repository(self, contract: Type[R]) -> R:
        """Return a live implementation of a `CrudRepository[Entity, Id]` subclass.

        Non-abstract helper methods declared on the contract stay available
        on the returned instance.

        Raises:
            ConfigurationError: If `contract` is not a `CrudRepository`
                subclass with concrete type arguments, or declares abstract
                operations beyond the five supported ones.
        """

        entity_type, id_type = resolve_contract_types(contract)
        impl = self._implementation_for(contract)
        return impl(entity_type, self.config, self.connector, id_type=id_type)

    def for_entity(self, model: Type[T], id_type: Any = object) -> EntityRepository[T, Any]:
        """Return a plain repository for `model` without declaring a contract."""

        return EntityRepository(model, self.config, self.connector, id_type=id_type)

    def _implementation_for(self, contract: type) -> type:
        impl = self._implementations.get(contract)
        if impl is not None:
            return impl

        if issubclass(contract, EntityRepository):
            impl = contract
        else:
            impl = type(
                f"{contract.__name__}Impl",
                (EntityRepository, contract),
                {"__module__": contract.__module__, "__doc__": contract.__doc__},
            )
        unsupported = sorted(getattr(impl, "__abstractmethods__", ()))
        if unsupported:
            raise ConfigurationError(
                f"{contract.__name__} declares operations this engine cannot "
                f"implement: {', '.join(unsupported)}."
            )
        self._implementations[contract] = impl
        return impl


def resolve_contract_types(contract: Any) -> Tuple[type, Any]:
    """Return `(entity_type, id_type)` from a contract's generic base."""

    if not isinstance(contract, type) or not issubclass(contract, CrudRepository):
        name = getattr(contract, "__name__", repr(contract))
        raise ConfigurationError(f"{name} must extend CrudRepository.")

    for cls in contract.__mro__:
        for base in cls.__dict__.get("__orig_bases__", ()):
            origin = get_origin(base)
            if not isinstance(origin, type) or not issubclass(origin, CrudRepository):
                continue
            args = get_args(base)
            if len(args) != 2 or any(isinstance(arg, TypeVar) for arg in args):
                continue
            entity_type, id_type = args
            if not isinstance(entity_type, type):
                raise ConfigurationError(
                    f"{contract.__name__} entity type argument must be a class, "
                    f"got {entity_type!r}."
                )
            return entity_type, id_type

    raise ConfigurationError(
        f"Cannot determine generic types <T, ID> from CrudRepository for {contract.__name__}."
    )


def create_repository(
    contract: Type[R],
    config: ConfigInput,
    connector: Optional[ConnectionProvider] = None,
) -> R:
    """Shortcut for `RepositoryFactory(config, connector).create_repository(contract)`."""

    return RepositoryFactory(config, connector).create_repository(contract)
