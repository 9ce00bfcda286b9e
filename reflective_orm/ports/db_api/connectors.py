"""Connection providers: open one `Database` adapter from a `DatabaseConfig`."""

from __future__ import annotations

import importlib
import logging
import sqlite3
from types import ModuleType
from typing import Any, Dict, Optional, Sequence, Tuple
from urllib.parse import parse_qs, unquote, urlparse

from ...core.config import DatabaseConfig
from ...core.errors import ConfigurationError, PersistenceError
from .database import Database
from .dialects import Dialect, MySQLDialect, PostgresDialect, SQLiteDialect

logger = logging.getLogger(__name__)

MYSQL_FOUND_ROWS = 2


class SQLiteConnector:
    """Open `sqlite3` connections from `sqlite:///path`, `file:` URIs, or paths."""

    dialect: Dialect

    def __init__(self, dialect: Optional[Dialect] = None, **connect_kwargs: Any):
        self.dialect = dialect or SQLiteDialect()
        self._connect_kwargs = connect_kwargs

    def validate(self, config: DatabaseConfig) -> None:
        database, uri = sqlite_target(config.url)
        if is_private_sqlite_memory_database(database, uri=uri):
            raise ConfigurationError(
                "A private in-memory SQLite database does not survive between "
                "repository calls. Use a shared-memory URI "
                '(e.g. "file:reflective?mode=memory&cache=shared") or a file path.'
            )

    def open(self, config: DatabaseConfig) -> Database:
        database, uri = sqlite_target(config.url)
        logger.debug("Opening sqlite connection to %s", database)
        try:
            conn = sqlite3.connect(database, uri=uri, **self._connect_kwargs)
        except sqlite3.Error as exc:
            raise PersistenceError(
                f"Cannot open sqlite database {database!r}: {exc}", operation="connect"
            ) from exc
        return Database(conn, self.dialect)


class DBAPIConnector:
    """Open connections through the first importable DB-API driver module."""

    module_names: Tuple[str, ...] = ()
    dialect: Dialect

    def __init__(
        self,
        module_names: Optional[Sequence[str]] = None,
        dialect: Optional[Dialect] = None,
        **connect_kwargs: Any,
    ):
        if module_names is not None:
            self.module_names = tuple(module_names)
        if not self.module_names:
            raise ConfigurationError("DBAPIConnector requires at least one driver module name.")
        self.dialect = dialect or Dialect()
        self._connect_kwargs = connect_kwargs
        self._module: Optional[ModuleType] = None

    def validate(self, config: DatabaseConfig) -> None:
        if not strip_jdbc(config.url):
            raise ConfigurationError("db.url must not be empty.")

    def load_driver(self) -> ModuleType:
        """Import the first available driver module, caching the result."""

        if self._module is not None:
            return self._module
        for module_name in self.module_names:
            try:
                module = importlib.import_module(module_name)
            except ImportError:
                continue
            if callable(getattr(module, "connect", None)):
                self._module = module
                return module
        raise PersistenceError(
            f"No DB-API driver available; install one of: {', '.join(self.module_names)}.",
            operation="connect",
        )

    def connect_args(self, config: DatabaseConfig) -> Tuple[Tuple[Any, ...], Dict[str, Any]]:
        """Translate config into driver `connect()` arguments."""

        kwargs: Dict[str, Any] = {}
        if config.username:
            kwargs["user"] = config.username
        if config.password:
            kwargs["password"] = config.password
        kwargs.update(self._connect_kwargs)
        return (strip_jdbc(config.url),), kwargs

    def open(self, config: DatabaseConfig) -> Database:
        module = self.load_driver()
        args, kwargs = self.connect_args(config)
        logger.debug("Opening %s connection to %s", module.__name__, strip_jdbc(config.url))
        try:
            conn = module.connect(*args, **kwargs)
        except Exception as exc:
            raise PersistenceError(
                f"Cannot connect with {module.__name__}: {exc}", operation="connect"
            ) from exc
        return Database(conn, self.dialect)


class PostgresConnector(DBAPIConnector):
    """psycopg (3) or psycopg2; the URL is passed through as the conninfo string."""

    module_names = ("psycopg", "psycopg2")

    def __init__(self, dialect: Optional[Dialect] = None, **connect_kwargs: Any):
        super().__init__(dialect=dialect or PostgresDialect(), **connect_kwargs)


class MySQLConnector(DBAPIConnector):
    """PyMySQL or mysqlclient; the URL is split into host/port/database."""

    module_names = ("pymysql", "MySQLdb")

    def __init__(self, dialect: Optional[Dialect] = None, **connect_kwargs: Any):
        super().__init__(dialect=dialect or MySQLDialect(), **connect_kwargs)

    def connect_args(self, config: DatabaseConfig) -> Tuple[Tuple[Any, ...], Dict[str, Any]]:
        parsed = urlparse(strip_jdbc(config.url))
        kwargs: Dict[str, Any] = {"host": parsed.hostname or "localhost"}
        if parsed.port:
            kwargs["port"] = parsed.port
        database = parsed.path.lstrip("/")
        if database:
            kwargs["database"] = unquote(database)
        user = config.username or (unquote(parsed.username) if parsed.username else "")
        password = config.password or (unquote(parsed.password) if parsed.password else "")
        if user:
            kwargs["user"] = user
        if password:
            kwargs["password"] = password
        # rowcount reports matched rows, not changed rows
        kwargs.setdefault("client_flag", MYSQL_FOUND_ROWS)
        kwargs.update(self._connect_kwargs)
        return (), kwargs


_DRIVER_ALIASES = {
    "sqlite": SQLiteConnector,
    "sqlite3": SQLiteConnector,
    "postgres": PostgresConnector,
    "postgresql": PostgresConnector,
    "psycopg": PostgresConnector,
    "psycopg2": PostgresConnector,
    "mysql": MySQLConnector,
    "pymysql": MySQLConnector,
}


def resolve_connector(config: DatabaseConfig) -> Any:
    """Pick a connector from `db.driver`, else from the URL scheme.

    Raises:
        ConfigurationError: If neither names a supported store, or the
            target cannot work with per-call connections.
    """

    name = (config.driver or _scheme_driver(config.url) or "").lower()
    connector_cls = _DRIVER_ALIASES.get(name)
    if connector_cls is None:
        raise ConfigurationError(
            f"Cannot determine a driver for {strip_jdbc(config.url)!r} "
            f"(db.driver={config.driver!r}). Supported: {', '.join(sorted(_DRIVER_ALIASES))}."
        )
    connector = connector_cls()
    connector.validate(config)
    return connector


def _scheme_driver(url: str) -> Optional[str]:
    target = strip_jdbc(url)
    if target.startswith("file:") or target.endswith((".db", ".sqlite", ".sqlite3")):
        return "sqlite"
    scheme = urlparse(target).scheme
    if "+" in scheme:
        scheme = scheme.split("+", 1)[0]
    return scheme or None


def strip_jdbc(url: str) -> str:
    url = url.strip()
    return url[len("jdbc:") :] if url.lower().startswith("jdbc:") else url


def sqlite_target(url: str) -> Tuple[str, bool]:
    """Return `(database, uri)` arguments for `sqlite3.connect`."""

    target = strip_jdbc(url)
    if target.lower().startswith("sqlite:"):
        target = target[len("sqlite:") :]
        if target.startswith("//"):
            target = target[2:]
        if target.startswith("/"):
            target = target[1:]
    if not target:
        raise ConfigurationError("db.url does not name a sqlite database.")
    return target, target.startswith("file:")


def is_private_sqlite_memory_database(database: str, *, uri: bool) -> bool:
    if database == ":memory:":
        return True
    if not uri:
        return False

    lowered = database.lower()
    if lowered.startswith("file::memory:"):
        return "cache=shared" not in lowered

    parsed = urlparse(database)
    query = parse_qs(parsed.query)
    mode = (query.get("mode", [""])[0] or "").lower()
    cache = (query.get("cache", [""])[0] or "").lower()
    return mode == "memory" and cache != "shared"
