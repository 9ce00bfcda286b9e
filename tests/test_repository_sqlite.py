from __future__ import annotations

import contextlib
import sqlite3
import unittest
import uuid
from abc import abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from reflective_orm import (
    ConfigurationError,
    CrudRepository,
    DatabaseConfig,
    EntityRepository,
    PersistenceError,
    RepositoryFactory,
    SQLiteConnector,
    SQLiteDialect,
    create_repository,
)
from reflective_orm.core.models import column, entity, id_field, transient

SCHEMA = """
CREATE TABLE "users" (
    "id" INTEGER PRIMARY KEY AUTOINCREMENT,
    "user_name" TEXT NOT NULL,
    "email" TEXT,
    "age" INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE "readings" (
    "id" INTEGER PRIMARY KEY AUTOINCREMENT,
    "taken_at" TEXT,
    "taken_on" TEXT,
    "amount" TEXT,
    "active" INTEGER,
    "level" TEXT,
    "tags" TEXT
);
CREATE TABLE "tags" (
    "slug" TEXT PRIMARY KEY,
    "title" TEXT NOT NULL
);
CREATE TABLE "markers" (
    "id" INTEGER PRIMARY KEY AUTOINCREMENT
);
CREATE TABLE "codes" (
    "code" TEXT PRIMARY KEY
);
"""


@entity(table="users")
@dataclass
class User:
    id: Optional[int] = id_field()
    username: str = column("user_name", default="")
    email: str = ""
    age: int = 0
    session_token: Optional[str] = transient()


class Level(str, Enum):
    LOW = "low"
    HIGH = "high"


@dataclass
class Reading:
    id: Optional[int] = id_field()
    taken_at: Optional[datetime] = None
    taken_on: Optional[date] = None
    amount: Decimal = Decimal("0")
    active: bool = False
    level: Level = Level.LOW
    tags: list[str] = field(default_factory=list)


@dataclass
class Tag:
    slug: str = id_field(auto=False, default="")
    title: str = ""


@dataclass
class Marker:
    id: Optional[int] = id_field()


@dataclass
class Code:
    code: str = id_field(auto=False, default="")


@dataclass
class Ghost:
    id: Optional[int] = id_field()
    name: str = ""


@dataclass
class Note:
    text: str = ""


class UserRepository(CrudRepository[User, int]):
    def find_by_username(self, username: str) -> Optional[User]:
        return next((u for u in self.find_all() if u.username == username), None)


class AdminRepository(UserRepository):
    pass


class NoteRepository(CrudRepository[Note, int]):
    pass


class SearchableUserRepository(CrudRepository[User, int]):
    @abstractmethod
    def find_by_email(self, email: str) -> Optional[User]: ...


class UntypedRepository(CrudRepository):  # type: ignore[type-arg]
    pass


class _NoReturningSQLiteDialect(SQLiteDialect):
    supports_returning = False


class _NoRowDatabase:
    def __init__(self) -> None:
        self.closed = False

    @contextlib.contextmanager
    def transaction(self):  # noqa: ANN201
        yield

    def fetchone(self, sql, params=None):  # noqa: ANN001,ANN201
        return None

    def close(self) -> None:
        self.closed = True


class _NoRowConnector:
    def __init__(self) -> None:
        self.dialect = SQLiteDialect()
        self.opened = []

    def open(self, config):  # noqa: ANN001,ANN201
        db = _NoRowDatabase()
        self.opened.append(db)
        return db


class _RecordingConnector(SQLiteConnector):
    def __init__(self, dialect: Optional[SQLiteDialect] = None) -> None:
        super().__init__(dialect)
        self.opened = []

    def open(self, config):  # noqa: ANN001,ANN201
        db = super().open(config)
        self.opened.append(db)
        return db


def _shared_memory_url() -> str:
    return f"file:reflective_{uuid.uuid4().hex}?mode=memory&cache=shared"


class _SQLiteStoreMixin:
    def setUp(self) -> None:
        self.url = _shared_memory_url()
        # keeps the shared in-memory database alive between repository calls
        self.keeper = sqlite3.connect(self.url, uri=True)
        self.keeper.executescript(SCHEMA)
        self.keeper.commit()
        self.config = {
            "db.url": self.url,
            "db.username": "sa",
            "db.password": "",
            "db.driver": "sqlite",
        }
        self.connector = _RecordingConnector()
        self.factory = RepositoryFactory(self.config, self.connector)

    def tearDown(self) -> None:
        self.keeper.close()


class RepositorySQLiteTests(_SQLiteStoreMixin, unittest.TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.repo = self.factory.create_repository(UserRepository)

    def test_save_new_user_generates_identifier(self) -> None:
        user = User(username="test_user_1", email="test1@example.com", age=30)
        user.session_token = "should_be_ignored"

        saved = self.repo.save(user)

        self.assertIs(saved, user)
        self.assertIsInstance(saved.id, int)
        self.assertGreater(saved.id, 0)
        self.assertEqual(saved.session_token, "should_be_ignored")

        found = self.repo.find_by_id(saved.id)
        self.assertIsNotNone(found)
        self.assertIsNone(found.session_token)
        self.assertEqual(found.id, saved.id)
        self.assertEqual(found.username, "test_user_1")
        self.assertEqual(found.email, "test1@example.com")
        self.assertEqual(found.age, 30)

    def test_zero_identifier_counts_as_unset(self) -> None:
        saved = self.repo.save(User(id=0, username="zero"))
        self.assertGreater(saved.id, 0)

    def test_find_by_unknown_id_returns_none(self) -> None:
        self.assertIsNone(self.repo.find_by_id(9999))
        self.assertIsNone(self.repo.find_by_id(None))

    def test_update_existing_user_keeps_identifier(self) -> None:
        saved = self.repo.save(User(username="update_me", email="update@example.com", age=50))
        user_id = saved.id

        saved.username = "updated_user"
        saved.age = 51
        updated = self.repo.save(saved)

        self.assertIs(updated, saved)
        self.assertEqual(updated.id, user_id)
        found = self.repo.find_by_id(user_id)
        self.assertEqual(found.username, "updated_user")
        self.assertEqual(found.age, 51)
        self.assertEqual(found.email, "update@example.com")
        self.assertEqual(self.repo.count(), 1)

    def test_update_is_full_row_replace(self) -> None:
        saved = self.repo.save(User(username="a", email="a@x.com", age=1))

        replacement = User(id=saved.id, username="b")
        self.repo.save(replacement)

        found = self.repo.find_by_id(saved.id)
        self.assertEqual(found, User(id=saved.id, username="b", email="", age=0))

    def test_update_of_missing_row_raises(self) -> None:
        with self.assertRaises(PersistenceError) as ctx:
            self.repo.save(User(id=424242, username="ghost"))
        self.assertEqual(ctx.exception.operation, "save")
        self.assertIs(ctx.exception.entity, User)
        self.assertEqual(self.repo.count(), 0)

    def test_find_all_in_store_order(self) -> None:
        self.assertEqual(self.repo.find_all(), [])

        for name, age in (("user_a", 21), ("user_b", 22), ("user_c", 23)):
            self.repo.save(User(username=name, email=f"{name}@example.com", age=age))

        users = self.repo.find_all()
        self.assertEqual([u.username for u in users], ["user_a", "user_b", "user_c"])
        self.assertTrue(all(u.session_token is None for u in users))

    def test_count(self) -> None:
        self.assertEqual(self.repo.count(), 0)
        self.repo.save(User(username="count_1", age=60))
        self.repo.save(User(username="count_2", age=61))
        self.assertEqual(self.repo.count(), 2)
        self.repo.save(User(username="count_3", age=62))
        self.assertEqual(self.repo.count(), 3)

    def test_delete_is_idempotent(self) -> None:
        saved = self.repo.save(User(username="delete_me"))
        other = self.repo.save(User(username="keep_me"))

        self.repo.delete_by_id(saved.id)
        after_first = self.repo.count()
        with self.assertLogs("reflective_orm.core.repository", level="INFO") as logs:
            self.repo.delete_by_id(saved.id)

        self.assertEqual(self.repo.count(), after_first)
        self.assertEqual(after_first, 1)
        self.assertIsNone(self.repo.find_by_id(saved.id))
        self.assertIsNotNone(self.repo.find_by_id(other.id))
        self.assertTrue(any("No rows deleted" in line for line in logs.output))

    def test_count_tracks_inserts_and_distinct_deletes(self) -> None:
        ids = [self.repo.save(User(username=f"u{i}")).id for i in range(5)]
        deleted = {ids[0], ids[3]}
        for user_id in (ids[0], ids[3], ids[0], 10_000):
            self.repo.delete_by_id(user_id)

        self.assertEqual(self.repo.count(), len(ids) - len(deleted))

    def test_round_trip_example(self) -> None:
        saved = self.repo.save(User(username="a", email="a@x.com", age=1))
        self.assertGreater(saved.id, 0)

        found = self.repo.find_by_id(saved.id)
        self.assertEqual((found.username, found.age), ("a", 1))

        self.repo.delete_by_id(saved.id)
        self.assertIsNone(self.repo.find_by_id(saved.id))
        self.assertEqual(self.repo.count(), 0)

    def test_contract_helper_methods_stay_available(self) -> None:
        self.repo.save(User(username="findme", email="findme@example.com", age=40))

        found = self.repo.find_by_username("findme")

        self.assertIsNotNone(found)
        self.assertEqual(found.email, "findme@example.com")
        self.assertIsInstance(self.repo, UserRepository)
        self.assertIsInstance(self.repo, EntityRepository)

    def test_save_rejects_other_types(self) -> None:
        with self.assertRaises(TypeError):
            self.repo.save(Tag(slug="x"))  # type: ignore[arg-type]

    def test_connection_is_closed_after_every_call(self) -> None:
        saved = self.repo.save(User(username="a"))
        self.repo.find_by_id(saved.id)
        self.repo.find_all()
        self.repo.count()
        self.repo.delete_by_id(saved.id)
        with self.assertRaises(PersistenceError):
            self.repo.save(User(id=999, username="missing"))

        self.assertEqual(len(self.connector.opened), 6)
        self.assertTrue(all(db.conn is None for db in self.connector.opened))


class RepositorySQLiteMappingTests(_SQLiteStoreMixin, unittest.TestCase):
    def test_typed_fields_round_trip_through_text_storage(self) -> None:
        repo = self.factory.for_entity(Reading, int)
        reading = Reading(
            taken_at=datetime(2024, 5, 17, 10, 30, 15),
            taken_on=date(2024, 5, 17),
            amount=Decimal("12.50"),
            active=True,
            level=Level.HIGH,
            tags=["a", "b"],
        )

        repo.save(reading)
        found = repo.find_by_id(reading.id)

        self.assertEqual(found, reading)
        self.assertIs(found.level, Level.HIGH)
        self.assertIs(found.active, True)

    def test_manual_identifier_inserts_then_updates(self) -> None:
        repo = self.factory.for_entity(Tag, str)

        repo.save(Tag(slug="py", title="Python"))
        repo.save(Tag(slug="py", title="Python 3"))

        self.assertEqual(repo.count(), 1)
        self.assertEqual(repo.find_by_id("py"), Tag(slug="py", title="Python 3"))

    def test_identifier_only_entity_resaves_as_lookup(self) -> None:
        repo = self.factory.for_entity(Marker, int)

        marker = repo.save(Marker())
        again = repo.save(marker)

        self.assertIs(again, marker)
        self.assertGreater(marker.id, 0)
        self.assertEqual(repo.count(), 1)
        self.assertEqual(repo.find_by_id(marker.id), Marker(id=marker.id))

    def test_identifier_only_entity_with_unknown_id_raises(self) -> None:
        repo = self.factory.for_entity(Marker, int)

        with self.assertRaises(PersistenceError) as ctx:
            repo.save(Marker(id=404))

        self.assertEqual(ctx.exception.operation, "save")
        self.assertEqual(repo.count(), 0)

    def test_manual_identifier_only_entity_inserts_once(self) -> None:
        repo = self.factory.for_entity(Code, str)

        repo.save(Code(code="a1"))
        repo.save(Code(code="a1"))

        self.assertEqual(repo.count(), 1)
        self.assertEqual(repo.find_all(), [Code(code="a1")])

    def test_generated_key_from_lastrowid_without_returning(self) -> None:
        connector = _RecordingConnector(_NoReturningSQLiteDialect())
        repo = RepositoryFactory(self.config, connector).create_repository(UserRepository)

        first = repo.save(User(username="a"))
        second = repo.save(User(username="b"))

        self.assertEqual(second.id, first.id + 1)
        self.assertEqual(repo.find_by_id(second.id).username, "b")

    def test_incompatible_column_degrades_field_not_operation(self) -> None:
        self.keeper.execute(
            'INSERT INTO "users" ("user_name", "email", "age") VALUES (?, ?, ?)',
            ("legacy", "l@x.com", "forty"),
        )
        self.keeper.commit()
        repo = self.factory.create_repository(UserRepository)

        with self.assertLogs("reflective_orm.core.row_mapper", level="WARNING"):
            users = repo.find_all()

        self.assertEqual(len(users), 1)
        self.assertEqual(users[0].username, "legacy")
        self.assertEqual(users[0].age, "forty")


class RepositorySQLiteErrorTests(_SQLiteStoreMixin, unittest.TestCase):
    def test_store_failure_is_wrapped_with_cause(self) -> None:
        repo = self.factory.for_entity(Ghost, int)

        with self.assertRaises(PersistenceError) as ctx:
            repo.count()

        self.assertIsInstance(ctx.exception.__cause__, sqlite3.OperationalError)
        self.assertEqual(ctx.exception.operation, "count")
        self.assertTrue(all(db.conn is None for db in self.connector.opened))

    def test_entity_without_identifier_fails_on_every_use(self) -> None:
        repo = self.factory.create_repository(NoteRepository)

        for _ in range(2):
            with self.assertRaises(ConfigurationError):
                repo.count()
        with self.assertRaises(ConfigurationError):
            repo.save(Note(text="x"))
        self.assertEqual(self.connector.opened, [])

    def test_contract_shape_is_validated(self) -> None:
        for contract in (User, UntypedRepository, SearchableUserRepository, "users"):
            with self.subTest(contract=contract):
                with self.assertRaises(ConfigurationError):
                    self.factory.create_repository(contract)  # type: ignore[arg-type]

    def test_contract_types_resolve_through_subclasses(self) -> None:
        repo = self.factory.create_repository(AdminRepository)

        self.assertIs(repo.model, User)
        self.assertIs(repo.id_type, int)
        self.assertIsInstance(repo, AdminRepository)

    def test_missing_configuration_keys_fail_at_creation(self) -> None:
        with self.assertRaises(ConfigurationError) as ctx:
            RepositoryFactory({"db.url": self.url})
        self.assertIn("db.username", str(ctx.exception))
        self.assertIn("db.password", str(ctx.exception))

        with self.assertRaises(ConfigurationError):
            create_repository(UserRepository, {"db.username": "sa", "db.password": ""})

    def test_private_memory_database_is_rejected(self) -> None:
        config = DatabaseConfig(url=":memory:", username="", password="", driver="sqlite")
        with self.assertRaises(ConfigurationError):
            RepositoryFactory(config)

    def test_unknown_driver_is_rejected(self) -> None:
        with self.assertRaises(ConfigurationError):
            RepositoryFactory({**self.config, "db.driver": "oracle"})

    def test_module_level_shortcut(self) -> None:
        repo = create_repository(UserRepository, DatabaseConfig.from_mapping(self.config))

        saved = repo.save(User(username="shortcut"))

        self.assertEqual(repo.find_by_id(saved.id).username, "shortcut")


class RepositoryCountFallbackTests(unittest.TestCase):
    def test_count_without_result_row_is_zero(self) -> None:
        connector = _NoRowConnector()
        config = {"db.url": "unused.db", "db.username": "", "db.password": ""}
        repo = RepositoryFactory(config, connector).create_repository(UserRepository)

        self.assertEqual(repo.count(), 0)
        self.assertEqual(len(connector.opened), 1)
        self.assertTrue(connector.opened[0].closed)


if __name__ == "__main__":
    unittest.main()
