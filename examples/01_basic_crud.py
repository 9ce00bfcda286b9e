"""Basic CRUD example for reflective_orm repositories on a SQLite file."""

from __future__ import annotations

import logging
import sqlite3
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# Allow running this script directly from repository root.
PROJECT_ROOT = next(
    (parent for parent in Path(__file__).resolve().parents if (parent / "reflective_orm").exists()),
    None,
)
if PROJECT_ROOT and str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from reflective_orm import CrudRepository, RepositoryFactory, column, entity, id_field, transient


@entity(table="users")
@dataclass
class User:
    # Auto identifier: set on the instance after the first save.
    id: Optional[int] = id_field()
    username: str = column("user_name", default="")
    email: str = ""
    age: int = 0
    # Never stored; comes back as None from finds.
    session_token: Optional[str] = transient()


class UserRepository(CrudRepository[User, int]):
    def find_by_username(self, username: str) -> Optional[User]:
        return next((u for u in self.find_all() if u.username == username), None)


def create_schema(path: Path) -> None:
    conn = sqlite3.connect(path)
    try:
        conn.execute(
            'CREATE TABLE "users" ('
            '"id" INTEGER PRIMARY KEY AUTOINCREMENT, '
            '"user_name" TEXT NOT NULL, '
            '"email" TEXT, '
            '"age" INTEGER NOT NULL DEFAULT 0)'
        )
        conn.commit()
    finally:
        conn.close()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "example.db"
        create_schema(path)

        # 1) Build a repository from flat db.* configuration.
        factory = RepositoryFactory(
            {"db.url": f"sqlite:///{path}", "db.username": "", "db.password": ""}
        )
        repo = factory.create_repository(UserRepository)

        # 2) Insert: the generated id is written back.
        alice = repo.save(User(username="alice", email="alice@example.com", age=25))
        alice.session_token = "in-memory only"
        bob = repo.save(User(username="bob", email="bob@example.com", age=30))
        print("Inserted:", alice, bob)

        # 3) Find by id.
        print("Fetched by id:", repo.find_by_id(alice.id))

        # 4) Update: a set id means full-row replace.
        bob.age = 31
        repo.save(bob)
        print("Contract helper:", repo.find_by_username("bob"))

        # 5) List and count.
        print("All users:", repo.find_all())
        print("Count:", repo.count())

        # 6) Delete twice; the second call logs and succeeds.
        repo.delete_by_id(alice.id)
        repo.delete_by_id(alice.id)
        print("After delete:", repo.find_all(), "count:", repo.count())


if __name__ == "__main__":
    main()
