"""
Shared fixtures for integration tests.

Each test gets its own SQLite file under pytest's tmp_path.
"""

import sqlite3

import pytest

from clwm.clwm_lib.engine import WorldEngine
from clwm.clwm_lib.schema import DataKind, TypeDescriptor
from clwm.clwm_lib.storage import SqliteStorage

HISTORY_TABLES = (
    "noun_history",
    "noun_type_history",
    "attribute_type_history",
    "attribute_history",
)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "world.db"


@pytest.fixture
async def storage(db_path):
    """Initialized storage on a fresh file."""
    s = SqliteStorage(f"sqlite:{db_path}", wal_mode=False)
    await s.init()
    return s


@pytest.fixture
def engine(storage):
    return WorldEngine(storage)


@pytest.fixture
def count_rows(db_path):
    """Count rows of a table straight from the database file."""

    def _count(table: str) -> int:
        conn = sqlite3.connect(str(db_path))
        try:
            return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        finally:
            conn.close()

    return _count


@pytest.fixture
def row_counts(count_rows):
    """Snapshot of every entity and history table's row count."""

    def _snapshot() -> dict[str, int]:
        tables = ("noun", "noun_type", "data_type", "attribute_type", "attribute", "change_set")
        return {t: count_rows(t) for t in tables + HISTORY_TABLES}

    return _snapshot


@pytest.fixture
async def person_world(engine):
    """A Person noun type, an Alice noun, an Age data type and a single-valued age type."""
    person = await engine.new_noun_type("Person")
    alice = await engine.new_noun("Alice", "Person")
    age_type = await engine.new_data_type("Age", TypeDescriptor.primitive(DataKind.INTEGER))
    age = await engine.new_attribute_type("age", "Age", multiple_allowed=False)
    return {"person": person, "alice": alice, "age_type": age_type, "age": age}
