"""
SQLite storage backend for the world engine.

One SQLite file holds a whole world. Each transaction owns its own
connection, opened with BEGIN IMMEDIATE and closed by commit/rollback.

Invariants:
    - Every write transaction inserts exactly one change_set row when opened
    - Read transactions are deferred, query-only and have no change set
    - History rows reference the change set of the transaction writing them
    - data_type rows are insert-only; (name, version) is unique
    - attribute rows have exactly one parent (CHECK constraint)
    - Statements on one transaction run one at a time (asyncio.Lock), each on
      a worker thread so concurrent callers overlap their waiting

How to change safely:
    - Schema changes must be additive (CREATE ... IF NOT EXISTS)
    - Bump SCHEMA_VERSION when adding tables or columns
    - Keep every sqlite3.Error wrapped in StorageError

Table schema:
    change_set:      change_set_id, change_source, change_date
    noun_type:       noun_type_id, type_name (unique), metadata, last_changed
    noun:            noun_id, name, noun_type_id, metadata, last_changed
    data_type:       data_type_id, name, version, system_defined,
                     definition_json, change_date, change_set_id
    attribute_type:  attribute_type_id, attribute_name (unique),
                     data_type_name, multiple_allowed, metadata, last_changed
    attribute:       attribute_id, attribute_type_id, parent_noun_id,
                     parent_attribute_id, data_json, data_type_version,
                     metadata, last_changed
    *_history:       one table per mutable entity, one row per mutation
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import sqlite3
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

from ..model import (
    Attribute,
    AttributeHistory,
    AttributeType,
    AttributeTypeHistory,
    ChangeSet,
    DataType,
    Noun,
    NounHistory,
    NounType,
    NounTypeHistory,
)
from ..schema import definition_from_json, definition_to_json, value_from_json, value_to_json
from .base import StorageConnectionError, StorageError, TransactionFinalizedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA = """
    -- Schema version tracking
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at INTEGER NOT NULL
    );

    CREATE TABLE IF NOT EXISTS change_set (
        change_set_id INTEGER PRIMARY KEY AUTOINCREMENT,
        change_source TEXT NOT NULL,
        change_date INTEGER NOT NULL
    );

    -- Noun types
    CREATE TABLE IF NOT EXISTS noun_type (
        noun_type_id INTEGER PRIMARY KEY AUTOINCREMENT,
        type_name TEXT NOT NULL UNIQUE CHECK (type_name <> ''),
        metadata TEXT NOT NULL DEFAULT '',
        last_changed INTEGER NOT NULL
    );

    CREATE TABLE IF NOT EXISTS noun_type_history (
        noun_type_history_id INTEGER PRIMARY KEY AUTOINCREMENT,
        noun_type_id INTEGER NOT NULL REFERENCES noun_type (noun_type_id),
        change_set_id INTEGER NOT NULL REFERENCES change_set (change_set_id),
        change_date INTEGER NOT NULL,
        diff_type_name TEXT NOT NULL,
        diff_metadata TEXT NOT NULL
    );

    -- Nouns
    CREATE TABLE IF NOT EXISTS noun (
        noun_id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        noun_type_id INTEGER NOT NULL REFERENCES noun_type (noun_type_id),
        metadata TEXT NOT NULL DEFAULT '',
        last_changed INTEGER NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_noun_name ON noun (name);
    CREATE INDEX IF NOT EXISTS idx_noun_type ON noun (noun_type_id);

    CREATE TABLE IF NOT EXISTS noun_history (
        noun_history_id INTEGER PRIMARY KEY AUTOINCREMENT,
        noun_id INTEGER NOT NULL REFERENCES noun (noun_id),
        change_set_id INTEGER NOT NULL REFERENCES change_set (change_set_id),
        change_date INTEGER NOT NULL,
        diff_name TEXT NOT NULL,
        diff_noun_type TEXT NOT NULL,
        diff_metadata TEXT NOT NULL
    );

    -- Data types (append-only, one row per version)
    CREATE TABLE IF NOT EXISTS data_type (
        data_type_id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        version INTEGER NOT NULL CHECK (version > 0),
        system_defined INTEGER NOT NULL DEFAULT 0,
        definition_json TEXT NOT NULL,
        change_date INTEGER NOT NULL,
        change_set_id INTEGER REFERENCES change_set (change_set_id),
        UNIQUE (name, version)
    );

    -- Attribute types
    CREATE TABLE IF NOT EXISTS attribute_type (
        attribute_type_id INTEGER PRIMARY KEY AUTOINCREMENT,
        attribute_name TEXT NOT NULL UNIQUE,
        data_type_name TEXT NOT NULL,
        multiple_allowed INTEGER NOT NULL DEFAULT 0,
        metadata TEXT NOT NULL DEFAULT '',
        last_changed INTEGER NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_attribute_type_data_type
        ON attribute_type (data_type_name);

    CREATE TABLE IF NOT EXISTS attribute_type_history (
        attribute_type_history_id INTEGER PRIMARY KEY AUTOINCREMENT,
        attribute_type_id INTEGER NOT NULL REFERENCES attribute_type (attribute_type_id),
        change_set_id INTEGER NOT NULL REFERENCES change_set (change_set_id),
        change_date INTEGER NOT NULL,
        diff_attribute_name TEXT NOT NULL,
        diff_multiple_allowed TEXT NOT NULL,
        diff_metadata TEXT NOT NULL
    );

    -- Attributes (a forest rooted at nouns)
    CREATE TABLE IF NOT EXISTS attribute (
        attribute_id INTEGER PRIMARY KEY AUTOINCREMENT,
        attribute_type_id INTEGER NOT NULL REFERENCES attribute_type (attribute_type_id),
        parent_noun_id INTEGER REFERENCES noun (noun_id),
        parent_attribute_id INTEGER REFERENCES attribute (attribute_id),
        data_json TEXT NOT NULL,
        data_type_version INTEGER NOT NULL,
        metadata TEXT NOT NULL DEFAULT '',
        last_changed INTEGER NOT NULL,
        CHECK ((parent_noun_id IS NULL) <> (parent_attribute_id IS NULL))
    );

    CREATE INDEX IF NOT EXISTS idx_attribute_parent_noun
        ON attribute (parent_noun_id, attribute_type_id);
    CREATE INDEX IF NOT EXISTS idx_attribute_parent_attribute
        ON attribute (parent_attribute_id, attribute_type_id);

    CREATE TABLE IF NOT EXISTS attribute_history (
        attribute_history_id INTEGER PRIMARY KEY AUTOINCREMENT,
        attribute_id INTEGER NOT NULL REFERENCES attribute (attribute_id),
        change_set_id INTEGER NOT NULL REFERENCES change_set (change_set_id),
        change_date INTEGER NOT NULL,
        diff_data TEXT NOT NULL,
        diff_data_type_version TEXT NOT NULL,
        diff_metadata TEXT NOT NULL
    );
"""

_NOUN_SELECT = """
    SELECT noun.noun_id, noun.name, noun_type.type_name, noun.metadata, noun.last_changed
    FROM noun
    JOIN noun_type ON noun_type.noun_type_id = noun.noun_type_id
"""

_DATA_TYPE_SELECT = """
    SELECT name, version, system_defined, definition_json, change_date
    FROM data_type
"""

_ATTRIBUTE_SELECT = """
    SELECT attribute_id, attribute_type_id, parent_noun_id, parent_attribute_id,
           data_json, data_type_version, metadata, last_changed
    FROM attribute
"""


def _now_ms() -> int:
    return int(time.time() * 1000)


def parse_sqlite_url(url: str) -> str:
    """Extract the database file path from a locator string.

    Accepts "sqlite://PATH", "sqlite:PATH" or a bare path; a query string
    ("?mode=rwc") is ignored.

    Raises:
        ValueError: If no file path remains (in-memory databases cannot be
            shared between transactions)
    """
    path = url
    for prefix in ("sqlite://", "sqlite:"):
        if path.startswith(prefix):
            path = path[len(prefix) :]
            break
    path = path.split("?", 1)[0]
    if not path or path == ":memory:":
        raise ValueError(f"SQLite locator must name a database file, got '{url}'")
    return path


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _noun_from_row(row: sqlite3.Row) -> Noun:
    return Noun(
        id=row["noun_id"],
        name=row["name"],
        noun_type=row["type_name"],
        metadata=row["metadata"],
        last_changed=row["last_changed"],
    )


def _noun_type_from_row(row: sqlite3.Row) -> NounType:
    return NounType(
        id=row["noun_type_id"],
        type_name=row["type_name"],
        metadata=row["metadata"],
        last_changed=row["last_changed"],
    )


def _data_type_from_row(row: sqlite3.Row) -> DataType:
    return DataType(
        name=row["name"],
        version=row["version"],
        system_defined=bool(row["system_defined"]),
        definition=definition_from_json(row["definition_json"]),
        change_date=row["change_date"],
    )


def _attribute_type_from_row(row: sqlite3.Row) -> AttributeType:
    return AttributeType(
        id=row["attribute_type_id"],
        attribute_name=row["attribute_name"],
        data_type=row["data_type_name"],
        multiple_allowed=bool(row["multiple_allowed"]),
        metadata=row["metadata"],
        last_changed=row["last_changed"],
    )


def _attribute_from_row(row: sqlite3.Row) -> Attribute:
    return Attribute(
        id=row["attribute_id"],
        attribute_type_id=row["attribute_type_id"],
        parent_noun_id=row["parent_noun_id"],
        parent_attribute_id=row["parent_attribute_id"],
        data=value_from_json(row["data_json"]),
        data_type_version=row["data_type_version"],
        metadata=row["metadata"],
        last_changed=row["last_changed"],
    )


class SqliteStorage:
    """SQLite implementation of the Storage protocol.

    Example:
        >>> storage = SqliteStorage("sqlite:world.db")
        >>> await storage.init()
        >>> txn = await storage.create_transaction("new noun type")
    """

    # SQLite schema version for migrations
    SCHEMA_VERSION = 1

    def __init__(
        self,
        url: str,
        busy_timeout_ms: int = 5000,
        wal_mode: bool = True,
    ) -> None:
        """Initialize the storage.

        Args:
            url: Database locator (see parse_sqlite_url)
            busy_timeout_ms: SQLite busy timeout
            wal_mode: Enable SQLite WAL mode
        """
        self.url = url
        self.db_path = Path(parse_sqlite_url(url))
        self.busy_timeout_ms = busy_timeout_ms
        self.wal_mode = wal_mode
        self._initialized = False

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
            check_same_thread=False,  # Statements run on worker threads
        )
        conn.row_factory = sqlite3.Row
        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    def _create_schema(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._connect()
        try:
            conn.executescript(SCHEMA)
            conn.execute(
                "INSERT OR IGNORE INTO schema_version (version, applied_at) VALUES (?, ?)",
                (self.SCHEMA_VERSION, _now_ms()),
            )
        finally:
            conn.close()

    async def init(self) -> None:
        """Create the database file and schema if they don't exist.

        Raises:
            StorageConnectionError: If the database cannot be opened
        """
        try:
            await asyncio.to_thread(self._create_schema)
        except (sqlite3.Error, OSError) as e:
            raise StorageConnectionError(f"Cannot open SQLite database {self.db_path}: {e}") from e
        self._initialized = True
        logger.debug("Initialized SQLite storage", extra={"db_path": str(self.db_path)})

    async def create_transaction(self, change_source: str) -> SqliteTransaction:
        """Open a transaction and its change set.

        Args:
            change_source: Label recorded on the change set

        Raises:
            StorageConnectionError: If init() has not run
            StorageError: If the transaction cannot be started
        """
        if not self._initialized:
            raise StorageConnectionError("Storage is not initialized, call init() first")

        def _open() -> tuple[sqlite3.Connection, int]:
            conn = self._connect()
            try:
                conn.execute("BEGIN IMMEDIATE")
                cursor = conn.execute(
                    "INSERT INTO change_set (change_source, change_date) VALUES (?, ?)",
                    (change_source, _now_ms()),
                )
                return conn, cursor.lastrowid
            except sqlite3.Error:
                conn.close()
                raise

        try:
            conn, change_set_id = await asyncio.to_thread(_open)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot start transaction: {e}") from e

        logger.debug(
            "Opened transaction",
            extra={"change_set_id": change_set_id, "change_source": change_source},
        )
        return SqliteTransaction(conn, change_set_id, change_source)

    async def create_read_transaction(self, change_source: str) -> SqliteTransaction:
        """Open a deferred, query-only transaction without a change set.

        The connection takes no lock until its first SELECT, and under WAL
        mode never blocks writers. Any write statement fails with StorageError.

        Args:
            change_source: Label used in log lines

        Raises:
            StorageConnectionError: If init() has not run
            StorageError: If the transaction cannot be started
        """
        if not self._initialized:
            raise StorageConnectionError("Storage is not initialized, call init() first")

        def _open() -> sqlite3.Connection:
            conn = self._connect()
            try:
                conn.execute("PRAGMA query_only = ON")
                conn.execute("BEGIN DEFERRED")
                return conn
            except sqlite3.Error:
                conn.close()
                raise

        try:
            conn = await asyncio.to_thread(_open)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot start read transaction: {e}") from e

        logger.debug("Opened read transaction", extra={"change_source": change_source})
        return SqliteTransaction(conn, None, change_source)


class SqliteTransaction:
    """One open SQLite transaction.

    Thread safety:
        All statements go through _run, which holds an asyncio.Lock, so
        concurrent tasks sharing this transaction never interleave inside a
        statement.
    """

    def __init__(
        self, conn: sqlite3.Connection, change_set_id: int | None, change_source: str
    ) -> None:
        self._conn = conn
        self.change_set_id = change_set_id
        self.change_source = change_source
        self._lock = asyncio.Lock()
        self._finalized = False

    @property
    def is_finalized(self) -> bool:
        return self._finalized

    async def _run(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        async with self._lock:
            if self._finalized:
                raise TransactionFinalizedError(
                    f"Transaction '{self.change_source}' was already committed or rolled back"
                )
            try:
                return await asyncio.to_thread(fn, self._conn)
            except (sqlite3.Error, OverflowError) as e:
                # OverflowError: an int parameter outside SQLite's 64-bit range
                raise StorageError(str(e)) from e

    async def _finalize(self, statement: str) -> None:
        async with self._lock:
            if self._finalized:
                raise TransactionFinalizedError(
                    f"Transaction '{self.change_source}' was already committed or rolled back"
                )
            self._finalized = True

            def _end(conn: sqlite3.Connection) -> None:
                try:
                    conn.execute(statement)
                finally:
                    conn.close()

            try:
                await asyncio.to_thread(_end, self._conn)
            except sqlite3.Error as e:
                raise StorageError(f"{statement} failed: {e}") from e

        logger.debug(
            "Finalized transaction",
            extra={"change_set_id": self.change_set_id, "statement": statement},
        )

    async def commit(self) -> None:
        await self._finalize("COMMIT")

    async def rollback(self) -> None:
        await self._finalize("ROLLBACK")

    async def _execute(self, sql: str, params: tuple[Any, ...]) -> int:
        """Run a write statement, returning lastrowid for inserts."""

        def _write(conn: sqlite3.Connection) -> int:
            cursor = conn.execute(sql, params)
            if sql.lstrip().upper().startswith("UPDATE") and cursor.rowcount == 0:
                raise sqlite3.DatabaseError("update matched no row")
            return cursor.lastrowid or 0

        return await self._run(_write)

    async def _fetch_all(self, sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        return await self._run(lambda conn: conn.execute(sql, params).fetchall())

    async def _fetch_one(self, sql: str, params: tuple[Any, ...]) -> sqlite3.Row | None:
        return await self._run(lambda conn: conn.execute(sql, params).fetchone())

    async def _reload(self, loader: Callable[[int], Any], record_id: int) -> Any:
        record = await loader(record_id)
        if record is None:
            raise StorageError(f"Row {record_id} vanished inside its own transaction")
        return record

    # Nouns

    async def new_noun(self, noun: Noun) -> Noun:
        noun_id = await self._execute(
            """
            INSERT INTO noun (name, noun_type_id, metadata, last_changed)
            VALUES (?, (SELECT noun_type_id FROM noun_type WHERE type_name = ?), ?, ?)
            """,
            (noun.name, noun.noun_type, noun.metadata, _now_ms()),
        )
        return await self._reload(self.find_noun_by_id, noun_id)

    async def update_noun(self, noun: Noun) -> Noun:
        await self._execute(
            """
            UPDATE noun
            SET name = ?,
                noun_type_id = (SELECT noun_type_id FROM noun_type WHERE type_name = ?),
                metadata = ?,
                last_changed = ?
            WHERE noun_id = ?
            """,
            (noun.name, noun.noun_type, noun.metadata, _now_ms(), noun.id),
        )
        return await self._reload(self.find_noun_by_id, noun.id)

    async def new_noun_history(self, noun_history: NounHistory) -> NounHistory:
        now = _now_ms()
        history_id = await self._execute(
            """
            INSERT INTO noun_history
                (noun_id, change_set_id, change_date, diff_name, diff_noun_type, diff_metadata)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                noun_history.noun_id,
                self.change_set_id,
                now,
                noun_history.diff_name,
                noun_history.diff_noun_type,
                noun_history.diff_metadata,
            ),
        )
        return dataclasses.replace(
            noun_history, id=history_id, change_set_id=self.change_set_id, change_date=now
        )

    async def find_noun_by_id(self, noun_id: int) -> Noun | None:
        row = await self._fetch_one(_NOUN_SELECT + " WHERE noun.noun_id = ?", (noun_id,))
        return _noun_from_row(row) if row else None

    async def find_noun_by_name(self, name: str) -> list[Noun]:
        rows = await self._fetch_all(
            _NOUN_SELECT + " WHERE noun.name LIKE ? ESCAPE '\\' ORDER BY noun.noun_id",
            (_like_pattern(name),),
        )
        return [_noun_from_row(row) for row in rows]

    async def find_noun_by_noun_type(self, type_name: str) -> list[Noun]:
        rows = await self._fetch_all(
            _NOUN_SELECT + " WHERE noun_type.type_name = ? ORDER BY noun.noun_id",
            (type_name,),
        )
        return [_noun_from_row(row) for row in rows]

    async def find_noun_by_all(self) -> list[Noun]:
        rows = await self._fetch_all(_NOUN_SELECT + " ORDER BY noun.noun_id")
        return [_noun_from_row(row) for row in rows]

    # Noun types

    async def new_noun_type(self, noun_type: NounType) -> NounType:
        noun_type_id = await self._execute(
            "INSERT INTO noun_type (type_name, metadata, last_changed) VALUES (?, ?, ?)",
            (noun_type.type_name, noun_type.metadata, _now_ms()),
        )
        return await self._reload(self.find_noun_type_by_id, noun_type_id)

    async def update_noun_type(self, noun_type: NounType) -> NounType:
        await self._execute(
            """
            UPDATE noun_type SET type_name = ?, metadata = ?, last_changed = ?
            WHERE noun_type_id = ?
            """,
            (noun_type.type_name, noun_type.metadata, _now_ms(), noun_type.id),
        )
        return await self._reload(self.find_noun_type_by_id, noun_type.id)

    async def new_noun_type_history(self, noun_type_history: NounTypeHistory) -> NounTypeHistory:
        now = _now_ms()
        history_id = await self._execute(
            """
            INSERT INTO noun_type_history
                (noun_type_id, change_set_id, change_date, diff_type_name, diff_metadata)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                noun_type_history.noun_type_id,
                self.change_set_id,
                now,
                noun_type_history.diff_type_name,
                noun_type_history.diff_metadata,
            ),
        )
        return dataclasses.replace(
            noun_type_history, id=history_id, change_set_id=self.change_set_id, change_date=now
        )

    async def find_noun_type_by_id(self, noun_type_id: int) -> NounType | None:
        row = await self._fetch_one("SELECT * FROM noun_type WHERE noun_type_id = ?", (noun_type_id,))
        return _noun_type_from_row(row) if row else None

    async def find_noun_type_by_type_name(self, type_name: str) -> list[NounType]:
        rows = await self._fetch_all("SELECT * FROM noun_type WHERE type_name = ?", (type_name,))
        return [_noun_type_from_row(row) for row in rows]

    async def find_noun_type_by_all(self) -> list[NounType]:
        rows = await self._fetch_all("SELECT * FROM noun_type ORDER BY noun_type_id")
        return [_noun_type_from_row(row) for row in rows]

    # Data types

    async def new_data_type(self, data_type: DataType) -> DataType:
        await self._execute(
            """
            INSERT INTO data_type
                (name, version, system_defined, definition_json, change_date, change_set_id)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                data_type.name,
                data_type.version,
                int(data_type.system_defined),
                definition_to_json(data_type.definition),
                _now_ms(),
                self.change_set_id,
            ),
        )
        stored = await self.find_data_type_by_name_and_version(data_type.name, data_type.version)
        if stored is None:
            raise StorageError(f"Data type {data_type.name!r} vanished inside its own transaction")
        return stored

    async def find_data_type_latest_by_name(self, name: str) -> DataType | None:
        row = await self._fetch_one(
            _DATA_TYPE_SELECT + " WHERE name = ? ORDER BY version DESC LIMIT 1", (name,)
        )
        return _data_type_from_row(row) if row else None

    async def find_data_type_by_name_and_version(self, name: str, version: int) -> DataType | None:
        row = await self._fetch_one(
            _DATA_TYPE_SELECT + " WHERE name = ? AND version = ?", (name, version)
        )
        return _data_type_from_row(row) if row else None

    async def find_data_type_all_by_name(self, name: str) -> list[DataType]:
        rows = await self._fetch_all(
            _DATA_TYPE_SELECT + " WHERE name = ? ORDER BY version", (name,)
        )
        return [_data_type_from_row(row) for row in rows]

    async def find_data_type_all_by_all(self) -> list[DataType]:
        rows = await self._fetch_all(_DATA_TYPE_SELECT + " ORDER BY name, version")
        return [_data_type_from_row(row) for row in rows]

    async def find_data_type_latest_by_all(self) -> list[DataType]:
        rows = await self._fetch_all(
            _DATA_TYPE_SELECT
            + """
            WHERE version = (SELECT MAX(latest.version) FROM data_type AS latest
                             WHERE latest.name = data_type.name)
            ORDER BY name
            """
        )
        return [_data_type_from_row(row) for row in rows]

    # Attribute types

    async def new_attribute_type(self, attribute_type: AttributeType) -> AttributeType:
        attribute_type_id = await self._execute(
            """
            INSERT INTO attribute_type
                (attribute_name, data_type_name, multiple_allowed, metadata, last_changed)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                attribute_type.attribute_name,
                attribute_type.data_type,
                int(attribute_type.multiple_allowed),
                attribute_type.metadata,
                _now_ms(),
            ),
        )
        return await self._reload(self.find_attribute_type_by_id, attribute_type_id)

    async def update_attribute_type(self, attribute_type: AttributeType) -> AttributeType:
        await self._execute(
            """
            UPDATE attribute_type
            SET attribute_name = ?, multiple_allowed = ?, metadata = ?, last_changed = ?
            WHERE attribute_type_id = ?
            """,
            (
                attribute_type.attribute_name,
                int(attribute_type.multiple_allowed),
                attribute_type.metadata,
                _now_ms(),
                attribute_type.id,
            ),
        )
        return await self._reload(self.find_attribute_type_by_id, attribute_type.id)

    async def new_attribute_type_history(
        self, attribute_type_history: AttributeTypeHistory
    ) -> AttributeTypeHistory:
        now = _now_ms()
        history_id = await self._execute(
            """
            INSERT INTO attribute_type_history
                (attribute_type_id, change_set_id, change_date,
                 diff_attribute_name, diff_multiple_allowed, diff_metadata)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                attribute_type_history.attribute_type_id,
                self.change_set_id,
                now,
                attribute_type_history.diff_attribute_name,
                attribute_type_history.diff_multiple_allowed,
                attribute_type_history.diff_metadata,
            ),
        )
        return dataclasses.replace(
            attribute_type_history,
            id=history_id,
            change_set_id=self.change_set_id,
            change_date=now,
        )

    async def find_attribute_type_by_id(self, attribute_type_id: int) -> AttributeType | None:
        row = await self._fetch_one(
            "SELECT * FROM attribute_type WHERE attribute_type_id = ?", (attribute_type_id,)
        )
        return _attribute_type_from_row(row) if row else None

    async def find_attribute_type_by_name(self, name: str) -> list[AttributeType]:
        rows = await self._fetch_all(
            "SELECT * FROM attribute_type WHERE attribute_name = ?", (name,)
        )
        return [_attribute_type_from_row(row) for row in rows]

    async def find_attribute_type_by_data_type(self, data_type: str) -> list[AttributeType]:
        rows = await self._fetch_all(
            "SELECT * FROM attribute_type WHERE data_type_name = ? ORDER BY attribute_type_id",
            (data_type,),
        )
        return [_attribute_type_from_row(row) for row in rows]

    async def find_attribute_type_by_all(self) -> list[AttributeType]:
        rows = await self._fetch_all("SELECT * FROM attribute_type ORDER BY attribute_type_id")
        return [_attribute_type_from_row(row) for row in rows]

    # Attributes

    async def new_attribute(self, attribute: Attribute) -> Attribute:
        attribute_id = await self._execute(
            """
            INSERT INTO attribute
                (attribute_type_id, parent_noun_id, parent_attribute_id,
                 data_json, data_type_version, metadata, last_changed)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                attribute.attribute_type_id,
                attribute.parent_noun_id,
                attribute.parent_attribute_id,
                value_to_json(attribute.data),
                attribute.data_type_version,
                attribute.metadata,
                _now_ms(),
            ),
        )
        return await self._reload(self.find_attribute_by_id, attribute_id)

    async def update_attribute(self, attribute: Attribute) -> Attribute:
        await self._execute(
            """
            UPDATE attribute
            SET data_json = ?, data_type_version = ?, metadata = ?, last_changed = ?
            WHERE attribute_id = ?
            """,
            (
                value_to_json(attribute.data),
                attribute.data_type_version,
                attribute.metadata,
                _now_ms(),
                attribute.id,
            ),
        )
        return await self._reload(self.find_attribute_by_id, attribute.id)

    async def new_attribute_history(self, attribute_history: AttributeHistory) -> AttributeHistory:
        now = _now_ms()
        history_id = await self._execute(
            """
            INSERT INTO attribute_history
                (attribute_id, change_set_id, change_date,
                 diff_data, diff_data_type_version, diff_metadata)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                attribute_history.attribute_id,
                self.change_set_id,
                now,
                attribute_history.diff_data,
                attribute_history.diff_data_type_version,
                attribute_history.diff_metadata,
            ),
        )
        return dataclasses.replace(
            attribute_history, id=history_id, change_set_id=self.change_set_id, change_date=now
        )

    async def find_attribute_by_id(self, attribute_id: int) -> Attribute | None:
        row = await self._fetch_one(_ATTRIBUTE_SELECT + " WHERE attribute_id = ?", (attribute_id,))
        return _attribute_from_row(row) if row else None

    async def find_attribute_by_all(self) -> list[Attribute]:
        rows = await self._fetch_all(_ATTRIBUTE_SELECT + " ORDER BY attribute_id")
        return [_attribute_from_row(row) for row in rows]

    async def find_attribute_by_parent_noun_id(self, parent_noun_id: int) -> list[Attribute]:
        rows = await self._fetch_all(
            _ATTRIBUTE_SELECT + " WHERE parent_noun_id = ? ORDER BY attribute_id",
            (parent_noun_id,),
        )
        return [_attribute_from_row(row) for row in rows]

    async def find_attribute_by_parent_attribute_id(
        self, parent_attribute_id: int
    ) -> list[Attribute]:
        rows = await self._fetch_all(
            _ATTRIBUTE_SELECT + " WHERE parent_attribute_id = ? ORDER BY attribute_id",
            (parent_attribute_id,),
        )
        return [_attribute_from_row(row) for row in rows]

    async def find_attribute_by_parent_noun_id_and_attribute_type_id(
        self, parent_noun_id: int, attribute_type_id: int
    ) -> list[Attribute]:
        rows = await self._fetch_all(
            _ATTRIBUTE_SELECT
            + " WHERE parent_noun_id = ? AND attribute_type_id = ? ORDER BY attribute_id",
            (parent_noun_id, attribute_type_id),
        )
        return [_attribute_from_row(row) for row in rows]

    async def find_attribute_by_parent_attribute_id_and_attribute_type_id(
        self, parent_attribute_id: int, attribute_type_id: int
    ) -> list[Attribute]:
        rows = await self._fetch_all(
            _ATTRIBUTE_SELECT
            + " WHERE parent_attribute_id = ? AND attribute_type_id = ? ORDER BY attribute_id",
            (parent_attribute_id, attribute_type_id),
        )
        return [_attribute_from_row(row) for row in rows]

    # History

    async def find_change_set_by_id(self, change_set_id: int) -> ChangeSet | None:
        row = await self._fetch_one(
            "SELECT * FROM change_set WHERE change_set_id = ?", (change_set_id,)
        )
        if not row:
            return None
        return ChangeSet(
            id=row["change_set_id"],
            change_source=row["change_source"],
            change_date=row["change_date"],
        )

    async def find_noun_history_by_noun_id(self, noun_id: int) -> list[NounHistory]:
        rows = await self._fetch_all(
            "SELECT * FROM noun_history WHERE noun_id = ? ORDER BY noun_history_id", (noun_id,)
        )
        return [
            NounHistory(
                id=row["noun_history_id"],
                noun_id=row["noun_id"],
                change_set_id=row["change_set_id"],
                change_date=row["change_date"],
                diff_name=row["diff_name"],
                diff_noun_type=row["diff_noun_type"],
                diff_metadata=row["diff_metadata"],
            )
            for row in rows
        ]

    async def find_noun_type_history_by_noun_type_id(
        self, noun_type_id: int
    ) -> list[NounTypeHistory]:
        rows = await self._fetch_all(
            """
            SELECT * FROM noun_type_history WHERE noun_type_id = ?
            ORDER BY noun_type_history_id
            """,
            (noun_type_id,),
        )
        return [
            NounTypeHistory(
                id=row["noun_type_history_id"],
                noun_type_id=row["noun_type_id"],
                change_set_id=row["change_set_id"],
                change_date=row["change_date"],
                diff_type_name=row["diff_type_name"],
                diff_metadata=row["diff_metadata"],
            )
            for row in rows
        ]

    async def find_attribute_type_history_by_attribute_type_id(
        self, attribute_type_id: int
    ) -> list[AttributeTypeHistory]:
        rows = await self._fetch_all(
            """
            SELECT * FROM attribute_type_history WHERE attribute_type_id = ?
            ORDER BY attribute_type_history_id
            """,
            (attribute_type_id,),
        )
        return [
            AttributeTypeHistory(
                id=row["attribute_type_history_id"],
                attribute_type_id=row["attribute_type_id"],
                change_set_id=row["change_set_id"],
                change_date=row["change_date"],
                diff_attribute_name=row["diff_attribute_name"],
                diff_multiple_allowed=row["diff_multiple_allowed"],
                diff_metadata=row["diff_metadata"],
            )
            for row in rows
        ]

    async def find_attribute_history_by_attribute_id(
        self, attribute_id: int
    ) -> list[AttributeHistory]:
        rows = await self._fetch_all(
            """
            SELECT * FROM attribute_history WHERE attribute_id = ?
            ORDER BY attribute_history_id
            """,
            (attribute_id,),
        )
        return [
            AttributeHistory(
                id=row["attribute_history_id"],
                attribute_id=row["attribute_id"],
                change_set_id=row["change_set_id"],
                change_date=row["change_date"],
                diff_data=row["diff_data"],
                diff_data_type_version=row["diff_data_type_version"],
                diff_metadata=row["diff_metadata"],
            )
            for row in rows
        ]
