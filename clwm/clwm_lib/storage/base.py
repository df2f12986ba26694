"""
Base protocol and types for the storage abstraction.

This module defines the Storage and Transaction protocols that every backend
must implement, the backend enumeration, errors, and the backend factory.

Contract:
    - Each write returns the canonical stored record (with id/timestamps)
    - Finders never raise for "not found": absence is None or []
    - A transaction is finalized exactly once, by commit() or rollback();
      any later call raises TransactionFinalizedError
    - Transaction methods may be awaited concurrently from several tasks;
      the backend serializes them (one statement in flight at a time)
    - Every write transaction opens a change set; history rows written
      through it carry its change_set_id
    - Read transactions have no change set (change_set_id is None) and
      reject writes

How to change safely:
    - Protocol changes require updating every backend
    - Backends must surface infrastructure failures as StorageError
"""

from __future__ import annotations

from abc import abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

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

if TYPE_CHECKING:
    from ..config import StorageConfig
    from ..world_file import WorldFile


class StorageError(Exception):
    """Base exception for storage/infrastructure failures."""

    pass


class StorageConnectionError(StorageError):
    """The backend could not be reached or was not initialized."""

    pass


class TransactionFinalizedError(StorageError):
    """The transaction was already committed or rolled back."""

    pass


class StorageBackend(Enum):
    """Supported storage backends."""

    SQLITE = "sqlite"

    @classmethod
    def from_str(cls, value: str) -> StorageBackend:
        """Convert a backend name (case-insensitive) to a StorageBackend.

        Raises:
            ValueError: If value is not a supported backend
        """
        for backend in cls:
            if backend.value == value.lower():
                return backend
        valid = [b.value for b in cls]
        raise ValueError(f"Invalid storage backend '{value}'. Valid backends: {valid}")


@runtime_checkable
class Transaction(Protocol):
    """An atomic unit of work against a storage backend.

    Attributes:
        change_set_id: Identifier grouping the history rows of this transaction,
            None for read transactions
        change_source: Label given when the transaction was opened
    """

    change_set_id: int | None
    change_source: str

    @property
    @abstractmethod
    def is_finalized(self) -> bool:
        """Whether commit() or rollback() has already run."""
        ...

    @abstractmethod
    async def commit(self) -> None: ...

    @abstractmethod
    async def rollback(self) -> None: ...

    # Nouns

    @abstractmethod
    async def new_noun(self, noun: Noun) -> Noun: ...

    @abstractmethod
    async def update_noun(self, noun: Noun) -> Noun: ...

    @abstractmethod
    async def new_noun_history(self, noun_history: NounHistory) -> NounHistory: ...

    @abstractmethod
    async def find_noun_by_id(self, noun_id: int) -> Noun | None: ...

    @abstractmethod
    async def find_noun_by_name(self, name: str) -> list[Noun]:
        """Nouns whose name contains the given text."""
        ...

    @abstractmethod
    async def find_noun_by_noun_type(self, type_name: str) -> list[Noun]: ...

    @abstractmethod
    async def find_noun_by_all(self) -> list[Noun]: ...

    # Noun types

    @abstractmethod
    async def new_noun_type(self, noun_type: NounType) -> NounType: ...

    @abstractmethod
    async def update_noun_type(self, noun_type: NounType) -> NounType: ...

    @abstractmethod
    async def new_noun_type_history(
        self, noun_type_history: NounTypeHistory
    ) -> NounTypeHistory: ...

    @abstractmethod
    async def find_noun_type_by_id(self, noun_type_id: int) -> NounType | None: ...

    @abstractmethod
    async def find_noun_type_by_type_name(self, type_name: str) -> list[NounType]:
        """Noun types with exactly this name (zero or one)."""
        ...

    @abstractmethod
    async def find_noun_type_by_all(self) -> list[NounType]: ...

    # Data types

    @abstractmethod
    async def new_data_type(self, data_type: DataType) -> DataType: ...

    @abstractmethod
    async def find_data_type_latest_by_name(self, name: str) -> DataType | None: ...

    @abstractmethod
    async def find_data_type_by_name_and_version(
        self, name: str, version: int
    ) -> DataType | None: ...

    @abstractmethod
    async def find_data_type_all_by_name(self, name: str) -> list[DataType]:
        """Every version of a data type, oldest first."""
        ...

    @abstractmethod
    async def find_data_type_all_by_all(self) -> list[DataType]: ...

    @abstractmethod
    async def find_data_type_latest_by_all(self) -> list[DataType]: ...

    # Attribute types

    @abstractmethod
    async def new_attribute_type(self, attribute_type: AttributeType) -> AttributeType: ...

    @abstractmethod
    async def update_attribute_type(self, attribute_type: AttributeType) -> AttributeType: ...

    @abstractmethod
    async def new_attribute_type_history(
        self, attribute_type_history: AttributeTypeHistory
    ) -> AttributeTypeHistory: ...

    @abstractmethod
    async def find_attribute_type_by_id(self, attribute_type_id: int) -> AttributeType | None: ...

    @abstractmethod
    async def find_attribute_type_by_name(self, name: str) -> list[AttributeType]: ...

    @abstractmethod
    async def find_attribute_type_by_data_type(self, data_type: str) -> list[AttributeType]: ...

    @abstractmethod
    async def find_attribute_type_by_all(self) -> list[AttributeType]: ...

    # Attributes

    @abstractmethod
    async def new_attribute(self, attribute: Attribute) -> Attribute: ...

    @abstractmethod
    async def update_attribute(self, attribute: Attribute) -> Attribute: ...

    @abstractmethod
    async def new_attribute_history(
        self, attribute_history: AttributeHistory
    ) -> AttributeHistory: ...

    @abstractmethod
    async def find_attribute_by_id(self, attribute_id: int) -> Attribute | None: ...

    @abstractmethod
    async def find_attribute_by_all(self) -> list[Attribute]: ...

    @abstractmethod
    async def find_attribute_by_parent_noun_id(self, parent_noun_id: int) -> list[Attribute]: ...

    @abstractmethod
    async def find_attribute_by_parent_attribute_id(
        self, parent_attribute_id: int
    ) -> list[Attribute]: ...

    @abstractmethod
    async def find_attribute_by_parent_noun_id_and_attribute_type_id(
        self, parent_noun_id: int, attribute_type_id: int
    ) -> list[Attribute]: ...

    @abstractmethod
    async def find_attribute_by_parent_attribute_id_and_attribute_type_id(
        self, parent_attribute_id: int, attribute_type_id: int
    ) -> list[Attribute]: ...

    # History (audit read-back)

    @abstractmethod
    async def find_change_set_by_id(self, change_set_id: int) -> ChangeSet | None: ...

    @abstractmethod
    async def find_noun_history_by_noun_id(self, noun_id: int) -> list[NounHistory]: ...

    @abstractmethod
    async def find_noun_type_history_by_noun_type_id(
        self, noun_type_id: int
    ) -> list[NounTypeHistory]: ...

    @abstractmethod
    async def find_attribute_type_history_by_attribute_type_id(
        self, attribute_type_id: int
    ) -> list[AttributeTypeHistory]: ...

    @abstractmethod
    async def find_attribute_history_by_attribute_id(
        self, attribute_id: int
    ) -> list[AttributeHistory]: ...


@runtime_checkable
class Storage(Protocol):
    """Protocol for storage backends.

    Example:
        >>> storage = SqliteStorage("world.db")
        >>> await storage.init()
        >>> txn = await storage.create_transaction("new noun")
        >>> noun = await txn.new_noun(Noun(name="Alice", noun_type="Person"))
        >>> await txn.commit()
    """

    @abstractmethod
    async def init(self) -> None:
        """Establish connectivity and create the schema if needed.

        Raises:
            StorageConnectionError: If the backend cannot be reached
        """
        ...

    @abstractmethod
    async def create_transaction(self, change_source: str) -> Transaction:
        """Open an atomic unit of work.

        Args:
            change_source: Human-readable label recorded on the change set

        Raises:
            StorageConnectionError: If init() has not run
        """
        ...

    @abstractmethod
    async def create_read_transaction(self, change_source: str) -> Transaction:
        """Open a unit of work for lookups only.

        It records no change set and must not hold up concurrent writers
        longer than the backend requires. Callers always roll it back.

        Args:
            change_source: Human-readable label used for logging

        Raises:
            StorageConnectionError: If init() has not run
        """
        ...


def create_storage(world_file: WorldFile, config: StorageConfig | None = None) -> Storage:
    """Factory function to create a storage backend from a world descriptor.

    Args:
        world_file: Loaded world descriptor
        config: Storage tuning options

    Returns:
        Appropriate Storage implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import StorageConfig
    from .sqlite import SqliteStorage

    config = config or StorageConfig()
    if world_file.data_interface == StorageBackend.SQLITE:
        return SqliteStorage(
            world_file.url,
            busy_timeout_ms=config.busy_timeout_ms,
            wal_mode=config.wal_mode,
        )
    raise ValueError(f"Unsupported storage backend: {world_file.data_interface}")
