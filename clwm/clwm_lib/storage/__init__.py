"""
Storage module for the world engine.

This module provides the storage abstraction the engine writes through:
- Storage / Transaction protocols
- SQLite backend
- Backend factory

Invariants:
    - The engine depends only on the protocols, never on a backend class
    - Infrastructure failures surface as StorageError
"""

from .base import (
    Storage,
    StorageBackend,
    StorageConnectionError,
    StorageError,
    Transaction,
    TransactionFinalizedError,
    create_storage,
)
from .sqlite import SqliteStorage, SqliteTransaction, parse_sqlite_url

__all__ = [
    "Storage",
    "Transaction",
    "StorageBackend",
    "StorageError",
    "StorageConnectionError",
    "TransactionFinalizedError",
    "create_storage",
    "SqliteStorage",
    "SqliteTransaction",
    "parse_sqlite_url",
]
