"""
Storage Services Package

Provides the record store and audit storage interfaces, in-memory
implementations, and the running balance cache that sits beside a store.
"""

from balancebook.services.storage.interface import (
    AuditStorageInterface,
    LedgerSnapshot,
    NotFoundError,
    RecordChangeListener,
    RecordStoreInterface,
    RecordValidationError,
    StorageError,
)
from balancebook.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryRecordStore,
)
from balancebook.services.storage.cache import RunningBalanceCache

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerSnapshot",
    "RecordChangeListener",
    "RecordStoreInterface",
    # Exceptions
    "NotFoundError",
    "RecordValidationError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryRecordStore",
    "RunningBalanceCache",
]
