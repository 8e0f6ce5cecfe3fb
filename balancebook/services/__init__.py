"""Services package."""

from balancebook.services.storage import (
    AuditStorageInterface,
    InMemoryAuditStorage,
    InMemoryRecordStore,
    LedgerSnapshot,
    NotFoundError,
    RecordChangeListener,
    RecordStoreInterface,
    RecordValidationError,
    RunningBalanceCache,
    StorageError,
)

__all__ = [
    "AuditStorageInterface",
    "InMemoryAuditStorage",
    "InMemoryRecordStore",
    "LedgerSnapshot",
    "NotFoundError",
    "RecordChangeListener",
    "RecordStoreInterface",
    "RecordValidationError",
    "RunningBalanceCache",
    "StorageError",
]
