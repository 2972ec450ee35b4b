"""Services package."""

from recurring_ledger.services.storage import (
    AuditStorageInterface,
    ConflictError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
    InMemoryAuditStorage,
    InMemoryLedgerStore,
    LedgerStoreInterface,
    NotFoundError,
    PersistenceError,
    StoreConnectionError,
    StoreTimeoutError,
)

__all__ = [
    "AuditStorageInterface",
    "ConflictError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStore",
    "InMemoryAuditStorage",
    "InMemoryLedgerStore",
    "LedgerStoreInterface",
    "NotFoundError",
    "PersistenceError",
    "StoreConnectionError",
    "StoreTimeoutError",
]
