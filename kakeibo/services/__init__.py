"""Services package."""

from kakeibo.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    GoogleSheetsSnapshotStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    InMemorySnapshotStorage,
    LedgerStorageInterface,
    NotFoundError,
    SnapshotStorageInterface,
    StorageError,
)

__all__ = [
    "AuditStorageInterface",
    "ConnectionError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
    "GoogleSheetsSnapshotStorage",
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "InMemorySnapshotStorage",
    "LedgerStorageInterface",
    "NotFoundError",
    "SnapshotStorageInterface",
    "StorageError",
]
