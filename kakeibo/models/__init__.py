"""
Data Models Package

This package contains all Pydantic models used by the ledger import pipeline.
Everything the parsers produce and the storage layer persists conforms to these schemas.
"""

from kakeibo.models.ledger import (
    SYNTHETIC_TRANSFER_MEMO,
    AssetLedgerEntry,
    AssetType,
    ImportResult,
    MonthlyAssetSnapshot,
    Transaction,
    TransactionKind,
    TransferMatchKey,
)
from kakeibo.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "SYNTHETIC_TRANSFER_MEMO",
    "AssetLedgerEntry",
    "AssetType",
    "ImportResult",
    "MonthlyAssetSnapshot",
    "Transaction",
    "TransactionKind",
    "TransferMatchKey",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
