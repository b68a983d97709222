"""
In-Memory Storage Implementation

Same semantics as the Google Sheets backend, held in Python lists.
Used by the test suite and as the fallback when Sheets is not configured
(data then lives only as long as the process).
"""

from typing import Iterable, Optional
from uuid import UUID

from kakeibo.models.ledger import (
    AssetType,
    MonthlyAssetSnapshot,
    Transaction,
    TransactionKind,
    TransferMatchKey,
)
from kakeibo.models.audit import AuditEvent
from kakeibo.services.storage.interface import (
    AuditStorageInterface,
    LedgerStorageInterface,
    NotFoundError,
    SnapshotStorageInterface,
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Transaction ledger kept in insertion order."""

    def __init__(self, transactions: Optional[list[Transaction]] = None):
        self._rows: list[Transaction] = list(transactions or [])

    def _remove(self, predicate) -> int:
        before = len(self._rows)
        self._rows = [tx for tx in self._rows if not predicate(tx)]
        return before - len(self._rows)

    async def delete_transactions_for_period(self, year: int, month: int) -> int:
        return self._remove(lambda tx: tx.period == (year, month))

    async def insert_transactions(self, transactions: list[Transaction]) -> int:
        self._rows.extend(transactions)
        return len(transactions)

    async def list_transactions(
        self,
        year: Optional[int] = None,
        month: Optional[int] = None,
        kind: Optional[TransactionKind] = None,
        account_name: Optional[str] = None,
    ) -> list[Transaction]:
        rows = [
            tx for tx in self._rows
            if (year is None or tx.year == year)
            and (month is None or tx.month == month)
            and (kind is None or tx.kind == kind)
            and (account_name is None or tx.account_name == account_name)
        ]
        return sorted(rows, key=lambda tx: tx.transaction_date)

    async def delete_synthetic_transfers(self, year: int, month: int) -> int:
        return self._remove(
            lambda tx: tx.period == (year, month)
            and tx.kind == TransactionKind.TRANSFER
            and tx.is_synthetic_transfer
        )

    async def find_real_transfers(
        self,
        keys: Iterable[TransferMatchKey],
    ) -> set[TransferMatchKey]:
        existing = {
            TransferMatchKey.for_transaction(tx)
            for tx in self._rows
            if not tx.is_synthetic_transfer
        }
        return existing.intersection(keys)


class InMemorySnapshotStorage(SnapshotStorageInterface):
    """Snapshots keyed by (account_name, year, month)."""

    def __init__(self):
        self._snapshots: dict[tuple[str, int, int], MonthlyAssetSnapshot] = {}

    async def upsert_snapshots(self, snapshots: list[MonthlyAssetSnapshot]) -> int:
        for snapshot in snapshots:
            self._snapshots[snapshot.key] = snapshot
        return len(snapshots)

    async def list_snapshots(
        self,
        account_name: Optional[str] = None,
    ) -> list[MonthlyAssetSnapshot]:
        return [
            self._snapshots[key] for key in sorted(self._snapshots)
            if account_name is None or key[0] == account_name
        ]

    async def get_recorded_asset_types(self) -> dict[str, AssetType]:
        types = {}
        # Sorted by period, so the latest snapshot's type is written last
        for key in sorted(self._snapshots):
            types[key[0]] = self._snapshots[key].asset_type
        return types

    async def update_asset_type(self, account_name: str, asset_type: AssetType) -> int:
        keys = [key for key in self._snapshots if key[0] == account_name]
        if not keys:
            raise NotFoundError(f"No snapshots for account: {account_name}")
        for key in keys:
            self._snapshots[key] = self._snapshots[key].model_copy(
                update={"asset_type": asset_type}
            )
        return len(keys)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return sorted(self.events, key=lambda e: e.timestamp, reverse=True)[:limit]
