"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep Google Sheets as the household's own view of the ledger
2. Use in-memory storage for testing
3. Swap in a real database later without touching the import flow

The interface is intentionally small - just the operations the import
pipeline and its readers need. Period replacement (delete a month, then
insert it again) is expressed as two calls so the orchestrator controls
the ordering.
"""

from abc import ABC, abstractmethod
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


class LedgerStorageInterface(ABC):
    """
    Abstract interface for the canonical transaction ledger.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def delete_transactions_for_period(self, year: int, month: int) -> int:
        """
        Delete every transaction in a calendar month, synthetic rows included.

        Returns:
            Number of rows deleted

        Raises:
            StorageError: If the delete fails
        """
        pass

    @abstractmethod
    async def insert_transactions(self, transactions: list[Transaction]) -> int:
        """
        Append transactions to the ledger.

        Returns:
            Number of rows inserted

        Raises:
            StorageError: If the insert fails
        """
        pass

    @abstractmethod
    async def list_transactions(
        self,
        year: Optional[int] = None,
        month: Optional[int] = None,
        kind: Optional[TransactionKind] = None,
        account_name: Optional[str] = None,
    ) -> list[Transaction]:
        """
        List transactions with optional filters, oldest first.
        """
        pass

    @abstractmethod
    async def delete_synthetic_transfers(self, year: int, month: int) -> int:
        """
        Delete the backfilled transfer rows (sentinel memo) for one month.

        Rows entered by the user are never touched.

        Returns:
            Number of rows deleted
        """
        pass

    @abstractmethod
    async def find_real_transfers(
        self,
        keys: Iterable[TransferMatchKey],
    ) -> set[TransferMatchKey]:
        """
        Return the keys that already exist as non-synthetic transfers.

        A row matches when its date, account, expense and income amounts
        and category equal the key's and its memo is not the sentinel
        value. Implementations read the ledger once per call.
        """
        pass

    async def find_real_transfer(self, key: TransferMatchKey) -> bool:
        """Check a single natural key."""
        return key in await self.find_real_transfers([key])


class SnapshotStorageInterface(ABC):
    """
    Abstract interface for monthly asset snapshots.

    Snapshots are unique per (account_name, year, month).
    """

    @abstractmethod
    async def upsert_snapshots(self, snapshots: list[MonthlyAssetSnapshot]) -> int:
        """
        Insert new snapshots and overwrite existing ones with the same key.

        Returns:
            Number of snapshots written
        """
        pass

    @abstractmethod
    async def list_snapshots(
        self,
        account_name: Optional[str] = None,
    ) -> list[MonthlyAssetSnapshot]:
        """
        List snapshots, ordered by account then period.
        """
        pass

    @abstractmethod
    async def get_recorded_asset_types(self) -> dict[str, AssetType]:
        """
        Get the asset type already recorded for each account.

        When an account's snapshots disagree, the latest period wins.
        """
        pass

    @abstractmethod
    async def update_asset_type(self, account_name: str, asset_type: AssetType) -> int:
        """
        Set the asset type on every snapshot of an account.

        Returns:
            Number of snapshots updated

        Raises:
            NotFoundError: If the account has no snapshots
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one import).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
