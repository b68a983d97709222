"""
Balance and Cost-Basis Reads

Snapshots exist only for months in which an account had activity. A
balance "as of" a month is therefore the closing balance of the most
recent snapshot at or before that month, not a snapshot for the month
itself.

Cost basis for an investment is the sum of money transferred into its
account: the income_amount of every 振替 row on that account, whether it
came from the combined ledger or was backfilled from the asset ledger.

These reads are DETERMINISTIC: they only return what storage holds.
"""

from typing import Mapping, Optional

from kakeibo.config import get_settings
from kakeibo.models.ledger import MonthlyAssetSnapshot, TransactionKind
from kakeibo.services.storage import LedgerStorageInterface, SnapshotStorageInterface


class QueryExecutionError(Exception):
    """Error during query execution."""
    pass


def _period_key(year: int, month: int) -> int:
    return year * 100 + month


class LedgerQueries:
    """
    Point-in-time reads over the imported ledger and snapshots.

    GUARANTEES:
    - Only returns real data from storage
    - None (not zero) when an account has no snapshot yet
    """

    def __init__(
        self,
        ledger_storage: LedgerStorageInterface,
        snapshot_storage: SnapshotStorageInterface,
        investment_accounts: Optional[Mapping[str, str]] = None,
    ):
        self._ledger = ledger_storage
        self._snapshots = snapshot_storage
        self._investment_accounts = (
            investment_accounts
            if investment_accounts is not None
            else get_settings().ledger.investment_accounts
        )

    async def snapshot_as_of(
        self,
        account_name: str,
        year: int,
        month: int,
    ) -> Optional[MonthlyAssetSnapshot]:
        """Most recent snapshot for the account at or before the month."""
        cutoff = _period_key(year, month)
        candidates = [
            s for s in await self._snapshots.list_snapshots(account_name=account_name)
            if s.period_key <= cutoff
        ]
        return max(candidates, key=lambda s: s.period_key, default=None)

    async def balance_as_of(self, account_name: str, year: int, month: int) -> Optional[int]:
        """Closing balance carried forward to the given month."""
        snapshot = await self.snapshot_as_of(account_name, year, month)
        return snapshot.closing_balance if snapshot else None

    async def balances_as_of(self, year: int, month: int) -> list[MonthlyAssetSnapshot]:
        """
        The carried-forward snapshot of every account as of the month.

        Accounts whose first snapshot is later than the month are left out.
        """
        cutoff = _period_key(year, month)
        latest: dict[str, MonthlyAssetSnapshot] = {}
        for snapshot in await self._snapshots.list_snapshots():
            if snapshot.period_key > cutoff:
                continue
            current = latest.get(snapshot.account_name)
            if current is None or snapshot.period_key > current.period_key:
                latest[snapshot.account_name] = snapshot
        return sorted(latest.values(), key=lambda s: (s.asset_type.value, s.account_name))

    async def cost_basis(
        self,
        product_name: str,
        upto_year: Optional[int] = None,
        upto_month: Optional[int] = None,
    ) -> int:
        """
        Cumulative amount transferred into an investment product's account.

        Raises:
            QueryExecutionError: If the product has no configured account
        """
        account_name = self._investment_accounts.get(product_name)
        if account_name is None:
            raise QueryExecutionError(f"Unknown investment product: {product_name}")

        transfers = await self._ledger.list_transactions(
            kind=TransactionKind.TRANSFER,
            account_name=account_name,
        )
        if upto_year is not None and upto_month is not None:
            cutoff = _period_key(upto_year, upto_month)
            transfers = [tx for tx in transfers if _period_key(tx.year, tx.month) <= cutoff]
        return sum(tx.income_amount for tx in transfers)
