"""
Snapshot Aggregator

Folds asset-ledger entries into one MonthlyAssetSnapshot per account and
month with activity:

- closing balance = balance after the last entry dated in that month
  (file order decides "last" within a month)
- opening balance = closing balance of the previous produced snapshot for
  the same account; the first snapshot opens at its own closing balance

Months without activity produce nothing. Point-in-time reads interpolate
from the most recent snapshot at or before the month (see
kakeibo.queries.balances).
"""

from typing import Iterable, Mapping, Optional

from kakeibo.models.ledger import AssetLedgerEntry, AssetType, MonthlyAssetSnapshot
from kakeibo.snapshots.classifier import infer_asset_type


def closing_balances(entries: Iterable[AssetLedgerEntry]) -> dict[str, dict[tuple[int, int], int]]:
    """
    Last balance per (year, month) for each account.

    Initial-balance markers carry no date and are ignored. Accounts keep
    the order in which they first appear.
    """
    by_account: dict[str, dict[tuple[int, int], int]] = {}
    for entry in entries:
        if entry.is_initial:
            continue
        months = by_account.setdefault(entry.account_name, {})
        months[(entry.year, entry.month)] = entry.balance
    return by_account


def aggregate_snapshots(
    entries: Iterable[AssetLedgerEntry],
    asset_types: Optional[Mapping[str, AssetType]] = None,
) -> list[MonthlyAssetSnapshot]:
    """
    Build monthly snapshots from asset-ledger entries.

    Args:
        entries: Entries for any accounts, each account's rows in file order
        asset_types: Recorded types by account; others are inferred from the name

    Returns:
        Snapshots grouped by account, months ascending within each account
    """
    asset_types = asset_types or {}
    snapshots = []

    for account_name, months in closing_balances(entries).items():
        asset_type = asset_types.get(account_name) or infer_asset_type(account_name)
        previous_closing = None
        for year, month in sorted(months):
            closing = months[(year, month)]
            snapshots.append(MonthlyAssetSnapshot(
                account_name=account_name,
                year=year,
                month=month,
                opening_balance=closing if previous_closing is None else previous_closing,
                closing_balance=closing,
                asset_type=asset_type,
            ))
            previous_closing = closing

    return snapshots
