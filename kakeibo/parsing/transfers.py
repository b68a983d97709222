"""
Investment Transfer Extractor

Older combined-ledger exports predate transfer tracking, so the transfers
that fund an investment account are missing from the canonical ledger.
The asset ledger still records them as 振替 rows on the investment
account's own block. This module turns those rows into synthetic transfer
transactions so cumulative cost basis can be computed.

Synthetic rows are marked with SYNTHETIC_TRANSFER_MEMO and are owned by
this extractor: re-imports delete and recreate them.
"""

from typing import Mapping, Optional

import structlog

from kakeibo.models.ledger import (
    SYNTHETIC_TRANSFER_MEMO,
    AssetLedgerEntry,
    Transaction,
    TransactionKind,
)
from kakeibo.parsing.asset import parse_asset_ledger

logger = structlog.get_logger(__name__)


def entry_to_transfer(entry: AssetLedgerEntry) -> Transaction:
    """
    Build the synthetic transfer for one asset-ledger row.

    Money moving into the account is income_amount (the side cost basis
    sums); money moving out is expense_amount.
    """
    return Transaction(
        transaction_date=entry.entry_date,
        kind=TransactionKind.TRANSFER,
        category=TransactionKind.TRANSFER.value,
        item_name=entry.item_name,
        expense_amount=-entry.amount if entry.amount < 0 else 0,
        income_amount=entry.amount if entry.amount > 0 else 0,
        account_name=entry.account_name,
        memo=SYNTHETIC_TRANSFER_MEMO,
        exclude_from_pl=True,
    )


def extract_investment_transfers(
    text: str,
    investment_accounts: Mapping[str, str],
    min_year: Optional[int] = None,
) -> list[Transaction]:
    """
    Scan asset-ledger text for transfers on investment accounts.

    Args:
        text: Raw asset-ledger CSV text
        investment_accounts: Investment product name -> account display name
        min_year: Rows before this year are ignored (defaults to settings)

    Returns:
        Synthetic transfer transactions, in file order
    """
    accounts = set(investment_accounts.values())
    transfers = [
        entry_to_transfer(entry)
        for entry in parse_asset_ledger(text, min_year=min_year)
        if not entry.is_initial
        and entry.kind == TransactionKind.TRANSFER.value
        and entry.account_name in accounts
        and entry.amount != 0
    ]
    logger.debug(
        "investment_transfers_extracted",
        transfers=len(transfers),
        accounts=sorted(accounts),
    )
    return transfers
