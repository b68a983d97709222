"""
Combined-Ledger Parser

Reads the full-transaction export. Header row and column order:

    日付,種別,カテゴリ,項目名,金額,支出,収入,資産,タグ,メモ,収支の計算から除外

The 金額 column is ignored; the amount is derived from 支出/収入.

SHARP EDGE: in the last column the literal "-" means the row IS included
in profit/loss. Any other value, including a blank cell, excludes it.
"""

from datetime import date
from typing import Optional

import structlog
from pydantic import ValidationError

from kakeibo.config import get_settings
from kakeibo.models.ledger import Transaction
from kakeibo.parsing.tokenizer import is_date_cell, normalize_date, parse_int, tokenize

COMBINED_MIN_COLUMNS = 11

# Exclude-column value meaning "keep this row in P&L"
INCLUDE_IN_PL_MARKER = "-"

logger = structlog.get_logger(__name__)


def exclude_from_pl(raw: str) -> bool:
    """Apply the inverted exclude-column convention."""
    return raw != INCLUDE_IN_PL_MARKER


def parse_combined_ledger(text: str, min_year: Optional[int] = None) -> list[Transaction]:
    """
    Parse combined-ledger CSV text into canonical transactions.

    Header lines, rows without a usable date, rows before min_year and
    rows that fail validation are skipped without error.
    """
    if min_year is None:
        min_year = get_settings().ledger.min_year

    transactions = []
    skipped = 0

    for cols in tokenize(text, COMBINED_MIN_COLUMNS):
        (raw_date, kind, category, item_name, _amount,
         expense_raw, income_raw, account, tag, memo, exclude_raw) = cols[:COMBINED_MIN_COLUMNS]

        if not is_date_cell(raw_date):
            continue

        iso = normalize_date(raw_date)
        if not iso:
            skipped += 1
            continue
        try:
            tx_date = date.fromisoformat(iso)
        except ValueError:
            skipped += 1
            continue

        if tx_date.year < min_year:
            continue

        try:
            transactions.append(Transaction(
                transaction_date=tx_date,
                kind=kind,
                category=category,
                item_name=item_name,
                expense_amount=parse_int(expense_raw),
                income_amount=parse_int(income_raw),
                account_name=account,
                tag=tag,
                memo=memo,
                exclude_from_pl=exclude_from_pl(exclude_raw),
            ))
        except ValidationError:
            skipped += 1

    logger.debug(
        "combined_ledger_parsed",
        transactions=len(transactions),
        malformed_rows=skipped,
        min_year=min_year,
    )
    return transactions
