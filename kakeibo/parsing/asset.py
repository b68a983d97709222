"""
Asset-Ledger Parser

The per-account export is several account blocks written back to back,
with nothing between them but a row naming the next account:

    三菱UFJ銀行,-,-,-,-,-,500000                 <- account row + initial balance
    ,2024年03月05日(火),支出,食費,ランチ,-1200,498800
    ,2024年03月25日(月),収入,給与,,20000,518800
    楽天カード,...                                <- next account

A non-date first column names the account for the rows that follow. The
same row is then read again as a data row, so an account row can also be
the account's initial-balance row (columns 2 and 3 both "-").

The scan is a fold over the row stream: AssetScanState is the accumulator
and scan_asset_row is the step function.
"""

from datetime import date
from typing import NamedTuple, Optional

import structlog
from pydantic import ValidationError

from kakeibo.config import get_settings
from kakeibo.models.ledger import AssetLedgerEntry
from kakeibo.parsing.tokenizer import is_date_cell, normalize_date, parse_int, tokenize

ASSET_MIN_COLUMNS = 6

HEADER_CELL = "名前"
NO_VALUE = "-"
INITIAL_KIND = "initial"
INITIAL_ITEM_NAME = "初期残高"

logger = structlog.get_logger(__name__)


class AssetScanState(NamedTuple):
    """Accumulator threaded through the asset-ledger scan."""
    current_account: str = ""
    skipped: int = 0


def _cell(cols: list[str], index: int) -> str:
    return cols[index] if index < len(cols) else ""


def _row_to_entry(
    account: str,
    cols: list[str],
    min_year: int,
) -> tuple[Optional[AssetLedgerEntry], bool]:
    """
    Read one data row for the given account.

    Returns (entry, malformed). A row that is simply out of range gives
    (None, False); a row that could not be read gives (None, True).
    """
    if _cell(cols, 1) == NO_VALUE and _cell(cols, 2) == NO_VALUE:
        return AssetLedgerEntry(
            account_name=account,
            kind=INITIAL_KIND,
            item_name=INITIAL_ITEM_NAME,
            balance=parse_int(_cell(cols, 6)),
            is_initial=True,
        ), False

    raw_date = _cell(cols, 1)
    if not is_date_cell(raw_date):
        return None, False

    iso = normalize_date(raw_date)
    if not iso:
        return None, True
    try:
        entry_date = date.fromisoformat(iso)
    except ValueError:
        return None, True

    if entry_date.year < min_year:
        return None, False

    try:
        return AssetLedgerEntry(
            account_name=account,
            entry_date=entry_date,
            kind=_cell(cols, 2),
            category=_cell(cols, 3),
            item_name=_cell(cols, 4),
            amount=parse_int(_cell(cols, 5)),
            balance=parse_int(_cell(cols, 6)),
        ), False
    except ValidationError:
        return None, True


def scan_asset_row(
    state: AssetScanState,
    cols: list[str],
    min_year: int,
) -> tuple[AssetScanState, Optional[AssetLedgerEntry]]:
    """Advance the scan by one tokenized row, returning any entry it yields."""
    first = cols[0]
    if first == HEADER_CELL:
        return state, None

    if first and not is_date_cell(first):
        state = state._replace(current_account=first)

    if not state.current_account:
        return state, None

    entry, malformed = _row_to_entry(state.current_account, cols, min_year)
    if malformed:
        state = state._replace(skipped=state.skipped + 1)
    return state, entry


def parse_asset_ledger(text: str, min_year: Optional[int] = None) -> list[AssetLedgerEntry]:
    """
    Parse asset-ledger CSV text into per-account entries, in file order.

    Each account's initial-balance marker (if present) is emitted with no
    date and is_initial=True.
    """
    if min_year is None:
        min_year = get_settings().ledger.min_year

    state = AssetScanState()
    entries = []
    for cols in tokenize(text, ASSET_MIN_COLUMNS):
        state, entry = scan_asset_row(state, cols, min_year)
        if entry is not None:
            entries.append(entry)

    logger.debug(
        "asset_ledger_parsed",
        entries=len(entries),
        malformed_rows=state.skipped,
        min_year=min_year,
    )
    return entries
