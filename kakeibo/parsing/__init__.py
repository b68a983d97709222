"""CSV parsing package."""

from kakeibo.parsing.asset import AssetScanState, parse_asset_ledger, scan_asset_row
from kakeibo.parsing.combined import exclude_from_pl, parse_combined_ledger
from kakeibo.parsing.tokenizer import (
    is_date_cell,
    normalize_date,
    parse_int,
    split_csv_line,
    split_lines,
    tokenize,
)
from kakeibo.parsing.transfers import extract_investment_transfers

__all__ = [
    "AssetScanState",
    "exclude_from_pl",
    "extract_investment_transfers",
    "is_date_cell",
    "normalize_date",
    "parse_asset_ledger",
    "parse_combined_ledger",
    "parse_int",
    "scan_asset_row",
    "split_csv_line",
    "split_lines",
    "tokenize",
]
