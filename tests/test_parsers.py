"""
Tests for the CSV tokenizer and the two ledger parsers.
"""

import pytest
from datetime import date

from kakeibo.models.ledger import SYNTHETIC_TRANSFER_MEMO, TransactionKind
from kakeibo.parsing import (
    exclude_from_pl,
    extract_investment_transfers,
    is_date_cell,
    normalize_date,
    parse_asset_ledger,
    parse_combined_ledger,
    parse_int,
    split_csv_line,
    split_lines,
    tokenize,
)


COMBINED_HEADER = "日付,種別,カテゴリ,項目名,金額,支出,収入,資産,タグ,メモ,収支の計算から除外"

ASSET_CSV = "\n".join([
    "名前,日付,種別,カテゴリ,項目名,金額,残高",
    "三菱UFJ銀行,-,-,-,-,-,500000",
    ",2024年03月05日(火),支出,食費,ランチ,-1200,498800",
    ",2024年03月25日(月),振替,,楽天カード,-18800,480000",
    "楽天カード,-,-,-,-,-,0",
    ",2024年03月10日(日),支出,日用品,,-3000,-3000",
    ",2024年04月25日(木),振替,,三菱UFJ銀行,18800,15800",
])

INVESTMENT_ACCOUNTS = {"iDeCo": "iDeCo", "SBI投資信託": "投資信託/SBI"}

INVESTMENT_CSV = "\r\n".join([
    "iDeCo,-,-,-,-,-,0",
    ",2024年03月27日(水),振替,,積立,23000,23000",
    ",2024年04月27日(土),振替,,積立,23000,46000",
    ",2024年04月30日(火),収入,運用益,,500,46500",
    "投資信託/SBI,-,-,-,-,-,0",
    ",2024年05月01日(水),振替,,売却,-10000,90000",
    ",2024年05月02日(木),振替,,調整,0,90000",
    "三菱UFJ銀行,-,-,-,-,-,500000",
    ",2024年03月27日(水),振替,,iDeCo,-23000,477000",
])


def combined(*rows: str) -> str:
    return "\n".join([COMBINED_HEADER, *rows])


class TestTokenizer:
    """Tests for line and field splitting."""

    def test_split_lines_strips_bom_and_crlf(self):
        """Test BOM removal and line ending normalization."""
        assert split_lines("\ufeffa,b\r\nc,d\re") == ["a,b", "c,d", "e"]

    def test_split_csv_line_trims_fields(self):
        """Test that every field is trimmed."""
        assert split_csv_line(" a , b ,c ") == ["a", "b", "c"]

    def test_split_csv_line_quoted_comma(self):
        """Test a comma inside quotes stays in the field."""
        assert split_csv_line('"ランチ, 夜",1200') == ["ランチ, 夜", "1200"]

    def test_split_csv_line_escaped_quote(self):
        """Test a doubled quote inside quotes is a literal quote."""
        assert split_csv_line('"say ""hi""",x') == ['say "hi"', "x"]

    def test_split_csv_line_keeps_empty_fields(self):
        """Test trailing empty fields are kept."""
        assert split_csv_line("a,,") == ["a", "", ""]

    def test_tokenize_skips_blank_and_short_rows(self):
        """Test rows below the column minimum are dropped."""
        rows = list(tokenize("a,b,c\n\n   \nd,e\nf,g,h,i", min_columns=3))
        assert rows == [["a", "b", "c"], ["f", "g", "h", "i"]]


class TestDateAndNumbers:
    """Tests for date normalization and integer parsing."""

    def test_normalize_date(self):
        """Test the long-form date is converted to ISO."""
        assert normalize_date("2024年03月05日(火)") == "2024-03-05"

    def test_normalize_date_requires_padded_fields(self):
        """Test unpadded months and days are not recognised."""
        assert normalize_date("2024年3月5日") == ""
        assert normalize_date("March 5") == ""

    def test_is_date_cell(self):
        """Test date-prefix detection."""
        assert is_date_cell("2024年03月05日(火)") is True
        assert is_date_cell("日付") is False
        assert is_date_cell("") is False

    @pytest.mark.parametrize("raw,expected", [
        ("1,200", 1200),
        ("-1,200", -1200),
        ("+500", 500),
        ("1200円", 1200),
        ("", 0),
        ("-", 0),
        ("abc", 0),
    ])
    def test_parse_int(self, raw, expected):
        """Test comma-grouped and malformed integers."""
        assert parse_int(raw) == expected


class TestExcludeFlag:
    """Tests for the inverted exclude-from-P&L convention."""

    def test_hyphen_means_included(self):
        """Test the literal hyphen keeps the row in P&L."""
        assert exclude_from_pl("-") is False

    @pytest.mark.parametrize("raw", ["", "−", "1", "除外", "ー"])
    def test_anything_else_means_excluded(self, raw):
        """Test blank and look-alike dashes exclude the row."""
        assert exclude_from_pl(raw) is True


class TestCombinedLedgerParser:
    """Tests for the combined-ledger parser."""

    def test_expense_row(self):
        """Test the canonical expense example."""
        text = combined("2024年03月05日(火),支出,食費,ランチ,1200,1200,0,楽天カード,,,−")
        [tx] = parse_combined_ledger(text, min_year=2019)

        assert tx.transaction_date == date(2024, 3, 5)
        assert tx.kind == TransactionKind.EXPENSE
        assert tx.category == "食費"
        assert tx.item_name == "ランチ"
        assert tx.expense_amount == 1200
        assert tx.income_amount == 0
        assert tx.amount == 1200
        assert tx.account_name == "楽天カード"
        assert tx.tag is None
        # U+2212 is not the include marker
        assert tx.exclude_from_pl is True

    def test_included_and_blank_exclude_column(self):
        """Test exclude column literal hyphen versus blank."""
        text = combined(
            "2024年03月05日(火),支出,食費,ランチ,1200,1200,0,楽天カード,,,-",
            "2024年03月06日(水),支出,食費,ランチ,900,900,0,楽天カード,,,",
        )
        included, blank = parse_combined_ledger(text, min_year=2019)
        assert included.exclude_from_pl is False
        assert blank.exclude_from_pl is True

    def test_income_with_grouped_amount(self):
        """Test quoted comma-grouped amounts."""
        text = combined('2024年03月25日(月),収入,給与,,"250,000",0,"250,000",三菱UFJ銀行,,,-')
        [tx] = parse_combined_ledger(text, min_year=2019)
        assert tx.kind == TransactionKind.INCOME
        assert tx.income_amount == 250000
        assert tx.amount == 250000

    def test_skips_rows_before_min_year(self):
        """Test the year cutoff."""
        text = combined(
            "2018年12月31日(月),支出,食費,,500,500,0,お財布,,,-",
            "2019年01月01日(火),支出,食費,,500,500,0,お財布,,,-",
        )
        txs = parse_combined_ledger(text, min_year=2019)
        assert [tx.transaction_date for tx in txs] == [date(2019, 1, 1)]

    def test_skips_malformed_rows(self):
        """Test impossible dates, short rows and invalid amounts are dropped."""
        text = combined(
            "2024年02月30日(金),支出,食費,,500,500,0,お財布,,,-",
            "2024年03月01日(金),支出,食費",
            "2024年03月02日(土),支出,食費,,500,500,500,お財布,,,-",
            "2024年03月03日(日),支出,食費,,500,500,0,お財布,,,-",
        )
        txs = parse_combined_ledger(text, min_year=2019)
        assert [tx.transaction_date for tx in txs] == [date(2024, 3, 3)]

    def test_header_only_gives_nothing(self):
        """Test an export with no data rows."""
        assert parse_combined_ledger(COMBINED_HEADER, min_year=2019) == []
        assert parse_combined_ledger("", min_year=2019) == []

    def test_bom_and_crlf(self):
        """Test a Windows-style export."""
        text = "\ufeff" + COMBINED_HEADER + "\r\n" + "2024年03月05日(火),支出,食費,,1200,1200,0,お財布,,,-\r\n"
        assert len(parse_combined_ledger(text, min_year=2019)) == 1

    def test_parsing_is_repeatable(self):
        """Test the same text always parses to equal records."""
        text = combined(
            "2024年03月05日(火),支出,食費,ランチ,1200,1200,0,楽天カード,外食,メモ,-",
            "2024年03月25日(月),振替,振替,,30000,0,30000,iDeCo,,,除外",
        )
        assert parse_combined_ledger(text, min_year=2019) == parse_combined_ledger(text, min_year=2019)


    def test_long_item_name_is_kept(self):
        """Test a long free-text item name does not drop the row."""
        item = "メモ" * 100 + "x"
        text = combined(f"2024年03月05日(火),支出,食費,{item},1200,1200,0,楽天カード,,,-")
        [tx] = parse_combined_ledger(text, min_year=2019)
        assert tx.item_name == item


class TestAssetLedgerParser:
    """Tests for the multi-account asset-ledger parser."""

    def test_account_blocks(self):
        """Test the account cursor and initial-balance markers."""
        entries = parse_asset_ledger(ASSET_CSV, min_year=2019)

        assert [(e.account_name, e.is_initial, e.balance) for e in entries] == [
            ("三菱UFJ銀行", True, 500000),
            ("三菱UFJ銀行", False, 498800),
            ("三菱UFJ銀行", False, 480000),
            ("楽天カード", True, 0),
            ("楽天カード", False, -3000),
            ("楽天カード", False, 15800),
        ]

    def test_initial_marker_has_no_date(self):
        """Test the initial-balance row shape."""
        initial = parse_asset_ledger(ASSET_CSV, min_year=2019)[0]
        assert initial.entry_date is None
        assert initial.item_name == "初期残高"

    def test_transaction_row_fields(self):
        """Test column mapping of a data row."""
        entry = parse_asset_ledger(ASSET_CSV, min_year=2019)[1]
        assert entry.entry_date == date(2024, 3, 5)
        assert entry.kind == "支出"
        assert entry.category == "食費"
        assert entry.item_name == "ランチ"
        assert entry.amount == -1200

    def test_account_row_without_initial_balance(self):
        """Test an account row that only names the account."""
        text = "\n".join([
            "PayPay,,,,,,",
            ",2024年03月05日(火),支出,食費,,-500,1500",
        ])
        [entry] = parse_asset_ledger(text, min_year=2019)
        assert entry.account_name == "PayPay"
        assert entry.balance == 1500

    def test_rows_before_any_account_are_ignored(self):
        """Test data rows with no account cursor."""
        text = "\n".join([
            ",2024年03月05日(火),支出,食費,,-500,1500",
            "お財布,-,-,-,-,-,1000",
        ])
        entries = parse_asset_ledger(text, min_year=2019)
        assert [e.is_initial for e in entries] == [True]

    def test_skips_rows_before_min_year(self):
        """Test the year cutoff keeps the initial marker."""
        text = "\n".join([
            "お財布,-,-,-,-,-,1000",
            ",2018年12月31日(月),支出,食費,,-500,500",
            ",2024年01月02日(火),支出,食費,,-100,400",
        ])
        entries = parse_asset_ledger(text, min_year=2019)
        assert [e.balance for e in entries] == [1000, 400]

    def test_file_order_is_preserved(self):
        """Test rows are returned in file order, not date order."""
        text = "\n".join([
            "お財布,-,-,-,-,-,1000",
            ",2024年03月20日(水),支出,食費,,-100,900",
            ",2024年03月02日(土),支出,食費,,-100,800",
        ])
        entries = parse_asset_ledger(text, min_year=2019)
        assert [e.balance for e in entries] == [1000, 900, 800]


class TestInvestmentTransferExtractor:
    """Tests for synthetic investment transfers."""

    def test_only_investment_account_transfers(self):
        """Test filtering by kind and account."""
        transfers = extract_investment_transfers(INVESTMENT_CSV, INVESTMENT_ACCOUNTS, min_year=2019)

        assert [(t.account_name, t.transaction_date) for t in transfers] == [
            ("iDeCo", date(2024, 3, 27)),
            ("iDeCo", date(2024, 4, 27)),
            ("投資信託/SBI", date(2024, 5, 1)),
        ]

    def test_synthetic_transfer_shape(self):
        """Test the sentinel memo and transfer fields."""
        first = extract_investment_transfers(INVESTMENT_CSV, INVESTMENT_ACCOUNTS, min_year=2019)[0]

        assert first.kind == TransactionKind.TRANSFER
        assert first.category == "振替"
        assert first.item_name == "積立"
        assert first.income_amount == 23000
        assert first.expense_amount == 0
        assert first.memo == SYNTHETIC_TRANSFER_MEMO
        assert first.is_synthetic_transfer is True
        assert first.exclude_from_pl is True

    def test_outflow_is_expense_side(self):
        """Test money leaving the investment account."""
        sale = extract_investment_transfers(INVESTMENT_CSV, INVESTMENT_ACCOUNTS, min_year=2019)[-1]
        assert sale.expense_amount == 10000
        assert sale.income_amount == 0

    def test_no_investment_accounts(self):
        """Test an empty mapping yields nothing."""
        assert extract_investment_transfers(INVESTMENT_CSV, {}, min_year=2019) == []
