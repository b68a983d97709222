"""
Tests for the Google Sheets storage backend.

A fake worksheet stands in for gspread so no API calls are made; it
implements only the worksheet methods the backend uses.
"""

import gspread
import pytest
from datetime import date
from uuid import uuid4

from gspread.utils import a1_to_rowcol

from kakeibo.audit import AuditLogger
from kakeibo.config import AppSettings, LedgerSettings
from kakeibo.models.audit import AuditEventBuilder
from kakeibo.models.ledger import (
    SYNTHETIC_TRANSFER_MEMO,
    AssetType,
    MonthlyAssetSnapshot,
    Transaction,
    TransactionKind,
    TransferMatchKey,
)
from kakeibo.orchestrator import LedgerImportFlow
from kakeibo.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    GoogleSheetsSnapshotStorage,
    NotFoundError,
    StorageError,
)
from kakeibo.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    SNAPSHOT_COLUMNS,
    TRANSACTION_COLUMNS,
    _contiguous_runs,
)


class FakeWorksheet:
    """In-memory stand-in for gspread.Worksheet."""

    def __init__(self, header: list[str]):
        self.rows = [list(header)]
        self.fail = False
        self.reads = 0

    def _check(self):
        if self.fail:
            raise RuntimeError("API error")

    def get_all_values(self):
        self._check()
        self.reads += 1
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self._check()
        self.rows.append([str(v) for v in values])

    def append_rows(self, values, value_input_option=None):
        self._check()
        for row in values:
            self.append_row(row)

    def delete_rows(self, start_index, end_index=None):
        self._check()
        del self.rows[start_index - 1:(end_index or start_index)]

    def batch_update(self, data, value_input_option=None):
        self._check()
        for item in data:
            row_number, col_number = a1_to_rowcol(item["range"].split(":")[0])
            row = self.rows[row_number - 1]
            for offset, value in enumerate(item["values"][0]):
                index = col_number - 1 + offset
                row.extend([""] * (index + 1 - len(row)))
                row[index] = value


class FakeSheetsClient:
    """Stand-in for GoogleSheetsClient with pre-created worksheets."""

    def __init__(self):
        self.transactions = FakeWorksheet(TRANSACTION_COLUMNS)
        self.snapshots = FakeWorksheet(SNAPSHOT_COLUMNS)
        self.audit = FakeWorksheet(AUDIT_COLUMNS)

    def get_transactions_sheet(self):
        return self.transactions

    def get_snapshots_sheet(self):
        return self.snapshots

    def get_audit_sheet(self):
        return self.audit


class FakeSpreadsheet:
    """Stand-in for gspread.Spreadsheet that counts worksheet lookups."""

    def __init__(self):
        self.sheets = {}
        self.lookups = 0

    def worksheet(self, title):
        self.lookups += 1
        if title not in self.sheets:
            raise gspread.WorksheetNotFound(title)
        return self.sheets[title]

    def add_worksheet(self, title, rows, cols):
        sheet = FakeWorksheet([])
        sheet.rows = []
        self.sheets[title] = sheet
        return sheet


def expense(day: date, amount: int = 100, account: str = "お財布") -> Transaction:
    return Transaction(
        transaction_date=day,
        kind=TransactionKind.EXPENSE,
        category="食費",
        expense_amount=amount,
        account_name=account,
    )


def transfer(day: date, amount: int, memo=None) -> Transaction:
    return Transaction(
        transaction_date=day,
        kind=TransactionKind.TRANSFER,
        category="振替",
        income_amount=amount,
        account_name="iDeCo",
        memo=memo,
        exclude_from_pl=True,
    )


@pytest.fixture
def client():
    return FakeSheetsClient()


@pytest.fixture
def ledger(client):
    return GoogleSheetsLedgerStorage(client)


@pytest.fixture
def snapshots(client):
    return GoogleSheetsSnapshotStorage(client)


class TestRowHelpers:
    """Tests for row-number grouping."""

    def test_contiguous_runs(self):
        """Test ascending numbers are grouped into runs."""
        assert _contiguous_runs([2, 3, 4, 7, 9, 10]) == [(2, 4), (7, 7), (9, 10)]
        assert _contiguous_runs([]) == []


class TestGoogleSheetsLedgerStorage:
    """Tests for the Transactions sheet."""

    @pytest.mark.asyncio
    async def test_insert_and_list(self, ledger, client):
        """Test rows are written as text and read back."""
        tx = Transaction(
            transaction_date=date(2024, 3, 5),
            kind=TransactionKind.EXPENSE,
            category="食費",
            item_name="ランチ, 夜",
            expense_amount=1200,
            account_name="楽天カード",
            tag="外食",
        )
        assert await ledger.insert_transactions([tx]) == 1

        row = client.transactions.rows[1]
        assert row[:4] == ["2024-03-05", "2024", "3", "支出"]
        assert row[12] == "False"
        assert await ledger.list_transactions() == [tx]

    @pytest.mark.asyncio
    async def test_delete_period_keeps_other_months(self, ledger, client):
        """Test non-contiguous rows of one month are removed."""
        await ledger.insert_transactions([
            expense(date(2024, 3, 1)),
            expense(date(2024, 4, 1)),
            expense(date(2024, 3, 2)),
            expense(date(2024, 3, 3)),
            expense(date(2024, 2, 28)),
        ])

        assert await ledger.delete_transactions_for_period(2024, 3) == 3
        remaining = await ledger.list_transactions()
        assert [tx.transaction_date for tx in remaining] == [date(2024, 2, 28), date(2024, 4, 1)]
        assert client.transactions.rows[0] == TRANSACTION_COLUMNS

    @pytest.mark.asyncio
    async def test_delete_synthetic_transfers_only(self, ledger):
        """Test real transfers and other months survive."""
        await ledger.insert_transactions([
            transfer(date(2024, 3, 27), 23000, memo=SYNTHETIC_TRANSFER_MEMO),
            transfer(date(2024, 3, 28), 5000),
            transfer(date(2024, 4, 26), 23000, memo=SYNTHETIC_TRANSFER_MEMO),
        ])

        assert await ledger.delete_synthetic_transfers(2024, 3) == 1
        remaining = await ledger.list_transactions(kind=TransactionKind.TRANSFER)
        assert [tx.transaction_date for tx in remaining] == [date(2024, 3, 28), date(2024, 4, 26)]

    @pytest.mark.asyncio
    async def test_find_real_transfer(self, ledger):
        """Test synthetic rows never count as the real transfer."""
        await ledger.insert_transactions([
            transfer(date(2024, 3, 27), 23000),
            transfer(date(2024, 4, 26), 23000, memo=SYNTHETIC_TRANSFER_MEMO),
        ])

        assert await ledger.find_real_transfer(TransferMatchKey(date(2024, 3, 27), "iDeCo", 0, 23000)) is True
        assert await ledger.find_real_transfer(TransferMatchKey(date(2024, 3, 27), "iDeCo", 0, 23001)) is False
        assert await ledger.find_real_transfer(TransferMatchKey(date(2024, 3, 27), "iDeCo", 23000, 0)) is False
        assert await ledger.find_real_transfer(TransferMatchKey(date(2024, 4, 26), "iDeCo", 0, 23000)) is False

    @pytest.mark.asyncio
    async def test_find_real_transfers_reads_sheet_once(self, ledger, client):
        """Test many keys are resolved with a single sheet read."""
        await ledger.insert_transactions([
            transfer(date(2024, 3, 27), 23000),
            transfer(date(2024, 4, 26), 23000),
        ])
        keys = [
            TransferMatchKey(date(2024, 3, 27), "iDeCo", 0, 23000),
            TransferMatchKey(date(2024, 4, 26), "iDeCo", 0, 23000),
            TransferMatchKey(date(2024, 5, 27), "iDeCo", 0, 23000),
        ]
        client.transactions.reads = 0

        found = await ledger.find_real_transfers(keys)

        assert found == set(keys[:2])
        assert client.transactions.reads == 1

    @pytest.mark.asyncio
    async def test_api_failure_is_storage_error(self, ledger, client):
        """Test gspread errors are wrapped."""
        client.transactions.fail = True
        with pytest.raises(StorageError):
            await ledger.insert_transactions([expense(date(2024, 3, 1))])


class TestGoogleSheetsClient:
    """Tests for worksheet handle reuse."""

    def test_worksheet_handles_are_cached(self, monkeypatch):
        """Test each worksheet is looked up once per client."""
        monkeypatch.setenv("GOOGLE_SHEETS_CREDENTIALS_PATH", "credentials.json")
        monkeypatch.setenv("GOOGLE_SHEETS_SPREADSHEET_ID", "sheet-id")
        spreadsheet = FakeSpreadsheet()
        sheets_client = GoogleSheetsClient()
        sheets_client._spreadsheet = spreadsheet

        first = sheets_client.get_transactions_sheet()
        second = sheets_client.get_transactions_sheet()
        sheets_client.get_snapshots_sheet()

        assert first is second
        assert first.rows == [TRANSACTION_COLUMNS]
        assert spreadsheet.lookups == 2


class TestGoogleSheetsSnapshotStorage:
    """Tests for the AssetSnapshots sheet."""

    @pytest.mark.asyncio
    async def test_upsert_overwrites_in_place(self, snapshots, client):
        """Test the same (account, year, month) keeps one row."""
        march = MonthlyAssetSnapshot(
            account_name="お財布", year=2024, month=3,
            opening_balance=1000, closing_balance=800, asset_type=AssetType.CASH,
        )
        await snapshots.upsert_snapshots([march])
        await snapshots.upsert_snapshots([
            march.model_copy(update={"closing_balance": 700}),
            march.model_copy(update={"month": 4, "opening_balance": 700, "closing_balance": 600}),
        ])

        assert len(client.snapshots.rows) == 3
        stored = await snapshots.list_snapshots(account_name="お財布")
        assert [(s.month, s.closing_balance) for s in stored] == [(3, 700), (4, 600)]

    @pytest.mark.asyncio
    async def test_recorded_types_and_update(self, snapshots):
        """Test manual correction rewrites every row of the account."""
        await snapshots.upsert_snapshots([
            MonthlyAssetSnapshot(account_name="iDeCo", year=2024, month=m,
                                 opening_balance=0, closing_balance=0)
            for m in (3, 4)
        ])
        assert await snapshots.get_recorded_asset_types() == {"iDeCo": AssetType.OTHER}

        assert await snapshots.update_asset_type("iDeCo", AssetType.INVESTMENT) == 2
        assert await snapshots.get_recorded_asset_types() == {"iDeCo": AssetType.INVESTMENT}

    @pytest.mark.asyncio
    async def test_update_unknown_account(self, snapshots):
        """Test NotFoundError is not wrapped."""
        with pytest.raises(NotFoundError):
            await snapshots.update_asset_type("PASMO", AssetType.IC_CARD)


class TestGoogleSheetsAuditStorage:
    """Tests for the AuditLog sheet."""

    @pytest.mark.asyncio
    async def test_append_and_read(self, client):
        """Test events survive a round trip through the sheet."""
        storage = GoogleSheetsAuditStorage(client)
        correlation_id = uuid4()
        event = AuditEventBuilder.period_replaced(uuid4(), 2024, 3, 1, 2, correlation_id)

        assert await storage.append_event(event) is True
        [stored] = await storage.get_events_by_correlation_id(correlation_id)
        assert stored.event_type == event.event_type
        assert stored.details == {"year": 2024, "month": 3, "deleted": 1, "inserted": 2}

    @pytest.mark.asyncio
    async def test_append_failure_does_not_raise(self, client):
        """Test a failed audit write is reported, not raised."""
        client.audit.fail = True
        storage = GoogleSheetsAuditStorage(client)
        event = AuditEventBuilder.storage_error("sheets", "quota exceeded")
        assert await storage.append_event(event) is False


class TestImportAgainstSheets:
    """End-to-end import through the Sheets backend."""

    @pytest.mark.asyncio
    async def test_reimport_is_idempotent(self, client, ledger, snapshots):
        """Test the sheet rows are the same after a second import."""
        flow = LedgerImportFlow(
            ledger_storage=ledger,
            snapshot_storage=snapshots,
            audit_logger=AuditLogger(GoogleSheetsAuditStorage(client)),
            ledger_settings=LedgerSettings(min_year=2019),
            app_settings=AppSettings(),
        )
        combined = "\n".join([
            "日付,種別,カテゴリ,項目名,金額,支出,収入,資産,タグ,メモ,収支の計算から除外",
            "2024年03月05日(火),支出,食費,ランチ,1200,1200,0,楽天カード,,,-",
            "2024年04月01日(月),支出,食費,,800,800,0,お財布,,,-",
        ]).encode("utf-8")
        asset = "\n".join([
            "iDeCo,-,-,-,-,-,0",
            ",2024年03月27日(水),振替,,積立,23000,23000",
        ]).encode("utf-8")

        await flow.import_files(combined=combined, asset=asset)
        first = [row[:-1] for row in client.transactions.rows]

        await flow.import_files(combined=combined, asset=asset)
        assert [row[:-1] for row in client.transactions.rows] == first
        assert len(client.snapshots.rows) == 2
