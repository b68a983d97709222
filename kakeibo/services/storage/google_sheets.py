"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the storage backend because:
1. The household can open the ledger and balances directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (a household ledger is small)
- No transactions: period replacement relies on the orchestrator running
  delete-then-insert back to back for each month
- Limited query capabilities (we filter in Python)

Every cell is written as text (value_input_option="RAW") and parsed back
on read, so Sheets never reformats dates or amounts.
"""

import json
from datetime import date, datetime, timezone
from typing import Callable, Iterable, Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from gspread.utils import rowcol_to_a1
from tenacity import retry, stop_after_attempt, wait_exponential

from kakeibo.config import get_settings
from kakeibo.models.ledger import (
    SYNTHETIC_TRANSFER_MEMO,
    AssetType,
    MonthlyAssetSnapshot,
    Transaction,
    TransactionKind,
    TransferMatchKey,
)
from kakeibo.models.audit import AuditEvent, AuditEventType, AuditSeverity
from kakeibo.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    LedgerStorageInterface,
    NotFoundError,
    SnapshotStorageInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)


# Column mappings for Transactions sheet
TRANSACTION_COLUMNS = [
    "date",
    "year",
    "month",
    "kind",
    "category",
    "item_name",
    "amount",
    "expense_amount",
    "income_amount",
    "account_name",
    "tag",
    "memo",
    "exclude_from_pl",
    "imported_at",
]

# Column mappings for AssetSnapshots sheet
SNAPSHOT_COLUMNS = [
    "account_name",
    "year",
    "month",
    "opening_balance",
    "closing_balance",
    "asset_type",
    "updated_at",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _safe_getter(row: list) -> Callable[[int], str]:
    """Index into a sheet row, treating missing trailing cells as blank."""
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default
    return safe_get


def _matching_row_numbers(rows: list[list], predicate) -> list[int]:
    """1-based sheet row numbers of data rows matching predicate (row 1 is the header)."""
    return [
        number for number, row in enumerate(rows[1:], start=2)
        if row and row[0] and predicate(row)
    ]


def _contiguous_runs(numbers: list[int]) -> list[tuple[int, int]]:
    """Group ascending row numbers into (start, end) runs."""
    runs: list[tuple[int, int]] = []
    for number in numbers:
        if runs and runs[-1][1] == number - 1:
            runs[-1] = (runs[-1][0], number)
        else:
            runs.append((number, number))
    return runs


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and worksheet creation. Only the connection
    handshake is retried; ledger writes are not.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._sheets: dict[str, gspread.Worksheet] = {}
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        # Handles are cached; each worksheet() lookup costs a read request
        if title in self._sheets:
            return self._sheets[title]
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        self._sheets[title] = sheet
        return sheet

    def get_transactions_sheet(self) -> gspread.Worksheet:
        """Get or create the Transactions worksheet."""
        return self._get_or_create_sheet(
            self._settings.transactions_sheet_name, TRANSACTION_COLUMNS, rows=5000
        )

    def get_snapshots_sheet(self) -> gspread.Worksheet:
        """Get or create the AssetSnapshots worksheet."""
        return self._get_or_create_sheet(
            self._settings.snapshots_sheet_name, SNAPSHOT_COLUMNS, rows=1000
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of the transaction ledger.

    One transaction per row. year/month are written alongside the date so
    the sheet can be filtered by hand.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _transaction_to_row(self, tx: Transaction, imported_at: str) -> list:
        """Convert a Transaction to a spreadsheet row."""
        return [
            tx.transaction_date.isoformat(),
            str(tx.year),
            str(tx.month),
            tx.kind.value,
            tx.category,
            tx.item_name or "",
            str(tx.amount),
            str(tx.expense_amount),
            str(tx.income_amount),
            tx.account_name or "",
            tx.tag or "",
            tx.memo or "",
            str(tx.exclude_from_pl),
            imported_at,
        ]

    def _row_to_transaction(self, row: list) -> Transaction:
        """Convert a spreadsheet row to a Transaction."""
        safe_get = _safe_getter(row)
        return Transaction(
            transaction_date=date.fromisoformat(safe_get(0)),
            kind=TransactionKind(safe_get(3)),
            category=safe_get(4),
            item_name=safe_get(5) or None,
            expense_amount=int(safe_get(7, "0")),
            income_amount=int(safe_get(8, "0")),
            account_name=safe_get(9) or None,
            tag=safe_get(10) or None,
            memo=safe_get(11) or None,
            exclude_from_pl=safe_get(12).lower() == "true",
        )

    def _delete_rows(self, sheet: gspread.Worksheet, numbers: list[int]) -> int:
        # Bottom-up so earlier row numbers stay valid
        for start, end in reversed(_contiguous_runs(numbers)):
            sheet.delete_rows(start, end)
        return len(numbers)

    async def delete_transactions_for_period(self, year: int, month: int) -> int:
        """Delete every row of one month."""
        try:
            sheet = self._client.get_transactions_sheet()
            numbers = _matching_row_numbers(
                sheet.get_all_values(),
                lambda row: row[1:3] == [str(year), str(month)],
            )
            return self._delete_rows(sheet, numbers)
        except Exception as e:
            raise StorageError(f"Failed to delete transactions for {year}-{month:02d}: {e}")

    async def insert_transactions(self, transactions: list[Transaction]) -> int:
        """Append transactions in one API call."""
        if not transactions:
            return 0
        try:
            sheet = self._client.get_transactions_sheet()
            imported_at = datetime.now(timezone.utc).isoformat()
            rows = [self._transaction_to_row(tx, imported_at) for tx in transactions]
            sheet.append_rows(rows, value_input_option="RAW")
            return len(rows)
        except Exception as e:
            raise StorageError(f"Failed to insert transactions: {e}")

    async def list_transactions(
        self,
        year: Optional[int] = None,
        month: Optional[int] = None,
        kind: Optional[TransactionKind] = None,
        account_name: Optional[str] = None,
    ) -> list[Transaction]:
        """List transactions with optional filters."""
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header

            transactions = []
            for row in all_rows:
                if not row or not row[0]:  # Skip empty rows
                    continue

                try:
                    tx = self._row_to_transaction(row)
                except Exception:
                    continue  # Skip rows edited into an invalid state by hand

                if year is not None and tx.year != year:
                    continue
                if month is not None and tx.month != month:
                    continue
                if kind is not None and tx.kind != kind:
                    continue
                if account_name is not None and tx.account_name != account_name:
                    continue

                transactions.append(tx)

            transactions.sort(key=lambda tx: tx.transaction_date)
            return transactions
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")

    async def delete_synthetic_transfers(self, year: int, month: int) -> int:
        """Delete backfilled transfer rows for one month."""
        try:
            sheet = self._client.get_transactions_sheet()
            numbers = _matching_row_numbers(
                sheet.get_all_values(),
                lambda row: (
                    row[1:4] == [str(year), str(month), TransactionKind.TRANSFER.value]
                    and _safe_getter(row)(11) == SYNTHETIC_TRANSFER_MEMO
                ),
            )
            return self._delete_rows(sheet, numbers)
        except Exception as e:
            raise StorageError(f"Failed to delete synthetic transfers for {year}-{month:02d}: {e}")

    async def find_real_transfers(
        self,
        keys: Iterable[TransferMatchKey],
    ) -> set[TransferMatchKey]:
        """Look up user-entered transfers for many keys with one sheet read."""
        keys = set(keys)
        if not keys:
            return set()
        existing = {
            TransferMatchKey.for_transaction(tx)
            for tx in await self.list_transactions(kind=TransactionKind.TRANSFER)
            if not tx.is_synthetic_transfer
        }
        return existing & keys


class GoogleSheetsSnapshotStorage(SnapshotStorageInterface):
    """
    Google Sheets implementation of monthly asset snapshots.

    Upserts rewrite matching rows in place and append the rest.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _snapshot_to_row(self, snapshot: MonthlyAssetSnapshot, updated_at: str) -> list:
        """Convert a MonthlyAssetSnapshot to a spreadsheet row."""
        return [
            snapshot.account_name,
            str(snapshot.year),
            str(snapshot.month),
            str(snapshot.opening_balance),
            str(snapshot.closing_balance),
            snapshot.asset_type.value,
            updated_at,
        ]

    def _row_to_snapshot(self, row: list) -> MonthlyAssetSnapshot:
        """Convert a spreadsheet row to a MonthlyAssetSnapshot."""
        safe_get = _safe_getter(row)
        return MonthlyAssetSnapshot(
            account_name=safe_get(0),
            year=int(safe_get(1)),
            month=int(safe_get(2)),
            opening_balance=int(safe_get(3, "0")),
            closing_balance=int(safe_get(4, "0")),
            asset_type=AssetType(safe_get(5, AssetType.OTHER.value)),
        )

    @staticmethod
    def _row_range(number: int) -> str:
        return f"{rowcol_to_a1(number, 1)}:{rowcol_to_a1(number, len(SNAPSHOT_COLUMNS))}"

    async def upsert_snapshots(self, snapshots: list[MonthlyAssetSnapshot]) -> int:
        """Insert or overwrite snapshots keyed by (account, year, month)."""
        if not snapshots:
            return 0
        try:
            sheet = self._client.get_snapshots_sheet()
            existing = {
                tuple(row[0:3]): number
                for number, row in enumerate(sheet.get_all_values()[1:], start=2)
                if row and row[0]
            }
            updated_at = datetime.now(timezone.utc).isoformat()

            updates = []
            appends = []
            for snapshot in snapshots:
                row = self._snapshot_to_row(snapshot, updated_at)
                number = existing.get((snapshot.account_name, str(snapshot.year), str(snapshot.month)))
                if number is None:
                    appends.append(row)
                else:
                    updates.append({"range": self._row_range(number), "values": [row]})

            if updates:
                sheet.batch_update(updates, value_input_option="RAW")
            if appends:
                sheet.append_rows(appends, value_input_option="RAW")
            return len(snapshots)
        except Exception as e:
            raise StorageError(f"Failed to upsert snapshots: {e}")

    async def list_snapshots(
        self,
        account_name: Optional[str] = None,
    ) -> list[MonthlyAssetSnapshot]:
        """List snapshots, ordered by account then period."""
        try:
            sheet = self._client.get_snapshots_sheet()
            snapshots = []
            for row in sheet.get_all_values()[1:]:
                if not row or not row[0]:
                    continue
                if account_name is not None and row[0] != account_name:
                    continue
                try:
                    snapshots.append(self._row_to_snapshot(row))
                except Exception:
                    continue
            snapshots.sort(key=lambda s: (s.account_name, s.period_key))
            return snapshots
        except Exception as e:
            raise StorageError(f"Failed to list snapshots: {e}")

    async def get_recorded_asset_types(self) -> dict[str, AssetType]:
        """Latest recorded asset type per account."""
        types = {}
        for snapshot in await self.list_snapshots():
            types[snapshot.account_name] = snapshot.asset_type
        return types

    async def update_asset_type(self, account_name: str, asset_type: AssetType) -> int:
        """Rewrite the asset_type cell on every snapshot row of an account."""
        try:
            sheet = self._client.get_snapshots_sheet()
            numbers = _matching_row_numbers(
                sheet.get_all_values(),
                lambda row: row[0] == account_name,
            )
            if not numbers:
                raise NotFoundError(f"No snapshots for account: {account_name}")

            type_col = SNAPSHOT_COLUMNS.index("asset_type") + 1
            updated_at = datetime.now(timezone.utc).isoformat()
            sheet.batch_update(
                [
                    {
                        "range": f"{rowcol_to_a1(n, type_col)}:{rowcol_to_a1(n, type_col + 1)}",
                        "values": [[asset_type.value, updated_at]],
                    }
                    for n in numbers
                ],
                value_input_option="RAW",
            )
            return len(numbers)
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update asset type: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        safe_get = _safe_getter(row)
        timestamp = datetime.fromisoformat(safe_get(1))
        if timestamp.tzinfo is None:
            # Rows written before timestamps carried an offset are UTC
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=timestamp,
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=UUID(safe_get(5)) if safe_get(5) else None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    def _read_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except Exception:
                    continue
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Don't raise - audit logging should not break the import
            logger.warning("audit_sheet_write_failed", error=str(e), event_id=str(event.event_id))
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            events = [e for e in self._read_events() if e.correlation_id == correlation_id]
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            events = self._read_events()
            # Sort newest first
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
