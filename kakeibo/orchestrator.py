"""
Main Orchestrator for Kakeibo

This module ties together the parsers, the snapshot aggregator and the
storage backends, and defines the end-to-end import flow:

    upload → validate → parse (both files concurrently)
           → replace combined-ledger months
           → upsert asset snapshots
           → backfill investment transfers (deduplicated)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is written until every supplied file has been validated
- Each month is deleted and re-inserted back to back, never all deletes first
- Re-importing the same file replaces months instead of duplicating rows
- Every step is audited

Concurrent imports touching the same months are not locked against each
other; this is a single-household tool.
"""

import asyncio
from typing import Iterable, Optional
from uuid import UUID

import structlog

from kakeibo.audit import AuditLogger, create_correlation_id
from kakeibo.config import AppSettings, LedgerSettings, get_settings
from kakeibo.models.ledger import (
    AssetLedgerEntry,
    AssetType,
    ImportResult,
    Transaction,
    TransferMatchKey,
)
from kakeibo.parsing import (
    extract_investment_transfers,
    parse_asset_ledger,
    parse_combined_ledger,
)
from kakeibo.queries import LedgerQueries
from kakeibo.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    GoogleSheetsSnapshotStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    InMemorySnapshotStorage,
    LedgerStorageInterface,
    SnapshotStorageInterface,
    StorageError,
)
from kakeibo.snapshots import aggregate_snapshots


logger = structlog.get_logger(__name__)

GENERIC_FAILURE_MESSAGE = "Import failed while writing to storage. Please upload the files again."


class LedgerImportError(Exception):
    """Base exception for import failures."""
    pass


class ImportValidationError(LedgerImportError):
    """The upload was rejected before anything was written."""
    pass


class IngestionError(LedgerImportError):
    """The import aborted part-way; the underlying error is logged, not shown."""
    pass


def _group_by_period(transactions: Iterable[Transaction]) -> dict[tuple[int, int], list[Transaction]]:
    """Group transactions by (year, month), periods in chronological order."""
    groups: dict[tuple[int, int], list[Transaction]] = {}
    for tx in transactions:
        groups.setdefault(tx.period, []).append(tx)
    return dict(sorted(groups.items()))


def _batches(items: list, size: int) -> Iterable[list]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


async def _no_rows() -> list:
    return []


class LedgerImportFlow:
    """
    Orchestrates the ledger import flow.

    Flow:
    1. Validate → at least one file, size limit, UTF-8
    2. Parse → both files concurrently; an empty combined ledger is rejected
    3. Replace → per month: delete existing rows, insert parsed rows
    4. Snapshot → aggregate monthly balances, upsert by (account, year, month)
    5. Backfill → synthetic investment transfers, skipping ones already recorded

    Steps 1-2 never write. Any failure in steps 3-5 aborts the import.
    """

    def __init__(
        self,
        ledger_storage: LedgerStorageInterface,
        snapshot_storage: SnapshotStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        ledger_settings: Optional[LedgerSettings] = None,
        app_settings: Optional[AppSettings] = None,
    ):
        self._ledger = ledger_storage
        self._snapshots = snapshot_storage
        self._audit_logger = audit_logger
        self._ledger_settings = ledger_settings or get_settings().ledger
        self._app_settings = app_settings or get_settings().app

    @property
    def audit_logger(self) -> Optional[AuditLogger]:
        return self._audit_logger

    def _decode(self, field: str, data: bytes) -> str:
        """Check an uploaded file's size and decode it."""
        if len(data) > self._app_settings.max_upload_size_bytes:
            raise ImportValidationError(
                f"The {field} file is larger than {self._app_settings.max_upload_size_mb} MB"
            )
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            raise ImportValidationError(f"The {field} file is not UTF-8 text")

    async def _parse(
        self,
        combined_text: Optional[str],
        asset_text: Optional[str],
    ) -> tuple[list[Transaction], list[AssetLedgerEntry]]:
        """Parse both exports concurrently; they share no state."""
        min_year = self._ledger_settings.min_year
        return await asyncio.gather(
            asyncio.to_thread(parse_combined_ledger, combined_text, min_year)
            if combined_text is not None else _no_rows(),
            asyncio.to_thread(parse_asset_ledger, asset_text, min_year)
            if asset_text is not None else _no_rows(),
        )

    async def _reject(self, result: ImportResult, reason: str, correlation_id: UUID) -> None:
        if self._audit_logger:
            await self._audit_logger.log_import_rejected(
                import_id=result.import_id,
                reason=reason,
                correlation_id=correlation_id,
            )

    async def import_files(
        self,
        combined: Optional[bytes] = None,
        asset: Optional[bytes] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ImportResult:
        """
        Import the combined ledger, the asset ledger, or both.

        Args:
            combined: Raw bytes of the combined-ledger CSV
            asset: Raw bytes of the asset-ledger CSV

        Returns:
            Counts of what was written

        Raises:
            ImportValidationError: Nothing usable was uploaded (nothing written)
            IngestionError: A write failed; months already replaced stay replaced
        """
        correlation_id = correlation_id or create_correlation_id()
        result = ImportResult()

        files = {
            name: len(data)
            for name, data in (("combined", combined), ("asset", asset))
            if data is not None
        }
        if self._audit_logger:
            await self._audit_logger.log_import_started(
                import_id=result.import_id,
                files=files,
                correlation_id=correlation_id,
            )

        # Validation: no writes happen before this block completes
        try:
            if not files:
                raise ImportValidationError("No file supplied: upload the combined ledger, the asset ledger, or both")
            combined_text = self._decode("combined", combined) if combined is not None else None
            asset_text = self._decode("asset", asset) if asset is not None else None

            transactions, entries = await self._parse(combined_text, asset_text)
            if combined_text is not None and not transactions:
                raise ImportValidationError("No transactions were found in the combined ledger file")
        except ImportValidationError as e:
            await self._reject(result, str(e), correlation_id)
            raise

        try:
            if combined_text is not None:
                await self._replace_periods(transactions, result, correlation_id)
            if asset_text is not None:
                await self._import_snapshots(entries, result, correlation_id)
                await self._backfill_transfers(asset_text, result, correlation_id)
        except Exception as e:
            logger.exception(
                "import_failed",
                import_id=str(result.import_id),
                error_type=type(e).__name__,
                error=str(e),
            )
            if self._audit_logger:
                if isinstance(e, StorageError):
                    await self._audit_logger.log_storage_error(
                        backend=type(self._ledger).__name__,
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
                else:
                    await self._audit_logger.log_error(
                        error_type=type(e).__name__,
                        error_message=str(e),
                        details={"import_id": str(result.import_id)},
                        correlation_id=correlation_id,
                    )
                await self._audit_logger.log_import_failed(
                    import_id=result.import_id,
                    error_type=type(e).__name__,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise IngestionError(GENERIC_FAILURE_MESSAGE) from e

        if self._audit_logger:
            await self._audit_logger.log_import_completed(
                import_id=result.import_id,
                response=result.to_response(),
                correlation_id=correlation_id,
            )
        return result

    async def _replace_periods(
        self,
        transactions: list[Transaction],
        result: ImportResult,
        correlation_id: UUID,
    ) -> None:
        """Period replacement: delete each month, then insert it again."""
        groups = _group_by_period(transactions)
        periods = [f"{y}-{m:02d}" for y, m in groups]

        if self._audit_logger:
            await self._audit_logger.log_combined_ledger_parsed(
                import_id=result.import_id,
                transaction_count=len(transactions),
                periods=periods,
                correlation_id=correlation_id,
            )

        batch_size = self._ledger_settings.transaction_batch_size
        for (year, month), period_rows in groups.items():
            deleted = await self._ledger.delete_transactions_for_period(year, month)
            inserted = 0
            for batch in _batches(period_rows, batch_size):
                inserted += await self._ledger.insert_transactions(batch)

            result.transactions_inserted += inserted
            result.periods_replaced.append(f"{year}-{month:02d}")
            if self._audit_logger:
                await self._audit_logger.log_period_replaced(
                    import_id=result.import_id,
                    year=year,
                    month=month,
                    deleted=deleted,
                    inserted=inserted,
                    correlation_id=correlation_id,
                )

    async def _import_snapshots(
        self,
        entries: list[AssetLedgerEntry],
        result: ImportResult,
        correlation_id: UUID,
    ) -> None:
        """Aggregate monthly balances and upsert them."""
        recorded_types = await self._snapshots.get_recorded_asset_types()
        snapshots = aggregate_snapshots(entries, recorded_types)

        for batch in _batches(snapshots, self._ledger_settings.snapshot_batch_size):
            result.snapshots_upserted += await self._snapshots.upsert_snapshots(batch)

        if self._audit_logger:
            await self._audit_logger.log_snapshots_upserted(
                import_id=result.import_id,
                snapshot_count=result.snapshots_upserted,
                account_count=len({s.account_name for s in snapshots}),
                correlation_id=correlation_id,
            )

    async def _backfill_transfers(
        self,
        asset_text: str,
        result: ImportResult,
        correlation_id: UUID,
    ) -> None:
        """
        Recreate synthetic investment transfers month by month.

        A transfer already present as a real (user-entered) row with the same
        natural key is skipped so the movement is not counted twice.
        """
        transfers = await asyncio.to_thread(
            extract_investment_transfers,
            asset_text,
            self._ledger_settings.investment_accounts,
            self._ledger_settings.min_year,
        )

        # Real rows are never touched by the synthetic deletes below
        existing = await self._ledger.find_real_transfers(
            TransferMatchKey.for_transaction(tx) for tx in transfers
        )

        inserted = 0
        skipped = 0
        for (year, month), period_transfers in _group_by_period(transfers).items():
            await self._ledger.delete_synthetic_transfers(year, month)
            to_insert = []
            for tx in period_transfers:
                if TransferMatchKey.for_transaction(tx) in existing:
                    skipped += 1
                else:
                    to_insert.append(tx)
            if to_insert:
                inserted += await self._ledger.insert_transactions(to_insert)

        result.transfers_inserted += inserted
        result.transactions_skipped += skipped
        if self._audit_logger:
            await self._audit_logger.log_transfers_backfilled(
                import_id=result.import_id,
                inserted=inserted,
                skipped=skipped,
                correlation_id=correlation_id,
            )

    async def reclassify_account(
        self,
        account_name: str,
        asset_type: AssetType,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """
        Record a manual asset type for an account.

        Later imports reuse the recorded type instead of inferring one.

        Raises:
            NotFoundError: If the account has no snapshots
        """
        updated = await self._snapshots.update_asset_type(account_name, asset_type)
        if self._audit_logger:
            await self._audit_logger.log_asset_type_updated(
                account_name=account_name,
                asset_type=asset_type.value,
                snapshot_count=updated,
                correlation_id=correlation_id,
            )
        return updated


async def handle_import_request(
    flow: LedgerImportFlow,
    combined: Optional[bytes] = None,
    asset: Optional[bytes] = None,
    correlation_id: Optional[UUID] = None,
) -> tuple[int, dict]:
    """
    Entry point for the upload boundary.

    Maps the two optional upload fields onto an import and returns
    (status_code, payload). Only validation and ingestion failures are non-200.
    """
    try:
        result = await flow.import_files(combined, asset, correlation_id=correlation_id)
    except ImportValidationError as e:
        return 400, ImportResult(success=False, error=str(e)).to_response()
    except IngestionError as e:
        return 500, ImportResult(success=False, error=str(e)).to_response()
    return 200, result.to_response()


def create_app_components(
    use_storage: bool = True,
) -> tuple[LedgerImportFlow, LedgerQueries, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to keep everything in memory.

    Returns:
        (import_flow, queries, sheets_client)
    """
    sheets_client = None

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            ledger_storage = GoogleSheetsLedgerStorage(sheets_client)
            snapshot_storage = GoogleSheetsSnapshotStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            use_storage = False

    if not use_storage:
        ledger_storage = InMemoryLedgerStorage()
        snapshot_storage = InMemorySnapshotStorage()
        audit_logger = AuditLogger(InMemoryAuditStorage())

    import_flow = LedgerImportFlow(
        ledger_storage=ledger_storage,
        snapshot_storage=snapshot_storage,
        audit_logger=audit_logger,
    )
    queries = LedgerQueries(ledger_storage, snapshot_storage)

    return import_flow, queries, sheets_client
