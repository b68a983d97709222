"""
Audit Logger

DESIGN DECISION: Every import leaves an audit trail. This provides:
1. Complete traceability of what replaced which months
2. Debugging capability when an import fails
3. The household can see when the ledger was last refreshed

The audit logger:
- Is async to match the storage layer
- Gracefully handles failures (doesn't break an import if logging fails)
- Supports correlation IDs to trace the events of one import
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from kakeibo.models.audit import AuditEvent, AuditEventBuilder
from kakeibo.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(ensure_ascii=False)
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_import_started(
        self,
        import_id: UUID,
        files: dict[str, int],
        correlation_id: UUID,
    ) -> None:
        """Log the start of an import."""
        await self.log(AuditEventBuilder.import_started(
            import_id=import_id,
            files=files,
            correlation_id=correlation_id,
        ))

    async def log_import_rejected(
        self,
        import_id: UUID,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        """Log a validation rejection."""
        await self.log(AuditEventBuilder.import_rejected(
            import_id=import_id,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_combined_ledger_parsed(
        self,
        import_id: UUID,
        transaction_count: int,
        periods: list[str],
        correlation_id: UUID,
    ) -> None:
        """Log the outcome of parsing the combined ledger."""
        await self.log(AuditEventBuilder.combined_ledger_parsed(
            import_id=import_id,
            transaction_count=transaction_count,
            periods=periods,
            correlation_id=correlation_id,
        ))

    async def log_period_replaced(
        self,
        import_id: UUID,
        year: int,
        month: int,
        deleted: int,
        inserted: int,
        correlation_id: UUID,
    ) -> None:
        """Log one month's delete-then-insert."""
        await self.log(AuditEventBuilder.period_replaced(
            import_id=import_id,
            year=year,
            month=month,
            deleted=deleted,
            inserted=inserted,
            correlation_id=correlation_id,
        ))

    async def log_snapshots_upserted(
        self,
        import_id: UUID,
        snapshot_count: int,
        account_count: int,
        correlation_id: UUID,
    ) -> None:
        """Log snapshot upsert."""
        await self.log(AuditEventBuilder.snapshots_upserted(
            import_id=import_id,
            snapshot_count=snapshot_count,
            account_count=account_count,
            correlation_id=correlation_id,
        ))

    async def log_transfers_backfilled(
        self,
        import_id: UUID,
        inserted: int,
        skipped: int,
        correlation_id: UUID,
    ) -> None:
        """Log investment transfer backfill."""
        await self.log(AuditEventBuilder.transfers_backfilled(
            import_id=import_id,
            inserted=inserted,
            skipped=skipped,
            correlation_id=correlation_id,
        ))

    async def log_asset_type_updated(
        self,
        account_name: str,
        asset_type: str,
        snapshot_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a manual asset type correction."""
        await self.log(AuditEventBuilder.asset_type_updated(
            account_name=account_name,
            asset_type=asset_type,
            snapshot_count=snapshot_count,
            correlation_id=correlation_id,
        ))

    async def log_import_completed(
        self,
        import_id: UUID,
        response: dict,
        correlation_id: UUID,
    ) -> None:
        """Log a successful import."""
        await self.log(AuditEventBuilder.import_completed(
            import_id=import_id,
            response=response,
            correlation_id=correlation_id,
        ))

    async def log_import_failed(
        self,
        import_id: UUID,
        error_type: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log an aborted import."""
        await self.log(AuditEventBuilder.import_failed(
            import_id=import_id,
            error_type=error_type,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_storage_error(
        self,
        backend: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a storage backend failure."""
        await self.log(AuditEventBuilder.storage_error(
            backend=backend,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., one upload).
    Pass it through all subsequent operations.
    """
    return uuid4()
