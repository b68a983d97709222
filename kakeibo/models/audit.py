"""
Audit Models for Kakeibo

Every import leaves a trail of events behind it:
1. What was uploaded and whether it was accepted
2. Which periods were replaced and how many rows went in
3. Why an import failed, with the underlying error preserved

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Each stage of the import pipeline has its own event type.
    """
    # Upload
    IMPORT_STARTED = "import_started"
    IMPORT_REJECTED = "import_rejected"

    # Combined ledger
    COMBINED_LEDGER_PARSED = "combined_ledger_parsed"
    PERIOD_REPLACED = "period_replaced"

    # Asset ledger
    SNAPSHOTS_UPSERTED = "snapshots_upserted"
    TRANSFERS_BACKFILLED = "transfers_backfilled"
    ASSET_TYPE_UPDATED = "asset_type_updated"

    # Outcome
    IMPORT_COMPLETED = "import_completed"
    IMPORT_FAILED = "import_failed"

    # System events
    SYSTEM_ERROR = "system_error"
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant step of an import creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'import', 'account')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one import)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, ensure_ascii=False) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.import_started(import_id, files, correlation_id)
        event = AuditEventBuilder.period_replaced(import_id, 2024, 3, 120, correlation_id)
    """

    @staticmethod
    def import_started(
        import_id: UUID,
        files: dict[str, int],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_STARTED,
            entity_type="import",
            entity_id=import_id,
            correlation_id=correlation_id,
            description=f"Import started: {', '.join(sorted(files)) or 'no files'}",
            details={"file_sizes_bytes": files},
            is_user_action=True,
        )

    @staticmethod
    def import_rejected(
        import_id: UUID,
        reason: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="import",
            entity_id=import_id,
            correlation_id=correlation_id,
            description=f"Import rejected: {reason}"[:500],
            details={"reason": reason},
        )

    @staticmethod
    def combined_ledger_parsed(
        import_id: UUID,
        transaction_count: int,
        periods: list[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COMBINED_LEDGER_PARSED,
            entity_type="import",
            entity_id=import_id,
            correlation_id=correlation_id,
            description=f"Combined ledger parsed: {transaction_count} transactions in {len(periods)} months",
            details={
                "transaction_count": transaction_count,
                "periods": periods,
            },
        )

    @staticmethod
    def period_replaced(
        import_id: UUID,
        year: int,
        month: int,
        deleted: int,
        inserted: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERIOD_REPLACED,
            entity_type="import",
            entity_id=import_id,
            correlation_id=correlation_id,
            description=f"Replaced {year}-{month:02d}: {deleted} removed, {inserted} inserted",
            details={
                "year": year,
                "month": month,
                "deleted": deleted,
                "inserted": inserted,
            },
        )

    @staticmethod
    def snapshots_upserted(
        import_id: UUID,
        snapshot_count: int,
        account_count: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SNAPSHOTS_UPSERTED,
            entity_type="import",
            entity_id=import_id,
            correlation_id=correlation_id,
            description=f"Upserted {snapshot_count} monthly snapshots across {account_count} accounts",
            details={
                "snapshot_count": snapshot_count,
                "account_count": account_count,
            },
        )

    @staticmethod
    def transfers_backfilled(
        import_id: UUID,
        inserted: int,
        skipped: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFERS_BACKFILLED,
            entity_type="import",
            entity_id=import_id,
            correlation_id=correlation_id,
            description=f"Investment transfers backfilled: {inserted} inserted, {skipped} already recorded",
            details={
                "inserted": inserted,
                "skipped": skipped,
            },
        )

    @staticmethod
    def asset_type_updated(
        account_name: str,
        asset_type: str,
        snapshot_count: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ASSET_TYPE_UPDATED,
            entity_type="account",
            correlation_id=correlation_id,
            description=f"Asset type for {account_name} set to {asset_type}",
            details={
                "account_name": account_name,
                "asset_type": asset_type,
                "snapshot_count": snapshot_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def import_completed(
        import_id: UUID,
        response: dict,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_COMPLETED,
            entity_type="import",
            entity_id=import_id,
            correlation_id=correlation_id,
            description="Import completed",
            details=response,
        )

    @staticmethod
    def import_failed(
        import_id: UUID,
        error_type: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="import",
            entity_id=import_id,
            correlation_id=correlation_id,
            description=f"Import failed: {error_type}",
            error_message=error_message,
            details={"error_type": error_type},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def storage_error(
        backend: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Storage error: {backend}",
            error_message=error_message,
            details={"backend": backend},
            correlation_id=correlation_id,
        )
