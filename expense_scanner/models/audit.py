"""
Audit Models for Expense Scanner

Every significant action in the system is logged for audit purposes.
This provides:
1. Traceability of scans, edits and deletions
2. Debugging information when extraction goes wrong
3. The per-batch history behind "N receipts processed"

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Receipt scanning
    SCAN_BATCH_STARTED = "scan_batch_started"
    SCAN_BATCH_COMPLETED = "scan_batch_completed"
    SCAN_BATCH_CANCELLED = "scan_batch_cancelled"
    RECEIPT_EXTRACTED = "receipt_extracted"
    RECEIPT_DEFAULTED = "receipt_defaulted"
    EXTRACTION_FAILED = "extraction_failed"

    # Expense list
    EXPENSE_SAVED = "expense_saved"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"

    # Customization
    CATEGORY_ADDED = "category_added"
    CATEGORY_REMOVED = "category_removed"
    CURRENCY_ADDED = "currency_added"
    CURRENCY_REMOVED = "currency_removed"
    CURRENCY_SELECTED = "currency_selected"

    # Query operations
    QUERY_EXECUTED = "query_executed"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


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


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
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
        description="Type of entity (e.g., 'expense', 'image', 'batch')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all images in one batch)"
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
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Columns follow AUDIT_COLUMNS.
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
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.scan_batch_started(batch_id, 3)
        event = AuditEventBuilder.expense_deleted(expense_id)
    """

    @staticmethod
    def scan_batch_started(batch_id: UUID, image_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCAN_BATCH_STARTED,
            entity_type="batch",
            entity_id=batch_id,
            correlation_id=batch_id,
            description=f"Scanning {image_count} receipt(s)",
            details={"image_count": image_count},
            is_user_action=True,
        )

    @staticmethod
    def scan_batch_finished(
        batch_id: UUID,
        processed: int,
        usable: int,
        failed: int,
        cancelled: bool,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.SCAN_BATCH_CANCELLED
            if cancelled
            else AuditEventType.SCAN_BATCH_COMPLETED
        )
        return AuditEvent(
            event_type=event_type,
            severity=AuditSeverity.WARNING if usable == 0 else AuditSeverity.INFO,
            entity_type="batch",
            entity_id=batch_id,
            correlation_id=batch_id,
            description=f"Batch finished: {usable} of {processed} receipts usable",
            details={
                "processed": processed,
                "usable": usable,
                "failed": failed,
                "cancelled": cancelled,
            },
        )

    @staticmethod
    def receipt_extracted(
        expense_id: UUID,
        upload_id: Optional[UUID],
        merchant: str,
        amount: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_EXTRACTED,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Receipt extracted: {merchant} - {amount}",
            details={
                "upload_id": str(upload_id) if upload_id else None,
                "merchant": merchant,
                "amount": amount,
            },
        )

    @staticmethod
    def receipt_defaulted(
        upload_id: Optional[UUID],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_DEFAULTED,
            severity=AuditSeverity.WARNING,
            entity_type="image",
            entity_id=upload_id,
            correlation_id=correlation_id,
            description="No usable data in model response; defaults applied",
        )

    @staticmethod
    def extraction_failed(
        upload_id: Optional[UUID],
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="image",
            entity_id=upload_id,
            correlation_id=correlation_id,
            description="Receipt extraction failed",
            error_message=error_message,
        )

    @staticmethod
    def expense_saved(
        expense_id: UUID,
        merchant: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_SAVED,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Expense saved: {merchant} - {amount}",
            details={
                "merchant": merchant,
                "amount": amount,
            },
        )

    @staticmethod
    def expense_updated(expense_id: UUID, changed_fields: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_UPDATED,
            entity_type="expense",
            entity_id=expense_id,
            description=f"Expense edited ({len(changed_fields)} field(s) changed)",
            details={"changed_fields": changed_fields},
            is_user_action=True,
        )

    @staticmethod
    def expense_deleted(expense_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            entity_type="expense",
            entity_id=expense_id,
            description="Expense deleted",
            is_user_action=True,
        )

    @staticmethod
    def catalog_changed(
        event_type: AuditEventType,
        name: str,
    ) -> AuditEvent:
        kind = "currency" if "currency" in event_type.value else "category"
        return AuditEvent(
            event_type=event_type,
            entity_type=kind,
            description=f"{event_type.value.replace('_', ' ').capitalize()}: {name}",
            details={kind: name},
            is_user_action=True,
        )

    @staticmethod
    def query_executed(
        description: str,
        result_count: int,
        total: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.QUERY_EXECUTED,
            severity=AuditSeverity.DEBUG,
            entity_type="query",
            description=f"Query executed: {result_count} results",
            details={
                "filters": description,
                "result_count": result_count,
                "total": total,
            },
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
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
