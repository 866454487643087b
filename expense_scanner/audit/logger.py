"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Traceability of every scan batch and every edit
2. Debugging capability when the model returns something odd
3. A history the user can be shown

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events (one scan batch)
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from expense_scanner.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from expense_scanner.services.storage import AuditStorageInterface


_LOG_METHODS = {
    AuditSeverity.DEBUG: "debug",
    AuditSeverity.INFO: "info",
    AuditSeverity.WARNING: "warning",
    AuditSeverity.ERROR: "error",
    AuditSeverity.CRITICAL: "critical",
}


def configure_logging(level: str = "INFO", json_output: bool = True) -> None:
    """
    Configure structlog on top of stdlib logging.

    Call once at application start; library modules only ever call
    structlog.get_logger().
    """
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
    )
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )
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
            renderer,
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
    2. An audit storage backend, when one is configured
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
        self._logger = structlog.get_logger("expense_scanner.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_method = getattr(self._logger, _LOG_METHODS[event.severity])
        log_method("audit_event", **event.to_log_dict())

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

    async def log_scan_started(self, batch_id: UUID, image_count: int) -> None:
        await self.log(AuditEventBuilder.scan_batch_started(batch_id, image_count))

    async def log_scan_finished(
        self,
        batch_id: UUID,
        processed: int,
        usable: int,
        failed: int,
        cancelled: bool,
    ) -> None:
        await self.log(
            AuditEventBuilder.scan_batch_finished(
                batch_id=batch_id,
                processed=processed,
                usable=usable,
                failed=failed,
                cancelled=cancelled,
            )
        )

    async def log_receipt_extracted(
        self,
        expense_id: UUID,
        upload_id: Optional[UUID],
        merchant: str,
        amount: str,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(
            AuditEventBuilder.receipt_extracted(
                expense_id=expense_id,
                upload_id=upload_id,
                merchant=merchant,
                amount=amount,
                correlation_id=correlation_id,
            )
        )

    async def log_receipt_defaulted(
        self,
        upload_id: Optional[UUID],
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.receipt_defaulted(upload_id, correlation_id))

    async def log_extraction_failed(
        self,
        upload_id: Optional[UUID],
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(
            AuditEventBuilder.extraction_failed(upload_id, error_message, correlation_id)
        )

    async def log_expense_saved(
        self,
        expense_id: UUID,
        merchant: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(
            AuditEventBuilder.expense_saved(expense_id, merchant, amount, correlation_id)
        )

    async def log_expense_updated(
        self,
        expense_id: UUID,
        changed_fields: list[str],
    ) -> None:
        await self.log(AuditEventBuilder.expense_updated(expense_id, changed_fields))

    async def log_expense_deleted(self, expense_id: UUID) -> None:
        await self.log(AuditEventBuilder.expense_deleted(expense_id))

    async def log_catalog_change(self, event_type: AuditEventType, name: str) -> None:
        await self.log(AuditEventBuilder.catalog_changed(event_type, name))

    async def log_query_executed(
        self,
        description: str,
        result_count: int,
        total: str,
    ) -> None:
        await self.log(
            AuditEventBuilder.query_executed(description, result_count, total)
        )

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(
            AuditEventBuilder.system_error(
                error_type=error_type,
                error_message=error_message,
                details=details,
                correlation_id=correlation_id,
            )
        )

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(
            AuditEventBuilder.external_service_error(
                service=service,
                error_message=error_message,
                correlation_id=correlation_id,
            )
        )


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a scan batch).
    Pass it through all subsequent operations.
    """
    return uuid4()
