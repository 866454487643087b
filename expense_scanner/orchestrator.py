"""
Main Orchestrator for Expense Scanner

This module ties together all the components and defines the
end-to-end flows for:
1. Receipt Scan (images → Gemini → normalize → batch result)
2. Expense Book (stored list + categories/currencies → edits and queries)

DESIGN DECISION: The orchestrator enforces the boundaries:
- One bad receipt never stops the batch
- The expense list only changes after a whole batch has been collected
- Every step is audited

This is the "glue" that keeps the system working correctly even when
the model behaves unexpectedly.
"""

import asyncio
import inspect
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Iterable, Optional, Union
from uuid import UUID

import structlog

from expense_scanner.audit import AuditLogger, configure_logging
from expense_scanner.catalog import (
    CategoryRegistry,
    CurrencyRegistry,
    MembershipChange,
    preferences_from_registries,
    registries_from_preferences,
)
from expense_scanner.config import Settings, get_settings, validate_all_settings
from expense_scanner.extraction import (
    ApiKeyMissingError,
    ExtractionError,
    ReceiptExtractionService,
    is_default_record,
    normalize,
)
from expense_scanner.models.audit import AuditEventType
from expense_scanner.models.expense import (
    DEFAULT_CURRENCY,
    ExpenseQueryResult,
    ExpenseRecord,
    FilterCriteria,
    ReceiptImage,
    ScanBatchResult,
    ScanOutcome,
    ScanStatus,
    parse_expense_date,
)
from expense_scanner.queries import ExpenseQueryEngine
from expense_scanner.services.storage import (
    AuditStorageInterface,
    ExpenseStorageInterface,
    InMemoryExpenseStorage,
    JsonFileExpenseStorage,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger(__name__)


ProgressCallback = Callable[[int, int], Union[None, Awaitable[None]]]

DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0


class InvalidExpenseError(Exception):
    """An edited expense was rejected."""
    pass


class ReceiptScanFlow:
    """
    Orchestrates the receipt scan flow.

    Flow per image:
    1. Wait for a slot (semaphore, degree 1 by default = sequential)
    2. Stop if the batch was cancelled
    3. Report progress
    4. Reject images over the size limit
    5. Ask the extraction service, bounded by a timeout
    6. Normalize the raw answer into an ExpenseRecord

    Failures are recorded per image. The caller gets one ScanBatchResult
    and decides what to store.
    """

    def __init__(
        self,
        extraction_service: Optional[Any] = None,
        audit_logger: Optional[AuditLogger] = None,
        max_concurrent: int = 1,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        max_image_bytes: Optional[int] = None,
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        # Anything with `async analyze_receipt(image_bytes, mime_type) -> str`
        self._service = extraction_service or ReceiptExtractionService()
        self._audit_logger = audit_logger
        self._max_concurrent = max_concurrent
        self._request_timeout = request_timeout
        self._max_image_bytes = max_image_bytes

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    async def scan_batch(
        self,
        images: list[ReceiptImage],
        *,
        fallback_currency: str = DEFAULT_CURRENCY,
        known_categories: Optional[Iterable[str]] = None,
        cancel_event: Optional[asyncio.Event] = None,
        progress: Optional[ProgressCallback] = None,
        today: Optional[date] = None,
    ) -> ScanBatchResult:
        """
        Scan a batch of receipt images.

        Args:
            images: Receipts in submission order
            fallback_currency: Used when a receipt names no currency
            known_categories: Categories a receipt may be filed under.
                Defaults to the fixed extraction set.
            cancel_event: Once set, images not yet started are skipped
            progress: Called with (index, total) before each image
            today: Date used for receipts without a usable date

        Returns:
            ScanBatchResult with one outcome per image, in submission order

        Raises:
            ApiKeyMissingError: No API key configured. Raised after the
                batch has been wound down.
        """
        batch = ScanBatchResult()
        correlation_id = batch.batch_id
        known = list(known_categories) if known_categories is not None else None
        cancel_event = cancel_event or asyncio.Event()
        semaphore = asyncio.Semaphore(self._max_concurrent)
        total = len(images)
        missing_key: list[ApiKeyMissingError] = []

        if self._audit_logger:
            await self._audit_logger.log_scan_started(batch.batch_id, total)

        async def scan_one(index: int, image: ReceiptImage) -> ScanOutcome:
            async with semaphore:
                if cancel_event.is_set():
                    return ScanOutcome(
                        index=index,
                        upload_id=image.upload_id,
                        filename=image.filename,
                        status=ScanStatus.CANCELLED,
                    )
                if progress is not None:
                    maybe_awaitable = progress(index, total)
                    if inspect.isawaitable(maybe_awaitable):
                        await maybe_awaitable
                try:
                    return await self._scan_image(
                        index,
                        image,
                        fallback_currency=fallback_currency,
                        known_categories=known,
                        today=today,
                        correlation_id=correlation_id,
                    )
                except ApiKeyMissingError as e:
                    # No image can succeed without a key
                    missing_key.append(e)
                    cancel_event.set()
                    return ScanOutcome(
                        index=index,
                        upload_id=image.upload_id,
                        filename=image.filename,
                        status=ScanStatus.FAILED,
                        error_message=str(e),
                    )

        outcomes = await asyncio.gather(
            *(scan_one(index, image) for index, image in enumerate(images))
        )

        batch = batch.model_copy(
            update={
                "outcomes": list(outcomes),
                "cancelled": any(o.status == ScanStatus.CANCELLED for o in outcomes),
                "finished_at": datetime.utcnow(),
            }
        )

        logger.info(
            "scan_batch_finished",
            batch_id=str(batch.batch_id),
            images=total,
            usable=batch.usable_count,
            failed=batch.failed_count,
            cancelled=batch.cancelled,
        )
        if self._audit_logger:
            await self._audit_logger.log_scan_finished(
                batch_id=batch.batch_id,
                processed=batch.processed_count,
                usable=batch.usable_count,
                failed=batch.failed_count,
                cancelled=batch.cancelled,
            )

        if missing_key:
            raise missing_key[0]
        return batch

    async def _scan_image(
        self,
        index: int,
        image: ReceiptImage,
        *,
        fallback_currency: str,
        known_categories: Optional[list[str]],
        today: Optional[date],
        correlation_id: UUID,
    ) -> ScanOutcome:
        """Extract and normalize one image. Only ApiKeyMissingError escapes."""
        if self._max_image_bytes is not None and image.file_size_bytes > self._max_image_bytes:
            return await self._fail(
                index,
                image,
                f"Image is larger than {self._max_image_bytes} bytes",
                correlation_id,
            )

        try:
            raw_text = await asyncio.wait_for(
                self._service.analyze_receipt(image.data, image.mime_type),
                timeout=self._request_timeout,
            )
        except ApiKeyMissingError:
            raise
        except (ExtractionError, asyncio.TimeoutError) as e:
            message = str(e) or f"No answer within {self._request_timeout:g} seconds"
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    service="gemini",
                    error_message=message,
                    correlation_id=correlation_id,
                )
            return await self._fail(index, image, message, correlation_id)

        record = normalize(
            raw_text,
            fallback_currency,
            today=today,
            known_categories=known_categories,
        )

        if is_default_record(record):
            if self._audit_logger:
                await self._audit_logger.log_receipt_defaulted(
                    upload_id=image.upload_id,
                    correlation_id=correlation_id,
                )
            status = ScanStatus.DEFAULTED
        else:
            if self._audit_logger:
                await self._audit_logger.log_receipt_extracted(
                    expense_id=record.id,
                    upload_id=image.upload_id,
                    merchant=record.merchant,
                    amount=str(record.amount),
                    correlation_id=correlation_id,
                )
            status = ScanStatus.EXTRACTED

        return ScanOutcome(
            index=index,
            upload_id=image.upload_id,
            filename=image.filename,
            status=status,
            record=record,
        )

    async def _fail(
        self,
        index: int,
        image: ReceiptImage,
        message: str,
        correlation_id: UUID,
    ) -> ScanOutcome:
        logger.warning(
            "receipt_extraction_failed",
            index=index,
            upload_id=str(image.upload_id),
            error=message,
        )
        if self._audit_logger:
            await self._audit_logger.log_extraction_failed(
                upload_id=image.upload_id,
                error_message=message,
                correlation_id=correlation_id,
            )
        return ScanOutcome(
            index=index,
            upload_id=image.upload_id,
            filename=image.filename,
            status=ScanStatus.FAILED,
            error_message=message,
        )


class ExpenseBook:
    """
    The user's expense list plus their categories and currencies.

    Holds the list in memory in display order (newest batch first) and
    writes every change through to storage. Call `load()` once before use.
    """

    def __init__(
        self,
        storage: Optional[ExpenseStorageInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        query_engine: Optional[ExpenseQueryEngine] = None,
        keep_defaulted: bool = False,
    ):
        self._storage = storage or InMemoryExpenseStorage()
        self._keep_defaulted = keep_defaulted
        self._audit_logger = audit_logger
        self._query_engine = query_engine or ExpenseQueryEngine()
        self._expenses: list[ExpenseRecord] = []
        self._categories, self._currencies = registries_from_preferences()

    @property
    def expenses(self) -> list[ExpenseRecord]:
        return list(self._expenses)

    @property
    def categories(self) -> CategoryRegistry:
        return self._categories

    @property
    def currencies(self) -> CurrencyRegistry:
        return self._currencies

    async def load(self) -> None:
        """Read expenses and preferences from storage."""
        self._expenses = await self._storage.list_expenses()
        preferences = await self._storage.load_preferences()
        self._categories, self._currencies = registries_from_preferences(preferences)
        logger.info(
            "expense_book_loaded",
            expenses=len(self._expenses),
            custom_categories=len(self._categories.custom),
            custom_currencies=len(self._currencies.custom),
        )

    # =========================================================================
    # EXPENSES
    # =========================================================================

    async def add_records(
        self,
        records: list[ExpenseRecord],
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """Prepend a batch of records (kept in their given order) and persist."""
        if not records:
            return 0
        try:
            stored = await self._storage.add_expenses(records)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type="StorageError",
                    error_message=str(e),
                    details={"records": len(records)},
                    correlation_id=correlation_id,
                )
            raise
        self._expenses[:0] = records

        if self._audit_logger:
            for record in records:
                await self._audit_logger.log_expense_saved(
                    expense_id=record.id,
                    merchant=record.merchant,
                    amount=str(record.amount),
                    correlation_id=correlation_id,
                )
        return stored

    async def add_scan_result(
        self,
        result: ScanBatchResult,
        keep_defaulted: Optional[bool] = None,
    ) -> int:
        """
        Store what a scan batch produced.

        Only EXTRACTED records are stored unless `keep_defaulted` is set,
        in which case DEFAULTED placeholders are stored too. None uses the
        book's own setting.
        """
        if keep_defaulted is None:
            keep_defaulted = self._keep_defaulted
        records = [
            o.record for o in result.outcomes
            if o.record is not None and (
                o.status == ScanStatus.EXTRACTED
                or (keep_defaulted and o.status == ScanStatus.DEFAULTED)
            )
        ]
        return await self.add_records(records, correlation_id=result.batch_id)

    async def scan(
        self,
        flow: ReceiptScanFlow,
        images: list[ReceiptImage],
        *,
        keep_defaulted: Optional[bool] = None,
        cancel_event: Optional[asyncio.Event] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> ScanBatchResult:
        """
        Scan a batch against the current categories and selected currency,
        then store the result in one step.
        """
        result = await flow.scan_batch(
            images,
            fallback_currency=self._currencies.selected,
            known_categories=self._categories.all(),
            cancel_event=cancel_event,
            progress=progress,
        )
        await self.add_scan_result(result, keep_defaulted=keep_defaulted)
        return result

    def get(self, expense_id: UUID) -> Optional[ExpenseRecord]:
        for expense in self._expenses:
            if expense.id == expense_id:
                return expense
        return None

    async def update(self, record: ExpenseRecord) -> ExpenseRecord:
        """
        Replace the expense with the same id.

        Raises:
            NotFoundError: No expense has this id
            InvalidExpenseError: Unknown category or invalid date
        """
        existing = self.get(record.id)
        if existing is None:
            raise NotFoundError(f"Expense not found: {record.id}")
        if record.category not in self._categories:
            raise InvalidExpenseError(f"Unknown category: {record.category}")
        if parse_expense_date(record.date) is None:
            raise InvalidExpenseError(f"Invalid date: {record.date}")

        await self._storage.update_expense(record)
        self._expenses = [
            record if expense.id == record.id else expense
            for expense in self._expenses
        ]

        if self._audit_logger:
            changed = [
                field for field, value in record.model_dump().items()
                if getattr(existing, field) != value
            ]
            await self._audit_logger.log_expense_updated(record.id, changed)
        return record

    async def delete(self, expense_id: UUID) -> bool:
        """Remove an expense. Returns False when no expense has this id."""
        if self.get(expense_id) is None:
            return False
        await self._storage.delete_expense(expense_id)
        self._expenses = [e for e in self._expenses if e.id != expense_id]
        if self._audit_logger:
            await self._audit_logger.log_expense_deleted(expense_id)
        return True

    async def query(
        self,
        criteria: Optional[FilterCriteria] = None,
        today: Optional[date] = None,
    ) -> ExpenseQueryResult:
        """Filter, sort and total the current list."""
        if today is not None:
            result = ExpenseQueryEngine(lambda: today).query(self._expenses, criteria)
        else:
            result = self._query_engine.query(self._expenses, criteria)

        if self._audit_logger:
            await self._audit_logger.log_query_executed(
                description=result.description,
                result_count=result.count,
                total=str(result.total),
            )
        return result

    # =========================================================================
    # CATEGORIES AND CURRENCIES
    # =========================================================================

    async def _save_preferences(self) -> None:
        await self._storage.save_preferences(
            preferences_from_registries(self._categories, self._currencies)
        )

    async def _record_change(
        self,
        result: MembershipChange,
        event_type: AuditEventType,
        name: str,
    ) -> MembershipChange:
        if result.changed:
            await self._save_preferences()
            if self._audit_logger:
                await self._audit_logger.log_catalog_change(event_type, name)
        return result

    async def add_category(
        self,
        name: str,
        glyph: Optional[str] = None,
    ) -> MembershipChange:
        result = self._categories.add(name, glyph)
        return await self._record_change(
            result, AuditEventType.CATEGORY_ADDED, (name or "").strip()
        )

    async def remove_category(self, name: str) -> MembershipChange:
        result = self._categories.remove(name)
        return await self._record_change(
            result, AuditEventType.CATEGORY_REMOVED, (name or "").strip()
        )

    async def add_currency(self, code: str) -> MembershipChange:
        result = self._currencies.add(code)
        return await self._record_change(
            result, AuditEventType.CURRENCY_ADDED, (code or "").strip().upper()
        )

    async def remove_currency(self, code: str) -> MembershipChange:
        result = self._currencies.remove(code)
        return await self._record_change(
            result, AuditEventType.CURRENCY_REMOVED, (code or "").strip().upper()
        )

    async def select_currency(self, code: str) -> bool:
        """Select a known currency for new receipts. Unknown codes are ignored."""
        if not self._currencies.select(code):
            return False
        await self._save_preferences()
        if self._audit_logger:
            await self._audit_logger.log_catalog_change(
                AuditEventType.CURRENCY_SELECTED, self._currencies.selected
            )
        return True


def _create_storage(
    settings: Settings,
) -> tuple[ExpenseStorageInterface, Optional[AuditStorageInterface]]:
    backend = settings.app.storage_backend
    if backend == "sheets":
        # Imported here so gspread is only loaded when Sheets is in use
        from expense_scanner.services.storage.google_sheets import (
            GoogleSheetsAuditStorage,
            GoogleSheetsClient,
            GoogleSheetsExpenseStorage,
        )
        client = GoogleSheetsClient(settings.google_sheets)
        return GoogleSheetsExpenseStorage(client), GoogleSheetsAuditStorage(client)
    if backend == "memory":
        storage = InMemoryExpenseStorage()
        return storage, storage
    return JsonFileExpenseStorage(settings.app.storage_path), None


def create_app_components(
    settings: Optional[Settings] = None,
    extraction_service: Optional[Any] = None,
) -> tuple[ReceiptScanFlow, ExpenseBook]:
    """
    Factory function to create all application components.

    Args:
        settings: Application settings (defaults to get_settings())
        extraction_service: Replacement for the Gemini service (tests)

    Returns:
        (receipt_scan_flow, expense_book). Call `await expense_book.load()`
        before use.
    """
    settings = settings or get_settings()
    app_settings = settings.app
    configure_logging(app_settings.log_level, json_output=not app_settings.debug_mode)

    checks = validate_all_settings(settings)
    if extraction_service is None and not checks.get("gemini"):
        logger.warning("gemini_not_configured", error=checks.get("gemini_error"))
    if app_settings.storage_backend == "sheets" and not checks.get("google_sheets"):
        logger.warning(
            "google_sheets_not_configured", error=checks.get("google_sheets_error")
        )

    expense_storage, audit_storage = _create_storage(settings)
    audit_logger = AuditLogger(audit_storage)

    if extraction_service is None:
        gemini_settings = settings.gemini
        extraction_service = ReceiptExtractionService(gemini_settings)
        request_timeout = gemini_settings.request_timeout_seconds
    else:
        request_timeout = DEFAULT_REQUEST_TIMEOUT_SECONDS

    scan_flow = ReceiptScanFlow(
        extraction_service=extraction_service,
        audit_logger=audit_logger,
        max_concurrent=app_settings.max_concurrent_extractions,
        request_timeout=request_timeout,
        max_image_bytes=app_settings.max_upload_size_bytes,
    )
    expense_book = ExpenseBook(
        storage=expense_storage,
        audit_logger=audit_logger,
        keep_defaulted=app_settings.keep_defaulted_records,
    )

    logger.info(
        "app_components_created",
        storage_backend=app_settings.storage_backend,
        max_concurrent=app_settings.max_concurrent_extractions,
    )
    return scan_flow, expense_book
