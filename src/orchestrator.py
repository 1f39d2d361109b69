"""
Main Orchestrator for the Finance Ledger

This module ties together all the components and defines the
end-to-end flows for:
1. Transactions (raw input → validate → classify/reconcile → append)
2. Statement imports (text → parsed lines → per-line import)
3. E-mail ingestion (e-mail → parsed transaction → append → notify)
4. Reports (ledger rows → aggregate → summary)

DESIGN DECISION: The orchestrator is the ONLY place that persists.
The Normalizer and the Reconciler build records; the flows here
append them and audit every step.

Refund reconciliation reads the ledger and then appends to it.
Within one process, refunds for the same account are serialized so
two concurrent refunds can't both claim the same purchase.
"""

import asyncio
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Sequence, Union
from uuid import UUID

import structlog
from pydantic import ValidationError

from src.agents import ClassifierInterface, GeminiClassifier
from src.audit import AuditLogger, configure_logging, create_correlation_id
from src.bot.formatting import format_email_notification
from src.config import LedgerSettings, get_settings
from src.ledger import RefundReconciler, StatementBatchImporter, TransactionNormalizer
from src.models.transaction import (
    AggregationMode,
    BatchImportResult,
    DateWindow,
    LedgerSummary,
    StatementLine,
    TransactionRecord,
    TransactionSource,
)
from src.reports import LedgerAggregator
from src.services.notifications import NotificationError, NotifierInterface, TelegramNotifier
from src.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
    InMemoryLedgerStore,
    LedgerStoreInterface,
)
from src.validation import TransactionInputValidator


logger = structlog.get_logger(__name__)


class TransactionFlow:
    """
    Orchestrates every path that writes to the ledger.

    Flow:
    1. Receive → audit the raw input
    2. Build → Normalizer (purchases, manual entries) or Reconciler (refunds)
    3. Save → append to the ledger, audit success or failure
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        classifier: ClassifierInterface,
        normalizer: Optional[TransactionNormalizer] = None,
        reconciler: Optional[RefundReconciler] = None,
        importer: Optional[StatementBatchImporter] = None,
        notifier: Optional[NotifierInterface] = None,
        settings: Optional[LedgerSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._classifier = classifier
        self._settings = settings or get_settings().ledger
        self._audit_logger = audit_logger
        self._validator = TransactionInputValidator()
        self._normalizer = normalizer or TransactionNormalizer(
            classifier, settings=self._settings, audit_logger=audit_logger
        )
        self._reconciler = reconciler or RefundReconciler(store, settings=self._settings)
        self._importer = importer or StatementBatchImporter(
            self._normalizer,
            self._reconciler,
            store,
            classifier=classifier,
            settings=self._settings,
            audit_logger=audit_logger,
        )
        self._notifier = notifier
        self._refund_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def _save(self, record: TransactionRecord, correlation_id: UUID) -> TransactionRecord:
        try:
            await asyncio.wait_for(
                self._store.append_transaction(record),
                timeout=self._settings.store_timeout_seconds,
            )
        except Exception as e:
            if self._audit_logger:
                await self._audit_logger.log_save_failed(
                    transaction_id=record.id,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise

        if self._audit_logger:
            await self._audit_logger.log_transaction_saved(record, correlation_id)
        return record

    async def _received(
        self,
        source: TransactionSource,
        amount: Any,
        description: Any,
        correlation_id: UUID,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_transaction_received(
                source=source.value,
                description=str(description or ""),
                amount=str(amount),
                correlation_id=correlation_id,
            )

    async def add_manual_transaction(
        self,
        amount: Any,
        description: Any,
        transaction_date: Optional[date] = None,
        account: Optional[str] = None,
        source: TransactionSource = TransactionSource.MANUAL,
        correlation_id: Optional[UUID] = None,
    ) -> TransactionRecord:
        """
        Record a transaction whose sign the caller decided.

        Raises:
            TransactionValidationError: bad amount or description
            StorageError: the append failed
        """
        correlation_id = correlation_id or create_correlation_id()
        await self._received(source, amount, description, correlation_id)

        record = await self._normalizer.normalize_manual(
            amount,
            description,
            transaction_date=transaction_date,
            account=account,
            source=source,
        )
        return await self._save(record, correlation_id)

    async def process_refund(
        self,
        amount: Any,
        description: Any,
        refund_date: Optional[date] = None,
        account: Optional[str] = None,
        original_id: Optional[Union[UUID, str]] = None,
        source: TransactionSource = TransactionSource.CREDIT_CARD,
        correlation_id: Optional[UUID] = None,
    ) -> TransactionRecord:
        """
        Reconcile a refund against past purchases and record it.

        Returns:
            The saved refund; original_id is set when a purchase was linked
        """
        correlation_id = correlation_id or create_correlation_id()
        account = account or self._settings.default_account
        await self._received(source, amount, description, correlation_id)

        async with self._refund_locks[account]:
            record = await self._reconciler.reconcile(
                amount,
                description,
                refund_date=refund_date,
                account=account,
                original_id=original_id,
                source=source,
            )
            await self._save(record, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_refund(record, correlation_id)
        return record

    async def process_card_transaction(
        self,
        amount: Any,
        description: Any,
        transaction_date: Optional[date] = None,
        account: Optional[str] = None,
        original_id: Optional[Union[UUID, str]] = None,
        correlation_id: Optional[UUID] = None,
    ) -> TransactionRecord:
        """
        Record a card transaction: positive amounts are refunds,
        everything else is a purchase.
        """
        value, _, _ = self._validator.validate_input(amount, description, transaction_date)
        if value > 0:
            return await self.process_refund(
                amount,
                description,
                refund_date=transaction_date,
                account=account,
                original_id=original_id,
                source=TransactionSource.CREDIT_CARD,
                correlation_id=correlation_id,
            )

        correlation_id = correlation_id or create_correlation_id()
        await self._received(TransactionSource.CREDIT_CARD, amount, description, correlation_id)
        record = await self._normalizer.normalize_purchase(
            amount,
            description,
            transaction_date=transaction_date,
            account=account,
        )
        return await self._save(record, correlation_id)

    async def import_statement(
        self,
        text: str,
        account_name: str,
        correlation_id: Optional[UUID] = None,
    ) -> BatchImportResult:
        """Parse statement text and import every line into one account."""
        return await self._importer.import_statement_text(
            text, account_name, correlation_id=correlation_id or create_correlation_id()
        )

    async def import_lines(
        self,
        lines: Sequence[Union[StatementLine, dict[str, Any]]],
        account_name: str,
        correlation_id: Optional[UUID] = None,
    ) -> BatchImportResult:
        """Import already-parsed statement lines."""
        return await self._importer.import_batch(
            lines, account_name, correlation_id=correlation_id or create_correlation_id()
        )

    async def ingest_email(
        self,
        subject: str,
        body: str,
        sender: str = "",
        correlation_id: Optional[UUID] = None,
    ) -> Optional[TransactionRecord]:
        """
        Turn a bank notification e-mail into a ledger entry.

        Never raises: failures are logged and audited, and None is returned.
        An e-mail without a transaction is a no-op.
        """
        correlation_id = correlation_id or create_correlation_id()
        try:
            parsed = await self._classifier.parse_email(subject, body)
            if parsed is None:
                if self._audit_logger:
                    await self._audit_logger.log_email_ignored(
                        sender=sender, subject=subject, correlation_id=correlation_id
                    )
                return None

            if self._audit_logger:
                await self._audit_logger.log_email_parsed(
                    sender=sender, amount=str(parsed.amount), correlation_id=correlation_id
                )

            record = await self.add_manual_transaction(
                parsed.amount,
                parsed.description,
                transaction_date=parsed.date,
                account=parsed.account or self._settings.email_account,
                source=TransactionSource.EMAIL,
                correlation_id=correlation_id,
            )
        except Exception as e:
            logger.error("email_ingestion_failed", sender=sender, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type="email_ingestion",
                    error_message=str(e),
                    details={"sender": sender, "subject": subject[:200]},
                    correlation_id=correlation_id,
                )
            return None

        await self._notify(record, sender, correlation_id)
        return record

    async def _notify(self, record: TransactionRecord, sender: str, correlation_id: UUID) -> None:
        if self._notifier is None:
            return
        try:
            chat_id = await self._store.get_setting(self._settings.notify_setting_name)
            if not chat_id:
                return
            await self._notifier.send_message(chat_id, format_email_notification(record, sender))
        except Exception as e:
            logger.warning("notification_failed", error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    service="telegram" if isinstance(e, NotificationError) else "ledger",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            return

        if self._audit_logger:
            await self._audit_logger.log_notification_sent(
                chat_id=chat_id, correlation_id=correlation_id
            )


class ReportFlow:
    """
    Orchestrates read-only reporting.

    Every number comes from the Aggregator over actual ledger rows.
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        aggregator: Optional[LedgerAggregator] = None,
        settings: Optional[LedgerSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().ledger
        self._aggregator = aggregator or LedgerAggregator(store, settings=self._settings)
        self._audit_logger = audit_logger

    @property
    def top_categories(self) -> int:
        return self._settings.top_categories

    async def _audit_report(self, report_type: str, summary: LedgerSummary) -> None:
        if self._audit_logger:
            await self._audit_logger.log_report_generated(
                report_type=report_type,
                period=summary.window.label if summary.window else "all",
                row_count=summary.count,
                correlation_id=create_correlation_id(),
            )

    async def monthly_balance(self, today: Optional[date] = None) -> Decimal:
        """Sum of signed amounts for the current month."""
        today = today or date.today()
        return await self._aggregator.balance(today.year, today.month)

    async def monthly_report(
        self,
        today: Optional[date] = None,
        account: Optional[str] = None,
    ) -> LedgerSummary:
        """Current-month income/expense summary."""
        summary = await self._aggregator.summarize(
            DateWindow.current_month(today),
            AggregationMode.BALANCE,
            account=account,
        )
        await self._audit_report("monthly", summary)
        return summary

    async def card_summary(
        self,
        account: Optional[str] = None,
        window: Optional[DateWindow] = None,
        today: Optional[date] = None,
    ) -> LedgerSummary:
        """Spent / refunded / net spent for one card account."""
        summary = await self._aggregator.summarize(
            window or DateWindow.current_month(today),
            AggregationMode.CARD,
            account=account or self._settings.default_account,
        )
        await self._audit_report("card", summary)
        return summary

    async def list_categories(self) -> list[dict[str, str]]:
        return await self._store.list_categories()

    async def add_category(
        self,
        name: str,
        keywords: str = "",
        budget: str = "",
        color: str = "",
    ) -> bool:
        name = name.strip()
        if not name:
            raise ValueError("Category name is required")
        return await self._store.add_category(name, keywords, budget, color)


def create_app_components(
    use_storage: bool = True,
    classifier: Optional[ClassifierInterface] = None,
    notifier: Optional[NotifierInterface] = None,
) -> tuple[TransactionFlow, ReportFlow, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Without it the ledger lives in memory.
        classifier: Override the Gemini classifier (e.g. in tests)
        notifier: Override the Telegram notifier

    Returns:
        (transaction_flow, report_flow, sheets_client)
    """
    settings = get_settings()
    configure_logging(settings.app.log_level)
    ledger_settings = settings.ledger

    sheets_client = None
    store: LedgerStoreInterface
    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            store = GoogleSheetsLedgerStore(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            store = InMemoryLedgerStore()
            audit_logger = AuditLogger()
    else:
        store = InMemoryLedgerStore()
        audit_logger = AuditLogger()

    if notifier is None:
        try:
            notifier = TelegramNotifier()
        except ValidationError as e:
            logger.warning("notifier_not_configured", error=str(e))

    classifier = classifier or GeminiClassifier()

    transaction_flow = TransactionFlow(
        store,
        classifier,
        notifier=notifier,
        settings=ledger_settings,
        audit_logger=audit_logger,
    )
    report_flow = ReportFlow(
        store,
        settings=ledger_settings,
        audit_logger=audit_logger,
    )

    return transaction_flow, report_flow, sheets_client
