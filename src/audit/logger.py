"""
Audit Logger

DESIGN DECISION: Every step that changes or reads the ledger is logged.
Each user action gets one correlation ID, so a /refund command can be
followed from the received input to the linked (or unmatched) record.

The audit logger:
- Always writes a structured local log line
- Optionally persists the event to the AuditLog sheet
- Never breaks the calling flow when persistence fails
"""

import logging
import sys
from typing import Optional
from uuid import UUID, uuid4

import structlog

from src.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from src.models.transaction import TransactionRecord
from src.services.storage import AuditStorageInterface


def configure_logging(log_level: str = "INFO") -> None:
    """Route structlog through stdlib logging as JSON lines."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
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
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


class AuditLogger:
    """
    Central audit logging service.

    Usage:
        audit = AuditLogger(GoogleSheetsAuditStorage(client))
        await audit.log_transaction_saved(record, correlation_id)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Args:
            storage: Where events are persisted. None logs locally only.
        """
        self._storage = storage
        self._logger = structlog.get_logger("audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns True if the storage write succeeded (or no storage is configured).
        """
        log_dict = event.to_log_dict()

        if event.severity == AuditSeverity.ERROR:
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_transaction_received(
        self,
        source: str,
        description: str,
        amount: str,
        correlation_id: UUID,
    ) -> None:
        """Log an incoming transaction before it is processed."""
        event = AuditEventBuilder.transaction_received(
            source=source,
            description=description,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_classification_fallback(
        self,
        description: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.classification_fallback(
            description=description,
            reason=reason,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_saved(
        self,
        record: TransactionRecord,
        correlation_id: UUID,
    ) -> None:
        """Log a ledger append."""
        event = AuditEventBuilder.transaction_saved(
            transaction_id=record.id,
            description=record.description,
            amount=str(record.amount),
            correlation_id=correlation_id,
            category=record.category,
            kind=record.kind.value,
        )
        await self.log(event)

    async def log_save_failed(
        self,
        transaction_id: UUID,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.save_failed(
            transaction_id=transaction_id,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_refund(
        self,
        record: TransactionRecord,
        correlation_id: UUID,
    ) -> None:
        """Log the reconciliation outcome of a refund record."""
        if record.original_id is not None:
            event = AuditEventBuilder.refund_linked(
                refund_id=record.id,
                original_id=record.original_id,
                amount=str(record.amount),
                correlation_id=correlation_id,
            )
        else:
            event = AuditEventBuilder.refund_unmatched(
                refund_id=record.id,
                amount=str(record.amount),
                correlation_id=correlation_id,
            )
        await self.log(event)

    async def log_email_parsed(
        self,
        sender: str,
        amount: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.email_parsed(
            sender=sender,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_email_ignored(
        self,
        sender: str,
        subject: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.email_ignored(
            sender=sender,
            subject=subject,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_statement_parsed(
        self,
        account: str,
        line_count: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.statement_parsed(
            account=account,
            line_count=line_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_batch_item_failed(
        self,
        index: int,
        error_message: str,
        descriptor: dict,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.batch_item_failed(
            index=index,
            error_message=error_message,
            descriptor=descriptor,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_batch_completed(
        self,
        account: str,
        succeeded: int,
        failed: int,
        correlation_id: UUID,
    ) -> None:
        """Log the outcome of a statement import."""
        event = AuditEventBuilder.batch_completed(
            account=account,
            succeeded=succeeded,
            failed=failed,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_report_generated(
        self,
        report_type: str,
        period: str,
        row_count: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.report_generated(
            report_type=report_type,
            period=period,
            row_count=row_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_notification_sent(
        self,
        chat_id: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.notification_sent(
            chat_id=chat_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g. a /refund command).
    Pass it through all subsequent operations.
    """
    return uuid4()
