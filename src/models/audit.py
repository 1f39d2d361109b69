"""
Audit Models for the Finance Ledger

Every significant action in the system is logged for audit purposes.
This provides:
1. Traceability from an inbound message to the ledger row it produced
2. Visibility into classifier fallbacks and refund-matching decisions
3. A record of partial batch failures

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

    Every step in the transaction pipeline has its own event type.
    """
    # Ingestion
    TRANSACTION_RECEIVED = "transaction_received"
    EMAIL_PARSED = "email_parsed"
    EMAIL_IGNORED = "email_ignored"
    STATEMENT_PARSED = "statement_parsed"

    # Classification
    CLASSIFICATION_FALLBACK = "classification_fallback"

    # Persistence
    TRANSACTION_SAVED = "transaction_saved"
    SAVE_FAILED = "save_failed"

    # Reconciliation
    REFUND_LINKED = "refund_linked"
    REFUND_UNMATCHED = "refund_unmatched"

    # Batch import
    BATCH_COMPLETED = "batch_completed"
    BATCH_ITEM_FAILED = "batch_item_failed"

    # Reporting / notifications
    REPORT_GENERATED = "report_generated"
    NOTIFICATION_SENT = "notification_sent"

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


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
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
        description="Type of entity (e.g., 'transaction', 'batch', 'report')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events of one chat message)"
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
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_saved(record_id, "Coffee", "-4.50", correlation_id)
        event = AuditEventBuilder.refund_unmatched(record_id, "99.99", correlation_id)
    """

    @staticmethod
    def transaction_received(
        source: str,
        description: str,
        amount: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_RECEIVED,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=f"Transaction received from {source}: {description[:200]}",
            details={
                "source": source,
                "amount": amount,
            },
            is_user_action=source == "manual",
        )

    @staticmethod
    def classification_fallback(
        description: str,
        reason: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CLASSIFICATION_FALLBACK,
            severity=AuditSeverity.WARNING,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=f"Classifier fallback used for: {description[:200]}",
            details={
                "reason": reason,
            },
        )

    @staticmethod
    def transaction_saved(
        transaction_id: UUID,
        description: str,
        amount: str,
        correlation_id: UUID,
        category: Optional[str] = None,
        kind: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_SAVED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction saved: {description[:200]} {amount}",
            details={
                "amount": amount,
                "category": category,
                "kind": kind,
            },
        )

    @staticmethod
    def save_failed(
        transaction_id: UUID,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Failed to append transaction to the ledger",
            error_message=error_message,
        )

    @staticmethod
    def refund_linked(
        refund_id: UUID,
        original_id: UUID,
        amount: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REFUND_LINKED,
            entity_type="transaction",
            entity_id=refund_id,
            correlation_id=correlation_id,
            description=f"Refund of {amount} linked to original purchase",
            details={
                "original_id": str(original_id),
                "amount": amount,
            },
        )

    @staticmethod
    def refund_unmatched(
        refund_id: UUID,
        amount: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REFUND_UNMATCHED,
            entity_type="transaction",
            entity_id=refund_id,
            correlation_id=correlation_id,
            description=f"No original purchase found for refund of {amount}",
            details={
                "amount": amount,
            },
        )

    @staticmethod
    def email_parsed(
        sender: str,
        amount: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EMAIL_PARSED,
            entity_type="email",
            correlation_id=correlation_id,
            description=f"Transaction detected in e-mail from {sender[:200]}",
            details={
                "sender": sender,
                "amount": amount,
            },
        )

    @staticmethod
    def email_ignored(
        sender: str,
        subject: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EMAIL_IGNORED,
            entity_type="email",
            correlation_id=correlation_id,
            description="No transaction found in e-mail",
            details={
                "sender": sender,
                "subject": subject[:200],
            },
        )

    @staticmethod
    def statement_parsed(
        account: str,
        line_count: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATEMENT_PARSED,
            entity_type="batch",
            correlation_id=correlation_id,
            description=f"Statement parsed into {line_count} transactions",
            details={
                "account": account,
                "line_count": line_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def batch_item_failed(
        index: int,
        error_message: str,
        descriptor: dict,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BATCH_ITEM_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="batch",
            correlation_id=correlation_id,
            description=f"Batch item {index} failed",
            error_message=error_message,
            details={
                "index": index,
                "descriptor": descriptor,
            },
        )

    @staticmethod
    def batch_completed(
        account: str,
        succeeded: int,
        failed: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BATCH_COMPLETED,
            severity=AuditSeverity.WARNING if failed else AuditSeverity.INFO,
            entity_type="batch",
            correlation_id=correlation_id,
            description=f"Batch import finished: {succeeded} succeeded, {failed} failed",
            details={
                "account": account,
                "succeeded": succeeded,
                "failed": failed,
            },
        )

    @staticmethod
    def report_generated(
        report_type: str,
        period: str,
        row_count: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REPORT_GENERATED,
            entity_type="report",
            correlation_id=correlation_id,
            description=f"{report_type} report generated for {period}",
            details={
                "report_type": report_type,
                "period": period,
                "row_count": row_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def notification_sent(
        chat_id: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NOTIFICATION_SENT,
            entity_type="notification",
            correlation_id=correlation_id,
            description="User notified of detected transaction",
            details={
                "chat_id": chat_id,
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
