"""
Data Models Package

This package contains all Pydantic models used by the finance ledger.
All data flowing through the system must conform to these schemas.
"""

from src.models.transaction import (
    AggregationMode,
    BatchFailure,
    BatchImportResult,
    CategoryTotal,
    ClassifierResult,
    DateWindow,
    EmailTransaction,
    LedgerSummary,
    NormalizationPath,
    StatementLine,
    TransactionKind,
    TransactionRecord,
    TransactionSource,
    TransactionStatus,
)
from src.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Transaction models
    "AggregationMode",
    "BatchFailure",
    "BatchImportResult",
    "CategoryTotal",
    "ClassifierResult",
    "DateWindow",
    "EmailTransaction",
    "LedgerSummary",
    "NormalizationPath",
    "StatementLine",
    "TransactionKind",
    "TransactionRecord",
    "TransactionSource",
    "TransactionStatus",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
