"""
Shared fixtures.

No test talks to Google, Gemini or Telegram: the ledger lives in memory
and the classifier is a stub whose answers each test controls.
"""

import asyncio
from datetime import date
from decimal import Decimal
from typing import Optional

import pytest

from src.agents import ClassifierInterface
from src.audit import AuditLogger
from src.config import LedgerSettings
from src.models.transaction import (
    ClassifierResult,
    EmailTransaction,
    StatementLine,
    TransactionKind,
    TransactionRecord,
    TransactionSource,
)
from src.services.storage import InMemoryAuditStorage, InMemoryLedgerStore, StorageError


class StubClassifier(ClassifierInterface):
    """Classifier double that records calls and replays canned answers."""

    def __init__(
        self,
        result: Optional[ClassifierResult] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
        statement_lines: Optional[list[StatementLine]] = None,
        email: Optional[EmailTransaction] = None,
    ):
        self.result = result or ClassifierResult(
            category="Food", tags=["coffee"], kind=TransactionKind.EXPENSE
        )
        self.error = error
        self.delay = delay
        self.statement_lines = statement_lines or []
        self.email = email
        self.calls: list[tuple[str, Decimal]] = []

    async def categorize(self, description: str, signed_amount: Decimal) -> ClassifierResult:
        self.calls.append((description, signed_amount))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result

    async def parse_statement_text(self, raw_text: str) -> list[StatementLine]:
        return list(self.statement_lines)

    async def parse_email(self, subject: str, body: str) -> Optional[EmailTransaction]:
        return self.email


class FailingStore(InMemoryLedgerStore):
    """In-memory store whose appends fail for chosen descriptions."""

    def __init__(self, fail_on: set[str], **kwargs):
        super().__init__(**kwargs)
        self.fail_on = fail_on

    async def append_transaction(self, record: TransactionRecord) -> bool:
        if any(marker in record.description for marker in self.fail_on):
            raise StorageError(f"Sheet unavailable for {record.description}")
        return await super().append_transaction(record)


@pytest.fixture
def ledger_settings():
    return LedgerSettings(
        default_account="default",
        classifier_timeout_seconds=0.2,
        store_timeout_seconds=1.0,
        batch_concurrency=2,
    )


@pytest.fixture
def store():
    return InMemoryLedgerStore()


@pytest.fixture
def classifier():
    return StubClassifier()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def make_record():
    """Build a stored ledger row with sensible defaults."""

    def _make(
        amount: str,
        description: str,
        on: date,
        category: str = "Food",
        tags: Optional[list[str]] = None,
        account: str = "default",
        kind: Optional[TransactionKind] = None,
    ) -> TransactionRecord:
        value = Decimal(amount)
        return TransactionRecord(
            date=on,
            amount=value,
            description=description,
            category=category,
            tags=tags if tags is not None else [],
            source=TransactionSource.CREDIT_CARD,
            kind=kind or TransactionKind.from_amount(value),
            account=account,
        )

    return _make
