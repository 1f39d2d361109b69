"""
Transaction Normalizer

Turns a raw (amount, description) pair into a TransactionRecord.

DESIGN DECISION: Two entry contracts are kept apart on purpose.

1. MANUAL (chat command, quick text, parsed e-mail):
   - The caller decides the sign and it is kept exactly as given
   - The classifier proposes a kind, which is then forced to agree
     with the sign

2. PURCHASE / REFUND (card-present flows):
   - The sign is coerced (purchase negative, refund positive)
   - The kind is fixed by the path and never taken from the classifier

The classifier is best-effort. When it fails, the transaction is still
recorded under the default category with a marker tag:
- "unclassified": the provider answered with something unusable
- "error": the provider errored or timed out

The Normalizer NEVER persists. The caller appends the record.
"""

import asyncio
from datetime import date
from decimal import Decimal
from typing import Any, Optional

import structlog

from src.agents import ClassifierInterface, ClassifierOutputError
from src.audit import AuditLogger
from src.config import LedgerSettings, get_settings
from src.models.transaction import (
    DEFAULT_CATEGORY,
    ClassifierResult,
    NormalizationPath,
    TransactionKind,
    TransactionRecord,
    TransactionSource,
)
from src.validation import TransactionInputValidator


logger = structlog.get_logger(__name__)

UNCLASSIFIED_TAG = "unclassified"
ERROR_TAG = "error"


def reconcile_kind(
    amount: Decimal,
    proposed: Optional[TransactionKind],
) -> TransactionKind:
    """
    Make a proposed kind agree with a caller-determined sign.

    Negative amounts are always expenses. A non-negative amount keeps
    an income or refund proposal; an expense proposal becomes income.
    """
    if amount < 0:
        return TransactionKind.EXPENSE
    if proposed in (TransactionKind.INCOME, TransactionKind.REFUND):
        return proposed
    return TransactionKind.INCOME


class TransactionNormalizer:
    """
    Builds validated, classified TransactionRecords.

    Usage:
        normalizer = TransactionNormalizer(classifier)
        record = await normalizer.normalize_manual("-4.50", "Coffee")
    """

    def __init__(
        self,
        classifier: ClassifierInterface,
        settings: Optional[LedgerSettings] = None,
        validator: Optional[TransactionInputValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._classifier = classifier
        self._settings = settings or get_settings().ledger
        self._validator = validator or TransactionInputValidator()
        self._audit_logger = audit_logger

    async def normalize(
        self,
        raw_amount: Any,
        description: Any,
        transaction_date: Optional[date] = None,
        account: Optional[str] = None,
        source: TransactionSource = TransactionSource.MANUAL,
        path: NormalizationPath = NormalizationPath.MANUAL,
    ) -> TransactionRecord:
        """
        Validate, classify and build one record.

        Raises:
            TransactionValidationError: bad amount or empty description.
                Nothing is classified in that case.
        """
        amount, text, day = self._validator.validate_input(
            raw_amount, description, transaction_date
        )

        if path == NormalizationPath.PURCHASE:
            signed_amount = -abs(amount)
            fixed_kind = TransactionKind.EXPENSE
        elif path == NormalizationPath.REFUND:
            signed_amount = abs(amount)
            fixed_kind = TransactionKind.REFUND
        else:
            signed_amount = amount
            fixed_kind = None

        result = await self._classify(text, signed_amount)
        kind = fixed_kind or reconcile_kind(signed_amount, result.kind)

        return TransactionRecord(
            date=day or date.today(),
            amount=signed_amount,
            description=text,
            category=result.category,
            tags=result.tags,
            source=source,
            kind=kind,
            account=account or self._settings.default_account,
        )

    async def normalize_manual(
        self,
        raw_amount: Any,
        description: Any,
        transaction_date: Optional[date] = None,
        account: Optional[str] = None,
        source: TransactionSource = TransactionSource.MANUAL,
    ) -> TransactionRecord:
        """Caller-determined sign (commands, quick text, e-mail)."""
        return await self.normalize(
            raw_amount,
            description,
            transaction_date=transaction_date,
            account=account,
            source=source,
            path=NormalizationPath.MANUAL,
        )

    async def normalize_purchase(
        self,
        raw_amount: Any,
        description: Any,
        transaction_date: Optional[date] = None,
        account: Optional[str] = None,
        source: TransactionSource = TransactionSource.CREDIT_CARD,
    ) -> TransactionRecord:
        """Card debit: always stored as a negative expense."""
        return await self.normalize(
            raw_amount,
            description,
            transaction_date=transaction_date,
            account=account,
            source=source,
            path=NormalizationPath.PURCHASE,
        )

    async def _classify(self, description: str, signed_amount: Decimal) -> ClassifierResult:
        try:
            return await asyncio.wait_for(
                self._classifier.categorize(description, signed_amount),
                timeout=self._settings.classifier_timeout_seconds,
            )
        except ClassifierOutputError as e:
            await self._record_fallback(description, UNCLASSIFIED_TAG, str(e))
            return ClassifierResult(category=DEFAULT_CATEGORY, tags=[UNCLASSIFIED_TAG])
        except asyncio.TimeoutError:
            await self._record_fallback(description, ERROR_TAG, "classifier timed out")
            return ClassifierResult(category=DEFAULT_CATEGORY, tags=[ERROR_TAG])
        except Exception as e:
            await self._record_fallback(description, ERROR_TAG, str(e))
            return ClassifierResult(category=DEFAULT_CATEGORY, tags=[ERROR_TAG])

    async def _record_fallback(self, description: str, tag: str, reason: str) -> None:
        logger.warning(
            "classification_fallback",
            description=description[:100],
            tag=tag,
            reason=reason,
        )
        if self._audit_logger:
            await self._audit_logger.log_classification_fallback(
                description=description,
                reason=f"{tag}: {reason}",
            )
