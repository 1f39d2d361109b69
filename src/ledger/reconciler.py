"""
Refund Reconciler

Links an incoming refund to the purchase it reverses.

MATCHING RULES (all must hold):
1. The purchase is dated within the refund window (inclusive),
   and never after the refund itself
2. The purchase is an expense and its absolute amount equals the
   refund amount within the configured tolerance
3. One description contains the other, case-insensitively

The scan walks the most recent rows in ledger order and takes the
FIRST row that satisfies every rule. There is no ranking by date
proximity or description similarity.

A refund that matches nothing is still recorded, under the
"Refund" category. That is an outcome, not an error.

The Reconciler NEVER persists. The caller appends the record.
"""

import asyncio
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Optional, Union
from uuid import UUID

import structlog

from src.config import LedgerSettings, get_settings
from src.models.transaction import (
    TransactionKind,
    TransactionRecord,
    TransactionSource,
)
from src.services.storage import LedgerStoreInterface
from src.validation import TransactionInputValidator


logger = structlog.get_logger(__name__)

REFUND_CATEGORY = "Refund"
REFUND_TAG = "refund"
REFUND_PREFIX = "REFUND: "
MAX_DESCRIPTION_LENGTH = 500


def descriptions_compatible(stored: str, search: str) -> bool:
    """Case-insensitive containment, in either direction."""
    stored = stored.lower()
    search = search.lower()
    return search in stored or stored in search


def refund_description(description: str) -> str:
    return f"{REFUND_PREFIX}{description}"[:MAX_DESCRIPTION_LENGTH]


class RefundReconciler:
    """
    Builds refund records, linked to their purchase when one is found.

    Usage:
        reconciler = RefundReconciler(store)
        record = await reconciler.reconcile("12.34", "Coffee Shop refund")
        if record.original_id: ...
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        settings: Optional[LedgerSettings] = None,
        validator: Optional[TransactionInputValidator] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().ledger
        self._validator = validator or TransactionInputValidator()

    @property
    def tolerance(self) -> Decimal:
        return Decimal(str(self._settings.amount_tolerance))

    async def reconcile(
        self,
        amount: Any,
        description: Any,
        refund_date: Optional[date] = None,
        account: Optional[str] = None,
        original_id: Optional[Union[UUID, str]] = None,
        source: TransactionSource = TransactionSource.CREDIT_CARD,
    ) -> TransactionRecord:
        """
        Build a refund record.

        An explicit original_id is tried first. If it is unknown, or
        points at something that can't be the purchase (a credit, or a
        row dated after the refund), the fuzzy search runs instead.

        Raises:
            TransactionValidationError: bad amount or empty description
            StorageError: the ledger could not be read
            asyncio.TimeoutError: the ledger did not answer in time
        """
        value, text, day = self._validator.validate_input(amount, description, refund_date)
        value = abs(value)
        day = day or date.today()

        original = None
        if original_id is not None:
            original = await self._lookup(original_id, day)
        if original is None:
            original = await self.find_original(text, value, day)

        if original is not None:
            logger.info(
                "refund_linked",
                original_id=str(original.id),
                amount=str(value),
            )
            return TransactionRecord(
                date=day,
                amount=value,
                description=refund_description(original.description),
                category=original.category,
                tags=original.tags,
                source=source,
                kind=TransactionKind.REFUND,
                account=account or self._settings.default_account,
                original_id=original.id,
            )

        logger.info("refund_unmatched", description=text[:100], amount=str(value))
        return TransactionRecord(
            date=day,
            amount=value,
            description=refund_description(text),
            category=REFUND_CATEGORY,
            tags=[REFUND_TAG],
            source=source,
            kind=TransactionKind.REFUND,
            account=account or self._settings.default_account,
        )

    async def find_original(
        self,
        description: str,
        amount: Decimal,
        refund_date: date,
    ) -> Optional[TransactionRecord]:
        """
        Scan recent ledger rows for the purchase a refund reverses.

        Returns:
            The first compatible row, or None
        """
        rows = await asyncio.wait_for(
            self._store.list_transactions(limit=self._settings.refund_search_limit),
            timeout=self._settings.store_timeout_seconds,
        )
        window_start = refund_date - timedelta(days=self._settings.refund_window_days)
        amount = abs(amount)

        for row in rows:
            if not (window_start < row.date <= refund_date):
                continue
            if row.amount >= 0 or not row.matches_amount(amount, self.tolerance):
                continue
            if descriptions_compatible(row.description, description):
                return row
        return None

    async def _lookup(
        self,
        original_id: Union[UUID, str],
        refund_date: date,
    ) -> Optional[TransactionRecord]:
        try:
            transaction_id = original_id if isinstance(original_id, UUID) else UUID(str(original_id).strip())
        except ValueError:
            logger.warning("refund_original_id_invalid", original_id=str(original_id))
            return None

        row = await asyncio.wait_for(
            self._store.get_transaction_by_id(transaction_id),
            timeout=self._settings.store_timeout_seconds,
        )
        if row is None:
            logger.info("refund_original_not_found", original_id=str(transaction_id))
            return None
        if row.amount >= 0 or row.date > refund_date:
            logger.info("refund_original_not_a_purchase", original_id=str(transaction_id))
            return None
        return row
