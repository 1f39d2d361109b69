"""
Statement Batch Importer

Imports a list of statement descriptors into the ledger.

DESIGN DECISION: A batch never fails as a whole.
Every descriptor is processed in isolation: a bad line, a classifier
hiccup or a failed append becomes one entry in the failure list and the
rest of the batch carries on.

Positive amounts are refunds and go through the Reconciler.
Everything else is a purchase and goes through the Normalizer.

Lines run with bounded concurrency in two phases: purchases first, then
refunds, so a refund can link to a purchase on the same statement.
Results are reported in input order regardless of completion order.
"""

import asyncio
from typing import Any, Optional, Sequence, Union
from uuid import UUID

import structlog

from src.agents import ClassifierInterface
from src.audit import AuditLogger, create_correlation_id
from src.config import LedgerSettings, get_settings
from src.ledger.normalizer import TransactionNormalizer
from src.ledger.reconciler import RefundReconciler
from src.models.transaction import (
    BatchFailure,
    BatchImportResult,
    NormalizationPath,
    StatementLine,
    TransactionRecord,
    TransactionSource,
)
from src.services.storage import LedgerStoreInterface
from src.validation import TransactionInputValidator, TransactionValidationError


logger = structlog.get_logger(__name__)

Descriptor = Union[StatementLine, dict[str, Any]]


def describe(descriptor: Any) -> dict[str, Any]:
    """JSON-friendly copy of a descriptor for failure reports."""
    if isinstance(descriptor, StatementLine):
        return descriptor.model_dump(mode="json")
    if isinstance(descriptor, dict):
        return {str(k): v for k, v in descriptor.items()}
    return {"value": repr(descriptor)}


class StatementBatchImporter:
    """
    Imports statement lines into one account.

    Usage:
        importer = StatementBatchImporter(normalizer, reconciler, store, classifier)
        result = await importer.import_batch(lines, "Visa")
        print(len(result.succeeded), len(result.failed))
    """

    def __init__(
        self,
        normalizer: TransactionNormalizer,
        reconciler: RefundReconciler,
        store: LedgerStoreInterface,
        classifier: Optional[ClassifierInterface] = None,
        settings: Optional[LedgerSettings] = None,
        validator: Optional[TransactionInputValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._normalizer = normalizer
        self._reconciler = reconciler
        self._store = store
        self._classifier = classifier
        self._settings = settings or get_settings().ledger
        self._validator = validator or TransactionInputValidator()
        self._audit_logger = audit_logger

    async def import_batch(
        self,
        descriptors: Sequence[Descriptor],
        account_name: str,
        correlation_id: Optional[UUID] = None,
    ) -> BatchImportResult:
        """
        Import every descriptor, collecting per-line failures.

        Returns:
            BatchImportResult with succeeded/failed in input order
        """
        correlation_id = correlation_id or create_correlation_id()
        semaphore = asyncio.Semaphore(self._settings.batch_concurrency)
        outcomes: dict[int, tuple[Optional[TransactionRecord], Optional[BatchFailure]]] = {}

        def fail(index: int, descriptor: Descriptor, error: Exception) -> None:
            logger.warning(
                "batch_item_failed",
                index=index,
                account=account_name,
                error=str(error),
            )
            outcomes[index] = None, BatchFailure(
                index=index,
                descriptor=describe(descriptor),
                error=str(error),
            )

        purchases: list[tuple[int, Descriptor, StatementLine]] = []
        refunds: list[tuple[int, Descriptor, StatementLine]] = []
        for index, descriptor in enumerate(descriptors):
            try:
                line = self._validator.validate_descriptor(descriptor)
            except TransactionValidationError as e:
                fail(index, descriptor, e)
                continue
            (refunds if line.amount > 0 else purchases).append((index, descriptor, line))

        async def run(index: int, descriptor: Descriptor, line: StatementLine):
            async with semaphore:
                try:
                    outcomes[index] = await self._import_one(line, account_name), None
                except Exception as e:
                    fail(index, descriptor, e)

        # Purchases land first so refunds on the same statement can link to them.
        for phase in (purchases, refunds):
            await asyncio.gather(*(run(*item) for item in phase))

        result = BatchImportResult(account=account_name)
        for index in sorted(outcomes):
            record, failure = outcomes[index]
            if failure is not None:
                result.failed.append(failure)
                if self._audit_logger:
                    await self._audit_logger.log_batch_item_failed(
                        index=index,
                        error_message=failure.error,
                        descriptor=failure.descriptor,
                        correlation_id=correlation_id,
                    )
            else:
                result.succeeded.append(record)

        logger.info(
            "batch_import_completed",
            account=account_name,
            succeeded=len(result.succeeded),
            failed=len(result.failed),
        )
        if self._audit_logger:
            await self._audit_logger.log_batch_completed(
                account=account_name,
                succeeded=len(result.succeeded),
                failed=len(result.failed),
                correlation_id=correlation_id,
            )
        return result

    async def import_statement_text(
        self,
        text: str,
        account_name: str,
        correlation_id: Optional[UUID] = None,
    ) -> BatchImportResult:
        """
        Parse raw statement text with the classifier, then import it.

        A statement the classifier can't parse gives an empty result.
        """
        if self._classifier is None:
            raise RuntimeError("Statement parsing needs a classifier")

        correlation_id = correlation_id or create_correlation_id()
        lines = await self._classifier.parse_statement_text(text)

        if self._audit_logger:
            await self._audit_logger.log_statement_parsed(
                account=account_name,
                line_count=len(lines),
                correlation_id=correlation_id,
            )
        if not lines:
            return BatchImportResult(account=account_name)

        return await self.import_batch(lines, account_name, correlation_id=correlation_id)

    async def _import_one(self, line: StatementLine, account_name: str) -> TransactionRecord:
        if line.amount > 0:
            record = await self._reconciler.reconcile(
                line.amount,
                line.description,
                refund_date=line.date,
                account=account_name,
                source=TransactionSource.IMPORT,
            )
        else:
            record = await self._normalizer.normalize(
                line.amount,
                line.description,
                transaction_date=line.date,
                account=account_name,
                source=TransactionSource.IMPORT,
                path=NormalizationPath.PURCHASE,
            )

        await asyncio.wait_for(
            self._store.append_transaction(record),
            timeout=self._settings.store_timeout_seconds,
        )
        return record
