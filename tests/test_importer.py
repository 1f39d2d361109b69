"""
Tests for the Statement Batch Importer.
"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from conftest import FailingStore, StubClassifier
from src.ledger import RefundReconciler, StatementBatchImporter, TransactionNormalizer
from src.models.audit import AuditEventType
from src.models.transaction import StatementLine, TransactionKind, TransactionSource
from src.services.storage import InMemoryLedgerStore


def build_importer(store, classifier, settings, audit_logger=None):
    normalizer = TransactionNormalizer(classifier, settings=settings)
    reconciler = RefundReconciler(store, settings=settings)
    return StatementBatchImporter(
        normalizer,
        reconciler,
        store,
        classifier=classifier,
        settings=settings,
        audit_logger=audit_logger,
    )


class TestImportBatch:
    """Per-line isolation and ordering."""

    def test_invalid_line_does_not_stop_the_batch(self, store, classifier, ledger_settings):
        """Test a malformed line fails alone and the rest are stored."""
        importer = build_importer(store, classifier, ledger_settings)
        descriptors = [
            {"date": "2024-03-01", "amount": "-10.00", "description": "Lunch"},
            {"date": "2024-03-02", "amount": "abc", "description": "Broken"},
            {"date": "2024-03-03", "amount": "-20.00", "description": "Train"},
        ]

        result = asyncio.run(importer.import_batch(descriptors, "Visa"))

        assert len(result.succeeded) == 2
        assert len(result.failed) == 1
        assert result.failed[0].index == 1
        assert result.failed[0].descriptor["description"] == "Broken"
        assert [r.description for r in result.succeeded] == ["Lunch", "Train"]
        assert len(store.records) == 2

    def test_purchases_and_refunds_are_routed_by_sign(self, store, classifier, ledger_settings):
        """Test negative lines are purchases and positive lines are refunds."""
        importer = build_importer(store, classifier, ledger_settings)
        lines = [
            StatementLine(date=date(2024, 3, 1), amount="-12.34", description="Coffee Shop"),
            StatementLine(date=date(2024, 3, 5), amount="12.34", description="Coffee Shop"),
        ]

        result = asyncio.run(importer.import_batch(lines, "Visa"))

        purchase, refund = result.succeeded
        assert purchase.kind == TransactionKind.EXPENSE
        assert purchase.amount == Decimal("-12.34")
        assert purchase.account == "Visa"
        assert purchase.source == TransactionSource.IMPORT
        assert refund.kind == TransactionKind.REFUND
        assert refund.source == TransactionSource.IMPORT
        assert refund.account == "Visa"

    def test_refund_links_to_purchase_on_same_statement(self, store, classifier, ledger_settings):
        """Test a refund links to a purchase in the same batch, listed before or after it."""
        importer = build_importer(store, classifier, ledger_settings)
        lines = [
            StatementLine(date=date(2024, 3, 5), amount="12.34", description="Coffee Shop"),
            StatementLine(date=date(2024, 3, 1), amount="-12.34", description="Coffee Shop"),
        ]

        result = asyncio.run(importer.import_batch(lines, "Visa"))

        refund, purchase = result.succeeded
        assert refund.kind == TransactionKind.REFUND
        assert refund.original_id == purchase.id
        assert refund.category == purchase.category
        assert [r.id for r in store.records] == [purchase.id, refund.id]

    def test_refund_links_to_previously_stored_purchase(self, make_record, classifier, ledger_settings):
        """Test a refund line links to a purchase already in the ledger."""
        purchase = make_record("-45.00", "Shoe Store", date(2024, 3, 1))
        store = InMemoryLedgerStore([purchase])
        importer = build_importer(store, classifier, ledger_settings)

        result = asyncio.run(importer.import_batch(
            [{"date": "2024-03-10", "amount": 45, "description": "SHOE STORE"}], "Visa"
        ))

        assert result.succeeded[0].original_id == purchase.id

    def test_store_failure_is_isolated(self, classifier, ledger_settings):
        """Test a failed append is reported for that line only."""
        store = FailingStore(fail_on={"Broken"})
        importer = build_importer(store, classifier, ledger_settings)
        descriptors = [
            {"amount": "-1", "description": "A"},
            {"amount": "-2", "description": "Broken sheet"},
            {"amount": "-3", "description": "C"},
        ]

        result = asyncio.run(importer.import_batch(descriptors, "Visa"))

        assert [r.description for r in result.succeeded] == ["A", "C"]
        assert result.failed[0].index == 1
        assert "Sheet unavailable" in result.failed[0].error

    def test_results_follow_input_order_not_completion_order(self, store, ledger_settings):
        """Test a slow first line is still reported first."""
        class SlowFirst(StubClassifier):
            async def categorize(self, description, signed_amount):
                if description == "Slow":
                    await asyncio.sleep(0.05)
                return await super().categorize(description, signed_amount)

        importer = build_importer(store, SlowFirst(), ledger_settings)
        descriptors = [
            {"amount": "-1", "description": "Slow"},
            {"amount": "-2", "description": "Fast"},
        ]

        result = asyncio.run(importer.import_batch(descriptors, "Visa"))

        assert [r.description for r in result.succeeded] == ["Slow", "Fast"]

    def test_non_dict_descriptor_fails_cleanly(self, store, classifier, ledger_settings):
        """Test None and plain strings become failures, not crashes."""
        importer = build_importer(store, classifier, ledger_settings)
        result = asyncio.run(importer.import_batch([None, "garbage"], "Visa"))
        assert [f.index for f in result.failed] == [0, 1]
        assert result.succeeded == []

    def test_batch_is_audited(self, store, classifier, ledger_settings, audit_logger, audit_storage):
        """Test each failed line and the batch completion are audited."""
        importer = build_importer(store, classifier, ledger_settings, audit_logger=audit_logger)
        asyncio.run(importer.import_batch(
            [{"amount": "-1", "description": "A"}, {"amount": "0", "description": "Zero"}], "Visa"
        ))
        types = [e.event_type for e in audit_storage.events]
        assert types == [AuditEventType.BATCH_ITEM_FAILED, AuditEventType.BATCH_COMPLETED]


class TestImportStatementText:
    """Parsing delegated to the classifier."""

    def test_parsed_lines_are_imported(self, store, ledger_settings):
        """Test lines parsed by the classifier reach the ledger."""
        classifier = StubClassifier(statement_lines=[
            StatementLine(date=date(2024, 3, 1), amount="-9.99", description="Netflix"),
        ])
        importer = build_importer(store, classifier, ledger_settings)

        result = asyncio.run(importer.import_statement_text("statement text", "Visa"))

        assert len(result.succeeded) == 1
        assert store.records[0].description == "Netflix"

    def test_unparseable_statement_gives_empty_result(self, store, classifier, ledger_settings):
        """Test a statement with no parsed lines imports nothing."""
        importer = build_importer(store, classifier, ledger_settings)
        result = asyncio.run(importer.import_statement_text("???", "Visa"))
        assert result.total == 0
        assert result.account == "Visa"
        assert store.records == []

    def test_requires_classifier(self, store, classifier, ledger_settings):
        """Test statement text cannot be imported without a classifier."""
        normalizer = TransactionNormalizer(classifier, settings=ledger_settings)
        importer = StatementBatchImporter(
            normalizer, RefundReconciler(store, settings=ledger_settings), store,
            settings=ledger_settings,
        )
        with pytest.raises(RuntimeError):
            asyncio.run(importer.import_statement_text("text", "Visa"))
