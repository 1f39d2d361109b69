"""
Tests for the Refund Reconciler.

A refund links to the FIRST recent purchase that matches on date
window, amount and description, and is still recorded when nothing
matches.
"""

import asyncio
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from src.ledger import RefundReconciler, descriptions_compatible
from src.models.transaction import TransactionKind, TransactionSource
from src.services.storage import InMemoryLedgerStore, StorageError
from src.validation import TransactionValidationError


PURCHASE_DAY = date(2024, 3, 1)


def reconcile(reconciler, *args, **kwargs):
    return asyncio.run(reconciler.reconcile(*args, **kwargs))


@pytest.fixture
def coffee_purchase(make_record):
    return make_record("-12.34", "Coffee Shop", PURCHASE_DAY, category="Food", tags=["coffee"])


class TestLinking:
    """Refunds that find their purchase."""

    def test_refund_links_to_purchase(self, coffee_purchase, ledger_settings):
        """Test a refund ten days later inherits the purchase's category and tags."""
        store = InMemoryLedgerStore([coffee_purchase])
        reconciler = RefundReconciler(store, settings=ledger_settings)

        refund = reconcile(
            reconciler, "12.34", "Coffee Shop refund",
            refund_date=PURCHASE_DAY + timedelta(days=10),
        )

        assert refund.original_id == coffee_purchase.id
        assert refund.category == "Food"
        assert refund.tags == ["coffee"]
        assert refund.description == "REFUND: Coffee Shop"
        assert refund.amount == Decimal("12.34")
        assert refund.kind == TransactionKind.REFUND
        assert refund.source == TransactionSource.CREDIT_CARD

    def test_refund_amount_sign_is_ignored(self, coffee_purchase, ledger_settings):
        """Test a negative refund amount is stored positive and still matches."""
        store = InMemoryLedgerStore([coffee_purchase])
        reconciler = RefundReconciler(store, settings=ledger_settings)
        refund = reconcile(reconciler, "-12.34", "coffee shop", refund_date=PURCHASE_DAY)
        assert refund.amount == Decimal("12.34")
        assert refund.original_id == coffee_purchase.id

    def test_shorter_refund_description_matches(self, make_record, ledger_settings):
        """Test description compatibility works in the refund-inside-purchase direction."""
        purchase = make_record("-30.00", "AMAZON MARKETPLACE DE", PURCHASE_DAY)
        reconciler = RefundReconciler(InMemoryLedgerStore([purchase]), settings=ledger_settings)
        refund = reconcile(reconciler, "30", "Amazon", refund_date=PURCHASE_DAY)
        assert refund.original_id == purchase.id

    def test_purchase_inside_window_edge_is_included(self, coffee_purchase, ledger_settings):
        """Test a purchase 89 days before the refund is still linked."""
        reconciler = RefundReconciler(InMemoryLedgerStore([coffee_purchase]), settings=ledger_settings)
        refund = reconcile(
            reconciler, "12.34", "Coffee Shop", refund_date=PURCHASE_DAY + timedelta(days=89)
        )
        assert refund.original_id == coffee_purchase.id

    def test_first_match_wins(self, make_record, ledger_settings):
        """Test the first compatible row in store order is chosen."""
        older = make_record("-20.00", "Book Store", PURCHASE_DAY)
        newer = make_record("-20.00", "Book Store", PURCHASE_DAY + timedelta(days=5))
        reconciler = RefundReconciler(InMemoryLedgerStore([older, newer]), settings=ledger_settings)
        refund = reconcile(reconciler, "20", "Book Store", refund_date=PURCHASE_DAY + timedelta(days=6))
        assert refund.original_id == older.id

    def test_explicit_original_id(self, make_record, ledger_settings):
        """Test an explicit id links even when descriptions differ."""
        target = make_record("-50.00", "Hotel", PURCHASE_DAY)
        reconciler = RefundReconciler(InMemoryLedgerStore([target]), settings=ledger_settings)
        refund = reconcile(
            reconciler, "50", "Completely different text",
            refund_date=PURCHASE_DAY, original_id=str(target.id),
        )
        assert refund.original_id == target.id
        assert refund.description == "REFUND: Hotel"


class TestNoMatch:
    """Refunds that don't find a purchase are still recorded."""

    def test_unmatched_refund(self, coffee_purchase, ledger_settings):
        """Test an unmatched refund gets the Refund category and tag."""
        reconciler = RefundReconciler(InMemoryLedgerStore([coffee_purchase]), settings=ledger_settings)
        refund = reconcile(reconciler, "999.99", "Coffee Shop", refund_date=PURCHASE_DAY)
        assert refund.original_id is None
        assert refund.category == "Refund"
        assert refund.tags == ["refund"]
        assert refund.description == "REFUND: Coffee Shop"
        assert refund.amount == Decimal("999.99")

    def test_purchase_older_than_window_is_excluded(self, coffee_purchase, ledger_settings):
        """Test a purchase 91 days old is never linked."""
        reconciler = RefundReconciler(InMemoryLedgerStore([coffee_purchase]), settings=ledger_settings)
        refund = reconcile(
            reconciler, "12.34", "Coffee Shop", refund_date=PURCHASE_DAY + timedelta(days=91)
        )
        assert refund.original_id is None

    def test_purchase_exactly_window_days_old_is_excluded(self, coffee_purchase, ledger_settings):
        """Test the window's lower bound is exclusive at 90 days."""
        reconciler = RefundReconciler(InMemoryLedgerStore([coffee_purchase]), settings=ledger_settings)
        refund = reconcile(
            reconciler, "12.34", "Coffee Shop", refund_date=PURCHASE_DAY + timedelta(days=90)
        )
        assert refund.original_id is None

    def test_purchase_after_refund_is_excluded(self, coffee_purchase, ledger_settings):
        """Test a purchase dated after the refund is not a candidate."""
        reconciler = RefundReconciler(InMemoryLedgerStore([coffee_purchase]), settings=ledger_settings)
        refund = reconcile(
            reconciler, "12.34", "Coffee Shop", refund_date=PURCHASE_DAY - timedelta(days=1)
        )
        assert refund.original_id is None

    def test_credits_are_never_matched(self, make_record, ledger_settings):
        """Test positive rows are never treated as originals."""
        credit = make_record("12.34", "Coffee Shop", PURCHASE_DAY)
        reconciler = RefundReconciler(InMemoryLedgerStore([credit]), settings=ledger_settings)
        refund = reconcile(reconciler, "12.34", "Coffee Shop", refund_date=PURCHASE_DAY)
        assert refund.original_id is None

    def test_unrelated_description_is_not_matched(self, coffee_purchase, ledger_settings):
        """Test a matching amount alone is not enough."""
        reconciler = RefundReconciler(InMemoryLedgerStore([coffee_purchase]), settings=ledger_settings)
        refund = reconcile(reconciler, "12.34", "Bakery", refund_date=PURCHASE_DAY)
        assert refund.original_id is None

    def test_unknown_original_id_falls_back_to_search(self, coffee_purchase, ledger_settings):
        """Test an id missing from the store falls through to the fuzzy search."""
        reconciler = RefundReconciler(InMemoryLedgerStore([coffee_purchase]), settings=ledger_settings)
        refund = reconcile(
            reconciler, "12.34", "Coffee Shop", refund_date=PURCHASE_DAY, original_id=uuid4(),
        )
        assert refund.original_id == coffee_purchase.id

    def test_original_id_pointing_at_credit_falls_back(self, make_record, ledger_settings):
        """Test an id pointing at a credit row is not used as the original."""
        credit = make_record("12.34", "Salary", PURCHASE_DAY)
        reconciler = RefundReconciler(InMemoryLedgerStore([credit]), settings=ledger_settings)
        refund = reconcile(
            reconciler, "12.34", "Shop", refund_date=PURCHASE_DAY, original_id=credit.id,
        )
        assert refund.original_id is None

    def test_malformed_original_id_falls_back(self, coffee_purchase, ledger_settings):
        """Test a malformed id is ignored in favour of the fuzzy search."""
        reconciler = RefundReconciler(InMemoryLedgerStore([coffee_purchase]), settings=ledger_settings)
        refund = reconcile(
            reconciler, "12.34", "Coffee Shop", refund_date=PURCHASE_DAY, original_id="not-a-uuid",
        )
        assert refund.original_id == coffee_purchase.id


class TestSearchScope:
    """The fuzzy search only looks at the most recent rows."""

    def test_rows_beyond_search_limit_are_ignored(self, make_record, ledger_settings):
        """Test a purchase pushed out of the recent rows is not found."""
        purchase = make_record("-12.34", "Coffee Shop", PURCHASE_DAY)
        filler = [
            make_record("-1.00", f"Snack {i}", PURCHASE_DAY) for i in range(3)
        ]
        settings = ledger_settings.model_copy(update={"refund_search_limit": 3})
        reconciler = RefundReconciler(InMemoryLedgerStore([purchase] + filler), settings=settings)
        refund = reconcile(reconciler, "12.34", "Coffee Shop", refund_date=PURCHASE_DAY)
        assert refund.original_id is None


class TestErrors:
    """Failures the Reconciler does not absorb."""

    def test_invalid_amount(self, store, ledger_settings):
        """Test a non-numeric amount raises before the store is read."""
        reconciler = RefundReconciler(store, settings=ledger_settings)
        with pytest.raises(TransactionValidationError):
            reconcile(reconciler, "twelve", "Coffee Shop")

    def test_store_failure_propagates(self, ledger_settings):
        """Test a store read failure reaches the caller."""
        class BrokenStore(InMemoryLedgerStore):
            async def list_transactions(self, limit=100, date_from=None, date_to=None):
                raise StorageError("sheet unavailable")

        reconciler = RefundReconciler(BrokenStore(), settings=ledger_settings)
        with pytest.raises(StorageError):
            reconcile(reconciler, "12.34", "Coffee Shop")

    def test_reconciler_never_persists(self, coffee_purchase, ledger_settings):
        """Test reconciling leaves the ledger untouched."""
        store = InMemoryLedgerStore([coffee_purchase])
        reconciler = RefundReconciler(store, settings=ledger_settings)
        reconcile(reconciler, "12.34", "Coffee Shop", refund_date=PURCHASE_DAY)
        assert store.records == [coffee_purchase]


def test_descriptions_compatible_is_symmetric_and_case_insensitive():
    """Test substring compatibility in both directions, ignoring case."""
    assert descriptions_compatible("Coffee Shop", "COFFEE SHOP REFUND")
    assert descriptions_compatible("COFFEE SHOP REFUND", "coffee shop")
    assert not descriptions_compatible("Coffee Shop", "Tea House")
