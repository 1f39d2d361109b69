"""
Tests for storage: Sheets row mapping and the in-memory ledger.
"""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from src.models.transaction import TransactionKind, TransactionRecord
from src.services.storage import DuplicateError, InMemoryLedgerStore, StorageError
from src.services.storage.google_sheets import (
    TRANSACTION_COLUMNS,
    GoogleSheetsLedgerStore,
    row_to_transaction,
    transaction_to_row,
)


class TestRowMapping:
    """Rows are read by header name, never by position alone."""

    def test_row_round_trip_keeps_refund_link(self):
        """Test a refund row survives the sheet round trip with its link."""
        original_id = uuid4()
        record = TransactionRecord(
            date=date(2024, 3, 11),
            amount="12.34",
            description="REFUND: Coffee Shop",
            category="Food",
            tags=["coffee"],
            kind=TransactionKind.REFUND,
            original_id=original_id,
        )
        restored = row_to_transaction(transaction_to_row(record), TRANSACTION_COLUMNS)
        assert restored == record

    def test_reordered_header(self):
        """Test cells are matched to fields by header name."""
        header = ["description", "amount", "date", "kind", "id"]
        row = ["Lunch", "-10.00", "2024-03-01", "expense", str(uuid4())]
        record = row_to_transaction(row, header)
        assert record.amount == Decimal("-10.00")
        assert record.description == "Lunch"
        assert record.category == "Other"
        assert record.original_id is None

    def test_empty_original_id_cell(self):
        """Test an unlinked record writes an empty original_id cell."""
        record = TransactionRecord(amount="-1", description="x", kind=TransactionKind.EXPENSE)
        row = transaction_to_row(record)
        assert row[TRANSACTION_COLUMNS.index("original_id")] == ""


    def test_created_at_is_timezone_aware(self):
        """Test new records carry a UTC creation time that round-trips."""
        record = TransactionRecord(amount="-1", description="x", kind=TransactionKind.EXPENSE)
        assert record.created_at.tzinfo is not None
        restored = row_to_transaction(transaction_to_row(record))
        assert restored.created_at == record.created_at


class FakeSheet:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.append_calls = 0

    def append_row(self, row, value_input_option=None):
        self.append_calls += 1
        if self.fail:
            raise RuntimeError("response lost")


class FakeClient:
    def __init__(self, sheet: FakeSheet):
        self.sheet = sheet

    def get_transactions_sheet(self):
        return self.sheet


class TestSheetsAppend:
    """Appends are written once and never retried."""

    def test_append_writes_one_row(self):
        """Test a successful append calls append_row once."""
        sheet = FakeSheet()
        store = GoogleSheetsLedgerStore(client=FakeClient(sheet))
        record = TransactionRecord(amount="-1", description="x", kind=TransactionKind.EXPENSE)
        assert asyncio.run(store.append_transaction(record)) is True
        assert sheet.append_calls == 1

    def test_failed_append_is_not_retried(self):
        """Test a failed append raises after a single attempt."""
        sheet = FakeSheet(fail=True)
        store = GoogleSheetsLedgerStore(client=FakeClient(sheet))
        record = TransactionRecord(amount="-1", description="x", kind=TransactionKind.EXPENSE)
        with pytest.raises(StorageError):
            asyncio.run(store.append_transaction(record))
        assert sheet.append_calls == 1


class TestInMemoryLedgerStore:
    def test_list_returns_most_recent_oldest_first(self, make_record):
        """Test the limit keeps the newest rows in oldest-first order."""
        rows = [make_record(f"-{i}.00", f"Row {i}", date(2024, 3, i)) for i in range(1, 6)]
        store = InMemoryLedgerStore(rows)
        recent = asyncio.run(store.list_transactions(limit=3))
        assert [r.description for r in recent] == ["Row 3", "Row 4", "Row 5"]

    def test_list_date_filters(self, make_record):
        """Test date filters are inclusive on both ends."""
        rows = [make_record("-1.00", f"Row {i}", date(2024, 3, i)) for i in range(1, 6)]
        store = InMemoryLedgerStore(rows)
        selected = asyncio.run(
            store.list_transactions(date_from=date(2024, 3, 2), date_to=date(2024, 3, 3))
        )
        assert [r.description for r in selected] == ["Row 2", "Row 3"]

    def test_duplicate_append_rejected(self, make_record):
        """Test appending the same id twice is refused."""
        record = make_record("-1.00", "x", date(2024, 3, 1))
        store = InMemoryLedgerStore([record])
        with pytest.raises(DuplicateError):
            asyncio.run(store.append_transaction(record))

    def test_settings(self):
        """Test settings lookup returns None for a missing name."""
        store = InMemoryLedgerStore(settings={"telegram_user_id": "42"})
        assert asyncio.run(store.get_setting("telegram_user_id")) == "42"
        assert asyncio.run(store.get_setting("missing")) is None
