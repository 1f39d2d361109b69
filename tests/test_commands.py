"""
Tests for the chat command handler and message formatting.
"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from conftest import StubClassifier
from src.bot import BotCommandHandler, parse_command, parse_quick_transaction
from src.bot.formatting import GENERIC_ERROR, format_money
from src.orchestrator import ReportFlow, TransactionFlow
from src.services.storage import InMemoryLedgerStore


TODAY = date(2024, 3, 20)


@pytest.fixture
def handler(store, classifier, ledger_settings):
    return BotCommandHandler(
        TransactionFlow(store, classifier, settings=ledger_settings),
        ReportFlow(store, settings=ledger_settings),
    )


def reply(handler, text):
    return asyncio.run(handler.handle_text(text, today=TODAY))


class TestParsing:
    def test_parse_command_strips_bot_name(self):
        """Test the  suffix is removed from commands."""
        assert parse_command("/add@LedgerBot 25 Coffee") == ("/add", ["25", "Coffee"])

    def test_quick_transaction(self):
        """Test amount-then-description text is recognised."""
        assert parse_quick_transaction("25.50 Coffee at work") == ("25.50", "Coffee at work")
        assert parse_quick_transaction("-100 Groceries") == ("-100", "Groceries")

    def test_quick_transaction_needs_two_decimals_or_none(self):
        """Test quick text needs whole or two-decimal amounts."""
        assert parse_quick_transaction("25.5 Coffee") is None
        assert parse_quick_transaction("hello there") is None


class TestCommands:
    def test_start_and_help(self, handler):
        """Test the welcome and help texts."""
        assert "/add" in reply(handler, "/start")
        assert "Personal Finance Bot Help" in reply(handler, "/help")

    def test_add_records_transaction(self, handler, store):
        """Test /add stores a transaction dated today."""
        text = reply(handler, "/add -25.50 Coffee at Starbucks")
        assert "Transaction added" in text
        assert store.records[0].description == "Coffee at Starbucks"
        assert store.records[0].amount == Decimal("-25.50")
        assert store.records[0].date == TODAY

    def test_add_without_arguments_shows_usage(self, handler, store):
        """Test /add without a description shows usage."""
        assert reply(handler, "/add 25").startswith("Usage: /add")
        assert store.records == []

    def test_add_with_bad_amount_shows_usage(self, handler, store):
        """Test /add with a bad amount shows the issue and usage."""
        text = reply(handler, "/add abc Coffee")
        assert "not a valid number" in text
        assert "Usage: /add" in text
        assert store.records == []

    def test_quick_text_records_transaction(self, handler, store):
        """Test quick text stores a transaction."""
        assert "Transaction added" in reply(handler, "-4.50 Coffee")
        assert len(store.records) == 1

    def test_plain_chat_is_ignored(self, handler, store):
        """Test ordinary chat and unknown commands get no reply."""
        assert reply(handler, "good morning") is None
        assert reply(handler, "/unknown") is None
        assert reply(handler, "   ") is None

    def test_refund_command(self, handler, store):
        """Test /refund links to an earlier purchase."""
        reply(handler, "/add -12.34 Coffee Shop")
        text = reply(handler, "/refund 12.34 Coffee Shop refund")
        assert "Refund processed" in text
        assert "Linked to original purchase" in text
        assert store.records[-1].original_id == store.records[0].id

    def test_refund_usage(self, handler):
        """Test /refund without arguments shows usage."""
        assert reply(handler, "/refund").startswith("Usage: /refund")

    def test_balance_and_reports(self, handler):
        """Test /balance, /report and /ccreport read the same month."""
        reply(handler, "/add -10 Lunch")
        reply(handler, "/add 5 Cashback")

        assert "Total: -$5.00" in reply(handler, "/balance")
        report = reply(handler, "/report")
        assert "Income: $5.00" in report
        assert "Expenses: $10.00" in report
        assert "Top Categories" in report
        card = reply(handler, "/ccreport")
        assert "Total Spent: $10.00" in card
        assert "Total Refunds: $5.00" in card

    def test_categories(self, classifier, ledger_settings):
        """Test /categories lists the category names."""
        store = InMemoryLedgerStore(categories=[{"name": "Food"}, {"name": "Travel"}])
        handler = BotCommandHandler(
            TransactionFlow(store, classifier, settings=ledger_settings),
            ReportFlow(store, settings=ledger_settings),
        )
        assert reply(handler, "/categories") == "🏷️ Categories:\n\n• Food\n• Travel"

    def test_unexpected_failure_gives_generic_reply(self, ledger_settings):
        """Test an unexpected failure gets the generic error reply."""
        class BrokenStore(InMemoryLedgerStore):
            async def list_transactions(self, limit=100, date_from=None, date_to=None):
                raise RuntimeError("sheet down")

        store = BrokenStore()
        handler = BotCommandHandler(
            TransactionFlow(store, StubClassifier(), settings=ledger_settings),
            ReportFlow(store, settings=ledger_settings),
        )
        assert reply(handler, "/balance") == GENERIC_ERROR


def test_format_money():
    """Test money formatting with signs and thousands separators."""
    assert format_money(Decimal("1234.5")) == "$1,234.50"
    assert format_money(Decimal("-3")) == "-$3.00"
    assert format_money(Decimal("3"), signed=True) == "+$3.00"
