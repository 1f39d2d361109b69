"""
Tests for the Gemini classifier wrapper.

The Gemini SDK is replaced with a fake model; no network calls.
"""

import asyncio
from decimal import Decimal
from types import SimpleNamespace

import google.generativeai as genai
import pytest

from src.agents import (
    ClassifierOutputError,
    ClassifierUnavailableError,
    GeminiClassifier,
    extract_json,
)
from src.config import GeminiSettings
from src.models.transaction import TransactionKind


class FakeModel:
    def __init__(self, reply: str = "", error: Exception = None):
        self.reply = reply
        self.error = error
        self.prompts: list[str] = []

    async def generate_content_async(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.reply)


@pytest.fixture
def make_classifier(monkeypatch):
    def _make(reply: str = "", error: Exception = None):
        model = FakeModel(reply, error)
        monkeypatch.setattr(genai, "configure", lambda **kwargs: None)
        monkeypatch.setattr(genai, "GenerativeModel", lambda **kwargs: model)
        return GeminiClassifier(GeminiSettings(api_key="test-key")), model

    return _make


class TestCategorize:
    def test_parses_fenced_json(self, make_classifier):
        """Test a fenced JSON reply becomes a classifier result."""
        classifier, model = make_classifier(
            '```json\n{"category": "Food", "tags": ["coffee"], "type": "expense"}\n```'
        )
        result = asyncio.run(classifier.categorize("Starbucks", Decimal("-4.50")))
        assert result.category == "Food"
        assert result.tags == ["coffee"]
        assert result.kind == TransactionKind.EXPENSE
        assert "Starbucks" in model.prompts[0]

    def test_prose_reply_is_output_error(self, make_classifier):
        """Test a reply without JSON raises an output error."""
        classifier, _ = make_classifier("I think this is food.")
        with pytest.raises(ClassifierOutputError):
            asyncio.run(classifier.categorize("Starbucks", Decimal("-4.50")))

    def test_provider_failure_is_unavailable_error(self, make_classifier):
        """Test an SDK failure raises an unavailable error."""
        classifier, _ = make_classifier(error=RuntimeError("quota exceeded"))
        with pytest.raises(ClassifierUnavailableError):
            asyncio.run(classifier.categorize("Starbucks", Decimal("-4.50")))


class TestParseStatement:
    def test_valid_lines_kept_invalid_skipped(self, make_classifier):
        """Test unparseable statement lines are dropped."""
        classifier, _ = make_classifier(
            'Here you go: [{"date": "2024-03-01", "amount": -9.99, "description": "Netflix", "isRefund": false},'
            ' {"date": "2024-03-02", "amount": "n/a", "description": "Broken"}]'
        )
        lines = asyncio.run(classifier.parse_statement_text("..."))
        assert [line.description for line in lines] == ["Netflix"]
        assert lines[0].amount == Decimal("-9.99")

    def test_failure_gives_empty_list(self, make_classifier):
        """Test a failed statement parse gives no lines."""
        classifier, _ = make_classifier(error=RuntimeError("down"))
        assert asyncio.run(classifier.parse_statement_text("...")) == []


class TestParseEmail:
    def test_transaction_found(self, make_classifier):
        """Test a transaction e-mail is parsed with a blank account as None."""
        classifier, _ = make_classifier(
            '{"amount": -42.0, "description": "Supermarket", "date": "2024-03-01", "account": "", "type": "expense"}'
        )
        parsed = asyncio.run(classifier.parse_email("Card used", "..."))
        assert parsed.amount == Decimal("-42.00")
        assert parsed.account is None

    def test_null_reply_means_no_transaction(self, make_classifier):
        """Test a null reply means the e-mail has no transaction."""
        classifier, _ = make_classifier("null")
        assert asyncio.run(classifier.parse_email("Newsletter", "...")) is None

    def test_missing_amount_means_no_transaction(self, make_classifier):
        """Test a reply without an amount means no transaction."""
        classifier, _ = make_classifier('{"description": "Statement ready"}')
        assert asyncio.run(classifier.parse_email("Statement", "...")) is None


def test_extract_json_raises_without_json():
    """Test extract_json raises when no JSON is present."""
    with pytest.raises(ValueError):
        extract_json("no json here")
