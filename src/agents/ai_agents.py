"""
AI Agents for the Finance Ledger

DESIGN DECISION: The LLM is treated as an UNRELIABLE ORACLE.
It is wrapped in a small capability interface so the pipeline
can be tested with stubs and so every failure mode is explicit:

1. CATEGORIZE:
   - CAN: Suggest a category, tags and kind for one transaction
   - MUST: Raise ClassifierUnavailableError when the provider errors
   - MUST: Raise ClassifierOutputError when the reply can't be parsed
   The Normalizer decides what to do with either failure.

2. PARSE STATEMENT / E-MAIL:
   - CAN: Extract transaction descriptors from free text
   - MUST: Return an empty result on any failure, never raise

The LLM never writes to the ledger. It only proposes.
"""

import json
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Optional

import google.generativeai as genai
import structlog
from pydantic import ValidationError

from src.config import GeminiSettings, get_settings
from src.models.transaction import (
    ClassifierResult,
    EmailTransaction,
    StatementLine,
)


logger = structlog.get_logger(__name__)

COMMON_CATEGORIES = [
    "Food",
    "Transport",
    "Entertainment",
    "Shopping",
    "Bills",
    "Healthcare",
    "Income",
    "Refund",
]


class ClassifierError(Exception):
    """Base exception for classifier failures."""
    pass


class ClassifierUnavailableError(ClassifierError):
    """The provider itself errored (network, quota, auth)."""
    pass


class ClassifierOutputError(ClassifierError):
    """The provider answered, but the answer was malformed."""
    pass


def extract_json(text: str, opening: str = "{", closing: str = "}") -> Any:
    """
    Pull the outermost JSON object/array out of an LLM reply.

    Replies often wrap JSON in prose or code fences.
    Raises ValueError if nothing parseable is found.
    """
    start = text.find(opening)
    end = text.rfind(closing) + 1
    if start < 0 or end <= start:
        raise ValueError("No JSON found in response")
    return json.loads(text[start:end])


class ClassifierInterface(ABC):
    """
    Best-effort categorization oracle.

    Any provider (Gemini, OpenAI, a rules engine) must implement these.
    """

    @abstractmethod
    async def categorize(
        self,
        description: str,
        signed_amount: Decimal,
    ) -> ClassifierResult:
        """
        Guess category, tags and kind for a transaction.

        Raises:
            ClassifierUnavailableError: provider error
            ClassifierOutputError: malformed or unparsable output
        """
        pass

    @abstractmethod
    async def parse_statement_text(self, raw_text: str) -> list[StatementLine]:
        """
        Extract transaction descriptors from statement text.

        Returns an empty list on any failure.
        """
        pass

    @abstractmethod
    async def parse_email(
        self,
        subject: str,
        body: str,
    ) -> Optional[EmailTransaction]:
        """
        Extract a transaction from a bank notification e-mail.

        Returns None if there is no transaction or parsing fails.
        """
        pass


class GeminiClassifier(ClassifierInterface):
    """
    Gemini-backed classifier.

    BOUNDARIES:
    - NEVER persists data
    - NEVER returns unvalidated output: every reply goes through pydantic
    """

    def __init__(self, settings: Optional[GeminiSettings] = None):
        self._settings = settings or get_settings().gemini
        self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    async def _generate(self, prompt: str) -> str:
        response = await self._model.generate_content_async(prompt)
        return response.text.strip()

    async def categorize(
        self,
        description: str,
        signed_amount: Decimal,
    ) -> ClassifierResult:
        prompt = f"""Analyze this transaction and provide category and tags:
Description: "{description}"
Amount: {signed_amount}

Respond with ONLY a JSON object in this exact format:
{{"category": "category_name", "tags": ["tag1", "tag2"], "type": "expense|income|refund"}}

Common categories: {', '.join(COMMON_CATEGORIES)}"""

        try:
            text = await self._generate(prompt)
        except Exception as e:
            raise ClassifierUnavailableError(f"Gemini request failed: {e}") from e

        try:
            data = extract_json(text)
            if not isinstance(data, dict):
                raise ValueError("Expected a JSON object")
            return ClassifierResult.model_validate(data)
        except (ValueError, ValidationError) as e:
            raise ClassifierOutputError(f"Unusable classifier reply: {e}") from e

    async def parse_statement_text(self, raw_text: str) -> list[StatementLine]:
        prompt = f"""Parse this credit card statement and extract all transactions:
{raw_text}

Return a JSON array of transactions:
[
  {{
    "date": "YYYY-MM-DD",
    "amount": number (negative for purchases, positive for refunds),
    "description": "merchant name",
    "category": "auto-detected category",
    "isRefund": boolean
  }}
]

Only include actual transactions, not fees or interest charges."""

        try:
            text = await self._generate(prompt)
            data = extract_json(text, "[", "]")
        except Exception as e:
            logger.warning("statement_parse_failed", error=str(e))
            return []

        if not isinstance(data, list):
            return []

        lines = []
        for item in data:
            try:
                lines.append(StatementLine.model_validate(item))
            except (ValidationError, TypeError, ValueError) as e:
                logger.warning("statement_line_skipped", item=item, error=str(e))
        return lines

    async def parse_email(
        self,
        subject: str,
        body: str,
    ) -> Optional[EmailTransaction]:
        prompt = f"""Extract transaction information from this bank email:
Subject: "{subject}"
Body: "{body}"

Respond with ONLY a JSON object in this format:
{{"amount": number, "description": "merchant/description", "date": "YYYY-MM-DD", "account": "account_info", "type": "expense|income|refund"}}

If no transaction is found, respond with null."""

        try:
            text = await self._generate(prompt)
            data = extract_json(text)
        except Exception as e:
            logger.info("email_parse_no_transaction", error=str(e))
            return None

        if not isinstance(data, dict) or not data.get("amount"):
            return None

        try:
            return EmailTransaction.model_validate(data)
        except ValidationError as e:
            logger.warning("email_parse_invalid", error=str(e))
            return None
