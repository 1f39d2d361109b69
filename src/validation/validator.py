"""
Transaction Input Validation

Raw inputs (chat commands, parsed e-mails, statement lines) are checked
here BEFORE they reach the Normalizer or the Reconciler.

IMPORTANT: Validation NEVER silently fixes issues.
A rejected input is reported back to the caller as a usage problem
and is never persisted.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional, Union

from pydantic import ValidationError

from src.models.transaction import StatementLine, to_decimal


MAX_DESCRIPTION_LENGTH = 500


class TransactionValidationError(ValueError):
    """Input rejected before classification. Carries every issue found."""

    def __init__(self, issues: list[str]):
        self.issues = issues
        super().__init__("; ".join(issues))


class TransactionInputValidator:
    """
    Validates the (amount, description, date) triple every entry path shares.

    All issues are collected before raising, so the user sees
    everything that is wrong in one message.
    """

    def _check_amount(self, amount: Any, issues: list[str]) -> Optional[Decimal]:
        if amount is None or (isinstance(amount, str) and not amount.strip()):
            issues.append("Amount is required")
            return None
        try:
            value = to_decimal(amount)
        except ValueError:
            issues.append(f"Amount is not a valid number: {amount!r}")
            return None
        if value == 0:
            issues.append("Amount must not be zero")
            return None
        return value

    def _check_description(self, description: Any, issues: list[str]) -> Optional[str]:
        text = str(description).strip() if description is not None else ""
        if not text:
            issues.append("Description is required")
            return None
        if len(text) > MAX_DESCRIPTION_LENGTH:
            issues.append(f"Description is longer than {MAX_DESCRIPTION_LENGTH} characters")
            return None
        return text

    def _check_date(self, value: Any, issues: list[str]) -> Optional[date]:
        if value is None or value == "":
            return None
        if isinstance(value, date):
            return value
        try:
            return date.fromisoformat(str(value).strip())
        except ValueError:
            issues.append(f"Date must be YYYY-MM-DD: {value!r}")
            return None

    def validate_input(
        self,
        amount: Any,
        description: Any,
        transaction_date: Any = None,
    ) -> tuple[Decimal, str, Optional[date]]:
        """
        Validate one raw transaction.

        Returns:
            (amount, description, date) with the amount quantized

        Raises:
            TransactionValidationError: listing every issue found
        """
        issues: list[str] = []
        value = self._check_amount(amount, issues)
        text = self._check_description(description, issues)
        day = self._check_date(transaction_date, issues)
        if issues:
            raise TransactionValidationError(issues)
        return value, text, day

    def validate_descriptor(
        self,
        descriptor: Union[StatementLine, dict[str, Any]],
    ) -> StatementLine:
        """
        Validate one statement descriptor for the batch importer.

        Raises:
            TransactionValidationError: if the descriptor is empty or invalid
        """
        if isinstance(descriptor, StatementLine):
            line = descriptor
        else:
            if not descriptor:
                raise TransactionValidationError(["Descriptor is empty"])
            try:
                line = StatementLine.model_validate(descriptor)
            except ValidationError as e:
                raise TransactionValidationError(
                    [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
                )

        # Re-run the shared checks (zero amount, description length)
        self.validate_input(line.amount, line.description, line.date)
        return line
