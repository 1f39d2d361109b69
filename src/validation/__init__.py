"""Input validation package."""

from src.validation.validator import (
    TransactionInputValidator,
    TransactionValidationError,
)

__all__ = ["TransactionInputValidator", "TransactionValidationError"]
