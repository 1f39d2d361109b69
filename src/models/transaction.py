"""
Core Data Models for the Finance Ledger

These models define the strict schemas for every transaction flowing
through the system:
1. Raw inputs are validated before they reach the pipeline
2. Stored ledger rows are mapped to named fields (never positional access)
3. Summaries are plain structured objects that any adapter can render

DESIGN DECISION: A TransactionRecord is frozen once built.
Corrections are new compensating records (e.g. a refund), never edits.
"""

from calendar import monthrange
from datetime import date, datetime, timezone
from datetime import date as date_type
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional, Union
from uuid import UUID, uuid4

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


CENTS = Decimal("0.01")
DEFAULT_CATEGORY = "Other"
DEFAULT_ACCOUNT = "default"


def to_decimal(value: Any) -> Decimal:
    """
    Convert a number or numeric string to a currency-scale Decimal.

    Floats go through str() so 12.34 stays 12.34 and not 12.339999...
    Raises ValueError for anything that isn't a finite number.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a valid amount: {value!r}")
    if isinstance(value, Decimal):
        amount = value
    else:
        raw = str(value).strip().replace(" ", "")
        if "," in raw and "." in raw:
            raw = raw.replace(",", "")
        else:
            raw = raw.replace(",", ".")
        try:
            amount = Decimal(raw)
        except (InvalidOperation, ValueError):
            raise ValueError(f"Not a valid amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Not a valid amount: {value!r}")
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_tags(value: Union[str, list, tuple, set, None]) -> list[str]:
    """Accept a comma-separated string or any iterable of labels."""
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = [str(item) for item in value]
    tags: list[str] = []
    for item in items:
        tag = item.strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionSource(str, Enum):
    """Where a transaction came from."""
    MANUAL = "manual"
    CREDIT_CARD = "credit_card"
    EMAIL = "email"
    IMPORT = "import"


class TransactionKind(str, Enum):
    """
    Semantic type of a transaction.

    The sign of the stored amount must agree with the kind:
    expense is negative, income and refund are non-negative.
    """
    EXPENSE = "expense"
    INCOME = "income"
    REFUND = "refund"

    @classmethod
    def from_amount(cls, amount: Decimal) -> "TransactionKind":
        """Infer a kind purely from the amount sign."""
        return cls.EXPENSE if amount < 0 else cls.INCOME


class TransactionStatus(str, Enum):
    """Only confirmed transactions are modelled."""
    CONFIRMED = "confirmed"


class NormalizationPath(str, Enum):
    """
    Entry contract used to build a record.

    MANUAL keeps the caller's sign; PURCHASE and REFUND coerce it.
    """
    MANUAL = "manual"
    PURCHASE = "purchase"
    REFUND = "refund"


class AggregationMode(str, Enum):
    """
    How non-negative rows are read in a summary.

    BALANCE: credits are income, net = income - expenses.
    CARD: credits are refunds, net spent = spent - refunds.
    """
    BALANCE = "balance"
    CARD = "card"


# =============================================================================
# CORE TRANSACTION MODEL
# =============================================================================

class TransactionRecord(BaseModel):
    """
    One persisted financial event (a ledger row).

    CRITICAL: amount sign and kind are validated together.
    A record that violates the sign rule can never be constructed.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    # Identity
    id: UUID = Field(
        default_factory=uuid4,
        description="Unique transaction ID"
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the record was built"
    )

    date: date_type = Field(
        default_factory=date.today,
        description="Calendar date of the transaction"
    )
    amount: Decimal = Field(
        ...,
        description="Signed amount: negative is money out, positive is money in"
    )
    description: str = Field(
        ...,
        min_length=1,
        max_length=500,
        description="Merchant or free-text label"
    )
    category: str = Field(
        default=DEFAULT_CATEGORY,
        max_length=100,
        description="Category from the open, user-extensible taxonomy"
    )
    tags: list[str] = Field(
        default_factory=list,
        description="Free-text labels, order irrelevant"
    )
    source: TransactionSource = Field(
        default=TransactionSource.MANUAL,
        description="Origin of the transaction"
    )
    kind: TransactionKind = Field(
        ...,
        description="expense, income or refund"
    )
    account: str = Field(
        default=DEFAULT_ACCOUNT,
        max_length=100,
        description="Free-text account identifier"
    )
    status: TransactionStatus = Field(
        default=TransactionStatus.CONFIRMED,
    )
    original_id: Optional[UUID] = Field(
        default=None,
        description="Purchase this record refunds, if one was linked"
    )

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @field_validator("category", mode="before")
    @classmethod
    def default_category(cls, v: Any) -> str:
        if v is None or not str(v).strip():
            return DEFAULT_CATEGORY
        return str(v).strip()

    @field_validator("account", mode="before")
    @classmethod
    def default_account(cls, v: Any) -> str:
        if v is None or not str(v).strip():
            return DEFAULT_ACCOUNT
        return str(v).strip()

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, v: Any) -> list[str]:
        return parse_tags(v)

    @field_validator("original_id", mode="before")
    @classmethod
    def empty_original_id(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return v

    @model_validator(mode="after")
    def validate_sign(self) -> "TransactionRecord":
        """Amount sign must agree with kind."""
        if self.kind == TransactionKind.EXPENSE and self.amount >= 0:
            raise ValueError("Expense amount must be negative")
        if self.kind in (TransactionKind.INCOME, TransactionKind.REFUND) and self.amount < 0:
            raise ValueError(f"{self.kind.value.capitalize()} amount cannot be negative")
        if self.original_id is not None and self.kind != TransactionKind.REFUND:
            raise ValueError("Only refunds can reference an original transaction")
        return self

    @property
    def is_expense(self) -> bool:
        return self.amount < 0

    @property
    def is_credit(self) -> bool:
        return self.amount >= 0

    @property
    def tags_text(self) -> str:
        return ", ".join(self.tags)

    def matches_amount(self, amount: Decimal, tolerance: Decimal = CENTS) -> bool:
        """Compare absolute amounts within a tolerance."""
        return abs(abs(self.amount) - abs(amount)) < tolerance


# =============================================================================
# CLASSIFIER / PARSER OUTPUT
# =============================================================================

class ClassifierResult(BaseModel):
    """
    Validated categorization guess.

    This is PROPOSED data from an unreliable oracle, parsed defensively.
    """
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    category: str = Field(default=DEFAULT_CATEGORY, max_length=100)
    tags: list[str] = Field(default_factory=list)
    kind: Optional[TransactionKind] = Field(
        default=None,
        validation_alias=AliasChoices("kind", "type"),
        description="Kind the classifier believes this is"
    )

    @field_validator("category", mode="before")
    @classmethod
    def default_category(cls, v: Any) -> str:
        if v is None or not str(v).strip():
            return DEFAULT_CATEGORY
        return str(v).strip()

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, v: Any) -> list[str]:
        return parse_tags(v)

    @field_validator("kind", mode="before")
    @classmethod
    def lenient_kind(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        value = str(v).strip().lower()
        return value if value in {k.value for k in TransactionKind} else None


class StatementLine(BaseModel):
    """One transaction descriptor extracted from a statement."""
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    date: Optional[date_type] = None
    amount: Decimal
    description: str = Field(..., min_length=1)
    category: Optional[str] = None
    kind: Optional[TransactionKind] = Field(default=None, validation_alias=AliasChoices("kind", "type"))
    is_refund: Optional[bool] = Field(default=None, validation_alias=AliasChoices("is_refund", "isRefund"))

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @field_validator("date", mode="before")
    @classmethod
    def blank_date(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return v

    @field_validator("kind", mode="before")
    @classmethod
    def lenient_kind(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        value = str(v).strip().lower()
        return value if value in {k.value for k in TransactionKind} else None


class EmailTransaction(BaseModel):
    """Transaction details extracted from a bank notification e-mail."""
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    amount: Decimal
    description: str = Field(..., min_length=1)
    date: Optional[date_type] = None
    account: Optional[str] = None
    kind: Optional[TransactionKind] = Field(default=None, validation_alias=AliasChoices("kind", "type"))

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v: Any) -> Decimal:
        return to_decimal(v)

    @field_validator("date", "account", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return v

    @field_validator("kind", mode="before")
    @classmethod
    def lenient_kind(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        value = str(v).strip().lower()
        return value if value in {k.value for k in TransactionKind} else None


# =============================================================================
# AGGREGATION MODELS
# =============================================================================

class DateWindow(BaseModel):
    """Inclusive date range used to scope a report or a search."""
    model_config = ConfigDict(frozen=True)

    start: date
    end: date

    @model_validator(mode="after")
    def validate_order(self) -> "DateWindow":
        if self.end < self.start:
            raise ValueError("Window end cannot be before start")
        return self

    @classmethod
    def for_month(cls, year: int, month: int) -> "DateWindow":
        last_day = monthrange(year, month)[1]
        return cls(start=date(year, month, 1), end=date(year, month, last_day))

    @classmethod
    def current_month(cls, today: Optional[date] = None) -> "DateWindow":
        today = today or date.today()
        return cls.for_month(today.year, today.month)

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    @property
    def label(self) -> str:
        return f"{self.start.isoformat()} to {self.end.isoformat()}"


class CategoryTotal(BaseModel):
    """Aggregated spend for one category."""
    model_config = ConfigDict(frozen=True)

    category: str
    total: Decimal


class LedgerSummary(BaseModel):
    """
    Result of aggregating a window of ledger rows.

    The sign convention of ``net`` depends on ``mode``:
    BALANCE -> income - expenses, CARD -> spent - refunds.
    """
    model_config = ConfigDict(frozen=True)

    mode: AggregationMode
    window: Optional[DateWindow] = None
    account: Optional[str] = None
    category: Optional[str] = None

    total_expense: Decimal = Decimal("0.00")
    total_income: Decimal = Decimal("0.00")
    total_refund: Decimal = Decimal("0.00")
    net: Decimal = Decimal("0.00")
    category_breakdown: list[CategoryTotal] = Field(default_factory=list)
    count: int = Field(default=0, ge=0)

    def top_categories(self, limit: int = 5) -> list[CategoryTotal]:
        return self.category_breakdown[:limit]

    @property
    def breakdown_dict(self) -> dict[str, Decimal]:
        return {item.category: item.total for item in self.category_breakdown}

    # Card-report vocabulary
    @property
    def total_spent(self) -> Decimal:
        return self.total_expense

    @property
    def total_refunds(self) -> Decimal:
        return self.total_refund

    @property
    def net_spent(self) -> Decimal:
        return self.total_expense - self.total_refund


# =============================================================================
# BATCH IMPORT MODELS
# =============================================================================

class BatchFailure(BaseModel):
    """One descriptor that could not be imported."""

    index: int = Field(ge=0, description="Position in the input batch")
    descriptor: dict[str, Any] = Field(default_factory=dict)
    error: str


class BatchImportResult(BaseModel):
    """
    Outcome of a statement import.

    A batch always "succeeds"; individual failures are listed here.
    """

    account: str
    succeeded: list[TransactionRecord] = Field(default_factory=list)
    failed: list[BatchFailure] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)
