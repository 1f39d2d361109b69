"""
Ledger Aggregation

DESIGN DECISION: Aggregation is DETERMINISTIC and has no I/O.
The pure functions here take rows and return numbers; the only
component that talks to storage is the thin LedgerAggregator holder.

Two readings of the same rows are supported, and the caller always
names the one it wants:

- BALANCE: non-negative rows are income, net = income - expenses
- CARD: non-negative rows are refunds, net spent = spent - refunds

Running an aggregation twice over the same rows gives the same summary.
"""

import asyncio
from collections.abc import Callable, Iterable
from decimal import Decimal
from typing import Optional

import structlog

from src.config import LedgerSettings, get_settings
from src.models.transaction import (
    AggregationMode,
    CategoryTotal,
    DateWindow,
    LedgerSummary,
    TransactionRecord,
)
from src.services.storage import LedgerStoreInterface


logger = structlog.get_logger(__name__)

ZERO = Decimal("0.00")

RowPredicate = Callable[[TransactionRecord], bool]


def filter_rows(
    rows: Iterable[TransactionRecord],
    window: Optional[DateWindow] = None,
    account: Optional[str] = None,
    category: Optional[str] = None,
    predicate: Optional[RowPredicate] = None,
) -> list[TransactionRecord]:
    """Keep the rows matching every given filter, preserving order."""
    selected = []
    for row in rows:
        if window is not None and not window.contains(row.date):
            continue
        if account is not None and row.account != account:
            continue
        if category is not None and row.category != category:
            continue
        if predicate is not None and not predicate(row):
            continue
        selected.append(row)
    return selected


def rank_categories(breakdown: dict[str, Decimal]) -> list[CategoryTotal]:
    """
    Order categories by total, largest first.

    Ties keep first-encounter order (sorted() is stable and dicts
    preserve insertion order).
    """
    ranked = sorted(breakdown.items(), key=lambda item: item[1], reverse=True)
    return [CategoryTotal(category=name, total=total) for name, total in ranked]


def aggregate(
    rows: Iterable[TransactionRecord],
    window: Optional[DateWindow] = None,
    *,
    account: Optional[str] = None,
    category: Optional[str] = None,
    predicate: Optional[RowPredicate] = None,
    mode: AggregationMode = AggregationMode.BALANCE,
) -> LedgerSummary:
    """
    Summarize rows under the chosen reading.

    Negative rows count as spending (absolute value) and feed the
    category breakdown. Non-negative rows count as income in BALANCE
    mode and as refunds in CARD mode.
    """
    selected = filter_rows(rows, window, account, category, predicate)

    total_expense = ZERO
    total_credit = ZERO
    breakdown: dict[str, Decimal] = {}

    for row in selected:
        if row.amount < 0:
            spent = abs(row.amount)
            total_expense += spent
            breakdown[row.category] = breakdown.get(row.category, ZERO) + spent
        else:
            total_credit += row.amount

    if mode == AggregationMode.CARD:
        total_income, total_refund = ZERO, total_credit
        net = total_expense - total_refund
    else:
        total_income, total_refund = total_credit, ZERO
        net = total_income - total_expense

    return LedgerSummary(
        mode=mode,
        window=window,
        account=account,
        category=category,
        total_expense=total_expense,
        total_income=total_income,
        total_refund=total_refund,
        net=net,
        category_breakdown=rank_categories(breakdown),
        count=len(selected),
    )


def monthly_balance(
    rows: Iterable[TransactionRecord],
    year: int,
    month: int,
) -> Decimal:
    """Plain sum of signed amounts dated in the given month."""
    window = DateWindow.for_month(year, month)
    return sum((row.amount for row in rows if window.contains(row.date)), ZERO)


class LedgerAggregator:
    """
    Reads recent ledger rows and hands them to the pure functions.

    The mode is always passed explicitly by the caller.
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        settings: Optional[LedgerSettings] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().ledger

    async def _rows(self, window: Optional[DateWindow]) -> list[TransactionRecord]:
        return await asyncio.wait_for(
            self._store.list_transactions(
                limit=self._settings.report_row_limit,
                date_from=window.start if window else None,
                date_to=window.end if window else None,
            ),
            timeout=self._settings.store_timeout_seconds,
        )

    async def summarize(
        self,
        window: Optional[DateWindow],
        mode: AggregationMode,
        account: Optional[str] = None,
        category: Optional[str] = None,
    ) -> LedgerSummary:
        rows = await self._rows(window)
        summary = aggregate(rows, window, account=account, category=category, mode=mode)
        logger.info(
            "ledger_summarized",
            mode=mode.value,
            window=window.label if window else None,
            account=account,
            rows=summary.count,
        )
        return summary

    async def balance(self, year: int, month: int) -> Decimal:
        window = DateWindow.for_month(year, month)
        return monthly_balance(await self._rows(window), year, month)
