"""Reporting package."""

from src.reports.aggregator import (
    LedgerAggregator,
    aggregate,
    filter_rows,
    monthly_balance,
    rank_categories,
)

__all__ = [
    "LedgerAggregator",
    "aggregate",
    "filter_rows",
    "monthly_balance",
    "rank_categories",
]
