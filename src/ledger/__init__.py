"""Ledger pipeline: normalization, refund reconciliation, statement import."""

from src.ledger.importer import StatementBatchImporter
from src.ledger.normalizer import TransactionNormalizer, reconcile_kind
from src.ledger.reconciler import RefundReconciler, descriptions_compatible

__all__ = [
    "RefundReconciler",
    "StatementBatchImporter",
    "TransactionNormalizer",
    "descriptions_compatible",
    "reconcile_kind",
]
