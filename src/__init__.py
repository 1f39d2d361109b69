"""
Finance Ledger - Source Package

A personal finance ledger fed by chat commands, bank e-mails and
card statements, with Google Sheets as the system of record.

DESIGN PRINCIPLES:
1. AI classifies → Ledger records → Reports read only real rows
2. Fail early, fail visibly
3. No silent corrections: refunds are new rows, never edits
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Ledger Team"
