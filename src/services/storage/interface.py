"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the ledger pipeline decoupled from storage implementation

The ledger is APPEND-ONLY. There is deliberately no update or delete:
corrections are new compensating rows (e.g. a refund).
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional
from uuid import UUID

from src.models.audit import AuditEvent
from src.models.transaction import TransactionRecord


class LedgerStoreInterface(ABC):
    """
    Abstract interface for the transaction ledger.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def append_transaction(self, record: TransactionRecord) -> bool:
        """
        Append a transaction record to the ledger.

        Args:
            record: The record to persist

        Returns:
            True if saved successfully

        Raises:
            StorageError: If the append fails
        """
        pass

    @abstractmethod
    async def list_transactions(
        self,
        limit: int = 100,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[TransactionRecord]:
        """
        List the most recent ledger rows.

        Args:
            limit: Maximum number of rows (the most recent ones are kept)
            date_from: Only rows on or after this date
            date_to: Only rows on or before this date

        Returns:
            Rows in insertion order, oldest to newest
        """
        pass

    @abstractmethod
    async def get_transaction_by_id(
        self,
        transaction_id: UUID,
    ) -> Optional[TransactionRecord]:
        """
        Retrieve a transaction by its ID.

        Returns:
            The record if found, None otherwise
        """
        pass

    @abstractmethod
    async def get_setting(self, name: str) -> Optional[str]:
        """
        Look up a name/value setting.

        Returns:
            The value, or None when the setting is absent
        """
        pass

    @abstractmethod
    async def list_categories(self) -> list[dict[str, str]]:
        """
        List the user's category taxonomy.

        Returns:
            Dicts with name, keywords, budget and color keys
        """
        pass

    @abstractmethod
    async def add_category(
        self,
        name: str,
        keywords: str = "",
        budget: str = "",
        color: str = "",
    ) -> bool:
        """
        Add a category to the taxonomy.

        Returns:
            True if saved successfully
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
