"""
In-Memory Storage Implementation

Used for tests and for running the app without Google Sheets configured.
Behaves like the Sheets ledger: append-only, insertion ordered.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from src.models.audit import AuditEvent
from src.models.transaction import TransactionRecord
from src.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStoreInterface,
)


class InMemoryLedgerStore(LedgerStoreInterface):
    """List-backed ledger. Records are frozen, so no copies are needed."""

    def __init__(
        self,
        records: Optional[list[TransactionRecord]] = None,
        settings: Optional[dict[str, str]] = None,
        categories: Optional[list[dict[str, str]]] = None,
    ):
        self._records: list[TransactionRecord] = list(records or [])
        self._settings: dict[str, str] = dict(settings or {})
        self._categories: list[dict[str, str]] = list(categories or [])

    @property
    def records(self) -> list[TransactionRecord]:
        return list(self._records)

    async def append_transaction(self, record: TransactionRecord) -> bool:
        if any(existing.id == record.id for existing in self._records):
            raise DuplicateError(f"Transaction already stored: {record.id}")
        self._records.append(record)
        return True

    async def list_transactions(
        self,
        limit: int = 100,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[TransactionRecord]:
        rows = self._records[-limit:] if limit else []
        return [
            row for row in rows
            if (date_from is None or row.date >= date_from)
            and (date_to is None or row.date <= date_to)
        ]

    async def get_transaction_by_id(
        self,
        transaction_id: UUID,
    ) -> Optional[TransactionRecord]:
        for record in self._records:
            if record.id == transaction_id:
                return record
        return None

    async def get_setting(self, name: str) -> Optional[str]:
        return self._settings.get(name)

    def set_setting(self, name: str, value: str) -> None:
        self._settings[name] = value

    async def list_categories(self) -> list[dict[str, str]]:
        return [dict(category) for category in self._categories]

    async def add_category(
        self,
        name: str,
        keywords: str = "",
        budget: str = "",
        color: str = "",
    ) -> bool:
        self._categories.append(
            {"name": name, "keywords": keywords, "budget": budget, "color": color}
        )
        return True


class InMemoryAuditStorage(AuditStorageInterface):
    """List-backed audit log."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]
