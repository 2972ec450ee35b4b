"""
In-Memory Storage Implementation

Backs the test suite, and the app when no spreadsheet is configured.
Behaves like a real store as far as the scheduler can tell: records
are copied in and out, so callers never share objects with the store,
and conditional updates are atomic under a single asyncio lock.
"""

import asyncio
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from recurring_ledger.models.audit import AuditEvent
from recurring_ledger.models.transaction import (
    RecurringTemplate,
    TransactionRecord,
)
from recurring_ledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStoreInterface,
    check_update_fields,
)


class InMemoryLedgerStore(LedgerStoreInterface):
    """Ledger store held in a dict keyed by record ID."""

    def __init__(self, records: Optional[list[TransactionRecord]] = None):
        self._records: dict[UUID, TransactionRecord] = {}
        self._lock = asyncio.Lock()
        for record in records or []:
            self._records[record.id] = record.model_copy(deep=True)

    async def find_due_templates(self, before: datetime) -> list[RecurringTemplate]:
        async with self._lock:
            due = [
                record.model_copy(deep=True)
                for record in self._records.values()
                if isinstance(record, RecurringTemplate)
                and record.active
                and record.next_run is not None
                and record.next_run < before
            ]
        due.sort(key=lambda t: t.next_run)
        return due

    async def insert(self, record: TransactionRecord) -> UUID:
        async with self._lock:
            if record.id in self._records:
                raise DuplicateError(f"Record already exists: {record.id}")
            self._records[record.id] = record.model_copy(deep=True)
        return record.id

    async def update_template(
        self,
        template_id: UUID,
        expected: Mapping[str, Any],
        new_fields: Mapping[str, Any],
    ) -> bool:
        check_update_fields(expected, new_fields)
        async with self._lock:
            current = self._records.get(template_id)
            if not isinstance(current, RecurringTemplate):
                return False
            for field, value in expected.items():
                if getattr(current, field) != value:
                    return False
            # model_validate re-checks the active/next_run pairing
            updated = RecurringTemplate.model_validate(
                {**current.model_dump(), **dict(new_fields)}
            )
            self._records[template_id] = updated
        return True

    async def find_template_by_id_and_owner(
        self,
        template_id: UUID,
        owner_id: str,
    ) -> Optional[RecurringTemplate]:
        template = await self.get_template(template_id)
        if template is None or template.owner_id != owner_id:
            return None
        return template

    async def get_template(self, template_id: UUID) -> Optional[RecurringTemplate]:
        async with self._lock:
            record = self._records.get(template_id)
            if isinstance(record, RecurringTemplate):
                return record.model_copy(deep=True)
        return None

    async def list_records(
        self,
        owner_id: str,
        recurring: Optional[bool] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[TransactionRecord]:
        async with self._lock:
            records = [
                record.model_copy(deep=True)
                for record in self._records.values()
                if record.owner_id == owner_id
                and (recurring is None or record.is_recurring == recurring)
            ]
        records.sort(key=lambda r: r.occurrence_time, reverse=True)
        return records[offset:offset + limit]


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log held in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
