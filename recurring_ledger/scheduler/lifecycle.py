"""
Recurrence Lifecycle Controller

The user-facing side of recurrence: adding a transaction (recurring or
not), stopping a recurring one, and previewing upcoming dates.

CRITICAL: Every operation is scoped to an owner_id that the calling
request layer has already authenticated. A template that exists but
belongs to someone else is reported exactly like one that does not
exist, so callers learn nothing about other users' data.

There is deliberately no resume operation; a stopped template stays
stopped.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from recurring_ledger.audit import AuditLogger
from recurring_ledger.config import SchedulerSettings, get_settings
from recurring_ledger.models.transaction import (
    IntervalUnit,
    NewTransaction,
    RealizedOccurrence,
    RecurringTemplate,
    TransactionRecord,
)
from recurring_ledger.scheduler.calculator import next_occurrence, preview_occurrences
from recurring_ledger.services.storage import (
    ConflictError,
    LedgerStoreInterface,
    NotFoundError,
    with_timeout,
)


class RecurrenceLifecycleController:
    """
    Handles user-initiated state changes on ledger records.

    Failures are raised synchronously to the caller:
    - NotFoundError: no such template for this owner
    - ConflictError: the template kept changing under us
    - PersistenceError: the store failed
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[SchedulerSettings] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger or AuditLogger()
        self._settings = settings or get_settings().scheduler

    async def add_transaction(
        self,
        owner_id: str,
        new: NewTransaction,
    ) -> TransactionRecord:
        """
        Record a new transaction for owner_id.

        A recurring transaction becomes a template whose first due date is
        one interval after its occurrence time. Anything else is stored as
        a one-time occurrence.
        """
        common = dict(
            owner_id=owner_id,
            description=new.description,
            amount=new.amount,
            category=new.category,
            type=new.type,
            occurrence_time=new.occurrence_time,
        )
        if new.is_recurring:
            record = RecurringTemplate(
                **common,
                interval=new.interval,
                next_run=next_occurrence(new.occurrence_time, new.interval),
                active=True,
            )
        else:
            record = RealizedOccurrence(**common)

        await self._call(self._store.insert(record), "insert transaction")

        await self._audit_logger.log_transaction_added(
            record_id=record.id,
            owner_id=owner_id,
            is_recurring=record.is_recurring,
            next_run=record.next_run if isinstance(record, RecurringTemplate) else None,
        )
        return record

    async def stop(self, template_id: UUID, owner_id: str) -> RecurringTemplate:
        """
        Stop a recurring transaction.

        Sets active=False and next_run=None. Stopping an already stopped
        template succeeds and changes nothing.

        Raises:
            NotFoundError: If owner_id has no template with this ID
            ConflictError: If the template kept changing during the update
        """
        for _ in range(self._settings.conflict_retries):
            template = await self._call(
                self._store.find_template_by_id_and_owner(template_id, owner_id),
                "find template",
            )
            if template is None:
                raise NotFoundError("Transaction not found")

            if not template.active:
                await self._audit_logger.log_template_stopped(
                    template_id, owner_id, was_active=False
                )
                return template

            # Compare-and-set on the state we just read; a sweep advancing
            # next_run in between makes this fail and we read again.
            applied = await self._call(
                self._store.update_template(
                    template_id,
                    expected={
                        "owner_id": owner_id,
                        "active": True,
                        "next_run": template.next_run,
                    },
                    new_fields={"active": False, "next_run": None},
                ),
                "stop template",
            )
            if applied:
                await self._audit_logger.log_template_stopped(
                    template_id, owner_id, was_active=True
                )
                return template.model_copy(update={"active": False, "next_run": None})

        raise ConflictError(f"Template {template_id} kept changing; try again")

    async def list_transactions(
        self,
        owner_id: str,
        recurring: Optional[bool] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[TransactionRecord]:
        """List owner_id's records, newest first."""
        return await self._call(
            self._store.list_records(owner_id, recurring=recurring, limit=limit, offset=offset),
            "list transactions",
        )

    @staticmethod
    def next_occurrence(anchor: datetime, interval: IntervalUnit) -> datetime:
        """Next date after anchor, for form validation and previews."""
        return next_occurrence(anchor, interval)

    @staticmethod
    def preview(anchor: datetime, interval: IntervalUnit, count: int = 5) -> list[datetime]:
        """Upcoming dates a template starting at anchor would produce."""
        return preview_occurrences(anchor, interval, count)

    async def _call(self, call, operation: str):
        return await with_timeout(call, self._settings.store_timeout_seconds, operation)
