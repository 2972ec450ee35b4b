"""
Tests for adding, stopping and listing transactions.
"""

import asyncio
import pytest
from datetime import datetime
from decimal import Decimal

from recurring_ledger.models.audit import AuditEventType
from recurring_ledger.models.transaction import (
    IntervalUnit,
    NewTransaction,
    RealizedOccurrence,
    RecurringTemplate,
    TransactionType,
)
from recurring_ledger.scheduler import RecurrenceLifecycleController
from recurring_ledger.services.storage import (
    ConflictError,
    InMemoryLedgerStore,
    NotFoundError,
    PersistenceError,
)

from tests.factories import OWNER, make_template


def new_rent(**overrides) -> NewTransaction:
    fields = dict(
        description="Rent",
        amount=Decimal("-1200.00"),
        type=TransactionType.EXPENSE,
        category="housing",
        occurrence_time=datetime(2024, 1, 31, 9, 0),
        is_recurring=True,
        interval=IntervalUnit.MONTHLY,
    )
    fields.update(overrides)
    return NewTransaction(**fields)


class AdvanceBeforeStopStore(InMemoryLedgerStore):
    """A sweep advances the template between the stop's read and its write."""

    def __init__(self):
        super().__init__()
        self.raced = False

    async def update_template(self, template_id, expected, new_fields):
        if not self.raced and expected.get("owner_id"):
            self.raced = True
            current = await self.get_template(template_id)
            await super().update_template(
                template_id,
                expected={"next_run": current.next_run},
                new_fields={"next_run": datetime(2099, 1, 1)},
            )
        return await super().update_template(template_id, expected, new_fields)


class NeverAppliesStore(InMemoryLedgerStore):
    async def update_template(self, template_id, expected, new_fields):
        return False


class ReadOnlyStore(InMemoryLedgerStore):
    async def insert(self, record):
        raise PersistenceError("read-only")


class TestAddTransaction:
    """Tests for add_transaction."""

    def test_recurring_becomes_template(self, store, lifecycle, audit_storage):
        async def scenario():
            record = await lifecycle.add_transaction(OWNER, new_rent())
            return record, await store.get_template(record.id)

        record, stored = asyncio.run(scenario())

        assert isinstance(record, RecurringTemplate)
        assert record.owner_id == OWNER
        assert record.active is True
        assert record.next_run == datetime(2024, 2, 29, 9, 0)
        assert stored.model_dump() == record.model_dump()
        assert audit_storage.events[-1].event_type == AuditEventType.TRANSACTION_ADDED

    def test_one_time_becomes_occurrence(self, store, lifecycle):
        new = new_rent(is_recurring=False, interval=None, description="Coffee")

        async def scenario():
            record = await lifecycle.add_transaction(OWNER, new)
            return record, await store.list_records(OWNER)

        record, records = asyncio.run(scenario())

        assert isinstance(record, RealizedOccurrence)
        assert record.template_id is None
        assert [r.id for r in records] == [record.id]

    def test_store_failure_propagates(self, audit_logger, settings):
        lifecycle = RecurrenceLifecycleController(
            ReadOnlyStore(), audit_logger=audit_logger, settings=settings
        )
        with pytest.raises(PersistenceError, match="read-only"):
            asyncio.run(lifecycle.add_transaction(OWNER, new_rent()))


class TestStop:
    """Tests for stopping a recurring transaction."""

    def test_stop(self, store, lifecycle, audit_storage):
        template = make_template()

        async def scenario():
            await store.insert(template)
            result = await lifecycle.stop(template.id, OWNER)
            return result, await store.get_template(template.id)

        result, stored = asyncio.run(scenario())

        assert result.active is False
        assert result.next_run is None
        assert stored.active is False
        assert stored.next_run is None
        # Descriptive fields survive the stop
        assert stored.description == template.description
        assert stored.amount == template.amount

        [event] = [e for e in audit_storage.events if e.event_type == AuditEventType.TEMPLATE_STOPPED]
        assert event.entity_id == template.id

    def test_stop_is_idempotent(self, store, lifecycle):
        template = make_template()

        async def scenario():
            await store.insert(template)
            first = await lifecycle.stop(template.id, OWNER)
            second = await lifecycle.stop(template.id, OWNER)
            return first, second

        first, second = asyncio.run(scenario())
        assert first.active is False
        assert second.active is False
        assert second.next_run is None

    def test_other_owner_sees_not_found(self, store, lifecycle):
        template = make_template()

        async def scenario():
            await store.insert(template)
            with pytest.raises(NotFoundError, match="Transaction not found"):
                await lifecycle.stop(template.id, "user-2")
            return await store.get_template(template.id)

        stored = asyncio.run(scenario())
        assert stored.active is True
        assert stored.next_run == template.next_run

    def test_unknown_id(self, lifecycle):
        with pytest.raises(NotFoundError):
            asyncio.run(lifecycle.stop(make_template().id, OWNER))

    def test_occurrence_cannot_be_stopped(self, store, lifecycle):
        async def scenario():
            record = await lifecycle.add_transaction(
                OWNER, new_rent(is_recurring=False, interval=None)
            )
            await lifecycle.stop(record.id, OWNER)

        with pytest.raises(NotFoundError):
            asyncio.run(scenario())

    def test_stop_retries_after_concurrent_advance(self, audit_logger, settings):
        template = make_template()
        store = AdvanceBeforeStopStore()
        lifecycle = RecurrenceLifecycleController(store, audit_logger=audit_logger, settings=settings)

        async def scenario():
            await store.insert(template)
            await lifecycle.stop(template.id, OWNER)
            return await store.get_template(template.id)

        stored = asyncio.run(scenario())
        assert store.raced is True
        assert stored.active is False
        assert stored.next_run is None

    def test_stop_gives_up_after_retries(self, audit_logger, settings):
        template = make_template()
        store = NeverAppliesStore()
        lifecycle = RecurrenceLifecycleController(store, audit_logger=audit_logger, settings=settings)

        async def scenario():
            await store.insert(template)
            await lifecycle.stop(template.id, OWNER)

        with pytest.raises(ConflictError):
            asyncio.run(scenario())

    def test_stopped_template_is_never_swept(self, store, lifecycle, driver):
        template = make_template()

        async def scenario():
            await store.insert(template)
            await lifecycle.stop(template.id, OWNER)
            report = await driver.run_sweep()
            return report, await store.list_records(OWNER, recurring=False)

        report, occurrences = asyncio.run(scenario())
        assert report.selected_count == 0
        assert occurrences == []


class TestListAndPreview:
    """Tests for listing and previews."""

    def test_list_is_owner_scoped(self, store, lifecycle):
        mine = make_template()
        theirs = make_template(owner_id="user-2")

        async def scenario():
            await store.insert(mine)
            await store.insert(theirs)
            return await lifecycle.list_transactions(OWNER, recurring=True)

        records = asyncio.run(scenario())
        assert [r.id for r in records] == [mine.id]

    def test_preview(self, lifecycle):
        dates = lifecycle.preview(datetime(2024, 1, 31, 9, 0), IntervalUnit.MONTHLY, count=2)
        assert dates == [datetime(2024, 2, 29, 9, 0), datetime(2024, 3, 29, 9, 0)]

    def test_next_occurrence(self):
        assert RecurrenceLifecycleController.next_occurrence(
            datetime(2024, 2, 29), IntervalUnit.YEARLY
        ) == datetime(2025, 2, 28)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
