"""Shared fixtures: no network, no wall clock."""

from datetime import datetime

import pytest

from recurring_ledger.audit import AuditLogger
from recurring_ledger.config import SchedulerSettings
from recurring_ledger.scheduler import ManualClock, RecurrenceLifecycleController, SweepDriver
from recurring_ledger.services.storage import InMemoryAuditStorage, InMemoryLedgerStore


@pytest.fixture
def settings() -> SchedulerSettings:
    return SchedulerSettings(
        store_timeout_seconds=1.0,
        per_item_timeout_seconds=2.0,
        max_concurrency=4,
        conflict_retries=3,
        max_catchup_per_template=366,
    )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(datetime(2024, 2, 1, 0, 5))


@pytest.fixture
def store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def driver(store, clock, audit_logger, settings) -> SweepDriver:
    return SweepDriver(store, clock=clock, audit_logger=audit_logger, settings=settings)


@pytest.fixture
def lifecycle(store, audit_logger, settings) -> RecurrenceLifecycleController:
    return RecurrenceLifecycleController(store, audit_logger=audit_logger, settings=settings)
