"""
Main Orchestrator for Recurring Ledger

This module ties together all the components:
1. Sweep (trigger -> select due -> materialize -> advance)
2. Lifecycle (add / stop / preview, on behalf of an authenticated owner)

DESIGN DECISION: Both flows share one store and one audit logger, so a
user's stop and the scheduler's advance always race on the same rows
through the same compare-and-set.
"""

import asyncio
import contextlib
import threading
from dataclasses import dataclass
from typing import Optional

import structlog

from recurring_ledger.audit import AuditLogger
from recurring_ledger.config import get_settings
from recurring_ledger.scheduler import (
    Clock,
    DailySchedule,
    RecurrenceLifecycleController,
    SweepDriver,
    SweepRunner,
    SweepTrigger,
)
from recurring_ledger.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStore,
    InMemoryLedgerStore,
    LedgerStoreInterface,
)


logger = structlog.get_logger(__name__)


@dataclass
class AppComponents:
    """Everything a caller needs, wired to one store."""
    store: LedgerStoreInterface
    sweep_driver: SweepDriver
    lifecycle: RecurrenceLifecycleController
    audit_logger: AuditLogger
    sheets_client: Optional[GoogleSheetsClient] = None


def create_app_components(
    use_storage: bool = True,
    clock: Optional[Clock] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False (or leave Sheets unconfigured) to run
                    against an in-memory ledger.
        clock: Clock for the sweep driver (system clock by default)
    """
    sheets_client = None
    store: LedgerStoreInterface

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            store = GoogleSheetsLedgerStore(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            store = InMemoryLedgerStore()
            audit_logger = AuditLogger()  # Local-only logging
    else:
        store = InMemoryLedgerStore()
        audit_logger = AuditLogger()

    settings = get_settings().scheduler
    return AppComponents(
        store=store,
        sweep_driver=SweepDriver(
            store, clock=clock, audit_logger=audit_logger, settings=settings
        ),
        lifecycle=RecurrenceLifecycleController(
            store, audit_logger=audit_logger, settings=settings
        ),
        audit_logger=audit_logger,
        sheets_client=sheets_client,
    )


async def run_scheduler(
    components: AppComponents,
    trigger: Optional[SweepTrigger] = None,
) -> None:
    """
    Run the daily sweep until cancelled or until the trigger is closed.

    One sweep runs immediately on startup so that templates that fell due
    while the process was down are caught up.
    """
    settings = get_settings().scheduler
    trigger = trigger or SweepTrigger()
    schedule = DailySchedule(
        trigger,
        hour=settings.sweep_hour,
        minute=settings.sweep_minute,
    )
    runner = SweepRunner(components.sweep_driver)

    trigger.fire("startup")
    logger.info("scheduler_started", next_run=schedule.next_run_at().isoformat())

    schedule_task = asyncio.create_task(schedule.run())
    try:
        await runner.serve(trigger)
    finally:
        trigger.close()
        schedule_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await schedule_task
        logger.info("scheduler_stopped")


class BackgroundLoop:
    """
    One event loop on a daemon thread, shared by every caller.

    The components hold asyncio locks, which belong to the loop they are
    first contended on. Callers that each spin up their own loop (one per
    UI session) would trip over that, so all of them submit here instead.
    """

    def __init__(self):
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever,
            name="recurring-ledger-loop",
            daemon=True,
        )
        self._thread.start()

    def run(self, coro, timeout: Optional[float] = None):
        """Run a coroutine on the shared loop and wait for its result."""
        return asyncio.run_coroutine_threadsafe(coro, self._loop).result(timeout)

    def close(self) -> None:
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join()
        self._loop.close()
