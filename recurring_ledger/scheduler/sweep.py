"""
Sweep Driver

One sweep:
1. Select every active template whose next_run is before the start of
   tomorrow (due today or overdue)
2. For each template, independently:
   materialize the due occurrence -> compute the next run -> advance the
   template with a compare-and-set, repeating while it is still overdue
3. Return a SweepReport; nothing here raises to the caller

DESIGN DECISION: Materialize first, advance second.
A crash in between leaves next_run untouched, so the next sweep tries the
same due date again. Occurrence IDs are derived from (template, due date),
so that retry finds the row already written instead of adding a second
one. The guarantee is still at-least-once if the store cannot enforce
unique IDs.

CRITICAL: A template is only ever advanced with
expected = {active: True, next_run: <the due date we materialized>}.
A user stopping the template mid-sweep makes that write fail, and the
stop wins.
"""

import asyncio
from datetime import datetime
from typing import Optional
from uuid import UUID

from recurring_ledger.audit import AuditLogger
from recurring_ledger.config import SchedulerSettings, get_settings
from recurring_ledger.models.transaction import (
    OutcomeStatus,
    RecurringTemplate,
    SweepReport,
    TemplateOutcome,
)
from recurring_ledger.scheduler.calculator import InvalidIntervalError, next_occurrence
from recurring_ledger.scheduler.clock import Clock, SystemClock, start_of_next_day
from recurring_ledger.scheduler.materializer import OccurrenceMaterializer, occurrence_id_for
from recurring_ledger.services.storage import (
    ConflictError,
    DuplicateError,
    LedgerStoreInterface,
    PersistenceError,
    with_timeout,
)


class SweepDriver:
    """
    Runs sweeps against a ledger store.

    Sweeps never overlap: a sweep requested while another is running
    returns immediately with a skipped report.
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        clock: Optional[Clock] = None,
        materializer: Optional[OccurrenceMaterializer] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[SchedulerSettings] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().scheduler
        self._clock = clock or SystemClock()
        self._materializer = materializer or OccurrenceMaterializer(
            store, store_timeout=self._settings.store_timeout_seconds
        )
        self._audit_logger = audit_logger or AuditLogger()
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def run_sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """
        Run one sweep.

        Args:
            now: Processing time; defaults to the driver's clock

        Returns:
            The sweep report (skipped=True if a sweep was already running)
        """
        now = now or self._clock.now()

        if self._lock.locked():
            report = SweepReport(started_at=now, finished_at=now, skipped=True)
            await self._audit_logger.log_sweep_skipped(report.sweep_id)
            return report

        async with self._lock:
            return await self._sweep(now)

    async def _sweep(self, now: datetime) -> SweepReport:
        boundary = start_of_next_day(now)
        report = SweepReport(started_at=now, boundary=boundary)
        await self._audit_logger.log_sweep_started(report.sweep_id, boundary)

        try:
            templates = await self._call(
                self._store.find_due_templates(boundary), "find due templates"
            )
        except Exception as e:
            # Selection failures are retried by the next scheduled sweep
            report.selection_error = str(e)
            report.finished_at = self._clock.now()
            await self._audit_logger.log_sweep_selection_failed(report.sweep_id, str(e))
            return report

        report.selected_count = len(templates)
        semaphore = asyncio.Semaphore(self._settings.max_concurrency)

        async def process(template: RecurringTemplate) -> TemplateOutcome:
            async with semaphore:
                return await self._process_isolated(template, boundary, report.sweep_id)

        report.outcomes = list(await asyncio.gather(*(process(t) for t in templates)))
        report.finished_at = self._clock.now()

        await self._audit_logger.log_sweep_completed(
            sweep_id=report.sweep_id,
            selected=report.selected_count,
            materialized=report.materialized_count,
            failed=report.failed_count,
        )
        return report

    async def _process_isolated(
        self,
        template: RecurringTemplate,
        boundary: datetime,
        sweep_id: UUID,
    ) -> TemplateOutcome:
        """Process one template; whatever happens becomes its outcome."""
        outcome = TemplateOutcome(
            template_id=template.id,
            status=OutcomeStatus.FAILED,
            previous_next_run=template.next_run,
            next_run=template.next_run,
        )
        timeout = self._settings.per_item_timeout_seconds
        try:
            await asyncio.wait_for(
                self._process_template(template, boundary, sweep_id, outcome),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            outcome.status = OutcomeStatus.TIMED_OUT
            outcome.error_message = f"Processing exceeded {timeout:g}s"
            await self._audit_logger.log_template_timed_out(template.id, timeout, sweep_id)
        except Exception as e:
            outcome.status = OutcomeStatus.FAILED
            outcome.error_message = str(e)
            await self._audit_logger.log_error(
                error_type=type(e).__name__,
                error_message=str(e),
                details={"template_id": str(template.id)},
                correlation_id=sweep_id,
            )
        return outcome

    async def _process_template(
        self,
        template: RecurringTemplate,
        boundary: datetime,
        sweep_id: UUID,
        outcome: TemplateOutcome,
    ) -> None:
        current = template

        for _ in range(self._settings.max_catchup_per_template):
            due = current.next_run
            if due is None or due >= boundary:
                break

            try:
                occurrence = await self._materializer.materialize(current)
            except DuplicateError:
                # Written by an interrupted or concurrent sweep
                existing_id = occurrence_id_for(current)
                outcome.already_materialized_ids.append(existing_id)
                await self._audit_logger.log_occurrence_materialized(
                    occurrence_id=existing_id,
                    template_id=current.id,
                    occurrence_time=due,
                    correlation_id=sweep_id,
                    already_existed=True,
                )
                occurrence_id = existing_id
            except PersistenceError as e:
                outcome.status = OutcomeStatus.MATERIALIZATION_FAILED
                outcome.error_message = str(e)
                await self._audit_logger.log_materialization_failed(
                    template_id=current.id,
                    due=due,
                    error_message=str(e),
                    correlation_id=sweep_id,
                )
                return
            else:
                occurrence_id = occurrence.id
                outcome.occurrence_ids.append(occurrence_id)
                await self._audit_logger.log_occurrence_materialized(
                    occurrence_id=occurrence_id,
                    template_id=current.id,
                    occurrence_time=due,
                    correlation_id=sweep_id,
                )

            try:
                new_next_run = next_occurrence(due, current.interval)
            except InvalidIntervalError as e:
                # The occurrence is in the ledger but the template cannot move.
                outcome.status = OutcomeStatus.INVALID_INTERVAL
                outcome.error_message = str(e)
                await self._audit_logger.log_invalid_interval(
                    template_id=current.id,
                    interval=str(e.interval),
                    occurrence_id=occurrence_id,
                    correlation_id=sweep_id,
                )
                return

            try:
                advanced = await self._advance(current, new_next_run, sweep_id)
            except ConflictError as e:
                outcome.status = OutcomeStatus.CONFLICT
                outcome.error_message = str(e)
                return
            if not advanced:
                outcome.status = OutcomeStatus.CONFLICT_SKIPPED
                return

            await self._audit_logger.log_template_advanced(
                template_id=current.id,
                previous_next_run=due,
                next_run=new_next_run,
                correlation_id=sweep_id,
            )
            current = current.model_copy(update={"next_run": new_next_run})
            outcome.next_run = new_next_run

        outcome.status = OutcomeStatus.ADVANCED

    async def _advance(
        self,
        template: RecurringTemplate,
        new_next_run: datetime,
        sweep_id: UUID,
    ) -> bool:
        """
        Move the template from its current due date to new_next_run.

        Returns:
            True if advanced, False if the template was stopped or
            advanced by someone else in the meantime

        Raises:
            ConflictError: If the write keeps losing races
            PersistenceError: If the store fails
        """
        due = template.next_run

        for _ in range(self._settings.conflict_retries):
            applied = await self._call(
                self._store.update_template(
                    template.id,
                    expected={"active": True, "next_run": due},
                    new_fields={"next_run": new_next_run},
                ),
                "advance template",
            )
            if applied:
                return True

            latest = await self._call(self._store.get_template(template.id), "re-read template")
            if latest is None or not latest.active:
                await self._audit_logger.log_update_conflict(
                    template.id, due, "template stopped", sweep_id
                )
                return False
            if latest.next_run != due:
                await self._audit_logger.log_update_conflict(
                    template.id, due, "advanced by another sweep", sweep_id
                )
                return False

            await self._audit_logger.log_update_conflict(template.id, due, "retrying", sweep_id)

        raise ConflictError(
            f"Template {template.id} could not be advanced after "
            f"{self._settings.conflict_retries} attempts"
        )

    async def _call(self, call, operation: str):
        return await with_timeout(call, self._settings.store_timeout_seconds, operation)
