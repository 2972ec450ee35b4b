"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Complete traceability of every row the scheduler writes
2. An operator log for partial sweeps and inconsistencies
3. User can see history of their recurring transactions

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash a sweep if logging fails)
- Supports correlation IDs (one per sweep) to trace related events
"""

import logging
import sys
from datetime import datetime
from typing import Optional
from uuid import UUID

import structlog

from recurring_ledger.models.audit import AuditEvent, AuditEventBuilder
from recurring_ledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route structlog's stdlib output to stderr at the given level."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
    )


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for operators)
    2. Audit storage (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("recurring_ledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_transaction_added(
        self,
        record_id: UUID,
        owner_id: str,
        is_recurring: bool,
        next_run: Optional[datetime],
    ) -> None:
        """Log a user adding a transaction."""
        await self.log(AuditEventBuilder.transaction_added(
            record_id=record_id,
            owner_id=owner_id,
            is_recurring=is_recurring,
            next_run=next_run,
        ))

    async def log_template_stopped(
        self,
        template_id: UUID,
        owner_id: str,
        was_active: bool,
    ) -> None:
        """Log a user stopping a recurrence."""
        await self.log(AuditEventBuilder.template_stopped(
            template_id=template_id,
            owner_id=owner_id,
            was_active=was_active,
        ))

    async def log_sweep_started(self, sweep_id: UUID, boundary: datetime) -> None:
        await self.log(AuditEventBuilder.sweep_started(sweep_id, boundary))

    async def log_sweep_completed(
        self,
        sweep_id: UUID,
        selected: int,
        materialized: int,
        failed: int,
    ) -> None:
        await self.log(AuditEventBuilder.sweep_completed(
            sweep_id=sweep_id,
            selected=selected,
            materialized=materialized,
            failed=failed,
        ))

    async def log_sweep_skipped(self, sweep_id: UUID) -> None:
        await self.log(AuditEventBuilder.sweep_skipped(sweep_id))

    async def log_sweep_selection_failed(self, sweep_id: UUID, error_message: str) -> None:
        await self.log(AuditEventBuilder.sweep_selection_failed(sweep_id, error_message))

    async def log_occurrence_materialized(
        self,
        occurrence_id: UUID,
        template_id: UUID,
        occurrence_time: datetime,
        correlation_id: UUID,
        already_existed: bool = False,
    ) -> None:
        """Log an occurrence written (or found already written) for a due date."""
        await self.log(AuditEventBuilder.occurrence_materialized(
            occurrence_id=occurrence_id,
            template_id=template_id,
            occurrence_time=occurrence_time,
            correlation_id=correlation_id,
            already_existed=already_existed,
        ))

    async def log_template_advanced(
        self,
        template_id: UUID,
        previous_next_run: datetime,
        next_run: datetime,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.template_advanced(
            template_id=template_id,
            previous_next_run=previous_next_run,
            next_run=next_run,
            correlation_id=correlation_id,
        ))

    async def log_materialization_failed(
        self,
        template_id: UUID,
        due: datetime,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.materialization_failed(
            template_id=template_id,
            due=due,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_invalid_interval(
        self,
        template_id: UUID,
        interval: str,
        occurrence_id: Optional[UUID],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.invalid_interval(
            template_id=template_id,
            interval=interval,
            occurrence_id=occurrence_id,
            correlation_id=correlation_id,
        ))

    async def log_update_conflict(
        self,
        template_id: UUID,
        expected_next_run: Optional[datetime],
        resolution: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.update_conflict(
            template_id=template_id,
            expected_next_run=expected_next_run,
            resolution=resolution,
            correlation_id=correlation_id,
        ))

    async def log_template_timed_out(
        self,
        template_id: UUID,
        timeout_seconds: float,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.template_timed_out(
            template_id=template_id,
            timeout_seconds=timeout_seconds,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))
