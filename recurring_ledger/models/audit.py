"""
Audit Models for Recurring Ledger

Every significant action in the system is logged for audit purposes.
This provides:
1. Complete traceability of what the scheduler wrote and why
2. Operator visibility into partial sweeps
3. Ability to reconstruct a template's history

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step of a sweep and every user state change has its own type.
    """
    # User actions
    TRANSACTION_ADDED = "transaction_added"
    TEMPLATE_STOPPED = "template_stopped"

    # Sweep lifecycle
    SWEEP_STARTED = "sweep_started"
    SWEEP_COMPLETED = "sweep_completed"
    SWEEP_SKIPPED = "sweep_skipped"
    SWEEP_SELECTION_FAILED = "sweep_selection_failed"

    # Per-template processing
    OCCURRENCE_MATERIALIZED = "occurrence_materialized"
    OCCURRENCE_ALREADY_MATERIALIZED = "occurrence_already_materialized"
    TEMPLATE_ADVANCED = "template_advanced"
    MATERIALIZATION_FAILED = "materialization_failed"
    INVALID_INTERVAL = "invalid_interval"
    UPDATE_CONFLICT = "update_conflict"
    TEMPLATE_TIMED_OUT = "template_timed_out"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'template', 'occurrence', 'sweep')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one sweep)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.template_stopped(template_id, owner_id)
        event = AuditEventBuilder.sweep_started(sweep_id, boundary)
    """

    @staticmethod
    def transaction_added(
        record_id: UUID,
        owner_id: str,
        is_recurring: bool,
        next_run: Optional[datetime],
    ) -> AuditEvent:
        kind = "template" if is_recurring else "occurrence"
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            entity_type=kind,
            entity_id=record_id,
            description=f"Transaction added as {kind}",
            details={
                "owner_id": owner_id,
                "next_run": next_run.isoformat() if next_run else None,
            },
            is_user_action=True,
        )

    @staticmethod
    def template_stopped(
        template_id: UUID,
        owner_id: str,
        was_active: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TEMPLATE_STOPPED,
            entity_type="template",
            entity_id=template_id,
            description=(
                "Recurring transaction stopped"
                if was_active
                else "Recurring transaction was already stopped"
            ),
            details={
                "owner_id": owner_id,
                "was_active": was_active,
            },
            is_user_action=True,
        )

    @staticmethod
    def sweep_started(
        sweep_id: UUID,
        boundary: datetime,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SWEEP_STARTED,
            entity_type="sweep",
            entity_id=sweep_id,
            correlation_id=sweep_id,
            description=f"Sweep started for templates due before {boundary.isoformat()}",
            details={"boundary": boundary.isoformat()},
        )

    @staticmethod
    def sweep_completed(
        sweep_id: UUID,
        selected: int,
        materialized: int,
        failed: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SWEEP_COMPLETED,
            severity=AuditSeverity.WARNING if failed else AuditSeverity.INFO,
            entity_type="sweep",
            entity_id=sweep_id,
            correlation_id=sweep_id,
            description=(
                f"Sweep completed: {selected} due, {materialized} materialized, "
                f"{failed} failed"
            ),
            details={
                "selected": selected,
                "materialized": materialized,
                "failed": failed,
            },
        )

    @staticmethod
    def sweep_skipped(sweep_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SWEEP_SKIPPED,
            severity=AuditSeverity.WARNING,
            entity_type="sweep",
            entity_id=sweep_id,
            correlation_id=sweep_id,
            description="Sweep skipped: previous sweep still running",
        )

    @staticmethod
    def sweep_selection_failed(
        sweep_id: UUID,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SWEEP_SELECTION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="sweep",
            entity_id=sweep_id,
            correlation_id=sweep_id,
            description="Could not select due templates; will retry next sweep",
            error_message=error_message,
        )

    @staticmethod
    def occurrence_materialized(
        occurrence_id: UUID,
        template_id: UUID,
        occurrence_time: datetime,
        correlation_id: UUID,
        already_existed: bool = False,
    ) -> AuditEvent:
        if already_existed:
            event_type = AuditEventType.OCCURRENCE_ALREADY_MATERIALIZED
            description = f"Occurrence for {occurrence_time.isoformat()} already in ledger"
        else:
            event_type = AuditEventType.OCCURRENCE_MATERIALIZED
            description = f"Occurrence materialized for {occurrence_time.isoformat()}"
        return AuditEvent(
            event_type=event_type,
            entity_type="occurrence",
            entity_id=occurrence_id,
            correlation_id=correlation_id,
            description=description,
            details={
                "template_id": str(template_id),
                "occurrence_time": occurrence_time.isoformat(),
            },
        )

    @staticmethod
    def template_advanced(
        template_id: UUID,
        previous_next_run: datetime,
        next_run: datetime,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TEMPLATE_ADVANCED,
            entity_type="template",
            entity_id=template_id,
            correlation_id=correlation_id,
            description=f"Template advanced to {next_run.isoformat()}",
            details={
                "previous_next_run": previous_next_run.isoformat(),
                "next_run": next_run.isoformat(),
            },
        )

    @staticmethod
    def materialization_failed(
        template_id: UUID,
        due: datetime,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MATERIALIZATION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="template",
            entity_id=template_id,
            correlation_id=correlation_id,
            description=f"Could not materialize occurrence for {due.isoformat()}",
            error_message=error_message,
            details={"due": due.isoformat()},
        )

    @staticmethod
    def invalid_interval(
        template_id: UUID,
        interval: str,
        occurrence_id: Optional[UUID],
        correlation_id: UUID,
    ) -> AuditEvent:
        # The occurrence is already in the ledger but the template cannot move.
        return AuditEvent(
            event_type=AuditEventType.INVALID_INTERVAL,
            severity=AuditSeverity.ERROR,
            entity_type="template",
            entity_id=template_id,
            correlation_id=correlation_id,
            description=f"Template has unknown interval '{interval}' and was not advanced",
            details={
                "interval": interval,
                "occurrence_id": str(occurrence_id) if occurrence_id else None,
            },
        )

    @staticmethod
    def update_conflict(
        template_id: UUID,
        expected_next_run: Optional[datetime],
        resolution: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.UPDATE_CONFLICT,
            severity=AuditSeverity.WARNING,
            entity_type="template",
            entity_id=template_id,
            correlation_id=correlation_id,
            description=f"Conditional update lost a race ({resolution})",
            details={
                "expected_next_run": expected_next_run.isoformat() if expected_next_run else None,
                "resolution": resolution,
            },
        )

    @staticmethod
    def template_timed_out(
        template_id: UUID,
        timeout_seconds: float,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TEMPLATE_TIMED_OUT,
            severity=AuditSeverity.ERROR,
            entity_type="template",
            entity_id=template_id,
            correlation_id=correlation_id,
            description=f"Template processing exceeded {timeout_seconds:g}s",
            details={"timeout_seconds": timeout_seconds},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
