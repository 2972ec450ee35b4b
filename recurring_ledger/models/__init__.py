"""
Data Models Package

This package contains all Pydantic models used in the Recurring Ledger system.
All data flowing through the system must conform to these schemas.
"""

from recurring_ledger.models.transaction import (
    IntervalUnit,
    NewTransaction,
    OutcomeStatus,
    RealizedOccurrence,
    RecurringTemplate,
    SweepReport,
    TemplateOutcome,
    TransactionBase,
    TransactionRecord,
    TransactionType,
)
from recurring_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "IntervalUnit",
    "NewTransaction",
    "OutcomeStatus",
    "RealizedOccurrence",
    "RecurringTemplate",
    "SweepReport",
    "TemplateOutcome",
    "TransactionBase",
    "TransactionRecord",
    "TransactionType",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
