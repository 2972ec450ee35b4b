"""
Core Data Models for Recurring Ledger

A ledger row is either a TEMPLATE (it repeats on a fixed interval) or a
REALIZED OCCURRENCE (a one-time entry). They are separate models so the
recurrence fields simply do not exist on an occurrence.

DESIGN DECISION: We use Pydantic v2 for every record and report.
Templates that break the active/next_run pairing are rejected at
construction time rather than being discovered by a sweep.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class IntervalUnit(str, Enum):
    """How often a template repeats."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class TransactionType(str, Enum):
    """Direction of money for a ledger entry."""
    INCOME = "income"
    EXPENSE = "expense"


class OutcomeStatus(str, Enum):
    """
    What happened to one template during a sweep.

    Only ADVANCED means the template moved forward cleanly.
    Everything else leaves the template for the next sweep or an operator.
    """
    ADVANCED = "advanced"
    MATERIALIZATION_FAILED = "materialization_failed"
    INVALID_INTERVAL = "invalid_interval"    # occurrence exists, template stuck
    CONFLICT_SKIPPED = "conflict_skipped"    # stopped or advanced elsewhere
    CONFLICT = "conflict"                    # retries exhausted
    TIMED_OUT = "timed_out"
    FAILED = "failed"


# =============================================================================
# LEDGER RECORDS
# =============================================================================

class TransactionBase(BaseModel):
    """Fields shared by templates and realized occurrences."""
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity
    id: UUID = Field(
        default_factory=uuid4,
        description="Unique record ID"
    )
    owner_id: str = Field(
        ...,
        min_length=1,
        description="User the record belongs to"
    )

    # Descriptive payload, opaque to the scheduler
    description: str = Field(
        default="",
        max_length=500,
    )
    amount: Decimal = Field(
        ...,
        description="Signed amount"
    )
    category: str = Field(
        default="",
        max_length=100,
    )
    type: TransactionType

    occurrence_time: datetime = Field(
        ...,
        description="When this entry happened (template: when it started)"
    )
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the row was written"
    )

    def descriptive_fields(self) -> dict[str, Any]:
        """The payload a materialized occurrence copies from its template."""
        return {
            "owner_id": self.owner_id,
            "description": self.description,
            "amount": self.amount,
            "category": self.category,
            "type": self.type,
        }


class RecurringTemplate(TransactionBase):
    """
    A transaction configured to repeat on a fixed interval.

    CRITICAL: active and next_run move together.
    An active template always has a next_run; a stopped one never does.
    """

    interval: IntervalUnit
    next_run: Optional[datetime] = Field(
        default=None,
        description="Next due date, None once stopped"
    )
    active: bool = Field(
        default=True,
        description="True while the recurrence is live"
    )

    @property
    def is_recurring(self) -> bool:
        return True

    @model_validator(mode="after")
    def check_active_next_run(self) -> "RecurringTemplate":
        if self.active and self.next_run is None:
            raise ValueError("Active template must have a next run")
        if not self.active and self.next_run is not None:
            raise ValueError("Stopped template cannot have a next run")
        return self


class RealizedOccurrence(TransactionBase):
    """
    A concrete one-time ledger entry.

    Produced either by the user directly or by the materializer when a
    template falls due. The scheduler never modifies one after writing it.
    """

    template_id: Optional[UUID] = Field(
        default=None,
        description="Template this entry was materialized from"
    )

    @property
    def is_recurring(self) -> bool:
        return False


TransactionRecord = Union[RecurringTemplate, RealizedOccurrence]


class NewTransaction(BaseModel):
    """
    Input for "add transaction".

    The caller supplies the descriptive fields; ids, ownership and
    recurrence state are assigned on creation.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    description: str = Field(default="", max_length=500)
    amount: Decimal
    type: TransactionType
    category: str = Field(default="", max_length=100)
    occurrence_time: datetime
    is_recurring: bool = False
    interval: Optional[IntervalUnit] = None

    @model_validator(mode="after")
    def check_interval(self) -> "NewTransaction":
        """A recurring entry must say how often it repeats."""
        if self.is_recurring and self.interval is None:
            raise ValueError("Recurring transaction requires an interval")
        if not self.is_recurring and self.interval is not None:
            raise ValueError("Interval only applies to recurring transactions")
        return self


# =============================================================================
# SWEEP REPORTING
# =============================================================================

class TemplateOutcome(BaseModel):
    """Result of processing a single template within one sweep."""

    template_id: UUID
    status: OutcomeStatus
    occurrence_ids: list[UUID] = Field(
        default_factory=list,
        description="Occurrences newly written this sweep"
    )
    already_materialized_ids: list[UUID] = Field(
        default_factory=list,
        description="Due dates whose occurrence was already in the ledger"
    )
    previous_next_run: Optional[datetime] = None
    next_run: Optional[datetime] = Field(
        default=None,
        description="Template's next run after this sweep, as far as we know"
    )
    error_message: Optional[str] = None


class SweepReport(BaseModel):
    """
    Result of one sweep.

    A sweep never raises; everything that went wrong is in here.
    """

    sweep_id: UUID = Field(default_factory=uuid4)
    started_at: datetime
    finished_at: Optional[datetime] = None
    boundary: Optional[datetime] = Field(
        default=None,
        description="Templates with next_run strictly before this were due"
    )

    # Set when another sweep was already running
    skipped: bool = False

    # Set when the due templates could not be selected at all
    selection_error: Optional[str] = None

    selected_count: int = Field(default=0, ge=0)
    outcomes: list[TemplateOutcome] = Field(default_factory=list)

    @property
    def materialized_count(self) -> int:
        """Occurrences newly written during this sweep."""
        return sum(len(outcome.occurrence_ids) for outcome in self.outcomes)

    @property
    def advanced_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status == OutcomeStatus.ADVANCED)

    @property
    def failed_count(self) -> int:
        """Templates that did not end in a clean state."""
        return sum(
            1 for o in self.outcomes
            if o.status not in (OutcomeStatus.ADVANCED, OutcomeStatus.CONFLICT_SKIPPED)
        )

    @property
    def is_partial(self) -> bool:
        """True if anything in the sweep went wrong."""
        return self.selection_error is not None or self.failed_count > 0
