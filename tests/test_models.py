"""
Tests for Recurring Ledger models

Test strategy:
1. Unit tests for individual components (models, calculator)
2. Flow tests for sweeps and lifecycle (with in-memory storage)
3. No real API calls in tests (fakes stand in for Google Sheets)
"""

import pytest
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from recurring_ledger.models.transaction import (
    IntervalUnit,
    NewTransaction,
    OutcomeStatus,
    RealizedOccurrence,
    RecurringTemplate,
    SweepReport,
    TemplateOutcome,
    TransactionType,
)
from recurring_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

from tests.factories import make_template


class TestTransactionModels:
    """Tests for template and occurrence models."""

    def test_template_creation(self):
        """Test RecurringTemplate model creation."""
        template = make_template()
        assert template.is_recurring is True
        assert template.active is True
        assert template.interval == IntervalUnit.MONTHLY
        assert template.amount == Decimal("-1200.00")

    def test_active_template_requires_next_run(self):
        """An active template without a next run is rejected."""
        with pytest.raises(ValueError, match="Active template must have a next run"):
            make_template(next_run=None)

    def test_stopped_template_cannot_have_next_run(self):
        """A stopped template with a next run is rejected."""
        with pytest.raises(ValueError, match="Stopped template cannot have a next run"):
            make_template(active=False)

    def test_stopped_template(self):
        template = make_template(active=False, next_run=None)
        assert template.next_run is None

    def test_occurrence_has_no_recurrence_fields(self):
        """A realized occurrence carries no interval/next_run/active."""
        occurrence = RealizedOccurrence(
            owner_id="user-1",
            amount=Decimal("12.50"),
            type=TransactionType.EXPENSE,
            occurrence_time=datetime(2024, 3, 1),
        )
        assert occurrence.is_recurring is False
        assert not hasattr(occurrence, "interval")
        assert not hasattr(occurrence, "next_run")
        assert not hasattr(occurrence, "active")
        assert "next_run" not in occurrence.model_dump()

    def test_descriptive_fields(self):
        template = make_template(description="Gym", category="health")
        fields = template.descriptive_fields()
        assert fields["description"] == "Gym"
        assert fields["category"] == "health"
        assert fields["owner_id"] == "user-1"
        assert "id" not in fields

    def test_description_strips_whitespace(self):
        template = make_template(description="  Netflix  ")
        assert template.description == "Netflix"

    def test_owner_required(self):
        with pytest.raises(ValueError):
            make_template(owner_id="")

    def test_unknown_interval_rejected(self):
        with pytest.raises(ValueError):
            make_template(interval="fortnightly")


class TestNewTransaction:
    """Tests for the add-transaction input."""

    def test_recurring_requires_interval(self):
        with pytest.raises(ValueError, match="requires an interval"):
            NewTransaction(
                amount=Decimal("10"),
                type=TransactionType.INCOME,
                occurrence_time=datetime(2024, 1, 1),
                is_recurring=True,
            )

    def test_interval_only_for_recurring(self):
        with pytest.raises(ValueError, match="only applies to recurring"):
            NewTransaction(
                amount=Decimal("10"),
                type=TransactionType.INCOME,
                occurrence_time=datetime(2024, 1, 1),
                interval=IntervalUnit.DAILY,
            )

    def test_interval_from_string(self):
        new = NewTransaction(
            amount=Decimal("10"),
            type="income",
            occurrence_time=datetime(2024, 1, 1),
            is_recurring=True,
            interval="weekly",
        )
        assert new.interval == IntervalUnit.WEEKLY
        assert new.type == TransactionType.INCOME


class TestSweepReport:
    """Tests for SweepReport aggregate properties."""

    def test_counts(self):
        report = SweepReport(
            started_at=datetime(2024, 2, 1),
            outcomes=[
                TemplateOutcome(
                    template_id=uuid4(),
                    status=OutcomeStatus.ADVANCED,
                    occurrence_ids=[uuid4(), uuid4()],
                ),
                TemplateOutcome(
                    template_id=uuid4(),
                    status=OutcomeStatus.CONFLICT_SKIPPED,
                    occurrence_ids=[uuid4()],
                ),
                TemplateOutcome(
                    template_id=uuid4(),
                    status=OutcomeStatus.MATERIALIZATION_FAILED,
                ),
            ],
        )
        assert report.materialized_count == 3
        assert report.advanced_count == 1
        assert report.failed_count == 1
        assert report.is_partial is True

    def test_clean_report_is_not_partial(self):
        report = SweepReport(started_at=datetime(2024, 2, 1))
        assert report.is_partial is False
        assert report.materialized_count == 0

    def test_selection_error_is_partial(self):
        report = SweepReport(started_at=datetime(2024, 2, 1), selection_error="boom")
        assert report.is_partial is True


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        event = AuditEvent(
            event_type=AuditEventType.SWEEP_STARTED,
            description="Sweep started",
        )
        assert event.event_type == AuditEventType.SWEEP_STARTED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        event = AuditEvent(
            event_type=AuditEventType.TEMPLATE_ADVANCED,
            description="Template advanced",
            details={"next_run": "2024-02-29T09:00:00"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "template_advanced"
        assert log_dict["details"]["next_run"] == "2024-02-29T09:00:00"

    def test_audit_event_to_sheets_row(self):
        event = AuditEvent(
            event_type=AuditEventType.TEMPLATE_STOPPED,
            description="Stopped",
            is_user_action=True,
        )
        row = event.to_sheets_row()
        assert len(row) == 11  # Expected number of columns
        assert row[2] == "template_stopped"
        assert row[10] == "True"

    def test_builder_template_stopped(self):
        template_id = uuid4()
        event = AuditEventBuilder.template_stopped(template_id, "user-1", was_active=True)
        assert event.event_type == AuditEventType.TEMPLATE_STOPPED
        assert event.entity_id == template_id
        assert event.is_user_action is True

    def test_builder_invalid_interval_is_error(self):
        event = AuditEventBuilder.invalid_interval(uuid4(), "fortnightly", uuid4(), uuid4())
        assert event.severity == AuditSeverity.ERROR
        assert event.details["interval"] == "fortnightly"

    def test_builder_occurrence_already_materialized(self):
        event = AuditEventBuilder.occurrence_materialized(
            occurrence_id=uuid4(),
            template_id=uuid4(),
            occurrence_time=datetime(2024, 1, 31),
            correlation_id=uuid4(),
            already_existed=True,
        )
        assert event.event_type == AuditEventType.OCCURRENCE_ALREADY_MATERIALIZED

    def test_builder_sweep_completed_with_failures_warns(self):
        event = AuditEventBuilder.sweep_completed(uuid4(), selected=3, materialized=2, failed=1)
        assert event.severity == AuditSeverity.WARNING


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
