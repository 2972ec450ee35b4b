"""Recurring-transaction scheduler package."""

from recurring_ledger.scheduler.calculator import (
    InvalidIntervalError,
    next_occurrence,
    parse_interval,
    preview_occurrences,
)
from recurring_ledger.scheduler.clock import Clock, ManualClock, SystemClock
from recurring_ledger.scheduler.lifecycle import RecurrenceLifecycleController
from recurring_ledger.scheduler.materializer import OccurrenceMaterializer, occurrence_id_for
from recurring_ledger.scheduler.sweep import SweepDriver
from recurring_ledger.scheduler.trigger import (
    DailySchedule,
    SweepRunner,
    SweepTrigger,
    TriggerEvent,
)

__all__ = [
    "Clock",
    "DailySchedule",
    "InvalidIntervalError",
    "ManualClock",
    "OccurrenceMaterializer",
    "RecurrenceLifecycleController",
    "SweepDriver",
    "SweepRunner",
    "SweepTrigger",
    "SystemClock",
    "TriggerEvent",
    "next_occurrence",
    "occurrence_id_for",
    "parse_interval",
    "preview_occurrences",
]
