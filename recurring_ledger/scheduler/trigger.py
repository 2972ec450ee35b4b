"""
Sweep Triggers

The sweep itself doesn't know when it runs. Something sends "run now"
events down a channel; the runner turns each event into one sweep.

- SweepTrigger: the channel (an asyncio.Queue)
- DailySchedule: fires the channel once a day at a fixed local time
- SweepRunner: consumes events, one sweep at a time

Events that arrive while a sweep is running are deferred, then collapsed
into a single follow-up sweep. Two sweeps never run at once.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncIterator, Optional

import structlog

from recurring_ledger.models.transaction import SweepReport
from recurring_ledger.scheduler.clock import Clock, SystemClock, next_daily_run, seconds_until
from recurring_ledger.scheduler.sweep import SweepDriver


logger = structlog.get_logger(__name__)


@dataclass
class TriggerEvent:
    """A request to run a sweep."""
    reason: str = "manual"
    requested_at: datetime = field(default_factory=datetime.now)


class SweepTrigger:
    """Channel delivering "run now" events to a SweepRunner."""

    def __init__(self):
        self._queue: asyncio.Queue[Optional[TriggerEvent]] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def fire(self, reason: str = "manual") -> None:
        if self._closed:
            raise RuntimeError("Trigger is closed")
        self._queue.put_nowait(TriggerEvent(reason=reason))

    def close(self) -> None:
        """Stop delivering events once the pending ones are consumed."""
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)

    def drain(self) -> list[TriggerEvent]:
        """Take every event waiting right now, without blocking."""
        events = []
        while True:
            try:
                event = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return events
            if event is None:
                # Keep the close marker for the consumer
                self._queue.put_nowait(None)
                return events
            events.append(event)

    async def events(self) -> AsyncIterator[TriggerEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event


class DailySchedule:
    """Fires a trigger every day at hour:minute on the given clock."""

    def __init__(
        self,
        trigger: SweepTrigger,
        hour: int = 0,
        minute: int = 0,
        clock: Optional[Clock] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._trigger = trigger
        self._hour = hour
        self._minute = minute
        self._clock = clock or SystemClock()
        self._sleep = sleep

    def next_run_at(self) -> datetime:
        return next_daily_run(self._clock.now(), self._hour, self._minute)

    async def run(self, max_fires: Optional[int] = None) -> None:
        """Sleep until each scheduled time and fire; runs until cancelled or closed."""
        fired = 0
        while not self._trigger.closed and (max_fires is None or fired < max_fires):
            target = self.next_run_at()
            await self._sleep(seconds_until(target, self._clock.now()))
            if self._trigger.closed:
                return
            self._trigger.fire("schedule")
            fired += 1


class SweepRunner:
    """Turns trigger events into sweeps, strictly one after another."""

    def __init__(self, driver: SweepDriver):
        self._driver = driver

    async def serve(self, trigger: SweepTrigger) -> list[SweepReport]:
        """
        Run until the trigger is closed.

        Returns:
            The report of every sweep that ran
        """
        reports = []
        async for event in trigger.events():
            report = await self._driver.run_sweep()
            reports.append(report)
            logger.info(
                "sweep_finished",
                reason=event.reason,
                sweep_id=str(report.sweep_id),
                skipped=report.skipped,
                materialized=report.materialized_count,
                failed=report.failed_count,
            )

            deferred = trigger.drain()
            if deferred:
                # One catch-up sweep covers every request made meanwhile
                logger.info("sweep_requests_coalesced", count=len(deferred))
                reports.append(await self._driver.run_sweep())
        return reports
