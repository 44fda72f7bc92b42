"""Periodic triggering of poll cycles with APScheduler.

Each source category gets its own jobs, so video channels and feeds run on
independent timers. Two policies are supported per category:

- interval: every ``interval_ms``, first run after ``initial_delay_ms``
- cron: a crontab pattern, plus a one-shot run after ``initial_delay_ms``
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from castwatch.core.config import ScheduleConfig
from castwatch.core.cycle import PollCycle

LOGGER = logging.getLogger(__name__)


def build_triggers(schedule: ScheduleConfig, now: Optional[datetime] = None) -> list[tuple[str, BaseTrigger]]:
    """Return (job suffix, trigger) pairs for one category."""

    now = now or datetime.now(timezone.utc)
    first_run = now + timedelta(milliseconds=schedule.initial_delay_ms)

    if schedule.mode == "interval":
        return [
            (
                "poll",
                IntervalTrigger(
                    seconds=schedule.interval_ms / 1000,
                    start_date=first_run,
                    timezone=timezone.utc,
                ),
            )
        ]
    if schedule.mode == "cron":
        return [
            ("poll", CronTrigger.from_crontab(schedule.cron)),
            ("initial", DateTrigger(run_date=first_run, timezone=timezone.utc)),
        ]
    raise ValueError(f"Unsupported schedule mode: {schedule.mode}")


def describe(schedule: ScheduleConfig) -> str:
    if schedule.mode == "cron":
        return f"cron {schedule.cron!r}"
    return f"every {schedule.interval_ms / 1000:g}s"


class PollScheduler:
    """Owns the APScheduler instance and the cycles it drives."""

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None) -> None:
        self._scheduler = scheduler or AsyncIOScheduler()
        self._cycles: list[PollCycle] = []

    @property
    def cycles(self) -> list[PollCycle]:
        return list(self._cycles)

    def add_cycle(self, cycle: PollCycle, schedule: ScheduleConfig) -> None:
        self._cycles.append(cycle)
        for suffix, trigger in build_triggers(schedule):
            # max_instances > 1 lets an overlapping trigger reach the cycle,
            # which logs and skips it.
            self._scheduler.add_job(
                cycle.run,
                trigger,
                id=f"{cycle.category}-{suffix}",
                name=f"{cycle.category} {suffix}",
                max_instances=2,
                coalesce=True,
                misfire_grace_time=60,
                replace_existing=True,
            )
        LOGGER.info("Scheduled %s cycle (%s)", cycle.category, describe(schedule))

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()

    def shutdown(self) -> None:
        """Stop arming new triggers and drop pending one-shot jobs.

        Running cycles are asked to stop after their current item.
        """

        self._scheduler.remove_all_jobs()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        for cycle in self._cycles:
            cycle.request_stop()

    async def wait_idle(self) -> None:
        await asyncio.gather(*(cycle.wait_idle() for cycle in self._cycles))
