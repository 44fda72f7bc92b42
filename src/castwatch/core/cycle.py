"""Poll cycle driver (core domain).

A cycle visits every configured source of one category in order. Failures
are isolated per source, and a cycle never overlaps with itself.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Protocol, Sequence

from castwatch.core.errors import ConcurrentCycleError, SourceFetchError
from castwatch.core.models import CycleReport
from castwatch.core.ports import SourceConfig

LOGGER = logging.getLogger(__name__)


class SourceProcessor(Protocol):
    async def process_source(
        self, source: SourceConfig, report: CycleReport, should_stop: Callable[[], bool]
    ) -> None:
        ...


class PollCycle:
    """Runs one category of sources with an Idle -> Running -> Idle guard."""

    def __init__(self, category: str, sources: Sequence[SourceConfig], processor: SourceProcessor) -> None:
        self.category = category
        self._sources = list(sources)
        self._processor = processor
        self._running = False
        self._stop_requested = False
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def running(self) -> bool:
        return self._running

    def stop_requested(self) -> bool:
        return self._stop_requested

    def request_stop(self) -> None:
        """Ask the current cycle to stop after its current item."""

        self._stop_requested = True

    async def wait_idle(self) -> None:
        await self._idle.wait()

    def _enter(self) -> None:
        if self._running:
            raise ConcurrentCycleError(f"{self.category} cycle is still running")
        self._running = True
        self._idle.clear()

    async def run(self) -> CycleReport:
        """Run one full poll cycle.

        A trigger that arrives while a cycle is running is skipped entirely
        with a warning.
        """

        report = CycleReport(category=self.category)
        if self._stop_requested:
            return report
        try:
            self._enter()
        except ConcurrentCycleError as exc:
            LOGGER.warning("%s, skipping this trigger", exc)
            return report

        LOGGER.info("Starting %s cycle (%s sources)", self.category, len(self._sources))
        try:
            for source in self._sources:
                if self._stop_requested:
                    break
                report.sources_checked += 1
                try:
                    await self._processor.process_source(source, report, self.stop_requested)
                except SourceFetchError as exc:
                    report.sources_failed += 1
                    report.failed_sources.append(source.name)
                    LOGGER.error("Skipping %s this cycle: %s", source.name, exc)
                except Exception:
                    report.sources_failed += 1
                    report.failed_sources.append(source.name)
                    LOGGER.exception("Error while processing %s", source.name)
        finally:
            self._running = False
            self._idle.set()

        LOGGER.info(
            "%s cycle complete: sources=%s, failed=%s, items=%s, sent=%s, deferred=%s",
            self.category,
            report.sources_checked,
            report.sources_failed,
            report.items_seen,
            report.notifications_sent,
            report.deliveries_failed,
        )
        return report
