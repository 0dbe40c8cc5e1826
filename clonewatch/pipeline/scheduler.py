"""Recurring monitoring of the watchlist."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from ..analyzer.models import CheckRecord, utcnow
from ..errors import StorageFailure

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass
class CycleSummary:
    """Outcome of one pass over the watchlist."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    records: list[CheckRecord] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    aborted: Optional[str] = None

    @property
    def checked(self) -> int:
        return len(self.records)


class MonitoringScheduler:
    """Runs the checker over every watched domain on a fixed interval.

    ``stop()`` only prevents future cycles; a cycle already running always
    finishes, and each domain check runs to completion or its own timeout.
    """

    def __init__(
        self,
        *,
        checker,
        store,
        baseline_manager,
        interval_seconds: float = 3600,
        run_on_start: bool = False,
    ):
        self.checker = checker
        self.store = store
        self.baseline_manager = baseline_manager
        self.interval_seconds = interval_seconds
        self.run_on_start = run_on_start
        self._stop_event: Optional[asyncio.Event] = None
        self._tasks: set[asyncio.Task] = set()
        self._cycles_completed = 0
        self._last_cycle: Optional[CycleSummary] = None

    @property
    def state(self) -> SchedulerState:
        if self._stop_event is not None and not self._stop_event.is_set():
            return SchedulerState.RUNNING
        return SchedulerState.IDLE

    @property
    def running(self) -> bool:
        return self.state is SchedulerState.RUNNING

    def start(self) -> bool:
        """Begin recurring cycles. Returns False if monitoring is already active."""
        if self.running:
            logger.info("Monitoring already active")
            return False
        stop_event = asyncio.Event()
        self._stop_event = stop_event
        task = asyncio.create_task(self._run_loop(stop_event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("Monitoring started (every %ss)", self.interval_seconds)
        return True

    def stop(self) -> bool:
        """Cancel future cycles. Returns False if monitoring was not active."""
        if not self.running:
            return False
        self._stop_event.set()
        logger.info("Monitoring stopped")
        return True

    async def wait_closed(self) -> None:
        """Wait for every background loop, including loops stopped and then
        replaced by a restart, and any cycle they still run."""
        pending = [task for task in self._tasks if not task.done()]
        while pending:
            await asyncio.gather(*pending, return_exceptions=True)
            pending = [task for task in self._tasks if not task.done()]

    async def _run_loop(self, stop_event: asyncio.Event) -> None:
        first = True
        while not stop_event.is_set():
            if not (first and self.run_on_start):
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
                    break
                except asyncio.TimeoutError:
                    pass
            first = False
            logger.info("Running scheduled monitoring...")
            try:
                await self.run_cycle()
            except Exception as exc:  # pragma: no cover - run_cycle handles its own errors
                logger.error("Monitoring error: %s", exc)

    async def _check_one(self, domain: str, summary: CycleSummary) -> None:
        try:
            summary.records.append(await self.checker.check(domain))
        except Exception as exc:
            summary.failures[domain] = str(exc) or exc.__class__.__name__
            logger.error("Monitoring check failed for %s: %s", domain, exc)

    async def run_cycle(self) -> CycleSummary:
        """Check every watched domain once; per-domain failures are isolated."""
        summary = CycleSummary(started_at=utcnow())
        try:
            domains = await self.store.list_watched_domains()
        except StorageFailure as exc:
            logger.error("Monitoring cycle skipped, watchlist unavailable: %s", exc)
            summary.aborted = str(exc)
            domains = []

        if domains:
            await asyncio.gather(*(self._check_one(domain, summary) for domain in domains))

        summary.finished_at = utcnow()
        self._cycles_completed += 1
        self._last_cycle = summary
        logger.info(
            "Monitoring cycle finished: %d checked, %d failed",
            summary.checked,
            len(summary.failures),
        )
        return summary

    def status(self) -> dict:
        last = self._last_cycle
        return {
            "state": self.state.value,
            "running": self.running,
            "baseline_loaded": self.baseline_manager.loaded,
            "interval_seconds": self.interval_seconds,
            "cycles_completed": self._cycles_completed,
            "last_cycle_at": last.finished_at.isoformat() if last and last.finished_at else None,
            "last_cycle_failures": len(last.failures) if last else 0,
        }
