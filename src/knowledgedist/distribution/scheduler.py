"""
Distribution scheduler.

A periodic tick scans domains holding a scheduled distribution and runs
each due one through the executor, one domain at a time. Overlapping ticks
are refused by an explicit scheduler state; a per-domain lease keeps
separate processes off the same domain.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from knowledgedist.config import EngineConfig
from knowledgedist.events import EVENT_DISTRIBUTION_FAILED, EventBus, outcome_event
from knowledgedist.exceptions import SchedulerError
from knowledgedist.models import Domain, ensure_utc, utcnow
from knowledgedist.observability.metrics import DistributionMetrics
from knowledgedist.storage.stores import DomainStore, LeaseManager

from .executor import DistributionExecutor, ExecutionStatus

logger = logging.getLogger(__name__)


class DistributionPhase(str, Enum):
    NONE = "none"
    PENDING = "pending"
    DUE = "due"
    EXECUTED = "executed"


def phase_of(domain: Domain, now: datetime) -> DistributionPhase:
    if domain.scheduled is None:
        return DistributionPhase.EXECUTED if domain.last_executed_at else DistributionPhase.NONE
    if domain.scheduled.is_due(now):
        return DistributionPhase.DUE
    return DistributionPhase.PENDING


@dataclass
class SchedulerState:
    """Process-owned tick bookkeeping."""

    in_progress: bool = False
    ticks_started: int = 0
    ticks_completed: int = 0
    ticks_refused: int = 0
    last_tick_at: Optional[datetime] = None


@dataclass
class TickReport:
    started_at: datetime
    reentrant: bool = False
    scanned: int = 0
    pending: int = 0
    settled: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    lease_conflicts: list[str] = field(default_factory=list)


class DistributionScheduler:
    """Drives due distributions on a fixed interval."""

    def __init__(
        self,
        executor: DistributionExecutor,
        domains: DomainStore,
        leases: LeaseManager,
        config: Optional[EngineConfig] = None,
        event_bus: Optional[EventBus] = None,
        metrics: Optional[DistributionMetrics] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._executor = executor
        self._domains = domains
        self._leases = leases
        self.config = config or EngineConfig()
        self._event_bus = event_bus
        self._metrics = metrics
        self._clock = clock
        self._owner = self.config.owner_id()
        self.state = SchedulerState()
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._wake = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._running

    async def tick(self, now: Optional[datetime] = None) -> TickReport:
        """
        Scan scheduled domains and execute every due one.

        A tick requested while another is in progress returns immediately
        with ``reentrant=True``. A failure in one domain is logged and does
        not stop the scan.
        """
        started_at = ensure_utc(now) if now is not None else self._clock()
        if self.state.in_progress:
            self.state.ticks_refused += 1
            logger.warning("Tick requested while a previous tick is still running; skipped")
            if self._metrics is not None:
                self._metrics.record_tick(0.0, 0, reentrant=True)
            return TickReport(started_at=started_at, reentrant=True)

        self.state.in_progress = True
        self.state.ticks_started += 1
        self.state.last_tick_at = started_at
        report = TickReport(started_at=started_at)
        t0 = time.monotonic()
        try:
            for domain_id in await self._domains.scheduled_ids():
                report.scanned += 1
                await self._visit(domain_id, now, report)
            self.state.ticks_completed += 1
        finally:
            self.state.in_progress = False
            if self._metrics is not None:
                self._metrics.record_tick(time.monotonic() - t0, report.pending)

        logger.debug(
            "Tick done: scanned=%d pending=%d settled=%d skipped=%d failed=%d",
            report.scanned,
            report.pending,
            len(report.settled),
            len(report.skipped),
            len(report.failed),
        )
        return report

    async def _visit(self, domain_id: str, now: Optional[datetime], report: TickReport) -> None:
        lease_name = f"domain:{domain_id}"
        leased = False
        try:
            at = ensure_utc(now) if now is not None else self._clock()
            domain = await self._domains.get(domain_id)
            if domain is None or domain.scheduled is None:
                await self._domains.unindex(domain_id)
                return
            if phase_of(domain, at) is DistributionPhase.PENDING:
                report.pending += 1
                return

            leased = await self._leases.acquire(
                lease_name, self._owner, self.config.lease_ttl_seconds
            )
            if not leased:
                logger.info(
                    "Domain %s is leased by %s; skipping",
                    domain_id,
                    await self._leases.holder(lease_name),
                )
                report.lease_conflicts.append(domain_id)
                return

            outcome = await self._executor.execute(domain_id, at)
            if outcome.status is ExecutionStatus.SETTLED:
                report.settled.append(domain_id)
            elif outcome.status is ExecutionStatus.SKIPPED:
                report.skipped.append(domain_id)
            else:
                report.unchanged.append(domain_id)
            if self._metrics is not None:
                self._metrics.record_execution(outcome.status.value)
        except Exception as exc:
            logger.exception("Distribution for domain %s failed", domain_id)
            report.failed.append(domain_id)
            if self._metrics is not None:
                self._metrics.record_execution("failed")
            if self._event_bus is not None:
                self._event_bus.emit(
                    outcome_event(EVENT_DISTRIBUTION_FAILED, domain_id, None, error=str(exc))
                )
        finally:
            if leased:
                try:
                    await self._leases.release(lease_name, self._owner)
                except Exception:
                    logger.exception("Failed to release lease for domain %s", domain_id)

    async def start(self) -> None:
        """Start the periodic tick loop as a background task."""
        if self._running:
            raise SchedulerError("Scheduler is already running")
        self._running = True
        self._wake = asyncio.Event()
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "Distribution scheduler started (interval=%ss, owner=%s)",
            self.config.tick_interval_seconds,
            self._owner,
        )

    async def stop(self) -> None:
        """Stop the loop. A tick already in flight runs to completion first."""
        self._running = False
        self._wake.set()
        if self._task is not None:
            await self._task
            self._task = None
        logger.info("Distribution scheduler stopped")

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.tick()
            except Exception:
                logger.exception("Scheduler tick failed")
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.config.tick_interval_seconds)
            except asyncio.TimeoutError:
                continue
