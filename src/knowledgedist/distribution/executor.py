"""
Per-domain distribution execution.

accrue -> resolve -> allocate -> journal -> settle, strictly in that order.
A journaled plan is reused on replay, so the amounts of an interrupted
settlement never change.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from knowledgedist.exceptions import MasterUnavailableError
from knowledgedist.models import Domain, ScheduledDistribution, SettlementPlan, ensure_utc, utcnow
from knowledgedist.storage.stores import DomainStore, SettlementJournal
from knowledgedist.units import to_minor

from .accrual import AccrualTracker
from .allocator import AllocationResult, Allocator
from .rules import RuleEngine
from .settlement import SKIP_MASTER_UNAVAILABLE, SettlementWriter, build_plan

logger = logging.getLogger(__name__)


class ExecutionStatus(str, Enum):
    SETTLED = "settled"
    SKIPPED = "skipped"
    ALREADY_SETTLED = "already_settled"
    NOT_DUE = "not_due"
    NOTHING_SCHEDULED = "nothing_scheduled"


@dataclass(frozen=True)
class ExecutionOutcome:
    domain_id: str
    status: ExecutionStatus
    event_id: Optional[str] = None
    plan: Optional[SettlementPlan] = None
    resumed: bool = False


class DistributionExecutor:
    """Runs one domain's due distribution to completion."""

    def __init__(
        self,
        domains: DomainStore,
        journal: SettlementJournal,
        engine: RuleEngine,
        allocator: Allocator,
        writer: SettlementWriter,
        accrual: Optional[AccrualTracker] = None,
    ):
        self._domains = domains
        self._journal = journal
        self._engine = engine
        self._allocator = allocator
        self._writer = writer
        self._accrual = accrual or AccrualTracker()

    async def plan(
        self, domain: Domain, schedule: ScheduledDistribution, now: datetime
    ) -> SettlementPlan:
        """Accrue, resolve and allocate; nothing is written."""
        accrued = self._accrual.accrue(domain, now)
        total_pool = to_minor(accrued.total_pool)
        try:
            allocations = await self._engine.resolve(accrued, schedule)
        except MasterUnavailableError as exc:
            logger.warning("%s; carrying the whole pool over", exc)
            return build_plan(
                accrued,
                schedule,
                AllocationResult.carry_all(total_pool),
                now,
                skipped_reason=SKIP_MASTER_UNAVAILABLE,
            )
        result = self._allocator.compute(
            total_pool, allocations, schedule.effective_distribution_percent
        )
        return build_plan(accrued, schedule, result, now)

    async def execute(self, domain_id: str, now: Optional[datetime] = None) -> ExecutionOutcome:
        """
        Execute the due distribution of *domain_id*, or resume an interrupted one.

        Raises:
            RuleConfigurationError: Under the ``reject`` policy, on over-allocation
            StorageError: If the domain record cannot be read
        """
        now = ensure_utc(now) if now is not None else utcnow()
        domain = await self._domains.get(domain_id)
        if domain is None or domain.scheduled is None:
            return ExecutionOutcome(domain_id, ExecutionStatus.NOTHING_SCHEDULED)

        schedule = domain.scheduled
        if not schedule.is_due(now):
            return ExecutionOutcome(domain_id, ExecutionStatus.NOT_DUE, schedule.event_id)

        if await self._journal.is_completed(schedule.event_id):
            logger.warning(
                "Distribution %s for domain %s was already settled; dropping the repeated schedule",
                schedule.event_id,
                domain_id,
            )
            await self._domains.discard_schedule(domain_id, schedule.event_id)
            return ExecutionOutcome(domain_id, ExecutionStatus.ALREADY_SETTLED, schedule.event_id)

        plan = await self._journal.get(schedule.event_id)
        resumed = plan is not None
        if plan is None:
            plan = await self._journal.record(await self.plan(domain, schedule, now))
        else:
            logger.info(
                "Resuming journaled distribution %s for domain %s", plan.event_id, domain_id
            )

        if not await self._writer.apply(plan):
            return ExecutionOutcome(
                domain_id, ExecutionStatus.ALREADY_SETTLED, plan.event_id, plan, resumed
            )
        status = ExecutionStatus.SKIPPED if plan.skipped_reason else ExecutionStatus.SETTLED
        return ExecutionOutcome(domain_id, status, plan.event_id, plan, resumed)
