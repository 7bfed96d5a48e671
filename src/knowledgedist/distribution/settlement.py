"""
Settlement.

Applies a journaled settlement plan. Every credit is an increment-once
keyed by the event id and recipient, and the domain is finalised by
compare-and-set only while its live schedule still carries the event, so
replaying a plan after a crash at any step credits nobody twice.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from knowledgedist.events import (
    EVENT_DISTRIBUTION_SETTLED,
    EVENT_DISTRIBUTION_SKIPPED,
    EventBus,
    credit_event,
    outcome_event,
    treasury_event,
)
from knowledgedist.models import Domain, ScheduledDistribution, SettlementPlan
from knowledgedist.observability.metrics import DistributionMetrics
from knowledgedist.storage.stores import (
    BalanceLedger,
    DomainStore,
    SettlementJournal,
    TreasuryLedger,
)
from knowledgedist.units import from_minor

from .allocator import AllocationResult

logger = logging.getLogger(__name__)

SKIP_MASTER_UNAVAILABLE = "master_unavailable"


def build_plan(
    domain: Domain,
    schedule: ScheduledDistribution,
    result: AllocationResult,
    executed_at: datetime,
    skipped_reason: Optional[str] = None,
) -> SettlementPlan:
    return SettlementPlan(
        event_id=schedule.event_id,
        domain_id=domain.domain_id,
        executed_at=executed_at,
        total_pool_minor=result.total_pool,
        distributable_minor=result.distributable,
        credits={user_id: amount for user_id, amount in result.per_user.items() if amount > 0},
        treasury_alliance_id=result.treasury_alliance_id,
        treasury_minor=result.treasury,
        carryover_minor=result.carryover,
        overdrawn_minor=result.overdrawn,
        skipped_reason=skipped_reason,
    )


def _finalizer(plan: SettlementPlan) -> Callable[[Domain], Domain]:
    def update(domain: Domain) -> Domain:
        return domain.model_copy(
            update={
                "point_balance": Decimal(0),
                "carryover_balance": from_minor(plan.carryover_minor),
                "points_last_accrued_at": max(domain.points_last_accrued_at, plan.executed_at),
                "last_executed_at": plan.executed_at,
                "scheduled": None,
            }
        )

    return update


class SettlementWriter:
    """Credits recipients and treasuries, then finalises the domain."""

    def __init__(
        self,
        domains: DomainStore,
        balances: BalanceLedger,
        treasury: TreasuryLedger,
        journal: SettlementJournal,
        event_bus: Optional[EventBus] = None,
        metrics: Optional[DistributionMetrics] = None,
    ):
        self._domains = domains
        self._balances = balances
        self._treasury = treasury
        self._journal = journal
        self._event_bus = event_bus
        self._metrics = metrics

    async def apply(self, plan: SettlementPlan) -> bool:
        """
        Apply *plan*; safe to call any number of times.

        Returns:
            True if this call finalised the domain, False if the event had
            already been finalised elsewhere
        """
        applied = 0
        for user_id, amount in sorted(plan.credits.items()):
            if await self._balances.credit_once(user_id, amount, plan.event_id):
                applied += 1

        if plan.treasury_minor > 0 and plan.treasury_alliance_id:
            await self._treasury.credit_once(
                plan.treasury_alliance_id, plan.treasury_minor, plan.event_id
            )

        finalized = await self._domains.finalize(
            plan.domain_id, plan.event_id, _finalizer(plan)
        )
        if not finalized:
            logger.info(
                "Distribution %s for domain %s was already finalised",
                plan.event_id,
                plan.domain_id,
            )
            return False

        await self._journal.mark_completed(plan.event_id, plan.executed_at)
        logger.info(
            "Settled distribution %s for domain %s: %d recipients (%d newly credited), "
            "treasury=%d, carryover=%d (minor units)",
            plan.event_id,
            plan.domain_id,
            len(plan.credits),
            applied,
            plan.treasury_minor,
            plan.carryover_minor,
        )
        if self._metrics is not None:
            self._metrics.record_settlement(plan.credited_minor, plan.treasury_minor)
        self._notify(plan)
        return True

    def _notify(self, plan: SettlementPlan) -> None:
        if self._event_bus is None:
            return
        for user_id, amount in sorted(plan.credits.items()):
            self._event_bus.emit(
                credit_event(plan.domain_id, user_id, from_minor(amount), plan.event_id)
            )
        if plan.treasury_minor > 0 and plan.treasury_alliance_id:
            self._event_bus.emit(
                treasury_event(
                    plan.domain_id,
                    plan.treasury_alliance_id,
                    from_minor(plan.treasury_minor),
                    plan.event_id,
                )
            )
        if plan.skipped_reason:
            self._event_bus.emit(
                outcome_event(
                    EVENT_DISTRIBUTION_SKIPPED,
                    plan.domain_id,
                    plan.event_id,
                    reason=plan.skipped_reason,
                    carryover=from_minor(plan.carryover_minor),
                )
            )
        else:
            self._event_bus.emit(
                outcome_event(
                    EVENT_DISTRIBUTION_SETTLED,
                    plan.domain_id,
                    plan.event_id,
                    recipients=len(plan.credits),
                    credited=from_minor(plan.credited_minor),
                    treasury=from_minor(plan.treasury_minor),
                    carryover=from_minor(plan.carryover_minor),
                )
            )
