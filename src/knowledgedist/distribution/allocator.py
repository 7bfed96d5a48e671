"""
Allocator.

Converts rule-class percentages into integer minor-unit credits. Group
shares are split evenly; the remainder goes one unit at a time to the
participants that sort first by identity, so a split is reproducible.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from knowledgedist.config import OverAllocationPolicy
from knowledgedist.constants import PERCENT_MAX
from knowledgedist.exceptions import RuleConfigurationError
from knowledgedist.models import DistributionRule
from knowledgedist.units import percent_of

from .eligibility import RuleClass
from .rules import RuleClassAllocation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocationResult:
    """Integer minor-unit outcome of one distribution."""

    total_pool: int
    distributable: int
    per_user: dict[str, int] = field(default_factory=dict)
    treasury: int = 0
    treasury_alliance_id: Optional[str] = None
    carryover: int = 0
    overdrawn: int = 0

    @property
    def distributed_user_total(self) -> int:
        return sum(self.per_user.values())

    @classmethod
    def carry_all(cls, total_pool: int) -> "AllocationResult":
        """Nothing is credited; the whole pool rolls over."""
        return cls(total_pool=total_pool, distributable=0, carryover=total_pool)


def split_evenly(amount: int, participants: Iterable[str]) -> dict[str, int]:
    """Split *amount* across *participants*, remainder to the first by sorted id."""
    ordered = sorted(set(participants))
    if amount <= 0 or not ordered:
        return {}
    share, remainder = divmod(amount, len(ordered))
    return {
        user_id: share + (1 if index < remainder else 0)
        for index, user_id in enumerate(ordered)
    }


class Allocator:
    """
    Allocation with a configurable over-allocation policy.

    User-side classes whose percents sum above 100 are scaled down
    (``proportional``), computed independently with any overdraw reported
    (``permissive``), or refused (``reject``).
    """

    def __init__(self, policy: OverAllocationPolicy = OverAllocationPolicy.PROPORTIONAL):
        self.policy = policy

    def validate_rule(self, rule: DistributionRule) -> None:
        """
        Check a rule before it is saved or scheduled.

        Raises:
            RuleConfigurationError: Under the ``reject`` policy, if the
                user-side percents exceed 100
        """
        total = rule.user_side_percent_total()
        if self.policy == OverAllocationPolicy.REJECT and total > PERCENT_MAX:
            raise RuleConfigurationError(
                f"User-side percents sum to {total}, above {PERCENT_MAX}"
            )

    def _percent_base(self, user_allocations: Sequence[RuleClassAllocation]) -> Decimal:
        configured = sum((a.percent for a in user_allocations), Decimal(0))
        if configured <= PERCENT_MAX:
            return PERCENT_MAX
        if self.policy == OverAllocationPolicy.REJECT:
            raise RuleConfigurationError(
                f"User-side percents sum to {configured}, above {PERCENT_MAX}"
            )
        if self.policy == OverAllocationPolicy.PROPORTIONAL:
            logger.info("User-side percents sum to %s; scaling class pools down", configured)
            return configured
        return PERCENT_MAX

    def compute(
        self,
        total_pool: int,
        allocations: Sequence[RuleClassAllocation],
        distribution_percent: Decimal = PERCENT_MAX,
    ) -> AllocationResult:
        """
        Allocate *total_pool* minor units across resolved rule classes.

        Args:
            total_pool: Point balance plus carryover, in minor units
            allocations: Output of ``RuleEngine.resolve``
            distribution_percent: Share of the pool in play (100 unless partial)

        Returns:
            AllocationResult whose credits, treasury and carryover account
            for the whole pool

        Raises:
            RuleConfigurationError: Under the ``reject`` policy, on over-allocation
        """
        total_pool = max(0, int(total_pool))
        distributable = percent_of(total_pool, distribution_percent)

        user_allocations = [
            a for a in allocations if a.rule_class != RuleClass.ALLIANCE_CONTRIBUTION
        ]
        base = self._percent_base(user_allocations)

        per_user: dict[str, int] = {}
        for allocation in user_allocations:
            class_pool = percent_of(distributable, allocation.percent, base)
            for user_id, amount in split_evenly(class_pool, allocation.participants).items():
                per_user[user_id] = per_user.get(user_id, 0) + amount
        user_total = sum(per_user.values())

        treasury = 0
        treasury_alliance_id = None
        for allocation in allocations:
            if allocation.rule_class != RuleClass.ALLIANCE_CONTRIBUTION or not allocation.key:
                continue
            requested = percent_of(distributable, allocation.percent)
            treasury = max(0, min(requested, distributable - user_total))
            treasury_alliance_id = allocation.key
            break

        overdrawn = max(0, user_total - distributable)
        if overdrawn:
            logger.warning(
                "User credits exceed distributable pool by %d minor units (%d > %d)",
                overdrawn,
                user_total,
                distributable,
            )

        return AllocationResult(
            total_pool=total_pool,
            distributable=distributable,
            per_user=per_user,
            treasury=treasury,
            treasury_alliance_id=treasury_alliance_id,
            carryover=max(0, total_pool - user_total - treasury),
            overdrawn=overdrawn,
        )
