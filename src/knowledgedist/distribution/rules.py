"""
Rule evaluation.

Turns a frozen rule snapshot into per-class pool percentages and
participant sets, and answers best-case "how much could this user get"
estimates ahead of a distribution.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from knowledgedist.exceptions import MasterUnavailableError
from knowledgedist.models import Domain, RecipientCandidate, ScheduledDistribution
from knowledgedist.services.directory import IdentityDirectory
from knowledgedist.units import quantize_points

from .eligibility import EligibilityFilter, RuleClass, RuleContext

logger = logging.getLogger(__name__)

# Tie-break order when a conditional recipient may join only one class
_CONDITIONAL_PRIORITY = {
    RuleClass.NAMED_USER: 4,
    RuleClass.SPECIFIC_ALLIANCE: 3,
    RuleClass.NON_HOSTILE_ALLIANCE: 2,
    RuleClass.NO_ALLIANCE: 1,
}


@dataclass(frozen=True)
class RuleClassAllocation:
    """Pool percent of one rule class and who shares it.

    ``key`` names the class instance: the deputy or named user id, or the
    alliance id for specific-alliance and treasury classes.
    """

    rule_class: RuleClass
    percent: Decimal
    participants: tuple[str, ...] = ()
    key: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "participants", tuple(sorted(set(self.participants))))


@dataclass(frozen=True)
class ConditionalOption:
    rule_class: RuleClass
    key: Optional[str]
    percent: Decimal

    @property
    def rank(self) -> tuple[Decimal, int]:
        return (self.percent, _CONDITIONAL_PRIORITY[self.rule_class])


class RuleEngine:
    """
    Resolves rule snapshots against the identity directory.

    With ``exclusive_conditional_pools`` each conditional recipient is placed
    only in its single best class (highest percent, then named > specific
    alliance > non-hostile > no alliance); otherwise it joins every class it
    matches.
    """

    def __init__(
        self,
        directory: IdentityDirectory,
        eligibility: EligibilityFilter,
        exclusive_conditional_pools: bool = False,
    ):
        self._directory = directory
        self._eligibility = eligibility
        self.exclusive_conditional_pools = exclusive_conditional_pools

    def conditional_options(
        self, candidate: RecipientCandidate, context: RuleContext
    ) -> list[ConditionalOption]:
        """Conditional classes *candidate* matches with a positive percent."""
        snapshot = context.snapshot
        options: list[ConditionalOption] = []

        named = snapshot.custom_user_percents.get(candidate.user_id)
        if named:
            options.append(ConditionalOption(RuleClass.NAMED_USER, candidate.user_id, named))

        alliance_id = candidate.alliance_id
        if alliance_id is None:
            if snapshot.no_alliance_percent > 0:
                options.append(
                    ConditionalOption(RuleClass.NO_ALLIANCE, None, snapshot.no_alliance_percent)
                )
            return options

        specific = snapshot.specific_alliance_percents.get(alliance_id)
        if specific:
            options.append(ConditionalOption(RuleClass.SPECIFIC_ALLIANCE, alliance_id, specific))
        if (
            context.master_alliance_id
            and alliance_id not in context.enemy_alliance_ids
            and snapshot.non_hostile_alliance_percent > 0
        ):
            options.append(
                ConditionalOption(
                    RuleClass.NON_HOSTILE_ALLIANCE, None, snapshot.non_hostile_alliance_percent
                )
            )
        return options

    def _memberships(
        self, candidate: RecipientCandidate, context: RuleContext
    ) -> list[ConditionalOption]:
        options = self.conditional_options(candidate, context)
        if self.exclusive_conditional_pools and options:
            return [max(options, key=lambda option: option.rank)]
        return options

    def projected_max_percent(
        self,
        candidate: Optional[RecipientCandidate],
        domain: Domain,
        schedule: ScheduledDistribution,
    ) -> Decimal:
        """Best-case percent of the distributable pool *candidate* could get.

        Presence is never consulted.
        """
        context = RuleContext.from_schedule(schedule, domain.master_id)
        if self._eligibility.is_blocked(candidate, context):
            return Decimal(0)

        snapshot = context.snapshot
        user_id = candidate.user_id
        if user_id == context.master_id:
            # A master listed as deputy is paid the master share only
            return quantize_points(snapshot.master_percent)
        if user_id in context.fixed_recipient_ids:
            return quantize_points(snapshot.admin_percents.get(user_id, Decimal(0)))

        percents = [option.percent for option in self._memberships(candidate, context)]
        return quantize_points(sum(percents, Decimal(0)))

    async def resolve(
        self, domain: Domain, schedule: ScheduledDistribution
    ) -> list[RuleClassAllocation]:
        """
        Resolve every rule class of *schedule* for *domain*.

        Raises:
            MasterUnavailableError: If the master is missing, inactive, or blocked
        """
        context = RuleContext.from_schedule(schedule, domain.master_id)
        snapshot = context.snapshot

        master = None
        if context.master_id:
            master = await self._directory.get_candidate(context.master_id)
        if self._eligibility.is_blocked(master, context):
            raise MasterUnavailableError(domain.domain_id, domain.master_id)

        allocations = [
            RuleClassAllocation(
                RuleClass.MASTER, snapshot.master_percent, (master.user_id,), key=master.user_id
            )
        ]

        for deputy_id, percent in sorted(snapshot.admin_percents.items()):
            if deputy_id == master.user_id:
                continue
            deputy = await self._directory.get_candidate(deputy_id)
            participants = () if self._eligibility.is_blocked(deputy, context) else (deputy_id,)
            allocations.append(
                RuleClassAllocation(RuleClass.DEPUTY, percent, participants, key=deputy_id)
            )

        members: dict[tuple[RuleClass, Optional[str]], list[str]] = {}
        for candidate in await self._directory.list_candidates():
            if candidate.user_id in context.fixed_recipient_ids:
                continue
            if self._eligibility.is_blocked(candidate, context):
                continue
            memberships = self._memberships(candidate, context)
            if not memberships:
                continue
            if not await self._eligibility.is_present(candidate, domain.domain_id):
                continue
            for option in memberships:
                members.setdefault((option.rule_class, option.key), []).append(candidate.user_id)

        for user_id, percent in sorted(snapshot.custom_user_percents.items()):
            if user_id in context.fixed_recipient_ids:
                continue
            allocations.append(
                RuleClassAllocation(
                    RuleClass.NAMED_USER,
                    percent,
                    members.get((RuleClass.NAMED_USER, user_id), ()),
                    key=user_id,
                )
            )

        if context.master_alliance_id:
            allocations.append(
                RuleClassAllocation(
                    RuleClass.NON_HOSTILE_ALLIANCE,
                    snapshot.non_hostile_alliance_percent,
                    members.get((RuleClass.NON_HOSTILE_ALLIANCE, None), ()),
                )
            )

        for alliance_id, percent in sorted(snapshot.specific_alliance_percents.items()):
            allocations.append(
                RuleClassAllocation(
                    RuleClass.SPECIFIC_ALLIANCE,
                    percent,
                    members.get((RuleClass.SPECIFIC_ALLIANCE, alliance_id), ()),
                    key=alliance_id,
                )
            )

        allocations.append(
            RuleClassAllocation(
                RuleClass.NO_ALLIANCE,
                snapshot.no_alliance_percent,
                members.get((RuleClass.NO_ALLIANCE, None), ()),
            )
        )

        if context.master_alliance_id:
            allocations.append(
                RuleClassAllocation(
                    RuleClass.ALLIANCE_CONTRIBUTION,
                    schedule.alliance_contribution_percent,
                    (context.master_alliance_id,),
                    key=context.master_alliance_id,
                )
            )

        logger.debug(
            "Resolved %d rule classes for domain %s (event %s)",
            len(allocations),
            domain.domain_id,
            schedule.event_id,
        )
        return allocations
