"""
Recipient eligibility.

Blocking (blacklists and enemy alliances) applies to every recipient class.
The presence requirement applies only to the conditional classes; the
master, deputies, and the alliance treasury are paid whether or not anyone
is on site.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from knowledgedist.models import (
    RecipientCandidate,
    RuleSnapshot,
    ScheduledDistribution,
    is_valid_identity,
)
from knowledgedist.services.presence import PresenceOracle


class RuleClass(str, Enum):
    """Recipient classes of a distribution rule."""

    MASTER = "master"
    DEPUTY = "deputy"
    NAMED_USER = "named_user"
    NON_HOSTILE_ALLIANCE = "non_hostile_alliance"
    SPECIFIC_ALLIANCE = "specific_alliance"
    NO_ALLIANCE = "no_alliance"
    ALLIANCE_CONTRIBUTION = "alliance_contribution"


FIXED_CLASSES = frozenset({RuleClass.MASTER, RuleClass.DEPUTY})
CONDITIONAL_CLASSES = frozenset(
    {
        RuleClass.NAMED_USER,
        RuleClass.NON_HOSTILE_ALLIANCE,
        RuleClass.SPECIFIC_ALLIANCE,
        RuleClass.NO_ALLIANCE,
    }
)


@dataclass(frozen=True)
class RuleContext:
    """Everything eligibility needs from one scheduled event."""

    snapshot: RuleSnapshot
    master_id: Optional[str]
    master_alliance_id: Optional[str]
    enemy_alliance_ids: frozenset[str]

    @classmethod
    def from_schedule(cls, schedule: ScheduledDistribution, master_id: Optional[str]) -> "RuleContext":
        return cls(
            snapshot=schedule.rule_snapshot,
            master_id=master_id if is_valid_identity(master_id) else None,
            master_alliance_id=schedule.master_alliance_id,
            enemy_alliance_ids=schedule.enemy_alliance_ids,
        )

    @property
    def fixed_recipient_ids(self) -> frozenset[str]:
        ids = set(self.snapshot.admin_percents)
        if self.master_id:
            ids.add(self.master_id)
        return frozenset(ids)


class EligibilityFilter:
    """Block/allow decisions plus the presence requirement."""

    def __init__(self, presence: PresenceOracle):
        self._presence = presence

    def is_blocked(self, candidate: Optional[RecipientCandidate], context: RuleContext) -> bool:
        if candidate is None or not candidate.active:
            return True
        if not is_valid_identity(candidate.user_id):
            return True
        snapshot = context.snapshot
        if candidate.user_id in snapshot.blacklist_user_ids:
            return True
        alliance_id = candidate.alliance_id
        if alliance_id is None:
            return False
        if alliance_id in snapshot.blacklist_alliance_ids:
            return True
        return bool(context.master_alliance_id) and alliance_id in context.enemy_alliance_ids

    @staticmethod
    def requires_presence(rule_class: RuleClass) -> bool:
        return rule_class in CONDITIONAL_CLASSES

    async def is_present(self, candidate: RecipientCandidate, domain_id: str) -> bool:
        return await self._presence.is_present(candidate.user_id, domain_id)
