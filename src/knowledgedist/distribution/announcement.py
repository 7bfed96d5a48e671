"""
Pre-distribution announcements.

Tells every candidate who could receive something the best case they may
expect, and whether they must be on site when the distribution runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from knowledgedist.constants import DEFAULT_ENTRY_WINDOW_SECONDS
from knowledgedist.events import EventBus, announcement_event
from knowledgedist.models import Domain, ScheduledDistribution
from knowledgedist.services.directory import IdentityDirectory
from knowledgedist.units import from_minor, percent_of, to_minor

from .accrual import AccrualTracker
from .eligibility import RuleContext
from .rules import RuleEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Announcement:
    user_id: str
    domain_id: str
    event_id: str
    projected_percent: Decimal
    estimated_max: Decimal
    requires_arrival: bool
    entry_deadline: datetime


class AnnouncementPlanner:
    """Builds and emits ``distribution.announced`` notices."""

    def __init__(
        self,
        engine: RuleEngine,
        directory: IdentityDirectory,
        event_bus: Optional[EventBus] = None,
        accrual: Optional[AccrualTracker] = None,
        entry_window_seconds: int = DEFAULT_ENTRY_WINDOW_SECONDS,
    ):
        self._engine = engine
        self._directory = directory
        self._event_bus = event_bus
        self._accrual = accrual or AccrualTracker()
        self._entry_window_seconds = entry_window_seconds

    def projected_pool(self, domain: Domain, schedule: ScheduledDistribution) -> int:
        """Distributable pool estimate in minor units.

        Uses the schedule's ``projected_total`` when set, otherwise the pool
        the domain will hold at ``due_at``.
        """
        if schedule.projected_total is not None:
            total = schedule.projected_total
        else:
            total = self._accrual.projected_balance(domain, schedule.due_at) + domain.carryover_balance
        return percent_of(to_minor(total), schedule.effective_distribution_percent)

    async def announce(
        self, domain: Domain, schedule: Optional[ScheduledDistribution] = None
    ) -> list[Announcement]:
        schedule = schedule or domain.scheduled
        if schedule is None:
            return []

        pool = self.projected_pool(domain, schedule)
        deadline = schedule.entry_deadline(self._entry_window_seconds)
        fixed_ids = RuleContext.from_schedule(schedule, domain.master_id).fixed_recipient_ids

        announcements: list[Announcement] = []
        for candidate in await self._directory.list_candidates():
            if not candidate.active:
                continue
            percent = self._engine.projected_max_percent(candidate, domain, schedule)
            if percent <= 0:
                continue
            announcements.append(
                Announcement(
                    user_id=candidate.user_id,
                    domain_id=domain.domain_id,
                    event_id=schedule.event_id,
                    projected_percent=percent,
                    estimated_max=from_minor(percent_of(pool, percent)),
                    requires_arrival=candidate.user_id not in fixed_ids,
                    entry_deadline=deadline,
                )
            )

        if self._event_bus is not None:
            for item in announcements:
                self._event_bus.emit(
                    announcement_event(
                        item.domain_id,
                        item.user_id,
                        item.event_id,
                        item.estimated_max,
                        item.projected_percent,
                        item.requires_arrival,
                        item.entry_deadline,
                    )
                )
        logger.info(
            "Announced distribution %s of domain %s to %d candidates",
            schedule.event_id,
            domain.domain_id,
            len(announcements),
        )
        return announcements
