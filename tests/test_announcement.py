"""Tests for pre-distribution announcements."""

from datetime import timedelta
from decimal import Decimal

import pytest

from knowledgedist.events import EVENT_DISTRIBUTION_ANNOUNCED

from conftest import NOW, make_domain, make_rule, make_schedule


def _schedule(**overrides):
    rule = make_rule(
        master_percent=10,
        admin_percents={"steward": 5},
        no_alliance_percent=20,
        blacklist_user_ids=["cid"],
    )
    return make_schedule(rule, due_at=NOW + timedelta(minutes=30), **overrides)


class TestAnnouncementPlanner:
    @pytest.mark.asyncio
    async def test_estimates_and_arrival(self, engine, events):
        schedule = _schedule(projected_total=Decimal("100.00"))
        announcements = await engine.announcer.announce(make_domain(schedule=schedule))

        by_user = {a.user_id: a for a in announcements}
        assert set(by_user) == {"lord", "steward", "ann", "bob"}
        assert by_user["lord"].estimated_max == Decimal("10.00")
        assert not by_user["lord"].requires_arrival
        assert not by_user["steward"].requires_arrival
        assert by_user["ann"].estimated_max == Decimal("20.00")
        assert by_user["ann"].requires_arrival
        assert by_user["ann"].entry_deadline == NOW + timedelta(minutes=29)

        announced = [e for e in events if e.event_type == EVENT_DISTRIBUTION_ANNOUNCED]
        assert len(announced) == 4
        assert {e.payload["recipient_id"] for e in announced} == set(by_user)

    @pytest.mark.asyncio
    async def test_pool_projected_to_due_time(self, engine):
        domain = make_domain("40.00", carryover_balance=Decimal("30.00"))
        schedule = _schedule()
        # 40 + 30 minutes of accrual + 30 carryover
        assert engine.announcer.projected_pool(domain, schedule) == 10000

    @pytest.mark.asyncio
    async def test_nothing_scheduled(self, engine, events):
        assert await engine.announcer.announce(make_domain()) == []
        assert events == []
