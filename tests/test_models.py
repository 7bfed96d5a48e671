"""Tests for the distribution data model."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from knowledgedist.models import (
    DistributionRule,
    DistributionScope,
    Domain,
    RecipientCandidate,
    RuleSnapshot,
    ScheduledDistribution,
    SettlementPlan,
)

from conftest import NOW, make_domain, make_schedule


class TestDistributionRule:
    def test_defaults(self):
        rule = DistributionRule()
        assert rule.master_percent == Decimal(10)
        assert rule.no_alliance_percent == Decimal(0)
        assert rule.admin_percents == {}

    def test_percents_clamped_not_rejected(self):
        rule = DistributionRule(
            master_percent=250,
            no_alliance_percent=-4,
            non_hostile_alliance_percent="33.5",
        )
        assert rule.master_percent == Decimal(100)
        assert rule.no_alliance_percent == Decimal(0)
        assert rule.non_hostile_alliance_percent == Decimal("33.5")

    def test_non_numeric_master_percent_uses_default(self):
        assert DistributionRule(master_percent="lots").master_percent == Decimal(10)

    def test_invalid_identities_dropped(self):
        rule = DistributionRule(
            admin_percents={"steward": 5, "": 5, "two words": 5},
            blacklist_user_ids=["mallory", " ", None],
        )
        assert rule.admin_percents == {"steward": Decimal(5)}
        assert rule.blacklist_user_ids == frozenset({"mallory"})

    def test_alliance_rows_accumulate_and_cap(self):
        rule = DistributionRule(
            specific_alliance_percents=[
                {"alliance_id": "red", "percent": 30},
                {"alliance_id": "red", "percent": 80},
                {"alliance_id": "blue", "percent": 5},
            ]
        )
        assert rule.specific_alliance_percents == {"red": Decimal(100), "blue": Decimal(5)}

    def test_user_side_percent_total(self):
        rule = DistributionRule(
            master_percent=10,
            admin_percents={"a": 5},
            custom_user_percents={"b": 5},
            non_hostile_alliance_percent=10,
            specific_alliance_percents={"red": 20},
            no_alliance_percent=20,
        )
        assert rule.user_side_percent_total() == Decimal(70)


class TestRuleSnapshot:
    def test_capture_is_independent_of_later_edits(self):
        rule = DistributionRule(custom_user_percents={"ann": 5})
        snapshot = RuleSnapshot.capture(rule)

        rule.custom_user_percents["bob"] = Decimal(50)
        rule.master_percent = Decimal(90)

        assert snapshot.custom_user_percents == {"ann": Decimal(5)}
        assert snapshot.master_percent == Decimal(10)

    def test_snapshot_is_frozen(self):
        snapshot = RuleSnapshot.capture(DistributionRule())
        with pytest.raises(ValidationError):
            snapshot.master_percent = Decimal(50)

    def test_schedule_freezes_plain_rule(self):
        schedule = make_schedule(DistributionRule(master_percent=15))
        assert isinstance(schedule.rule_snapshot, RuleSnapshot)
        assert schedule.rule_snapshot.master_percent == Decimal(15)


class TestScheduledDistribution:
    def test_event_ids_are_unique(self):
        assert make_schedule().event_id != make_schedule().event_id

    def test_effective_percent_only_for_partial_scope(self):
        full = make_schedule(distribution_percent=40)
        partial = make_schedule(distribution_scope=DistributionScope.PARTIAL, distribution_percent=40)
        assert full.effective_distribution_percent == Decimal(100)
        assert partial.effective_distribution_percent == Decimal(40)

    def test_invalid_master_alliance_becomes_none(self):
        assert make_schedule(master_alliance_id="  ").master_alliance_id is None

    def test_naive_datetimes_are_utc(self):
        schedule = ScheduledDistribution(due_at=datetime(2026, 1, 1, 12, 0))
        assert schedule.due_at == NOW

    def test_entry_deadline(self):
        schedule = make_schedule(due_at=NOW)
        assert schedule.entry_deadline() == NOW - timedelta(seconds=60)
        explicit = make_schedule(due_at=NOW, entry_close_at=NOW - timedelta(minutes=10))
        assert explicit.entry_deadline() == NOW - timedelta(minutes=10)

    def test_is_due(self):
        schedule = make_schedule(due_at=NOW)
        assert schedule.is_due(NOW)
        assert not schedule.is_due(NOW - timedelta(seconds=1))


class TestDomain:
    def test_total_pool_includes_carryover(self):
        domain = make_domain("12.50", carryover_balance=Decimal("7.50"))
        assert domain.total_pool == Decimal("20.00")

    def test_negative_balance_rejected(self):
        with pytest.raises(ValidationError):
            Domain(domain_id="x", point_balance=Decimal("-1"))

    def test_json_round_trip_keeps_schedule(self):
        rule = DistributionRule(blacklist_alliance_ids=["blue"], admin_percents={"steward": 5})
        domain = make_domain(schedule=make_schedule(rule, enemy_alliance_ids=["blue"]))
        restored = Domain.model_validate_json(domain.model_dump_json())
        assert restored == domain
        assert restored.scheduled.rule_snapshot.blacklist_alliance_ids == frozenset({"blue"})


class TestRecipientAndPlan:
    def test_blank_alliance_is_none(self):
        assert RecipientCandidate(user_id="ann", alliance_id="").alliance_id is None

    def test_plan_credited_total(self):
        plan = SettlementPlan(
            event_id="e1",
            domain_id="keep",
            executed_at=NOW,
            total_pool_minor=1000,
            distributable_minor=1000,
            credits={"a": 300, "b": 200},
            carryover_minor=500,
        )
        assert plan.credited_minor == 500
        assert plan.executed_at.tzinfo == timezone.utc
