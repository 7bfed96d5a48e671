"""Tests for point accrual."""

from datetime import timedelta
from decimal import Decimal

from knowledgedist.distribution import AccrualTracker, elapsed_minutes

from conftest import NOW, make_domain


class TestAccrualTracker:
    def test_accrues_minutes_times_productivity(self):
        domain = make_domain("10.00", productivity_factor=Decimal("1.5"))
        accrued = AccrualTracker().accrue(domain, NOW + timedelta(minutes=90))
        assert accrued.point_balance == Decimal("145.00")
        assert accrued.points_last_accrued_at == NOW + timedelta(minutes=90)

    def test_rounds_to_two_places(self):
        domain = make_domain("0")
        accrued = AccrualTracker().accrue(domain, NOW + timedelta(seconds=80))
        assert accrued.point_balance == Decimal("1.33")

    def test_does_not_mutate_input(self):
        domain = make_domain("5.00")
        AccrualTracker().accrue(domain, NOW + timedelta(hours=1))
        assert domain.point_balance == Decimal("5.00")
        assert domain.points_last_accrued_at == NOW

    def test_clock_going_backwards_accrues_nothing(self):
        domain = make_domain("5.00")
        accrued = AccrualTracker().accrue(domain, NOW - timedelta(minutes=30))
        assert accrued.point_balance == Decimal("5.00")
        assert accrued.points_last_accrued_at == NOW

    def test_carryover_untouched(self):
        domain = make_domain("5.00", carryover_balance=Decimal("3.00"))
        accrued = AccrualTracker().accrue(domain, NOW + timedelta(minutes=1))
        assert accrued.carryover_balance == Decimal("3.00")

    def test_projected_balance(self):
        domain = make_domain("1.00", productivity_factor=Decimal(2))
        assert AccrualTracker().projected_balance(domain, NOW + timedelta(minutes=10)) == Decimal("21.00")


class TestElapsedMinutes:
    def test_exact_fraction(self):
        assert elapsed_minutes(NOW, NOW + timedelta(seconds=30)) == Decimal("0.5")

    def test_never_negative(self):
        assert elapsed_minutes(NOW, NOW - timedelta(days=1)) == Decimal(0)
