"""
Point accrual.

A domain earns ``productivity_factor`` points per elapsed minute. Accrual
only ever grows ``point_balance``; folding it into carryover is the
settlement writer's job.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

from knowledgedist.models import Domain, ensure_utc
from knowledgedist.units import quantize_points

_MICROSECONDS_PER_MINUTE = Decimal(60_000_000)


def elapsed_minutes(since: datetime, until: datetime) -> Decimal:
    """Exact minutes from *since* to *until*, never negative."""
    delta = ensure_utc(until) - ensure_utc(since)
    if delta <= timedelta(0):
        return Decimal(0)
    return Decimal(delta // timedelta(microseconds=1)) / _MICROSECONDS_PER_MINUTE


class AccrualTracker:
    """Brings a domain's point balance up to a given instant."""

    def projected_balance(self, domain: Domain, at: datetime) -> Decimal:
        """Point balance the domain would hold at *at*, without mutating it."""
        minutes = elapsed_minutes(domain.points_last_accrued_at, at)
        return quantize_points(domain.point_balance + minutes * domain.productivity_factor)

    def accrue(self, domain: Domain, now: datetime) -> Domain:
        """Return a copy of *domain* accrued up to *now*.

        The accrual timestamp never moves backwards, so a skewed clock
        cannot earn the same minutes twice.
        """
        now = ensure_utc(now)
        return domain.model_copy(
            update={
                "point_balance": self.projected_balance(domain, now),
                "points_last_accrued_at": max(domain.points_last_accrued_at, now),
            }
        )
