"""
Distribution data model.

Domains, distribution rules and their frozen snapshots, scheduled
distribution events, and recipient candidates. Percentages are clamped into
[0, 100] at validation time rather than rejected; identities that are blank
or contain whitespace are dropped from maps and sets.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import DEFAULT_ENTRY_WINDOW_SECONDS, DEFAULT_MASTER_PERCENT, PERCENT_MAX
from .units import clamp_percent


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_valid_identity(value: Any) -> bool:
    """An identity is a non-empty string without whitespace."""
    return isinstance(value, str) and bool(value) and not any(c.isspace() for c in value)


def _normalize_id_set(value: Any) -> frozenset[str]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        value = [value]
    return frozenset(item for item in value if is_valid_identity(item))


def _iter_percent_entries(value: Any, id_field: str) -> Iterable[tuple[Any, Any]]:
    """Accept either a mapping or a list of ``{id_field: ..., "percent": ...}`` rows."""
    if value is None:
        return []
    if isinstance(value, dict):
        return value.items()
    return [
        (row.get(id_field), row.get("percent"))
        for row in value
        if isinstance(row, dict)
    ]


class DistributionScope(str, Enum):
    """Share of the pool a distribution event covers."""

    ALL = "all"
    PARTIAL = "partial"


class DistributionRule(BaseModel):
    """Live, editable distribution rule configuration for a domain."""

    master_percent: Decimal = DEFAULT_MASTER_PERCENT
    admin_percents: dict[str, Decimal] = Field(default_factory=dict)
    custom_user_percents: dict[str, Decimal] = Field(default_factory=dict)
    non_hostile_alliance_percent: Decimal = Decimal(0)
    specific_alliance_percents: dict[str, Decimal] = Field(default_factory=dict)
    no_alliance_percent: Decimal = Decimal(0)
    blacklist_user_ids: frozenset[str] = Field(default_factory=frozenset)
    blacklist_alliance_ids: frozenset[str] = Field(default_factory=frozenset)

    @field_validator("master_percent", mode="before")
    @classmethod
    def _clamp_master_percent(cls, value: Any) -> Decimal:
        return clamp_percent(value, fallback=DEFAULT_MASTER_PERCENT)

    @field_validator("non_hostile_alliance_percent", "no_alliance_percent", mode="before")
    @classmethod
    def _clamp_group_percent(cls, value: Any) -> Decimal:
        return clamp_percent(value)

    @field_validator("admin_percents", "custom_user_percents", mode="before")
    @classmethod
    def _normalize_user_percents(cls, value: Any) -> dict[str, Decimal]:
        percents: dict[str, Decimal] = {}
        for user_id, percent in _iter_percent_entries(value, "user_id"):
            if is_valid_identity(user_id):
                percents[user_id] = clamp_percent(percent)
        return percents

    @field_validator("specific_alliance_percents", mode="before")
    @classmethod
    def _normalize_alliance_percents(cls, value: Any) -> dict[str, Decimal]:
        # Repeated rows for one alliance accumulate
        percents: dict[str, Decimal] = {}
        for alliance_id, percent in _iter_percent_entries(value, "alliance_id"):
            if not is_valid_identity(alliance_id):
                continue
            total = percents.get(alliance_id, Decimal(0)) + clamp_percent(percent)
            percents[alliance_id] = min(total, PERCENT_MAX)
        return percents

    @field_validator("blacklist_user_ids", "blacklist_alliance_ids", mode="before")
    @classmethod
    def _normalize_blacklists(cls, value: Any) -> frozenset[str]:
        return _normalize_id_set(value)

    def user_side_percent_total(self) -> Decimal:
        """Sum of every user-side class percent (treasury excluded)."""
        return (
            self.master_percent
            + sum(self.admin_percents.values(), Decimal(0))
            + sum(self.custom_user_percents.values(), Decimal(0))
            + self.non_hostile_alliance_percent
            + sum(self.specific_alliance_percents.values(), Decimal(0))
            + self.no_alliance_percent
        )


class RuleSnapshot(DistributionRule):
    """Immutable copy of a rule, captured when a distribution is scheduled."""

    model_config = ConfigDict(frozen=True)

    @classmethod
    def capture(cls, rule: DistributionRule) -> "RuleSnapshot":
        """Deep-copy *rule* so later edits never reach the snapshot."""
        return cls.model_validate(rule.model_dump())


class ScheduledDistribution(BaseModel):
    """A pending distribution event for one domain."""

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    due_at: datetime
    entry_close_at: Optional[datetime] = None
    rule_snapshot: RuleSnapshot = Field(default_factory=RuleSnapshot)
    distribution_scope: DistributionScope = DistributionScope.ALL
    distribution_percent: Decimal = PERCENT_MAX
    alliance_contribution_percent: Decimal = Decimal(0)
    master_alliance_id: Optional[str] = None
    master_alliance_name: str = ""
    enemy_alliance_ids: frozenset[str] = Field(default_factory=frozenset)
    projected_total: Optional[Decimal] = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("due_at", "entry_close_at", "created_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    @field_validator("rule_snapshot", mode="before")
    @classmethod
    def _freeze_rule(cls, value: Any) -> Any:
        if isinstance(value, DistributionRule) and not isinstance(value, RuleSnapshot):
            return RuleSnapshot.capture(value)
        return value

    @field_validator("distribution_percent", mode="before")
    @classmethod
    def _clamp_distribution_percent(cls, value: Any) -> Decimal:
        return clamp_percent(value, fallback=PERCENT_MAX)

    @field_validator("alliance_contribution_percent", mode="before")
    @classmethod
    def _clamp_contribution_percent(cls, value: Any) -> Decimal:
        return clamp_percent(value)

    @field_validator("master_alliance_id", mode="before")
    @classmethod
    def _valid_master_alliance(cls, value: Any) -> Optional[str]:
        return value if is_valid_identity(value) else None

    @field_validator("enemy_alliance_ids", mode="before")
    @classmethod
    def _normalize_enemies(cls, value: Any) -> frozenset[str]:
        return _normalize_id_set(value)

    @property
    def effective_distribution_percent(self) -> Decimal:
        """Percent of the pool in play: 100 unless the scope is partial."""
        if self.distribution_scope == DistributionScope.PARTIAL:
            return self.distribution_percent
        return PERCENT_MAX

    def entry_deadline(self, window_seconds: int = DEFAULT_ENTRY_WINDOW_SECONDS) -> datetime:
        """Instant after which participants can no longer join."""
        if self.entry_close_at is not None:
            return self.entry_close_at
        return self.due_at - timedelta(seconds=window_seconds)

    def is_due(self, now: datetime) -> bool:
        return self.due_at <= ensure_utc(now)


class Domain(BaseModel):
    """A resource-accruing, ownable domain."""

    domain_id: str
    name: str = ""
    master_id: Optional[str] = None
    point_balance: Decimal = Field(default=Decimal(0), ge=0)
    points_last_accrued_at: datetime = Field(default_factory=utcnow)
    productivity_factor: Decimal = Field(default=Decimal(1), gt=0)
    carryover_balance: Decimal = Field(default=Decimal(0), ge=0)
    scheduled: Optional[ScheduledDistribution] = None
    last_executed_at: Optional[datetime] = None

    @field_validator("points_last_accrued_at", "last_executed_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    @property
    def total_pool(self) -> Decimal:
        """Accrued points plus carryover from previous cycles."""
        return self.point_balance + self.carryover_balance


class RecipientCandidate(BaseModel):
    """A potential recipient as reported by the identity directory."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    alliance_id: Optional[str] = None
    username: str = ""
    active: bool = True

    @field_validator("alliance_id", mode="before")
    @classmethod
    def _blank_alliance(cls, value: Any) -> Optional[str]:
        return value if is_valid_identity(value) else None


class SettlementPlan(BaseModel):
    """Journaled outcome of one distribution event, in minor units.

    Written before any credit is applied so that a replay after a crash
    settles exactly the same amounts.
    """

    model_config = ConfigDict(frozen=True)

    event_id: str
    domain_id: str
    executed_at: datetime
    total_pool_minor: int = Field(ge=0)
    distributable_minor: int = Field(ge=0)
    credits: dict[str, int] = Field(default_factory=dict)
    treasury_alliance_id: Optional[str] = None
    treasury_minor: int = Field(default=0, ge=0)
    carryover_minor: int = Field(default=0, ge=0)
    overdrawn_minor: int = Field(default=0, ge=0)
    skipped_reason: Optional[str] = None

    @field_validator("executed_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @property
    def credited_minor(self) -> int:
        return sum(self.credits.values())


__all__ = [
    "Domain",
    "SettlementPlan",
    "DistributionRule",
    "DistributionScope",
    "RecipientCandidate",
    "RuleSnapshot",
    "ScheduledDistribution",
    "ensure_utc",
    "is_valid_identity",
    "utcnow",
]
