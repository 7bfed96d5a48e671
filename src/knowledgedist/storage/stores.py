"""
Typed stores over a storage provider.

Domain records and the scheduled-domain index, per-user balances and
alliance treasuries in minor units, the settlement journal, and per-domain
execution leases. Records are pydantic models serialised as JSON.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from pydantic import ValidationError

from ..constants import DEFAULT_KEY_PREFIX
from ..exceptions import SchedulerError, StorageError
from ..models import Domain, ScheduledDistribution, SettlementPlan, utcnow
from ..units import from_minor
from .provider import AbstractStorageProvider

logger = logging.getLogger(__name__)


class DomainStore:
    """Domain records plus an index of domains holding a scheduled event."""

    DOMAIN_SUFFIX = "domain"
    SCHEDULED_INDEX = "domains:scheduled"

    def __init__(self, provider: AbstractStorageProvider, prefix: str = DEFAULT_KEY_PREFIX) -> None:
        self._provider = provider
        self._prefix = prefix

    def _key(self, domain_id: str) -> str:
        return f"{self._prefix}{self.DOMAIN_SUFFIX}:{domain_id}"

    def _index_key(self) -> str:
        return f"{self._prefix}{self.SCHEDULED_INDEX}"

    @staticmethod
    def _parse(domain_id: str, raw: str) -> Domain:
        try:
            return Domain.model_validate_json(raw)
        except ValidationError as exc:
            raise StorageError(f"Corrupt domain record {domain_id}: {exc}") from exc

    async def get(self, domain_id: str) -> Optional[Domain]:
        raw = await self._provider.get(self._key(domain_id))
        if raw is None:
            return None
        return self._parse(domain_id, raw)

    async def save(self, domain: Domain) -> None:
        """Write *domain* unconditionally and keep the scheduled index in step."""
        await self._provider.set(self._key(domain.domain_id), domain.model_dump_json())
        if domain.scheduled is not None:
            await self._provider.sadd(self._index_key(), domain.domain_id)
        else:
            await self._provider.srem(self._index_key(), domain.domain_id)

    async def schedule(self, domain_id: str, schedule: ScheduledDistribution) -> Domain:
        """Attach *schedule* to a domain.

        Stand-in for the external lock-creation flow. A domain holds at most
        one live scheduled distribution.
        """
        domain = await self.get(domain_id)
        if domain is None:
            raise SchedulerError(f"Domain {domain_id} not found")
        if domain.scheduled is not None:
            raise SchedulerError(
                f"Domain {domain_id} already has distribution {domain.scheduled.event_id} scheduled"
            )
        domain.scheduled = schedule
        await self.save(domain)
        return domain

    async def scheduled_ids(self) -> list[str]:
        return sorted(await self._provider.smembers(self._index_key()))

    async def unindex(self, domain_id: str) -> None:
        await self._provider.srem(self._index_key(), domain_id)

    async def finalize(
        self,
        domain_id: str,
        event_id: str,
        update: Callable[[Domain], Domain],
    ) -> bool:
        """Apply *update* only while the live schedule still carries *event_id*.

        Uses compare-and-set on the serialised record so a concurrent write
        is never overwritten. Returns False if the event was already cleared.
        """
        key = self._key(domain_id)
        while True:
            raw = await self._provider.get(key)
            if raw is None:
                return False
            domain = self._parse(domain_id, raw)
            if domain.scheduled is None or domain.scheduled.event_id != event_id:
                return False
            updated = update(domain)
            if await self._provider.compare_and_set(key, raw, updated.model_dump_json()):
                if updated.scheduled is None:
                    await self.unindex(domain_id)
                return True
            logger.debug("Domain %s changed during finalize, retrying", domain_id)

    async def discard_schedule(self, domain_id: str, event_id: str) -> bool:
        """Drop the live schedule if it carries *event_id*, leaving balances untouched."""
        return await self.finalize(
            domain_id, event_id, lambda domain: domain.model_copy(update={"scheduled": None})
        )


class BalanceLedger:
    """Per-account balances held as integer minor units."""

    NAME = "balances"

    def __init__(self, provider: AbstractStorageProvider, prefix: str = DEFAULT_KEY_PREFIX) -> None:
        self._provider = provider
        self._prefix = prefix

    def _key(self) -> str:
        return f"{self._prefix}{self.NAME}"

    def _token_key(self, event_id: str) -> str:
        return f"{self._prefix}{self.NAME}:applied:{event_id}"

    async def credit_once(self, account_id: str, amount_minor: int, event_id: str) -> bool:
        """Credit *account_id* for *event_id* at most once."""
        return await self._provider.hincrby_once(
            self._key(), account_id, amount_minor, self._token_key(event_id), account_id
        )

    async def balance_minor(self, account_id: str) -> int:
        raw = await self._provider.hget(self._key(), account_id)
        return int(raw) if raw is not None else 0

    async def balance(self, account_id: str) -> Decimal:
        return from_minor(await self.balance_minor(account_id))


class TreasuryLedger(BalanceLedger):
    """Alliance treasuries (shared knowledge reserves)."""

    NAME = "treasury"


class SettlementJournal:
    """First-writer-wins record of settlement plans, keyed by event id."""

    def __init__(self, provider: AbstractStorageProvider, prefix: str = DEFAULT_KEY_PREFIX) -> None:
        self._provider = provider
        self._prefix = prefix

    def _key(self, event_id: str) -> str:
        return f"{self._prefix}journal:{event_id}"

    def _completed_key(self, event_id: str) -> str:
        return f"{self._prefix}journal:{event_id}:completed"

    async def record(self, plan: SettlementPlan) -> SettlementPlan:
        """Store *plan* unless one exists; return whichever plan is on record."""
        stored = await self._provider.set(
            self._key(plan.event_id), plan.model_dump_json(), only_if_absent=True
        )
        if stored:
            return plan
        existing = await self.get(plan.event_id)
        if existing is None:
            raise StorageError(f"Journal entry {plan.event_id} vanished during record")
        return existing

    async def get(self, event_id: str) -> Optional[SettlementPlan]:
        raw = await self._provider.get(self._key(event_id))
        if raw is None:
            return None
        return SettlementPlan.model_validate_json(raw)

    async def mark_completed(self, event_id: str, at: Optional[datetime] = None) -> None:
        await self._provider.set(self._completed_key(event_id), (at or utcnow()).isoformat())

    async def is_completed(self, event_id: str) -> bool:
        return await self._provider.exists(self._completed_key(event_id))


class LeaseManager:
    """Expiring per-name leases for multi-instance deployments."""

    def __init__(self, provider: AbstractStorageProvider, prefix: str = DEFAULT_KEY_PREFIX) -> None:
        self._provider = provider
        self._prefix = prefix

    def _key(self, name: str) -> str:
        return f"{self._prefix}lease:{name}"

    async def acquire(self, name: str, owner: str, ttl_seconds: int) -> bool:
        return await self._provider.set(
            self._key(name), owner, ttl_seconds=ttl_seconds, only_if_absent=True
        )

    async def release(self, name: str, owner: str) -> bool:
        """Release the lease only if *owner* still holds it."""
        return await self._provider.compare_and_delete(self._key(name), owner)

    async def holder(self, name: str) -> Optional[str]:
        return await self._provider.get(self._key(name))
