"""
Presence oracles.

Conditional recipient classes are paid only to users physically present at
the domain when the distribution executes. Two sources are bundled: the
live location feed reported by the travel subsystem, and an explicit
join/exit roster of participants per domain.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from knowledgedist.constants import DEFAULT_KEY_PREFIX
from knowledgedist.events import (
    EVENT_DISTRIBUTION_SETTLED,
    EVENT_DISTRIBUTION_SKIPPED,
    Event,
    EventBus,
)
from knowledgedist.models import ensure_utc, is_valid_identity, utcnow
from knowledgedist.storage.provider import AbstractStorageProvider

logger = logging.getLogger(__name__)


@runtime_checkable
class PresenceOracle(Protocol):
    """Answers "is this user at this domain right now"."""

    async def is_present(self, user_id: str, domain_id: str) -> bool:
        ...


@dataclass(frozen=True)
class LocationFix:
    """Last reported location of a user."""

    location_id: Optional[str]
    in_transit: bool = False
    reported_at: datetime = field(default_factory=utcnow)


class LocationPresenceOracle:
    """Present means located at the domain and not mid-transit."""

    def __init__(self) -> None:
        self._fixes: dict[str, LocationFix] = {}

    def update(self, user_id: str, location_id: Optional[str], in_transit: bool = False) -> None:
        self._fixes[user_id] = LocationFix(location_id=location_id, in_transit=in_transit)

    def forget(self, user_id: str) -> None:
        self._fixes.pop(user_id, None)

    async def is_present(self, user_id: str, domain_id: str) -> bool:
        fix = self._fixes.get(user_id)
        if fix is None:
            return False
        return fix.location_id == domain_id and not fix.in_transit


@dataclass
class ParticipationRecord:
    user_id: str
    domain_id: str
    joined_at: datetime
    exited_at: Optional[datetime] = None

    @property
    def active(self) -> bool:
        return self.exited_at is None


class ParticipantRoster:
    """
    Manual participation list for upcoming distributions.

    Users join a domain's roster before the entry window closes and may
    exit at any time. A user counts as present while their latest record
    for the domain is open.
    """

    def __init__(self) -> None:
        self._records: dict[tuple[str, str], ParticipationRecord] = {}
        self._lock = asyncio.Lock()

    async def join(
        self,
        user_id: str,
        domain_id: str,
        entry_deadline: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> ParticipationRecord:
        """
        Record *user_id* as a participant of *domain_id*.

        Args:
            user_id: Joining user
            domain_id: Domain whose distribution is being joined
            entry_deadline: Instant after which joins are refused
            now: Current time (defaults to now)

        Raises:
            ValueError: If the user id is invalid or entry has closed
        """
        if not is_valid_identity(user_id):
            raise ValueError(f"Invalid user id: {user_id!r}")
        at = ensure_utc(now) if now is not None else utcnow()
        if entry_deadline is not None and at > ensure_utc(entry_deadline):
            raise ValueError(f"Entry to domain {domain_id} closed at {entry_deadline.isoformat()}")

        async with self._lock:
            existing = self._records.get((domain_id, user_id))
            if existing is not None and existing.active:
                return existing
            record = ParticipationRecord(user_id=user_id, domain_id=domain_id, joined_at=at)
            self._records[(domain_id, user_id)] = record
            logger.debug("User %s joined distribution roster of %s", user_id, domain_id)
            return record

    async def exit(self, user_id: str, domain_id: str, now: Optional[datetime] = None) -> bool:
        """Close the user's open record. Returns False if none was open."""
        async with self._lock:
            record = self._records.get((domain_id, user_id))
            if record is None or not record.active:
                return False
            record.exited_at = ensure_utc(now) if now is not None else utcnow()
            return True

    async def active_participants(self, domain_id: str) -> list[str]:
        return sorted(
            user_id
            for (dom, user_id), record in self._records.items()
            if dom == domain_id and record.active
        )

    async def is_present(self, user_id: str, domain_id: str) -> bool:
        record = self._records.get((domain_id, user_id))
        return record is not None and record.active

    def release(self, domain_id: str) -> int:
        """Forget every record for *domain_id*. Returns how many were dropped."""
        stale = [key for key in self._records if key[0] == domain_id]
        for key in stale:
            del self._records[key]
        return len(stale)

    def bind(self, event_bus: EventBus) -> None:
        """Release a domain's roster once its distribution is settled or skipped."""
        event_bus.subscribe(EVENT_DISTRIBUTION_SETTLED, self._on_distribution_closed)
        event_bus.subscribe(EVENT_DISTRIBUTION_SKIPPED, self._on_distribution_closed)

    def _on_distribution_closed(self, event: Event) -> None:
        dropped = self.release(event.source)
        logger.debug("Released %d roster records of domain %s", dropped, event.source)


class StoredLocationOracle:
    """Location feed kept in a storage hash so every process reads the same fixes."""

    def __init__(self, provider: AbstractStorageProvider, prefix: str = DEFAULT_KEY_PREFIX):
        self._provider = provider
        self._key = f"{prefix}presence"

    async def update(self, user_id: str, location_id: Optional[str], in_transit: bool = False) -> None:
        record = {"location_id": location_id, "in_transit": in_transit}
        await self._provider.hset(self._key, user_id, json.dumps(record))

    async def is_present(self, user_id: str, domain_id: str) -> bool:
        raw = await self._provider.hget(self._key, user_id)
        if raw is None:
            return False
        record = json.loads(raw)
        return record.get("location_id") == domain_id and not record.get("in_transit", False)
